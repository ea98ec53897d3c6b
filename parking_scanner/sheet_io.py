"""
Spreadsheet read/write helpers for crawl workbooks and result reports.

Rows are exchanged as ``(row_index, cells)`` tuples where ``row_index`` is the
1-based spreadsheet row number, so row 1 is always the header.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence, Tuple

import pandas as pd

logger = logging.getLogger(__name__)

SheetRow = Tuple[int, List[Any]]


class MissingSheetError(KeyError):
    """Raised when a requested sheet does not exist in the workbook."""

    def __init__(self, sheet_name: str, path: Path, available: Sequence[str] = ()):
        self.sheet_name = sheet_name
        self.path = path
        self.available = list(available)
        super().__init__(
            f"Sheet '{sheet_name}' not found in {path} "
            f"(available: {', '.join(self.available) or 'none'})"
        )

    def __str__(self) -> str:
        return self.args[0]


def column_index(letter: str) -> int:
    """
    Convert a spreadsheet column letter to a 0-based cell index.

    ``"A"`` -> 0, ``"D"`` -> 3, ``"AA"`` -> 26.
    """
    letter = letter.strip().upper()
    if not letter or not letter.isalpha():
        raise ValueError(f"Invalid column letter: {letter!r}")

    index = 0
    for ch in letter:
        index = index * 26 + (ord(ch) - ord("A") + 1)
    return index - 1


def cell_at(cells: Sequence[Any], letter: str) -> Optional[Any]:
    """Return the value in column ``letter`` or None if the row is shorter."""
    idx = column_index(letter)
    if idx >= len(cells):
        return None
    return cells[idx]


def _clean_cell(value: Any) -> Any:
    if value is None:
        return None
    try:
        if pd.isna(value):
            return None
    except (TypeError, ValueError):
        pass
    return value


def read_sheet_rows(path: Path, sheet_name: str) -> List[SheetRow]:
    """
    Read every row of a worksheet, header included.

    Args:
        path: Workbook path (.xlsx).
        sheet_name: Worksheet to read.

    Returns:
        List of (row_index, cells), row_index starting at 1.

    Raises:
        FileNotFoundError: If the workbook does not exist.
        MissingSheetError: If the worksheet is absent.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Workbook not found: {path}")

    with pd.ExcelFile(path, engine="openpyxl") as workbook:
        if sheet_name not in workbook.sheet_names:
            raise MissingSheetError(sheet_name, path, workbook.sheet_names)
        df = pd.read_excel(workbook, sheet_name=sheet_name, header=None, dtype=object)

    rows: List[SheetRow] = []
    for offset, values in enumerate(df.itertuples(index=False, name=None)):
        rows.append((offset + 1, [_clean_cell(v) for v in values]))

    logger.info(f"Read {len(rows)} rows from sheet '{sheet_name}' of {path.name}")
    return rows


def write_sheets(path: Path, sheets: Dict[str, List[List[Any]]]) -> Optional[Path]:
    """
    Write one worksheet per non-empty entry of ``sheets``.

    Each value is an ordered list of rows; rows are written as-is (no index,
    no generated header). Sheet order follows dict order.

    Returns:
        The workbook path, or None when every sheet was empty and no file
        was written.
    """
    path = Path(path)
    sheets = {name: rows for name, rows in sheets.items() if rows}

    if not sheets:
        logger.warning(f"Nothing to write, {path.name} not created")
        return None

    path.parent.mkdir(parents=True, exist_ok=True)
    with pd.ExcelWriter(path, engine="openpyxl") as writer:
        for sheet_name, rows in sheets.items():
            df = pd.DataFrame(rows)
            df.to_excel(writer, sheet_name=sheet_name, header=False, index=False)
            logger.debug(f"Wrote {len(rows)} rows to sheet '{sheet_name}'")

    logger.info(f"Saved {len(sheets)} sheet(s) to {path}")
    return path
