"""
Write classification and filter results back to Excel workbooks.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from config import CATALOG_EDIT_URL, CRAWL_DETAIL_URL
from parking_scanner.proximity_classifier import (
    DEFAULT_BANDS,
    ClassificationResult,
    DistanceBand,
    Tier,
    tier_label,
)
from parking_scanner.record_formatter import FormattedRecord, records_to_rows
from parking_scanner.sheet_io import SheetRow, write_sheets

logger = logging.getLogger(__name__)

APPENDED_COLUMNS = ["crawl_link", "catalog_links", "distances"]


def format_distance(distance_m: float) -> str:
    return f"{distance_m:.2f}m"


def result_columns(
    result: ClassificationResult,
    crawl_url: str = CRAWL_DETAIL_URL,
    catalog_url: str = CATALOG_EDIT_URL,
) -> List[str]:
    """The three report columns appended to a classified row."""
    return [
        crawl_url.format(id=result.source_id),
        "\n".join(catalog_url.format(id=m.catalog_id) for m in result.matches),
        "\n".join(format_distance(m.distance_m) for m in result.matches),
    ]


def classification_rows(
    header: Optional[Sequence[Any]],
    source_rows: Sequence[SheetRow],
    results: Sequence[ClassificationResult],
) -> List[List[Any]]:
    """
    Build sheet rows for one tier: original cells + link and distance columns.

    The header row, when given, is extended with the appended column names.
    """
    cells_by_index = {row_index: cells for row_index, cells in source_rows}
    width = max((len(cells) for cells in cells_by_index.values()), default=0)

    rows: List[List[Any]] = []
    if header is not None:
        rows.append(_pad(list(header), width) + APPENDED_COLUMNS)

    for result in results:
        cells = _pad(list(cells_by_index.get(result.row_index, [])), width)
        rows.append(cells + result_columns(result))
    return rows


def _pad(cells: List[Any], width: int) -> List[Any]:
    return cells + [None] * (width - len(cells))


def write_classification_report(
    path: Path,
    header: Optional[Sequence[Any]],
    source_rows: Sequence[SheetRow],
    grouped: Dict[Tier, List[ClassificationResult]],
    bands: Sequence[DistanceBand] = DEFAULT_BANDS,
) -> Optional[Path]:
    """Write one sheet per tier, named by the tier's distance range."""
    sheets = {
        tier_label(tier, bands): classification_rows(header, source_rows, results)
        for tier, results in grouped.items()
    }
    return write_sheets(path, sheets)


def write_formatted_records(
    path: Path,
    records: Sequence[FormattedRecord],
    sheet_name: str = "new",
) -> Optional[Path]:
    """Write formatted records to a single sheet."""
    return write_sheets(path, {sheet_name: records_to_rows(records)})


def print_summary(
    grouped: Dict[Tier, List[ClassificationResult]],
    region_key: str,
    bands: Sequence[DistanceBand] = DEFAULT_BANDS,
) -> None:
    """Print a per-tier summary of a classification run."""
    total = sum(len(results) for results in grouped.values())
    if total == 0:
        logger.info("No parkings classified.")
        return

    print(f"\n{'=' * 60}")
    print(f"PARKING SCANNER — {region_key.upper()} RESULTS")
    print(f"{'=' * 60}")
    print(f"Total crawled parkings:      {total}")
    for tier in Tier:
        count = len(grouped.get(tier, []))
        label = f"{tier.name} ({tier_label(tier, bands)})"
        print(f"  {label:<27} {count}")
    print(f"{'=' * 60}\n")
