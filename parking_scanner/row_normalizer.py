"""
Convert raw crawl spreadsheet rows into typed parking observations.

Each column is described by a ColumnRule: which cell to read and a pure
transform turning the cell value into a partial attribute dict. Rules are
plain data (DEFAULT_COLUMN_RULES) so a different crawl layout only needs a
different table.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple

from config import COLUMN_LAYOUT
from parking_scanner.sheet_io import SheetRow, cell_at

logger = logging.getLogger(__name__)

UNKNOWN = "unknown"

Transform = Callable[[Any], Dict[str, Any]]

# Fields the catalog insert schema requires but the crawl sheet does not carry
DEFAULT_PARKING_ATTRIBUTES: Mapping[str, Any] = MappingProxyType({
    "name": "",
    "address": "",
    "parking_type": UNKNOWN,
    "source": "p-king",
    "status": 1,
    "is_public": 0,
})

DEFAULT_SPACE_ATTRIBUTES: Mapping[str, Any] = MappingProxyType({
    "capacity": 0,
    "price_yen": 0,
    "price_minutes": 0,
    "open_24h": 0,
    "max_height_m": 0.0,
    "car_type": UNKNOWN,
})

PARKING_TYPES = {
    "平面": "flat",
    "平置き": "flat",
    "立体": "multi_storey",
    "自走式": "multi_storey",
    "機械式": "mechanical",
    "タワー": "tower",
}

CAR_TYPES = {
    "軽自動車": "kei",
    "普通車": "standard",
    "ハイルーフ": "high_roof",
    "大型車": "large",
}

TRUTHY = {"○", "◯", "あり", "有", "可", "24時間", "yes", "true", "1"}


class MalformedCoordinateError(ValueError):
    """Raised when a row's "lat,lng" cell is missing or unparsable."""


@dataclass(frozen=True)
class Observation:
    """A normalized crawled parking row."""
    row_index: int
    source_id: str
    lat: float
    lng: float
    attributes: Dict[str, Any] = field(default_factory=dict)
    space_attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def coord(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


@dataclass(frozen=True)
class ColumnRule:
    """
    How to read one spreadsheet column.

    ``section`` says whether the attributes belong to the parking itself or to
    its space (price, capacity, ...). ``default`` replaces the transform output
    when the cell cannot be parsed.
    """
    column: str
    transform: Transform
    section: str = "parking"
    default: Dict[str, Any] = field(default_factory=dict)


def _is_blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


# ---------------------------------------------------------------------------
# Transforms
# ---------------------------------------------------------------------------

def text_field(key: str) -> Transform:
    def transform(value: Any) -> Dict[str, Any]:
        if _is_blank(value):
            return {key: ""}
        return {key: str(value).strip()}
    return transform


def int_field(key: str) -> Transform:
    """Integer cell; tolerates unit suffixes such as ``"20台"``."""
    def transform(value: Any) -> Dict[str, Any]:
        if _is_blank(value):
            return {key: 0}
        if isinstance(value, (int, float)):
            return {key: int(value)}
        match = re.search(r"-?\d+", str(value).replace(",", ""))
        if not match:
            raise ValueError(f"No integer in {value!r}")
        return {key: int(match.group())}
    return transform


def float_field(key: str) -> Transform:
    def transform(value: Any) -> Dict[str, Any]:
        if _is_blank(value):
            return {key: 0.0}
        if isinstance(value, (int, float)):
            return {key: float(value)}
        match = re.search(r"-?\d+(?:\.\d+)?", str(value).replace(",", ""))
        if not match:
            raise ValueError(f"No number in {value!r}")
        return {key: float(match.group())}
    return transform


def flag_field(key: str) -> Transform:
    def transform(value: Any) -> Dict[str, Any]:
        if _is_blank(value):
            return {key: 0}
        if isinstance(value, (bool, int, float)):
            return {key: 1 if value else 0}
        return {key: 1 if str(value).strip().lower() in TRUTHY else 0}
    return transform


def choice_field(key: str, choices: Mapping[str, str]) -> Transform:
    """Map a label to a code; labels not in ``choices`` become UNKNOWN."""
    def transform(value: Any) -> Dict[str, Any]:
        if _is_blank(value):
            return {key: UNKNOWN}
        label = str(value).strip()
        for name, code in choices.items():
            if name in label:
                return {key: code}
        return {key: UNKNOWN}
    return transform


def price_field(value: Any) -> Dict[str, Any]:
    """
    Parse a price cell such as ``"300円/30分"`` or ``"¥400"``.

    Returns ``price_yen`` and ``price_minutes`` (0 when no time unit is given).
    """
    if _is_blank(value):
        return {"price_yen": 0, "price_minutes": 0}
    if isinstance(value, (int, float)):
        return {"price_yen": int(value), "price_minutes": 0}

    text = str(value).replace(",", "").strip()
    if "無料" in text:
        return {"price_yen": 0, "price_minutes": 0}

    yen = re.search(r"[¥￥]\s*(\d+)|(\d+)\s*円", text)
    if not yen:
        raise ValueError(f"No price in {value!r}")
    minutes = re.search(r"(\d+)\s*分", text)
    hours = re.search(r"(\d+)\s*時間", text)

    if minutes:
        unit = int(minutes.group(1))
    elif hours:
        unit = int(hours.group(1)) * 60
    else:
        unit = 0

    return {
        "price_yen": int(yen.group(1) or yen.group(2)),
        "price_minutes": unit,
    }


DEFAULT_COLUMN_RULES: Tuple[ColumnRule, ...] = (
    ColumnRule("A", text_field("name")),
    ColumnRule("C", text_field("address")),
    ColumnRule("E", choice_field("parking_type", PARKING_TYPES)),
    ColumnRule("F", int_field("capacity"), section="space"),
    ColumnRule("G", price_field, section="space"),
    ColumnRule("H", flag_field("open_24h"), section="space"),
    ColumnRule("I", float_field("max_height_m"), section="space"),
    ColumnRule("J", choice_field("car_type", CAR_TYPES), section="space"),
)


# ---------------------------------------------------------------------------
# Normalization
# ---------------------------------------------------------------------------

def parse_location(value: Any) -> Tuple[float, float]:
    """
    Parse a ``"lat,lng"`` cell.

    Raises:
        MalformedCoordinateError: Missing cell, wrong shape, or non-numeric parts.
    """
    if _is_blank(value):
        raise MalformedCoordinateError("Missing location cell")

    parts = str(value).split(",")
    if len(parts) != 2:
        raise MalformedCoordinateError(f"Expected 'lat,lng', got {value!r}")

    try:
        return float(parts[0].strip()), float(parts[1].strip())
    except ValueError as exc:
        raise MalformedCoordinateError(f"Non-numeric location {value!r}") from exc


def parse_source_id(value: Any) -> str:
    if _is_blank(value):
        return ""
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value).strip()


def normalize_row(
    row_index: int,
    cells: Sequence[Any],
    layout: Mapping[str, str] = COLUMN_LAYOUT,
    rules: Sequence[ColumnRule] = DEFAULT_COLUMN_RULES,
) -> Observation:
    """
    Build an Observation from one spreadsheet row.

    Attribute cells never fail the row: a transform error falls back to the
    rule default (or the baseline default). Only the location cell is required.

    Raises:
        MalformedCoordinateError: If the location cell is missing or unparsable.
    """
    lat, lng = parse_location(cell_at(cells, layout["location"]))

    attributes = dict(DEFAULT_PARKING_ATTRIBUTES)
    space_attributes = dict(DEFAULT_SPACE_ATTRIBUTES)

    for rule in rules:
        value = cell_at(cells, rule.column)
        try:
            partial = rule.transform(value)
        except (ValueError, TypeError) as exc:
            logger.debug(f"Row {row_index} column {rule.column}: {exc}, using default")
            partial = dict(rule.default)

        target = space_attributes if rule.section == "space" else attributes
        target.update(partial)

    return Observation(
        row_index=row_index,
        source_id=parse_source_id(cell_at(cells, layout["source_id"])),
        lat=lat,
        lng=lng,
        attributes=attributes,
        space_attributes=space_attributes,
    )


def normalize_rows(
    rows: Sequence[SheetRow],
    layout: Mapping[str, str] = COLUMN_LAYOUT,
    rules: Sequence[ColumnRule] = DEFAULT_COLUMN_RULES,
) -> List[Observation]:
    """
    Normalize every data row of a sheet, in row order.

    Row 1 is the header and is skipped by index. Rows with a malformed
    location are logged and skipped.
    """
    observations: List[Observation] = []
    skipped = 0

    for row_index, cells in rows:
        if row_index <= 1:
            continue
        try:
            observations.append(normalize_row(row_index, cells, layout, rules))
        except MalformedCoordinateError as exc:
            skipped += 1
            logger.warning(f"Skipping row {row_index}: {exc}")

    logger.info(f"Normalized {len(observations)} rows ({skipped} skipped for bad location)")
    return observations


def header_cells(rows: Sequence[SheetRow]) -> Optional[List[Any]]:
    """Return the cells of row 1, or None if the sheet has no header."""
    for row_index, cells in rows:
        if row_index == 1:
            return list(cells)
    return None
