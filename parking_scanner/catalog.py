"""
Read the known parking catalog for a region.

The catalog lives in the ``location_parking`` table; a region is the set of
``location_city`` ids it covers. Only reads happen here.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from sqlalchemy import bindparam, create_engine, text
from sqlalchemy.engine import Engine

from config import CATALOG_CACHE_TTL_HOURS, DATABASE_URL
from parking_scanner.utils.cache import SnapshotCache, snapshot_key

logger = logging.getLogger(__name__)

CANDIDATES_QUERY = text(
    """
    SELECT parking.*
    FROM location_parking AS parking
    LEFT JOIN location_city AS city ON city.id = parking.city_id
    WHERE city.id IN :city_ids
    ORDER BY parking.id
    """
).bindparams(bindparam("city_ids", expanding=True))


@dataclass(frozen=True)
class CatalogEntry:
    """An existing catalog parking."""
    id: int
    lat: float
    lng: float
    attributes: Dict[str, Any] = field(default_factory=dict)

    @property
    def coord(self) -> Tuple[float, float]:
        return (self.lat, self.lng)


def get_engine(url: str = DATABASE_URL) -> Engine:
    """Create the catalog database engine."""
    return create_engine(url, pool_pre_ping=True)


def entries_from_rows(rows: Sequence[Dict[str, Any]]) -> List[CatalogEntry]:
    """
    Build CatalogEntry objects from raw ``location_parking`` rows.

    Rows without coordinates cannot be compared and are skipped.
    """
    entries: List[CatalogEntry] = []
    skipped = 0

    for row in rows:
        lat, lng = row.get("lat"), row.get("lng")
        if lat is None or lng is None:
            skipped += 1
            continue
        entries.append(
            CatalogEntry(
                id=int(row["id"]),
                lat=float(lat),
                lng=float(lng),
                attributes={k: v for k, v in row.items() if k not in ("id", "lat", "lng")},
            )
        )

    if skipped:
        logger.warning(f"Skipped {skipped} catalog rows without coordinates")
    return entries


def fetch_candidate_rows(engine: Engine, city_ids: Sequence[int]) -> List[Dict[str, Any]]:
    """Run the region query and return plain dict rows."""
    if not city_ids:
        return []

    with engine.connect() as conn:
        result = conn.execute(CANDIDATES_QUERY, {"city_ids": list(city_ids)})
        return [dict(row) for row in result.mappings()]


def fetch_candidates(engine: Engine, city_ids: Sequence[int]) -> List[CatalogEntry]:
    """
    Fetch every catalog parking located in one of ``city_ids``.

    Args:
        engine: SQLAlchemy engine for the catalog database.
        city_ids: ``location_city`` ids of the region.

    Returns:
        List of CatalogEntry ordered by id. Empty when ``city_ids`` is empty.
    """
    rows = fetch_candidate_rows(engine, city_ids)
    entries = entries_from_rows(rows)
    logger.info(f"Fetched {len(entries)} catalog parkings for {len(city_ids)} cities")
    return entries


def catalog_source(engine: Engine) -> str:
    """Identify the catalog database without leaking its password."""
    return engine.url.render_as_string(hide_password=True)


def fetch_candidates_cached(
    engine: Engine,
    city_ids: Sequence[int],
    cache: Optional[SnapshotCache] = None,
    refresh: bool = False,
) -> List[CatalogEntry]:
    """
    Like :func:`fetch_candidates`, but serves a snapshot of the same query
    against the same database when one is available.

    Args:
        refresh: Skip the stored snapshot and replace it with fresh rows.
    """
    cache = cache or SnapshotCache("catalog", ttl_hours=CATALOG_CACHE_TTL_HOURS)
    source = catalog_source(engine)
    key = snapshot_key(source, CANDIDATES_QUERY.text, {"city_ids": sorted(city_ids)})

    rows = None if refresh else cache.load(key)
    if rows is not None:
        logger.info(f"Loaded {len(rows)} catalog rows from snapshot of {source}")
    else:
        rows = fetch_candidate_rows(engine, city_ids)
        cache.store(key, rows, source=source)

    entries = entries_from_rows(rows)
    logger.info(f"Using {len(entries)} catalog parkings for {len(city_ids)} cities")
    return entries
