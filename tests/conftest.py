"""Shared fixtures and helpers."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from parking_scanner.catalog import CatalogEntry
from parking_scanner.row_normalizer import Observation
from parking_scanner.utils.geo_utils import WGS84


def offset(lat: float, lng: float, meters: float, azimuth: float = 0.0) -> tuple[float, float]:
    """Point ``meters`` away from (lat, lng) along ``azimuth`` (0 = north)."""
    lng2, lat2, _ = WGS84.fwd(lng, lat, azimuth, meters)
    return lat2, lng2


def make_observation(lat: float = 34.0, lng: float = 135.0, **kwargs) -> Observation:
    defaults = {"row_index": 2, "source_id": "1001"}
    defaults.update(kwargs)
    return Observation(lat=lat, lng=lng, **defaults)


def entries_at(distances, origin=(34.0, 135.0), start_id=1) -> list[CatalogEntry]:
    """Catalog entries placed north of ``origin`` at the given distances."""
    entries = []
    for i, meters in enumerate(distances):
        lat, lng = offset(origin[0], origin[1], meters)
        entries.append(CatalogEntry(id=start_id + i, lat=lat, lng=lng))
    return entries


