"""
Classify crawled parkings by their distance to known catalog parkings.

A crawled parking is compared against every catalog parking of its region
and lands in one tier:

    EXIST          within the first band (default 10m)
    MAYBE_EXIST_1  within the second band (default 20m)
    MAYBE_EXIST_2  within the third band (default 50m)
    NEW            farther than every band

The scan keeps only the matches of the strongest tier seen so far. Once a
stronger tier is reached, weaker matches found later are ignored, so the tier
does not depend on candidate order (the match list keeps scan order).
"""

from __future__ import annotations

import enum
import logging
from collections import defaultdict
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence, Tuple

from config import DISTANCE_BANDS_M, MIN_SEPARATION_M
from parking_scanner.catalog import CatalogEntry
from parking_scanner.row_normalizer import Observation
from parking_scanner.utils.geo_utils import geodesic_distance

logger = logging.getLogger(__name__)


class Tier(enum.IntEnum):
    """Match tiers; a lower value is a stronger match."""
    EXIST = 0
    MAYBE_EXIST_1 = 1
    MAYBE_EXIST_2 = 2
    NEW = 3

    def stronger_than(self, other: "Tier") -> bool:
        return self < other


@dataclass(frozen=True)
class DistanceBand:
    """Distances up to ``max_distance_m`` (inclusive) belong to ``tier``."""
    tier: Tier
    max_distance_m: float


@dataclass(frozen=True)
class Match:
    catalog_id: int
    distance_m: float


@dataclass(frozen=True)
class ClassificationResult:
    """Tier assigned to one crawled parking plus its matches at that tier."""
    row_index: int
    source_id: str
    tier: Tier
    matches: Tuple[Match, ...] = ()


@dataclass(frozen=True)
class ScanState:
    """Running state of a candidate scan: best tier so far and its matches."""
    tier: Tier = Tier.NEW
    matches: Tuple[Match, ...] = ()


def make_bands(thresholds: Sequence[float] = DISTANCE_BANDS_M) -> Tuple[DistanceBand, ...]:
    """
    Build bands from ascending thresholds, strongest tier first.

    ``(10, 20, 50)`` -> EXIST <= 10m, MAYBE_EXIST_1 <= 20m, MAYBE_EXIST_2 <= 50m.
    """
    tiers = [t for t in Tier if t is not Tier.NEW]
    if len(thresholds) > len(tiers):
        raise ValueError(f"At most {len(tiers)} distance bands are supported, got {len(thresholds)}")
    bands = tuple(DistanceBand(tier, float(limit)) for tier, limit in zip(tiers, thresholds))
    validate_bands(bands)
    return bands


def validate_bands(bands: Sequence[DistanceBand]) -> None:
    """
    Raises:
        ValueError: If thresholds are not strictly increasing, tiers are not
            strictly weakening, or a band targets NEW.
    """
    for band in bands:
        if band.tier is Tier.NEW:
            raise ValueError("NEW cannot be a distance band")
        if band.max_distance_m < 0:
            raise ValueError(f"Negative band threshold: {band.max_distance_m}")

    for prev, band in zip(bands, bands[1:]):
        if band.max_distance_m <= prev.max_distance_m:
            raise ValueError(
                f"Band thresholds must increase: {prev.max_distance_m} then {band.max_distance_m}"
            )
        if not prev.tier.stronger_than(band.tier):
            raise ValueError(f"Band tiers must weaken: {prev.tier.name} then {band.tier.name}")


DEFAULT_BANDS = make_bands(DISTANCE_BANDS_M)


def band_for(distance_m: float, bands: Sequence[DistanceBand]) -> Optional[Tier]:
    """Return the strongest tier whose band contains ``distance_m``, or None."""
    for band in bands:
        # NaN compares False and falls through to None
        if distance_m <= band.max_distance_m:
            return band.tier
    return None


def advance(state: ScanState, tier: Optional[Tier], match: Match) -> ScanState:
    """
    Fold one candidate into the scan state.

    A stronger tier replaces the matches, the same tier appends, a weaker
    tier (or no tier) leaves the state untouched.
    """
    if tier is None or state.tier.stronger_than(tier):
        return state
    if tier == state.tier:
        return ScanState(tier, state.matches + (match,))
    return ScanState(tier, (match,))


def classify(
    observation: Observation,
    candidates: Sequence[CatalogEntry],
    bands: Sequence[DistanceBand] = DEFAULT_BANDS,
) -> ClassificationResult:
    """
    Classify one crawled parking against the region's catalog parkings.

    Args:
        observation: Normalized crawled row.
        candidates: Catalog parkings of the region, scanned in order.
        bands: Distance bands, strongest first.

    Returns:
        ClassificationResult. NEW with no matches when nothing is in range.
    """
    state = ScanState()
    for entry in candidates:
        distance = geodesic_distance(observation.coord, entry.coord)
        state = advance(state, band_for(distance, bands), Match(entry.id, distance))

    return ClassificationResult(
        row_index=observation.row_index,
        source_id=observation.source_id,
        tier=state.tier,
        matches=state.matches,
    )


def classify_batch(
    observations: Sequence[Observation],
    candidates: Sequence[CatalogEntry],
    bands: Sequence[DistanceBand] = DEFAULT_BANDS,
) -> Dict[Tier, List[ClassificationResult]]:
    """
    Classify every observation and group results by tier.

    Groups are ordered strongest tier first and keep row order inside; tiers
    without any result are omitted.
    """
    grouped: Dict[Tier, List[ClassificationResult]] = defaultdict(list)

    for obs in observations:
        result = classify(obs, candidates, bands)
        logger.debug(f"Row {obs.row_index}: {result.tier.name} ({len(result.matches)} matches)")
        grouped[result.tier].append(result)

    ordered = {tier: grouped[tier] for tier in Tier if tier in grouped}
    logger.info(
        f"Classified {len(observations)} parkings against {len(candidates)} catalog entries: "
        + ", ".join(f"{tier.name}={len(results)}" for tier, results in ordered.items())
    )
    return ordered


def filter_new(
    observations: Sequence[Observation],
    candidates: Sequence[CatalogEntry],
    min_separation_m: float = MIN_SEPARATION_M,
) -> List[Observation]:
    """
    Keep observations farther than ``min_separation_m`` from every catalog entry.

    Equivalent to classifying with a single EXIST band and keeping NEW.
    """
    bands = (DistanceBand(Tier.EXIST, float(min_separation_m)),)
    kept = [obs for obs in observations if classify(obs, candidates, bands).tier is Tier.NEW]

    logger.info(
        f"Separation filter ({min_separation_m:.0f}m): "
        f"{len(observations)} -> {len(kept)} parkings"
    )
    return kept


def tier_label(tier: Tier, bands: Sequence[DistanceBand] = DEFAULT_BANDS) -> str:
    """
    Human-readable distance range of a tier, used as report sheet name.

    With default bands: ``"< 10m"``, ``"10m - 20m"``, ``"20m - 50m"``, ``"> 50m"``.
    """
    def fmt(value: float) -> str:
        return f"{value:g}m"

    if tier is Tier.NEW:
        if not bands:
            return "new"
        return f"> {fmt(bands[-1].max_distance_m)}"

    previous: Optional[DistanceBand] = None
    for band in bands:
        if band.tier is tier:
            if previous is None:
                return f"< {fmt(band.max_distance_m)}"
            return f"{fmt(previous.max_distance_m)} - {fmt(band.max_distance_m)}"
        previous = band
    return tier.name.lower()
