"""
Turn accepted crawled parkings into catalog-ready records.

The crawl lists one row per space, so the same crawler id can appear on
several rows. Rows sharing a source id are merged into one parking record
owning an ordered list of spaces: the first row defines the parking and its
visible space "p1", later rows only add hidden spaces "p2", "p3", ...
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Sequence

from parking_scanner.row_normalizer import Observation

logger = logging.getLogger(__name__)

AddressPredicate = Callable[[str], bool]

SPACE_NAME_PREFIX = "p"


@dataclass
class Space:
    name: str
    visible: bool
    attributes: Dict[str, Any] = field(default_factory=dict)


@dataclass
class FormattedRecord:
    """A parking to insert, keyed by the crawler's source id."""
    source_id: str
    parking: Dict[str, Any]
    spaces: List[Space] = field(default_factory=list)

    def add_space(self, attributes: Dict[str, Any]) -> Space:
        space = Space(
            name=f"{SPACE_NAME_PREFIX}{len(self.spaces) + 1}",
            visible=not self.spaces,
            attributes=dict(attributes),
        )
        self.spaces.append(space)
        return space


def address_contains(fragment: str) -> AddressPredicate:
    """Predicate accepting addresses that contain ``fragment`` (e.g. "大阪府")."""
    def predicate(address: str) -> bool:
        return fragment in (address or "")
    return predicate


def _parking_payload(obs: Observation) -> Dict[str, Any]:
    payload = {"source_id": obs.source_id, "lat": obs.lat, "lng": obs.lng}
    payload.update(obs.attributes)
    return payload


def format_records(
    observations: Sequence[Observation],
    address_predicate: Optional[AddressPredicate] = None,
) -> List[FormattedRecord]:
    """
    Merge observations into FormattedRecords, in first-seen order.

    Observations with a blank source id are dropped, since they cannot be
    told apart from each other.

    Args:
        observations: Accepted observations, in row order.
        address_predicate: Optional check on the address attribute; failing
            observations are dropped before grouping.

    Returns:
        One FormattedRecord per distinct source id.
    """
    records: Dict[str, FormattedRecord] = {}
    rejected = 0
    unidentified = 0

    for obs in observations:
        if not obs.source_id:
            unidentified += 1
            logger.debug(f"Row {obs.row_index}: no source id, dropped")
            continue

        if address_predicate is not None and not address_predicate(obs.attributes.get("address", "")):
            rejected += 1
            logger.debug(f"Row {obs.row_index}: address outside region, dropped")
            continue

        record = records.get(obs.source_id)
        if record is None:
            record = FormattedRecord(source_id=obs.source_id, parking=_parking_payload(obs))
            records[obs.source_id] = record
        record.add_space(obs.space_attributes)

    if unidentified:
        logger.warning(f"Dropped {unidentified} parkings without a source id")
    if rejected:
        logger.warning(f"Dropped {rejected} parkings whose address failed the region check")
    logger.info(
        f"Formatted {len(records)} parkings with "
        f"{sum(len(r.spaces) for r in records.values())} spaces"
    )
    return list(records.values())


def records_to_rows(records: Sequence[FormattedRecord]) -> List[List[Any]]:
    """
    Flatten records into sheet rows, one row per space, header first.

    Columns are the parking fields, then ``space_name`` and ``visible``, then
    the space fields. Returns an empty list when there are no records.
    """
    if not records:
        return []

    parking_keys: List[str] = []
    space_keys: List[str] = []
    for record in records:
        for key in record.parking:
            if key not in parking_keys:
                parking_keys.append(key)
        for space in record.spaces:
            for key in space.attributes:
                if key not in space_keys:
                    space_keys.append(key)

    rows: List[List[Any]] = [parking_keys + ["space_name", "visible"] + space_keys]
    for record in records:
        for space in record.spaces:
            rows.append(
                [record.parking.get(k, "") for k in parking_keys]
                + [space.name, 1 if space.visible else 0]
                + [space.attributes.get(k, "") for k in space_keys]
            )
    return rows
