"""
On-disk snapshots of catalog query results.

A snapshot is identified by the database it came from, the SQL text and the
bound parameters, so switching DATABASE_URL or editing the query never
serves stale rows from another source. Snapshots live as JSON files under
.cache/<namespace>/ and expire after a TTL.
"""

from __future__ import annotations

import hashlib
import json
import logging
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from config import CACHE_DIR

logger = logging.getLogger(__name__)


def snapshot_key(source: str, query: str, params: Dict[str, Any]) -> str:
    """
    Stable key for one query run against one database.

    Args:
        source: Database URL with the password hidden.
        query: SQL text.
        params: Bound parameters.
    """
    payload = json.dumps(
        {"source": source, "query": " ".join(query.split()), "params": params},
        sort_keys=True,
        default=str,
    )
    return hashlib.sha256(payload.encode()).hexdigest()[:24]


class SnapshotCache:
    """JSON snapshots of query rows keyed by :func:`snapshot_key`."""

    def __init__(self, namespace: str, cache_dir: Path = CACHE_DIR, ttl_hours: float = 0):
        """
        Args:
            namespace: Subdirectory under ``cache_dir`` (e.g. 'catalog').
            cache_dir: Root cache directory.
            ttl_hours: Snapshot lifetime in hours. 0 keeps snapshots forever.
        """
        self.directory = Path(cache_dir) / namespace
        self.directory.mkdir(parents=True, exist_ok=True)
        self.ttl_seconds = ttl_hours * 3600 if ttl_hours > 0 else 0

    def path_for(self, key: str) -> Path:
        return self.directory / f"{key}.json"

    def load(self, key: str) -> Optional[List[Dict[str, Any]]]:
        """Return the stored rows, or None when missing, expired or unreadable."""
        path = self.path_for(key)
        if not path.exists():
            return None

        try:
            snapshot = json.loads(path.read_text(encoding="utf-8"))
        except json.JSONDecodeError as e:
            logger.warning(f"Discarding unreadable snapshot {path.name}: {e}")
            path.unlink(missing_ok=True)
            return None

        age = time.time() - snapshot.get("taken_at", 0)
        if self.ttl_seconds and age > self.ttl_seconds:
            logger.debug(f"Snapshot {key} is {age / 3600:.1f}h old, expired")
            path.unlink(missing_ok=True)
            return None

        logger.debug(f"Snapshot hit {key} (source {snapshot.get('source')})")
        return snapshot.get("rows")

    def store(self, key: str, rows: List[Dict[str, Any]], source: str = "") -> Path:
        """Write rows as a snapshot; values JSON cannot encode become strings."""
        path = self.path_for(key)
        snapshot = {"taken_at": time.time(), "source": source, "rows": rows}
        path.write_text(json.dumps(snapshot, ensure_ascii=False, default=str), encoding="utf-8")
        logger.debug(f"Stored {len(rows)} rows in snapshot {key}")
        return path
