# libs/cache/freshness.py
from __future__ import annotations

import threading
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, List, Optional

from libs.contracts.records import DataRecord, normalize_key


@dataclass(frozen=True, slots=True)
class CacheEntry:
    record: DataRecord
    last_updated: datetime

    @property
    def key(self) -> str:
        return self.record.key


class FreshnessCache:
    """
    Latest record per tracked key.

    - one entry per key (case-insensitive key space); put replaces it wholesale
    - entries are immutable, so a reader sees the old or the new one, never a mix
    - one lock for all keys: puts to different keys serialize, but only for a single
      dict assignment (no I/O or fetch happens under it), so they never wait on each other's fetch
    """

    def __init__(self) -> None:
        self._entries: Dict[str, CacheEntry] = {}
        self._lock = threading.Lock()

    # ---- writes ----
    def put(self, key: str, record: DataRecord) -> CacheEntry:
        entry = CacheEntry(record=record, last_updated=record.captured_at)
        k = normalize_key(key)
        with self._lock:
            self._entries[k] = entry
        return entry

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    # ---- reads ----
    def get(self, key: str) -> Optional[CacheEntry]:
        k = normalize_key(key)
        with self._lock:
            return self._entries.get(k)

    def entries(self) -> List[CacheEntry]:
        with self._lock:
            return list(self._entries.values())

    def __contains__(self, key: object) -> bool:
        return isinstance(key, str) and self.get(key) is not None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    @staticmethod
    def is_stale(entry: CacheEntry, now: datetime, threshold: timedelta) -> bool:
        """Advisory: strictly older than threshold. Exactly threshold is still fresh."""
        return now - entry.last_updated > threshold
