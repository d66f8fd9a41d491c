# libs/refresh/service.py
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Dict, Iterable, List, Optional, Sequence

import structlog

from libs.cache.freshness import CacheEntry, FreshnessCache
from libs.contracts.errors import KeyNotTracked
from libs.contracts.records import DataKind, DataRecord, normalize_key, utcnow
from libs.refresh.on_demand import OnDemandTrigger
from libs.refresh.orchestrator import FetchOrchestrator, RunResult
from libs.runtime.cancel import CancelToken


@dataclass(frozen=True)
class Freshness:
    entry: CacheEntry
    stale: bool
    age: timedelta


class RefreshService:
    """
    Per-kind facade used by the HTTP layer and the worker.

    - reads/refreshes for keys outside the configured set raise KeyNotTracked and never fetch
    - get_latest goes through the on-demand trigger (read-through on miss)
    - refresh is synchronous: it returns after the run resolved
    """

    def __init__(
        self,
        kind: DataKind,
        keys: Sequence[str],
        *,
        orchestrator: FetchOrchestrator,
        trigger: OnDemandTrigger,
        stale_after: timedelta,
        now: Callable[[], datetime] = utcnow,
        logger=None,
    ) -> None:
        self.kind = DataKind(kind)
        self.orchestrator = orchestrator
        self.trigger = trigger
        self.stale_after = stale_after
        self.now = now
        self.log = (logger or structlog.get_logger("refresh.service")).bind(kind=self.kind.value)
        # normalized -> configured spelling
        self._tracked: Dict[str, str] = {}
        for k in keys:
            self._tracked.setdefault(normalize_key(k), k.strip())

    @property
    def cache(self) -> FreshnessCache:
        return self.orchestrator.caches[self.kind]

    @property
    def tracked_keys(self) -> List[str]:
        return list(self._tracked.values())

    def is_tracked(self, key: str) -> bool:
        return normalize_key(key) in self._tracked

    def canonical(self, key: str) -> str:
        try:
            return self._tracked[normalize_key(key)]
        except KeyError:
            raise KeyNotTracked(key, self.kind.value) from None

    # ---- reads ----
    def get_latest(self, key: str, *, cancel: Optional[CancelToken] = None) -> Optional[DataRecord]:
        """None means the key is tracked but no data could be fetched."""
        canonical = self.canonical(key)
        return self.trigger.read_or_fetch(canonical, self.kind, cancel=cancel)

    def get_all(self, *, cancel: Optional[CancelToken] = None) -> List[DataRecord]:
        if len(self.cache) == 0 and self._tracked:
            # 缓存还没有任何数据：先同步抓一次全量
            self.log.info("cache.empty_fetching_all")
            self.orchestrator.run(self.kind, self.tracked_keys, cancel=cancel, trigger="on_demand")
        return [e.record for e in self._ordered(self.cache.entries())]

    def freshness(self, key: str) -> Optional[Freshness]:
        entry = self.cache.get(self.canonical(key))
        if entry is None:
            return None
        now = self.now()
        return Freshness(
            entry=entry,
            stale=self.cache.is_stale(entry, now, self.stale_after),
            age=now - entry.last_updated,
        )

    # ---- refresh ----
    def refresh(self, keys: Optional[Iterable[str]] = None, *, cancel: Optional[CancelToken] = None) -> RunResult:
        """keys=None refreshes every tracked key; an empty list is a no-op."""
        if keys is None:
            targets = self.tracked_keys
        else:
            targets = [self.canonical(k) for k in keys]
        self.log.info("refresh.requested", keys=targets)
        return self.orchestrator.run(self.kind, targets, cancel=cancel, trigger="manual")

    def refresh_one(self, key: str, *, cancel: Optional[CancelToken] = None) -> RunResult:
        return self.refresh([key], cancel=cancel)

    # ---------- helpers ----------

    def _ordered(self, entries: List[CacheEntry]) -> List[CacheEntry]:
        order = {k: i for i, k in enumerate(self._tracked)}
        return sorted(entries, key=lambda e: (order.get(normalize_key(e.key), len(order)), normalize_key(e.key)))
