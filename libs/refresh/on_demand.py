# libs/refresh/on_demand.py
from __future__ import annotations

from datetime import datetime, timedelta
from typing import Callable, Mapping, Optional

import structlog

from libs.cache.freshness import FreshnessCache
from libs.contracts.records import DataKind, DataRecord, utcnow
from libs.refresh.orchestrator import FetchOrchestrator
from libs.runtime.cancel import CancelToken


class OnDemandTrigger:
    """
    Read-through path: cache hit returns immediately; a miss drives one run for that key.

    Concurrent misses for the same key may each fetch (no single-flight);
    the cache stays consistent because every put swaps a whole entry.
    """

    def __init__(
        self,
        orchestrator: FetchOrchestrator,
        *,
        stale_after: Optional[Mapping[DataKind, timedelta]] = None,
        now: Callable[[], datetime] = utcnow,
        logger=None,
    ) -> None:
        self.orchestrator = orchestrator
        self.stale_after = dict(stale_after or {})
        self.now = now
        self.log = logger or structlog.get_logger("refresh.on_demand")

    def _cache(self, kind: DataKind) -> FreshnessCache:
        return self.orchestrator.caches[kind]

    def read_or_fetch(self, key: str, kind: DataKind, *, cancel: Optional[CancelToken] = None) -> Optional[DataRecord]:
        kind = DataKind(kind)
        cache = self._cache(kind)

        entry = cache.get(key)
        if entry is not None:
            threshold = self.stale_after.get(kind)
            if threshold is not None and cache.is_stale(entry, self.now(), threshold):
                # 仅提示，不阻塞读取
                self.log.info("cache.stale", kind=kind.value, key=key, last_updated=entry.last_updated.isoformat())
            return entry.record

        self.log.info("cache.miss", kind=kind.value, key=key)
        self.orchestrator.run(kind, [key], cancel=cancel, trigger="on_demand")

        entry = cache.get(key)
        if entry is None:
            self.log.warning("cache.miss_after_fetch", kind=kind.value, key=key)
            return None
        return entry.record
