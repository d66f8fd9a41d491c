# libs/jobs/ledger.py
from __future__ import annotations

import threading
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Mapping, Optional

import structlog
from pydantic import ValidationError

from libs.contracts.job_models import JobKind, JobState, JobStatus, new_job_id
from libs.contracts.records import utcnow

DEFAULT_RETENTION = timedelta(hours=24)


class JobStatusLedger:
    """
    In-process job-status store keyed by job id.

    - begin/complete/fail are the only writers; each swaps in a new immutable JobStatus
    - unknown job ids on complete/fail are logged, never raised
    - entries expire `retention` after start_time; expired ids read as absent
    """

    def __init__(
        self,
        *,
        retention: timedelta = DEFAULT_RETENTION,
        clock: Callable[[], datetime] = utcnow,
        logger=None,
    ) -> None:
        self.retention = retention
        self.clock = clock
        self.log = logger or structlog.get_logger("ledger")
        self._by_id: Dict[str, JobStatus] = {}
        self._lock = threading.Lock()

    # ---- writes ----
    def begin(self, kind: JobKind, metadata: Optional[Mapping[str, object]] = None) -> str:
        now = self.clock()
        with self._lock:
            job_id = new_job_id()
            while job_id in self._by_id:                 # 理论上不会碰撞
                job_id = new_job_id()
            self._by_id[job_id] = JobStatus(
                job_id=job_id,
                kind=JobKind(kind),
                state=JobState.RUNNING,
                start_time=now,
                metadata=dict(metadata or {}),
            )
        self.log.info("ledger.begin", job_id=job_id, kind=str(kind))
        return job_id

    def complete(self, job_id: str, result_metadata: Optional[Mapping[str, object]] = None) -> Optional[JobStatus]:
        return self._finish(job_id, lambda s, at: s.completed(at, result_metadata))

    def fail(
        self,
        job_id: str,
        error_message: str,
        extra_metadata: Optional[Mapping[str, object]] = None,
    ) -> Optional[JobStatus]:
        return self._finish(job_id, lambda s, at: s.failed(at, error_message, extra_metadata))

    def _finish(self, job_id: str, transition) -> Optional[JobStatus]:
        now = self.clock()
        with self._lock:
            self._evict_expired(now)
            current = self._by_id.get(job_id)
            if current is None:
                miss = True
            elif current.state.terminal:
                miss = False
            else:
                # 墙钟回拨（NTP 校正）时 end_time 不早于 start_time
                at = max(now, current.start_time)
                try:
                    updated = transition(current, at)
                except ValidationError as exc:
                    self.log.error("ledger.transition_invalid", job_id=job_id, error=str(exc))
                    updated = current.failed(at, "invalid job status transition")
                self._by_id[job_id] = updated
                self.log.info("ledger.update", job_id=job_id, state=updated.state.value)
                return updated
        if miss:
            self.log.warning("ledger.miss", job_id=job_id)
        else:
            self.log.warning("ledger.terminal_rewrite", job_id=job_id, state=current.state.value)
        return None

    # ---- reads ----
    def get(self, job_id: str) -> Optional[JobStatus]:
        now = self.clock()
        with self._lock:
            status = self._by_id.get(job_id)
            if status is not None and self._expired(status, now):
                del self._by_id[job_id]
                return None
            return status

    def recent(self, kind: Optional[JobKind] = None, limit: int = 20) -> List[JobStatus]:
        """Most recent first."""
        now = self.clock()
        with self._lock:
            self._evict_expired(now)
            items = [s for s in self._by_id.values() if kind is None or s.kind == kind]
        items.sort(key=lambda s: s.start_time, reverse=True)
        return items[: max(0, limit)]

    def sweep(self) -> int:
        """Drop expired entries; returns how many were removed."""
        with self._lock:
            return self._evict_expired(self.clock())

    def __len__(self) -> int:
        with self._lock:
            return len(self._by_id)

    # ---- helpers ----
    def _expired(self, status: JobStatus, now: datetime) -> bool:
        return now - status.start_time > self.retention

    def _evict_expired(self, now: datetime) -> int:
        stale = [jid for jid, s in self._by_id.items() if self._expired(s, now)]
        for jid in stale:
            del self._by_id[jid]
        return len(stale)
