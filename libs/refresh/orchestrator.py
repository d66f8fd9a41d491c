# libs/refresh/orchestrator.py
from __future__ import annotations

from dataclasses import dataclass, field
from time import perf_counter
from typing import Dict, List, Mapping, Optional, Sequence

import structlog

from libs.adapters.sink import RecordSink
from libs.cache.freshness import FreshnessCache
from libs.contracts.errors import FetchCancelled
from libs.contracts.job_models import JobKind, JobState
from libs.contracts.records import DataKind, normalize_key
from libs.jobs.ledger import JobStatusLedger
from libs.refresh.policies import RefreshPolicy
from libs.runtime.cancel import CancelToken


@dataclass(frozen=True)
class RunResult:
    """
    What one orchestrator run did.
    job_id is None only for the empty-key no-op (no ledger entry is written).
    """

    job_id: Optional[str]
    kind: DataKind
    state: Optional[JobState]
    records_processed: int = 0
    failed_keys: List[str] = field(default_factory=list)
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.state is JobState.COMPLETED

    @property
    def noop(self) -> bool:
        return self.job_id is None


class FetchOrchestrator:
    """
    编排服务：一次 fetch run
      - ledger.begin 生成 job_id（Running）
      - 按 kind 的 policy 抓取（批量原子 / 逐 key 容错）
      - 成功的记录写入 cache，再整批交给 sink（可选）
      - ledger.complete / ledger.fail 收尾
    FetchError never leaves run(); the ledger is the only place a failure is visible.
    """

    def __init__(
        self,
        *,
        caches: Mapping[DataKind, FreshnessCache],
        policies: Mapping[DataKind, RefreshPolicy],
        ledger: JobStatusLedger,
        sink: Optional[RecordSink] = None,
        logger=None,
        clock=perf_counter,
    ) -> None:
        self.caches = dict(caches)
        self.policies = dict(policies)
        self.ledger = ledger
        self.sink = sink
        self.log = logger or structlog.get_logger("refresh.orchestrator")
        self.clock = clock

    # Perf: O(keys); 主要耗时在 fetch（外部 I/O）
    def run(
        self,
        kind: DataKind,
        keys: Sequence[str],
        *,
        cancel: Optional[CancelToken] = None,
        trigger: str = "manual",
    ) -> RunResult:
        kind = DataKind(kind)
        keys = _dedupe_keys(keys)
        if not keys:
            # 空 key 列表：不抓取、不写 ledger
            return RunResult(job_id=None, kind=kind, state=None)

        policy = self.policies[kind]
        cache = self.caches[kind]
        t0 = self.clock()

        # ---- 1) ledger.begin ----
        job_id = self.ledger.begin(
            JobKind.for_data(kind),
            {
                "keys": ",".join(keys),
                "source": getattr(policy.fetcher, "source_name", "unknown"),
                "trigger": trigger,
            },
        )
        log = self.log.bind(job_id=job_id, kind=kind.value, trigger=trigger)
        log.info("refresh.start", keys=keys)

        # ---- 2) fetch via policy ----
        try:
            outcome = policy.fetch(keys, cancel)
        except FetchCancelled:
            self.ledger.fail(job_id, "cancelled", {"cancelled": "true"})
            log.info("refresh.cancelled", duration_ms=self._elapsed_ms(t0))
            raise
        except Exception as exc:
            # 非 FetchError 的异常属于程序错误：记入 ledger 后继续上抛
            self.ledger.fail(job_id, f"{type(exc).__name__}: {exc}")
            log.exception("refresh.crashed", duration_ms=self._elapsed_ms(t0))
            raise

        # ---- 3) total failure ----
        if not outcome.ok:
            self.ledger.fail(job_id, outcome.error or "fetch failed", self._failure_meta(outcome.failures))
            log.warning(
                "refresh.failed",
                error=outcome.error,
                failed_keys=sorted(outcome.failures),
                duration_ms=self._elapsed_ms(t0),
            )
            return RunResult(
                job_id=job_id,
                kind=kind,
                state=JobState.FAILED,
                failed_keys=sorted(outcome.failures),
                error=outcome.error,
            )

        # ---- 4) cache（last writer wins）----
        for record in outcome.records:
            cache.put(record.key, record)

        result_meta: Dict[str, object] = {"recordsProcessed": len(outcome.records)}
        result_meta.update(self._failure_meta(outcome.failures))

        # ---- 5) sink：与 cache 独立，失败不影响本次 run 的结论 ----
        if self.sink is not None and outcome.records:
            try:
                self.sink.append(kind, outcome.records)
            except Exception as exc:
                result_meta["sinkError"] = f"{type(exc).__name__}: {exc}"
                log.error("refresh.sink_error", error=str(exc), location=getattr(self.sink, "location", "?"))

        self.ledger.complete(job_id, result_meta)
        log.info(
            "refresh.done",
            records=len(outcome.records),
            failed_keys=sorted(outcome.failures),
            partial=outcome.partial,
            duration_ms=self._elapsed_ms(t0),
        )
        return RunResult(
            job_id=job_id,
            kind=kind,
            state=JobState.COMPLETED,
            records_processed=len(outcome.records),
            failed_keys=sorted(outcome.failures),
        )

    # ---------- helpers ----------

    def _elapsed_ms(self, t0: float) -> int:
        return int((self.clock() - t0) * 1000)

    @staticmethod
    def _failure_meta(failures: Mapping[str, str]) -> Dict[str, object]:
        return {"failedKeys": ",".join(sorted(failures))} if failures else {}


def _dedupe_keys(keys: Sequence[str]) -> List[str]:
    """Strip blanks and drop case-insensitive duplicates; first spelling wins, order kept."""
    out: List[str] = []
    seen = set()
    for k in keys:
        s = k.strip() if k else ""
        if s and normalize_key(s) not in seen:
            seen.add(normalize_key(s))
            out.append(s)
    return out
