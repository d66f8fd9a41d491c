# Standalone runner so we can: python -m apps.scheduler.worker [--kind stock] [--once]
from __future__ import annotations

import argparse
import signal
from typing import List, Optional

import structlog

from libs.contracts.records import DataKind
from libs.observability.logging import setup_logging
from libs.refresh.runtime import RefreshRuntime, build_runtime


def run_once(rt: RefreshRuntime, kinds: List[DataKind]) -> int:
    """One orchestrator run per kind; exit code 1 if any run failed."""
    log = structlog.get_logger("worker")
    failed = 0
    for kind in kinds:
        result = rt.service(kind).refresh(None, cancel=rt.shutdown)
        status = rt.ledger.get(result.job_id) if result.job_id else None
        log.info(
            "worker.once",
            kind=kind.value,
            job_id=result.job_id,
            state=status.state.value if status else "NoOp",
            records=result.records_processed,
            error=status.error_message if status else None,
        )
        if result.job_id and not result.ok:
            failed += 1
    return 1 if failed else 0


def run_forever(rt: RefreshRuntime, kinds: List[DataKind]) -> int:
    log = structlog.get_logger("worker")

    def _on_signal(signum, _frame):
        log.info("worker.signal", signal=signal.Signals(signum).name)
        rt.shutdown.cancel()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)

    # 只启动选中的 kind
    rt.loaders = {k: v for k, v in rt.loaders.items() if k in kinds}

    def _on_fatal(_exc: BaseException) -> None:
        # 任一调度线程致命退出：整体停机
        rt.shutdown.cancel()

    schedulers = rt.start_schedulers(on_fatal=_on_fatal)
    while not rt.shutdown.wait(1.0):
        if not any(s.alive for s in schedulers):
            break
    rt.stop()
    fatal = [s for s in schedulers if s.fatal_error is not None]
    return 1 if fatal else 0


def main(argv: Optional[List[str]] = None) -> int:
    p = argparse.ArgumentParser(description="Periodic stock/weather refresh worker.")
    p.add_argument("--kind", choices=[k.value for k in DataKind], action="append",
                   help="Data kind to refresh (repeatable; default: all).")
    p.add_argument("--once", action="store_true", help="Run one refresh per kind and exit.")
    args = p.parse_args(argv)

    rt = build_runtime()
    setup_logging(rt.app.LOG_LEVEL, json_logs=rt.app.JSON_LOGS)
    kinds = [DataKind(k) for k in args.kind] if args.kind else list(DataKind)

    if args.once:
        return run_once(rt, kinds)
    return run_forever(rt, kinds)


if __name__ == "__main__":
    raise SystemExit(main())
