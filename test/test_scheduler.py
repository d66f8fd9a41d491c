# test/test_scheduler.py
import threading

import pytest

from libs.contracts.job_models import JobState
from libs.contracts.records import DataKind
from libs.refresh.orchestrator import RunResult
from libs.refresh.scheduler import Scheduler, SchedulerState

from conftest import FakeFetcher, build_core, wait_for


def test_initial_run_happens_immediately():
    orch, ledger = build_core()
    sch = Scheduler(orch, DataKind.STOCK, ["AAA", "BBB"], interval_sec=60)
    sch.start()
    try:
        assert wait_for(lambda: sch.cycles >= 1)
        assert wait_for(lambda: orch.caches[DataKind.STOCK].get("BBB") is not None)
    finally:
        sch.stop(timeout=2)

    assert sch.state is SchedulerState.STOPPED
    assert not sch.alive
    assert sch.cycles == 1
    assert ledger.recent()[0].metadata["trigger"] == "scheduled"


def test_batch_failure_is_recorded_and_loop_continues():
    fetcher = FakeFetcher(DataKind.STOCK, batch_error="provider down")
    orch, ledger = build_core(stock_fetcher=fetcher)
    sch = Scheduler(orch, DataKind.STOCK, ["AAA", "BBB"], interval_sec=0.02)
    sch.start()
    try:
        assert wait_for(lambda: sch.cycles >= 3)
    finally:
        sch.stop(timeout=2)

    assert sch.failed_cycles >= 3
    assert all(j.state is JobState.FAILED for j in ledger.recent(limit=100))
    assert orch.caches[DataKind.STOCK].get("AAA") is None
    assert sch.fatal_error is None


class FlakyOrchestrator:
    """Raises on the first cycle, succeeds afterwards."""

    def __init__(self):
        self.calls = 0

    def run(self, kind, keys, *, cancel=None, trigger="manual"):
        self.calls += 1
        if self.calls == 1:
            raise RuntimeError("transient bug in cycle")
        return RunResult(job_id=f"job-{self.calls}", kind=kind, state=JobState.COMPLETED, records_processed=len(keys))


def test_exception_in_cycle_does_not_kill_loop():
    orch = FlakyOrchestrator()
    sch = Scheduler(orch, DataKind.WEATHER, ["X"], interval_sec=0.02)
    sch.start()
    try:
        assert wait_for(lambda: orch.calls >= 3)
    finally:
        sch.stop(timeout=2)

    assert sch.failed_cycles == 1
    assert sch.last_result.ok
    assert sch.state is SchedulerState.STOPPED


def test_cancel_interrupts_in_flight_fetch_cleanly():
    fetcher = FakeFetcher(DataKind.STOCK, block_until_cancelled=True)
    orch, ledger = build_core(stock_fetcher=fetcher)
    sch = Scheduler(orch, DataKind.STOCK, ["AAA"], interval_sec=60)
    sch.start()
    assert fetcher.started.wait(2)

    sch.stop(timeout=2)

    assert not sch.alive
    assert sch.state is SchedulerState.STOPPED
    assert sch.fatal_error is None
    [job] = ledger.recent()
    assert job.state is JobState.FAILED
    assert job.error_message == "cancelled"


def test_cancel_interrupts_interval_wait():
    orch, _ = build_core()
    sch = Scheduler(orch, DataKind.STOCK, ["AAA"], interval_sec=3600)
    sch.start()
    assert wait_for(lambda: sch.cycles == 1)

    sch.stop(timeout=2)
    assert not sch.alive
    assert sch.state is SchedulerState.STOPPED


def test_no_keys_means_no_runs(stock_fetcher, core):
    orch, ledger = core
    sch = Scheduler(orch, DataKind.STOCK, [], interval_sec=0.01)
    sch.start()
    threading.Event().wait(0.1)
    sch.stop(timeout=2)

    assert stock_fetcher.calls == []
    assert len(ledger) == 0
    assert sch.cycles == 0


class FatalOrchestrator:
    def run(self, kind, keys, *, cancel=None, trigger="manual"):
        raise SystemExit(3)


def test_non_exception_failure_terminates_loop():
    sch = Scheduler(FatalOrchestrator(), DataKind.STOCK, ["AAA"], interval_sec=0.01)

    with pytest.raises(SystemExit):
        sch.run_forever()

    assert sch.state is SchedulerState.STOPPED


def test_interval_must_be_positive(core):
    orch, _ = core
    with pytest.raises(ValueError):
        Scheduler(orch, DataKind.STOCK, ["AAA"], interval_sec=0)


def test_fatal_error_in_thread_is_handed_to_owner():
    seen = []
    sch = Scheduler(FatalOrchestrator(), DataKind.STOCK, ["AAA"], interval_sec=0.01, on_fatal=seen.append)
    sch.start()

    assert wait_for(lambda: not sch.alive)
    assert len(seen) == 1 and isinstance(seen[0], SystemExit)
    assert sch.fatal_error is seen[0]
    assert sch.state is SchedulerState.STOPPED
