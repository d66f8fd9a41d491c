# test/test_ledger.py
from datetime import timedelta

import pytest
from pydantic import ValidationError

from libs.contracts.job_models import JobKind, JobState, JobStatus
from libs.jobs.ledger import JobStatusLedger

from conftest import T0


class FakeClock:
    def __init__(self, start):
        self.now = start

    def __call__(self):
        return self.now

    def advance(self, **kw):
        self.now += timedelta(**kw)


def test_begin_then_get_is_running():
    clock = FakeClock(T0)
    ledger = JobStatusLedger(clock=clock)
    job_id = ledger.begin(JobKind.STOCK_REFRESH, {"keys": "AAA,BBB"})

    job = ledger.get(job_id)
    assert job.state is JobState.RUNNING
    assert job.start_time == T0
    assert job.end_time is None
    assert job.error_message is None
    assert job.metadata == {"keys": "AAA,BBB"}


def test_job_ids_are_unique():
    ledger = JobStatusLedger()
    ids = {ledger.begin(JobKind.WEATHER_REFRESH) for _ in range(500)}
    assert len(ids) == 500
    assert all(len(i) == 32 for i in ids)


def test_complete_sets_end_time_and_merges_metadata():
    clock = FakeClock(T0)
    ledger = JobStatusLedger(clock=clock)
    job_id = ledger.begin(JobKind.STOCK_REFRESH, {"keys": "AAPL"})
    clock.advance(seconds=3)

    ledger.complete(job_id, {"recordsProcessed": 1})

    job = ledger.get(job_id)
    assert job.state is JobState.COMPLETED
    assert job.end_time == T0 + timedelta(seconds=3)
    assert job.error_message is None
    assert job.metadata == {"keys": "AAPL", "recordsProcessed": "1"}


def test_fail_sets_error_message():
    ledger = JobStatusLedger()
    job_id = ledger.begin(JobKind.WEATHER_REFRESH)
    ledger.fail(job_id, "provider down")

    job = ledger.get(job_id)
    assert job.state is JobState.FAILED
    assert job.error_message == "provider down"
    assert job.end_time is not None


def test_terminal_status_never_changes():
    ledger = JobStatusLedger()
    job_id = ledger.begin(JobKind.STOCK_REFRESH)
    ledger.fail(job_id, "boom")

    assert ledger.complete(job_id, {"recordsProcessed": 5}) is None
    assert ledger.fail(job_id, "again") is None

    job = ledger.get(job_id)
    assert job.state is JobState.FAILED
    assert job.error_message == "boom"
    assert "recordsProcessed" not in job.metadata


def test_unknown_job_id_is_logged_not_raised():
    ledger = JobStatusLedger()
    assert ledger.complete("nope") is None
    assert ledger.fail("nope", "x") is None
    assert ledger.get("nope") is None


def test_entries_expire_after_retention():
    clock = FakeClock(T0)
    ledger = JobStatusLedger(clock=clock, retention=timedelta(hours=24))
    old = ledger.begin(JobKind.STOCK_REFRESH)
    clock.advance(hours=23)
    young = ledger.begin(JobKind.STOCK_REFRESH)

    clock.advance(hours=1)
    assert ledger.get(old) is not None          # exactly 24h: still retained

    clock.advance(seconds=1)
    assert ledger.get(old) is None
    assert ledger.get(young) is not None
    assert ledger.complete(old) is None          # expired reads as never existed

    clock.advance(hours=24)
    assert ledger.sweep() == 1
    assert len(ledger) == 0


def test_recent_lists_newest_first_and_filters_kind():
    clock = FakeClock(T0)
    ledger = JobStatusLedger(clock=clock)
    a = ledger.begin(JobKind.STOCK_REFRESH)
    clock.advance(seconds=1)
    b = ledger.begin(JobKind.WEATHER_REFRESH)
    clock.advance(seconds=1)
    c = ledger.begin(JobKind.STOCK_REFRESH)

    assert [j.job_id for j in ledger.recent()] == [c, b, a]
    assert [j.job_id for j in ledger.recent(JobKind.STOCK_REFRESH, limit=1)] == [c]


def test_job_status_model_rejects_inconsistent_lifecycle():
    with pytest.raises(ValidationError):
        JobStatus(kind=JobKind.STOCK_REFRESH, state=JobState.COMPLETED, start_time=T0)
    with pytest.raises(ValidationError):
        JobStatus(kind=JobKind.STOCK_REFRESH, state=JobState.RUNNING, start_time=T0, error_message="x")


class SteppingClock:
    """Returns the scripted times in order, then repeats the last one."""

    def __init__(self, *times):
        self.times = list(times)

    def __call__(self):
        return self.times.pop(0) if len(self.times) > 1 else self.times[0]


def test_wall_clock_stepping_back_still_closes_job():
    ledger = JobStatusLedger(clock=SteppingClock(T0, T0 - timedelta(seconds=1)))
    job_id = ledger.begin(JobKind.STOCK_REFRESH)

    updated = ledger.complete(job_id, {"recordsProcessed": 1})

    assert updated.state is JobState.COMPLETED
    assert updated.end_time == T0
    assert ledger.get(job_id).state is JobState.COMPLETED

