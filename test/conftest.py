# test/conftest.py
from __future__ import annotations

import threading
import time
from datetime import datetime, timezone
from typing import List, Optional, Sequence

import pytest

from libs.cache.freshness import FreshnessCache
from libs.config.settings import AppSettings, StockLoaderSettings, WeatherLoaderSettings
from libs.contracts.errors import FetchError
from libs.contracts.records import DataKind, StockQuote, WeatherReading, normalize_key
from libs.jobs.ledger import JobStatusLedger
from libs.refresh.on_demand import OnDemandTrigger
from libs.refresh.orchestrator import FetchOrchestrator
from libs.refresh.policies import policy_for
from libs.refresh.runtime import build_runtime
from libs.runtime.cancel import CancelToken

T0 = datetime(2024, 1, 2, 12, 0, tzinfo=timezone.utc)


def make_record(kind: DataKind, key: str, captured_at: Optional[datetime] = None):
    captured_at = captured_at or datetime.now(timezone.utc)
    if kind is DataKind.STOCK:
        return StockQuote(symbol=key, price=100.0, change=1.0, change_percent=1.0, volume=1000, captured_at=captured_at)
    return WeatherReading(location=key, temperature=20.5, humidity=50.0, condition="Sunny", captured_at=captured_at)


class FakeFetcher:
    """Scriptable FetcherPort: records calls, fails chosen keys, optionally blocks until cancelled."""

    source_name = "fake"

    def __init__(
        self,
        kind: DataKind,
        *,
        fail_keys: Sequence[str] = (),
        batch_error: Optional[str] = None,
        delay: float = 0.0,
        block_until_cancelled: bool = False,
    ) -> None:
        self.kind = kind
        self.fail_keys = {normalize_key(k) for k in fail_keys}
        self.batch_error = batch_error
        self.delay = delay
        self.block_until_cancelled = block_until_cancelled
        self.calls: List[List[str]] = []
        self.started = threading.Event()
        self._lock = threading.Lock()

    def fetch(self, keys: Sequence[str], cancel: Optional[CancelToken] = None):
        with self._lock:
            self.calls.append(list(keys))
        self.started.set()
        if self.block_until_cancelled:
            token = cancel or CancelToken()
            token.wait(10)
            token.raise_if_cancelled()
        if self.delay:
            time.sleep(self.delay)
        if self.batch_error:
            raise FetchError(self.batch_error, keys=keys)
        bad = [k for k in keys if normalize_key(k) in self.fail_keys]
        if bad:
            raise FetchError(f"provider error for {bad}", keys=bad)
        return [make_record(self.kind, k) for k in keys]


def build_core(stock_fetcher=None, weather_fetcher=None, *, sink=None, ledger=None):
    stock_fetcher = stock_fetcher or FakeFetcher(DataKind.STOCK)
    weather_fetcher = weather_fetcher or FakeFetcher(DataKind.WEATHER)
    ledger = ledger if ledger is not None else JobStatusLedger()
    orch = FetchOrchestrator(
        caches={DataKind.STOCK: FreshnessCache(), DataKind.WEATHER: FreshnessCache()},
        policies={
            DataKind.STOCK: policy_for(DataKind.STOCK, stock_fetcher),
            DataKind.WEATHER: policy_for(DataKind.WEATHER, weather_fetcher),
        },
        ledger=ledger,
        sink=sink,
    )
    return orch, ledger


@pytest.fixture
def stock_fetcher():
    return FakeFetcher(DataKind.STOCK)


@pytest.fixture
def weather_fetcher():
    return FakeFetcher(DataKind.WEATHER)


@pytest.fixture
def core(stock_fetcher, weather_fetcher):
    return build_core(stock_fetcher, weather_fetcher)


@pytest.fixture
def trigger(core):
    orch, _ = core
    return OnDemandTrigger(orch)


@pytest.fixture
def runtime(stock_fetcher, weather_fetcher):
    return build_runtime(
        app=AppSettings(RUN_SCHEDULERS=False, SINK="none"),
        stock=StockLoaderSettings(SYMBOLS=["AAPL", "MSFT"]),
        weather=WeatherLoaderSettings(LOCATIONS=["London", "Paris", "Oslo"]),
        fetchers={DataKind.STOCK: stock_fetcher, DataKind.WEATHER: weather_fetcher},
    )


def wait_for(predicate, timeout: float = 3.0, interval: float = 0.01) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(interval)
    return predicate()
