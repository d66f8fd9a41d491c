# libs/refresh/runtime.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from libs.adapters.sink import InMemoryRecordSink, RecordSink
from libs.cache.freshness import FreshnessCache
from libs.config.settings import AppSettings, LoaderSettings, StockLoaderSettings, WeatherLoaderSettings
from libs.connectors.base import FetcherPort
from libs.connectors.registry import get_fetcher
from libs.contracts.records import DataKind
from libs.jobs.ledger import JobStatusLedger
from libs.refresh.on_demand import OnDemandTrigger
from libs.refresh.orchestrator import FetchOrchestrator
from libs.refresh.policies import policy_for
from libs.refresh.scheduler import Scheduler
from libs.refresh.service import RefreshService
from libs.runtime.cancel import CancelToken


def _select_sink(app: AppSettings) -> Optional[RecordSink]:
    """Very small factory: choose the record sink by APP_SINK."""
    if app.SINK == "none":
        return None
    if app.SINK == "memory":
        return InMemoryRecordSink()
    if app.SINK == "parquet":
        from libs.adapters.sink_parquet import ParquetRecordSink
        return ParquetRecordSink(app.SINK_DIR)
    raise ValueError(f"Unknown sink: {app.SINK}")


@dataclass
class RefreshRuntime:
    """Everything constructed once per process and shared by reference."""

    app: AppSettings
    loaders: Dict[DataKind, LoaderSettings]
    ledger: JobStatusLedger
    orchestrator: FetchOrchestrator
    trigger: OnDemandTrigger
    services: Dict[DataKind, RefreshService]
    shutdown: CancelToken = field(default_factory=CancelToken)
    schedulers: Dict[DataKind, Scheduler] = field(default_factory=dict)

    def service(self, kind: DataKind) -> RefreshService:
        return self.services[DataKind(kind)]

    def start_schedulers(self, on_fatal: Optional[Callable[[BaseException], None]] = None) -> List[Scheduler]:
        """Start one scheduler per configured kind; on_fatal runs in the dying scheduler thread."""
        log = structlog.get_logger("refresh.runtime")
        for kind, loader in self.loaders.items():
            if kind in self.schedulers:
                continue
            sch = Scheduler(
                self.orchestrator,
                kind,
                loader.keys,
                loader.POLLING_INTERVAL_SECONDS,
                cancel=self.shutdown,
                on_fatal=on_fatal,
            )
            sch.start()
            self.schedulers[kind] = sch
        log.info("runtime.schedulers_started", kinds=[k.value for k in self.schedulers])
        return list(self.schedulers.values())

    def stop(self, timeout: Optional[float] = 10.0) -> None:
        self.shutdown.cancel()
        for sch in self.schedulers.values():
            sch.stop(timeout)


def build_runtime(
    *,
    app: Optional[AppSettings] = None,
    stock: Optional[StockLoaderSettings] = None,
    weather: Optional[WeatherLoaderSettings] = None,
    fetchers: Optional[Dict[DataKind, FetcherPort]] = None,
    sink: Optional[RecordSink] = None,
    ledger: Optional[JobStatusLedger] = None,
) -> RefreshRuntime:
    """
    Wire up the refresh core (DI):
      - settings : pydantic-settings from env unless passed in
      - fetchers : by registry (settings.SOURCE) unless passed in
      - one cache per kind, one shared ledger, one orchestrator
    """
    app = app or AppSettings()
    loaders: Dict[DataKind, LoaderSettings] = {
        DataKind.STOCK: stock or StockLoaderSettings(),
        DataKind.WEATHER: weather or WeatherLoaderSettings(),
    }
    fetchers = dict(fetchers or {})
    for kind, loader in loaders.items():
        fetchers.setdefault(kind, get_fetcher(kind, loader))

    ledger = ledger if ledger is not None else JobStatusLedger(retention=app.job_retention)
    orchestrator = FetchOrchestrator(
        caches={kind: FreshnessCache() for kind in loaders},
        policies={kind: policy_for(kind, fetchers[kind]) for kind in loaders},
        ledger=ledger,
        sink=sink if sink is not None else _select_sink(app),
    )
    trigger = OnDemandTrigger(
        orchestrator,
        stale_after={kind: loader.stale_after for kind, loader in loaders.items()},
    )
    services = {
        kind: RefreshService(
            kind,
            loader.keys,
            orchestrator=orchestrator,
            trigger=trigger,
            stale_after=loader.stale_after,
        )
        for kind, loader in loaders.items()
    }
    return RefreshRuntime(
        app=app,
        loaders=loaders,
        ledger=ledger,
        orchestrator=orchestrator,
        trigger=trigger,
        services=services,
    )
