# apps/api/deps.py
from __future__ import annotations
from functools import lru_cache

from fastapi import Depends

from libs.config.settings import JobKeySettings
from libs.contracts.records import DataKind
from libs.jobs.ledger import JobStatusLedger
from libs.refresh.runtime import RefreshRuntime, build_runtime
from libs.refresh.service import RefreshService
from libs.runtime.cancel import CancelToken


@lru_cache
def get_runtime() -> RefreshRuntime:
    """
    Wire up the refresh core once per process (DI):
      - settings : env (STOCK_*, WEATHER_*, APP_*)
      - fetchers : by registry (default simulated)
      - cache/ledger/orchestrator shared by every request and both schedulers
    """
    return build_runtime()


@lru_cache
def get_job_keys() -> JobKeySettings:
    return JobKeySettings()


def get_stock_service(rt: RefreshRuntime = Depends(get_runtime)) -> RefreshService:
    return rt.service(DataKind.STOCK)


def get_weather_service(rt: RefreshRuntime = Depends(get_runtime)) -> RefreshService:
    return rt.service(DataKind.WEATHER)


def get_ledger(rt: RefreshRuntime = Depends(get_runtime)) -> JobStatusLedger:
    return rt.ledger


def request_cancel_token(rt: RefreshRuntime = Depends(get_runtime)) -> CancelToken:
    """On-demand fetches inherit the request budget, not the scheduler lifecycle."""
    return CancelToken.with_timeout(rt.app.REQUEST_TIMEOUT_SEC)
