# libs/config/settings.py
from __future__ import annotations

from abc import abstractmethod
from datetime import timedelta
from typing import Annotated, List, Literal, Optional
from uuid import UUID

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, NoDecode, SettingsConfigDict


def _split_keys(v) -> List[str]:
    """Accept 'AAPL,MSFT' / ['AAPL','MSFT'] / None; drop blanks and case-insensitive duplicates."""
    if v is None:
        return []
    items = v.split(",") if isinstance(v, str) else list(v)
    out: List[str] = []
    seen: set[str] = set()
    for item in items:
        s = str(item).strip()
        if s and s.casefold() not in seen:
            seen.add(s.casefold())
            out.append(s)
    return out


class LoaderSettings(BaseSettings):
    """Shared per-kind fields: provider wiring + polling interval + staleness threshold."""

    SOURCE: Literal["simulated", "http", "yfinance"] = "simulated"
    API_BASE_URL: str = ""
    API_KEY: str = ""
    HTTP_TIMEOUT_SEC: float = 15.0
    POLLING_INTERVAL_SECONDS: float = Field(60, gt=0)
    STALE_AFTER_MINUTES: float = Field(30, gt=0)

    @property
    def stale_after(self) -> timedelta:
        return timedelta(minutes=self.STALE_AFTER_MINUTES)

    @property
    @abstractmethod
    def keys(self) -> List[str]:
        """Configured tracked keys for this kind."""

    def incomplete_reason(self) -> Optional[str]:
        """Why the loader would report degraded health, or None when healthy."""
        if self.SOURCE == "http" and (not self.API_KEY or not self.API_BASE_URL):
            return "provider API configuration is incomplete"
        if not self.keys:
            return "no keys configured"
        return None


class StockLoaderSettings(LoaderSettings):
    """
    环境变量示例：
      STOCK_SYMBOLS=AAPL,MSFT,GOOG
      STOCK_SOURCE=http
      STOCK_API_BASE_URL=https://quotes.example.com
      STOCK_API_KEY=xxxx
    """

    SYMBOLS: Annotated[List[str], NoDecode] = Field(default_factory=list)

    model_config = SettingsConfigDict(env_prefix="STOCK_", extra="ignore")

    @field_validator("SYMBOLS", mode="before")
    @classmethod
    def _norm_symbols(cls, v):
        return [s.upper() for s in _split_keys(v)]

    @property
    def keys(self) -> List[str]:
        return list(self.SYMBOLS)


class WeatherLoaderSettings(LoaderSettings):
    """
    环境变量示例：
      WEATHER_LOCATIONS=London,Paris
      WEATHER_POLLING_INTERVAL_SECONDS=900
    """

    LOCATIONS: Annotated[List[str], NoDecode] = Field(default_factory=list)
    POLLING_INTERVAL_SECONDS: float = Field(900, gt=0)          # 15 minutes
    STALE_AFTER_MINUTES: float = Field(60, gt=0)

    model_config = SettingsConfigDict(env_prefix="WEATHER_", extra="ignore")

    @field_validator("LOCATIONS", mode="before")
    @classmethod
    def _norm_locations(cls, v):
        return _split_keys(v)

    @property
    def keys(self) -> List[str]:
        return list(self.LOCATIONS)


class JobKeySettings(BaseSettings):
    """Keys that authorize POST /jobs/{kind}/trigger. Unset means triggers are rejected."""

    STOCK_LOADER_KEY: Optional[UUID] = None
    WEATHER_LOADER_KEY: Optional[UUID] = None

    model_config = SettingsConfigDict(env_prefix="JOBKEYS_", extra="ignore")


class AppSettings(BaseSettings):
    LOG_LEVEL: str = "INFO"
    JSON_LOGS: bool = True
    REQUEST_TIMEOUT_SEC: float = Field(30.0, gt=0)   # on-demand fetch budget per request
    RUN_SCHEDULERS: bool = True
    JOB_RETENTION_HOURS: float = Field(24, gt=0)
    SINK: Literal["none", "memory", "parquet"] = "none"
    SINK_DIR: str = "data/records"

    model_config = SettingsConfigDict(env_prefix="APP_", extra="ignore")

    @property
    def job_retention(self) -> timedelta:
        return timedelta(hours=self.JOB_RETENTION_HOURS)
