# libs/contracts/records.py
from __future__ import annotations

from abc import abstractmethod
from datetime import datetime, timezone
from enum import StrEnum
from typing import Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


class DataKind(StrEnum):
    STOCK = "stock"
    WEATHER = "weather"


def normalize_key(key: str) -> str:
    """TrackedKey 比较不区分大小写：去空白 + casefold"""
    return str(key).strip().casefold()


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


# ---- DataRecord：一次成功抓取的不可变快照 ----
class DataRecord(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid", str_strip_whitespace=True)
    captured_at: datetime = Field(default_factory=utcnow)   # 抓取时间（UTC）

    @field_validator("captured_at", mode="after")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("captured_at must be timezone-aware UTC")
        if v.utcoffset().total_seconds() != 0:
            raise ValueError("captured_at must be UTC")
        return v

    @property
    @abstractmethod
    def key(self) -> str:
        """Tracked key this record belongs to (symbol or location)."""


class StockQuote(DataRecord):
    symbol: str = Field(min_length=1)                # 股票代码（统一大写）
    price: float = Field(ge=0)
    change: float = 0.0                              # 相对前收盘的变化
    change_percent: float = 0.0
    volume: int = Field(0, ge=0)

    @field_validator("symbol", mode="before")
    @classmethod
    def _norm_symbol(cls, v: str) -> str:
        s = str(v).strip().upper()
        if not s:
            raise ValueError("symbol must be non-empty")
        return s

    @property
    def key(self) -> str:
        return self.symbol


class WeatherReading(DataRecord):
    location: str = Field(min_length=1)
    temperature: float                               # 摄氏度
    humidity: float = Field(ge=0, le=100)
    condition: str = ""

    @property
    def key(self) -> str:
        return self.location


AnyRecord = Union[StockQuote, WeatherReading]

RECORD_TYPES = {
    DataKind.STOCK: StockQuote,
    DataKind.WEATHER: WeatherReading,
}
