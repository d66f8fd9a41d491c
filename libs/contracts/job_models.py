# libs/contracts/job_models.py
# JobStatus · 一次 fetch run 的生命周期记录
from __future__ import annotations

from datetime import datetime, timezone
from enum import StrEnum
from typing import Dict, Mapping, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from libs.contracts.records import DataKind


class JobKind(StrEnum):
    STOCK_REFRESH = "StockRefresh"
    WEATHER_REFRESH = "WeatherRefresh"

    @classmethod
    def for_data(cls, kind: DataKind) -> "JobKind":
        return _KIND_MAP[DataKind(kind)]


_KIND_MAP = {
    DataKind.STOCK: JobKind.STOCK_REFRESH,
    DataKind.WEATHER: JobKind.WEATHER_REFRESH,
}


class JobState(StrEnum):
    RUNNING = "Running"
    COMPLETED = "Completed"
    FAILED = "Failed"

    @property
    def terminal(self) -> bool:
        return self is not JobState.RUNNING


def new_job_id() -> str:
    return uuid4().hex                                          # 128-bit 随机


class JobStatus(BaseModel):
    model_config = ConfigDict(frozen=True, extra="forbid")
    job_id: str = Field(default_factory=new_job_id)
    kind: JobKind
    state: JobState = JobState.RUNNING
    start_time: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    end_time: Optional[datetime] = None                         # 仅在终态时设置
    error_message: Optional[str] = None                         # 仅在 Failed 时设置
    metadata: Dict[str, str] = Field(default_factory=dict)

    @field_validator("start_time", "end_time", mode="after")
    @classmethod
    def _ensure_utc(cls, v: Optional[datetime]):
        if v is None:
            return v
        if v.tzinfo is None or v.utcoffset() is None:
            raise ValueError("timestamps must be timezone-aware UTC")
        if v.utcoffset().total_seconds() != 0:
            raise ValueError("timestamps must be UTC")
        return v

    @field_validator("metadata", mode="before")
    @classmethod
    def _stringify(cls, v):
        return {str(k): str(val) for k, val in (v or {}).items()}

    @model_validator(mode="after")
    def _check_lifecycle(self):
        if self.state is JobState.RUNNING and self.end_time is not None:
            raise ValueError("a running job has no end_time")
        if self.state.terminal and self.end_time is None:
            raise ValueError("a terminal job must carry end_time")
        if self.error_message is not None and self.state is not JobState.FAILED:
            raise ValueError("error_message is only set on failed jobs")
        if self.end_time and self.end_time < self.start_time:
            raise ValueError("end_time must not precede start_time")
        return self

    # ---- transitions return new snapshots; the ledger swaps them in ----
    def completed(self, at: datetime, result_metadata: Optional[Mapping[str, object]] = None) -> "JobStatus":
        merged = {**self.metadata, **{str(k): str(v) for k, v in (result_metadata or {}).items()}}
        return JobStatus(
            job_id=self.job_id,
            kind=self.kind,
            state=JobState.COMPLETED,
            start_time=self.start_time,
            end_time=at,
            metadata=merged,
        )

    def failed(self, at: datetime, error_message: str, extra_metadata: Optional[Mapping[str, object]] = None) -> "JobStatus":
        merged = {**self.metadata, **{str(k): str(v) for k, v in (extra_metadata or {}).items()}}
        return JobStatus(
            job_id=self.job_id,
            kind=self.kind,
            state=JobState.FAILED,
            start_time=self.start_time,
            end_time=at,
            error_message=error_message,
            metadata=merged,
        )
