# apps/api/routers/schemas.py
from __future__ import annotations

from datetime import datetime
from typing import Dict, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from libs.refresh.orchestrator import RunResult
from libs.refresh.service import Freshness


class RefreshAck(BaseModel):
    """Refresh acknowledgment; provider error detail stays behind /jobs/status."""

    job_id: Optional[str] = None
    status: str
    message: str
    records_processed: int = 0


def to_ack(result: RunResult, message: str) -> RefreshAck:
    if result.noop:
        return RefreshAck(status="NoOp", message="No keys requested")
    return RefreshAck(
        job_id=result.job_id,
        status=result.state.value,
        message=message,
        records_processed=result.records_processed,
    )


class FreshnessOut(BaseModel):
    key: str
    last_updated: datetime
    age_seconds: float
    stale: bool

    @classmethod
    def from_freshness(cls, info: Freshness) -> "FreshnessOut":
        return cls(
            key=info.entry.key,
            last_updated=info.entry.last_updated,
            age_seconds=round(info.age.total_seconds(), 1),
            stale=info.stale,
        )


class JobTriggerRequest(BaseModel):
    job_key: UUID = Field(..., description="GUID that authorizes the trigger")
    parameters: Optional[Dict[str, str]] = None
