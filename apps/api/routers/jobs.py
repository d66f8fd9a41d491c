# apps/api/routers/jobs.py
from typing import Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query, status

from apps.api.deps import get_job_keys, get_ledger, get_runtime, request_cancel_token
from apps.api.routers.schemas import JobTriggerRequest, RefreshAck, to_ack
from libs.config.settings import JobKeySettings
from libs.contracts.job_models import JobKind
from libs.contracts.records import DataKind
from libs.jobs.ledger import JobStatusLedger
from libs.refresh.runtime import RefreshRuntime
from libs.runtime.cancel import CancelToken

router = APIRouter(prefix="/jobs", tags=["jobs"])
log = structlog.get_logger("api.jobs")


def _authorized(kind: DataKind, job_key: UUID, keys: JobKeySettings) -> bool:
    expected = keys.STOCK_LOADER_KEY if kind is DataKind.STOCK else keys.WEATHER_LOADER_KEY
    return expected is not None and job_key == expected


def _trigger(kind: DataKind, req: JobTriggerRequest, rt: RefreshRuntime, keys: JobKeySettings, cancel: CancelToken):
    if not _authorized(kind, req.job_key, keys):
        log.warning("jobs.trigger.unauthorized", kind=kind.value)
        raise HTTPException(status.HTTP_401_UNAUTHORIZED, "invalid job key")
    log.info("jobs.trigger", kind=kind.value, parameters=req.parameters or {})
    result = rt.service(kind).refresh(None, cancel=cancel)
    return to_ack(result, f"{kind.value} loader job started")


@router.post("/stock/trigger", response_model=RefreshAck)
def trigger_stock_loader(
    req: JobTriggerRequest,
    rt: RefreshRuntime = Depends(get_runtime),
    keys: JobKeySettings = Depends(get_job_keys),
    cancel: CancelToken = Depends(request_cancel_token),
):
    """Triggers a full stock refresh; requires the stock loader job key."""
    return _trigger(DataKind.STOCK, req, rt, keys, cancel)


@router.post("/weather/trigger", response_model=RefreshAck)
def trigger_weather_loader(
    req: JobTriggerRequest,
    rt: RefreshRuntime = Depends(get_runtime),
    keys: JobKeySettings = Depends(get_job_keys),
    cancel: CancelToken = Depends(request_cancel_token),
):
    return _trigger(DataKind.WEATHER, req, rt, keys, cancel)


@router.get("/status/{job_id}")
def get_job_status(job_id: str, ledger: JobStatusLedger = Depends(get_ledger)):
    job = ledger.get(job_id)
    if job is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"job {job_id} not found")
    return job.model_dump(mode="json")


@router.get("")
def list_jobs(
    kind: Optional[JobKind] = Query(None),
    limit: int = Query(20, ge=1, le=200),
    ledger: JobStatusLedger = Depends(get_ledger),
):
    return [j.model_dump(mode="json") for j in ledger.recent(kind, limit)]
