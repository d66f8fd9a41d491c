# apps/api/routers/weather.py
from typing import List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status

from apps.api.deps import get_weather_service, request_cancel_token
from apps.api.routers.schemas import FreshnessOut, RefreshAck, to_ack
from libs.refresh.service import RefreshService
from libs.runtime.cancel import CancelToken

router = APIRouter(prefix="/weather", tags=["weather"])
log = structlog.get_logger("api.weather")


@router.get("")
def get_all_weather(
    svc: RefreshService = Depends(get_weather_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    log.info("api.weather.all")
    return [r.model_dump(mode="json") for r in svc.get_all(cancel=cancel)]


@router.get("/{location}")
def get_weather(
    location: str,
    svc: RefreshService = Depends(get_weather_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    """Latest reading; a tracked location with no cached reading is fetched before returning."""
    record = svc.get_latest(location, cancel=cancel)
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Could not fetch weather data for {location}")
    return record.model_dump(mode="json")


@router.get("/{location}/freshness", response_model=FreshnessOut)
def get_weather_freshness(location: str, svc: RefreshService = Depends(get_weather_service)):
    info = svc.freshness(location)
    if info is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"No cached weather data for {location}")
    return FreshnessOut.from_freshness(info)


@router.post("/refresh", status_code=status.HTTP_202_ACCEPTED, response_model=RefreshAck)
def refresh_weather_all(
    locations: Optional[List[str]] = Body(None, embed=True),
    svc: RefreshService = Depends(get_weather_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    result = svc.refresh(locations, cancel=cancel)
    return to_ack(result, "Weather data refresh initiated")


@router.post("/refresh/{location}", status_code=status.HTTP_202_ACCEPTED, response_model=RefreshAck)
def refresh_weather(
    location: str,
    svc: RefreshService = Depends(get_weather_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    result = svc.refresh_one(location, cancel=cancel)
    return to_ack(result, f"Weather data refresh for {svc.canonical(location)} initiated")
