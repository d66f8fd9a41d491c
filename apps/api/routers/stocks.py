# apps/api/routers/stocks.py
from typing import List, Optional

import structlog
from fastapi import APIRouter, Body, Depends, HTTPException, status

from apps.api.deps import get_stock_service, request_cancel_token
from apps.api.routers.schemas import FreshnessOut, RefreshAck, to_ack
from libs.refresh.service import RefreshService
from libs.runtime.cancel import CancelToken

router = APIRouter(prefix="/stocks", tags=["stocks"])
log = structlog.get_logger("api.stocks")


@router.get("")
def get_all_stocks(
    svc: RefreshService = Depends(get_stock_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    """Latest quote for every tracked symbol (fetches once if nothing is cached yet)."""
    log.info("api.stocks.all")
    return [r.model_dump(mode="json") for r in svc.get_all(cancel=cancel)]


@router.get("/{symbol}")
def get_stock(
    symbol: str,
    svc: RefreshService = Depends(get_stock_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    record = svc.get_latest(symbol, cancel=cancel)
    if record is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"Could not fetch data for symbol {symbol}")
    return record.model_dump(mode="json")


@router.get("/{symbol}/freshness", response_model=FreshnessOut)
def get_stock_freshness(symbol: str, svc: RefreshService = Depends(get_stock_service)):
    info = svc.freshness(symbol)
    if info is None:
        raise HTTPException(status.HTTP_404_NOT_FOUND, f"No cached data for symbol {symbol}")
    return FreshnessOut.from_freshness(info)


@router.post("/refresh", status_code=status.HTTP_202_ACCEPTED, response_model=RefreshAck)
def refresh_stocks(
    symbols: Optional[List[str]] = Body(None, embed=True),
    svc: RefreshService = Depends(get_stock_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    """Refresh the given symbols, or every tracked symbol when none are given."""
    result = svc.refresh(symbols, cancel=cancel)
    return to_ack(result, "Stock data refresh initiated")


@router.post("/refresh/{symbol}", status_code=status.HTTP_202_ACCEPTED, response_model=RefreshAck)
def refresh_stock(
    symbol: str,
    svc: RefreshService = Depends(get_stock_service),
    cancel: CancelToken = Depends(request_cancel_token),
):
    result = svc.refresh_one(symbol, cancel=cancel)
    return to_ack(result, f"Stock data refresh for {svc.canonical(symbol)} initiated")
