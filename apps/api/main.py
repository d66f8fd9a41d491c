# apps/api/main.py
import os
import signal
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI, Request
from fastapi.responses import HTMLResponse, JSONResponse

from apps.api.deps import get_runtime
from apps.api.routers import health, jobs, stocks, weather
from libs.contracts.errors import FetchCancelled, KeyNotTracked
from libs.observability.logging import setup_logging

log = structlog.get_logger("api")


def _terminate_on_fatal(exc: BaseException) -> None:
    """A scheduler died: ask the server to shut down (uvicorn handles SIGTERM gracefully)."""
    log.critical("api.scheduler_fatal", error=repr(exc))
    os.kill(os.getpid(), signal.SIGTERM)


@asynccontextmanager
async def lifespan(app: FastAPI):
    rt = get_runtime()
    setup_logging(rt.app.LOG_LEVEL, json_logs=rt.app.JSON_LOGS)
    if rt.app.RUN_SCHEDULERS:
        rt.start_schedulers(on_fatal=_terminate_on_fatal)
    log.info("api.startup", run_schedulers=rt.app.RUN_SCHEDULERS)
    try:
        yield
    finally:
        rt.stop()
        log.info("api.shutdown")


app = FastAPI(title="refresh-service API", lifespan=lifespan)


@app.exception_handler(KeyNotTracked)
def not_tracked_handler(_req: Request, exc: KeyNotTracked):
    return JSONResponse(status_code=404, content={"detail": str(exc)})


@app.exception_handler(FetchCancelled)
def cancelled_handler(_req: Request, _exc: FetchCancelled):
    return JSONResponse(status_code=503, content={"detail": "request cancelled or timed out while fetching"})


@app.get("/", response_class=HTMLResponse)
def root():
    return """
    <html><body>
      <h1>Refresh Service API</h1>
      <p>See <a href="/docs">/docs</a> for Swagger UI.</p>
    </body></html>
    """


@app.get("/healthz")
def healthz():
    return {"status": "ok"}


app.include_router(health.router)
app.include_router(stocks.router)
app.include_router(weather.router)
app.include_router(jobs.router)
