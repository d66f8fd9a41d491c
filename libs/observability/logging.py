# libs/observability/logging.py
from __future__ import annotations

import logging
import structlog

_CONFIGURED = False


def _level_to_int(level: str | int) -> int:
    """Accept 'INFO' / 'info' / 20 / logging.INFO and return an int level."""
    if isinstance(level, int):
        return level
    value = getattr(logging, str(level).upper(), None)
    return value if isinstance(value, int) else logging.INFO


def setup_logging(level: str | int = "INFO", *, json_logs: bool = True, force: bool = False) -> None:
    """
    Configure stdlib logging + structlog once per process.
    Call as early as possible (FastAPI lifespan / worker main).
    json_logs=False swaps the JSON renderer for the console renderer (local runs).
    """
    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    lvl = _level_to_int(level)

    # stdlib baseline: third-party loggers (requests, uvicorn) share the level
    logging.basicConfig(
        level=lvl,
        format="%(asctime)s %(levelname)-7s %(name)s - %(message)s",
        force=force,
    )

    renderer = structlog.processors.JSONRenderer() if json_logs else structlog.dev.ConsoleRenderer()
    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,             # job_id etc. bound per run
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            structlog.stdlib.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(lvl),
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    _CONFIGURED = True
