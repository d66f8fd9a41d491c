# apps/api/routers/health.py
from fastapi import APIRouter, Depends

from apps.api.deps import get_runtime
from libs.refresh.runtime import RefreshRuntime

router = APIRouter(tags=["health"])


@router.get("/health")
def health(rt: RefreshRuntime = Depends(get_runtime)):
    """Per-kind status: degraded when no keys or provider config is incomplete, or the scheduler died."""
    kinds = {}
    for kind, loader in rt.loaders.items():
        reason = loader.incomplete_reason()
        sch = rt.schedulers.get(kind)
        if sch is not None and sch.fatal_error is not None:
            reason = f"scheduler stopped: {sch.fatal_error!r}"
        last = sch.last_result if sch is not None else None
        kinds[kind.value] = {
            "status": "degraded" if reason else "healthy",
            "reason": reason,
            "source": loader.SOURCE,
            "keys": loader.keys,
            "cached": len(rt.service(kind).cache),
            "scheduler": sch.state.value if sch is not None else "not started",
            "last_job_id": last.job_id if last is not None else None,
        }
    overall = "ok" if all(v["status"] == "healthy" for v in kinds.values()) else "degraded"
    return {"status": overall, "kinds": kinds, "jobs_tracked": len(rt.ledger)}
