"""Liveness, readiness and status endpoints."""

from typing import Any

from fastapi import APIRouter, status
from fastapi.responses import JSONResponse

from reminder_scheduler.database import check_database_connection
from reminder_scheduler.services.scheduler import WEEKLY_JOB_ID, get_scheduler

router = APIRouter(tags=["Health"])


def _scheduler_status() -> dict[str, Any]:
    scheduler = get_scheduler()
    if scheduler is None:
        return {"scheduler": "stopped"}

    job = scheduler.get_job(WEEKLY_JOB_ID)
    next_run = getattr(job, "next_run_time", None) if job else None
    return {
        "scheduler": "running",
        "next_weekly_run": next_run.isoformat() if next_run else None,
    }


def _db_response(db_connected: bool, content: dict[str, Any]) -> JSONResponse:
    content["database"] = "connected" if db_connected else "disconnected"
    return JSONResponse(
        status_code=status.HTTP_200_OK if db_connected else status.HTTP_503_SERVICE_UNAVAILABLE,
        content=content,
    )


@router.get("/health", response_model=None)
async def health_check() -> JSONResponse:
    """Database and scheduler status.

    "healthy" with 200 when the database answers, "degraded" with 503
    otherwise. The scheduler state and the next weekly run are reported
    either way.
    """
    db_connected = await check_database_connection()
    return _db_response(
        db_connected,
        {"status": "healthy" if db_connected else "degraded", **_scheduler_status()},
    )


@router.get("/health/live")
async def liveness_probe() -> dict[str, Any]:
    return {"status": "alive"}


@router.get("/health/ready", response_model=None)
async def readiness_probe() -> JSONResponse:
    """Ready once the database is reachable."""
    db_connected = await check_database_connection()
    return _db_response(db_connected, {"status": "ready" if db_connected else "not_ready"})
