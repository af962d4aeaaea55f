"""
Health check endpoints.
"""

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
import redis.asyncio as redis
from redis.exceptions import RedisError

from config import settings
from database import engine
from services.connectors import connector_capabilities

router = APIRouter()


def _scheduler_summary(request: Request) -> dict:
    summary = {}
    for attr in ("trend_scheduler", "analytics_scheduler"):
        scheduler = getattr(request.app.state, attr, None)
        if scheduler is None:
            summary[attr] = "missing"
            continue
        status = scheduler.get_status()
        summary[attr] = {
            "is_running": status["is_running"],
            "running_jobs": status["running_jobs"],
        }
    return summary


@router.get("/health")
async def health_check(request: Request):
    """
    Overall health: database, redis, schedulers and connector availability.
    """
    health_status = {
        "status": "healthy",
        "api": "up",
        "database": "unknown",
        "redis": "unknown",
        "schedulers": _scheduler_summary(request),
        "connectors": connector_capabilities(),
    }

    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        health_status["database"] = "up"
    except (SQLAlchemyError, OSError) as e:
        health_status["database"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    try:
        r = redis.from_url(settings.REDIS_URL)
        await r.ping()
        await r.aclose()
        health_status["redis"] = "up"
    except (RedisError, OSError) as e:
        health_status["redis"] = f"down: {str(e)}"
        health_status["status"] = "degraded"

    return health_status


@router.get("/health/ready")
async def readiness_check(request: Request):
    """Ready once the enabled schedulers are running."""
    not_running = []
    if settings.TREND_SCHEDULER_ENABLED and not _is_running(request, "trend_scheduler"):
        not_running.append("trend_scheduler")
    if settings.ANALYTICS_SCHEDULER_ENABLED and not _is_running(request, "analytics_scheduler"):
        not_running.append("analytics_scheduler")

    if not_running:
        return JSONResponse(
            status_code=503,
            content={"ready": False, "not_running": not_running},
        )
    return {"ready": True}


def _is_running(request: Request, attr: str) -> bool:
    scheduler = getattr(request.app.state, attr, None)
    return bool(scheduler is not None and scheduler.state.is_running)


@router.get("/health/live")
async def liveness_check():
    """Kubernetes-style liveness probe."""
    return {"alive": True}
