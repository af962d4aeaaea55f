"""Creator analytics router: summaries, manual sync and auto-sync control."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Literal, Optional

from fastapi import APIRouter, Depends, HTTPException, Query, Request
from pydantic import BaseModel, Field
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, ensure_user_scope, get_auth_context
from routers.errors import DOMAIN_ERRORS, to_http_error
from routers.rate_limit import rate_limit
from services.analytics import (
    calculate_growth_metrics,
    get_platform_time_series,
    get_sync_statistics,
    get_top_performing_content,
    get_user_analytics_summary,
    sync_analytics_data,
)
from services.analytics_scheduler import AnalyticsScheduler

router = APIRouter()
logger = logging.getLogger(__name__)


class SyncAnalyticsRequest(BaseModel):
    platform: Optional[str] = None
    account_id: Optional[str] = None
    user_id: Optional[str] = None


class AutoSyncRequest(BaseModel):
    action: Literal["start", "stop"]
    interval_minutes: Optional[int] = Field(default=None, ge=1, le=1440)
    user_id: Optional[str] = None


def get_analytics_scheduler(request: Request) -> AnalyticsScheduler:
    return request.app.state.analytics_scheduler


@router.get("/summary")
async def get_analytics_summary(
    platform: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    group_by: Literal["day", "week", "month"] = Query(default="day"),
    limit: int = Query(default=100, ge=1, le=1000),
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    try:
        return await get_user_analytics_summary(
            db,
            scoped_user_id,
            platform=platform,
            start=start_date,
            end=end_date,
            group_by=group_by,
            limit=limit,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.get("/performance")
async def get_performance_series(
    platform: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    group_by: Literal["day", "week", "month"] = Query(default="day"),
    limit: int = Query(default=30, ge=1, le=365),
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    try:
        series = await get_platform_time_series(
            db,
            scoped_user_id,
            platform=platform,
            start=start_date,
            end=end_date,
            group_by=group_by,
            limit=limit,
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"platform": platform, "group_by": group_by, "series": series}


@router.get("/top-content")
async def get_top_content(
    platform: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    limit: int = Query(default=10, ge=1, le=100),
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    try:
        items = await get_top_performing_content(
            db, scoped_user_id, platform=platform, start=start_date, end=end_date, limit=limit
        )
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"items": items, "count": len(items)}


@router.get("/growth")
async def get_growth_metrics(
    platform: Optional[str] = Query(default=None),
    start_date: Optional[datetime] = Query(default=None),
    end_date: Optional[datetime] = Query(default=None),
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    try:
        return await calculate_growth_metrics(db, scoped_user_id, platform=platform, start=start_date, end=end_date)
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.post("/sync")
async def sync_analytics(
    request: SyncAnalyticsRequest,
    _rate_limit: None = Depends(rate_limit("analytics_sync", limit=20, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    scheduler: AnalyticsScheduler = Depends(get_analytics_scheduler),
    db: AsyncSession = Depends(get_db),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    if request.account_id and not request.platform:
        raise HTTPException(status_code=400, detail="platform is required when account_id is provided.")
    try:
        if request.account_id:
            return await sync_analytics_data(
                db,
                scoped_user_id,
                request.platform,
                scheduler.fetchers,
                account_id=request.account_id,
            )
        return await scheduler.trigger_user_sync(scoped_user_id, request.platform)
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.post("/auto-sync")
async def configure_auto_sync(
    request: AutoSyncRequest,
    auth: AuthContext = Depends(get_auth_context),
    scheduler: AnalyticsScheduler = Depends(get_analytics_scheduler),
):
    scoped_user_id = ensure_user_scope(auth.user_id, request.user_id)
    if request.action == "start":
        status = scheduler.start_auto_sync(scoped_user_id, request.interval_minutes)
        return {"message": "Auto-sync started", **status}
    status = scheduler.stop_auto_sync(scoped_user_id)
    return {"message": "Auto-sync stopped", **status}


@router.get("/sync-status")
async def get_auto_sync_status(
    user_id: Optional[str] = Query(default=None),
    auth: AuthContext = Depends(get_auth_context),
    scheduler: AnalyticsScheduler = Depends(get_analytics_scheduler),
):
    scoped_user_id = ensure_user_scope(auth.user_id, user_id)
    return scheduler.get_sync_status(scoped_user_id)


@router.get("/statistics")
async def get_analytics_statistics(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await get_sync_statistics(db)


@router.get("/scheduler/status")
async def get_analytics_scheduler_status(
    auth: AuthContext = Depends(get_auth_context),
    scheduler: AnalyticsScheduler = Depends(get_analytics_scheduler),
):
    return scheduler.get_status()
