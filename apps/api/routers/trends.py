"""Trend query and refresh router."""

from __future__ import annotations

import logging
from typing import List, Literal, Optional

from fastapi import APIRouter, Depends, Query, Request
from pydantic import BaseModel
from sqlalchemy.ext.asyncio import AsyncSession

from database import get_db
from routers.auth_scope import AuthContext, get_auth_context
from routers.errors import DOMAIN_ERRORS, to_http_error
from routers.rate_limit import rate_limit
from services.connectors.types import normalize_platform
from services.trend_scheduler import TrendScheduler
from services.trends import (
    find_by_niche_and_platform,
    find_trending,
    list_trends,
    search_trends,
    trend_statistics,
)

router = APIRouter()
logger = logging.getLogger(__name__)


class RefreshTrendsRequest(BaseModel):
    platform: Optional[str] = None
    niche: Optional[str] = None


def get_trend_scheduler(request: Request) -> TrendScheduler:
    return request.app.state.trend_scheduler


def _split_csv(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


@router.get("")
async def get_all_trends(
    niche: Optional[str] = Query(default=None),
    sort_by: Literal["relevance", "growth", "views", "engagement", "recent"] = Query(default="relevance"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await list_trends(db, niche=niche, sort_by=sort_by, page=page, limit=limit)


@router.get("/trending")
async def get_trending_content(
    platforms: Optional[str] = Query(default=None, description="Comma-separated platform list"),
    limit: int = Query(default=10, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        keys = [normalize_platform(platform) for platform in _split_csv(platforms)]
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc
    items = await find_trending(db, platforms=keys or None, limit=limit)
    return {"items": items, "platforms": keys, "count": len(items)}


@router.get("/search")
async def search_trend_content(
    q: str = Query(..., min_length=1),
    platform: Optional[str] = Query(default=None),
    niche: Optional[str] = Query(default=None),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        return await search_trends(db, q, platform=platform, niche=niche, page=page, limit=limit)
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc


@router.get("/statistics")
async def get_trend_statistics(
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    return await trend_statistics(db)


@router.get("/scheduler/status")
async def get_trend_scheduler_status(
    auth: AuthContext = Depends(get_auth_context),
    scheduler: TrendScheduler = Depends(get_trend_scheduler),
):
    return scheduler.get_status()


@router.post("/refresh")
async def refresh_trends(
    request: RefreshTrendsRequest,
    _rate_limit: None = Depends(rate_limit("trend_refresh", limit=10, window_seconds=3600)),
    auth: AuthContext = Depends(get_auth_context),
    scheduler: TrendScheduler = Depends(get_trend_scheduler),
):
    logger.info("trend_manual_refresh user=%s platform=%s niche=%s", auth.user_id, request.platform, request.niche)
    try:
        result = await scheduler.trigger_manual_refresh(platform=request.platform, niche=request.niche)
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc
    return {"message": "Trend refresh completed", **result}


@router.get("/{platform}")
async def get_platform_trends(
    platform: str,
    niche: Optional[str] = Query(default=None, description="Comma-separated niche filter"),
    page: int = Query(default=1, ge=1),
    limit: int = Query(default=20, ge=1, le=100),
    auth: AuthContext = Depends(get_auth_context),
    db: AsyncSession = Depends(get_db),
):
    try:
        key = normalize_platform(platform)
    except DOMAIN_ERRORS as exc:
        raise to_http_error(exc) from exc
    result = await find_by_niche_and_platform(db, key, niches=_split_csv(niche) or None, page=page, limit=limit)
    result["platform"] = key
    return result
