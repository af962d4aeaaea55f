"""Trend store: normalization, upserts, queries and lifecycle maintenance."""

from __future__ import annotations

import logging
import math
from datetime import datetime, timedelta, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Sequence, Tuple

from sqlalchemy import delete, func, or_
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import settings
from models.trend import Trend, build_trend_key
from services.connectors.types import RawTrendItem, normalize_platform
from services.niche import NicheClassifier, classify_item, extract_hashtags, matches_niche
from services.scoring import RelevanceScorer

logger = logging.getLogger(__name__)

ALLOWED_SORT_KEYS = ("relevance", "growth", "views", "engagement", "recent")
MAX_PAGE_SIZE = 100

# Fields a later fetch of the same trend_key is allowed to overwrite.
MUTABLE_TREND_FIELDS = (
    "title",
    "description",
    "hashtags",
    "audio_track",
    "views",
    "uses",
    "growth",
    "engagement_rate",
    "niches",
    "relevance_score",
    "metadata_json",
)


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _as_utc(value: Optional[datetime]) -> Optional[datetime]:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _utcnow(now: Optional[datetime] = None) -> datetime:
    return _as_utc(now) or datetime.now(timezone.utc)


def _clip_page(page: int, limit: int) -> Tuple[int, int]:
    return max(int(page or 1), 1), max(1, min(int(limit or 20), MAX_PAGE_SIZE))


def _paginate(items: Sequence[Trend], page: int, limit: int) -> Dict[str, Any]:
    page, limit = _clip_page(page, limit)
    total = len(items)
    pages = math.ceil(total / limit) if total else 0
    start = (page - 1) * limit
    return {
        "items": [serialize_trend(item) for item in items[start:start + limit]],
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "pages": pages,
            "has_next": page < pages,
            "has_prev": page > 1,
        },
    }


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = _as_utc(value)
    return value.isoformat() if value else None


def serialize_trend(trend: Trend) -> Dict[str, Any]:
    return {
        "id": trend.id,
        "platform": trend.platform,
        "external_id": trend.external_id,
        "trend_key": trend.trend_key,
        "title": trend.title,
        "description": trend.description or "",
        "hashtags": list(trend.hashtags or []),
        "audio_track": trend.audio_track,
        "metrics": {
            "views": int(trend.views or 0),
            "uses": int(trend.uses or 0),
            "growth": int(trend.growth or 0),
            "engagement_rate": round(float(trend.engagement_rate or 0.0), 4),
        },
        "niches": list(trend.niches or ["general"]),
        "relevance_score": round(float(trend.relevance_score or 0.0), 2),
        "metadata": dict(trend.metadata_json or {}),
        "is_active": bool(trend.is_active),
        "expires_at": _iso(trend.expires_at),
        "created_at": _iso(trend.created_at),
        "updated_at": _iso(trend.updated_at),
    }


def normalize_trend_item(
    platform: str,
    raw: RawTrendItem,
    classifier: NicheClassifier,
    scorer: RelevanceScorer,
) -> Dict[str, Any]:
    """Turn a fetcher item into a store payload with derived rate, score and niches."""
    key = normalize_platform(platform)
    metrics = dict(raw.metrics or {})
    views = _safe_int(metrics.get("views"))
    growth = _safe_int(metrics.get("growth"))
    engagement_rate = scorer.engagement_rate(metrics)
    relevance = scorer.score({"views": views, "growth": growth, "engagement_rate": engagement_rate})

    return {
        "platform": key,
        "external_id": str(raw.id),
        "trend_key": build_trend_key(key, str(raw.id)),
        "title": raw.title or "",
        "description": raw.description or "",
        "hashtags": [str(tag).lstrip("#") for tag in (raw.hashtags or extract_hashtags(raw.description))],
        "audio_track": dict(raw.audio_track) if raw.audio_track else None,
        "views": views,
        "uses": _safe_int(metrics.get("uses")),
        "growth": growth,
        "engagement_rate": engagement_rate,
        "niches": classify_item(classifier, raw.title, raw.description),
        "relevance_score": float(relevance),
        "metadata_json": dict(raw.metadata or {}),
    }


async def upsert_trend(db: AsyncSession, payload: Dict[str, Any], now: Optional[datetime] = None) -> Trend:
    """Insert or overwrite by trend_key; identity and lifecycle fields survive."""
    current = _utcnow(now)
    trend = (
        await db.execute(select(Trend).where(Trend.trend_key == payload["trend_key"]))
    ).scalar_one_or_none()

    if trend is None:
        trend = Trend(
            platform=payload["platform"],
            external_id=payload["external_id"],
            trend_key=payload["trend_key"],
            is_active=True,
            expires_at=current + timedelta(days=settings.TREND_TTL_DAYS),
            created_at=current,
        )
        db.add(trend)

    for field_name in MUTABLE_TREND_FIELDS:
        if field_name in payload:
            setattr(trend, field_name, payload[field_name])
    trend.updated_at = current
    await db.flush()
    return trend


async def store_trends(
    db: AsyncSession,
    payloads: Iterable[Dict[str, Any]],
    now: Optional[datetime] = None,
) -> List[Trend]:
    """Upsert each payload in its own savepoint; bad records are logged and skipped."""
    stored: List[Trend] = []
    for payload in payloads:
        try:
            async with db.begin_nested():
                stored.append(await upsert_trend(db, payload, now=now))
        except SQLAlchemyError:
            logger.exception("trend_store_failed trend_key=%s", payload.get("trend_key"))
    await db.commit()
    return stored


async def _active_trends(
    db: AsyncSession,
    now: Optional[datetime] = None,
    platforms: Optional[Sequence[str]] = None,
) -> List[Trend]:
    query = select(Trend).where(Trend.is_active.is_(True), Trend.expires_at > _utcnow(now))
    if platforms:
        query = query.where(Trend.platform.in_([normalize_platform(p) for p in platforms]))
    return list((await db.execute(query)).scalars().all())


def _created_ts(trend: Trend) -> float:
    created = _as_utc(trend.created_at)
    return created.timestamp() if created else 0.0


SORTERS: Dict[str, Callable[[Trend], Tuple[float, ...]]] = {
    "relevance": lambda t: (float(t.relevance_score or 0.0), float(t.growth or 0)),
    "growth": lambda t: (float(t.growth or 0), float(t.relevance_score or 0.0)),
    "views": lambda t: (float(t.views or 0), float(t.relevance_score or 0.0)),
    "engagement": lambda t: (float(t.engagement_rate or 0.0), float(t.relevance_score or 0.0)),
    "recent": lambda t: (_created_ts(t),),
}


async def find_by_niche_and_platform(
    db: AsyncSession,
    platform: str,
    niches: Optional[Sequence[str]] = None,
    page: int = 1,
    limit: int = 20,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    rows = [
        trend
        for trend in await _active_trends(db, now, [platform])
        if matches_niche(trend.niches or [], niches)
    ]
    rows.sort(key=SORTERS["relevance"], reverse=True)
    return _paginate(rows, page, limit)


async def find_trending(
    db: AsyncSession,
    platforms: Optional[Sequence[str]] = None,
    limit: int = 10,
    now: Optional[datetime] = None,
) -> List[Dict[str, Any]]:
    rows = [trend for trend in await _active_trends(db, now, platforms) if int(trend.growth or 0) > 0]
    rows.sort(key=SORTERS["growth"], reverse=True)
    _, limit = _clip_page(1, limit)
    return [serialize_trend(trend) for trend in rows[:limit]]


async def list_trends(
    db: AsyncSession,
    niche: Optional[str] = None,
    sort_by: str = "relevance",
    page: int = 1,
    limit: int = 20,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    if sort_by not in SORTERS:
        raise ValueError(f"sort_by must be one of: {', '.join(ALLOWED_SORT_KEYS)}")
    rows = [trend for trend in await _active_trends(db, now) if matches_niche(trend.niches or [], niche)]
    rows.sort(key=SORTERS[sort_by], reverse=True)
    result = _paginate(rows, page, limit)
    result["sort_by"] = sort_by
    return result


def _matches_query(trend: Trend, needle: str) -> bool:
    if needle in str(trend.title or "").lower() or needle in str(trend.description or "").lower():
        return True
    return any(needle in str(tag).lower() for tag in trend.hashtags or [])


async def search_trends(
    db: AsyncSession,
    query: str,
    platform: Optional[str] = None,
    niche: Optional[str] = None,
    page: int = 1,
    limit: int = 20,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    needle = str(query or "").strip().lower()
    if not needle:
        raise ValueError("Search query is required.")
    rows = [
        trend
        for trend in await _active_trends(db, now, [platform] if platform else None)
        if _matches_query(trend, needle) and matches_niche(trend.niches or [], niche)
    ]
    rows.sort(key=lambda t: (float(t.relevance_score or 0.0), _created_ts(t)), reverse=True)
    result = _paginate(rows, page, limit)
    result["query"] = query
    return result


async def cleanup_expired_trends(db: AsyncSession, now: Optional[datetime] = None) -> int:
    """Hard-delete expired, deactivated and over-age trends; returns the count."""
    current = _utcnow(now)
    cutoff = current - timedelta(days=settings.TREND_MAX_AGE_DAYS)
    result = await db.execute(
        delete(Trend).where(
            or_(
                Trend.expires_at < current,
                Trend.is_active.is_(False),
                Trend.created_at < cutoff,
            )
        )
    )
    await db.commit()
    deleted = int(result.rowcount or 0)
    logger.info("trend_cleanup deleted=%s cutoff=%s", deleted, cutoff.isoformat())
    return deleted


async def rescore_trends(db: AsyncSession, scorer: RelevanceScorer, now: Optional[datetime] = None) -> int:
    """Persist the decayed score only where it moved past the hysteresis band."""
    current = _utcnow(now)
    updated = 0
    for trend in await _active_trends(db, current):
        new_score = scorer.trend_score_for(trend, now=current)
        if scorer.should_update(trend.relevance_score, new_score):
            trend.relevance_score = new_score
            trend.updated_at = current
            updated += 1
    await db.commit()
    logger.info("trend_rescore updated=%s", updated)
    return updated


async def trend_statistics(db: AsyncSession, now: Optional[datetime] = None) -> Dict[str, Any]:
    current = _utcnow(now)
    rows = (
        await db.execute(
            select(
                Trend.platform,
                func.count(Trend.id),
                func.avg(Trend.relevance_score),
                func.sum(Trend.views),
                func.avg(Trend.engagement_rate),
            )
            .where(Trend.is_active.is_(True), Trend.expires_at > current)
            .group_by(Trend.platform)
        )
    ).all()

    platforms: Dict[str, Dict[str, Any]] = {}
    total = 0
    for platform, count, avg_score, total_views, avg_rate in rows:
        total += int(count or 0)
        platforms[str(platform)] = {
            "count": int(count or 0),
            "avg_relevance_score": round(float(avg_score or 0.0), 2),
            "total_views": int(total_views or 0),
            "avg_engagement_rate": round(float(avg_rate or 0.0), 2),
        }
    return {
        "total_active_trends": total,
        "platforms": platforms,
        "generated_at": current.isoformat(),
    }
