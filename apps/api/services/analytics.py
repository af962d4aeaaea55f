"""Analytics sync storage, growth windows, rollups and creator-facing summaries."""

from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, datetime, time, timedelta, timezone
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple

from sqlalchemy import delete, distinct, func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.future import select

from config import ALLOWED_DEDUP_POLICIES, settings
from models.analytics import AnalyticsDailyRollup, AnalyticsRecord
from services.connectors.providers import FetcherRegistry
from services.connectors.types import (
    SUPPORTED_PLATFORMS,
    ConnectorUnavailableError,
    PlatformFetchError,
    RawMediaMetrics,
    normalize_platform,
)
from services.directory import get_active_user, get_connected_accounts

logger = logging.getLogger(__name__)

METRIC_FIELDS = ("views", "likes", "comments", "shares", "saves", "impressions", "reach")
ALLOWED_GROUP_BY = ("day", "week", "month")
GROWTH_WINDOWS: Tuple[Tuple[str, float], ...] = (("daily", 1.0), ("weekly", 7.0), ("monthly", 30.0))
DEFAULT_GROWTH_PERIOD = timedelta(days=30)
DELETE_CHUNK_SIZE = 500

# Windowed queries bucket content by publish time, not by the latest measurement.
CONTENT_AT = func.coalesce(AnalyticsRecord.published_at, AnalyticsRecord.timestamp)


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


def _iso(value: Optional[datetime]) -> Optional[str]:
    value = _as_utc(value)
    return value.isoformat() if value else None


def _total_engagement(record: Any) -> int:
    return int(record.likes or 0) + int(record.comments or 0) + int(record.shares or 0) + int(record.saves or 0)


def _content_at(record: Any) -> datetime:
    return _as_utc(record.published_at or record.timestamp)


def _latest_per_media(records: Iterable[AnalyticsRecord]) -> List[AnalyticsRecord]:
    """Newest measurement per media, so daily snapshots are not counted twice."""
    latest: Dict[Tuple[str, str, str], AnalyticsRecord] = {}
    for record in records:
        key = (record.user_id, record.platform, record.media_id)
        current = latest.get(key)
        if current is None or _as_utc(record.timestamp) > _as_utc(current.timestamp):
            latest[key] = record
    return list(latest.values())


def calculate_engagement_rate(metrics: Optional[Mapping[str, Any]]) -> float:
    """(likes + comments + shares + saves) / impressions * 100, two decimals."""
    metrics = metrics or {}
    impressions = _safe_int(metrics.get("impressions"))
    if impressions <= 0:
        return 0.0
    engagement = sum(_safe_int(metrics.get(name)) for name in ("likes", "comments", "shares", "saves"))
    return round(engagement / impressions * 100.0, 2)


def calculate_reach_rate(metrics: Optional[Mapping[str, Any]]) -> float:
    metrics = metrics or {}
    impressions = _safe_int(metrics.get("impressions"))
    if impressions <= 0:
        return 0.0
    return round(_safe_int(metrics.get("reach")) / impressions * 100.0, 2)


def growth_bucket(current_ts: Optional[datetime], previous_ts: Optional[datetime]) -> Optional[str]:
    """Name of the first growth window that contains the gap, or None."""
    current, previous = _as_utc(current_ts), _as_utc(previous_ts)
    if current is None or previous is None or current < previous:
        return None
    gap_days = (current - previous).total_seconds() / 86400.0
    for name, limit_days in GROWTH_WINDOWS:
        if gap_days <= limit_days:
            return name
    return None


def apply_growth(record: AnalyticsRecord, previous_views: Any, previous_ts: Optional[datetime]) -> Optional[str]:
    """Write the views delta into the matching bucket only; other buckets keep their value."""
    bucket = growth_bucket(record.timestamp, previous_ts)
    if bucket is not None:
        setattr(record, f"{bucket}_growth", int(record.views or 0) - _safe_int(previous_views))
    return bucket


def _apply_metrics(record: AnalyticsRecord, item: RawMediaMetrics) -> None:
    metrics = dict(item.metrics or {})
    for name in METRIC_FIELDS:
        setattr(record, name, _safe_int(metrics.get(name)))
    record.engagement_rate = calculate_engagement_rate(metrics)
    record.reach_rate = calculate_reach_rate(metrics)
    record.media_type = str(item.media_type or "post").lower()
    record.platform_specific_json = dict(item.platform_specific or {})
    if item.timestamp is not None:
        record.published_at = _as_utc(item.timestamp)


async def _latest_record(
    db: AsyncSession,
    user_id: str,
    platform: str,
    media_id: str,
) -> Optional[AnalyticsRecord]:
    query = select(AnalyticsRecord).where(
        AnalyticsRecord.user_id == user_id,
        AnalyticsRecord.platform == platform,
        AnalyticsRecord.media_id == media_id,
        AnalyticsRecord.is_active.is_(True),
    )
    query = query.order_by(AnalyticsRecord.timestamp.desc(), AnalyticsRecord.created_at.desc()).limit(1)
    return (await db.execute(query)).scalars().first()


async def _store_one(
    db: AsyncSession,
    user_id: str,
    platform: str,
    account_id: str,
    item: RawMediaMetrics,
    now: datetime,
    dedup_policy: str,
) -> AnalyticsRecord:
    existing = await _latest_record(db, user_id, platform, item.media_id)
    existing_ts = _as_utc(existing.timestamp) if existing is not None else None
    # The daily policy keeps one snapshot row per UTC day instead of a single rolling row.
    reuse = existing is not None and (dedup_policy != "daily" or existing_ts.date() == now.date())

    if reuse:
        previous_ts, previous_views = existing_ts, existing.views
        record = existing
        record.account_id = account_id
        _apply_metrics(record, item)
        if record.published_at is None:
            record.published_at = previous_ts
        record.timestamp = now
        record.synced_at = now
        record.updated_at = now
        apply_growth(record, previous_views, previous_ts)
    else:
        record = AnalyticsRecord(
            user_id=user_id,
            platform=platform,
            account_id=account_id,
            media_id=str(item.media_id),
            timestamp=now,
            synced_at=now,
            is_active=True,
            daily_growth=0,
            weekly_growth=0,
            monthly_growth=0,
            created_at=now,
            updated_at=now,
        )
        _apply_metrics(record, item)
        if record.published_at is None:
            # first-seen time stands in for a missing publish time
            record.published_at = existing.published_at if existing is not None and existing.published_at else now
        db.add(record)
        if existing is not None:
            apply_growth(record, existing.views, existing_ts)

    await db.flush()
    return record


async def store_analytics_data(
    db: AsyncSession,
    user_id: str,
    platform: str,
    account_id: str,
    items: Iterable[RawMediaMetrics],
    now: Optional[datetime] = None,
    dedup_policy: Optional[str] = None,
) -> List[AnalyticsRecord]:
    """Upsert fetched media metrics keyed by (user, platform, media).

    Each item is written in its own savepoint; a storage failure is logged
    and that item skipped.
    """
    current = _utcnow(now)
    policy = dedup_policy or settings.ANALYTICS_DEDUP_POLICY
    if policy not in ALLOWED_DEDUP_POLICIES:
        raise ValueError(f"Unknown dedup policy: {policy}")

    stored: List[AnalyticsRecord] = []
    for item in items:
        try:
            async with db.begin_nested():
                stored.append(await _store_one(db, user_id, platform, account_id, item, current, policy))
        except SQLAlchemyError:
            logger.exception(
                "analytics_store_failed user=%s platform=%s media=%s",
                user_id,
                platform,
                item.media_id,
            )
    await db.commit()
    return stored


async def sync_analytics_data(
    db: AsyncSession,
    user_id: str,
    platform: str,
    fetchers: FetcherRegistry,
    account_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Fetch and store one account's metrics for one platform.

    Uses the most recently connected account unless ``account_id`` pins
    one, so every call makes exactly one fetcher call. Fetch failures are
    reported in the result, never raised.
    """
    key = normalize_platform(platform)
    await get_active_user(db, user_id)
    accounts = await get_connected_accounts(db, user_id, key, account_id)
    current = _utcnow(now)
    if not accounts:
        return {
            "success": False,
            "platform": key,
            "error": f"No connected {key} accounts found",
            "total_accounts": 0,
            "successful_syncs": 0,
            "failed_syncs": 0,
            "results": [],
            "last_sync_at": current.isoformat(),
        }

    account = accounts[0]
    try:
        fetcher = fetchers.analytics_fetcher(key)
        items = await fetcher.fetch_analytics(account)
        stored = await store_analytics_data(db, user_id, key, account.account_id, items, now=current)
        result: Dict[str, Any] = {
            "account_id": account.account_id,
            "success": True,
            "items_processed": len(items),
            "items_stored": len(stored),
        }
    except (PlatformFetchError, ConnectorUnavailableError) as exc:
        logger.warning(
            "analytics_sync_failed user=%s platform=%s account=%s error=%s",
            user_id,
            key,
            account.account_id,
            exc,
        )
        result = {"account_id": account.account_id, "success": False, "error": str(exc)}

    logger.info(
        "analytics_sync user=%s platform=%s account=%s success=%s",
        user_id,
        key,
        account.account_id,
        result["success"],
    )
    return {
        "success": True,
        "platform": key,
        "total_accounts": 1,
        "connected_accounts": len(accounts),
        "successful_syncs": 1 if result["success"] else 0,
        "failed_syncs": 0 if result["success"] else 1,
        "results": [result],
        "last_sync_at": current.isoformat(),
    }


def serialize_record(record: AnalyticsRecord) -> Dict[str, Any]:
    return {
        "id": record.id,
        "platform": record.platform,
        "account_id": record.account_id,
        "media_id": record.media_id,
        "media_type": record.media_type,
        "metrics": {
            **{name: int(getattr(record, name) or 0) for name in METRIC_FIELDS},
            "engagement_rate": float(record.engagement_rate or 0.0),
            "reach_rate": float(record.reach_rate or 0.0),
        },
        "performance": {
            "daily_growth": int(record.daily_growth or 0),
            "weekly_growth": int(record.weekly_growth or 0),
            "monthly_growth": int(record.monthly_growth or 0),
        },
        "total_engagement": _total_engagement(record),
        "platform_specific": dict(record.platform_specific_json or {}),
        "published_at": _iso(record.published_at),
        "timestamp": _iso(record.timestamp),
        "synced_at": _iso(record.synced_at),
    }


async def _query_records(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = None,
) -> List[AnalyticsRecord]:
    query = select(AnalyticsRecord).where(
        AnalyticsRecord.user_id == user_id,
        AnalyticsRecord.is_active.is_(True),
    )
    if platform:
        query = query.where(AnalyticsRecord.platform == normalize_platform(platform))
    if start is not None:
        query = query.where(CONTENT_AT >= _as_utc(start))
    if end is not None:
        query = query.where(CONTENT_AT <= _as_utc(end))
    records = _latest_per_media((await db.execute(query)).scalars().all())
    records.sort(key=_content_at, reverse=True)
    return records[:limit] if limit else records


def _summarize(records: Sequence[AnalyticsRecord]) -> Dict[str, Any]:
    count = len(records)
    totals = {f"total_{name}": sum(int(getattr(r, name) or 0) for r in records) for name in METRIC_FIELDS}
    latest_sync = max((_as_utc(r.synced_at) for r in records if r.synced_at), default=None)
    return {
        **totals,
        "avg_engagement_rate": round(sum(float(r.engagement_rate or 0.0) for r in records) / count, 2) if count else 0.0,
        "avg_reach_rate": round(sum(float(r.reach_rate or 0.0) for r in records) / count, 2) if count else 0.0,
        "content_count": count,
        "platforms": sorted({r.platform for r in records}),
        "latest_sync": _iso(latest_sync),
    }


async def get_analytics_totals(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: Optional[int] = 100,
) -> Dict[str, Any]:
    return _summarize(await _query_records(db, user_id, platform, start, end, limit))


def _period_start(moment: datetime, group_by: str) -> date:
    day = moment.date()
    if group_by == "week":
        return day - timedelta(days=day.weekday())
    if group_by == "month":
        return day.replace(day=1)
    return day


async def get_platform_time_series(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    group_by: str = "day",
    limit: int = 30,
) -> List[Dict[str, Any]]:
    """Per-day/week/month totals (UTC), newest period first."""
    if group_by not in ALLOWED_GROUP_BY:
        raise ValueError(f"group_by must be one of: {', '.join(ALLOWED_GROUP_BY)}")

    buckets: Dict[date, List[AnalyticsRecord]] = defaultdict(list)
    for record in await _query_records(db, user_id, platform, start, end):
        buckets[_period_start(_content_at(record), group_by)].append(record)

    series: List[Dict[str, Any]] = []
    for period in sorted(buckets, reverse=True)[: max(int(limit or 30), 1)]:
        records = buckets[period]
        totals = {name: sum(int(getattr(r, name) or 0) for r in records) for name in METRIC_FIELDS}
        series.append(
            {
                "date": period.isoformat(),
                **totals,
                "total_engagement": totals["likes"] + totals["comments"] + totals["shares"] + totals["saves"],
                "avg_engagement_rate": round(sum(float(r.engagement_rate or 0.0) for r in records) / len(records), 2),
                "content_count": len(records),
                "platforms": sorted({r.platform for r in records}),
            }
        )
    return series


async def get_top_performing_content(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    limit: int = 10,
) -> List[Dict[str, Any]]:
    records = await _query_records(db, user_id, platform, start, end)
    records.sort(key=lambda r: (_total_engagement(r), int(r.views or 0)), reverse=True)
    return [serialize_record(record) for record in records[: max(int(limit or 10), 1)]]


def growth_rate(current: Any, previous: Any) -> float:
    """Percent change; a zero baseline reads as 100 when anything happened."""
    current_value, previous_value = float(current or 0), float(previous or 0)
    if previous_value == 0:
        return 100.0 if current_value > 0 else 0.0
    return round((current_value - previous_value) / previous_value * 100.0, 2)


async def calculate_growth_metrics(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """Compare a period against the equally long period right before it."""
    current_end = _as_utc(end) or _utcnow(now)
    current_start = _as_utc(start) or (current_end - DEFAULT_GROWTH_PERIOD)
    if current_start >= current_end:
        raise ValueError("start must be before end.")
    previous_end = current_start - timedelta(milliseconds=1)
    previous_start = previous_end - (current_end - current_start)

    current = await get_analytics_totals(db, user_id, platform, current_start, current_end, limit=None)
    previous = await get_analytics_totals(db, user_id, platform, previous_start, previous_end, limit=None)
    return {
        "views_growth": growth_rate(current["total_views"], previous["total_views"]),
        "likes_growth": growth_rate(current["total_likes"], previous["total_likes"]),
        "comments_growth": growth_rate(current["total_comments"], previous["total_comments"]),
        "shares_growth": growth_rate(current["total_shares"], previous["total_shares"]),
        "engagement_growth": growth_rate(current["avg_engagement_rate"], previous["avg_engagement_rate"]),
        "content_growth": growth_rate(current["content_count"], previous["content_count"]),
        "current_period": {"start": current_start.isoformat(), "end": current_end.isoformat(), "metrics": current},
        "previous_period": {"start": previous_start.isoformat(), "end": previous_end.isoformat(), "metrics": previous},
    }


async def get_user_analytics_summary(
    db: AsyncSession,
    user_id: str,
    platform: Optional[str] = None,
    start: Optional[datetime] = None,
    end: Optional[datetime] = None,
    group_by: str = "day",
    limit: int = 100,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    key = normalize_platform(platform) if platform else None
    summary = await get_analytics_totals(db, user_id, key, start, end, limit)
    breakdown: List[Dict[str, Any]] = []
    if key is None:
        for name in SUPPORTED_PLATFORMS:
            breakdown.append({"platform": name, **await get_analytics_totals(db, user_id, name, start, end, limit)})

    return {
        "summary": summary,
        "platform_breakdown": breakdown,
        "time_series": await get_platform_time_series(db, user_id, key, start, end, group_by, limit=min(limit, 30)),
        "top_content": await get_top_performing_content(db, user_id, key, start, end, limit=10),
        "growth_metrics": await calculate_growth_metrics(db, user_id, key, start, end, now=now),
        "last_updated": _utcnow(now).isoformat(),
    }


async def aggregate_daily_rollups(db: AsyncSession, day: date) -> int:
    """Upsert per-user, per-platform totals of content published on one UTC day.

    Metrics are the latest measurement of each media, so re-running after
    later syncs refreshes the day instead of emptying it. Returns rows written.
    """
    day_start = datetime.combine(day, time.min, tzinfo=timezone.utc)
    day_end = day_start + timedelta(days=1)
    records = _latest_per_media(
        (
            await db.execute(
                select(AnalyticsRecord).where(
                    AnalyticsRecord.is_active.is_(True),
                    CONTENT_AT >= day_start,
                    CONTENT_AT < day_end,
                )
            )
        ).scalars().all()
    )

    groups: Dict[Tuple[str, str], List[AnalyticsRecord]] = defaultdict(list)
    for record in records:
        groups[(record.user_id, record.platform)].append(record)

    for (user_id, platform), rows in groups.items():
        rollup = (
            await db.execute(
                select(AnalyticsDailyRollup).where(
                    AnalyticsDailyRollup.user_id == user_id,
                    AnalyticsDailyRollup.platform == platform,
                    AnalyticsDailyRollup.day == day,
                )
            )
        ).scalar_one_or_none()
        if rollup is None:
            rollup = AnalyticsDailyRollup(user_id=user_id, platform=platform, day=day, created_at=datetime.now(timezone.utc))
            db.add(rollup)

        summary = _summarize(rows)
        for name in METRIC_FIELDS:
            setattr(rollup, f"total_{name}", summary[f"total_{name}"])
        media_types: Dict[str, int] = defaultdict(int)
        for row in rows:
            media_types[row.media_type or "post"] += 1
        rollup.avg_engagement_rate = summary["avg_engagement_rate"]
        rollup.content_count = summary["content_count"]
        rollup.breakdown_json = {"media_types": dict(media_types)}
        rollup.last_synced_at = max((_as_utc(r.synced_at) for r in rows if r.synced_at), default=None)
        rollup.updated_at = datetime.now(timezone.utc)

    await db.commit()
    logger.info("analytics_daily_rollup day=%s groups=%s records=%s", day.isoformat(), len(groups), len(records))
    return len(groups)


def _duplicate_ids(rows: Sequence[Any], policy: str) -> List[str]:
    """Ids to drop: all but the newest row per media, or per media per UTC day."""
    groups: Dict[Tuple[Any, ...], List[Any]] = defaultdict(list)
    for row in rows:
        key: Tuple[Any, ...] = (row.user_id, row.platform, row.media_id)
        if policy == "daily":
            key += (_as_utc(row.timestamp).date(),)
        groups[key].append(row)

    doomed: List[str] = []
    for members in groups.values():
        if len(members) < 2:
            continue
        members.sort(
            key=lambda r: (_as_utc(r.created_at) or datetime.min.replace(tzinfo=timezone.utc), _as_utc(r.timestamp)),
            reverse=True,
        )
        doomed.extend(member.id for member in members[1:])
    return doomed


async def cleanup_analytics(
    db: AsyncSession,
    now: Optional[datetime] = None,
    retention_days: Optional[int] = None,
    dedup_policy: Optional[str] = None,
) -> Dict[str, int]:
    current = _utcnow(now)
    policy = dedup_policy or settings.ANALYTICS_DEDUP_POLICY
    if policy not in ALLOWED_DEDUP_POLICIES:
        raise ValueError(f"Unknown dedup policy: {policy}")
    cutoff = current - timedelta(days=retention_days or settings.ANALYTICS_RETENTION_DAYS)

    expired = await db.execute(
        delete(AnalyticsRecord).where(
            AnalyticsRecord.timestamp < cutoff,
            AnalyticsRecord.is_active.is_(False),
        )
    )

    rows = (
        await db.execute(
            select(
                AnalyticsRecord.id,
                AnalyticsRecord.user_id,
                AnalyticsRecord.platform,
                AnalyticsRecord.media_id,
                AnalyticsRecord.timestamp,
                AnalyticsRecord.created_at,
            )
        )
    ).all()
    doomed = _duplicate_ids(rows, policy)
    for offset in range(0, len(doomed), DELETE_CHUNK_SIZE):
        chunk = doomed[offset:offset + DELETE_CHUNK_SIZE]
        await db.execute(delete(AnalyticsRecord).where(AnalyticsRecord.id.in_(chunk)))
    await db.commit()

    result = {"old_records_removed": int(expired.rowcount or 0), "duplicates_removed": len(doomed)}
    logger.info(
        "analytics_cleanup policy=%s cutoff=%s old_removed=%s duplicates_removed=%s",
        policy,
        cutoff.isoformat(),
        result["old_records_removed"],
        result["duplicates_removed"],
    )
    return result


async def get_sync_statistics(db: AsyncSession) -> Dict[str, Any]:
    row = (
        await db.execute(
            select(
                func.count(AnalyticsRecord.id),
                func.count(distinct(AnalyticsRecord.user_id)),
                func.max(AnalyticsRecord.synced_at),
                func.min(AnalyticsRecord.timestamp),
                func.avg(AnalyticsRecord.engagement_rate),
                func.sum(AnalyticsRecord.views),
                func.sum(
                    AnalyticsRecord.likes + AnalyticsRecord.comments + AnalyticsRecord.shares + AnalyticsRecord.saves
                ),
            )
        )
    ).one()
    platforms = (await db.execute(select(distinct(AnalyticsRecord.platform)))).scalars().all()
    total_records, unique_users, latest_sync, oldest, avg_rate, total_views, total_engagement = row
    return {
        "total_records": int(total_records or 0),
        "unique_users": int(unique_users or 0),
        "platforms": sorted(str(p) for p in platforms),
        "latest_sync": _iso(latest_sync),
        "oldest_record": _iso(oldest),
        "avg_engagement_rate": round(float(avg_rate or 0.0), 2),
        "total_views": int(total_views or 0),
        "total_engagement": int(total_engagement or 0),
    }
