"""Scheduled analytics sync, daily rollups, weekly cleanup and per-user auto-sync."""

from __future__ import annotations

import logging
from datetime import timedelta, timezone
from functools import partial
from typing import Any, Dict, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from services.analytics import (
    aggregate_daily_rollups,
    cleanup_analytics,
    get_sync_statistics,
    sync_analytics_data,
)
from services.connectors.providers import FetcherRegistry
from services.connectors.types import normalize_platform
from services.directory import get_active_user, get_connected_accounts, list_users_with_connected_accounts
from services.scheduling import Clock, IntervalSchedule, SchedulerState, SystemClock

logger = logging.getLogger(__name__)

SYNC_CRON = "0 */2 * * *"
AGGREGATION_CRON = "0 1 * * *"
CLEANUP_CRON = "0 2 * * 0"


def _auto_sync_job_name(user_id: str) -> str:
    return f"auto_sync:{user_id}"


class AnalyticsScheduler:
    """Pulls creator metrics on a cadence and maintains the analytics store."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        fetchers: FetcherRegistry,
        clock: Optional[Clock] = None,
        tz: Optional[str] = None,
    ) -> None:
        self.session_maker = session_maker
        self.fetchers = fetchers
        self.clock: Clock = clock or SystemClock()
        timezone_name = tz or settings.SCHEDULER_TIMEZONE
        self.state = SchedulerState("analytics-scheduler", self.clock, timezone_name)
        self.state.register("sync", SYNC_CRON, self.sync_all_users)
        self.state.register("aggregation", AGGREGATION_CRON, self.perform_daily_aggregation)
        self.state.register("cleanup", CLEANUP_CRON, self.perform_weekly_cleanup)
        self.auto_sync = SchedulerState("analytics-auto-sync", self.clock, timezone_name)
        self._auto_sync_minutes: Dict[str, int] = {}

    def start(self) -> None:
        self.state.start()

    def stop(self) -> None:
        self.state.stop()
        self.auto_sync.stop()

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        scheduled_idle = await self.state.wait_idle(timeout)
        auto_idle = await self.auto_sync.wait_idle(timeout)
        return scheduled_idle and auto_idle

    async def _sync_platform(self, user_id: str, platform: str) -> Dict[str, Any]:
        async with self.session_maker() as db:
            return await sync_analytics_data(db, user_id, platform, self.fetchers, now=self.clock.now())

    async def sync_all_users(self) -> Dict[str, int]:
        """Sync every connected platform of every active user; failures stay isolated."""
        async with self.session_maker() as db:
            users = await list_users_with_connected_accounts(db)

        total_synced = 0
        total_errors = 0
        for user in users:
            for platform in user.platforms:
                try:
                    result = await self._sync_platform(user.user_id, platform)
                except Exception:
                    total_errors += 1
                    logger.exception("analytics_sync_user_failed user=%s platform=%s", user.user_id, platform)
                    continue
                if result.get("success"):
                    total_synced += int(result.get("successful_syncs", 0))
                    total_errors += int(result.get("failed_syncs", 0))
                else:
                    total_errors += 1
                    logger.warning(
                        "analytics_sync_skipped user=%s platform=%s reason=%s",
                        user.user_id,
                        platform,
                        result.get("error"),
                    )

        summary = {"users_processed": len(users), "total_synced": total_synced, "total_errors": total_errors}
        logger.info(
            "analytics_sync_all users=%s synced=%s errors=%s",
            summary["users_processed"],
            total_synced,
            total_errors,
        )
        return summary

    async def perform_daily_aggregation(self) -> int:
        """Roll up the previous UTC day."""
        yesterday = self.clock.now().astimezone(timezone.utc).date() - timedelta(days=1)
        async with self.session_maker() as db:
            return await aggregate_daily_rollups(db, yesterday)

    async def perform_weekly_cleanup(self) -> Dict[str, int]:
        async with self.session_maker() as db:
            return await cleanup_analytics(db, now=self.clock.now())

    async def trigger_user_sync(self, user_id: str, platform: Optional[str] = None) -> Dict[str, Any]:
        """Manual sync of one platform, or of every platform the user has connected."""
        logger.info("analytics_manual_sync user=%s platform=%s", user_id, platform)
        if platform:
            return await self._sync_platform(user_id, normalize_platform(platform))

        async with self.session_maker() as db:
            await get_active_user(db, user_id)
            accounts = await get_connected_accounts(db, user_id)
        platforms: List[str] = list(dict.fromkeys(account.platform for account in accounts))

        results = []
        for key in platforms:
            try:
                result = await self._sync_platform(user_id, key)
            except Exception as exc:
                logger.exception("analytics_sync_user_failed user=%s platform=%s", user_id, key)
                result = {"success": False, "error": str(exc) or exc.__class__.__name__}
            results.append({"platform": key, **result})
        return {
            "success": True,
            "results": results,
            "total_platforms": len(platforms),
            "successful_syncs": sum(1 for result in results if result.get("success")),
        }

    async def _auto_sync_tick(self, user_id: str) -> Dict[str, Any]:
        return await self.trigger_user_sync(user_id)

    def start_auto_sync(self, user_id: str, interval_minutes: Optional[int] = None) -> Dict[str, Any]:
        """Start (or restart) the user's timer; a prior timer for the user is cancelled."""
        minutes = int(interval_minutes or settings.AUTO_SYNC_DEFAULT_INTERVAL_MINUTES)
        if minutes <= 0:
            raise ValueError("interval_minutes must be positive.")
        self.auto_sync.register(
            _auto_sync_job_name(user_id),
            IntervalSchedule(minutes * 60),
            partial(self._auto_sync_tick, user_id),
        )
        self._auto_sync_minutes[user_id] = minutes
        self.auto_sync.start()
        logger.info("analytics_auto_sync_started user=%s interval_minutes=%s", user_id, minutes)
        return self.get_sync_status(user_id)

    def stop_auto_sync(self, user_id: str) -> Dict[str, Any]:
        if self.auto_sync.unregister(_auto_sync_job_name(user_id)):
            logger.info("analytics_auto_sync_stopped user=%s", user_id)
        self._auto_sync_minutes.pop(user_id, None)
        return self.get_sync_status(user_id)

    def get_sync_status(self, user_id: str) -> Dict[str, Any]:
        job = self.auto_sync.jobs.get(_auto_sync_job_name(user_id))
        return {
            "is_auto_sync_active": job is not None and self.auto_sync.is_running,
            "interval_minutes": self._auto_sync_minutes.get(user_id),
            "active_intervals": len(self.auto_sync.jobs),
            "last_run_at": job.last_finished_at.isoformat() if job and job.last_finished_at else None,
            "next_run_at": job.next_run_at.isoformat() if job and job.next_run_at else None,
        }

    def get_status(self) -> Dict[str, Any]:
        status = self.state.status()
        status["name"] = self.state.name
        status["auto_sync_users"] = len(self.auto_sync.jobs)
        return status

    async def get_sync_statistics(self) -> Dict[str, Any]:
        async with self.session_maker() as db:
            return await get_sync_statistics(db)
