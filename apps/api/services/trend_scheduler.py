"""Periodic trend refresh, niche sweeps, re-scoring and expiry cleanup."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from config import settings
from services.connectors.providers import FetcherRegistry
from services.connectors.types import RawTrendItem, normalize_platform
from services.niche import POPULAR_NICHES, KeywordNicheClassifier, NicheClassifier, matches_niche
from services.scheduling import Clock, SchedulerState, SystemClock
from services.scoring import RelevanceScorer
from services.trends import (
    cleanup_expired_trends,
    normalize_trend_item,
    rescore_trends,
    store_trends,
    trend_statistics,
)

logger = logging.getLogger(__name__)

FETCH_TRENDS_CRON = "0 */2 * * *"
FETCH_NICHE_TRENDS_CRON = "0 */4 * * *"
UPDATE_TREND_SCORES_CRON = "0 */6 * * *"
CLEANUP_TRENDS_CRON = "0 2 * * *"


class TrendScheduler:
    """Keeps the trend store fresh from the registered platform fetchers."""

    def __init__(
        self,
        session_maker: async_sessionmaker[AsyncSession],
        fetchers: FetcherRegistry,
        classifier: Optional[NicheClassifier] = None,
        scorer: Optional[RelevanceScorer] = None,
        clock: Optional[Clock] = None,
        tz: Optional[str] = None,
        niche_delay_seconds: Optional[float] = None,
    ) -> None:
        self.session_maker = session_maker
        self.fetchers = fetchers
        self.classifier = classifier or KeywordNicheClassifier()
        self.scorer = scorer or RelevanceScorer()
        self.clock: Clock = clock or SystemClock()
        self.niche_delay_seconds = (
            settings.NICHE_FETCH_DELAY_SECONDS if niche_delay_seconds is None else niche_delay_seconds
        )
        self.state = SchedulerState("trend-scheduler", self.clock, tz or settings.SCHEDULER_TIMEZONE)
        self.state.register("fetch_trends", FETCH_TRENDS_CRON, self.fetch_all_trends)
        self.state.register("fetch_niche_trends", FETCH_NICHE_TRENDS_CRON, self.fetch_niche_trends)
        self.state.register("update_trend_scores", UPDATE_TREND_SCORES_CRON, self.update_trend_scores)
        self.state.register("cleanup_trends", CLEANUP_TRENDS_CRON, self.cleanup_trends)

    def start(self) -> None:
        self.state.start()

    def stop(self) -> None:
        self.state.stop()

    async def wait_idle(self, timeout: Optional[float] = None) -> bool:
        return await self.state.wait_idle(timeout)

    async def _fetch_platform(self, platform: str, niche: Optional[str]) -> List[RawTrendItem]:
        fetcher = self.fetchers.trend_fetcher(platform)
        return list(await fetcher.fetch_trends(niche))

    async def refresh_trends(
        self,
        platforms: Optional[Sequence[str]] = None,
        niche: Optional[str] = None,
        raise_errors: bool = False,
    ) -> Dict[str, Any]:
        """Fetch, normalize, filter by niche and store; the single ingest path.

        With ``raise_errors`` a platform failure propagates; otherwise it is
        logged and the remaining platforms still land.
        """
        keys = [normalize_platform(p) for p in (platforms or self.fetchers.trend_platforms)]
        results = await asyncio.gather(
            *(self._fetch_platform(platform, niche) for platform in keys),
            return_exceptions=True,
        )

        payloads: List[Dict[str, Any]] = []
        failed: Dict[str, str] = {}
        fetched = 0
        for platform, result in zip(keys, results):
            if isinstance(result, asyncio.CancelledError):
                raise result
            if isinstance(result, Exception):
                if raise_errors:
                    raise result
                failed[platform] = str(result)
                logger.warning("trend_fetch_failed platform=%s niche=%s error=%s", platform, niche, result)
                continue
            fetched += len(result)
            for raw in result:
                payload = normalize_trend_item(platform, raw, self.classifier, self.scorer)
                if matches_niche(payload["niches"], niche):
                    payloads.append(payload)

        async with self.session_maker() as db:
            stored = await store_trends(db, payloads, now=self.clock.now())

        logger.info(
            "trend_refresh platforms=%s niche=%s fetched=%s stored=%s failed=%s",
            ",".join(keys),
            niche,
            fetched,
            len(stored),
            ",".join(failed) or "-",
        )
        return {
            "platforms": keys,
            "niche": niche,
            "fetched": fetched,
            "stored": len(stored),
            "failed_platforms": failed,
        }

    async def fetch_all_trends(self) -> Dict[str, Any]:
        return await self.refresh_trends()

    async def fetch_niche_trends(self) -> Dict[str, Any]:
        """Sweep the popular niches one at a time, pausing between them."""
        summary: Dict[str, Any] = {}
        for index, niche in enumerate(POPULAR_NICHES):
            if index:
                await self.clock.sleep(self.niche_delay_seconds)
            try:
                result = await self.refresh_trends(niche=niche)
                summary[niche] = result["stored"]
            except Exception:
                logger.exception("niche_trend_refresh_failed niche=%s", niche)
                summary[niche] = None
        return summary

    async def update_trend_scores(self) -> int:
        async with self.session_maker() as db:
            return await rescore_trends(db, self.scorer, now=self.clock.now())

    async def cleanup_trends(self) -> int:
        async with self.session_maker() as db:
            return await cleanup_expired_trends(db, now=self.clock.now())

    async def trigger_manual_refresh(
        self,
        platform: Optional[str] = None,
        niche: Optional[str] = None,
    ) -> Dict[str, Any]:
        """On-demand refresh. A named platform propagates its fetch errors."""
        if platform:
            key = normalize_platform(platform)
            return await self.refresh_trends([key], niche=niche, raise_errors=True)
        return await self.refresh_trends(None, niche=niche, raise_errors=False)

    def get_status(self) -> Dict[str, Any]:
        status = self.state.status()
        status["name"] = self.state.name
        return status

    async def get_trend_statistics(self) -> Dict[str, Any]:
        async with self.session_maker() as db:
            return await trend_statistics(db, now=self.clock.now())

