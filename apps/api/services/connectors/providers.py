"""Platform trend and analytics fetchers with feature-flagged connectors."""

from __future__ import annotations

import asyncio
import logging
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence

import httpx
from google.auth.exceptions import GoogleAuthError
from googleapiclient.errors import HttpError

from config import settings
from ingestion.youtube import (
    YouTubeClient,
    create_youtube_client_with_api_key,
    create_youtube_client_with_oauth,
)
from services.connectors.types import (
    AccountRef,
    ConnectorUnavailableError,
    PlatformFetchError,
    PlatformKey,
    RawMediaMetrics,
    RawTrendItem,
    normalize_platform,
)
from services.niche import extract_hashtags

logger = logging.getLogger(__name__)

# Request failures from the Google client, including socket errors raised inside the worker thread.
GOOGLE_REQUEST_ERRORS = (HttpError, GoogleAuthError, OSError)

INSTAGRAM_GRAPH_URL = "https://graph.facebook.com/v18.0"
TIKTOK_API_URL = "https://open.tiktokapis.com/v2"
TIKTOK_VIDEO_FIELDS = (
    "id,title,video_description,duration,cover_image_url,embed_link,"
    "like_count,comment_count,share_count,view_count,create_time"
)


def _safe_int(value: Any, default: int = 0) -> int:
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return default


def _parse_datetime(value: Any) -> Optional[datetime]:
    if isinstance(value, datetime):
        return value if value.tzinfo is not None else value.replace(tzinfo=timezone.utc)
    text = str(value or "").strip()
    if not text:
        return None
    try:
        parsed = datetime.fromisoformat(text.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


class BaseTrendFetcher(ABC):
    platform: PlatformKey

    @abstractmethod
    async def fetch_trends(self, niche: Optional[str] = None) -> List[RawTrendItem]:
        raise NotImplementedError


class BaseAnalyticsFetcher(ABC):
    platform: PlatformKey

    @abstractmethod
    async def fetch_analytics(self, account: AccountRef) -> List[RawMediaMetrics]:
        raise NotImplementedError


# Instagram and TikTok expose no public trending endpoint; these catalogs
# stand in until a partner data source is configured.
SAMPLE_TREND_CATALOG: Dict[str, List[RawTrendItem]] = {
    "instagram": [
        RawTrendItem(
            id="ig_trend_1",
            title="Morning Routine Aesthetic",
            description="Start your day with intention and style",
            hashtags=["morningroutine", "aesthetic", "selfcare", "lifestyle"],
            metrics={"views": 250000, "likes": 15000, "comments": 800, "growth": 1200},
            metadata={"thumbnail_url": "https://example.com/thumb1.jpg"},
        ),
        RawTrendItem(
            id="ig_trend_2",
            title="Quick Workout Challenge",
            description="5-minute HIIT workout you can do anywhere",
            hashtags=["fitness", "workout", "hiit", "challenge"],
            metrics={"views": 180000, "likes": 12000, "comments": 600, "growth": 800},
            metadata={"thumbnail_url": "https://example.com/thumb2.jpg"},
        ),
    ],
    "tiktok": [
        RawTrendItem(
            id="tt_trend_1",
            title="Dance Challenge",
            description="New viral dance everyone is doing",
            hashtags=["dance", "viral", "challenge", "fyp"],
            metrics={"views": 500000, "likes": 35000, "comments": 2000, "growth": 2500},
            audio_track={"id": "audio_1", "title": "Trending Beat", "artist": "Unknown"},
            metadata={"thumbnail_url": "https://example.com/thumb3.jpg"},
        ),
        RawTrendItem(
            id="tt_trend_2",
            title="Cooking Hack",
            description="Mind-blowing kitchen trick",
            hashtags=["cooking", "hack", "food", "kitchen"],
            metrics={"views": 320000, "likes": 18000, "comments": 900, "growth": 1500},
            metadata={"thumbnail_url": "https://example.com/thumb4.jpg"},
        ),
    ],
    "youtube": [
        RawTrendItem(
            id="yt_trend_1",
            title="Ultimate Tech Review",
            description="Reviewing the latest gadgets and tech innovations",
            hashtags=["tech", "review", "gadgets"],
            metrics={"views": 800000, "likes": 45000, "comments": 3500, "growth": 3000},
            metadata={"thumbnail_url": "https://example.com/thumb5.jpg", "duration": 720},
        ),
        RawTrendItem(
            id="yt_trend_2",
            title="Travel Vlog: Hidden Gems",
            description="Discovering amazing places off the beaten path",
            hashtags=["travel", "vlog", "adventure", "explore"],
            metrics={"views": 450000, "likes": 28000, "comments": 1800, "growth": 1800},
            metadata={"thumbnail_url": "https://example.com/thumb6.jpg", "duration": 900},
        ),
    ],
}


class SampleCatalogTrendFetcher(BaseTrendFetcher):
    """Serves the bundled catalog; niche filtering happens after classification."""

    def __init__(self, platform: PlatformKey, catalog: Optional[Sequence[RawTrendItem]] = None) -> None:
        self.platform = platform
        self.catalog = list(catalog if catalog is not None else SAMPLE_TREND_CATALOG.get(platform, []))

    async def fetch_trends(self, niche: Optional[str] = None) -> List[RawTrendItem]:
        logger.info("Serving %s sample trends for platform=%s niche=%s", len(self.catalog), self.platform, niche)
        return list(self.catalog)


class YouTubeTrendFetcher(BaseTrendFetcher):
    """Most-popular chart via the Data API, sample catalog without an API key."""

    platform: PlatformKey = "youtube"

    def __init__(
        self,
        api_key: Optional[str] = None,
        region_code: str = "US",
        client_factory: Callable[[str], YouTubeClient] = create_youtube_client_with_api_key,
    ) -> None:
        self.api_key = (api_key or "").strip()
        self.region_code = region_code
        self.client_factory = client_factory
        self._fallback = SampleCatalogTrendFetcher("youtube")

    async def fetch_trends(self, niche: Optional[str] = None) -> List[RawTrendItem]:
        if not self.api_key:
            logger.warning("YouTube API key not configured, using sample trends")
            return await self._fallback.fetch_trends(niche)

        try:
            client = self.client_factory(self.api_key)
            videos = await asyncio.to_thread(client.get_most_popular_videos, self.region_code, 50)
        except GOOGLE_REQUEST_ERRORS as exc:
            raise PlatformFetchError("youtube", f"most-popular chart request failed: {exc}") from exc

        return [
            RawTrendItem(
                id=video["id"],
                title=video.get("title", ""),
                description=video.get("description", ""),
                hashtags=extract_hashtags(video.get("description")),
                metrics={
                    "views": video.get("view_count", 0),
                    "likes": video.get("like_count", 0),
                    "comments": video.get("comment_count", 0),
                },
                metadata={
                    "original_url": f"https://www.youtube.com/watch?v={video['id']}",
                    "thumbnail_url": video.get("thumbnail_url", ""),
                    "duration": video.get("duration_seconds", 0),
                    "language": video.get("language", "en"),
                    "region": self.region_code,
                    "channel_title": video.get("channel_title", ""),
                },
            )
            for video in videos
        ]


class _FlaggedHttpAnalyticsFetcher(BaseAnalyticsFetcher):
    """Shared httpx plumbing for connectors gated by a feature flag."""

    setup_url: str = ""

    def __init__(self, *, enabled: bool, timeout: float, transport: Optional[httpx.AsyncBaseTransport] = None) -> None:
        self.enabled = enabled
        self.timeout = timeout
        self.transport = transport

    def _ensure_enabled(self) -> None:
        if not self.enabled:
            raise ConnectorUnavailableError(
                f"{self.platform.capitalize()} analytics connector is disabled. "
                f"Enable the connector flag and provider settings. Setup guide: {self.setup_url}"
            )

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(timeout=self.timeout, transport=self.transport)


class InstagramAnalyticsFetcher(_FlaggedHttpAnalyticsFetcher):
    platform: PlatformKey = "instagram"
    setup_url = "https://developers.facebook.com/docs/instagram-platform/"

    async def fetch_analytics(self, account: AccountRef) -> List[RawMediaMetrics]:
        self._ensure_enabled()
        params = {
            "fields": (
                "id,media_type,media_url,permalink,timestamp,caption,"
                "insights.metric(impressions,reach,likes,comments,shares,saved)"
            ),
            "limit": 100,
            "access_token": account.access_token,
        }
        try:
            async with self._client() as client:
                response = await client.get(f"{INSTAGRAM_GRAPH_URL}/{account.account_id}/media", params=params)
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise PlatformFetchError("instagram", f"media insights request failed: {exc}") from exc

        items: List[RawMediaMetrics] = []
        for media in payload.get("data", []) or []:
            insights = (media.get("insights") or {}).get("data") or []
            if not insights:
                continue
            values: Dict[str, int] = {}
            for insight in insights:
                points = insight.get("values") or [{}]
                values[str(insight.get("name"))] = _safe_int(points[0].get("value"), 0)
            items.append(
                RawMediaMetrics(
                    media_id=str(media.get("id")),
                    media_type=str(media.get("media_type") or "post").lower(),
                    timestamp=_parse_datetime(media.get("timestamp")),
                    metrics={
                        "views": values.get("impressions", 0),
                        "likes": values.get("likes", 0),
                        "comments": values.get("comments", 0),
                        "shares": values.get("shares", 0),
                        "saves": values.get("saved", values.get("saves", 0)),
                        "impressions": values.get("impressions", 0),
                        "reach": values.get("reach", 0),
                    },
                    platform_specific={
                        "permalink": media.get("permalink"),
                        "caption": media.get("caption"),
                        "media_url": media.get("media_url"),
                    },
                )
            )
        return items


class TikTokAnalyticsFetcher(_FlaggedHttpAnalyticsFetcher):
    platform: PlatformKey = "tiktok"
    setup_url = "https://developers.tiktok.com/doc/tiktok-api-v2-video-list/"

    async def fetch_analytics(self, account: AccountRef) -> List[RawMediaMetrics]:
        self._ensure_enabled()
        try:
            async with self._client() as client:
                response = await client.post(
                    f"{TIKTOK_API_URL}/video/list/",
                    params={"fields": TIKTOK_VIDEO_FIELDS},
                    headers={"Authorization": f"Bearer {account.access_token}"},
                    json={"max_count": 20},
                )
                response.raise_for_status()
                payload = response.json()
        except httpx.HTTPError as exc:
            raise PlatformFetchError("tiktok", f"video list request failed: {exc}") from exc

        videos = ((payload.get("data") or {}).get("videos")) or []
        items: List[RawMediaMetrics] = []
        for video in videos:
            views = _safe_int(video.get("view_count"), 0)
            created = video.get("create_time")
            items.append(
                RawMediaMetrics(
                    media_id=str(video.get("id")),
                    media_type="video",
                    timestamp=datetime.fromtimestamp(int(created), tz=timezone.utc) if created else None,
                    metrics={
                        "views": views,
                        "likes": _safe_int(video.get("like_count"), 0),
                        "comments": _safe_int(video.get("comment_count"), 0),
                        "shares": _safe_int(video.get("share_count"), 0),
                        "saves": 0,
                        "impressions": views,
                        "reach": views,
                    },
                    platform_specific={
                        "title": video.get("title"),
                        "description": video.get("video_description"),
                        "duration": video.get("duration"),
                        "cover_image_url": video.get("cover_image_url"),
                        "embed_link": video.get("embed_link"),
                    },
                )
            )
        return items


class YouTubeAnalyticsFetcher(BaseAnalyticsFetcher):
    platform: PlatformKey = "youtube"

    def __init__(self, client_factory: Callable[[str], YouTubeClient] = create_youtube_client_with_oauth) -> None:
        self.client_factory = client_factory

    def _collect(self, account: AccountRef) -> List[RawMediaMetrics]:
        client = self.client_factory(account.access_token)
        uploads = client.get_channel_uploads(account.account_id, 50)
        details = client.get_video_details([upload["id"] for upload in uploads])
        items: List[RawMediaMetrics] = []
        for upload in uploads:
            stats = details.get(upload["id"])
            if not stats:
                continue
            views = stats.get("view_count", 0)
            items.append(
                RawMediaMetrics(
                    media_id=upload["id"],
                    media_type="video",
                    timestamp=_parse_datetime(upload.get("published_at")),
                    metrics={
                        "views": views,
                        "likes": stats.get("like_count", 0),
                        "comments": stats.get("comment_count", 0),
                        "shares": 0,
                        "saves": 0,
                        "impressions": views,
                        "reach": views,
                    },
                    platform_specific={
                        "title": upload.get("title"),
                        "description": upload.get("description"),
                        "thumbnail_url": upload.get("thumbnail_url"),
                        "duration": stats.get("duration"),
                        "channel_title": upload.get("channel_title"),
                    },
                )
            )
        return items

    async def fetch_analytics(self, account: AccountRef) -> List[RawMediaMetrics]:
        try:
            return await asyncio.to_thread(self._collect, account)
        except GOOGLE_REQUEST_ERRORS as exc:
            raise PlatformFetchError("youtube", f"channel analytics request failed: {exc}") from exc


class FetcherRegistry:
    """Platform -> fetcher lookup shared by both schedulers."""

    def __init__(
        self,
        trend_fetchers: Mapping[str, BaseTrendFetcher],
        analytics_fetchers: Mapping[str, BaseAnalyticsFetcher],
    ) -> None:
        self.trend_fetchers = dict(trend_fetchers)
        self.analytics_fetchers = dict(analytics_fetchers)

    @property
    def trend_platforms(self) -> List[str]:
        return list(self.trend_fetchers.keys())

    def trend_fetcher(self, platform: str) -> BaseTrendFetcher:
        key = normalize_platform(platform)
        fetcher = self.trend_fetchers.get(key)
        if fetcher is None:
            raise ConnectorUnavailableError(f"No trend fetcher registered for {key}.")
        return fetcher

    def analytics_fetcher(self, platform: str) -> BaseAnalyticsFetcher:
        key = normalize_platform(platform)
        fetcher = self.analytics_fetchers.get(key)
        if fetcher is None:
            raise ConnectorUnavailableError(f"No analytics fetcher registered for {key}.")
        return fetcher


def connector_capabilities() -> Dict[str, bool]:
    return {
        "instagram_analytics_available": bool(settings.ENABLE_INSTAGRAM_CONNECTORS),
        "tiktok_analytics_available": bool(settings.ENABLE_TIKTOK_CONNECTORS),
        "youtube_trend_chart_available": bool((settings.YOUTUBE_API_KEY or "").strip()),
    }


def build_default_registry() -> FetcherRegistry:
    timeout = float(settings.PLATFORM_HTTP_TIMEOUT_SECONDS)
    return FetcherRegistry(
        trend_fetchers={
            "instagram": SampleCatalogTrendFetcher("instagram"),
            "tiktok": SampleCatalogTrendFetcher("tiktok"),
            "youtube": YouTubeTrendFetcher(api_key=settings.YOUTUBE_API_KEY),
        },
        analytics_fetchers={
            "instagram": InstagramAnalyticsFetcher(
                enabled=bool(settings.ENABLE_INSTAGRAM_CONNECTORS),
                timeout=timeout,
            ),
            "tiktok": TikTokAnalyticsFetcher(
                enabled=bool(settings.ENABLE_TIKTOK_CONNECTORS),
                timeout=timeout,
            ),
            "youtube": YouTubeAnalyticsFetcher(),
        },
    )
