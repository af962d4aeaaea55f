from datetime import datetime, timezone
from unittest.mock import MagicMock, patch

import httpx
import pytest
from googleapiclient.errors import HttpError

from ingestion.youtube import YouTubeClient
from services.connectors.providers import (
    SAMPLE_TREND_CATALOG,
    FetcherRegistry,
    InstagramAnalyticsFetcher,
    SampleCatalogTrendFetcher,
    TikTokAnalyticsFetcher,
    YouTubeAnalyticsFetcher,
    YouTubeTrendFetcher,
    build_default_registry,
)
from services.connectors.types import (
    AccountRef,
    ConnectorUnavailableError,
    PlatformFetchError,
    UnsupportedPlatformError,
)


def quota_error():
    return HttpError(resp=MagicMock(status=403, reason="quotaExceeded"), content=b"quota exceeded")


@pytest.mark.asyncio
async def test_youtube_trends_fall_back_to_sample_catalog_without_key():
    client_factory = MagicMock()
    fetcher = YouTubeTrendFetcher(api_key="", client_factory=client_factory)

    items = await fetcher.fetch_trends()

    assert [item.id for item in items] == [item.id for item in SAMPLE_TREND_CATALOG["youtube"]]
    client_factory.assert_not_called()


@pytest.mark.asyncio
async def test_youtube_trends_map_most_popular_chart():
    client = MagicMock(spec=YouTubeClient)
    client.get_most_popular_videos.return_value = [
        {
            "id": "abc123",
            "title": "Desk setup tour",
            "description": "My tech desk #setup #tech",
            "channel_title": "Creator",
            "thumbnail_url": "http://example.com/t.jpg",
            "language": "en",
            "view_count": 1500,
            "like_count": 90,
            "comment_count": 10,
            "duration_seconds": 61,
        }
    ]
    fetcher = YouTubeTrendFetcher(api_key="key", region_code="GB", client_factory=lambda key: client)

    items = await fetcher.fetch_trends("tech")

    client.get_most_popular_videos.assert_called_once_with("GB", 50)
    assert len(items) == 1
    item = items[0]
    assert item.id == "abc123"
    assert item.hashtags == ["setup", "tech"]
    assert item.metrics == {"views": 1500, "likes": 90, "comments": 10}
    assert item.metadata["original_url"] == "https://www.youtube.com/watch?v=abc123"
    assert item.metadata["region"] == "GB"


@pytest.mark.asyncio
async def test_youtube_trend_quota_errors_become_fetch_errors():
    client = MagicMock(spec=YouTubeClient)
    client.get_most_popular_videos.side_effect = quota_error()
    fetcher = YouTubeTrendFetcher(api_key="key", client_factory=lambda key: client)

    with pytest.raises(PlatformFetchError) as excinfo:
        await fetcher.fetch_trends()
    assert excinfo.value.platform == "youtube"


@pytest.mark.asyncio
async def test_sample_catalog_fetcher_accepts_a_custom_catalog():
    fetcher = SampleCatalogTrendFetcher("tiktok", catalog=[])
    assert await fetcher.fetch_trends() == []


@pytest.mark.asyncio
async def test_disabled_connectors_raise_unavailable():
    account = AccountRef(platform="instagram", account_id="ig-1", access_token="tok")
    with pytest.raises(ConnectorUnavailableError):
        await InstagramAnalyticsFetcher(enabled=False, timeout=5).fetch_analytics(account)
    with pytest.raises(ConnectorUnavailableError):
        await TikTokAnalyticsFetcher(enabled=False, timeout=5).fetch_analytics(account)


@pytest.mark.asyncio
async def test_instagram_media_insights_are_parsed():
    seen = {}

    def handler(request):
        seen["path"] = request.url.path
        seen["token"] = request.url.params.get("access_token")
        return httpx.Response(
            200,
            json={
                "data": [
                    {
                        "id": "media-1",
                        "media_type": "REELS",
                        "timestamp": "2026-10-18T10:00:00+0000",
                        "permalink": "https://instagram.com/p/1",
                        "insights": {
                            "data": [
                                {"name": "impressions", "values": [{"value": 1000}]},
                                {"name": "reach", "values": [{"value": 700}]},
                                {"name": "likes", "values": [{"value": 50}]},
                                {"name": "saved", "values": [{"value": 12}]},
                            ]
                        },
                    },
                    {"id": "media-2", "media_type": "IMAGE"},
                ]
            },
        )

    fetcher = InstagramAnalyticsFetcher(enabled=True, timeout=5, transport=httpx.MockTransport(handler))
    items = await fetcher.fetch_analytics(AccountRef(platform="instagram", account_id="ig-1", access_token="tok"))

    assert seen == {"path": "/v18.0/ig-1/media", "token": "tok"}
    assert len(items) == 1
    item = items[0]
    assert item.media_id == "media-1"
    assert item.media_type == "reels"
    assert item.metrics["views"] == 1000
    assert item.metrics["reach"] == 700
    assert item.metrics["saves"] == 12
    assert item.platform_specific["permalink"] == "https://instagram.com/p/1"


@pytest.mark.asyncio
async def test_tiktok_video_list_is_parsed_with_bearer_token():
    seen = {}

    def handler(request):
        seen["auth"] = request.headers.get("Authorization")
        return httpx.Response(
            200,
            json={
                "data": {
                    "videos": [
                        {
                            "id": "v1",
                            "title": "Dance",
                            "view_count": 5000,
                            "like_count": 400,
                            "comment_count": 20,
                            "share_count": 30,
                            "create_time": 1792000000,
                        }
                    ]
                }
            },
        )

    fetcher = TikTokAnalyticsFetcher(enabled=True, timeout=5, transport=httpx.MockTransport(handler))
    items = await fetcher.fetch_analytics(AccountRef(platform="tiktok", account_id="tt-1", access_token="secret"))

    assert seen["auth"] == "Bearer secret"
    assert items[0].media_id == "v1"
    assert items[0].timestamp == datetime.fromtimestamp(1792000000, tz=timezone.utc)
    assert items[0].metrics["impressions"] == 5000
    assert items[0].metrics["shares"] == 30


@pytest.mark.asyncio
async def test_tiktok_upstream_errors_become_fetch_errors():
    fetcher = TikTokAnalyticsFetcher(
        enabled=True,
        timeout=5,
        transport=httpx.MockTransport(lambda request: httpx.Response(500, json={"error": "boom"})),
    )
    with pytest.raises(PlatformFetchError):
        await fetcher.fetch_analytics(AccountRef(platform="tiktok", account_id="tt-1", access_token="secret"))


@pytest.mark.asyncio
async def test_youtube_analytics_joins_uploads_with_statistics():
    client = MagicMock(spec=YouTubeClient)
    client.get_channel_uploads.return_value = [
        {"id": "v1", "title": "First", "published_at": "2026-10-01T12:00:00Z"},
        {"id": "v2", "title": "Missing stats", "published_at": "2026-10-02T12:00:00Z"},
    ]
    client.get_video_details.return_value = {
        "v1": {"view_count": 900, "like_count": 45, "comment_count": 5, "duration": "PT4M"},
    }
    tokens = []

    def factory(token):
        tokens.append(token)
        return client

    fetcher = YouTubeAnalyticsFetcher(client_factory=factory)
    items = await fetcher.fetch_analytics(AccountRef(platform="youtube", account_id="UC1", access_token="oauth"))

    assert tokens == ["oauth"]
    client.get_channel_uploads.assert_called_once_with("UC1", 50)
    assert [item.media_id for item in items] == ["v1"]
    assert items[0].timestamp == datetime(2026, 10, 1, 12, 0, tzinfo=timezone.utc)
    assert items[0].metrics["likes"] == 45


@pytest.mark.asyncio
async def test_youtube_analytics_network_errors_become_fetch_errors():
    client = MagicMock(spec=YouTubeClient)
    client.get_channel_uploads.side_effect = ConnectionError("socket timeout")
    fetcher = YouTubeAnalyticsFetcher(client_factory=lambda token: client)

    with pytest.raises(PlatformFetchError) as excinfo:
        await fetcher.fetch_analytics(AccountRef(platform="youtube", account_id="UC1", access_token="oauth"))
    assert excinfo.value.platform == "youtube"
    assert "socket timeout" in str(excinfo.value)


def test_registry_lookup_errors():
    registry = FetcherRegistry(trend_fetchers={"tiktok": SampleCatalogTrendFetcher("tiktok")}, analytics_fetchers={})

    assert registry.trend_platforms == ["tiktok"]
    assert registry.trend_fetcher("TIKTOK").platform == "tiktok"
    with pytest.raises(UnsupportedPlatformError):
        registry.trend_fetcher("myspace")
    with pytest.raises(ConnectorUnavailableError):
        registry.trend_fetcher("youtube")
    with pytest.raises(ConnectorUnavailableError):
        registry.analytics_fetcher("instagram")


def test_default_registry_covers_every_platform():
    registry = build_default_registry()
    assert registry.trend_platforms == ["instagram", "tiktok", "youtube"]
    assert sorted(registry.analytics_fetchers) == ["instagram", "tiktok", "youtube"]


def test_youtube_client_parses_most_popular_chart():
    with patch("ingestion.youtube.build") as mock_build:
        service = MagicMock()
        mock_build.return_value = service
        service.videos.return_value.list.return_value.execute.return_value = {
            "items": [
                {
                    "id": "abc",
                    "snippet": {"title": "T", "description": "D", "channelTitle": "C"},
                    "statistics": {"viewCount": "10", "likeCount": "2", "commentCount": "1"},
                    "contentDetails": {"duration": "PT1H2M3S"},
                }
            ]
        }
        client = YouTubeClient(api_key="key")
        videos = client.get_most_popular_videos("US", 500)

    kwargs = service.videos.return_value.list.call_args.kwargs
    assert kwargs["chart"] == "mostPopular"
    assert kwargs["maxResults"] == 50
    assert videos[0]["view_count"] == 10
    assert videos[0]["duration_seconds"] == 3723
    assert videos[0]["language"] == "en"


def test_youtube_client_requires_credentials():
    with pytest.raises(ValueError):
        YouTubeClient()
