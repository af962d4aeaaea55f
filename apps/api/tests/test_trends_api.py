import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from database import Base, get_db
from main import app
from services.connectors.providers import SAMPLE_TREND_CATALOG, BaseTrendFetcher, FetcherRegistry
from services.connectors.types import PlatformFetchError
from services.session_token import create_session_token
from services.trend_scheduler import TrendScheduler


TEST_USER_ID = "trends-user"
TEST_AUTH_HEADER = {"Authorization": f"Bearer {create_session_token(TEST_USER_ID)['token']}"}


class FakeTrendFetcher(BaseTrendFetcher):
    def __init__(self, platform, items=None, error=None):
        self.platform = platform
        self.items = list(items or [])
        self.error = error

    async def fetch_trends(self, niche=None):
        if self.error is not None:
            raise self.error
        return list(self.items)


@pytest_asyncio.fixture
async def trends_client(tmp_path):
    db_path = tmp_path / "trends_api.db"
    engine = create_async_engine(f"sqlite+aiosqlite:///{db_path}")
    session_maker = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async def override_get_db():
        async with session_maker() as session:
            yield session

    registry = FetcherRegistry(
        trend_fetchers={
            "instagram": FakeTrendFetcher("instagram", error=PlatformFetchError("instagram", "rate limited")),
            "tiktok": FakeTrendFetcher("tiktok", SAMPLE_TREND_CATALOG["tiktok"]),
            "youtube": FakeTrendFetcher("youtube", SAMPLE_TREND_CATALOG["youtube"]),
        },
        analytics_fetchers={},
    )
    previous_scheduler = app.state.trend_scheduler
    app.state.trend_scheduler = TrendScheduler(session_maker, registry, niche_delay_seconds=0)
    app.dependency_overrides[get_db] = override_get_db
    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.pop(get_db, None)
    app.state.trend_scheduler = previous_scheduler
    await engine.dispose()


@pytest.mark.asyncio
async def test_trend_routes_require_a_session(trends_client):
    response = await trends_client.get("/trends")
    assert response.status_code == 401

    response = await trends_client.get("/trends", headers={"Authorization": "Bearer not-a-token"})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_refresh_then_query_trends(trends_client):
    refresh = await trends_client.post("/trends/refresh", json={}, headers=TEST_AUTH_HEADER)
    assert refresh.status_code == 200
    payload = refresh.json()
    assert payload["message"] == "Trend refresh completed"
    assert payload["stored"] == 4
    assert list(payload["failed_platforms"]) == ["instagram"]

    listing = await trends_client.get("/trends?sort_by=views&limit=2", headers=TEST_AUTH_HEADER)
    assert listing.status_code == 200
    body = listing.json()
    assert [item["external_id"] for item in body["items"]] == ["yt_trend_1", "tt_trend_1"]
    assert body["pagination"]["total"] == 4
    assert body["pagination"]["has_next"] is True

    platform = await trends_client.get("/trends/TikTok?niche=food", headers=TEST_AUTH_HEADER)
    assert platform.status_code == 200
    assert platform.json()["platform"] == "tiktok"
    assert [item["external_id"] for item in platform.json()["items"]] == ["tt_trend_2"]

    trending = await trends_client.get("/trends/trending?platforms=youtube,tiktok&limit=3", headers=TEST_AUTH_HEADER)
    assert trending.status_code == 200
    assert [item["external_id"] for item in trending.json()["items"]] == ["yt_trend_1", "tt_trend_1", "yt_trend_2"]

    search = await trends_client.get("/trends/search?q=kitchen", headers=TEST_AUTH_HEADER)
    assert search.status_code == 200
    assert [item["external_id"] for item in search.json()["items"]] == ["tt_trend_2"]

    stats = await trends_client.get("/trends/statistics", headers=TEST_AUTH_HEADER)
    assert stats.status_code == 200
    assert stats.json()["total_active_trends"] == 4
    assert set(stats.json()["platforms"]) == {"tiktok", "youtube"}


@pytest.mark.asyncio
async def test_refresh_error_mapping(trends_client):
    failed = await trends_client.post("/trends/refresh", json={"platform": "instagram"}, headers=TEST_AUTH_HEADER)
    assert failed.status_code == 502

    unsupported = await trends_client.post("/trends/refresh", json={"platform": "myspace"}, headers=TEST_AUTH_HEADER)
    assert unsupported.status_code == 400

    unknown_platform = await trends_client.get("/trends/myspace", headers=TEST_AUTH_HEADER)
    assert unknown_platform.status_code == 400

    bad_sort = await trends_client.get("/trends?sort_by=random", headers=TEST_AUTH_HEADER)
    assert bad_sort.status_code == 422


@pytest.mark.asyncio
async def test_trend_scheduler_status_route(trends_client):
    response = await trends_client.get("/trends/scheduler/status", headers=TEST_AUTH_HEADER)
    assert response.status_code == 200
    payload = response.json()
    assert payload["name"] == "trend-scheduler"
    assert payload["is_running"] is False
    assert set(payload["jobs"]) == {"fetch_trends", "fetch_niche_trends", "update_trend_scores", "cleanup_trends"}


@pytest.mark.asyncio
async def test_health_probes(trends_client):
    live = await trends_client.get("/health/live")
    assert live.status_code == 200
    assert live.json() == {"alive": True}

    ready = await trends_client.get("/health/ready")
    assert ready.status_code == 503
    assert ready.json()["ready"] is False
