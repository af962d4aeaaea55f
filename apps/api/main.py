"""
Creator Trends API - FastAPI Backend
Trend scoring, analytics aggregation and the schedulers that keep both fresh.
"""

import logging

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from config import settings, validate_scheduler_settings, validate_security_settings
from database import engine, Base, async_session_maker
import models  # noqa: F401
from routers import health, trends, analytics
from services.analytics_scheduler import AnalyticsScheduler
from services.connectors import build_default_registry
from services.trend_scheduler import TrendScheduler

logging.basicConfig(
    level=getattr(logging, str(settings.LOG_LEVEL).upper(), logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s %(message)s",
)


def build_schedulers(session_maker=async_session_maker):
    """Create the trend and analytics schedulers over one shared fetcher registry."""
    fetchers = build_default_registry()
    return (
        TrendScheduler(session_maker, fetchers, tz=settings.SCHEDULER_TIMEZONE),
        AnalyticsScheduler(session_maker, fetchers, tz=settings.SCHEDULER_TIMEZONE),
    )


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan handler for startup/shutdown."""
    # Startup
    print("🚀 Starting Creator Trends API...")
    validate_security_settings()
    validate_scheduler_settings()
    if settings.AUTO_CREATE_DB_SCHEMA:
        try:
            async with engine.begin() as conn:
                await conn.run_sync(Base.metadata.create_all)
            print("🗄️ Database schema verified.")
        except Exception as e:
            print(f"⚠️ Database bootstrap skipped: {e}")

    trend_scheduler = app.state.trend_scheduler
    analytics_scheduler = app.state.analytics_scheduler
    if settings.TREND_SCHEDULER_ENABLED:
        trend_scheduler.start()
        print(f"📅 Trend scheduler started ({len(trend_scheduler.state.jobs)} jobs).")
    if settings.ANALYTICS_SCHEDULER_ENABLED:
        analytics_scheduler.start()
        print(f"📅 Analytics scheduler started ({len(analytics_scheduler.state.jobs)} jobs).")
    yield
    # Shutdown
    trend_scheduler.stop()
    analytics_scheduler.stop()
    grace = float(settings.SCHEDULER_SHUTDOWN_GRACE_SECONDS)
    trends_idle = await trend_scheduler.wait_idle(grace)
    analytics_idle = await analytics_scheduler.wait_idle(grace)
    if not (trends_idle and analytics_idle):
        print("⚠️ Scheduler ticks still in flight at shutdown.")
    print("👋 Shutting down API...")


app = FastAPI(
    title="Creator Trends API",
    description="Score platform trends and aggregate creator analytics",
    version="0.1.0",
    lifespan=lifespan,
)
app.state.trend_scheduler, app.state.analytics_scheduler = build_schedulers()

# CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(health.router, tags=["Health"])
app.include_router(trends.router, prefix="/trends", tags=["Trends"])
app.include_router(analytics.router, prefix="/analytics", tags=["Analytics"])


@app.get("/")
async def root():
    """Root endpoint."""
    return {
        "name": "Creator Trends API",
        "version": "0.1.0",
        "status": "running"
    }
