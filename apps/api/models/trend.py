"""Trend model for scored platform trend items."""

import uuid
from datetime import datetime, timedelta, timezone

from sqlalchemy import Boolean, Column, DateTime, Float, Index, Integer, JSON, String, Text
from sqlalchemy.sql import func

from config import settings
from database import Base


def default_trend_expiry() -> datetime:
    return datetime.now(timezone.utc) + timedelta(days=settings.TREND_TTL_DAYS)


def build_trend_key(platform: str, external_id: str) -> str:
    """Platform-qualified identity used for upserts."""
    return f"{platform}_{external_id}"


class Trend(Base):
    """A platform-sourced content item tracked for virality signals."""

    __tablename__ = "trends"
    __table_args__ = (
        Index("ix_trends_platform_active", "platform", "is_active"),
        Index("ix_trends_relevance_created", "relevance_score", "created_at"),
        Index("ix_trends_growth_created", "growth", "created_at"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    platform = Column(String, nullable=False, index=True)
    external_id = Column(String, nullable=False)
    trend_key = Column(String, nullable=False, unique=True, index=True)
    title = Column(String, nullable=False)
    description = Column(Text, nullable=False, default="")
    hashtags = Column(JSON, nullable=False, default=list)
    audio_track = Column(JSON, nullable=True)
    views = Column(Integer, nullable=False, default=0)
    uses = Column(Integer, nullable=False, default=0)
    growth = Column(Integer, nullable=False, default=0)
    engagement_rate = Column(Float, nullable=False, default=0.0)  # derived, 0-100
    niches = Column(JSON, nullable=False, default=lambda: ["general"])
    relevance_score = Column(Float, nullable=False, default=0.0)  # derived, 0-100
    metadata_json = Column(JSON, nullable=True)
    is_active = Column(Boolean, nullable=False, default=True, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False, default=default_trend_expiry, index=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
