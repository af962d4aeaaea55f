"""Analytics models for synced media metrics and daily rollups."""

import uuid

from sqlalchemy import (
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    JSON,
    String,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from database import Base


class AnalyticsRecord(Base):
    """Latest metrics measurement for one piece of a creator's media."""

    __tablename__ = "analytics_records"
    __table_args__ = (
        Index("ix_analytics_user_platform_timestamp", "user_id", "platform", "timestamp"),
        Index("ix_analytics_platform_media_timestamp", "platform", "media_id", "timestamp"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    platform = Column(String, nullable=False, index=True)
    account_id = Column(String, nullable=False, index=True)
    media_id = Column(String, nullable=False, index=True)
    media_type = Column(String, nullable=False, default="post")
    views = Column(Integer, nullable=False, default=0)
    likes = Column(Integer, nullable=False, default=0)
    comments = Column(Integer, nullable=False, default=0)
    shares = Column(Integer, nullable=False, default=0)
    saves = Column(Integer, nullable=False, default=0)
    impressions = Column(Integer, nullable=False, default=0)
    reach = Column(Integer, nullable=False, default=0)
    engagement_rate = Column(Float, nullable=False, default=0.0)  # derived, 0-100
    reach_rate = Column(Float, nullable=False, default=0.0)  # derived, 0-100
    daily_growth = Column(Integer, nullable=False, default=0)
    weekly_growth = Column(Integer, nullable=False, default=0)
    monthly_growth = Column(Integer, nullable=False, default=0)
    platform_specific_json = Column(JSON, nullable=True)
    published_at = Column(DateTime(timezone=True), nullable=True)
    timestamp = Column(DateTime(timezone=True), nullable=False, index=True)  # measurement time
    synced_at = Column(DateTime(timezone=True), nullable=False, index=True)
    is_active = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), index=True)
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())

    user = relationship("User", back_populates="analytics_records")


class AnalyticsDailyRollup(Base):
    """Per-user, per-platform totals for one UTC day."""

    __tablename__ = "analytics_daily_rollups"
    __table_args__ = (
        UniqueConstraint("user_id", "platform", "day", name="uq_analytics_rollup_user_platform_day"),
    )

    id = Column(String, primary_key=True, default=lambda: str(uuid.uuid4()))
    user_id = Column(String, ForeignKey("users.id"), nullable=False, index=True)
    platform = Column(String, nullable=False, index=True)
    day = Column(Date, nullable=False, index=True)
    total_views = Column(Integer, nullable=False, default=0)
    total_likes = Column(Integer, nullable=False, default=0)
    total_comments = Column(Integer, nullable=False, default=0)
    total_shares = Column(Integer, nullable=False, default=0)
    total_saves = Column(Integer, nullable=False, default=0)
    total_impressions = Column(Integer, nullable=False, default=0)
    total_reach = Column(Integer, nullable=False, default=0)
    avg_engagement_rate = Column(Float, nullable=False, default=0.0)
    content_count = Column(Integer, nullable=False, default=0)
    breakdown_json = Column(JSON, nullable=True)
    last_synced_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), onupdate=func.now())
