"""create trends and analytics schema

Revision ID: 20261019_000001
Revises:
Create Date: 2026-10-19 00:00:01.000000
"""

from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa


# revision identifiers, used by Alembic.
revision: str = "20261019_000001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


def upgrade() -> None:
    op.create_table(
        "users",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("email", sa.String(), nullable=False),
        sa.Column("name", sa.String(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False, server_default=sa.true()),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("email"),
    )
    op.create_index(op.f("ix_users_email"), "users", ["email"], unique=True)

    op.create_table(
        "connections",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("platform_user_id", sa.String(), nullable=False),
        sa.Column("platform_handle", sa.String(), nullable=True),
        sa.Column("access_token_encrypted", sa.Text(), nullable=False),
        sa.Column("refresh_token_encrypted", sa.Text(), nullable=True),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("scope", sa.String(), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_connections_user_id"), "connections", ["user_id"], unique=False)
    op.create_index(op.f("ix_connections_platform"), "connections", ["platform"], unique=False)
    op.create_index(op.f("ix_connections_platform_user_id"), "connections", ["platform_user_id"], unique=False)

    op.create_table(
        "trends",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("external_id", sa.String(), nullable=False),
        sa.Column("trend_key", sa.String(), nullable=False),
        sa.Column("title", sa.String(), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("hashtags", sa.JSON(), nullable=False),
        sa.Column("audio_track", sa.JSON(), nullable=True),
        sa.Column("views", sa.Integer(), nullable=False),
        sa.Column("uses", sa.Integer(), nullable=False),
        sa.Column("growth", sa.Integer(), nullable=False),
        sa.Column("engagement_rate", sa.Float(), nullable=False),
        sa.Column("niches", sa.JSON(), nullable=False),
        sa.Column("relevance_score", sa.Float(), nullable=False),
        sa.Column("metadata_json", sa.JSON(), nullable=True),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("expires_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_trends_platform"), "trends", ["platform"], unique=False)
    op.create_index(op.f("ix_trends_trend_key"), "trends", ["trend_key"], unique=True)
    op.create_index(op.f("ix_trends_is_active"), "trends", ["is_active"], unique=False)
    op.create_index(op.f("ix_trends_expires_at"), "trends", ["expires_at"], unique=False)
    op.create_index(op.f("ix_trends_created_at"), "trends", ["created_at"], unique=False)
    op.create_index("ix_trends_platform_active", "trends", ["platform", "is_active"], unique=False)
    op.create_index("ix_trends_relevance_created", "trends", ["relevance_score", "created_at"], unique=False)
    op.create_index("ix_trends_growth_created", "trends", ["growth", "created_at"], unique=False)

    op.create_table(
        "analytics_records",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("account_id", sa.String(), nullable=False),
        sa.Column("media_id", sa.String(), nullable=False),
        sa.Column("media_type", sa.String(), nullable=False),
        sa.Column("views", sa.Integer(), nullable=False),
        sa.Column("likes", sa.Integer(), nullable=False),
        sa.Column("comments", sa.Integer(), nullable=False),
        sa.Column("shares", sa.Integer(), nullable=False),
        sa.Column("saves", sa.Integer(), nullable=False),
        sa.Column("impressions", sa.Integer(), nullable=False),
        sa.Column("reach", sa.Integer(), nullable=False),
        sa.Column("engagement_rate", sa.Float(), nullable=False),
        sa.Column("reach_rate", sa.Float(), nullable=False),
        sa.Column("daily_growth", sa.Integer(), nullable=False),
        sa.Column("weekly_growth", sa.Integer(), nullable=False),
        sa.Column("monthly_growth", sa.Integer(), nullable=False),
        sa.Column("platform_specific_json", sa.JSON(), nullable=True),
        sa.Column("published_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("synced_at", sa.DateTime(timezone=True), nullable=False),
        sa.Column("is_active", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(op.f("ix_analytics_records_user_id"), "analytics_records", ["user_id"], unique=False)
    op.create_index(op.f("ix_analytics_records_platform"), "analytics_records", ["platform"], unique=False)
    op.create_index(op.f("ix_analytics_records_account_id"), "analytics_records", ["account_id"], unique=False)
    op.create_index(op.f("ix_analytics_records_media_id"), "analytics_records", ["media_id"], unique=False)
    op.create_index(op.f("ix_analytics_records_timestamp"), "analytics_records", ["timestamp"], unique=False)
    op.create_index(op.f("ix_analytics_records_synced_at"), "analytics_records", ["synced_at"], unique=False)
    op.create_index(op.f("ix_analytics_records_created_at"), "analytics_records", ["created_at"], unique=False)
    op.create_index(
        "ix_analytics_user_platform_timestamp",
        "analytics_records",
        ["user_id", "platform", "timestamp"],
        unique=False,
    )
    op.create_index(
        "ix_analytics_platform_media_timestamp",
        "analytics_records",
        ["platform", "media_id", "timestamp"],
        unique=False,
    )

    op.create_table(
        "analytics_daily_rollups",
        sa.Column("id", sa.String(), nullable=False),
        sa.Column("user_id", sa.String(), nullable=False),
        sa.Column("platform", sa.String(), nullable=False),
        sa.Column("day", sa.Date(), nullable=False),
        sa.Column("total_views", sa.Integer(), nullable=False),
        sa.Column("total_likes", sa.Integer(), nullable=False),
        sa.Column("total_comments", sa.Integer(), nullable=False),
        sa.Column("total_shares", sa.Integer(), nullable=False),
        sa.Column("total_saves", sa.Integer(), nullable=False),
        sa.Column("total_impressions", sa.Integer(), nullable=False),
        sa.Column("total_reach", sa.Integer(), nullable=False),
        sa.Column("avg_engagement_rate", sa.Float(), nullable=False),
        sa.Column("content_count", sa.Integer(), nullable=False),
        sa.Column("breakdown_json", sa.JSON(), nullable=True),
        sa.Column("last_synced_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("CURRENT_TIMESTAMP"), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), nullable=True),
        sa.ForeignKeyConstraint(["user_id"], ["users.id"]),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("user_id", "platform", "day", name="uq_analytics_rollup_user_platform_day"),
    )
    op.create_index(op.f("ix_analytics_daily_rollups_user_id"), "analytics_daily_rollups", ["user_id"], unique=False)
    op.create_index(op.f("ix_analytics_daily_rollups_platform"), "analytics_daily_rollups", ["platform"], unique=False)
    op.create_index(op.f("ix_analytics_daily_rollups_day"), "analytics_daily_rollups", ["day"], unique=False)


def downgrade() -> None:
    op.drop_table("analytics_daily_rollups")
    op.drop_table("analytics_records")
    op.drop_table("trends")
    op.drop_table("connections")
    op.drop_table("users")
