"""
repute.database.models — SQLAlchemy 2.0 Data Models
====================================================

Durable tables behind the reputation engine.

Tables:
- interactions          — Every recorded user action with its computed weight
- archived_interactions — Tombstones for low-value interactions removed by consolidation
- personality_profiles  — Derived behavioural profile, upserted by user_id
- leaderboard_entries   — Ranked aggregate of points per user
- settings              — Admin-tunable scoring policy (key → JSON value)
"""

from __future__ import annotations

import enum
from datetime import datetime

from sqlalchemy import (
    DateTime,
    Float,
    Index,
    Integer,
    String,
    Text,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column


# ---------------------------------------------------------------------------
# Base
# ---------------------------------------------------------------------------
class Base(DeclarativeBase):
    """Shared base for all Repute ORM models."""


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------
class InteractionType(enum.StrEnum):
    """Known interaction tags.

    The ``interactions.interaction_type`` column is a free string; unknown
    tags are stored as-is and score with the default multiplier.
    """
    RAID_PARTICIPATION = "raid_participation"
    RAID_INITIATION = "raid_initiation"
    QUALITY_ENGAGEMENT = "quality_engagement"
    COMMUNITY_HELP = "community_help"
    CONSTRUCTIVE_FEEDBACK = "constructive_feedback"
    SPAM_REPORT = "spam_report"
    TOXIC_BEHAVIOR = "toxic_behavior"
    POSITIVE_FEEDBACK = "positive_feedback"
    CONSTRUCTIVE_CRITICISM = "constructive_criticism"
    MENTOR_BEHAVIOR = "mentor_behavior"
    KNOWLEDGE_SHARING = "knowledge_sharing"
    BUG_REPORT = "bug_report"
    FEATURE_SUGGESTION = "feature_suggestion"
    TELEGRAM_MESSAGE = "telegram_message"
    DISCORD_MESSAGE = "discord_message"
    UNKNOWN = "unknown"


# ---------------------------------------------------------------------------
# Interaction — one row per recorded action
# ---------------------------------------------------------------------------
class Interaction(Base):
    __tablename__ = "interactions"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    username: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    interaction_type: Mapped[str] = mapped_column(String(50), nullable=False)
    content: Mapped[str] = mapped_column(Text, nullable=False, default="")
    context: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    platform: Mapped[str] = mapped_column(String(30), nullable=False, default="unknown")
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    sentiment_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    quality_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    related_raid_id: Mapped[str | None] = mapped_column(String(100), nullable=True)
    timestamp: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_interactions_user_time", "user_id", "timestamp"),
        Index("ix_interactions_timestamp", "timestamp"),
        # Consolidation predicate: old AND low weight
        Index("ix_interactions_time_weight", "timestamp", "weight"),
    )

    def __repr__(self) -> str:
        return (
            f"<Interaction id={self.id} user={self.user_id} "
            f"type={self.interaction_type} weight={self.weight:.2f}>"
        )


# ---------------------------------------------------------------------------
# ArchivedInteraction — consolidation tombstones
# ---------------------------------------------------------------------------
class ArchivedInteraction(Base):
    """Record of an interaction removed by consolidation.

    ``original_id`` is unique, so archiving the same interaction twice is
    rejected by the database rather than silently duplicated.
    """
    __tablename__ = "archived_interactions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    original_id: Mapped[str] = mapped_column(String(64), nullable=False, unique=True)
    user_id: Mapped[str] = mapped_column(String(100), nullable=False)
    weight: Mapped[float] = mapped_column(Float, nullable=False)
    reason: Mapped[str] = mapped_column(
        String(50), nullable=False, default="low_weight_consolidation"
    )
    archived_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_archived_interactions_user", "user_id"),
    )

    def __repr__(self) -> str:
        return f"<ArchivedInteraction original={self.original_id} user={self.user_id}>"


# ---------------------------------------------------------------------------
# PersonalityProfileRow — persisted behavioural profile
# ---------------------------------------------------------------------------
class PersonalityProfileRow(Base):
    __tablename__ = "personality_profiles"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    engagement_style: Mapped[str] = mapped_column(String(30), nullable=False)
    communication_tone: Mapped[str] = mapped_column(String(20), nullable=False)
    activity_level: Mapped[str] = mapped_column(String(20), nullable=False)
    community_contribution: Mapped[str] = mapped_column(String(20), nullable=False)
    reliability_score: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    leadership_potential: Mapped[float] = mapped_column(Float, nullable=False, default=0.5)
    traits: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    interaction_patterns: Mapped[dict | None] = mapped_column(JSONB, nullable=True)
    last_updated: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    def __repr__(self) -> str:
        return f"<PersonalityProfileRow user={self.user_id} style={self.engagement_style!r}>"


# ---------------------------------------------------------------------------
# LeaderboardEntry — ranked standing per user
# ---------------------------------------------------------------------------
class LeaderboardEntry(Base):
    __tablename__ = "leaderboard_entries"

    user_id: Mapped[str] = mapped_column(String(100), primary_key=True)
    username: Mapped[str] = mapped_column(String(100), nullable=False, default="")
    total_points: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    raids_participated: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    successful_engagements: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    streak: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    rank: Mapped[int | None] = mapped_column(Integer, nullable=True)
    badges: Mapped[list | None] = mapped_column(JSONB, nullable=True)
    last_activity: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now()
    )

    __table_args__ = (
        Index("ix_leaderboard_points_desc", "total_points"),
    )

    def __repr__(self) -> str:
        return (
            f"<LeaderboardEntry user={self.user_id} "
            f"points={self.total_points:.1f} rank={self.rank}>"
        )


# ---------------------------------------------------------------------------
# Setting — admin-configurable key-value store
# ---------------------------------------------------------------------------
class Setting(Base):
    """Key-value store for scoring policy.

    Every tuning knob (type multipliers, decay half-life, evaluator weights,
    profiler thresholds) can be overridden here without redeploying.
    Values are stored as JSON strings; typed accessors live in
    :class:`~repute.engine.cache.ConfigCache`.
    """
    __tablename__ = "settings"

    key: Mapped[str] = mapped_column(String(100), primary_key=True)
    value_json: Mapped[str] = mapped_column(Text, nullable=False)
    category: Mapped[str] = mapped_column(String(50), nullable=False, default="general")
    description: Mapped[str | None] = mapped_column(Text, default=None)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )

    __table_args__ = (
        Index("ix_settings_category", "category"),
    )

    def __repr__(self) -> str:
        return f"<Setting key={self.key!r} category={self.category!r}>"
