"""Initial reputation schema

Revision ID: 5c2e9a71b3d0
Revises:
Create Date: 2026-10-18 09:00:00.000000

"""
from alembic import op
import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

# revision identifiers, used by Alembic.
revision = "5c2e9a71b3d0"
down_revision = None
branch_labels = None
depends_on = None


def upgrade() -> None:
    op.create_table(
        "interactions",
        sa.Column("id", sa.String(64), primary_key=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("username", sa.String(100), nullable=False, server_default=""),
        sa.Column("interaction_type", sa.String(50), nullable=False),
        sa.Column("content", sa.Text(), nullable=False, server_default=""),
        sa.Column("context", postgresql.JSONB(), nullable=True),
        sa.Column("platform", sa.String(30), nullable=False, server_default="unknown"),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column("sentiment_score", sa.Float(), nullable=False, server_default="0"),
        sa.Column("quality_score", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("related_raid_id", sa.String(100), nullable=True),
        sa.Column("timestamp", sa.DateTime(timezone=True), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_interactions_user_time", "interactions", ["user_id", "timestamp"])
    op.create_index("ix_interactions_timestamp", "interactions", ["timestamp"])
    op.create_index("ix_interactions_time_weight", "interactions", ["timestamp", "weight"])

    op.create_table(
        "archived_interactions",
        sa.Column("id", sa.Integer(), autoincrement=True, primary_key=True),
        sa.Column("original_id", sa.String(64), nullable=False, unique=True),
        sa.Column("user_id", sa.String(100), nullable=False),
        sa.Column("weight", sa.Float(), nullable=False),
        sa.Column(
            "reason", sa.String(50), nullable=False,
            server_default="low_weight_consolidation",
        ),
        sa.Column("archived_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_archived_interactions_user", "archived_interactions", ["user_id"])

    op.create_table(
        "personality_profiles",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column("engagement_style", sa.String(30), nullable=False),
        sa.Column("communication_tone", sa.String(20), nullable=False),
        sa.Column("activity_level", sa.String(20), nullable=False),
        sa.Column("community_contribution", sa.String(20), nullable=False),
        sa.Column("reliability_score", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("leadership_potential", sa.Float(), nullable=False, server_default="0.5"),
        sa.Column("traits", postgresql.JSONB(), nullable=True),
        sa.Column("interaction_patterns", postgresql.JSONB(), nullable=True),
        sa.Column("last_updated", sa.DateTime(timezone=True), nullable=False),
    )

    op.create_table(
        "leaderboard_entries",
        sa.Column("user_id", sa.String(100), primary_key=True),
        sa.Column("username", sa.String(100), nullable=False, server_default=""),
        sa.Column("total_points", sa.Float(), nullable=False, server_default="0"),
        sa.Column("raids_participated", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("successful_engagements", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("streak", sa.Integer(), nullable=False, server_default="0"),
        sa.Column("rank", sa.Integer(), nullable=True),
        sa.Column("badges", postgresql.JSONB(), nullable=True),
        sa.Column("last_activity", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_leaderboard_points_desc", "leaderboard_entries", ["total_points"])

    op.create_table(
        "settings",
        sa.Column("key", sa.String(100), primary_key=True),
        sa.Column("value_json", sa.Text(), nullable=False),
        sa.Column("category", sa.String(50), nullable=False, server_default="general"),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.func.now()),
    )
    op.create_index("ix_settings_category", "settings", ["category"])


def downgrade() -> None:
    op.drop_index("ix_settings_category", table_name="settings")
    op.drop_table("settings")
    op.drop_index("ix_leaderboard_points_desc", table_name="leaderboard_entries")
    op.drop_table("leaderboard_entries")
    op.drop_table("personality_profiles")
    op.drop_index("ix_archived_interactions_user", table_name="archived_interactions")
    op.drop_table("archived_interactions")
    op.drop_index("ix_interactions_time_weight", table_name="interactions")
    op.drop_index("ix_interactions_timestamp", table_name="interactions")
    op.drop_index("ix_interactions_user_time", table_name="interactions")
    op.drop_table("interactions")
