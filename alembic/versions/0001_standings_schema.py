"""standings schema

Revision ID: 0001_standings_schema
Revises:
Create Date: 2026-10-18 09:00:00.000000
"""

from __future__ import annotations

import sqlalchemy as sa
from alembic import op

revision = "0001_standings_schema"
down_revision = None
branch_labels = None
depends_on = None

ID_TYPE = sa.BigInteger().with_variant(sa.Integer(), "sqlite")


def upgrade() -> None:
    op.create_table(
        "bet_series",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("description", sa.Text(), nullable=True),
        sa.Column("series_type", sa.String(length=50), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("created_by", sa.String(length=255), nullable=True),
        sa.Column("scoring_method", sa.String(length=50), nullable=False),
        sa.Column("points_per_correct", sa.Float(), nullable=False),
        sa.Column("perfect_week_bonus", sa.Float(), nullable=False),
        sa.Column("streak_bonus", sa.Float(), nullable=False),
        sa.Column("difficulty_multiplier", sa.Boolean(), nullable=False),
        sa.Column("confidence_min", sa.Integer(), nullable=True),
        sa.Column("confidence_max", sa.Integer(), nullable=True),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("allow_late_entry", sa.Boolean(), nullable=False),
        sa.Column("created_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("updated_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.CheckConstraint(
            "status IN ('draft','registration_open','active','completed','cancelled')",
            name=op.f("bet_series_status_enum_check"),
        ),
        sa.CheckConstraint(
            "scoring_method IN ('points_per_correct','weighted_scoring',"
            "'confidence_points','elimination_style','percentage_based')",
            name=op.f("bet_series_scoring_method_enum_check"),
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("bet_series_pkey")),
    )

    op.create_table(
        "series_bets",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("series_id", ID_TYPE, nullable=False),
        sa.Column("title", sa.String(length=255), nullable=False),
        sa.Column("sides", sa.JSON(), nullable=False),
        sa.Column("weight", sa.Float(), nullable=True),
        sa.Column("difficulty", sa.String(length=10), nullable=True),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("winning_side", sa.String(length=255), nullable=True),
        sa.Column("bet_order", sa.Integer(), nullable=False),
        sa.Column("resolved_at", sa.DateTime(timezone=True), nullable=True),
        sa.CheckConstraint(
            "status IN ('pending','active','resolved','cancelled')",
            name=op.f("series_bets_status_enum_check"),
        ),
        sa.CheckConstraint(
            "difficulty IS NULL OR difficulty IN ('easy','medium','hard')",
            name=op.f("series_bets_difficulty_enum_check"),
        ),
        sa.ForeignKeyConstraint(
            ["series_id"], ["bet_series.id"], name=op.f("series_bets_series_id_fkey"), ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("series_bets_pkey")),
        sa.UniqueConstraint("series_id", "bet_order", name="series_bets_series_id_bet_order_key"),
    )
    op.create_index(op.f("ix_series_bets_series_id"), "series_bets", ["series_id"], unique=False)

    op.create_table(
        "series_participants",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("series_id", ID_TYPE, nullable=False),
        sa.Column("user_id", sa.String(length=255), nullable=False),
        sa.Column("display_name", sa.String(length=255), nullable=False),
        sa.Column("joined_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.CheckConstraint(
            "status IN ('registered','active','eliminated','completed')",
            name=op.f("series_participants_status_enum_check"),
        ),
        sa.ForeignKeyConstraint(
            ["series_id"], ["bet_series.id"], name=op.f("series_participants_series_id_fkey"), ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("series_participants_pkey")),
        sa.UniqueConstraint("series_id", "user_id", name="series_participants_series_id_user_id_key"),
    )
    op.create_index(
        op.f("ix_series_participants_series_id"), "series_participants", ["series_id"], unique=False
    )

    op.create_table(
        "series_picks",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("participant_id", ID_TYPE, nullable=False),
        sa.Column("bet_id", ID_TYPE, nullable=False),
        sa.Column("selection", sa.String(length=255), nullable=False),
        sa.Column("confidence", sa.Integer(), nullable=True),
        sa.Column("submitted_at", sa.DateTime(timezone=True), server_default=sa.text("(CURRENT_TIMESTAMP)"), nullable=False),
        sa.ForeignKeyConstraint(
            ["bet_id"], ["series_bets.id"], name=op.f("series_picks_bet_id_fkey"), ondelete="CASCADE"
        ),
        sa.ForeignKeyConstraint(
            ["participant_id"],
            ["series_participants.id"],
            name=op.f("series_picks_participant_id_fkey"),
            ondelete="CASCADE",
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("series_picks_pkey")),
        sa.UniqueConstraint("participant_id", "bet_id", name="series_picks_participant_id_bet_id_key"),
    )
    op.create_index(op.f("ix_series_picks_bet_id"), "series_picks", ["bet_id"], unique=False)
    op.create_index(op.f("ix_series_picks_participant_id"), "series_picks", ["participant_id"], unique=False)

    op.create_table(
        "participant_standings",
        sa.Column("id", ID_TYPE, autoincrement=True, nullable=False),
        sa.Column("participant_id", ID_TYPE, nullable=False),
        sa.Column("series_id", ID_TYPE, nullable=False),
        sa.Column("generation", sa.Integer(), nullable=False),
        sa.Column("total_score", sa.Float(), nullable=False),
        sa.Column("correct_picks", sa.Integer(), nullable=False),
        sa.Column("total_picks", sa.Integer(), nullable=False),
        sa.Column("current_streak", sa.Integer(), nullable=False),
        sa.Column("longest_streak", sa.Integer(), nullable=False),
        sa.Column("current_rank", sa.Integer(), nullable=True),
        sa.Column("previous_rank", sa.Integer(), nullable=True),
        sa.Column("achievements", sa.JSON(), nullable=False),
        sa.Column("status", sa.String(length=20), nullable=False),
        sa.Column("computed_at", sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint(
            "current_rank IS NULL OR current_rank >= 1",
            name=op.f("participant_standings_current_rank_positive_check"),
        ),
        sa.CheckConstraint(
            "status IN ('registered','active','eliminated','completed')",
            name=op.f("participant_standings_status_enum_check"),
        ),
        sa.ForeignKeyConstraint(
            ["participant_id"],
            ["series_participants.id"],
            name=op.f("participant_standings_participant_id_fkey"),
            ondelete="CASCADE",
        ),
        sa.ForeignKeyConstraint(
            ["series_id"], ["bet_series.id"], name=op.f("participant_standings_series_id_fkey"), ondelete="CASCADE"
        ),
        sa.PrimaryKeyConstraint("id", name=op.f("participant_standings_pkey")),
        sa.UniqueConstraint("participant_id", name=op.f("participant_standings_participant_id_key")),
    )
    op.create_index(
        op.f("ix_participant_standings_series_id"), "participant_standings", ["series_id"], unique=False
    )


def downgrade() -> None:
    op.drop_index(op.f("ix_participant_standings_series_id"), table_name="participant_standings")
    op.drop_table("participant_standings")
    op.drop_index(op.f("ix_series_picks_participant_id"), table_name="series_picks")
    op.drop_index(op.f("ix_series_picks_bet_id"), table_name="series_picks")
    op.drop_table("series_picks")
    op.drop_index(op.f("ix_series_participants_series_id"), table_name="series_participants")
    op.drop_table("series_participants")
    op.drop_index(op.f("ix_series_bets_series_id"), table_name="series_bets")
    op.drop_table("series_bets")
    op.drop_table("bet_series")
