"""create challenges, challenge_participants and challenge_certificates

Revision ID: 0001_challenge_engine
Revises:
Create Date: 2026-10-18 00:00:00.000000

"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "0001_challenge_engine"
down_revision: Union[str, Sequence[str], None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None


challenge_type = sa.Enum(
    "shloka_recitation",
    "chandas_analysis",
    "translation",
    "pronunciation",
    "memorization",
    "comprehension",
    "practice_streak",
    "community_engagement",
    name="challenge_type",
)
challenge_difficulty = sa.Enum("beginner", "intermediate", "advanced", "expert", name="challenge_difficulty")
challenge_category = sa.Enum(
    "bhagavad_gita", "ramayana", "vedas", "upanishads", "puranas", "general", name="challenge_category"
)
challenge_status = sa.Enum("draft", "active", "completed", "cancelled", name="challenge_status")
participant_status = sa.Enum("registered", "in_progress", "completed", "abandoned", "failed", name="participant_status")
certificate_status = sa.Enum("pending", "generated", "issued", "revoked", "expired", name="certificate_status")


def _ts(name: str, nullable: bool = True, **kwargs) -> sa.Column:
    return sa.Column(name, sa.DateTime(timezone=True), nullable=nullable, **kwargs)


def upgrade() -> None:
    op.create_table(
        "challenges",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("title", sa.String(length=100), nullable=False),
        sa.Column("description", sa.Text(), nullable=False),
        sa.Column("instructions", sa.Text(), nullable=True),
        sa.Column("type", challenge_type, nullable=False),
        sa.Column("target_count", sa.Integer(), nullable=True),
        sa.Column("required_accuracy", sa.Float(), nullable=True),
        sa.Column("time_limit", sa.Integer(), nullable=True),
        sa.Column("difficulty", challenge_difficulty, nullable=False),
        sa.Column("category", challenge_category, nullable=False),
        sa.Column("status", challenge_status, nullable=False),
        _ts("start_date", nullable=False),
        _ts("end_date", nullable=False),
        sa.Column("reward_points", sa.Integer(), nullable=False),
        sa.Column("reward_badge", sa.JSON(), nullable=True),
        sa.Column("certificate_enabled", sa.Boolean(), nullable=False),
        sa.Column("certificate_template_id", sa.String(length=100), nullable=True),
        sa.Column("certificate_title", sa.String(length=200), nullable=True),
        sa.Column("certificate_description", sa.String(length=500), nullable=True),
        sa.Column("first_place_points", sa.Integer(), nullable=False),
        sa.Column("second_place_points", sa.Integer(), nullable=False),
        sa.Column("third_place_points", sa.Integer(), nullable=False),
        sa.Column("participation_points", sa.Integer(), nullable=False),
        sa.Column("max_participants", sa.Integer(), nullable=True),
        sa.Column("allow_retries", sa.Boolean(), nullable=False),
        sa.Column("max_retries", sa.Integer(), nullable=False),
        sa.Column("is_public", sa.Boolean(), nullable=False),
        sa.Column("total_participants", sa.Integer(), nullable=False),
        sa.Column("completed_participants", sa.Integer(), nullable=False),
        sa.Column("average_score", sa.Float(), nullable=False),
        sa.Column("top_score", sa.Float(), nullable=False),
        sa.Column("created_by", sa.String(length=64), nullable=False),
        _ts("created_at", nullable=False, server_default=sa.func.now()),
        _ts("updated_at", nullable=False, server_default=sa.func.now()),
    )
    op.create_index("ix_challenges_title", "challenges", ["title"])
    op.create_index("ix_challenges_type", "challenges", ["type"])
    op.create_index("ix_challenges_status", "challenges", ["status"])
    op.create_index("ix_challenges_is_public", "challenges", ["is_public"])
    op.create_index("ix_challenges_created_by", "challenges", ["created_by"])
    op.create_index("ix_challenges_status_window", "challenges", ["status", "start_date", "end_date"])
    op.create_index("ix_challenges_type_difficulty_category", "challenges", ["type", "difficulty", "category"])

    op.create_table(
        "challenge_participants",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id"), nullable=False),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("status", participant_status, nullable=False),
        sa.Column("attempts", sa.Integer(), nullable=False),
        _ts("started_at"),
        sa.Column("progress", sa.Float(), nullable=False),
        sa.Column("responses", sa.JSON(), nullable=False),
        sa.Column("score", sa.Float(), nullable=False),
        sa.Column("max_score", sa.Float(), nullable=False),
        sa.Column("accuracy", sa.Float(), nullable=False),
        sa.Column("time_spent", sa.Integer(), nullable=True),
        _ts("completed_at"),
        sa.Column("performance", sa.JSON(), nullable=True),
        sa.Column("points_earned", sa.Integer(), nullable=False),
        sa.Column("badges_earned", sa.JSON(), nullable=False),
        sa.Column("leaderboard_rank", sa.Integer(), nullable=True),
        sa.Column("leaderboard_total", sa.Integer(), nullable=True),
        _ts("leaderboard_updated_at"),
        sa.Column("certificate_id", sa.String(length=64), nullable=True),
        _ts("certificate_issued_at"),
        sa.Column("certificate_verification_code", sa.String(length=32), nullable=True),
        _ts("joined_at", nullable=False),
        _ts("updated_at", nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participants_challenge_user"),
    )
    op.create_index("ix_challenge_participants_challenge_id", "challenge_participants", ["challenge_id"])
    op.create_index("ix_challenge_participants_user_id", "challenge_participants", ["user_id"])
    op.create_index(
        "ix_challenge_participants_ranking",
        "challenge_participants",
        ["challenge_id", "status", "score", "completed_at"],
    )

    op.create_table(
        "challenge_certificates",
        sa.Column("id", sa.Uuid(), primary_key=True, nullable=False),
        sa.Column("certificate_id", sa.String(length=64), nullable=False, unique=True),
        sa.Column("verification_code", sa.String(length=32), nullable=False, unique=True),
        sa.Column("user_id", sa.String(length=64), nullable=False),
        sa.Column("challenge_id", sa.Uuid(), sa.ForeignKey("challenges.id"), nullable=False),
        sa.Column("participant_id", sa.Uuid(), sa.ForeignKey("challenge_participants.id"), nullable=False),
        sa.Column("title", sa.String(length=200), nullable=False),
        sa.Column("description", sa.String(length=500), nullable=True),
        sa.Column("recipient_name", sa.String(length=200), nullable=False),
        sa.Column("achievement", sa.JSON(), nullable=False),
        sa.Column("template", sa.JSON(), nullable=False),
        sa.Column("issuer_name", sa.String(length=200), nullable=False),
        sa.Column("issuer_title", sa.String(length=200), nullable=True),
        sa.Column("issued_by", sa.String(length=64), nullable=False),
        sa.Column("digital_hash", sa.String(length=64), nullable=False),
        sa.Column("status", certificate_status, nullable=False),
        _ts("revoked_at"),
        sa.Column("revocation_reason", sa.Text(), nullable=True),
        sa.Column("download_count", sa.Integer(), nullable=False),
        _ts("last_downloaded_at"),
        sa.Column("share_count", sa.Integer(), nullable=False),
        sa.Column("verification_count", sa.Integer(), nullable=False),
        _ts("issued_at", nullable=False),
        _ts("updated_at", nullable=False, server_default=sa.func.now()),
        sa.UniqueConstraint("user_id", "challenge_id", name="uq_challenge_certificates_user_challenge"),
    )
    op.create_index("ix_challenge_certificates_user_id", "challenge_certificates", ["user_id"])
    op.create_index("ix_challenge_certificates_challenge_id", "challenge_certificates", ["challenge_id"])
    op.create_index("ix_challenge_certificates_status_issued", "challenge_certificates", ["status", "issued_at"])


def downgrade() -> None:
    op.drop_table("challenge_certificates")
    op.drop_table("challenge_participants")
    op.drop_table("challenges")
    bind = op.get_bind()
    for enum in (
        certificate_status,
        participant_status,
        challenge_status,
        challenge_category,
        challenge_difficulty,
        challenge_type,
    ):
        enum.drop(bind, checkfirst=True)
