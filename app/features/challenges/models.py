from sqlalchemy import Column, String, Text, Integer, Float, Boolean, Enum, JSON, Index, Uuid
from sqlalchemy.sql import func
import uuid
import enum

from app.DB.base import Base
from app.DB.types import UTCDateTime


class ChallengeType(enum.Enum):
    shloka_recitation = "shloka_recitation"
    chandas_analysis = "chandas_analysis"
    translation = "translation"
    pronunciation = "pronunciation"
    memorization = "memorization"
    comprehension = "comprehension"
    practice_streak = "practice_streak"
    community_engagement = "community_engagement"


class Difficulty(enum.Enum):
    beginner = "beginner"
    intermediate = "intermediate"
    advanced = "advanced"
    expert = "expert"


class Category(enum.Enum):
    bhagavad_gita = "bhagavad_gita"
    ramayana = "ramayana"
    vedas = "vedas"
    upanishads = "upanishads"
    puranas = "puranas"
    general = "general"


class ChallengeStatus(enum.Enum):
    draft = "draft"
    active = "active"
    completed = "completed"
    cancelled = "cancelled"


class Challenge(Base):
    __tablename__ = "challenges"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    title = Column(String(100), nullable=False, index=True)
    description = Column(Text, nullable=False)
    instructions = Column(Text, nullable=True)
    type = Column(Enum(ChallengeType, name="challenge_type"), nullable=False, index=True)

    # requirements
    target_count = Column(Integer, nullable=True)
    required_accuracy = Column(Float, nullable=True)
    time_limit = Column(Integer, nullable=True)  # minutes
    difficulty = Column(Enum(Difficulty, name="challenge_difficulty"), nullable=False, default=Difficulty.beginner)
    category = Column(Enum(Category, name="challenge_category"), nullable=False, default=Category.general)

    status = Column(Enum(ChallengeStatus, name="challenge_status"), nullable=False, default=ChallengeStatus.draft, index=True)
    start_date = Column(UTCDateTime(), nullable=False)
    end_date = Column(UTCDateTime(), nullable=False)

    # rewards
    reward_points = Column(Integer, nullable=False, default=0)
    reward_badge = Column(JSON, nullable=True)  # {name, description, icon, color}
    certificate_enabled = Column(Boolean, nullable=False, default=False)
    certificate_template_id = Column(String(100), nullable=True)
    certificate_title = Column(String(200), nullable=True)
    certificate_description = Column(String(500), nullable=True)
    first_place_points = Column(Integer, nullable=False, default=100)
    second_place_points = Column(Integer, nullable=False, default=75)
    third_place_points = Column(Integer, nullable=False, default=50)
    participation_points = Column(Integer, nullable=False, default=10)

    # settings
    max_participants = Column(Integer, nullable=True)
    allow_retries = Column(Boolean, nullable=False, default=True)
    max_retries = Column(Integer, nullable=False, default=3)
    is_public = Column(Boolean, nullable=False, default=True, index=True)

    # stats (maintained by analytics.stats)
    total_participants = Column(Integer, nullable=False, default=0)
    completed_participants = Column(Integer, nullable=False, default=0)
    average_score = Column(Float, nullable=False, default=0.0)
    top_score = Column(Float, nullable=False, default=0.0)

    created_by = Column(String(64), nullable=False, index=True)
    created_at = Column(UTCDateTime(), server_default=func.now(), nullable=False)
    updated_at = Column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_challenges_status_window", "status", "start_date", "end_date"),
        Index("ix_challenges_type_difficulty_category", "type", "difficulty", "category"),
    )

    def is_active_at(self, now) -> bool:
        return self.status == ChallengeStatus.active and self.start_date <= now <= self.end_date

    @property
    def attempt_limit(self) -> int:
        return self.max_retries if self.allow_retries else 1

    @property
    def duration_days(self) -> int:
        seconds = (self.end_date - self.start_date).total_seconds()
        return int(-(-seconds // 86400))

    @property
    def completion_rate(self) -> float:
        if not self.total_participants:
            return 0.0
        return round(self.completed_participants / self.total_participants * 100, 2)

    def __repr__(self):
        return f"<Challenge(id={self.id}, title={self.title}, status={self.status})>"
