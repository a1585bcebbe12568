from __future__ import annotations

from datetime import datetime
from typing import List, Optional, Literal
from uuid import UUID

from pydantic import BaseModel, Field

from app.common.schemas import Pagination
from app.features.leaderboard.schemas import LeaderboardEntry
from app.features.participants.schemas import ParticipantOut
from .models import Category, ChallengeStatus, ChallengeType, Difficulty


class ChallengeRequirements(BaseModel):
    target_count: Optional[int] = Field(default=None, ge=1)
    accuracy: Optional[float] = Field(default=None, ge=0, le=100)
    time_limit: Optional[int] = Field(default=None, ge=1, description="minutes")
    difficulty: Difficulty = Difficulty.beginner
    category: Category = Category.general


class BadgeSpec(BaseModel):
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    color: str = "#FFD700"


class PositionTiers(BaseModel):
    first: int = Field(default=100, ge=0)
    second: int = Field(default=75, ge=0)
    third: int = Field(default=50, ge=0)
    participation: int = Field(default=10, ge=0)


class ChallengeRewards(BaseModel):
    points: int = Field(default=0, ge=0)
    badge: Optional[BadgeSpec] = None
    certificate_enabled: bool = False
    certificate_template_id: Optional[str] = None
    certificate_title: Optional[str] = Field(default=None, max_length=200)
    certificate_description: Optional[str] = Field(default=None, max_length=500)
    position_tiers: PositionTiers = Field(default_factory=PositionTiers)


class ChallengeSettings(BaseModel):
    max_participants: Optional[int] = Field(default=None, ge=1)
    allow_retries: bool = True
    max_retries: int = Field(default=3, ge=1)
    is_public: bool = True


class ChallengeStats(BaseModel):
    total_participants: int = 0
    completed_participants: int = 0
    average_score: float = 0.0
    top_score: float = 0.0


class ChallengeCreate(BaseModel):
    title: str = Field(min_length=3, max_length=100)
    description: str = Field(min_length=10, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=2000)
    type: ChallengeType
    requirements: ChallengeRequirements = Field(default_factory=ChallengeRequirements)
    start_date: datetime
    end_date: datetime
    rewards: ChallengeRewards = Field(default_factory=ChallengeRewards)
    settings: ChallengeSettings = Field(default_factory=ChallengeSettings)

    class Config:
        extra = "forbid"


class ChallengeUpdate(BaseModel):
    title: Optional[str] = Field(default=None, min_length=3, max_length=100)
    description: Optional[str] = Field(default=None, min_length=10, max_length=1000)
    instructions: Optional[str] = Field(default=None, max_length=2000)
    type: Optional[ChallengeType] = None
    requirements: Optional[ChallengeRequirements] = None
    start_date: Optional[datetime] = None
    end_date: Optional[datetime] = None
    rewards: Optional[ChallengeRewards] = None
    settings: Optional[ChallengeSettings] = None

    class Config:
        extra = "forbid"


class ChallengeOut(BaseModel):
    id: UUID
    title: str
    description: str
    instructions: Optional[str] = None
    type: ChallengeType
    status: ChallengeStatus
    start_date: datetime
    end_date: datetime
    requirements: ChallengeRequirements
    rewards: ChallengeRewards
    settings: ChallengeSettings
    stats: ChallengeStats
    created_by: str
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    duration_days: int
    completion_rate: float

    @classmethod
    def from_model(cls, challenge) -> "ChallengeOut":
        badge = challenge.reward_badge
        return cls(
            id=challenge.id,
            title=challenge.title,
            description=challenge.description,
            instructions=challenge.instructions,
            type=challenge.type,
            status=challenge.status,
            start_date=challenge.start_date,
            end_date=challenge.end_date,
            requirements=ChallengeRequirements(
                target_count=challenge.target_count,
                accuracy=challenge.required_accuracy,
                time_limit=challenge.time_limit,
                difficulty=challenge.difficulty,
                category=challenge.category,
            ),
            rewards=ChallengeRewards(
                points=challenge.reward_points,
                badge=BadgeSpec(**badge) if badge else None,
                certificate_enabled=challenge.certificate_enabled,
                certificate_template_id=challenge.certificate_template_id,
                certificate_title=challenge.certificate_title,
                certificate_description=challenge.certificate_description,
                position_tiers=PositionTiers(
                    first=challenge.first_place_points,
                    second=challenge.second_place_points,
                    third=challenge.third_place_points,
                    participation=challenge.participation_points,
                ),
            ),
            settings=ChallengeSettings(
                max_participants=challenge.max_participants,
                allow_retries=challenge.allow_retries,
                max_retries=challenge.max_retries,
                is_public=challenge.is_public,
            ),
            stats=ChallengeStats(
                total_participants=challenge.total_participants,
                completed_participants=challenge.completed_participants,
                average_score=challenge.average_score,
                top_score=challenge.top_score,
            ),
            created_by=challenge.created_by,
            created_at=challenge.created_at,
            updated_at=challenge.updated_at,
            duration_days=challenge.duration_days,
            completion_rate=challenge.completion_rate,
        )


class ChallengeFilter(BaseModel):
    status: Optional[ChallengeStatus] = None
    type: Optional[ChallengeType] = None
    difficulty: Optional[Difficulty] = None
    category: Optional[Category] = None
    is_public: Optional[bool] = None
    active_only: bool = False
    created_by: Optional[str] = None


SortField = Literal["created_at", "start_date", "end_date", "title", "total_participants"]


class ChallengeListResponse(BaseModel):
    items: List[ChallengeOut] = Field(default_factory=list)
    pagination: Pagination


class ParticipationCheck(BaseModel):
    allowed: bool
    reason: Optional[str] = None


class ParticipantBreakdown(BaseModel):
    total: int = 0
    registered: int = 0
    in_progress: int = 0
    completed: int = 0
    abandoned: int = 0
    failed: int = 0


class ChallengeAdminDetail(BaseModel):
    challenge: ChallengeOut
    participant_stats: ParticipantBreakdown


class ChallengeDetail(BaseModel):
    challenge: ChallengeOut
    participation: Optional[ParticipantOut] = None
    can_participate: ParticipationCheck
    user_rank: Optional[int] = None
    leaderboard: List[LeaderboardEntry] = Field(default_factory=list)
