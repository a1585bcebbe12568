from __future__ import annotations

from datetime import datetime
from typing import Any, Dict, List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.common.schemas import Pagination

from .models import ParticipantStatus


class ResponseRecord(BaseModel):
    question_id: str
    answer: Any = None
    is_correct: bool
    time_spent: Optional[float] = None  # seconds
    submitted_at: datetime


class CurrentAttempt(BaseModel):
    started_at: Optional[datetime] = None
    progress: float = 0.0
    responses: List[ResponseRecord] = Field(default_factory=list)


class BadgeEarned(BaseModel):
    name: str
    description: Optional[str] = None
    icon: Optional[str] = None
    earned_at: Optional[datetime] = None


class CertificateLink(BaseModel):
    certificate_id: str
    issued_at: Optional[datetime] = None
    verification_code: Optional[str] = None


class LeaderboardPosition(BaseModel):
    rank: int
    total_participants: int
    updated_at: Optional[datetime] = None


class Achievements(BaseModel):
    points_earned: int = 0
    badges_earned: List[BadgeEarned] = Field(default_factory=list)
    certificate: Optional[CertificateLink] = None
    leaderboard_position: Optional[LeaderboardPosition] = None


class ParticipantOut(BaseModel):
    id: UUID
    challenge_id: UUID
    user_id: str
    status: ParticipantStatus
    attempts: int
    current_attempt: CurrentAttempt
    score: float
    max_score: float
    accuracy: float
    time_spent: Optional[int] = None
    completed_at: Optional[datetime] = None
    joined_at: datetime
    achievements: Achievements
    performance: Optional[Dict[str, Any]] = None

    @classmethod
    def from_model(cls, participant) -> "ParticipantOut":
        certificate = None
        if participant.certificate_id:
            certificate = CertificateLink(
                certificate_id=participant.certificate_id,
                issued_at=participant.certificate_issued_at,
                verification_code=participant.certificate_verification_code,
            )
        position = None
        if participant.leaderboard_rank is not None:
            position = LeaderboardPosition(
                rank=participant.leaderboard_rank,
                total_participants=participant.leaderboard_total or 0,
                updated_at=participant.leaderboard_updated_at,
            )
        return cls(
            id=participant.id,
            challenge_id=participant.challenge_id,
            user_id=participant.user_id,
            status=participant.status,
            attempts=participant.attempts,
            current_attempt=CurrentAttempt(
                started_at=participant.started_at,
                progress=participant.progress,
                responses=[ResponseRecord(**r) for r in (participant.responses or [])],
            ),
            score=participant.score,
            max_score=participant.max_score,
            accuracy=participant.accuracy,
            time_spent=participant.time_spent,
            completed_at=participant.completed_at,
            joined_at=participant.joined_at,
            achievements=Achievements(
                points_earned=participant.points_earned,
                badges_earned=[BadgeEarned(**b) for b in (participant.badges_earned or [])],
                certificate=certificate,
                leaderboard_position=position,
            ),
            performance=participant.performance,
        )


class SubmitResponseRequest(BaseModel):
    question_id: str = Field(min_length=1, max_length=100)
    answer: Any = None
    is_correct: bool
    time_spent: Optional[float] = Field(default=None, ge=0, description="seconds")
    total_questions: int = Field(ge=1)


class CompleteAttemptRequest(BaseModel):
    final_score: Optional[float] = Field(default=None, ge=0)
    max_score: Optional[float] = Field(default=None, gt=0)


class CompletionResult(BaseModel):
    participant: ParticipantOut
    already_completed: bool = False
    rank: Optional[int] = None
    total_completed: int = 0
    points_earned: int = 0
    badges_earned: List[BadgeEarned] = Field(default_factory=list)
    certificate_id: Optional[str] = None


class MyChallengeItem(BaseModel):
    participant: ParticipantOut
    challenge_title: str
    challenge_status: str
    rank: Optional[int] = None


class MyChallengesResponse(BaseModel):
    items: List[MyChallengeItem] = Field(default_factory=list)
    pagination: Pagination


class ParticipantListResponse(BaseModel):
    items: List[ParticipantOut] = Field(default_factory=list)
    pagination: Pagination
