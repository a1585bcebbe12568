from sqlalchemy import Column, String, Integer, Float, Enum, JSON, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func
import uuid
import enum

from app.DB.base import Base
from app.DB.types import UTCDateTime


class ParticipantStatus(enum.Enum):
    registered = "registered"
    in_progress = "in_progress"
    completed = "completed"
    abandoned = "abandoned"
    failed = "failed"


class ChallengeParticipant(Base):
    __tablename__ = "challenge_participants"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    challenge_id = Column(Uuid(as_uuid=True), ForeignKey("challenges.id"), nullable=False, index=True)
    user_id = Column(String(64), nullable=False, index=True)
    status = Column(Enum(ParticipantStatus, name="participant_status"), nullable=False, default=ParticipantStatus.registered)
    attempts = Column(Integer, nullable=False, default=0)

    # current attempt
    started_at = Column(UTCDateTime(), nullable=True)
    progress = Column(Float, nullable=False, default=0.0)
    responses = Column(JSON, nullable=False, default=list)

    score = Column(Float, nullable=False, default=0.0)
    max_score = Column(Float, nullable=False, default=100.0)
    accuracy = Column(Float, nullable=False, default=0.0)
    time_spent = Column(Integer, nullable=True)  # minutes
    completed_at = Column(UTCDateTime(), nullable=True)
    performance = Column(JSON, nullable=True)

    # achievements
    points_earned = Column(Integer, nullable=False, default=0)
    badges_earned = Column(JSON, nullable=False, default=list)
    leaderboard_rank = Column(Integer, nullable=True)
    leaderboard_total = Column(Integer, nullable=True)
    leaderboard_updated_at = Column(UTCDateTime(), nullable=True)
    certificate_id = Column(String(64), nullable=True)
    certificate_issued_at = Column(UTCDateTime(), nullable=True)
    certificate_verification_code = Column(String(32), nullable=True)

    joined_at = Column(UTCDateTime(), nullable=False)
    updated_at = Column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)

    challenge = relationship("Challenge", lazy="joined")

    __table_args__ = (
        UniqueConstraint("challenge_id", "user_id", name="uq_challenge_participants_challenge_user"),
        Index("ix_challenge_participants_ranking", "challenge_id", "status", "score", "completed_at"),
    )

    @property
    def is_completed(self) -> bool:
        return self.status == ParticipantStatus.completed

    def __repr__(self):
        return f"<ChallengeParticipant(challenge_id={self.challenge_id}, user_id={self.user_id}, status={self.status})>"
