"""Ranking over completed participants.

Order is score descending, then earliest completion. Every call reads the
authoritative rows; nothing is cached between calls.
"""

from __future__ import annotations

import logging
from typing import Optional
from uuid import UUID

from sqlalchemy import and_, func, or_, select
from sqlalchemy.orm import Session

from app.Core.config import get_settings
from app.common.errors import NotFound
from app.features.challenges.models import Challenge
from app.features.participants.models import ChallengeParticipant, ParticipantStatus
from app.integrations.user_directory import UserDirectory, get_user_directory
from .schemas import LeaderboardEntry, LeaderboardResponse

logger = logging.getLogger("leaderboard.service")

_completed = ChallengeParticipant.status == ParticipantStatus.completed


class LeaderboardService:
    def __init__(self, directory: Optional[UserDirectory] = None) -> None:
        self._directory = directory

    @property
    def directory(self) -> UserDirectory:
        return self._directory or get_user_directory()

    def completed_count(self, db: Session, challenge_id: UUID) -> int:
        stmt = select(func.count()).select_from(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id, _completed
        )
        return int(db.scalar(stmt) or 0)

    def rank_of(self, db: Session, participant: ChallengeParticipant) -> Optional[int]:
        if participant.status != ParticipantStatus.completed or participant.completed_at is None:
            return None
        ahead = select(func.count()).select_from(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == participant.challenge_id,
            _completed,
            ChallengeParticipant.id != participant.id,
            or_(
                ChallengeParticipant.score > participant.score,
                and_(
                    ChallengeParticipant.score == participant.score,
                    ChallengeParticipant.completed_at < participant.completed_at,
                ),
            ),
        )
        return 1 + int(db.scalar(ahead) or 0)

    def rank(self, db: Session, challenge_id: UUID, user_id: str) -> Optional[int]:
        stmt = select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        )
        participant = db.scalar(stmt)
        if participant is None:
            return None
        return self.rank_of(db, participant)

    def leaderboard(
        self,
        db: Session,
        challenge_id: UUID,
        limit: Optional[int] = None,
        viewer_id: Optional[str] = None,
    ) -> LeaderboardResponse:
        if db.get(Challenge, challenge_id) is None:
            raise NotFound("Challenge not found", code="challenge_not_found", challenge_id=challenge_id)

        settings = get_settings()
        limit = limit or settings.default_leaderboard_limit
        limit = max(1, min(int(limit), settings.max_leaderboard_limit))

        stmt = (
            select(ChallengeParticipant)
            .where(ChallengeParticipant.challenge_id == challenge_id, _completed)
            .order_by(
                ChallengeParticipant.score.desc(),
                ChallengeParticipant.completed_at.asc(),
                ChallengeParticipant.id.asc(),
            )
            .limit(limit)
        )
        rows = list(db.scalars(stmt).unique().all())
        users = self.directory.resolve([row.user_id for row in rows])

        entries = []
        for index, row in enumerate(rows):
            # rows tied on (score, completed_at) share the rank of the first of them
            previous = rows[index - 1] if index else None
            if previous is not None and (previous.score, previous.completed_at) == (row.score, row.completed_at):
                position = entries[-1].rank
            else:
                position = index + 1
            entries.append(
                LeaderboardEntry(
                    rank=position,
                    user=users[row.user_id],
                    score=row.score,
                    max_score=row.max_score,
                    accuracy=row.accuracy,
                    time_spent=row.time_spent,
                    completed_at=row.completed_at,
                    is_current_user=viewer_id is not None and row.user_id == viewer_id,
                )
            )

        viewer_rank = None
        if viewer_id is not None:
            listed = next((e.rank for e in entries if e.is_current_user), None)
            viewer_rank = listed if listed is not None else self.rank(db, challenge_id, viewer_id)

        return LeaderboardResponse(
            challenge_id=challenge_id,
            total_completed=self.completed_count(db, challenge_id),
            entries=entries,
            viewer_rank=viewer_rank,
        )


leaderboard_service = LeaderboardService()
