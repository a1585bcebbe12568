from __future__ import annotations

import logging
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from .models import ChallengeParticipant, ParticipantStatus

logger = logging.getLogger("participants.repository")


class ParticipantRepository:
    def add(self, db: Session, participant: ChallengeParticipant) -> ChallengeParticipant:
        db.add(participant)
        db.flush()
        return participant

    def get(self, db: Session, participant_id: UUID) -> Optional[ChallengeParticipant]:
        return db.get(ChallengeParticipant, participant_id)

    def get_for_pair(self, db: Session, challenge_id: UUID, user_id: str) -> Optional[ChallengeParticipant]:
        stmt = select(ChallengeParticipant).where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.user_id == user_id,
        )
        return db.scalar(stmt)

    def _page(self, db: Session, conditions, offset: int, limit: int, order) -> Tuple[List[ChallengeParticipant], int]:
        stmt = select(ChallengeParticipant).where(*conditions).order_by(*order).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(ChallengeParticipant).where(*conditions)
        return list(db.scalars(stmt).unique().all()), int(db.scalar(count_stmt) or 0)

    def list_for_user(
        self,
        db: Session,
        user_id: str,
        *,
        status: Optional[ParticipantStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[ChallengeParticipant], int]:
        conditions = [ChallengeParticipant.user_id == user_id]
        if status is not None:
            conditions.append(ChallengeParticipant.status == status)
        order = (ChallengeParticipant.joined_at.desc(), ChallengeParticipant.id)
        return self._page(db, conditions, offset, limit, order)
    def list_for_challenge(
        self,
        db: Session,
        challenge_id: UUID,
        *,
        status: Optional[ParticipantStatus] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[ChallengeParticipant], int]:
        conditions = [ChallengeParticipant.challenge_id == challenge_id]
        if status is not None:
            conditions.append(ChallengeParticipant.status == status)
        order = (ChallengeParticipant.score.desc(), ChallengeParticipant.joined_at.asc(), ChallengeParticipant.id)
        return self._page(db, conditions, offset, limit, order)


participant_repository = ParticipantRepository()
