from __future__ import annotations

import logging
from datetime import datetime
from typing import Dict, List, Optional, Tuple
from uuid import UUID

from sqlalchemy import and_, func, or_, select, update
from sqlalchemy.orm import Session

from app.features.participants.models import ChallengeParticipant, ParticipantStatus
from .models import Challenge, ChallengeStatus

logger = logging.getLogger("challenges.repository")

_SORT_COLUMNS = {
    "created_at": Challenge.created_at,
    "start_date": Challenge.start_date,
    "end_date": Challenge.end_date,
    "title": Challenge.title,
    "total_participants": Challenge.total_participants,
}


class ChallengeRepository:
    """SQL access for challenges. Callers own the transaction."""

    def add(self, db: Session, challenge: Challenge) -> Challenge:
        db.add(challenge)
        db.flush()
        return challenge

    def get(self, db: Session, challenge_id: UUID) -> Optional[Challenge]:
        return db.get(Challenge, challenge_id)

    def list(
        self,
        db: Session,
        *,
        filters: Optional[Dict] = None,
        now: Optional[datetime] = None,
        sort: str = "created_at",
        descending: bool = True,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[Challenge], int]:
        filters = filters or {}
        conditions = []
        for key in ("status", "type", "difficulty", "category", "is_public", "created_by"):
            value = filters.get(key)
            if value is not None:
                conditions.append(getattr(Challenge, key) == value)
        if filters.get("active_only") and now is not None:
            conditions.extend([
                Challenge.status == ChallengeStatus.active,
                Challenge.start_date <= now,
                Challenge.end_date >= now,
            ])

        column = _SORT_COLUMNS.get(sort, Challenge.created_at)
        order = column.desc() if descending else column.asc()

        stmt = select(Challenge).where(*conditions).order_by(order, Challenge.id).offset(offset).limit(limit)
        count_stmt = select(func.count()).select_from(Challenge).where(*conditions)
        items = list(db.scalars(stmt).all())
        total = int(db.scalar(count_stmt) or 0)
        return items, total

    def expire_due(self, db: Session, now: datetime) -> int:
        """Apply on-access date transitions to every active challenge at once."""
        expired = db.execute(
            update(Challenge)
            .where(Challenge.status == ChallengeStatus.active, Challenge.end_date < now)
            .values(status=ChallengeStatus.completed)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        reverted = db.execute(
            update(Challenge)
            .where(Challenge.status == ChallengeStatus.active, Challenge.start_date > now)
            .values(status=ChallengeStatus.draft)
            .execution_options(synchronize_session="fetch")
        ).rowcount
        if expired or reverted:
            logger.info("challenges_auto_transitioned expired=%d reverted=%d", expired, reverted)
        return expired + reverted

    def participant_count(self, db: Session, challenge_id: UUID) -> int:
        stmt = select(func.count()).select_from(ChallengeParticipant).where(ChallengeParticipant.challenge_id == challenge_id)
        return int(db.scalar(stmt) or 0)

    def status_counts(self, db: Session, challenge_id: UUID) -> Dict[ParticipantStatus, int]:
        stmt = (
            select(ChallengeParticipant.status, func.count())
            .where(ChallengeParticipant.challenge_id == challenge_id)
            .group_by(ChallengeParticipant.status)
        )
        return {status: int(count) for status, count in db.execute(stmt).all()}

    def delete(self, db: Session, challenge: Challenge) -> None:
        db.delete(challenge)
        db.flush()

    def try_admit(self, db: Session, challenge_id: UUID) -> bool:
        """Take one seat if capacity allows; check and increment are one statement."""
        stmt = (
            update(Challenge)
            .where(
                and_(
                    Challenge.id == challenge_id,
                    or_(
                        Challenge.max_participants.is_(None),
                        Challenge.total_participants < Challenge.max_participants,
                    ),
                )
            )
            .values(total_participants=Challenge.total_participants + 1)
            .execution_options(synchronize_session="fetch")
        )
        result = db.execute(stmt)
        admitted = result.rowcount == 1
        if not admitted:
            logger.info("admission_refused challenge_id=%s", challenge_id)
        return admitted


challenge_repository = ChallengeRepository()
