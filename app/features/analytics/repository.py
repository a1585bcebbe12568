from __future__ import annotations

from typing import Any, Dict, List, Tuple
from uuid import UUID

from sqlalchemy import case, func, select
from sqlalchemy.orm import Session

from app.features.participants.models import ChallengeParticipant, ParticipantStatus


def get_participant_overview(db: Session, challenge_id: UUID) -> Dict[str, Any]:
    """Counts and averages over all participants of one challenge."""
    completed = ChallengeParticipant.status == ParticipantStatus.completed
    stmt = select(
        func.count(ChallengeParticipant.id),
        func.coalesce(func.sum(case((completed, 1), else_=0)), 0),
        func.avg(case((completed, ChallengeParticipant.score))),
        func.avg(case((completed, ChallengeParticipant.accuracy))),
        func.avg(case((completed, ChallengeParticipant.time_spent))),
        func.coalesce(func.sum(ChallengeParticipant.attempts), 0),
    ).where(ChallengeParticipant.challenge_id == challenge_id)
    total, done, avg_score, avg_accuracy, avg_time, attempts = db.execute(stmt).one()
    return {
        "total_participants": int(total or 0),
        "completed_participants": int(done or 0),
        "average_score": round(float(avg_score or 0), 2),
        "average_accuracy": round(float(avg_accuracy or 0), 2),
        "average_time_spent": round(float(avg_time or 0), 2),
        "total_attempts": int(attempts or 0),
    }


def get_completed_rows(db: Session, challenge_id: UUID) -> List[Tuple[float, float, Any]]:
    """(score, accuracy, completed_at) for every completed participant."""
    stmt = (
        select(ChallengeParticipant.score, ChallengeParticipant.accuracy, ChallengeParticipant.completed_at)
        .where(
            ChallengeParticipant.challenge_id == challenge_id,
            ChallengeParticipant.status == ParticipantStatus.completed,
        )
        .order_by(ChallengeParticipant.completed_at.asc())
    )
    return [tuple(row) for row in db.execute(stmt).all()]
