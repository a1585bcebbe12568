"""Challenge-level aggregate stats.

``refresh`` recomputes all four figures inside one UPDATE whose values are
correlated subqueries, so the database evaluates them against the rows it sees
at write time. It runs after the triggering transaction has committed and
never raises; a failed refresh is repaired by the next successful one.
"""

from __future__ import annotations

import logging
from uuid import UUID

from sqlalchemy import Numeric, cast, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from app.features.challenges.models import Challenge
from app.features.participants.models import ChallengeParticipant, ParticipantStatus

logger = logging.getLogger("analytics.stats")


class StatsAggregator:
    def _statement(self, challenge_id: UUID):
        of_challenge = ChallengeParticipant.challenge_id == challenge_id
        completed = ChallengeParticipant.status == ParticipantStatus.completed

        total = select(func.count(ChallengeParticipant.id)).where(of_challenge).scalar_subquery()
        done = select(func.count(ChallengeParticipant.id)).where(of_challenge, completed).scalar_subquery()
        average = (
            select(func.coalesce(func.round(cast(func.avg(ChallengeParticipant.score), Numeric), 2), 0))
            .where(of_challenge, completed)
            .scalar_subquery()
        )
        top = select(func.coalesce(func.max(ChallengeParticipant.score), 0)).where(of_challenge, completed).scalar_subquery()

        return (
            update(Challenge)
            .where(Challenge.id == challenge_id)
            .values(
                total_participants=total,
                completed_participants=done,
                average_score=average,
                top_score=top,
            )
            .execution_options(synchronize_session="fetch")
        )

    def refresh(self, db: Session, challenge_id: UUID) -> bool:
        try:
            db.execute(self._statement(challenge_id))
            db.commit()
        except SQLAlchemyError:
            db.rollback()
            logger.exception("stats_refresh_failed challenge_id=%s", challenge_id)
            return False
        logger.debug("stats_refreshed challenge_id=%s", challenge_id)
        return True


stats_aggregator = StatsAggregator()
