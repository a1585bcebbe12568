from __future__ import annotations

import logging
import math
from typing import Any, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.DB.session import transaction
from app.common.clock import Clock, system_clock
from app.common.errors import (
    AlreadyRegistered,
    AttemptsExhausted,
    CapacityExceeded,
    ChallengeNotActive,
    EngineError,
    NoActiveAttempt,
    NotRegistered,
    ParticipationDenied,
    ValidationError,
)
from app.common.utils import elapsed_minutes, page_window, pagination_meta
from app.features.achievements.rewards import calculate_rewards
from app.features.analytics.stats import StatsAggregator, stats_aggregator
from app.features.certificates.service import CertificateService
from app.features.challenges import scoring
from app.features.challenges.models import Challenge
from app.features.challenges.repository import challenge_repository
from app.features.challenges.service import ChallengeService, evaluate_eligibility
from app.features.leaderboard.service import LeaderboardService
from .models import ChallengeParticipant, ParticipantStatus
from .repository import participant_repository
from .schemas import (
    BadgeEarned,
    CompletionResult,
    MyChallengeItem,
    MyChallengesResponse,
    ParticipantListResponse,
    ParticipantOut,
)
from .state_machine import ParticipantEvent, next_status

logger = logging.getLogger("participants.service")

DEFAULT_MAX_SCORE = 100.0


def _denial(reason: Optional[str], challenge: Challenge) -> EngineError:
    if reason == "Challenge is not active":
        return ChallengeNotActive(challenge_id=challenge.id, status=challenge.status.value)
    if reason == "Maximum participants reached":
        return CapacityExceeded(challenge_id=challenge.id, max_participants=challenge.max_participants)
    return ParticipationDenied(reason, challenge_id=challenge.id)


class ParticipationService:
    def __init__(
        self,
        clock: Optional[Clock] = None,
        challenges: Optional[ChallengeService] = None,
        leaderboard: Optional[LeaderboardService] = None,
        certificates: Optional[CertificateService] = None,
        stats: Optional[StatsAggregator] = None,
    ) -> None:
        self.clock = clock or system_clock
        self.leaderboard = leaderboard or LeaderboardService()
        self.challenges = challenges or ChallengeService(self.clock, self.leaderboard)
        self.certificates = certificates or CertificateService(self.clock, self.leaderboard)
        self.stats = stats or stats_aggregator

    def _participant(self, db: Session, challenge_id: UUID, user_id: str) -> ChallengeParticipant:
        participant = participant_repository.get_for_pair(db, challenge_id, user_id)
        if participant is None:
            raise NotRegistered(challenge_id=challenge_id, user_id=user_id)
        return participant

    # ------------------------------------------------------------------
    # join
    # ------------------------------------------------------------------
    def join(self, db: Session, challenge_id: UUID, user_id: str) -> ChallengeParticipant:
        challenge = self.challenges.get(db, challenge_id)
        now = self.clock.now()
        try:
            if not challenge.is_active_at(now):
                raise ChallengeNotActive(challenge_id=challenge.id, status=challenge.status.value)
            if participant_repository.get_for_pair(db, challenge.id, user_id) is not None:
                raise AlreadyRegistered(challenge_id=challenge.id, user_id=user_id)
            check = evaluate_eligibility(challenge, None, now)
            if not check.allowed:
                raise _denial(check.reason, challenge)
            if not challenge_repository.try_admit(db, challenge.id):
                raise CapacityExceeded(challenge_id=challenge.id, max_participants=challenge.max_participants)

            participant = ChallengeParticipant(
                challenge_id=challenge.id,
                user_id=str(user_id),
                status=ParticipantStatus.registered,
                attempts=0,
                progress=0.0,
                responses=[],
                score=0.0,
                max_score=float(challenge.reward_points or DEFAULT_MAX_SCORE),
                accuracy=0.0,
                points_earned=0,
                badges_earned=[],
                joined_at=now,
            )
            participant_repository.add(db, participant)
            db.commit()
        except IntegrityError:
            db.rollback()
            raise AlreadyRegistered(challenge_id=challenge_id, user_id=user_id)
        except Exception:
            db.rollback()
            raise

        logger.info("participant_joined challenge_id=%s user_id=%s", challenge_id, user_id)
        self.stats.refresh(db, challenge_id)
        return participant

    # ------------------------------------------------------------------
    # attempts
    # ------------------------------------------------------------------
    def start_attempt(self, db: Session, challenge_id: UUID, user_id: str) -> ChallengeParticipant:
        challenge = self.challenges.get(db, challenge_id)
        now = self.clock.now()
        with transaction(db):
            if not challenge.is_active_at(now):
                raise ChallengeNotActive(challenge_id=challenge.id, status=challenge.status.value)
            participant = self._participant(db, challenge.id, user_id)
            target = next_status(participant.status, ParticipantEvent.start)
            if participant.attempts >= challenge.attempt_limit:
                reason = "Retries not allowed" if not challenge.allow_retries else None
                raise AttemptsExhausted(reason, attempts=participant.attempts, limit=challenge.attempt_limit)

            discarded = len(participant.responses or []) if participant.status == ParticipantStatus.in_progress else 0
            participant.status = target
            participant.attempts = participant.attempts + 1
            participant.started_at = now
            participant.progress = 0.0
            participant.responses = []
            participant.accuracy = 0.0
            db.flush()

        if discarded:
            logger.info("attempt_restarted challenge_id=%s user_id=%s discarded_responses=%d", challenge_id, user_id, discarded)
        logger.info("attempt_started challenge_id=%s user_id=%s attempt=%d", challenge_id, user_id, participant.attempts)
        return participant

    def submit_response(
        self,
        db: Session,
        challenge_id: UUID,
        user_id: str,
        question_id: str,
        answer: Any,
        is_correct: bool,
        time_spent_seconds: Optional[float],
        total_questions: int,
    ) -> ChallengeParticipant:
        now = self.clock.now()
        if int(total_questions) < 1:
            raise ValidationError("total_questions must be at least 1", code="invalid_total_questions", total_questions=total_questions)
        if time_spent_seconds is not None and time_spent_seconds < 0:
            raise ValidationError("time_spent cannot be negative", code="invalid_time_spent", time_spent=time_spent_seconds)
        with transaction(db):
            participant = self._participant(db, challenge_id, user_id)
            if participant.status != ParticipantStatus.in_progress:
                raise NoActiveAttempt(challenge_id=challenge_id, status=participant.status.value)

            record = {
                "question_id": str(question_id),
                "answer": answer,
                "is_correct": bool(is_correct),
                "time_spent": time_spent_seconds,
                "submitted_at": now.isoformat(),
            }
            responses = list(participant.responses or []) + [record]
            if len(responses) > int(total_questions):
                raise ValidationError(
                    "Progress cannot exceed 100%",
                    code="too_many_responses",
                    responses=len(responses),
                    total_questions=total_questions,
                )
            participant.responses = responses
            participant.progress = round(len(responses) / int(total_questions) * 100, 2)
            participant.accuracy = scoring.accuracy_of(responses)
            db.flush()
        return participant

    def complete_attempt(
        self,
        db: Session,
        challenge_id: UUID,
        user_id: str,
        final_score: Optional[float] = None,
        max_score: Optional[float] = None,
    ) -> CompletionResult:
        now = self.clock.now()
        with transaction(db):
            participant = self._participant(db, challenge_id, user_id)
            target = next_status(participant.status, ParticipantEvent.complete)
            if target is None:
                logger.info("attempt_already_completed challenge_id=%s user_id=%s", challenge_id, user_id)
                return self._result(db, participant, already_completed=True)

            challenge = db.get(Challenge, challenge_id)
            elapsed = elapsed_minutes(participant.started_at, now) if participant.started_at else 0.0
            responses = list(participant.responses or [])
            if final_score is None:
                breakdown = scoring.score(responses, challenge.time_limit, elapsed)
                final_score = breakdown.final_score
                max_score = max_score or breakdown.max_score

            participant.status = target
            participant.score = float(final_score)
            participant.max_score = float(max_score or participant.max_score or DEFAULT_MAX_SCORE)
            participant.accuracy = scoring.accuracy_of(responses)
            participant.completed_at = now
            participant.time_spent = max(0, int(math.floor(elapsed)))
            participant.performance = scoring.summarize(scoring.summarize_performance(responses))
            db.flush()

            rank = self.leaderboard.rank_of(db, participant)
            total = self.leaderboard.completed_count(db, challenge.id)
            outcome = calculate_rewards(participant, challenge, rank, earned_at=now)
            participant.points_earned = outcome.points
            participant.badges_earned = outcome.badges
            participant.leaderboard_rank = rank
            participant.leaderboard_total = total
            participant.leaderboard_updated_at = now
            db.flush()

        logger.info(
            "attempt_completed challenge_id=%s user_id=%s score=%s rank=%s points=%d",
            challenge_id,
            user_id,
            participant.score,
            rank,
            participant.points_earned,
        )
        self.stats.refresh(db, challenge_id)

        if challenge.certificate_enabled:
            try:
                self.certificates.issue_or_get(db, challenge.id, participant.id, issued_by=challenge.created_by)
            except EngineError as exc:
                logger.warning(
                    "certificate_auto_issue_skipped challenge_id=%s user_id=%s code=%s",
                    challenge_id,
                    user_id,
                    exc.code,
                )
            except RuntimeError:
                # identifier retries exhausted; the completion itself is already committed
                logger.exception(
                    "certificate_auto_issue_failed challenge_id=%s user_id=%s",
                    challenge_id,
                    user_id,
                )
            db.refresh(participant)
        return self._result(db, participant)

    def _result(self, db: Session, participant: ChallengeParticipant, already_completed: bool = False) -> CompletionResult:
        return CompletionResult(
            participant=ParticipantOut.from_model(participant),
            already_completed=already_completed,
            rank=participant.leaderboard_rank,
            total_completed=participant.leaderboard_total or 0,
            points_earned=participant.points_earned,
            badges_earned=[BadgeEarned(**b) for b in (participant.badges_earned or [])],
            certificate_id=participant.certificate_id,
        )

    def abandon(self, db: Session, challenge_id: UUID, user_id: str) -> ChallengeParticipant:
        with transaction(db):
            participant = self._participant(db, challenge_id, user_id)
            participant.status = next_status(participant.status, ParticipantEvent.abandon)
            db.flush()
        logger.info("attempt_abandoned challenge_id=%s user_id=%s", challenge_id, user_id)
        self.stats.refresh(db, challenge_id)
        return participant

    # ------------------------------------------------------------------
    # listings
    # ------------------------------------------------------------------
    def list_for_user(
        self,
        db: Session,
        user_id: str,
        status: Optional[ParticipantStatus] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> MyChallengesResponse:
        offset, limit = page_window(page, per_page)
        rows, total = participant_repository.list_for_user(db, user_id, status=status, offset=offset, limit=limit)
        items = [
            MyChallengeItem(
                participant=ParticipantOut.from_model(row),
                challenge_title=row.challenge.title,
                challenge_status=row.challenge.status.value,
                rank=self.leaderboard.rank_of(db, row),
            )
            for row in rows
        ]
        return MyChallengesResponse(items=items, pagination=pagination_meta(page, per_page, total))

    def list_for_challenge(
        self,
        db: Session,
        challenge_id: UUID,
        status: Optional[ParticipantStatus] = None,
        page: int = 1,
        per_page: int = 20,
    ) -> ParticipantListResponse:
        self.challenges.get(db, challenge_id)
        offset, limit = page_window(page, per_page)
        rows, total = participant_repository.list_for_challenge(db, challenge_id, status=status, offset=offset, limit=limit)
        return ParticipantListResponse(
            items=[ParticipantOut.from_model(row) for row in rows],
            pagination=pagination_meta(page, per_page, total),
        )


participation_service = ParticipationService()
