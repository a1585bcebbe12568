from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Dict, Optional, Union
from uuid import UUID

from sqlalchemy.orm import Session

from app.DB.session import transaction
from app.common.clock import Clock, system_clock
from app.common.errors import Forbidden, InvalidDateRange, Locked, NotFound, ParticipantsExist, RequirementsLocked
from app.common.utils import ensure_utc, page_window, pagination_meta
from app.features.leaderboard.service import LeaderboardService
from app.features.participants.models import ChallengeParticipant, ParticipantStatus
from app.features.participants.repository import participant_repository
from app.features.participants.schemas import ParticipantOut
from .models import Challenge, ChallengeStatus
from .repository import challenge_repository
from .schemas import (
    ChallengeCreate,
    ChallengeDetail,
    ChallengeFilter,
    ChallengeListResponse,
    ChallengeOut,
    ChallengeRequirements,
    ChallengeRewards,
    ChallengeSettings,
    ChallengeUpdate,
    ParticipantBreakdown,
    ParticipationCheck,
)
from .state_machine import ChallengeEvent, next_status, pending_event

logger = logging.getLogger("challenges.service")

DETAIL_LEADERBOARD_SIZE = 10


def evaluate_eligibility(
    challenge: Challenge,
    participant: Optional[ChallengeParticipant],
    now: datetime,
) -> ParticipationCheck:
    """Whether ``participant`` (or a newcomer when ``None``) may take part now.

    A full challenge reports "Maximum participants reached" to everyone,
    including users already registered. ``start_attempt`` does not consult this.
    """
    if not challenge.is_active_at(now):
        return ParticipationCheck(allowed=False, reason="Challenge is not active")
    if challenge.max_participants and challenge.total_participants >= challenge.max_participants:
        return ParticipationCheck(allowed=False, reason="Maximum participants reached")
    if participant is None:
        return ParticipationCheck(allowed=True)
    if participant.status == ParticipantStatus.completed:
        return ParticipationCheck(allowed=False, reason="Already completed this challenge")
    if not challenge.allow_retries and participant.attempts > 0:
        return ParticipationCheck(allowed=False, reason="Retries not allowed")
    if participant.attempts >= challenge.attempt_limit:
        return ParticipationCheck(allowed=False, reason="Maximum attempts exceeded")
    return ParticipationCheck(allowed=True)


def _requirement_columns(req: ChallengeRequirements) -> Dict[str, Any]:
    return {
        "target_count": req.target_count,
        "required_accuracy": req.accuracy,
        "time_limit": req.time_limit,
        "difficulty": req.difficulty,
        "category": req.category,
    }


def _reward_columns(rewards: ChallengeRewards) -> Dict[str, Any]:
    tiers = rewards.position_tiers
    return {
        "reward_points": rewards.points,
        "reward_badge": rewards.badge.model_dump() if rewards.badge else None,
        "certificate_enabled": rewards.certificate_enabled,
        "certificate_template_id": rewards.certificate_template_id,
        "certificate_title": rewards.certificate_title,
        "certificate_description": rewards.certificate_description,
        "first_place_points": tiers.first,
        "second_place_points": tiers.second,
        "third_place_points": tiers.third,
        "participation_points": tiers.participation,
    }


def _settings_columns(settings: ChallengeSettings) -> Dict[str, Any]:
    return {
        "max_participants": settings.max_participants,
        "allow_retries": settings.allow_retries,
        "max_retries": settings.max_retries,
        "is_public": settings.is_public,
    }


class ChallengeService:
    def __init__(self, clock: Optional[Clock] = None, leaderboard: Optional[LeaderboardService] = None) -> None:
        self.clock = clock or system_clock
        self.leaderboard = leaderboard or LeaderboardService()

    # ------------------------------------------------------------------
    # loading + on-access transitions
    # ------------------------------------------------------------------
    def _load(self, db: Session, challenge_id: UUID) -> Challenge:
        challenge = challenge_repository.get(db, challenge_id)
        if challenge is None:
            raise NotFound("Challenge not found", code="challenge_not_found", challenge_id=challenge_id)
        return challenge

    def _apply_pending(self, challenge: Challenge, now: datetime) -> bool:
        event = pending_event(challenge, now)
        if event is None:
            return False
        previous = challenge.status
        challenge.status = next_status(challenge, event, now)
        logger.info(
            "challenge_auto_transition id=%s from=%s to=%s event=%s",
            challenge.id,
            previous.value,
            challenge.status.value,
            event.value,
        )
        return True

    def refresh(self, db: Session, challenge_id: UUID) -> Challenge:
        """Load a challenge and apply any date-driven transition; caller commits."""
        challenge = self._load(db, challenge_id)
        if self._apply_pending(challenge, self.clock.now()):
            db.flush()
        return challenge

    # ------------------------------------------------------------------
    # admin lifecycle
    # ------------------------------------------------------------------
    def create(self, db: Session, payload: ChallengeCreate, created_by: str) -> Challenge:
        now = self.clock.now()
        start = ensure_utc(payload.start_date)
        end = ensure_utc(payload.end_date)
        if start < now:
            raise InvalidDateRange("Start date cannot be in the past", start_date=start.isoformat())
        if end <= start:
            raise InvalidDateRange("End date must be after start date", start_date=start.isoformat(), end_date=end.isoformat())

        challenge = Challenge(
            title=payload.title,
            description=payload.description,
            instructions=payload.instructions,
            type=payload.type,
            status=ChallengeStatus.draft,
            start_date=start,
            end_date=end,
            created_by=str(created_by),
            total_participants=0,
            completed_participants=0,
            average_score=0.0,
            top_score=0.0,
            **_requirement_columns(payload.requirements),
            **_reward_columns(payload.rewards),
            **_settings_columns(payload.settings),
        )
        with transaction(db):
            challenge_repository.add(db, challenge)
        logger.info("challenge_created id=%s type=%s created_by=%s", challenge.id, challenge.type.value, created_by)
        return challenge

    def activate(self, db: Session, challenge_id: UUID) -> Challenge:
        now = self.clock.now()
        with transaction(db):
            challenge = self._load(db, challenge_id)
            self._apply_pending(challenge, now)
            challenge.status = next_status(challenge, ChallengeEvent.activate, now)
            db.flush()
        logger.info("challenge_activated id=%s", challenge.id)
        return challenge

    def update(self, db: Session, challenge_id: UUID, patch: ChallengeUpdate) -> Challenge:
        changes = patch.model_dump(exclude_unset=True)
        with transaction(db):
            challenge = self.refresh(db, challenge_id)
            if challenge.status == ChallengeStatus.completed:
                raise Locked("Cannot modify completed challenge", code="challenge_completed", challenge_id=challenge.id)
            if changes.get("requirements") is not None:
                participants = challenge_repository.participant_count(db, challenge.id)
                if participants > 0:
                    raise RequirementsLocked(challenge_id=challenge.id, participants=participants)

            start = ensure_utc(patch.start_date) if patch.start_date is not None else challenge.start_date
            end = ensure_utc(patch.end_date) if patch.end_date is not None else challenge.end_date
            if end <= start:
                raise InvalidDateRange("End date must be after start date", start_date=start.isoformat(), end_date=end.isoformat())

            values: Dict[str, Any] = {}
            for key in ("title", "description", "instructions", "type"):
                if key in changes:
                    values[key] = getattr(patch, key)
            if "start_date" in changes:
                values["start_date"] = start
            if "end_date" in changes:
                values["end_date"] = end
            if patch.requirements is not None:
                values.update(_requirement_columns(patch.requirements))
            if patch.rewards is not None:
                values.update(_reward_columns(patch.rewards))
            if patch.settings is not None:
                values.update(_settings_columns(patch.settings))

            for key, value in values.items():
                setattr(challenge, key, value)
            db.flush()
        logger.info("challenge_updated id=%s fields=%s", challenge.id, sorted(changes))
        return challenge

    def delete(self, db: Session, challenge_id: UUID) -> None:
        with transaction(db):
            challenge = self._load(db, challenge_id)
            participants = challenge_repository.participant_count(db, challenge.id)
            if participants > 0:
                raise ParticipantsExist(challenge_id=challenge.id, participants=participants)
            challenge_repository.delete(db, challenge)
        logger.info("challenge_deleted id=%s", challenge_id)

    def archive(self, db: Session, challenge_id: UUID) -> Challenge:
        now = self.clock.now()
        with transaction(db):
            challenge = self._load(db, challenge_id)
            self._apply_pending(challenge, now)
            challenge.status = next_status(challenge, ChallengeEvent.cancel, now)
            db.flush()
        logger.info("challenge_archived id=%s", challenge.id)
        return challenge

    # ------------------------------------------------------------------
    # reads
    # ------------------------------------------------------------------
    def get(self, db: Session, challenge_id: UUID) -> Challenge:
        with transaction(db):
            challenge = self.refresh(db, challenge_id)
        return challenge

    def list(
        self,
        db: Session,
        filters: Optional[Union[ChallengeFilter, Dict[str, Any]]] = None,
        sort: str = "created_at",
        order: str = "desc",
        page: int = 1,
        per_page: int = 10,
    ) -> ChallengeListResponse:
        if isinstance(filters, ChallengeFilter):
            filters = filters.model_dump()
        now = self.clock.now()
        offset, limit = page_window(page, per_page)
        with transaction(db):
            challenge_repository.expire_due(db, now)
            items, total = challenge_repository.list(
                db,
                filters=filters or {},
                now=now,
                sort=sort,
                descending=str(order).lower() != "asc",
                offset=offset,
                limit=limit,
            )
        return ChallengeListResponse(
            items=[ChallengeOut.from_model(c) for c in items],
            pagination=pagination_meta(page, per_page, total),
        )

    def can_participate(self, db: Session, challenge_id: UUID, user_id: str) -> ParticipationCheck:
        with transaction(db):
            challenge = self.refresh(db, challenge_id)
            participant = participant_repository.get_for_pair(db, challenge.id, user_id)
            return evaluate_eligibility(challenge, participant, self.clock.now())

    def get_detail(self, db: Session, challenge_id: UUID, user_id: str, is_admin: bool = False) -> ChallengeDetail:
        challenge = self.get(db, challenge_id)
        if not challenge.is_public and challenge.created_by != user_id and not is_admin:
            raise Forbidden("Challenge is private", challenge_id=challenge.id)

        participant = participant_repository.get_for_pair(db, challenge.id, user_id)
        board = self.leaderboard.leaderboard(db, challenge.id, limit=DETAIL_LEADERBOARD_SIZE, viewer_id=user_id)
        return ChallengeDetail(
            challenge=ChallengeOut.from_model(challenge),
            participation=ParticipantOut.from_model(participant) if participant else None,
            can_participate=evaluate_eligibility(challenge, participant, self.clock.now()),
            user_rank=self.leaderboard.rank_of(db, participant) if participant else None,
            leaderboard=board.entries,
        )

    def participant_breakdown(self, db: Session, challenge_id: UUID) -> ParticipantBreakdown:
        challenge = self._load(db, challenge_id)
        counts = challenge_repository.status_counts(db, challenge.id)
        return ParticipantBreakdown(
            total=sum(counts.values()),
            **{status.value: counts.get(status, 0) for status in ParticipantStatus},
        )


challenge_service = ChallengeService()
