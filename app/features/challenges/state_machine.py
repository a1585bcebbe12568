"""Challenge lifecycle state machine.

States: draft → active → completed, with cancellation from draft/active.
The draft↔active boundary is date-gated: activation needs ``now >= start_date``
and an active challenge observed before its start date falls back to draft.
Expiry (active → completed) happens on access once ``end_date`` has passed.
"""

from __future__ import annotations

import enum
from datetime import datetime
from typing import Dict, Optional, Tuple

from app.common.errors import EarlyActivation, StateConflict
from .models import Challenge, ChallengeStatus


class ChallengeEvent(str, enum.Enum):
    activate = "activate"
    revert_to_draft = "revert_to_draft"
    expire = "expire"
    cancel = "cancel"


TRANSITIONS: Dict[Tuple[ChallengeStatus, ChallengeEvent], ChallengeStatus] = {
    (ChallengeStatus.draft, ChallengeEvent.activate): ChallengeStatus.active,
    (ChallengeStatus.draft, ChallengeEvent.cancel): ChallengeStatus.cancelled,
    (ChallengeStatus.active, ChallengeEvent.revert_to_draft): ChallengeStatus.draft,
    (ChallengeStatus.active, ChallengeEvent.expire): ChallengeStatus.completed,
    (ChallengeStatus.active, ChallengeEvent.cancel): ChallengeStatus.cancelled,
}


def can_transition(current: ChallengeStatus, event: ChallengeEvent) -> bool:
    return (current, event) in TRANSITIONS


def next_status(challenge: Challenge, event: ChallengeEvent, now: datetime) -> ChallengeStatus:
    """Resolve ``event`` against the table and the date guards, or raise."""
    current = challenge.status
    target = TRANSITIONS.get((current, event))
    if target is None:
        allowed = sorted(e.value for (s, e) in TRANSITIONS if s == current)
        raise StateConflict(
            f"Cannot {event.value} a {current.value} challenge",
            code="invalid_status",
            status=current.value,
            event=event.value,
            allowed=allowed,
        )
    if event == ChallengeEvent.activate and now < challenge.start_date:
        raise EarlyActivation(start_date=challenge.start_date.isoformat())
    if event == ChallengeEvent.expire and now <= challenge.end_date:
        raise StateConflict("Challenge has not ended yet", code="not_ended", end_date=challenge.end_date.isoformat())
    if event == ChallengeEvent.revert_to_draft and now >= challenge.start_date:
        raise StateConflict("Challenge has already started", code="already_started")
    return target


def pending_event(challenge: Challenge, now: datetime) -> Optional[ChallengeEvent]:
    """Date-driven event an access at ``now`` should apply, if any."""
    if challenge.status != ChallengeStatus.active:
        return None
    if now > challenge.end_date:
        return ChallengeEvent.expire
    if now < challenge.start_date:
        return ChallengeEvent.revert_to_draft
    return None


__all__ = ["ChallengeEvent", "TRANSITIONS", "can_transition", "next_status", "pending_event"]
