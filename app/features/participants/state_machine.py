"""Participant attempt state machine.

``completed`` is terminal. Re-entering it via ``complete`` is reported as a
no-op so callers can return the existing record instead of re-scoring.
"""

from __future__ import annotations

import enum
from typing import Dict, Optional, Tuple, Type

from app.common.errors import NoActiveAttempt, StateConflict
from .models import ParticipantStatus


class ParticipantEvent(str, enum.Enum):
    start = "start"
    complete = "complete"
    abandon = "abandon"
    fail = "fail"


TRANSITIONS: Dict[Tuple[ParticipantStatus, ParticipantEvent], ParticipantStatus] = {
    (ParticipantStatus.registered, ParticipantEvent.start): ParticipantStatus.in_progress,
    # restart; the in-flight response log is discarded
    (ParticipantStatus.in_progress, ParticipantEvent.start): ParticipantStatus.in_progress,
    (ParticipantStatus.abandoned, ParticipantEvent.start): ParticipantStatus.in_progress,
    (ParticipantStatus.failed, ParticipantEvent.start): ParticipantStatus.in_progress,
    (ParticipantStatus.in_progress, ParticipantEvent.complete): ParticipantStatus.completed,
    (ParticipantStatus.registered, ParticipantEvent.abandon): ParticipantStatus.abandoned,
    (ParticipantStatus.in_progress, ParticipantEvent.abandon): ParticipantStatus.abandoned,
    (ParticipantStatus.in_progress, ParticipantEvent.fail): ParticipantStatus.failed,
}

NOOPS = {(ParticipantStatus.completed, ParticipantEvent.complete)}

_REJECTION: Dict[ParticipantEvent, Type[StateConflict]] = {
    ParticipantEvent.complete: NoActiveAttempt,
    ParticipantEvent.fail: NoActiveAttempt,
}


def is_noop(current: ParticipantStatus, event: ParticipantEvent) -> bool:
    return (current, event) in NOOPS


def next_status(current: ParticipantStatus, event: ParticipantEvent) -> Optional[ParticipantStatus]:
    """Target status for ``event``; ``None`` for a reported no-op."""
    if is_noop(current, event):
        return None
    target = TRANSITIONS.get((current, event))
    if target is not None:
        return target
    if current == ParticipantStatus.completed:
        raise StateConflict("Challenge already completed", code="already_completed", event=event.value)
    exc = _REJECTION.get(event, StateConflict)
    allowed = sorted(e.value for (s, e) in TRANSITIONS if s == current)
    raise exc(
        f"Cannot {event.value} from {current.value}" if exc is StateConflict else None,
        code="invalid_status" if exc is StateConflict else None,
        status=current.value,
        event=event.value,
        allowed=allowed,
    )


__all__ = ["ParticipantEvent", "TRANSITIONS", "NOOPS", "is_noop", "next_status"]
