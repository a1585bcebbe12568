"""Engine error taxonomy.

Services raise these; the HTTP layer (``app.main``) is the only place that turns
them into status codes. ``code`` is the stable machine-readable identifier and
``context`` carries whatever ids or values explain the rejection.
"""

from __future__ import annotations

from typing import Any, Dict, Optional


class EngineError(Exception):
    kind = "engine_error"
    code = "engine_error"
    default_message = "Operation failed"

    def __init__(self, message: Optional[str] = None, *, code: Optional[str] = None, **context: Any) -> None:
        self.message = message or self.default_message
        if code is not None:
            self.code = code
        self.context: Dict[str, Any] = context
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "error_code": self.code,
            "kind": self.kind,
            "message": self.message,
            "context": {k: _jsonable(v) for k, v in self.context.items()},
        }


def _jsonable(value: Any) -> Any:
    if value is None or isinstance(value, (str, int, float, bool)):
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    if isinstance(value, dict):
        return {str(k): _jsonable(v) for k, v in value.items()}
    return str(value)


# --- ValidationError ------------------------------------------------------

class ValidationError(EngineError):
    kind = "validation_error"
    code = "validation_error"
    default_message = "Invalid input"


class InvalidDateRange(ValidationError):
    code = "invalid_date_range"
    default_message = "End date must be after start date and start date cannot be in the past"


# --- StateConflict --------------------------------------------------------

class StateConflict(EngineError):
    kind = "state_conflict"
    code = "state_conflict"
    default_message = "Invalid transition for current state"


class EarlyActivation(StateConflict):
    code = "early_activation"
    default_message = "Cannot activate challenge before start date"


class ChallengeNotActive(StateConflict):
    code = "challenge_not_active"
    default_message = "Challenge is not active"


class NotRegistered(StateConflict):
    code = "not_registered"
    default_message = "Must register for challenge first"


class AttemptsExhausted(StateConflict):
    code = "max_attempts_exceeded"
    default_message = "Maximum attempts exceeded"


class NoActiveAttempt(StateConflict):
    code = "no_active_attempt"
    default_message = "No active challenge attempt found"


class ParticipationDenied(StateConflict):
    code = "participation_denied"
    default_message = "Participation denied"


# --- NotFound -------------------------------------------------------------

class NotFound(EngineError):
    kind = "not_found"
    code = "not_found"
    default_message = "Resource not found"


# --- AlreadyExists --------------------------------------------------------

class AlreadyExists(EngineError):
    kind = "already_exists"
    code = "already_exists"
    default_message = "Resource already exists"


class AlreadyRegistered(AlreadyExists):
    code = "already_registered"
    default_message = "Already registered for this challenge"


class CertificateAlreadyExists(AlreadyExists):
    code = "certificate_exists"
    default_message = "Certificate already issued for this participant"

    def __init__(self, certificate: Any = None, message: Optional[str] = None, **context: Any) -> None:
        self.certificate = certificate
        if certificate is not None:
            context.setdefault("certificate_id", getattr(certificate, "certificate_id", None))
        super().__init__(message, **context)


# --- CapacityExceeded -----------------------------------------------------

class CapacityExceeded(EngineError):
    kind = "capacity_exceeded"
    code = "capacity_exceeded"
    default_message = "Maximum participants reached"


# --- Forbidden ------------------------------------------------------------

class Forbidden(EngineError):
    kind = "forbidden"
    code = "access_denied"
    default_message = "Access denied"


# --- Locked ---------------------------------------------------------------

class Locked(EngineError):
    kind = "locked"
    code = "locked"
    default_message = "Resource is locked"


class RequirementsLocked(Locked):
    code = "requirements_locked"
    default_message = "Cannot change requirements after users have participated"


class ParticipantsExist(Locked):
    code = "participants_exist"
    default_message = "Cannot delete challenge with participants. Archive instead."


HTTP_STATUS_BY_KIND: Dict[str, int] = {
    ValidationError.kind: 400,
    StateConflict.kind: 409,
    NotFound.kind: 404,
    AlreadyExists.kind: 409,
    CapacityExceeded.kind: 409,
    Forbidden.kind: 403,
    Locked.kind: 423,
}


def http_status_for(exc: EngineError) -> int:
    return HTTP_STATUS_BY_KIND.get(exc.kind, 400)


__all__ = [
    "EngineError",
    "ValidationError",
    "InvalidDateRange",
    "StateConflict",
    "EarlyActivation",
    "ChallengeNotActive",
    "NotRegistered",
    "AttemptsExhausted",
    "NoActiveAttempt",
    "ParticipationDenied",
    "NotFound",
    "AlreadyExists",
    "AlreadyRegistered",
    "CertificateAlreadyExists",
    "CapacityExceeded",
    "Forbidden",
    "Locked",
    "RequirementsLocked",
    "ParticipantsExist",
    "http_status_for",
]
