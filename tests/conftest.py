import sys
import os
from datetime import datetime, timedelta, timezone
from types import SimpleNamespace

# Ensure repo root on sys.path for imports like `app...`
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), os.pardir))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)

os.environ.setdefault("DATABASE_URL", "sqlite://")

import pytest
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool

import app.DB.models  # noqa: F401
from app.DB.base import Base
from app.DB.session import build_engine, get_db
from app.common.clock import Clock
from app.features.certificates.service import CertificateService
from app.features.challenges.schemas import ChallengeCreate
from app.features.challenges.service import ChallengeService
from app.features.leaderboard.service import LeaderboardService
from app.features.participants.service import ParticipationService
from app.integrations.url_signer import UrlSigner
from app.integrations.user_directory import StaticUserDirectory, UserSummary

T0 = datetime(2025, 3, 3, 9, 0, tzinfo=timezone.utc)


class FrozenClock(Clock):
    def __init__(self, start: datetime = T0) -> None:
        self.current = start

    def now(self) -> datetime:
        return self.current

    def advance(self, **delta) -> datetime:
        self.current = self.current + timedelta(**delta)
        return self.current

    def set(self, value: datetime) -> None:
        self.current = value


class FailingStats:
    """Stats refresher that always reports a failed refresh."""

    def __init__(self) -> None:
        self.calls = 0

    def refresh(self, db, challenge_id) -> bool:
        self.calls += 1
        return False


@pytest.fixture
def engine():
    eng = build_engine("sqlite://", poolclass=StaticPool)
    Base.metadata.create_all(eng)
    yield eng
    Base.metadata.drop_all(eng)
    eng.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(bind=engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture
def db(session_factory):
    session = session_factory()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture
def clock():
    return FrozenClock()


@pytest.fixture
def directory():
    return StaticUserDirectory(
        {
            "u-alice": UserSummary(id="u-alice", username="alice", display_name="Alice Sharma"),
            "u-bob": UserSummary(id="u-bob", username="bob", display_name="Bob Iyer"),
        }
    )


@pytest.fixture
def signer():
    return UrlSigner("https://learn.example.org", "test-secret", ttl_seconds=600)


@pytest.fixture
def services(clock, directory, signer):
    leaderboard = LeaderboardService(directory)
    challenges = ChallengeService(clock, leaderboard)
    certificates = CertificateService(clock, leaderboard, directory, signer)
    participation = ParticipationService(clock, challenges, leaderboard, certificates)
    return SimpleNamespace(
        clock=clock,
        leaderboard=leaderboard,
        challenges=challenges,
        certificates=certificates,
        participation=participation,
    )


def challenge_payload(clock, **overrides) -> ChallengeCreate:
    data = {
        "title": "Gita Chapter 2 Recitation",
        "description": "Recite the verses of chapter two with correct meter.",
        "type": "shloka_recitation",
        "start_date": clock.now() + timedelta(minutes=1),
        "end_date": clock.now() + timedelta(days=7),
    }
    data.update(overrides)
    return ChallengeCreate(**data)


@pytest.fixture
def make_challenge(db, services, clock):
    """Create a challenge and, unless ``activate=False``, move it to active."""

    def _make(activate: bool = True, created_by: str = "admin-1", **overrides):
        challenge = services.challenges.create(db, challenge_payload(clock, **overrides), created_by)
        if activate:
            if clock.now() < challenge.start_date:
                clock.set(challenge.start_date)
            challenge = services.challenges.activate(db, challenge.id)
        return challenge

    return _make


@pytest.fixture
def finish(db, services, clock):
    """Join, start, answer and complete for one user."""

    def _finish(challenge_id, user_id, correct: int = 1, wrong: int = 0, minutes: float = 1):
        services.participation.join(db, challenge_id, user_id)
        services.participation.start_attempt(db, challenge_id, user_id)
        total = correct + wrong
        for index in range(total):
            services.participation.submit_response(
                db, challenge_id, user_id, f"q{index}", "answer", index < correct, 10, total
            )
        clock.advance(minutes=minutes)
        return services.participation.complete_attempt(db, challenge_id, user_id)

    return _finish


@pytest.fixture
def client(session_factory, services, monkeypatch):
    from fastapi.testclient import TestClient

    from app.main import app
    from app.features.certificates import endpoints as certificate_endpoints
    from app.features.challenges import endpoints as challenge_endpoints
    from app.features.leaderboard import endpoints as leaderboard_endpoints
    from app.features.participants import endpoints as participant_endpoints

    monkeypatch.setattr(challenge_endpoints, "challenge_service", services.challenges)
    monkeypatch.setattr(participant_endpoints, "participation_service", services.participation)
    monkeypatch.setattr(leaderboard_endpoints, "leaderboard_service", services.leaderboard)
    monkeypatch.setattr(certificate_endpoints, "certificate_service", services.certificates)

    def override_get_db():
        session = session_factory()
        try:
            yield session
        finally:
            session.close()

    app.dependency_overrides[get_db] = override_get_db
    try:
        yield TestClient(app)
    finally:
        app.dependency_overrides.pop(get_db, None)


ADMIN = {"X-User-Id": "admin-1", "X-User-Role": "admin"}


def as_user(user_id: str) -> dict:
    return {"X-User-Id": user_id, "X-User-Role": "student"}
