from datetime import timedelta

import pytest

from app.common.errors import (
    CapacityExceeded,
    EarlyActivation,
    Forbidden,
    InvalidDateRange,
    Locked,
    NotFound,
    ParticipantsExist,
    RequirementsLocked,
    StateConflict,
)
from app.features.challenges.models import Challenge, ChallengeStatus
from app.features.challenges.schemas import ChallengeFilter, ChallengeRequirements, ChallengeUpdate
from app.features.challenges.service import evaluate_eligibility
from app.features.participants.models import ParticipantStatus

from conftest import challenge_payload


def test_create_starts_as_draft(db, services, clock):
    challenge = services.challenges.create(db, challenge_payload(clock), "admin-1")
    assert challenge.status == ChallengeStatus.draft
    assert challenge.created_by == "admin-1"
    assert challenge.total_participants == 0
    assert challenge.first_place_points == 100
    assert challenge.participation_points == 10


def test_create_rejects_start_in_past(db, services, clock):
    with pytest.raises(InvalidDateRange):
        services.challenges.create(db, challenge_payload(clock, start_date=clock.now() - timedelta(hours=1)), "admin-1")
    assert db.query(Challenge).count() == 0


def test_create_rejects_end_before_start(db, services, clock):
    payload = challenge_payload(clock, start_date=clock.now() + timedelta(days=2), end_date=clock.now() + timedelta(days=1))
    with pytest.raises(InvalidDateRange):
        services.challenges.create(db, payload, "admin-1")


def test_activate_before_start_date(db, services, make_challenge):
    challenge = make_challenge(activate=False)
    with pytest.raises(EarlyActivation):
        services.challenges.activate(db, challenge.id)
    db.refresh(challenge)
    assert challenge.status == ChallengeStatus.draft


def test_activate_once_started(db, services, clock, make_challenge):
    challenge = make_challenge(activate=False)
    clock.advance(minutes=5)
    assert services.challenges.activate(db, challenge.id).status == ChallengeStatus.active
    with pytest.raises(StateConflict):
        services.challenges.activate(db, challenge.id)


def test_get_expires_after_end_date(db, services, clock, make_challenge):
    challenge = make_challenge()
    clock.advance(days=8)
    assert services.challenges.get(db, challenge.id).status == ChallengeStatus.completed
    db.expire_all()
    assert db.get(Challenge, challenge.id).status == ChallengeStatus.completed


def test_list_expires_due_challenges(db, services, clock, make_challenge):
    challenge = make_challenge()
    clock.advance(days=8)
    result = services.challenges.list(db, ChallengeFilter(status=ChallengeStatus.completed))
    assert [item.id for item in result.items] == [challenge.id]


def test_get_unknown_challenge(db, services):
    import uuid

    with pytest.raises(NotFound) as exc:
        services.challenges.get(db, uuid.uuid4())
    assert exc.value.code == "challenge_not_found"


def test_update_fields(db, services, make_challenge):
    challenge = make_challenge(activate=False)
    updated = services.challenges.update(db, challenge.id, ChallengeUpdate(title="Gita Chapter 3 Recitation"))
    assert updated.title == "Gita Chapter 3 Recitation"


def test_update_requirements_locked_after_join(db, services, make_challenge):
    challenge = make_challenge()
    services.participation.join(db, challenge.id, "u-alice")
    patch = ChallengeUpdate(requirements=ChallengeRequirements(time_limit=15))
    with pytest.raises(RequirementsLocked):
        services.challenges.update(db, challenge.id, patch)
    db.refresh(challenge)
    assert challenge.time_limit is None
    # other fields stay editable
    services.challenges.update(db, challenge.id, ChallengeUpdate(description="Recite every verse of chapter two."))


def test_update_completed_challenge_locked(db, services, clock, make_challenge):
    challenge = make_challenge()
    clock.advance(days=8)
    with pytest.raises(Locked) as exc:
        services.challenges.update(db, challenge.id, ChallengeUpdate(title="Too late"))
    assert exc.value.code == "challenge_completed"


def test_update_rejects_inverted_dates(db, services, clock, make_challenge):
    challenge = make_challenge(activate=False)
    with pytest.raises(InvalidDateRange):
        services.challenges.update(db, challenge.id, ChallengeUpdate(end_date=clock.now() - timedelta(days=1)))


def test_delete_with_participants_rejected(db, services, make_challenge):
    challenge = make_challenge()
    services.participation.join(db, challenge.id, "u-alice")
    with pytest.raises(ParticipantsExist):
        services.challenges.delete(db, challenge.id)
    db.expire_all()
    stored = db.get(Challenge, challenge.id)
    assert stored is not None
    assert stored.status == ChallengeStatus.active
    assert stored.total_participants == 1


def test_delete_without_participants(db, services, make_challenge):
    challenge = make_challenge(activate=False)
    services.challenges.delete(db, challenge.id)
    with pytest.raises(NotFound):
        services.challenges.get(db, challenge.id)


def test_archive_cancels(db, services, make_challenge):
    challenge = make_challenge()
    services.participation.join(db, challenge.id, "u-alice")
    assert services.challenges.archive(db, challenge.id).status == ChallengeStatus.cancelled
    with pytest.raises(StateConflict):
        services.challenges.archive(db, challenge.id)
    assert services.challenges.participant_breakdown(db, challenge.id).registered == 1


def test_list_paginates_and_filters(db, services, make_challenge):
    for title in ("Alpha recitation", "Beta recitation", "Gamma recitation"):
        make_challenge(activate=False, title=title)
    make_challenge(activate=False, title="Hidden recitation", settings={"is_public": False})

    page_one = services.challenges.list(db, ChallengeFilter(is_public=True), sort="title", order="asc", page=1, per_page=2)
    assert [c.title for c in page_one.items] == ["Alpha recitation", "Beta recitation"]
    assert page_one.pagination.total == 3
    assert page_one.pagination.pages == 2
    assert page_one.pagination.has_next is True
    assert page_one.pagination.has_prev is False

    page_two = services.challenges.list(db, ChallengeFilter(is_public=True), sort="title", order="asc", page=2, per_page=2)
    assert [c.title for c in page_two.items] == ["Gamma recitation"]
    assert page_two.pagination.has_next is False


def test_list_active_only(db, services, make_challenge):
    make_challenge(activate=False, title="Draft recitation")
    active = make_challenge(title="Live recitation")
    result = services.challenges.list(db, ChallengeFilter(active_only=True))
    assert [c.id for c in result.items] == [active.id]


def test_full_challenge_reports_capacity_to_everyone(db, services, make_challenge):
    challenge = make_challenge(settings={"max_participants": 1})
    services.participation.join(db, challenge.id, "u-alice")

    check = services.challenges.can_participate(db, challenge.id, "u-bob")
    assert check.allowed is False
    assert check.reason == "Maximum participants reached"
    registered = services.challenges.can_participate(db, challenge.id, "u-alice")
    assert registered.allowed is False
    assert registered.reason == "Maximum participants reached"

    with pytest.raises(CapacityExceeded):
        services.participation.join(db, challenge.id, "u-bob")
    db.refresh(challenge)
    assert challenge.total_participants == 1

    # a registered user can still start an attempt on a full challenge
    started = services.participation.start_attempt(db, challenge.id, "u-alice")
    assert started.status == ParticipantStatus.in_progress


def test_eligibility_reasons(db, services, clock, make_challenge):
    challenge = make_challenge(settings={"allow_retries": False})
    now = clock.now()

    class _P:
        status = ParticipantStatus.abandoned
        attempts = 1

    assert evaluate_eligibility(challenge, _P(), now).reason == "Retries not allowed"
    _P.status = ParticipantStatus.completed
    assert evaluate_eligibility(challenge, _P(), now).reason == "Already completed this challenge"
    assert evaluate_eligibility(challenge, None, now + timedelta(days=30)).reason == "Challenge is not active"


def test_private_detail_visible_to_creator_only(db, services, make_challenge):
    challenge = make_challenge(created_by="admin-1", settings={"is_public": False})
    with pytest.raises(Forbidden):
        services.challenges.get_detail(db, challenge.id, "u-alice")
    assert services.challenges.get_detail(db, challenge.id, "admin-1").challenge.id == challenge.id
    assert services.challenges.get_detail(db, challenge.id, "u-alice", is_admin=True).challenge.id == challenge.id


def test_detail_includes_caller_rank(db, services, make_challenge, finish):
    challenge = make_challenge()
    finish(challenge.id, "u-alice", correct=2)
    detail = services.challenges.get_detail(db, challenge.id, "u-alice")
    assert detail.participation.status == ParticipantStatus.completed
    assert detail.user_rank == 1
    assert detail.leaderboard[0].is_current_user is True
    assert detail.can_participate.reason == "Already completed this challenge"
