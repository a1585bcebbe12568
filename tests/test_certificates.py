import threading
import uuid
from urllib.parse import parse_qs, urlparse

import pytest
from sqlalchemy.orm import sessionmaker

from app.DB.base import Base
from app.DB.session import build_engine
from app.common.errors import CertificateAlreadyExists, Forbidden, NotFound, StateConflict
from app.features.certificates import service as certificate_module
from app.features.certificates.models import CertificateStatus, ChallengeCertificate
from app.features.certificates.schemas import TemplateOverrides
from app.features.certificates.service import compute_digital_hash, download_file_name
from app.features.participants.models import ChallengeParticipant

from conftest import challenge_payload


@pytest.fixture
def completed(db, services, make_challenge, finish):
    challenge = make_challenge()
    finish(challenge.id, "u-alice", correct=9, wrong=1)
    participant = db.query(ChallengeParticipant).filter_by(user_id="u-alice").one()
    return challenge, participant


def test_issue_snapshots_achievement(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id, issued_by="admin-1")

    assert cert.status == CertificateStatus.generated
    assert cert.certificate_id.startswith("SY-CERT-")
    assert len(cert.verification_code) == 12
    assert cert.recipient_name == "Alice Sharma"
    assert cert.title == f"Certificate of Achievement - {challenge.title}"
    assert cert.achievement["score"] == participant.score
    assert cert.achievement["rank"] == {"position": 1, "total_participants": 1}
    assert cert.template["border_style"] == "decorative"
    assert cert.digital_hash == compute_digital_hash(
        cert.certificate_id, cert.verification_code, "u-alice", challenge.id, cert.achievement
    )

    db.refresh(participant)
    assert participant.certificate_id == cert.certificate_id
    assert participant.certificate_verification_code == cert.verification_code


def test_issue_applies_template_and_message(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(
        db,
        challenge.id,
        participant.id,
        custom_message="Outstanding recitation",
        template=TemplateOverrides(primary_color="#000000"),
    )
    assert cert.description == "Outstanding recitation"
    assert cert.template["primary_color"] == "#000000"
    assert cert.template["secondary_color"] == "#4169E1"


def test_second_issue_reports_existing(db, services, completed):
    challenge, participant = completed
    first = services.certificates.issue(db, challenge.id, participant.id)
    with pytest.raises(CertificateAlreadyExists) as exc:
        services.certificates.issue(db, challenge.id, participant.id)
    assert exc.value.certificate.certificate_id == first.certificate_id
    assert services.certificates.issue_or_get(db, challenge.id, participant.id).certificate_id == first.certificate_id
    assert db.query(ChallengeCertificate).count() == 1


def test_lost_race_resolves_to_winner(db, services, completed, monkeypatch):
    challenge, participant = completed
    winner = services.certificates.issue(db, challenge.id, participant.id)

    real = certificate_module.certificate_repository.get_for_pair
    calls = {"n": 0}

    def stale_then_real(session, user_id, challenge_id):
        calls["n"] += 1
        if calls["n"] == 1:
            return None
        return real(session, user_id, challenge_id)

    monkeypatch.setattr(certificate_module.certificate_repository, "get_for_pair", stale_then_real)

    with pytest.raises(CertificateAlreadyExists) as exc:
        services.certificates.issue(db, challenge.id, participant.id)
    assert exc.value.certificate.certificate_id == winner.certificate_id
    assert db.query(ChallengeCertificate).count() == 1
    db.refresh(participant)
    assert participant.certificate_id == winner.certificate_id


def test_identifier_collision_retries(db, services, make_challenge, finish, monkeypatch):
    challenge = make_challenge()
    finish(challenge.id, "u-alice")
    finish(challenge.id, "u-bob")
    alice = db.query(ChallengeParticipant).filter_by(user_id="u-alice").one()
    bob = db.query(ChallengeParticipant).filter_by(user_id="u-bob").one()

    ids = iter(["SY-CERT-AAAA", "SY-CERT-AAAA", "SY-CERT-BBBB"])
    monkeypatch.setattr(services.certificates, "_new_certificate_id", lambda: next(ids))

    services.certificates.issue(db, challenge.id, alice.id)
    cert = services.certificates.issue(db, challenge.id, bob.id)
    assert cert.certificate_id == "SY-CERT-BBBB"
    assert db.query(ChallengeCertificate).count() == 2


def test_identifier_collision_gives_up(db, services, make_challenge, finish, monkeypatch):
    challenge = make_challenge()
    finish(challenge.id, "u-alice")
    finish(challenge.id, "u-bob")
    alice = db.query(ChallengeParticipant).filter_by(user_id="u-alice").one()
    bob = db.query(ChallengeParticipant).filter_by(user_id="u-bob").one()

    monkeypatch.setattr(services.certificates, "_new_certificate_id", lambda: "SY-CERT-SAME")
    services.certificates.issue(db, challenge.id, alice.id)
    with pytest.raises(RuntimeError):
        services.certificates.issue(db, challenge.id, bob.id)
    db.refresh(bob)
    assert bob.certificate_id is None


def test_incomplete_participant_rejected_without_writes(db, services, make_challenge):
    challenge = make_challenge()
    participant = services.participation.join(db, challenge.id, "u-alice")
    with pytest.raises(StateConflict) as exc:
        services.certificates.issue(db, challenge.id, participant.id)
    assert exc.value.code == "participant_not_completed"
    assert db.query(ChallengeCertificate).count() == 0
    db.refresh(participant)
    assert participant.certificate_id is None


def test_participant_of_other_challenge_not_found(db, services, completed, make_challenge):
    _, participant = completed
    other = make_challenge(title="Ramayana Sundara Kanda")
    with pytest.raises(NotFound):
        services.certificates.issue(db, other.id, participant.id)


def test_completion_auto_issues_once(db, services, make_challenge, finish):
    challenge = make_challenge(rewards={"certificate_enabled": True, "certificate_title": "Gita Reciter"})
    result = finish(challenge.id, "u-alice", correct=1)
    assert result.certificate_id is not None
    again = services.participation.complete_attempt(db, challenge.id, "u-alice")
    assert again.already_completed is True
    assert again.certificate_id == result.certificate_id
    cert = db.query(ChallengeCertificate).one()
    assert cert.title == "Gita Reciter"
    assert cert.issued_by == "admin-1"


def test_completion_survives_exhausted_identifier_retries(db, services, make_challenge, finish, monkeypatch, caplog):
    challenge = make_challenge(rewards={"certificate_enabled": True})
    monkeypatch.setattr(services.certificates, "_new_certificate_id", lambda: "SY-CERT-SAME")
    assert finish(challenge.id, "u-alice").certificate_id == "SY-CERT-SAME"

    with caplog.at_level("ERROR", logger="participants.service"):
        result = finish(challenge.id, "u-bob")
    assert "certificate_auto_issue_failed" in caplog.text
    assert result.already_completed is False
    assert result.certificate_id is None
    bob = db.query(ChallengeParticipant).filter_by(user_id="u-bob").one()
    assert bob.status.value == "completed"
    assert db.query(ChallengeCertificate).count() == 1


def test_verify_counts_and_checks_integrity(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id)

    first = services.certificates.verify(db, cert.verification_code)
    second = services.certificates.verify(db, cert.verification_code)
    assert first.integrity_verified is True
    assert first.recipient.name == "Alice Sharma"
    assert first.challenge.type == "shloka_recitation"
    assert second.achievement.rank.position == 1
    db.refresh(cert)
    assert cert.verification_count == 2

    cert.achievement = {**cert.achievement, "score": 100.0}
    db.commit()
    assert services.certificates.verify(db, cert.verification_code).integrity_verified is False


def test_verify_unknown_code(db, services):
    with pytest.raises(NotFound) as exc:
        services.certificates.verify(db, "NOSUCHCODE00")
    assert exc.value.code == "certificate_not_found"


def test_download_signed_link_and_counter(db, services, clock, signer, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id)

    link = services.certificates.download(db, cert.certificate_id, "u-alice")
    parsed = urlparse(link.download_url)
    query = parse_qs(parsed.query)
    assert parsed.netloc == "learn.example.org"
    assert signer.verify_download(parsed.path, int(query["expires"][0]), query["signature"][0], clock.now())
    assert link.file_name == download_file_name(cert.title)

    db.refresh(cert)
    assert cert.download_count == 1
    assert cert.last_downloaded_at == clock.now()


def test_download_by_other_user_forbidden(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id)
    with pytest.raises(Forbidden):
        services.certificates.download(db, cert.certificate_id, "u-bob")
    with pytest.raises(NotFound):
        services.certificates.download(db, "SY-CERT-MISSING", "u-alice")
    db.refresh(cert)
    assert cert.download_count == 0


def test_share_counter(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id)
    link = services.certificates.share(db, cert.certificate_id, "u-alice", "whatsapp")
    services.certificates.share(db, cert.certificate_id, "u-alice")
    assert link.verification_url.endswith(f"/certificates/verify/{cert.verification_code}")
    assert link.platform == "whatsapp"
    db.refresh(cert)
    assert cert.share_count == 2


def test_revoke_hides_certificate(db, services, completed):
    challenge, participant = completed
    cert = services.certificates.issue(db, challenge.id, participant.id)
    revoked = services.certificates.revoke(db, cert.certificate_id, "Plagiarised recitation")
    assert revoked.status == CertificateStatus.revoked
    assert revoked.revocation_reason == "Plagiarised recitation"
    with pytest.raises(NotFound):
        services.certificates.verify(db, cert.verification_code)
    with pytest.raises(StateConflict):
        services.certificates.revoke(db, cert.certificate_id)


def test_list_for_user(db, services, completed):
    challenge, participant = completed
    services.certificates.issue(db, challenge.id, participant.id)
    listing = services.certificates.list_for_user(db, "u-alice")
    assert listing.pagination.total == 1
    assert listing.items[0].verification_url.startswith("https://learn.example.org/certificates/verify/")
    assert services.certificates.list_for_user(db, "u-bob").pagination.total == 0


def test_concurrent_issue_exactly_once(tmp_path, services, clock):
    engine = build_engine(f"sqlite:///{tmp_path / 'race.db'}", connect_args={"timeout": 30})
    Base.metadata.create_all(engine)
    factory = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)

    with factory() as setup:
        challenge = services.challenges.create(setup, challenge_payload(clock), "admin-1")
        clock.set(challenge.start_date)
        services.challenges.activate(setup, challenge.id)
        services.participation.join(setup, challenge.id, "u-alice")
        services.participation.start_attempt(setup, challenge.id, "u-alice")
        clock.advance(minutes=3)
        services.participation.complete_attempt(setup, challenge.id, "u-alice", final_score=88)
        participant = setup.query(ChallengeParticipant).one()
        challenge_id, participant_id = challenge.id, participant.id

    workers = 4
    barrier = threading.Barrier(workers)
    issued, existing, errors = [], [], []
    lock = threading.Lock()

    def worker():
        with factory() as session:
            barrier.wait()
            try:
                cert = services.certificates.issue(session, challenge_id, participant_id)
                with lock:
                    issued.append(cert.certificate_id)
            except CertificateAlreadyExists as exc:
                with lock:
                    existing.append(exc.certificate.certificate_id)
            except Exception as exc:  # surfaced through the assertion below
                with lock:
                    errors.append(exc)

    threads = [threading.Thread(target=worker) for _ in range(workers)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(issued) == 1
    assert existing == issued * (workers - 1)
    with factory() as check:
        assert check.query(ChallengeCertificate).count() == 1
    engine.dispose()


def test_unknown_participant(db, services, make_challenge):
    challenge = make_challenge()
    with pytest.raises(NotFound) as exc:
        services.certificates.issue(db, challenge.id, uuid.uuid4())
    assert exc.value.code == "participant_not_found"
