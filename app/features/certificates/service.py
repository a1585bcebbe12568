"""Certificate issuance, verification and counters.

At most one certificate exists per (user, challenge); the database enforces it
with a unique constraint. A losing concurrent insert re-reads the winner and
reports ``CertificateAlreadyExists`` carrying it. Identifier collisions on
``certificate_id`` / ``verification_code`` retry with fresh tokens.
"""

from __future__ import annotations

import hashlib
import json
import logging
import re
import secrets
import string
from datetime import datetime
from typing import Any, Dict, Optional
from uuid import UUID

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from app.Core.config import get_settings
from app.DB.session import transaction
from app.common.clock import Clock, system_clock
from app.common.errors import CertificateAlreadyExists, Forbidden, NotFound, StateConflict
from app.common.utils import page_window, pagination_meta
from app.features.challenges.models import Challenge
from app.features.leaderboard.service import LeaderboardService
from app.features.participants.models import ChallengeParticipant, ParticipantStatus
from app.features.participants.repository import participant_repository
from app.integrations.url_signer import UrlSigner, get_url_signer
from app.integrations.user_directory import UserDirectory, get_user_directory
from .models import CertificateStatus, ChallengeCertificate, VALID_STATUSES
from .repository import certificate_repository
from .schemas import (
    AchievementSnapshot,
    CertificateListItem,
    CertificateListResponse,
    CertificateOut,
    CertificateTemplate,
    DownloadLink,
    ShareLink,
    TemplateOverrides,
    VerificationResult,
    VerifiedChallenge,
    VerifiedRecipient,
)

logger = logging.getLogger("certificates.service")

VERIFICATION_ALPHABET = string.ascii_uppercase + string.digits
VERIFICATION_CODE_LENGTH = 12


def compute_digital_hash(certificate_id: str, verification_code: str, user_id: str, challenge_id: Any, achievement: Dict[str, Any]) -> str:
    """SHA-256 over the frozen snapshot and the identifiers it belongs to."""
    payload = {
        "certificate_id": certificate_id,
        "verification_code": verification_code,
        "user_id": user_id,
        "challenge_id": str(challenge_id),
        "achievement": achievement,
    }
    raw = json.dumps(payload, sort_keys=True, separators=(",", ":"))
    return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def download_file_name(title: str) -> str:
    return f"{re.sub(r'[^a-zA-Z0-9]', '_', title)}.pdf"


class CertificateService:
    def __init__(
        self,
        clock: Optional[Clock] = None,
        leaderboard: Optional[LeaderboardService] = None,
        directory: Optional[UserDirectory] = None,
        signer: Optional[UrlSigner] = None,
    ) -> None:
        self.clock = clock or system_clock
        self.leaderboard = leaderboard or LeaderboardService(directory)
        self._directory = directory
        self._signer = signer

    @property
    def directory(self) -> UserDirectory:
        return self._directory or get_user_directory()

    @property
    def signer(self) -> UrlSigner:
        return self._signer or get_url_signer()

    # ------------------------------------------------------------------
    # identifiers
    # ------------------------------------------------------------------
    def _new_certificate_id(self) -> str:
        return f"{get_settings().certificate_id_prefix}-{secrets.token_hex(8).upper()}"

    def _new_verification_code(self) -> str:
        return "".join(secrets.choice(VERIFICATION_ALPHABET) for _ in range(VERIFICATION_CODE_LENGTH))

    # ------------------------------------------------------------------
    # issuance
    # ------------------------------------------------------------------
    def _completed_participant(self, db: Session, challenge_id: UUID, participant_id: UUID):
        participant = participant_repository.get(db, participant_id)
        if participant is None or participant.challenge_id != challenge_id:
            raise NotFound(
                "Participant not found",
                code="participant_not_found",
                challenge_id=challenge_id,
                participant_id=participant_id,
            )
        if participant.status != ParticipantStatus.completed:
            raise StateConflict(
                "Participant has not completed the challenge",
                code="participant_not_completed",
                participant_id=participant_id,
                status=participant.status.value,
            )
        challenge = db.get(Challenge, challenge_id)
        return participant, challenge

    def _snapshot(self, db: Session, challenge: Challenge, participant: ChallengeParticipant) -> Dict[str, Any]:
        return {
            "challenge_title": challenge.title,
            "score": participant.score,
            "max_score": participant.max_score,
            "accuracy": participant.accuracy,
            "completion_date": participant.completed_at.isoformat(),
            "time_spent": participant.time_spent,
            "rank": {
                "position": self.leaderboard.rank_of(db, participant),
                "total_participants": self.leaderboard.completed_count(db, challenge.id),
            },
        }

    def _build(
        self,
        db: Session,
        challenge: Challenge,
        participant: ChallengeParticipant,
        issued_by: str,
        custom_message: Optional[str],
        template: Optional[TemplateOverrides],
        now: datetime,
    ) -> ChallengeCertificate:
        settings = get_settings()
        base_template = CertificateTemplate()
        if challenge.certificate_template_id:
            base_template = base_template.model_copy(update={"template_id": challenge.certificate_template_id})
        if template is not None:
            base_template = base_template.model_copy(update=template.model_dump(exclude_none=True))

        achievement = self._snapshot(db, challenge, participant)
        certificate_id = self._new_certificate_id()
        verification_code = self._new_verification_code()
        return ChallengeCertificate(
            certificate_id=certificate_id,
            verification_code=verification_code,
            user_id=participant.user_id,
            challenge_id=challenge.id,
            participant_id=participant.id,
            title=challenge.certificate_title or f"Certificate of Achievement - {challenge.title}",
            description=custom_message
            or challenge.certificate_description
            or f"Congratulations on completing the {challenge.title} challenge!",
            recipient_name=self.directory.get(participant.user_id).display_name,
            achievement=achievement,
            template=base_template.model_dump(),
            issuer_name=settings.certificate_issuer_name,
            issuer_title=settings.certificate_issuer_title,
            issued_by=str(issued_by or challenge.created_by),
            digital_hash=compute_digital_hash(certificate_id, verification_code, participant.user_id, challenge.id, achievement),
            status=CertificateStatus.generated,
            download_count=0,
            share_count=0,
            verification_count=0,
            issued_at=now,
        )

    def issue(
        self,
        db: Session,
        challenge_id: UUID,
        participant_id: UUID,
        *,
        issued_by: Optional[str] = None,
        custom_message: Optional[str] = None,
        template: Optional[TemplateOverrides] = None,
    ) -> ChallengeCertificate:
        attempts = max(1, get_settings().identifier_retry_attempts)
        user_id: Optional[str] = None
        for attempt in range(1, attempts + 1):
            now = self.clock.now()
            try:
                participant, challenge = self._completed_participant(db, challenge_id, participant_id)
                user_id = participant.user_id
                existing = certificate_repository.get_for_pair(db, user_id, challenge.id)
                if existing is not None:
                    raise CertificateAlreadyExists(existing)
                certificate = self._build(db, challenge, participant, issued_by, custom_message, template, now)
                certificate_repository.add(db, certificate)
            except IntegrityError:
                db.rollback()
                existing = certificate_repository.get_for_pair(db, user_id, challenge_id)
                if existing is not None:
                    logger.info(
                        "certificate_issue_lost_race user_id=%s challenge_id=%s certificate_id=%s",
                        user_id,
                        challenge_id,
                        existing.certificate_id,
                    )
                    raise CertificateAlreadyExists(existing)
                logger.warning("certificate_identifier_collision attempt=%d challenge_id=%s", attempt, challenge_id)
                continue
            except Exception:
                db.rollback()
                raise

            with transaction(db):
                participant.certificate_id = certificate.certificate_id
                participant.certificate_issued_at = now
                participant.certificate_verification_code = certificate.verification_code
                db.flush()
            logger.info(
                "certificate_issued certificate_id=%s user_id=%s challenge_id=%s",
                certificate.certificate_id,
                certificate.user_id,
                certificate.challenge_id,
            )
            return certificate
        raise RuntimeError(f"could not allocate unique certificate identifiers after {attempts} attempts")

    def issue_or_get(self, db: Session, challenge_id: UUID, participant_id: UUID, **kwargs) -> ChallengeCertificate:
        """Issue, or hand back the certificate that already exists for the pair."""
        try:
            return self.issue(db, challenge_id, participant_id, **kwargs)
        except CertificateAlreadyExists as exc:
            return exc.certificate

    # ------------------------------------------------------------------
    # public verification + owner actions
    # ------------------------------------------------------------------
    def verify(self, db: Session, verification_code: str) -> VerificationResult:
        with transaction(db):
            certificate = certificate_repository.get_by_verification_code(db, verification_code)
            if certificate is None or certificate.status not in VALID_STATUSES:
                raise NotFound(
                    "Certificate not found or invalid verification code",
                    code="certificate_not_found",
                )
            certificate_repository.increment(db, certificate, "verification_count")
            challenge = db.get(Challenge, certificate.challenge_id)

        user = self.directory.get(certificate.user_id)
        return VerificationResult(
            certificate_id=certificate.certificate_id,
            verification_code=certificate.verification_code,
            title=certificate.title,
            description=certificate.description,
            recipient_name=certificate.recipient_name,
            status=certificate.status,
            issued_at=certificate.issued_at,
            percentage_score=certificate.percentage_score,
            digital_hash=certificate.digital_hash,
            integrity_verified=self.integrity_ok(certificate),
            recipient=VerifiedRecipient(name=user.display_name, username=user.username, avatar_url=user.avatar_url),
            challenge=VerifiedChallenge(
                title=challenge.title,
                type=challenge.type.value,
                difficulty=challenge.difficulty.value,
                category=challenge.category.value,
            ),
            achievement=AchievementSnapshot(**certificate.achievement),
            verified_at=self.clock.now(),
        )

    def integrity_ok(self, certificate: ChallengeCertificate) -> bool:
        expected = compute_digital_hash(
            certificate.certificate_id,
            certificate.verification_code,
            certificate.user_id,
            certificate.challenge_id,
            certificate.achievement,
        )
        return secrets.compare_digest(expected, certificate.digital_hash)

    def _owned(self, db: Session, certificate_id: str, user_id: str) -> ChallengeCertificate:
        certificate = certificate_repository.get_by_certificate_id(db, certificate_id)
        if certificate is None or certificate.status not in VALID_STATUSES:
            raise NotFound("Certificate not found", code="certificate_not_found", certificate_id=certificate_id)
        if certificate.user_id != str(user_id):
            raise Forbidden(certificate_id=certificate_id)
        return certificate

    def download(self, db: Session, certificate_id: str, user_id: str) -> DownloadLink:
        now = self.clock.now()
        with transaction(db):
            certificate = self._owned(db, certificate_id, user_id)
            certificate_repository.increment(db, certificate, "download_count", last_downloaded_at=now)
        logger.info("certificate_downloaded certificate_id=%s user_id=%s", certificate_id, user_id)
        return DownloadLink(
            certificate_id=certificate.certificate_id,
            download_url=self.signer.download_url(certificate.certificate_id, now),
            file_name=download_file_name(certificate.title),
        )

    def share(self, db: Session, certificate_id: str, user_id: str, platform: Optional[str] = None) -> ShareLink:
        with transaction(db):
            certificate = self._owned(db, certificate_id, user_id)
            certificate_repository.increment(db, certificate, "share_count")
        logger.info("certificate_shared certificate_id=%s user_id=%s platform=%s", certificate_id, user_id, platform)
        return ShareLink(
            certificate_id=certificate.certificate_id,
            verification_url=self.signer.verification_url(certificate.verification_code),
            platform=platform,
        )

    def list_for_user(
        self,
        db: Session,
        user_id: str,
        status: Optional[CertificateStatus] = None,
        page: int = 1,
        per_page: int = 10,
    ) -> CertificateListResponse:
        offset, limit = page_window(page, per_page)
        items, total = certificate_repository.list_for_user(db, user_id, status=status, offset=offset, limit=limit)
        now = self.clock.now()
        return CertificateListResponse(
            items=[
                CertificateListItem(
                    certificate=CertificateOut.from_model(c),
                    download_url=self.signer.download_url(c.certificate_id, now),
                    verification_url=self.signer.verification_url(c.verification_code),
                )
                for c in items
            ],
            pagination=pagination_meta(page, per_page, total),
        )

    def revoke(self, db: Session, certificate_id: str, reason: Optional[str] = None) -> ChallengeCertificate:
        with transaction(db):
            certificate = certificate_repository.get_by_certificate_id(db, certificate_id)
            if certificate is None:
                raise NotFound("Certificate not found", code="certificate_not_found", certificate_id=certificate_id)
            if certificate.status not in VALID_STATUSES:
                raise StateConflict(
                    f"Cannot revoke a {certificate.status.value} certificate",
                    code="invalid_status",
                    status=certificate.status.value,
                )
            certificate_repository.mark_revoked(db, certificate, reason, self.clock.now())
        logger.info("certificate_revoked certificate_id=%s reason=%s", certificate_id, reason)
        return certificate


certificate_service = CertificateService()
