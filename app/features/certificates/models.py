from sqlalchemy import Column, String, Text, Integer, Enum, JSON, ForeignKey, Index, UniqueConstraint, Uuid
from sqlalchemy.sql import func
import uuid
import enum

from app.DB.base import Base
from app.DB.types import UTCDateTime


class CertificateStatus(enum.Enum):
    pending = "pending"
    generated = "generated"
    issued = "issued"
    revoked = "revoked"
    expired = "expired"


# Statuses under which a certificate verifies, downloads and can be revoked.
VALID_STATUSES = (CertificateStatus.generated, CertificateStatus.issued)


class ChallengeCertificate(Base):
    __tablename__ = "challenge_certificates"
    id = Column(Uuid(as_uuid=True), primary_key=True, default=uuid.uuid4)
    certificate_id = Column(String(64), nullable=False, unique=True)
    verification_code = Column(String(32), nullable=False, unique=True)

    user_id = Column(String(64), nullable=False, index=True)
    challenge_id = Column(Uuid(as_uuid=True), ForeignKey("challenges.id"), nullable=False, index=True)
    participant_id = Column(Uuid(as_uuid=True), ForeignKey("challenge_participants.id"), nullable=False)

    title = Column(String(200), nullable=False)
    description = Column(String(500), nullable=True)
    recipient_name = Column(String(200), nullable=False)

    # frozen at issuance: challenge_title, score, max_score, accuracy,
    # completion_date, time_spent, rank {position, total_participants}
    achievement = Column(JSON, nullable=False)
    template = Column(JSON, nullable=False)

    issuer_name = Column(String(200), nullable=False)
    issuer_title = Column(String(200), nullable=True)
    issued_by = Column(String(64), nullable=False)
    digital_hash = Column(String(64), nullable=False)

    status = Column(Enum(CertificateStatus, name="certificate_status"), nullable=False, default=CertificateStatus.generated)
    revoked_at = Column(UTCDateTime(), nullable=True)
    revocation_reason = Column(Text, nullable=True)

    download_count = Column(Integer, nullable=False, default=0)
    last_downloaded_at = Column(UTCDateTime(), nullable=True)
    share_count = Column(Integer, nullable=False, default=0)
    verification_count = Column(Integer, nullable=False, default=0)

    issued_at = Column(UTCDateTime(), nullable=False)
    updated_at = Column(UTCDateTime(), server_default=func.now(), onupdate=func.now(), nullable=False)

    __table_args__ = (
        UniqueConstraint("user_id", "challenge_id", name="uq_challenge_certificates_user_challenge"),
        Index("ix_challenge_certificates_status_issued", "status", "issued_at"),
    )

    @property
    def percentage_score(self) -> float:
        achievement = self.achievement or {}
        max_score = achievement.get("max_score") or 0
        if not max_score:
            return 0.0
        return round(achievement.get("score", 0) / max_score * 100, 2)

    @property
    def is_valid(self) -> bool:
        return self.status in VALID_STATUSES

    def __repr__(self):
        return f"<ChallengeCertificate(certificate_id={self.certificate_id}, user_id={self.user_id}, status={self.status})>"
