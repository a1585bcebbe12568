from __future__ import annotations

import logging
from datetime import datetime
from typing import List, Optional, Tuple
from uuid import UUID

from sqlalchemy import func, select, update
from sqlalchemy.orm import Session

from .models import ChallengeCertificate, CertificateStatus

logger = logging.getLogger("certificates.repository")

_COUNTERS = ("download_count", "share_count", "verification_count")


class CertificateRepository:
    def add(self, db: Session, certificate: ChallengeCertificate) -> ChallengeCertificate:
        """Insert and flush; uniqueness violations surface as ``IntegrityError``."""
        db.add(certificate)
        db.flush()
        return certificate

    def get_for_pair(self, db: Session, user_id: str, challenge_id: UUID) -> Optional[ChallengeCertificate]:
        stmt = select(ChallengeCertificate).where(
            ChallengeCertificate.user_id == user_id,
            ChallengeCertificate.challenge_id == challenge_id,
        )
        return db.scalar(stmt)

    def get_by_certificate_id(self, db: Session, certificate_id: str) -> Optional[ChallengeCertificate]:
        stmt = select(ChallengeCertificate).where(ChallengeCertificate.certificate_id == certificate_id)
        return db.scalar(stmt)

    def get_by_verification_code(self, db: Session, code: str) -> Optional[ChallengeCertificate]:
        stmt = select(ChallengeCertificate).where(ChallengeCertificate.verification_code == code)
        return db.scalar(stmt)

    def list_for_user(
        self,
        db: Session,
        user_id: str,
        *,
        status: Optional[CertificateStatus] = None,
        offset: int = 0,
        limit: int = 10,
    ) -> Tuple[List[ChallengeCertificate], int]:
        conditions = [ChallengeCertificate.user_id == user_id]
        if status is not None:
            conditions.append(ChallengeCertificate.status == status)
        stmt = (
            select(ChallengeCertificate)
            .where(*conditions)
            .order_by(ChallengeCertificate.issued_at.desc(), ChallengeCertificate.id)
            .offset(offset)
            .limit(limit)
        )
        total = db.scalar(select(func.count()).select_from(ChallengeCertificate).where(*conditions))
        return list(db.scalars(stmt).all()), int(total or 0)

    def increment(self, db: Session, certificate: ChallengeCertificate, counter: str, **extra) -> None:
        """Add one to ``counter`` in the database; the row is re-read afterwards."""
        if counter not in _COUNTERS:
            raise ValueError(f"unknown counter {counter}")
        column = getattr(ChallengeCertificate, counter)
        db.execute(
            update(ChallengeCertificate)
            .where(ChallengeCertificate.id == certificate.id)
            .values({counter: column + 1, **extra})
            .execution_options(synchronize_session="fetch")
        )
        db.flush()
        db.refresh(certificate)

    def mark_revoked(self, db: Session, certificate: ChallengeCertificate, reason: Optional[str], now: datetime) -> None:
        certificate.status = CertificateStatus.revoked
        certificate.revoked_at = now
        certificate.revocation_reason = reason
        db.flush()


certificate_repository = CertificateRepository()
