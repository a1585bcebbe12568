from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.common.schemas import Pagination

from .models import CertificateStatus


class CertificateTemplate(BaseModel):
    template_id: str = "default_challenge_certificate"
    background_color: str = "#FFFFFF"
    primary_color: str = "#FFD700"
    secondary_color: str = "#4169E1"
    font_family: str = "Times New Roman"
    logo_url: Optional[str] = None
    background_image_url: Optional[str] = None
    border_style: Literal["none", "simple", "decorative", "ornate"] = "decorative"


class TemplateOverrides(BaseModel):
    template_id: Optional[str] = None
    background_color: Optional[str] = None
    primary_color: Optional[str] = None
    secondary_color: Optional[str] = None
    font_family: Optional[str] = None
    logo_url: Optional[str] = None
    background_image_url: Optional[str] = None
    border_style: Optional[Literal["none", "simple", "decorative", "ornate"]] = None


class IssueCertificateRequest(BaseModel):
    custom_message: Optional[str] = Field(default=None, max_length=500)
    template: Optional[TemplateOverrides] = None


class RevokeCertificateRequest(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=500)


class ShareCertificateRequest(BaseModel):
    platform: Optional[str] = Field(default=None, max_length=50)


class RankSnapshot(BaseModel):
    position: Optional[int] = None
    total_participants: int = 0


class AchievementSnapshot(BaseModel):
    challenge_title: str
    score: float
    max_score: float
    accuracy: float
    completion_date: datetime
    time_spent: Optional[int] = None
    rank: RankSnapshot


class CertificateOut(BaseModel):
    certificate_id: str
    verification_code: str
    user_id: str
    challenge_id: UUID
    participant_id: UUID
    title: str
    description: Optional[str] = None
    recipient_name: str
    achievement: AchievementSnapshot
    template: CertificateTemplate
    issuer_name: str
    issuer_title: Optional[str] = None
    digital_hash: str
    status: CertificateStatus
    issued_at: datetime
    revoked_at: Optional[datetime] = None
    percentage_score: float
    download_count: int = 0
    share_count: int = 0
    verification_count: int = 0
    last_downloaded_at: Optional[datetime] = None

    @classmethod
    def from_model(cls, certificate) -> "CertificateOut":
        return cls(
            certificate_id=certificate.certificate_id,
            verification_code=certificate.verification_code,
            user_id=certificate.user_id,
            challenge_id=certificate.challenge_id,
            participant_id=certificate.participant_id,
            title=certificate.title,
            description=certificate.description,
            recipient_name=certificate.recipient_name,
            achievement=AchievementSnapshot(**certificate.achievement),
            template=CertificateTemplate(**(certificate.template or {})),
            issuer_name=certificate.issuer_name,
            issuer_title=certificate.issuer_title,
            digital_hash=certificate.digital_hash,
            status=certificate.status,
            issued_at=certificate.issued_at,
            revoked_at=certificate.revoked_at,
            percentage_score=certificate.percentage_score,
            download_count=certificate.download_count,
            share_count=certificate.share_count,
            verification_count=certificate.verification_count,
            last_downloaded_at=certificate.last_downloaded_at,
        )


class IssuedCertificate(BaseModel):
    certificate: CertificateOut
    download_url: str
    verification_url: str


class VerifiedRecipient(BaseModel):
    name: str
    username: Optional[str] = None
    avatar_url: Optional[str] = None


class VerifiedChallenge(BaseModel):
    title: str
    type: str
    difficulty: str
    category: str


class VerificationResult(BaseModel):
    certificate_id: str
    verification_code: str
    title: str
    description: Optional[str] = None
    recipient_name: str
    status: CertificateStatus
    issued_at: datetime
    percentage_score: float
    digital_hash: str
    integrity_verified: bool = True
    recipient: VerifiedRecipient
    challenge: VerifiedChallenge
    achievement: AchievementSnapshot
    verified_at: datetime


class DownloadLink(BaseModel):
    certificate_id: str
    download_url: str
    file_name: str


class ShareLink(BaseModel):
    certificate_id: str
    verification_url: str
    platform: Optional[str] = None


class CertificateListItem(BaseModel):
    certificate: CertificateOut
    download_url: str
    verification_url: str


class CertificateListResponse(BaseModel):
    items: List[CertificateListItem] = Field(default_factory=list)
    pagination: Pagination
