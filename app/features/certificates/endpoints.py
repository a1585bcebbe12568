from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.DB.session import get_db
from app.common.deps import CurrentUser, get_current_user, require_admin
from .models import CertificateStatus
from .schemas import (
    CertificateListResponse,
    CertificateOut,
    DownloadLink,
    IssueCertificateRequest,
    IssuedCertificate,
    RevokeCertificateRequest,
    ShareCertificateRequest,
    ShareLink,
    VerificationResult,
)
from .service import certificate_service

public_router = APIRouter(prefix="/certificates", tags=["certificates"])

router = APIRouter(prefix="/certificates", tags=["certificates"], dependencies=[Depends(get_current_user)])

admin_router = APIRouter(prefix="/admin", tags=["admin-certificates"], dependencies=[Depends(require_admin())])


@public_router.get("/verify/{verification_code}", response_model=VerificationResult, summary="Public certificate check")
async def verify_certificate(verification_code: str, db: Session = Depends(get_db)):
    return await run_in_threadpool(certificate_service.verify, db, verification_code)


@router.get("/me", response_model=CertificateListResponse)
async def my_certificates(
    status_filter: Optional[CertificateStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(certificate_service.list_for_user, db, user.id, status_filter, page, limit)


@router.get("/{certificate_id}/download", response_model=DownloadLink)
async def download_certificate(
    certificate_id: str,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(certificate_service.download, db, certificate_id, user.id)


@router.post("/{certificate_id}/share", response_model=ShareLink)
async def share_certificate(
    certificate_id: str,
    payload: Optional[ShareCertificateRequest] = Body(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    platform = payload.platform if payload else None
    return await run_in_threadpool(certificate_service.share, db, certificate_id, user.id, platform)


@admin_router.post(
    "/challenges/{challenge_id}/participants/{participant_id}/certificate",
    response_model=IssuedCertificate,
    status_code=status.HTTP_201_CREATED,
)
async def issue_certificate(
    challenge_id: UUID,
    participant_id: UUID,
    payload: Optional[IssueCertificateRequest] = Body(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = payload or IssueCertificateRequest()

    def _issue():
        return certificate_service.issue(
            db,
            challenge_id,
            participant_id,
            issued_by=user.id,
            custom_message=payload.custom_message,
            template=payload.template,
        )

    certificate = await run_in_threadpool(_issue)
    signer = certificate_service.signer
    return IssuedCertificate(
        certificate=CertificateOut.from_model(certificate),
        download_url=signer.download_url(certificate.certificate_id, certificate_service.clock.now()),
        verification_url=signer.verification_url(certificate.verification_code),
    )


@admin_router.post("/certificates/{certificate_id}/revoke", response_model=CertificateOut)
async def revoke_certificate(
    certificate_id: str,
    payload: Optional[RevokeCertificateRequest] = Body(None),
    db: Session = Depends(get_db),
):
    reason = payload.reason if payload else None
    certificate = await run_in_threadpool(certificate_service.revoke, db, certificate_id, reason)
    return CertificateOut.from_model(certificate)
