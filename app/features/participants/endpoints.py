from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Body, Depends, Query, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.DB.session import get_db
from app.common.deps import CurrentUser, get_current_user, require_admin
from .models import ParticipantStatus
from .schemas import (
    CompleteAttemptRequest,
    CompletionResult,
    MyChallengesResponse,
    ParticipantListResponse,
    ParticipantOut,
    SubmitResponseRequest,
)
from .service import participation_service

# Registered ahead of the challenges router so /challenges/me is not read as an id.
router = APIRouter(prefix="/challenges", tags=["participation"], dependencies=[Depends(get_current_user)])

admin_router = APIRouter(prefix="/admin/challenges", tags=["admin-challenges"], dependencies=[Depends(require_admin())])


@router.get("/me", response_model=MyChallengesResponse, summary="Challenges the caller has joined")
async def my_challenges(
    status_filter: Optional[ParticipantStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(participation_service.list_for_user, db, user.id, status_filter, page, limit)


@router.post("/{challenge_id}/join", response_model=ParticipantOut, status_code=status.HTTP_201_CREATED)
async def join_challenge(
    challenge_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participant = await run_in_threadpool(participation_service.join, db, challenge_id, user.id)
    return ParticipantOut.from_model(participant)


@router.post("/{challenge_id}/start", response_model=ParticipantOut)
async def start_challenge(
    challenge_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participant = await run_in_threadpool(participation_service.start_attempt, db, challenge_id, user.id)
    return ParticipantOut.from_model(participant)


@router.post("/{challenge_id}/submit", response_model=ParticipantOut)
async def submit_response(
    challenge_id: UUID,
    payload: SubmitResponseRequest,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participant = await run_in_threadpool(
        participation_service.submit_response,
        db,
        challenge_id,
        user.id,
        payload.question_id,
        payload.answer,
        payload.is_correct,
        payload.time_spent,
        payload.total_questions,
    )
    return ParticipantOut.from_model(participant)


@router.post("/{challenge_id}/complete", response_model=CompletionResult)
async def complete_challenge(
    challenge_id: UUID,
    payload: Optional[CompleteAttemptRequest] = Body(None),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    payload = payload or CompleteAttemptRequest()
    return await run_in_threadpool(
        participation_service.complete_attempt,
        db,
        challenge_id,
        user.id,
        payload.final_score,
        payload.max_score,
    )


@router.post("/{challenge_id}/abandon", response_model=ParticipantOut)
async def abandon_challenge(
    challenge_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    participant = await run_in_threadpool(participation_service.abandon, db, challenge_id, user.id)
    return ParticipantOut.from_model(participant)


@admin_router.get("/{challenge_id}/participants", response_model=ParticipantListResponse)
async def list_participants(
    challenge_id: UUID,
    status_filter: Optional[ParticipantStatus] = Query(None, alias="status"),
    page: int = Query(1, ge=1),
    limit: int = Query(20, ge=1, le=100),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(participation_service.list_for_challenge, db, challenge_id, status_filter, page, limit)
