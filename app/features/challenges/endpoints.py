from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query, Response, status
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.DB.session import get_db
from app.common.deps import CurrentUser, get_current_user, require_admin
from .models import Category, ChallengeStatus, ChallengeType, Difficulty
from .schemas import (
    ChallengeAdminDetail,
    ChallengeCreate,
    ChallengeDetail,
    ChallengeFilter,
    ChallengeListResponse,
    ChallengeOut,
    ChallengeUpdate,
    SortField,
)
from .service import challenge_service

router = APIRouter(prefix="/challenges", tags=["challenges"], dependencies=[Depends(get_current_user)])

admin_router = APIRouter(prefix="/admin/challenges", tags=["admin-challenges"], dependencies=[Depends(require_admin())])


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@admin_router.post("", response_model=ChallengeOut, status_code=status.HTTP_201_CREATED, summary="Create challenge (draft)")
async def create_challenge(
    payload: ChallengeCreate,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    challenge = await run_in_threadpool(challenge_service.create, db, payload, user.id)
    return ChallengeOut.from_model(challenge)


@admin_router.get("", response_model=ChallengeListResponse, summary="List challenges (all visibility)")
async def admin_list_challenges(
    status_filter: Optional[ChallengeStatus] = Query(None, alias="status"),
    type: Optional[ChallengeType] = Query(None),
    difficulty: Optional[Difficulty] = Query(None),
    category: Optional[Category] = Query(None),
    sort_by: SortField = Query("created_at"),
    sort_order: str = Query("desc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = ChallengeFilter(status=status_filter, type=type, difficulty=difficulty, category=category)
    return await run_in_threadpool(challenge_service.list, db, filters, sort_by, sort_order, page, limit)


@admin_router.get("/{challenge_id}", response_model=ChallengeAdminDetail, summary="Challenge with participant breakdown")
async def admin_get_challenge(challenge_id: UUID, db: Session = Depends(get_db)):
    challenge = await run_in_threadpool(challenge_service.get, db, challenge_id)
    breakdown = await run_in_threadpool(challenge_service.participant_breakdown, db, challenge_id)
    return ChallengeAdminDetail(challenge=ChallengeOut.from_model(challenge), participant_stats=breakdown)


@admin_router.put("/{challenge_id}", response_model=ChallengeOut, summary="Update challenge")
async def update_challenge(challenge_id: UUID, payload: ChallengeUpdate, db: Session = Depends(get_db)):
    challenge = await run_in_threadpool(challenge_service.update, db, challenge_id, payload)
    return ChallengeOut.from_model(challenge)


@admin_router.delete("/{challenge_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete challenge without participants")
async def delete_challenge(challenge_id: UUID, db: Session = Depends(get_db)):
    await run_in_threadpool(challenge_service.delete, db, challenge_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@admin_router.post("/{challenge_id}/activate", response_model=ChallengeOut, summary="Activate a draft challenge")
async def activate_challenge(challenge_id: UUID, db: Session = Depends(get_db)):
    challenge = await run_in_threadpool(challenge_service.activate, db, challenge_id)
    return ChallengeOut.from_model(challenge)


@admin_router.post("/{challenge_id}/archive", response_model=ChallengeOut, summary="Archive (cancel) a challenge")
async def archive_challenge(challenge_id: UUID, db: Session = Depends(get_db)):
    challenge = await run_in_threadpool(challenge_service.archive, db, challenge_id)
    return ChallengeOut.from_model(challenge)


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------
@router.get("", response_model=ChallengeListResponse, summary="Browse public challenges")
async def list_challenges(
    type: Optional[ChallengeType] = Query(None),
    difficulty: Optional[Difficulty] = Query(None),
    category: Optional[Category] = Query(None),
    active_only: bool = Query(True),
    sort_by: SortField = Query("start_date"),
    sort_order: str = Query("asc", pattern="^(asc|desc)$"),
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
    db: Session = Depends(get_db),
):
    filters = ChallengeFilter(type=type, difficulty=difficulty, category=category, is_public=True, active_only=active_only)
    return await run_in_threadpool(challenge_service.list, db, filters, sort_by, sort_order, page, limit)


@router.get("/{challenge_id}", response_model=ChallengeDetail, summary="Challenge detail for the caller")
async def get_challenge(
    challenge_id: UUID,
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(challenge_service.get_detail, db, challenge_id, user.id, user.is_admin)
