from __future__ import annotations

from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from fastapi.concurrency import run_in_threadpool
from sqlalchemy.orm import Session

from app.DB.session import get_db
from app.common.deps import CurrentUser, get_current_user
from .schemas import LeaderboardResponse
from .service import leaderboard_service

router = APIRouter(prefix="/challenges", tags=["leaderboard"], dependencies=[Depends(get_current_user)])


@router.get("/{challenge_id}/leaderboard", response_model=LeaderboardResponse)
async def get_leaderboard(
    challenge_id: UUID,
    limit: Optional[int] = Query(None, ge=1),
    user: CurrentUser = Depends(get_current_user),
    db: Session = Depends(get_db),
):
    return await run_in_threadpool(leaderboard_service.leaderboard, db, challenge_id, limit, user.id)
