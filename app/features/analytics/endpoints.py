from uuid import UUID

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.common.deps import require_admin
from app.DB.session import get_db
from .schema import ChallengeAnalyticsOut
from .service import challenge_analytics

router = APIRouter(prefix="/admin/challenges", tags=["analytics"], dependencies=[Depends(require_admin())])

## ------------------- Challenge -------------------


@router.get("/{challenge_id}/analytics", response_model=ChallengeAnalyticsOut)
def get_challenge_analytics(challenge_id: UUID, db: Session = Depends(get_db)):
    return challenge_analytics(db, challenge_id)
