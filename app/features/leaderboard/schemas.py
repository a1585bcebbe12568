from __future__ import annotations

from datetime import datetime
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, Field

from app.integrations.user_directory import UserSummary


class LeaderboardEntry(BaseModel):
    rank: int
    user: UserSummary
    score: float
    max_score: float
    accuracy: float
    time_spent: Optional[int] = None
    completed_at: Optional[datetime] = None
    is_current_user: bool = False


class LeaderboardResponse(BaseModel):
    challenge_id: UUID
    total_completed: int
    entries: List[LeaderboardEntry] = Field(default_factory=list)
    viewer_rank: Optional[int] = None
