from pydantic import BaseModel, Field
from typing import List, Optional
from datetime import datetime
from uuid import UUID


# ------------------- Challenge -------------------
class ChallengeHeaderOut(BaseModel):
    id: UUID
    title: str
    status: str
    start_date: datetime
    end_date: datetime
    duration_days: int


class AnalyticsOverviewOut(BaseModel):
    total_participants: int = 0
    completed_participants: int = 0
    average_score: float = 0.0
    average_accuracy: float = 0.0
    average_time_spent: float = 0.0
    total_attempts: int = 0


# ------------------- Distribution -------------------
class ScoreBucketOut(BaseModel):
    lower: int
    upper: int
    label: str
    count: int = 0
    average_accuracy: Optional[float] = None


class CompletionTrendOut(BaseModel):
    date: str  # YYYY-MM-DD (UTC)
    completions: int
    average_score: float


class ChallengeAnalyticsOut(BaseModel):
    challenge: ChallengeHeaderOut
    overview: AnalyticsOverviewOut
    score_distribution: List[ScoreBucketOut] = Field(default_factory=list)
    completion_trends: List[CompletionTrendOut] = Field(default_factory=list)
    completion_rate: float = 0.0
