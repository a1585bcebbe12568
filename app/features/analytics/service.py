from __future__ import annotations

from collections import OrderedDict
from typing import Any, List, Sequence, Tuple
from uuid import UUID

from sqlalchemy.orm import Session

from app.common.errors import NotFound
from app.common.utils import ensure_utc
from app.features.challenges.models import Challenge
from .repository import get_completed_rows, get_participant_overview
from .schema import (
    AnalyticsOverviewOut,
    ChallengeAnalyticsOut,
    ChallengeHeaderOut,
    CompletionTrendOut,
    ScoreBucketOut,
)

SCORE_BOUNDARIES = (0, 20, 40, 60, 80, 100)


def score_distribution(rows: Sequence[Tuple[float, float, Any]]) -> List[ScoreBucketOut]:
    """Bucket completed scores into [0,20) .. [60,80) and a closed [80,100]."""
    edges = list(zip(SCORE_BOUNDARIES[:-1], SCORE_BOUNDARIES[1:]))
    buckets = [{"lower": lo, "upper": hi, "scores": [], "accuracies": []} for lo, hi in edges]
    for score, accuracy, _ in rows:
        for index, (lo, hi) in enumerate(edges):
            last = index == len(edges) - 1
            if lo <= score < hi or (last and score == hi):
                buckets[index]["accuracies"].append(accuracy)
                buckets[index]["scores"].append(score)
                break
    return [
        ScoreBucketOut(
            lower=b["lower"],
            upper=b["upper"],
            label=f"{b['lower']}-{b['upper']}",
            count=len(b["scores"]),
            average_accuracy=round(sum(b["accuracies"]) / len(b["accuracies"]), 2) if b["accuracies"] else None,
        )
        for b in buckets
    ]


def completion_trends(rows: Sequence[Tuple[float, float, Any]]) -> List[CompletionTrendOut]:
    """Completions per UTC day, oldest first."""
    days: "OrderedDict[str, List[float]]" = OrderedDict()
    for score, _, completed_at in rows:
        if completed_at is None:
            continue
        key = ensure_utc(completed_at).strftime("%Y-%m-%d")
        days.setdefault(key, []).append(score)
    return [
        CompletionTrendOut(date=day, completions=len(scores), average_score=round(sum(scores) / len(scores), 2))
        for day, scores in sorted(days.items())
    ]


def challenge_analytics(db: Session, challenge_id: UUID) -> ChallengeAnalyticsOut:
    challenge = db.get(Challenge, challenge_id)
    if challenge is None:
        raise NotFound("Challenge not found", code="challenge_not_found", challenge_id=challenge_id)

    overview = get_participant_overview(db, challenge.id)
    rows = get_completed_rows(db, challenge.id)
    total = overview["total_participants"]
    rate = round(overview["completed_participants"] / total * 100, 2) if total else 0.0

    return ChallengeAnalyticsOut(
        challenge=ChallengeHeaderOut(
            id=challenge.id,
            title=challenge.title,
            status=challenge.status.value,
            start_date=challenge.start_date,
            end_date=challenge.end_date,
            duration_days=challenge.duration_days,
        ),
        overview=AnalyticsOverviewOut(**overview),
        score_distribution=score_distribution(rows),
        completion_trends=completion_trends(rows),
        completion_rate=rate,
    )
