"""Points and badges awarded for a completed attempt.

Pure: the same participant figures, challenge configuration and rank always
produce the same outcome, so the result can be written together with the
completion itself.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional

HIGH_ACCURACY_THRESHOLD = 90.0
HIGH_ACCURACY_BONUS = 50

HIGH_ACHIEVER_BADGE = {
    "name": "High Achiever",
    "description": "Scored 90% or higher accuracy",
    "icon": "trophy",
}
CHAMPION_BADGE = {
    "name": "Champion",
    "description": "First place in challenge",
    "icon": "crown",
}


@dataclass(frozen=True)
class RewardOutcome:
    points: int = 0
    badges: List[Dict[str, Any]] = field(default_factory=list)


def _badge(template: Dict[str, Any], earned_at: Optional[datetime]) -> Dict[str, Any]:
    badge = {
        "name": template["name"],
        "description": template.get("description"),
        "icon": template.get("icon"),
    }
    badge["earned_at"] = earned_at.isoformat() if earned_at else None
    return badge


def calculate_rewards(participant, challenge, rank: Optional[int], earned_at: Optional[datetime] = None) -> RewardOutcome:
    """Base points, participation tier, accuracy bonus and positional bonus.

    ``participant`` needs ``status`` and ``accuracy``; ``challenge`` carries the
    reward columns. Only completed participants earn anything.
    """
    status = getattr(participant.status, "value", participant.status)
    if status != "completed":
        return RewardOutcome()

    points = int(challenge.reward_points or 0) + int(challenge.participation_points or 0)
    badges: List[Dict[str, Any]] = []

    if challenge.reward_badge:
        badges.append(_badge(challenge.reward_badge, earned_at))

    if (participant.accuracy or 0) >= HIGH_ACCURACY_THRESHOLD:
        points += HIGH_ACCURACY_BONUS
        badges.append(_badge(HIGH_ACHIEVER_BADGE, earned_at))

    if rank == 1:
        points += int(challenge.first_place_points or 0)
        badges.append(_badge(CHAMPION_BADGE, earned_at))
    elif rank == 2:
        points += int(challenge.second_place_points or 0)
    elif rank == 3:
        points += int(challenge.third_place_points or 0)

    return RewardOutcome(points=points, badges=badges)


__all__ = ["RewardOutcome", "calculate_rewards", "HIGH_ACCURACY_BONUS", "HIGH_ACHIEVER_BADGE", "CHAMPION_BADGE"]
