from __future__ import annotations

"""
Attempt scoring + performance summary.

Scoring rules:
	- Base score = 100 * correct / total responses (0 when there are no responses).
	- With a time limit, a time bonus of up to 10 points is added:
	  bonus = (limit - spent) / limit * 10, never below 0. A negative spent time
	  (clock skew) earns no bonus at all.
	- Final score = min(100, base + bonus), rounded half-up to an integer.

Correctness of each response is decided by the caller; this module only counts.
"""

import math
from dataclasses import dataclass, field
from typing import Any, Iterable, List, Mapping, Optional

MAX_SCORE = 100
MAX_TIME_BONUS = 10.0


def _field(response: Any, name: str, default: Any = None) -> Any:
	if isinstance(response, Mapping):
		return response.get(name, default)
	return getattr(response, name, default)


def _round_half_up(value: float) -> int:
	return int(math.floor(value + 0.5))


@dataclass(frozen=True)
class ScoreBreakdown:
	correct: int
	total: int
	base_score: float
	time_bonus: float
	final_score: int
	max_score: int = MAX_SCORE


def time_bonus(time_limit_minutes: Optional[float], time_spent_minutes: float) -> float:
	if not time_limit_minutes or time_limit_minutes <= 0:
		return 0.0
	if time_spent_minutes < 0:
		return 0.0
	return max(0.0, (time_limit_minutes - time_spent_minutes) / time_limit_minutes * MAX_TIME_BONUS)


def score(
	responses: Iterable[Any],
	time_limit_minutes: Optional[float],
	time_spent_minutes: float,
) -> ScoreBreakdown:
	responses = list(responses)
	total = len(responses)
	correct = sum(1 for r in responses if _field(r, "is_correct"))
	base = (MAX_SCORE * correct / total) if total else 0.0

	bonus = time_bonus(time_limit_minutes, time_spent_minutes)
	final = min(float(MAX_SCORE), base + bonus) if time_limit_minutes else base

	return ScoreBreakdown(
		correct=correct,
		total=total,
		base_score=round(base, 2),
		time_bonus=round(bonus, 2),
		final_score=_round_half_up(final),
	)


def accuracy_of(responses: Iterable[Any]) -> float:
	"""Percentage of correct responses so far, two decimals."""
	responses = list(responses)
	if not responses:
		return 0.0
	correct = sum(1 for r in responses if _field(r, "is_correct"))
	return round(correct / len(responses) * 100, 2)


@dataclass
class PerformanceSummary:
	avg_response_time: Optional[float] = None
	fastest_response: Optional[float] = None
	slowest_response: Optional[float] = None
	longest_streak: int = 0
	current_streak: int = 0
	streak_breaks: int = 0
	response_count: int = 0
	timings: List[float] = field(default_factory=list, repr=False)


def summarize_performance(responses: Iterable[Any]) -> PerformanceSummary:
	"""Response-time and correct-answer streak figures for one attempt."""
	summary = PerformanceSummary()
	streak = 0
	for response in responses:
		summary.response_count += 1
		spent = _field(response, "time_spent")
		if spent is not None:
			summary.timings.append(float(spent))
		if _field(response, "is_correct"):
			streak += 1
			summary.longest_streak = max(summary.longest_streak, streak)
		else:
			if streak > 0:
				summary.streak_breaks += 1
			streak = 0
	summary.current_streak = streak
	if summary.timings:
		summary.avg_response_time = round(sum(summary.timings) / len(summary.timings), 2)
		summary.fastest_response = min(summary.timings)
		summary.slowest_response = max(summary.timings)
	return summary


def summarize(perf: PerformanceSummary) -> dict:
	return {
		"avg_response_time": perf.avg_response_time,
		"fastest_response": perf.fastest_response,
		"slowest_response": perf.slowest_response,
		"streak": {
			"longest": perf.longest_streak,
			"current": perf.current_streak,
			"breaks": perf.streak_breaks,
		},
		"response_count": perf.response_count,
	}
