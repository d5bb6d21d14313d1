"""Points for a single answer.

Everything here is pure: no database, no app context. The session's
scoring settings arrive as an immutable ``ScoringConfig``.
"""

import math
from dataclasses import dataclass, field, replace
from typing import Sequence, Tuple

SIMPLE = 'simple'
TIME_ONLY = 'time_only'
STREAK_ONLY = 'streak_only'
TIME_AND_STREAK = 'time_and_streak'

SCORING_MODES = (TIME_AND_STREAK, TIME_ONLY, STREAK_ONLY, SIMPLE)

DEFAULT_STREAK_MULTIPLIERS: Tuple[float, ...] = (1.0, 1.2, 1.5, 2.0, 2.5, 3.0)


@dataclass(frozen=True)
class ScoringConfig:
    mode: str = TIME_AND_STREAK
    base_points: int = 100
    time_bonus_max: int = 50
    # streak_multipliers[0] applies to a streak of 1; longer streaks reuse the last value
    streak_multipliers: Tuple[float, ...] = field(default=DEFAULT_STREAK_MULTIPLIERS)

    def __post_init__(self):
        if self.mode not in SCORING_MODES:
            raise ValueError(f"Unknown scoring mode: {self.mode!r}")
        if not self.streak_multipliers:
            object.__setattr__(self, 'streak_multipliers', DEFAULT_STREAK_MULTIPLIERS)
        else:
            object.__setattr__(self, 'streak_multipliers', tuple(float(m) for m in self.streak_multipliers))

    def with_base_points(self, base_points):
        if base_points is None:
            return self
        return replace(self, base_points=int(base_points))


@dataclass(frozen=True)
class ScoreBreakdown:
    base_points: int
    time_bonus: int
    streak_multiplier: float
    total_points: int
    new_streak: int


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def uses_time_bonus(mode: str) -> bool:
    return mode in (TIME_ONLY, TIME_AND_STREAK)


def uses_streak_multiplier(mode: str) -> bool:
    return mode in (STREAK_ONLY, TIME_AND_STREAK)


def time_bonus(response_time_ms: float, time_limit_ms: float, max_bonus: int) -> int:
    """Linear decay: full bonus for an instant answer, nothing at or past the limit."""
    if time_limit_ms <= 0 or response_time_ms >= time_limit_ms:
        return 0
    remaining = 1 - max(response_time_ms, 0) / time_limit_ms
    remaining = min(max(remaining, 0.0), 1.0)
    return max(0, round_half_up(remaining * max_bonus))


def streak_multiplier(streak: int, multipliers: Sequence[float]) -> float:
    if streak <= 0 or not multipliers:
        return 1.0
    tier = min(streak, len(multipliers))
    return float(multipliers[tier - 1])


def score_answer(mode: str, is_correct: bool, response_time_ms: float, time_limit_ms: float,
                 current_streak: int, config: ScoringConfig) -> ScoreBreakdown:
    """Score one answer under ``mode``.

    A wrong answer is worth nothing and resets the streak in every mode.
    Otherwise ``total = round((base + time_bonus) * multiplier)``, with the
    time bonus and the multiplier only switched on by the modes that use them.
    """
    if mode not in SCORING_MODES:
        raise ValueError(f"Unknown scoring mode: {mode!r}")

    if not is_correct:
        return ScoreBreakdown(base_points=0, time_bonus=0, streak_multiplier=1.0,
                              total_points=0, new_streak=0)

    new_streak = max(current_streak, 0) + 1
    base = config.base_points
    bonus = time_bonus(response_time_ms, time_limit_ms, config.time_bonus_max) if uses_time_bonus(mode) else 0
    multiplier = streak_multiplier(new_streak, config.streak_multipliers) if uses_streak_multiplier(mode) else 1.0
    total = round_half_up((base + bonus) * multiplier)

    return ScoreBreakdown(base_points=base, time_bonus=bonus, streak_multiplier=multiplier,
                          total_points=total, new_streak=new_streak)


def accuracy_percent(correct_answers: int, total_questions: int) -> int:
    if total_questions <= 0:
        return 0
    return round_half_up(correct_answers * 100 / total_questions)


def format_streak_multiplier(multiplier: float) -> str:
    return f"x{multiplier:.1f}"
