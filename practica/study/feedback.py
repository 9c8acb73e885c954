"""
Feedback translation.

Turns the closed-set answers of the post-practice feedback form
(experienced difficulty, practice quality, session length) into the
numbers the retention model consumes.

Unknown labels never raise: difficulty falls back to Moderate and
quality to Good.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta

from practica.core.models import Difficulty, PracticeQuality, SessionOutcome

DIFFICULTY_SCORES: dict[Difficulty, float] = {
    Difficulty.VERY_EASY: 1.0,
    Difficulty.EASY: 2.5,
    Difficulty.MODERATE: 5.0,
    Difficulty.HARD: 7.5,
    Difficulty.VERY_HARD: 9.0,
}

# Easier material gets through more effective repetitions per minute
DIFFICULTY_REPETITION_MULTIPLIERS: dict[Difficulty, float] = {
    Difficulty.VERY_EASY: 1.5,
    Difficulty.EASY: 1.2,
    Difficulty.MODERATE: 1.0,
    Difficulty.HARD: 0.8,
    Difficulty.VERY_HARD: 0.6,
}

QUALITY_REPETITION_MULTIPLIERS: dict[PracticeQuality, float] = {
    PracticeQuality.EXCELLENT: 1.3,
    PracticeQuality.GOOD: 1.1,
    PracticeQuality.OKAY: 1.0,
    PracticeQuality.POOR: 0.7,
}

QUALITY_OUTCOMES: dict[PracticeQuality, SessionOutcome] = {
    PracticeQuality.EXCELLENT: SessionOutcome.TARGET_REACHED,
    PracticeQuality.GOOD: SessionOutcome.TARGET_REACHED,
    PracticeQuality.OKAY: SessionOutcome.TARGET_NOT_REACHED,
    PracticeQuality.POOR: SessionOutcome.FRUSTRATION,
}

QUALITY_PERFORMANCE_BASE: dict[PracticeQuality, float] = {
    PracticeQuality.EXCELLENT: 9.0,
    PracticeQuality.GOOD: 7.0,
    PracticeQuality.OKAY: 5.0,
    PracticeQuality.POOR: 3.0,
}

MINUTES_PER_REPETITION = 2.0


@dataclass(frozen=True)
class FeedbackNumbers:
    difficulty_score: float
    estimated_repetitions: int
    session_outcome: SessionOutcome


def base_repetitions(duration: timedelta) -> float:
    """One effective repetition per two minutes, never fewer than one."""
    minutes = max(0.0, duration.total_seconds() / 60.0)
    return max(1.0, minutes / MINUTES_PER_REPETITION)


def feedback_to_numbers(
    difficulty: Difficulty | str | None,
    quality: PracticeQuality | str | None,
    duration: timedelta = timedelta(minutes=5),
) -> FeedbackNumbers:
    """
    Table lookup plus a multiplicative repetition estimate.

    Args:
        difficulty: Experienced difficulty label
        quality: Self-reported practice quality label
        duration: Actual session length

    Returns:
        FeedbackNumbers with a difficulty score in [1, 9] and at least
        one estimated repetition
    """
    difficulty = Difficulty.parse(difficulty)
    quality = PracticeQuality.parse(quality)

    estimate = (
        base_repetitions(duration)
        * DIFFICULTY_REPETITION_MULTIPLIERS[difficulty]
        * QUALITY_REPETITION_MULTIPLIERS[quality]
    )
    return FeedbackNumbers(
        difficulty_score=DIFFICULTY_SCORES[difficulty],
        estimated_repetitions=max(1, round(estimate)),
        session_outcome=QUALITY_OUTCOMES[quality],
    )


def performance_score_for(
    difficulty: Difficulty | str | None, quality: PracticeQuality | str | None
) -> float:
    """0-10 performance scalar: quality sets the level, difficulty shifts it."""
    difficulty = Difficulty.parse(difficulty)
    quality = PracticeQuality.parse(quality)
    score = QUALITY_PERFORMANCE_BASE[quality] - (DIFFICULTY_SCORES[difficulty] - 5.0) * 0.25
    return min(10.0, max(0.0, score))
