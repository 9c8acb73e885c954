"""
Retention Engine - forgetting-curve scheduling of bar sections.

Retention decays exponentially, R(t) = exp(-t / tau), with tau the
memory-decay time constant in days. After every practice session tau is
recomputed from the session feedback through a fixed sequence of
layers:

    (a) base tau          difficulty, performance, progress toward target reps
    (b) demographics      musical experience multiplier
    (c) repetition bonus  diminishing bonus for accumulated repetitions
    (d) adaptive          confidence-weighted memory stability, calibration
                          and recent-performance sources
    (e) performance trend slope of recent scores, then smoothing toward
                          the previous tau

A disabled layer contributes a factor of exactly 1.0; later layers
still run. The result is clamped to [1, 180] days.

The next session is due once retention is expected to fall to the
target retention R* of the section's difficulty: t = -tau * ln(R*).
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Sequence

from loguru import logger

from practica.core.dates import normalize
from practica.core.feature_flags import FeatureFlagRegistry, FeatureFlagSet
from practica.core.models import (
    BarSection,
    Difficulty,
    LifecycleState,
    PracticeRecord,
    PracticeSessionOutcome,
)
from practica.study.calibration import PersonalCalibration, prediction_accuracy
from practica.study.diagnostics import RetentionDiagnostics
from practica.study.memory_stability import MemoryStabilityTracker, SectionMemory, stability_to_tau

# =============================================================================
# Constants
# =============================================================================

BASE_TAU_DAYS = 3.0
MUSIC_MATERIAL_FACTOR = 3.0
BASELINE_TAU = BASE_TAU_DAYS * MUSIC_MATERIAL_FACTOR

MIN_TAU_DAYS = 1.0
MAX_TAU_DAYS = 180.0

REPETITION_STRENGTH_FACTOR = 1.3
REPETITION_BONUS_RATE = 0.08
MAX_REPETITION_BONUS = 0.5

MAINTENANCE_MIN_INTERVAL_DAYS = 7

PERFORMANCE_ADJUSTMENT_FACTOR = 0.3
TREND_WINDOW = 5
SMOOTHING_WEIGHT = 0.7

DIFFICULTY_MODIFIERS: dict[Difficulty, float] = {
    Difficulty.VERY_EASY: 2.0,
    Difficulty.EASY: 1.7,
    Difficulty.MODERATE: 1.0,
    Difficulty.HARD: 0.6,
    Difficulty.VERY_HARD: 0.45,
}

# Harder material is revisited at a lower retention target
TARGET_RETENTION: dict[Difficulty, float] = {
    Difficulty.VERY_EASY: 0.85,
    Difficulty.EASY: 0.82,
    Difficulty.MODERATE: 0.80,
    Difficulty.HARD: 0.75,
    Difficulty.VERY_HARD: 0.70,
}

EXPERIENCE_MULTIPLIERS: dict[str, float] = {
    "beginner": 0.8,
    "intermediate": 1.0,
    "advanced": 1.1,
    "professional": 1.3,
}

# Adaptive source weights
CALIBRATION_MAX_WEIGHT = 0.4
STABILITY_MAX_WEIGHT = 0.5
PERFORMANCE_MAX_WEIGHT = 0.3


# =============================================================================
# Decay law
# =============================================================================


def target_retention_for(difficulty: Difficulty | str | None) -> float:
    """R* for a difficulty label; the only place the target is derived."""
    return TARGET_RETENTION[Difficulty.parse(difficulty)]


def calculate_retention(days_since_practice: float, tau: float) -> float:
    """R(t) = exp(-t / tau)."""
    if tau <= 0:
        raise ValueError(f"tau must be positive, got {tau}")
    if days_since_practice <= 0:
        return 1.0
    return math.exp(-days_since_practice / tau)


def clamp_tau(tau: float) -> float:
    if math.isnan(tau):
        return BASELINE_TAU
    return max(MIN_TAU_DAYS, min(MAX_TAU_DAYS, tau))


def interval_days(tau: float, r_star: float) -> float:
    """Days until retention falls from 1 to r_star."""
    if tau <= 0:
        raise ValueError(f"tau must be positive, got {tau}")
    if not 0.0 < r_star < 1.0:
        raise ValueError(f"target retention must be in (0, 1), got {r_star}")
    return -tau * math.log(r_star)


def due_date_from_tau(tau: float, r_star: float, from_date: date) -> date:
    """
    Calendar day on which retention is expected to reach r_star.

    The interval is rounded to whole days with a floor of one day, so
    the due date is always strictly after from_date.

    Raises:
        ValueError: tau <= 0 or r_star outside (0, 1)
    """
    days = max(1, round(interval_days(tau, r_star)))
    return normalize(from_date) + timedelta(days=days)


# =============================================================================
# Layer factors
# =============================================================================


def experience_multiplier(experience: str | None) -> float:
    return EXPERIENCE_MULTIPLIERS.get((experience or "").strip().lower(), 1.0)


def repetition_bonus(repetitions: int) -> float:
    """1 + min(0.5, 0.08 * 1.3 * sqrt(log2(reps + 1)))."""
    reps = max(0, repetitions)
    bonus = REPETITION_BONUS_RATE * REPETITION_STRENGTH_FACTOR * math.sqrt(math.log2(reps + 1))
    return 1.0 + min(MAX_REPETITION_BONUS, bonus)


def performance_factor(performance_score: float) -> float:
    """Neutral at 5/10; +-30% at the extremes."""
    score = max(0.0, min(10.0, performance_score))
    return 1.0 + PERFORMANCE_ADJUSTMENT_FACTOR * (score - 5.0) / 5.0


def target_factor(completed: int, target: int) -> float:
    """0.8 for a section nobody has repeated yet, 1.0 once the target is met."""
    if target <= 0:
        return 1.0
    return 0.8 + 0.2 * min(1.0, max(0, completed) / target)


def linear_slope(scores: Sequence[float]) -> float:
    """Least-squares slope of scores against their index, clamped to [-5, 5]."""
    n = len(scores)
    if n < 2:
        return 0.0
    sum_x = sum(range(n))
    sum_y = sum(scores)
    sum_xy = sum(i * y for i, y in enumerate(scores))
    sum_xx = sum(i * i for i in range(n))
    denominator = n * sum_xx - sum_x * sum_x
    if abs(denominator) <= 0.0001:
        return 0.0
    slope = (n * sum_xy - sum_x * sum_y) / denominator
    return max(-5.0, min(5.0, slope))


def trend_adjustment(scores: Sequence[float]) -> tuple[float, str]:
    """
    Signed tau adjustment in [-0.05, 0.05] from recent performance.

    Returns:
        (signed magnitude, category)
    """
    recent = list(scores)[-TREND_WINDOW:]
    if len(recent) < 2:
        return 0.0, "neutral"

    slope = linear_slope(recent)
    level = max(0.0, min(1.0, (sum(recent) / len(recent)) / 10.0))
    slope_norm = max(-0.5, min(0.5, slope / 10.0))

    if level >= 0.8 and slope > 0:
        return min(0.05, 0.03 + min(0.02, slope_norm * 0.5)), "high_perf_positive_trend"
    if level <= 0.4 and slope < 0:
        return -min(0.05, 0.03 + min(0.02, abs(slope_norm) * 0.5)), "low_perf_negative_trend"
    if slope > 0.2:
        return 0.01, "positive_trend"
    if slope < -0.2:
        return -0.01, "negative_trend"
    return 0.0, "neutral"


# =============================================================================
# Adaptive integration
# =============================================================================


@dataclass(frozen=True)
class AdaptiveSource:
    name: str
    tau: float
    confidence: float
    max_weight: float

    @property
    def weight(self) -> float:
        return self.confidence * self.max_weight


def performance_based_tau(average_score: float) -> float:
    if average_score < 4.0:
        return BASELINE_TAU * 0.7
    if average_score > 7.5:
        return BASELINE_TAU * 1.4
    return BASELINE_TAU


def gather_adaptive_sources(
    demographic_tau: float,
    difficulty: Difficulty,
    flags: FeatureFlagSet,
    recent_scores: Sequence[float] = (),
    memory: SectionMemory | None = None,
    calibration: PersonalCalibration | None = None,
) -> list[AdaptiveSource]:
    sources: list[AdaptiveSource] = []

    if flags.use_pmc and calibration is not None:
        sources.append(
            AdaptiveSource(
                "calibration",
                demographic_tau * calibration.personal_factor(difficulty),
                calibration.source_confidence,
                CALIBRATION_MAX_WEIGHT,
            )
        )

    if flags.use_memory_stability and memory is not None and memory.review_count >= 2:
        sources.append(
            AdaptiveSource(
                "stability",
                stability_to_tau(memory.stability, memory.difficulty),
                min(1.0, memory.review_count / 5.0),
                STABILITY_MAX_WEIGHT,
            )
        )

    if len(recent_scores) >= 2:
        last = list(recent_scores)[-3:]
        sources.append(
            AdaptiveSource(
                "performance",
                performance_based_tau(sum(last) / len(last)),
                min(1.0, len(last) / 3.0),
                PERFORMANCE_MAX_WEIGHT,
            )
        )

    return sources


def adaptive_confidence(sources: Sequence[AdaptiveSource]) -> float:
    """Mean source confidence, boosted when several sources are present."""
    if not sources:
        return 0.0
    confidence = sum(s.confidence for s in sources) / len(sources)
    if len(sources) >= 2:
        confidence *= 1.2
    if len(sources) >= 3:
        confidence *= 1.1
    return min(1.0, confidence)


def integrate_sources(demographic_tau: float, sources: Sequence[AdaptiveSource]) -> tuple[float, float]:
    """
    Blend the adaptive sources with the demographic tau.

    Returns:
        (integrated tau, confidence)
    """
    confidence = adaptive_confidence(sources)
    total_weight = sum(s.weight for s in sources if s.confidence > 0)
    if total_weight > 0:
        adaptive_tau = sum(s.tau * s.weight for s in sources if s.confidence > 0) / total_weight
    else:
        adaptive_tau = BASELINE_TAU

    if confidence < 0.1:
        return demographic_tau, confidence
    if confidence > 0.8:
        return adaptive_tau * 0.9 + demographic_tau * 0.1, confidence
    return adaptive_tau * confidence + demographic_tau * (1.0 - confidence), confidence


# =============================================================================
# Tau computation
# =============================================================================


@dataclass
class TauBreakdown:
    """Every factor of one tau computation, in layer order."""

    base_tau: float = BASELINE_TAU
    difficulty_modifier: float = 1.0
    performance_factor: float = 1.0
    target_factor: float = 1.0
    demographic_factor: float = 1.0
    repetition_factor: float = 1.0
    adaptive_factor: float = 1.0
    adaptive_confidence: float = 0.0
    trend_factor: float = 1.0
    trend_category: str = "neutral"
    unclamped_tau: float = BASELINE_TAU
    tau: float = BASELINE_TAU
    sources: list[AdaptiveSource] = field(default_factory=list)

    @property
    def layer_a_tau(self) -> float:
        return self.base_tau * self.difficulty_modifier * self.performance_factor * self.target_factor

    @property
    def demographic_tau(self) -> float:
        """Tau after layers (a) to (c), the baseline the adaptive layer blends with."""
        return self.layer_a_tau * self.demographic_factor * self.repetition_factor


def compute_tau_breakdown(
    previous_tau: float | None,
    outcome: PracticeSessionOutcome,
    flags: FeatureFlagSet,
    section: BarSection | None = None,
    experience: str = "intermediate",
    memory: SectionMemory | None = None,
    calibration: PersonalCalibration | None = None,
) -> TauBreakdown:
    """
    Recompute tau after a practice session.

    Args:
        previous_tau: Tau of the session being replaced (None on first practice)
        outcome: Feedback on the session just finished
        flags: Snapshot of the active layers
        section: The practiced section, with this session already counted
        experience: Musical experience label for the demographic layer
        memory: Stability state of the section (adaptive layer)
        calibration: Personal calibration of the profile (adaptive layer)

    Returns:
        TauBreakdown whose tau is clamped to [1, 180]
    """
    difficulty = outcome.experienced_difficulty
    completed = section.completed_repetitions if section else outcome.estimated_repetitions
    scores = section.recent_scores(TREND_WINDOW) if section else []

    b = TauBreakdown(
        difficulty_modifier=DIFFICULTY_MODIFIERS[difficulty],
        performance_factor=performance_factor(outcome.performance_score),
        target_factor=target_factor(completed, section.target_repetitions) if section else 1.0,
    )

    # (b) demographics
    if flags.use_demographics:
        b.demographic_factor = experience_multiplier(experience)

    # (c) repetition bonus
    if flags.use_repetition_bonus:
        b.repetition_factor = repetition_bonus(completed)

    tau = b.demographic_tau

    # (d) adaptive systems
    if flags.use_adaptive_systems:
        b.sources = gather_adaptive_sources(tau, difficulty, flags, scores, memory, calibration)
        integrated, b.adaptive_confidence = integrate_sources(tau, b.sources)
        b.adaptive_factor = integrated / tau
        tau = integrated

    # (e) performance trend
    if flags.use_performance_trend:
        magnitude, b.trend_category = trend_adjustment(scores)
        trended = tau * (1.0 + 2.0 * magnitude)
        if previous_tau is not None and previous_tau > 0:
            trended = SMOOTHING_WEIGHT * trended + (1.0 - SMOOTHING_WEIGHT) * previous_tau
        b.trend_factor = trended / tau
        tau = trended

    b.unclamped_tau = tau
    b.tau = clamp_tau(tau)
    return b


def compute_tau(
    previous_tau: float | None,
    outcome: PracticeSessionOutcome,
    flags: FeatureFlagSet,
    **kwargs,
) -> float:
    return compute_tau_breakdown(previous_tau, outcome, flags, **kwargs).tau


def initial_tau(
    difficulty: Difficulty | str | None,
    completed_repetitions: int,
    flags: FeatureFlagSet,
    experience: str = "intermediate",
) -> float:
    """Tau for a section that has never been scheduled (no feedback yet)."""
    tau = BASELINE_TAU * DIFFICULTY_MODIFIERS[Difficulty.parse(difficulty)]
    if flags.use_demographics:
        tau *= experience_multiplier(experience)
    if flags.use_repetition_bonus:
        tau *= repetition_bonus(completed_repetitions)
    return clamp_tau(tau)


# =============================================================================
# Engine
# =============================================================================


@dataclass(frozen=True)
class SchedulePlan:
    tau: float
    target_retention: float
    due_date: date
    breakdown: TauBreakdown | None = None

    @property
    def interval_days(self) -> float:
        return interval_days(self.tau, self.target_retention)


class RetentionEngine:
    """
    Tau computation bound to one profile's flags and adaptive state.

    The engine reads the flag registry once per calculation so every
    layer of one computation sees the same snapshot.
    """

    def __init__(
        self,
        registry: FeatureFlagRegistry,
        experience: str = "intermediate",
        stability: MemoryStabilityTracker | None = None,
        calibration: PersonalCalibration | None = None,
    ):
        self.registry = registry
        self.experience = experience
        self.stability = stability if stability is not None else MemoryStabilityTracker()
        self.calibration = calibration if calibration is not None else PersonalCalibration()
        self.diagnostics = RetentionDiagnostics(registry)

    def initial_tau(self, section: BarSection) -> float:
        return initial_tau(
            section.difficulty,
            section.completed_repetitions,
            self.registry.snapshot(),
            self.experience,
        )

    def plan_initial(self, section: BarSection, from_date: date) -> SchedulePlan:
        """First session of a freshly onboarded section, due on from_date."""
        tau = self.initial_tau(section)
        return SchedulePlan(
            tau=tau,
            target_retention=target_retention_for(section.difficulty),
            due_date=normalize(from_date),
        )

    def observe(self, section: BarSection, record: PracticeRecord, expected_tau: float | None) -> bool:
        """
        Feed a finished session to the adaptive sources.

        Must be called before the record is added to the section so the
        elapsed time since the previous practice is still known.

        Returns:
            True when any adaptive state changed
        """
        flags = self.registry.snapshot()
        if not flags.use_adaptive_systems:
            return False

        changed = False
        if flags.use_memory_stability:
            memory = self.stability.update(section.id, record)
            changed = True
        else:
            memory = self.stability.get(section.id)

        if flags.use_pmc:
            elapsed = (
                (record.practiced_on - section.last_practice_date).days
                if section.last_practice_date
                else 0
            )
            accuracy = prediction_accuracy(record, elapsed, expected_tau or BASELINE_TAU)
            self.calibration.update(section.difficulty, accuracy)
            changed = True

        self.diagnostics.log_adaptation_update(
            section.id,
            record.performance_score,
            performance_factor(record.performance_score),
            stability=memory.stability if memory else None,
            difficulty=memory.difficulty if memory else None,
            review_count=memory.review_count if memory else None,
        )
        return changed

    def plan_next(
        self,
        section: BarSection,
        outcome: PracticeSessionOutcome,
        previous_tau: float | None,
        from_date: date,
    ) -> SchedulePlan:
        """
        Recompute tau and the next due date after a practice session.

        Sections in maintenance are never due sooner than
        MAINTENANCE_MIN_INTERVAL_DAYS after from_date.
        """
        flags = self.registry.snapshot()
        breakdown = compute_tau_breakdown(
            previous_tau,
            outcome,
            flags,
            section=section,
            experience=self.experience,
            memory=self.stability.get(section.id),
            calibration=self.calibration,
        )
        r_star = target_retention_for(outcome.experienced_difficulty)
        due = due_date_from_tau(breakdown.tau, r_star, from_date)
        if section.lifecycle_state is LifecycleState.MAINTENANCE:
            due = max(due, normalize(from_date) + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS))
        days = (due - normalize(from_date)).days

        logger.debug(
            f"Tau for section {section.bar_range or section.id}: "
            f"{previous_tau if previous_tau is not None else '-'} -> {breakdown.tau:.3f} "
            f"(R*={r_star:.2f}, due {due.isoformat()})"
        )
        self.diagnostics.log_tau_breakdown(
            section.id,
            outcome.experienced_difficulty.value,
            section.completed_repetitions,
            breakdown,
            next_interval_days=days,
            target_retention=r_star,
            predicted_retention=calculate_retention(days, breakdown.tau),
        )
        return SchedulePlan(tau=breakdown.tau, target_retention=r_star, due_date=due, breakdown=breakdown)
