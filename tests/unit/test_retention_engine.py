"""
Unit tests for the retention model.

Covers the decay law, the target retention mapping, every tau layer in
isolation and the engine that binds them to a profile.
"""

import math
from datetime import date, timedelta
from uuid import uuid4

import pytest

from practica.core.feature_flags import FeatureFlagRegistry, FeatureFlagSet
from practica.core.models import BarSection, Difficulty, LifecycleState, PracticeRecord, PracticeSessionOutcome
from practica.study.calibration import PersonalCalibration
from practica.study.memory_stability import SectionMemory
from practica.study.retention_engine import (
    BASELINE_TAU,
    MAINTENANCE_MIN_INTERVAL_DAYS,
    MAX_TAU_DAYS,
    MIN_TAU_DAYS,
    RetentionEngine,
    calculate_retention,
    clamp_tau,
    compute_tau,
    compute_tau_breakdown,
    due_date_from_tau,
    initial_tau,
    linear_slope,
    repetition_bonus,
    target_retention_for,
    trend_adjustment,
)

TODAY = date(2025, 3, 14)
ALL_OFF = FeatureFlagSet(
    use_demographics=False,
    use_repetition_bonus=False,
    use_adaptive_systems=False,
    use_performance_trend=False,
)


def outcome(difficulty="Moderate", quality="Okay", minutes=10):
    return PracticeSessionOutcome.from_feedback(difficulty, quality, "", timedelta(minutes=minutes))


def section_with_scores(scores, target=6, reps_each=2):
    section = BarSection(bar_range="1-8", piece_id=uuid4(), target_repetitions=target)
    for i, score in enumerate(scores):
        section.record(PracticeRecord(TODAY - timedelta(days=len(scores) - i), score, reps_each))
    return section


class TestTargetRetention:
    def test_monotone_non_increasing(self):
        values = [target_retention_for(d) for d in Difficulty]
        assert values == sorted(values, reverse=True)
        assert all(0.0 < v < 1.0 for v in values)

    @pytest.mark.parametrize(
        "label, expected",
        [("mastered", 0.85), ("Easy", 0.82), ("average", 0.80), ("difficult", 0.75), ("VeryHard", 0.70)],
    )
    def test_labels(self, label, expected):
        assert target_retention_for(label) == expected

    def test_unknown_is_moderate(self):
        assert target_retention_for("unheard-of") == target_retention_for(Difficulty.MODERATE)


class TestDecayLaw:
    def test_retention(self):
        assert calculate_retention(0, 9.0) == 1.0
        assert calculate_retention(9.0, 9.0) == pytest.approx(math.exp(-1))

    def test_retention_rejects_non_positive_tau(self):
        with pytest.raises(ValueError):
            calculate_retention(1.0, 0.0)

    @pytest.mark.parametrize("tau", [1.0, 2.5, 9.0, 27.5, 180.0])
    @pytest.mark.parametrize("r_star", [0.5, 0.7, 0.8, 0.85, 0.99])
    def test_due_date_strictly_after_and_rounded(self, tau, r_star):
        due = due_date_from_tau(tau, r_star, TODAY)
        assert due > TODAY
        assert (due - TODAY).days == max(1, round(-tau * math.log(r_star)))

    def test_due_date_example(self):
        # -9 * ln(0.8) = 2.008 -> 2 days
        assert due_date_from_tau(9.0, 0.8, TODAY) == date(2025, 3, 16)

    @pytest.mark.parametrize("tau, r_star", [(0.0, 0.8), (-1.0, 0.8), (9.0, 1.0), (9.0, 0.0), (9.0, 1.5)])
    def test_due_date_rejects_contract_violations(self, tau, r_star):
        with pytest.raises(ValueError):
            due_date_from_tau(tau, r_star, TODAY)

    def test_clamp(self):
        assert clamp_tau(0.2) == MIN_TAU_DAYS
        assert clamp_tau(500.0) == MAX_TAU_DAYS
        assert clamp_tau(12.0) == 12.0
        assert clamp_tau(float("nan")) == BASELINE_TAU


class TestLayers:
    def test_all_layers_off_is_base(self):
        b = compute_tau_breakdown(None, outcome(), ALL_OFF)
        assert b.tau == pytest.approx(BASELINE_TAU)
        assert (b.demographic_factor, b.repetition_factor, b.adaptive_factor, b.trend_factor) == (1.0, 1.0, 1.0, 1.0)

    def test_disabled_layer_does_not_skip_later_layers(self):
        section = BarSection(bar_range="1-8", piece_id=uuid4(), target_repetitions=6, completed_repetitions=7)
        flags = FeatureFlagSet(use_demographics=False, use_performance_trend=False)
        b = compute_tau_breakdown(None, outcome(), flags, section=section, experience="professional")

        assert b.demographic_factor == 1.0
        assert b.repetition_factor == pytest.approx(repetition_bonus(7))
        assert b.repetition_factor > 1.0
        assert b.tau == pytest.approx(BASELINE_TAU * repetition_bonus(7))

    def test_experience_ordering(self):
        flags = FeatureFlagSet(use_repetition_bonus=False, use_performance_trend=False)
        taus = [compute_tau(None, outcome(), flags, experience=e) for e in ("beginner", "intermediate", "professional")]
        assert taus == sorted(taus)
        assert taus[1] == pytest.approx(BASELINE_TAU)

    def test_harder_difficulty_shortens_tau(self):
        taus = [compute_tau(None, outcome(d), ALL_OFF) for d in Difficulty]
        assert taus == sorted(taus, reverse=True)

    def test_better_quality_lengthens_tau(self):
        assert compute_tau(None, outcome(quality="Excellent"), ALL_OFF) > compute_tau(None, outcome(quality="Poor"), ALL_OFF)

    def test_repetition_bonus_bounds(self):
        assert repetition_bonus(0) == 1.0
        assert repetition_bonus(-5) == 1.0
        assert 1.0 < repetition_bonus(10) <= 1.5
        assert repetition_bonus(10**9) <= 1.5

    def test_target_progress_factor(self):
        fresh = BarSection(bar_range="1-8", piece_id=uuid4(), target_repetitions=10)
        b = compute_tau_breakdown(None, outcome(), ALL_OFF, section=fresh)
        assert b.target_factor == pytest.approx(0.8)

    def test_result_always_clamped(self):
        flags = FeatureFlagSet(use_performance_trend=True)
        b = compute_tau_breakdown(1000.0, outcome(), flags)
        assert b.unclamped_tau > MAX_TAU_DAYS
        assert b.tau == MAX_TAU_DAYS


class TestAdaptiveLayer:
    FLAGS = FeatureFlagSet(use_adaptive_systems=True, use_performance_trend=False)

    def test_no_sources_is_identity(self):
        b = compute_tau_breakdown(None, outcome(), self.FLAGS)
        assert b.sources == []
        assert b.adaptive_confidence == 0.0
        assert b.adaptive_factor == 1.0

    def test_performance_source(self):
        section = section_with_scores([9.0, 9.0, 9.0])
        b = compute_tau_breakdown(None, outcome(quality="Good"), self.FLAGS, section=section)

        assert [s.name for s in b.sources] == ["performance"]
        assert b.adaptive_confidence == 1.0
        assert b.tau == pytest.approx(BASELINE_TAU * 1.4 * 0.9 + b.demographic_tau * 0.1)

    def test_stability_source_needs_two_reviews(self):
        flags = FeatureFlagSet(use_adaptive_systems=True, use_memory_stability=True, use_performance_trend=False)
        memory = SectionMemory(section_id=uuid4(), stability=10.0, difficulty=0.2, review_count=5)
        b = compute_tau_breakdown(None, outcome(), flags, memory=memory)
        assert b.tau == pytest.approx(10.0 * 0.7 * 1.06 * 0.9 + b.demographic_tau * 0.1)

        memory.review_count = 1
        assert compute_tau_breakdown(None, outcome(), flags, memory=memory).adaptive_factor == 1.0

    def test_stability_sub_layer_gated(self):
        memory = SectionMemory(section_id=uuid4(), stability=10.0, review_count=5)
        b = compute_tau_breakdown(None, outcome(), self.FLAGS, memory=memory)
        assert b.sources == []

    def test_calibration_source_counts_toward_confidence(self):
        flags = FeatureFlagSet(use_adaptive_systems=True, use_pmc=True, use_performance_trend=False)
        section = section_with_scores([9.0, 9.0, 9.0])
        b = compute_tau_breakdown(None, outcome(quality="Good"), flags, section=section, calibration=PersonalCalibration())

        assert sorted(s.name for s in b.sources) == ["calibration", "performance"]
        # (0.0 + 1.0) / 2 * 1.2
        assert b.adaptive_confidence == pytest.approx(0.6)
        assert b.tau == pytest.approx(BASELINE_TAU * 1.4 * 0.6 + b.demographic_tau * 0.4)

    def test_master_switch_off_ignores_sub_layers(self):
        flags = FeatureFlagSet(use_adaptive_systems=False, use_memory_stability=True, use_pmc=True, use_performance_trend=False)
        memory = SectionMemory(section_id=uuid4(), stability=30.0, review_count=5)
        b = compute_tau_breakdown(None, outcome(), flags, memory=memory, calibration=PersonalCalibration())
        assert b.adaptive_factor == 1.0
        assert b.sources == []


class TestTrendLayer:
    def test_slope(self):
        assert linear_slope([1.0, 2.0, 3.0]) == pytest.approx(1.0)
        assert linear_slope([4.0]) == 0.0
        assert linear_slope([0.0, 10.0]) == 5.0

    @pytest.mark.parametrize(
        "scores, magnitude, category",
        [
            ([5.0, 6.0, 7.0, 8.0, 9.0], 0.01, "positive_trend"),
            ([8.0, 8.5, 9.0, 9.5, 10.0], 0.05, "high_perf_positive_trend"),
            ([4.0, 3.5, 3.0, 2.5, 2.0], -0.05, "low_perf_negative_trend"),
            ([7.0, 6.0, 5.0, 4.5, 4.5], -0.01, "negative_trend"),
            ([5.0, 5.0, 5.0], 0.0, "neutral"),
            ([9.0, 8.9], 0.0, "neutral"),
            ([7.0], 0.0, "neutral"),
        ],
    )
    def test_adjustment(self, scores, magnitude, category):
        value, name = trend_adjustment(scores)
        assert value == pytest.approx(magnitude)
        assert name == category

    def test_smoothing_toward_previous(self):
        flags = FeatureFlagSet(use_demographics=False, use_repetition_bonus=False)
        b = compute_tau_breakdown(20.0, outcome(), flags)
        assert b.tau == pytest.approx(0.7 * BASELINE_TAU + 0.3 * 20.0)

    def test_disabled_trend_ignores_previous(self):
        assert compute_tau(20.0, outcome(), ALL_OFF) == pytest.approx(BASELINE_TAU)


class TestInitialTau:
    def test_moderate_without_reps(self):
        assert initial_tau("Moderate", 0, FeatureFlagSet()) == pytest.approx(BASELINE_TAU)

    def test_beginner_hard(self):
        assert initial_tau("Hard", 0, FeatureFlagSet(), "beginner") == pytest.approx(9.0 * 0.6 * 0.8)


class TestRetentionEngine:
    def test_plan_next_uses_target_retention_of_feedback(self, registry):
        engine = RetentionEngine(registry)
        section = section_with_scores([6.0, 7.0])
        plan = engine.plan_next(section, outcome("Hard", "Good"), 9.0, TODAY)

        assert plan.target_retention == target_retention_for("Hard")
        assert plan.due_date == due_date_from_tau(plan.tau, plan.target_retention, TODAY)
        assert plan.breakdown is not None and plan.breakdown.tau == plan.tau

    def test_plan_initial_is_due_immediately(self, registry):
        engine = RetentionEngine(registry)
        section = BarSection(bar_range="1-8", piece_id=uuid4())
        plan = engine.plan_initial(section, TODAY)
        assert plan.due_date == TODAY
        assert plan.tau == engine.initial_tau(section)

    def test_observe_without_adaptive_layer(self, registry):
        engine = RetentionEngine(registry)
        section = BarSection(bar_range="1-8", piece_id=uuid4())
        assert engine.observe(section, PracticeRecord(TODAY, 7.0, 3), 9.0) is False
        assert len(engine.stability) == 0

    def test_observe_feeds_adaptive_sources(self, registry):
        registry.configure(use_adaptive_systems=True, use_memory_stability=True, use_pmc=True)
        engine = RetentionEngine(registry)
        section = BarSection(bar_range="1-8", piece_id=uuid4())
        section.last_practice_date = TODAY - timedelta(days=3)

        assert engine.observe(section, PracticeRecord(TODAY, 7.0, 3, timedelta(minutes=5)), 9.0) is True
        assert engine.stability.get(section.id).review_count == 1
        assert engine.calibration.total_sessions == 1

    def test_diagnostics_respect_quota(self, registry):
        registry.configure(enable_diagnostic_logging=True, diagnostic_log_limit=1)
        engine = RetentionEngine(registry)
        section = section_with_scores([6.0])
        engine.plan_next(section, outcome(), None, TODAY)
        engine.plan_next(section, outcome(), None, TODAY)
        assert registry.diagnostic_count == 1

    def test_registry_update_applies_to_next_plan(self):
        registry = FeatureFlagRegistry()
        engine = RetentionEngine(registry, experience="professional")
        section = BarSection(bar_range="1-8", piece_id=uuid4())
        with_demo = engine.plan_next(section, outcome(), None, TODAY).tau
        registry.configure(use_demographics=False)
        without_demo = engine.plan_next(section, outcome(), None, TODAY).tau
        assert with_demo == pytest.approx(without_demo * 1.3)

    def test_maintenance_section_waits_at_least_a_week(self, registry):
        engine = RetentionEngine(registry)
        section = section_with_scores([4.0, 3.0])
        active = engine.plan_next(section, outcome("VeryHard", "Poor"), 3.0, TODAY)

        section.lifecycle_state = LifecycleState.MAINTENANCE
        kept = engine.plan_next(section, outcome("VeryHard", "Poor"), 3.0, TODAY)

        assert active.due_date < TODAY + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS)
        assert kept.due_date == TODAY + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS)
        assert kept.tau == active.tau

    @pytest.mark.parametrize("difficulty, quality", [("Moderate", "Good"), ("VeryEasy", "Excellent")])
    def test_maintenance_never_shortens_interval(self, registry, difficulty, quality):
        engine = RetentionEngine(registry)
        section = section_with_scores([8.0, 9.0], reps_each=6)
        active = engine.plan_next(section, outcome(difficulty, quality), 20.0, TODAY)

        section.lifecycle_state = LifecycleState.MAINTENANCE
        kept = engine.plan_next(section, outcome(difficulty, quality), 20.0, TODAY)

        floor = TODAY + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS)
        assert kept.due_date == max(active.due_date, floor)
