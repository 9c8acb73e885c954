"""
Retention diagnostics.

Compact single-line records with a stable [RETENTION_DIAG] prefix so tau
calculations can be filtered out of the log and shared. Every line is
admitted against the registry's daily quota; nothing is written while
diagnostic logging is disabled.
"""

from __future__ import annotations

import threading
from typing import TYPE_CHECKING
from uuid import UUID

from loguru import logger

from practica.core.feature_flags import FeatureFlagRegistry

if TYPE_CHECKING:
    from practica.study.retention_engine import TauBreakdown

PREFIX = "[RETENTION_DIAG]"
HEADER_PREFIX = "[RETENTION_DIAG_HEADER]"
COLUMNS = (
    "Context,Section,Difficulty,Reps,BaseTau,DiffMod,PerfFactor,TargetFactor,"
    "Demographic,RepBonus,Adaptive(conf),Trend,PreClampTau,ClampedTau,"
    "NextInterval,TargetR*,PredictedR"
)


def _fmt(value: float | None, digits: int = 3) -> str:
    return "-" if value is None else f"{value:.{digits}f}"


class RetentionDiagnostics:
    """Throttled writer of tau-calculation breakdowns."""

    def __init__(self, registry: FeatureFlagRegistry):
        self.registry = registry
        self._header_emitted = False
        self._lock = threading.Lock()

    def _emit_header_once(self) -> None:
        with self._lock:
            if self._header_emitted:
                return
            self._header_emitted = True
        logger.info(f"{HEADER_PREFIX} Columns={COLUMNS}")

    def log_tau_breakdown(
        self,
        section_id: UUID | None,
        difficulty: str,
        repetitions: int,
        breakdown: TauBreakdown,
        next_interval_days: float | None = None,
        target_retention: float | None = None,
        predicted_retention: float | None = None,
    ) -> bool:
        """Write one TauCalc line. Returns False when the quota denied it."""
        if not self.registry.should_log_diagnostic():
            return False
        self._emit_header_once()

        fields = [
            "TauCalc",
            str(section_id) if section_id else "-",
            difficulty or "-",
            str(repetitions),
            _fmt(breakdown.base_tau),
            _fmt(breakdown.difficulty_modifier),
            _fmt(breakdown.performance_factor),
            _fmt(breakdown.target_factor),
            _fmt(breakdown.demographic_factor),
            _fmt(breakdown.repetition_factor),
            f"{_fmt(breakdown.adaptive_factor)}|{_fmt(breakdown.adaptive_confidence)}",
            _fmt(breakdown.trend_factor),
            _fmt(breakdown.unclamped_tau),
            _fmt(breakdown.tau),
            _fmt(next_interval_days, 2),
            _fmt(target_retention),
            _fmt(predicted_retention),
        ]
        logger.info(f"{PREFIX} {','.join(fields)}")
        return True

    def log_adaptation_update(
        self,
        section_id: UUID,
        performance: float,
        tau_multiplier: float,
        stability: float | None = None,
        difficulty: float | None = None,
        review_count: int | None = None,
    ) -> bool:
        if not self.registry.should_log_diagnostic():
            return False
        self._emit_header_once()
        logger.debug(
            f"{PREFIX} AdaptUpdate,{section_id} Perf={performance:.1f} "
            f"TauMult={tau_multiplier:.3f} Stability={_fmt(stability, 2)} "
            f"Diff={_fmt(difficulty)} Reviews={review_count if review_count is not None else '-'}"
        )
        return True
