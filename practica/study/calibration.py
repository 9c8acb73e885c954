"""
Personalized memory calibration.

Learns, per difficulty label, how far the generic tau prediction is off
for this user. After each session the predicted retention (from the
expected tau and the elapsed days) is compared with a retention estimate
derived from the session itself; the per-difficulty adjustment factor
then takes a small Bayesian step toward a target.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any

from loguru import logger

from practica.core.models import Difficulty, PracticeRecord, snake_keys

LEARNING_RATE = 0.1
RAPID_PHASE_SESSIONS = 5
MIN_FACTOR = 0.3
MAX_FACTOR = 3.0


@dataclass
class DifficultyAdjustment:
    adjustment_factor: float = 1.0
    confidence: float = 0.0
    session_count: int = 0

    def to_dict(self) -> dict[str, Any]:
        return {
            "adjustment_factor": self.adjustment_factor,
            "confidence": self.confidence,
            "session_count": self.session_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> DifficultyAdjustment:
        data = snake_keys(data)
        return cls(
            adjustment_factor=float(data.get("adjustment_factor") or 1.0),
            confidence=float(data.get("confidence") or 0.0),
            session_count=int(data.get("session_count") or 0),
        )


def estimate_actual_retention(record: PracticeRecord) -> float:
    """Repetitions per minute mapped onto [0.1, 1]; 2 reps/min counts as full recall."""
    minutes = record.duration.total_seconds() / 60.0
    if minutes <= 0:
        return 0.5
    return max(0.1, min(1.0, (record.repetitions / minutes) / 2.0))


def prediction_accuracy(
    record: PracticeRecord, days_since_practice: float, expected_tau: float
) -> float:
    """1.0 when the predicted retention matched the observed one, 0.0 when fully off."""
    if days_since_practice <= 0 or expected_tau <= 0:
        return 1.0
    expected = math.exp(-days_since_practice / expected_tau)
    actual = estimate_actual_retention(record)
    return max(0.0, min(1.0, 1.0 - abs(expected - actual)))


def _target_for(accuracy: float) -> float:
    if accuracy < 0.3:
        return 0.7
    if accuracy < 0.5:
        return 0.85
    if accuracy > 0.8:
        return 1.3
    return 1.15


@dataclass
class PersonalCalibration:
    """Per-difficulty adjustment factors for one profile."""

    adjustments: dict[str, DifficultyAdjustment] = field(default_factory=dict)
    total_sessions: int = 0

    @staticmethod
    def _key(difficulty: Difficulty | str | None) -> str:
        return Difficulty.parse(difficulty).value.lower()

    @property
    def in_rapid_phase(self) -> bool:
        return self.total_sessions <= RAPID_PHASE_SESSIONS

    @property
    def source_confidence(self) -> float:
        """Weight the adaptive layer gives this source."""
        if self.total_sessions < 3:
            return 0.0
        return min(1.0, self.total_sessions / 10.0)

    def update(self, difficulty: Difficulty | str | None, accuracy: float) -> DifficultyAdjustment:
        key = self._key(difficulty)
        adjustment = self.adjustments.setdefault(key, DifficultyAdjustment())

        adjustment.adjustment_factor += LEARNING_RATE * (_target_for(accuracy) - adjustment.adjustment_factor)
        adjustment.session_count += 1
        adjustment.confidence = min(1.0, adjustment.session_count / 20.0)
        self.total_sessions += 1

        logger.debug(
            f"Calibration updated: difficulty={key}, accuracy={accuracy:.3f}, "
            f"factor={adjustment.adjustment_factor:.3f}, sessions={self.total_sessions}"
        )
        return adjustment

    def personal_factor(self, difficulty: Difficulty | str | None) -> float:
        """
        Multiplier applied to the demographic tau for this difficulty.

        Early on (rapid phase) adjustments apply with at most 60%
        confidence; afterwards confidence grows with total sessions.
        """
        adjustment = self.adjustments.get(self._key(difficulty))
        if adjustment is None:
            return 1.0

        if self.in_rapid_phase:
            confidence = min(0.6, adjustment.session_count / 3.0)
        else:
            confidence = min(1.0, self.total_sessions / 25.0)

        factor = 1.0 + (adjustment.adjustment_factor - 1.0) * confidence
        return max(MIN_FACTOR, min(MAX_FACTOR, factor))

    def to_dict(self) -> dict[str, Any]:
        return {
            "total_sessions": self.total_sessions,
            "adjustments": {k: v.to_dict() for k, v in self.adjustments.items()},
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PersonalCalibration:
        data = snake_keys(data or {})
        raw = data.get("adjustments") or data.get("difficulty_adjustments") or {}
        return cls(
            adjustments={cls._key(k): DifficultyAdjustment.from_dict(v) for k, v in raw.items()},
            total_sessions=int(data.get("total_sessions") or 0),
        )
