"""
Memory Stability Tracker - per-section stability/difficulty model.

Tracks, for every bar section, a stability S (days until recall
probability halves) and an intrinsic difficulty D in [0.01, 0.99].
Each practice session is classified as a successful or failed recall;
success grows S (more when recall was harder), failure resets it.

The adaptive retention layer reads the tracked state as one of its
tau sources once a section has at least two reviews.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from datetime import date
from typing import Any
from uuid import UUID

from loguru import logger

from practica.core.dates import days_between, normalize_optional, today
from practica.core.models import PracticeRecord, SessionOutcome, parse_uuid, snake_keys

# =============================================================================
# Constants
# =============================================================================

INITIAL_STABILITY_DAYS = 1.8
DEFAULT_DIFFICULTY = 0.3
STABILITY_GROWTH_FACTOR = 1.3
DIFFICULTY_ADJUSTMENT_RATE = 0.05

MIN_DIFFICULTY = 0.01
MAX_DIFFICULTY = 0.99


@dataclass
class SectionMemory:
    """Stability state of one bar section."""

    section_id: UUID
    stability: float = INITIAL_STABILITY_DAYS
    difficulty: float = DEFAULT_DIFFICULTY
    last_review_date: date | None = None
    review_count: int = 0

    def retrievability(self, on: date | None = None) -> float:
        """R(t) = exp(t * ln(0.5) / S), floored at 0.01."""
        if self.last_review_date is None:
            return 1.0
        elapsed = days_between(self.last_review_date, on or today())
        return calculate_retrievability(self.stability, elapsed)

    def to_dict(self) -> dict[str, Any]:
        return {
            "section_id": str(self.section_id),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "last_review_date": self.last_review_date.isoformat() if self.last_review_date else None,
            "review_count": self.review_count,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SectionMemory:
        data = snake_keys(data)
        return cls(
            section_id=parse_uuid(data.get("section_id") or data.get("bar_section_id")),
            stability=float(data.get("stability") or INITIAL_STABILITY_DAYS),
            difficulty=float(data.get("difficulty") or DEFAULT_DIFFICULTY),
            last_review_date=normalize_optional(data.get("last_review_date")),
            review_count=int(data.get("review_count") or 0),
        )


# =============================================================================
# Pure helpers
# =============================================================================


def calculate_retrievability(stability: float, days_since_review: float) -> float:
    if days_since_review <= 0:
        return 1.0
    if stability <= 0:
        return 0.1
    return max(0.01, math.exp(days_since_review * math.log(0.5) / stability))


def was_successful_recall(record: PracticeRecord) -> bool:
    """A session counts as recalled when at least two of four signals agree."""
    criteria = (
        record.performance_score >= 6.0,
        record.repetitions > 0,
        record.outcome is SessionOutcome.TARGET_REACHED,
        record.duration.total_seconds() / 60.0 >= 1.0,
    )
    return sum(criteria) >= 2


def stability_to_tau(stability: float, difficulty: float) -> float:
    """Convert a half-life style stability into a decay time constant."""
    return stability * 0.7 * (1.0 + difficulty * 0.3)


# =============================================================================
# Tracker
# =============================================================================


class MemoryStabilityTracker:
    """Stability state for every section of one profile."""

    def __init__(self, sections: dict[UUID, SectionMemory] | None = None):
        self._sections: dict[UUID, SectionMemory] = dict(sections or {})

    def __len__(self) -> int:
        return len(self._sections)

    def get(self, section_id: UUID) -> SectionMemory | None:
        return self._sections.get(section_id)

    def update(self, section_id: UUID, record: PracticeRecord) -> SectionMemory:
        """
        Fold one practice session into the section's stability state.

        Args:
            section_id: Bar section that was practiced
            record: The session as recorded in the section history

        Returns:
            The updated SectionMemory
        """
        memory = self._sections.get(section_id)
        if memory is None:
            memory = SectionMemory(section_id=section_id, last_review_date=record.practiced_on)
            self._sections[section_id] = memory

        retrievability = memory.retrievability(record.practiced_on)
        success = was_successful_recall(record)

        memory.review_count += 1
        memory.last_review_date = record.practiced_on

        if success:
            growth = (
                STABILITY_GROWTH_FACTOR
                * math.sqrt(1.0 - retrievability + 0.1)
                * (1.0 - memory.difficulty * 0.3)
            )
            memory.stability *= growth
            memory.difficulty = max(MIN_DIFFICULTY, memory.difficulty - DIFFICULTY_ADJUSTMENT_RATE)
        else:
            memory.stability = max(INITIAL_STABILITY_DAYS * 0.8, memory.stability * 0.3)
            memory.difficulty = min(MAX_DIFFICULTY, memory.difficulty + DIFFICULTY_ADJUSTMENT_RATE * 2)

        self._apply_performance_adjustments(memory, record)

        logger.debug(
            f"Memory stability updated for section {section_id}: "
            f"S={memory.stability:.1f}d, D={memory.difficulty:.3f}, "
            f"R={retrievability:.3f}, success={success}"
        )
        return memory

    @staticmethod
    def _apply_performance_adjustments(memory: SectionMemory, record: PracticeRecord) -> None:
        if record.performance_score >= 8.0:
            memory.stability *= 1.05
        elif record.performance_score <= 4.0:
            memory.stability *= 0.95

        minutes = record.duration.total_seconds() / 60.0
        if minutes < 2.0:
            memory.stability *= 0.98
        elif minutes > 15.0:
            memory.stability *= 1.02

    def forget(self, section_id: UUID) -> bool:
        return self._sections.pop(section_id, None) is not None

    def to_list(self) -> list[dict[str, Any]]:
        return [m.to_dict() for m in self._sections.values()]

    @classmethod
    def from_list(cls, items: list[dict[str, Any]]) -> MemoryStabilityTracker:
        memories = (SectionMemory.from_dict(item) for item in items or [])
        return cls({m.section_id: m for m in memories})
