"""
Core Module - shared value types and infrastructure.

Components:
- dates: calendar-day normalization in the reference time zone
- models: pieces, bar sections, scheduled sessions, feedback outcomes
- exceptions: errors surfaced to the presentation layer
- feature_flags: thread-safe registry of retention calculation layers
"""

from practica.core.exceptions import PersistenceError, PracticaError, UnknownEntityError
from practica.core.feature_flags import FeatureFlagRegistry, FeatureFlagSet
from practica.core.models import (
    BarSection,
    CompletionReason,
    Difficulty,
    LifecycleState,
    MusicPiece,
    PracticeQuality,
    PracticeRecord,
    PracticeSessionOutcome,
    ScheduledPracticeSession,
    SessionOutcome,
    SessionStatus,
)

__all__ = [
    "BarSection",
    "CompletionReason",
    "Difficulty",
    "FeatureFlagRegistry",
    "FeatureFlagSet",
    "LifecycleState",
    "MusicPiece",
    "PersistenceError",
    "PracticaError",
    "PracticeQuality",
    "PracticeRecord",
    "PracticeSessionOutcome",
    "ScheduledPracticeSession",
    "SessionOutcome",
    "SessionStatus",
    "UnknownEntityError",
]
