"""
Shared value types for the scheduling engine.

Pieces own their bar sections; scheduled sessions only reference a piece
and a section by id and carry denormalized display text.

Records serialize to plain dicts (snake_case keys). Readers are lenient:
unknown keys are ignored, missing keys fall back to defaults, and the
PascalCase keys written by the desktop application are accepted.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import date, timedelta
from enum import Enum
from typing import Any
from uuid import UUID, uuid4

from practica.core.dates import normalize, normalize_optional, today

EMPTY_ID = UUID(int=0)
FALLBACK_TAU_DAYS = 3.0
MIN_TARGET_REPETITIONS = 1
MAX_TARGET_REPETITIONS = 12
HISTORY_LIMIT = 20


def _label_key(value: str) -> str:
    return re.sub(r"[\s_\-]", "", value).lower()


# =============================================================================
# Closed-set classifications
# =============================================================================


class Difficulty(str, Enum):
    VERY_EASY = "VeryEasy"
    EASY = "Easy"
    MODERATE = "Moderate"
    HARD = "Hard"
    VERY_HARD = "VeryHard"

    @classmethod
    def parse(cls, value: Difficulty | str | None) -> Difficulty:
        """Map a label to a difficulty, falling back to Moderate."""
        if isinstance(value, cls):
            return value
        if not value:
            return cls.MODERATE
        return _DIFFICULTY_ALIASES.get(_label_key(str(value)), cls.MODERATE)

    @property
    def rank(self) -> int:
        return list(Difficulty).index(self)


_DIFFICULTY_ALIASES = {
    "veryeasy": Difficulty.VERY_EASY,
    "mastered": Difficulty.VERY_EASY,
    "easy": Difficulty.EASY,
    "simple": Difficulty.EASY,
    "moderate": Difficulty.MODERATE,
    "average": Difficulty.MODERATE,
    "hard": Difficulty.HARD,
    "difficult": Difficulty.HARD,
    "challenging": Difficulty.HARD,
    "veryhard": Difficulty.VERY_HARD,
}


class PracticeQuality(str, Enum):
    EXCELLENT = "Excellent"
    GOOD = "Good"
    OKAY = "Okay"
    POOR = "Poor"

    @classmethod
    def parse(cls, value: PracticeQuality | str | None) -> PracticeQuality:
        """Map a label to a quality, falling back to Good."""
        if isinstance(value, cls):
            return value
        key = _label_key(str(value or ""))
        for member in cls:
            if member.value.lower() == key:
                return member
        return cls.GOOD


class SessionOutcome(str, Enum):
    TARGET_REACHED = "TargetReached"
    TARGET_NOT_REACHED = "TargetNotReached"
    FRUSTRATION = "Frustration"

    @classmethod
    def parse(cls, value: SessionOutcome | str | None) -> SessionOutcome:
        if isinstance(value, cls):
            return value
        key = _label_key(str(value or ""))
        for member in cls:
            if member.value.lower() == key:
                return member
        return cls.TARGET_REACHED


class SessionStatus(str, Enum):
    SCHEDULED = "Scheduled"
    COMPLETED = "Completed"
    CANCELED = "Canceled"

    @classmethod
    def parse(cls, value: SessionStatus | str | None) -> SessionStatus:
        """Case-insensitive; unknown or missing statuses read as Scheduled."""
        if isinstance(value, cls):
            return value
        key = _label_key(str(value or ""))
        if key in ("canceled", "cancelled"):
            return cls.CANCELED
        if key == "completed":
            return cls.COMPLETED
        return cls.SCHEDULED


class CompletionReason(str, Enum):
    TARGET_REACHED = "TargetReached"
    TARGET_NOT_REACHED = "TargetNotReached"
    FRUSTRATION = "Frustration"
    TIME_CONSTRAINT = "TimeConstraint"
    MANUAL = "Manual"

    @classmethod
    def parse(cls, value: CompletionReason | str | None) -> CompletionReason:
        """Case-insensitive; unknown reasons read as Manual."""
        if isinstance(value, cls):
            return value
        key = _label_key(str(value or ""))
        for member in cls:
            if member.value.lower() == key:
                return member
        return cls.MANUAL

    @classmethod
    def for_outcome(cls, outcome: SessionOutcome) -> CompletionReason:
        return cls(outcome.value)


class LifecycleState(str, Enum):
    """How a bar section takes part in scheduling."""

    ACTIVE = "Active"
    MAINTENANCE = "Maintenance"  # kept alive with long intervals
    INACTIVE = "Inactive"  # never scheduled

    @classmethod
    def parse(cls, value: LifecycleState | str | int | None) -> LifecycleState:
        """Accepts labels in any case and the ordinals 0-2; anything else reads as Active."""
        if isinstance(value, cls):
            return value
        if isinstance(value, int) and not isinstance(value, bool):
            members = list(cls)
            return members[value] if 0 <= value < len(members) else cls.ACTIVE
        key = _label_key(str(value or ""))
        for member in cls:
            if member.value.lower() == key:
                return member
        return cls.ACTIVE


# =============================================================================
# Serialization helpers
# =============================================================================


def _snake(key: str) -> str:
    key = re.sub(r"(.)([A-Z][a-z]+)", r"\1_\2", key)
    return re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", key).lower()


def snake_keys(data: dict[str, Any]) -> dict[str, Any]:
    """Accept PascalCase/camelCase records alongside snake_case ones."""
    return {_snake(k): v for k, v in data.items()}


def parse_uuid(value: Any) -> UUID:
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except (TypeError, ValueError):
        return EMPTY_ID


def parse_duration(value: Any) -> timedelta:
    """Seconds as a number, or a "[d.]HH:MM:SS[.fff]" string."""
    if isinstance(value, timedelta):
        return value
    if isinstance(value, (int, float)):
        return timedelta(seconds=value)
    if not value:
        return timedelta(0)
    text = str(value).strip()
    days = 0
    if "." in text.split(":")[0]:
        day_part, text = text.split(".", 1)
        days = int(day_part)
    try:
        hours, minutes, seconds = text.split(":")
        return timedelta(days=days, hours=int(hours), minutes=int(minutes), seconds=float(seconds))
    except ValueError:
        return timedelta(0)


def _int(value: Any, default: int = 0) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def _float(value: Any, default: float = 0.0) -> float:
    try:
        return float(value)
    except (TypeError, ValueError):
        return default


def _iso(value: date | None) -> str | None:
    return value.isoformat() if value else None


# =============================================================================
# Practice history
# =============================================================================


@dataclass
class PracticeRecord:
    """One practice session on a bar section, as the retention layers see it."""

    practiced_on: date
    performance_score: float
    repetitions: int
    duration: timedelta = timedelta(0)
    outcome: SessionOutcome = SessionOutcome.TARGET_REACHED

    def to_dict(self) -> dict[str, Any]:
        return {
            "practiced_on": self.practiced_on.isoformat(),
            "performance_score": self.performance_score,
            "repetitions": self.repetitions,
            "duration": self.duration.total_seconds(),
            "outcome": self.outcome.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PracticeRecord:
        data = snake_keys(data)
        return cls(
            practiced_on=normalize_optional(data.get("practiced_on") or data.get("date")) or today(),
            performance_score=_float(data.get("performance_score")),
            repetitions=max(0, _int(data.get("repetitions"))),
            duration=parse_duration(data.get("duration")),
            outcome=SessionOutcome.parse(data.get("outcome") or data.get("session_outcome")),
        )


@dataclass
class PracticeSessionOutcome:
    """User feedback on a finished practice session plus its derived numbers."""

    experienced_difficulty: Difficulty
    practice_quality: PracticeQuality
    notes: str
    duration: timedelta
    difficulty_score: float
    estimated_repetitions: int
    session_outcome: SessionOutcome
    performance_score: float

    @classmethod
    def from_feedback(
        cls,
        difficulty: Difficulty | str | None,
        quality: PracticeQuality | str | None,
        notes: str = "",
        duration: timedelta = timedelta(minutes=5),
    ) -> PracticeSessionOutcome:
        """Derive the numeric inputs of the retention model from user feedback."""
        from practica.study.feedback import feedback_to_numbers, performance_score_for

        difficulty = Difficulty.parse(difficulty)
        quality = PracticeQuality.parse(quality)
        numbers = feedback_to_numbers(difficulty, quality, duration)
        return cls(
            experienced_difficulty=difficulty,
            practice_quality=quality,
            notes=notes or "",
            duration=duration,
            difficulty_score=numbers.difficulty_score,
            estimated_repetitions=numbers.estimated_repetitions,
            session_outcome=numbers.session_outcome,
            performance_score=performance_score_for(difficulty, quality),
        )


# =============================================================================
# Music pieces and bar sections
# =============================================================================


@dataclass
class BarSection:
    """A range of bars practiced and scheduled independently."""

    bar_range: str
    piece_id: UUID
    id: UUID = field(default_factory=uuid4)
    description: str = ""
    target_repetitions: int = 6
    completed_repetitions: int = 0
    difficulty: Difficulty = Difficulty.MODERATE
    last_practice_date: date | None = None
    history: list[PracticeRecord] = field(default_factory=list)
    lifecycle_state: LifecycleState = LifecycleState.ACTIVE

    def __post_init__(self):
        if not MIN_TARGET_REPETITIONS <= self.target_repetitions <= MAX_TARGET_REPETITIONS:
            raise ValueError(
                f"target_repetitions must be in [{MIN_TARGET_REPETITIONS}, "
                f"{MAX_TARGET_REPETITIONS}], got {self.target_repetitions}"
            )
        if self.completed_repetitions < 0:
            raise ValueError(f"completed_repetitions must be >= 0, got {self.completed_repetitions}")
        self.difficulty = Difficulty.parse(self.difficulty)
        self.lifecycle_state = LifecycleState.parse(self.lifecycle_state)

    @property
    def is_schedulable(self) -> bool:
        return self.lifecycle_state is not LifecycleState.INACTIVE

    def recent_scores(self, limit: int = 5) -> list[float]:
        """Performance scores of the most recent sessions, oldest first."""
        ordered = sorted(self.history, key=lambda r: r.practiced_on)
        return [r.performance_score for r in ordered[-limit:]]

    def record(self, record: PracticeRecord) -> None:
        self.history.append(record)
        if len(self.history) > HISTORY_LIMIT:
            self.history = sorted(self.history, key=lambda r: r.practiced_on)[-HISTORY_LIMIT:]
        self.completed_repetitions += max(0, record.repetitions)
        self.last_practice_date = record.practiced_on

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "piece_id": str(self.piece_id),
            "bar_range": self.bar_range,
            "description": self.description,
            "target_repetitions": self.target_repetitions,
            "completed_repetitions": self.completed_repetitions,
            "difficulty": self.difficulty.value,
            "last_practice_date": _iso(self.last_practice_date),
            "history": [r.to_dict() for r in self.history],
            "lifecycle_state": self.lifecycle_state.value,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any], piece_id: UUID | None = None) -> BarSection:
        data = snake_keys(data)
        target = _int(data.get("target_repetitions"), 6)
        return cls(
            id=parse_uuid(data.get("id")),
            piece_id=piece_id or parse_uuid(data.get("piece_id") or data.get("parent_music_piece_id")),
            bar_range=str(data.get("bar_range") or ""),
            description=str(data.get("description") or ""),
            target_repetitions=min(MAX_TARGET_REPETITIONS, max(MIN_TARGET_REPETITIONS, target)),
            completed_repetitions=max(0, _int(data.get("completed_repetitions"))),
            difficulty=Difficulty.parse(data.get("difficulty")),
            last_practice_date=normalize_optional(data.get("last_practice_date")),
            history=[PracticeRecord.from_dict(r) for r in data.get("history") or []],
            lifecycle_state=LifecycleState.parse(data.get("lifecycle_state")),
        )


@dataclass
class MusicPiece:
    """A piece of music owning an ordered list of bar sections."""

    title: str
    id: UUID = field(default_factory=uuid4)
    composer: str = ""
    creation_date: date = field(default_factory=today)
    is_paused: bool = False
    pause_until_date: date | None = None
    sections: list[BarSection] = field(default_factory=list)

    def __post_init__(self):
        if self.is_paused and self.pause_until_date is None:
            raise ValueError("A paused piece requires pause_until_date")

    def is_currently_paused(self, current: date | None = None) -> bool:
        """Paused through pause_until_date, inclusive."""
        if not self.is_paused or self.pause_until_date is None:
            return False
        return self.pause_until_date >= (current or today())

    def pause(self, until: date) -> None:
        self.pause_until_date = normalize(until)
        self.is_paused = True

    def resume(self) -> None:
        self.is_paused = False
        self.pause_until_date = None

    def section(self, section_id: UUID) -> BarSection | None:
        return next((s for s in self.sections if s.id == section_id), None)

    def add_section(self, bar_range: str, **kwargs: Any) -> BarSection:
        section = BarSection(bar_range=bar_range, piece_id=self.id, **kwargs)
        self.sections.append(section)
        return section

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "title": self.title,
            "composer": self.composer,
            "creation_date": self.creation_date.isoformat(),
            "is_paused": self.is_paused,
            "pause_until_date": _iso(self.pause_until_date),
            "sections": [s.to_dict() for s in self.sections],
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> MusicPiece:
        data = snake_keys(data)
        piece_id = parse_uuid(data.get("id"))
        pause_until = normalize_optional(data.get("pause_until_date"))
        sections = data.get("sections") or data.get("bar_sections") or []
        return cls(
            id=piece_id,
            title=str(data.get("title") or ""),
            composer=str(data.get("composer") or ""),
            creation_date=normalize_optional(data.get("creation_date")) or today(),
            is_paused=bool(data.get("is_paused")) and pause_until is not None,
            pause_until_date=pause_until,
            sections=[BarSection.from_dict(s, piece_id=piece_id) for s in sections],
        )


# =============================================================================
# Scheduled practice sessions
# =============================================================================


@dataclass
class ScheduledPracticeSession:
    """A planned visit to a bar section on a given calendar day."""

    piece_id: UUID
    section_id: UUID
    scheduled_date: date
    tau_value: float
    id: UUID = field(default_factory=uuid4)
    piece_title: str = ""
    bar_range: str = ""
    estimated_duration: timedelta = timedelta(minutes=5)
    difficulty: str = Difficulty.MODERATE.value
    status: SessionStatus = SessionStatus.SCHEDULED
    completion_date: date | None = None
    completion_reason: str | None = None

    def __setattr__(self, name: str, value: Any) -> None:
        # Dates are day-normalized on every write
        if name == "scheduled_date":
            value = normalize(value)
        elif name == "completion_date":
            value = normalize_optional(value)
        elif name == "status":
            value = SessionStatus.parse(value)
        object.__setattr__(self, name, value)

    def __post_init__(self):
        if not self.tau_value > 0:
            raise ValueError(f"tau_value must be positive, got {self.tau_value}")

    @property
    def is_completed(self) -> bool:
        return self.status is SessionStatus.COMPLETED

    @property
    def is_terminal(self) -> bool:
        return self.status is not SessionStatus.SCHEDULED

    def is_today(self, current: date | None = None) -> bool:
        return self.scheduled_date == (current or today())

    def is_due_today(self, current: date | None = None) -> bool:
        return self.status is SessionStatus.SCHEDULED and self.is_today(current)

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": str(self.id),
            "piece_id": str(self.piece_id),
            "piece_title": self.piece_title,
            "section_id": str(self.section_id),
            "bar_range": self.bar_range,
            "scheduled_date": self.scheduled_date.isoformat(),
            "estimated_duration": self.estimated_duration.total_seconds(),
            "difficulty": self.difficulty,
            "tau_value": self.tau_value,
            "status": self.status.value,
            "completion_date": _iso(self.completion_date),
            "completion_reason": self.completion_reason,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> ScheduledPracticeSession:
        data = snake_keys(data)
        tau = _float(data.get("tau_value"))
        return cls(
            id=parse_uuid(data.get("id")),
            piece_id=parse_uuid(data.get("piece_id") or data.get("music_piece_id")),
            piece_title=str(data.get("piece_title") or data.get("music_piece_title") or ""),
            section_id=parse_uuid(data.get("section_id") or data.get("bar_section_id")),
            bar_range=str(data.get("bar_range") or data.get("bar_section_range") or ""),
            scheduled_date=normalize_optional(data.get("scheduled_date")) or today(),
            estimated_duration=parse_duration(data.get("estimated_duration")),
            difficulty=str(data.get("difficulty") or Difficulty.MODERATE.value),
            tau_value=tau if tau > 0 else FALLBACK_TAU_DAYS,
            status=SessionStatus.parse(data.get("status")),
            completion_date=normalize_optional(data.get("completion_date")),
            completion_reason=data.get("completion_reason") or None,
        )
