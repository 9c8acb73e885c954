"""
Practice Scheduler - application service for one profile.

Wires the pieces together:

    feedback -> PracticeSessionOutcome -> RetentionEngine.plan_next
             -> ScheduledSessionManager (complete today's, supersede pending)

    pause    -> MusicPiece.pause -> ScheduledSessionManager.cancel_for_piece

    lifecycle -> Inactive cancels pending sessions; Maintenance keeps
                 the next session at least a week out

Everything is constructed once by from_settings() and passed explicitly;
the only process-wide setting is the calendar reference zone, which
from_settings() applies. Mutating calls change memory only
and return what changed; save() writes every store of the profile.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Callable, Optional
from uuid import UUID

from loguru import logger

from config import Settings, get_settings
from practica.core import dates
from practica.core.feature_flags import FeatureFlagRegistry
from practica.core.models import (
    MAX_TARGET_REPETITIONS,
    MIN_TARGET_REPETITIONS,
    BarSection,
    CompletionReason,
    Difficulty,
    LifecycleState,
    MusicPiece,
    PracticeQuality,
    PracticeRecord,
    PracticeSessionOutcome,
    ScheduledPracticeSession,
)
from practica.delivery.piece_store import PieceLibrary
from practica.delivery.session_manager import ScheduledSessionManager
from practica.delivery.session_store import ADAPTIVE_STATE_FILE, JsonDocumentStore, SessionStore
from practica.study.calibration import PersonalCalibration
from practica.study.memory_stability import MemoryStabilityTracker
from practica.study.retention_engine import MAINTENANCE_MIN_INTERVAL_DAYS, RetentionEngine, SchedulePlan


@dataclass
class PracticeResult:
    """What one recorded practice session changed."""

    outcome: PracticeSessionOutcome
    record: PracticeRecord
    completed: Optional[ScheduledPracticeSession] = None
    next_session: Optional[ScheduledPracticeSession] = None
    plan: Optional[SchedulePlan] = None
    canceled: list[ScheduledPracticeSession] = field(default_factory=list)


class PracticeScheduler:
    """Scheduling operations of one profile."""

    def __init__(
        self,
        library: PieceLibrary,
        manager: ScheduledSessionManager,
        engine: RetentionEngine,
        adaptive_store: Optional[JsonDocumentStore] = None,
        clock: Callable[[], date] = dates.today,
        session_minutes: int = 5,
    ):
        self.library = library
        self.manager = manager
        self.engine = engine
        self.adaptive_store = adaptive_store
        self._clock = clock
        self.session_duration = timedelta(minutes=session_minutes)

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        profile: Optional[str] = None,
        clock: Optional[Callable[[], date]] = None,
        load: bool = True,
    ) -> PracticeScheduler:
        """Build the object graph of a profile and load its stores."""
        settings = settings or get_settings()
        profile_dir = settings.profile_dir(profile)
        dates.set_reference_zone(settings.timezone)
        clock = clock or dates.today

        registry = FeatureFlagRegistry.from_settings(settings)
        engine = RetentionEngine(registry, experience=settings.musical_experience)
        scheduler = cls(
            library=PieceLibrary.for_profile(profile_dir),
            manager=ScheduledSessionManager(
                SessionStore.for_profile(profile_dir),
                max_sessions=settings.max_scheduled_sessions,
                clock=clock,
            ),
            engine=engine,
            adaptive_store=JsonDocumentStore(profile_dir / ADAPTIVE_STATE_FILE),
            clock=clock,
            session_minutes=settings.default_session_minutes,
        )
        if load:
            scheduler.load()
        logger.debug(f"Profile '{profile or settings.profile}' ready at {profile_dir}")
        return scheduler

    @property
    def registry(self) -> FeatureFlagRegistry:
        return self.engine.registry

    def today(self) -> date:
        return self._clock()

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> None:
        self.library.load()
        self.manager.load()
        if self.adaptive_store is not None:
            state = self.adaptive_store.read() or {}
            if isinstance(state, dict):
                self.engine.stability = MemoryStabilityTracker.from_list(state.get("memory_stability") or [])
                self.engine.calibration = PersonalCalibration.from_dict(state.get("calibration") or {})

    def save(self) -> None:
        """
        Write pieces, sessions and adaptive state.

        Raises:
            PersistenceError: any store could not be written
        """
        self.library.save()
        self.manager.save()
        if self.adaptive_store is not None:
            self.adaptive_store.write({
                "memory_stability": self.engine.stability.to_list(),
                "calibration": self.engine.calibration.to_dict(),
            })

    # =========================================================================
    # Library
    # =========================================================================

    def add_piece(self, title: str, composer: str = "") -> MusicPiece:
        piece = MusicPiece(title=title, composer=composer, creation_date=self.today())
        return self.library.add(piece)

    def add_section(
        self,
        piece_id: UUID,
        bar_range: str,
        description: str = "",
        target_repetitions: int = 6,
        difficulty: Difficulty | str | None = None,
    ) -> tuple[BarSection, Optional[ScheduledPracticeSession]]:
        """
        Add a bar section and schedule its first session.

        Raises:
            UnknownEntityError: piece_id is not in the library
            ValueError: target_repetitions outside [1, 12]
        """
        piece = self.library.require_piece(piece_id)
        section = piece.add_section(
            bar_range,
            description=description,
            target_repetitions=target_repetitions,
            difficulty=Difficulty.parse(difficulty),
        )
        return section, self.onboard_section(piece, section)

    def onboard_section(self, piece: MusicPiece, section: BarSection) -> Optional[ScheduledPracticeSession]:
        """Schedule a section that has no pending session, unless its piece is paused or it is Inactive."""
        if piece.is_currently_paused(self.today()) or not section.is_schedulable:
            return None
        if self.manager.next_for_section(section.id) is not None:
            return None

        plan = self.engine.plan_initial(section, self.today())
        return self.manager.create_session(
            piece,
            section,
            plan.due_date,
            plan.tau,
            difficulty=section.difficulty,
            estimated_duration=self.session_duration,
        )

    def edit_section(
        self,
        piece_id: UUID,
        section_id: UUID,
        difficulty: Difficulty | str | None = None,
        target_repetitions: Optional[int] = None,
        description: Optional[str] = None,
    ) -> list[ScheduledPracticeSession]:
        """
        Change a section's settings; upcoming sessions take the new difficulty.

        Raises:
            UnknownEntityError: piece or section id does not exist
            ValueError: target_repetitions outside [1, 12]

        Returns:
            The pending sessions whose difficulty changed
        """
        _, section = self.library.require_section(piece_id, section_id)
        if target_repetitions is not None:
            if not MIN_TARGET_REPETITIONS <= target_repetitions <= MAX_TARGET_REPETITIONS:
                raise ValueError(
                    f"target_repetitions must be in [{MIN_TARGET_REPETITIONS}, "
                    f"{MAX_TARGET_REPETITIONS}], got {target_repetitions}"
                )
            section.target_repetitions = target_repetitions
        if description is not None:
            section.description = description
        if difficulty is None:
            return []

        section.difficulty = Difficulty.parse(difficulty)
        return self.manager.update_difficulty_for_upcoming(section.id, section.difficulty)

    def set_lifecycle_state(
        self, piece_id: UUID, section_id: UUID, state: LifecycleState | str
    ) -> list[ScheduledPracticeSession]:
        """
        Move a section to another lifecycle state and adjust its sessions.

        Inactive cancels every pending session. Maintenance keeps the next
        session at least MAINTENANCE_MIN_INTERVAL_DAYS after the last
        practice and never earlier than tomorrow. Active schedules a
        section left without a pending session for today.

        Returns:
            The sessions that were canceled, moved or created
        """
        piece, section = self.library.require_section(piece_id, section_id)
        state = LifecycleState.parse(state)
        previous, section.lifecycle_state = section.lifecycle_state, state
        logger.info(f"{section.bar_range} of '{piece.title}': {previous.value} -> {state.value}")

        if state is LifecycleState.INACTIVE:
            return self.manager.cancel_for_section(section.id)
        if state is LifecycleState.ACTIVE:
            created = self.onboard_section(piece, section)
            return [created] if created else []

        earliest = self._maintenance_floor(section)
        pending = self.manager.next_for_section(section.id)
        if pending is not None:
            if pending.scheduled_date >= earliest:
                return []
            pending.scheduled_date = earliest
            return [pending]
        if piece.is_currently_paused(self.today()):
            return []
        return [
            self.manager.create_session(
                piece,
                section,
                earliest,
                self.engine.initial_tau(section),
                estimated_duration=self.session_duration,
            )
        ]

    def _maintenance_floor(self, section: BarSection) -> date:
        anchor = section.last_practice_date or self.today()
        return max(
            anchor + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS),
            self.today() + timedelta(days=1),
        )

    def remove_section(self, piece_id: UUID, section_id: UUID) -> list[ScheduledPracticeSession]:
        """
        Delete a section with its sessions and adaptive state.

        Returns:
            The session records that were dropped, history included
        """
        piece, section = self.library.require_section(piece_id, section_id)
        piece.sections.remove(section)
        removed = self.manager.remove_for_section(section.id)
        self.engine.stability.forget(section.id)
        logger.info(f"Removed {section.bar_range} from '{piece.title}' ({len(removed)} session record(s))")
        return removed

    def remove_piece(self, piece_id: UUID) -> list[ScheduledPracticeSession]:
        """Delete a piece, its sections, their sessions and adaptive state."""
        piece = self.library.remove(piece_id)
        removed = []
        for section in piece.sections:
            removed.extend(self.manager.remove_for_section(section.id))
            self.engine.stability.forget(section.id)
        logger.info(f"Removed '{piece.title}' ({len(removed)} session record(s))")
        return removed

    # =========================================================================
    # Practice feedback
    # =========================================================================

    def record_practice(
        self,
        piece_id: UUID,
        section_id: UUID,
        difficulty: Difficulty | str | None,
        quality: PracticeQuality | str | None,
        notes: str = "",
        duration: timedelta = timedelta(minutes=5),
    ) -> PracticeResult:
        """
        Apply feedback on a finished practice session.

        Today's session of the section is completed, tau is recomputed
        and a new session replaces whatever was still pending. A paused
        piece or an Inactive section keeps its history but gets no new
        session.

        Raises:
            UnknownEntityError: piece or section id does not exist
        """
        piece, section = self.library.require_section(piece_id, section_id)
        today = self.today()

        outcome = PracticeSessionOutcome.from_feedback(difficulty, quality, notes, duration)
        record = PracticeRecord(
            practiced_on=today,
            performance_score=outcome.performance_score,
            repetitions=outcome.estimated_repetitions,
            duration=duration,
            outcome=outcome.session_outcome,
        )

        completed = self.manager.complete_today_for(
            section.id, CompletionReason.for_outcome(outcome.session_outcome)
        )
        pending = completed or self.manager.next_for_section(section.id)
        previous_tau = pending.tau_value if pending else None

        section.difficulty = outcome.experienced_difficulty
        self.engine.observe(section, record, previous_tau)
        section.record(record)

        result = PracticeResult(outcome=outcome, record=record, completed=completed)
        if piece.is_currently_paused(today):
            logger.info(f"'{piece.title}' is paused; not scheduling {section.bar_range}")
            return result
        if not section.is_schedulable:
            logger.info(f"{section.bar_range} of '{piece.title}' is inactive; not scheduling it")
            return result

        plan = self.engine.plan_next(section, outcome, previous_tau, today)
        new_session = ScheduledPracticeSession(
            piece_id=piece.id,
            piece_title=piece.title,
            section_id=section.id,
            bar_range=section.bar_range,
            scheduled_date=plan.due_date,
            tau_value=plan.tau,
            difficulty=outcome.experienced_difficulty.value,
            estimated_duration=self.session_duration,
        )
        result.canceled = self.manager.supersede(new_session)
        result.next_session = new_session
        result.plan = plan

        logger.info(
            f"Practiced '{piece.title} - {section.bar_range}': "
            f"{outcome.experienced_difficulty.value}/{outcome.practice_quality.value}, "
            f"next on {plan.due_date.isoformat()} (tau={plan.tau:.2f})"
        )
        return result

    # =========================================================================
    # Pause / resume
    # =========================================================================

    def pause_piece(self, piece_id: UUID, until: date) -> list[ScheduledPracticeSession]:
        """
        Pause a piece and cancel every pending session of it.

        The caller validates that `until` lies in the future.

        Returns:
            The sessions that were canceled
        """
        piece = self.library.require_piece(piece_id)
        piece.pause(until)
        canceled = self.manager.cancel_for_piece(piece.id)
        logger.info(f"Paused '{piece.title}' until {piece.pause_until_date.isoformat()}")
        return canceled

    def resume_piece(self, piece_id: UUID) -> list[ScheduledPracticeSession]:
        """Clear the pause and schedule sections left without a pending session."""
        piece = self.library.require_piece(piece_id)
        piece.resume()
        created = [s for s in (self.onboard_section(piece, sec) for sec in piece.sections) if s]
        logger.info(f"Resumed '{piece.title}'; scheduled {len(created)} section(s)")
        return created

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reschedule_overdue(self) -> list[ScheduledPracticeSession]:
        return self.manager.reschedule_overdue(self.library.pieces())

    def schedule_missing(self) -> list[ScheduledPracticeSession]:
        """
        Clear pauses that have run out and schedule every section left without a pending session.

        Pausing cancels a piece's sessions, so a piece whose pause ended
        without an explicit resume gets its sections back here.

        Returns:
            The sessions that were created
        """
        today = self.today()
        created = []
        for piece in self.library:
            if piece.is_paused and not piece.is_currently_paused(today):
                logger.info(f"Pause of '{piece.title}' ended on {piece.pause_until_date.isoformat()}")
                piece.resume()
            created.extend(s for s in (self.onboard_section(piece, sec) for sec in piece.sections) if s)
        if created:
            logger.info(f"Scheduled {len(created)} section(s) without a pending session")
        return created

    def cleanup(self) -> list[ScheduledPracticeSession]:
        """Drop orphaned sessions and forget adaptive state of deleted sections."""
        removed = self.manager.cleanup_orphaned(self.library.pieces())
        live = {s.id for p in self.library.pieces() for s in p.sections}
        for section_id in {s.section_id for s in removed} - live:
            self.engine.stability.forget(section_id)
        return removed

    def due_today(self) -> list[ScheduledPracticeSession]:
        return self.manager.due_today()
