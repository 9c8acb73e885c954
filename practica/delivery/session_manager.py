"""
Scheduled Session Manager - lifecycle of scheduled practice sessions.

Owns the authoritative list of ScheduledPracticeSession records of one
profile. Sessions move through a small state machine:

    Scheduled -> Completed   practice finished (records date and reason)
    Scheduled -> Canceled    superseded by a recomputed session, or the
                             piece was paused

Completed and Canceled are terminal. Repeating a transition on a
terminal session is a no-op.

Mutations only touch memory; callers batch them and call save() once.
"""

from __future__ import annotations

from datetime import date, timedelta
from pathlib import Path
from typing import Callable, Iterable, Optional
from uuid import UUID

from loguru import logger

from practica.core import dates
from practica.core.models import (
    BarSection,
    CompletionReason,
    Difficulty,
    LifecycleState,
    MusicPiece,
    ScheduledPracticeSession,
    SessionStatus,
)
from practica.delivery.session_store import SessionStore
from practica.study.retention_engine import (
    MAINTENANCE_MIN_INTERVAL_DAYS,
    due_date_from_tau,
    target_retention_for,
)

DEFAULT_MAX_SESSIONS = 1000


class ScheduledSessionManager:
    """
    In-memory session set of one profile backed by a SessionStore.

    Usage:
        manager = ScheduledSessionManager(SessionStore.for_profile(folder))
        manager.load()
        manager.cancel_for_piece(piece.id)
        manager.save()
    """

    def __init__(
        self,
        store: SessionStore,
        max_sessions: int = DEFAULT_MAX_SESSIONS,
        clock: Callable[[], date] = dates.today,
    ):
        self.store = store
        self.max_sessions = max_sessions
        self._clock = clock
        self._sessions: list[ScheduledPracticeSession] = []

    def today(self) -> date:
        return self._clock()

    def __len__(self) -> int:
        return len(self._sessions)

    # =========================================================================
    # Persistence
    # =========================================================================

    def load(self) -> int:
        """Replace the in-memory set with the stored one. Never raises."""
        self._sessions = self.store.load()
        logger.debug(f"Loaded {len(self._sessions)} scheduled session(s) from {self.store.path}")
        return len(self._sessions)

    def save(self) -> Path:
        """
        Write the whole set in one replace.

        Raises:
            PersistenceError: the store could not be written
        """
        self.enforce_limit()
        path = self.store.save(self._sessions)
        logger.debug(f"Saved {len(self._sessions)} scheduled session(s) to {path}")
        return path

    def enforce_limit(self) -> int:
        """Keep the most recent records (by completion, else scheduled date)."""
        excess = len(self._sessions) - self.max_sessions
        if excess <= 0:
            return 0

        def effective(s: ScheduledPracticeSession) -> date:
            return s.completion_date or s.scheduled_date

        kept = sorted(self._sessions, key=effective, reverse=True)[: self.max_sessions]
        self._sessions = kept
        logger.info(
            f"Pruned {excess} old scheduled session record(s); oldest kept: "
            f"{min(effective(s) for s in kept).isoformat()}"
        )
        return excess

    # =========================================================================
    # Creation
    # =========================================================================

    def add(self, session: ScheduledPracticeSession) -> ScheduledPracticeSession:
        """Add a session; an existing record with the same id is replaced."""
        self._sessions = [s for s in self._sessions if s.id != session.id]
        self._sessions.append(session)
        return session

    def create_session(
        self,
        piece: MusicPiece,
        section: BarSection,
        scheduled_date: date,
        tau: float,
        difficulty: Difficulty | str | None = None,
        estimated_duration: timedelta = timedelta(minutes=5),
    ) -> ScheduledPracticeSession:
        session = ScheduledPracticeSession(
            piece_id=piece.id,
            piece_title=piece.title,
            section_id=section.id,
            bar_range=section.bar_range,
            scheduled_date=scheduled_date,
            tau_value=tau,
            difficulty=Difficulty.parse(difficulty or section.difficulty).value,
            estimated_duration=estimated_duration,
        )
        return self.add(session)

    def supersede(self, session: ScheduledPracticeSession) -> list[ScheduledPracticeSession]:
        """
        Add a freshly computed session, retiring the section's pending ones.

        Returns:
            The sessions that were canceled
        """
        canceled = self.cancel_for_section(session.section_id)
        self.add(session)
        return canceled

    # =========================================================================
    # Transitions
    # =========================================================================

    def get(self, session_id: UUID) -> Optional[ScheduledPracticeSession]:
        return next((s for s in self._sessions if s.id == session_id), None)

    def _complete(
        self, session: ScheduledPracticeSession, reason: CompletionReason | str, on: Optional[date]
    ) -> bool:
        if session.is_terminal:
            return False
        session.status = SessionStatus.COMPLETED
        session.completion_date = on or self.today()
        session.completion_reason = CompletionReason.parse(reason).value
        return True

    def complete(
        self,
        session_id: UUID,
        reason: CompletionReason | str = CompletionReason.TARGET_REACHED,
        on: Optional[date] = None,
    ) -> bool:
        """
        Mark a session completed.

        Returns:
            False when the id is unknown or the session was already terminal
        """
        session = self.get(session_id)
        if session is None:
            logger.warning(f"complete: unknown session {session_id}")
            return False
        return self._complete(session, reason, on)

    def complete_today_for(
        self, section_id: UUID, reason: CompletionReason | str = CompletionReason.TARGET_REACHED
    ) -> Optional[ScheduledPracticeSession]:
        """Complete the section's session scheduled for today, if there is one."""
        today = self.today()
        session = next(
            (s for s in self._sessions if s.section_id == section_id and s.is_due_today(today)),
            None,
        )
        if session is None:
            logger.debug(f"No session due today for section {section_id}")
            return None
        self._complete(session, reason, today)
        return session

    def cancel(self, session_id: UUID) -> bool:
        """Cancel one session. Completed and Canceled sessions are left alone."""
        session = self.get(session_id)
        if session is None or session.is_terminal:
            return False
        session.status = SessionStatus.CANCELED
        return True

    def _cancel_where(self, predicate: Callable[[ScheduledPracticeSession], bool]) -> list[ScheduledPracticeSession]:
        canceled = []
        for session in self._sessions:
            if predicate(session) and not session.is_terminal:
                session.status = SessionStatus.CANCELED
                canceled.append(session)
        return canceled

    def cancel_for_piece(self, piece_id: UUID) -> list[ScheduledPracticeSession]:
        """Bulk cancel every pending session of a piece (used when it is paused)."""
        canceled = self._cancel_where(lambda s: s.piece_id == piece_id)
        if canceled:
            logger.info(f"Canceled {len(canceled)} session(s) for piece {piece_id}")
        return canceled

    def cancel_for_section(self, section_id: UUID) -> list[ScheduledPracticeSession]:
        return self._cancel_where(lambda s: s.section_id == section_id)

    def update_difficulty_for_upcoming(
        self, section_id: UUID, difficulty: Difficulty | str
    ) -> list[ScheduledPracticeSession]:
        label = Difficulty.parse(difficulty).value
        updated = []
        for session in self._sessions:
            if session.section_id == section_id and not session.is_terminal and session.difficulty != label:
                session.difficulty = label
                updated.append(session)
        return updated

    def remove_for_section(self, section_id: UUID) -> list[ScheduledPracticeSession]:
        """Drop every record of a deleted section, history included."""
        removed = [s for s in self._sessions if s.section_id == section_id]
        self._sessions = [s for s in self._sessions if s.section_id != section_id]
        return removed

    # =========================================================================
    # Queries
    # =========================================================================

    def all_sessions(self) -> list[ScheduledPracticeSession]:
        return sorted(self._sessions, key=lambda s: (s.scheduled_date, s.piece_title, s.bar_range))

    def is_today(self, value: date) -> bool:
        return dates.is_today(value, self.today())

    def is_due_today(self, session: ScheduledPracticeSession) -> bool:
        return session.is_due_today(self.today())

    def due_today(self) -> list[ScheduledPracticeSession]:
        """Scheduled sessions dated exactly today. Past-due ones are not included."""
        today = self.today()
        return [s for s in self.all_sessions() if s.is_due_today(today)]

    def overdue_sessions(self) -> list[ScheduledPracticeSession]:
        today = self.today()
        return [
            s for s in self.all_sessions()
            if s.status is SessionStatus.SCHEDULED and s.scheduled_date < today
        ]

    def for_piece(self, piece_id: UUID) -> list[ScheduledPracticeSession]:
        return [s for s in self.all_sessions() if s.piece_id == piece_id]

    def for_section(self, section_id: UUID) -> list[ScheduledPracticeSession]:
        return [s for s in self.all_sessions() if s.section_id == section_id]

    def next_for_section(self, section_id: UUID) -> Optional[ScheduledPracticeSession]:
        pending = [s for s in self.for_section(section_id) if s.status is SessionStatus.SCHEDULED]
        return pending[0] if pending else None

    # =========================================================================
    # Maintenance
    # =========================================================================

    def reschedule_overdue(self, pieces: Iterable[MusicPiece]) -> list[ScheduledPracticeSession]:
        """
        Move past-due Scheduled sessions to a new date.

        The session keeps its tau; the interval to the section's target
        retention is counted from its last practice, and sections in
        maintenance wait at least MAINTENANCE_MIN_INTERVAL_DAYS. Sessions
        of paused or missing pieces and of missing or Inactive sections
        are skipped. Nothing is ever moved to today or earlier.

        Returns:
            The sessions whose date changed
        """
        today = self.today()
        tomorrow = today + timedelta(days=1)
        by_id = {p.id: p for p in pieces}
        moved = []

        for session in self.overdue_sessions():
            piece = by_id.get(session.piece_id)
            if piece is None or piece.is_currently_paused(today):
                continue
            section = piece.section(session.section_id)
            if section is None or not section.is_schedulable:
                continue

            anchor = section.last_practice_date or today
            proposed = due_date_from_tau(session.tau_value, target_retention_for(section.difficulty), anchor)
            if section.lifecycle_state is LifecycleState.MAINTENANCE:
                proposed = max(proposed, anchor + timedelta(days=MAINTENANCE_MIN_INTERVAL_DAYS))
            if proposed <= today:
                proposed = tomorrow

            original = session.scheduled_date
            session.scheduled_date = proposed
            moved.append(session)
            logger.info(
                f"Rescheduled '{piece.title} - {section.bar_range}' "
                f"({dates.days_between(original, today)} overdue day(s)) "
                f"from {original.isoformat()} to {proposed.isoformat()} (tau={session.tau_value:.2f})"
            )

        if not moved:
            logger.debug("No overdue sessions to reschedule")
        return moved

    def cleanup_orphaned(self, pieces: Iterable[MusicPiece]) -> list[ScheduledPracticeSession]:
        """Drop pending sessions whose piece or section no longer exists."""
        pieces = list(pieces)
        piece_ids = {p.id for p in pieces}
        section_ids = {s.id for p in pieces for s in p.sections}

        orphaned = [
            s for s in self._sessions
            if not s.is_completed and (s.piece_id not in piece_ids or s.section_id not in section_ids)
        ]
        if orphaned:
            orphan_ids = {s.id for s in orphaned}
            self._sessions = [s for s in self._sessions if s.id not in orphan_ids]
            logger.info(f"Removed {len(orphaned)} orphaned session(s)")
        return orphaned
