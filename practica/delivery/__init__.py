"""
Practica delivery layer: persistence, session lifecycle and the CLI.

Components:
- JsonDocumentStore / SessionStore: atomic JSON stores per profile
- PieceLibrary: music pieces and bar sections of a profile
- ScheduledSessionManager: lifecycle of scheduled practice sessions
- PracticeScheduler: application service wiring feedback to scheduling
"""

from .piece_store import PieceLibrary
from .scheduler import PracticeResult, PracticeScheduler
from .session_manager import ScheduledSessionManager
from .session_store import JsonDocumentStore, SessionStore

__all__ = [
    # Persistence
    "JsonDocumentStore",
    "SessionStore",
    "PieceLibrary",
    # Lifecycle
    "ScheduledSessionManager",
    # Service
    "PracticeScheduler",
    "PracticeResult",
]
