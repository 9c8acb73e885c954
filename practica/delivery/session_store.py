"""
JSON persistence for profile data.

Every store is one human-readable JSON document under the profile
folder. Writes go to a temporary file in the same folder that then
replaces the target, so a crash mid-write never leaves a truncated
document behind.

Reading never fails: a missing or unreadable document yields None and
a logged warning. Writing failures raise PersistenceError.
"""

from __future__ import annotations

import json
import os
import tempfile
from pathlib import Path
from typing import Any, Optional

from loguru import logger

from practica.core.exceptions import PersistenceError
from practica.core.models import ScheduledPracticeSession

SESSIONS_FILE = "scheduled_sessions.json"
PIECES_FILE = "music_pieces.json"
ADAPTIVE_STATE_FILE = "adaptive_state.json"


class JsonDocumentStore:
    """One JSON document on disk."""

    def __init__(self, path: Path):
        self.path = Path(path)

    def exists(self) -> bool:
        return self.path.exists()

    def read(self) -> Optional[Any]:
        """Parsed document, or None when missing or corrupt."""
        if not self.path.exists():
            logger.debug(f"No store at {self.path}; starting empty")
            return None
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, json.JSONDecodeError, UnicodeDecodeError) as e:
            logger.warning(f"Could not read {self.path}: {e}; starting empty")
            return None

    def write(self, data: Any) -> Path:
        """Atomically replace the document."""
        try:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self.path.name}.", suffix=".tmp", dir=self.path.parent
            )
            try:
                with os.fdopen(fd, "w", encoding="utf-8") as f:
                    json.dump(data, f, indent=2, ensure_ascii=False)
                os.replace(tmp_name, self.path)
            except BaseException:
                if os.path.exists(tmp_name):
                    os.unlink(tmp_name)
                raise
        except (OSError, TypeError, ValueError) as e:
            raise PersistenceError(f"Could not save {self.path}: {e}", path=self.path) from e
        return self.path


class SessionStore:
    """
    Scheduled-session records of one profile.

    Records that cannot be parsed are skipped with a warning so a single
    bad entry never hides the rest of the schedule.
    """

    def __init__(self, path: Path):
        self.document = JsonDocumentStore(path)

    @classmethod
    def for_profile(cls, profile_dir: Path) -> SessionStore:
        return cls(Path(profile_dir) / SESSIONS_FILE)

    @property
    def path(self) -> Path:
        return self.document.path

    def load(self) -> list[ScheduledPracticeSession]:
        data = self.document.read()
        if data is None:
            return []
        if isinstance(data, dict):
            data = data.get("sessions") or data.get("Sessions") or []
        if not isinstance(data, list):
            logger.warning(f"Unexpected layout in {self.path}; starting empty")
            return []

        sessions = []
        for item in data:
            if not isinstance(item, dict):
                continue
            try:
                sessions.append(ScheduledPracticeSession.from_dict(item))
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable session record in {self.path}: {e}")
        return sessions

    def save(self, sessions: list[ScheduledPracticeSession]) -> Path:
        return self.document.write([s.to_dict() for s in sessions])
