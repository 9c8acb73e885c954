"""
Exceptions raised to callers of the scheduling engine.

Recoverable conditions (missing store, unmapped feedback labels, omitted
flag values) never raise; they resolve to documented defaults.
"""

from __future__ import annotations

from pathlib import Path
from uuid import UUID


class PracticaError(Exception):
    """Base class for errors surfaced to the presentation layer."""


class PersistenceError(PracticaError):
    """A store could not be written."""

    def __init__(self, message: str, path: Path | None = None):
        super().__init__(message)
        self.path = path


class UnknownEntityError(PracticaError):
    """A music piece or bar section id does not exist in the library."""

    def __init__(self, kind: str, entity_id: UUID | str):
        super().__init__(f"Unknown {kind}: {entity_id}")
        self.kind = kind
        self.entity_id = entity_id
