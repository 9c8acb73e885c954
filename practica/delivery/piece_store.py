"""
Piece library - the music pieces and bar sections of one profile.

Sessions only reference pieces and sections by id; the library is where
those ids are validated before anything is scheduled against them.
"""

from __future__ import annotations

from pathlib import Path
from typing import Iterator, Optional
from uuid import UUID

from loguru import logger

from practica.core.exceptions import UnknownEntityError
from practica.core.models import BarSection, MusicPiece
from practica.delivery.session_store import PIECES_FILE, JsonDocumentStore


class PieceLibrary:
    """Profile-scoped collection of MusicPiece records."""

    def __init__(self, store: JsonDocumentStore):
        self.store = store
        self._pieces: dict[UUID, MusicPiece] = {}

    @classmethod
    def for_profile(cls, profile_dir: Path) -> PieceLibrary:
        return cls(JsonDocumentStore(Path(profile_dir) / PIECES_FILE))

    def __len__(self) -> int:
        return len(self._pieces)

    def __iter__(self) -> Iterator[MusicPiece]:
        return iter(self.pieces())

    # -------------------------------------------------------------------------
    # Persistence
    # -------------------------------------------------------------------------

    def load(self) -> int:
        data = self.store.read() or []
        if isinstance(data, dict):
            data = data.get("pieces") or data.get("MusicPieces") or []

        self._pieces = {}
        for item in data if isinstance(data, list) else []:
            if not isinstance(item, dict):
                continue
            try:
                piece = MusicPiece.from_dict(item)
            except (TypeError, ValueError) as e:
                logger.warning(f"Skipping unreadable piece record in {self.store.path}: {e}")
                continue
            self._pieces[piece.id] = piece
        return len(self._pieces)

    def save(self) -> Path:
        return self.store.write([p.to_dict() for p in self.pieces()])

    # -------------------------------------------------------------------------
    # Access
    # -------------------------------------------------------------------------

    def pieces(self) -> list[MusicPiece]:
        return sorted(self._pieces.values(), key=lambda p: (p.creation_date, p.title))

    def add(self, piece: MusicPiece) -> MusicPiece:
        self._pieces[piece.id] = piece
        return piece

    def remove(self, piece_id: UUID) -> MusicPiece:
        piece = self.require_piece(piece_id)
        del self._pieces[piece_id]
        return piece

    def get(self, piece_id: UUID) -> Optional[MusicPiece]:
        return self._pieces.get(piece_id)

    def require_piece(self, piece_id: UUID) -> MusicPiece:
        piece = self._pieces.get(piece_id)
        if piece is None:
            raise UnknownEntityError("music piece", piece_id)
        return piece

    def require_section(self, piece_id: UUID, section_id: UUID) -> tuple[MusicPiece, BarSection]:
        piece = self.require_piece(piece_id)
        section = piece.section(section_id)
        if section is None:
            raise UnknownEntityError("bar section", section_id)
        return piece, section
