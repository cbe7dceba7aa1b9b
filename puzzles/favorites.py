"""
Favorites Ledger

Keeps the set of favorited puzzle ids for a user. The ledger is the only
shared mutable state of the engine: writes are serialized by a lock and
readers get immutable snapshots, so a scan that started before a toggle
keeps judging against the set it started with.

Persistence is delegated to a FavoritesStore. The SQL store keeps a copy of
each favorited puzzle next to its id, so favorites can be served without
scanning the corpus.
"""

from __future__ import annotations

import json
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Dict, List, Optional, Protocol, Tuple

from sqlalchemy import Boolean, Column, DateTime, String, Text, create_engine, select
from sqlalchemy.orm import DeclarativeBase, sessionmaker

from puzzles.puzzle_types import Puzzle

if TYPE_CHECKING:
    from puzzles.config import Settings

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FavoriteEntry:
    puzzle_id: str
    favorited: bool
    timestamp: datetime
    # Snapshot of the puzzle row when it was favorited, if known
    puzzle: Optional[Puzzle] = None

    def to_dict(self) -> dict:
        return {
            "puzzle_id": self.puzzle_id,
            "favorited": self.favorited,
            "timestamp": self.timestamp.isoformat(),
            "puzzle": self.puzzle.to_dict() if self.puzzle else None,
        }


class FavoritesStore(Protocol):
    """Backing persistence of the ledger."""

    def load_all(self) -> List[FavoriteEntry]:
        ...

    def save(self, entry: FavoriteEntry) -> None:
        ...


# ═══════════════════════════════════════════════════════════════
# SQL store
# ═══════════════════════════════════════════════════════════════


class Base(DeclarativeBase):
    pass


class FavoriteRow(Base):
    """One puzzle id and whether it is currently favorited."""

    __tablename__ = "favorites"

    puzzle_id = Column(String, primary_key=True)
    favorited = Column(Boolean, nullable=False, default=True)
    updated_at = Column(DateTime(timezone=True), nullable=False)
    puzzle_json = Column(Text, nullable=True)  # Puzzle.to_json()


class SqlFavoritesStore:
    """FavoritesStore on any SQLAlchemy URL (a SQLite file by default)."""

    def __init__(self, url: str) -> None:
        connect_args = {}
        if url.startswith("sqlite"):
            # The ledger may be written from the scan worker thread
            connect_args["check_same_thread"] = False
        self.url = url
        self.engine = create_engine(url, connect_args=connect_args)
        Base.metadata.create_all(self.engine)
        self._session = sessionmaker(self.engine, expire_on_commit=False)

    def load_all(self) -> List[FavoriteEntry]:
        with self._session() as session:
            rows = session.scalars(select(FavoriteRow).order_by(FavoriteRow.updated_at)).all()
            return [self._to_entry(row) for row in rows]

    def save(self, entry: FavoriteEntry) -> None:
        with self._session.begin() as session:
            session.merge(
                FavoriteRow(
                    puzzle_id=entry.puzzle_id,
                    favorited=entry.favorited,
                    updated_at=entry.timestamp,
                    puzzle_json=entry.puzzle.to_json() if entry.puzzle else None,
                )
            )

    def close(self) -> None:
        self.engine.dispose()

    @staticmethod
    def _to_entry(row: FavoriteRow) -> FavoriteEntry:
        puzzle = None
        if row.puzzle_json:
            try:
                puzzle = Puzzle.from_dict(json.loads(row.puzzle_json))
            except (ValueError, KeyError, TypeError):
                logger.warning("dropping unreadable puzzle snapshot", extra={"puzzle_id": row.puzzle_id})
        timestamp = row.updated_at
        if timestamp.tzinfo is None:
            # SQLite hands back naive datetimes
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return FavoriteEntry(
            puzzle_id=row.puzzle_id,
            favorited=bool(row.favorited),
            timestamp=timestamp,
            puzzle=puzzle,
        )


# ═══════════════════════════════════════════════════════════════
# Ledger
# ═══════════════════════════════════════════════════════════════


class FavoritesLedger:
    """
    Favorited puzzle ids, written through to an optional store.

    Without a store the ledger lives in memory only.
    """

    def __init__(self, store: Optional[FavoritesStore] = None) -> None:
        self._store = store
        self._lock = threading.RLock()
        self._entries: Dict[str, FavoriteEntry] = {}
        if store is not None:
            for entry in store.load_all():
                self._entries[entry.puzzle_id] = entry
        self._favorite_ids = self._collect_ids()
        logger.debug("favorites loaded", extra={"count": len(self._favorite_ids)})

    def _collect_ids(self) -> frozenset:
        return frozenset(pid for pid, entry in self._entries.items() if entry.favorited)

    def is_favorite(self, puzzle_id: str) -> bool:
        return puzzle_id in self._favorite_ids

    def list_favorite_ids(self) -> frozenset:
        """Immutable snapshot of the favorited ids."""
        return self._favorite_ids

    def get_entry(self, puzzle_id: str) -> Optional[FavoriteEntry]:
        with self._lock:
            return self._entries.get(puzzle_id)

    def favorite_puzzles(self) -> Tuple[Puzzle, ...]:
        """Stored puzzle snapshots of the current favorites, oldest first."""
        with self._lock:
            entries = [e for e in self._entries.values() if e.favorited and e.puzzle is not None]
        entries.sort(key=lambda e: e.timestamp)
        return tuple(e.puzzle for e in entries)

    def unstored_ids(self) -> frozenset:
        """Favorited ids with no usable stored puzzle, found only in the corpus."""
        with self._lock:
            return frozenset(
                pid for pid, e in self._entries.items() if e.favorited and e.puzzle is None
            )

    def set_favorite(
        self,
        puzzle_id: str,
        favorited: bool,
        puzzle: Optional[Puzzle] = None,
    ) -> FavoriteEntry:
        """Record the favorite flag of ``puzzle_id``; the store is written first."""
        with self._lock:
            previous = self._entries.get(puzzle_id)
            if puzzle is None and previous is not None:
                puzzle = previous.puzzle
            entry = FavoriteEntry(
                puzzle_id=puzzle_id,
                favorited=favorited,
                timestamp=datetime.now(timezone.utc),
                puzzle=puzzle,
            )
            if self._store is not None:
                self._store.save(entry)
            self._entries[puzzle_id] = entry
            self._favorite_ids = self._collect_ids()

        logger.info("favorite updated", extra={"puzzle_id": puzzle_id, "favorited": favorited})
        return entry

    def toggle(self, puzzle_id: str, puzzle: Optional[Puzzle] = None) -> bool:
        """Flip the favorite flag and return the new value."""
        with self._lock:
            favorited = not self.is_favorite(puzzle_id)
            self.set_favorite(puzzle_id, favorited, puzzle)
        return favorited

    def __len__(self) -> int:
        return len(self._favorite_ids)


def open_favorites_ledger(settings: Settings) -> FavoritesLedger:
    """Ledger backed by the configured SQL store."""
    settings.home_dir.mkdir(parents=True, exist_ok=True)
    store = SqlFavoritesStore(settings.favorites_database_url)
    return FavoritesLedger(store)
