"""
Search Session, Selection & Navigation

A SearchSession is the bounded result of one executed query plus a cursor.
Ordering is either scan order or a shuffle driven by an explicit seed, so a
session can be replayed exactly by reusing its seed.
"""

from __future__ import annotations

import random
import secrets
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from puzzles.puzzle_types import Puzzle, Query


class SelectionMode(str, Enum):
    FIRST_MATCH = "first_match"
    RANDOM = "random"


class Direction(str, Enum):
    NEXT = "next"
    PREVIOUS = "previous"


@dataclass(frozen=True)
class ScanStats:
    """Counters reported by one scan."""
    rows_read: int = 0
    decode_failures: int = 0
    matched: int = 0


@dataclass(frozen=True)
class PuzzleRef:
    """A puzzle together with its place in the session ordering."""
    position: int  # 0-based
    total: int
    puzzle: Puzzle

    @property
    def puzzle_id(self) -> str:
        return self.puzzle.puzzle_id

    @property
    def is_first(self) -> bool:
        return self.position == 0

    @property
    def is_last(self) -> bool:
        return self.position == self.total - 1


@dataclass
class SearchSession:
    """
    Result set of one executed query.

    Owned by the caller that issued the search; replaced on the next search.
    """
    puzzles: List[Puzzle] = field(default_factory=list)
    query: Optional[Query] = None
    stats: ScanStats = field(default_factory=ScanStats)

    # True when the scan was cancelled before reaching the limit or the end
    partial: bool = False

    # Indices into ``puzzles`` in navigation order
    order: List[int] = field(default_factory=list)
    cursor: int = 0
    mode: SelectionMode = SelectionMode.FIRST_MATCH
    seed: Optional[int] = None

    def __post_init__(self) -> None:
        if not self.order:
            self.order = list(range(len(self.puzzles)))

    def __len__(self) -> int:
        return len(self.puzzles)

    @property
    def is_empty(self) -> bool:
        return not self.puzzles

    @property
    def has_next(self) -> bool:
        return self.cursor < len(self.order) - 1

    @property
    def has_previous(self) -> bool:
        return self.cursor > 0

    @property
    def puzzle_ids(self) -> List[str]:
        """Puzzle ids in navigation order."""
        return [self.puzzles[i].puzzle_id for i in self.order]

    def ordered(self) -> List[Puzzle]:
        """Puzzles in navigation order."""
        return [self.puzzles[i] for i in self.order]

    def ref(self, position: int) -> PuzzleRef:
        return PuzzleRef(position=position, total=len(self.order), puzzle=self.puzzles[self.order[position]])


def select(
    session: SearchSession,
    mode: SelectionMode = SelectionMode.FIRST_MATCH,
    seed: Optional[int] = None,
) -> Optional[PuzzleRef]:
    """
    Order the session and return its first puzzle.

    RANDOM shuffles once with ``random.Random(seed)``; without a seed one is
    drawn and stored on the session so the ordering can be reproduced.
    Returns None for an empty session.
    """
    mode = SelectionMode(mode)
    order = list(range(len(session.puzzles)))
    if mode == SelectionMode.RANDOM:
        if seed is None:
            seed = secrets.randbits(32)
        random.Random(seed).shuffle(order)
        session.seed = seed
    else:
        session.seed = None

    session.mode = mode
    session.order = order
    session.cursor = 0
    if not order:
        return None
    return session.ref(0)


def current(session: SearchSession) -> Optional[PuzzleRef]:
    if not session.order:
        return None
    return session.ref(session.cursor)


def advance(session: SearchSession, direction: Direction) -> Optional[PuzzleRef]:
    """
    Move the cursor one step.

    There is no wraparound: stepping past either end returns None and
    leaves the cursor where it was.
    """
    step = 1 if Direction(direction) == Direction.NEXT else -1
    target = session.cursor + step
    if not 0 <= target < len(session.order):
        return None
    session.cursor = target
    return session.ref(target)


def jump(session: SearchSession, number: int) -> Optional[PuzzleRef]:
    """Go to the 1-based ``number``; out of range leaves the cursor unchanged."""
    if not 1 <= number <= len(session.order):
        return None
    session.cursor = number - 1
    return session.ref(session.cursor)
