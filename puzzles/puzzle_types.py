"""
Puzzle Data Types

Defines the records shared by the decoder, the filter predicate, the
scanner and the move verifier. All types are immutable and serializable.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import FrozenSet, Optional, Tuple
import json


LICHESS_TRAINING_URL = "https://lichess.org/training/"


class Side(str, Enum):
    """Color of a player."""
    WHITE = "white"
    BLACK = "black"

    @property
    def opponent(self) -> Side:
        return Side.BLACK if self is Side.WHITE else Side.WHITE

    @classmethod
    def from_fen_field(cls, value: str) -> Side:
        """Parse the side-to-move field of a FEN ("w" or "b")."""
        if value == "w":
            return cls.WHITE
        if value == "b":
            return cls.BLACK
        raise ValueError(f"invalid side to move: {value!r}")


class ThemeMatch(str, Enum):
    """
    How the themes of a query are matched against a puzzle.

    - ANY: at least one requested theme is present
    - ALL: every requested theme is present
    """
    ANY = "any"
    ALL = "all"


@dataclass(frozen=True)
class Puzzle:
    """
    A single puzzle decoded from one corpus row.

    The first solution move is the opponent's move that sets up the tactic;
    the solver's moves and the opponent's replies alternate after it.
    """
    # Corpus-unique identifier
    puzzle_id: str

    # Position immediately before the opponent's revealing move
    initial_fen: str

    # Coordinate (UCI) moves, never empty
    solution_moves: Tuple[str, ...]

    rating: int
    rating_deviation: int = 0
    popularity: int = 0
    play_count: int = 0

    themes: FrozenSet[str] = field(default_factory=frozenset)

    # Opening family first, then variations
    opening_tags: Tuple[str, ...] = ()

    game_url: str = ""

    @property
    def side_to_move(self) -> Side:
        """Side to move in ``initial_fen`` (the opponent of the solver)."""
        parts = self.initial_fen.split()
        return Side.from_fen_field(parts[1] if len(parts) > 1 else "")

    @property
    def solver_side(self) -> Side:
        """The side the puzzle is for."""
        return self.side_to_move.opponent

    @property
    def lichess_url(self) -> str:
        return LICHESS_TRAINING_URL + self.puzzle_id

    def to_dict(self) -> dict:
        """Convert to dictionary for JSON serialization."""
        return {
            "puzzle_id": self.puzzle_id,
            "initial_fen": self.initial_fen,
            "solution_moves": list(self.solution_moves),
            "rating": self.rating,
            "rating_deviation": self.rating_deviation,
            "popularity": self.popularity,
            "play_count": self.play_count,
            "themes": sorted(self.themes),
            "opening_tags": list(self.opening_tags),
            "game_url": self.game_url,
        }

    @classmethod
    def from_dict(cls, data: dict) -> Puzzle:
        """Create Puzzle from dictionary."""
        return cls(
            puzzle_id=data["puzzle_id"],
            initial_fen=data["initial_fen"],
            solution_moves=tuple(data["solution_moves"]),
            rating=int(data["rating"]),
            rating_deviation=int(data.get("rating_deviation", 0)),
            popularity=int(data.get("popularity", 0)),
            play_count=int(data.get("play_count", 0)),
            themes=frozenset(data.get("themes", ())),
            opening_tags=tuple(data.get("opening_tags", ())),
            game_url=data.get("game_url", ""),
        )

    def to_json(self) -> str:
        """Serialize to JSON string."""
        return json.dumps(self.to_dict())


@dataclass(frozen=True)
class Query:
    """
    User filter configuration.

    Every constraint left at its default is disabled, so ``Query()``
    matches every puzzle.
    """
    # Inclusive rating range; min > max matches nothing
    min_rating: Optional[int] = None
    max_rating: Optional[int] = None

    themes: FrozenSet[str] = field(default_factory=frozenset)
    theme_match: ThemeMatch = ThemeMatch.ANY

    # Ordered prefix of the puzzle's opening tags
    opening_prefix: Tuple[str, ...] = ()

    # The solver's side, not the side to move in the initial FEN
    side: Optional[Side] = None

    min_popularity: Optional[int] = None

    # Falls back to the configured search result limit
    limit: Optional[int] = None

    favorites_only: bool = False

    # Skip puzzles already loaded earlier in this context
    exclude_seen: bool = False

    def __post_init__(self) -> None:
        # Accept plain iterables from callers; keep the record hashable.
        object.__setattr__(self, "themes", frozenset(self.themes))
        object.__setattr__(self, "opening_prefix", tuple(self.opening_prefix))
        object.__setattr__(self, "theme_match", ThemeMatch(self.theme_match))
        if self.side is not None:
            object.__setattr__(self, "side", Side(self.side))
        if self.limit is not None and self.limit < 1:
            raise ValueError(f"limit must be positive, got {self.limit}")

    def to_dict(self) -> dict:
        return {
            "min_rating": self.min_rating,
            "max_rating": self.max_rating,
            "themes": sorted(self.themes),
            "theme_match": self.theme_match.value,
            "opening_prefix": list(self.opening_prefix),
            "side": self.side.value if self.side else None,
            "min_popularity": self.min_popularity,
            "limit": self.limit,
            "favorites_only": self.favorites_only,
            "exclude_seen": self.exclude_seen,
        }
