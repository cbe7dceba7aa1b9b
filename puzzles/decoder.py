"""
Corpus Record Decoder

Turns one delimited corpus row into a Puzzle. Column positions come from an
explicit, versioned ColumnSchema instead of being hard-coded, so a corpus
with reordered or extra columns only needs a different header line.
"""

from __future__ import annotations

import csv
import io
import re
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from puzzles.errors import InvalidMove, InvalidNumber, MalformedRow, SchemaError
from puzzles.puzzle_types import Puzzle


# Field names used by the decoder, independent of any header spelling
FIELD_ID = "puzzle_id"
FIELD_FEN = "initial_fen"
FIELD_MOVES = "solution_moves"
FIELD_RATING = "rating"
FIELD_RATING_DEVIATION = "rating_deviation"
FIELD_POPULARITY = "popularity"
FIELD_PLAY_COUNT = "play_count"
FIELD_THEMES = "themes"
FIELD_GAME_URL = "game_url"
FIELD_OPENING_TAGS = "opening_tags"

REQUIRED_FIELDS: Tuple[str, ...] = (
    FIELD_ID,
    FIELD_FEN,
    FIELD_MOVES,
    FIELD_RATING,
    FIELD_RATING_DEVIATION,
    FIELD_POPULARITY,
    FIELD_PLAY_COUNT,
    FIELD_THEMES,
)
OPTIONAL_FIELDS: Tuple[str, ...] = (FIELD_GAME_URL, FIELD_OPENING_TAGS)

# Header spellings of the Lichess puzzle dump
HEADER_ALIASES: Dict[str, str] = {
    "puzzleid": FIELD_ID,
    "fen": FIELD_FEN,
    "moves": FIELD_MOVES,
    "rating": FIELD_RATING,
    "ratingdeviation": FIELD_RATING_DEVIATION,
    "popularity": FIELD_POPULARITY,
    "nbplays": FIELD_PLAY_COUNT,
    "themes": FIELD_THEMES,
    "gameurl": FIELD_GAME_URL,
    "openingtags": FIELD_OPENING_TAGS,
}

_NUMERIC_FIELDS = (FIELD_RATING, FIELD_RATING_DEVIATION, FIELD_POPULARITY, FIELD_PLAY_COUNT)
_UCI_MOVE = re.compile(r"^[a-h][1-8][a-h][1-8][qrbn]?$")
_TAG_SEPARATORS = re.compile(r"[\s/]+")


def _normalize_header(name: str) -> str:
    return name.strip().lstrip("\ufeff").replace("_", "").lower()


@dataclass(frozen=True)
class ColumnSchema:
    """
    Maps corpus columns to Puzzle fields.

    ``columns`` holds the header names in file order; names without a known
    alias are carried along (and written back as empty) but never decoded.
    """
    version: str
    columns: Tuple[str, ...]
    index: Dict[str, int] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        index: Dict[str, int] = {}
        for position, name in enumerate(self.columns):
            key = HEADER_ALIASES.get(_normalize_header(name))
            if key is None:
                continue
            if key in index:
                raise SchemaError(f"duplicate column for {key}: {name!r}")
            index[key] = position

        missing = [name for name in REQUIRED_FIELDS if name not in index]
        if missing:
            raise SchemaError(
                f"schema {self.version} lacks required columns: {', '.join(missing)}"
            )
        object.__setattr__(self, "index", index)

    @classmethod
    def from_header(cls, fields: Sequence[str], version: str = "header") -> ColumnSchema:
        """Build and validate a schema from a corpus header line."""
        return cls(version=version, columns=tuple(f.strip().lstrip("\ufeff") for f in fields))

    @staticmethod
    def looks_like_header(fields: Sequence[str]) -> bool:
        """True when the first field is a known column name rather than data."""
        return bool(fields) and HEADER_ALIASES.get(_normalize_header(fields[0])) == FIELD_ID

    @property
    def width(self) -> int:
        return len(self.columns)

    def header_row(self) -> str:
        return _join_fields(self.columns)


LICHESS_SCHEMA = ColumnSchema(
    version="lichess-v1",
    columns=(
        "PuzzleId",
        "FEN",
        "Moves",
        "Rating",
        "RatingDeviation",
        "Popularity",
        "NbPlays",
        "Themes",
        "GameUrl",
        "OpeningTags",
    ),
)


def split_row(raw_row: str) -> List[str]:
    """Split one delimited line into its fields."""
    try:
        return next(csv.reader([raw_row]), [])
    except csv.Error as e:
        raise MalformedRow(f"unparseable row: {e}") from e


def _column(
    fields: Sequence[str],
    schema: ColumnSchema,
    name: str,
    required: bool,
    row_number: Optional[int],
) -> str:
    position = schema.index.get(name)
    if position is None or position >= len(fields):
        if required:
            raise MalformedRow(f"missing column {name}", row_number)
        return ""
    return fields[position].strip()


def _parse_int(value: str, name: str, row_number: Optional[int]) -> int:
    if not value:
        raise MalformedRow(f"empty column {name}", row_number)
    try:
        return int(value)
    except ValueError:
        raise InvalidNumber(f"{name} is not an integer: {value!r}", row_number) from None


def decode(
    raw_row: str,
    schema: ColumnSchema = LICHESS_SCHEMA,
    row_number: Optional[int] = None,
) -> Puzzle:
    """
    Decode a corpus row into a Puzzle.

    Raises:
        MalformedRow: required columns absent/empty, bad FEN side field,
            or an empty move list
        InvalidMove: a solution move is not coordinate notation
        InvalidNumber: a numeric column is not an integer
    """
    try:
        fields = split_row(raw_row)
    except MalformedRow as e:
        e.row_number = row_number
        raise

    values = {
        name: _column(fields, schema, name, True, row_number) for name in REQUIRED_FIELDS
    }
    for name in OPTIONAL_FIELDS:
        values[name] = _column(fields, schema, name, False, row_number)

    puzzle_id = values[FIELD_ID]
    if not puzzle_id:
        raise MalformedRow("empty puzzle id", row_number)

    fen = " ".join(values[FIELD_FEN].split())
    fen_parts = fen.split(" ")
    if len(fen_parts) < 2 or fen_parts[1] not in ("w", "b"):
        raise MalformedRow(f"FEN has no side to move: {fen!r}", row_number)

    moves = tuple(values[FIELD_MOVES].split())
    if not moves:
        raise MalformedRow("empty solution", row_number)
    for move in moves:
        if not _UCI_MOVE.match(move):
            raise InvalidMove(f"not a coordinate move: {move!r}", row_number)

    numbers = {name: _parse_int(values[name], name, row_number) for name in _NUMERIC_FIELDS}

    return Puzzle(
        puzzle_id=puzzle_id,
        initial_fen=fen,
        solution_moves=moves,
        rating=numbers[FIELD_RATING],
        rating_deviation=numbers[FIELD_RATING_DEVIATION],
        popularity=numbers[FIELD_POPULARITY],
        play_count=numbers[FIELD_PLAY_COUNT],
        themes=frozenset(values[FIELD_THEMES].split()),
        opening_tags=tuple(t for t in _TAG_SEPARATORS.split(values[FIELD_OPENING_TAGS]) if t),
        game_url=values[FIELD_GAME_URL],
    )


def encode(puzzle: Puzzle, schema: ColumnSchema = LICHESS_SCHEMA) -> List[str]:
    """Inverse of :func:`decode`: the puzzle's fields in schema column order."""
    values = {
        FIELD_ID: puzzle.puzzle_id,
        FIELD_FEN: puzzle.initial_fen,
        FIELD_MOVES: " ".join(puzzle.solution_moves),
        FIELD_RATING: str(puzzle.rating),
        FIELD_RATING_DEVIATION: str(puzzle.rating_deviation),
        FIELD_POPULARITY: str(puzzle.popularity),
        FIELD_PLAY_COUNT: str(puzzle.play_count),
        FIELD_THEMES: " ".join(sorted(puzzle.themes)),
        FIELD_GAME_URL: puzzle.game_url,
        FIELD_OPENING_TAGS: " ".join(puzzle.opening_tags),
    }
    fields = [""] * schema.width
    for name, position in schema.index.items():
        fields[position] = values[name]
    return fields


def _join_fields(fields: Sequence[str]) -> str:
    buf = io.StringIO()
    csv.writer(buf, lineterminator="").writerow(fields)
    return buf.getvalue()


def encode_row(puzzle: Puzzle, schema: ColumnSchema = LICHESS_SCHEMA) -> str:
    """Encode a puzzle as a single delimited line (no line terminator)."""
    return _join_fields(encode(puzzle, schema))
