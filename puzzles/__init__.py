"""
Offline Chess Puzzles

Query engine over the Lichess puzzle corpus: stream the flat file, filter
it with compound queries, navigate the matches and verify solving attempts
against the recorded solution lines.
"""

from .puzzle_types import Puzzle, Query, Side, ThemeMatch
from .errors import (
    PuzzleError,
    DecodeError,
    MalformedRow,
    InvalidMove,
    InvalidNumber,
    CorpusError,
    CorpusMissing,
    CorpusUnreadable,
    SchemaError,
    CorpusFetchError,
    PuzzleLoadError,
    AttemptError,
    IllegalMoveError,
    AttemptStateError,
    EngineUnavailable,
)
from .decoder import ColumnSchema, LICHESS_SCHEMA, decode, encode, encode_row
from .predicate import Predicate, compile_query
from .corpus import CorpusFile, FavoritesSource, PuzzleSource
from .session import (
    Direction,
    PuzzleRef,
    ScanStats,
    SearchSession,
    SelectionMode,
    advance,
    current,
    jump,
    select,
)
from .scanner import CancelToken, ScanHandle, ScanProgress, ScanWorker, scan
from .verifier import AnalysisBoard, AttemptState, MoveResult, PuzzleAttempt, Verdict, parse_move
from .favorites import FavoriteEntry, FavoritesLedger, SqlFavoritesStore, open_favorites_ledger
from .config import Settings, get_settings
from .service import PuzzleService

__all__ = [
    # Data model
    "Puzzle",
    "Query",
    "Side",
    "ThemeMatch",
    # Errors
    "PuzzleError",
    "DecodeError",
    "MalformedRow",
    "InvalidMove",
    "InvalidNumber",
    "CorpusError",
    "CorpusMissing",
    "CorpusUnreadable",
    "SchemaError",
    "CorpusFetchError",
    "PuzzleLoadError",
    "AttemptError",
    "IllegalMoveError",
    "AttemptStateError",
    "EngineUnavailable",
    # Decoding
    "ColumnSchema",
    "LICHESS_SCHEMA",
    "decode",
    "encode",
    "encode_row",
    # Filtering and scanning
    "Predicate",
    "compile_query",
    "CorpusFile",
    "FavoritesSource",
    "PuzzleSource",
    "CancelToken",
    "ScanHandle",
    "ScanProgress",
    "ScanWorker",
    "scan",
    # Selection
    "Direction",
    "PuzzleRef",
    "ScanStats",
    "SearchSession",
    "SelectionMode",
    "advance",
    "current",
    "jump",
    "select",
    # Solving
    "AnalysisBoard",
    "AttemptState",
    "MoveResult",
    "PuzzleAttempt",
    "Verdict",
    "parse_move",
    # Favorites
    "FavoriteEntry",
    "FavoritesLedger",
    "SqlFavoritesStore",
    "open_favorites_ledger",
    # Service
    "Settings",
    "get_settings",
    "PuzzleService",
]
