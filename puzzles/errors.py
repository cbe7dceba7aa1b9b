"""Exception hierarchy for the puzzle engine."""

from __future__ import annotations

from typing import Optional


class PuzzleError(Exception):
    """Base class for all puzzle engine exceptions."""


# ─── Row decoding (per row, never fatal to a scan) ───


class DecodeError(PuzzleError):
    """A corpus row could not be turned into a Puzzle."""

    def __init__(self, message: str, row_number: Optional[int] = None) -> None:
        super().__init__(message)
        self.row_number = row_number


class MalformedRow(DecodeError):
    """Required columns are absent or empty."""


class InvalidMove(DecodeError):
    """A solution move is not coordinate notation."""


class InvalidNumber(DecodeError):
    """A numeric column does not hold an integer."""


# ─── Corpus access (fatal to a scan attempt) ───


class CorpusError(PuzzleError):
    """The corpus could not be scanned."""


class CorpusMissing(CorpusError):
    """The corpus file does not exist."""


class CorpusUnreadable(CorpusError):
    """The corpus file exists but cannot be read or decompressed."""


class SchemaError(CorpusUnreadable):
    """The corpus header does not provide the required columns."""


class CorpusFetchError(PuzzleError):
    """Downloading or unpacking the corpus failed."""


# ─── Solving ───


class PuzzleLoadError(PuzzleError):
    """A decoded puzzle cannot be played (bad FEN or illegal recorded line)."""


class AttemptError(PuzzleError):
    """Base class for recoverable errors raised while solving."""


class IllegalMoveError(AttemptError):
    """The submitted move is not legal in the current position."""

    def __init__(self, move: str, reason: str = "illegal move") -> None:
        super().__init__(f"{reason}: {move}")
        self.move = move
        self.reason = reason


class AttemptStateError(AttemptError):
    """The operation is not allowed in the attempt's current state."""


class EngineUnavailable(PuzzleError):
    """The external analysis engine could not be started."""


__all__ = [
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
]
