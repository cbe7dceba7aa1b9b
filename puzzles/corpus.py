"""
Puzzle Sources

A source hands the scanner a column schema and a sequential stream of raw
rows. The corpus file is opened read-only for every scan and may be
compressed; decompression is detected from the file's magic bytes.
"""

from __future__ import annotations

import bz2
import gzip
import io
import logging
import lzma
from contextlib import contextmanager
from pathlib import Path
from typing import TYPE_CHECKING, Iterator, Optional, Protocol, TextIO, Tuple

import zstandard

from puzzles.decoder import LICHESS_SCHEMA, ColumnSchema, encode_row, split_row
from puzzles.errors import CorpusMissing, CorpusUnreadable, MalformedRow

if TYPE_CHECKING:
    from puzzles.favorites import FavoritesLedger

logger = logging.getLogger(__name__)

Row = Tuple[int, str]

_GZIP_MAGIC = b"\x1f\x8b"
_BZ2_MAGIC = b"BZh"
_XZ_MAGIC = b"\xfd7zXZ\x00"
_ZSTD_MAGIC = b"\x28\xb5\x2f\xfd"

_READ_ERRORS = (OSError, EOFError, lzma.LZMAError, zstandard.ZstdError)


class PuzzleSource(Protocol):
    """Anything the scanner can stream rows from."""

    @property
    def name(self) -> str:
        ...

    def open_rows(self):
        """Context manager yielding ``(schema, rows)``; rows are ``(row_number, raw_row)``."""
        ...


def detect_compression(path: Path) -> Optional[str]:
    """Return "gzip", "bz2", "xz", "zstd" or None for plain text."""
    with path.open("rb") as f:
        head = f.read(6)
    if head.startswith(_GZIP_MAGIC):
        return "gzip"
    if head.startswith(_BZ2_MAGIC):
        return "bz2"
    if head.startswith(_XZ_MAGIC):
        return "xz"
    if head.startswith(_ZSTD_MAGIC):
        return "zstd"
    return None


def _open_text(path: Path, compression: Optional[str]) -> TextIO:
    # Undecodable bytes become replacement characters; the row then fails
    # to decode on its own instead of aborting the whole scan.
    text_args = {"encoding": "utf-8", "errors": "replace", "newline": ""}
    if compression == "gzip":
        return gzip.open(path, "rt", **text_args)
    if compression == "bz2":
        return bz2.open(path, "rt", **text_args)
    if compression == "xz":
        return lzma.open(path, "rt", **text_args)
    if compression == "zstd":
        reader = zstandard.ZstdDecompressor().stream_reader(path.open("rb"))
        return io.TextIOWrapper(reader, **text_args)
    return path.open("r", **text_args)


class CorpusFile:
    """The flat puzzle corpus on disk."""

    def __init__(self, path, schema: Optional[ColumnSchema] = None) -> None:
        self.path = Path(path)
        # Used when the file carries no header line
        self.default_schema = schema or LICHESS_SCHEMA

    @property
    def name(self) -> str:
        return str(self.path)

    def exists(self) -> bool:
        return self.path.is_file()

    @contextmanager
    def open_rows(self) -> Iterator[Tuple[ColumnSchema, Iterator[Row]]]:
        """
        Open the corpus and validate its schema once.

        Raises:
            CorpusMissing: the file does not exist
            CorpusUnreadable: the file cannot be opened, decompressed or read,
                or its header lacks required columns (SchemaError)
        """
        if not self.exists():
            raise CorpusMissing(f"puzzle corpus not found: {self.path}")

        try:
            compression = detect_compression(self.path)
            stream = _open_text(self.path, compression)
        except _READ_ERRORS as e:
            raise CorpusUnreadable(f"cannot open {self.path}: {e}") from e

        try:
            schema, first = self._read_schema(stream)
            logger.debug(
                "opened corpus",
                extra={"path": str(self.path), "compression": compression, "schema": schema.version},
            )
            yield schema, self._rows(stream, first)
        finally:
            stream.close()

    def _read_schema(self, stream: TextIO) -> Tuple[ColumnSchema, Optional[Row]]:
        try:
            line = stream.readline()
        except _READ_ERRORS as e:
            raise CorpusUnreadable(f"cannot read {self.path}: {e}") from e
        if not line:
            return self.default_schema, None

        try:
            fields = split_row(line)
        except MalformedRow:
            return self.default_schema, (1, line)
        if ColumnSchema.looks_like_header(fields):
            return ColumnSchema.from_header(fields), None
        return self.default_schema, (1, line)

    def _rows(self, stream: TextIO, first: Optional[Row]) -> Iterator[Row]:
        if first is not None:
            yield first
        try:
            for number, line in enumerate(stream, start=2):
                if line.strip():
                    yield number, line
        except _READ_ERRORS as e:
            raise CorpusUnreadable(f"error reading {self.path}: {e}") from e

    def __repr__(self) -> str:
        return f"CorpusFile({str(self.path)!r})"


class FavoritesSource:
    """Streams the puzzles stored with the favorites ledger, without touching the corpus."""

    def __init__(self, ledger: FavoritesLedger) -> None:
        self.ledger = ledger

    @property
    def name(self) -> str:
        return "favorites"

    @contextmanager
    def open_rows(self) -> Iterator[Tuple[ColumnSchema, Iterator[Row]]]:
        puzzles = self.ledger.favorite_puzzles()
        rows = (
            (number, encode_row(puzzle, LICHESS_SCHEMA))
            for number, puzzle in enumerate(puzzles, start=1)
        )
        yield LICHESS_SCHEMA, rows
