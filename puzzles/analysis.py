"""
Engine Analysis

Hands a position to an external UCI engine (Stockfish by default) through
python-chess and streams its evaluation lines back. Analysis only ever sees
an exported FEN, never the attempt itself.
"""

from __future__ import annotations

import logging
import os
import shutil
from dataclasses import dataclass
from typing import Iterator, Optional, Tuple

import chess
import chess.engine

from puzzles.config import Settings
from puzzles.errors import EngineUnavailable

logger = logging.getLogger(__name__)

DEFAULT_ENGINE = "stockfish"

# Package-manager install directories, searched after PATH
ENGINE_DIRS = ("/opt/homebrew/bin", "/usr/local/bin", "/usr/bin", "/usr/games")


@dataclass(frozen=True)
class EvaluationLine:
    """One info line from the engine, scored from White's point of view."""
    depth: int
    score_cp: Optional[int]
    mate: Optional[int]
    pv: Tuple[str, ...]

    @classmethod
    def from_info(cls, info: dict) -> Optional[EvaluationLine]:
        score = info.get("score")
        if score is None or "depth" not in info:
            return None
        white = score.white()
        return cls(
            depth=int(info["depth"]),
            score_cp=white.score(),
            mate=white.mate(),
            pv=tuple(move.uci() for move in info.get("pv", ())),
        )

    @property
    def best_move(self) -> Optional[str]:
        return self.pv[0] if self.pv else None

    def to_dict(self) -> dict:
        return {
            "depth": self.depth,
            "score_cp": self.score_cp,
            "mate": self.mate,
            "pv": list(self.pv),
        }


def parse_engine_limit(text: str) -> chess.engine.Limit:
    """
    Parse a limit such as ``"depth 40"``, ``"nodes 1000000"``, ``"time 2.5"``
    or ``"mate 3"``.
    """
    parts = text.split()
    if len(parts) != 2:
        raise ValueError(f"engine limit must be '<kind> <value>', got {text!r}")
    kind, value = parts[0].lower(), parts[1]
    try:
        if kind == "depth":
            return chess.engine.Limit(depth=int(value))
        if kind == "nodes":
            return chess.engine.Limit(nodes=int(value))
        if kind == "time":
            return chess.engine.Limit(time=float(value))
        if kind == "mate":
            return chess.engine.Limit(mate=int(value))
    except ValueError:
        raise ValueError(f"bad engine limit value: {text!r}") from None
    raise ValueError(f"unknown engine limit kind: {kind!r}")


def resolve_engine_path(settings: Settings) -> Optional[str]:
    """
    Find the engine binary, or None.

    A configured ``engine_path`` is used as given (a file or a command on
    PATH) with no fallback. Otherwise ``stockfish`` is looked up on PATH,
    then in the usual install directories.
    """
    configured = (settings.engine_path or "").strip()
    if configured:
        return configured if os.path.isfile(configured) else shutil.which(configured)

    found = shutil.which(DEFAULT_ENGINE)
    if found:
        return found
    for directory in ENGINE_DIRS:
        candidate = os.path.join(directory, DEFAULT_ENGINE)
        if os.access(candidate, os.X_OK):
            return candidate
    return None


class EngineAnalyzer:
    """A lazily started UCI engine process."""

    def __init__(self, path: str, limit: Optional[chess.engine.Limit] = None) -> None:
        self.path = path
        self.limit = limit or chess.engine.Limit(depth=20)
        self._engine: Optional[chess.engine.SimpleEngine] = None

    @classmethod
    def from_settings(cls, settings: Settings) -> EngineAnalyzer:
        path = resolve_engine_path(settings)
        if path is None:
            raise EngineUnavailable("no chess engine found; set OCP_ENGINE_PATH")
        return cls(path, parse_engine_limit(settings.engine_limit))

    def _open(self) -> chess.engine.SimpleEngine:
        if self._engine is None:
            try:
                self._engine = chess.engine.SimpleEngine.popen_uci(self.path)
            except (OSError, chess.engine.EngineError) as e:
                raise EngineUnavailable(f"cannot start engine {self.path}: {e}") from e
            logger.info("engine started", extra={"engine": self.path})
        return self._engine

    def analyze(
        self,
        fen: str,
        limit: Optional[chess.engine.Limit] = None,
        multipv: Optional[int] = None,
    ) -> Iterator[EvaluationLine]:
        """Yield evaluation lines as the engine reports them."""
        board = chess.Board(fen)
        engine = self._open()
        with engine.analysis(board, limit or self.limit, multipv=multipv) as analysis:
            for info in analysis:
                line = EvaluationLine.from_info(info)
                if line is not None:
                    yield line

    def best_move(self, fen: str, limit: Optional[chess.engine.Limit] = None) -> Optional[str]:
        board = chess.Board(fen)
        result = self._open().play(board, limit or self.limit)
        return result.move.uci() if result.move else None

    def close(self) -> None:
        if self._engine is not None:
            try:
                self._engine.quit()
            except chess.engine.EngineError:
                logger.warning("engine did not quit cleanly", extra={"engine": self.path})
            self._engine = None

    def __enter__(self) -> EngineAnalyzer:
        return self

    def __exit__(self, *exc) -> None:
        self.close()
