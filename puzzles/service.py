"""
Puzzle Service

Wires the query engine together for a caller (the CLI or a UI): compile a
query, scan on the background worker, select and navigate the results, and
run one solving attempt at a time.

The service owns exactly one SearchSession and one PuzzleAttempt. A new
search replaces the session; loading a puzzle replaces the attempt. Finished
background scans are installed from the worker thread, so every read and
write of the session and the attempt goes through the service lock.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Set

from puzzles.config import Settings
from puzzles.corpus import CorpusFile, FavoritesSource, PuzzleSource
from puzzles.errors import AttemptStateError, PuzzleLoadError
from puzzles.favorites import FavoritesLedger, open_favorites_ledger
from puzzles.predicate import Predicate, compile_query
from puzzles.puzzle_types import Query
from puzzles.scanner import CancelToken, ProgressCallback, ScanHandle, ScanWorker, scan
from puzzles.session import (
    Direction,
    PuzzleRef,
    SearchSession,
    SelectionMode,
    advance,
    current,
    jump,
    select,
)
from puzzles.verifier import AnalysisBoard, PuzzleAttempt

logger = logging.getLogger(__name__)


class PuzzleService:
    """Search, navigation and solving for one user context."""

    def __init__(
        self,
        settings: Settings,
        favorites: Optional[FavoritesLedger] = None,
        worker: Optional[ScanWorker] = None,
    ) -> None:
        self.settings = settings
        self.favorites = favorites if favorites is not None else open_favorites_ledger(settings)
        self.worker = worker or ScanWorker()
        self.corpus = CorpusFile(settings.corpus_path)

        self._session: Optional[SearchSession] = None
        self._attempt: Optional[PuzzleAttempt] = None
        self._analysis: Optional[AnalysisBoard] = None

        # Ids loaded into an attempt, for exclude_seen queries
        self._seen: Set[str] = set()
        # Bumped by every search; an older search never installs its session
        self._search_generation = 0
        self._lock = threading.RLock()

    @property
    def session(self) -> Optional[SearchSession]:
        with self._lock:
            return self._session

    @property
    def attempt(self) -> Optional[PuzzleAttempt]:
        with self._lock:
            return self._attempt

    @property
    def analysis(self) -> Optional[AnalysisBoard]:
        with self._lock:
            return self._analysis

    # ─── Search ───

    def _source_for(self, query: Query) -> PuzzleSource:
        if query.favorites_only and self.settings.favorites_from_store:
            unstored = self.favorites.unstored_ids()
            if not unstored:
                return FavoritesSource(self.favorites)
            logger.info(
                "favorites without a stored row, scanning the corpus",
                extra={"unstored": len(unstored)},
            )
        return self.corpus

    def _compile(self, query: Query) -> Predicate:
        with self._lock:
            seen = frozenset(self._seen)
        return compile_query(query, favorites=self.favorites, seen=seen)

    def _limit(self, query: Query) -> int:
        return query.limit or self.settings.search_results_limit

    def _next_generation(self) -> int:
        with self._lock:
            self._search_generation += 1
            return self._search_generation

    def _install(
        self,
        session: SearchSession,
        mode: SelectionMode,
        seed: Optional[int],
        generation: int,
    ) -> bool:
        """Make ``session`` current unless a newer search has started since."""
        with self._lock:
            if generation != self._search_generation:
                logger.debug("dropping superseded search", extra={"generation": generation})
                return False
            select(session, mode, seed)
            self._session = session
            self._attempt = None
            self._analysis = None
        logger.info(
            "search session ready",
            extra={
                "matched": len(session),
                "partial": session.partial,
                "mode": session.mode.value,
                "seed": session.seed,
            },
        )
        return True

    def search(
        self,
        query: Query,
        mode: SelectionMode = SelectionMode.FIRST_MATCH,
        seed: Optional[int] = None,
        on_progress: Optional[ProgressCallback] = None,
        on_done: Optional[Callable[[SearchSession], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
    ) -> ScanHandle:
        """
        Run the query on the background worker.

        A search still in flight is cancelled and its result discarded. The
        finished session replaces the current one before ``on_done`` runs,
        and ``on_done`` is skipped when a newer search got there first.
        ``on_done`` runs on the worker thread.
        """
        predicate = self._compile(query)
        generation = self._next_generation()

        def finished(session: SearchSession) -> None:
            if self._install(session, mode, seed, generation) and on_done is not None:
                on_done(session)

        return self.worker.submit(
            self._source_for(query),
            predicate,
            self._limit(query),
            on_progress=on_progress,
            on_done=finished,
            on_error=on_error,
            batch_size=self.settings.scan_batch_size,
        )

    def search_blocking(
        self,
        query: Query,
        mode: SelectionMode = SelectionMode.FIRST_MATCH,
        seed: Optional[int] = None,
        cancel: Optional[CancelToken] = None,
        on_progress: Optional[ProgressCallback] = None,
    ) -> SearchSession:
        """Run the query on the calling thread and install the result."""
        generation = self._next_generation()
        # A background search still running is superseded too
        self.worker.cancel()
        session = scan(
            self._source_for(query),
            self._compile(query),
            self._limit(query),
            cancel=cancel,
            on_progress=on_progress,
            batch_size=self.settings.scan_batch_size,
        )
        self._install(session, mode, seed, generation)
        return session

    # ─── Navigation ───

    def _require_session(self) -> SearchSession:
        if self._session is None:
            raise AttemptStateError("no search has been run")
        return self._session

    def current_ref(self) -> Optional[PuzzleRef]:
        with self._lock:
            return current(self._require_session())

    def load(self, ref: PuzzleRef) -> PuzzleAttempt:
        """Start an attempt on ``ref`` and mark the puzzle as seen."""
        try:
            attempt = PuzzleAttempt.start(
                ref.puzzle, accept_alternative_mates=self.settings.accept_alternative_mates
            )
        except PuzzleLoadError:
            logger.warning("cannot load puzzle", extra={"puzzle_id": ref.puzzle_id})
            raise
        with self._lock:
            self._seen.add(ref.puzzle_id)
            self._attempt = attempt
            self._analysis = None
        return attempt

    def _navigate(self, step: Callable[[SearchSession], Optional[PuzzleRef]]) -> Optional[PuzzleAttempt]:
        with self._lock:
            ref = step(self._require_session())
            return self.load(ref) if ref is not None else None

    def load_current(self) -> Optional[PuzzleAttempt]:
        return self._navigate(current)

    def next_puzzle(self) -> Optional[PuzzleAttempt]:
        return self._navigate(lambda session: advance(session, Direction.NEXT))

    def previous_puzzle(self) -> Optional[PuzzleAttempt]:
        return self._navigate(lambda session: advance(session, Direction.PREVIOUS))

    def jump_to(self, number: int) -> Optional[PuzzleAttempt]:
        """Load the 1-based ``number``-th puzzle of the session."""
        return self._navigate(lambda session: jump(session, number))

    # ─── Current puzzle ───

    def _require_attempt(self) -> PuzzleAttempt:
        attempt = self.attempt
        if attempt is None:
            raise AttemptStateError("no puzzle loaded")
        return attempt

    def toggle_favorite(self) -> bool:
        """Flip the favorite flag of the loaded puzzle; returns the new value."""
        attempt = self._require_attempt()
        return self.favorites.toggle(attempt.puzzle.puzzle_id, attempt.puzzle)

    def is_favorite(self) -> bool:
        return self.favorites.is_favorite(self._require_attempt().puzzle.puzzle_id)

    def analysis_fen(self) -> str:
        """Position under study: the analysis board if one is open, else the puzzle."""
        with self._lock:
            if self._analysis is not None:
                return self._analysis.export_fen()
        return self._require_attempt().export_fen()

    # ─── Analysis ───

    def start_analysis(self) -> AnalysisBoard:
        """Open a free-play board on the loaded puzzle's current position."""
        attempt = self._require_attempt()
        board = AnalysisBoard(attempt.export_fen())
        with self._lock:
            self._analysis = board
        return board

    def analysis_board(self) -> AnalysisBoard:
        """The open analysis board, opened on first use."""
        board = self.analysis
        return board if board is not None else self.start_analysis()

    def close_analysis(self) -> None:
        with self._lock:
            self._analysis = None

    # ─── Seen ───

    @property
    def seen_ids(self) -> frozenset:
        with self._lock:
            return frozenset(self._seen)

    def clear_seen(self) -> None:
        with self._lock:
            self._seen.clear()

    def shutdown(self) -> None:
        self.worker.shutdown(wait=True)
