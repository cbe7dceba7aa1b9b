"""
Corpus Scanner

Single pass over a puzzle source: decode each row, judge it with the
compiled predicate, keep matches until the limit or the end of the corpus.

The scan is the only long-running operation. It can run inline (``scan``)
or on the background worker (``ScanWorker``), and is cancelled
cooperatively between batches of rows.
"""

from __future__ import annotations

import concurrent.futures
import logging
import threading
from dataclasses import dataclass
from typing import Callable, List, Optional

from puzzles.corpus import PuzzleSource
from puzzles.decoder import decode
from puzzles.errors import DecodeError
from puzzles.predicate import Predicate
from puzzles.puzzle_types import Puzzle
from puzzles.session import ScanStats, SearchSession

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 1000


class CancelToken:
    """Set by the owner of a scan to stop it at the next batch boundary."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()


@dataclass(frozen=True)
class ScanProgress:
    rows_read: int
    matched: int


ProgressCallback = Callable[[ScanProgress], None]


# =============================================================================
# SCAN
# =============================================================================


def scan(
    source: PuzzleSource,
    predicate: Predicate,
    limit: int,
    cancel: Optional[CancelToken] = None,
    on_progress: Optional[ProgressCallback] = None,
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> SearchSession:
    """
    Stream ``source`` and collect up to ``limit`` puzzles accepted by ``predicate``.

    Rows that fail to decode are counted and skipped. The cancel token is
    checked every ``batch_size`` rows; a cancelled scan returns what it has
    with ``partial=True``.

    Raises:
        ValueError: limit or batch_size below 1
        CorpusMissing, CorpusUnreadable: the source cannot be read
    """
    if limit < 1:
        raise ValueError(f"limit must be positive, got {limit}")
    if batch_size < 1:
        raise ValueError(f"batch_size must be positive, got {batch_size}")

    matches: List[Puzzle] = []
    rows_read = 0
    failures = 0
    partial = False

    logger.info(
        "scan started",
        extra={"source": source.name, "limit": limit, "constraints": predicate.constraints},
    )

    with source.open_rows() as (schema, rows):
        if predicate.matches_nothing:
            logger.info("query cannot match any puzzle, skipping scan", extra={"source": source.name})
            rows = iter(())

        for row_number, raw_row in rows:
            if rows_read % batch_size == 0:
                if rows_read and on_progress is not None:
                    on_progress(ScanProgress(rows_read=rows_read, matched=len(matches)))
                if cancel is not None and cancel.cancelled:
                    partial = True
                    break

            rows_read += 1
            try:
                puzzle = decode(raw_row, schema, row_number)
            except DecodeError as e:
                failures += 1
                logger.debug("skipping row %s: %s", row_number, e)
                continue

            if predicate.matches(puzzle):
                matches.append(puzzle)
                if len(matches) >= limit:
                    break

    if on_progress is not None:
        on_progress(ScanProgress(rows_read=rows_read, matched=len(matches)))

    stats = ScanStats(rows_read=rows_read, decode_failures=failures, matched=len(matches))
    logger.info(
        "scan cancelled" if partial else "scan finished",
        extra={
            "source": source.name,
            "rows_read": rows_read,
            "matched": len(matches),
            "decode_failures": failures,
        },
    )
    return SearchSession(puzzles=matches, query=predicate.query, stats=stats, partial=partial)


# =============================================================================
# BACKGROUND WORKER
# =============================================================================


class ScanHandle:
    """A submitted scan: its future, its cancel token and its generation."""

    def __init__(self, generation: int, future: concurrent.futures.Future, token: CancelToken) -> None:
        self.generation = generation
        self.future = future
        self.token = token

    def cancel(self) -> None:
        self.token.cancel()
        # Drops the scan outright if it has not started yet
        self.future.cancel()

    @property
    def done(self) -> bool:
        return self.future.done()

    def result(self, timeout: Optional[float] = None) -> SearchSession:
        return self.future.result(timeout)

    def __repr__(self) -> str:
        return f"ScanHandle(generation={self.generation}, done={self.done})"


class ScanWorker:
    """
    Runs scans on one background thread.

    Only the latest submitted scan is live: submitting a new one cancels the
    previous, and a superseded scan never reaches its completion callback.
    Callbacks of a finished scan run under the worker lock, so a submit from
    another thread waits for them; they must not block on such a thread.
    """

    def __init__(self) -> None:
        # One worker: a scan is I/O and CPU bound on the same file
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=1, thread_name_prefix="puzzle-scan"
        )
        # Reentrant: completion callbacks may submit the next scan
        self._lock = threading.RLock()
        self._generation = 0
        self._active: Optional[ScanHandle] = None

    def submit(
        self,
        source: PuzzleSource,
        predicate: Predicate,
        limit: int,
        on_progress: Optional[ProgressCallback] = None,
        on_done: Optional[Callable[[SearchSession], None]] = None,
        on_error: Optional[Callable[[BaseException], None]] = None,
        batch_size: int = DEFAULT_BATCH_SIZE,
    ) -> ScanHandle:
        with self._lock:
            if self._active is not None:
                self._active.cancel()
            self._generation += 1
            generation = self._generation
            token = CancelToken()
            future = self._executor.submit(
                self._run, generation, source, predicate, limit, token, on_progress, batch_size
            )
            handle = ScanHandle(generation, future, token)
            self._active = handle

        future.add_done_callback(lambda f: self._finish(handle, on_done, on_error))
        return handle

    def is_current(self, generation: int) -> bool:
        with self._lock:
            return generation == self._generation

    def cancel(self) -> None:
        """Cancel the active scan, if any."""
        with self._lock:
            if self._active is not None:
                self._active.cancel()

    def shutdown(self, wait: bool = True) -> None:
        self.cancel()
        self._executor.shutdown(wait=wait)

    def _run(
        self,
        generation: int,
        source: PuzzleSource,
        predicate: Predicate,
        limit: int,
        token: CancelToken,
        on_progress: Optional[ProgressCallback],
        batch_size: int,
    ) -> SearchSession:
        def report(progress: ScanProgress) -> None:
            if on_progress is not None and self.is_current(generation):
                on_progress(progress)

        return scan(source, predicate, limit, token, report, batch_size)

    def _finish(
        self,
        handle: ScanHandle,
        on_done: Optional[Callable[[SearchSession], None]],
        on_error: Optional[Callable[[BaseException], None]],
    ) -> None:
        future = handle.future
        # The currency check and the delivery must not interleave with submit
        with self._lock:
            if future.cancelled() or handle.generation != self._generation:
                logger.debug("discarding superseded scan", extra={"generation": handle.generation})
                return

            error = future.exception()
            if error is not None:
                if on_error is not None:
                    on_error(error)
                else:
                    logger.error(
                        "background scan failed",
                        exc_info=(type(error), error, error.__traceback__),
                    )
                return

            if on_done is not None:
                on_done(future.result())
