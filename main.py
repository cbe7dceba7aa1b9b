#!/usr/bin/env python
"""
Offline Chess Puzzles: Fetch the Lichess puzzle corpus → Search → Solve
"""
import argparse
import logging
import sys
from pathlib import Path
from typing import List, Optional

import chess

from puzzles.analysis import EngineAnalyzer
from puzzles.config import Settings, get_settings
from puzzles.errors import (
    AttemptStateError,
    CorpusError,
    CorpusFetchError,
    EngineUnavailable,
    IllegalMoveError,
    PuzzleLoadError,
)
from puzzles.export import export_session_csv
from puzzles.fetch import ensure_corpus
from puzzles.logging_config import setup_logging
from puzzles.puzzle_types import Query, Side
from puzzles.service import PuzzleService
from puzzles.session import SearchSession, SelectionMode
from puzzles.verifier import AttemptState, PuzzleAttempt, Verdict

logger = logging.getLogger(__name__)

SOLVE_HELP = (
    "Enter a move (e2e4 or SAN), or: hint, solution, next, prev, goto N, "
    "fav, fen, eval, redo, quit\n"
    "Analysis: play MOVE, back, done"
)

PROMOTION_CHOICES = ("q", "r", "b", "n")


def add_filter_args(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--min-rating", type=int, help="Minimum puzzle rating (inclusive)")
    parser.add_argument("--max-rating", type=int, help="Maximum puzzle rating (inclusive)")
    parser.add_argument("--theme", action="append", default=[], help="Theme tag; repeat for several")
    parser.add_argument(
        "--all-themes",
        action="store_true",
        help="Require every --theme instead of any of them",
    )
    parser.add_argument("--opening", nargs="+", default=[], help="Opening tag prefix, family first")
    parser.add_argument("--side", choices=["white", "black"], help="Side the solver plays")
    parser.add_argument("--min-popularity", type=int, help="Minimum popularity")
    parser.add_argument("--limit", type=int, help="Maximum number of matches to keep")
    parser.add_argument("--favorites", action="store_true", help="Only favorited puzzles")
    parser.add_argument("--random", action="store_true", help="Shuffle the matches")
    parser.add_argument("--seed", type=int, help="Seed for the shuffle (implies --random)")


def build_query(args: argparse.Namespace) -> Query:
    return Query(
        min_rating=args.min_rating,
        max_rating=args.max_rating,
        themes=frozenset(args.theme),
        theme_match="all" if args.all_themes else "any",
        opening_prefix=tuple(args.opening),
        side=args.side,
        min_popularity=args.min_popularity,
        limit=args.limit,
        favorites_only=args.favorites,
    )


def selection_mode(args: argparse.Namespace) -> SelectionMode:
    if args.random or args.seed is not None:
        return SelectionMode.RANDOM
    return SelectionMode.FIRST_MATCH


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Search and solve Lichess puzzles offline")
    parser.add_argument("--corpus", help="Path to lichess_db_puzzle.csv (overrides OCP_CORPUS_PATH)")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("fetch", help="Download the puzzle corpus if it is missing")

    search = sub.add_parser("search", help="List puzzles matching the filters")
    add_filter_args(search)
    search.add_argument("--show", type=int, default=20, help="How many matches to print")
    search.add_argument("--export", help="Write the matches to this CSV file")

    solve = sub.add_parser("solve", help="Solve matching puzzles interactively")
    add_filter_args(solve)

    return parser.parse_args(argv)


# =============================================================================
# COMMANDS
# =============================================================================


def cmd_fetch(settings: Settings) -> int:
    print(f"\n📡 Checking puzzle corpus at {settings.corpus_path}...")

    last = [-1]

    def progress(percent: float) -> None:
        step = int(percent) // 10
        if step != last[0]:
            last[0] = step
            print(f"  ⬇️  {percent:5.1f}%")

    try:
        path = ensure_corpus(settings, on_progress=progress)
    except CorpusFetchError as e:
        print(f"❌ {e}")
        return 1
    print(f"✓ Corpus ready: {path}")
    return 0


def print_stats(session: SearchSession) -> None:
    stats = session.stats
    print(f"✓ {stats.matched} matches ({stats.rows_read} rows read, {stats.decode_failures} skipped)")
    if session.partial:
        print("⚠️  Search was cancelled; results are partial")
    if session.seed is not None:
        print(f"   Shuffle seed: {session.seed}")


def cmd_search(settings: Settings, args: argparse.Namespace) -> int:
    service = PuzzleService(settings)
    try:
        print("\n🔍 Searching...")
        session = service.search_blocking(build_query(args), selection_mode(args), args.seed)
        print_stats(session)

        print(f"\n{'#':>4}  {'Id':<8} {'Rating':>6} {'Pop':>4}  {'Side':<5}  Themes")
        print(f"{'-'*70}")
        for number, puzzle in enumerate(session.ordered()[: args.show], start=1):
            themes = " ".join(sorted(puzzle.themes))
            print(
                f"{number:>4}  {puzzle.puzzle_id:<8} {puzzle.rating:>6} {puzzle.popularity:>4}  "
                f"{puzzle.solver_side.value:<5}  {themes[:40]}"
            )

        if args.export:
            path = export_session_csv(session, args.export)
            print(f"\n✓ Saved {len(session)} puzzles to {path}")
        return 0
    except CorpusError as e:
        logger.error("search failed", extra={"corpus": str(settings.corpus_path), "error": str(e)})
        print(f"❌ {e}")
        if not settings.corpus_path.exists():
            print("   Run `main.py fetch` to download the corpus.")
        return 1
    finally:
        service.shutdown()


def show_puzzle(service: PuzzleService, attempt: PuzzleAttempt) -> None:
    session = service.session
    puzzle = attempt.puzzle
    print("\n" + "=" * 70)
    print(
        f"♟️  Puzzle {session.cursor + 1}/{len(session)}  {puzzle.puzzle_id}  "
        f"rating {puzzle.rating}  ({puzzle.solver_side.value} to play)"
    )
    print(f"   {puzzle.lichess_url}")
    print("=" * 70)
    print(f"Opponent played: {attempt.last_move}")
    show_board(attempt)


def show_board(attempt: PuzzleAttempt, board: Optional[chess.Board] = None) -> None:
    """Print ``board`` (the attempt's own by default) from the solver's side."""
    if board is None:
        board = attempt.board
    print()
    orientation = chess.WHITE if attempt.solver_side == Side.WHITE else chess.BLACK
    print(board.unicode(invert_color=True, borders=True, orientation=orientation))
    print()


def report(result) -> None:
    if result.verdict == Verdict.PROMOTION_REQUIRED:
        print("↗️  Promote to (q, r, b, n)?")
    elif result.verdict == Verdict.WRONG_MOVE:
        print(f"✗ {result.move} is not the move. Type `redo` to retry or `next` to move on.")
    elif result.verdict == Verdict.SOLVED:
        print(f"✅ {result.move} - solved!")
    else:
        print(f"✓ {result.move}! Opponent replies {result.opponent_reply}")


def analyze_position(settings: Settings, fen: str) -> None:
    try:
        with EngineAnalyzer.from_settings(settings) as engine:
            last = None
            for line in engine.analyze(fen):
                last = line
    except EngineUnavailable as e:
        print(f"❌ {e}")
        return
    if last is None:
        print("⚠️  Engine returned no evaluation")
        return
    score = f"mate in {last.mate}" if last.mate is not None else f"{last.score_cp / 100:+.2f}"
    print(f"🧠 depth {last.depth}: {score}  {' '.join(last.pv[:8])}")


def handle_analysis(service: PuzzleService, attempt: PuzzleAttempt, word: str, rest: str) -> None:
    """``play MOVE``, ``back`` and ``done`` on the free-play board."""
    if word == "done":
        service.close_analysis()
        print("🔙 Back to the puzzle")
        show_board(attempt)
        return

    board = service.analysis_board()
    if word == "play":
        try:
            san = board.push(rest)
        except IllegalMoveError as e:
            print(f"❌ {e}")
            return
        print(f"🔎 {san}")
    else:
        undone = board.takeback()
        if undone is None:
            print("⚠️  Already at the puzzle position")
            return
        print(f"↩️  Took back {undone}")
    show_board(attempt, board.board)


def handle_command(service: PuzzleService, settings: Settings, text: str) -> bool:
    """Run one solve-loop command; returns False to leave the loop."""
    attempt = service.attempt
    word, _, rest = text.partition(" ")
    word = word.lower()

    # A pending promotion reads the piece letter before anything else ("q" is also quit)
    if (
        attempt is not None
        and attempt.state == AttemptState.AWAITING_PROMOTION_CHOICE
        and word in PROMOTION_CHOICES + ("cancel",)
    ):
        if word == "cancel":
            attempt.cancel_promotion()
            print("↩️  Promotion cancelled")
            return True
        result = attempt.choose_promotion(word)
        report(result)
        if result.verdict in (Verdict.CORRECT, Verdict.SOLVED):
            show_board(attempt)
        return True

    if word in ("quit", "q", "exit"):
        return False

    if word in ("next", "prev", "goto"):
        try:
            if word == "next":
                loaded = service.next_puzzle()
            elif word == "prev":
                loaded = service.previous_puzzle()
            else:
                loaded = service.jump_to(int(rest))
        except ValueError:
            print("❌ Usage: goto N")
            return True
        except PuzzleLoadError as e:
            print(f"❌ {e}")
            return True
        if loaded is None:
            print("⚠️  No puzzle there")
        else:
            show_puzzle(service, loaded)
        return True

    if attempt is None:
        print("⚠️  No puzzle loaded")
        return True

    if word == "hint":
        hint = attempt.hint()
        print(f"💡 Move the piece on {hint}" if hint else "Nothing to hint")
    elif word == "solution":
        print("📖 " + " ".join(attempt.solution_san()))
    elif word == "fav":
        favorited = service.toggle_favorite()
        print("⭐ Added to favorites" if favorited else "☆ Removed from favorites")
    elif word == "fen":
        print(service.analysis_fen())
    elif word == "eval":
        analyze_position(settings, service.analysis_fen())
    elif word in ("play", "back", "done"):
        handle_analysis(service, attempt, word, rest)
    elif word == "redo":
        service.close_analysis()
        attempt.restart()
        show_board(attempt)
    elif word in ("help", "?"):
        print(SOLVE_HELP)
    else:
        try:
            if attempt.state == AttemptState.AWAITING_PROMOTION_CHOICE:
                result = attempt.choose_promotion(text)
            else:
                result = attempt.submit_move(text)
        except IllegalMoveError as e:
            print(f"❌ {e}")
            return True
        except AttemptStateError:
            print("⚠️  This puzzle is over. Type `next`, `redo` or `quit`.")
            return True
        report(result)
        if result.verdict in (Verdict.CORRECT, Verdict.SOLVED):
            show_board(attempt)
    return True


def cmd_solve(settings: Settings, args: argparse.Namespace) -> int:
    service = PuzzleService(settings)
    try:
        print("\n🔍 Searching...")
        session = service.search_blocking(build_query(args), selection_mode(args), args.seed)
        print_stats(session)
        if session.is_empty:
            print("❌ No puzzles match these filters")
            return 1

        try:
            attempt = service.load_current()
        except PuzzleLoadError as e:
            print(f"❌ {e}")
            attempt = None
        if attempt is not None:
            show_puzzle(service, attempt)
        print(SOLVE_HELP)

        while True:
            try:
                text = input("\n> ").strip()
            except EOFError:
                break
            if text and not handle_command(service, settings, text):
                break
        return 0
    except CorpusError as e:
        logger.error("search failed", extra={"corpus": str(settings.corpus_path), "error": str(e)})
        print(f"❌ {e}")
        return 1
    except KeyboardInterrupt:
        print("\n⏸️  Interrupted by user")
        return 1
    finally:
        service.shutdown()


def main(argv: Optional[List[str]] = None) -> int:
    args = parse_args(argv)
    settings = get_settings()
    if args.corpus:
        settings = settings.model_copy(update={"corpus_path": Path(args.corpus)})
    setup_logging(settings)

    if args.command == "fetch":
        return cmd_fetch(settings)
    if args.command == "search":
        return cmd_search(settings, args)
    return cmd_solve(settings, args)


if __name__ == '__main__':
    sys.exit(main())
