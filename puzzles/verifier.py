"""
Move Verifier

Drives one solving attempt: reveals the opponent's first move, checks each
submitted move against the recorded line, auto-plays the opponent replies
and handles promotion choices. AnalysisBoard is the free-play board used to
explore a position once the attempt is set aside.

Lifecycle:
    AWAITING_OPPONENT_REVEAL -> AWAITING_SOLVER_MOVE
    AWAITING_SOLVER_MOVE -> AWAITING_PROMOTION_CHOICE | SOLVED | FAILED
    AWAITING_PROMOTION_CHOICE -> AWAITING_SOLVER_MOVE | SOLVED | FAILED

Illegal input never changes the state; a legal move that deviates from the
line ends the attempt as FAILED without touching the board.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Union

import chess

from puzzles.errors import AttemptStateError, IllegalMoveError, PuzzleLoadError
from puzzles.puzzle_types import Puzzle, Side


class AttemptState(str, Enum):
    AWAITING_OPPONENT_REVEAL = "awaiting_opponent_reveal"
    AWAITING_SOLVER_MOVE = "awaiting_solver_move"
    AWAITING_PROMOTION_CHOICE = "awaiting_promotion_choice"
    SOLVED = "solved"
    FAILED = "failed"


class Verdict(str, Enum):
    """Outcome of one submitted move."""
    CORRECT = "correct"
    SOLVED = "solved"
    PROMOTION_REQUIRED = "promotion_required"
    WRONG_MOVE = "wrong_move"


@dataclass(frozen=True)
class MoveResult:
    verdict: Verdict
    move: str
    # Recorded move at the point of submission (None while a promotion is pending)
    expected: Optional[str]
    # Opponent reply played automatically after a correct move
    opponent_reply: Optional[str]
    state: AttemptState

    def to_dict(self) -> dict:
        return {
            "verdict": self.verdict.value,
            "move": self.move,
            "expected": self.expected,
            "opponent_reply": self.opponent_reply,
            "state": self.state.value,
        }


_PROMOTION_PIECES = {
    "q": chess.QUEEN,
    "r": chess.ROOK,
    "b": chess.BISHOP,
    "n": chess.KNIGHT,
}


def parse_promotion(piece: Union[str, int]) -> int:
    """Map "q"/"r"/"b"/"n" (or a python-chess piece type) to a piece type."""
    if isinstance(piece, int):
        if piece in _PROMOTION_PIECES.values():
            return piece
    else:
        piece_type = _PROMOTION_PIECES.get(piece.strip().lower())
        if piece_type is not None:
            return piece_type
    raise IllegalMoveError(str(piece), "invalid promotion piece")


def parse_move(board: chess.Board, text: str) -> chess.Move:
    """
    Parse coordinate notation (or SAN) against ``board``.

    A pawn move to the last rank written without a piece, ``a7a8`` or
    ``a8``, comes back with ``promotion=None``. Coordinate input is not
    checked for legality here.
    """
    text = text.strip()
    try:
        move = chess.Move.from_uci(text)
    except ValueError:
        move = _parse_san(board, text)
    if not move:
        raise IllegalMoveError(text, "null move")
    return move


def _parse_san(board: chess.Board, text: str) -> chess.Move:
    try:
        return board.parse_san(text)
    except ValueError as e:
        if "=" in text:
            raise IllegalMoveError(text, "unrecognized move") from e
        try:
            move = board.parse_san(text.rstrip("+#") + "=Q")
        except ValueError:
            raise IllegalMoveError(text, "unrecognized move") from e
    # Promotion written without a piece
    return chess.Move(move.from_square, move.to_square)


class AnalysisBoard:
    """
    Free play from a puzzle position.

    Any legal move can be pushed; takebacks stop at the starting position.
    """

    def __init__(self, fen: str) -> None:
        self._board = chess.Board(fen)
        self.start_fen = self._board.fen()

    @property
    def board(self) -> chess.Board:
        return self._board.copy()

    @property
    def moves(self) -> List[str]:
        return [move.uci() for move in self._board.move_stack]

    @property
    def at_start(self) -> bool:
        return not self._board.move_stack

    def push(self, move: str, promotion: Optional[Union[str, int]] = None) -> str:
        """
        Play ``move`` and return it in SAN.

        Raises:
            IllegalMoveError: unparsable, illegal, or a promotion without a piece
        """
        candidate = parse_move(self._board, move)
        if promotion is not None and candidate.promotion is None:
            candidate = chess.Move(candidate.from_square, candidate.to_square, parse_promotion(promotion))
        try:
            candidate = self._board.parse_uci(candidate.uci())
        except ValueError as e:
            if chess.Move(candidate.from_square, candidate.to_square, chess.QUEEN) in self._board.legal_moves:
                raise IllegalMoveError(move.strip(), "promotion piece required") from e
            raise IllegalMoveError(move.strip()) from e
        san = self._board.san(candidate)
        self._board.push(candidate)
        return san

    def takeback(self) -> Optional[str]:
        """Undo the last move; None when already at the starting position."""
        if self.at_start:
            return None
        return self._board.pop().uci()

    def reset(self) -> None:
        self._board = chess.Board(self.start_fen)

    def export_fen(self) -> str:
        return self._board.fen()

    def __repr__(self) -> str:
        return f"AnalysisBoard({self.export_fen()!r}, moves={len(self._board.move_stack)})"


class PuzzleAttempt:
    """Live solving state for one loaded puzzle."""

    def __init__(self, puzzle: Puzzle, accept_alternative_mates: bool = False) -> None:
        self.puzzle = puzzle
        # Any checkmating move solves, even when another mate is recorded
        self.accept_alternative_mates = accept_alternative_mates

        try:
            self._start = chess.Board(puzzle.initial_fen)
        except ValueError as e:
            raise PuzzleLoadError(f"puzzle {puzzle.puzzle_id}: invalid FEN: {e}") from e
        self._line = self._replay_line()

        self._board = self._start.copy()
        self.current_index = 0
        self.state = AttemptState.AWAITING_OPPONENT_REVEAL
        self._pending: Optional[chess.Move] = None

    @classmethod
    def start(cls, puzzle: Puzzle, accept_alternative_mates: bool = False) -> PuzzleAttempt:
        """Load ``puzzle`` and play the opponent's revealing move."""
        attempt = cls(puzzle, accept_alternative_mates=accept_alternative_mates)
        attempt.reveal()
        return attempt

    def _replay_line(self) -> List[chess.Move]:
        board = self._start.copy()
        line: List[chess.Move] = []
        for ply, uci in enumerate(self.puzzle.solution_moves):
            try:
                move = chess.Move.from_uci(uci)
            except ValueError:
                move = chess.Move.null()
            if not move or move not in board.legal_moves:
                raise PuzzleLoadError(
                    f"puzzle {self.puzzle.puzzle_id}: recorded move {ply + 1} ({uci}) is illegal"
                )
            board.push(move)
            line.append(move)
        return line

    # ─── Properties ───

    @property
    def board(self) -> chess.Board:
        """Copy of the current position."""
        return self._board.copy()

    @property
    def solver_side(self) -> Side:
        return self.puzzle.solver_side

    @property
    def is_finished(self) -> bool:
        return self.state in (AttemptState.SOLVED, AttemptState.FAILED)

    @property
    def last_move(self) -> Optional[str]:
        """Last move applied to the board, for highlighting."""
        if not self._board.move_stack:
            return None
        return self._board.peek().uci()

    @property
    def pending_move(self) -> Optional[str]:
        """Origin and destination of a move waiting for its promotion piece."""
        return self._pending.uci() if self._pending is not None else None

    @property
    def expected_move(self) -> Optional[str]:
        """The recorded move the solver has to find next, or None."""
        if self.state in (AttemptState.AWAITING_OPPONENT_REVEAL, AttemptState.SOLVED):
            return None
        if self.current_index >= len(self._line):
            return None
        return self.puzzle.solution_moves[self.current_index]

    @property
    def expected_move_san(self) -> Optional[str]:
        if self.expected_move is None:
            return None
        return self._board.san(self._line[self.current_index])

    # ─── Transitions ───

    def reveal(self) -> None:
        """Play ``solution_moves[0]``, the opponent move that sets up the tactic."""
        self._require(AttemptState.AWAITING_OPPONENT_REVEAL)
        self._board.push(self._line[0])
        self.current_index = 1
        self.state = self._state_after_opponent()

    def restart(self) -> None:
        """Go back to the position right after the reveal."""
        self._board = self._start.copy()
        self._pending = None
        self.current_index = 0
        self.state = AttemptState.AWAITING_OPPONENT_REVEAL
        self.reveal()

    def submit_move(self, move: str, promotion: Optional[Union[str, int]] = None) -> MoveResult:
        """
        Check the solver's move against the recorded line.

        ``move`` is coordinate notation (SAN is accepted too). A pawn move to
        the last rank without a piece, neither in ``move`` nor ``promotion``,
        returns PROMOTION_REQUIRED and waits for :meth:`choose_promotion`.

        Raises:
            AttemptStateError: not awaiting a solver move
            IllegalMoveError: unparsable or illegal in the current position
        """
        self._require(AttemptState.AWAITING_SOLVER_MOVE)
        candidate = self._parse(move)

        if promotion is not None and candidate.promotion is None:
            candidate = chess.Move(candidate.from_square, candidate.to_square, parse_promotion(promotion))

        if candidate.promotion is None and self._is_promotion_square(candidate):
            self._pending = candidate
            self.state = AttemptState.AWAITING_PROMOTION_CHOICE
            return MoveResult(
                verdict=Verdict.PROMOTION_REQUIRED,
                move=candidate.uci(),
                expected=None,
                opponent_reply=None,
                state=self.state,
            )

        candidate = self._legal(candidate, move)
        return self._evaluate(candidate)

    def choose_promotion(self, piece: Union[str, int]) -> MoveResult:
        """Complete the pending promotion and evaluate the move."""
        self._require(AttemptState.AWAITING_PROMOTION_CHOICE)
        pending = self._pending
        move = chess.Move(pending.from_square, pending.to_square, parse_promotion(piece))
        if move not in self._board.legal_moves:
            raise IllegalMoveError(move.uci())

        self._pending = None
        self.state = AttemptState.AWAITING_SOLVER_MOVE
        return self._evaluate(move)

    def cancel_promotion(self) -> None:
        self._require(AttemptState.AWAITING_PROMOTION_CHOICE)
        self._pending = None
        self.state = AttemptState.AWAITING_SOLVER_MOVE

    # ─── Read-only helpers ───

    def hint(self) -> Optional[str]:
        """Origin square of the expected move."""
        expected = self.expected_move
        if expected is None:
            return None
        return expected[:2]

    def solution_san(self) -> List[str]:
        """Remaining recorded moves in SAN, starting from the current position."""
        board = self._board.copy()
        sans: List[str] = []
        for move in self._line[self.current_index:]:
            sans.append(board.san(move))
            board.push(move)
        return sans

    def export_fen(self) -> str:
        """Current position, for handing to an analysis engine."""
        return self._board.fen()

    # ─── Internals ───

    def _require(self, state: AttemptState) -> None:
        if self.state != state:
            raise AttemptStateError(f"expected state {state.value}, attempt is {self.state.value}")

    def _state_after_opponent(self) -> AttemptState:
        if self.current_index >= len(self._line):
            return AttemptState.SOLVED
        return AttemptState.AWAITING_SOLVER_MOVE

    def _parse(self, text: str) -> chess.Move:
        return parse_move(self._board, text)

    def _is_promotion_square(self, move: chess.Move) -> bool:
        if self._board.piece_type_at(move.from_square) != chess.PAWN:
            return False
        if chess.square_rank(move.to_square) not in (0, 7):
            return False
        return chess.Move(move.from_square, move.to_square, chess.QUEEN) in self._board.legal_moves

    def _legal(self, move: chess.Move, text: str) -> chess.Move:
        # parse_uci also normalizes king-takes-rook castling notation
        try:
            return self._board.parse_uci(move.uci())
        except ValueError as e:
            raise IllegalMoveError(text.strip()) from e

    def _gives_mate(self, move: chess.Move) -> bool:
        self._board.push(move)
        try:
            return self._board.is_checkmate()
        finally:
            self._board.pop()

    def _evaluate(self, move: chess.Move) -> MoveResult:
        expected_move = self._line[self.current_index]
        expected = self.puzzle.solution_moves[self.current_index]

        if move != expected_move:
            if not (self.accept_alternative_mates and self._gives_mate(move)):
                self.state = AttemptState.FAILED
                return MoveResult(
                    verdict=Verdict.WRONG_MOVE,
                    move=move.uci(),
                    expected=expected,
                    opponent_reply=None,
                    state=self.state,
                )
            # A different mate ends the game, so the rest of the line is moot
            self._board.push(move)
            self.current_index = len(self._line)
            self.state = AttemptState.SOLVED
            return MoveResult(Verdict.SOLVED, move.uci(), expected, None, self.state)

        self._board.push(move)
        self.current_index += 1
        if self.current_index >= len(self._line):
            self.state = AttemptState.SOLVED
            return MoveResult(Verdict.SOLVED, move.uci(), expected, None, self.state)

        reply = self._line[self.current_index]
        self._board.push(reply)
        self.current_index += 1
        self.state = self._state_after_opponent()
        verdict = Verdict.SOLVED if self.state == AttemptState.SOLVED else Verdict.CORRECT
        return MoveResult(verdict, move.uci(), expected, reply.uci(), self.state)

    def __repr__(self) -> str:
        return (
            f"PuzzleAttempt({self.puzzle.puzzle_id!r}, state={self.state.value}, "
            f"index={self.current_index}/{len(self._line)})"
        )
