"""Shared corpus rows and fixtures for the puzzle engine tests."""

import threading
from contextlib import contextmanager

import pytest

from puzzles.config import Settings
from puzzles.decoder import LICHESS_SCHEMA

HEADER = LICHESS_SCHEMA.header_row()

# Knight takes on d5, black recaptures: solver is black
ROW_00008 = (
    "00008,r1bqkb1r/pp2pppp/2n2n2/3p4/3P4/2N2N2/PPP1PPPP/R1BQKB1R w KQkq - 0 6,"
    "c3d5 f6d5,900,75,90,1000,opening short,https://lichess.org/F8M8OS71#11,"
    "Queens_Pawn_Game Queens_Pawn_Game_Other"
)

# Pawn promotes with a reply before the final move: solver is white
ROW_PROMOTION = (
    "00100,7k/P7/8/8/8/8/8/K7 b - - 0 1,h8g7 a7a8q g7f6 a8a6,1500,80,95,500,"
    "advantage promotion endgame,,"
)

# Recorded mate is Ra8, Rb8 mates too: solver is white
ROW_BACK_RANK = (
    "00200,6k1/2p2ppp/8/8/8/8/8/RR4K1 b - - 0 1,c7c6 a1a8,1200,80,60,300,"
    "mate mateIn1 backRankMate endgame,,"
)

# Knight underpromotion is the recorded answer: solver is white
ROW_UNDERPROMOTION = (
    "00300,7k/P7/8/8/8/8/8/K7 b - - 0 1,h8g8 a7a8n,2100,80,40,200,"
    "underPromotion endgame,,"
)

# Sicilian with a two-level opening tag: solver is black
ROW_SICILIAN = (
    "00400,rnbqkbnr/pp1ppppp/8/2p5/4P3/8/PPPP1PPP/RNBQKBNR w KQkq c6 0 2,g1f3 d7d6,"
    "1700,75,85,700,opening,,Sicilian_Defense Sicilian_Defense_Old_Sicilian"
)

ALL_ROWS = [ROW_00008, ROW_PROMOTION, ROW_BACK_RANK, ROW_UNDERPROMOTION, ROW_SICILIAN]

MALFORMED_ROW = "00999,8/8/8/8/8/8/8/8 w - - 0 1,,1000"


def write_rows(path, rows, header=True):
    lines = ([HEADER] if header else []) + list(rows)
    path.write_text("\n".join(lines) + "\n", encoding="utf-8")
    return path


class BlockingSource:
    """Yields rows only after ``release`` is set."""

    name = "blocking"

    def __init__(self, rows):
        self.rows = rows
        self.started = threading.Event()
        self.release = threading.Event()

    @contextmanager
    def open_rows(self):
        self.started.set()
        self.release.wait(5)
        yield LICHESS_SCHEMA, iter(enumerate(self.rows, start=1))


@pytest.fixture
def corpus_path(tmp_path):
    """A small plain-text corpus with a header line."""
    return write_rows(tmp_path / "lichess_db_puzzle.csv", ALL_ROWS)


@pytest.fixture
def settings(tmp_path, corpus_path):
    return Settings(
        home_dir=tmp_path / "home",
        corpus_path=corpus_path,
        favorites_url=f"sqlite:///{tmp_path / 'favorites.db'}",
        scan_batch_size=2,
    )
