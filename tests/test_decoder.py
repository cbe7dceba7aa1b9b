"""
Tests for the corpus record decoder and column schema.
"""

import unittest

from conftest import ROW_00008, ROW_PROMOTION, ROW_SICILIAN

from puzzles.decoder import (
    LICHESS_SCHEMA,
    ColumnSchema,
    decode,
    encode,
    encode_row,
    split_row,
)
from puzzles.errors import (
    CorpusUnreadable,
    InvalidMove,
    InvalidNumber,
    MalformedRow,
    SchemaError,
)
from puzzles.puzzle_types import Side


class TestDecode(unittest.TestCase):

    def test_decodes_all_fields(self):
        puzzle = decode(ROW_00008)

        self.assertEqual(puzzle.puzzle_id, "00008")
        self.assertEqual(
            puzzle.initial_fen,
            "r1bqkb1r/pp2pppp/2n2n2/3p4/3P4/2N2N2/PPP1PPPP/R1BQKB1R w KQkq - 0 6",
        )
        self.assertEqual(puzzle.solution_moves, ("c3d5", "f6d5"))
        self.assertEqual(puzzle.rating, 900)
        self.assertEqual(puzzle.rating_deviation, 75)
        self.assertEqual(puzzle.popularity, 90)
        self.assertEqual(puzzle.play_count, 1000)
        self.assertEqual(puzzle.themes, frozenset({"opening", "short"}))
        self.assertEqual(puzzle.game_url, "https://lichess.org/F8M8OS71#11")
        self.assertEqual(puzzle.opening_tags, ("Queens_Pawn_Game", "Queens_Pawn_Game_Other"))

    def test_sides(self):
        puzzle = decode(ROW_00008)
        self.assertEqual(puzzle.side_to_move, Side.WHITE)
        self.assertEqual(puzzle.solver_side, Side.BLACK)
        self.assertEqual(decode(ROW_PROMOTION).solver_side, Side.WHITE)

    def test_lichess_url(self):
        self.assertEqual(decode(ROW_00008).lichess_url, "https://lichess.org/training/00008")

    def test_missing_optional_columns(self):
        row = "abc12,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2 h1h2,1000,80,50,10,endgame"
        puzzle = decode(row)
        self.assertEqual(puzzle.opening_tags, ())
        self.assertEqual(puzzle.game_url, "")

    def test_empty_themes_allowed(self):
        row = "abc12,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2,1000,80,50,10,,,"
        self.assertEqual(decode(row).themes, frozenset())

    def test_opening_tags_split_on_slash(self):
        row = "abc12,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2,1000,80,50,10,x,,French/French_Winawer"
        self.assertEqual(decode(row).opening_tags, ("French", "French_Winawer"))

    def test_row_number_kept_on_error(self):
        with self.assertRaises(MalformedRow) as ctx:
            decode("only,three,columns", row_number=42)
        self.assertEqual(ctx.exception.row_number, 42)


class TestDecodeErrors(unittest.TestCase):

    def test_missing_columns(self):
        with self.assertRaises(MalformedRow):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2,1000")

    def test_empty_move_list(self):
        with self.assertRaises(MalformedRow):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,,1000,80,50,10,x")

    def test_fen_without_side(self):
        with self.assertRaises(MalformedRow):
            decode("00001,8/8/8/8/8/8/8/K6k,a1a2,1000,80,50,10,x")

    def test_fen_with_bad_side(self):
        with self.assertRaises(MalformedRow):
            decode("00001,8/8/8/8/8/8/8/K6k x - - 0 1,a1a2,1000,80,50,10,x")

    def test_san_move_rejected(self):
        with self.assertRaises(InvalidMove):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,Ka2,1000,80,50,10,x")

    def test_bad_promotion_letter(self):
        with self.assertRaises(InvalidMove):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,a7a8k,1000,80,50,10,x")

    def test_non_integer_rating(self):
        with self.assertRaises(InvalidNumber):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2,high,80,50,10,x")

    def test_empty_popularity(self):
        with self.assertRaises(MalformedRow):
            decode("00001,8/8/8/8/8/8/8/K6k w - - 0 1,a1a2,1000,80,,10,x")


class TestEncode(unittest.TestCase):

    def test_round_trip_keeps_id_rating_moves(self):
        for row in (ROW_00008, ROW_PROMOTION, ROW_SICILIAN):
            puzzle = decode(row)
            again = decode(encode_row(puzzle))
            self.assertEqual(again.puzzle_id, puzzle.puzzle_id)
            self.assertEqual(again.rating, puzzle.rating)
            self.assertEqual(again.solution_moves, puzzle.solution_moves)
            self.assertEqual(again, puzzle)

    def test_encode_column_order(self):
        fields = encode(decode(ROW_00008))
        self.assertEqual(len(fields), LICHESS_SCHEMA.width)
        self.assertEqual(fields[0], "00008")
        self.assertEqual(fields[2], "c3d5 f6d5")
        self.assertEqual(fields[7], "opening short")


class TestColumnSchema(unittest.TestCase):

    def test_header_in_other_order(self):
        schema = ColumnSchema.from_header(
            ["Rating", "PuzzleId", "Moves", "FEN", "Themes",
             "NbPlays", "Popularity", "RatingDeviation", "Extra"]
        )
        row = "1234,zz001,e2e4 e7e5,rnbqkbnr/pppppppp/8/8/8/8/PPPPPPPP/RNBQKBNR w KQkq - 0 1,opening,7,88,70,ignored"
        puzzle = decode(row, schema)
        self.assertEqual(puzzle.puzzle_id, "zz001")
        self.assertEqual(puzzle.rating, 1234)
        self.assertEqual(puzzle.play_count, 7)
        self.assertEqual(puzzle.opening_tags, ())

    def test_missing_required_column(self):
        with self.assertRaises(SchemaError):
            ColumnSchema.from_header(["PuzzleId", "FEN", "Moves", "Rating"])

    def test_schema_error_is_corpus_unreadable(self):
        self.assertTrue(issubclass(SchemaError, CorpusUnreadable))

    def test_duplicate_column(self):
        with self.assertRaises(SchemaError):
            ColumnSchema.from_header(list(LICHESS_SCHEMA.columns) + ["Rating"])

    def test_looks_like_header(self):
        self.assertTrue(ColumnSchema.looks_like_header(list(LICHESS_SCHEMA.columns)))
        self.assertTrue(ColumnSchema.looks_like_header(["\ufeffPuzzleId", "FEN"]))
        self.assertFalse(ColumnSchema.looks_like_header(split_row(ROW_00008)))

    def test_lichess_header_row(self):
        self.assertEqual(
            LICHESS_SCHEMA.header_row(),
            "PuzzleId,FEN,Moves,Rating,RatingDeviation,Popularity,NbPlays,Themes,GameUrl,OpeningTags",
        )


if __name__ == "__main__":
    unittest.main()
