"""
Tests for selection and navigation over a search session.
"""

import unittest

from conftest import ALL_ROWS

from puzzles.decoder import decode
from puzzles.session import (
    Direction,
    SearchSession,
    SelectionMode,
    advance,
    current,
    jump,
    select,
)


def make_session():
    return SearchSession(puzzles=[decode(row) for row in ALL_ROWS])


class TestSelect(unittest.TestCase):

    def test_first_match_keeps_scan_order(self):
        session = make_session()
        ref = select(session, SelectionMode.FIRST_MATCH)

        self.assertEqual(ref.puzzle_id, "00008")
        self.assertEqual(ref.position, 0)
        self.assertTrue(ref.is_first)
        self.assertEqual(session.puzzle_ids, ["00008", "00100", "00200", "00300", "00400"])
        self.assertIsNone(session.seed)

    def test_same_seed_same_order(self):
        first = make_session()
        second = make_session()
        select(first, SelectionMode.RANDOM, seed=1234)
        select(second, SelectionMode.RANDOM, seed=1234)

        self.assertEqual(first.puzzle_ids, second.puzzle_ids)
        self.assertEqual(sorted(first.puzzle_ids), sorted(make_session().puzzle_ids))
        self.assertEqual(first.seed, 1234)

    def test_random_without_seed_records_one(self):
        session = make_session()
        select(session, SelectionMode.RANDOM)
        self.assertIsNotNone(session.seed)

        replay = make_session()
        select(replay, SelectionMode.RANDOM, seed=session.seed)
        self.assertEqual(replay.puzzle_ids, session.puzzle_ids)

    def test_select_resets_cursor(self):
        session = make_session()
        select(session)
        advance(session, Direction.NEXT)
        select(session, SelectionMode.RANDOM, seed=7)
        self.assertEqual(session.cursor, 0)

    def test_empty_session(self):
        session = SearchSession()
        self.assertIsNone(select(session, SelectionMode.RANDOM, seed=1))
        self.assertIsNone(current(session))
        self.assertIsNone(advance(session, Direction.NEXT))
        self.assertIsNone(advance(session, Direction.PREVIOUS))
        self.assertTrue(session.is_empty)


class TestNavigation(unittest.TestCase):

    def setUp(self):
        self.session = make_session()
        select(self.session)

    def test_previous_at_start_stays(self):
        self.assertIsNone(advance(self.session, Direction.PREVIOUS))
        self.assertEqual(self.session.cursor, 0)
        self.assertFalse(self.session.has_previous)

    def test_next_at_end_stays(self):
        for _ in range(4):
            self.assertIsNotNone(advance(self.session, Direction.NEXT))
        self.assertEqual(self.session.cursor, 4)
        self.assertFalse(self.session.has_next)

        self.assertIsNone(advance(self.session, Direction.NEXT))
        self.assertEqual(self.session.cursor, 4)
        self.assertTrue(current(self.session).is_last)

    def test_next_then_previous_returns_same_puzzle(self):
        start = current(self.session).puzzle_id
        advance(self.session, Direction.NEXT)
        ref = advance(self.session, Direction.PREVIOUS)
        self.assertEqual(ref.puzzle_id, start)

    def test_navigation_follows_shuffled_order(self):
        select(self.session, SelectionMode.RANDOM, seed=99)
        order = self.session.puzzle_ids
        seen = [current(self.session).puzzle_id]
        while self.session.has_next:
            seen.append(advance(self.session, "next").puzzle_id)
        self.assertEqual(seen, order)

    def test_jump_is_one_based(self):
        ref = jump(self.session, 3)
        self.assertEqual(ref.puzzle_id, "00200")
        self.assertEqual(self.session.cursor, 2)

    def test_jump_out_of_range(self):
        jump(self.session, 2)
        self.assertIsNone(jump(self.session, 0))
        self.assertIsNone(jump(self.session, 6))
        self.assertEqual(self.session.cursor, 1)


if __name__ == "__main__":
    unittest.main()
