"""
Filter Predicate

Compiles a Query into a single boolean test over one Puzzle. Every check
looks at the puzzle alone, so the scanner can stay single-pass.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, AbstractSet, Callable, List, Optional, Tuple

from puzzles.puzzle_types import Puzzle, Query, ThemeMatch

if TYPE_CHECKING:
    from puzzles.favorites import FavoritesLedger


Check = Callable[[Puzzle], bool]


class Predicate:
    """A conjunction of named checks compiled from a Query."""

    __slots__ = ("query", "_checks")

    def __init__(self, query: Query, checks: List[Tuple[str, Check]]) -> None:
        self.query = query
        self._checks = checks

    @property
    def constraints(self) -> List[str]:
        """Names of the active checks, in evaluation order."""
        return [name for name, _ in self._checks]

    @property
    def matches_nothing(self) -> bool:
        """True when no puzzle can match (degenerate rating range)."""
        q = self.query
        return (
            q.min_rating is not None
            and q.max_rating is not None
            and q.min_rating > q.max_rating
        )

    def matches(self, puzzle: Puzzle) -> bool:
        for _, check in self._checks:
            if not check(puzzle):
                return False
        return True

    __call__ = matches

    def __repr__(self) -> str:
        return f"Predicate({', '.join(self.constraints) or 'any'})"


def _rating_check(low: Optional[int], high: Optional[int]) -> Check:
    if low is not None and high is not None:
        return lambda p: low <= p.rating <= high
    if low is not None:
        return lambda p: p.rating >= low
    return lambda p: p.rating <= high


def _theme_check(themes: frozenset, policy: ThemeMatch) -> Check:
    if policy == ThemeMatch.ALL:
        return lambda p: themes <= p.themes
    return lambda p: not themes.isdisjoint(p.themes)


def _opening_check(prefix: Tuple[str, ...]) -> Check:
    size = len(prefix)
    return lambda p: p.opening_tags[:size] == prefix


def compile_query(
    query: Query,
    favorites: Optional[FavoritesLedger] = None,
    seen: Optional[AbstractSet[str]] = None,
) -> Predicate:
    """
    Build the predicate for ``query``.

    Favorites and seen ids are read once here, so one scan always judges
    against the same snapshot even if the ledger changes mid-scan.

    Raises:
        ValueError: favorites_only without a ledger
    """
    checks: List[Tuple[str, Check]] = []

    if query.min_rating is not None or query.max_rating is not None:
        checks.append(("rating", _rating_check(query.min_rating, query.max_rating)))

    if query.min_popularity is not None:
        floor = query.min_popularity
        checks.append(("popularity", lambda p: p.popularity >= floor))

    if query.side is not None:
        side = query.side
        checks.append(("side", lambda p: p.solver_side == side))

    if query.themes:
        checks.append(("themes", _theme_check(query.themes, query.theme_match)))

    if query.opening_prefix:
        checks.append(("opening", _opening_check(query.opening_prefix)))

    if query.favorites_only:
        if favorites is None:
            raise ValueError("favorites_only query needs a favorites ledger")
        favorite_ids = favorites.list_favorite_ids()
        checks.append(("favorites", lambda p: p.puzzle_id in favorite_ids))

    if query.exclude_seen and seen:
        seen_ids = frozenset(seen)
        checks.append(("unseen", lambda p: p.puzzle_id not in seen_ids))

    return Predicate(query, checks)
