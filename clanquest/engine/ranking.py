"""
clanquest.engine.ranking — Standard Competition Ranking
========================================================

Pure functions, no DB I/O.  Entries are ordered by points descending; equal
points share a rank and ties consume rank slots::

    points  [100, 80, 80, 50]
    ranks   [  1,  2,  2,  4]

Ties are ordered by ``entry_id`` (creation order) so repeated calls over the
same input produce the same ordering.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass

__all__ = ["RankedEntry", "compute_competition_ranks", "order_entries", "rank_for_points"]


@dataclass(frozen=True, slots=True)
class RankedEntry:
    """Input row for the ranking engine."""

    entry_id: int
    points: float


def order_entries(entries: Iterable[RankedEntry]) -> list[RankedEntry]:
    """Sort by points descending, then entry id ascending."""
    return sorted(entries, key=lambda e: (-e.points, e.entry_id))


def compute_competition_ranks(entries: Iterable[RankedEntry]) -> dict[int, int]:
    """Return ``{entry_id: rank}`` (1-based) for every entry.

    An empty input yields an empty mapping.  Negative totals are ranked like
    any other value.
    """
    ranks: dict[int, int] = {}
    previous_points: float | None = None
    current_rank = 0

    for position, entry in enumerate(order_entries(entries), start=1):
        if previous_points is None or entry.points != previous_points:
            current_rank = position
            previous_points = entry.points
        ranks[entry.entry_id] = current_rank

    return ranks


def rank_for_points(points: float, all_points: Sequence[float]) -> int:
    """Rank a total of *points* would hold among *all_points*.

    Equals ``1 + number of totals strictly greater``.
    """
    return 1 + sum(1 for p in all_points if p > points)
