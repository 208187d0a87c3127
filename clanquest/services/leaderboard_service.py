"""
clanquest.services.leaderboard_service — Points & Rank Recomputation
=====================================================================

Every write to a leaderboard follows the same sequence inside one
transaction:

  1. Lock the ``leaderboards`` row (``SELECT … FOR UPDATE``)
  2. Mutate entries (award points / insert a zero-point entry)
  3. Recompute ranks for the whole board via :mod:`clanquest.engine.ranking`
  4. Persist only the ranks that changed
  5. Commit

The row lock serializes writers per leaderboard, so the committed ranks always
match the committed points.  Awards are cumulative: ``points += delta``.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from clanquest.database.engine import get_session
from clanquest.database.models import (
    Campaign,
    Clan,
    Leaderboard,
    LeaderboardEntry,
    LeaderboardScope,
    User,
)
from clanquest.engine.eligibility import utcnow
from clanquest.engine.ranking import RankedEntry, compute_competition_ranks, rank_for_points
from clanquest.errors import InvalidDelta, NotFound, UserNotInLeaderboard

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class EntryView:
    entry_id: int
    leaderboard_id: int
    user_id: int
    user_name: str
    points: float
    rank: int

    @classmethod
    def from_row(cls, row: LeaderboardEntry) -> EntryView:
        return cls(
            entry_id=row.id,
            leaderboard_id=row.leaderboard_id,
            user_id=row.user_id,
            user_name=row.user_name,
            points=row.points,
            rank=row.rank,
        )


@dataclass(frozen=True, slots=True)
class LeaderboardView:
    leaderboard_id: int
    scope: LeaderboardScope
    owner_id: int
    owner_title: str
    total_participants: int
    page: int
    page_size: int
    entries: list[EntryView]
    user_entry: EntryView | None
    last_ranked_at: datetime | None
    joining_rank: int | None = None


@dataclass(frozen=True, slots=True)
class UserPosition:
    leaderboard_id: int
    scope: LeaderboardScope
    owner_id: int
    owner_title: str
    rank: int
    points: float
    total_participants: int


# ---------------------------------------------------------------------------
# In-session helpers (also used by the join flows)
# ---------------------------------------------------------------------------
def lock_leaderboard(
    session: Session,
    *,
    leaderboard_id: int | None = None,
    campaign_id: int | None = None,
    clan_id: int | None = None,
) -> Leaderboard:
    """Select one leaderboard ``FOR UPDATE`` by id or by owner."""
    stmt = select(Leaderboard).with_for_update()
    if leaderboard_id is not None:
        stmt = stmt.where(Leaderboard.id == leaderboard_id)
    elif campaign_id is not None:
        stmt = stmt.where(Leaderboard.campaign_id == campaign_id)
    elif clan_id is not None:
        stmt = stmt.where(Leaderboard.clan_id == clan_id)
    else:
        raise ValueError("lock_leaderboard needs an id or an owner")

    board = session.scalar(stmt)
    if board is None:
        raise NotFound("Leaderboard not found")
    return board


def add_entry(session: Session, board: Leaderboard, user: User) -> LeaderboardEntry:
    """Insert a zero-point entry, capturing the user's current display name."""
    entry = LeaderboardEntry(
        leaderboard_id=board.id,
        user_id=user.id,
        user_name=user.display_name,
        points=0.0,
        rank=0,
    )
    session.add(entry)
    session.flush()
    return entry


def recalculate_ranks(session: Session, board: Leaderboard, now: datetime | None = None) -> int:
    """Recompute and persist ranks for *board*.  Returns the number of rows changed.

    Caller must hold the lock from :func:`lock_leaderboard`.
    """
    entries = session.scalars(
        select(LeaderboardEntry).where(LeaderboardEntry.leaderboard_id == board.id)
    ).all()
    ranks = compute_competition_ranks(
        RankedEntry(entry_id=e.id, points=e.points) for e in entries
    )

    changed = 0
    for entry in entries:
        new_rank = ranks[entry.id]
        if entry.rank != new_rank:
            entry.rank = new_rank
            changed += 1

    board.last_ranked_at = now or utcnow()
    session.flush()
    return changed


def _validate_delta(delta: float) -> float:
    if isinstance(delta, bool) or not isinstance(delta, (int, float)):
        raise InvalidDelta()
    if not math.isfinite(delta) or delta <= 0:
        raise InvalidDelta()
    return float(delta)


def _owner(session: Session, board: Leaderboard) -> tuple[int, str]:
    if board.campaign_id is not None:
        campaign = session.get(Campaign, board.campaign_id)
        return board.campaign_id, campaign.title if campaign else ""
    clan = session.get(Clan, board.clan_id)
    return board.clan_id, clan.title if clan else ""


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------
def award_points(
    engine: Engine,
    *,
    leaderboard_id: int,
    user_id: int,
    delta: float,
    now: datetime | None = None,
) -> EntryView:
    """Add *delta* points to the user's entry and re-rank the board.

    Raises :class:`InvalidDelta` for non-positive or non-finite deltas and
    :class:`UserNotInLeaderboard` when the user never joined.
    """
    delta = _validate_delta(delta)

    with get_session(engine) as session:
        board = lock_leaderboard(session, leaderboard_id=leaderboard_id)
        entry = session.scalar(
            select(LeaderboardEntry).where(
                LeaderboardEntry.leaderboard_id == board.id,
                LeaderboardEntry.user_id == user_id,
            )
        )
        if entry is None:
            raise UserNotInLeaderboard()

        new_total = entry.points + delta
        if not math.isfinite(new_total):
            raise InvalidDelta("Award would overflow the entry's point total")
        entry.points = new_total
        session.flush()
        recalculate_ranks(session, board, now)

        logger.info(
            "Awarded %s pts to user %s on board %s → total=%s rank=%s",
            delta, user_id, board.id, entry.points, entry.rank,
        )
        return EntryView.from_row(entry)


def resolve_leaderboard_id(
    engine: Engine,
    *,
    campaign_id: int | None = None,
    clan_id: int | None = None,
) -> int:
    """Map a campaign or clan id to its leaderboard id."""
    with get_session(engine) as session:
        if campaign_id is not None:
            board_id = session.scalar(
                select(Leaderboard.id).where(Leaderboard.campaign_id == campaign_id)
            )
        elif clan_id is not None:
            board_id = session.scalar(
                select(Leaderboard.id).where(Leaderboard.clan_id == clan_id)
            )
        else:
            raise ValueError("resolve_leaderboard_id needs a campaign_id or clan_id")
        if board_id is None:
            raise NotFound("Leaderboard not found")
        return board_id


def get_leaderboard(
    engine: Engine,
    *,
    leaderboard_id: int,
    user_id: int | None = None,
    page: int = 1,
    page_size: int = 50,
) -> LeaderboardView:
    """Paginated ranked entries, plus the requesting user's own entry if any.

    A requesting user who is not on the board gets ``joining_rank``: the
    place a zero-point entry would take right now.
    """
    with get_session(engine) as session:
        board = session.get(Leaderboard, leaderboard_id)
        if board is None:
            raise NotFound("Leaderboard not found")

        total = session.scalar(
            select(func.count())
            .select_from(LeaderboardEntry)
            .where(LeaderboardEntry.leaderboard_id == board.id)
        ) or 0

        offset = (page - 1) * page_size
        rows = session.scalars(
            select(LeaderboardEntry)
            .where(LeaderboardEntry.leaderboard_id == board.id)
            .order_by(LeaderboardEntry.rank, LeaderboardEntry.id)
            .offset(offset)
            .limit(page_size)
        ).all()

        user_entry = None
        joining_rank = None
        if user_id is not None:
            mine = session.scalar(
                select(LeaderboardEntry).where(
                    LeaderboardEntry.leaderboard_id == board.id,
                    LeaderboardEntry.user_id == user_id,
                )
            )
            if mine is not None:
                user_entry = EntryView.from_row(mine)
            else:
                # where a zero-point newcomer would land
                all_points = session.scalars(
                    select(LeaderboardEntry.points)
                    .where(LeaderboardEntry.leaderboard_id == board.id)
                ).all()
                joining_rank = rank_for_points(0.0, all_points)

        owner_id, owner_title = _owner(session, board)
        return LeaderboardView(
            leaderboard_id=board.id,
            scope=board.scope,
            owner_id=owner_id,
            owner_title=owner_title,
            total_participants=total,
            page=page,
            page_size=page_size,
            entries=[EntryView.from_row(r) for r in rows],
            user_entry=user_entry,
            last_ranked_at=board.last_ranked_at,
            joining_rank=joining_rank,
        )


def get_user_positions(engine: Engine, user_id: int) -> list[UserPosition]:
    """The user's rank and points on every board they appear on."""
    with get_session(engine) as session:
        counts = (
            select(
                LeaderboardEntry.leaderboard_id.label("board_id"),
                func.count().label("cnt"),
            )
            .group_by(LeaderboardEntry.leaderboard_id)
            .subquery()
        )
        rows = session.execute(
            select(LeaderboardEntry, Leaderboard, counts.c.cnt)
            .join(Leaderboard, Leaderboard.id == LeaderboardEntry.leaderboard_id)
            .join(counts, counts.c.board_id == LeaderboardEntry.leaderboard_id)
            .where(LeaderboardEntry.user_id == user_id)
            .order_by(LeaderboardEntry.id)
        ).all()

        positions = []
        for entry, board, cnt in rows:
            owner_id, owner_title = _owner(session, board)
            positions.append(UserPosition(
                leaderboard_id=board.id,
                scope=board.scope,
                owner_id=owner_id,
                owner_title=owner_title,
                rank=entry.rank,
                points=entry.points,
                total_participants=cnt,
            ))
        return positions
