"""
clanquest.services.clan_service — Clan CRUD & Join/Switch Flow
===============================================================

A user belongs to at most one clan at a time (``users.active_clan_id``).
Switching clans is an implicit leave-then-join, allowed only once the
cooldown since the previous join has elapsed.  On a switch the old
membership row is kept with ``active=False`` and its leaderboard entry is
left untouched, so historical clan standings survive.  Re-joining a clan the
user left earlier reactivates that membership and keeps its points.

The whole switch (user row, old membership, new membership + entry, member
counters, re-rank) commits as one transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import TYPE_CHECKING, Any

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from clanquest.constants import CLAN_SWITCH_COOLDOWN_DAYS
from clanquest.database.engine import get_session
from clanquest.database.models import Clan, ClanParticipant, Leaderboard, LeaderboardEntry
from clanquest.engine.eligibility import check_clan_switch, utcnow
from clanquest.errors import AlreadyJoined, Conflict, NotFound
from clanquest.services import leaderboard_service
from clanquest.services.user_service import load_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({"title", "description", "banner", "clan_score", "status"})


@dataclass
class ClanJoinResult:
    membership: ClanParticipant
    previous_clan_id: int | None
    switched: bool


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_clan(session: Session, clan_id: int, *, require_active: bool = False) -> Clan:
    clan = session.scalar(
        select(Clan).options(selectinload(Clan.leaderboard)).where(Clan.id == clan_id)
    )
    if clan is None or (require_active and not clan.status):
        raise NotFound("Clan not found")
    return clan


def _leave_clan(session: Session, user_id: int, clan_id: int, now: datetime) -> None:
    """Mark the user's membership in *clan_id* inactive."""
    membership = session.scalar(
        select(ClanParticipant).where(
            ClanParticipant.clan_id == clan_id,
            ClanParticipant.user_id == user_id,
            ClanParticipant.active.is_(True),
        )
    )
    if membership is None:
        return
    membership.active = False
    membership.left_at = now

    old_clan = session.get(Clan, clan_id)
    if old_clan is not None:
        old_clan.member_count = Clan.member_count - 1


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
def create_clan(
    engine: Engine,
    *,
    title: str,
    description: str | None = None,
    banner: str | None = None,
    status: bool = True,
) -> Clan:
    """Create a clan together with its leaderboard."""
    with get_session(engine) as session:
        clan = Clan(
            title=title,
            description=description,
            banner=banner,
            status=status,
            leaderboard=Leaderboard(),
        )
        session.add(clan)
        session.flush()
        logger.info("Created clan %s (%r) with leaderboard %s", clan.id, title, clan.leaderboard.id)
        return clan


def get_clan(engine: Engine, clan_id: int) -> Clan:
    with get_session(engine) as session:
        return _load_clan(session, clan_id)


def list_clans(engine: Engine) -> list[Clan]:
    """Active clans only; soft-deleted clans are hidden."""
    with get_session(engine) as session:
        rows = session.scalars(
            select(Clan)
            .options(selectinload(Clan.leaderboard))
            .where(Clan.status.is_(True))
            .order_by(Clan.id)
        ).all()
        return list(rows)


def update_clan(engine: Engine, clan_id: int, **fields: Any) -> Clan:
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown clan fields: {sorted(unknown)}")

    with get_session(engine) as session:
        clan = _load_clan(session, clan_id)
        for key, value in fields.items():
            setattr(clan, key, value)
        session.flush()
        return clan


def delete_clan(engine: Engine, clan_id: int) -> None:
    """Soft delete: ``status=False``.  Membership rows keep referencing it."""
    with get_session(engine) as session:
        clan = _load_clan(session, clan_id)
        clan.status = False
        logger.info("Soft-deleted clan %s", clan_id)


# ---------------------------------------------------------------------------
# Join / switch
# ---------------------------------------------------------------------------
def join_clan(
    engine: Engine,
    *,
    user_id: int,
    clan_id: int,
    cooldown_days: int = CLAN_SWITCH_COOLDOWN_DAYS,
    now: datetime | None = None,
) -> ClanJoinResult:
    """Join *clan_id*, switching away from the current clan if allowed."""
    now = now or utcnow()

    with get_session(engine) as session:
        user = load_user(session, user_id, require_active=True, for_update=True)
        _load_clan(session, clan_id, require_active=True)

        switched = check_clan_switch(
            active_clan_id=user.active_clan_id,
            clan_join_date=user.clan_join_date,
            target_clan_id=clan_id,
            now=now,
            cooldown=timedelta(days=cooldown_days),
        )
        previous_clan_id = user.active_clan_id

        board = leaderboard_service.lock_leaderboard(session, clan_id=clan_id)
        try:
            if switched:
                _leave_clan(session, user_id, previous_clan_id, now)

            membership = session.scalar(
                select(ClanParticipant).where(
                    ClanParticipant.clan_id == clan_id,
                    ClanParticipant.user_id == user_id,
                )
            )
            if membership is not None and membership.active:
                raise AlreadyJoined("User is already a member of this clan")

            if membership is None:
                membership = ClanParticipant(clan_id=clan_id, user_id=user_id, joined_at=now)
                session.add(membership)
            else:
                membership.active = True
                membership.joined_at = now
                membership.left_at = None
            session.flush()

            has_entry = session.scalar(
                select(LeaderboardEntry.id).where(
                    LeaderboardEntry.leaderboard_id == board.id,
                    LeaderboardEntry.user_id == user_id,
                )
            )
            if has_entry is None:
                leaderboard_service.add_entry(session, board, user)

            user.active_clan_id = clan_id
            user.clan_join_date = now
            clan = session.get(Clan, clan_id)
            clan.member_count = Clan.member_count + 1
            session.flush()
            leaderboard_service.recalculate_ranks(session, board, now)
        except IntegrityError as exc:
            logger.warning(
                "Concurrent clan join for user %s on clan %s: %s", user_id, clan_id, exc.orig
            )
            raise Conflict("User is already a member of this clan") from exc

        if switched:
            logger.info("User %s switched clan %s → %s", user_id, previous_clan_id, clan_id)
        else:
            logger.info("User %s joined clan %s", user_id, clan_id)
        return ClanJoinResult(
            membership=membership,
            previous_clan_id=previous_clan_id if switched else None,
            switched=switched,
        )
