"""
clanquest.services.user_service — Registration & User Lookup
=============================================================

Users are created on explicit registration (or by the auth layer after a
successful identity-provider login), optionally linked to a referrer in the
same transaction.  :func:`update_user` renames a user.  Users are never
hard-deleted; :func:`deactivate_user` flips ``is_active``.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clanquest.constants import REFERRAL_CODE_LENGTH, generate_referral_code
from clanquest.database.engine import get_session
from clanquest.database.models import Referral, RewardHistory, User
from clanquest.engine.eligibility import utcnow
from clanquest.errors import Conflict, InactiveUser, Internal, NotFound

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

_MAX_CODE_ATTEMPTS = 10


# ---------------------------------------------------------------------------
# In-session helpers (shared with the other services)
# ---------------------------------------------------------------------------
def load_user(
    session: Session,
    user_id: int,
    *,
    require_active: bool = False,
    for_update: bool = False,
) -> User:
    """Fetch a user or raise :class:`NotFound` / :class:`InactiveUser`."""
    stmt = select(User).where(User.id == user_id)
    if for_update:
        stmt = stmt.with_for_update()
    user = session.scalar(stmt)
    if user is None:
        raise NotFound("User not found")
    if require_active and not user.is_active:
        raise InactiveUser()
    return user


def _unique_referral_code(session: Session, length: int) -> str:
    for _ in range(_MAX_CODE_ATTEMPTS):
        code = generate_referral_code(length)
        taken = session.scalar(select(User.id).where(User.referral_code == code))
        if taken is None:
            return code
    raise Internal("Could not allocate a unique referral code")


# ---------------------------------------------------------------------------
# Operations
# ---------------------------------------------------------------------------
@dataclass
class Registration:
    user: User
    referral: Referral | None = None


def register_user(
    engine: Engine,
    *,
    display_name: str,
    referral_code: str | None = None,
    is_admin: bool = False,
    code_length: int = REFERRAL_CODE_LENGTH,
    now: datetime | None = None,
) -> Registration:
    """Create a user with a fresh referral code.

    When *referral_code* is given the new user is linked to its owner in the
    same transaction; an invalid code aborts the whole registration.
    """
    from clanquest.services.referral_service import link_referral

    now = now or utcnow()
    with get_session(engine) as session:
        existing = session.scalar(select(User.id).where(User.display_name == display_name))
        if existing is not None:
            raise Conflict(f"Display name {display_name!r} is already taken")

        user = User(
            display_name=display_name,
            referral_code=_unique_referral_code(session, code_length),
            is_admin=is_admin,
        )
        session.add(user)
        try:
            session.flush()
        except IntegrityError as exc:
            logger.warning("Registration race for %r: %s", display_name, exc.orig)
            raise Conflict(f"Display name {display_name!r} is already taken") from exc

        referral = None
        if referral_code:
            referral = link_referral(
                session, referral_code=referral_code, referred_user_id=user.id, now=now
            )

        logger.info("Registered user %s (%s)", user.id, display_name)
        return Registration(user=user, referral=referral)


def get_user(engine: Engine, user_id: int) -> User:
    with get_session(engine) as session:
        return load_user(session, user_id)


def update_user(engine: Engine, user_id: int, *, display_name: str) -> User:
    """Rename a user.

    Leaderboard entries keep the name captured when they were created.
    """
    with get_session(engine) as session:
        user = load_user(session, user_id)
        if display_name == user.display_name:
            return user
        taken = session.scalar(
            select(User.id).where(User.display_name == display_name, User.id != user_id)
        )
        if taken is not None:
            raise Conflict(f"Display name {display_name!r} is already taken")

        old_name = user.display_name
        user.display_name = display_name
        try:
            session.flush()
        except IntegrityError as exc:
            logger.warning("Rename race for %r: %s", display_name, exc.orig)
            raise Conflict(f"Display name {display_name!r} is already taken") from exc

        logger.info("Renamed user %s from %r to %r", user_id, old_name, display_name)
        return user


def deactivate_user(engine: Engine, user_id: int) -> User:
    """Soft-deactivate a user.  Their referral code stops resolving."""
    with get_session(engine) as session:
        user = load_user(session, user_id)
        user.is_active = False
        logger.info("Deactivated user %s", user_id)
        return user


def get_reward_history(engine: Engine, user_id: int) -> tuple[list[RewardHistory], float]:
    """Return the user's ledger (newest first) and its total."""
    with get_session(engine) as session:
        load_user(session, user_id)
        rows = session.scalars(
            select(RewardHistory)
            .where(RewardHistory.user_id == user_id)
            .order_by(RewardHistory.reward_date.desc(), RewardHistory.id.desc())
        ).all()
        total = session.scalar(
            select(func.coalesce(func.sum(RewardHistory.amount), 0.0))
            .where(RewardHistory.user_id == user_id)
        ) or 0.0
        return list(rows), float(total)
