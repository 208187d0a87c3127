"""
clanquest.services.referral_service — Referral Linking & Crediting
===================================================================

Two-step lifecycle per referral::

    Created (reward_given=False) ──credit──► Rewarded (reward_given=True)

Linking happens at signup (see :func:`clanquest.services.user_service.register_user`)
or later through :func:`create_referral`.  Crediting is triggered when the
referred user completes a qualifying action and must be idempotent: duplicate
webhook deliveries are expected.  The flip of ``reward_given`` is a single
compare-and-set ``UPDATE … WHERE reward_given = false``; only the caller that
changes the row appends the ledger entry, in the same transaction.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import TYPE_CHECKING

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from clanquest.constants import REFERRAL_CAMPAIGN_ID, REFERRAL_REWARD_POINTS
from clanquest.database.engine import get_session
from clanquest.database.models import Referral, RewardHistory, User
from clanquest.engine.eligibility import utcnow
from clanquest.errors import (
    AlreadyReferred,
    Conflict,
    InvalidReferralCode,
    SelfReferral,
)
from clanquest.services.user_service import load_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)


@dataclass
class ReferralStats:
    total_referrals: int = 0
    successful_referrals: int = 0
    pending_referrals: int = 0
    total_rewards: float = 0.0
    pending_rewards: float = 0.0
    referrals: list[Referral] = field(default_factory=list)


@dataclass(frozen=True, slots=True)
class ReferralCode:
    referral_code: str
    referral_link: str


# ---------------------------------------------------------------------------
# Linking
# ---------------------------------------------------------------------------
def link_referral(
    session: Session,
    *,
    referral_code: str,
    referred_user_id: int,
    now: datetime | None = None,
) -> Referral:
    """Insert the referral row inside the caller's transaction."""
    referrer = session.scalar(
        select(User).where(User.referral_code == referral_code, User.is_active.is_(True))
    )
    if referrer is None:
        raise InvalidReferralCode()
    if referrer.id == referred_user_id:
        raise SelfReferral()

    existing = session.scalar(
        select(Referral.id).where(Referral.referred_user_id == referred_user_id)
    )
    if existing is not None:
        raise AlreadyReferred()

    referral = Referral(
        referrer_user_id=referrer.id,
        referred_user_id=referred_user_id,
        referral_code=referral_code,
        joined_at=now or utcnow(),
        reward_given=False,
    )
    session.add(referral)
    try:
        session.flush()
    except IntegrityError as exc:
        logger.warning("Concurrent referral for user %s: %s", referred_user_id, exc.orig)
        raise Conflict("User already has a referrer") from exc

    logger.info("User %s referred by user %s", referred_user_id, referrer.id)
    return referral


def create_referral(
    engine: Engine,
    *,
    referral_code: str,
    referred_user_id: int,
    now: datetime | None = None,
) -> Referral:
    """Apply *referral_code* to an existing user."""
    with get_session(engine) as session:
        load_user(session, referred_user_id)
        return link_referral(
            session,
            referral_code=referral_code,
            referred_user_id=referred_user_id,
            now=now,
        )


# ---------------------------------------------------------------------------
# Crediting
# ---------------------------------------------------------------------------
def credit_referral_if_pending(
    engine: Engine,
    *,
    referred_user_id: int,
    action_id: str | None = None,
    reward_points: int = REFERRAL_REWARD_POINTS,
    now: datetime | None = None,
) -> bool:
    """Credit the referrer of *referred_user_id* once.

    Returns ``True`` when this call granted the reward, ``False`` when there
    was nothing pending (no referral, or already rewarded).
    """
    now = now or utcnow()

    with get_session(engine) as session:
        referral = session.scalar(
            select(Referral).where(
                Referral.referred_user_id == referred_user_id,
                Referral.reward_given.is_(False),
            )
        )
        if referral is None:
            return False

        values: dict = {"reward_given": True, "rewarded_at": now}
        if action_id is not None:
            values["action_id"] = action_id

        result = session.execute(
            update(Referral)
            .where(Referral.id == referral.id, Referral.reward_given.is_(False))
            .values(**values)
            .execution_options(synchronize_session=False)
        )
        if result.rowcount != 1:
            logger.info("Referral %s already credited by a concurrent trigger", referral.id)
            return False

        session.add(RewardHistory(
            user_id=referral.referrer_user_id,
            campaign_ref=REFERRAL_CAMPAIGN_ID,
            amount=float(reward_points),
            reward_date=now,
        ))
        session.flush()

        logger.info(
            "Credited %s pts to user %s for referral %s (action=%s)",
            reward_points, referral.referrer_user_id, referral.id, action_id,
        )
        return True


# ---------------------------------------------------------------------------
# Queries
# ---------------------------------------------------------------------------
def get_referral_stats(
    engine: Engine,
    user_id: int,
    *,
    reward_points: int = REFERRAL_REWARD_POINTS,
) -> ReferralStats:
    """Referrals made by *user_id*, newest first, with reward totals.

    ``total_rewards`` is summed from the reward ledger; ``pending_rewards``
    projects the current payout onto referrals not yet credited.
    """
    with get_session(engine) as session:
        rows = session.scalars(
            select(Referral)
            .where(Referral.referrer_user_id == user_id)
            .order_by(Referral.joined_at.desc(), Referral.id.desc())
        ).all()
        paid = session.scalar(
            select(func.coalesce(func.sum(RewardHistory.amount), 0.0)).where(
                RewardHistory.user_id == user_id,
                RewardHistory.campaign_ref == REFERRAL_CAMPAIGN_ID,
            )
        ) or 0.0

    successful = sum(1 for r in rows if r.reward_given)
    pending = len(rows) - successful
    return ReferralStats(
        total_referrals=len(rows),
        successful_referrals=successful,
        pending_referrals=pending,
        total_rewards=float(paid),
        pending_rewards=float(pending * reward_points),
        referrals=list(rows),
    )


def get_referral_code(engine: Engine, user_id: int, frontend_url: str) -> ReferralCode:
    with get_session(engine) as session:
        user = load_user(session, user_id)
        return ReferralCode(
            referral_code=user.referral_code,
            referral_link=f"{frontend_url.rstrip('/')}/referral/{user.referral_code}",
        )
