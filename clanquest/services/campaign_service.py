"""
clanquest.services.campaign_service — Campaign CRUD & Join Flow
================================================================

A campaign and its leaderboard are created in one transaction and are never
shared.  Joining is a single unit of work:

  1. Load campaign → must be active and *now* inside ``[start, end]``
  2. Load user → must exist and be active
  3. Reject duplicates and clans outside the campaign's clan set
  4. Lock the campaign leaderboard
  5. Insert membership + zero-point entry, bump ``participant_count``
  6. Re-rank, commit

Any failure rolls back every row written in steps 5–6.
"""

from __future__ import annotations

import logging
import math
from dataclasses import dataclass
from datetime import datetime
from typing import TYPE_CHECKING, Any

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session, selectinload

from clanquest.constants import DEFAULT_PAGE_SIZE, MAX_PAGE_SIZE
from clanquest.database.engine import get_session
from clanquest.database.models import (
    Campaign,
    CampaignClan,
    CampaignFilter,
    CampaignParticipant,
    CampaignPhase,
    Clan,
    Leaderboard,
    LeaderboardEntry,
)
from clanquest.engine.eligibility import (
    campaign_phase,
    check_campaign_joinable,
    check_date_range,
    utcnow,
)
from clanquest.errors import (
    AlreadyJoined,
    Conflict,
    InvalidClanForCampaign,
    InvalidFilter,
    NotFound,
)
from clanquest.services import leaderboard_service
from clanquest.services.user_service import load_user

if TYPE_CHECKING:
    from sqlalchemy import Engine

logger = logging.getLogger(__name__)

UPDATABLE_FIELDS = frozenset({
    "title", "description", "banner", "organiser_logo", "organiser_link",
    "reward_pool", "start_date", "end_date", "status",
})

# Aliases accepted by the listing filter.
_FILTER_ALIASES: dict[str, CampaignFilter] = {
    "active": CampaignFilter.ACTIVE,
    "upcoming": CampaignFilter.UPCOMING,
    "past": CampaignFilter.PAST,
    "inactive": CampaignFilter.PAST,
    "expired": CampaignFilter.PAST,
    "all": CampaignFilter.ALL,
}


# ---------------------------------------------------------------------------
# Read models
# ---------------------------------------------------------------------------
@dataclass
class CampaignDetail:
    campaign: Campaign
    clan_ids: list[int]


@dataclass
class CampaignPage:
    campaigns: list[Campaign]
    total: int
    pages: int
    filter: str


@dataclass
class JoinedCampaign:
    campaign: Campaign
    joined_at: datetime
    clan_id: int | None
    phase: CampaignPhase
    points: float
    rank: int


@dataclass
class JoinedCampaignPage:
    campaigns: list[JoinedCampaign]
    total: int
    pages: int


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_campaign(session: Session, campaign_id: int, *, with_leaderboard: bool = False) -> Campaign:
    options = [selectinload(Campaign.leaderboard)] if with_leaderboard else None
    campaign = session.get(Campaign, campaign_id, options=options)
    if campaign is None:
        raise NotFound("Campaign not found")
    return campaign


def _check_limit(page: int, limit: int) -> None:
    if page < 1:
        raise InvalidFilter("Page must be at least 1")
    if limit < 1 or limit > MAX_PAGE_SIZE:
        raise InvalidFilter(f"Limit must be between 1 and {MAX_PAGE_SIZE}")


def _pages(total: int, limit: int) -> int:
    return math.ceil(total / limit) if total else 0


def parse_filter(value: str) -> CampaignFilter:
    try:
        return _FILTER_ALIASES[value.lower()]
    except KeyError:
        raise InvalidFilter(f"Invalid status filter: {value}") from None


# ---------------------------------------------------------------------------
# CRUD
# ---------------------------------------------------------------------------
def create_campaign(
    engine: Engine,
    *,
    title: str,
    start_date: datetime,
    end_date: datetime,
    description: str | None = None,
    banner: str | None = None,
    organiser_logo: str | None = None,
    organiser_link: str | None = None,
    reward_pool: float = 0.0,
    status: bool = True,
) -> Campaign:
    """Create a campaign together with its leaderboard."""
    check_date_range(start_date, end_date)

    with get_session(engine) as session:
        campaign = Campaign(
            title=title,
            description=description,
            banner=banner,
            organiser_logo=organiser_logo,
            organiser_link=organiser_link,
            reward_pool=reward_pool,
            start_date=start_date,
            end_date=end_date,
            status=status,
            leaderboard=Leaderboard(),
        )
        session.add(campaign)
        session.flush()
        logger.info(
            "Created campaign %s (%r) with leaderboard %s",
            campaign.id, title, campaign.leaderboard.id,
        )
        return campaign


def update_campaign(engine: Engine, campaign_id: int, **fields: Any) -> Campaign:
    """Apply a partial update.  Unknown keys raise ``ValueError``."""
    unknown = set(fields) - UPDATABLE_FIELDS
    if unknown:
        raise ValueError(f"Unknown campaign fields: {sorted(unknown)}")

    with get_session(engine) as session:
        campaign = _load_campaign(session, campaign_id, with_leaderboard=True)
        check_date_range(
            fields.get("start_date", campaign.start_date),
            fields.get("end_date", campaign.end_date),
        )
        for key, value in fields.items():
            setattr(campaign, key, value)
        session.flush()
        return campaign


def attach_clan(engine: Engine, *, campaign_id: int, clan_id: int) -> CampaignClan:
    """Add *clan_id* to the campaign's clan set."""
    with get_session(engine) as session:
        _load_campaign(session, campaign_id)
        clan = session.get(Clan, clan_id)
        if clan is None or not clan.status:
            raise NotFound("Clan not found")
        if session.get(CampaignClan, (campaign_id, clan_id)) is not None:
            raise Conflict("Clan is already part of this campaign")

        link = CampaignClan(campaign_id=campaign_id, clan_id=clan_id)
        session.add(link)
        try:
            session.flush()
        except IntegrityError as exc:
            raise Conflict("Clan is already part of this campaign") from exc
        return link


def get_campaign(engine: Engine, campaign_id: int) -> CampaignDetail:
    with get_session(engine) as session:
        campaign = session.scalar(
            select(Campaign)
            .options(selectinload(Campaign.leaderboard))
            .where(Campaign.id == campaign_id)
        )
        if campaign is None:
            raise NotFound("Campaign not found")
        clan_ids = session.scalars(
            select(CampaignClan.clan_id)
            .where(CampaignClan.campaign_id == campaign_id)
            .order_by(CampaignClan.clan_id)
        ).all()
        return CampaignDetail(campaign=campaign, clan_ids=list(clan_ids))


def list_campaigns(
    engine: Engine,
    *,
    status_filter: str = "all",
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    now: datetime | None = None,
) -> CampaignPage:
    """Paginated campaigns filtered by active / upcoming / past / all."""
    flt = parse_filter(status_filter)
    _check_limit(page, limit)
    now = now or utcnow()

    conditions = []
    if flt is CampaignFilter.ACTIVE:
        conditions = [
            Campaign.status.is_(True),
            Campaign.start_date <= now,
            Campaign.end_date >= now,
        ]
    elif flt is CampaignFilter.UPCOMING:
        conditions = [Campaign.status.is_(True), Campaign.start_date > now]
    elif flt is CampaignFilter.PAST:
        conditions = [Campaign.end_date < now]

    with get_session(engine) as session:
        total = session.scalar(
            select(func.count()).select_from(Campaign).where(*conditions)
        ) or 0
        rows = session.scalars(
            select(Campaign)
            .options(selectinload(Campaign.leaderboard))
            .where(*conditions)
            .order_by(Campaign.start_date.desc(), Campaign.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()
        return CampaignPage(
            campaigns=list(rows),
            total=total,
            pages=_pages(total, limit),
            filter=flt.value,
        )


# ---------------------------------------------------------------------------
# Join
# ---------------------------------------------------------------------------
def join_campaign(
    engine: Engine,
    *,
    campaign_id: int,
    user_id: int,
    clan_id: int | None = None,
    now: datetime | None = None,
) -> CampaignParticipant:
    """Join *user_id* to *campaign_id*, optionally representing *clan_id*."""
    now = now or utcnow()

    with get_session(engine) as session:
        campaign = _load_campaign(session, campaign_id)
        check_campaign_joinable(
            status=campaign.status,
            start=campaign.start_date,
            end=campaign.end_date,
            now=now,
        )
        user = load_user(session, user_id, require_active=True)

        already = session.scalar(
            select(CampaignParticipant.id).where(
                CampaignParticipant.campaign_id == campaign_id,
                CampaignParticipant.user_id == user_id,
            )
        )
        if already is not None:
            raise AlreadyJoined("User already joined this campaign")

        if clan_id is not None and session.get(CampaignClan, (campaign_id, clan_id)) is None:
            raise InvalidClanForCampaign()

        board = leaderboard_service.lock_leaderboard(session, campaign_id=campaign_id)
        try:
            participant = CampaignParticipant(
                campaign_id=campaign_id,
                user_id=user_id,
                clan_id=clan_id,
                joined_at=now,
            )
            session.add(participant)
            session.flush()

            leaderboard_service.add_entry(session, board, user)
            campaign.participant_count = Campaign.participant_count + 1
            session.flush()
            leaderboard_service.recalculate_ranks(session, board, now)
        except IntegrityError as exc:
            logger.warning(
                "Concurrent join for user %s on campaign %s: %s",
                user_id, campaign_id, exc.orig,
            )
            raise Conflict("User already joined this campaign") from exc

        logger.info("User %s joined campaign %s (clan=%s)", user_id, campaign_id, clan_id)
        return participant


def get_user_joined_campaigns(
    engine: Engine,
    *,
    user_id: int,
    status: str | None = None,
    page: int = 1,
    limit: int = DEFAULT_PAGE_SIZE,
    now: datetime | None = None,
) -> JoinedCampaignPage:
    """Campaigns the user joined, newest join first, with their standing.

    *status* filters on the campaign's active flag: ``active``/``true``,
    ``inactive``/``false`` or ``all`` (default).
    """
    _check_limit(page, limit)
    now = now or utcnow()

    conditions = [CampaignParticipant.user_id == user_id]
    if status and status != "all":
        if status in ("active", "true"):
            conditions.append(Campaign.status.is_(True))
        elif status in ("inactive", "false"):
            conditions.append(Campaign.status.is_(False))
        else:
            raise InvalidFilter(
                'Invalid status parameter. Use "active", "inactive", or "all"'
            )

    with get_session(engine) as session:
        load_user(session, user_id)

        total = session.scalar(
            select(func.count())
            .select_from(CampaignParticipant)
            .join(Campaign, Campaign.id == CampaignParticipant.campaign_id)
            .where(*conditions)
        ) or 0

        rows = session.execute(
            select(CampaignParticipant, Campaign, LeaderboardEntry)
            .join(Campaign, Campaign.id == CampaignParticipant.campaign_id)
            .outerjoin(Leaderboard, Leaderboard.campaign_id == Campaign.id)
            .outerjoin(
                LeaderboardEntry,
                (LeaderboardEntry.leaderboard_id == Leaderboard.id)
                & (LeaderboardEntry.user_id == user_id),
            )
            .options(selectinload(Campaign.leaderboard))
            .where(*conditions)
            .order_by(CampaignParticipant.joined_at.desc(), CampaignParticipant.id.desc())
            .offset((page - 1) * limit)
            .limit(limit)
        ).all()

        joined = [
            JoinedCampaign(
                campaign=campaign,
                joined_at=participant.joined_at,
                clan_id=participant.clan_id,
                phase=campaign_phase(campaign.start_date, campaign.end_date, now),
                points=entry.points if entry else 0.0,
                rank=entry.rank if entry else 0,
            )
            for participant, campaign, entry in rows
        ]
        return JoinedCampaignPage(campaigns=joined, total=total, pages=_pages(total, limit))
