"""
clanquest.engine.eligibility — Join & Switch Guards
====================================================

Pure checks used by the campaign and clan join flows.  Each guard either
returns normally or raises the matching :mod:`clanquest.errors` type; the
services call them before touching any row.

Timestamps read back from SQLite come out naive, so naive values are
interpreted as UTC throughout.
"""

from __future__ import annotations

from datetime import UTC, datetime, timedelta

from clanquest.database.models import CampaignPhase
from clanquest.errors import (
    AlreadyJoined,
    CooldownNotElapsed,
    InactiveCampaign,
    InvalidDateRange,
    OutsideDateWindow,
)


def as_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes; convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def utcnow() -> datetime:
    return datetime.now(UTC)


# ---------------------------------------------------------------------------
# Campaigns
# ---------------------------------------------------------------------------
def check_date_range(start: datetime, end: datetime) -> None:
    """Raise :class:`InvalidDateRange` unless ``start <= end``."""
    if as_utc(start) > as_utc(end):
        raise InvalidDateRange()


def campaign_phase(start: datetime, end: datetime, now: datetime) -> CampaignPhase:
    """Classify *now* against the inclusive window ``[start, end]``."""
    now = as_utc(now)
    if now < as_utc(start):
        return CampaignPhase.UPCOMING
    if now > as_utc(end):
        return CampaignPhase.COMPLETED
    return CampaignPhase.ACTIVE


def check_campaign_joinable(
    *, status: bool, start: datetime, end: datetime, now: datetime
) -> None:
    """A campaign is joinable when it is active and *now* is inside its window."""
    if not status:
        raise InactiveCampaign()
    phase = campaign_phase(start, end, now)
    if phase is CampaignPhase.UPCOMING:
        raise OutsideDateWindow("Campaign has not started yet")
    if phase is CampaignPhase.COMPLETED:
        raise OutsideDateWindow("Campaign has already ended")


# ---------------------------------------------------------------------------
# Clans
# ---------------------------------------------------------------------------
def check_clan_switch(
    *,
    active_clan_id: int | None,
    clan_join_date: datetime | None,
    target_clan_id: int,
    now: datetime,
    cooldown: timedelta,
) -> bool:
    """Validate a clan join request.

    Returns ``True`` when the join is a switch away from another clan,
    ``False`` for a first join.  Raises :class:`AlreadyJoined` when the
    target is the current clan and :class:`CooldownNotElapsed` when the
    previous join is not older than *cooldown*.
    """
    if active_clan_id is None:
        return False
    if active_clan_id == target_clan_id:
        raise AlreadyJoined("User is already a member of this clan")
    if clan_join_date is not None:
        elapsed = as_utc(now) - as_utc(clan_join_date)
        if elapsed <= cooldown:
            available_at = as_utc(clan_join_date) + cooldown
            raise CooldownNotElapsed(
                f"User joined clan {active_clan_id} on {as_utc(clan_join_date).isoformat()}. "
                f"A new clan can be joined after {available_at.isoformat()}."
            )
    return True
