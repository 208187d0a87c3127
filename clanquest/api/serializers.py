"""
clanquest.api.serializers — ORM / view-model → JSON dicts
==========================================================
"""

from __future__ import annotations

from datetime import datetime

from clanquest.database.models import Campaign, Clan, RewardHistory, User
from clanquest.engine.eligibility import as_utc
from clanquest.services.leaderboard_service import EntryView, LeaderboardView, UserPosition


def iso(value: datetime | None) -> str | None:
    return as_utc(value).isoformat() if value else None


def user_dict(u: User, *, private: bool = False) -> dict:
    data = {
        "id": u.id,
        "display_name": u.display_name,
        "active_clan_id": u.active_clan_id,
        "is_active": u.is_active,
        "created_at": iso(u.created_at),
    }
    if private:
        data["referral_code"] = u.referral_code
        data["clan_join_date"] = iso(u.clan_join_date)
        data["is_admin"] = u.is_admin
    return data


def campaign_dict(c: Campaign) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "description": c.description,
        "banner": c.banner,
        "organiser_logo": c.organiser_logo,
        "organiser_link": c.organiser_link,
        "reward_pool": c.reward_pool,
        "start_date": iso(c.start_date),
        "end_date": iso(c.end_date),
        "status": c.status,
        "participant_count": c.participant_count,
        "leaderboard_id": c.leaderboard.id if c.leaderboard else None,
    }


def clan_dict(c: Clan) -> dict:
    return {
        "id": c.id,
        "title": c.title,
        "description": c.description,
        "banner": c.banner,
        "clan_score": c.clan_score,
        "status": c.status,
        "member_count": c.member_count,
        "leaderboard_id": c.leaderboard.id if c.leaderboard else None,
    }


def entry_dict(e: EntryView) -> dict:
    return {
        "user_id": e.user_id,
        "user_name": e.user_name,
        "points": e.points,
        "rank": e.rank,
    }


def leaderboard_dict(view: LeaderboardView) -> dict:
    return {
        "leaderboard_id": view.leaderboard_id,
        "scope": view.scope.value,
        "owner_id": view.owner_id,
        "owner_title": view.owner_title,
        "total_participants": view.total_participants,
        "page": view.page,
        "page_size": view.page_size,
        "last_ranked_at": iso(view.last_ranked_at),
        "entries": [entry_dict(e) for e in view.entries],
        "user_rank": view.user_entry.rank if view.user_entry else None,
        "user_points": view.user_entry.points if view.user_entry else None,
        "joining_rank": view.joining_rank,
    }


def position_dict(p: UserPosition) -> dict:
    return {
        "leaderboard_id": p.leaderboard_id,
        "scope": p.scope.value,
        "owner_id": p.owner_id,
        "owner_title": p.owner_title,
        "rank": p.rank,
        "points": p.points,
        "total_participants": p.total_participants,
    }


def reward_dict(r: RewardHistory) -> dict:
    return {
        "id": r.id,
        "campaign_ref": r.campaign_ref,
        "amount": r.amount,
        "reward_date": iso(r.reward_date),
    }
