"""
clanquest.api.routes.users — Profiles, joined campaigns, positions & rewards
=============================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel, Field

from clanquest.api.deps import current_user_id, get_current_admin, get_engine
from clanquest.api.serializers import campaign_dict, iso, position_dict, reward_dict, user_dict
from clanquest.constants import DEFAULT_PAGE_SIZE
from clanquest.services import campaign_service, leaderboard_service, user_service

router = APIRouter(prefix="/users", tags=["users"])
logger = logging.getLogger(__name__)


class UserUpdate(BaseModel):
    display_name: str = Field(min_length=1, max_length=100)


# ---------------------------------------------------------------------------
# Current user
# ---------------------------------------------------------------------------
@router.get("/me")
def get_me(user_id: int = Depends(current_user_id), engine=Depends(get_engine)):
    return user_dict(user_service.get_user(engine, user_id), private=True)


@router.patch("/me")
def update_me(
    body: UserUpdate,
    user_id: int = Depends(current_user_id),
    engine=Depends(get_engine),
):
    """Rename the caller.  Existing leaderboard entries keep the old name."""
    user = user_service.update_user(engine, user_id, display_name=body.display_name.strip())
    return user_dict(user, private=True)


@router.get("/me/campaigns")
def my_campaigns(
    status: str | None = None,
    page: int = 1,
    limit: int = Query(DEFAULT_PAGE_SIZE),
    user_id: int = Depends(current_user_id),
    engine=Depends(get_engine),
):
    """Joined campaigns with their real-time phase and the caller's standing."""
    result = campaign_service.get_user_joined_campaigns(
        engine, user_id=user_id, status=status, page=page, limit=limit
    )
    campaigns = []
    for joined in result.campaigns:
        data = campaign_dict(joined.campaign)
        data.update({
            "joined_at": iso(joined.joined_at),
            "clan_id": joined.clan_id,
            "phase": joined.phase.value,
            "points": joined.points,
            "rank": joined.rank,
        })
        campaigns.append(data)
    return {"campaigns": campaigns, "total": result.total, "pages": result.pages, "page": page}


@router.get("/me/leaderboards")
def my_positions(user_id: int = Depends(current_user_id), engine=Depends(get_engine)):
    positions = leaderboard_service.get_user_positions(engine, user_id)
    return {"positions": [position_dict(p) for p in positions]}


@router.get("/me/rewards")
def my_rewards(user_id: int = Depends(current_user_id), engine=Depends(get_engine)):
    rows, total = user_service.get_reward_history(engine, user_id)
    return {"rewards": [reward_dict(r) for r in rows], "total": total}


# ---------------------------------------------------------------------------
# Other users
# ---------------------------------------------------------------------------
@router.get("/{user_id}")
def get_user(user_id: int, engine=Depends(get_engine)):
    return user_dict(user_service.get_user(engine, user_id))


@router.post("/{user_id}/deactivate")
def deactivate_user(
    user_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    user = user_service.deactivate_user(engine, user_id)
    logger.info("Admin %s deactivated user %s", admin["sub"], user_id)
    return user_dict(user)
