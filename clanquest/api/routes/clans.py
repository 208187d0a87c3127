"""
clanquest.api.routes.clans — Clan CRUD & join/switch
=====================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from clanquest.api.deps import current_user_id, get_config, get_current_admin, get_engine
from clanquest.api.serializers import clan_dict, iso
from clanquest.config import ClanQuestConfig
from clanquest.services import clan_service

router = APIRouter(prefix="/clans", tags=["clans"])
logger = logging.getLogger(__name__)


class ClanCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    banner: str | None = None


class ClanUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    banner: str | None = None
    clan_score: float | None = None
    status: bool | None = None


@router.get("")
def list_clans(engine=Depends(get_engine)):
    return {"clans": [clan_dict(c) for c in clan_service.list_clans(engine)]}


@router.get("/{clan_id}")
def get_clan(clan_id: int, engine=Depends(get_engine)):
    return clan_dict(clan_service.get_clan(engine, clan_id))


@router.post("/{clan_id}/join")
def join_clan(
    clan_id: int,
    user_id: int = Depends(current_user_id),
    cfg: ClanQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Join a clan, or switch to it once the cooldown has elapsed."""
    result = clan_service.join_clan(
        engine,
        user_id=user_id,
        clan_id=clan_id,
        cooldown_days=cfg.clan_switch_cooldown_days,
    )
    return {
        "clan_id": result.membership.clan_id,
        "joined_at": iso(result.membership.joined_at),
        "switched": result.switched,
        "previous_clan_id": result.previous_clan_id,
    }


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_clan(
    body: ClanCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    clan = clan_service.create_clan(engine, **body.model_dump())
    logger.info("Admin %s created clan %s", admin["sub"], clan.id)
    return clan_dict(clan)


@router.patch("/{clan_id}")
def update_clan(
    clan_id: int,
    body: ClanUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    return clan_dict(clan_service.update_clan(engine, clan_id, **kwargs))


@router.delete("/{clan_id}", status_code=204)
def delete_clan(
    clan_id: int,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    clan_service.delete_clan(engine, clan_id)
    return None
