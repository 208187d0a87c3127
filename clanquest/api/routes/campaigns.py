"""
clanquest.api.routes.campaigns — Campaign CRUD, listing & joining
==================================================================
"""

from __future__ import annotations

import logging
from datetime import datetime

from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import BaseModel, Field

from clanquest.api.deps import current_user_id, get_current_admin, get_engine
from clanquest.api.serializers import campaign_dict, iso
from clanquest.constants import DEFAULT_PAGE_SIZE
from clanquest.services import campaign_service

router = APIRouter(prefix="/campaigns", tags=["campaigns"])
logger = logging.getLogger(__name__)


# ---------------------------------------------------------------------------
# Pydantic schemas
# ---------------------------------------------------------------------------
class CampaignCreate(BaseModel):
    title: str = Field(min_length=1, max_length=200)
    description: str | None = None
    banner: str | None = None
    organiser_logo: str | None = None
    organiser_link: str | None = None
    reward_pool: float = 0.0
    start_date: datetime
    end_date: datetime
    status: bool = True


class CampaignUpdate(BaseModel):
    title: str | None = Field(default=None, min_length=1, max_length=200)
    description: str | None = None
    banner: str | None = None
    organiser_logo: str | None = None
    organiser_link: str | None = None
    reward_pool: float | None = None
    start_date: datetime | None = None
    end_date: datetime | None = None
    status: bool | None = None


class AttachClan(BaseModel):
    clan_id: int


class JoinCampaign(BaseModel):
    clan_id: int | None = None


# ---------------------------------------------------------------------------
# Public reads
# ---------------------------------------------------------------------------
@router.get("")
def list_campaigns(
    status: str = "all",
    page: int = 1,
    limit: int = Query(DEFAULT_PAGE_SIZE),
    engine=Depends(get_engine),
):
    """Paginated campaigns; ``status`` is active / upcoming / past / all."""
    result = campaign_service.list_campaigns(
        engine, status_filter=status, page=page, limit=limit
    )
    return {
        "campaigns": [campaign_dict(c) for c in result.campaigns],
        "total": result.total,
        "pages": result.pages,
        "page": page,
        "filter": result.filter,
    }


@router.get("/{campaign_id}")
def get_campaign(campaign_id: int, engine=Depends(get_engine)):
    detail = campaign_service.get_campaign(engine, campaign_id)
    data = campaign_dict(detail.campaign)
    data["clan_ids"] = detail.clan_ids
    return data


# ---------------------------------------------------------------------------
# Member actions
# ---------------------------------------------------------------------------
@router.post("/{campaign_id}/join", status_code=201)
def join_campaign(
    campaign_id: int,
    body: JoinCampaign | None = None,
    user_id: int = Depends(current_user_id),
    engine=Depends(get_engine),
):
    participant = campaign_service.join_campaign(
        engine,
        campaign_id=campaign_id,
        user_id=user_id,
        clan_id=body.clan_id if body else None,
    )
    return {
        "campaign_id": participant.campaign_id,
        "user_id": participant.user_id,
        "clan_id": participant.clan_id,
        "joined_at": iso(participant.joined_at),
    }


# ---------------------------------------------------------------------------
# Admin
# ---------------------------------------------------------------------------
@router.post("", status_code=201)
def create_campaign(
    body: CampaignCreate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    campaign = campaign_service.create_campaign(engine, **body.model_dump())
    logger.info("Admin %s created campaign %s", admin["sub"], campaign.id)
    return campaign_dict(campaign)


@router.patch("/{campaign_id}")
def update_campaign(
    campaign_id: int,
    body: CampaignUpdate,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    kwargs = body.model_dump(exclude_none=True)
    if not kwargs:
        raise HTTPException(400, "No fields to update")
    campaign = campaign_service.update_campaign(engine, campaign_id, **kwargs)
    return campaign_dict(campaign)


@router.post("/{campaign_id}/clans", status_code=201)
def attach_clan(
    campaign_id: int,
    body: AttachClan,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    link = campaign_service.attach_clan(engine, campaign_id=campaign_id, clan_id=body.clan_id)
    return {"campaign_id": link.campaign_id, "clan_id": link.clan_id}
