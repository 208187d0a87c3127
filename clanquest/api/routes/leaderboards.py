"""
clanquest.api.routes.leaderboards — Ranked standings & point awards
====================================================================

Reads are public; when a valid bearer token is sent the response also carries
the caller's own rank and points.  Awarding points is admin-only.
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Header, Query
from jwt.exceptions import InvalidTokenError
from pydantic import BaseModel

from clanquest.api.deps import get_current_admin, get_engine
from clanquest.api.security import decode_token
from clanquest.api.serializers import entry_dict, leaderboard_dict
from clanquest.services import leaderboard_service

router = APIRouter(prefix="/leaderboards", tags=["leaderboards"])
logger = logging.getLogger(__name__)


class AwardPoints(BaseModel):
    user_id: int
    delta: float


def _optional_user_id(authorization: str | None = Header(None)) -> int | None:
    if not authorization or not authorization.startswith("Bearer "):
        return None
    try:
        payload = decode_token(authorization.split(" ", 1)[1])
    except InvalidTokenError:
        return None
    sub = str(payload.get("sub", ""))
    return int(sub) if sub.isdigit() else None


def _view(engine, leaderboard_id: int, user_id: int | None, page: int, page_size: int) -> dict:
    view = leaderboard_service.get_leaderboard(
        engine,
        leaderboard_id=leaderboard_id,
        user_id=user_id,
        page=page,
        page_size=page_size,
    )
    return leaderboard_dict(view)


@router.get("/campaign/{campaign_id}")
def campaign_leaderboard(
    campaign_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    user_id: int | None = Depends(_optional_user_id),
    engine=Depends(get_engine),
):
    board_id = leaderboard_service.resolve_leaderboard_id(engine, campaign_id=campaign_id)
    return _view(engine, board_id, user_id, page, page_size)


@router.get("/clan/{clan_id}")
def clan_leaderboard(
    clan_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    user_id: int | None = Depends(_optional_user_id),
    engine=Depends(get_engine),
):
    board_id = leaderboard_service.resolve_leaderboard_id(engine, clan_id=clan_id)
    return _view(engine, board_id, user_id, page, page_size)


@router.get("/{leaderboard_id}")
def get_leaderboard(
    leaderboard_id: int,
    page: int = Query(1, ge=1),
    page_size: int = Query(50, ge=1, le=100),
    user_id: int | None = Depends(_optional_user_id),
    engine=Depends(get_engine),
):
    return _view(engine, leaderboard_id, user_id, page, page_size)


@router.post("/{leaderboard_id}/award")
def award_points(
    leaderboard_id: int,
    body: AwardPoints,
    admin: dict = Depends(get_current_admin),
    engine=Depends(get_engine),
):
    """Add ``delta`` points to a user's entry (cumulative) and re-rank."""
    entry = leaderboard_service.award_points(
        engine, leaderboard_id=leaderboard_id, user_id=body.user_id, delta=body.delta
    )
    logger.info(
        "Admin %s awarded %s pts to user %s on board %s",
        admin["sub"], body.delta, body.user_id, leaderboard_id,
    )
    return entry_dict(entry)
