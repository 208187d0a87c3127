"""
clanquest.api.auth — Registration + JWT issuance
=================================================

Identity-provider logins are handled upstream; this router only creates local
users and hands out bearer tokens for them.  Display names listed in
``ADMIN_DISPLAY_NAMES`` (comma-separated env var) are registered as admins.
"""

from __future__ import annotations

import logging
import os

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from clanquest.api.deps import get_config, get_current_user, get_engine
from clanquest.api.security import issue_token
from clanquest.api.serializers import user_dict
from clanquest.config import ClanQuestConfig
from clanquest.database.engine import run_db
from clanquest.services import user_service

logger = logging.getLogger(__name__)
router = APIRouter(prefix="/auth", tags=["auth"])


class RegisterBody(BaseModel):
    display_name: str = Field(min_length=1, max_length=100)
    referral_code: str | None = None


def _admin_names() -> set[str]:
    raw = os.getenv("ADMIN_DISPLAY_NAMES", "")
    return {name.strip() for name in raw.split(",") if name.strip()}


@router.post("/register", status_code=201)
async def register(
    body: RegisterBody,
    cfg: ClanQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Create a user (optionally via a referral code) and issue a JWT."""
    registration = await run_db(
        user_service.register_user,
        engine,
        display_name=body.display_name.strip(),
        referral_code=body.referral_code or None,
        is_admin=body.display_name.strip() in _admin_names(),
        code_length=cfg.referral_code_length,
    )
    user = registration.user
    token = issue_token(
        user_id=user.id,
        username=user.display_name,
        is_admin=user.is_admin,
        ttl_days=cfg.token_ttl_days,
    )
    return {
        "token": token,
        "user": user_dict(user, private=True),
        "referred": registration.referral is not None,
    }


@router.get("/me")
async def me(user: dict = Depends(get_current_user)):
    """Return the claims of the current token."""
    return {
        "id": int(user["sub"]),
        "username": user.get("username", "Unknown"),
        "is_admin": bool(user.get("is_admin")),
    }
