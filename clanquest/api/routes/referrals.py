"""
clanquest.api.routes.referrals — Referral codes, stats & crediting
===================================================================
"""

from __future__ import annotations

import logging

from fastapi import APIRouter, Depends
from pydantic import BaseModel, Field

from clanquest.api.deps import current_user_id, get_config, get_current_admin, get_engine
from clanquest.api.serializers import iso
from clanquest.config import ClanQuestConfig
from clanquest.services import referral_service

router = APIRouter(prefix="/referrals", tags=["referrals"])
logger = logging.getLogger(__name__)


class ApplyReferral(BaseModel):
    referral_code: str = Field(min_length=1, max_length=32)


class CreditReferral(BaseModel):
    referred_user_id: int
    action_id: str | None = Field(default=None, max_length=64)


@router.get("/code")
def get_referral_code(
    user_id: int = Depends(current_user_id),
    cfg: ClanQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    code = referral_service.get_referral_code(engine, user_id, cfg.frontend_url)
    return {"referral_code": code.referral_code, "referral_link": code.referral_link}


@router.get("/stats")
def get_referral_stats(
    user_id: int = Depends(current_user_id),
    cfg: ClanQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    stats = referral_service.get_referral_stats(
        engine, user_id, reward_points=cfg.referral_reward_points
    )
    return {
        "total_referrals": stats.total_referrals,
        "successful_referrals": stats.successful_referrals,
        "pending_referrals": stats.pending_referrals,
        "total_rewards": stats.total_rewards,
        "pending_rewards": stats.pending_rewards,
        "referrals": [
            {
                "joined_at": iso(r.joined_at),
                "reward_given": r.reward_given,
                "action_id": r.action_id,
            }
            for r in stats.referrals
        ],
    }


@router.post("/apply", status_code=201)
def apply_referral(
    body: ApplyReferral,
    user_id: int = Depends(current_user_id),
    engine=Depends(get_engine),
):
    """Link the caller to the owner of ``referral_code`` (once, ever)."""
    referral = referral_service.create_referral(
        engine, referral_code=body.referral_code.strip(), referred_user_id=user_id
    )
    return {
        "referrer_user_id": referral.referrer_user_id,
        "joined_at": iso(referral.joined_at),
    }


@router.post("/credit")
def credit_referral(
    body: CreditReferral,
    admin: dict = Depends(get_current_admin),
    cfg: ClanQuestConfig = Depends(get_config),
    engine=Depends(get_engine),
):
    """Qualifying-action trigger.  Safe to deliver more than once."""
    credited = referral_service.credit_referral_if_pending(
        engine,
        referred_user_id=body.referred_user_id,
        action_id=body.action_id,
        reward_points=cfg.referral_reward_points,
    )
    return {"credited": credited}
