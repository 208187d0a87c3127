"""
clanquest.constants — Shared Business Constants
================================================

Single source of truth for the numbers the join and referral flows depend on.
Import from here instead of duplicating in services and routes.
"""

from __future__ import annotations

import secrets
import string

# ---------------------------------------------------------------------------
# Clans
# ---------------------------------------------------------------------------
CLAN_SWITCH_COOLDOWN_DAYS = 30

# ---------------------------------------------------------------------------
# Referrals
# ---------------------------------------------------------------------------
REFERRAL_REWARD_POINTS = 100

# Sentinel stored in reward_history.campaign_ref for referral payouts.
REFERRAL_CAMPAIGN_ID = "REFERRAL_REWARD_CAMPAIGN"

REFERRAL_CODE_LENGTH = 10
REFERRAL_CODE_ALPHABET = string.ascii_letters + string.digits

# ---------------------------------------------------------------------------
# Pagination
# ---------------------------------------------------------------------------
DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100


def generate_referral_code(length: int = REFERRAL_CODE_LENGTH) -> str:
    """Return a random alphanumeric code of *length* characters."""
    return "".join(secrets.choice(REFERRAL_CODE_ALPHABET) for _ in range(length))
