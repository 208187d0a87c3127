"""
clanquest.config — YAML Configuration Loader
=============================================

Reads ``config.yaml`` for **soft** settings (display identity, cooldowns,
referral payout).  Secrets and infrastructure (``DATABASE_URL``,
``JWT_SECRET``) come from the environment / ``.env`` instead.

Usage::

    from clanquest.config import load_config

    cfg = load_config()                 # reads ./config.yaml by default
    print(cfg.app_name)                 # "ClanQuest"
    print(cfg.clan_switch_cooldown_days)  # 30
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

import yaml

from clanquest.constants import (
    CLAN_SWITCH_COOLDOWN_DAYS,
    REFERRAL_CODE_LENGTH,
    REFERRAL_REWARD_POINTS,
)


# ---------------------------------------------------------------------------
# Typed settings object
# ---------------------------------------------------------------------------
@dataclass(frozen=True, slots=True)
class ClanQuestConfig:
    """Immutable configuration loaded from ``config.yaml``."""

    # Identity
    app_name: str
    frontend_url: str  # Used to build shareable referral links

    # Gameplay tuning
    clan_switch_cooldown_days: int = CLAN_SWITCH_COOLDOWN_DAYS
    referral_reward_points: int = REFERRAL_REWARD_POINTS
    referral_code_length: int = REFERRAL_CODE_LENGTH

    # Auth
    token_ttl_days: int = 30


# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------
def load_config(path: str | Path = "config.yaml") -> ClanQuestConfig:
    """Read *path* and return a :class:`ClanQuestConfig` instance.

    Parameters
    ----------
    path:
        Filesystem path to the YAML configuration file.
        Defaults to ``config.yaml`` in the current working directory.

    Raises
    ------
    FileNotFoundError
        If the YAML file doesn't exist.
    KeyError
        If a required key is missing from the YAML file.
    """
    config_path = Path(path)
    if not config_path.exists():
        raise FileNotFoundError(
            f"Configuration file not found: {config_path.resolve()}\n"
            "Hint: copy config.yaml.example → config.yaml and edit it."
        )

    with open(config_path, encoding="utf-8") as fh:
        raw: dict = yaml.safe_load(fh) or {}

    return ClanQuestConfig(
        app_name=raw["app_name"],
        frontend_url=str(raw["frontend_url"]).rstrip("/"),
        clan_switch_cooldown_days=int(
            raw.get("clan_switch_cooldown_days", CLAN_SWITCH_COOLDOWN_DAYS)
        ),
        referral_reward_points=int(
            raw.get("referral_reward_points", REFERRAL_REWARD_POINTS)
        ),
        referral_code_length=int(raw.get("referral_code_length", REFERRAL_CODE_LENGTH)),
        token_ttl_days=int(raw.get("token_ttl_days", 30)),
    )
