"""
ClanQuest — Campaigns, Clans & Leaderboards Backend
====================================================
Users join time-boxed campaigns and long-lived clans, earn points that are
ranked on per-campaign and per-clan leaderboards, and invite friends with
referral codes that pay out once the friend completes a qualifying action.

Package layout::

    clanquest/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Business constants + referral code generator
    ├── errors.py          # Typed service errors (kind + HTTP status)
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine, session helper, async bridge
    │   └── models.py      # All ORM models
    ├── engine/
    │   ├── ranking.py     # Standard competition ranking (pure)
    │   └── eligibility.py # Join / switch guards (pure)
    ├── services/
    │   ├── user_service.py         # Registration, lookup, deactivation
    │   ├── leaderboard_service.py  # Award points + rank recomputation
    │   ├── campaign_service.py     # Campaign CRUD + join flow
    │   ├── clan_service.py         # Clan CRUD + join/switch flow
    │   └── referral_service.py     # Referral linking + one-time crediting
    └── api/
        ├── main.py            # FastAPI app
        ├── security.py        # JWT secret validation + token helpers
        ├── deps.py            # Auth + engine/config dependencies
        ├── error_handlers.py  # ServiceError → JSON
        ├── serializers.py     # ORM / view models → dicts
        ├── auth.py            # Registration → JWT
        └── routes/            # users, campaigns, clans, leaderboards, referrals
"""

__version__ = "0.1.0"
