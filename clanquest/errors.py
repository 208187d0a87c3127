"""
clanquest.errors — Typed Service Errors
========================================

Every business-rule violation is raised as a :class:`ServiceError` subclass
carrying a stable ``kind`` string and the HTTP status class the API should
answer with.  Services raise them *before* mutating anything; the API layer
turns them into JSON (see :mod:`clanquest.api.error_handlers`).

Taxonomy::

    ServiceError
    ├── NotFound (404)
    │   └── UserNotInLeaderboard
    ├── InvalidState (400)
    │   ├── InactiveCampaign, OutsideDateWindow, InvalidClanForCampaign
    │   ├── AlreadyJoined, CooldownNotElapsed, InactiveUser
    │   ├── InvalidDelta, InvalidDateRange, InvalidFilter
    │   └── InvalidReferralCode, SelfReferral, AlreadyReferred
    ├── Conflict (409)  — unique-constraint races at the storage layer
    └── Internal (500)
"""

from __future__ import annotations


class ServiceError(Exception):
    """Base class for all errors surfaced by the service layer."""

    kind = "error"
    status_code = 500
    default_message = "Service error"

    def __init__(self, message: str | None = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)

    def to_dict(self) -> dict[str, str]:
        return {"error": self.kind, "detail": self.message}


# ---------------------------------------------------------------------------
# 404
# ---------------------------------------------------------------------------
class NotFound(ServiceError):
    kind = "not_found"
    status_code = 404
    default_message = "Resource not found"


class UserNotInLeaderboard(NotFound):
    kind = "user_not_in_leaderboard"
    default_message = "User not in leaderboard"


# ---------------------------------------------------------------------------
# 400: business-rule violations
# ---------------------------------------------------------------------------
class InvalidState(ServiceError):
    kind = "invalid_state"
    status_code = 400
    default_message = "Operation not allowed in the current state"


class InactiveCampaign(InvalidState):
    kind = "inactive_campaign"
    default_message = "Campaign is not active"


class OutsideDateWindow(InvalidState):
    kind = "outside_date_window"
    default_message = "Campaign is not running at this time"


class InvalidClanForCampaign(InvalidState):
    kind = "invalid_clan_for_campaign"
    default_message = "Clan is not part of this campaign"


class AlreadyJoined(InvalidState):
    kind = "already_joined"
    default_message = "User has already joined"


class CooldownNotElapsed(InvalidState):
    kind = "cooldown_not_elapsed"
    default_message = "Clan switch cooldown has not elapsed"


class InactiveUser(InvalidState):
    kind = "inactive_user"
    default_message = "User account is deactivated"


class InvalidDelta(InvalidState):
    kind = "invalid_delta"
    default_message = "Points delta must be a positive finite number"


class InvalidDateRange(InvalidState):
    kind = "invalid_date_range"
    default_message = "Start date must not be after end date"


class InvalidFilter(InvalidState):
    kind = "invalid_filter"
    default_message = "Invalid filter"


class InvalidReferralCode(InvalidState):
    kind = "invalid_referral_code"
    default_message = "Invalid referral code"


class SelfReferral(InvalidState):
    kind = "self_referral"
    default_message = "Cannot use your own referral code"


class AlreadyReferred(InvalidState):
    kind = "already_referred"
    default_message = "User already has a referrer"


# ---------------------------------------------------------------------------
# 409 / 500
# ---------------------------------------------------------------------------
class Conflict(ServiceError):
    kind = "conflict"
    status_code = 409
    default_message = "This record already exists"


class Internal(ServiceError):
    kind = "internal"
    status_code = 500
    default_message = "Internal server error"
