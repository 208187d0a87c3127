"""
clanquest.api.security — JWT secret validation & token helpers
===============================================================

``JWT_SECRET`` is validated once, at import time, so a misconfigured
deployment fails on startup instead of on the first request.

Usage::

    from clanquest.api.security import decode_token, issue_token

    token = issue_token(user_id=7, username="drew", is_admin=False, ttl_days=30)
    payload = decode_token(token)       # raises jwt.InvalidTokenError
"""

from __future__ import annotations

import os
from datetime import UTC, datetime, timedelta

import jwt

_WEAK_SECRETS = frozenset({
    "clanquest-dev-secret-change-me",
    "change-me",
    "secret",
    "dev",
    "",
})

_MIN_SECRET_LENGTH = 32

JWT_ALGORITHM = "HS256"


def _load_jwt_secret() -> str:
    """Load and validate JWT_SECRET from the environment.

    Raises RuntimeError if the secret is missing, blank, too short
    (< 32 chars), or a known weak default.
    """
    secret = os.getenv("JWT_SECRET", "")
    if not secret:
        raise RuntimeError(
            "JWT_SECRET environment variable is not set. "
            "Generate one with: python -c \"import secrets; print(secrets.token_urlsafe(64))\""
        )
    if secret in _WEAK_SECRETS:
        raise RuntimeError(
            f"JWT_SECRET is set to a known weak default ('{secret}'). "
            "Please set a strong, unique secret."
        )
    if len(secret) < _MIN_SECRET_LENGTH:
        raise RuntimeError(
            f"JWT_SECRET is too short ({len(secret)} chars). "
            f"Minimum length is {_MIN_SECRET_LENGTH} characters."
        )
    return secret


JWT_SECRET: str = _load_jwt_secret()


def issue_token(*, user_id: int, username: str, is_admin: bool, ttl_days: int) -> str:
    payload = {
        "sub": str(user_id),
        "username": username,
        "is_admin": is_admin,
        "exp": datetime.now(UTC) + timedelta(days=ttl_days),
    }
    return jwt.encode(payload, JWT_SECRET, algorithm=JWT_ALGORITHM)


def decode_token(token: str) -> dict:
    return jwt.decode(token, JWT_SECRET, algorithms=[JWT_ALGORITHM])
