"""Caller tokens.

Operators sign in upstream; cxdesk only verifies a signed JWT whose ``sub``
is the user id and whose ``org`` is the organization the user is acting for.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import NamedTuple, Optional

from jose import JWTError, jwt

from cxdesk.config import settings


class CallerClaims(NamedTuple):
    user_id: int
    organization_id: int


def create_access_token(
    user_id: int,
    organization_id: int,
    expires_delta: Optional[timedelta] = None,
) -> str:
    lifetime = expires_delta or timedelta(minutes=settings.access_token_expire_minutes)
    claims = {
        "sub": str(user_id),
        "org": str(organization_id),
        "exp": datetime.now(timezone.utc) + lifetime,
    }
    return jwt.encode(claims, settings.secret_key, algorithm=settings.algorithm)


def decode_caller_claims(token: str) -> Optional[CallerClaims]:
    """Verified caller identity, or None for a bad, expired or incomplete token."""

    try:
        payload = jwt.decode(token, settings.secret_key, algorithms=[settings.algorithm])
        return CallerClaims(int(payload["sub"]), int(payload["org"]))
    except (JWTError, KeyError, TypeError, ValueError):
        return None
