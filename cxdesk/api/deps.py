from typing import Optional

from fastapi import Depends, Request
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.orm import Session

from cxdesk.core.context import CallerContext
from cxdesk.core.errors import UnauthorizedError
from cxdesk.core.security import decode_caller_claims
from cxdesk.database import get_db
from cxdesk.models import Organization, User

_DB_DEP = Depends(get_db)
_BEARER_DEP = Depends(HTTPBearer(auto_error=False))


def _forwarded_token(request: Request) -> Optional[str]:
    # Reverse proxies in front of the desk terminals forward X-Authorization.
    raw = (request.headers.get("x-authorization") or "").strip()
    scheme, _, token = raw.partition(" ")
    if token and scheme.lower() == "bearer":
        return token.strip()
    return raw or None


def get_current_context(
    request: Request,
    db: Session = _DB_DEP,
    credentials: Optional[HTTPAuthorizationCredentials] = _BEARER_DEP,
) -> CallerContext:
    """Resolve the bearer token into the acting user and organization."""

    token = credentials.credentials if credentials else _forwarded_token(request)
    if not token:
        raise UnauthorizedError()

    claims = decode_caller_claims(token)
    if claims is None:
        raise UnauthorizedError("Invalid credentials")

    user = db.get(User, claims.user_id)
    if user is None or not user.active:
        raise UnauthorizedError("User not found or inactive")
    if db.get(Organization, claims.organization_id) is None:
        raise UnauthorizedError("Organization not found")
    return CallerContext(user_id=user.id, organization_id=claims.organization_id)
