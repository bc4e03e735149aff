"""
Actor identity for API requests.

Verifies HS256 bearer tokens (PyJWT) and extracts the actor id from the
'sub' claim. Falls back to the X-User-Id header when ALLOW_HEADER_AUTH is on
(development and tests).
"""
from typing import Optional
import logging

import jwt
from fastapi import Header, Request

from orgaccess.core.config import Settings, settings
from orgaccess.core.errors import UnauthenticatedError

logger = logging.getLogger(__name__)


def verify_token(token: str, settings_obj: Optional[Settings] = None) -> str:
    """
    Verify a bearer token and return its 'sub' claim.

    Raises:
        UnauthenticatedError: Expired, malformed or unsigned token, or no
            AUTH_SECRET_KEY configured
    """
    cfg = settings_obj or settings
    if not cfg.AUTH_SECRET_KEY:
        logger.debug("No AUTH_SECRET_KEY configured, rejecting bearer token")
        raise UnauthenticatedError("Token verification is not configured", code="auth_not_configured")

    try:
        payload = jwt.decode(
            token,
            cfg.AUTH_SECRET_KEY,
            algorithms=[cfg.AUTH_ALGORITHM],
            options={"verify_signature": True, "verify_exp": True},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthenticatedError("Token expired", code="token_expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthenticatedError("Invalid token", code="invalid_token")

    actor_id = payload.get("sub")
    if not actor_id:
        raise UnauthenticatedError("No 'sub' claim in token", code="invalid_token")
    return str(actor_id)


async def get_optional_actor_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Dev/test actor id"),
) -> Optional[str]:
    """
    Resolve the calling actor, or None when the request carries no identity.

    Priority:
    1. Authorization: Bearer <token>
    2. X-User-Id header (only when ALLOW_HEADER_AUTH)

    A present but invalid token is rejected outright rather than falling
    through to the header.
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer "):
        actor_id = verify_token(auth_header[len("Bearer "):].strip())
    elif x_user_id and settings.ALLOW_HEADER_AUTH:
        actor_id = x_user_id.strip() or None
    else:
        actor_id = None

    request.state.actor_id = actor_id
    return actor_id
