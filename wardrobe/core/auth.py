"""
Auth utilities for the wardrobe API.

Validates Bearer JWTs and extracts the user id from the `sub` claim.
Outside production, when no signing secret is configured, falls back to the
X-User-Id header (local development and tests).
"""
from fastapi import Header, Request
from typing import Optional
import hmac
import jwt
import logging

from wardrobe.core.config import settings
from wardrobe.core.errors import UnauthorizedError

logger = logging.getLogger(__name__)


def verify_jwt(token: str, secret: str, audience: Optional[str] = None) -> str:
    """
    Verify a JWT and extract user_id.

    Raises:
        UnauthorizedError: Invalid or expired token
    """
    try:
        payload = jwt.decode(
            token,
            secret,
            algorithms=["HS256"],
            audience=audience,
            options={"verify_signature": True, "verify_exp": True, "verify_aud": audience is not None},
        )
    except jwt.ExpiredSignatureError:
        raise UnauthorizedError("Token expired")
    except jwt.InvalidTokenError as e:
        logger.debug(f"Invalid token: {e}")
        raise UnauthorizedError("Invalid token")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token")
    return str(user_id)


async def get_current_user_id(
    request: Request,
    x_user_id: Optional[str] = Header(None, description="Development only: user id"),
) -> str:
    """
    Priority:
    1. Bearer JWT from Authorization header
    2. X-User-Id header (only when no secret is configured outside production)
    3. 401 Unauthorized
    """
    auth_header = request.headers.get("Authorization", "")
    if auth_header.startswith("Bearer ") and settings.AUTH_JWT_SECRET:
        return verify_jwt(auth_header[7:], settings.AUTH_JWT_SECRET, settings.AUTH_JWT_AUDIENCE)

    if x_user_id and not settings.AUTH_JWT_SECRET and not settings.is_production:
        return x_user_id

    raise UnauthorizedError("Missing or invalid Authorization header")


async def require_admin(x_admin_key: Optional[str] = Header(None)) -> None:
    if not settings.ADMIN_KEY or not hmac.compare_digest(x_admin_key or "", settings.ADMIN_KEY):
        raise UnauthorizedError("Admin key required")
