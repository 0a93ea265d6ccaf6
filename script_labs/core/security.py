"""
Locally issued session tokens and the bearer-token dependency.

Tokens are stateless: nothing is stored server-side and nothing revokes a
token before its ``exp`` claim.
"""

import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

import jwt
from fastapi import Header, Request

from script_labs.config import settings
from script_labs.core.errors import AuthenticationError

logger = logging.getLogger(__name__)


def create_access_token(user_id: Any, email: Optional[str], expires_in: Optional[int] = None) -> str:
    now = datetime.now(timezone.utc)
    seconds = settings.jwt_expires_seconds if expires_in is None else expires_in
    payload = {
        "userId": user_id,
        "email": email,
        "iat": now,
        "exp": now + timedelta(seconds=seconds),
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def decode_access_token(token: str) -> Dict[str, Any]:
    """Raises jwt.InvalidTokenError (or a subclass) on bad signature, shape or expiry."""
    return jwt.decode(
        token,
        settings.jwt_secret,
        algorithms=[settings.jwt_algorithm],
        options={"require": ["exp"]},
    )


def get_current_user(
    request: Request,
    authorization: Optional[str] = Header(default=None),
) -> Dict[str, Any]:
    """Resolve the caller from ``Authorization: Bearer <jwt>``."""
    if not authorization or not authorization.strip():
        raise AuthenticationError("No token provided", "NO_TOKEN")

    parts = authorization.split()
    if len(parts) != 2 or parts[0].lower() != "bearer":
        raise AuthenticationError("Invalid token format", "INVALID_FORMAT")

    try:
        payload = decode_access_token(parts[1])
    except jwt.InvalidTokenError as exc:
        logger.debug("Token rejected: %s", exc)
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")
    if payload.get("userId") is None:
        raise AuthenticationError("Invalid token", "INVALID_TOKEN")

    user = {
        "id": payload.get("userId"),
        "email": payload.get("email"),
        "exp": payload.get("exp"),
    }
    request.state.user_id = user["id"]
    return user
