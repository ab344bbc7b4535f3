"""JWT verification for tokens issued by the hosted auth provider.

Tokens are HS256-signed with the project's shared secret. ``sub`` carries the
auth user id; ``aud`` must be the authenticated-role audience.
"""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

import jwt

from culturebridge.config import get_settings


def create_access_token(
    user_id: str,
    email: str | None = None,
    username: str | None = None,
    expires_in: timedelta | None = None,
) -> str:
    """
    Mint an access token in the provider's format.

    Used by tests and local tooling; production tokens come from the provider.

    Args:
        user_id: The auth user id (becomes ``sub``).
        email: Optional email claim.
        username: Optional username, copied into ``user_metadata``.
        expires_in: Lifetime override.

    Returns:
        Encoded JWT string.
    """
    settings = get_settings()
    now = datetime.now(timezone.utc)
    lifetime = expires_in or timedelta(minutes=settings.jwt_access_token_expire_minutes)
    payload: dict[str, Any] = {
        "sub": user_id,
        "email": email,
        "user_metadata": {"username": username} if username else {},
        "role": "authenticated",
        "aud": settings.jwt_audience,
        "iss": settings.jwt_issuer,
        "iat": now,
        "exp": now + lifetime,
    }
    return jwt.encode(payload, settings.jwt_secret, algorithm=settings.jwt_algorithm)


def verify_token(token: str) -> dict[str, Any]:
    """
    Verify and decode an access token.

    Raises:
        jwt.InvalidTokenError: If the token is invalid, expired, or has no subject.
    """
    settings = get_settings()
    try:
        payload: dict[str, Any] = jwt.decode(
            token,
            settings.jwt_secret,
            algorithms=[settings.jwt_algorithm],
            audience=settings.jwt_audience,
            issuer=settings.jwt_issuer,
        )
    except jwt.ExpiredSignatureError:
        msg = "Token has expired"
        raise jwt.InvalidTokenError(msg) from None

    if not payload.get("sub"):
        msg = "Token has no subject"
        raise jwt.InvalidTokenError(msg)

    return payload
