"""FastAPI authentication dependencies."""

from __future__ import annotations

from dataclasses import dataclass

import jwt
from fastapi import Depends, HTTPException, Security
from fastapi.security import HTTPAuthorizationCredentials, HTTPBearer
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.auth.jwt import verify_token
from culturebridge.challenges.session import ChallengeSession, registry
from culturebridge.database import get_session
from culturebridge.errors import PersistenceFailure

_bearer = HTTPBearer(auto_error=False)


@dataclass(frozen=True)
class AuthUser:
    """The signed-in user as seen by the auth provider."""

    id: str
    email: str | None = None
    username: str | None = None


async def get_current_user(
    credentials: HTTPAuthorizationCredentials | None = Security(_bearer),
) -> AuthUser:
    """Verify the bearer token. Raises 401 when missing or invalid."""
    if credentials is None:
        raise HTTPException(status_code=401, detail="Not authenticated")
    try:
        payload = verify_token(credentials.credentials)
    except jwt.InvalidTokenError as e:
        raise HTTPException(status_code=401, detail=str(e)) from e

    metadata = payload.get("user_metadata") or {}
    return AuthUser(
        id=str(payload["sub"]),
        email=payload.get("email"),
        username=metadata.get("username"),
    )


async def get_challenge_session(
    user: AuthUser = Depends(get_current_user),
    db: AsyncSession = Depends(get_session),
) -> ChallengeSession:
    """The user's live session, bound to their profile on first use."""
    session = registry.get_or_create(user.id)
    if not session.authenticated:
        try:
            await session.bind_user(db, user.id, user.username)
        except PersistenceFailure as e:
            raise HTTPException(status_code=503, detail=e.message) from e
    return session
