"""Shared test fixtures."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import datetime, timezone
from typing import Any

# In-memory row store and no Redis; must be set before settings are first read
os.environ["CB_DATABASE_URL"] = "sqlite+aiosqlite:///:memory:"
os.environ["CB_LOG_FORMAT"] = "console"
os.environ["CB_ROW_STORE_TIMEOUT_SECONDS"] = "5"

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncSession

from culturebridge.auth.jwt import create_access_token
from culturebridge.challenges.session import registry
from culturebridge.config import get_settings
from culturebridge.database import close_db, create_tables, get_session, init_db
from culturebridge.db.models import Challenge, FeedPost, Profile, UserChallenge

get_settings.cache_clear()


@pytest_asyncio.fixture
async def db() -> AsyncGenerator[None, None]:
    """Fresh in-memory database with all tables."""
    await init_db(get_settings().database_url)
    await create_tables()
    registry._sessions.clear()
    yield
    registry._sessions.clear()
    await close_db()


@pytest_asyncio.fixture
async def db_session(db: None) -> AsyncGenerator[AsyncSession, None]:
    """Get a direct database session for setup and assertions."""
    async for session in get_session():
        yield session
        break


@pytest_asyncio.fixture
async def client(db: None) -> AsyncGenerator[AsyncClient, None]:
    """HTTP test client. Lifespan is not run; the fixture owns db setup."""
    from culturebridge.main import create_app

    app = create_app()
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


def _auth_headers(user_id: str, username: str | None = None) -> dict[str, str]:
    token = create_access_token(user_id, username=username)
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def auth_headers() -> Callable[..., dict[str, str]]:
    """Build a bearer header for a user id."""
    return _auth_headers


def utc(*args: int) -> datetime:
    return datetime(*args, tzinfo=timezone.utc)


@pytest.fixture
def make_challenge(db_session: AsyncSession) -> Callable[..., Awaitable[Challenge]]:
    """Insert and commit a challenge row."""

    async def _make(**overrides: Any) -> Challenge:
        fields: dict[str, Any] = {
            "title": "Greeting in Japanese",
            "description": "How do you say good morning in Japanese?",
            "type": "cultural",
            "country": "Japan",
            "flag": "🇯🇵",
            "points": 20,
            "difficulty": "Easy",
            "options": None,
            "correct_answer": "Ohayo",
            "is_daily": True,
            "created_at": utc(2026, 1, 1),
        }
        fields.update(overrides)
        challenge = Challenge(**fields)
        db_session.add(challenge)
        await db_session.commit()
        return challenge

    return _make


@pytest.fixture
def make_profile(db_session: AsyncSession) -> Callable[..., Awaitable[Profile]]:
    """Insert and commit a profile row."""

    async def _make(user_id: str, **overrides: Any) -> Profile:
        fields: dict[str, Any] = {
            "user_id": user_id,
            "username": user_id,
            "display_name": user_id.title(),
            "total_points": 0,
            "current_streak": 0,
            "max_streak": 0,
            "countries_bridged": [],
        }
        fields.update(overrides)
        profile = Profile(**fields)
        db_session.add(profile)
        await db_session.commit()
        return profile

    return _make


@pytest.fixture
def make_attempt(db_session: AsyncSession) -> Callable[..., Awaitable[UserChallenge]]:
    """Insert and commit an attempt row."""

    async def _make(user_id: str, challenge_id: str, completed_at: datetime, **overrides: Any) -> UserChallenge:
        fields: dict[str, Any] = {
            "user_id": user_id,
            "challenge_id": challenge_id,
            "user_answer": "x",
            "is_correct": True,
            "points_earned": 10,
            "completed_at": completed_at,
        }
        fields.update(overrides)
        attempt = UserChallenge(**fields)
        db_session.add(attempt)
        await db_session.commit()
        return attempt

    return _make


@pytest.fixture
def make_post(db_session: AsyncSession) -> Callable[..., Awaitable[FeedPost]]:
    """Insert and commit a feed post."""

    async def _make(user_id: str, **overrides: Any) -> FeedPost:
        fields: dict[str, Any] = {
            "user_id": user_id,
            "action_description": "completed the Greeting in Japanese",
            "points_earned": 20,
            "streak_count": 1,
            "country": "Japan",
            "flag": "🇯🇵",
        }
        fields.update(overrides)
        post = FeedPost(**fields)
        db_session.add(post)
        await db_session.commit()
        return post

    return _make
