"""FastAPI application factory."""

import asyncio
from collections.abc import AsyncGenerator
from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI

from culturebridge.challenges.router import router as challenges_router
from culturebridge.challenges.session import registry
from culturebridge.config import get_settings
from culturebridge.database import close_db, create_tables, init_db
from culturebridge.health.router import router as health_router
from culturebridge.middleware import setup_middleware
from culturebridge.redis_client import close_redis, get_redis, init_redis
from culturebridge.social.router import router as social_router
from culturebridge.users.router import router as users_router
from culturebridge.ws.bridge import PubSubBridge
from culturebridge.ws.router import router as ws_router

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(_app: FastAPI) -> AsyncGenerator[None, None]:
    """Startup and shutdown lifecycle."""
    settings = get_settings()
    await init_db(settings.database_url)
    if settings.auto_create_tables:
        await create_tables()
    await init_redis(settings.redis_url)

    # Start the Redis pub/sub -> WebSocket bridge
    bridge = PubSubBridge(get_redis())
    bridge_task = asyncio.create_task(bridge.start())
    logger.info("app_started", environment=settings.environment, version=settings.app_version)

    yield

    await bridge.stop()
    bridge_task.cancel()
    try:
        await bridge_task
    except asyncio.CancelledError:
        pass

    await registry.close_all()
    await close_db()
    await close_redis()


def create_app() -> FastAPI:
    """Create and configure the FastAPI application."""
    settings = get_settings()

    app = FastAPI(
        title="Culture Bridge API",
        description="Backend API for Culture Bridge — daily cultural challenges, streaks and a social feed",
        version=settings.app_version,
        docs_url="/docs" if settings.debug else None,
        redoc_url="/redoc" if settings.debug else None,
        lifespan=lifespan,
    )

    setup_middleware(app, settings)
    app.include_router(health_router, tags=["Health"])
    app.include_router(challenges_router)
    app.include_router(users_router)
    app.include_router(social_router)
    app.include_router(ws_router)

    return app


app = create_app()
