"""Middleware registration."""

from fastapi import FastAPI

from culturebridge.config import Settings
from culturebridge.middleware.cors import setup_cors
from culturebridge.middleware.error_handler import setup_error_handlers
from culturebridge.middleware.logging import setup_logging
from culturebridge.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register all middleware in the correct order.

    Starlette runs middleware in reverse-add order (last added = outermost),
    so CORS is added last to wrap error responses too.
    """
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
    setup_cors(app, settings)
