"""Middleware registration."""

from fastapi import FastAPI

from berse.config import Settings
from berse.middleware.error_handler import setup_error_handlers
from berse.middleware.logging import setup_logging
from berse.middleware.request_id import RequestIdMiddleware


def setup_middleware(app: FastAPI, settings: Settings) -> None:
    """Register logging, error handlers and request id middleware."""
    setup_logging(settings)
    setup_error_handlers(app)
    app.add_middleware(RequestIdMiddleware)
