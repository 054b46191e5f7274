"""
Application Factory
===================
Wires settings, store, sender, limiter and service into a FastAPI app.

Usage:
    uvicorn otp_guard.api.app:app_factory --factory
"""

from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Response
from fastapi.exceptions import RequestValidationError

from .. import __version__
from ..config import Settings
from ..delivery import CodeSender, LoggingCodeSender
from ..errors import OTPError
from ..log import setup_logging
from ..metrics import render_metrics
from ..rate_limit import AddressRateLimiter
from ..service import OTPService
from ..store import InMemorySessionStore, RedisSessionStore, SessionStore
from .health import create_health_router
from .middleware import setup_cors
from .routes import create_auth_router, otp_error_handler, request_validation_handler

logger = structlog.get_logger(__name__)

SERVICE_NAME = "otp-guard"


def build_store(settings: Settings) -> SessionStore:
    """Redis when ``REDIS_URL`` is set, otherwise process memory."""
    if settings.redis_url:
        return RedisSessionStore.from_url(settings.redis_url)
    if settings.is_production:
        logger.warning("No REDIS_URL configured, OTP sessions are kept in process memory")
    return InMemorySessionStore()


def create_app(
    settings: Optional[Settings] = None,
    store: Optional[SessionStore] = None,
    sender: Optional[CodeSender] = None,
    limiter: Optional[AddressRateLimiter] = None,
) -> FastAPI:
    """
    Create the OTP application.

    Args:
        settings: Service settings (loaded from the environment if omitted)
        store: Session store (built from settings if omitted)
        sender: Code sender (logging sender if omitted)
        limiter: Rate limiter (built from settings if omitted)
    """
    settings = settings or Settings.from_env()
    store = store or build_store(settings)
    sender = sender or LoggingCodeSender()
    limiter = limiter or AddressRateLimiter.from_settings(settings)
    service = OTPService.from_settings(settings, store, sender)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        limiter.start()
        logger.info("OTP service started", environment=settings.environment)
        try:
            yield
        finally:
            await limiter.stop()
            await store.close()
            logger.info("OTP service stopped")

    app = FastAPI(title=SERVICE_NAME, version=__version__, lifespan=lifespan)
    app.state.settings = settings
    app.state.service = service
    app.state.limiter = limiter

    setup_cors(app, settings)
    app.add_exception_handler(OTPError, otp_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)

    app.include_router(create_auth_router(service, limiter))
    app.include_router(create_health_router(SERVICE_NAME, __version__, store=store, limiter=limiter))

    @app.get("/metrics", include_in_schema=False)
    async def metrics() -> Response:
        payload, content_type = render_metrics()
        return Response(content=payload, media_type=content_type)

    return app


def app_factory() -> FastAPI:
    """Load settings, configure logging and build the app."""
    settings = Settings.from_env()
    setup_logging(SERVICE_NAME, level=settings.log_level, json_output=settings.log_json)
    return create_app(settings)
