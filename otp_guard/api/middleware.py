"""
Middleware Module
=================
CORS setup driven by the service settings.
"""

from typing import List, Optional

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from ..config import Settings

logger = structlog.get_logger(__name__)


def setup_cors(
    app: FastAPI,
    settings: Settings,
    allow_methods: Optional[List[str]] = None,
    allow_headers: Optional[List[str]] = None,
) -> None:
    """
    Configure CORS middleware.

    Production only allows ``settings.allowed_origins``; any other
    environment allows every origin.

    Args:
        app: FastAPI application instance
        settings: Loaded service settings
        allow_methods: Allowed HTTP methods (default: GET, POST, OPTIONS)
        allow_headers: Allowed headers (default: Content-Type, Authorization)
    """
    if settings.is_production:
        origins = list(settings.allowed_origins)
    else:
        origins = ["*"]

    if allow_methods is None:
        allow_methods = ["GET", "POST", "OPTIONS"]

    if allow_headers is None:
        allow_headers = ["Authorization", "Content-Type", "X-Request-ID"]

    app.add_middleware(
        CORSMiddleware,
        allow_origins=origins,
        allow_credentials=True,
        allow_methods=allow_methods,
        allow_headers=allow_headers,
    )

    logger.info("CORS configured", environment=settings.environment, origins_count=len(origins))
