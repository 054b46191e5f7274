"""
OTP HTTP API
============
FastAPI routes, health checks and the application factory.
"""

from .app import create_app, app_factory, build_store
from .health import create_health_router, HealthStatus
from .middleware import setup_cors
from .routes import create_auth_router, get_client_address, otp_error_handler

__all__ = [
    "create_app",
    "app_factory",
    "build_store",
    "create_health_router",
    "HealthStatus",
    "setup_cors",
    "create_auth_router",
    "get_client_address",
    "otp_error_handler",
]
