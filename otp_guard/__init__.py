"""
otp-guard
=========
Email one-time password issuance and verification with per-address
rate limiting.

Usage:
    from otp_guard import OTPService, InMemorySessionStore, LoggingCodeSender

    service = OTPService(InMemorySessionStore(), LoggingCodeSender())
    await service.issue("user@example.com")
    await service.verify("user@example.com", "123456")
"""

__version__ = "1.0.0"

from .config import Settings, ConfigError
from .delivery import CodeSender, LoggingCodeSender
from .errors import (
    ErrorKind,
    Outcome,
    OTPError,
    ValidationError,
    SessionNotFoundError,
    SessionExpiredError,
    TooManyAttemptsError,
    InvalidCodeError,
    RateLimitedError,
    InfrastructureError,
    to_public,
)
from .otp import Email, OTPCode, OTPSession, SessionState
from .rate_limit import AddressRateLimiter
from .service import OTPService, IssuedCode, VerificationResult
from .store import SessionStore, InMemorySessionStore, RedisSessionStore

__all__ = [
    "__version__",
    # Config
    "Settings",
    "ConfigError",
    # Delivery
    "CodeSender",
    "LoggingCodeSender",
    # Errors
    "ErrorKind",
    "Outcome",
    "OTPError",
    "ValidationError",
    "SessionNotFoundError",
    "SessionExpiredError",
    "TooManyAttemptsError",
    "InvalidCodeError",
    "RateLimitedError",
    "InfrastructureError",
    "to_public",
    # Domain
    "Email",
    "OTPCode",
    "OTPSession",
    "SessionState",
    # Rate limiting
    "AddressRateLimiter",
    # Service
    "OTPService",
    "IssuedCode",
    "VerificationResult",
    # Stores
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
]
