"""
OTP Errors
==========
Closed error taxonomy for the OTP core and its mapping to caller-visible outcomes.

Every exception raised by the core carries an ``ErrorKind``. The boundary
layer never inspects exception classes directly: it looks the kind up in
``OUTCOME_BY_KIND``, which must classify every kind. Session-related
rejections all collapse to one outcome so callers cannot tell whether an
email has an active session.
"""

import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, ClassVar, Dict, Optional


class ErrorKind(str, Enum):
    """Tag carried by every OTP error."""
    VALIDATION = "validation"
    NOT_FOUND = "not_found"
    EXPIRED = "expired"
    TOO_MANY_ATTEMPTS = "too_many_attempts"
    INVALID_CODE = "invalid_code"
    RATE_LIMITED = "rate_limited"
    INFRASTRUCTURE = "infrastructure"


class Outcome(str, Enum):
    """Outcome reported to end users."""
    INVALID_INPUT = "invalid_input"
    INVALID_OR_EXPIRED_CODE = "invalid_or_expired_code"
    RATE_LIMITED = "rate_limited"
    SERVICE_UNAVAILABLE = "service_unavailable"


OUTCOME_BY_KIND: Dict[ErrorKind, Outcome] = {
    ErrorKind.VALIDATION: Outcome.INVALID_INPUT,
    ErrorKind.NOT_FOUND: Outcome.INVALID_OR_EXPIRED_CODE,
    ErrorKind.EXPIRED: Outcome.INVALID_OR_EXPIRED_CODE,
    ErrorKind.TOO_MANY_ATTEMPTS: Outcome.INVALID_OR_EXPIRED_CODE,
    ErrorKind.INVALID_CODE: Outcome.INVALID_OR_EXPIRED_CODE,
    ErrorKind.RATE_LIMITED: Outcome.RATE_LIMITED,
    ErrorKind.INFRASTRUCTURE: Outcome.SERVICE_UNAVAILABLE,
}

_unclassified = set(ErrorKind) - set(OUTCOME_BY_KIND)
if _unclassified:
    raise RuntimeError(
        f"Unclassified error kinds: {sorted(k.value for k in _unclassified)}"
    )

STATUS_BY_OUTCOME: Dict[Outcome, int] = {
    Outcome.INVALID_INPUT: 400,
    Outcome.INVALID_OR_EXPIRED_CODE: 401,
    Outcome.RATE_LIMITED: 429,
    Outcome.SERVICE_UNAVAILABLE: 503,
}

MESSAGE_BY_OUTCOME: Dict[Outcome, str] = {
    Outcome.INVALID_INPUT: "Invalid request",
    Outcome.INVALID_OR_EXPIRED_CODE: "Invalid or expired OTP",
    Outcome.RATE_LIMITED: "Rate limit exceeded. Please try again later.",
    Outcome.SERVICE_UNAVAILABLE: "Service temporarily unavailable. Please try again later.",
}


class OTPError(Exception):
    """Base class for all OTP core errors."""
    kind: ClassVar[ErrorKind]
    default_message: ClassVar[str] = "otp error"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.default_message
        # Set when recording a failed attempt could not be persisted.
        self.persistence_error: Optional[Exception] = None
        super().__init__(self.message)


class ValidationError(OTPError):
    """Malformed caller input."""
    kind = ErrorKind.VALIDATION
    default_message = "invalid input"

    def __init__(self, field_name: str, message: Optional[str] = None):
        self.field = field_name
        super().__init__(message or f"invalid {field_name}")


class SessionNotFoundError(OTPError):
    kind = ErrorKind.NOT_FOUND
    default_message = "otp session not found"


class SessionExpiredError(OTPError):
    kind = ErrorKind.EXPIRED
    default_message = "otp session has expired"


class TooManyAttemptsError(OTPError):
    kind = ErrorKind.TOO_MANY_ATTEMPTS
    default_message = "too many failed verification attempts"


class InvalidCodeError(OTPError):
    kind = ErrorKind.INVALID_CODE
    default_message = "invalid otp code"


class RateLimitedError(OTPError):
    kind = ErrorKind.RATE_LIMITED
    default_message = "rate limit exceeded"

    def __init__(self, retry_after: Optional[float] = None, message: Optional[str] = None):
        self.retry_after = retry_after
        super().__init__(message)


class InfrastructureError(OTPError):
    """Store, delivery or entropy failure not attributable to caller input."""
    kind = ErrorKind.INFRASTRUCTURE
    default_message = "infrastructure failure"

    def __init__(self, message: Optional[str] = None, operation: str = "unknown"):
        self.operation = operation
        super().__init__(message)


class CodeGenerationError(InfrastructureError):
    """Secure random source unavailable."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "failed to generate otp code", operation="generate")


class StoreError(InfrastructureError):
    """Backing session store failed."""


class ConcurrentModificationError(StoreError):
    """Stored session changed since it was read."""

    def __init__(self, key: str, expected_version: int, actual_version: Optional[int]):
        self.key = key
        self.expected_version = expected_version
        self.actual_version = actual_version
        super().__init__(
            f"session version mismatch: expected {expected_version}, found {actual_version}",
            operation="compare_and_swap",
        )


class DeliveryError(InfrastructureError):
    """Code delivery collaborator failed."""

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or "failed to deliver otp code", operation="deliver")


@dataclass
class PublicError:
    """Boundary representation of an error, safe to show to end users."""
    outcome: Outcome
    status_code: int
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        body: Dict[str, Any] = {"error": self.message, "code": self.outcome.value}
        body.update(self.details)
        return body


def outcome_for(error: BaseException) -> Outcome:
    """Classify any exception; anything outside the taxonomy is infrastructure."""
    if isinstance(error, OTPError):
        return OUTCOME_BY_KIND[error.kind]
    return OUTCOME_BY_KIND[ErrorKind.INFRASTRUCTURE]


def to_public(error: BaseException) -> PublicError:
    """
    Map an exception to what the caller is allowed to see.

    Validation errors name the offending field; rate limiting carries the
    retry delay. Everything else is reduced to its outcome message.
    """
    outcome = outcome_for(error)
    details: Dict[str, Any] = {}

    if outcome is Outcome.INVALID_INPUT and isinstance(error, ValidationError):
        details["field"] = error.field
    elif outcome is Outcome.RATE_LIMITED and isinstance(error, RateLimitedError):
        if error.retry_after is not None:
            details["retry_after"] = max(1, math.ceil(error.retry_after))

    return PublicError(
        outcome=outcome,
        status_code=STATUS_BY_OUTCOME[outcome],
        message=MESSAGE_BY_OUTCOME[outcome],
        details=details,
    )
