"""
Session Restoration
===================
Rehydrate an OTPSession from persisted fields.

Store implementations only. Application code creates sessions through the
OTPSession constructor; restoration is the single path that sets the
attempt counter and timestamps directly.
"""

from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Optional

from .hashing import AddressHash
from .session import OTPSession
from .values import Email, OTPCode


class RestorationError(ValueError):
    """Persisted fields cannot form a valid session."""


def _aware(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


@dataclass(frozen=True)
class RestorationData:
    """
    Validated snapshot of a persisted session.

    Validation rules:
        - email and code must be present
        - attempts must not be negative
        - created_at and expires_at must be present, expires_at later
        - address_hash must be present (use AddressHash.empty() if no address)
        - user_agent may be empty
    """
    email: Email
    code: OTPCode
    attempts: int
    created_at: datetime
    expires_at: datetime
    address_hash: AddressHash
    user_agent: str = ""
    version: int = 0

    def __post_init__(self):
        if self.email is None:
            raise RestorationError("email is required for restoration")
        if self.code is None:
            raise RestorationError("otp code is required for restoration")
        if not isinstance(self.attempts, int) or self.attempts < 0:
            raise RestorationError("attempts cannot be negative")
        if not isinstance(self.created_at, datetime):
            raise RestorationError("created_at is required for restoration")
        if not isinstance(self.expires_at, datetime):
            raise RestorationError("expires_at is required for restoration")
        if self.address_hash is None:
            raise RestorationError(
                "address_hash is required for restoration (use AddressHash.empty() if no address)"
            )

        object.__setattr__(self, "created_at", _aware(self.created_at))
        object.__setattr__(self, "expires_at", _aware(self.expires_at))
        if self.expires_at <= self.created_at:
            raise RestorationError("expires_at must be after created_at")
        object.__setattr__(self, "user_agent", self.user_agent or "")


def restore_session(data: RestorationData, version: Optional[int] = None) -> OTPSession:
    """
    Rebuild a session with all persisted state, bypassing the constructor.

    Args:
        data: Validated persisted fields
        version: Store version, overriding ``data.version`` when given

    Returns:
        OTPSession in the exact state that was saved
    """
    session = OTPSession.__new__(OTPSession)
    session._email = data.email
    session._code = data.code
    session._created_at = data.created_at
    session._expires_at = data.expires_at
    session._address_hash = data.address_hash
    session._user_agent = data.user_agent
    session._attempts = data.attempts
    session.version = data.version if version is None else version
    return session


def snapshot(session: OTPSession) -> RestorationData:
    """Capture a session's persisted fields."""
    return RestorationData(
        email=session.email,
        code=session.code,
        attempts=session.attempts,
        created_at=session.created_at,
        expires_at=session.expires_at,
        address_hash=session.address_hash,
        user_agent=session.user_agent,
        version=session.version,
    )
