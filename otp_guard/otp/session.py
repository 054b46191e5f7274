"""
OTP Session
===========
The verification state machine for one user's current challenge.

A session is identified by its email and owns a single mutable value, the
failed-attempt counter. States::

    ACTIVE --correct code--> VERIFIED (caller deletes the session)
    ACTIVE --3rd wrong code--> LOCKED
    ACTIVE --time passes--> EXPIRED

LOCKED and EXPIRED are terminal for the code: no input, not even the right
code, makes the session verifiable again.
"""

import hmac
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Optional, Union

from ..errors import InvalidCodeError, SessionExpiredError, TooManyAttemptsError
from .hashing import AddressHash
from .values import Email, OTPCode

OTP_TTL = timedelta(minutes=5)
MAX_VERIFICATION_ATTEMPTS = 3


class SessionState(str, Enum):
    """Lifecycle states of an OTP session."""
    ACTIVE = "active"
    EXPIRED = "expired"
    LOCKED = "locked"
    VERIFIED = "verified"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


class OTPSession:
    """
    An OTP verification session for a user.

    Everything but ``attempts`` is fixed at construction. ``version`` is
    bookkeeping owned by the session store and plays no part in verification.
    """

    def __init__(
        self,
        email: Email,
        code: OTPCode,
        address_hash: Optional[AddressHash] = None,
        user_agent: str = "",
        now: Optional[datetime] = None,
    ):
        created_at = now or utcnow()
        self._email = email
        self._code = code
        self._created_at = created_at
        self._expires_at = created_at + OTP_TTL
        self._address_hash = address_hash or AddressHash.empty()
        self._user_agent = user_agent or ""
        self._attempts = 0
        self.version = 0

    @property
    def email(self) -> Email:
        return self._email

    @property
    def code(self) -> OTPCode:
        return self._code

    @property
    def created_at(self) -> datetime:
        return self._created_at

    @property
    def expires_at(self) -> datetime:
        return self._expires_at

    @property
    def attempts(self) -> int:
        return self._attempts

    @property
    def address_hash(self) -> AddressHash:
        return self._address_hash

    @property
    def user_agent(self) -> str:
        return self._user_agent

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        return (now or utcnow()) > self._expires_at

    def is_locked(self) -> bool:
        return self._attempts >= MAX_VERIFICATION_ATTEMPTS

    def state(self, now: Optional[datetime] = None) -> SessionState:
        if self.is_expired(now):
            return SessionState.EXPIRED
        if self.is_locked():
            return SessionState.LOCKED
        return SessionState.ACTIVE

    def can_verify(self, now: Optional[datetime] = None) -> None:
        """
        Gate evaluated before any comparison.

        Raises:
            SessionExpiredError: Checked first
            TooManyAttemptsError: Attempt cap reached
        """
        if self.is_expired(now):
            raise SessionExpiredError()
        if self.is_locked():
            raise TooManyAttemptsError()

    def verify(self, code: Union[str, OTPCode], now: Optional[datetime] = None) -> None:
        """
        Check a submitted code against this session.

        Returns normally on a match without touching the counter. A session
        that is already expired or locked raises its gate error and is not
        penalised further.

        Raises:
            SessionExpiredError: Session past its expiry
            TooManyAttemptsError: Attempt cap already reached
            InvalidCodeError: Code does not match; attempts was incremented
        """
        self.can_verify(now)

        if isinstance(code, OTPCode):
            code = code.value
        expected = self._code.value.encode()
        actual = code.encode() if isinstance(code, str) else b""

        # Codes are fixed-length, so the length check reveals nothing.
        if len(actual) != len(expected) or not hmac.compare_digest(expected, actual):
            self._attempts += 1
            raise InvalidCodeError()

    def record_failed_attempt(self) -> None:
        """Increment the counter outside ``verify`` (restore/admin paths only)."""
        self._attempts += 1

    def __repr__(self) -> str:
        return (
            f"OTPSession(email={self._email.masked()!r}, attempts={self._attempts}, "
            f"expires_at={self._expires_at.isoformat()}, version={self.version})"
        )
