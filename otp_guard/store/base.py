"""
Session Store Interface
=======================
Keyed persistence contract for OTP sessions.

Stores hold no business logic: expiry and attempt limits belong to the
session entity. Every successful write assigns the session a new ``version``
drawn from a sequence that never repeats, so a conditional write against a
version read earlier cannot succeed against a session that was deleted and
reissued in between.
"""

from abc import ABC, abstractmethod
from typing import Optional

from ..otp import Email, OTPSession


class SessionStore(ABC):
    """Async persistence for OTP sessions, keyed by email."""

    @abstractmethod
    async def save(self, session: OTPSession, expected_version: Optional[int] = None) -> None:
        """
        Store or replace the session for ``session.email``.

        Args:
            session: Session to persist; its ``version`` is updated on success
            expected_version: When given, write only if the stored version
                still equals it

        Raises:
            ConcurrentModificationError: Stored version differs
            StoreError: Backend failure
        """

    @abstractmethod
    async def find_by_email(self, email: Email) -> OTPSession:
        """
        Load the session for an email.

        Raises:
            SessionNotFoundError: No session stored
            StoreError: Backend failure or unreadable record
        """

    @abstractmethod
    async def delete(self, email: Email, expected_version: Optional[int] = None) -> None:
        """
        Remove the session for an email. Deleting a missing session is a
        no-op unless ``expected_version`` is given.

        Raises:
            ConcurrentModificationError: Stored version differs
            StoreError: Backend failure
        """

    async def ping(self) -> bool:
        """Health probe."""
        return True

    async def close(self) -> None:
        """Release backend resources."""
