"""
Shared fixtures and fakes for the OTP tests.
"""

from datetime import datetime, timedelta, timezone
from typing import List, Optional, Tuple

import pytest

from otp_guard.delivery import CodeSender
from otp_guard.otp import Email, OTPCode, OTPSession
from otp_guard.store import InMemorySessionStore


T0 = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class MutableClock:
    """Wall clock that only moves when told to."""

    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


class ManualTicker:
    """Monotonic clock in seconds for the rate limiter."""

    def __init__(self, start: float = 1000.0):
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds


class RecordingSender(CodeSender):
    def __init__(self):
        self.sent: List[Tuple[Email, OTPCode]] = []

    async def send_code(self, email: Email, code: OTPCode) -> None:
        self.sent.append((email, code))

    @property
    def last_code(self) -> Optional[str]:
        return self.sent[-1][1].value if self.sent else None


class FailingSender(CodeSender):
    async def send_code(self, email: Email, code: OTPCode) -> None:
        raise ConnectionError("smtp unavailable")


class FlakyStore(InMemorySessionStore):
    """In-memory store whose operations can be made to fail on demand."""

    def __init__(self):
        super().__init__()
        self.fail_save = False
        self.fail_find = False
        self.fail_delete = False

    async def save(self, session: OTPSession, expected_version=None) -> None:
        if self.fail_save:
            raise ConnectionError("store down")
        await super().save(session, expected_version)

    async def find_by_email(self, email: Email) -> OTPSession:
        if self.fail_find:
            raise ConnectionError("store down")
        return await super().find_by_email(email)

    async def delete(self, email: Email, expected_version=None) -> None:
        if self.fail_delete:
            raise ConnectionError("store down")
        await super().delete(email, expected_version)

    async def ping(self) -> bool:
        return not self.fail_find


@pytest.fixture
def clock():
    return MutableClock()


@pytest.fixture
def ticker():
    return ManualTicker()


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def store():
    return FlakyStore()


@pytest.fixture
def email():
    return Email.parse("user@example.com")


@pytest.fixture
def code():
    return OTPCode("123456")
