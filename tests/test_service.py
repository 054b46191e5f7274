"""
Unit Tests for the OTP Service
==============================
Issuance and verification orchestration, including store and delivery
failures and concurrent verification.
"""

import asyncio

import pytest

from otp_guard.errors import (
    ConcurrentModificationError,
    DeliveryError,
    InfrastructureError,
    InvalidCodeError,
    SessionExpiredError,
    SessionNotFoundError,
    StoreError,
    TooManyAttemptsError,
    ValidationError,
)
from otp_guard.otp import OTP_TTL, Email, SessionState
from otp_guard.service import OTPService

from .conftest import FailingSender, FlakyStore, RecordingSender


class YieldingStore(FlakyStore):
    """Yields to the event loop after every read so requests interleave."""

    async def find_by_email(self, email):
        session = await super().find_by_email(email)
        await asyncio.sleep(0)
        return session


class AlwaysConflictingStore(FlakyStore):
    async def save(self, session, expected_version=None):
        if expected_version is not None:
            raise ConcurrentModificationError(session.email.value, expected_version, expected_version + 1)
        await super().save(session)


class SlowSaveStore(FlakyStore):
    """Conditional saves take a while, so a request can be cancelled mid-write."""

    async def save(self, session, expected_version=None):
        if expected_version is not None:
            await asyncio.sleep(0.05)
        await super().save(session, expected_version)


class SlowSender(RecordingSender):
    async def send_code(self, email, code):
        await asyncio.sleep(0.05)
        await super().send_code(email, code)


def wrong(code: str) -> str:
    return "000000" if code != "000000" else "111111"


@pytest.fixture
def service(store, sender, clock):
    return OTPService(store, sender, clock=clock)


class TestIssue:
    """Tests for code issuance."""

    @pytest.mark.asyncio
    async def test_issue_stores_then_sends(self, service, store, sender, clock):
        issued = await service.issue(" user@Example.com ", client_address="10.0.0.1", user_agent="ua")

        assert issued.email.value == "user@example.com"
        assert sender.last_code == issued.code.value
        session = await store.find_by_email(issued.email)
        assert session.code == issued.code
        assert session.expires_at == issued.expires_at == clock.now + OTP_TTL
        assert not session.address_hash.is_empty
        assert session.user_agent == "ua"

    @pytest.mark.asyncio
    async def test_invalid_email(self, service, store, sender):
        with pytest.raises(ValidationError):
            await service.issue("not-an-email")
        assert len(store) == 0
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_store_failure_sends_nothing(self, service, store, sender):
        """No code is delivered unless its session was saved."""
        store.fail_save = True
        with pytest.raises(StoreError):
            await service.issue("user@example.com")
        assert sender.sent == []

    @pytest.mark.asyncio
    async def test_delivery_failure_keeps_session(self, store, clock):
        service = OTPService(store, FailingSender(), clock=clock)
        with pytest.raises(DeliveryError):
            await service.issue("user@example.com")
        assert len(store) == 1

    @pytest.mark.asyncio
    async def test_reissue_replaces_code_and_attempts(self, service, sender):
        first = await service.issue("user@example.com")
        with pytest.raises(InvalidCodeError):
            await service.verify("user@example.com", wrong(first.code.value))

        second = await service.issue("user@example.com")
        if second.code != first.code:
            with pytest.raises(InvalidCodeError):
                await service.verify("user@example.com", first.code.value)
        result = await service.verify("user@example.com", second.code.value)
        assert result.state is SessionState.VERIFIED

    def test_invalid_retry_budget(self, store, sender):
        with pytest.raises(ValueError):
            OTPService(store, sender, cas_retries=0)


class TestVerify:
    """Tests for code verification."""

    @pytest.mark.asyncio
    async def test_success_consumes_session(self, service):
        issued = await service.issue("user@example.com")

        result = await service.verify("user@example.com", issued.code.value)
        assert result.email == Email.parse("user@example.com")

        with pytest.raises(SessionNotFoundError):
            await service.verify("user@example.com", issued.code.value)

    @pytest.mark.asyncio
    async def test_no_session(self, service):
        with pytest.raises(SessionNotFoundError):
            await service.verify("user@example.com", "123456")

    @pytest.mark.asyncio
    async def test_lockout_after_three_failures(self, service, store):
        issued = await service.issue("user@example.com")
        bad = wrong(issued.code.value)
        for _ in range(3):
            with pytest.raises(InvalidCodeError):
                await service.verify("user@example.com", bad)

        with pytest.raises(TooManyAttemptsError):
            await service.verify("user@example.com", issued.code.value)
        assert (await store.find_by_email(issued.email)).attempts == 3

    @pytest.mark.asyncio
    async def test_expired(self, service, store, clock):
        issued = await service.issue("user@example.com")
        clock.advance(minutes=6)
        with pytest.raises(SessionExpiredError):
            await service.verify("user@example.com", issued.code.value)
        assert (await store.find_by_email(issued.email)).attempts == 0

    @pytest.mark.asyncio
    async def test_malformed_code_counts_as_attempt(self, service, store):
        issued = await service.issue("user@example.com")
        with pytest.raises(InvalidCodeError):
            await service.verify("user@example.com", "12ab")
        assert (await store.find_by_email(issued.email)).attempts == 1

    @pytest.mark.asyncio
    async def test_failed_bookkeeping_is_reported(self, service, store):
        """The rejection stands even when the attempt could not be saved."""
        issued = await service.issue("user@example.com")
        store.fail_save = True

        with pytest.raises(InvalidCodeError) as exc:
            await service.verify("user@example.com", wrong(issued.code.value))
        assert isinstance(exc.value.persistence_error, StoreError)

    @pytest.mark.asyncio
    async def test_delete_failure_still_verifies(self, service, store):
        issued = await service.issue("user@example.com")
        store.fail_delete = True
        result = await service.verify("user@example.com", issued.code.value)
        assert result.state is SessionState.VERIFIED

    @pytest.mark.asyncio
    async def test_load_failure(self, service, store):
        await service.issue("user@example.com")
        store.fail_find = True
        with pytest.raises(StoreError):
            await service.verify("user@example.com", "123456")

    @pytest.mark.asyncio
    async def test_retries_exhausted(self, sender, clock):
        store = AlwaysConflictingStore()
        service = OTPService(store, sender, cas_retries=2, clock=clock)
        issued = await service.issue("user@example.com")

        with pytest.raises(InfrastructureError) as exc:
            await service.verify("user@example.com", wrong(issued.code.value))
        assert exc.value.operation == "verify"
        assert not isinstance(exc.value, ConcurrentModificationError)


class TestConcurrentVerify:
    """Concurrent requests against one session."""

    @pytest.mark.asyncio
    async def test_parallel_guesses_never_exceed_cap(self, sender, clock):
        """Ten simultaneous wrong guesses: three counted, the rest locked out."""
        store = YieldingStore()
        service = OTPService(store, sender, cas_retries=20, clock=clock)
        issued = await service.issue("user@example.com")
        bad = wrong(issued.code.value)

        results = await asyncio.gather(
            *(service.verify("user@example.com", bad) for _ in range(10)),
            return_exceptions=True,
        )

        kinds = [type(r) for r in results]
        assert kinds.count(InvalidCodeError) == 3
        assert kinds.count(TooManyAttemptsError) == 7
        assert (await store.find_by_email(issued.email)).attempts == 3

    @pytest.mark.asyncio
    async def test_code_is_used_once(self, sender, clock):
        """Two simultaneous correct submissions: exactly one succeeds."""
        store = YieldingStore()
        service = OTPService(store, sender, clock=clock)
        issued = await service.issue("user@example.com")

        results = await asyncio.gather(
            service.verify("user@example.com", issued.code.value),
            service.verify("user@example.com", issued.code.value),
            return_exceptions=True,
        )

        assert sum(1 for r in results if not isinstance(r, Exception)) == 1
        assert sum(1 for r in results if isinstance(r, SessionNotFoundError)) == 1


class TestCancellation:
    """Requests cancelled part way through."""

    @pytest.mark.asyncio
    async def test_cancelled_verify_still_records_attempt(self, sender, clock):
        store = SlowSaveStore()
        service = OTPService(store, sender, clock=clock)
        issued = await service.issue("user@example.com")

        task = asyncio.create_task(service.verify("user@example.com", wrong(issued.code.value)))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        await asyncio.sleep(0.1)
        assert (await store.find_by_email(issued.email)).attempts == 1

    @pytest.mark.asyncio
    async def test_cancelled_issue_can_be_reissued(self, store, clock):
        slow_sender = SlowSender()
        service = OTPService(store, slow_sender, clock=clock)

        task = asyncio.create_task(service.issue("user@example.com"))
        await asyncio.sleep(0.01)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert len(store) == 1
        assert slow_sender.sent == []

        reissued = await service.issue("user@example.com")
        assert slow_sender.last_code == reissued.code.value
        result = await service.verify("user@example.com", reissued.code.value)
        assert result.state is SessionState.VERIFIED


class TestLoggingCodeSender:
    """Tests for the development sender."""

    @pytest.mark.asyncio
    async def test_recipient_is_masked(self):
        from structlog.testing import capture_logs

        from otp_guard.delivery import LoggingCodeSender
        from otp_guard.otp import OTPCode

        with capture_logs() as logs:
            await LoggingCodeSender().send_code(Email.parse("john@example.com"), OTPCode("123456"))

        assert logs[0]["recipient"] == "j***@example.com"
        assert logs[0]["otp"] == "123456"
