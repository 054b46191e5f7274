"""
OTP Service
===========
Coordinates code generation, persistence, delivery and verification.

This is the only component that talks to the session store and the code
sender. Verification is optimistic: the session is loaded, evaluated by
the entity, and the resulting write (failed-attempt bookkeeping or the
one-time-use delete) is conditioned on the version that was loaded. If
another request changed the session in between, the whole evaluation is
repeated against fresh state, so concurrent guesses are each counted and
can never exceed the attempt cap.
"""

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Awaitable, Callable, Optional, TypeVar

import structlog

from .errors import (
    ConcurrentModificationError,
    DeliveryError,
    InfrastructureError,
    InvalidCodeError,
    OTPError,
    SessionExpiredError,
    SessionNotFoundError,
    StoreError,
    TooManyAttemptsError,
)
from .delivery import CodeSender
from .metrics import OTP_ISSUED, record_verification
from .otp import (
    MAX_VERIFICATION_ATTEMPTS,
    Email,
    OTPCode,
    OTPSession,
    SessionState,
    generate_code,
    hash_address,
)
from .otp.session import utcnow
from .store import SessionStore

logger = structlog.get_logger(__name__)

T = TypeVar("T")


@dataclass(frozen=True)
class IssuedCode:
    """A code that was stored and handed to delivery."""
    email: Email
    code: OTPCode
    expires_at: datetime


@dataclass(frozen=True)
class VerificationResult:
    """Successful verification; the session has been consumed."""
    email: Email
    state: SessionState = SessionState.VERIFIED


class OTPService:
    """Issues and verifies one-time codes bound to an email."""

    def __init__(
        self,
        store: SessionStore,
        sender: CodeSender,
        address_pepper: str = "",
        cas_retries: int = 3,
        clock: Callable[[], datetime] = utcnow,
    ):
        """
        Args:
            store: Session persistence
            sender: Code delivery
            address_pepper: Optional secret for client address hashing
            cas_retries: Reload-and-retry budget on concurrent modification
            clock: Source of aware UTC timestamps
        """
        if cas_retries <= 0:
            raise ValueError("cas_retries must be positive")
        self.store = store
        self.sender = sender
        self.address_pepper = address_pepper
        self.cas_retries = cas_retries
        self._clock = clock

    @classmethod
    def from_settings(cls, settings, store: SessionStore, sender: CodeSender, **kwargs) -> "OTPService":
        return cls(
            store=store,
            sender=sender,
            address_pepper=settings.address_hash_pepper,
            cas_retries=settings.store_cas_retries,
            **kwargs,
        )

    async def _store_call(self, operation: str, call: Awaitable[T]) -> T:
        """Await a store call, reporting foreign exceptions as StoreError."""
        try:
            return await call
        except OTPError:
            raise
        except Exception as e:
            logger.error("Session store failure", operation=operation, error=str(e))
            raise StoreError(f"failed to {operation} otp session: {e}", operation=operation) from e

    async def issue(
        self,
        raw_email: str,
        client_address: Optional[str] = None,
        user_agent: str = "",
    ) -> IssuedCode:
        """
        Generate, persist and deliver a new code, replacing any previous one.

        The session is durably saved before delivery is attempted. A delivery
        failure leaves the session stored; issuing again overwrites it.

        Args:
            raw_email: Email as submitted
            client_address: Client network address, hashed for audit
            user_agent: Client user agent, stored for audit

        Returns:
            IssuedCode with the plaintext code and its expiry

        Raises:
            ValidationError: Malformed email
            CodeGenerationError: Secure random source unavailable
            StoreError: Session could not be saved; nothing was sent
            DeliveryError: Session saved but the code was not delivered
        """
        email = Email.parse(raw_email)
        code = generate_code()
        session = OTPSession(
            email,
            code,
            address_hash=hash_address(client_address, self.address_pepper),
            user_agent=user_agent,
            now=self._clock(),
        )

        try:
            await self._store_call("save", self.store.save(session))
        except InfrastructureError as e:
            logger.error("OTP not issued, session not saved", email=email.masked(), error=str(e))
            raise

        try:
            await self.sender.send_code(email, code)
        except Exception as e:
            logger.error("Failed to send OTP email", email=email.masked(), error=str(e))
            raise DeliveryError(f"failed to send otp email: {e}") from e

        OTP_ISSUED.inc()
        logger.info(
            "OTP issued",
            email=email.masked(),
            expires_at=session.expires_at.isoformat(),
            address_hash=session.address_hash.value[:16] or None,
        )
        return IssuedCode(email=email, code=code, expires_at=session.expires_at)

    async def _load(self, email: Email) -> OTPSession:
        try:
            return await self._store_call("find", self.store.find_by_email(email))
        except SessionNotFoundError:
            record_verification("not_found")
            logger.warning("OTP verification without session", email=email.masked())
            raise

    async def verify(self, raw_email: str, raw_code: str) -> VerificationResult:
        """
        Check a submitted code and consume the session on success.

        Returns:
            VerificationResult for the verified email

        Raises:
            ValidationError: Malformed email
            SessionNotFoundError: No session for the email
            SessionExpiredError: Session expired; attempts unchanged
            TooManyAttemptsError: Attempt cap reached; attempts unchanged
            InvalidCodeError: Wrong code; the failed attempt was recorded,
                or ``persistence_error`` is set if recording it failed
            InfrastructureError: Store unavailable, or the session kept
                changing for every retry
        """
        email = Email.parse(raw_email)

        for _ in range(self.cas_retries):
            session = await self._load(email)
            loaded_version = session.version

            try:
                session.verify(raw_code, now=self._clock())
            except InvalidCodeError as rejection:
                try:
                    # Shielded so a cancelled request still records the attempt.
                    await asyncio.shield(
                        self._store_call("save", self.store.save(session, expected_version=loaded_version))
                    )
                except ConcurrentModificationError:
                    logger.info("OTP session changed during verification, retrying", email=email.masked())
                    continue
                except InfrastructureError as e:
                    rejection.persistence_error = e
                    logger.error(
                        "Failed to record failed OTP attempt",
                        email=email.masked(),
                        attempts=session.attempts,
                        error=str(e),
                    )

                record_verification(rejection.kind.value)
                logger.warning(
                    "Invalid OTP attempt",
                    email=email.masked(),
                    remaining=max(0, MAX_VERIFICATION_ATTEMPTS - session.attempts),
                )
                raise
            except (SessionExpiredError, TooManyAttemptsError) as e:
                record_verification(e.kind.value)
                logger.warning("OTP session not verifiable", email=email.masked(), reason=e.kind.value)
                raise

            try:
                await self._store_call("delete", self.store.delete(email, expected_version=loaded_version))
            except ConcurrentModificationError:
                logger.info("OTP session changed before it was consumed, retrying", email=email.masked())
                continue
            except InfrastructureError as e:
                # Success stands; the session expires or is overwritten on reissue.
                logger.error("Failed to delete verified OTP session", email=email.masked(), error=str(e))

            record_verification(SessionState.VERIFIED.value)
            logger.info("OTP verified", email=email.masked())
            return VerificationResult(email=email)

        logger.error("OTP verification abandoned after repeated conflicts", email=email.masked())
        raise InfrastructureError(
            "otp session changed on every verification attempt",
            operation="verify",
        )
