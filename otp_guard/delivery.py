"""
Code Delivery
=============
Interface for handing a freshly issued code to the user, plus a
development implementation that writes to the log instead of sending mail.
"""

from abc import ABC, abstractmethod

import structlog

from .otp import Email, OTPCode

logger = structlog.get_logger(__name__)


class CodeSender(ABC):
    """Delivers an OTP to its recipient. Fire-and-confirm; no retries."""

    @abstractmethod
    async def send_code(self, email: Email, code: OTPCode) -> None:
        """
        Deliver ``code`` to ``email``.

        Raises:
            Exception: Any failure; the caller reports it as DeliveryError
        """


class LoggingCodeSender(CodeSender):
    """
    Development sender: logs the code instead of emailing it.

    Never use outside local development, the plaintext code ends up in the logs.
    """

    async def send_code(self, email: Email, code: OTPCode) -> None:
        logger.info(
            "Dummy OTP email sent",
            recipient=email.masked(),
            otp=code.value,
        )
