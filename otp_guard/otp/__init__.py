"""
OTP Domain
==========
Value objects, code generation and the OTP session state machine.
"""

from .values import Email, OTPCode, OTP_LENGTH
from .generator import generate_code
from .hashing import AddressHash, hash_address
from .session import (
    OTPSession,
    SessionState,
    OTP_TTL,
    MAX_VERIFICATION_ATTEMPTS,
)
from .restoration import RestorationData, RestorationError, restore_session, snapshot

__all__ = [
    # Values
    "Email",
    "OTPCode",
    "OTP_LENGTH",
    # Generation
    "generate_code",
    # Hashing
    "AddressHash",
    "hash_address",
    # Session
    "OTPSession",
    "SessionState",
    "OTP_TTL",
    "MAX_VERIFICATION_ATTEMPTS",
    # Restoration
    "RestorationData",
    "RestorationError",
    "restore_session",
    "snapshot",
]
