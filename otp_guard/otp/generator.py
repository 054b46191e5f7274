"""
OTP Code Generator
==================
Uniform six-digit codes from the operating system CSPRNG.
"""

import secrets

from ..errors import CodeGenerationError
from .values import OTP_LENGTH, OTPCode

# 10^6 possible codes, 000000..999999
CODE_SPACE = 10 ** OTP_LENGTH


def generate_code() -> OTPCode:
    """
    Generate a secure random OTP.

    ``secrets.randbelow`` samples uniformly below its bound, so every code in
    the space is equally likely (no modulo bias from reducing raw bytes).

    Returns:
        A fresh OTPCode

    Raises:
        CodeGenerationError: If the OS random source is unavailable
    """
    try:
        value = secrets.randbelow(CODE_SPACE)
    except OSError as e:
        raise CodeGenerationError(f"failed to generate random OTP: {e}") from e

    return OTPCode(str(value).zfill(OTP_LENGTH))
