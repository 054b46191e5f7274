"""
OTP Value Objects
=================
Immutable, self-validating values used by the OTP session.
"""

import re
from dataclasses import dataclass

from ..errors import ValidationError

OTP_LENGTH = 6

EMAIL_PATTERN = re.compile(r"[a-zA-Z0-9._%+\-]+@[a-zA-Z0-9.\-]+\.[a-zA-Z]{2,4}")
OTP_PATTERN = re.compile(r"[0-9]{%d}" % OTP_LENGTH)


@dataclass(frozen=True)
class Email:
    """A syntactically valid email address."""
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not EMAIL_PATTERN.fullmatch(self.value):
            raise ValidationError("email", "invalid email format")

    @classmethod
    def parse(cls, raw) -> "Email":
        """
        Validate raw input and return its canonical form.

        Surrounding whitespace is dropped and the domain lower-cased; the
        local part is kept as given.

        Raises:
            ValidationError: If the address is missing parts or has
                disallowed characters.
        """
        if not isinstance(raw, str):
            raise ValidationError("email", "invalid email format")

        candidate = raw.strip()
        local, sep, domain = candidate.rpartition("@")
        if sep:
            candidate = f"{local}@{domain.lower()}"
        return cls(candidate)

    @property
    def domain(self) -> str:
        return self.value.rpartition("@")[2]

    def masked(self) -> str:
        """Address safe for logs: ``j***@example.com``."""
        local, _, domain = self.value.rpartition("@")
        return f"{local[:1]}***@{domain}"

    def __str__(self) -> str:
        return self.value


@dataclass(frozen=True, repr=False)
class OTPCode:
    """A code of exactly six decimal digits."""
    value: str

    def __post_init__(self):
        if not isinstance(self.value, str) or not OTP_PATTERN.fullmatch(self.value):
            raise ValidationError("code", f"otp must be exactly {OTP_LENGTH} digits")

    @classmethod
    def parse(cls, raw) -> "OTPCode":
        return cls(raw)

    @classmethod
    def generate(cls) -> "OTPCode":
        from .generator import generate_code

        return generate_code()

    def __str__(self) -> str:
        return self.value

    def __repr__(self) -> str:
        return "OTPCode('******')"
