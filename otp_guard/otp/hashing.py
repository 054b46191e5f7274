"""
Address Hashing
===============
One-way digests of client network addresses for audit correlation.

The same address always yields the same digest, so repeated requests can be
correlated without the raw address ever being stored.
"""

import hashlib
import hmac
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class AddressHash:
    """SHA-256 hex digest of a client address, or the empty sentinel."""
    value: str

    @classmethod
    def empty(cls) -> "AddressHash":
        """Sentinel for sessions created without any client address."""
        return cls("")

    @classmethod
    def from_string(cls, stored: Optional[str]) -> "AddressHash":
        """Rehydrate a digest previously produced by ``hash_address``."""
        if not stored:
            return cls.empty()
        return cls(stored)

    @property
    def is_empty(self) -> bool:
        return self.value == ""

    def __str__(self) -> str:
        return self.value


def hash_address(address: Optional[str], pepper: str = "") -> AddressHash:
    """
    Hash a client address for privacy.

    Args:
        address: Raw address. ``None`` means no address was supplied and
            yields the empty sentinel; an empty string still hashes.
        pepper: Optional secret; when set the digest is HMAC-SHA256.

    Returns:
        AddressHash with a 64-character hex digest
    """
    if address is None:
        return AddressHash.empty()

    if pepper:
        digest = hmac.new(pepper.encode(), address.encode(), hashlib.sha256).hexdigest()
    else:
        digest = hashlib.sha256(address.encode()).hexdigest()
    return AddressHash(digest)
