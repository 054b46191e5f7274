"""
Rate Limit Models
=================
Token bucket state and rate limit decisions.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional


class RateLimitResult(str, Enum):
    """Rate limit decision result."""
    ALLOWED = "allowed"
    BLOCKED = "blocked"


@dataclass
class RateLimitInfo:
    """Rate limit check result with quota information."""
    allowed: bool
    remaining: int
    limit: int
    retry_after: Optional[float] = None  # Seconds until a token is available

    @property
    def result(self) -> RateLimitResult:
        return RateLimitResult.ALLOWED if self.allowed else RateLimitResult.BLOCKED


@dataclass
class TokenBucket:
    """
    Classic token bucket.

    Holds up to ``capacity`` tokens and refills continuously at ``rate``
    tokens per second. Not thread-safe; the registry serialises access.
    """
    rate: float
    capacity: int
    tokens: float
    updated_at: float
    last_access: float

    @classmethod
    def full(cls, rate: float, capacity: int, now: float) -> "TokenBucket":
        return cls(rate=rate, capacity=capacity, tokens=float(capacity), updated_at=now, last_access=now)

    def available(self, now: float) -> float:
        """Tokens available at ``now`` without changing state."""
        elapsed = max(0.0, now - self.updated_at)
        return min(float(self.capacity), self.tokens + elapsed * self.rate)

    def take(self, now: float) -> bool:
        """Consume one token if available."""
        self.tokens = self.available(now)
        self.updated_at = max(self.updated_at, now)
        self.last_access = max(self.last_access, now)

        if self.tokens >= 1.0:
            self.tokens -= 1.0
            return True
        return False

    def retry_after(self) -> float:
        """Seconds until the next token, as of the last update."""
        if self.tokens >= 1.0:
            return 0.0
        return (1.0 - self.tokens) / self.rate
