"""
Rate Limiting
=============
Per-client-address token bucket rate limiting.
"""

from .models import RateLimitResult, RateLimitInfo, TokenBucket
from .registry import AddressRateLimiter

__all__ = [
    # Models
    "RateLimitResult",
    "RateLimitInfo",
    "TokenBucket",
    # Limiter
    "AddressRateLimiter",
]
