"""
Per-Address Rate Limiter
========================
Sharded registry of token buckets keyed by client address.

Addresses are spread over independent shards, each with its own lock, so
admission checks for different addresses rarely contend. Every bucket
remembers when it was last used; the periodic sweep evicts only buckets
that have been idle for ``idle_ttl`` seconds, so addresses that are being
throttled keep their state across sweeps.
"""

import asyncio
import contextlib
import threading
import time
import zlib
from dataclasses import dataclass, field
from typing import Callable, Dict, List, Optional

import structlog

from ..errors import RateLimitedError
from ..metrics import OTP_RATE_LIMITED, RATE_LIMITER_BUCKETS
from ..otp import hash_address
from .models import RateLimitInfo, TokenBucket

logger = structlog.get_logger(__name__)


@dataclass
class _Shard:
    buckets: Dict[str, TokenBucket] = field(default_factory=dict)
    lock: threading.Lock = field(default_factory=threading.Lock)


class AddressRateLimiter:
    """
    Token bucket rate limiter per client address.

    Example:
        limiter = AddressRateLimiter(requests_per_minute=5, burst=5)
        limiter.start()  # background sweep, needs a running event loop

        if not limiter.admit(client_ip):
            ...  # reject with 429
    """

    def __init__(
        self,
        requests_per_minute: int = 5,
        burst: Optional[int] = None,
        shards: int = 16,
        sweep_interval: float = 600.0,
        idle_ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        """
        Args:
            requests_per_minute: Sustained refill rate per address
            burst: Bucket capacity (defaults to requests_per_minute)
            shards: Number of independently locked registry shards
            sweep_interval: Seconds between background sweeps
            idle_ttl: Idle seconds before a bucket is evicted
                (defaults to sweep_interval)
            clock: Monotonic time source in seconds
        """
        if requests_per_minute <= 0:
            raise ValueError("requests_per_minute must be positive")
        if shards <= 0:
            raise ValueError("shards must be positive")
        if sweep_interval <= 0:
            raise ValueError("sweep_interval must be positive")
        if burst is not None and burst <= 0:
            raise ValueError("burst must be positive")

        self.requests_per_minute = requests_per_minute
        self.rate = requests_per_minute / 60.0
        self.burst = requests_per_minute if burst is None else burst
        self.sweep_interval = sweep_interval
        self.idle_ttl = sweep_interval if idle_ttl is None else idle_ttl
        self._clock = clock
        self._shards: List[_Shard] = [_Shard() for _ in range(shards)]
        self._task: Optional[asyncio.Task] = None

    @classmethod
    def from_settings(cls, settings, **kwargs) -> "AddressRateLimiter":
        return cls(
            requests_per_minute=settings.rate_limit_requests_per_minute,
            burst=settings.rate_limit_burst,
            shards=settings.rate_limit_shards,
            sweep_interval=settings.rate_limit_cleanup_interval_seconds,
            **kwargs,
        )

    def _shard_for(self, address: str) -> _Shard:
        return self._shards[zlib.crc32(address.encode()) % len(self._shards)]

    def check(self, address: str) -> RateLimitInfo:
        """
        Take one token for ``address``, creating its bucket on first use.

        Args:
            address: Client network address

        Returns:
            RateLimitInfo with decision and quota
        """
        now = self._clock()
        shard = self._shard_for(address)

        with shard.lock:
            bucket = shard.buckets.get(address)
            if bucket is None:
                bucket = TokenBucket.full(self.rate, self.burst, now)
                shard.buckets[address] = bucket
            allowed = bucket.take(now)
            remaining = int(bucket.tokens)
            retry_after = None if allowed else bucket.retry_after()

        if not allowed:
            OTP_RATE_LIMITED.inc()
            logger.warning(
                "Rate limit exceeded",
                address_hash=hash_address(address).value[:16],
                retry_after=round(retry_after, 2),
            )

        return RateLimitInfo(
            allowed=allowed,
            remaining=remaining,
            limit=self.burst,
            retry_after=retry_after,
        )

    def admit(self, address: str) -> bool:
        """Take one token; True if the request may proceed."""
        return self.check(address).allowed

    def enforce(self, address: str) -> RateLimitInfo:
        """
        Take one token or raise.

        Raises:
            RateLimitedError: Bucket empty
        """
        info = self.check(address)
        if not info.allowed:
            raise RateLimitedError(retry_after=info.retry_after)
        return info

    def is_admitted(self, address: str) -> bool:
        """Whether a request from ``address`` would be admitted now. Consumes nothing."""
        now = self._clock()
        shard = self._shard_for(address)
        with shard.lock:
            bucket = shard.buckets.get(address)
            if bucket is None:
                return True
            return bucket.available(now) >= 1.0

    def sweep(self, now: Optional[float] = None) -> int:
        """
        Evict buckets idle for at least ``idle_ttl`` seconds.

        Returns:
            Number of evicted buckets
        """
        now = self._clock() if now is None else now
        evicted = 0

        for shard in self._shards:
            with shard.lock:
                idle = [
                    address for address, bucket in shard.buckets.items()
                    if now - bucket.last_access >= self.idle_ttl
                ]
                for address in idle:
                    del shard.buckets[address]
                evicted += len(idle)

        RATE_LIMITER_BUCKETS.set(len(self))
        return evicted

    async def _sweep_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sweep_interval)
            evicted = self.sweep()
            logger.debug("Rate limiter swept", evicted=evicted, tracked=len(self))

    def start(self) -> None:
        """Start the background sweep on the running event loop."""
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self._sweep_loop())
            logger.info("Rate limiter sweep started", interval=self.sweep_interval)

    async def stop(self) -> None:
        """Cancel the background sweep."""
        task, self._task = self._task, None
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def __len__(self) -> int:
        return sum(len(shard.buckets) for shard in self._shards)
