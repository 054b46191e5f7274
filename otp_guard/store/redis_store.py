"""
Redis Session Store
===================
Redis-backed session store using one hash per email.

Conditional writes use WATCH/MULTI/EXEC: the key is watched, its stored
version compared, and the transaction aborts if anyone touched the key in
between. Keys expire at the session's ``expires_at``, so expired sessions are
reclaimed by Redis itself.
"""

import math
from datetime import datetime
from typing import Dict, Optional

import structlog
from redis.asyncio import Redis
from redis.exceptions import RedisError, WatchError

from ..errors import (
    ConcurrentModificationError,
    OTPError,
    SessionNotFoundError,
    StoreError,
)
from ..otp import (
    AddressHash,
    Email,
    OTPCode,
    OTPSession,
    RestorationData,
    RestorationError,
    restore_session,
)
from .base import SessionStore

logger = structlog.get_logger(__name__)

DEFAULT_KEY_PREFIX = "otp:session:"


class RedisSessionStore(SessionStore):
    """
    Redis-backed OTP session store.

    Record layout (hash ``<prefix><email>``): email, code, attempts,
    created_at, expires_at (ISO 8601), address_hash, user_agent, version.
    """

    def __init__(self, redis: Redis, key_prefix: str = DEFAULT_KEY_PREFIX):
        """
        Args:
            redis: Async Redis client
            key_prefix: Namespace for session keys
        """
        self.redis = redis
        self.key_prefix = key_prefix

    @classmethod
    def from_url(cls, url: str, **kwargs) -> "RedisSessionStore":
        return cls(Redis.from_url(url, decode_responses=True), **kwargs)

    def _key(self, email: Email) -> str:
        return f"{self.key_prefix}{email.value}"

    @property
    def _sequence_key(self) -> str:
        # Emails always contain "@", so this cannot collide with a session key.
        return f"{self.key_prefix}__sequence__"

    @staticmethod
    def _to_mapping(session: OTPSession, version: int) -> Dict[str, str]:
        return {
            "email": session.email.value,
            "code": session.code.value,
            "attempts": str(session.attempts),
            "created_at": session.created_at.isoformat(),
            "expires_at": session.expires_at.isoformat(),
            "address_hash": session.address_hash.value,
            "user_agent": session.user_agent,
            "version": str(version),
        }

    @staticmethod
    def _decode(raw: Dict) -> Dict[str, str]:
        return {
            (k.decode() if isinstance(k, bytes) else k): (v.decode() if isinstance(v, bytes) else v)
            for k, v in raw.items()
        }

    @staticmethod
    def _parse_version(raw) -> Optional[int]:
        if raw is None:
            return None
        if isinstance(raw, bytes):
            raw = raw.decode()
        return int(raw)

    async def _watch_version(self, pipe, key: str, expected_version: int) -> None:
        await pipe.watch(key)
        current = self._parse_version(await pipe.hget(key, "version"))
        if current != expected_version:
            raise ConcurrentModificationError(key, expected_version, current)
        pipe.multi()

    async def save(self, session: OTPSession, expected_version: Optional[int] = None) -> None:
        key = self._key(session.email)
        expire_at = int(math.ceil(session.expires_at.timestamp()))

        try:
            version = int(await self.redis.incr(self._sequence_key))
            async with self.redis.pipeline(transaction=True) as pipe:
                if expected_version is not None:
                    await self._watch_version(pipe, key, expected_version)
                pipe.delete(key)
                pipe.hset(key, mapping=self._to_mapping(session, version))
                pipe.expireat(key, expire_at)
                await pipe.execute()
        except WatchError as e:
            raise ConcurrentModificationError(key, expected_version, None) from e
        except RedisError as e:
            logger.error("Failed to save OTP session", key=key, error=str(e))
            raise StoreError(f"failed to save otp session: {e}", operation="save") from e

        session.version = version

    async def find_by_email(self, email: Email) -> OTPSession:
        key = self._key(email)
        try:
            raw = await self.redis.hgetall(key)
        except RedisError as e:
            logger.error("Failed to load OTP session", key=key, error=str(e))
            raise StoreError(f"failed to get otp session: {e}", operation="find") from e

        if not raw:
            raise SessionNotFoundError()

        doc = self._decode(raw)
        try:
            data = RestorationData(
                email=Email(doc["email"]),
                code=OTPCode(doc["code"]),
                attempts=int(doc["attempts"]),
                created_at=datetime.fromisoformat(doc["created_at"]),
                expires_at=datetime.fromisoformat(doc["expires_at"]),
                address_hash=AddressHash.from_string(doc.get("address_hash")),
                user_agent=doc.get("user_agent", ""),
                version=int(doc["version"]),
            )
        except (KeyError, ValueError, RestorationError, OTPError) as e:
            logger.error("Corrupt OTP session record", key=key, error=str(e))
            raise StoreError(f"failed to reconstruct otp session: {e}", operation="find") from e

        return restore_session(data)

    async def delete(self, email: Email, expected_version: Optional[int] = None) -> None:
        key = self._key(email)
        try:
            if expected_version is None:
                await self.redis.delete(key)
                return
            async with self.redis.pipeline(transaction=True) as pipe:
                await self._watch_version(pipe, key, expected_version)
                pipe.delete(key)
                await pipe.execute()
        except WatchError as e:
            raise ConcurrentModificationError(key, expected_version, None) from e
        except RedisError as e:
            logger.error("Failed to delete OTP session", key=key, error=str(e))
            raise StoreError(f"failed to delete otp session: {e}", operation="delete") from e

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
