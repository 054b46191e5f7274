"""
In-Memory Session Store
=======================
Process-local session store for development and testing.
"""

import asyncio
import itertools
from typing import Dict, Optional, Tuple

from ..errors import ConcurrentModificationError, SessionNotFoundError
from ..otp import Email, OTPSession, RestorationData, restore_session, snapshot
from .base import SessionStore


class InMemorySessionStore(SessionStore):
    """
    Dict-backed session store.

    Sessions are stored as snapshots, so mutating a loaded session has no
    effect until it is saved again.
    For development and testing only.
    Use RedisSessionStore in production.
    """

    def __init__(self):
        self._records: Dict[str, Tuple[RestorationData, int]] = {}
        self._lock = asyncio.Lock()
        self._sequence = itertools.count(1)

    def _current_version(self, key: str) -> Optional[int]:
        record = self._records.get(key)
        return record[1] if record else None

    def _check_version(self, key: str, expected_version: Optional[int]) -> None:
        if expected_version is None:
            return
        current = self._current_version(key)
        if current != expected_version:
            raise ConcurrentModificationError(key, expected_version, current)

    async def save(self, session: OTPSession, expected_version: Optional[int] = None) -> None:
        key = session.email.value
        async with self._lock:
            self._check_version(key, expected_version)
            version = next(self._sequence)
            self._records[key] = (snapshot(session), version)
        session.version = version

    async def find_by_email(self, email: Email) -> OTPSession:
        async with self._lock:
            record = self._records.get(email.value)
        if record is None:
            raise SessionNotFoundError()
        data, version = record
        return restore_session(data, version=version)

    async def delete(self, email: Email, expected_version: Optional[int] = None) -> None:
        key = email.value
        async with self._lock:
            self._check_version(key, expected_version)
            self._records.pop(key, None)

    def __len__(self) -> int:
        return len(self._records)
