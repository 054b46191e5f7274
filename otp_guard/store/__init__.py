"""
OTP Session Stores
==================
Persistence collaborators for OTP sessions.
"""

from .base import SessionStore
from .in_memory import InMemorySessionStore
from .redis_store import RedisSessionStore, DEFAULT_KEY_PREFIX

__all__ = [
    "SessionStore",
    "InMemorySessionStore",
    "RedisSessionStore",
    "DEFAULT_KEY_PREFIX",
]
