"""
Key-Value TTL Stores
====================
Store interface plus Redis and in-memory implementations.
"""

from .base import KeyValueStore
from .in_memory import InMemoryStore
from .redis_store import (
    RedisStore,
    CHECK_AND_INCREMENT_SCRIPT,
    DELETE_IF_EQUALS_SCRIPT,
)

__all__ = [
    # Interface
    "KeyValueStore",
    # Stores
    "InMemoryStore",
    "RedisStore",
    # Scripts
    "CHECK_AND_INCREMENT_SCRIPT",
    "DELETE_IF_EQUALS_SCRIPT",
]
