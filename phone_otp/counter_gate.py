"""
Counter Gate
============
Capped, TTL-bound counters used for request windows and failure counts.
"""

import math

import structlog

from .models import CounterResult
from .store import KeyValueStore

logger = structlog.get_logger(__name__)


class CounterGate:
    """
    Check-cap-then-increment primitive over a shared store.

    Every check is one atomic store operation, so the cap holds under
    concurrent callers on any number of instances.
    """

    def __init__(self, store: KeyValueStore):
        self.store = store

    async def check_and_increment(self, key: str, cap: int, ttl_seconds: int) -> CounterResult:
        """
        Increment the counter at ``key`` unless it already reached ``cap``.

        Args:
            key: Counter key
            cap: Maximum counter value
            ttl_seconds: Counter lifetime, applied on creation

        Returns:
            CounterResult with decision, new count and remaining TTL
        """
        if cap < 1:
            raise ValueError("cap must be positive")
        if ttl_seconds < 1:
            raise ValueError("ttl_seconds must be positive")

        result = await self.store.check_and_increment(key, cap, ttl_seconds)
        if not result.allowed:
            logger.info("Counter cap reached", cap=cap, retry_after=result.ttl_seconds)
        return result

    async def reset(self, *keys: str) -> None:
        await self.store.delete(*keys)

    @staticmethod
    def remaining(count: int, cap: int) -> int:
        return max(cap - count, 0)

    @staticmethod
    def minutes_left(ttl_seconds: int, default_seconds: int) -> int:
        """
        Convert a remaining TTL to whole minutes, rounded up, at least 1.

        A negative TTL (key without expiry) reports ``default_seconds``.
        """
        if ttl_seconds < 0:
            ttl_seconds = default_seconds
        return max(math.ceil(ttl_seconds / 60), 1)
