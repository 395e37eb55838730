"""
In-Memory Store
===============
Process-local TTL store for development and testing.
"""

import asyncio
import math
import time
from typing import Callable, Dict, Optional, Tuple

from ..models import CounterResult

Clock = Callable[[], float]


class InMemoryStore:
    """
    In-memory key-value store with TTL expiry.

    For development and testing only.
    Use RedisStore in production.

    Expiry is an absolute timestamp checked against ``clock`` on every
    access, so tests can move time forward without sleeping. Each operation
    yields to the event loop once before touching state, which stands in
    for the network round-trip of a real store.
    """

    def __init__(self, clock: Optional[Clock] = None):
        """
        Args:
            clock: Returns the current time in seconds (defaults to time.time)
        """
        self.clock = clock or time.time
        self._data: Dict[str, Tuple[str, Optional[float]]] = {}

    def _live(self, key: str) -> Optional[Tuple[str, Optional[float]]]:
        entry = self._data.get(key)
        if entry is None:
            return None
        _, expires_at = entry
        if expires_at is not None and expires_at <= self.clock():
            del self._data[key]
            return None
        return entry

    def _ttl(self, expires_at: Optional[float]) -> int:
        if expires_at is None:
            return -1
        return max(math.ceil(expires_at - self.clock()), 0)

    async def get(self, key: str) -> Optional[str]:
        await asyncio.sleep(0)
        entry = self._live(key)
        return entry[0] if entry else None

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        await asyncio.sleep(0)
        self._data[key] = (str(value), self.clock() + ttl_seconds)

    async def delete(self, *keys: str) -> None:
        await asyncio.sleep(0)
        for key in keys:
            self._data.pop(key, None)

    async def check_and_increment(
        self, key: str, cap: int, ttl_seconds: int
    ) -> CounterResult:
        await asyncio.sleep(0)
        # No awaits below this point: the check and the write are atomic
        entry = self._live(key)
        if entry is None:
            expires_at = self.clock() + ttl_seconds
            self._data[key] = ("1", expires_at)
            return CounterResult(allowed=True, count=1, ttl_seconds=ttl_seconds)

        value, expires_at = entry
        count = int(value)
        if count >= cap:
            return CounterResult(allowed=False, count=count, ttl_seconds=self._ttl(expires_at))

        count += 1
        if expires_at is None:
            expires_at = self.clock() + ttl_seconds
        self._data[key] = (str(count), expires_at)
        return CounterResult(allowed=True, count=count, ttl_seconds=self._ttl(expires_at))

    async def ttl_remaining(self, key: str) -> Optional[int]:
        await asyncio.sleep(0)
        entry = self._live(key)
        if entry is None:
            return None
        return self._ttl(entry[1])

    async def delete_if_equals(self, key: str, value: str) -> bool:
        await asyncio.sleep(0)
        entry = self._live(key)
        if entry is None or entry[0] != value:
            return False
        del self._data[key]
        return True

    async def ping(self) -> bool:
        return True

    async def close(self) -> None:
        self._data.clear()

    def set_persistent(self, key: str, value: str) -> None:
        """Store a value without expiry."""
        self._data[key] = (str(value), None)
