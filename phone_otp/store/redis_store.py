"""
Redis Store
===========
Redis-backed TTL store using Lua scripts for atomic operations.
"""

from contextlib import contextmanager
from typing import Dict, Iterator, List, Optional, Union

import redis.asyncio as aioredis
import structlog
from redis.exceptions import (
    ConnectionError as RedisConnectionError,
    NoScriptError,
    RedisError,
    TimeoutError as RedisTimeoutError,
)

from ..config import RedisConfig
from ..exceptions import OtpStoreError, StoreTimeoutError, StoreUnavailableError
from ..models import CounterResult

logger = structlog.get_logger(__name__)

# Lua script for an atomic capped counter.
# Returns {allowed, count, ttl}.
CHECK_AND_INCREMENT_SCRIPT = """
local key = KEYS[1]
local cap = tonumber(ARGV[1])
local ttl = tonumber(ARGV[2])

local current = tonumber(redis.call('GET', key) or '0')

if current >= cap then
    return {0, current, redis.call('TTL', key)}
end

local count = redis.call('INCR', key)
if count == 1 or redis.call('TTL', key) == -1 then
    redis.call('EXPIRE', key, ttl)
end

return {1, count, redis.call('TTL', key)}
"""

# Lua script for compare-and-delete.
DELETE_IF_EQUALS_SCRIPT = """
if redis.call('GET', KEYS[1]) == ARGV[1] then
    return redis.call('DEL', KEYS[1])
end
return 0
"""


def _decode(value: Union[bytes, str, None]) -> Optional[str]:
    if isinstance(value, bytes):
        return value.decode()
    return value


class RedisStore:
    """
    Redis implementation of the key-value store.

    Counter updates and compare-and-delete run as server-side Lua scripts,
    so concurrent callers across instances never overshoot a cap.
    """

    def __init__(self, redis_client):
        """
        Args:
            redis_client: Async Redis client
        """
        self.redis = redis_client
        self._script_shas: Dict[str, str] = {}

    @classmethod
    def from_config(cls, config: Optional[RedisConfig] = None) -> "RedisStore":
        """Create a store with its own connection pool."""
        config = config or RedisConfig()
        client = aioredis.from_url(
            config.url,
            decode_responses=True,
            socket_timeout=config.socket_timeout,
            socket_connect_timeout=config.socket_timeout,
        )
        return cls(client)

    @contextmanager
    def _errors(self, operation: str, key: Optional[str] = None) -> Iterator[None]:
        """Translate Redis client errors into store errors."""
        try:
            yield
        except RedisTimeoutError as e:
            logger.error("Redis operation timed out", operation=operation, error=str(e))
            raise StoreTimeoutError(str(e), operation=operation, key=key) from e
        except RedisConnectionError as e:
            logger.error("Redis unavailable", operation=operation, error=str(e))
            raise StoreUnavailableError(str(e), operation=operation, key=key) from e
        except RedisError as e:
            logger.error("Redis operation failed", operation=operation, error=str(e))
            raise OtpStoreError(str(e), operation=operation, key=key) from e

    async def _ensure_script(self, script: str) -> str:
        """Load Lua script into Redis if needed."""
        if script not in self._script_shas:
            self._script_shas[script] = await self.redis.script_load(script)
        return self._script_shas[script]

    async def _run_script(self, script: str, keys: List[str], args: list):
        sha = await self._ensure_script(script)
        try:
            return await self.redis.evalsha(sha, len(keys), *keys, *args)
        except NoScriptError:
            # Script cache was flushed (e.g. Redis restart)
            logger.warning("Lua script missing from Redis cache, reloading")
            self._script_shas.pop(script, None)
            sha = await self._ensure_script(script)
            return await self.redis.evalsha(sha, len(keys), *keys, *args)

    async def get(self, key: str) -> Optional[str]:
        with self._errors("get", key):
            return _decode(await self.redis.get(key))

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        with self._errors("set", key):
            await self.redis.set(key, value, ex=ttl_seconds)

    async def delete(self, *keys: str) -> None:
        if not keys:
            return
        with self._errors("delete", keys[0]):
            await self.redis.delete(*keys)

    async def check_and_increment(
        self, key: str, cap: int, ttl_seconds: int
    ) -> CounterResult:
        """
        Atomically check a counter against ``cap`` and increment it.

        Args:
            key: Counter key
            cap: Maximum counter value
            ttl_seconds: TTL applied when the counter is created

        Returns:
            CounterResult with decision, counter value and remaining TTL
        """
        with self._errors("check_and_increment", key):
            allowed, count, ttl = await self._run_script(
                CHECK_AND_INCREMENT_SCRIPT, [key], [cap, ttl_seconds]
            )
        return CounterResult(allowed=bool(allowed), count=int(count), ttl_seconds=int(ttl))

    async def ttl_remaining(self, key: str) -> Optional[int]:
        with self._errors("ttl", key):
            ttl = int(await self.redis.ttl(key))
        # -2 means the key does not exist
        return None if ttl == -2 else ttl

    async def delete_if_equals(self, key: str, value: str) -> bool:
        with self._errors("delete_if_equals", key):
            deleted = await self._run_script(DELETE_IF_EQUALS_SCRIPT, [key], [value])
        return bool(deleted)

    async def ping(self) -> bool:
        try:
            return bool(await self.redis.ping())
        except RedisError as e:
            logger.error("Redis ping failed", error=str(e))
            return False

    async def close(self) -> None:
        await self.redis.aclose()
