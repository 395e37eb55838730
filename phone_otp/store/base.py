"""
Key-Value Store Interface
=========================
The TTL store contract consumed by the OTP components.
"""

from typing import Optional, Protocol

from ..models import CounterResult


class KeyValueStore(Protocol):
    """
    Shared key-value store with per-key TTL expiry.

    Implementations raise ``OtpStoreError`` subclasses on infrastructure
    failures and never report them as missing keys.
    """

    async def get(self, key: str) -> Optional[str]:
        """Return the value, or None if the key is absent or expired."""

    async def set_with_ttl(self, key: str, value: str, ttl_seconds: int) -> None:
        """Set the value, replacing any previous one, with a fresh TTL."""

    async def delete(self, *keys: str) -> None:
        """Delete the keys. Missing keys are ignored."""

    async def check_and_increment(
        self, key: str, cap: int, ttl_seconds: int
    ) -> CounterResult:
        """
        Atomically increment a counter unless it already reached ``cap``.

        The TTL is applied when the counter is created and left untouched
        by later increments.
        """

    async def ttl_remaining(self, key: str) -> Optional[int]:
        """Seconds until expiry; None if absent, -1 if the key never expires."""

    async def delete_if_equals(self, key: str, value: str) -> bool:
        """Atomically delete the key only if it holds ``value``."""

    async def ping(self) -> bool:
        """Return True if the store is reachable."""

    async def close(self) -> None:
        """Release connections held by the store."""
