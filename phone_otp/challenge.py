"""
Challenge Store
===============
The single active OTP challenge per phone.
"""

from typing import Optional

from .config import OtpConfig
from .store import KeyValueStore


class ChallengeStore:
    """Issues, fetches and invalidates OTP challenges."""

    def __init__(self, store: KeyValueStore, config: OtpConfig):
        self.store = store
        self.config = config

    def key(self, phone: str) -> str:
        return f"{self.config.key_prefix}otp:{phone}"

    async def issue(self, phone: str, code: str) -> None:
        """Store ``code`` as the active challenge, replacing any previous one."""
        await self.store.set_with_ttl(self.key(phone), code, self.config.otp_ttl_seconds)

    async def fetch(self, phone: str) -> Optional[str]:
        return await self.store.get(self.key(phone))

    async def invalidate(self, phone: str) -> None:
        await self.store.delete(self.key(phone))

    async def consume(self, phone: str, code: str) -> bool:
        """
        Delete the challenge only if it still holds ``code``.

        Of several concurrent callers presenting the same code, exactly one
        gets True.
        """
        return await self.store.delete_if_equals(self.key(phone), code)
