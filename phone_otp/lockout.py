"""
Lockout Guard
=============
Temporary per-phone lockout after repeated verification failures.
"""

import structlog

from .config import OtpConfig
from .counter_gate import CounterGate
from .models import LockStatus
from .phone_utils import mask_phone
from .store import KeyValueStore

logger = structlog.get_logger(__name__)

LOCK_VALUE = "locked"


class LockoutGuard:
    """
    Installs and inspects the lockout flag for a phone.

    There is no unlock operation; a lock ends only when its TTL expires.
    """

    def __init__(self, store: KeyValueStore, config: OtpConfig):
        self.store = store
        self.config = config

    def key(self, phone: str) -> str:
        return f"{self.config.key_prefix}otp_lock:{phone}"

    async def is_locked(self, phone: str) -> LockStatus:
        """
        Check whether a normalized phone is locked.

        Args:
            phone: Normalized phone identity

        Returns:
            LockStatus with remaining minutes rounded up
        """
        ttl = await self.store.ttl_remaining(self.key(phone))
        if ttl is None:
            return LockStatus(locked=False)
        # A flag without expiry reports the configured duration
        return LockStatus(
            locked=True,
            remaining_minutes=CounterGate.minutes_left(ttl, self.config.lockout_seconds),
        )

    async def trip(self, phone: str) -> None:
        await self.store.set_with_ttl(self.key(phone), LOCK_VALUE, self.config.lockout_seconds)
        logger.warning(
            "Phone locked due to failed OTP attempts",
            phone=mask_phone(phone),
            lockout_seconds=self.config.lockout_seconds,
        )
