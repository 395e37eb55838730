"""
OTP Service
===========
Phone OTP issuance and verification with rate limiting and lockout.

Usage:
    store = RedisStore.from_config(RedisConfig())
    service = OtpService(store, OtpConfig.from_env())
    service.events.on(OTP_REQUESTED, deliver_sms)

    result = await service.request_otp("+1 (415) 555-1234")
    result = await service.verify_otp("+14155551234", "042917")
"""

import hmac
from typing import Optional

import structlog

from . import metrics
from .challenge import ChallengeStore
from .config import OtpConfig
from .counter_gate import CounterGate
from .events import OTP_REQUESTED, OtpEventEmitter, OtpRequestedEvent
from .exceptions import OtpStoreError
from .generator import OtpCodeGenerator, SecureOtpGenerator
from .lockout import LockoutGuard
from .models import LockStatus, OtpOutcome, OtpRequestResult, OtpVerificationResult
from .phone_utils import mask_phone, normalize_phone
from .store import KeyValueStore

logger = structlog.get_logger(__name__)


class OtpService:
    """
    Issues and verifies one OTP challenge per phone.

    All state lives in the injected store, so any number of instances can
    serve the same phones. Store failures propagate as ``OtpStoreError``;
    business rejections are returned as results.
    """

    def __init__(
        self,
        store: KeyValueStore,
        config: Optional[OtpConfig] = None,
        generator: Optional[OtpCodeGenerator] = None,
        events: Optional[OtpEventEmitter] = None,
    ):
        """
        Args:
            store: Shared key-value TTL store
            config: Limits and TTLs (defaults to OtpConfig())
            generator: Code source (defaults to a CSPRNG generator)
            events: Emitter receiving ``otp.requested``
        """
        self.config = (config or OtpConfig()).validate()
        self.store = store
        self.generator = generator or SecureOtpGenerator(self.config.otp_length)
        self.events = events or OtpEventEmitter()
        self.counters = CounterGate(store)
        self.lockout = LockoutGuard(store, self.config)
        self.challenges = ChallengeStore(store, self.config)

    def _request_key(self, phone: str) -> str:
        return f"{self.config.key_prefix}otp_requests:{phone}"

    def _failed_key(self, phone: str) -> str:
        return f"{self.config.key_prefix}otp_failed:{phone}"

    async def request_otp(self, phone: str) -> OtpRequestResult:
        """
        Issue a new OTP for a phone.

        Rate limited to ``max_requests_per_window`` per window. A new code
        replaces any active one.

        The window slot is taken before the code is written. If writing the
        code raises ``OtpStoreError``, the slot stays used and the error
        propagates; the caller gets no code for that request.

        Args:
            phone: Phone number

        Returns:
            OtpRequestResult
        """
        phone = normalize_phone(phone)

        lock = await self.lockout.is_locked(phone)
        if lock.locked:
            return self._request_result(OtpRequestResult(
                success=False,
                message="Phone number is temporarily locked due to too many failed attempts",
                outcome=OtpOutcome.LOCKED_OUT,
                lockout_minutes=lock.remaining_minutes,
            ))

        cap = self.config.max_requests_per_window
        window = await self.counters.check_and_increment(
            self._request_key(phone), cap, self.config.request_window_seconds
        )
        if not window.allowed:
            logger.info("OTP request rate limited", phone=mask_phone(phone))
            return self._request_result(OtpRequestResult(
                success=False,
                message="Maximum OTP requests exceeded. Please try again later.",
                outcome=OtpOutcome.RATE_LIMITED,
                remaining_attempts=0,
                lockout_minutes=CounterGate.minutes_left(
                    window.ttl_seconds, self.config.request_window_seconds
                ),
            ))

        code = self.generator.generate()
        await self.challenges.issue(phone, code)

        remaining = CounterGate.remaining(window.count, cap)
        self.events.emit(
            OTP_REQUESTED,
            OtpRequestedEvent(phone=phone, code=code, remaining_attempts=remaining),
        )
        logger.info(
            "OTP issued",
            phone=mask_phone(phone),
            remaining_attempts=remaining,
            expires_in=self.config.otp_ttl_seconds,
        )

        return self._request_result(OtpRequestResult(
            success=True,
            message="OTP sent successfully",
            outcome=OtpOutcome.SUCCESS,
            remaining_attempts=remaining,
        ))

    async def verify_otp(self, phone: str, code: str) -> OtpVerificationResult:
        """
        Verify a submitted OTP.

        ``max_failed_attempts`` wrong codes lock the phone for
        ``lockout_seconds``.

        Args:
            phone: Phone number
            code: User-provided OTP

        Returns:
            OtpVerificationResult
        """
        phone = normalize_phone(phone)

        lock = await self.lockout.is_locked(phone)
        if lock.locked:
            return self._verification_result(OtpVerificationResult(
                success=False,
                message=f"Phone number is locked. Please try again in {lock.remaining_minutes} minutes.",
                outcome=OtpOutcome.LOCKED_OUT,
                lockout_minutes=lock.remaining_minutes,
            ))

        stored = await self.challenges.fetch(phone)
        if stored is None:
            return self._verification_result(self._expired())

        if not hmac.compare_digest(stored.encode(), str(code).encode()):
            return self._verification_result(await self._record_failure(phone))

        # Challenge goes first so a concurrent verify with the same code loses
        if not await self.challenges.consume(phone, stored):
            logger.warning("OTP consumed by a concurrent verification", phone=mask_phone(phone))
            return self._verification_result(self._expired())

        await self.counters.reset(self._failed_key(phone), self._request_key(phone))
        logger.info("OTP verified successfully", phone=mask_phone(phone))

        return self._verification_result(OtpVerificationResult(
            success=True,
            message="OTP verified successfully",
            outcome=OtpOutcome.SUCCESS,
        ))

    async def is_phone_locked(self, phone: str) -> LockStatus:
        return await self.lockout.is_locked(normalize_phone(phone))

    async def _record_failure(self, phone: str) -> OtpVerificationResult:
        cap = self.config.max_failed_attempts
        failures = await self.counters.check_and_increment(
            self._failed_key(phone), cap, self.config.otp_ttl_seconds
        )

        if failures.allowed and failures.count < cap:
            remaining = CounterGate.remaining(failures.count, cap)
            logger.warning("Invalid OTP attempt", phone=mask_phone(phone), remaining=remaining)
            return OtpVerificationResult(
                success=False,
                message=f"Invalid OTP. {remaining} attempt(s) remaining.",
                outcome=OtpOutcome.INVALID_CODE,
                remaining_attempts=remaining,
            )

        # The flag is the safety-critical write; cleanup after it is best-effort
        await self.lockout.trip(phone)
        metrics.record_lockout()
        try:
            await self.challenges.invalidate(phone)
            await self.counters.reset(self._failed_key(phone))
        except OtpStoreError as e:
            logger.warning("Lockout cleanup incomplete", phone=mask_phone(phone), error=str(e))

        minutes = self.config.lockout_minutes
        return OtpVerificationResult(
            success=False,
            message=f"Too many failed attempts. Phone number is locked for {minutes} minutes.",
            outcome=OtpOutcome.LOCKED_OUT,
            remaining_attempts=0,
            lockout_minutes=minutes,
        )

    @staticmethod
    def _expired() -> OtpVerificationResult:
        return OtpVerificationResult(
            success=False,
            message="OTP has expired or does not exist. Please request a new one.",
            outcome=OtpOutcome.EXPIRED_OR_MISSING,
        )

    @staticmethod
    def _request_result(result: OtpRequestResult) -> OtpRequestResult:
        metrics.record_request(result.outcome)
        return result

    @staticmethod
    def _verification_result(result: OtpVerificationResult) -> OtpVerificationResult:
        metrics.record_verification(result.outcome)
        return result
