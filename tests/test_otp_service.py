"""
OTP Service Tests
=================
State machine, expiry and concurrency behaviour of OtpService.
"""

import asyncio

import pytest

from phone_otp import (
    InMemoryStore,
    OtpConfig,
    OtpEventEmitter,
    OtpOutcome,
    OtpService,
    OTP_REQUESTED,
    StoreUnavailableError,
)
from phone_otp.metrics import OTP_REGISTRY

from conftest import SequenceGenerator

PHONE = "+1 (415) 555-1234"
NORMALIZED = "+14155551234"


class TestRequestOtp:
    """Tests for issuing OTPs."""

    @pytest.mark.asyncio
    async def test_three_requests_then_rate_limited(self, service):
        """Should reject the fourth request within the window."""
        results = [await service.request_otp(PHONE) for _ in range(4)]

        assert [r.success for r in results] == [True, True, True, False]
        assert [r.remaining_attempts for r in results] == [2, 1, 0, 0]

        limited = results[3]
        assert limited.outcome == OtpOutcome.RATE_LIMITED
        assert limited.lockout_minutes == 60

    @pytest.mark.asyncio
    async def test_rate_limit_reports_window_remaining(self, service, clock):
        """Should report the minutes left in the request window."""
        for _ in range(3):
            await service.request_otp(PHONE)

        clock.advance(3000)
        result = await service.request_otp(PHONE)

        assert result.success is False
        assert result.lockout_minutes == 10

    @pytest.mark.asyncio
    async def test_window_resets_after_an_hour(self, service, clock):
        """Should allow requests again once the window expires."""
        for _ in range(3):
            await service.request_otp(PHONE)

        clock.advance(3600)
        result = await service.request_otp(PHONE)

        assert result.success is True
        assert result.remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_emits_delivery_event(self, service, sent):
        """Should hand the normalized phone and code to the notifier."""
        await service.request_otp(PHONE)

        assert len(sent) == 1
        assert sent[0].phone == NORMALIZED
        assert sent[0].code == "123456"
        assert sent[0].remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_rate_limited_request_emits_nothing(self, service, sent):
        """Should not emit an event for a rate-limited request."""
        for _ in range(4):
            await service.request_otp(PHONE)

        assert len(sent) == 3

    @pytest.mark.asyncio
    async def test_new_request_replaces_challenge(self, service):
        """Should verify only the latest code."""
        await service.request_otp(PHONE)
        await service.request_otp(PHONE)

        old = await service.verify_otp(PHONE, "123456")
        new = await service.verify_otp(PHONE, "654321")

        assert old.outcome == OtpOutcome.INVALID_CODE
        assert new.success is True

    @pytest.mark.asyncio
    async def test_delivery_failure_does_not_fail_request(self, store, config):
        """Should succeed even when a delivery handler raises."""
        events = OtpEventEmitter()

        def broken(event):
            raise RuntimeError("sms gateway down")

        events.on(OTP_REQUESTED, broken)
        service = OtpService(store, config, generator=SequenceGenerator("123456"), events=events)

        result = await service.request_otp(PHONE)

        assert result.success is True
        assert (await service.verify_otp(PHONE, "123456")).success is True

    @pytest.mark.asyncio
    async def test_wire_format(self, service):
        """Should serialize request results with camelCase fields."""
        ok = await service.request_otp(PHONE)
        assert ok.to_dict() == {
            "success": True,
            "message": "OTP sent successfully",
            "remainingAttempts": 2,
        }

        for _ in range(3):
            limited = await service.request_otp(PHONE)
        assert limited.to_dict() == {
            "success": False,
            "message": "Maximum OTP requests exceeded. Please try again later.",
            "remainingAttempts": 0,
            "lockoutMinutes": 60,
        }


class TestVerifyOtp:
    """Tests for verifying OTPs."""

    @pytest.mark.asyncio
    async def test_correct_code_succeeds_once(self, service):
        """Should consume the challenge on success."""
        await service.request_otp(PHONE)

        first = await service.verify_otp(PHONE, "123456")
        second = await service.verify_otp(PHONE, "123456")

        assert first.success is True
        assert first.outcome == OtpOutcome.SUCCESS
        assert second.success is False
        assert second.outcome == OtpOutcome.EXPIRED_OR_MISSING

    @pytest.mark.asyncio
    async def test_formatting_differences_map_to_same_phone(self, service):
        """Should treat differently formatted numbers as one phone."""
        await service.request_otp("+1 415 555 1234")

        result = await service.verify_otp("+1-(415)-555-1234", "123456")

        assert result.success is True

    @pytest.mark.asyncio
    async def test_missing_challenge(self, service, store):
        """Should report a missing challenge without touching counters."""
        result = await service.verify_otp(PHONE, "123456")

        assert result.outcome == OtpOutcome.EXPIRED_OR_MISSING
        assert "request a new one" in result.message
        assert await store.get(f"otp_failed:{NORMALIZED}") is None

    @pytest.mark.asyncio
    async def test_wrong_codes_lock_the_phone(self, service):
        """Should count down 2, 1, then lock and keep the right code locked out."""
        await service.request_otp(PHONE)

        first = await service.verify_otp(PHONE, "000000")
        second = await service.verify_otp(PHONE, "000000")
        third = await service.verify_otp(PHONE, "000000")

        assert first.outcome == OtpOutcome.INVALID_CODE
        assert first.remaining_attempts == 2
        assert "2 attempt(s) remaining" in first.message
        assert second.remaining_attempts == 1
        assert third.outcome == OtpOutcome.LOCKED_OUT
        assert third.message == "Too many failed attempts. Phone number is locked for 30 minutes."

        after = await service.verify_otp(PHONE, "123456")
        assert after.success is False
        assert after.outcome == OtpOutcome.LOCKED_OUT
        assert after.lockout_minutes == 30

    @pytest.mark.asyncio
    async def test_lockout_clears_challenge_and_failures(self, service, store):
        """Should delete the challenge and failure count when locking."""
        await service.request_otp(PHONE)
        for _ in range(3):
            await service.verify_otp(PHONE, "000000")

        assert await store.get(f"otp:{NORMALIZED}") is None
        assert await store.get(f"otp_failed:{NORMALIZED}") is None
        assert await store.get(f"otp_lock:{NORMALIZED}") == "locked"

    @pytest.mark.asyncio
    async def test_locked_phone_cannot_request(self, service, sent):
        """Should refuse requests from a locked phone."""
        await service.request_otp(PHONE)
        for _ in range(3):
            await service.verify_otp(PHONE, "000000")

        result = await service.request_otp(PHONE)

        assert result.success is False
        assert result.outcome == OtpOutcome.LOCKED_OUT
        assert result.lockout_minutes == 30
        assert result.remaining_attempts is None
        assert len(sent) == 1

    @pytest.mark.asyncio
    async def test_locked_request_leaves_counters_untouched(self, service, store):
        """Should not spend a window slot on a locked request."""
        await service.request_otp(PHONE)
        for _ in range(3):
            await service.verify_otp(PHONE, "000000")

        await service.request_otp(PHONE)

        assert await store.get(f"otp_requests:{NORMALIZED}") == "1"

    @pytest.mark.asyncio
    async def test_success_clears_counters(self, service, store):
        """Should start the next login with a clean slate."""
        await service.request_otp(PHONE)
        await service.request_otp(PHONE)
        await service.verify_otp(PHONE, "000000")

        result = await service.verify_otp(PHONE, "654321")

        assert result.success is True
        assert await store.get(f"otp:{NORMALIZED}") is None
        assert await store.get(f"otp_failed:{NORMALIZED}") is None
        assert await store.get(f"otp_requests:{NORMALIZED}") is None
        assert (await service.request_otp(PHONE)).remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_failures_carry_over_to_new_challenge(self, service):
        """Should keep the failure count across a new request."""
        await service.request_otp(PHONE)
        await service.verify_otp(PHONE, "000000")
        await service.verify_otp(PHONE, "000000")

        await service.request_otp(PHONE)
        result = await service.verify_otp(PHONE, "000000")

        assert result.outcome == OtpOutcome.LOCKED_OUT

    @pytest.mark.asyncio
    async def test_is_phone_locked(self, service):
        """Should report lock state with minutes remaining."""
        assert (await service.is_phone_locked(PHONE)).locked is False

        await service.request_otp(PHONE)
        for _ in range(3):
            await service.verify_otp(PHONE, "000000")

        status = await service.is_phone_locked("+14155551234")
        assert status.locked is True
        assert status.remaining_minutes == 30

    @pytest.mark.asyncio
    async def test_non_ascii_code_is_invalid(self, service):
        """Should treat full-width digits as a wrong code."""
        await service.request_otp(PHONE)

        result = await service.verify_otp(PHONE, "１２３４５６")

        assert result.outcome == OtpOutcome.INVALID_CODE

    @pytest.mark.asyncio
    async def test_verification_wire_format(self, service):
        """Should serialize a success with only success and message."""
        await service.request_otp(PHONE)

        result = await service.verify_otp(PHONE, "123456")

        assert result.to_dict() == {"success": True, "message": "OTP verified successfully"}


class TestExpiry:
    """Tests for TTL-driven transitions."""

    @pytest.mark.asyncio
    async def test_challenge_expires(self, service, clock):
        """Should reject a code after its TTL."""
        await service.request_otp(PHONE)

        clock.advance(600)
        result = await service.verify_otp(PHONE, "123456")

        assert result.outcome == OtpOutcome.EXPIRED_OR_MISSING

    @pytest.mark.asyncio
    async def test_failures_expire_with_challenge_window(self, service, clock):
        """Should forget failures once their TTL elapses."""
        await service.request_otp(PHONE)
        await service.verify_otp(PHONE, "000000")
        await service.verify_otp(PHONE, "000000")

        clock.advance(600)
        await service.request_otp(PHONE)
        result = await service.verify_otp(PHONE, "000000")

        assert result.outcome == OtpOutcome.INVALID_CODE
        assert result.remaining_attempts == 2

    @pytest.mark.asyncio
    async def test_lockout_expires(self, service, clock):
        """Should behave as never locked after the lockout TTL."""
        await service.request_otp(PHONE)
        for _ in range(3):
            await service.verify_otp(PHONE, "000000")

        clock.advance(1799)
        assert (await service.request_otp(PHONE)).outcome == OtpOutcome.LOCKED_OUT

        clock.advance(1)
        request = await service.request_otp(PHONE)
        verify = await service.verify_otp(PHONE, "654321")

        assert request.success is True
        assert verify.success is True


class TestConcurrency:
    """Tests for concurrent calls on the same phone."""

    @pytest.mark.asyncio
    async def test_concurrent_requests_respect_cap(self, service, sent):
        """Should let exactly three of ten concurrent requests succeed."""
        results = await asyncio.gather(*(service.request_otp(PHONE) for _ in range(10)))

        successes = [r for r in results if r.success]
        limited = [r for r in results if r.outcome == OtpOutcome.RATE_LIMITED]

        assert len(successes) == 3
        assert len(limited) == 7
        assert sorted(r.remaining_attempts for r in successes) == [0, 1, 2]
        assert len(sent) == 3

    @pytest.mark.asyncio
    async def test_concurrent_correct_verifications_succeed_once(self, service):
        """Should let only one of several concurrent correct codes succeed."""
        await service.request_otp(PHONE)

        results = await asyncio.gather(
            *(service.verify_otp(PHONE, "123456") for _ in range(5))
        )

        assert sum(r.success for r in results) == 1
        assert all(
            r.outcome == OtpOutcome.EXPIRED_OR_MISSING for r in results if not r.success
        )

    @pytest.mark.asyncio
    async def test_concurrent_wrong_verifications_never_exceed_cap(self, service):
        """Should report at most two invalid codes before locking."""
        await service.request_otp(PHONE)

        results = await asyncio.gather(
            *(service.verify_otp(PHONE, "000000") for _ in range(6))
        )

        invalid = [r for r in results if r.outcome == OtpOutcome.INVALID_CODE]
        locked = [r for r in results if r.outcome == OtpOutcome.LOCKED_OUT]

        assert len(invalid) == 2
        assert len(locked) == 4
        assert (await service.is_phone_locked(PHONE)).locked is True


class FlakyStore(InMemoryStore):
    """In-memory store that fails selected operations."""

    def __init__(self, clock, fail_on=()):
        super().__init__(clock=clock)
        self.fail_on = set(fail_on)

    async def check_and_increment(self, key, cap, ttl_seconds):
        if "check_and_increment" in self.fail_on:
            raise StoreUnavailableError("connection refused", operation="check_and_increment", key=key)
        return await super().check_and_increment(key, cap, ttl_seconds)

    async def set_with_ttl(self, key, value, ttl_seconds):
        if "set_with_ttl" in self.fail_on:
            raise StoreUnavailableError("connection refused", operation="set_with_ttl", key=key)
        return await super().set_with_ttl(key, value, ttl_seconds)

    async def delete(self, *keys):
        if "delete" in self.fail_on:
            raise StoreUnavailableError("connection refused", operation="delete")
        return await super().delete(*keys)


class TestStoreFailures:
    """Store outages surface as errors, never as business outcomes."""

    @pytest.mark.asyncio
    async def test_request_propagates_store_error(self, clock):
        """Should raise when the request counter cannot be updated."""
        store = FlakyStore(clock, fail_on={"check_and_increment"})
        service = OtpService(store, OtpConfig(), generator=SequenceGenerator())

        with pytest.raises(StoreUnavailableError):
            await service.request_otp(PHONE)

    @pytest.mark.asyncio
    async def test_failed_issue_keeps_window_slot(self, clock):
        """Should raise and keep the slot used when the code cannot be stored."""
        store = FlakyStore(clock, fail_on={"set_with_ttl"})
        sent = []
        events = OtpEventEmitter()
        events.on(OTP_REQUESTED, sent.append)
        service = OtpService(store, OtpConfig(), generator=SequenceGenerator(), events=events)

        with pytest.raises(StoreUnavailableError):
            await service.request_otp(PHONE)

        assert await store.get(f"otp_requests:{NORMALIZED}") == "1"
        assert await store.get(f"otp:{NORMALIZED}") is None
        assert sent == []

        store.fail_on.clear()
        result = await service.request_otp(PHONE)
        assert result.remaining_attempts == 1

    @pytest.mark.asyncio
    async def test_verify_failure_propagates_store_error(self, clock):
        """Should raise when the failure counter cannot be updated."""
        store = FlakyStore(clock)
        service = OtpService(store, OtpConfig(), generator=SequenceGenerator())
        await service.request_otp(PHONE)

        store.fail_on.add("check_and_increment")

        with pytest.raises(StoreUnavailableError):
            await service.verify_otp(PHONE, "000000")

    @pytest.mark.asyncio
    async def test_lockout_survives_cleanup_failure(self, clock):
        """Should write the lock before cleanup and tolerate cleanup errors."""
        store = FlakyStore(clock)
        service = OtpService(store, OtpConfig(), generator=SequenceGenerator())
        await service.request_otp(PHONE)
        await service.verify_otp(PHONE, "000000")
        await service.verify_otp(PHONE, "000000")

        store.fail_on.add("delete")
        result = await service.verify_otp(PHONE, "000000")

        assert result.outcome == OtpOutcome.LOCKED_OUT
        assert (await service.is_phone_locked(PHONE)).locked is True
        # Stale challenge is harmless behind the lock
        assert (await service.verify_otp(PHONE, "123456")).outcome == OtpOutcome.LOCKED_OUT


class TestMetrics:
    """Outcome counters are recorded."""

    @pytest.mark.asyncio
    async def test_outcomes_counted(self, service):
        """Should count request and verification outcomes."""
        def sample(name, outcome):
            return OTP_REGISTRY.get_sample_value(name, {"outcome": outcome}) or 0.0

        requests_before = sample("otp_requests_total", "success")
        invalid_before = sample("otp_verifications_total", "invalid_code")

        await service.request_otp(PHONE)
        await service.verify_otp(PHONE, "000000")

        assert sample("otp_requests_total", "success") == requests_before + 1
        assert sample("otp_verifications_total", "invalid_code") == invalid_before + 1

    def test_metrics_text(self):
        """Should render the counters in the exposition format."""
        from phone_otp import get_metrics_text

        assert b"otp_lockouts_total" in get_metrics_text()
