"""
OTP Models
==========
Result types and enums returned by the OTP service and its components.
"""

from typing import Any, Dict, Optional
from dataclasses import dataclass
from enum import Enum


class OtpOutcome(str, Enum):
    """Business outcome of an OTP request or verification."""
    SUCCESS = "success"
    RATE_LIMITED = "rate_limited"
    LOCKED_OUT = "locked_out"
    EXPIRED_OR_MISSING = "expired_or_missing"
    INVALID_CODE = "invalid_code"


@dataclass
class CounterResult:
    """Result of an atomic check-and-increment against a capped counter."""
    allowed: bool
    count: int
    ttl_seconds: int  # Remaining TTL of the counter, -1 if it has none


@dataclass
class LockStatus:
    """Whether a phone is under the failure lockout."""
    locked: bool
    remaining_minutes: Optional[int] = None


@dataclass
class OtpRequestResult:
    """Result of requesting a new OTP."""
    success: bool
    message: str
    outcome: OtpOutcome
    remaining_attempts: Optional[int] = None  # Request-window headroom
    lockout_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        d: Dict[str, Any] = {"success": self.success, "message": self.message}
        if self.remaining_attempts is not None:
            d["remainingAttempts"] = self.remaining_attempts
        if self.lockout_minutes is not None:
            d["lockoutMinutes"] = self.lockout_minutes
        return d


@dataclass
class OtpVerificationResult:
    """Result of verifying a submitted OTP."""
    success: bool
    message: str
    outcome: OtpOutcome
    remaining_attempts: Optional[int] = None  # Verification failures left
    lockout_minutes: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the wire representation."""
        return {"success": self.success, "message": self.message}
