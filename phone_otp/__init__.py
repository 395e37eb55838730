"""
Phone OTP
=========
One-time passcode issuance and verification for phone login, with
per-phone rate limiting and lockout over a shared TTL store.
"""

__version__ = "0.1.0"

# Config
from phone_otp.config import OtpConfig, RedisConfig

# Errors
from phone_otp.exceptions import (
    OtpStoreError,
    StoreUnavailableError,
    StoreTimeoutError,
)

# Models
from phone_otp.models import (
    OtpOutcome,
    OtpRequestResult,
    OtpVerificationResult,
    LockStatus,
    CounterResult,
)

# Stores
from phone_otp.store import KeyValueStore, InMemoryStore, RedisStore

# Components
from phone_otp.generator import generate_otp, OtpCodeGenerator, SecureOtpGenerator
from phone_otp.counter_gate import CounterGate
from phone_otp.lockout import LockoutGuard
from phone_otp.challenge import ChallengeStore
from phone_otp.phone_utils import normalize_phone, mask_phone

# Events
from phone_otp.events import OTP_REQUESTED, OtpEventEmitter, OtpRequestedEvent

# Service
from phone_otp.service import OtpService

# Health
from phone_otp.health import check_store, ComponentHealth

# Metrics
from phone_otp.metrics import get_metrics_text

__all__ = [
    # Config
    "OtpConfig",
    "RedisConfig",
    # Errors
    "OtpStoreError",
    "StoreUnavailableError",
    "StoreTimeoutError",
    # Models
    "OtpOutcome",
    "OtpRequestResult",
    "OtpVerificationResult",
    "LockStatus",
    "CounterResult",
    # Stores
    "KeyValueStore",
    "InMemoryStore",
    "RedisStore",
    # Components
    "generate_otp",
    "OtpCodeGenerator",
    "SecureOtpGenerator",
    "CounterGate",
    "LockoutGuard",
    "ChallengeStore",
    "normalize_phone",
    "mask_phone",
    # Events
    "OTP_REQUESTED",
    "OtpEventEmitter",
    "OtpRequestedEvent",
    # Service
    "OtpService",
    # Health
    "check_store",
    "ComponentHealth",
    # Metrics
    "get_metrics_text",
]
