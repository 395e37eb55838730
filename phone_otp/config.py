"""
OTP Configuration
=================
Tunable limits for the OTP lifecycle and the Redis connection settings.
"""

import os
from dataclasses import dataclass, fields
from typing import Optional


@dataclass
class OtpConfig:
    """Limits and TTLs for OTP issuance and verification."""
    otp_length: int = 6
    otp_ttl_seconds: int = 600  # 10 minutes
    max_requests_per_window: int = 3
    request_window_seconds: int = 3600  # 1 hour
    max_failed_attempts: int = 3
    lockout_seconds: int = 1800  # 30 minutes
    key_prefix: str = ""

    @classmethod
    def from_env(cls) -> "OtpConfig":
        """
        Build a config from OTP_* environment variables.

        Unset variables keep their defaults.
        """
        defaults = cls()
        return cls(
            otp_length=int(os.environ.get("OTP_LENGTH", defaults.otp_length)),
            otp_ttl_seconds=int(
                os.environ.get("OTP_TTL_SECONDS", defaults.otp_ttl_seconds)
            ),
            max_requests_per_window=int(
                os.environ.get("OTP_MAX_REQUESTS", defaults.max_requests_per_window)
            ),
            request_window_seconds=int(
                os.environ.get(
                    "OTP_REQUEST_WINDOW_SECONDS", defaults.request_window_seconds
                )
            ),
            max_failed_attempts=int(
                os.environ.get("OTP_MAX_FAILED_ATTEMPTS", defaults.max_failed_attempts)
            ),
            lockout_seconds=int(
                os.environ.get("OTP_LOCKOUT_SECONDS", defaults.lockout_seconds)
            ),
            key_prefix=os.environ.get("OTP_KEY_PREFIX", defaults.key_prefix),
        )

    def validate(self) -> "OtpConfig":
        """
        Check that every numeric limit is positive.

        Raises:
            ValueError: If a limit is zero or negative
        """
        for f in fields(self):
            value = getattr(self, f.name)
            if isinstance(value, int) and value < 1:
                raise ValueError(f"{f.name} must be positive, got {value}")
        return self

    @property
    def lockout_minutes(self) -> int:
        return -(-self.lockout_seconds // 60)


@dataclass
class RedisConfig:
    """Connection settings for the Redis-backed store."""
    host: str = os.environ.get("REDIS_HOST", "localhost")
    port: int = int(os.environ.get("REDIS_PORT", "6379"))
    password: Optional[str] = os.environ.get("REDIS_PASSWORD") or None
    db: int = int(os.environ.get("REDIS_DB", "0"))
    tls: bool = os.environ.get("REDIS_TLS", "false").lower() == "true"
    socket_timeout: float = float(os.environ.get("REDIS_SOCKET_TIMEOUT", "5.0"))

    @property
    def url(self) -> str:
        """Connection URL in redis[s]://[:password@]host:port[/db] form."""
        scheme = "rediss" if self.tls else "redis"
        auth = f":{self.password}@" if self.password else ""
        db = f"/{self.db}" if self.db else ""
        return f"{scheme}://{auth}{self.host}:{self.port}{db}"
