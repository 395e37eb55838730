"""
OTP Generator
=============
Cryptographically secure numeric OTP generation.
"""

import secrets
from typing import Protocol


def generate_otp(length: int = 6) -> str:
    """
    Generate a secure random numeric OTP.

    Args:
        length: Number of digits

    Returns:
        Zero-padded OTP string of exactly ``length`` digits
    """
    otp = secrets.randbelow(10 ** length)
    return str(otp).zfill(length)


class OtpCodeGenerator(Protocol):
    """Source of OTP codes."""

    def generate(self) -> str:
        ...


class SecureOtpGenerator:
    """Numeric OTP generator backed by the ``secrets`` module."""

    def __init__(self, length: int = 6):
        if length < 1:
            raise ValueError("OTP length must be positive")
        self.length = length

    def generate(self) -> str:
        return generate_otp(self.length)
