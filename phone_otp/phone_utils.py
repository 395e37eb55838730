"""
Phone Utilities
===============
Phone identity normalization and masking for logs.
"""

import re

_STRIP_PATTERN = re.compile(r"[\s()\-]")


def normalize_phone(phone: str) -> str:
    """
    Normalize a phone number into the identity used for store keys.

    Strips whitespace and the characters ``(``, ``)`` and ``-``. Format
    validation is left to the caller.

    Args:
        phone: Raw phone number

    Returns:
        Normalized phone identity
    """
    return _STRIP_PATTERN.sub("", phone)


def mask_phone(phone: str, visible_digits: int = 2) -> str:
    if not phone:
        return ""
    normalized = normalize_phone(phone)
    if len(normalized) <= visible_digits:
        return normalized
    return "*" * (len(normalized) - visible_digits) + normalized[-visible_digits:]
