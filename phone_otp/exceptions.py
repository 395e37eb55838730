from typing import Optional


class OtpStoreError(Exception):
    """Base exception for key-value store failures."""
    def __init__(self, message: str, operation: str = "unknown", key: Optional[str] = None):
        self.message = message
        self.operation = operation
        self.key = key
        super().__init__(f"[{operation}] {message}")


class StoreUnavailableError(OtpStoreError):
    """Raised when the store is unreachable or the connection drops."""
    pass


class StoreTimeoutError(StoreUnavailableError):
    """Raised specifically on store operation timeouts."""
    pass
