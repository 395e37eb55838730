"""
Store Health Check
==================
Connectivity check for the OTP key-value store.
"""

import time
from typing import Optional

from pydantic import BaseModel

from .store import KeyValueStore


class ComponentHealth(BaseModel):
    status: str
    latency_ms: Optional[float] = None
    error: Optional[str] = None


async def check_store(store: KeyValueStore) -> ComponentHealth:
    """Check store connectivity and latency."""
    start = time.time()
    if not await store.ping():
        return ComponentHealth(status="error", error="store unreachable")
    latency = (time.time() - start) * 1000
    return ComponentHealth(status="connected", latency_ms=round(latency, 2))
