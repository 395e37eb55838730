"""
OTP Events
==========
In-process event emitter used to hand issued codes to a delivery channel.

Usage:
    emitter = OtpEventEmitter()

    async def send_sms(event: OtpRequestedEvent) -> None:
        await sms_client.send(event.phone, f"Your code is {event.code}")

    emitter.on(OTP_REQUESTED, send_sms)
"""

import asyncio
import inspect
from collections import defaultdict
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Set

import structlog

logger = structlog.get_logger(__name__)

OTP_REQUESTED = "otp.requested"

Handler = Callable[[Any], Any]


@dataclass(frozen=True)
class OtpRequestedEvent:
    """Payload of ``otp.requested``."""
    phone: str
    code: str
    remaining_attempts: int

    def __repr__(self) -> str:
        # Keep codes out of logs and tracebacks
        return (
            f"OtpRequestedEvent(phone={self.phone!r}, code='******', "
            f"remaining_attempts={self.remaining_attempts})"
        )


class OtpEventEmitter:
    """
    Fire-and-forget event emitter.

    Synchronous handlers run inline; coroutine handlers are scheduled as
    tasks and never awaited by ``emit``. Handler failures are logged and do
    not reach the emitting caller.
    """

    def __init__(self):
        self._handlers: Dict[str, List[Handler]] = defaultdict(list)
        self._pending: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Handler) -> None:
        """Register a handler for an event name."""
        self._handlers[event].append(handler)

    def off(self, event: str, handler: Handler) -> None:
        if handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def emit(self, event: str, payload: Any) -> int:
        """
        Dispatch ``payload`` to every handler of ``event``.

        Args:
            event: Event name
            payload: Event payload

        Returns:
            Number of handlers dispatched
        """
        handlers = list(self._handlers.get(event, []))
        for handler in handlers:
            try:
                result = handler(payload)
            except Exception as e:
                logger.error("Event handler failed", event_name=event, error=str(e), exc_info=True)
                continue
            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._pending.add(task)
                task.add_done_callback(self._task_done(event))
        return len(handlers)

    def _task_done(self, event: str) -> Callable[[asyncio.Task], None]:
        def callback(task: asyncio.Task) -> None:
            self._pending.discard(task)
            if task.cancelled():
                return
            exc = task.exception()
            if exc is not None:
                logger.error("Async event handler failed", event_name=event, error=str(exc))
        return callback

    async def drain(self) -> None:
        """Wait for scheduled handler tasks, e.g. on shutdown."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)
