"""Degrade backend failures to fallback results instead of exceptions."""

from __future__ import annotations

import enum
import logging
from typing import Awaitable, Callable, Dict, Optional, TypeVar

from .errors import MemoryBackendError
from .schemas import MemoryEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

Observer = Callable[[MemoryEvent], None]


class CallState(str, enum.Enum):
    IDLE = "idle"
    CALLING = "calling"
    SUCCESS = "success"
    FAILED = "failed"


class ErrorBoundary:
    """Wrap every backend call made by the storage and retrieval services.

    Each call moves ``IDLE -> CALLING -> SUCCESS | FAILED``. Any exception
    raised while calling (transport error, timeout, non-2xx status, malformed
    payload) or an offline environment ends in ``FAILED`` and the fallback is
    returned. Task cancellation is not intercepted.
    """

    def __init__(self, *, is_online: Optional[Callable[[], bool]] = None) -> None:
        self.is_online = is_online
        self._states: Dict[str, CallState] = {}

    def state(self, operation: str) -> CallState:
        return self._states.get(operation, CallState.IDLE)

    async def call(
        self,
        operation: str,
        thunk: Callable[[], Awaitable[T]],
        fallback: T,
    ) -> T:
        self._states[operation] = CallState.CALLING
        try:
            if self.is_online is not None and not self.is_online():
                raise MemoryBackendError("memory backend is offline")
            result = await thunk()
        except Exception as exc:
            self._states[operation] = CallState.FAILED
            logger.warning("Memory backend call '%s' failed: %s", operation, exc)
            logger.debug("Backend failure details for '%s'", operation, exc_info=True)
            return fallback
        self._states[operation] = CallState.SUCCESS
        return result


def notify(observer: Optional[Observer], event: MemoryEvent) -> None:
    """Deliver a debug event; observer errors never reach the memory path."""

    if observer is None:
        return
    try:
        observer(event)
    except Exception as exc:
        logger.warning("Memory observer failed on '%s' event: %s", event.kind, exc)


__all__ = ["CallState", "ErrorBoundary", "Observer", "notify"]
