"""
Lifecycle tracking for Lock: counts in-flight operations, rejects new ones
once shutdown starts, and runs the shutdown exactly once after draining.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Awaitable, Callable, Optional, Set

from ..errors import CloseConflictError, LockClosingError

logger = logging.getLogger(__name__)

Closer = Callable[[bool], Awaitable[None]]


class OperationTracker:
    def __init__(self, name: str = "lock"):
        self.name = name
        self._active: Set[object] = set()
        self._idle = asyncio.Event()
        self._idle.set()
        self._closing = False
        self._shutdown: Optional[asyncio.Future] = None
        self._close_primary: Optional[bool] = None

    @property
    def closing(self) -> bool:
        return self._closing

    @property
    def active_count(self) -> int:
        return len(self._active)

    def begin(self, operation: str) -> object:
        if self._closing:
            raise LockClosingError(f"cannot {operation}: {self.name} is closing")
        token = object()
        self._active.add(token)
        self._idle.clear()
        return token

    def end(self, token: object) -> None:
        self._active.discard(token)
        if not self._active:
            self._idle.set()

    @asynccontextmanager
    async def track(self, operation: str) -> AsyncIterator[None]:
        # Registration happens before the first suspension point of the caller.
        token = self.begin(operation)
        try:
            yield
        finally:
            self.end(token)

    async def drained(self) -> None:
        await self._idle.wait()

    def shutdown(self, close_primary: bool, closer: Closer) -> Awaitable[None]:
        """
        Start (or join) the shutdown: stop admitting work, wait for in-flight
        operations, then call ``closer(close_primary)`` once.
        """
        if self._shutdown is not None:
            if self._close_primary != close_primary:
                raise CloseConflictError(
                    f"{self.name} is already closing with close_primary={self._close_primary}"
                )
            return asyncio.shield(self._shutdown)

        self._closing = True
        self._close_primary = close_primary
        logger.info(f"{self.name}: closing, waiting for {self.active_count} in-flight operation(s)")
        self._shutdown = asyncio.ensure_future(self._drain_then_close(close_primary, closer))
        return asyncio.shield(self._shutdown)

    async def _drain_then_close(self, close_primary: bool, closer: Closer) -> None:
        await self.drained()
        await closer(close_primary)
        logger.info(f"{self.name}: closed")
