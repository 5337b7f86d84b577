"""Per-stream cancellation handle.

A boolean flag plus subscribers. Every suspension point of a stream (the
network request, each body read, each backoff wait) runs through
:meth:`CancellationToken.guard` so that ``cancel()`` unwinds it promptly.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from typing import TypeVar

import structlog

log = structlog.get_logger()

T = TypeVar("T")


class StreamAborted(Exception):
    """Raised at a suspension point when the stream's token was cancelled."""


class CancellationToken:
    """Process-local cancellation signal shared by one stream's components."""

    def __init__(self) -> None:
        self._cancelled = False
        self._subscribers: list[Callable[[], None]] = []

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        """Trigger cancellation. Subsequent calls are no-ops."""
        if self._cancelled:
            return
        self._cancelled = True
        subscribers, self._subscribers = self._subscribers, []
        for callback in subscribers:
            try:
                callback()
            except Exception:
                log.exception("cancel_callback_error")

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register a callback for cancellation, returning an unsubscribe function.

        A callback registered after cancellation runs immediately.
        """
        if self._cancelled:
            callback()
            return lambda: None

        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise StreamAborted()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await ``awaitable``, aborting it with StreamAborted on cancellation."""
        if self._cancelled:
            if asyncio.iscoroutine(awaitable):
                awaitable.close()
            raise StreamAborted()

        task = asyncio.ensure_future(awaitable)
        unsubscribe = self.subscribe(task.cancel)
        try:
            return await task
        except asyncio.CancelledError:
            if self._cancelled and task.cancelled():
                raise StreamAborted() from None
            raise
        finally:
            unsubscribe()

    async def sleep(self, seconds: float) -> None:
        """Wait ``seconds``, raising StreamAborted as soon as cancelled."""
        await self.guard(asyncio.sleep(seconds))
