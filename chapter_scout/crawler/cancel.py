# chapter_scout/crawler/cancel.py
"""
Cooperative cancellation shared by every blocking point of one scrape run.
"""
from __future__ import annotations

import asyncio
from typing import Awaitable, Optional, TypeVar

from chapter_scout.errors import ScrapeCancelled

T = TypeVar("T")


class CancelSignal:
    """A one-shot cancellation flag that awaiting code can race against.

    ``cancel()`` may be called from any coroutine of the same loop (or via
    ``loop.call_soon_threadsafe`` from a signal handler). Every wait made
    through :meth:`sleep` or :meth:`guard` ends with :class:`ScrapeCancelled`
    as soon as the flag is set.
    """

    def __init__(self) -> None:
        self._event: Optional[asyncio.Event] = None
        self._cancelled = False

    # The event is created lazily so a signal can be built outside a loop.
    @property
    def _flag(self) -> asyncio.Event:
        if self._event is None:
            self._event = asyncio.Event()
            if self._cancelled:
                self._event.set()
        return self._event

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    def raise_if_cancelled(self) -> None:
        if self._cancelled:
            raise ScrapeCancelled()

    async def sleep(self, seconds: float) -> None:
        """Sleep for *seconds* unless cancelled first."""
        self.raise_if_cancelled()
        if seconds > 0:
            try:
                await asyncio.wait_for(self._flag.wait(), timeout=seconds)
            except asyncio.TimeoutError:
                pass
        self.raise_if_cancelled()

    async def guard(self, awaitable: Awaitable[T]) -> T:
        """Await *awaitable*, abandoning it as soon as the signal fires."""
        self.raise_if_cancelled()
        task = asyncio.ensure_future(awaitable)
        waiter = asyncio.ensure_future(self._flag.wait())
        try:
            await asyncio.wait({task, waiter}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            task.cancel()
            raise
        finally:
            waiter.cancel()
        if not task.done():
            task.cancel()
            await asyncio.gather(task, return_exceptions=True)
            raise ScrapeCancelled()
        return task.result()


async def cancellable_sleep(seconds: float, signal: Optional[CancelSignal] = None) -> None:
    """Sleep through *signal* when one is given, plain ``asyncio.sleep`` otherwise."""
    if signal is None:
        await asyncio.sleep(seconds)
    else:
        await signal.sleep(seconds)


__all__ = ["CancelSignal", "cancellable_sleep"]
