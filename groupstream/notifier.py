from __future__ import annotations

import asyncio
from typing import Optional


class CoalescingNotifier:
    """Single-slot change signal.

    Any number of ``post()`` calls made before the consumer wakes collapse
    into one pending signal. ``wait()`` consumes exactly one.
    """

    __slots__ = ("_event", "_loop")

    def __init__(self) -> None:
        self._event = asyncio.Event()
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        try:
            self._loop = asyncio.get_running_loop()
        except RuntimeError:
            self._loop = None

    @property
    def pending(self) -> bool:
        return self._event.is_set()

    def post(self) -> None:
        self._event.set()

    def post_threadsafe(self) -> None:
        """Post from any thread, including ones without a running event loop."""
        loop = self._loop
        if loop is None or loop.is_closed():
            self._event.set()
            return
        try:
            running = asyncio.get_running_loop()
        except RuntimeError:
            running = None
        if running is loop:
            self._event.set()
        else:
            loop.call_soon_threadsafe(self._event.set)

    async def wait(self) -> None:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()
        await self._event.wait()
        self._event.clear()
