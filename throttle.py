"""Ordered request throttle shared by every outbound E-utilities call."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import TypeVar

T = TypeVar("T")

# NCBI allows 3 requests/second without an API key and 10 with one.
KEYED_SPACING_MS = 100
ANONYMOUS_SPACING_MS = 334

LOGGER = logging.getLogger(__name__)


def spacing_for(api_key: str | None) -> int:
    """Return the minimum gap in milliseconds between two request starts."""
    return KEYED_SPACING_MS if api_key else ANONYMOUS_SPACING_MS


class RequestThrottle:
    """Admit units of work one at a time, in submission order, spaced apart.

    A caller holds the admission slot only while it waits out the spacing
    delay; the slot is released before its task runs, so a slow or failing
    task never stalls the callers queued behind it. Clients that should share
    one rate budget must share one throttle instance.

    The admission lock belongs to the running event loop; a throttle reused
    under a new loop (a later `asyncio.run`) starts a fresh queue there.
    """

    def __init__(self) -> None:
        self._slot: asyncio.Lock | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self.admitted = 0

    def _slot_for_running_loop(self) -> asyncio.Lock:
        loop = asyncio.get_running_loop()
        if self._slot is None or self._loop is not loop:
            self._slot = asyncio.Lock()
            self._loop = loop
        return self._slot

    async def execute(self, spacing_ms: int, task: Callable[[], Awaitable[T]]) -> T:
        async with self._slot_for_running_loop():
            await asyncio.sleep(max(spacing_ms, 0) / 1000)
            self.admitted += 1
            LOGGER.debug("Throttle admitted request #%s after %sms", self.admitted, spacing_ms)
        return await task()
