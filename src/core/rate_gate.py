"""Run-wide rate gate.

A single RateGate is shared by every batch submission of a run. When any
caller observes a rate-limit response it trips the gate; every other caller
then waits for that one cooldown instead of starting its own.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Optional

LOGGER = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class RateGate:
    """Single-flight halt/resume state machine (open or halted-until)."""

    def __init__(self, sleep: Sleep = asyncio.sleep) -> None:
        self._sleep = sleep
        self._cooldown: Optional[asyncio.Task] = None
        self._halts = 0

    @property
    def halted(self) -> bool:
        return self._cooldown is not None

    @property
    def halts(self) -> int:
        """Number of cooldown periods established so far."""

        return self._halts

    async def wait(self) -> None:
        """Return immediately when open, otherwise wait for the cooldown."""

        cooldown = self._cooldown
        if cooldown is not None:
            # Shield so a cancelled waiter cannot cancel the shared cooldown.
            await asyncio.shield(cooldown)

    async def trip(self, cooldown_ms: int) -> None:
        """Halt every caller for ``cooldown_ms`` unless a halt is active.

        A trip during an active halt joins it; the cooldown is not extended.
        """

        if self._cooldown is None:
            self._halts += 1
            self._cooldown = asyncio.ensure_future(self._run_cooldown(cooldown_ms))
        await self.wait()

    async def _run_cooldown(self, cooldown_ms: int) -> None:
        LOGGER.warning("Rate limited: halting all lookups for %sms", cooldown_ms)
        try:
            await self._sleep(cooldown_ms / 1000)
        finally:
            self._cooldown = None
            LOGGER.warning("Rate limit halt cleared")
