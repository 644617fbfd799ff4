"""Fixed inter-batch delay."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

logger = logging.getLogger(__name__)

SleepFunc = Callable[[float], Awaitable[None]]


class BackoffGate:
    """Sleeps a fixed delay between consecutive batches.

    The first `wait()` after `reset()` returns immediately, so a pass never
    sleeps before its first batch or after its last. `defer()` stretches the
    next wait, e.g. after the upstream asked us to back off.
    """

    def __init__(self, delay: float, sleep: SleepFunc = asyncio.sleep):
        self.delay = delay
        self._sleep = sleep
        self._armed = False
        self._extra = 0.0
        self.waits = 0

    def reset(self) -> None:
        self._armed = False
        self._extra = 0.0

    def defer(self, seconds: float) -> None:
        self._extra = max(self._extra, seconds)

    async def wait(self) -> None:
        if not self._armed:
            self._armed = True
            return

        delay = self.delay + self._extra
        self._extra = 0.0
        if delay > 0:
            logger.debug(f"Sleeping {delay}s before next batch")
            await self._sleep(delay)
        self.waits += 1
