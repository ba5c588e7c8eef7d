"""Timer capability used by autopilot."""

import asyncio
import logging
from typing import Callable, Optional, Protocol, runtime_checkable

logger = logging.getLogger(__name__)


@runtime_checkable
class TimerHandle(Protocol):
    def cancel(self) -> None:
        ...


@runtime_checkable
class Scheduler(Protocol):
    """Runs a callback once after a delay; the returned handle cancels it."""

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> TimerHandle:
        ...


class AsyncioScheduler:
    """Scheduler backed by an asyncio event loop.

    Callbacks run on the loop thread, so they never interleave with other
    loop callbacks such as turn-complete signals.
    """

    def __init__(self, loop: Optional[asyncio.AbstractEventLoop] = None):
        self._loop = loop

    def after(self, delay_seconds: float, callback: Callable[[], None]) -> asyncio.TimerHandle:
        loop = self._loop or asyncio.get_running_loop()
        logger.debug("Timer armed for %.2fs", delay_seconds)
        return loop.call_later(delay_seconds, callback)
