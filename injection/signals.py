"""Turn-completion signals: push subscription plus a polling adapter."""

import asyncio
import logging
from typing import Callable, Optional

logger = logging.getLogger(__name__)


class TurnSignal:
    """Fires when the other party of the chat finishes its turn."""

    def __init__(self):
        self._subscribers: list[Callable[[], None]] = []

    @property
    def subscriber_count(self) -> int:
        return len(self._subscribers)

    def subscribe(self, callback: Callable[[], None]) -> Callable[[], None]:
        """Register callback; returns a function that removes it again."""
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def emit(self) -> None:
        for callback in list(self._subscribers):
            try:
                callback()
            except Exception:
                logger.exception("Turn-complete subscriber %r failed", callback)


class PollingTurnSignal(TurnSignal):
    """Synthesizes turn-complete events for hosts without an event API.

    count_fn returns how many finished replies the transcript holds; every
    increase between polls emits one signal.
    """

    def __init__(self, count_fn: Callable[[], int], interval: float = 0.5):
        super().__init__()
        self.count_fn = count_fn
        self.interval = interval
        self._last_count: Optional[int] = None
        self._task: Optional[asyncio.Task] = None

    def poll(self) -> bool:
        """Check the transcript once. Returns True if a signal was emitted."""
        current = self.count_fn()
        if self._last_count is None:
            self._last_count = current
            return False
        if current > self._last_count:
            self._last_count = current
            self.emit()
            return True
        # Transcript cleared or switched; rebase without emitting
        self._last_count = current
        return False

    async def run(self) -> None:
        self.poll()
        while True:
            await asyncio.sleep(self.interval)
            self.poll()

    def start(self) -> asyncio.Task:
        if self._task is None or self._task.done():
            self._task = asyncio.get_running_loop().create_task(self.run())
        return self._task

    def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            self._task = None
