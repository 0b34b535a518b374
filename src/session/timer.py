from __future__ import annotations

import asyncio
import logging
from datetime import datetime
from typing import Callable

from session.models import Clock, elapsed_seconds, utcnow

LOGGER = logging.getLogger(__name__)


class DurationTimer:
    """Periodic elapsed-time tick for the active call.

    Cancelling the task in ``stop`` guarantees no tick is delivered afterwards:
    the coroutine can only resume from its sleep by raising CancelledError.
    """

    def __init__(
        self,
        on_tick: Callable[[int], None],
        *,
        interval: float = 1.0,
        clock: Clock = utcnow,
    ) -> None:
        self._on_tick = on_tick
        self._interval = interval
        self._clock = clock
        self._task: asyncio.Task | None = None
        self.tick_count = 0

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, started_at: datetime) -> None:
        if self.running:
            raise RuntimeError("Duration timer is already running.")
        self.tick_count = 0
        self._task = asyncio.get_running_loop().create_task(self._run(started_at))

    def stop(self) -> None:
        task, self._task = self._task, None
        if task is not None and not task.done():
            task.cancel()

    def elapsed(self, started_at: datetime) -> int:
        return elapsed_seconds(started_at, self._clock())

    async def _run(self, started_at: datetime) -> None:
        while True:
            await asyncio.sleep(self._interval)
            self.tick_count += 1
            try:
                self._on_tick(self.elapsed(started_at))
            except Exception:
                LOGGER.exception("Duration tick handler failed")
