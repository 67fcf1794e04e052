"""Position tracker: periodically asks the session to persist its play offset."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import Awaitable, Callable

import structlog

log = structlog.get_logger(__name__)


class PositionTracker:
    """Runs *sync* every *interval* seconds until stopped.

    Failures are logged and the loop keeps going, so a write that fails on
    one tick is simply attempted again on the next.
    """

    def __init__(self, sync: Callable[[], Awaitable[object]], interval_seconds: float = 1.0) -> None:
        self._sync = sync
        self._interval = interval_seconds
        self._stop_event = asyncio.Event()
        self._task: asyncio.Task | None = None
        self.ticks = 0
        self.failures = 0

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        if self.is_running:
            return
        self._stop_event.clear()
        self._task = asyncio.create_task(self._loop())
        log.debug("position_tracker_started", interval_seconds=self._interval)

    async def stop(self) -> None:
        if not self.is_running:
            return
        self._stop_event.set()
        if self._task:
            await self._task
            self._task = None
        log.debug("position_tracker_stopped")

    async def _loop(self) -> None:
        while not self._stop_event.is_set():
            with contextlib.suppress(TimeoutError):
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval)
            if self._stop_event.is_set():
                break

            self.ticks += 1
            try:
                await self._sync()
            except Exception as exc:
                self.failures += 1
                log.warning("position_sync_failed", error=str(exc))
