"""Playback session: one media engine, at most one current item.

Engine callbacks land in a FIFO queue that a single pump task drains.  Every
state transition (user calls, engine events, position sync, duration
capture) runs under one ``asyncio.Lock`` so the current-item pointer and its
persisted fields only ever have one writer.
"""

from __future__ import annotations

import asyncio
import contextlib
import traceback
from datetime import datetime, timezone
from enum import StrEnum
from pathlib import Path
from typing import TYPE_CHECKING

import structlog

from playlister.config import PlaybackConfig
from playlister.events import EventHub
from playlister.playback.engine import EngineError, EngineEvent, EngineEventKind
from playlister.playback.progress import completed_position_seconds, ms_to_seconds, should_play_from_start
from playlister.playback.tracker import PositionTracker
from playlister.settings import Settings
from playlister.storage.database import PersistenceError

if TYPE_CHECKING:
    from playlister.playback.engine import MediaEngine
    from playlister.storage.database import Database
    from playlister.storage.models import PlaylistItem

log = structlog.get_logger(__name__)


class PlaybackState(StrEnum):
    IDLE = "idle"
    LOADING = "loading"
    PLAYING = "playing"
    PAUSED = "paused"
    STOPPED = "stopped"
    ENDED = "ended"


_ACTIVE_STATES = (PlaybackState.PLAYING, PlaybackState.PAUSED)


class PlaybackSession:
    """Plays playlist items and keeps their stored position in step with the engine.

    Events (``session.events.on(name, listener)``):

    - ``loading(item, fullscreen)``: a play request passed validation
    - ``started(item)``: the engine began playing the item
    - ``position(item, position_ms)``: the engine reported a new offset
    - ``paused(item)`` / ``resumed(item)``
    - ``stopped(item, position_seconds)``: explicit stop or switch
    - ``ended(item)``: natural end of media
    - ``error(item, message)``: missing file or engine failure
    """

    def __init__(
        self,
        db: Database,
        engine: MediaEngine,
        *,
        settings: Settings | None = None,
        config: PlaybackConfig | None = None,
    ) -> None:
        cfg = config or PlaybackConfig()
        self._db = db
        self._engine = engine
        self._settings = settings or Settings(db)
        self._duration_attempts = cfg.duration_attempts
        self._duration_backoff = cfg.duration_backoff_ms / 1000
        self._start_timeout = cfg.start_timeout_seconds

        self.events = EventHub()
        self._lock = asyncio.Lock()
        self._queue: asyncio.Queue[EngineEvent] = asyncio.Queue()
        self._pump_task: asyncio.Task | None = None
        self._duration_task: asyncio.Task | None = None
        self._tracker = PositionTracker(self.sync_position, cfg.position_sync_seconds)

        self._state = PlaybackState.IDLE
        self._current: PlaylistItem | None = None
        self._pending_start: asyncio.Future | None = None
        self._resume_from: int | None = None
        self._position_ms = 0
        self._position_dirty = False
        self._started_at: datetime | None = None
        self._closed = False

    # -- introspection ------------------------------------------------------

    @property
    def state(self) -> PlaybackState:
        return self._state

    @property
    def current_item(self) -> PlaylistItem | None:
        return self._current

    @property
    def position_ms(self) -> int:
        return self._position_ms

    @property
    def started_at(self) -> datetime | None:
        return self._started_at

    @property
    def is_closed(self) -> bool:
        return self._closed

    def get_status(self) -> dict:
        return {
            "state": self._state.value,
            "item_id": self._current.id if self._current else None,
            "position_ms": self._position_ms,
            "started_at": self._started_at.isoformat() if self._started_at else None,
        }

    # -- lifecycle ----------------------------------------------------------

    async def start(self) -> None:
        """Attach to the engine and start the event pump and position tracker."""
        if self._closed:
            msg = "Playback session is closed"
            raise RuntimeError(msg)
        if self._pump_task is not None and not self._pump_task.done():
            return
        self._engine.set_listener(self._enqueue)
        self._pump_task = asyncio.create_task(self._pump())
        await self._tracker.start()
        log.debug("session_started")

    async def close(self) -> None:
        """Stop playback (persisting the position) and release the engine. Idempotent."""
        if self._closed:
            return
        self._closed = True

        async with self._lock:
            await self._stop_locked()
        await self._tracker.stop()
        if self._pump_task is not None:
            self._pump_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._pump_task
            self._pump_task = None

        try:
            self._engine.set_listener(None)
            self._engine.release()
        except Exception as exc:
            log.warning("engine_release_failed", error=str(exc))
        self._state = PlaybackState.IDLE
        log.info("session_closed")

    async def __aenter__(self) -> PlaybackSession:
        await self.start()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    async def drain_events(self) -> None:
        """Wait until every engine event queued so far has been handled."""
        await self._queue.join()

    # -- user commands ------------------------------------------------------

    async def open(self, item_id: int) -> PlaylistItem:
        """Play an item the way a double-click would: restart finished items, continue the rest."""
        item = await self._db.get_item(item_id)
        if item is None:
            raise LookupError(f"item {item_id} not found")
        from_start = should_play_from_start(item.position_seconds, item.duration_ms)
        return await self.play(item_id, from_start=from_start)

    async def play(self, item_id: int, *, from_start: bool = False) -> PlaylistItem:
        """Stop whatever is current, load *item_id* and wait until the engine starts it.

        Raises ``FileNotFoundError`` (nothing changes) when the file is gone and
        ``EngineError`` when the engine fails or does not start in time.
        """
        await self.start()

        item = await self._db.get_item(item_id)
        if item is None:
            raise LookupError(f"item {item_id} not found")
        if not Path(item.path).is_file():
            message = f"File not found: {item.path}"
            log.warning("media_file_missing", item_id=item.id, path=item.path)
            await self._log_error(item, message)
            self.events.emit("error", item, message)
            raise FileNotFoundError(message)

        fullscreen = await self._settings.fullscreen_on_play()

        async with self._lock:
            await self._stop_locked()

            # Re-read: stopping may just have written this item's position.
            item = await self._db.get_item(item_id) or item
            self._current = item
            self._state = PlaybackState.LOADING
            self._resume_from = None if from_start else (item.position_seconds or None)
            self._position_ms = 0
            self._position_dirty = False
            self._started_at = None
            pending = asyncio.get_running_loop().create_future()
            self._pending_start = pending

            log.info("playback_loading", item_id=item.id, from_start=from_start, fullscreen=fullscreen)
            self.events.emit("loading", item, fullscreen)

            try:
                self._engine.load(item.path)
                self._engine.play()
            except Exception as exc:
                pending.cancel()
                self._pending_start = None
                message = f"Could not start playback: {exc}"
                await self._fail_locked(item, message, exc)
                raise EngineError(message) from exc

        try:
            return await asyncio.wait_for(pending, timeout=self._start_timeout)
        except TimeoutError:
            message = f"Media did not start within {self._start_timeout:g}s: {item.path}"
            async with self._lock:
                if self._pending_start is pending:
                    self._pending_start = None
                    await self._fail_locked(item, message)
            raise EngineError(message) from None

    async def stop(self) -> bool:
        """Persist the current offset and stop the engine. Returns False when nothing was current."""
        async with self._lock:
            return await self._stop_locked()

    async def pause(self) -> bool:
        async with self._lock:
            if self._state is not PlaybackState.PLAYING:
                return False
            self._engine.pause()
            self._state = PlaybackState.PAUSED
            self.events.emit("paused", self._current)
            return True

    async def resume(self) -> bool:
        async with self._lock:
            if self._state is not PlaybackState.PAUSED:
                return False
            self._engine.play()
            self._state = PlaybackState.PLAYING
            self.events.emit("resumed", self._current)
            return True

    async def toggle_pause(self) -> bool:
        if self._state is PlaybackState.PAUSED:
            return await self.resume()
        return await self.pause()

    async def seek(self, position_ms: int) -> bool:
        async with self._lock:
            if self._state not in _ACTIVE_STATES:
                return False
            position_ms = max(0, position_ms)
            self._engine.seek(position_ms)
            self._position_ms = position_ms
            self._position_dirty = True
            return True

    async def sync_position(self) -> bool:
        """Persist the last reported offset if it changed since the previous write.

        A failed write leaves the offset dirty so the next tick retries it.
        """
        async with self._lock:
            item = self._current
            if item is None or self._state not in _ACTIVE_STATES or not self._position_dirty:
                return False
            seconds = ms_to_seconds(self._position_ms)
            try:
                await self._db.update_item_position(item.id, seconds)
            except PersistenceError as exc:
                log.warning("position_write_failed", item_id=item.id, error=str(exc))
                return False
            self._position_dirty = False
            self._current = item.model_copy(update={"position_seconds": seconds})
            return True

    # -- engine event handling ----------------------------------------------

    def _enqueue(self, event: EngineEvent) -> None:
        self._queue.put_nowait(event)

    async def _pump(self) -> None:
        while True:
            event = await self._queue.get()
            try:
                async with self._lock:
                    await self._handle(event)
            except Exception as exc:
                log.error("engine_event_failed", engine_event=event.kind.value, error=str(exc))
            finally:
                self._queue.task_done()

    async def _handle(self, event: EngineEvent) -> None:
        if self._current is None:
            return

        if event.kind is EngineEventKind.STARTED:
            if self._state is PlaybackState.LOADING:
                await self._on_started()
            elif self._state is PlaybackState.PAUSED:
                self._state = PlaybackState.PLAYING
                self.events.emit("resumed", self._current)

        elif event.kind is EngineEventKind.POSITION_CHANGED:
            if self._state in _ACTIVE_STATES and event.position_ms is not None:
                self._position_ms = max(0, event.position_ms)
                self._position_dirty = True
                self.events.emit("position", self._current, self._position_ms)

        elif event.kind is EngineEventKind.ENDED:
            if self._state in _ACTIVE_STATES:
                await self._on_ended()

        elif event.kind is EngineEventKind.ERROR:
            await self._fail_locked(self._current, event.message or "Media engine reported an error")

    async def _on_started(self) -> None:
        item = self._current
        assert item is not None  # noqa: S101
        now = datetime.now(timezone.utc)
        self._started_at = now
        self._state = PlaybackState.PLAYING

        try:
            await self._db.record_playback_start(item, played_at=now)
        except PersistenceError as exc:
            log.warning("playback_start_write_failed", item_id=item.id, error=str(exc))
            await self._log_error(item, f"Failed to record playback start: {exc}", exc)

        if self._resume_from:
            self._position_ms = self._resume_from * 1000
            self._engine.seek(self._position_ms)
            log.info("playback_resumed_from_offset", item_id=item.id, position_seconds=self._resume_from)

        item = item.model_copy(update={"last_played_at": now})
        self._current = item
        if not item.duration_ms:
            self._duration_task = asyncio.create_task(self._capture_duration(item))

        if self._pending_start is not None and not self._pending_start.done():
            self._pending_start.set_result(item)
        self._pending_start = None

        log.info("playback_started", item_id=item.id, playlist_id=item.playlist_id)
        self.events.emit("started", item)

    async def _on_ended(self) -> None:
        item = self._current
        assert item is not None  # noqa: S101
        await self._cancel_duration_capture()

        duration = item.duration_ms
        learned = None
        if not duration:
            try:
                learned = self._engine.get_duration_ms() or None
            except Exception as exc:
                log.debug("duration_read_failed", item_id=item.id, error=str(exc))
            duration = learned

        position = completed_position_seconds(duration) if duration else None
        try:
            await self._db.record_playback_end(item, position_seconds=position, duration_ms=learned)
        except PersistenceError as exc:
            log.warning("playback_end_write_failed", item_id=item.id, error=str(exc))
            await self._log_error(item, f"Failed to record playback completion: {exc}", exc)

        update: dict = {"duration_ms": duration}
        if position is not None:
            update["position_seconds"] = position
        ended = item.model_copy(update=update)

        self._current = None
        self._state = PlaybackState.ENDED
        self._position_dirty = False
        log.info("playback_ended", item_id=item.id, position_seconds=position)
        self.events.emit("ended", ended)

    # -- internals ----------------------------------------------------------

    async def _stop_locked(self) -> bool:
        item = self._current
        if item is None:
            return False

        await self._cancel_duration_capture()

        position: int | None = None
        if self._state in _ACTIVE_STATES:
            try:
                position = ms_to_seconds(self._engine.get_position_ms())
            except Exception as exc:
                log.warning("engine_position_read_failed", item_id=item.id, error=str(exc))
                position = ms_to_seconds(self._position_ms)
            try:
                await self._db.update_item_position(item.id, position)
            except PersistenceError as exc:
                log.warning("final_position_write_failed", item_id=item.id, error=str(exc))
                await self._log_error(item, f"Failed to save position: {exc}", exc)

        try:
            self._engine.stop()
        except Exception as exc:
            log.warning("engine_stop_failed", item_id=item.id, error=str(exc))

        if self._pending_start is not None and not self._pending_start.done():
            self._pending_start.set_exception(EngineError(f"Playback of {item.name} was stopped before it started"))
        self._pending_start = None

        self._current = None
        self._state = PlaybackState.STOPPED
        self._position_dirty = False
        log.info("playback_stopped", item_id=item.id, position_seconds=position)
        self.events.emit("stopped", item, position)
        return True

    async def _fail_locked(self, item: PlaylistItem, message: str, exc: BaseException | None = None) -> None:
        log.error("playback_error", item_id=item.id, error=message)
        await self._cancel_duration_capture()
        await self._log_error(item, message, exc)

        try:
            self._engine.stop()
        except Exception as stop_exc:
            log.warning("engine_stop_failed", item_id=item.id, error=str(stop_exc))

        if self._pending_start is not None and not self._pending_start.done():
            self._pending_start.set_exception(EngineError(message))
        self._pending_start = None

        self._current = None
        self._state = PlaybackState.IDLE
        self._position_dirty = False
        self.events.emit("error", item, message)

    async def _capture_duration(self, item: PlaylistItem) -> None:
        # Metadata is parsed asynchronously after load; poll with linear backoff.
        duration = 0
        for attempt in range(1, self._duration_attempts + 1):
            await asyncio.sleep(self._duration_backoff * attempt)
            try:
                duration = self._engine.get_duration_ms()
            except Exception as exc:
                log.debug("duration_read_failed", item_id=item.id, attempt=attempt, error=str(exc))
                duration = 0
            if duration > 0:
                break
        else:
            log.info("duration_unavailable", item_id=item.id, attempts=self._duration_attempts)
            return

        async with self._lock:
            current = self._current
            if current is None or current.id != item.id:
                return
            try:
                await self._db.update_item_duration(item.id, duration)
            except PersistenceError as exc:
                log.warning("duration_write_failed", item_id=item.id, error=str(exc))
                return
            self._current = current.model_copy(update={"duration_ms": duration})
        log.info("duration_captured", item_id=item.id, duration_ms=duration)

    async def _cancel_duration_capture(self) -> None:
        task, self._duration_task = self._duration_task, None
        if task is None or task.done() or task is asyncio.current_task():
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task

    async def _log_error(self, item: PlaylistItem | None, message: str, exc: BaseException | None = None) -> None:
        stack = "".join(traceback.format_exception(exc)) if exc is not None else ""
        try:
            await self._db.add_error_log(
                message,
                stack_trace=stack,
                playlist_id=item.playlist_id if item else None,
                item_id=item.id if item else None,
            )
        except Exception as log_exc:
            log.warning("error_log_write_failed", error=str(log_exc), original=message)
