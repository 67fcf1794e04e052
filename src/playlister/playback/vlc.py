"""LibVLC-backed media engine (python-vlc)."""

from __future__ import annotations

import asyncio
from typing import Any

import structlog

from playlister.playback.engine import EngineError, EngineEvent, EngineEventKind, EngineListener

log = structlog.get_logger(__name__)


class VlcEngine:
    """Plays local files through LibVLC.

    LibVLC fires its events on its own threads; they are forwarded to the
    asyncio loop that registered the listener via ``call_soon_threadsafe``.
    """

    def __init__(self, *vlc_args: str) -> None:
        try:
            import vlc
        except (ImportError, OSError) as exc:
            msg = f"LibVLC is not available: {exc}"
            raise EngineError(msg) from exc

        self._vlc = vlc
        self._instance = vlc.Instance(*vlc_args) if vlc_args else vlc.Instance()
        if self._instance is None:
            msg = "LibVLC could not be initialised"
            raise EngineError(msg)
        self._player = self._instance.media_player_new()
        self._listener: EngineListener | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._released = False

        em = self._player.event_manager()
        em.event_attach(vlc.EventType.MediaPlayerPlaying, self._on_playing)
        em.event_attach(vlc.EventType.MediaPlayerEndReached, self._on_end_reached)
        em.event_attach(vlc.EventType.MediaPlayerEncounteredError, self._on_error)
        em.event_attach(vlc.EventType.MediaPlayerTimeChanged, self._on_time_changed)

    # -- listener plumbing --------------------------------------------------

    def set_listener(self, listener: EngineListener | None) -> None:
        self._listener = listener
        self._loop = asyncio.get_running_loop() if listener is not None else None

    def _forward(self, event: EngineEvent) -> None:
        loop, listener = self._loop, self._listener
        if loop is None or listener is None or loop.is_closed():
            return
        loop.call_soon_threadsafe(listener, event)

    def _on_playing(self, _event: Any) -> None:
        self._forward(EngineEvent(EngineEventKind.STARTED))

    def _on_end_reached(self, _event: Any) -> None:
        self._forward(EngineEvent(EngineEventKind.ENDED))

    def _on_error(self, _event: Any) -> None:
        self._forward(EngineEvent(EngineEventKind.ERROR, message="LibVLC encountered an error during playback"))

    def _on_time_changed(self, event: Any) -> None:
        self._forward(EngineEvent(EngineEventKind.POSITION_CHANGED, position_ms=int(event.u.new_time)))

    # -- MediaEngine --------------------------------------------------------

    def load(self, path: str) -> None:
        media = self._instance.media_new_path(path)
        if media is None:
            msg = f"LibVLC could not open {path}"
            raise EngineError(msg)
        self._player.set_media(media)
        media.release()

    def play(self) -> None:
        if self._player.play() == -1:
            msg = "LibVLC refused to start playback"
            raise EngineError(msg)

    def pause(self) -> None:
        self._player.set_pause(1)

    def stop(self) -> None:
        self._player.stop()

    def seek(self, position_ms: int) -> None:
        self._player.set_time(int(position_ms))

    def get_position_ms(self) -> int:
        return max(0, int(self._player.get_time()))

    def get_duration_ms(self) -> int:
        return max(0, int(self._player.get_length()))

    def release(self) -> None:
        if self._released:
            return
        self._released = True
        self._listener = None
        em = self._player.event_manager()
        for event_type in (
            self._vlc.EventType.MediaPlayerPlaying,
            self._vlc.EventType.MediaPlayerEndReached,
            self._vlc.EventType.MediaPlayerEncounteredError,
            self._vlc.EventType.MediaPlayerTimeChanged,
        ):
            em.event_detach(event_type)
        self._player.stop()
        self._player.release()
        self._instance.release()
        log.debug("vlc_released")
