"""Media engine contract consumed by the playback session."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from enum import StrEnum
from typing import Protocol


class EngineError(Exception):
    """Raised when the media engine fails to load or play an item."""


class EngineEventKind(StrEnum):
    STARTED = "started"
    ENDED = "ended"
    ERROR = "error"
    POSITION_CHANGED = "position_changed"


@dataclass(frozen=True)
class EngineEvent:
    kind: EngineEventKind
    position_ms: int | None = None  # set for POSITION_CHANGED
    message: str | None = None  # set for ERROR


EngineListener = Callable[[EngineEvent], None]


class MediaEngine(Protocol):
    """Anything that can play one media file at a time.

    The listener must be invoked on the event loop that owns the session;
    adapters backed by native threads marshal their callbacks first.
    """

    def set_listener(self, listener: EngineListener | None) -> None: ...

    def load(self, path: str) -> None: ...

    def play(self) -> None: ...

    def pause(self) -> None: ...

    def stop(self) -> None: ...

    def seek(self, position_ms: int) -> None: ...

    def get_position_ms(self) -> int: ...

    def get_duration_ms(self) -> int: ...

    def release(self) -> None: ...
