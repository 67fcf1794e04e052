"""Tiny in-process event hub used by the playback session and the reorderer."""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

import structlog

log = structlog.get_logger(__name__)

Listener = Callable[..., Any]


class EventHub:
    """Keeps listeners per event name and broadcasts to them synchronously."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Register *listener* for *event*; returns a callable that unregisters it."""
        self._listeners[event].append(listener)

        def _off() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return _off

    def emit(self, event: str, *args: Any, **kwargs: Any) -> None:
        # A failing listener must not break the state transition that emitted.
        for listener in list(self._listeners.get(event, ())):
            try:
                listener(*args, **kwargs)
            except Exception as exc:
                log.warning("event_listener_failed", event_name=event, error=str(exc))
