"""Playback module: media engine contract, session state machine and progress math."""

from playlister.playback.engine import EngineError, EngineEvent, EngineEventKind, MediaEngine
from playlister.playback.progress import is_finished, progress_percent, should_play_from_start
from playlister.playback.session import PlaybackSession, PlaybackState
from playlister.playback.tracker import PositionTracker

__all__ = [
    "EngineError",
    "EngineEvent",
    "EngineEventKind",
    "MediaEngine",
    "PlaybackSession",
    "PlaybackState",
    "PositionTracker",
    "is_finished",
    "progress_percent",
    "should_play_from_start",
]
