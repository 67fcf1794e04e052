"""Playlister: local media playlists with resumable playback."""

__version__ = "0.1.0"
