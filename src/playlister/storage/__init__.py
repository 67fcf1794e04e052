"""Playlister storage layer: async SQLite database for playlists, items and history."""

from playlister.storage.database import Database, PersistenceError
from playlister.storage.models import (
    ErrorLogEntry,
    HistoryEntry,
    Playlist,
    PlaylistItem,
)

__all__ = [
    "Database",
    "ErrorLogEntry",
    "HistoryEntry",
    "PersistenceError",
    "Playlist",
    "PlaylistItem",
]
