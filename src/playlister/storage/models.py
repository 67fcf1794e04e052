"""Pydantic models for the Playlister storage layer."""

from __future__ import annotations

from datetime import datetime
from typing import Literal

from pydantic import BaseModel, Field

HistoryEvent = Literal["started", "completed"]


class Playlist(BaseModel):
    """A named, ordered collection of media files."""

    id: int | None = None
    name: str
    created_at: datetime | None = None
    last_played_at: datetime | None = None
    # May point at a soft-deleted item; callers must tolerate that.
    selected_item_id: int | None = None
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


class PlaylistItem(BaseModel):
    """A single media file inside a playlist."""

    id: int | None = None
    playlist_id: int
    ordinal: int = Field(ge=0)
    path: str
    name: str
    last_played_at: datetime | None = None
    position_seconds: int | None = None
    duration_ms: int | None = None
    deleted_at: datetime | None = None

    @property
    def is_active(self) -> bool:
        return self.deleted_at is None


class HistoryEntry(BaseModel):
    """Append-only record of a playback start or completion."""

    id: int | None = None
    playlist_id: int
    item_id: int
    event: HistoryEvent = "started"
    played_at: datetime
    # Joined for listings; not stored on the history row.
    playlist_name: str | None = None
    item_name: str | None = None


class ErrorLogEntry(BaseModel):
    """Diagnostic record written when playback or persistence fails."""

    id: int | None = None
    playlist_id: int | None = None
    item_id: int | None = None
    logged_at: datetime
    message: str
    stack_trace: str = ""
