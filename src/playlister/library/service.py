"""Playlist and item management on top of the storage layer."""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

if TYPE_CHECKING:
    from playlister.storage.database import Database
    from playlister.storage.models import ErrorLogEntry, HistoryEntry, Playlist, PlaylistItem

log = structlog.get_logger(__name__)


class PlaylistNotFoundError(LookupError):
    """Raised when a playlist id does not name an active playlist."""


class ItemNotFoundError(LookupError):
    """Raised when an item id does not name an active playlist item."""


def _clean_name(name: str) -> str:
    cleaned = name.strip()
    if not cleaned:
        msg = "name must not be empty"
        raise ValueError(msg)
    return cleaned


class PlaylistService:
    """CRUD for playlists and their items. Only active rows are ever returned."""

    def __init__(self, db: Database, *, history_limit: int = 1000) -> None:
        self._db = db
        self._history_limit = history_limit

    # -- playlists ------------------------------------------------------------

    async def list_playlists(self, search: str | None = None) -> list[Playlist]:
        return await self._db.list_playlists(search)

    async def get_playlist(self, playlist_id: int) -> Playlist:
        playlist = await self._db.get_playlist(playlist_id)
        if playlist is None:
            raise PlaylistNotFoundError(f"playlist {playlist_id} not found")
        return playlist

    async def create_playlist(self, name: str, paths: Sequence[str] = ()) -> Playlist:
        return await self._db.create_playlist(_clean_name(name), list(paths))

    async def rename_playlist(self, playlist_id: int, name: str) -> None:
        if not await self._db.rename_playlist(playlist_id, _clean_name(name)):
            raise PlaylistNotFoundError(f"playlist {playlist_id} not found")

    async def delete_playlist(self, playlist_id: int) -> None:
        if not await self._db.delete_playlist(playlist_id):
            raise PlaylistNotFoundError(f"playlist {playlist_id} not found")

    async def select_item(self, playlist_id: int, item_id: int | None) -> None:
        await self.get_playlist(playlist_id)
        await self._db.set_selected_item(playlist_id, item_id)

    # -- items ----------------------------------------------------------------

    async def list_items(self, playlist_id: int) -> list[PlaylistItem]:
        return await self._db.list_items(playlist_id)

    async def get_item(self, item_id: int) -> PlaylistItem:
        item = await self._db.get_item(item_id)
        if item is None:
            raise ItemNotFoundError(f"item {item_id} not found")
        return item

    async def add_items(self, playlist_id: int, paths: Sequence[str]) -> list[PlaylistItem]:
        await self.get_playlist(playlist_id)
        added = await self._db.add_items(playlist_id, list(paths))
        log.info("items_added", playlist_id=playlist_id, count=len(added))
        return added

    async def remove_item(self, item_id: int) -> None:
        if not await self._db.remove_item(item_id):
            raise ItemNotFoundError(f"item {item_id} not found")

    async def rename_item(self, item_id: int, name: str) -> None:
        if not await self._db.rename_item(item_id, _clean_name(name)):
            raise ItemNotFoundError(f"item {item_id} not found")

    # -- diagnostics ----------------------------------------------------------

    async def list_history(self, limit: int | None = None) -> list[HistoryEntry]:
        return await self._db.list_history(limit=min(limit or self._history_limit, self._history_limit))

    async def list_errors(self, limit: int = 20) -> list[ErrorLogEntry]:
        return await self._db.list_error_logs(limit=limit)
