"""Typed accessors over the key/value ``setting`` table."""

from __future__ import annotations

from typing import TYPE_CHECKING, Literal

if TYPE_CHECKING:
    from playlister.storage.database import Database

FullscreenBehavior = Literal["Auto", "Default"]

_SELECTED_PLAYLIST_KEY = "selected_playlist_id"
_FULLSCREEN_KEY = "fullscreen_behavior"
_FULLSCREEN_VALUES: tuple[str, ...] = ("Auto", "Default")


class Settings:
    """Application preferences persisted next to the playlists."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def get_fullscreen_behavior(self) -> FullscreenBehavior:
        value = await self._db.get_setting(_FULLSCREEN_KEY)
        return value if value in _FULLSCREEN_VALUES else "Auto"  # type: ignore[return-value]

    async def set_fullscreen_behavior(self, behavior: str) -> None:
        if behavior not in _FULLSCREEN_VALUES:
            msg = f"'{behavior}' is not a valid option (choose from: {', '.join(_FULLSCREEN_VALUES)})"
            raise ValueError(msg)
        await self._db.set_setting(_FULLSCREEN_KEY, behavior)

    async def fullscreen_on_play(self) -> bool:
        """Return True when playback should open fullscreen."""
        return await self.get_fullscreen_behavior() == "Auto"

    async def get_selected_playlist_id(self) -> int | None:
        value = await self._db.get_setting(_SELECTED_PLAYLIST_KEY)
        try:
            return int(value) if value else None
        except ValueError:
            return None

    async def set_selected_playlist_id(self, playlist_id: int | None) -> None:
        await self._db.set_setting(_SELECTED_PLAYLIST_KEY, "" if playlist_id is None else str(playlist_id))
