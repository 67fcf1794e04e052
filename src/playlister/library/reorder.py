"""Ordinal reordering for playlist items.

Both drag styles are reduced to an *insertion gap*: the slot between two
items (0 = before the first item, ``len(items)`` = after the last) where the
dragged item should land.  The gap is clamped to the list and, when the item
moves forward, shifted down by one because removing the item first moves
every later slot up.
"""

from __future__ import annotations

from collections.abc import Sequence
from typing import TYPE_CHECKING

import structlog

from playlister.events import EventHub

if TYPE_CHECKING:
    from playlister.storage.database import Database

log = structlog.get_logger(__name__)


class InvalidReorderRequestError(Exception):
    """Raised when a reorder request does not match the playlist's active items."""


def final_index_for_gap(source_index: int, gap: int, count: int) -> int:
    """Return the index the item at *source_index* ends up at when dropped into *gap*."""
    gap = max(0, min(gap, count))
    if source_index < gap:
        gap -= 1
    return gap


def resolve_target_index(source_index: int, target_index: int, count: int) -> int:
    """Resolve an index-based drop onto *target_index* into the item's final index.

    Dropping onto a later item lands after it, dropping onto an earlier item
    lands before it; a target past the end appends.
    """
    if target_index >= count:
        gap = count
    elif target_index > source_index:
        gap = target_index + 1
    else:
        gap = target_index
    return final_index_for_gap(source_index, gap, count)


def move_id(ids: Sequence[int], source_index: int, final_index: int) -> list[int]:
    """Return a copy of *ids* with the element at *source_index* moved to *final_index*."""
    reordered = list(ids)
    moved = reordered.pop(source_index)
    reordered.insert(final_index, moved)
    return reordered


class OrdinalReorderer:
    """Recomputes dense ordinals for a playlist and persists them as one batch.

    Listeners registered with ``events.on("reordered", ...)`` receive the
    playlist id and the new id sequence after every write.
    """

    def __init__(self, db: Database) -> None:
        self._db = db
        self.events = EventHub()

    async def current_order(self, playlist_id: int) -> list[int]:
        return [item.id for item in await self._db.list_items(playlist_id)]

    async def reorder(self, playlist_id: int, ordered_ids: Sequence[int]) -> bool:
        """Apply an explicit full ordering. Returns False when nothing changed."""
        ordered_ids = list(ordered_ids)
        current = await self.current_order(playlist_id)
        if ordered_ids == current:
            log.debug("reorder_noop", playlist_id=playlist_id)
            return False
        return await self._persist(playlist_id, ordered_ids)

    async def move(self, playlist_id: int, source_index: int, target_index: int) -> bool:
        """Move the item at *source_index* onto *target_index* (index-based drop)."""
        current = await self.current_order(playlist_id)
        if not 0 <= source_index < len(current):
            msg = f"source index {source_index} out of range for {len(current)} items"
            raise InvalidReorderRequestError(msg)
        if target_index < 0:
            msg = f"target index {target_index} must not be negative"
            raise InvalidReorderRequestError(msg)

        final = resolve_target_index(source_index, target_index, len(current))
        return await self._apply_move(playlist_id, current, source_index, final)

    async def move_item(self, playlist_id: int, item_id: int, anchor_id: int, *, after: bool = False) -> bool:
        """Move *item_id* directly before (or after) *anchor_id* (element-based drop)."""
        current = await self.current_order(playlist_id)
        for checked in (item_id, anchor_id):
            if checked not in current:
                msg = f"item {checked} is not an active item of playlist {playlist_id}"
                raise InvalidReorderRequestError(msg)

        source = current.index(item_id)
        gap = current.index(anchor_id) + (1 if after else 0)
        final = final_index_for_gap(source, gap, len(current))
        return await self._apply_move(playlist_id, current, source, final)

    async def _apply_move(self, playlist_id: int, current: list[int], source: int, final: int) -> bool:
        if source == final:
            log.debug("reorder_noop", playlist_id=playlist_id, index=source)
            return False
        return await self._persist(playlist_id, move_id(current, source, final))

    async def _persist(self, playlist_id: int, ordered_ids: list[int]) -> bool:
        try:
            await self._db.apply_item_order(playlist_id, ordered_ids)
        except ValueError as exc:
            log.warning("reorder_rejected", playlist_id=playlist_id, error=str(exc))
            raise InvalidReorderRequestError(str(exc)) from exc

        log.info("playlist_reordered", playlist_id=playlist_id, items=len(ordered_ids))
        self.events.emit("reordered", playlist_id, ordered_ids)
        return True
