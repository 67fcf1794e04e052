"""Library module: playlist management and item reordering."""

from playlister.library.reorder import InvalidReorderRequestError, OrdinalReorderer
from playlister.library.service import ItemNotFoundError, PlaylistNotFoundError, PlaylistService

__all__ = [
    "InvalidReorderRequestError",
    "ItemNotFoundError",
    "OrdinalReorderer",
    "PlaylistNotFoundError",
    "PlaylistService",
]
