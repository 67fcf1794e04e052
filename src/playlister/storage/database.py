"""Async SQLite database for the Playlister storage layer."""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Sequence
from datetime import datetime, timezone
from pathlib import Path

import aiosqlite
import structlog

from playlister.storage.models import (
    ErrorLogEntry,
    HistoryEntry,
    Playlist,
    PlaylistItem,
)

log = structlog.get_logger(__name__)

_SCHEMA = """\
CREATE TABLE IF NOT EXISTS playlist (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    created_at TEXT NOT NULL,
    last_played_at TEXT,
    selected_item_id INTEGER,
    deleted_at TEXT
);

CREATE TABLE IF NOT EXISTS playlist_item (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER NOT NULL REFERENCES playlist(id),
    ordinal INTEGER NOT NULL,
    path TEXT NOT NULL,
    name TEXT NOT NULL,
    last_played_at TEXT,
    position_seconds INTEGER,
    duration_ms INTEGER,
    deleted_at TEXT
);

CREATE UNIQUE INDEX IF NOT EXISTS uq_active_item_ordinal
    ON playlist_item(playlist_id, ordinal) WHERE deleted_at IS NULL;

CREATE TABLE IF NOT EXISTS history (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER NOT NULL REFERENCES playlist(id),
    item_id INTEGER NOT NULL REFERENCES playlist_item(id),
    event TEXT NOT NULL CHECK(event IN ('started', 'completed')),
    played_at TEXT NOT NULL
);

CREATE INDEX IF NOT EXISTS ix_history_played_at ON history(played_at);

CREATE TABLE IF NOT EXISTS error_log (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    playlist_id INTEGER,
    item_id INTEGER,
    logged_at TEXT NOT NULL,
    message TEXT NOT NULL,
    stack_trace TEXT NOT NULL DEFAULT ''
);

CREATE TABLE IF NOT EXISTS setting (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL
);
"""

# Every read of playlists or items goes through this predicate.
_ACTIVE = "deleted_at IS NULL"


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class PersistenceError(Exception):
    """Raised when a write to the store fails and has been rolled back."""


class Database:
    """Async SQLite database wrapper for Playlister."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._conn: aiosqlite.Connection | None = None
        self._write_lock = asyncio.Lock()

    @property
    def conn(self) -> aiosqlite.Connection:
        if self._conn is None:
            msg = "Database not connected. Call connect() first."
            raise RuntimeError(msg)
        return self._conn

    async def connect(self) -> None:
        self._conn = await aiosqlite.connect(self.path)
        self._conn.row_factory = aiosqlite.Row
        await self._conn.execute("PRAGMA journal_mode=WAL")
        await self._conn.execute("PRAGMA foreign_keys=ON")
        await self._conn.executescript(_SCHEMA)
        await self._conn.commit()

    async def close(self) -> None:
        if self._conn is not None:
            await self._conn.close()
            self._conn = None

    async def __aenter__(self) -> Database:
        await self.connect()
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    @contextlib.asynccontextmanager
    async def transaction(self) -> AsyncIterator[aiosqlite.Connection]:
        """Run a block of writes as one unit: commit on success, roll back on any error.

        Write transactions are serialised so two logical operations never
        share an open transaction on the connection. Reads take the same
        lock, so they only ever see committed state.
        """
        async with self._write_lock:
            conn = self.conn
            try:
                yield conn
                await conn.commit()
            except aiosqlite.Error as exc:
                await conn.rollback()
                raise PersistenceError(str(exc)) from exc
            except BaseException:
                await conn.rollback()
                raise

    @contextlib.asynccontextmanager
    async def _read(self) -> AsyncIterator[aiosqlite.Connection]:
        # A write transaction may have ordinals parked on negatives; wait it out.
        async with self._write_lock:
            yield self.conn

    # -- playlist -------------------------------------------------------------

    async def create_playlist(self, name: str, paths: Sequence[str] = ()) -> Playlist:
        now = _now_iso()
        async with self.transaction() as conn:
            cur = await conn.execute(
                "INSERT INTO playlist (name, created_at) VALUES (?, ?) RETURNING *",
                (name, now),
            )
            row = await cur.fetchone()
            playlist = self._row_to_playlist(row)
            await conn.executemany(
                "INSERT INTO playlist_item (playlist_id, ordinal, path, name) VALUES (?, ?, ?, ?)",
                [(playlist.id, ordinal, path, Path(path).name) for ordinal, path in enumerate(paths)],
            )
        log.info("playlist_created", playlist_id=playlist.id, items=len(paths))
        return playlist

    async def get_playlist(self, playlist_id: int, *, include_deleted: bool = False) -> Playlist | None:
        async with self._read() as conn:
            if include_deleted:
                cur = await conn.execute("SELECT * FROM playlist WHERE id = ?", (playlist_id,))
            else:
                cur = await conn.execute(
                    f"SELECT * FROM playlist WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                    (playlist_id,),
                )
            row = await cur.fetchone()
        return self._row_to_playlist(row) if row else None

    async def list_playlists(self, search: str | None = None) -> list[Playlist]:
        async with self._read() as conn:
            if search and search.strip():
                cur = await conn.execute(
                    f"SELECT * FROM playlist WHERE {_ACTIVE} AND instr(lower(name), lower(?)) > 0 "  # noqa: S608
                    "ORDER BY name COLLATE NOCASE, id",
                    (search.strip(),),
                )
            else:
                cur = await conn.execute(
                    f"SELECT * FROM playlist WHERE {_ACTIVE} ORDER BY name COLLATE NOCASE, id"  # noqa: S608
                )
            rows = await cur.fetchall()
        return [self._row_to_playlist(r) for r in rows]

    async def rename_playlist(self, playlist_id: int, name: str) -> bool:
        async with self.transaction() as conn:
            cur = await conn.execute(
                f"UPDATE playlist SET name = ? WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                (name, playlist_id),
            )
        return cur.rowcount > 0

    async def delete_playlist(self, playlist_id: int) -> bool:
        """Soft-delete a playlist together with its active items."""
        now = _now_iso()
        async with self.transaction() as conn:
            cur = await conn.execute(
                f"UPDATE playlist SET deleted_at = ? WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                (now, playlist_id),
            )
            if cur.rowcount == 0:
                return False
            await conn.execute(
                f"UPDATE playlist_item SET deleted_at = ? WHERE playlist_id = ? AND {_ACTIVE}",  # noqa: S608
                (now, playlist_id),
            )
        log.info("playlist_deleted", playlist_id=playlist_id)
        return True

    async def set_selected_item(self, playlist_id: int, item_id: int | None) -> bool:
        async with self.transaction() as conn:
            cur = await conn.execute(
                "UPDATE playlist SET selected_item_id = ? WHERE id = ?",
                (item_id, playlist_id),
            )
        return cur.rowcount > 0

    # -- playlist_item --------------------------------------------------------

    async def list_items(self, playlist_id: int, *, include_deleted: bool = False) -> list[PlaylistItem]:
        async with self._read() as conn:
            if include_deleted:
                cur = await conn.execute(
                    "SELECT * FROM playlist_item WHERE playlist_id = ? ORDER BY ordinal, id",
                    (playlist_id,),
                )
            else:
                cur = await conn.execute(
                    f"SELECT * FROM playlist_item WHERE playlist_id = ? AND {_ACTIVE} ORDER BY ordinal",  # noqa: S608
                    (playlist_id,),
                )
            rows = await cur.fetchall()
        return [self._row_to_item(r) for r in rows]

    async def get_item(self, item_id: int, *, include_deleted: bool = False) -> PlaylistItem | None:
        async with self._read() as conn:
            if include_deleted:
                cur = await conn.execute("SELECT * FROM playlist_item WHERE id = ?", (item_id,))
            else:
                cur = await conn.execute(
                    f"SELECT * FROM playlist_item WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                    (item_id,),
                )
            row = await cur.fetchone()
        return self._row_to_item(row) if row else None

    async def add_items(self, playlist_id: int, paths: Sequence[str]) -> list[PlaylistItem]:
        """Append *paths* after the last active item. Returns [] for an unknown playlist."""
        async with self.transaction() as conn:
            cur = await conn.execute(
                f"SELECT id FROM playlist WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                (playlist_id,),
            )
            if await cur.fetchone() is None:
                return []
            cur = await conn.execute(
                f"SELECT COALESCE(MAX(ordinal), -1) FROM playlist_item WHERE playlist_id = ? AND {_ACTIVE}",  # noqa: S608
                (playlist_id,),
            )
            (max_ordinal,) = await cur.fetchone()
            added: list[PlaylistItem] = []
            for offset, path in enumerate(paths, start=1):
                cur = await conn.execute(
                    "INSERT INTO playlist_item (playlist_id, ordinal, path, name) VALUES (?, ?, ?, ?) RETURNING *",
                    (playlist_id, max_ordinal + offset, path, Path(path).name),
                )
                added.append(self._row_to_item(await cur.fetchone()))
        return added

    async def remove_item(self, item_id: int) -> bool:
        """Soft-delete an item and close the ordinal gap among the survivors."""
        now = _now_iso()
        async with self.transaction() as conn:
            cur = await conn.execute(
                f"UPDATE playlist_item SET deleted_at = ? WHERE id = ? AND {_ACTIVE} RETURNING playlist_id",  # noqa: S608
                (now, item_id),
            )
            row = await cur.fetchone()
            if row is None:
                return False
            playlist_id = row["playlist_id"]
            survivors = await self._active_item_ids(conn, playlist_id)
            await self._rewrite_ordinals(conn, playlist_id, survivors)
        log.info("item_removed", item_id=item_id, playlist_id=playlist_id)
        return True

    async def rename_item(self, item_id: int, name: str) -> bool:
        async with self.transaction() as conn:
            cur = await conn.execute(
                f"UPDATE playlist_item SET name = ? WHERE id = ? AND {_ACTIVE}",  # noqa: S608
                (name, item_id),
            )
        return cur.rowcount > 0

    async def update_item_position(self, item_id: int, position_seconds: int | None) -> bool:
        async with self.transaction() as conn:
            cur = await conn.execute(
                "UPDATE playlist_item SET position_seconds = ? WHERE id = ?",
                (position_seconds, item_id),
            )
        return cur.rowcount > 0

    async def update_item_duration(self, item_id: int, duration_ms: int) -> bool:
        async with self.transaction() as conn:
            cur = await conn.execute(
                "UPDATE playlist_item SET duration_ms = ? WHERE id = ?",
                (duration_ms, item_id),
            )
        return cur.rowcount > 0

    async def apply_item_order(self, playlist_id: int, ordered_ids: Sequence[int]) -> None:
        """Give every active item of the playlist its index in *ordered_ids* as ordinal.

        Raises ``ValueError`` (nothing written) unless *ordered_ids* is exactly
        the set of active item ids of the playlist.
        """
        async with self.transaction() as conn:
            active = await self._active_item_ids(conn, playlist_id)
            if len(ordered_ids) != len(set(ordered_ids)):
                msg = "item order contains duplicate ids"
                raise ValueError(msg)
            unknown = set(ordered_ids) - set(active)
            if unknown:
                msg = f"items {sorted(unknown)} are not active items of playlist {playlist_id}"
                raise ValueError(msg)
            missing = set(active) - set(ordered_ids)
            if missing:
                msg = f"item order is missing active items {sorted(missing)}"
                raise ValueError(msg)
            await self._rewrite_ordinals(conn, playlist_id, list(ordered_ids))

    async def _active_item_ids(self, conn: aiosqlite.Connection, playlist_id: int) -> list[int]:
        cur = await conn.execute(
            f"SELECT id FROM playlist_item WHERE playlist_id = ? AND {_ACTIVE} ORDER BY ordinal",  # noqa: S608
            (playlist_id,),
        )
        return [r["id"] for r in await cur.fetchall()]

    @staticmethod
    async def _rewrite_ordinals(conn: aiosqlite.Connection, playlist_id: int, ordered_ids: Sequence[int]) -> None:
        # Park active ordinals on distinct negatives first so the partial
        # unique index never sees two rows on the same slot mid-update.
        await conn.execute(
            f"UPDATE playlist_item SET ordinal = -1 - ordinal WHERE playlist_id = ? AND {_ACTIVE}",  # noqa: S608
            (playlist_id,),
        )
        await conn.executemany(
            "UPDATE playlist_item SET ordinal = ? WHERE id = ?",
            [(ordinal, item_id) for ordinal, item_id in enumerate(ordered_ids)],
        )

    # -- playback bookkeeping -------------------------------------------------

    async def record_playback_start(self, item: PlaylistItem, *, played_at: datetime | None = None) -> HistoryEntry:
        """Stamp item and playlist last-played and append a ``started`` history row."""
        at = (played_at or datetime.now(timezone.utc)).isoformat()
        async with self.transaction() as conn:
            await conn.execute(
                "UPDATE playlist_item SET last_played_at = ? WHERE id = ?",
                (at, item.id),
            )
            await conn.execute(
                "UPDATE playlist SET last_played_at = ? WHERE id = ?",
                (at, item.playlist_id),
            )
            cur = await conn.execute(
                "INSERT INTO history (playlist_id, item_id, event, played_at) VALUES (?, ?, 'started', ?) RETURNING *",
                (item.playlist_id, item.id, at),
            )
            row = await cur.fetchone()
        return self._row_to_history(row)

    async def record_playback_end(
        self,
        item: PlaylistItem,
        *,
        position_seconds: int | None,
        duration_ms: int | None = None,
    ) -> HistoryEntry:
        """Append a ``completed`` history row and freeze the stored position."""
        now = _now_iso()
        async with self.transaction() as conn:
            cur = await conn.execute(
                "INSERT INTO history (playlist_id, item_id, event, played_at) "
                "VALUES (?, ?, 'completed', ?) RETURNING *",
                (item.playlist_id, item.id, now),
            )
            row = await cur.fetchone()
            if position_seconds is not None:
                await conn.execute(
                    "UPDATE playlist_item SET position_seconds = ? WHERE id = ?",
                    (position_seconds, item.id),
                )
            if duration_ms:
                await conn.execute(
                    "UPDATE playlist_item SET duration_ms = ? WHERE id = ? AND COALESCE(duration_ms, 0) = 0",
                    (duration_ms, item.id),
                )
        return self._row_to_history(row)

    # -- history --------------------------------------------------------------

    async def list_history(self, *, limit: int = 1000) -> list[HistoryEntry]:
        async with self._read() as conn:
            cur = await conn.execute(
                """
                SELECT h.*, p.name AS playlist_name, i.name AS item_name
                FROM history h
                JOIN playlist p ON p.id = h.playlist_id
                JOIN playlist_item i ON i.id = h.item_id
                ORDER BY h.played_at DESC, h.id DESC
                LIMIT ?
                """,
                (limit,),
            )
            rows = await cur.fetchall()
        return [self._row_to_history(r) for r in rows]

    # -- error_log ------------------------------------------------------------

    async def add_error_log(
        self,
        message: str,
        *,
        stack_trace: str = "",
        playlist_id: int | None = None,
        item_id: int | None = None,
    ) -> ErrorLogEntry:
        async with self.transaction() as conn:
            cur = await conn.execute(
                """
                INSERT INTO error_log (playlist_id, item_id, logged_at, message, stack_trace)
                VALUES (?, ?, ?, ?, ?)
                RETURNING *
                """,
                (playlist_id, item_id, _now_iso(), message, stack_trace),
            )
            row = await cur.fetchone()
        return self._row_to_error_log(row)

    async def list_error_logs(self, *, limit: int = 50) -> list[ErrorLogEntry]:
        async with self._read() as conn:
            cur = await conn.execute("SELECT * FROM error_log ORDER BY id DESC LIMIT ?", (limit,))
            rows = await cur.fetchall()
        return [self._row_to_error_log(r) for r in rows]

    # -- setting --------------------------------------------------------------

    async def get_setting(self, key: str) -> str | None:
        async with self._read() as conn:
            cur = await conn.execute("SELECT value FROM setting WHERE key = ?", (key,))
            row = await cur.fetchone()
        return row["value"] if row else None

    async def set_setting(self, key: str, value: str) -> None:
        async with self.transaction() as conn:
            await conn.execute(
                "INSERT INTO setting (key, value) VALUES (?, ?) ON CONFLICT (key) DO UPDATE SET value = excluded.value",
                (key, value),
            )

    # -- row → model helpers --------------------------------------------------

    @staticmethod
    def _row_to_playlist(row: aiosqlite.Row) -> Playlist:
        return Playlist(
            id=row["id"],
            name=row["name"],
            created_at=row["created_at"],
            last_played_at=row["last_played_at"],
            selected_item_id=row["selected_item_id"],
            deleted_at=row["deleted_at"],
        )

    @staticmethod
    def _row_to_item(row: aiosqlite.Row) -> PlaylistItem:
        return PlaylistItem(
            id=row["id"],
            playlist_id=row["playlist_id"],
            ordinal=row["ordinal"],
            path=row["path"],
            name=row["name"],
            last_played_at=row["last_played_at"],
            position_seconds=row["position_seconds"],
            duration_ms=row["duration_ms"],
            deleted_at=row["deleted_at"],
        )

    @staticmethod
    def _row_to_history(row: aiosqlite.Row) -> HistoryEntry:
        keys = row.keys()
        return HistoryEntry(
            id=row["id"],
            playlist_id=row["playlist_id"],
            item_id=row["item_id"],
            event=row["event"],
            played_at=row["played_at"],
            playlist_name=row["playlist_name"] if "playlist_name" in keys else None,
            item_name=row["item_name"] if "item_name" in keys else None,
        )

    @staticmethod
    def _row_to_error_log(row: aiosqlite.Row) -> ErrorLogEntry:
        return ErrorLogEntry(
            id=row["id"],
            playlist_id=row["playlist_id"],
            item_id=row["item_id"],
            logged_at=row["logged_at"],
            message=row["message"],
            stack_trace=row["stack_trace"],
        )
