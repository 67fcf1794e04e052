"""Tests for PlaylistService and Settings."""

from __future__ import annotations

import pytest

from playlister.library import ItemNotFoundError, PlaylistNotFoundError, PlaylistService
from playlister.settings import Settings
from playlister.storage import Database

# ---------------------------------------------------------------------------
# PlaylistService
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_create_strips_name(db: Database):
    service = PlaylistService(db)
    playlist = await service.create_playlist("  Road trip  ", ["/m/a.mp4"])
    assert playlist.name == "Road trip"
    assert len(await service.list_items(playlist.id)) == 1


@pytest.mark.asyncio()
@pytest.mark.parametrize("name", ["", "   "])
async def test_blank_names_rejected(db: Database, name: str):
    service = PlaylistService(db)
    with pytest.raises(ValueError):
        await service.create_playlist(name)

    playlist = await service.create_playlist("Fine", ["/m/a.mp4"])
    (item,) = await service.list_items(playlist.id)
    with pytest.raises(ValueError):
        await service.rename_playlist(playlist.id, name)
    with pytest.raises(ValueError):
        await service.rename_item(item.id, name)


@pytest.mark.asyncio()
async def test_unknown_ids_raise_lookup_errors(db: Database):
    service = PlaylistService(db)

    with pytest.raises(PlaylistNotFoundError):
        await service.get_playlist(1)
    with pytest.raises(PlaylistNotFoundError):
        await service.rename_playlist(1, "x")
    with pytest.raises(PlaylistNotFoundError):
        await service.delete_playlist(1)
    with pytest.raises(PlaylistNotFoundError):
        await service.add_items(1, ["/m/a.mp4"])
    with pytest.raises(ItemNotFoundError):
        await service.get_item(1)
    with pytest.raises(ItemNotFoundError):
        await service.remove_item(1)
    with pytest.raises(LookupError):
        await service.rename_item(1, "x")


@pytest.mark.asyncio()
async def test_deleted_playlist_is_hidden(db: Database):
    service = PlaylistService(db)
    playlist = await service.create_playlist("Temp", ["/m/a.mp4"])
    (item,) = await service.list_items(playlist.id)

    await service.delete_playlist(playlist.id)

    assert await service.list_playlists() == []
    with pytest.raises(PlaylistNotFoundError):
        await service.get_playlist(playlist.id)
    with pytest.raises(ItemNotFoundError):
        await service.get_item(item.id)


@pytest.mark.asyncio()
async def test_select_item(db: Database):
    service = PlaylistService(db)
    playlist = await service.create_playlist("Sel", ["/m/a.mp4", "/m/b.mp4"])
    _, second = await service.list_items(playlist.id)

    await service.select_item(playlist.id, second.id)
    assert (await service.get_playlist(playlist.id)).selected_item_id == second.id

    with pytest.raises(PlaylistNotFoundError):
        await service.select_item(999, second.id)


@pytest.mark.asyncio()
async def test_history_is_capped(db: Database):
    service = PlaylistService(db, history_limit=3)
    playlist = await service.create_playlist("Hist", ["/m/a.mp4"])
    (item,) = await service.list_items(playlist.id)
    for _ in range(5):
        await db.record_playback_start(item)

    assert len(await service.list_history()) == 3
    assert len(await service.list_history(limit=2)) == 2
    assert len(await service.list_history(limit=50)) == 3


@pytest.mark.asyncio()
async def test_list_errors_newest_first(db: Database):
    service = PlaylistService(db)
    for n in range(3):
        await db.add_error_log(f"error {n}")

    errors = await service.list_errors(limit=2)
    assert [e.message for e in errors] == ["error 2", "error 1"]


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@pytest.mark.asyncio()
async def test_fullscreen_defaults_to_auto(db: Database):
    settings = Settings(db)
    assert await settings.get_fullscreen_behavior() == "Auto"
    assert await settings.fullscreen_on_play()


@pytest.mark.asyncio()
async def test_fullscreen_set_and_validate(db: Database):
    settings = Settings(db)
    await settings.set_fullscreen_behavior("Default")
    assert await settings.get_fullscreen_behavior() == "Default"
    assert not await settings.fullscreen_on_play()

    with pytest.raises(ValueError, match="not a valid option"):
        await settings.set_fullscreen_behavior("Always")
    assert await settings.get_fullscreen_behavior() == "Default"


@pytest.mark.asyncio()
async def test_unknown_stored_fullscreen_value_falls_back(db: Database):
    await db.set_setting("fullscreen_behavior", "Sideways")
    assert await Settings(db).get_fullscreen_behavior() == "Auto"


@pytest.mark.asyncio()
async def test_selected_playlist_roundtrip(db: Database):
    settings = Settings(db)
    assert await settings.get_selected_playlist_id() is None

    await settings.set_selected_playlist_id(7)
    assert await settings.get_selected_playlist_id() == 7

    await settings.set_selected_playlist_id(None)
    assert await settings.get_selected_playlist_id() is None
