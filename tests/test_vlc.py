"""Tests for VlcEngine against a mocked LibVLC binding."""

from __future__ import annotations

import asyncio
import sys
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from playlister.playback.engine import EngineError, EngineEventKind
from playlister.playback.vlc import VlcEngine

# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@pytest.fixture()
def fake_vlc(monkeypatch: pytest.MonkeyPatch) -> MagicMock:
    """Install a MagicMock as the ``vlc`` module and record attached callbacks."""
    module = MagicMock(name="vlc")
    module.EventType = SimpleNamespace(
        MediaPlayerPlaying="playing",
        MediaPlayerEndReached="end",
        MediaPlayerEncounteredError="error",
        MediaPlayerTimeChanged="time",
    )
    callbacks: dict[str, object] = {}
    event_manager = module.Instance.return_value.media_player_new.return_value.event_manager.return_value
    event_manager.event_attach.side_effect = lambda kind, cb: callbacks.__setitem__(kind, cb)
    module.callbacks = callbacks
    monkeypatch.setitem(sys.modules, "vlc", module)
    return module


def _player(fake_vlc: MagicMock) -> MagicMock:
    return fake_vlc.Instance.return_value.media_player_new.return_value


# ---------------------------------------------------------------------------
# Tests
# ---------------------------------------------------------------------------


def test_attaches_player_events(fake_vlc: MagicMock):
    VlcEngine("--quiet")
    fake_vlc.Instance.assert_called_once_with("--quiet")
    assert set(fake_vlc.callbacks) == {"playing", "end", "error", "time"}


def test_missing_instance_raises(fake_vlc: MagicMock):
    fake_vlc.Instance.return_value = None
    with pytest.raises(EngineError, match="could not be initialised"):
        VlcEngine()


@pytest.mark.asyncio()
async def test_callbacks_are_forwarded_to_the_loop(fake_vlc: MagicMock):
    engine = VlcEngine()
    received = []
    engine.set_listener(received.append)

    fake_vlc.callbacks["playing"](None)
    fake_vlc.callbacks["time"](SimpleNamespace(u=SimpleNamespace(new_time=1500)))
    fake_vlc.callbacks["end"](None)
    await asyncio.sleep(0)

    assert [e.kind for e in received] == [
        EngineEventKind.STARTED,
        EngineEventKind.POSITION_CHANGED,
        EngineEventKind.ENDED,
    ]
    assert received[1].position_ms == 1500


@pytest.mark.asyncio()
async def test_no_listener_drops_events(fake_vlc: MagicMock):
    engine = VlcEngine()
    engine.set_listener(None)
    fake_vlc.callbacks["error"](None)
    await asyncio.sleep(0)


def test_load_sets_media(fake_vlc: MagicMock):
    engine = VlcEngine()
    engine.load("/media/a.mp4")

    instance = fake_vlc.Instance.return_value
    instance.media_new_path.assert_called_once_with("/media/a.mp4")
    _player(fake_vlc).set_media.assert_called_once_with(instance.media_new_path.return_value)


def test_load_unreadable_media_raises(fake_vlc: MagicMock):
    fake_vlc.Instance.return_value.media_new_path.return_value = None
    engine = VlcEngine()
    with pytest.raises(EngineError, match="could not open"):
        engine.load("/media/broken.mp4")


def test_play_refused_raises(fake_vlc: MagicMock):
    _player(fake_vlc).play.return_value = -1
    engine = VlcEngine()
    with pytest.raises(EngineError):
        engine.play()


def test_position_and_duration_are_clamped(fake_vlc: MagicMock):
    player = _player(fake_vlc)
    player.get_time.return_value = -1
    player.get_length.return_value = 90_000
    engine = VlcEngine()

    assert engine.get_position_ms() == 0
    assert engine.get_duration_ms() == 90_000


def test_release_is_idempotent(fake_vlc: MagicMock):
    engine = VlcEngine()
    engine.release()
    engine.release()

    _player(fake_vlc).release.assert_called_once()
    fake_vlc.Instance.return_value.release.assert_called_once()
