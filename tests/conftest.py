"""Shared fixtures for Playlister tests."""

from __future__ import annotations

from pathlib import Path

import pytest
import pytest_asyncio

from playlister.playback.engine import EngineEvent, EngineEventKind
from playlister.storage import Database


@pytest.fixture()
def base_dir(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Redirect all Playlister runtime files to a temporary directory.

    Patches ``playlister.config.get_base_dir`` so that nothing touches the
    real ``~/.playlister/``.
    """
    fake_base = tmp_path / ".playlister"
    fake_base.mkdir()
    (fake_base / "logs").mkdir()

    monkeypatch.setattr("playlister.config.get_base_dir", lambda: fake_base)

    return fake_base


@pytest_asyncio.fixture()
async def db(tmp_path: Path):
    """Provide a fresh database for each test."""
    database = Database(tmp_path / "test.db")
    await database.connect()
    yield database
    await database.close()


@pytest.fixture()
def media_files(tmp_path: Path) -> list[str]:
    """Five small files standing in for media."""
    media_dir = tmp_path / "media"
    media_dir.mkdir()
    paths = []
    for name in ("a.mp4", "b.mp4", "c.mkv", "d.mp3", "e.avi"):
        path = media_dir / name
        path.write_bytes(b"\x00" * 16)
        paths.append(str(path))
    return paths


class FakeEngine:
    """Scripted MediaEngine: reports start synchronously and lets tests drive the rest."""

    def __init__(self, *, duration_ms: int = 0, autostart: bool = True, fail_on_play: bool = False) -> None:
        self.duration_ms = duration_ms
        self.position_ms = 0
        self.autostart = autostart
        self.fail_on_play = fail_on_play
        self.loaded: list[str] = []
        self.calls: list[str] = []
        self.seeks: list[int] = []
        self.release_count = 0
        self.duration_reads = 0
        self._listener = None
        self._started = False

    # -- MediaEngine --

    def set_listener(self, listener) -> None:
        self._listener = listener

    def load(self, path: str) -> None:
        self.calls.append("load")
        self.loaded.append(path)
        self.position_ms = 0
        self._started = False

    def play(self) -> None:
        self.calls.append("play")
        if self.fail_on_play:
            raise RuntimeError("decoder exploded")
        if self.autostart and not self._started:
            self._started = True
            self.fire(EngineEventKind.STARTED)

    def pause(self) -> None:
        self.calls.append("pause")

    def stop(self) -> None:
        self.calls.append("stop")
        self._started = False

    def seek(self, position_ms: int) -> None:
        self.seeks.append(position_ms)
        self.position_ms = position_ms

    def get_position_ms(self) -> int:
        return self.position_ms

    def get_duration_ms(self) -> int:
        self.duration_reads += 1
        return self.duration_ms

    def release(self) -> None:
        self.release_count += 1

    # -- test helpers --

    def fire(self, kind: EngineEventKind, **kwargs) -> None:
        if self._listener is not None:
            self._listener(EngineEvent(kind, **kwargs))

    def advance_to(self, position_ms: int) -> None:
        self.position_ms = position_ms
        self.fire(EngineEventKind.POSITION_CHANGED, position_ms=position_ms)


@pytest.fixture()
def make_engine():
    """Factory for engines with non-default behaviour."""
    return FakeEngine


@pytest.fixture()
def engine() -> FakeEngine:
    return FakeEngine()
