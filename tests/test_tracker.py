"""Tests for the PositionTracker."""

from __future__ import annotations

import asyncio

import pytest

from playlister.playback.tracker import PositionTracker


@pytest.mark.asyncio()
async def test_start_stop():
    """Tracker should start and stop cleanly."""
    calls = []

    async def sync():
        calls.append(1)

    tracker = PositionTracker(sync, interval_seconds=60)
    await tracker.start()
    assert tracker.is_running

    await tracker.stop()
    assert not tracker.is_running
    assert calls == []


@pytest.mark.asyncio()
async def test_ticks_call_sync():
    calls = []

    async def sync():
        calls.append(1)

    tracker = PositionTracker(sync, interval_seconds=0.01)
    await tracker.start()
    await asyncio.sleep(0.1)
    await tracker.stop()

    assert len(calls) >= 2
    assert tracker.ticks == len(calls)


@pytest.mark.asyncio()
async def test_failures_do_not_stop_the_loop():
    attempts = []

    async def flaky():
        attempts.append(1)
        if len(attempts) == 1:
            raise RuntimeError("disk full")

    tracker = PositionTracker(flaky, interval_seconds=0.01)
    await tracker.start()
    await asyncio.sleep(0.1)
    await tracker.stop()

    assert tracker.failures == 1
    assert len(attempts) >= 2


@pytest.mark.asyncio()
async def test_double_start_and_stop_are_harmless():
    async def sync():
        return None

    tracker = PositionTracker(sync, interval_seconds=60)
    await tracker.start()
    first_task = tracker._task
    await tracker.start()
    assert tracker._task is first_task

    await tracker.stop()
    await tracker.stop()
    assert not tracker.is_running
