"""Progress arithmetic shared by the session and the CLI."""

from __future__ import annotations


def progress_percent(position_seconds: int | None, duration_ms: int | None) -> int:
    """Return how much of an item has been played, 0..100, in exact integer math."""
    if not position_seconds or not duration_ms or position_seconds < 0 or duration_ms < 0:
        return 0
    return min(100, position_seconds * 1000 * 100 // duration_ms)


def is_finished(position_seconds: int | None, duration_ms: int | None) -> bool:
    return progress_percent(position_seconds, duration_ms) >= 100


def should_play_from_start(position_seconds: int | None, duration_ms: int | None) -> bool:
    """Decide the default action when an item is re-opened.

    Finished items and items without a stored position start over; anything
    else continues from the stored position.
    """
    return not position_seconds or is_finished(position_seconds, duration_ms)


def completed_position_seconds(duration_ms: int) -> int:
    """Stored position (seconds) that makes :func:`progress_percent` read 100."""
    return -(-duration_ms // 1000)


def ms_to_seconds(position_ms: int) -> int:
    return max(0, position_ms) // 1000


def format_clock(milliseconds: int | None) -> str:
    """Render milliseconds as ``H:MM:SS`` or ``M:SS``."""
    if not milliseconds or milliseconds < 0:
        return "0:00"
    total = milliseconds // 1000
    hours, rest = divmod(total, 3600)
    minutes, seconds = divmod(rest, 60)
    if hours:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"
