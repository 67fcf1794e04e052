"""CLI interface for Playlister."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from pathlib import Path
from typing import TypeVar

import typer
from rich.console import Console
from rich.table import Table

from playlister.config import AppConfig, ensure_dirs, load_config, save_config
from playlister.library import (
    InvalidReorderRequestError,
    OrdinalReorderer,
    PlaylistService,
)
from playlister.playback.engine import EngineError
from playlister.playback.progress import format_clock, progress_percent
from playlister.settings import Settings
from playlister.storage import Database

app = typer.Typer(
    name="playlister",
    help="Manage local media playlists and play them with resumable progress.",
    add_completion=False,
)
console = Console()

T = TypeVar("T")


def main() -> None:
    """Entry point that wraps ``app()`` with a clean KeyboardInterrupt handler."""
    try:
        app()
    except KeyboardInterrupt:
        console.print("Interrupted.")
        raise SystemExit(130) from None


# ---------------------------------------------------------------------------
# Runtime helpers
# ---------------------------------------------------------------------------


def _run(action: Callable[[Database, AppConfig], Awaitable[T]]) -> T:
    """Open the database, run *action* and turn domain errors into a red message + exit 1."""

    async def _go() -> T:
        ensure_dirs()
        cfg = load_config()
        async with Database(cfg.db_path) as db:
            return await action(db, cfg)

    try:
        return asyncio.run(_go())
    except (LookupError, ValueError, InvalidReorderRequestError, EngineError) as exc:
        console.print(f"[red]Error:[/red] {exc}")
        raise typer.Exit(1) from exc


def _absolute(paths: list[Path]) -> list[str]:
    resolved = []
    for path in paths:
        full = path.expanduser().resolve()
        if not full.is_file():
            console.print(f"[yellow]Warning:[/yellow] {full} does not exist (added anyway)")
        resolved.append(str(full))
    return resolved


# ---------------------------------------------------------------------------
# Formatting helpers
# ---------------------------------------------------------------------------


def _human_time(value: datetime | None) -> str:
    """Convert a timestamp to a relative time string."""
    if value is None:
        return "—"
    if value.tzinfo is None:
        value = value.replace(tzinfo=UTC)
    diff = (datetime.now(UTC) - value).total_seconds()
    if diff < 60:
        return f"{max(0, int(diff))}s ago"
    if diff < 3600:
        return f"{int(diff / 60)} min ago"
    if diff < 86400:
        return f"{int(diff / 3600)}h {int((diff % 3600) / 60)}m ago"
    return value.astimezone().strftime("%Y-%m-%d %H:%M")


def _progress_cell(position_seconds: int | None, duration_ms: int | None) -> str:
    percent = progress_percent(position_seconds, duration_ms)
    if percent >= 100:
        return "[green]100%[/green]"
    if percent == 0:
        return "[dim]0%[/dim]"
    return f"{percent}%"


# ---------------------------------------------------------------------------
# Playlists
# ---------------------------------------------------------------------------


@app.command(name="list")
def list_playlists(
    search: str = typer.Option("", "--search", "-s", help="Only playlists whose name contains this text"),
) -> None:
    """List playlists by name."""

    async def _action(db: Database, cfg: AppConfig):
        return await PlaylistService(db).list_playlists(search or None)

    playlists = _run(_action)
    if not playlists:
        console.print("[dim]No playlists yet. Create one with [bold]playlister create[/bold].[/dim]")
        return

    table = Table("ID", "Name", "Created", "Last played")
    for pl in playlists:
        table.add_row(str(pl.id), pl.name, _human_time(pl.created_at), _human_time(pl.last_played_at))
    console.print(table)


@app.command()
def create(
    name: str = typer.Argument(help="Playlist name"),
    paths: list[Path] = typer.Argument(None, help="Media files, in play order"),
) -> None:
    """Create a playlist from media files."""
    files = _absolute(paths or [])

    async def _action(db: Database, cfg: AppConfig):
        return await PlaylistService(db).create_playlist(name, files)

    playlist = _run(_action)
    console.print(f"[green]Created[/green] playlist {playlist.id} ({playlist.name}) with {len(files)} item(s).")


@app.command()
def show(playlist_id: int = typer.Argument(help="Playlist ID")) -> None:
    """Show the items of a playlist with their progress."""

    async def _action(db: Database, cfg: AppConfig):
        service = PlaylistService(db)
        playlist = await service.get_playlist(playlist_id)
        return playlist, await service.list_items(playlist_id)

    playlist, items = _run(_action)
    console.print(f"\n[bold]{playlist.name}[/bold]  [dim](last played {_human_time(playlist.last_played_at)})[/dim]")
    if not items:
        console.print("[dim]  (empty)[/dim]\n")
        return

    table = Table("#", "ID", "Name", "Position", "Length", "Progress")
    for item in items:
        marker = " *" if item.id == playlist.selected_item_id else ""
        position_ms = item.position_seconds * 1000 if item.position_seconds else None
        table.add_row(
            str(item.ordinal),
            f"{item.id}{marker}",
            item.name,
            format_clock(position_ms),
            format_clock(item.duration_ms) if item.duration_ms else "—",
            _progress_cell(item.position_seconds, item.duration_ms),
        )
    console.print(table)


@app.command()
def rename(
    playlist_id: int = typer.Argument(help="Playlist ID"),
    name: str = typer.Argument(help="New name"),
) -> None:
    """Rename a playlist."""

    async def _action(db: Database, cfg: AppConfig):
        await PlaylistService(db).rename_playlist(playlist_id, name)

    _run(_action)
    console.print(f"[green]Renamed[/green] playlist {playlist_id} to {name.strip()}.")


@app.command()
def delete(
    playlist_id: int = typer.Argument(help="Playlist ID"),
    yes: bool = typer.Option(False, "--yes", "-y", help="Do not ask for confirmation"),
) -> None:
    """Remove a playlist (its items and history are kept in the database)."""
    if not yes and not typer.confirm(f"Remove playlist {playlist_id}?"):
        raise typer.Exit(0)

    async def _action(db: Database, cfg: AppConfig):
        await PlaylistService(db).delete_playlist(playlist_id)

    _run(_action)
    console.print(f"[green]Removed[/green] playlist {playlist_id}.")


# ---------------------------------------------------------------------------
# Items
# ---------------------------------------------------------------------------


@app.command()
def add(
    playlist_id: int = typer.Argument(help="Playlist ID"),
    paths: list[Path] = typer.Argument(help="Media files to append"),
) -> None:
    """Append media files to a playlist."""
    files = _absolute(paths)

    async def _action(db: Database, cfg: AppConfig):
        return await PlaylistService(db).add_items(playlist_id, files)

    added = _run(_action)
    console.print(f"[green]Added[/green] {len(added)} item(s) to playlist {playlist_id}.")


@app.command()
def remove(item_id: int = typer.Argument(help="Item ID")) -> None:
    """Remove an item from its playlist."""

    async def _action(db: Database, cfg: AppConfig):
        await PlaylistService(db).remove_item(item_id)

    _run(_action)
    console.print(f"[green]Removed[/green] item {item_id}.")


@app.command(name="rename-item")
def rename_item(
    item_id: int = typer.Argument(help="Item ID"),
    name: str = typer.Argument(help="New display name"),
) -> None:
    """Change the display name of an item."""

    async def _action(db: Database, cfg: AppConfig):
        await PlaylistService(db).rename_item(item_id, name)

    _run(_action)
    console.print(f"[green]Renamed[/green] item {item_id} to {name.strip()}.")


@app.command()
def move(
    playlist_id: int = typer.Argument(help="Playlist ID"),
    source: int = typer.Argument(help="Current position (0-based)"),
    target: int = typer.Argument(help="Position to drop onto (past the end appends)"),
) -> None:
    """Move an item to another position in its playlist."""

    async def _action(db: Database, cfg: AppConfig):
        return await OrdinalReorderer(db).move(playlist_id, source, target)

    if _run(_action):
        console.print(f"[green]Moved[/green] item at {source} in playlist {playlist_id}.")
    else:
        console.print("[dim]Nothing to do (item already there).[/dim]")


@app.command()
def order(
    playlist_id: int = typer.Argument(help="Playlist ID"),
    item_ids: list[int] = typer.Argument(help="Every item ID of the playlist, in the new order"),
) -> None:
    """Set the complete item order of a playlist."""

    async def _action(db: Database, cfg: AppConfig):
        return await OrdinalReorderer(db).reorder(playlist_id, item_ids)

    if _run(_action):
        console.print(f"[green]Reordered[/green] playlist {playlist_id}.")
    else:
        console.print("[dim]Nothing to do (order unchanged).[/dim]")


# ---------------------------------------------------------------------------
# History / diagnostics
# ---------------------------------------------------------------------------


@app.command()
def history(limit: int = typer.Option(50, "--limit", "-n", help="Number of entries to show")) -> None:
    """Show recently started and completed items, newest first."""

    async def _action(db: Database, cfg: AppConfig):
        return await PlaylistService(db, history_limit=cfg.library.history_limit).list_history(limit)

    entries = _run(_action)
    if not entries:
        console.print("[dim]No playback history yet.[/dim]")
        return

    table = Table("When", "Event", "Playlist", "Item")
    for entry in entries:
        table.add_row(_human_time(entry.played_at), entry.event, entry.playlist_name or "?", entry.item_name or "?")
    console.print(table)


@app.command()
def errors(limit: int = typer.Option(20, "--limit", "-n", help="Number of entries to show")) -> None:
    """Show the most recent playback and storage errors."""

    async def _action(db: Database, cfg: AppConfig):
        return await PlaylistService(db).list_errors(limit)

    entries = _run(_action)
    if not entries:
        console.print("[dim]No errors logged.[/dim]")
        return

    for entry in entries:
        context = f"playlist {entry.playlist_id}, item {entry.item_id}" if entry.item_id else "no item"
        console.print(f"[red]{_human_time(entry.logged_at)}[/red]  {entry.message}  [dim]({context})[/dim]")


# ---------------------------------------------------------------------------
# Playback
# ---------------------------------------------------------------------------


@app.command()
def play(
    item_id: int = typer.Argument(help="Item ID"),
    from_start: bool | None = typer.Option(
        None,
        "--from-start/--continue",
        help="Force restart or resume (default: restart finished items, resume the rest)",
    ),
) -> None:
    """Play an item and keep its position until it ends or you press Ctrl+C."""
    from playlister.logging import setup_logging
    from playlister.playback.session import PlaybackSession
    from playlister.playback.vlc import VlcEngine

    cfg = load_config()
    ensure_dirs()
    setup_logging(cfg.app.log_level, cfg.log_dir)

    async def _action(db: Database, cfg: AppConfig):
        engine = VlcEngine("--quiet")
        async with PlaybackSession(db, engine, config=cfg.playback) as session:
            finished = asyncio.Event()
            session.events.on("ended", lambda item: finished.set())

            def _on_error(item, message: str) -> None:
                console.print(f"[red]Playback error:[/red] {message}")
                finished.set()

            session.events.on("error", _on_error)
            session.events.on(
                "loading",
                lambda item, fullscreen: console.print(f"[bold]Now playing:[/bold] {item.name}"),
            )

            if from_start is None:
                await session.open(item_id)
            else:
                await session.play(item_id, from_start=from_start)
            if session.position_ms:
                console.print(f"[dim]Resuming at {format_clock(session.position_ms)}[/dim]")
            await finished.wait()
            return session.state

    try:
        state = _run(_action)
    except FileNotFoundError as exc:
        console.print(f"[red]File not found:[/red] {exc}")
        raise typer.Exit(1) from exc
    console.print(f"[green]Playback {state.value}.[/green]")


# ---------------------------------------------------------------------------
# Settings
# ---------------------------------------------------------------------------


@app.command()
def fullscreen(
    behavior: str = typer.Argument("", help="Auto (enter fullscreen on play) or Default"),
) -> None:
    """Show or change whether playback opens fullscreen."""

    async def _action(db: Database, cfg: AppConfig):
        settings = Settings(db)
        if behavior:
            await settings.set_fullscreen_behavior(behavior)
        return await settings.get_fullscreen_behavior()

    console.print(f"Fullscreen behavior: [bold]{_run(_action)}[/bold]")


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


config_app = typer.Typer(name="config", help="View and modify configuration.", add_completion=False)
app.add_typer(config_app)


@config_app.command(name="show")
def config_show() -> None:
    """Show current configuration."""
    cfg = load_config()

    console.print("\n[bold]Current Configuration[/bold]\n")

    console.print("[bold cyan]\\[app][/bold cyan]")
    console.print(f"  log_level = {cfg.app.log_level}")

    console.print("\n[bold cyan]\\[playback][/bold cyan]")
    console.print(f"  position_sync_seconds = {cfg.playback.position_sync_seconds}")
    console.print(f"  duration_attempts     = {cfg.playback.duration_attempts}")
    console.print(f"  duration_backoff_ms   = {cfg.playback.duration_backoff_ms}")
    console.print(f"  start_timeout_seconds = {cfg.playback.start_timeout_seconds}")

    console.print("\n[bold cyan]\\[library][/bold cyan]")
    console.print(f"  history_limit = {cfg.library.history_limit}")
    console.print()


@config_app.command(name="set")
def config_set(
    key: str = typer.Argument(help="Dotted key, e.g. playback.position_sync_seconds"),
    value: str = typer.Argument(help="New value"),
) -> None:
    """Set a configuration value (e.g. playlister config set playback.duration_attempts 5)."""
    from pydantic import ValidationError

    parts = key.split(".", maxsplit=1)
    if len(parts) != 2:
        console.print("[red]Key must be in section.field format (e.g. app.log_level).[/red]")
        raise typer.Exit(1)

    section_name, field_name = parts

    cfg = load_config()
    section_map = {
        "app": cfg.app,
        "playback": cfg.playback,
        "library": cfg.library,
    }

    if section_name not in section_map:
        console.print(f"[red]Unknown section:[/red] {section_name}")
        console.print(f"[dim]Valid sections: {', '.join(section_map)}[/dim]")
        raise typer.Exit(1)

    section_model = section_map[section_name]
    fields = type(section_model).model_fields
    if field_name not in fields:
        console.print(f"[red]Unknown field:[/red] {section_name}.{field_name}")
        console.print(f"[dim]Valid fields: {', '.join(fields)}[/dim]")
        raise typer.Exit(1)

    try:
        coerced = _coerce_value(value, fields[field_name].annotation)
        section_data = section_model.model_dump(mode="python")
        section_data[field_name] = coerced
        new_section = type(section_model)(**section_data)
    except (ValueError, TypeError, ValidationError) as exc:
        console.print(f"[red]Invalid value:[/red] {exc}")
        raise typer.Exit(1) from exc

    setattr(cfg, section_name, new_section)
    save_config(cfg)
    console.print(f"[green]Set[/green] {key} = {coerced}")


def _coerce_value(raw: str, field_type: type) -> object:
    """Coerce a string value to the expected field type."""
    if field_type is bool:
        if raw.lower() in ("true", "1", "yes"):
            return True
        if raw.lower() in ("false", "0", "no"):
            return False
        msg = f"Cannot convert '{raw}' to bool (use true/false)"
        raise ValueError(msg)

    if field_type is int:
        return int(raw)

    if field_type is float:
        return float(raw)

    return raw
