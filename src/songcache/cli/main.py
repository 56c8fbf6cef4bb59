"""
CLI for the song cache.

Commands:
    songcache serve - Run the HTTP server
    songcache prepare ID - Download a song into the cache
    songcache search TERMS - Search the streaming service
    songcache status ID - Show the cache state of a song
    songcache config - Show current configuration
    songcache version - Print version
"""

from __future__ import annotations

import asyncio
from typing import Annotated, Optional

import typer
from rich.console import Console
from rich.table import Table

from songcache import __version__
from songcache.backends.backend import Backend
from songcache.backends.registry import create_backend
from songcache.config import Settings, clear_settings_cache, get_settings
from songcache.exceptions import SongCacheError
from songcache.logging import setup_logging
from songcache.types import CacheState

app = typer.Typer(
    name="songcache",
    help="Song cache - fetch songs once, serve them with byte ranges",
    no_args_is_help=True,
)

console = Console()
error_console = Console(stderr=True)


def _get_settings_safe() -> Settings | None:
    """Get settings, returning None if configuration is invalid."""
    try:
        clear_settings_cache()
        return get_settings()
    except ValueError as e:
        error_console.print(f"[dim]{e}[/dim]")
        return None


def _load_settings() -> Settings:
    settings = _get_settings_safe()
    if settings is None:
        error_console.print(
            "[red]Error:[/red] Configuration is invalid. "
            "Run 'songcache config' to see the current values."
        )
        raise typer.Exit(1)
    setup_logging(settings.LOG_LEVEL, settings.LOG_FILE)
    return settings


def _backend(settings: Settings, name: str | None) -> Backend:
    backend_name = name or settings.backend_names[0]
    try:
        return create_backend(backend_name, settings)
    except SongCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


BackendOption = Annotated[
    Optional[str],
    typer.Option("--backend", "-b", help="Backend name (defaults to the first configured)"),
]


@app.command()
def serve(
    host: Annotated[Optional[str], typer.Option("--host", help="Bind host")] = None,
    port: Annotated[Optional[int], typer.Option("--port", "-p", help="Bind port")] = None,
) -> None:
    """Run the HTTP server serving cached songs."""
    import uvicorn

    from songcache.serving.app import create_app

    settings = _load_settings()
    try:
        settings.ensure_directories()
    except SongCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    uvicorn.run(
        create_app(settings=settings),
        host=host or settings.HOST,
        port=port or settings.PORT,
        log_config=None,
    )


@app.command()
def prepare(
    content_id: Annotated[str, typer.Argument(help="Song identifier")],
    backend: BackendOption = None,
) -> None:
    """Download a song into the cache (no-op when already cached)."""
    settings = _load_settings()
    selected = _backend(settings, backend)

    async def run() -> None:
        try:
            await selected.init()
            path = await selected.ensure_song(content_id)
        finally:
            await selected.close()
        console.print(f"[green]Ready:[/green] {path}")

    try:
        asyncio.run(run())
    except SongCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)


@app.command()
def search(
    terms: Annotated[str, typer.Argument(help="Search terms")],
    backend: BackendOption = None,
) -> None:
    """Search the streaming service for songs."""
    settings = _load_settings()
    selected = _backend(settings, backend)

    async def run() -> list:
        try:
            await selected.client.connect()
            return await selected.search(terms)
        finally:
            await selected.close()

    try:
        songs = asyncio.run(run())
    except SongCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    if not songs:
        console.print("[yellow]No songs found.[/yellow]")
        return

    table = Table(title=f"Results for '{terms}'")
    table.add_column("ID", style="cyan")
    table.add_column("Artist")
    table.add_column("Title", style="bold")
    table.add_column("Album", style="dim")
    table.add_column("Length", justify="right")
    for song in songs:
        length = ""
        if song.duration is not None:
            minutes, seconds = divmod(song.duration // 1000, 60)
            length = f"{minutes}:{seconds:02d}"
        table.add_row(song.id, song.artist, song.title, song.album or "", length)
    console.print(table)


@app.command()
def status(
    content_id: Annotated[str, typer.Argument(help="Song identifier")],
    backend: BackendOption = None,
) -> None:
    """Show whether a song is absent, staging or committed."""
    settings = _load_settings()
    selected = _backend(settings, backend)

    try:
        state = selected.song_state(content_id)
    except SongCacheError as e:
        error_console.print(f"[red]Error:[/red] {e}")
        raise typer.Exit(1)

    style = {
        CacheState.COMMITTED: "green",
        CacheState.STAGING: "yellow",
        CacheState.ABSENT: "dim",
    }[state]
    console.print(f"{content_id}: [{style}]{state.value}[/{style}]")
    if state is CacheState.COMMITTED:
        console.print(f"[dim]{selected.store.committed_path(content_id)}[/dim]")


@app.command()
def config() -> None:
    """Show current configuration."""
    settings = _get_settings_safe()

    if settings is None:
        console.print("[red]Configuration is invalid.[/red]")
        console.print("\nCheck the SONG_CACHE_PATH, BACKENDS and UPSTREAM_* variables.")
        raise typer.Exit(1)

    table = Table(title="Song Cache Configuration")
    table.add_column("Setting", style="cyan")
    table.add_column("Value", style="green")

    for key, value in settings.redacted_display().items():
        display_value = str(value) if value is not None else "[dim]not set[/dim]"
        table.add_row(key, display_value)

    console.print(table)


@app.command()
def version() -> None:
    """Print the version number."""
    console.print(f"song-cache version {__version__}")


def main() -> None:
    """Entry point for the CLI."""
    app()


if __name__ == "__main__":
    main()
