"""Command line interface for catalog sync runs."""
from __future__ import annotations

import logging
from typing import Any, Optional

import typer
from pydantic import ValidationError

from backend.xtream_sync.client import XtreamClient
from backend.xtream_sync.coordinator import RunCoordinator, RunTotals
from backend.xtream_sync.db import create_history_engine
from backend.xtream_sync.errors import XtreamSyncError
from backend.xtream_sync.schemas import CATALOG_KINDS
from backend.xtream_sync.settings import SyncSettings
from backend.xtream_sync.stores.history_store import HistoryStore
from backend.xtream_sync.utils.paths import default_history_database_url


app = typer.Typer(help="Build M3U playlists and catalog diffs from an Xtream-style content API.")
history_app = typer.Typer(help="Inspect the recorded change history.")
app.add_typer(history_app, name="history")


def _server_option() -> typer.Option:
    return typer.Option(None, "--server", "-s", help="Content API base URL.")


def _username_option() -> typer.Option:
    return typer.Option(None, "--username", "-u", help="Account username.")


def _password_option() -> typer.Option:
    return typer.Option(None, "--password", "-p", help="Account password.")


def _database_url_option() -> typer.Option:
    return typer.Option(
        default_history_database_url(),
        "--database-url",
        help="Connection URL for the change history database.",
        envvar="XTREAM_SYNC_HISTORY_DATABASE_URL",
    )


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _load_settings(**overrides: Any) -> SyncSettings:
    """Resolve settings from the environment, letting supplied CLI values win."""

    values = {key: value for key, value in overrides.items() if value is not None}
    try:
        return SyncSettings(**values)
    except ValidationError as exc:
        for error in exc.errors():
            location = ".".join(str(part) for part in error["loc"]) or "settings"
            typer.echo(f"Invalid configuration ({location}): {error['msg']}", err=True)
        raise typer.Exit(code=2) from exc


def build_client(settings: SyncSettings) -> XtreamClient:
    """Create the HTTP client used by commands."""

    return XtreamClient(
        settings.server,
        settings.username,
        settings.password,
        timeout=settings.request_timeout,
    )


def _print_totals(totals: RunTotals) -> None:
    for line in totals.summary_lines():
        typer.echo(line)


@app.command()
def sync(
    server: Optional[str] = _server_option(),
    username: Optional[str] = _username_option(),
    password: Optional[str] = _password_option(),
    live: Optional[bool] = typer.Option(None, "--live/--no-live", "-l", help="Create M3U/diff for live channels."),
    vod: Optional[bool] = typer.Option(None, "--vod/--no-vod", "-v", help="Create M3U/diff for VOD categories."),
    series: Optional[bool] = typer.Option(None, "--series/--no-series", help="Create M3U/diff for series."),
    m3u: Optional[bool] = typer.Option(None, "--m3u/--no-m3u", "-m", help="Create M3U files."),
    diff: Optional[bool] = typer.Option(None, "--diff/--no-diff", "-d", help="Maintain snapshots and diff reports."),
    single_m3u: Optional[bool] = typer.Option(
        None, "--single-m3u/--per-category", "-S", help="Create a single M3U file per class."
    ),
    no_header: Optional[bool] = typer.Option(
        None, "--no-header/--header", "-n", help="Do not add a header to the M3U files."
    ),
    ts: bool = typer.Option(False, "--ts", "-t", help="Append .ts to stream URLs."),
    extension: Optional[str] = typer.Option(
        None, "--extension", help="Suffix appended to URLs of records without an extension."
    ),
    tvheadend_remux: Optional[bool] = typer.Option(
        None, "--tvheadend-remux/--no-tvheadend-remux", "-T", help="Modify the stream URL for use in TVHeadend."
    ),
    always_create: Optional[bool] = typer.Option(
        None, "--always-create/--lazy-create", help="Create playlists for empty categories too."
    ),
    output_dir: Optional[str] = typer.Option(None, "--output-dir", "-o", help="Where to save M3U/diff files."),
    episode_title_fallback: Optional[str] = typer.Option(
        None, help="Name for untitled episodes: series, category or none."
    ),
    season_order: Optional[str] = typer.Option(None, help="Season ordering: lexicographic or numeric."),
    history: Optional[bool] = typer.Option(
        None, "--history/--no-history", help="Record added/deleted entries in the history database."
    ),
    database_url: Optional[str] = typer.Option(
        None, "--database-url", help="Connection URL for the change history database."
    ),
    verbose: bool = typer.Option(False, "--verbose", help="Enable debug logging."),
) -> None:
    """Fetch the catalog, write playlists and report changes since the last run."""

    _configure_logging(verbose)
    settings = _load_settings(
        server=server,
        username=username,
        password=password,
        live=live,
        vod=vod,
        series=series,
        m3u=m3u,
        diff=diff,
        single_m3u=single_m3u,
        no_header=no_header,
        stream_extension=".ts" if ts else extension,
        tvheadend_remux=tvheadend_remux,
        always_create=always_create,
        output_dir=output_dir,
        episode_title_fallback=episode_title_fallback,
        season_order=season_order,
        history=history,
        history_database_url=database_url,
    )

    with build_client(settings) as client:
        coordinator = RunCoordinator(settings, client)
        try:
            if settings.history:
                coordinator.history = HistoryStore(create_history_engine(settings.history_database_url))
            account = coordinator.check_account()
            for line in account.summary_lines():
                typer.echo(line)
            coordinator.run()
        except XtreamSyncError as exc:
            typer.echo(f"Error: {exc}", err=True)
            _print_totals(coordinator.totals)
            raise typer.Exit(code=1) from exc

    _print_totals(coordinator.totals)


@app.command()
def account(
    server: Optional[str] = _server_option(),
    username: Optional[str] = _username_option(),
    password: Optional[str] = _password_option(),
) -> None:
    """Display account information and exit."""

    settings = _load_settings(server=server, username=username, password=password)
    with build_client(settings) as client:
        coordinator = RunCoordinator(settings, client)
        try:
            info = coordinator.check_account()
        except XtreamSyncError as exc:
            typer.echo(f"Error: {exc}", err=True)
            raise typer.Exit(code=1) from exc
    for line in info.summary_lines():
        typer.echo(line)


@history_app.command("show")
def history_show(
    name: str = typer.Argument(..., help="Entry name to look up."),
    limit: int = typer.Option(100, min=1, max=1000, help="Maximum number of events."),
    database_url: str = _database_url_option(),
) -> None:
    """Display the added/deleted timeline of an entry."""

    try:
        events = HistoryStore(create_history_engine(database_url)).history_for(name, limit=limit)
    except XtreamSyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    if not events:
        typer.echo(f"No history for {name!r}", err=True)
        raise typer.Exit(code=1)
    for event in events:
        typer.echo(
            f"{event.changed_at:%Y-%m-%d %H:%M:%S} {event.change_type:<7} "
            f"[{event.kind}/{event.category}] {event.name}"
        )


@history_app.command("categories")
def history_categories(
    kind: Optional[str] = typer.Option(None, help="Restrict to one class: live, movie or series."),
    database_url: str = _database_url_option(),
) -> None:
    """List the categories tracked in the history database."""

    if kind is not None and kind not in CATALOG_KINDS:
        typer.echo("Invalid kind. Allowed values: " + ", ".join(CATALOG_KINDS), err=True)
        raise typer.Exit(code=1)
    try:
        names = HistoryStore(create_history_engine(database_url)).list_categories(kind)
    except XtreamSyncError as exc:
        typer.echo(f"Error: {exc}", err=True)
        raise typer.Exit(code=1) from exc
    for name in names:
        typer.echo(name)
