"""
Defines the command-line interface for the application using Typer.
"""

import asyncio
import base64
import logging
import os
import time
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import TypeVar

import aiofiles
import typer
from pydantic import ValidationError
from rich.console import Console
from rich.logging import RichHandler
from rich.status import Status

from sweep_sync import __version__
from sweep_sync.core.connectivity import ConnectivityMonitor
from sweep_sync.core.context import SyncContext
from sweep_sync.core.events import SyncEvents
from sweep_sync.exceptions import (
    AuthExpiredError,
    ConfigurationError,
    SweepSyncError,
)
from sweep_sync.models.account import Role
from sweep_sync.models.config import SyncConfig
from sweep_sync.models.status import QueueStatus
from sweep_sync.storage.config_manager import ConfigManager
from sweep_sync.utils.formatting import format_duration

from .formatters import (
    print_accounts_table,
    print_config,
    print_reports_table,
    print_status_panel,
    print_validation_table,
)

console = Console()

logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[
        RichHandler(
            console=console,
            rich_tracebacks=True,
            show_path=False,
            show_level=False,
            markup=True,
        )
    ],
)
log = logging.getLogger("sweep_sync")

app = typer.Typer(
    name="sweep-sync",
    help=(
        "Offline-first client for filing and tracking waste reports. Use"
        " 'sweep-sync <command> --help' for more info."
    ),
    rich_markup_mode="rich",
    pretty_exceptions_show_locals=False,
    add_completion=False,
)

T = TypeVar("T")


def get_config_dir() -> Path:
    if os.name == "nt":
        base_dir = Path(os.getenv("APPDATA", "~\\AppData\\Roaming"))
    else:
        base_dir = Path(os.getenv("XDG_CONFIG_HOME", "~/.config"))
    return base_dir.expanduser() / "sweep-sync"


CONFIG_DIR = get_config_dir()
CONFIG_FILE = CONFIG_DIR / "config.ini"

# Set by the top-level --offline flag.
_force_offline = False


class ConsoleHooks:
    """Renders engine events on the console: a spinner, notices and transitions."""

    def __init__(self):
        self._status: Status | None = None
        self._depth = 0

    def progress_start(self) -> None:
        self._depth += 1
        if self._status is None:
            self._status = console.status("[cyan]Talking to the server...[/cyan]")
            self._status.start()

    def progress_stop(self) -> None:
        self._depth = max(0, self._depth - 1)
        if self._depth == 0 and self._status is not None:
            self._status.stop()
            self._status = None

    def notice(self, message: str) -> None:
        console.print(f"[cyan]ℹ {message}[/cyan]")

    def session_expired(self, message: str) -> None:
        console.print(f"[bold red]✗ {message}[/bold red]")

    def events(self) -> SyncEvents:
        return SyncEvents(
            on_progress_start=self.progress_start,
            on_progress_stop=self.progress_stop,
            on_notice=self.notice,
            on_session_expired=self.session_expired,
        )


def _load_config(cli_options: dict | None = None) -> SyncConfig:
    return ConfigManager(CONFIG_FILE).load_config(cli_options)


def _run(task: Callable[[SyncContext], Awaitable[T]], probe: bool = True) -> T:
    """Builds a sync context, restores the session, and runs `task` with it."""
    config = _load_config()

    async def _main() -> T:
        monitor = ConnectivityMonitor(
            initially_online=not _force_offline, probe_url=config.api_base
        )
        async with await SyncContext.create(
            config,
            data_dir=CONFIG_DIR,
            events=ConsoleHooks().events(),
            monitor=monitor,
            probe=probe and not _force_offline,
            flush_on_start=probe and not _force_offline,
        ) as ctx:
            try:
                await ctx.auth.restore()
            except AuthExpiredError:
                # Already announced through the session-expired hook.
                pass
            return await task(ctx)

    return asyncio.run(_main())


async def _read_base64(path: Path) -> str:
    async with aiofiles.open(path, "rb") as f:
        data = await f.read()
    return base64.b64encode(data).decode("ascii")


def _print_outcome(outcome, done: str, queued: str) -> None:
    if outcome.queued:
        console.print(f"[yellow]⏳ {queued}[/yellow]")
    else:
        console.print(f"[green]✓ {done}[/green]")


@app.callback(invoke_without_command=True)
def main_callback(
    ctx: typer.Context,
    verbose: int = typer.Option(
        0,
        "--verbose",
        "-v",
        count=True,
        help="Increase logging verbosity (-v for debug).",
    ),
    version: bool = typer.Option(
        False, "--version", help="Show version and exit.", is_eager=True
    ),
    show_config: bool = typer.Option(
        False, "--show-config", help="Display the current configuration."
    ),
    offline: bool = typer.Option(
        False, "--offline", help="Work offline without probing the service."
    ),
):
    """Sweep Sync CLI"""
    global _force_offline

    if version:
        console.print(f"[bold]sweep-sync[/bold] version [cyan]{__version__}[/cyan]")
        raise typer.Exit()

    log_level = "INFO"
    if verbose >= 1:
        log_level = "DEBUG"
    logging.getLogger("sweep_sync").setLevel(log_level)
    _force_offline = offline

    if show_config:
        if not CONFIG_FILE.is_file():
            console.print(
                "[red]✗ Config file not found.[/] Run [cyan]sweep-sync init[/cyan]"
                " first."
            )
            raise typer.Exit(code=1)
        config_manager = ConfigManager(CONFIG_FILE)
        config_manager.load_config()
        print_config(CONFIG_FILE, config_manager.get_config_as_dict())
        raise typer.Exit()

    if ctx.invoked_subcommand is None:
        console.print(ctx.get_help())


@app.command()
def init(
    api_base: str | None = typer.Option(
        None, "--api-base", help="Base URL of the report-tracking service."
    ),
    structured_log: bool = typer.Option(
        False, "--structured-log", help="Also write JSON-lines logs to the data dir."
    ),
    force: bool = typer.Option(
        False, "--force", "-f", help="Overwrite an existing configuration without asking."
    ),
):
    """Write a configuration file with default settings."""
    if (
        CONFIG_FILE.exists()
        and not force
        and not typer.confirm("Configuration file already exists. Overwrite it?")
    ):
        raise typer.Abort()

    settings = {"structured_log": structured_log}
    if api_base:
        settings["api_base"] = api_base
    try:
        SyncConfig(**settings)
    except ValidationError as e:
        raise ConfigurationError(f"Invalid setting:\n{e}") from e
    ConfigManager(CONFIG_FILE).save_new_config(settings)
    console.print(f"\n[bold green]✓ Configuration saved to '{CONFIG_FILE}'[/bold green]")
    console.print("Next: [cyan]sweep-sync login <role> <login id>[/cyan]")


@app.command()
def validate():
    """Validate the current configuration."""
    try:
        print_validation_table(_load_config())
    except SweepSyncError as e:
        console.print(f"[red]✗ Configuration is invalid: {e}[/red]")
        raise typer.Exit(code=1) from e


@app.command()
def login(
    role: Role = typer.Argument(..., help="Sign in as user, vendor or admin."),
    login_id: str = typer.Argument(
        ..., help="Email (user, admin) or vendor code (vendor)."
    ),
    password: str | None = typer.Option(
        None, "--password", "-p", help="Password; prompted for when online."
    ),
):
    """Sign in. Offline, a saved account with a valid token is used instead."""

    async def _login(ctx: SyncContext):
        secret = password
        if ctx.monitor.is_online and not secret:
            secret = typer.prompt("Password", hide_input=True)
        session = await ctx.auth.login(role, login_id, secret or "")
        mode = "online" if ctx.monitor.is_online else "offline"
        console.print(
            f"[green]✓ Signed in as {session.display_name or login_id} "
            f"({session.role}, {mode}).[/green]"
        )

    _run(_login)


@app.command()
def resume(
    key: str | None = typer.Argument(
        None, help="Saved account key (role:login id). Defaults to the last session."
    ),
):
    """Continue offline as a saved account."""

    async def _resume(ctx: SyncContext):
        session = await ctx.auth.resume_offline(key)
        console.print(
            f"[green]✓ Continuing offline as {session.display_name} "
            f"({session.role}).[/green]"
        )

    _run(_resume, probe=False)


@app.command()
def logout():
    """Sign out. Saved offline accounts are kept."""

    async def _logout(ctx: SyncContext):
        await ctx.auth.logout()
        console.print("[green]✓ Signed out.[/green]")

    _run(_logout, probe=False)


@app.command()
def signup(
    name: str = typer.Argument(..., help="Display name."),
    email: str = typer.Argument(..., help="Email address to sign in with."),
    password: str | None = typer.Option(None, "--password", "-p"),
):
    """Create a user account (requires a connection)."""

    async def _signup(ctx: SyncContext):
        secret = password or typer.prompt(
            "Password", hide_input=True, confirmation_prompt=True
        )
        await ctx.auth.signup(name, email, secret)
        console.print(
            f"[green]✓ Account created.[/green] Sign in with "
            f"[cyan]sweep-sync login user {email}[/cyan]"
        )

    _run(_signup)


@app.command()
def status():
    """Show connectivity, session and pending changes."""

    async def _status(ctx: SyncContext) -> None:
        print_status_panel(await ctx.queue.status(), ctx.vault.session, ctx.queue.items)
        unreadable = await ctx.queue.unreadable_entries()
        if unreadable:
            console.print(
                f"[yellow]{len(unreadable)} stored change(s) could not be read and "
                f"were set aside; they will not be sent.[/yellow]"
            )

    _run(_status)


@app.command()
def sync():
    """Deliver pending changes now and refresh your listing."""

    async def _sync(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        before = ctx.queue.count
        rows = await ctx.actions.sync_now()
        after = ctx.queue.count
        if not ctx.monitor.is_online:
            console.print(f"[yellow]Offline. {after} change(s) still pending.[/yellow]")
        elif after:
            console.print(
                f"[yellow]Synced {before - after} change(s); {after} still pending."
                "[/yellow]"
            )
        else:
            console.print("[green]✓ Everything is in sync.[/green]")
        print_reports_table(rows)

    _run(_sync)


@app.command()
def submit(
    title: str = typer.Argument(..., help="Short title of the report."),
    lat: float = typer.Option(..., "--lat", help="Latitude of the waste location."),
    lng: float = typer.Option(..., "--lng", help="Longitude of the waste location."),
    desc: str = typer.Option("", "--desc", "-d", help="Longer description."),
    address: str | None = typer.Option(None, "--address", help="Street address."),
    photo: Path | None = typer.Option(  # noqa: B008
        None, "--photo", exists=True, dir_okay=False, help="Photo of the waste."
    ),
    waste_type: str = typer.Option(
        "auto", "--waste-type", help="Waste category, or 'auto' to let the service decide."
    ),
):
    """File a new waste report (queued when offline)."""

    async def _submit(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        payload = {
            "title": title,
            "desc": desc,
            "lat": lat,
            "lng": lng,
            "address": address,
            "photoBase64": await _read_base64(photo) if photo else None,
            "wasteTypeOverride": waste_type,
        }
        outcome = await ctx.actions.submit_report(payload)
        _print_outcome(outcome, "Report submitted.", "Report queued for sync.")

    _run(_submit)


@app.command()
def assign(
    report_id: str = typer.Argument(...),
    vendor_id: str = typer.Argument(...),
):
    """Assign a report to a vendor (admin)."""

    async def _assign(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        outcome = await ctx.actions.assign(report_id, vendor_id)
        _print_outcome(outcome, "Assigned.", "Offline. Assignment queued.")

    _run(_assign)


@app.command(name="set-status")
def set_status(
    report_id: str = typer.Argument(...),
    new_status: str = typer.Argument(..., metavar="STATUS"),
):
    """Move a report to another status (admin)."""

    async def _set_status(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        outcome = await ctx.actions.update_status(report_id, new_status)
        _print_outcome(outcome, "Status updated.", "Offline. Status update queued.")

    _run(_set_status)


@app.command()
def complete(
    report_id: str = typer.Argument(...),
    proof: Path = typer.Option(  # noqa: B008
        ..., "--proof", exists=True, dir_okay=False, help="Photo proving the cleanup."
    ),
):
    """Mark an assigned report as completed (vendor)."""

    async def _complete(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        outcome = await ctx.actions.vendor_complete(report_id, await _read_base64(proof))
        _print_outcome(outcome, "Completed.", "Offline. Completion queued.")

    _run(_complete)


@app.command()
def reports(
    status_filter: str = typer.Option(
        "all", "--status", "-s", help="Status filter (admin only)."
    ),
    query: str = typer.Option("", "--query", "-q", help="Search text (admin only)."),
):
    """List the reports for your role, from cache when offline."""

    async def _reports(ctx: SyncContext):
        session = await ctx.auth.ensure_valid()
        if session.role == Role.ADMIN.value:
            rows = await ctx.actions.admin_reports(status_filter, query)
        else:
            rows = await ctx.actions.refresh()
        title = {"user": "My Reports", "vendor": "Assigned Tasks"}.get(
            session.role, "All Reports"
        )
        print_reports_table(rows, title)

    _run(_reports)


@app.command()
def events(report_id: str = typer.Argument(...)):
    """Show the audit trail of a report."""

    async def _events(ctx: SyncContext):
        await ctx.auth.ensure_valid()
        trail = await ctx.actions.report_events(report_id)
        if not trail:
            console.print("[dim]No audit events yet.[/dim]")
        for ev in trail:
            if isinstance(ev, dict):
                console.print(
                    f"[dim]{ev.get('at') or ev.get('createdAt') or ''}[/dim] "
                    f"{ev.get('type') or ev.get('action') or ''} {ev.get('note') or ''}"
                )

    _run(_events)


@app.command()
def accounts():
    """List accounts saved for offline login."""

    async def _accounts(ctx: SyncContext):
        print_accounts_table(await ctx.vault.accounts())

    _run(_accounts, probe=False)


@app.command(name="clear-offline")
def clear_offline(
    force: bool = typer.Option(
        False, "--force", "-f", help="Bypass the confirmation prompt."
    ),
):
    """Forget every account saved for offline login."""
    if not force and not typer.confirm(
        "Remove all saved offline accounts? You will need a connection to sign in again."
    ):
        console.print("[yellow]Operation cancelled.[/yellow]")
        raise typer.Abort()

    async def _clear(ctx: SyncContext):
        await ctx.vault.clear_offline()
        console.print("[green]✓ Saved offline sessions cleared.[/green]")

    _run(_clear, probe=False)


@app.command(name="clear-cache")
def clear_cache():
    """Clear the cached listings."""

    async def _clear(ctx: SyncContext):
        console.print("[cyan]Clearing cached listings...[/cyan]")
        removed = await ctx.cache.clear()
        console.print(f"[green]✓ Cache cleared successfully ({removed} entries removed).[/green]")

    _run(_clear, probe=False)


@app.command()
def watch(
    interval: float | None = typer.Option(
        None, "--interval", "-i", help="Seconds between connectivity probes."
    ),
):
    """Stay running, syncing pending changes whenever the connection returns."""

    async def _watch(ctx: SyncContext):
        seconds = interval or ctx.config.probe_interval_s
        last_label: list[str | None] = [None]

        def _on_status(status: QueueStatus) -> None:
            label = status.label
            if label != last_label[0]:
                last_label[0] = label
                console.print(f"[dim]{label or 'Up to date'}[/dim]")

        ctx.events.on_status_changed = _on_status
        console.print(
            f"[bold cyan]Watching connectivity every {seconds:g}s. "
            "Press Ctrl+C to stop.[/bold cyan]"
        )
        start = time.monotonic()
        await ctx.queue.flush()
        try:
            await ctx.monitor.watch(seconds)
        finally:
            console.print(
                f"[dim]Watched for {format_duration(time.monotonic() - start)}.[/dim]"
            )

    _run(_watch)

