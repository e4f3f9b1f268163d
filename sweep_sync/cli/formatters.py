"""
Functions for formatting and displaying data in the console using Rich.
"""

from pathlib import Path
from typing import Any

from rich import box
from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.text import Text

from sweep_sync.models.account import Account, Session
from sweep_sync.models.config import SyncConfig
from sweep_sync.models.queue import QueueItem
from sweep_sync.models.status import QueueStatus
from sweep_sync.utils.formatting import (
    format_retry_hint,
    format_timestamp,
    iso_timestamp,
)
from sweep_sync.utils.tokens import token_expiry


def format_error_with_suggestions(
    error: Exception, context: dict | None = None
) -> Panel:
    """Formats an error with actionable suggestions into a Rich Panel."""
    error_type = type(error).__name__
    error_msg = str(error)

    suggestions_map = {
        "NetworkError": [
            "• The service could not be reached.",
            "• Check your internet connection.",
            "• Queued changes are kept and will sync with `sweep-sync sync`.",
        ],
        "RemoteError": [
            "• The service rejected the request.",
            "• Check the report id, vendor id or status value.",
        ],
        "LogicalError": [
            "• The service rejected the request.",
            "• Run `sweep-sync status` to see which queued change is blocked.",
        ],
        "AuthExpiredError": [
            "• Your token has expired or you are not signed in.",
            "• Sign in again with `sweep-sync login` while online.",
        ],
        "AuthenticationError": [
            "• Verify the role, login id and password.",
        ],
        "OfflineLoginError": [
            "• Only accounts that signed in online on this device can log in offline.",
            "• The saved token may have expired. Connect and sign in again.",
            "• Run `sweep-sync accounts` to list saved accounts.",
        ],
        "PayloadValidationError": [
            "• One of the provided values is missing or out of range.",
            "• Latitude must be within -90..90 and longitude within -180..180.",
        ],
        "ConfigurationError": [
            "• Check the values in your configuration file.",
            "• Run `sweep-sync init --force` to write a fresh one.",
        ],
        "StorageError": [
            "• The local data directory could not be written.",
            "• Check free disk space and permissions.",
        ],
        "ClientResponseError": [
            "• A network connection issue occurred.",
            "• The service might be temporarily unavailable.",
        ],
        "TimeoutError": [
            "• The request timed out, which may indicate a slow connection.",
            "• Try again later; queued changes are kept.",
        ],
    }

    suggestions = suggestions_map.get(
        error_type, ["• Run the command with -v for detailed logs."]
    )

    error_text = Text()
    error_text.append(f"{error_type}: ", style="bold red")
    error_text.append(error_msg)

    suggestion_text = Text("\n".join(suggestions))

    content = Table.grid(padding=(1, 0))
    content.add_row(error_text)
    content.add_row()
    content.add_row(Text("Suggestions", style="bold yellow"))
    content.add_row(suggestion_text)

    if context:
        content.add_row()
        content.add_row(Text(f"Context: {context}", style="dim"))

    return Panel(
        content,
        title="[bold red]An Error Occurred[/bold red]",
        border_style="red",
        expand=False,
    )


def print_config(config_path: Path, config_data: dict[str, Any]):
    """Displays the current configuration."""
    console = Console()
    content = ""
    for key, value in config_data.items():
        content += f"{key} = {value}\n"

    console.print(
        Panel(
            content.strip(),
            title=f"Configuration ([dim]{config_path}[/dim])",
            border_style="cyan",
        )
    )


def print_validation_table(config: SyncConfig):
    """Displays a summary of the current settings."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan")
    table.add_column()

    table.add_row("API Base:", f"[green]{config.api_base}[/green]")
    table.add_row("Cache Max Age:", f"{config.cache_max_age_ms // 1000}s")
    table.add_row(
        "Retry Backoff:",
        f"{config.backoff_base_ms} ms x 2^n (cap {config.backoff_cap_ms} ms, "
        f"jitter < {config.backoff_jitter_ms} ms)",
    )
    table.add_row("Offline Accounts:", str(config.max_offline_accounts))
    table.add_row("Token Skew:", f"{config.token_skew_s}s")
    table.add_row(
        "Structured Log:", "✓ Enabled" if config.structured_log else "✗ Disabled"
    )

    console.print(
        Panel(
            table,
            title="[bold green]✓ Validated Settings[/bold green]",
            border_style="green",
        )
    )


def _token_expiry(token: str) -> str:
    exp = token_expiry(token)
    if exp is None:
        return "unknown"
    try:
        return format_timestamp(iso_timestamp(exp))
    except (OverflowError, OSError, ValueError):
        return "unknown"


def print_status_panel(
    status: QueueStatus, session: Session | None, items: list[QueueItem]
):
    """Displays connectivity, session and pending sync state."""
    console = Console()
    table = Table(show_header=False, box=None, padding=(0, 2))
    table.add_column(style="bold cyan", justify="right")
    table.add_column()

    network = "[green]Online[/green]" if status.online else "[yellow]Offline[/yellow]"
    table.add_row("Network:", network)
    if session is not None:
        table.add_row(
            "Signed In:", f"{session.display_name} [dim]({session.role})[/dim]"
        )
    else:
        table.add_row("Signed In:", "[dim]no[/dim]")
    table.add_row("Pending:", str(status.pending))
    if status.pending:
        table.add_row(
            "Next Sync:", format_retry_hint(status.retry_in_ms, status.online)
        )
    if status.blocked_error:
        table.add_row("Blocked:", f"[red]{status.blocked_error}[/red]")
    table.add_row("Last Sync:", format_timestamp(status.last_sync_at))

    console.print(
        Panel(
            table,
            title=f"[bold]{status.label or 'Up to date'}[/bold]",
            border_style="yellow" if status.pending or not status.online else "green",
            expand=False,
        )
    )

    if items:
        print_queue_table(items)


def print_queue_table(items: list[QueueItem]):
    """Lists the pending queued changes in delivery order."""
    console = Console()
    table = Table(title="Pending Changes", box=box.ROUNDED)
    table.add_column("#", style="dim", justify="right")
    table.add_column("Action", style="cyan")
    table.add_column("Queued At")
    table.add_column("Error", style="red")
    for i, item in enumerate(items, 1):
        table.add_row(
            str(i), item.kind, format_timestamp(item.created_at), item.error or ""
        )
    console.print(table)


def print_reports_table(rows: list[Any], title: str = "Reports"):
    """Displays report rows; queued rows are marked as not yet synced."""
    console = Console()
    if not rows:
        console.print("[dim]No reports to show.[/dim]")
        return

    table = Table(title=title, box=box.ROUNDED)
    table.add_column("ID", style="dim", no_wrap=True)
    table.add_column("Title", style="bold")
    table.add_column("Status")
    table.add_column("Waste Type")
    table.add_column("Updated")
    for row in rows:
        if not isinstance(row, dict):
            continue
        status = str(row.get("status") or "")
        if row.get("offline"):
            status = f"[yellow]{status}[/yellow]"
        table.add_row(
            str(row.get("id", "")),
            str(row.get("title") or "Untitled report"),
            status,
            str(row.get("wasteType") or ""),
            format_timestamp(row.get("updatedAt") or row.get("createdAt")),
        )
    console.print(table)


def print_accounts_table(accounts: list[Account]):
    """Displays the accounts remembered for offline login."""
    console = Console()
    if not accounts:
        console.print("[dim]No saved offline accounts.[/dim]")
        return

    table = Table(title="Saved Offline Accounts", box=box.ROUNDED)
    table.add_column("Key", style="cyan")
    table.add_column("Name")
    table.add_column("Last Login")
    table.add_column("Token Expires")
    for account in accounts:
        table.add_row(
            account.key,
            account.name or "",
            format_timestamp(account.last_login_at),
            _token_expiry(account.token),
        )
    console.print(table)
