"""
Entry point for the `sweep-sync` command.

Runs the Typer app and turns any error that escapes a command into a
readable panel and a non-zero exit status.
"""

import asyncio
import logging
import os
import sys

import typer
from rich.console import Console

from sweep_sync.cli.app import app
from sweep_sync.cli.formatters import format_error_with_suggestions
from sweep_sync.exceptions import (
    AuthExpiredError,
    NetworkError,
    OfflineLoginError,
    SweepSyncError,
)

# Exit statuses scripts can branch on; anything else that fails exits with 1.
EXIT_OFFLINE = 3
EXIT_SIGNED_OUT = 4


def _exit_code(error: SweepSyncError) -> int:
    if isinstance(error, NetworkError):
        return EXIT_OFFLINE
    if isinstance(error, (AuthExpiredError, OfflineLoginError)):
        return EXIT_SIGNED_OUT
    return 1


def main() -> None:
    """Runs the CLI."""
    if os.name == "nt":
        try:
            sys.stdout.reconfigure(encoding="utf-8")
            sys.stderr.reconfigure(encoding="utf-8")
        except (TypeError, AttributeError):
            pass

    log = logging.getLogger("sweep_sync")
    console = Console(stderr=True)

    try:
        app()
    except (typer.Exit, typer.Abort):
        pass
    except (KeyboardInterrupt, asyncio.CancelledError):
        console.print("\n[yellow]Stopped. Pending changes are kept.[/yellow]")
        sys.exit(0)
    except SweepSyncError as e:
        console.print()
        console.print(format_error_with_suggestions(e))
        sys.exit(_exit_code(e))
    except Exception as e:
        console.print()
        console.print(format_error_with_suggestions(e, {"type": "Unexpected"}))
        log.debug("Full traceback:", exc_info=True)
        sys.exit(1)


if __name__ == "__main__":
    main()
