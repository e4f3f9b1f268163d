"""
JSON-lines event log for the sync engine.

Queue and gateway events go to the regular `logging` output as one compact
line each and, when a log directory is configured, to a `.jsonl` file there
so that a sync session can be reconstructed afterwards.
"""

import json
import logging
import os
import time
from datetime import datetime, timezone
from pathlib import Path
from typing import IO, Any

_LEVELS = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
}


class StructuredLogger:
    """
    Writes named events with keyword fields.

    Usage:
        events = StructuredLogger("sweep_sync.events", log_dir=data_dir / "logs")
        events.info("queue_item_synced", item_id="q_1700000000000_ab12cd", kind="report.create")
    """

    def __init__(
        self,
        name: str,
        log_dir: Path | None = None,
        enable_json: bool = True,
        enable_console: bool = True,
    ):
        """
        Args:
            name: Name of the stdlib logger used for console lines.
            log_dir: Directory for the `.jsonl` file; None disables the file.
            enable_json: Write the `.jsonl` file when a directory is given.
            enable_console: Mirror events to the stdlib logger.
        """
        self.name = name
        self.log_dir = log_dir
        self.enable_console = enable_console
        self._logger = logging.getLogger(name)
        self._context: dict[str, Any] = {"run_id": f"{int(time.time())}_{os.getpid()}"}

        self._json_file: IO[str] | None = None
        if enable_json and log_dir is not None:
            log_dir.mkdir(parents=True, exist_ok=True)
            stamp = datetime.now().strftime("%Y%m%d_%H%M%S")
            self.path = log_dir / f"sync_{stamp}.jsonl"
            self._json_file = open(self.path, "a", encoding="utf-8")  # noqa: SIM115

    @property
    def writes_json(self) -> bool:
        return self._json_file is not None and not self._json_file.closed

    def bind(self, **fields: Any) -> None:
        """Adds fields that are attached to every following file entry."""
        self._context.update(fields)

    def emit(self, level: str, event: str, **fields: Any) -> None:
        if self.enable_console:
            details = ", ".join(f"{k}={v}" for k, v in fields.items())
            self._logger.log(_LEVELS[level], f"{event}: {details}" if details else event)

        if not self.writes_json:
            return
        entry = {
            "ts": datetime.now(timezone.utc).isoformat(timespec="milliseconds"),
            "level": level,
            "event": event,
            **self._context,
            **fields,
        }
        try:
            self._json_file.write(json.dumps(entry, default=str) + "\n")
            self._json_file.flush()
        except (OSError, ValueError) as e:
            # Stop writing rather than fail every later event the same way.
            self._logger.warning(f"Structured log disabled: {e}")
            self.close()

    def debug(self, event: str, **fields: Any) -> None:
        self.emit("DEBUG", event, **fields)

    def info(self, event: str, **fields: Any) -> None:
        self.emit("INFO", event, **fields)

    def warning(self, event: str, **fields: Any) -> None:
        self.emit("WARNING", event, **fields)

    def error(self, event: str, **fields: Any) -> None:
        self.emit("ERROR", event, **fields)

    def close(self) -> None:
        if self._json_file is not None and not self._json_file.closed:
            self._json_file.close()


class QueueLogger:
    """Retry queue events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def item_enqueued(self, item_id: str, kind: str, pending: int):
        self.logger.info("queue_item_enqueued", item_id=item_id, kind=kind, pending=pending)

    def flush_started(self, pending: int, forced: bool):
        self.logger.debug("queue_flush_started", pending=pending, forced=forced)

    def item_synced(self, item_id: str, kind: str):
        self.logger.debug("queue_item_synced", item_id=item_id, kind=kind)

    def item_failed(self, item_id: str, kind: str, error: str, network: bool):
        """A network failure pauses the queue; a rejection blocks it."""
        self.logger.warning(
            "queue_item_failed",
            item_id=item_id,
            kind=kind,
            error=error,
            reason="network" if network else "rejected",
        )

    def flush_completed(self, synced: int, remaining: int):
        self.logger.info("queue_flush_completed", synced=synced, remaining=remaining)

    def retry_scheduled(self, retry_count: int, delay_ms: int):
        self.logger.debug("queue_retry_scheduled", retry_count=retry_count, delay_ms=delay_ms)


class APILogger:
    """Gateway events."""

    def __init__(self, logger: StructuredLogger):
        self.logger = logger

    def request_started(self, method: str, path: str):
        self.logger.debug("api_request_started", method=method, path=path)

    def request_completed(self, method: str, path: str, status_code: int, duration_ms: float):
        self.logger.debug(
            "api_request_completed",
            method=method,
            path=path,
            status_code=status_code,
            duration_ms=round(duration_ms, 2),
        )

    def request_failed(
        self,
        method: str,
        path: str,
        status_code: int | None,
        error: str,
        duration_ms: float,
    ):
        """`status_code` is None when no response arrived."""
        self.logger.error(
            "api_request_failed",
            method=method,
            path=path,
            status_code=status_code,
            error=error,
            duration_ms=round(duration_ms, 2),
        )

    def served_from_cache(self, path: str, cache_key: str | None, offline: bool):
        self.logger.info(
            "api_served_from_cache", path=path, cache_key=cache_key, offline=offline
        )


def create_structured_logger(
    log_dir: Path | None = None, enable_json: bool = False
) -> tuple[StructuredLogger, QueueLogger, APILogger]:
    """
    Builds the shared event log and its queue and gateway adapters.

    Returns:
        Tuple of (base_logger, queue_logger, api_logger)
    """
    base = StructuredLogger("sweep_sync.events", log_dir=log_dir, enable_json=enable_json)
    return base, QueueLogger(base), APILogger(base)
