"""
Structured JSONL logging for spec-pilot.

This module provides:
- JSONL event logging for debugging and audit trails
- Log files organized by run and date
- Log levels (debug, info, warn, error)
- Optional human-readable echo to a rich Console, filtered by verbosity
"""

from __future__ import annotations

import json
import uuid
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Any, Optional

from rich.console import Console

from spec_pilot.models import utc_now

if TYPE_CHECKING:
    from spec_pilot.config import PilotConfig


class LogLevel:
    """Log level constants."""
    DEBUG = "debug"
    INFO = "info"
    WARN = "warn"
    ERROR = "error"


_LEVEL_RANK = {
    LogLevel.DEBUG: 10,
    LogLevel.INFO: 20,
    LogLevel.WARN: 30,
    LogLevel.ERROR: 40,
}

# Lowest level echoed to the console for each verbosity setting
_VERBOSITY_THRESHOLD = {
    "quiet": LogLevel.ERROR,
    "normal": LogLevel.WARN,
    "verbose": LogLevel.INFO,
    "debug": LogLevel.DEBUG,
}

_LEVEL_STYLE = {
    LogLevel.DEBUG: "dim",
    LogLevel.INFO: "cyan",
    LogLevel.WARN: "yellow",
    LogLevel.ERROR: "red",
}


def new_run_id() -> str:
    """Generate a short identifier for one CLI invocation."""
    return f"run-{datetime.now(timezone.utc).strftime('%Y%m%d%H%M%S')}-{uuid.uuid4().hex[:6]}"


class PilotLogger:
    """
    JSONL event logger for spec-pilot.

    Writes structured log entries to .spec-pilot/logs/<run_id>-YYYY-MM-DD.jsonl

    Each log entry is a JSON object with:
    - timestamp: ISO format timestamp
    - level: Log level (debug, info, warn, error)
    - event_type: Type of event being logged
    - run_id: Identifier of the CLI invocation
    - data: Additional event data (dict)
    """

    def __init__(
        self,
        config: PilotConfig,
        run_id: Optional[str] = None,
        console: Optional[Console] = None,
    ) -> None:
        """
        Initialize logger for a run.

        Args:
            config: Configuration providing the logs directory and verbosity.
            run_id: Identifier for this run. Generated if not provided.
            console: Console for human-readable echo. No echo if None.
        """
        self.config = config
        self.run_id = run_id or new_run_id()
        self._console = console

    def _get_log_path(self, date: Optional[str] = None) -> Path:
        """Get the log file path for a date (today by default)."""
        if date is None:
            date = datetime.now(timezone.utc).strftime("%Y-%m-%d")
        return self.config.logs_path / f"{self.run_id}-{date}.jsonl"

    def _write_entry(self, entry: dict[str, Any]) -> None:
        """Write a log entry to the JSONL file."""
        log_path = self._get_log_path()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        with open(log_path, "a") as f:
            f.write(json.dumps(entry, default=str) + "\n")

    def _should_echo(self, level: str) -> bool:
        threshold = _VERBOSITY_THRESHOLD.get(self.config.verbosity, LogLevel.WARN)
        return _LEVEL_RANK.get(level, 20) >= _LEVEL_RANK[threshold]

    def _echo(self, event_type: str, data: dict[str, Any], level: str) -> None:
        """Print a one-line summary of an event to the console."""
        if self._console is None or not self._should_echo(level):
            return
        details = ", ".join(f"{k}={v}" for k, v in data.items() if not isinstance(v, (dict, list)))
        style = _LEVEL_STYLE.get(level, "")
        line = f"[{style}]{level.upper():5}[/{style}] {event_type}"
        if details:
            line += f" [dim]{details}[/dim]"
        self._console.print(line, highlight=False)

    def log(
        self,
        event_type: str,
        data: Optional[dict[str, Any]] = None,
        level: str = LogLevel.INFO,
    ) -> None:
        """
        Log an event.

        Args:
            event_type: Type of event (e.g., "gate_complete", "checkpoint", "error").
            data: Additional data to include in the log entry.
            level: Log level (debug, info, warn, error).
        """
        entry = {
            "timestamp": utc_now(),
            "level": level,
            "event_type": event_type,
            "run_id": self.run_id,
            "data": data or {},
        }

        self._write_entry(entry)
        self._echo(event_type, entry["data"], level)

    def debug(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log a debug event."""
        self.log(event_type, data, LogLevel.DEBUG)

    def info(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log an info event."""
        self.log(event_type, data, LogLevel.INFO)

    def warn(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log a warning event."""
        self.log(event_type, data, LogLevel.WARN)

    def error(self, event_type: str, data: Optional[dict[str, Any]] = None) -> None:
        """Log an error event."""
        self.log(event_type, data, LogLevel.ERROR)

    def read_logs(
        self,
        date: Optional[str] = None,
        level: Optional[str] = None,
        event_type: Optional[str] = None,
        limit: Optional[int] = None,
    ) -> list[dict[str, Any]]:
        """
        Read log entries for this run with optional filtering.

        Args:
            date: Date string (YYYY-MM-DD) to read. If None, reads today's logs.
            level: Filter by log level.
            event_type: Filter by event type.
            limit: Maximum number of entries to return.

        Returns:
            List of log entries matching the filters.
        """
        log_path = self._get_log_path(date)
        if not log_path.exists():
            return []

        entries = []
        with open(log_path, "r") as f:
            for line in f:
                line = line.strip()
                if not line:
                    continue
                try:
                    entry = json.loads(line)
                except json.JSONDecodeError:
                    continue

                if level and entry.get("level") != level:
                    continue
                if event_type and entry.get("event_type") != event_type:
                    continue

                entries.append(entry)

                if limit and len(entries) >= limit:
                    break

        return entries
