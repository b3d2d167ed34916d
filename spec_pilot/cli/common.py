"""Common utilities and global state for the CLI.

Contains project directory management and construction of the per-run
context (config, logger, console) shared by every command.
This module should NOT import from the command modules to avoid circular imports.
"""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

import typer
from rich.console import Console

from spec_pilot.config import ConfigError, PilotConfig, load_config_or_default
from spec_pilot.logger import PilotLogger

EXIT_STEP_FAILED = 1
EXIT_CONFIG_ERROR = 2

# ============================================================================
# Global State
# ============================================================================

# Global project directory override (set via --project flag)
_project_dir: Optional[str] = None

# Console singleton
_console: Optional[Console] = None


def get_project_dir() -> Optional[str]:
    """Get the project directory override if set."""
    return _project_dir


def set_project_dir(path: Optional[str]) -> None:
    """Set the project directory override."""
    global _project_dir
    _project_dir = path


def get_console() -> Console:
    """Get or create the console singleton."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def get_project_root() -> Path:
    """The --project directory, or the current directory."""
    return Path(get_project_dir() or Path.cwd())


# ============================================================================
# Run Context
# ============================================================================


@dataclass
class RunContext:
    """Objects created once per CLI invocation and passed to components."""
    config: PilotConfig
    logger: PilotLogger
    console: Console


def build_context(echo: bool = True) -> RunContext:
    """
    Load config and create the logger for this invocation.

    Args:
        echo: Echo log events to the console. Disabled for --json output
              so stdout carries only the JSON document.

    Exits with code 2 on configuration errors.
    """
    console = get_console()
    try:
        config = load_config_or_default(get_project_root())
    except ConfigError as e:
        console.print(f"[red]Configuration error:[/red] {e}")
        raise typer.Exit(EXIT_CONFIG_ERROR)

    logger = PilotLogger(config, console=console if echo else None)
    return RunContext(config=config, logger=logger, console=console)
