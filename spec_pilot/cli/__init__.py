"""CLI package for spec-pilot.

Modules:
    app.py      - Main Typer app, version callback, command registration
    feature.py  - Feature commands (implement, status, reset)
    project.py  - Project commands (run, init-config)
    display.py  - Rich formatting utilities (format_status, show_report, etc.)
    common.py   - Shared helpers (get_console, get_project_root, build_context)

Usage:
    from spec_pilot.cli import app, cli_main
"""
from spec_pilot.cli.app import app, cli_main

__all__ = ["app", "cli_main"]
