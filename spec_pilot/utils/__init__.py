"""Utility modules for spec-pilot."""

from spec_pilot.utils.fs import (
    FileSystemError,
    ensure_dir,
    file_exists,
    read_file,
    safe_write,
    tail_text,
)

__all__ = [
    "FileSystemError",
    "ensure_dir",
    "file_exists",
    "read_file",
    "safe_write",
    "tail_text",
]
