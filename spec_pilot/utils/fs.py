"""
File system utilities for spec-pilot.

This module provides safe file operations including:
- Atomic writes (write to temp file, then rename)
- Directory creation
- File reading with encoding handling
"""

from __future__ import annotations

import os
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from spec_pilot.errors import SpecPilotError


class FileSystemError(SpecPilotError):
    """Raised when a file system operation fails."""
    pass


def ensure_dir(path: str | Path) -> Path:
    """
    Create a directory if it does not exist.

    Creates parent directories as needed (like mkdir -p).

    Args:
        path: Path to the directory to create.

    Returns:
        Path: The path object for the created/existing directory.

    Raises:
        FileSystemError: If directory creation fails.
    """
    path = Path(path)
    try:
        path.mkdir(parents=True, exist_ok=True)
        return path
    except OSError as e:
        raise FileSystemError(f"Failed to create directory {path}: {e}")


def safe_write(path: str | Path, content: str, encoding: str = "utf-8") -> None:
    """
    Write content to a file atomically.

    Uses a temporary file in the target directory and a rename, so readers
    see either the old content or the new content, never a partial file.

    Args:
        path: Path to the file to write.
        content: Content to write to the file.
        encoding: Character encoding to use. Defaults to utf-8.

    Raises:
        FileSystemError: If write operation fails.
    """
    path = Path(path)

    ensure_dir(path.parent)

    try:
        # Same directory keeps the rename on one filesystem
        fd, temp_path = tempfile.mkstemp(
            dir=path.parent,
            prefix=f".{path.name}.",
            suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding=encoding) as f:
                f.write(content)

            shutil.move(temp_path, path)
        except Exception:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            raise
    except OSError as e:
        raise FileSystemError(f"Failed to write file {path}: {e}")


def read_file(path: str | Path, encoding: str = "utf-8") -> str:
    """
    Read a text file.

    Args:
        path: Path to the file to read.
        encoding: Character encoding to use. Defaults to utf-8.

    Returns:
        The file content.

    Raises:
        FileSystemError: If the file does not exist or cannot be read.
    """
    path = Path(path)
    try:
        return path.read_text(encoding=encoding)
    except FileNotFoundError:
        raise FileSystemError(f"File not found: {path}")
    except (OSError, UnicodeDecodeError) as e:
        raise FileSystemError(f"Failed to read file {path}: {e}")


def file_exists(path: str | Path) -> bool:
    """Check whether a regular file exists at path."""
    return Path(path).is_file()


def tail_text(text: str, max_lines: int = 40, max_chars: Optional[int] = 4000) -> str:
    """
    Return the last lines of a block of text.

    Used to keep raw tool output bounded when it is echoed into prompts or
    reports.
    """
    lines = text.rstrip().splitlines()
    tail = "\n".join(lines[-max_lines:])
    if max_chars is not None and len(tail) > max_chars:
        tail = tail[-max_chars:]
    return tail
