"""
Path Utilities
==============

OS-aware path handling utilities with security considerations.
"""

from __future__ import annotations

import os
import platform
from pathlib import Path


def is_path_within_directory(path: Path, directory: Path) -> bool:
    """
    Check if a path is safely within a directory (prevents path traversal).

    Args:
        path: The path to check
        directory: The containing directory

    Returns:
        True if path is safely within directory
    """
    try:
        resolved_path = path.resolve()
        resolved_dir = directory.resolve()
        return resolved_path.is_relative_to(resolved_dir)
    except (ValueError, RuntimeError):
        return False


def get_default_key_dir() -> Path:
    """
    Get the default key directory (~/.pqc-keys).

    Returns:
        Path to the key directory; it is not created here
    """
    return Path.home() / ".pqc-keys"


def get_default_log_dir(app_name: str = "pqseal") -> Path:
    """
    Get the OS-appropriate log directory.

    Args:
        app_name: Name of the application

    Returns:
        Path to log directory
    """
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / app_name / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / app_name
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / app_name / "logs"
