"""
Validation Utilities
====================

Input validation functions with security focus.
"""

from __future__ import annotations

import re
from typing import Final

# Longest logical key name; leaves room for the ".pub.json" suffix
MAX_KEY_NAME_LENGTH: Final[int] = 200

_KEY_NAME_CHARS: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9_@+=,\-][A-Za-z0-9_@+=,.\-]*$")


class ValidationError(ValueError):
    """Raised when validation fails."""
    pass


def validate_key_name(name: str) -> str:
    """
    Validate a logical key name before it becomes part of a file path.

    Rules:
        - Non-empty, at most 200 characters
        - No path separators, NUL bytes or ".." sequences
        - Does not start with a dot (no hidden files)
        - Letters, digits and _ @ + = , . - only

    Args:
        name: The logical key name

    Returns:
        The validated name, unchanged

    Raises:
        ValidationError: If validation fails
    """
    if not isinstance(name, str):
        raise ValidationError("Key name must be a string")

    if not name:
        raise ValidationError("Key name cannot be empty")

    if len(name) > MAX_KEY_NAME_LENGTH:
        raise ValidationError(
            f"Key name must be at most {MAX_KEY_NAME_LENGTH} characters"
        )

    # Check for null bytes (security risk)
    if "\x00" in name:
        raise ValidationError("Key name contains invalid characters")

    if "/" in name or "\\" in name or ".." in name:
        raise ValidationError("Path traversal detected in key name")

    if not _KEY_NAME_CHARS.match(name):
        raise ValidationError("Key name contains invalid characters")

    return name
