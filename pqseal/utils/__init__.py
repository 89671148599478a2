"""
Utils module - Utility functions and helpers.

This module contains utility functions used throughout pqseal.
"""

from pqseal.utils.paths import (
    get_default_key_dir,
    get_default_log_dir,
    is_path_within_directory,
)
from pqseal.utils.validators import ValidationError, validate_key_name

__all__ = [
    "get_default_key_dir",
    "get_default_log_dir",
    "is_path_within_directory",
    "ValidationError",
    "validate_key_name",
]
