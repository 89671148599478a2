from __future__ import annotations

from pathlib import Path

import pytest

from pqseal.utils.paths import is_path_within_directory
from pqseal.utils.validators import MAX_KEY_NAME_LENGTH, ValidationError, validate_key_name


@pytest.mark.parametrize(
    "name",
    ["alice", "bob-2024", "svc_backup", "team@example.com", "a.b.c", "x" * MAX_KEY_NAME_LENGTH],
)
def test_valid_names(name: str) -> None:
    assert validate_key_name(name) == name


@pytest.mark.parametrize(
    "name",
    [
        "",
        "x" * (MAX_KEY_NAME_LENGTH + 1),
        "../etc/passwd",
        "a/b",
        "a\\b",
        "a..b",
        ".hidden",
        "null\x00byte",
        "space name",
        "semi;colon",
    ],
)
def test_invalid_names(name: str) -> None:
    with pytest.raises(ValidationError):
        validate_key_name(name)


def test_non_string_name() -> None:
    with pytest.raises(ValidationError):
        validate_key_name(b"alice")  # type: ignore[arg-type]


def test_validation_error_is_value_error() -> None:
    assert issubclass(ValidationError, ValueError)


def test_path_within_directory(tmp_path: Path) -> None:
    assert is_path_within_directory(tmp_path / "a.pub", tmp_path)
    assert not is_path_within_directory(tmp_path / ".." / "a.pub", tmp_path)
