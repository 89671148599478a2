"""
Key Store
=========

Name-indexed persistence of KEM key material. No cryptographic logic.

Directory Layout (one entry per logical key name):
    <name>.pub       raw public-key bytes (canonical)
    <name>.pub.json  {"public_key": "<base64>", "algorithm": ..., "key_id": ...}
    <name>.key       raw private-key bytes, owner read/write only

Resolution Order:
    load_public_key() tries <name>.pub first, then <name>.pub.json.
    When both exist the raw file wins. This is a fixed contract.

Private keys exist only in the raw form. There is no shareable encoding
for them, which keeps them out of anything meant for distribution.

Concurrency:
    Reads are safe for any number of concurrent callers. Writes replace
    files atomically (temp file + os.replace); concurrent save() calls
    for the same name are last-writer-wins.

The directory must already exist. Creating it (with 0o700) is an
operator task, see PqSealConfig.ensure_directories().
"""

from __future__ import annotations

import binascii
import json
import logging
import os
import platform
import tempfile
from base64 import b64decode, b64encode
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Final, Optional

from pqseal.core.config import PqSealConfig
from pqseal.core.errors import KeyFormatError, KeyNotFound
from pqseal.core.keys.keypair import KeyPair
from pqseal.utils.paths import is_path_within_directory
from pqseal.utils.validators import ValidationError, validate_key_name

PUBLIC_SUFFIX: Final[str] = ".pub"
STRUCTURED_SUFFIX: Final[str] = ".pub.json"
PRIVATE_SUFFIX: Final[str] = ".key"

PRIVATE_KEY_MODE: Final[int] = 0o600
PUBLIC_KEY_MODE: Final[int] = 0o644

_log = logging.getLogger("pqseal.keystore")


class PublicKeyEncoding(str, Enum):
    """On-disk encodings for public keys, in resolution order."""

    RAW = "raw"
    STRUCTURED = "structured-base64"

    @property
    def suffix(self) -> str:
        return PUBLIC_SUFFIX if self is PublicKeyEncoding.RAW else STRUCTURED_SUFFIX


@dataclass(frozen=True, slots=True)
class StoredKeyRecord:
    """
    One public key as found on disk.

    Attributes:
        name: Logical key name
        encoding: Which file the bytes came from
        data: Raw public-key bytes
        algorithm: Algorithm id, if the structured file records one
        key_id: Key id, if the structured file records one
    """

    name: str
    encoding: PublicKeyEncoding
    data: bytes
    algorithm: Optional[str] = None
    key_id: Optional[str] = None

    def __repr__(self) -> str:
        return (
            f"StoredKeyRecord(name={self.name}, encoding={self.encoding.value}, "
            f"len={len(self.data)})"
        )


class KeyStore:
    """
    File-backed store for KEM keys.

    Usage:
        store = KeyStore("/srv/pqc-keys")
        store.save("alice", keypair)
        public_key = store.load_public_key("alice")
        private_key = store.load_private_key("alice")
        store.list_keys()  # {"alice"}
    """

    __slots__ = ("_directory",)

    def __init__(self, directory: str | Path) -> None:
        self._directory = Path(directory).expanduser()

    @classmethod
    def from_config(cls, config: Optional[PqSealConfig] = None) -> KeyStore:
        """Build a store on the configured key directory."""
        config = config or PqSealConfig.get_instance()
        return cls(config.paths.key_dir)

    @property
    def directory(self) -> Path:
        return self._directory

    def _path(self, name: str, suffix: str) -> Path:
        try:
            validate_key_name(name)
        except ValidationError as exc:
            raise KeyFormatError(f"Invalid key name: {exc}") from exc

        path = self._directory / f"{name}{suffix}"
        if not is_path_within_directory(path, self._directory):
            raise KeyFormatError("Key path escapes the key directory")
        return path

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def load_public_key_record(self, name: str) -> StoredKeyRecord:
        """
        Resolve a public key, raw file first, structured file second.

        Raises:
            KeyNotFound: If neither file exists
            KeyFormatError: If a key file exists but cannot be read or parsed
        """
        raw_path = self._path(name, PUBLIC_SUFFIX)
        try:
            data = raw_path.read_bytes()
        except FileNotFoundError:
            pass
        except OSError as exc:
            raise KeyFormatError(f"Public key file for {name} is unreadable") from exc
        else:
            _log.debug("Resolved public key %s from raw file", name)
            return StoredKeyRecord(name=name, encoding=PublicKeyEncoding.RAW, data=data)

        structured_path = self._path(name, STRUCTURED_SUFFIX)
        try:
            text = structured_path.read_text(encoding="utf-8")
        except FileNotFoundError:
            raise KeyNotFound(name, "public") from None
        except UnicodeDecodeError as exc:
            raise KeyFormatError(f"Structured key file for {name} is not UTF-8") from exc
        except OSError as exc:
            raise KeyFormatError(f"Structured key file for {name} is unreadable") from exc

        record = self._parse_structured(name, text)
        _log.debug("Resolved public key %s from structured file", name)
        return record

    @staticmethod
    def _parse_structured(name: str, text: str) -> StoredKeyRecord:
        try:
            document = json.loads(text)
        except ValueError as exc:
            raise KeyFormatError(f"Structured key file for {name} is not valid JSON") from exc
        if not isinstance(document, dict):
            raise KeyFormatError(f"Structured key file for {name} must be a JSON object")

        encoded = document.get("public_key")
        if not isinstance(encoded, str):
            raise KeyFormatError(f"Structured key file for {name} has no public_key field")
        try:
            data = b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise KeyFormatError(f"public_key for {name} is not valid base64") from exc

        algorithm = document.get("algorithm")
        key_id = document.get("key_id")
        for field_name, value in (("algorithm", algorithm), ("key_id", key_id)):
            if value is not None and not isinstance(value, str):
                raise KeyFormatError(f"{field_name} for {name} must be a string")

        return StoredKeyRecord(
            name=name,
            encoding=PublicKeyEncoding.STRUCTURED,
            data=data,
            algorithm=algorithm,
            key_id=key_id,
        )

    def load_public_key(self, name: str) -> bytes:
        """
        Load public-key bytes by name.

        Raises:
            KeyNotFound: If no public key exists under either encoding
            KeyFormatError: If the structured file is malformed
        """
        return self.load_public_key_record(name).data

    def load_private_key(self, name: str) -> bytes:
        """
        Load private-key bytes by name (raw form only).

        Raises:
            KeyNotFound: If <name>.key does not exist
            KeyFormatError: If <name>.key exists but cannot be read
        """
        path = self._path(name, PRIVATE_SUFFIX)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            raise KeyNotFound(name, "private") from None
        except OSError as exc:
            raise KeyFormatError(f"Private key file for {name} is unreadable") from exc

    def list_keys(self) -> set[str]:
        """
        Names that have a public key under either encoding.

        The result is a set; no ordering is implied. A missing directory
        yields an empty set.
        """
        names: set[str] = set()
        try:
            with os.scandir(self._directory) as it:
                entries = list(it)
        except FileNotFoundError:
            return names

        for entry in entries:
            if not entry.is_file():
                continue
            filename = entry.name
            if filename.endswith(STRUCTURED_SUFFIX):
                name = filename[: -len(STRUCTURED_SUFFIX)]
            elif filename.endswith(PUBLIC_SUFFIX):
                name = filename[: -len(PUBLIC_SUFFIX)]
            else:
                continue
            try:
                names.add(validate_key_name(name))
            except ValidationError:
                _log.debug("Ignoring unloadable key file %s", filename)
        return names

    def exists(self, name: str) -> bool:
        """Whether a public key exists for name under either encoding."""
        return (
            self._path(name, PUBLIC_SUFFIX).is_file()
            or self._path(name, STRUCTURED_SUFFIX).is_file()
        )

    # ------------------------------------------------------------------
    # Writing
    # ------------------------------------------------------------------

    def save(
        self,
        name: str,
        keypair: KeyPair,
        encoding: PublicKeyEncoding = PublicKeyEncoding.RAW,
    ) -> None:
        """
        Persist both halves of a keypair, overwriting any existing record.

        The private key goes to <name>.key with mode 0o600. The public key
        goes to the file for the chosen encoding, and the file for the
        other encoding is removed so one record stays authoritative.

        Both halves are staged in temp files before either is moved into
        place. If the save fails, the previous pair stays on disk unchanged.

        Raises:
            KeyFormatError: If the name is invalid
            OSError: If the directory is missing or not writable
        """
        private_path = self._path(name, PRIVATE_SUFFIX)
        public_path = self._path(name, encoding.suffix)

        if encoding is PublicKeyEncoding.RAW:
            public_bytes = keypair.public_key
        else:
            public_bytes = json.dumps({
                "public_key": b64encode(keypair.public_key).decode("ascii"),
                "algorithm": keypair.algorithm,
                "key_id": keypair.key_id,
            }, indent=2).encode("utf-8")

        staged: list[Path] = []
        try:
            staged.append(self._stage(private_path, keypair.private_key, PRIVATE_KEY_MODE))
            staged.append(self._stage(public_path, public_bytes, PUBLIC_KEY_MODE))
            self._commit_pair(private_path, public_path, staged[0], staged[1])
        finally:
            for tmp_path in staged:
                tmp_path.unlink(missing_ok=True)

        other = (
            PublicKeyEncoding.STRUCTURED
            if encoding is PublicKeyEncoding.RAW
            else PublicKeyEncoding.RAW
        )
        self._path(name, other.suffix).unlink(missing_ok=True)

        _log.info(
            "Saved key %s (algorithm=%s, encoding=%s)",
            name, keypair.algorithm, encoding.value,
        )

    def _commit_pair(
        self, private_path: Path, public_path: Path, private_tmp: Path, public_tmp: Path
    ) -> None:
        try:
            previous_private: Optional[bytes] = private_path.read_bytes()
        except FileNotFoundError:
            previous_private = None

        os.replace(private_tmp, private_path)
        try:
            os.replace(public_tmp, public_path)
        except BaseException:
            if previous_private is None:
                private_path.unlink(missing_ok=True)
            else:
                restore_tmp = self._stage(private_path, previous_private, PRIVATE_KEY_MODE)
                os.replace(restore_tmp, private_path)
            _log.warning("Save of %s failed; previous key restored", private_path.stem)
            raise

    def _stage(self, path: Path, data: bytes, mode: int) -> Path:
        """Write data to a synced temp file beside path and return it."""
        # mkstemp creates the file 0o600 before any byte is written
        fd, tmp_name = tempfile.mkstemp(
            dir=self._directory, prefix=f".{path.name}.", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "wb") as handle:
                handle.write(data)
                handle.flush()
                os.fsync(handle.fileno())
            if platform.system().lower() != "windows":
                os.chmod(tmp_name, mode)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        return Path(tmp_name)

    def delete(self, name: str) -> bool:
        """
        Remove every file for name.

        Returns:
            True if at least one file was removed
        """
        removed = False
        for suffix in (PUBLIC_SUFFIX, STRUCTURED_SUFFIX, PRIVATE_SUFFIX):
            try:
                self._path(name, suffix).unlink()
                removed = True
            except FileNotFoundError:
                continue
        if removed:
            _log.info("Deleted key %s", name)
        return removed

    def __repr__(self) -> str:
        return f"KeyStore({self._directory})"
