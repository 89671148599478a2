"""
Configuration Module
====================

Immutable, environment-aware configuration with security-first defaults.

The key directory is an explicit configuration value. It is resolved
once (PqSealConfig.get_instance()) and handed to KeyStore at
construction, never reached as global state from arbitrary call sites.

Security Features:
- Immutable configuration after initialization
- Environment variable override support (PQSEAL_ prefix)
- Sensitive-looking environment keys are ignored
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from pqseal.utils.paths import get_default_key_dir, get_default_log_dir


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "token", "api_key",
    "private", "credential", "auth", "salt"
})

_VALID_KEM_BACKENDS: Final[frozenset[str]] = frozenset({"kyber-py", "liboqs"})


def _is_sensitive_key(key: str) -> bool:
    """True for override keys that look like they carry credentials."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Where keys and logs live. Both paths must be absolute."""

    key_dir: Path = field(default_factory=get_default_key_dir)
    log_dir: Path = field(default_factory=get_default_log_dir)

    def __post_init__(self) -> None:
        """Reject relative paths."""
        for field_name in ["key_dir", "log_dir"]:
            path = getattr(self, field_name)
            if not path.is_absolute():
                raise ValueError(f"{field_name} must be an absolute path: {path}")


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Immutable algorithm/provider selection."""

    default_algorithm: str = "ML-KEM-768"
    kem_backend: str = "kyber-py"

    def __post_init__(self) -> None:
        # Resolved against the registry when a cipher is built
        if not self.default_algorithm or not self.default_algorithm.isascii():
            raise ValueError(f"Invalid default algorithm: {self.default_algorithm!r}")
        if self.kem_backend not in _VALID_KEM_BACKENDS:
            raise ValueError(f"Unknown KEM backend: {self.kem_backend}")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Settings consumed by configure_logging()."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False

    def __post_init__(self) -> None:
        """Reject unknown level names."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")


class PqSealConfig:
    """
    Process configuration: paths, algorithm selection and logging.

    Usage:
        config = PqSealConfig.load()
        store = KeyStore(config.paths.key_dir)
        algorithm = config.crypto.default_algorithm
    """

    __slots__ = ("_paths", "_crypto", "_logging", "_frozen", "_config_hash")

    _instance: Optional[PqSealConfig] = None

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        crypto: Optional[CryptoConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use PqSealConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_paths", paths or PathConfig())
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Short fingerprint of the effective settings, for logs and diagnostics."""
        config_str = f"{self._paths}|{self._crypto}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def paths(self) -> PathConfig:
        """Key and log directories."""
        return self._paths

    @property
    def crypto(self) -> CryptoConfig:
        """Default algorithm and KEM backend."""
        return self._crypto

    @property
    def logging(self) -> LoggingConfig:
        """Handler and level settings for the pqseal logger."""
        return self._logging

    @property
    def config_hash(self) -> str:
        """Fingerprint of the effective settings."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "PQSEAL") -> PqSealConfig:
        """
        Build a configuration from defaults plus PQSEAL_* environment overrides.

        Environment variables use double underscores for nested values.

        Examples:
            PQSEAL_PATHS__KEY_DIR=/srv/keys
            PQSEAL_CRYPTO__DEFAULT_ALGORITHM=ML-KEM-1024
            PQSEAL_CRYPTO__KEM_BACKEND=liboqs
            PQSEAL_LOGGING__LEVEL=DEBUG

        Args:
            env_prefix: Prefix for environment variables (default: PQSEAL)

        Returns:
            Configured PqSealConfig instance
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        paths_kwargs: dict[str, Any] = {}
        if "paths.key_dir" in env_overrides:
            paths_kwargs["key_dir"] = Path(env_overrides["paths.key_dir"]).expanduser()
        if "paths.log_dir" in env_overrides:
            paths_kwargs["log_dir"] = Path(env_overrides["paths.log_dir"]).expanduser()

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.default_algorithm" in env_overrides:
            crypto_kwargs["default_algorithm"] = env_overrides["crypto.default_algorithm"]
        if "crypto.kem_backend" in env_overrides:
            crypto_kwargs["kem_backend"] = env_overrides["crypto.kem_backend"]

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.enable_console" in env_overrides:
            logging_kwargs["enable_console"] = _parse_bool(env_overrides["logging.enable_console"])
        if "logging.enable_file" in env_overrides:
            logging_kwargs["enable_file"] = _parse_bool(env_overrides["logging.enable_file"])

        return cls(
            paths=PathConfig(**paths_kwargs) if paths_kwargs else None,
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Collect PREFIX_SECTION__KEY variables as section.key overrides."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # Convert PQSEAL_SECTION__KEY to section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # Credentials never come from the environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> PqSealConfig:
        """
        Get or create the process-wide configuration instance.

        Returns:
            The global PqSealConfig instance
        """
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Forget the process-wide instance so the next get_instance() reloads."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """
        Create the key and log directories with owner-only permissions.

        For operator bootstrap; the library itself never calls this.
        """
        for directory in (self._paths.key_dir, self._paths.log_dir):
            directory.mkdir(parents=True, exist_ok=True)

            # Owner-only on POSIX; Windows ACLs are left alone
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)  # 700 - owner only

    def __repr__(self) -> str:
        """Fingerprint and default algorithm only."""
        return f"PqSealConfig(hash={self._config_hash}, algorithm={self._crypto.default_algorithm})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Reject attribute writes once __init__ has finished."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("PqSealConfig is immutable after initialization")
        super().__setattr__(name, value)
