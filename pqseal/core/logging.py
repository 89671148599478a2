"""
Secure Logging Module
=====================

Logging helpers that keep key material out of log output.

Loggers used by the library:
    pqseal.cipher    seal/open outcomes (never plaintext, keys or secrets)
    pqseal.keystore  key saves and deletes

The library only calls logging.getLogger(); handlers are attached by
the application, typically through configure_logging().

Security Features:
- Redaction of secret-looking assignments and long base64/hex runs
- Size-capped rotating log files
- Optional JSON output for log aggregation
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Final, Optional, Pattern

from pqseal.core.config import PqSealConfig


# Redaction rules, applied in order
_SENSITIVE_PATTERNS: Final[list[tuple[str, Pattern[str]]]] = [
    ("password", re.compile(r'(?i)(password|passwd|pwd)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("token", re.compile(r'(?i)(token|bearer)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("secret", re.compile(r'(?i)(shared[_-]?secret|secret|private[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    ("aead_key", re.compile(r'(?i)(aead[_-]?key|symmetric[_-]?key)\s*[=:]\s*["\']?[^\s"\']+["\']?')),
    # Base64 runs as long as a 32-byte secret or longer
    ("base64_secret", re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')),
    # Hex runs as long as a 16-byte value or longer
    ("hex_secret", re.compile(r'(?i)(?:0x)?[a-f0-9]{32,}')),
]

_REDACTED_TEXT: Final[str] = "[REDACTED]"

_CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
_FILE_FORMAT: Final[str] = (
    "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"
)

LOG_FILE_NAME: Final[str] = "pqseal.log"


class SecureLogFilter(logging.Filter):
    """
    Log filter that redacts secret-looking content.

    Applied to every handler this module creates. Records are never
    dropped, only sanitized.
    """

    def __init__(self, name: str = "", additional_patterns: Optional[list[Pattern[str]]] = None) -> None:
        """
        Args:
            name: Passed to logging.Filter; "" applies to every logger
            additional_patterns: Extra regex patterns to redact
        """
        super().__init__(name)
        self._additional_patterns = additional_patterns or []

    def filter(self, record: logging.LogRecord) -> bool:
        if record.msg and isinstance(record.msg, str):
            record.msg = self._sanitize(record.msg)

        if record.args:
            if isinstance(record.args, dict):
                record.args = {k: self._sanitize(v) if isinstance(v, str) else v
                               for k, v in record.args.items()}
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._sanitize(arg) if isinstance(arg, str) else arg
                    for arg in record.args
                )

        return True

    def _sanitize(self, text: str) -> str:
        result = text
        for name, pattern in _SENSITIVE_PATTERNS:
            result = pattern.sub(f"{name}={_REDACTED_TEXT}", result)
        for pattern in self._additional_patterns:
            result = pattern.sub(_REDACTED_TEXT, result)
        return result


class StructuredLogFormatter(logging.Formatter):
    """Formatter that emits one JSON object per record."""

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """
    Rotating file handler that creates its directory and refuses
    traversal in the log path.
    """

    def __init__(
        self,
        filename: str | Path,
        mode: str = "a",
        maxBytes: int = 10 * 1024 * 1024,  # 10 MB default
        backupCount: int = 5,
        encoding: str = "utf-8",
    ) -> None:
        if ".." in Path(filename).parts:
            raise ValueError("Log path cannot contain path traversal sequences")

        log_path = Path(filename).resolve()
        log_path.parent.mkdir(parents=True, exist_ok=True)

        super().__init__(
            str(log_path),
            mode=mode,
            maxBytes=maxBytes,
            backupCount=backupCount,
            encoding=encoding,
        )


def _console_handler(secure_filter: SecureLogFilter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT, datefmt="%H:%M:%S"))
    handler.addFilter(secure_filter)
    return handler


def _file_handler(
    log_file: Path,
    secure_filter: SecureLogFilter,
    max_file_size: int,
    backup_count: int,
    enable_json: bool,
) -> logging.Handler:
    handler = SecureRotatingFileHandler(
        filename=log_file,
        maxBytes=max_file_size,
        backupCount=backup_count,
    )
    handler.setLevel(logging.DEBUG)
    if enable_json:
        handler.setFormatter(StructuredLogFormatter())
    else:
        handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S"))
    handler.addFilter(secure_filter)
    return handler


def get_secure_logger(
    name: str,
    log_dir: Optional[Path] = None,
    level: str = "INFO",
    enable_console: bool = True,
    enable_file: bool = True,
    enable_json: bool = False,
    max_file_size: int = 10 * 1024 * 1024,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Create a standalone logger with secret filtering.

    Handlers are attached once; later calls for the same name return
    the existing logger untouched.

    Args:
        name: Logger name
        log_dir: Directory for the log file (file output needs it)
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        enable_console: Write to stderr
        enable_file: Write to <log_dir>/<name>.log
        enable_json: Use StructuredLogFormatter for the file
        max_file_size: Size before rotation
        backup_count: Rotated files to keep

    Returns:
        Configured logger instance
    """
    logger = logging.getLogger(name)

    if logger.handlers:
        return logger

    logger.setLevel(getattr(logging, level.upper()))
    secure_filter = SecureLogFilter()

    if enable_console:
        logger.addHandler(_console_handler(secure_filter))

    if enable_file and log_dir:
        log_file = Path(log_dir) / f"{name.replace('.', '_')}.log"
        logger.addHandler(
            _file_handler(log_file, secure_filter, max_file_size, backup_count, enable_json)
        )

    logger.propagate = False
    return logger


def configure_logging(config: Optional[PqSealConfig] = None, enable_json: bool = False) -> logging.Logger:
    """
    Attach filtered handlers to the "pqseal" logger from configuration.

    Replaces any handlers previously attached to it, so calling this
    twice does not duplicate output.

    Args:
        config: Configuration to apply (default: PqSealConfig.get_instance())
        enable_json: Use StructuredLogFormatter for the file

    Returns:
        The "pqseal" logger
    """
    config = config or PqSealConfig.get_instance()
    settings = config.logging

    logger = logging.getLogger("pqseal")
    logger.setLevel(getattr(logging, settings.level.upper()))

    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    secure_filter = SecureLogFilter()

    if settings.enable_console:
        logger.addHandler(_console_handler(secure_filter))

    if settings.enable_file:
        logger.addHandler(_file_handler(
            config.paths.log_dir / LOG_FILE_NAME,
            secure_filter,
            settings.max_file_size_bytes,
            settings.backup_count,
            enable_json,
        ))

    return logger
