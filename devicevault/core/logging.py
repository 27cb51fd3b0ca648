"""
Secure Logging Module
=====================

Logging for DeviceVault that never writes key material.

Security Features:
- PEM blocks, wrapped keys, ciphertext-sized base64 and long hex digests
  are scrubbed from messages and their arguments
- Size-capped rotating log files
- Optional one-JSON-object-per-line output

Library modules log through ``logging.getLogger(__name__)``; the handlers
and filters live on the ``devicevault`` package logger, installed by
``configure_logging``.
"""

from __future__ import annotations

import json
import logging
import re
import sys
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import TYPE_CHECKING, Any, Final, Iterable, Optional, Pattern

if TYPE_CHECKING:
    from devicevault.core.config import VaultConfig

PACKAGE_LOGGER: Final[str] = "devicevault"

CONSOLE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
FILE_FORMAT: Final[str] = "%(asctime)s | %(levelname)-8s | %(name)s | %(funcName)s:%(lineno)d | %(message)s"

REDACTED: Final[str] = "[REDACTED]"

_ASSIGNED_VALUE: Final[str] = r"""\s*[=:]\s*["']?[^\s"']+["']?"""

# Applied in order; PEM first so its base64 body is consumed whole
_REDACTIONS: Final[tuple[tuple[str, Pattern[str]], ...]] = (
    ("pem", re.compile(r"-----BEGIN ([A-Z ]+)-----.*?-----END \1-----", re.DOTALL)),
    ("password", re.compile(r"(?i)\b(?:password|passphrase|passwd|pwd)" + _ASSIGNED_VALUE)),
    ("token", re.compile(r"(?i)\b(?:token|bearer)" + _ASSIGNED_VALUE)),
    ("secret", re.compile(r"(?i)\b(?:secret|private[_-]?key|wrapped[_-]?key|aes[_-]?key)" + _ASSIGNED_VALUE)),
    # Wrapped RSA keys and ciphertext are long base64 runs
    ("base64", re.compile(r"[A-Za-z0-9+/]{40,}={0,2}")),
    # Raw key bytes and digests rendered as hex
    ("hex", re.compile(r"(?i)\b(?:0x)?[0-9a-f]{32,}\b")),
)


class PublicText(str):
    """
    Log argument known to carry no secret, such as a device id.

    SecureLogFilter passes it through unchanged, so long hex or base64
    identifiers stay readable.
    """

    __slots__ = ()


def redact(text: str, extra: Iterable[Pattern[str]] = ()) -> str:
    """Replace every secret-looking span of text with a labeled marker."""
    for label, pattern in _REDACTIONS:
        text = pattern.sub(f"{label}={REDACTED}", text)
    for pattern in extra:
        text = pattern.sub(REDACTED, text)
    return text


class SecureLogFilter(logging.Filter):
    """
    Scrubs key material from records before any handler formats them.

    Records are rewritten in place and always let through.
    """

    def __init__(self, name: str = "", extra_patterns: Optional[Iterable[Pattern[str]]] = None) -> None:
        super().__init__(name)
        self._extra = tuple(extra_patterns or ())

    def _scrub(self, value: Any) -> Any:
        if isinstance(value, PublicText) or not isinstance(value, str):
            return value
        return redact(value, self._extra)

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = redact(record.msg, self._extra)

        args = record.args
        if isinstance(args, dict):
            record.args = {key: self._scrub(value) for key, value in args.items()}
        elif isinstance(args, tuple):
            record.args = tuple(self._scrub(value) for value in args)

        return True


class StructuredLogFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "function": record.funcName,
            "line": record.lineno,
        }
        if record.exc_info:
            entry["exception"] = self.formatException(record.exc_info)
        return json.dumps(entry, default=str)


class SecureRotatingFileHandler(RotatingFileHandler):
    """RotatingFileHandler that creates its directory and refuses '..' paths."""

    def __init__(
        self,
        filename: str | Path,
        max_bytes: int = 10 * 1024 * 1024,
        backup_count: int = 5,
    ) -> None:
        requested = Path(filename)
        if ".." in requested.parts:
            raise ValueError(f"Refusing log path with parent references: {requested}")

        target = requested.resolve()
        target.parent.mkdir(parents=True, exist_ok=True)
        super().__init__(
            target,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )


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
    Return the named logger with redacting handlers attached.

    A logger that already has handlers is returned untouched, so calling
    this repeatedly is safe.

    Args:
        name: Logger name; also names the log file (dots become underscores)
        log_dir: Directory for the log file. No file output without it.
        level: DEBUG, INFO, WARNING, ERROR or CRITICAL
        enable_console: Write to stderr
        enable_file: Write to a rotating file in log_dir
        enable_json: JSON lines in the file instead of text
        max_file_size: Rotation threshold in bytes
        backup_count: Rotated files to keep
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    logger.setLevel(level.upper())
    scrubber = SecureLogFilter()
    handlers: list[logging.Handler] = []

    if enable_console:
        console = logging.StreamHandler(sys.stderr)
        console.setFormatter(logging.Formatter(CONSOLE_FORMAT, datefmt="%H:%M:%S"))
        handlers.append(console)

    if enable_file and log_dir is not None:
        log_file = SecureRotatingFileHandler(
            Path(log_dir) / f"{name.replace('.', '_')}.log",
            max_bytes=max_file_size,
            backup_count=backup_count,
        )
        log_file.setFormatter(
            StructuredLogFormatter() if enable_json
            else logging.Formatter(FILE_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")
        )
        handlers.append(log_file)

    for handler in handlers:
        handler.addFilter(scrubber)
        logger.addHandler(handler)

    logger.propagate = False
    return logger


def configure_logging(config: "VaultConfig") -> logging.Logger:
    """
    Install secure handlers on the package logger from configuration.

    Call once at application startup; library code never calls this.
    """
    settings = config.logging
    return get_secure_logger(
        PACKAGE_LOGGER,
        log_dir=config.paths.log_dir,
        level=settings.level,
        enable_console=settings.enable_console,
        enable_file=settings.enable_file,
        enable_json=settings.enable_json,
        max_file_size=settings.max_file_size_bytes,
        backup_count=settings.backup_count,
    )
