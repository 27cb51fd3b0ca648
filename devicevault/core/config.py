"""
DeviceVault Configuration
=========================

Frozen configuration for the crypto core, the device store and logging.

Security Features:
- Nothing can be changed once a VaultConfig is built
- Environment overrides (DEVICEVAULT_SECTION__FIELD) for tuning values only;
  anything that looks like a credential is ignored
- Floors on PBKDF2 rounds, salt length and RSA modulus size
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Callable, Final, Mapping, Optional


MIN_PBKDF2_ITERATIONS: Final[int] = 100_000
MIN_SALT_LENGTH: Final[int] = 16
MIN_RSA_KEY_BITS: Final[int] = 2048
DB_FILENAME: Final[str] = "devicevault.db"
APP_DIR_NAME: Final[str] = "DeviceVault"

_LOG_LEVELS: Final[frozenset[str]] = frozenset({"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"})

# Substrings that mark an environment key as credential-like
_SENSITIVE_MARKERS: Final[tuple[str, ...]] = (
    "password", "passphrase", "secret", "token", "credential",
    "private", "pem", "key", "salt", "auth",
)


def _flag(value: str) -> bool:
    return value.strip().lower() in ("1", "true", "yes", "on")


# section.field -> parser; only these keys are read from the environment
_ENV_FIELDS: Final[dict[str, Callable[[str], Any]]] = {
    "paths.data_dir": Path,
    "paths.log_dir": Path,
    "security.pbkdf2_iterations": int,
    "security.rsa_key_bits": int,
    "security.fresh_key_per_device": _flag,
    "database.db_path": Path,
    "database.enable_wal": _flag,
    "database.busy_timeout_seconds": float,
    "database.pool_size": int,
    "logging.level": str.upper,
    "logging.enable_console": _flag,
    "logging.enable_file": _flag,
    "logging.enable_json": _flag,
}

# Tuning knobs whose names happen to contain a sensitive marker
_TUNING_KEYS: Final[frozenset[str]] = frozenset({
    "security.rsa_key_bits",
    "security.fresh_key_per_device",
})


def _is_sensitive_key(key: str) -> bool:
    """True when an override key could carry credential material."""
    if key in _TUNING_KEYS:
        return False
    lowered = key.lower()
    return any(marker in lowered for marker in _SENSITIVE_MARKERS)


def _platform_base(kind: str) -> Path:
    """Per-user application directory for 'data' or 'logs'."""
    system = platform.system().lower()
    home = Path.home()

    if system == "windows":
        root = Path(os.environ.get("LOCALAPPDATA", home / "AppData" / "Local")) / APP_DIR_NAME
        return root if kind == "data" else root / "Logs"
    if system == "darwin":
        if kind == "data":
            return home / "Library" / "Application Support" / APP_DIR_NAME
        return home / "Library" / "Logs" / APP_DIR_NAME

    if kind == "data":
        return Path(os.environ.get("XDG_DATA_HOME", home / ".local" / "share")) / APP_DIR_NAME
    return Path(os.environ.get("XDG_STATE_HOME", home / ".local" / "state")) / APP_DIR_NAME / "logs"


@dataclass(frozen=True, slots=True)
class PathConfig:
    """Where the database and log files live. Paths must be absolute."""

    data_dir: Path = field(default_factory=lambda: _platform_base("data"))
    log_dir: Path = field(default_factory=lambda: _platform_base("logs"))

    def __post_init__(self) -> None:
        for name in ("data_dir", "log_dir"):
            if not Path(getattr(self, name)).is_absolute():
                raise ValueError(f"{name} must be absolute, got {getattr(self, name)}")


@dataclass(frozen=True, slots=True)
class SecurityConfig:
    """Crypto parameters."""

    pbkdf2_iterations: int = MIN_PBKDF2_ITERATIONS
    salt_length: int = MIN_SALT_LENGTH
    rsa_key_bits: int = MIN_RSA_KEY_BITS
    # One new AES key per enrolled device instead of one per manager
    fresh_key_per_device: bool = True

    def __post_init__(self) -> None:
        if self.pbkdf2_iterations < MIN_PBKDF2_ITERATIONS:
            raise ValueError(f"pbkdf2_iterations below floor of {MIN_PBKDF2_ITERATIONS:,}")
        if self.salt_length < MIN_SALT_LENGTH:
            raise ValueError(f"salt_length below floor of {MIN_SALT_LENGTH} bytes")
        if self.rsa_key_bits < MIN_RSA_KEY_BITS:
            raise ValueError(f"rsa_key_bits below floor of {MIN_RSA_KEY_BITS}")


@dataclass(frozen=True, slots=True)
class DatabaseConfig:
    """SQLite settings for SecureDeviceStore."""

    db_path: Optional[Path] = None  # None = <data_dir>/devicevault.db
    enable_wal: bool = True
    busy_timeout_seconds: float = 5.0
    pool_size: int = 4

    def __post_init__(self) -> None:
        if self.busy_timeout_seconds < 0:
            raise ValueError("busy_timeout_seconds cannot be negative")
        if self.pool_size < 1:
            raise ValueError("pool_size must be at least 1")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Handlers installed by configure_logging()."""

    level: str = "INFO"
    max_file_size_bytes: int = 10 * 1024 * 1024
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        if self.level.upper() not in _LOG_LEVELS:
            raise ValueError(f"Unknown log level: {self.level}")


class VaultConfig:
    """
    Read-only bundle of every DeviceVault setting.

    Usage:
        config = VaultConfig.load()
        store = SecureDeviceStore.from_config(config)
        bits = config.security.rsa_key_bits

    Environment variables use the DEVICEVAULT_ prefix and double
    underscores between section and field:
        DEVICEVAULT_LOGGING__LEVEL=DEBUG
        DEVICEVAULT_DATABASE__DB_PATH=/srv/devices.db
        DEVICEVAULT_SECURITY__FRESH_KEY_PER_DEVICE=false
    """

    __slots__ = ("_paths", "_security", "_database", "_logging", "_frozen", "_config_hash")

    def __init__(
        self,
        paths: Optional[PathConfig] = None,
        security: Optional[SecurityConfig] = None,
        database: Optional[DatabaseConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Build from explicit sections. VaultConfig.load() also reads the environment."""
        sections = {
            "_paths": paths or PathConfig(),
            "_security": security or SecurityConfig(),
            "_database": database or DatabaseConfig(),
            "_logging": logging or LoggingConfig(),
        }
        object.__setattr__(self, "_frozen", False)
        for slot, value in sections.items():
            object.__setattr__(self, slot, value)
        digest = hashlib.sha256("|".join(repr(v) for v in sections.values()).encode("utf-8"))
        object.__setattr__(self, "_config_hash", digest.hexdigest()[:16])
        object.__setattr__(self, "_frozen", True)

    @property
    def paths(self) -> PathConfig:
        return self._paths

    @property
    def security(self) -> SecurityConfig:
        return self._security

    @property
    def database(self) -> DatabaseConfig:
        return self._database

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Short SHA-256 fingerprint of all settings."""
        return self._config_hash

    @property
    def resolved_db_path(self) -> Path:
        """Database file, defaulting into the data directory."""
        return self._database.db_path or self._paths.data_dir / DB_FILENAME

    @classmethod
    def load(
        cls,
        env_prefix: str = "DEVICEVAULT",
        environ: Optional[Mapping[str, str]] = None,
    ) -> VaultConfig:
        """
        Build a config from defaults plus environment overrides.

        Args:
            env_prefix: Prefix for environment variables
            environ: Mapping to read instead of os.environ

        Raises:
            ValueError: If an override fails to parse or validate
        """
        overrides = cls._parse_env_overrides(env_prefix, os.environ if environ is None else environ)

        by_section: dict[str, dict[str, Any]] = {}
        for key, raw in overrides.items():
            parser = _ENV_FIELDS.get(key)
            if parser is None:
                continue
            section, name = key.split(".", 1)
            by_section.setdefault(section, {})[name] = parser(raw)

        builders = {
            "paths": PathConfig,
            "security": SecurityConfig,
            "database": DatabaseConfig,
            "logging": LoggingConfig,
        }
        return cls(**{
            section: builders[section](**values)
            for section, values in by_section.items()
        })

    @staticmethod
    def _parse_env_overrides(prefix: str, environ: Mapping[str, str]) -> dict[str, str]:
        """Map PREFIX_SECTION__FIELD variables to 'section.field' keys."""
        lead = f"{prefix.upper()}_"
        overrides: dict[str, str] = {}

        for name, value in environ.items():
            if not name.startswith(lead):
                continue
            key = name[len(lead):].lower().replace("__", ".")
            # SECURITY: credentials never come from the environment
            if _is_sensitive_key(key):
                continue
            overrides[key] = value

        return overrides

    def ensure_directories(self) -> None:
        """Create data, log and database directories, owner-only on POSIX."""
        import stat

        for directory in {self._paths.data_dir, self._paths.log_dir, self.resolved_db_path.parent}:
            directory.mkdir(parents=True, exist_ok=True)
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)

    def __repr__(self) -> str:
        return f"VaultConfig(hash={self._config_hash})"

    def __setattr__(self, name: str, value: Any) -> None:
        if getattr(self, "_frozen", False):
            raise AttributeError("VaultConfig is read-only")
        object.__setattr__(self, name, value)
