"""
Secure Device Store
===================

SQLite persistence for secure device rows.

Every operation opens its own connection and runs in one transaction, so
readers only ever observe a row before or after a write, never a partially
written one. Writers take ``BEGIN IMMEDIATE`` and queue on the busy timeout.

The store only moves text: encryption and (de)serialization of blobs happen
in SecureDeviceManager.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import TYPE_CHECKING, Final, Iterator, List, Optional

if TYPE_CHECKING:
    from devicevault.core.config import VaultConfig

logger = logging.getLogger(__name__)

SCHEMA_VERSION: Final[int] = 1

_VERSION_TABLE: Final[str] = """
CREATE TABLE IF NOT EXISTS schema_version (
    version INTEGER PRIMARY KEY,
    applied_at TEXT NOT NULL
)
"""

# version -> DDL statements, applied in order inside one transaction each
_MIGRATIONS: Final[dict[int, tuple[str, ...]]] = {
    1: (
        """
        CREATE TABLE IF NOT EXISTS secure_devices (
            id TEXT PRIMARY KEY,
            encrypted_fingerprint TEXT NOT NULL,
            encrypted_hardware_info TEXT,
            wrapped_key TEXT NOT NULL,
            public_key_pem TEXT NOT NULL,
            created_at TEXT NOT NULL,
            last_seen TEXT NOT NULL
        )
        """,
        """
        CREATE INDEX IF NOT EXISTS idx_secure_devices_last_seen
        ON secure_devices(last_seen)
        """,
    ),
}

_COLUMNS: Final[str] = (
    "id, encrypted_fingerprint, encrypted_hardware_info, "
    "wrapped_key, public_key_pem, created_at, last_seen"
)


@dataclass(frozen=True, slots=True)
class SecureDeviceRow:
    """
    One persisted secure device, as stored.

    encrypted_* fields hold JSON objects {ciphertext, nonce, algorithm};
    timestamps are ISO-8601 UTC with microseconds.
    """
    id: str
    encrypted_fingerprint: str
    encrypted_hardware_info: Optional[str]
    wrapped_key: str
    public_key_pem: str
    created_at: str
    last_seen: str

    def __repr__(self) -> str:
        """Safe representation."""
        return f"SecureDeviceRow(id={self.id!r}, last_seen={self.last_seen!r})"


class SecureDeviceStore:
    """
    Transactional SQLite store for secure devices.

    Usage:
        store = SecureDeviceStore(db_path)
        store.initialize()

        store.upsert(row)
        row = store.get("device-1")
        rows = store.list_by_last_seen()

    Notes:
        - sqlite3 errors propagate unchanged
        - At most ``pool_size`` connections are open at once
    """

    __slots__ = ("_db_path", "_enable_wal", "_busy_timeout", "_slots")

    def __init__(
        self,
        db_path: Path | str,
        enable_wal: bool = True,
        busy_timeout_seconds: float = 5.0,
        pool_size: int = 4,
    ) -> None:
        """
        Args:
            db_path: Path to the SQLite database file (in-memory databases are not supported)
            enable_wal: Use write-ahead logging
            busy_timeout_seconds: How long a writer waits for the lock
            pool_size: Maximum concurrent connections
        """
        if str(db_path) == ":memory:":
            # One connection per operation: an in-memory database would not persist
            raise ValueError("SecureDeviceStore needs a database file, not ':memory:'")
        self._db_path = Path(db_path)
        self._enable_wal = enable_wal
        self._busy_timeout = busy_timeout_seconds
        self._slots = threading.BoundedSemaphore(pool_size)

    @classmethod
    def from_config(cls, config: "VaultConfig") -> "SecureDeviceStore":
        settings = config.database
        return cls(
            config.resolved_db_path,
            enable_wal=settings.enable_wal,
            busy_timeout_seconds=settings.busy_timeout_seconds,
            pool_size=settings.pool_size,
        )

    @property
    def db_path(self) -> Path:
        return self._db_path

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        """Open a connection in autocommit mode; transactions are explicit."""
        with self._slots:
            conn = sqlite3.connect(
                self._db_path,
                timeout=self._busy_timeout,
                isolation_level=None,
            )
            try:
                conn.row_factory = sqlite3.Row
                yield conn
            finally:
                conn.close()

    @contextmanager
    def _transaction(self, write: bool = False) -> Iterator[sqlite3.Connection]:
        with self._get_connection() as conn:
            conn.execute("BEGIN IMMEDIATE" if write else "BEGIN")
            try:
                yield conn
            except BaseException:
                conn.execute("ROLLBACK")
                raise
            conn.execute("COMMIT")

    def initialize(self) -> None:
        """
        Create the schema and apply pending migrations. Idempotent.
        """
        self._db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._get_connection() as conn:
            if self._enable_wal:
                conn.execute("PRAGMA journal_mode=WAL")
            conn.execute(_VERSION_TABLE)

        with self._transaction(write=True) as conn:
            current = self._current_version(conn)
            for version in sorted(v for v in _MIGRATIONS if v > current):
                for statement in _MIGRATIONS[version]:
                    conn.execute(statement)
                conn.execute(
                    "INSERT INTO schema_version (version, applied_at) VALUES (?, ?)",
                    (version, datetime.now(timezone.utc).isoformat()),
                )
                logger.info("Applied secure device schema migration v%d", version)

    @staticmethod
    def _current_version(conn: sqlite3.Connection) -> int:
        row = conn.execute("SELECT MAX(version) FROM schema_version").fetchone()
        return row[0] or 0

    def schema_version(self) -> int:
        """Highest applied migration (0 before initialize())."""
        with self._transaction() as conn:
            return self._current_version(conn)

    def upsert(self, row: SecureDeviceRow) -> None:
        """Insert or replace the row keyed by its id."""
        with self._transaction(write=True) as conn:
            conn.execute(
                f"INSERT OR REPLACE INTO secure_devices ({_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?)",
                (
                    row.id,
                    row.encrypted_fingerprint,
                    row.encrypted_hardware_info,
                    row.wrapped_key,
                    row.public_key_pem,
                    row.created_at,
                    row.last_seen,
                ),
            )

    def get(self, device_id: str) -> Optional[SecureDeviceRow]:
        """Fetch one row by primary key; None when absent."""
        with self._transaction() as conn:
            result = conn.execute(
                f"SELECT {_COLUMNS} FROM secure_devices WHERE id = ?",
                (device_id,),
            ).fetchone()
        return self._row_to_record(result) if result is not None else None

    def list_by_last_seen(self) -> List[SecureDeviceRow]:
        """All rows, most recently seen first."""
        with self._transaction() as conn:
            rows = conn.execute(
                f"SELECT {_COLUMNS} FROM secure_devices ORDER BY last_seen DESC, id ASC"
            ).fetchall()
        return [self._row_to_record(row) for row in rows]

    def update_last_seen(self, device_id: str, last_seen: str) -> bool:
        """Set last_seen; returns False when no row matched."""
        with self._transaction(write=True) as conn:
            result = conn.execute(
                "UPDATE secure_devices SET last_seen = ? WHERE id = ?",
                (last_seen, device_id),
            )
            return result.rowcount > 0

    def delete(self, device_id: str) -> bool:
        """Delete by primary key; returns False when no row matched."""
        with self._transaction(write=True) as conn:
            result = conn.execute(
                "DELETE FROM secure_devices WHERE id = ?",
                (device_id,),
            )
            return result.rowcount > 0

    @staticmethod
    def _row_to_record(row: sqlite3.Row) -> SecureDeviceRow:
        return SecureDeviceRow(
            id=row["id"],
            encrypted_fingerprint=row["encrypted_fingerprint"],
            encrypted_hardware_info=row["encrypted_hardware_info"],
            wrapped_key=row["wrapped_key"],
            public_key_pem=row["public_key_pem"],
            created_at=row["created_at"],
            last_seen=row["last_seen"],
        )

    def __repr__(self) -> str:
        return f"SecureDeviceStore(db_path={str(self._db_path)!r})"
