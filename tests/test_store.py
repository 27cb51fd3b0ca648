"""
SQLite storage collaborator tests.
"""

import sqlite3
import threading

import pytest

from devicevault.db.store import SCHEMA_VERSION, SecureDeviceRow, SecureDeviceStore


def _row(device_id, last_seen="2026-01-01T00:00:00.000000+00:00", **overrides):
    values = dict(
        id=device_id,
        encrypted_fingerprint='{"ciphertext": "Y3Q=", "nonce": "bm9uY2U=", "algorithm": "AES-256-GCM"}',
        encrypted_hardware_info=None,
        wrapped_key="d3JhcHBlZA==",
        public_key_pem="-----BEGIN PUBLIC KEY-----\n...\n-----END PUBLIC KEY-----\n",
        created_at="2026-01-01T00:00:00.000000+00:00",
        last_seen=last_seen,
    )
    values.update(overrides)
    return SecureDeviceRow(**values)


def test_initialize_is_idempotent(store):
    assert store.schema_version() == SCHEMA_VERSION
    store.initialize()
    store.initialize()
    assert store.schema_version() == SCHEMA_VERSION

    with sqlite3.connect(store.db_path) as conn:
        versions = conn.execute("SELECT version FROM schema_version").fetchall()
    assert versions == [(SCHEMA_VERSION,)]


def test_initialize_creates_parent_directory(tmp_path):
    store = SecureDeviceStore(tmp_path / "nested" / "dir" / "devices.db")
    store.initialize()
    assert store.db_path.exists()


def test_wal_mode_enabled(store):
    with sqlite3.connect(store.db_path) as conn:
        mode = conn.execute("PRAGMA journal_mode").fetchone()[0]
    assert mode.lower() == "wal"


def test_upsert_and_get(store):
    row = _row("d1", encrypted_hardware_info='{"ciphertext": "", "nonce": "", "algorithm": "x"}')
    store.upsert(row)
    assert store.get("d1") == row


def test_get_missing_returns_none(store):
    assert store.get("missing") is None


def test_upsert_replaces_by_id(store):
    store.upsert(_row("d1", wrapped_key="first"))
    store.upsert(_row("d1", wrapped_key="second"))

    assert store.get("d1").wrapped_key == "second"
    assert len(store.list_by_last_seen()) == 1


def test_list_orders_by_last_seen_desc(store):
    store.upsert(_row("old", last_seen="2026-01-01T00:00:00.000000+00:00"))
    store.upsert(_row("new", last_seen="2026-03-01T00:00:00.000000+00:00"))
    store.upsert(_row("mid", last_seen="2026-02-01T00:00:00.000000+00:00"))

    assert [r.id for r in store.list_by_last_seen()] == ["new", "mid", "old"]


def test_update_last_seen(store):
    store.upsert(_row("d1"))
    assert store.update_last_seen("d1", "2026-05-05T00:00:00.000000+00:00")
    assert store.get("d1").last_seen == "2026-05-05T00:00:00.000000+00:00"
    assert not store.update_last_seen("missing", "2026-05-05T00:00:00.000000+00:00")


def test_delete_reports_whether_row_existed(store):
    store.upsert(_row("d1"))
    assert store.delete("d1")
    assert not store.delete("d1")
    assert store.get("d1") is None


def test_failed_write_is_rolled_back(store):
    store.upsert(_row("d1"))
    try:
        with store._transaction(write=True) as conn:
            conn.execute("DELETE FROM secure_devices WHERE id = ?", ("d1",))
            raise RuntimeError("abort")
    except RuntimeError:
        pass
    assert store.get("d1") is not None


def test_concurrent_writers(store):
    errors = []

    def writer(prefix):
        try:
            for i in range(20):
                store.upsert(_row(f"{prefix}-{i}"))
        except Exception as exc:
            errors.append(exc)

    threads = [threading.Thread(target=writer, args=(f"t{n}",)) for n in range(4)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert len(store.list_by_last_seen()) == 80


def test_row_repr_hides_material():
    text = repr(_row("d1"))
    assert "d3JhcHBlZA" not in text
    assert "PUBLIC KEY" not in text


def test_in_memory_database_is_rejected():
    with pytest.raises(ValueError):
        SecureDeviceStore(":memory:")
