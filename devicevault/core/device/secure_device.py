"""
Secure Device Identity Store
============================

Enrolls devices by encrypting their fingerprint and hardware info with a
HybridEncryptor and persisting the result through SecureDeviceStore.

Security Properties:
- Only ciphertext, the wrapped AES key and the public key are persisted
- The RSA key pair belongs to one manager; it is never process-global
- Records from a different key pair fail with UnwrapFailure, the same
  error as any other unwrap problem

Usage Pattern:
1. Build a store and manager once (RSA key generation is expensive)
2. create() on enrollment, touch() on every sighting
3. decrypt_*() only when the plaintext identity is needed
"""

from __future__ import annotations

import hmac
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from devicevault.core.config import VaultConfig
from devicevault.core.crypto.aes_gcm import AesEncryptor, EncryptedBlob
from devicevault.core.crypto.hybrid_engine import HybridEncryptor
from devicevault.core.crypto.rsa_keys import RsaKeyPair
from devicevault.core.errors import DecodeFailure, NotFound, UnwrapFailure
from devicevault.core.logging import PublicText
from devicevault.db.store import SecureDeviceRow, SecureDeviceStore

logger = logging.getLogger(__name__)


def _format_timestamp(value: datetime) -> str:
    # Fixed-width so stored values sort chronologically as text
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_timestamp(value: str) -> datetime:
    try:
        return datetime.fromisoformat(value)
    except (TypeError, ValueError) as exc:
        raise DecodeFailure(f"Invalid stored timestamp: {value!r}") from exc


@dataclass(frozen=True)
class SecureDevice:
    """
    An enrolled device identity in encrypted form.

    Note: wrapped_key and ciphertext are never exposed in repr.
    """
    id: str
    encrypted_fingerprint: EncryptedBlob
    encrypted_hardware_info: Optional[EncryptedBlob]
    wrapped_key: str
    public_key_pem: str
    created_at: datetime
    last_seen: datetime

    def to_row(self) -> SecureDeviceRow:
        """Serialize to the text-only storage form."""
        hardware_info = self.encrypted_hardware_info
        return SecureDeviceRow(
            id=self.id,
            encrypted_fingerprint=self.encrypted_fingerprint.to_json(),
            encrypted_hardware_info=hardware_info.to_json() if hardware_info else None,
            wrapped_key=self.wrapped_key,
            public_key_pem=self.public_key_pem,
            created_at=_format_timestamp(self.created_at),
            last_seen=_format_timestamp(self.last_seen),
        )

    @classmethod
    def from_row(cls, row: SecureDeviceRow) -> "SecureDevice":
        """
        Rebuild from storage.

        Raises:
            DecodeFailure: If a stored blob or timestamp is malformed
        """
        hardware_info = row.encrypted_hardware_info
        return cls(
            id=row.id,
            encrypted_fingerprint=EncryptedBlob.from_json(row.encrypted_fingerprint),
            encrypted_hardware_info=EncryptedBlob.from_json(hardware_info) if hardware_info else None,
            wrapped_key=row.wrapped_key,
            public_key_pem=row.public_key_pem,
            created_at=_parse_timestamp(row.created_at),
            last_seen=_parse_timestamp(row.last_seen),
        )

    @property
    def has_hardware_info(self) -> bool:
        return self.encrypted_hardware_info is not None

    def __repr__(self) -> str:
        """Safe representation."""
        return (
            f"SecureDevice(id={self.id!r}, hardware_info={self.has_hardware_info}, "
            f"last_seen={self.last_seen.isoformat()})"
        )


class SecureDeviceManager:
    """
    Creates, loads, lists, touches and deletes secure devices.

    Usage:
        store = SecureDeviceStore(db_path)
        store.initialize()
        manager = SecureDeviceManager(store)

        device = manager.create("device-1", fingerprint, hardware_info)
        loaded = manager.load("device-1")
        fingerprint = manager.decrypt_fingerprint(loaded)

    Security Notes:
        - Keep the private key: export_private_key() and restore with
          SecureDeviceManager.with_key_pair(store, RsaKeyPair.import_pem(pem))
        - Treat every decryption failure as "identity unrecoverable"
    """

    __slots__ = ("_store", "_config", "_encryptor", "_public_key_pem", "_clock_lock", "_last_stamp")

    def __init__(
        self,
        store: SecureDeviceStore,
        key_pair: Optional[RsaKeyPair] = None,
        config: Optional[VaultConfig] = None,
    ) -> None:
        """
        Args:
            store: Initialized storage collaborator
            key_pair: Key pair to take ownership of. Generated when omitted.
            config: Configuration (defaults when omitted)
        """
        self._store = store
        self._config = config or VaultConfig()
        self._encryptor = HybridEncryptor(
            key_pair=key_pair,
            key_bits=self._config.security.rsa_key_bits,
        )
        self._public_key_pem = self._encryptor.public_key_pem()
        self._clock_lock = threading.Lock()
        self._last_stamp: Optional[datetime] = None

    @classmethod
    def with_key_pair(
        cls,
        store: SecureDeviceStore,
        key_pair: RsaKeyPair,
        config: Optional[VaultConfig] = None,
    ) -> "SecureDeviceManager":
        return cls(store, key_pair=key_pair, config=config)

    @classmethod
    def from_config(
        cls,
        config: VaultConfig,
        key_pair: Optional[RsaKeyPair] = None,
    ) -> "SecureDeviceManager":
        """Create the configured directories, open (and migrate) the database and build a manager."""
        config.ensure_directories()
        store = SecureDeviceStore.from_config(config)
        store.initialize()
        return cls(store, key_pair=key_pair, config=config)

    @property
    def store(self) -> SecureDeviceStore:
        return self._store

    @property
    def public_key_pem(self) -> str:
        return self._public_key_pem

    def _now(self) -> datetime:
        """UTC now, strictly increasing across calls on this manager."""
        with self._clock_lock:
            now = datetime.now(timezone.utc)
            if self._last_stamp is not None and now <= self._last_stamp:
                now = self._last_stamp + timedelta(microseconds=1)
            self._last_stamp = now
            return now

    def create(
        self,
        device_id: str,
        fingerprint: str,
        hardware_info: Optional[str] = None,
    ) -> SecureDevice:
        """
        Encrypt and persist a device identity (insert or replace by id).

        Args:
            device_id: Unique device id
            fingerprint: Device fingerprint (required)
            hardware_info: Descriptive hardware info (optional)

        Returns:
            The stored SecureDevice
        """
        if not device_id:
            raise ValueError("Device id cannot be empty")

        hardware_bytes = hardware_info.encode("utf-8") if hardware_info is not None else None

        if self._config.security.fresh_key_per_device:
            (fingerprint_blob, hardware_blob), wrapped_key = self._encryptor.seal(
                fingerprint.encode("utf-8"),
                hardware_bytes,
            )
        else:
            fingerprint_blob, wrapped_key = self._encryptor.encrypt_string(fingerprint)
            hardware_blob = (
                self._encryptor.encrypt_blob(hardware_bytes) if hardware_bytes is not None else None
            )

        now = self._now()
        device = SecureDevice(
            id=device_id,
            encrypted_fingerprint=fingerprint_blob,
            encrypted_hardware_info=hardware_blob,
            wrapped_key=wrapped_key,
            public_key_pem=self._public_key_pem,
            created_at=now,
            last_seen=now,
        )

        self._store.upsert(device.to_row())
        logger.info("Enrolled secure device %s", PublicText(device_id))

        return device

    def load(self, device_id: str) -> Optional[SecureDevice]:
        """Fetch a device by id; None when it does not exist."""
        row = self._store.get(device_id)
        return SecureDevice.from_row(row) if row is not None else None

    def list(self) -> List[SecureDevice]:
        """All devices, most recently seen first."""
        return [SecureDevice.from_row(row) for row in self._store.list_by_last_seen()]

    def touch(self, device_id: str) -> datetime:
        """
        Mark a device as seen now.

        Returns:
            The new last_seen timestamp

        Raises:
            NotFound: If no device has this id
        """
        now = self._now()
        if not self._store.update_last_seen(device_id, _format_timestamp(now)):
            raise NotFound(device_id)
        return now

    def delete(self, device_id: str) -> None:
        """Delete a device. Deleting an unknown id is not an error."""
        if self._store.delete(device_id):
            logger.info("Deleted secure device %s", PublicText(device_id))

    def decrypt_fingerprint(self, device: SecureDevice) -> str:
        """
        Recover the plaintext fingerprint.

        Raises:
            UnwrapFailure: Device was enrolled under another key pair
            AuthenticationFailure, DecodeFailure, UnsupportedAlgorithm,
            Utf8Failure: from the envelope
        """
        self._ensure_own_key(device)
        return self._encryptor.decrypt_string(device.encrypted_fingerprint, device.wrapped_key)

    def decrypt_hardware_info(self, device: SecureDevice) -> Optional[str]:
        """Recover the plaintext hardware info, or None if none was stored."""
        if device.encrypted_hardware_info is None:
            return None
        self._ensure_own_key(device)
        return self._encryptor.decrypt_string(device.encrypted_hardware_info, device.wrapped_key)

    def _ensure_own_key(self, device: SecureDevice) -> None:
        if not hmac.compare_digest(
            device.public_key_pem.strip().encode("utf-8"),
            self._public_key_pem.strip().encode("utf-8"),
        ):
            logger.warning("RSA unwrap failed")
            raise UnwrapFailure("RSA decryption failed")

    def export_private_key(self) -> str:
        """PKCS#8 PEM of the manager's private key. Handle as a secret."""
        return self._encryptor.private_key_pem()

    def export_public_key(self) -> str:
        return self._public_key_pem

    def password_encryptor(
        self,
        password: str,
        salt: Optional[bytes] = None,
    ) -> tuple[AesEncryptor, bytes]:
        """
        Password-derived AES encryptor using this manager's PBKDF2 settings.

        Use it to protect material such as the exported private key PEM.

        Returns:
            (encryptor, salt) - keep the salt next to the ciphertext
        """
        return AesEncryptor.for_password(password, self._config.security, salt)

    def close(self) -> None:
        """Erase the manager's key material."""
        self._encryptor.wipe()

    def __enter__(self) -> "SecureDeviceManager":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def __repr__(self) -> str:
        return f"SecureDeviceManager(store={self._store!r})"
