"""
DeviceVault - Encrypted Device Identity Storage
===============================================

Protects device fingerprints and hardware info at rest with envelope
encryption (AES-256-GCM data keys wrapped by RSA-2048) and persists the
protected records in SQLite.

Security Notice:
- No secrets are logged
- Fail-closed design pattern
- Key material is wiped on scope exit
"""

from devicevault.core.config import VaultConfig
from devicevault.core.logging import configure_logging, get_secure_logger
from devicevault.core.crypto import (
    AesEncryptor,
    EncryptedBlob,
    HybridEncryptor,
    RsaEncryptor,
    RsaKeyPair,
    generate_salt,
    hash_sha256,
)
from devicevault.core.device import SecureDevice, SecureDeviceManager
from devicevault.db import SecureDeviceStore

__version__ = "0.1.0"

__all__ = [
    "VaultConfig",
    "configure_logging",
    "get_secure_logger",
    "AesEncryptor",
    "EncryptedBlob",
    "HybridEncryptor",
    "RsaEncryptor",
    "RsaKeyPair",
    "generate_salt",
    "hash_sha256",
    "SecureDevice",
    "SecureDeviceManager",
    "SecureDeviceStore",
    "__version__",
]
