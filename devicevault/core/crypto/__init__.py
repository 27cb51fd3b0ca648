"""
DeviceVault Cryptographic Core
==============================

Envelope encryption for device identity data.

Architecture:
    1. AES-256-GCM: symmetric encryption of the data
    2. RSA-2048 PKCS1v15: wrapping of the 32-byte AES key
    3. PBKDF2-HMAC-SHA256: optional password-derived AES keys

Security Properties:
    - All data encryption is authenticated (AEAD)
    - Fresh 96-bit nonce per encryption
    - Key buffers are zeroed on wipe / scope exit
    - Secure RNG for all random values

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from devicevault.core.crypto.aes_gcm import AesEncryptor, EncryptedBlob, ALGORITHM_TAG
from devicevault.core.crypto.rsa_keys import RsaKeyPair, RsaEncryptor
from devicevault.core.crypto.hybrid_engine import HybridEncryptor
from devicevault.core.crypto.kdf import derive_key_pbkdf2, generate_salt, hash_sha256

__all__ = [
    "AesEncryptor",
    "EncryptedBlob",
    "ALGORITHM_TAG",
    "RsaKeyPair",
    "RsaEncryptor",
    "HybridEncryptor",
    "derive_key_pbkdf2",
    "generate_salt",
    "hash_sha256",
]
