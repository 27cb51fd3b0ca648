"""
Key Derivation and Hashing
==========================

Password-based key derivation for symmetric keys, salt generation and
content hashing.

Implements:
    - PBKDF2-HMAC-SHA256 (100,000 iterations) for password-derived AES keys
    - Random salt generation
    - SHA-256 hex digests
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Final

from cryptography.hazmat.primitives import hashes
from cryptography.hazmat.primitives.kdf.pbkdf2 import PBKDF2HMAC

PBKDF2_ITERATIONS: Final[int] = 100_000
SALT_SIZE: Final[int] = 16


def derive_key_pbkdf2(
    password: str,
    salt: bytes,
    length: int = 32,
    iterations: int = PBKDF2_ITERATIONS,
) -> bytes:
    """
    Derive a key from password using PBKDF2-HMAC-SHA256.

    Deterministic: the same password and salt always give the same key.

    Args:
        password: User password
        salt: Salt stored alongside whatever the key protects
        length: Output key length
        iterations: PBKDF2 round count

    Returns:
        Derived key bytes
    """
    kdf = PBKDF2HMAC(
        algorithm=hashes.SHA256(),
        length=length,
        salt=salt,
        iterations=iterations,
    )
    return kdf.derive(password.encode("utf-8"))


def generate_salt(length: int = SALT_SIZE) -> bytes:
    """Generate a random salt for password-based derivation."""
    return secrets.token_bytes(length)


def hash_sha256(data: bytes) -> str:
    """Return the lowercase hex SHA-256 digest of data (64 characters)."""
    return hashlib.sha256(data).hexdigest()
