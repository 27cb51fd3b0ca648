"""
AES-256-GCM Authenticated Encryption
====================================

Symmetric cipher used for the bulk data of every envelope.

Security Properties:
    - 256-bit key (held in a wipeable buffer)
    - 96-bit nonce drawn fresh from the OS CSPRNG on every call
    - 128-bit authentication tag appended to the ciphertext
    - No plaintext is returned unless the tag verifies

NIST SP 800-38D Compliance:
    - GCM mode with 96-bit IV
    - Unique nonce for each encryption under same key

WARNING:
    - Never reuse (key, nonce) pairs
    - Keys should be wiped from memory after use (use ``with``)
"""

from __future__ import annotations

import base64
import binascii
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Final, Mapping, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from devicevault.core.config import SecurityConfig
from devicevault.core.crypto.kdf import PBKDF2_ITERATIONS, derive_key_pbkdf2, generate_salt
from devicevault.core.errors import (
    AuthenticationFailure,
    DecodeFailure,
    InvalidKeyLength,
    KeyWiped,
    UnsupportedAlgorithm,
    Utf8Failure,
)
from devicevault.core.memory.zeroization import secure_zero

logger = logging.getLogger(__name__)

# Constants following NIST recommendations
AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits
AES_TAG_SIZE: Final[int] = 16  # 128 bits
ALGORITHM_TAG: Final[str] = "AES-256-GCM"


def b64encode_text(data: bytes) -> str:
    """Standard base64 with padding, as ASCII text."""
    return base64.b64encode(data).decode("ascii")


def b64decode_text(text: str, field_name: str) -> bytes:
    """
    Strict base64 decoding.

    Raises:
        DecodeFailure: If text is not valid standard base64
    """
    try:
        return base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise DecodeFailure(f"Invalid base64 in {field_name}") from exc


@dataclass(frozen=True, slots=True)
class EncryptedBlob:
    """
    Immutable, text-only result of AES-GCM encryption.

    Attributes:
        ciphertext: base64 of ciphertext with appended authentication tag
        nonce: base64 of the 12-byte nonce used for this encryption
        algorithm: always "AES-256-GCM" for blobs produced here
    """

    ciphertext: str
    nonce: str
    algorithm: str = ALGORITHM_TAG

    def to_dict(self) -> dict[str, str]:
        return {
            "ciphertext": self.ciphertext,
            "nonce": self.nonce,
            "algorithm": self.algorithm,
        }

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "EncryptedBlob":
        """
        Build a blob from its structured form.

        Raises:
            DecodeFailure: If a field is missing or not text
        """
        try:
            fields = {name: data[name] for name in ("ciphertext", "nonce", "algorithm")}
        except (KeyError, TypeError) as exc:
            raise DecodeFailure("Encrypted blob is missing a required field") from exc

        for name, value in fields.items():
            if not isinstance(value, str):
                raise DecodeFailure(f"Encrypted blob field {name!r} must be text")

        return cls(**fields)

    def to_json(self) -> str:
        """Serialize to a JSON object string."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "EncryptedBlob":
        """
        Deserialize from JSON string.

        Raises:
            DecodeFailure: If the text is not a JSON object with the blob fields
        """
        try:
            data = json.loads(json_str)
        except (TypeError, ValueError) as exc:
            raise DecodeFailure("Encrypted blob is not valid JSON") from exc
        return cls.from_dict(data)

    def __repr__(self) -> str:
        """Safe representation."""
        return f"EncryptedBlob({self.algorithm}, ct_len={len(self.ciphertext)})"


class AesEncryptor:
    """
    AES-256-GCM encryptor that exclusively owns one symmetric key.

    The key lives in a bytearray that is overwritten with zeros when the
    encryptor is wiped, leaves a ``with`` block, or is garbage collected.

    Usage:
        with AesEncryptor.generate() as aes:
            blob = aes.encrypt_string("fingerprint")
            text = aes.decrypt_string(blob)

        # Password-derived key (salt must be stored with the ciphertext)
        salt = generate_salt()
        aes = AesEncryptor.derive_from_password("pw", salt)

    Security Notes:
        - A fresh nonce is drawn for every encrypt() call
        - Integrity is verified BEFORE any plaintext is returned
    """

    __slots__ = ("_key", "_wiped", "__weakref__")

    def __init__(self, key: Optional[bytes | bytearray] = None) -> None:
        """
        Initialize the encryptor.

        Args:
            key: Optional 32-byte key. If None, a random key is generated.

        Raises:
            InvalidKeyLength: If key is provided but wrong size
        """
        if key is None:
            key = secrets.token_bytes(AES_KEY_SIZE)
        elif len(key) != AES_KEY_SIZE:
            raise InvalidKeyLength(AES_KEY_SIZE, len(key))

        self._key = bytearray(key)
        self._wiped = False

    @classmethod
    def generate(cls) -> "AesEncryptor":
        """Create an encryptor holding a fresh CSPRNG key."""
        return cls()

    @classmethod
    def from_bytes(cls, key: bytes | bytearray) -> "AesEncryptor":
        """
        Create an encryptor from existing key bytes.

        The input is copied; the caller remains responsible for wiping it.

        Raises:
            InvalidKeyLength: If key is not exactly 32 bytes
        """
        return cls(key)

    @classmethod
    def derive_from_password(
        cls,
        password: str,
        salt: bytes,
        iterations: int = PBKDF2_ITERATIONS,
    ) -> "AesEncryptor":
        """
        Create an encryptor whose key is derived with PBKDF2-HMAC-SHA256.

        Same password and salt always yield the same key.
        """
        derived = bytearray(derive_key_pbkdf2(password, salt, AES_KEY_SIZE, iterations))
        try:
            return cls(derived)
        finally:
            secure_zero(derived)

    @classmethod
    def for_password(
        cls,
        password: str,
        security: SecurityConfig,
        salt: Optional[bytes] = None,
    ) -> tuple["AesEncryptor", bytes]:
        """
        Derive a key with the configured PBKDF2 round count.

        A salt of ``security.salt_length`` bytes is generated when none is
        given. Store the returned salt; it is needed to derive the key again.

        Returns:
            (encryptor, salt)
        """
        if salt is None:
            salt = generate_salt(security.salt_length)
        return cls.derive_from_password(password, salt, security.pbkdf2_iterations), salt

    @property
    def is_wiped(self) -> bool:
        """Check if the key has been erased."""
        return self._wiped

    def key_bytes(self) -> bytes:
        """
        Return a copy of the raw key (used only for key wrapping).

        Raises:
            KeyWiped: If the key has been erased
        """
        self._ensure_live()
        return bytes(self._key)

    def encrypt(self, plaintext: bytes) -> EncryptedBlob:
        """
        Encrypt plaintext using AES-256-GCM.

        Args:
            plaintext: Data to encrypt (can be empty)

        Returns:
            EncryptedBlob with base64 ciphertext+tag and nonce
        """
        self._ensure_live()
        nonce = secrets.token_bytes(AES_NONCE_SIZE)
        ciphertext = AESGCM(self._key).encrypt(nonce, plaintext, None)

        return EncryptedBlob(
            ciphertext=b64encode_text(ciphertext),
            nonce=b64encode_text(nonce),
            algorithm=ALGORITHM_TAG,
        )

    def decrypt(self, blob: EncryptedBlob) -> bytes:
        """
        Decrypt a blob with integrity verification.

        Returns:
            Decrypted plaintext bytes

        Raises:
            UnsupportedAlgorithm: If the blob's tag is not AES-256-GCM
            DecodeFailure: If nonce or ciphertext is not valid base64,
                or the nonce is not 12 bytes
            AuthenticationFailure: If the tag check fails
        """
        self._ensure_live()
        if blob.algorithm != ALGORITHM_TAG:
            raise UnsupportedAlgorithm(blob.algorithm)

        nonce = b64decode_text(blob.nonce, "nonce")
        ciphertext = b64decode_text(blob.ciphertext, "ciphertext")
        if len(nonce) != AES_NONCE_SIZE:
            raise DecodeFailure(f"Nonce must be exactly {AES_NONCE_SIZE} bytes")
        if len(ciphertext) < AES_TAG_SIZE:
            raise AuthenticationFailure("Ciphertext too short (missing authentication tag)")

        try:
            return AESGCM(self._key).decrypt(nonce, ciphertext, None)
        except InvalidTag as exc:
            logger.warning("AES-GCM authentication failed")
            raise AuthenticationFailure("AES-GCM authentication failed") from exc

    def encrypt_string(self, plaintext: str) -> EncryptedBlob:
        return self.encrypt(plaintext.encode("utf-8"))

    def decrypt_string(self, blob: EncryptedBlob) -> str:
        """
        Decrypt a blob and decode it as UTF-8.

        Raises:
            Utf8Failure: If the plaintext is not valid UTF-8
        """
        return decode_utf8(self.decrypt(blob))

    def wipe(self) -> None:
        """Overwrite the key with zeros. Idempotent."""
        if self._wiped:
            return
        secure_zero(self._key)
        self._wiped = True

    def _ensure_live(self) -> None:
        if self._wiped:
            raise KeyWiped("AES key has been wiped")

    def __enter__(self) -> "AesEncryptor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        """Context manager exit - always wipe."""
        self.wipe()

    def __del__(self) -> None:
        """Destructor - attempt to wipe."""
        try:
            self.wipe()
        except Exception:
            pass

    def __copy__(self) -> "AesEncryptor":
        raise TypeError("AesEncryptor key material cannot be copied")

    def __deepcopy__(self, memo: dict) -> "AesEncryptor":
        raise TypeError("AesEncryptor key material cannot be copied")

    def __reduce__(self) -> Any:
        raise TypeError("AesEncryptor key material cannot be pickled")

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        state = "wiped" if self._wiped else "live"
        return f"AesEncryptor({ALGORITHM_TAG}, {state})"


def decode_utf8(data: bytes) -> str:
    """
    Decode decrypted bytes as UTF-8.

    Raises:
        Utf8Failure: If data is not valid UTF-8
    """
    try:
        return data.decode("utf-8")
    except UnicodeDecodeError as exc:
        raise Utf8Failure("Decrypted data is not valid UTF-8") from exc
