"""
DeviceVault Error Taxonomy
==========================

Closed set of failures raised by the crypto core and the secure device
manager.

Every exception class carries exactly one ErrorKind, so callers can handle
failures exhaustively by kind instead of matching message strings.

Security Notes:
    - Messages never contain key bytes or plaintext
    - Decryption failures must be treated as "identity unrecoverable";
      callers must not try to infer whether the key was wrong or the data
      was corrupted
"""

from __future__ import annotations

from enum import Enum, auto
from typing import ClassVar


class ErrorKind(Enum):
    """Tag for every failure DeviceVault can raise."""
    INVALID_KEY_LENGTH = auto()
    PEM_PARSE_FAILURE = auto()
    KEY_GENERATION_FAILURE = auto()
    DECODE_FAILURE = auto()
    UNSUPPORTED_ALGORITHM = auto()
    AUTHENTICATION_FAILURE = auto()
    UNWRAP_FAILURE = auto()
    UTF8_FAILURE = auto()
    KEY_WIPED = auto()
    NOT_FOUND = auto()


class DeviceVaultError(Exception):
    """Base class for all DeviceVault failures."""

    kind: ClassVar[ErrorKind]

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message

    def __repr__(self) -> str:
        return f"{type(self).__name__}(kind={self.kind.name}, message={self.message!r})"


class CryptoError(DeviceVaultError):
    """Base class for cryptographic failures."""


class InvalidKeyLength(CryptoError):
    """Symmetric key material is not exactly 32 bytes."""
    kind = ErrorKind.INVALID_KEY_LENGTH

    def __init__(self, expected: int, actual: int) -> None:
        super().__init__(f"Invalid AES key length: expected {expected}, got {actual}")
        self.expected = expected
        self.actual = actual


class PemParseFailure(CryptoError):
    """PEM text could not be parsed as a PKCS#8 RSA private key."""
    kind = ErrorKind.PEM_PARSE_FAILURE


class KeyGenerationFailure(CryptoError):
    """RSA key generation failed. Not retried."""
    kind = ErrorKind.KEY_GENERATION_FAILURE


class DecodeFailure(CryptoError):
    """Text or base64 decoding of stored material failed."""
    kind = ErrorKind.DECODE_FAILURE


class UnsupportedAlgorithm(CryptoError):
    """Encrypted blob carries an algorithm tag other than AES-256-GCM."""
    kind = ErrorKind.UNSUPPORTED_ALGORITHM

    def __init__(self, algorithm: str) -> None:
        super().__init__(f"Unsupported encryption algorithm: {algorithm!r}")
        self.algorithm = algorithm


class AuthenticationFailure(CryptoError):
    """GCM tag verification failed (tampered data or wrong key)."""
    kind = ErrorKind.AUTHENTICATION_FAILURE


class UnwrapFailure(CryptoError):
    """A wrapped key could not be recovered with the held private key."""
    kind = ErrorKind.UNWRAP_FAILURE


class Utf8Failure(CryptoError):
    """Decrypted bytes are not valid UTF-8 where text was expected."""
    kind = ErrorKind.UTF8_FAILURE


class KeyWiped(CryptoError):
    """Key material has already been erased and cannot be used."""
    kind = ErrorKind.KEY_WIPED


class NotFound(DeviceVaultError):
    """No secure device with the given id exists."""
    kind = ErrorKind.NOT_FOUND

    def __init__(self, device_id: str) -> None:
        super().__init__(f"Secure device not found: {device_id}")
        self.device_id = device_id


__all__ = [
    "ErrorKind",
    "DeviceVaultError",
    "CryptoError",
    "InvalidKeyLength",
    "PemParseFailure",
    "KeyGenerationFailure",
    "DecodeFailure",
    "UnsupportedAlgorithm",
    "AuthenticationFailure",
    "UnwrapFailure",
    "Utf8Failure",
    "KeyWiped",
    "NotFound",
]
