"""
Hybrid Envelope Encryption Engine
=================================

Combines AES-256-GCM for the data with RSA-PKCS1v15 for the key:

Encryption Flow:
    plaintext
        ↓ AES-256-GCM (held key, fresh nonce)
    EncryptedBlob
        ↓ RSA wrap (held key)
    (EncryptedBlob, wrapped_key)

Decryption Flow:
    wrapped_key
        ↓ RSA unwrap (private key) → transient AES key
    EncryptedBlob
        ↓ AES-256-GCM decrypt (verify integrity)
    plaintext
        ↓ transient key zeroed

Key Reuse:
    encrypt() uses the one symmetric key generated when the engine was
    built, so every wrapped key it returns unwraps to the same 32 bytes.
    seal() mints a fresh symmetric key per call instead.

WARNING:
    - Any failure = complete rejection; nothing is swallowed
"""

from __future__ import annotations

from typing import Optional

from devicevault.core.crypto.aes_gcm import (
    AesEncryptor,
    EncryptedBlob,
    decode_utf8,
)
from devicevault.core.crypto.rsa_keys import RSA_KEY_BITS, RsaEncryptor, RsaKeyPair
from devicevault.core.memory.zeroization import ZeroizeContext


class HybridEncryptor:
    """
    Envelope encryption over arbitrary strings and bytes.

    Usage:
        engine = HybridEncryptor()
        blob, wrapped_key = engine.encrypt_string("fingerprint")
        text = engine.decrypt_string(blob, wrapped_key)

        # Bring an existing key pair
        engine = HybridEncryptor.with_key_pair(RsaKeyPair.import_pem(pem))

    Security Notes:
        - The engine owns its key pair; do not share a pair between engines
        - wrapped_key only unwraps with the matching private key
    """

    __slots__ = ("_aes", "_rsa")

    def __init__(
        self,
        key_pair: Optional[RsaKeyPair] = None,
        key_bits: int = RSA_KEY_BITS,
    ) -> None:
        """
        Initialize the engine.

        Args:
            key_pair: Key pair to take ownership of. Generated when omitted.
            key_bits: RSA modulus size used when generating a pair
        """
        if key_pair is None:
            key_pair = RsaKeyPair.generate(key_bits)
        self._rsa = RsaEncryptor(key_pair)
        self._aes = AesEncryptor.generate()

    @classmethod
    def with_key_pair(cls, key_pair: RsaKeyPair) -> "HybridEncryptor":
        return cls(key_pair=key_pair)

    @property
    def key_pair(self) -> RsaKeyPair:
        return self._rsa.key_pair

    def encrypt(self, plaintext: bytes) -> tuple[EncryptedBlob, str]:
        """
        Encrypt with the held symmetric key and wrap that key.

        Returns:
            (EncryptedBlob, base64 wrapped key)
        """
        blob = self._aes.encrypt(plaintext)
        wrapped_key = self._rsa.encrypt_aes_key(self._aes.key_bytes())
        return blob, wrapped_key

    def encrypt_string(self, plaintext: str) -> tuple[EncryptedBlob, str]:
        return self.encrypt(plaintext.encode("utf-8"))

    def encrypt_blob(self, plaintext: bytes) -> EncryptedBlob:
        """
        Encrypt with the held symmetric key without wrapping it.

        The blob opens with any wrapped key previously returned by encrypt().
        """
        return self._aes.encrypt(plaintext)

    def seal(self, *plaintexts: Optional[bytes]) -> tuple[list[Optional[EncryptedBlob]], str]:
        """
        Encrypt several values under one freshly generated symmetric key.

        None entries stay None in the result. The fresh key is wrapped once
        and zeroed before returning.

        Returns:
            (blobs in argument order, base64 wrapped key)
        """
        with AesEncryptor.generate() as aes:
            blobs = [aes.encrypt(p) if p is not None else None for p in plaintexts]
            wrapped_key = self._rsa.encrypt_aes_key(aes.key_bytes())
        return blobs, wrapped_key

    def decrypt(self, blob: EncryptedBlob, wrapped_key: str) -> bytes:
        """
        Unwrap the symmetric key and decrypt.

        Raises:
            DecodeFailure: wrapped_key or blob fields are not valid base64
            UnwrapFailure: wrapped_key does not belong to this key pair
            UnsupportedAlgorithm, AuthenticationFailure: from the AES layer
        """
        unwrapped = bytearray(self._rsa.decrypt_aes_key(wrapped_key))
        with ZeroizeContext(unwrapped):
            with AesEncryptor.from_bytes(unwrapped) as transient:
                return transient.decrypt(blob)

    def decrypt_string(self, blob: EncryptedBlob, wrapped_key: str) -> str:
        """
        Decrypt to text.

        Raises:
            Utf8Failure: If the plaintext is not valid UTF-8
        """
        return decode_utf8(self.decrypt(blob, wrapped_key))

    def public_key_pem(self) -> str:
        return self._rsa.public_key_pem()

    def private_key_pem(self) -> str:
        return self._rsa.private_key_pem()

    def wipe(self) -> None:
        """Erase the held symmetric key and drop the private key."""
        self._aes.wipe()
        self._rsa.wipe()

    def __enter__(self) -> "HybridEncryptor":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.wipe()

    def __copy__(self) -> "HybridEncryptor":
        raise TypeError("HybridEncryptor key material cannot be copied")

    def __deepcopy__(self, memo: dict) -> "HybridEncryptor":
        raise TypeError("HybridEncryptor key material cannot be copied")

    def __repr__(self) -> str:
        return f"HybridEncryptor(aes={self._aes!r}, rsa={self._rsa.key_pair!r})"
