"""
AES-256-GCM encryptor tests: round trips, tamper detection, password
derivation and key hygiene.
"""

import base64
import copy
import hashlib
import pickle
from dataclasses import replace

import pytest
from hypothesis import given, strategies as st

from devicevault.core.crypto.aes_gcm import (
    AES_KEY_SIZE,
    AES_NONCE_SIZE,
    ALGORITHM_TAG,
    AesEncryptor,
    EncryptedBlob,
)
from devicevault.core.config import SecurityConfig
from devicevault.core.crypto.kdf import derive_key_pbkdf2, generate_salt, hash_sha256
from devicevault.core.errors import (
    AuthenticationFailure,
    DecodeFailure,
    ErrorKind,
    InvalidKeyLength,
    KeyWiped,
    UnsupportedAlgorithm,
    Utf8Failure,
)


def _flip_bit(text: str, bit: int) -> str:
    raw = bytearray(base64.b64decode(text))
    raw[(bit // 8) % len(raw)] ^= 1 << (bit % 8)
    return base64.b64encode(bytes(raw)).decode("ascii")


@given(st.binary(max_size=4096))
def test_round_trip_bytes(plaintext):
    with AesEncryptor.generate() as aes:
        assert aes.decrypt(aes.encrypt(plaintext)) == plaintext


@given(st.text())
def test_round_trip_string(plaintext):
    with AesEncryptor.generate() as aes:
        assert aes.decrypt_string(aes.encrypt_string(plaintext)) == plaintext


def test_blob_shape():
    with AesEncryptor.generate() as aes:
        blob = aes.encrypt(b"Hello, World!")

    assert blob.algorithm == ALGORITHM_TAG == "AES-256-GCM"
    assert len(base64.b64decode(blob.nonce)) == AES_NONCE_SIZE
    # ciphertext + 16-byte tag
    assert len(base64.b64decode(blob.ciphertext)) == len(b"Hello, World!") + 16


def test_nonce_is_fresh_per_call():
    with AesEncryptor.generate() as aes:
        nonces = {aes.encrypt(b"same").nonce for _ in range(50)}
    assert len(nonces) == 50


@given(bit=st.integers(min_value=0, max_value=8 * (11 + 16) - 1))
def test_ciphertext_bit_flip_is_detected(bit):
    with AesEncryptor.generate() as aes:
        blob = aes.encrypt(b"fingerprint")
        tampered = replace(blob, ciphertext=_flip_bit(blob.ciphertext, bit))
        with pytest.raises(AuthenticationFailure):
            aes.decrypt(tampered)


@given(bit=st.integers(min_value=0, max_value=8 * AES_NONCE_SIZE - 1))
def test_nonce_bit_flip_is_detected(bit):
    with AesEncryptor.generate() as aes:
        blob = aes.encrypt(b"fingerprint")
        tampered = replace(blob, nonce=_flip_bit(blob.nonce, bit))
        with pytest.raises(AuthenticationFailure):
            aes.decrypt(tampered)


def test_wrong_key_fails_authentication():
    with AesEncryptor.generate() as a, AesEncryptor.generate() as b:
        blob = a.encrypt(b"secret")
        with pytest.raises(AuthenticationFailure):
            b.decrypt(blob)


def test_unsupported_algorithm_is_rejected_first():
    with AesEncryptor.generate() as aes:
        blob = replace(aes.encrypt(b"x"), algorithm="AES-128-CBC", nonce="!!!")
        with pytest.raises(UnsupportedAlgorithm) as exc_info:
            aes.decrypt(blob)
    assert exc_info.value.algorithm == "AES-128-CBC"
    assert exc_info.value.kind is ErrorKind.UNSUPPORTED_ALGORITHM


@pytest.mark.parametrize("field", ["nonce", "ciphertext"])
def test_bad_base64_is_decode_failure(field):
    with AesEncryptor.generate() as aes:
        blob = replace(aes.encrypt(b"x"), **{field: "not base64 ###"})
        with pytest.raises(DecodeFailure):
            aes.decrypt(blob)


def test_short_nonce_is_decode_failure():
    with AesEncryptor.generate() as aes:
        blob = replace(aes.encrypt(b"x"), nonce=base64.b64encode(b"\x00" * 8).decode())
        with pytest.raises(DecodeFailure):
            aes.decrypt(blob)


def test_truncated_ciphertext_is_authentication_failure():
    with AesEncryptor.generate() as aes:
        blob = replace(aes.encrypt(b"x"), ciphertext=base64.b64encode(b"short").decode())
        with pytest.raises(AuthenticationFailure):
            aes.decrypt(blob)


def test_non_utf8_plaintext_is_utf8_failure():
    with AesEncryptor.generate() as aes:
        blob = aes.encrypt(b"\xff\xfe\xfd")
        with pytest.raises(Utf8Failure):
            aes.decrypt_string(blob)


@pytest.mark.parametrize("length", [0, 16, 31, 33, 64])
def test_from_bytes_rejects_wrong_length(length):
    with pytest.raises(InvalidKeyLength) as exc_info:
        AesEncryptor.from_bytes(b"\x01" * length)
    assert exc_info.value.actual == length
    assert exc_info.value.expected == AES_KEY_SIZE


def test_from_bytes_interoperates_with_key_bytes():
    with AesEncryptor.generate() as original:
        blob = original.encrypt_string("payload")
        with AesEncryptor.from_bytes(original.key_bytes()) as clone:
            assert clone.decrypt_string(blob) == "payload"


def test_password_derivation_is_deterministic():
    salt = generate_salt()
    first = AesEncryptor.derive_from_password("my_secure_password", salt)
    second = AesEncryptor.derive_from_password("my_secure_password", salt)

    assert first.key_bytes() == second.key_bytes()
    blob = first.encrypt_string("Sensitive data")
    assert second.decrypt_string(blob) == "Sensitive data"


def test_password_derivation_matches_pbkdf2_sha256():
    salt = b"0123456789abcdef"
    expected = hashlib.pbkdf2_hmac("sha256", b"pw", salt, 100_000, 32)

    assert derive_key_pbkdf2("pw", salt) == expected
    with AesEncryptor.derive_from_password("pw", salt) as aes:
        assert aes.key_bytes() == expected


def test_different_salt_cannot_decrypt():
    a = AesEncryptor.derive_from_password("pw", generate_salt())
    b = AesEncryptor.derive_from_password("pw", generate_salt())
    with pytest.raises(AuthenticationFailure):
        b.decrypt(a.encrypt(b"data"))


def test_generate_salt_is_random_16_bytes():
    assert len(generate_salt()) == 16
    assert generate_salt() != generate_salt()


def test_hash_sha256_of_test_data():
    digest = hash_sha256(b"test data")
    assert len(digest) == 64
    assert all(c in "0123456789abcdef" for c in digest)
    assert digest == hashlib.sha256(b"test data").hexdigest()


def test_for_password_follows_security_config():
    security = SecurityConfig(pbkdf2_iterations=150_000, salt_length=32)
    aes, salt = AesEncryptor.for_password("pw", security)

    assert len(salt) == 32
    assert aes.key_bytes() == hashlib.pbkdf2_hmac("sha256", b"pw", salt, 150_000, 32)

    again, same_salt = AesEncryptor.for_password("pw", security, salt)
    assert same_salt == salt
    assert again.decrypt_string(aes.encrypt_string("secret")) == "secret"


def test_wipe_zeroes_key_and_blocks_use():
    aes = AesEncryptor.generate()
    blob = aes.encrypt(b"x")
    aes.wipe()

    assert aes.is_wiped
    assert aes._key == bytearray(AES_KEY_SIZE)
    with pytest.raises(KeyWiped):
        aes.encrypt(b"y")
    with pytest.raises(KeyWiped):
        aes.decrypt(blob)
    with pytest.raises(KeyWiped):
        aes.key_bytes()
    aes.wipe()  # idempotent


def test_context_manager_wipes_on_error():
    aes = AesEncryptor.generate()
    with pytest.raises(RuntimeError):
        with aes:
            raise RuntimeError("boom")
    assert aes.is_wiped


def test_encryptor_cannot_be_copied_or_pickled():
    with AesEncryptor.generate() as aes:
        with pytest.raises(TypeError):
            copy.copy(aes)
        with pytest.raises(TypeError):
            copy.deepcopy(aes)
        with pytest.raises(TypeError):
            pickle.dumps(aes)


def test_repr_hides_key():
    with AesEncryptor.generate() as aes:
        key_hex = aes.key_bytes().hex()
        assert key_hex not in repr(aes)
        assert "live" in repr(aes)


def test_blob_json_round_trip():
    with AesEncryptor.generate() as aes:
        blob = aes.encrypt(b"data")
    assert EncryptedBlob.from_json(blob.to_json()) == blob
    assert EncryptedBlob.from_dict(blob.to_dict()) == blob


@pytest.mark.parametrize(
    "text",
    [
        "not json",
        "[]",
        '{"ciphertext": "a", "nonce": "b"}',
        '{"ciphertext": 1, "nonce": "b", "algorithm": "AES-256-GCM"}',
    ],
)
def test_blob_from_malformed_json(text):
    with pytest.raises(DecodeFailure):
        EncryptedBlob.from_json(text)
