"""
Pytest configuration - Hypothesis profiles and shared fixtures.

RSA key generation is slow, so one key pair per session is generated and
exported to PEM; tests import their own pair from it because pairs cannot
be copied.
"""

import base64
import os

import pytest
from cryptography.hazmat.primitives.asymmetric import padding
from hypothesis import HealthCheck, Verbosity, settings

from devicevault.core.config import DatabaseConfig, PathConfig, SecurityConfig, VaultConfig
from devicevault.core.crypto.aes_gcm import AES_KEY_SIZE
from devicevault.core.crypto.hybrid_engine import HybridEncryptor
from devicevault.core.crypto.rsa_keys import RsaKeyPair
from devicevault.core.device.secure_device import SecureDeviceManager
from devicevault.db.store import SecureDeviceStore

settings.register_profile(
    "default",
    max_examples=100,
    verbosity=Verbosity.normal,
    deadline=None,  # crypto operations can be slow
    suppress_health_check=[HealthCheck.too_slow],
)
settings.register_profile("ci", max_examples=50, deadline=None)
settings.register_profile("dev", max_examples=10, verbosity=Verbosity.verbose, deadline=None)
settings.load_profile(os.getenv("HYPOTHESIS_PROFILE", "default"))


@pytest.fixture(scope="session")
def rsa_pem():
    """PKCS#8 PEM of a session-wide RSA-2048 key pair."""
    with RsaKeyPair.generate() as pair:
        return pair.export_private_pem()


@pytest.fixture(scope="session")
def other_rsa_pem():
    """A second, unrelated key pair."""
    with RsaKeyPair.generate() as pair:
        return pair.export_private_pem()


@pytest.fixture(scope="session")
def session_hybrid(rsa_pem):
    """Shared engine for property tests (read-only use)."""
    return HybridEncryptor.with_key_pair(RsaKeyPair.import_pem(rsa_pem))


@pytest.fixture
def key_pair(rsa_pem):
    with RsaKeyPair.import_pem(rsa_pem) as pair:
        yield pair


@pytest.fixture
def vault_config(tmp_path):
    return VaultConfig(
        paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
        database=DatabaseConfig(db_path=tmp_path / "devices.db"),
    )


@pytest.fixture
def store(vault_config):
    store = SecureDeviceStore.from_config(vault_config)
    store.initialize()
    return store


@pytest.fixture
def manager(store, rsa_pem, vault_config):
    with SecureDeviceManager(store, RsaKeyPair.import_pem(rsa_pem), vault_config) as mgr:
        yield mgr


@pytest.fixture
def held_key_manager(store, rsa_pem, tmp_path):
    config = VaultConfig(
        paths=PathConfig(data_dir=tmp_path / "data", log_dir=tmp_path / "logs"),
        security=SecurityConfig(fresh_key_per_device=False),
        database=DatabaseConfig(db_path=tmp_path / "devices.db"),
    )
    with SecureDeviceManager(store, RsaKeyPair.import_pem(rsa_pem), config) as mgr:
        yield mgr


@pytest.fixture
def unwrap_rejected_by():
    """
    Draw wrapped keys until one that a foreign pair cannot unwrap to 32 bytes.

    With implicit rejection a wrong-key PKCS1v15 decryption returns
    pseudo-random bytes of pseudo-random length, so roughly one wrapping in
    246 decrypts to a 32-byte value. The helper skips those using the raw
    library call, leaving the layer under test to reject the rest.
    """
    def pick(wrap, pair):
        for _ in range(20):
            wrapped = wrap()
            try:
                raw = pair.private_key().decrypt(base64.b64decode(wrapped), padding.PKCS1v15())
            except ValueError:
                return wrapped
            if len(raw) != AES_KEY_SIZE:
                return wrapped
        pytest.fail("every wrapped key decrypted to 32 bytes under the foreign pair")

    return pick
