"""
Database module - persistence for secure device records.

Security Considerations:
- Only ciphertext, wrapped keys and public keys are stored
- No plaintext identifiers or private keys in the database
"""

from devicevault.db.store import SecureDeviceStore, SecureDeviceRow, SCHEMA_VERSION

__all__ = ["SecureDeviceStore", "SecureDeviceRow", "SCHEMA_VERSION"]
