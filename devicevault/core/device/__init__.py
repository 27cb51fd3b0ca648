"""
DeviceVault Device Identity Module
==================================

Encrypted storage of device fingerprints and hardware info.

Security Features:
- Envelope encryption of every identity field
- Records bound to the manager's RSA key pair
- Decryption only on demand
"""

from devicevault.core.device.secure_device import (
    SecureDevice,
    SecureDeviceManager,
)

__all__ = [
    "SecureDevice",
    "SecureDeviceManager",
]
