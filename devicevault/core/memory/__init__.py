"""
DeviceVault Memory Security Module
==================================

Explicit zeroization of key material.

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from devicevault.core.memory.zeroization import (
    secure_zero,
    zeroize_on_exception,
    ZeroizeContext,
)

__all__ = [
    "secure_zero",
    "zeroize_on_exception",
    "ZeroizeContext",
]
