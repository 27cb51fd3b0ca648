"""
Memory Zeroization Utilities
============================

Explicit wiping of key buffers.

Security Properties:
- Explicit zeroization (no GC reliance)
- Exception-safe cleanup via context manager and decorator

Limitations:
- Only mutable buffers (bytearray, memoryview) can be wiped
- Immutable bytes objects handed out by libraries cannot be erased;
  keep their lifetime short
"""

from __future__ import annotations

import ctypes
import functools
import logging
from contextlib import contextmanager
from typing import Any, Callable, Final, Iterator, TypeVar

logger = logging.getLogger(__name__)

# Fill pattern for each pass
WIPE_PATTERNS: Final[tuple[int, ...]] = (0x00, 0xFF, 0x00)


def secure_zero(data: bytearray | memoryview) -> None:
    """
    Securely zero a byte buffer.

    Uses ctypes memset for bytearrays, with fallback to Python-level
    zeroing.

    Args:
        data: Mutable byte buffer to zero

    Security Notes:
        - This is best-effort; Python may hold copies elsewhere
        - Buffer must be mutable (bytearray, not bytes)
    """
    size = len(data)
    if size == 0:
        return

    if isinstance(data, memoryview):
        data[:] = bytes(size)
        return

    try:
        addr = ctypes.addressof((ctypes.c_char * size).from_buffer(data))
        for pattern in WIPE_PATTERNS:
            ctypes.memset(addr, pattern, size)
    except (TypeError, ValueError, BufferError):
        # Buffer is exported or not addressable
        logger.debug("ctypes wipe unavailable, zeroing at Python level")
        for i in range(size):
            data[i] = 0


T = TypeVar("T")


def zeroize_on_exception(
    *buffers: bytearray,
) -> Callable[[Callable[..., T]], Callable[..., T]]:
    """
    Decorator that zeroizes buffers if the wrapped call raises.

    Usage:
        key = bytearray(32)

        @zeroize_on_exception(key)
        def fill():
            key[:] = derive()
            validate(key)

        fill()
    """
    def decorator(func: Callable[..., T]) -> Callable[..., T]:
        @functools.wraps(func)
        def wrapper(*args: Any, **kwargs: Any) -> T:
            try:
                return func(*args, **kwargs)
            except BaseException:
                for buf in buffers:
                    secure_zero(buf)
                raise
        return wrapper
    return decorator


@contextmanager
def ZeroizeContext(*buffers: bytearray) -> Iterator[None]:
    """
    Context manager that zeroizes buffers on exit.

    Always zeroizes, whether exit is normal or exceptional.

    Usage:
        unwrapped = bytearray(rsa.decrypt_aes_key(wrapped))
        with ZeroizeContext(unwrapped):
            aes = AesEncryptor.from_bytes(unwrapped)
            ...
    """
    try:
        yield
    finally:
        for buf in buffers:
            secure_zero(buf)
