"""
Memory Zeroization Utilities
============================

Best-effort wiping of secret buffers (KEM shared secrets, derived
AEAD keys) as soon as a seal/open call is done with them.

Key Concepts:
- Zeroization: Overwriting memory with zeros/patterns
- Guard: Automatic cleanup on scope exit, normal or exceptional

WARNING:
- Python's memory model doesn't guarantee secure erasure
- Immutable bytes objects returned by libraries cannot be wiped;
  only the bytearray copies made here can
"""

from __future__ import annotations

import ctypes
from contextlib import contextmanager
from typing import Final, Iterator

# Zeroization constants
WIPE_PASSES: Final[int] = 3


def secure_zero(data: bytearray | memoryview) -> None:
    """
    Securely zero a byte buffer.

    Uses ctypes for direct memory access on bytearrays, with a
    Python-level loop for writable memoryviews.

    Args:
        data: Mutable byte buffer to zero

    Raises:
        TypeError: If the buffer is not writable

    Security Notes:
        - This is best-effort; Python may have copies
        - Call immediately after use, before GC
    """
    if len(data) == 0:
        return

    if isinstance(data, memoryview):
        if data.readonly:
            raise TypeError("Cannot zero a read-only buffer")
        for i in range(len(data)):
            data[i] = 0
        return

    if not isinstance(data, bytearray):
        raise TypeError("secure_zero requires a bytearray or memoryview")

    addr = ctypes.addressof((ctypes.c_char * len(data)).from_buffer(data))

    # Multi-pass wipe, ending on zeros
    for pattern in (0x00, 0xFF, 0x00)[:WIPE_PASSES]:
        ctypes.memset(addr, pattern, len(data))


@contextmanager
def ZeroizeContext(*buffers: bytearray) -> Iterator[None]:
    """
    Context manager that zeroizes buffers on exit.

    Always zeroizes, whether exit is normal or exceptional.

    Usage:
        secret = bytearray(shared_secret)
        key = bytearray(32)

        with ZeroizeContext(secret, key):
            key[:] = derive(secret)
            encrypt(data, key, nonce)
        # secret and key are now zeroed
    """
    try:
        yield
    finally:
        for buf in buffers:
            secure_zero(buf)
