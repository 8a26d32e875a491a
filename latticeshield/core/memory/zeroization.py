"""
Memory Zeroization Utilities
============================

Explicit wiping of secret buffers (shared secrets, derived keys,
decoded private keys) on every exit path.

Security Notes:
- Best-effort: Python may hold copies of immutable bytes
- Keep secrets in bytearray so they can be overwritten in place
- Wipe in finally blocks, never rely on GC timing
"""

from __future__ import annotations

import ctypes
from contextlib import contextmanager
from typing import Iterator, Optional


def secure_zero(data: Optional[bytearray | memoryview]) -> None:
    """
    Securely zero a mutable byte buffer.

    Uses ctypes.memset on bytearrays, with fallback to Python-level
    zeroing. None and immutable bytes are ignored.

    Args:
        data: Mutable byte buffer to zero
    """
    if data is None or isinstance(data, bytes) or len(data) == 0:
        return

    try:
        if isinstance(data, memoryview):
            for i in range(len(data)):
                data[i] = 0
        else:
            addr = ctypes.addressof(
                (ctypes.c_char * len(data)).from_buffer(data)
            )
            ctypes.memset(addr, 0, len(data))
    except (TypeError, ValueError, BufferError):
        # Exported or read-only views: zero element by element
        for i in range(len(data)):
            data[i] = 0


@contextmanager
def ZeroizeContext(*buffers: Optional[bytearray]) -> Iterator[None]:
    """
    Context manager that zeroizes buffers on exit.

    Always zeroizes, whether exit is normal or exceptional.

    Usage:
        shared_secret = provider.decapsulate(...)
        key = bytearray(hashlib.sha256(shared_secret).digest())

        with ZeroizeContext(shared_secret, key):
            plaintext = cipher.open(key, ...)
        # shared_secret and key are now zeroed
    """
    try:
        yield
    finally:
        for buf in buffers:
            secure_zero(buf)
