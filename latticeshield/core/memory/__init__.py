"""
LatticeShield Memory Security Module
====================================

Provides explicit zeroization of secret buffers.

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from latticeshield.core.memory.zeroization import (
    secure_zero,
    ZeroizeContext,
)

__all__ = [
    "secure_zero",
    "ZeroizeContext",
]
