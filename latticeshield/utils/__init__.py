"""
Utils module - Utility functions and helpers.

This module contains input validation used throughout LatticeShield.
"""

from latticeshield.utils.validators import (
    decode_base64_key,
    decode_private_key,
    is_pem,
    validate_plaintext,
)

__all__ = [
    "decode_base64_key",
    "decode_private_key",
    "is_pem",
    "validate_plaintext",
]
