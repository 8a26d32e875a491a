"""
Validation Utilities
====================

Input validation for caller-supplied data and keys.

Every check runs before any cryptographic call and fails with a
caller-fixable CryptoError code (INVALID_INPUT or INVALID_KEY_FORMAT).
"""

from __future__ import annotations

import base64
import binascii
from typing import Any, Optional

from latticeshield.core.errors import CryptoError, ErrorCode

PEM_PREFIX = "-----BEGIN"


def validate_plaintext(
    value: Any,
    max_bytes: Optional[int] = None,
    field_name: str = "data",
) -> bytes:
    """
    Validate plaintext and return its UTF-8 encoding.

    Args:
        value: The caller's data; must be a non-empty string
        max_bytes: Optional upper bound on the encoded size
        field_name: Name of the field for error messages

    Raises:
        CryptoError(INVALID_INPUT): If validation fails
    """
    if not isinstance(value, str):
        raise CryptoError(ErrorCode.INVALID_INPUT, f"{field_name} must be a string")

    if not value:
        raise CryptoError(ErrorCode.INVALID_INPUT, f"{field_name} cannot be empty")

    try:
        encoded = value.encode("utf-8")
    except UnicodeEncodeError:
        raise CryptoError(ErrorCode.INVALID_INPUT, f"{field_name} is not valid text") from None

    if max_bytes is not None and len(encoded) > max_bytes:
        raise CryptoError(
            ErrorCode.INVALID_INPUT,
            f"{field_name} must be at most {max_bytes} bytes",
        )

    return encoded


def decode_base64_key(value: Any, field_name: str = "public key") -> bytes:
    """
    Decode a base64 key.

    Whitespace (line wrapping from form posts) is ignored.

    Raises:
        CryptoError(INVALID_KEY_FORMAT): If the value is missing or not base64
    """
    if not isinstance(value, str) or not value.strip():
        raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, f"{field_name} must be a non-empty base64 string")

    compact = "".join(value.split())
    try:
        decoded = base64.b64decode(compact, validate=True)
    except (binascii.Error, ValueError):
        raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, f"{field_name} is not valid base64") from None

    if not decoded:
        raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, f"{field_name} is empty")
    return decoded


def is_pem(value: Any) -> bool:
    return isinstance(value, str) and value.lstrip().startswith(PEM_PREFIX)


def decode_private_key(value: Any) -> bytearray:
    """
    Decode a private key supplied as base64 or PEM text.

    PEM text is passed through as bytes for the classical scheme to parse.
    The result is a bytearray so the caller can wipe it.

    Raises:
        CryptoError(INVALID_KEY_FORMAT): If the value is missing or malformed
    """
    if is_pem(value):
        try:
            return bytearray(value.strip().encode("ascii"))
        except UnicodeEncodeError:
            raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, "private key PEM is not ASCII") from None
    return bytearray(decode_base64_key(value, field_name="private key"))
