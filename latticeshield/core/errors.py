"""
Cryptographic Error Taxonomy
============================

Closed set of error codes for every failure the protocol layer can report.

Every public operation raises CryptoError (or CompositeCryptoError when
both the quantum-safe and the classical path failed). Library exceptions
are caught at the provider boundary and re-raised as one of these codes.

Message Policy:
    - message: safe for external callers (algorithm/stage context only)
    - detail: diagnostic text for logs, may contain library output
    - Never put key material or shared secrets in either
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Final, Optional


class ErrorCode(str, Enum):
    """Error codes reported across the service boundary."""

    LIBRARY_NOT_INITIALIZED = "LIBRARY_NOT_INITIALIZED"
    LIBRARY_LOAD_FAILED = "LIBRARY_LOAD_FAILED"
    ALGORITHM_NOT_SUPPORTED = "ALGORITHM_NOT_SUPPORTED"
    KEYPAIR_GENERATION_FAILED = "KEYPAIR_GENERATION_FAILED"
    ENCAPSULATION_FAILED = "ENCAPSULATION_FAILED"
    DECAPSULATION_FAILED = "DECAPSULATION_FAILED"
    ENCRYPTION_FAILED = "ENCRYPTION_FAILED"
    DECRYPTION_FAILED = "DECRYPTION_FAILED"
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_KEY_FORMAT = "INVALID_KEY_FORMAT"
    INVALID_DATA_FORMAT = "INVALID_DATA_FORMAT"

    @property
    def http_status(self) -> int:
        """HTTP status the web layer reports for this code."""
        return _HTTP_STATUS[self]

    @property
    def public_message(self) -> str:
        """Default caller-facing message."""
        return _PUBLIC_MESSAGES[self]

    @property
    def is_caller_error(self) -> bool:
        """True when the caller can fix the problem by changing the request."""
        return self in CALLER_ERRORS


# Caller-fixable codes: never retried, never trigger fallback
CALLER_ERRORS: Final[frozenset[ErrorCode]] = frozenset({
    ErrorCode.INVALID_INPUT,
    ErrorCode.INVALID_KEY_FORMAT,
    ErrorCode.INVALID_DATA_FORMAT,
})

_HTTP_STATUS: Final[dict[ErrorCode, int]] = {
    ErrorCode.LIBRARY_NOT_INITIALIZED: 503,
    ErrorCode.LIBRARY_LOAD_FAILED: 503,
    ErrorCode.ALGORITHM_NOT_SUPPORTED: 503,
    ErrorCode.KEYPAIR_GENERATION_FAILED: 500,
    ErrorCode.ENCAPSULATION_FAILED: 400,
    ErrorCode.DECAPSULATION_FAILED: 400,
    ErrorCode.ENCRYPTION_FAILED: 500,
    ErrorCode.DECRYPTION_FAILED: 400,
    ErrorCode.INVALID_INPUT: 400,
    ErrorCode.INVALID_KEY_FORMAT: 400,
    ErrorCode.INVALID_DATA_FORMAT: 400,
}

_PUBLIC_MESSAGES: Final[dict[ErrorCode, str]] = {
    ErrorCode.LIBRARY_NOT_INITIALIZED: "post-quantum library not initialized",
    ErrorCode.LIBRARY_LOAD_FAILED: "post-quantum library unavailable",
    ErrorCode.ALGORITHM_NOT_SUPPORTED: "required post-quantum algorithms not available",
    ErrorCode.KEYPAIR_GENERATION_FAILED: "keypair generation failed",
    ErrorCode.ENCAPSULATION_FAILED: "key encapsulation failed",
    ErrorCode.DECAPSULATION_FAILED: "key decapsulation failed",
    ErrorCode.ENCRYPTION_FAILED: "encryption failed",
    ErrorCode.DECRYPTION_FAILED: "decryption failed",
    ErrorCode.INVALID_INPUT: "invalid input",
    ErrorCode.INVALID_KEY_FORMAT: "invalid key encoding",
    ErrorCode.INVALID_DATA_FORMAT: "invalid envelope format",
}


class CryptoError(Exception):
    """
    Typed failure of a protocol operation.

    Attributes:
        code: ErrorCode classifying the failure
        message: Caller-safe description
        detail: Diagnostic text for logs only (never returned to callers)
    """

    def __init__(
        self,
        code: ErrorCode,
        message: Optional[str] = None,
        *,
        detail: Optional[str] = None,
    ) -> None:
        self.code = code
        self.message = message or code.public_message
        self.detail = detail
        super().__init__(self.message)

    @property
    def http_status(self) -> int:
        return self.code.http_status

    @property
    def is_caller_error(self) -> bool:
        return self.code.is_caller_error

    def to_dict(self) -> dict[str, Any]:
        """Serialize for external callers (detail is omitted)."""
        return {"code": self.code.value, "error": self.message}

    def __repr__(self) -> str:
        return f"CryptoError({self.code.value}, {self.message!r})"


def more_specific(first: ErrorCode, second: ErrorCode) -> ErrorCode:
    """
    Pick the more specific of two codes.

    Caller-fixable codes outrank environment codes; on a tie the first
    argument wins.
    """
    if second.is_caller_error and not first.is_caller_error:
        return second
    return first


class CompositeCryptoError(CryptoError):
    """
    Both the quantum-safe path and the classical fallback failed.

    Classified by the more specific of the two codes; both underlying
    errors are kept for the caller.
    """

    def __init__(self, quantum_safe: CryptoError, classical: CryptoError) -> None:
        self.quantum_safe = quantum_safe
        self.classical = classical
        code = more_specific(quantum_safe.code, classical.code)
        message = (
            f"quantum-safe path failed ({quantum_safe.message}); "
            f"classical fallback failed ({classical.message})"
        )
        detail = "; ".join(d for d in (quantum_safe.detail, classical.detail) if d) or None
        super().__init__(code, message, detail=detail)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["causes"] = [
            {"path": "quantum-safe", **self.quantum_safe.to_dict()},
            {"path": "classical", **self.classical.to_dict()},
        ]
        return data
