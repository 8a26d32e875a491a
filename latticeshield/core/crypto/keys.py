"""
Key Material Types
==================

Security levels and the keypair value handed to callers.

A KeyPair is created by the engine (or the classical fallback) and
ownership passes entirely to the caller; nothing here keeps a reference.
"""

from __future__ import annotations

import base64
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from latticeshield.core.errors import CryptoError, ErrorCode


class SecurityLevel(str, Enum):
    """Named KEM parameter sets."""

    STANDARD = "standard"
    HIGH = "high"

    @classmethod
    def parse(cls, value: Any) -> "SecurityLevel":
        """
        Parse a caller-supplied level.

        Raises:
            CryptoError(INVALID_INPUT): If the value is not a known level
        """
        if isinstance(value, cls):
            return value
        if not isinstance(value, str) or not value:
            raise CryptoError(ErrorCode.INVALID_INPUT, "security level must be a non-empty string")
        try:
            return cls(value.strip().lower())
        except ValueError:
            supported = ", ".join(level.value for level in cls)
            raise CryptoError(
                ErrorCode.INVALID_INPUT,
                f"unsupported security level: {value!r} (supported: {supported})",
            ) from None


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True, slots=True)
class KeyPair:
    """
    Immutable keypair returned to the caller.

    Attributes:
        public_key: Raw public key bytes (KEM public key or RSA SPKI DER)
        private_key: Raw private key bytes (KEM secret key or RSA PKCS#8 DER)
        algorithm: KEM id (e.g. ML-KEM-768) or classical scheme id
        security_level: Level the keypair was generated for
        generated_at: ISO-8601 UTC timestamp
        fallback_used: True when produced by the classical scheme
    """

    public_key: bytes
    private_key: bytes
    algorithm: str
    security_level: SecurityLevel
    generated_at: str = field(default_factory=_utc_now)
    fallback_used: bool = False

    @property
    def key_sizes(self) -> dict[str, int]:
        return {"publicKey": len(self.public_key), "privateKey": len(self.private_key)}

    def to_dict(self) -> dict[str, Any]:
        """Wire form with base64 keys."""
        return {
            "publicKey": base64.b64encode(self.public_key).decode("ascii"),
            "privateKey": base64.b64encode(self.private_key).decode("ascii"),
            "algorithm": self.algorithm,
            "securityLevel": self.security_level.value,
            "keySize": self.key_sizes,
            "generatedAt": self.generated_at,
            "fallbackUsed": self.fallback_used,
        }

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return (
            f"KeyPair({self.algorithm}, level={self.security_level.value}, "
            f"pk_len={len(self.public_key)}, fallback={self.fallback_used})"
        )
