"""
AES-256-GCM Authenticated Encryption
====================================

Seals and opens envelope payloads under a key derived from the KEM
shared secret.

Security Properties:
    - 256-bit key
    - 96-bit nonce, freshly drawn from the CSPRNG on every seal
    - 128-bit authentication tag, carried separately from the ciphertext
    - Associated data binds the KEM algorithm id

WARNING:
    - Never reuse (key, nonce) pairs
    - Tag is verified before any plaintext is returned
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Final, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from latticeshield.core.errors import CryptoError, ErrorCode

AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits (NIST recommended for GCM)
AES_TAG_SIZE: Final[int] = 16  # 128 bits
CIPHER_ID: Final[str] = "AES-256-GCM"


@dataclass(frozen=True, slots=True)
class SealedData:
    """
    Immutable result of AES-GCM sealing.

    Attributes:
        ciphertext: Encrypted payload without the tag
        nonce: The 12-byte nonce used for this seal
        tag: The 16-byte authentication tag
    """

    ciphertext: bytes
    nonce: bytes
    tag: bytes

    def __repr__(self) -> str:
        return f"SealedData(ciphertext_len={len(self.ciphertext)})"


class AesGcmCipher:
    """
    AES-256-GCM with per-call random nonces.

    Usage:
        cipher = AesGcmCipher()
        sealed = cipher.seal(key, plaintext, aad=b"ML-KEM-768")
        plaintext = cipher.open(key, sealed.ciphertext, sealed.nonce, sealed.tag, aad=b"ML-KEM-768")

    The key is never generated or kept here; the caller derives and wipes it.
    """

    __slots__ = ()

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a cryptographically secure random nonce.

        96-bit random nonces have negligible collision probability for
        up to 2^32 seals under the same key; each derived key is used once.
        """
        return secrets.token_bytes(AES_NONCE_SIZE)

    def seal(
        self,
        key: bytes | bytearray,
        plaintext: bytes,
        aad: Optional[bytes] = None,
    ) -> SealedData:
        """
        Encrypt plaintext and split off the authentication tag.

        Raises:
            CryptoError(ENCRYPTION_FAILED): On bad key size or cipher failure
        """
        if len(key) != AES_KEY_SIZE:
            raise CryptoError(
                ErrorCode.ENCRYPTION_FAILED,
                detail=f"key must be exactly {AES_KEY_SIZE} bytes",
            )

        nonce = self.generate_nonce()

        try:
            sealed = AESGCM(bytes(key)).encrypt(nonce, plaintext, aad)
        except (ValueError, TypeError, OverflowError) as exc:
            raise CryptoError(
                ErrorCode.ENCRYPTION_FAILED,
                f"{CIPHER_ID} encryption failed",
                detail=str(exc),
            ) from exc

        return SealedData(
            ciphertext=sealed[:-AES_TAG_SIZE],
            nonce=nonce,
            tag=sealed[-AES_TAG_SIZE:],
        )

    def open(
        self,
        key: bytes | bytearray,
        ciphertext: bytes,
        nonce: bytes,
        tag: bytes,
        aad: Optional[bytes] = None,
    ) -> bytes:
        """
        Verify the tag and decrypt.

        Any failure (bad sizes, wrong key, tampering) raises the same
        generic DECRYPTION_FAILED so callers cannot tell them apart.
        """
        if len(key) != AES_KEY_SIZE or len(nonce) != AES_NONCE_SIZE or len(tag) != AES_TAG_SIZE:
            raise CryptoError(ErrorCode.DECRYPTION_FAILED, detail="invalid key, nonce or tag size")

        try:
            return AESGCM(bytes(key)).decrypt(nonce, ciphertext + tag, aad)
        except InvalidTag as exc:
            raise CryptoError(ErrorCode.DECRYPTION_FAILED, detail="authentication tag mismatch") from exc
        except (ValueError, TypeError, OverflowError) as exc:
            raise CryptoError(ErrorCode.DECRYPTION_FAILED, detail=str(exc)) from exc
