"""
RSA-OAEP Classical Fallback
===========================

Classical public-key scheme used when the quantum-safe path is
unavailable or fails, and for opening legacy envelopes.

Algorithm Details:
    - RSA-OAEP with SHA-256 (MGF1-SHA-256), no label
    - 2048-bit modulus for "standard", 3072-bit for "high"
    - Public keys: SubjectPublicKeyInfo DER; private keys: PKCS#8 DER
    - PEM input is accepted for compatibility with older host installs

WARNING:
    - NOT post-quantum secure; results are tagged fallbackUsed
    - Plaintext is limited to (modulus_bytes - 66) bytes
"""

from __future__ import annotations

import logging
from typing import Final, Mapping, Optional

from cryptography.exceptions import UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel

logger = logging.getLogger("latticeshield.rsa")

RSA_ALGORITHM: Final[str] = "RSA-OAEP-256"
RSA_PUBLIC_EXPONENT: Final[int] = 65537
MIN_MODULUS_BITS: Final[int] = 2048

DEFAULT_MODULUS_BITS: Final[dict[SecurityLevel, int]] = {
    SecurityLevel.STANDARD: 2048,
    SecurityLevel.HIGH: 3072,
}

# OAEP overhead with SHA-256: 2 * hash_len + 2
_OAEP_OVERHEAD: Final[int] = 2 * 32 + 2


def _oaep() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA256()),
        algorithm=hashes.SHA256(),
        label=None,
    )


def _is_pem(data: bytes) -> bool:
    return data.lstrip().startswith(b"-----BEGIN")


class RsaOaepCipher:
    """
    RSA-OAEP-256 keypair generation, encryption and decryption.

    Usage:
        rsa_cipher = RsaOaepCipher()
        keypair = rsa_cipher.generate_keypair(SecurityLevel.STANDARD)
        ciphertext = rsa_cipher.encrypt(b"secret", keypair.public_key)
        plaintext = rsa_cipher.decrypt(ciphertext, keypair.private_key)
    """

    __slots__ = ("_modulus_bits",)

    def __init__(self, modulus_bits: Optional[Mapping[SecurityLevel, int]] = None) -> None:
        bits = dict(DEFAULT_MODULUS_BITS)
        if modulus_bits:
            bits.update(modulus_bits)
        for level, size in bits.items():
            if size < MIN_MODULUS_BITS:
                raise ValueError(f"RSA modulus for {level.value} must be at least {MIN_MODULUS_BITS} bits")
        self._modulus_bits = bits

    @property
    def algorithm(self) -> str:
        return RSA_ALGORITHM

    def modulus_bits(self, level: SecurityLevel) -> int:
        return self._modulus_bits[level]

    def generate_keypair(self, level: SecurityLevel) -> KeyPair:
        """
        Generate an RSA keypair tagged as a fallback result.

        Raises:
            CryptoError(KEYPAIR_GENERATION_FAILED): On generation failure
        """
        try:
            private_key = rsa.generate_private_key(
                public_exponent=RSA_PUBLIC_EXPONENT,
                key_size=self._modulus_bits[level],
            )
            public_der = private_key.public_key().public_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PublicFormat.SubjectPublicKeyInfo,
            )
            private_der = private_key.private_bytes(
                encoding=serialization.Encoding.DER,
                format=serialization.PrivateFormat.PKCS8,
                encryption_algorithm=serialization.NoEncryption(),
            )
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise CryptoError(
                ErrorCode.KEYPAIR_GENERATION_FAILED,
                f"{RSA_ALGORITHM} keypair generation failed",
                detail=str(exc),
            ) from exc

        return KeyPair(
            public_key=public_der,
            private_key=private_der,
            algorithm=RSA_ALGORITHM,
            security_level=level,
            fallback_used=True,
        )

    @staticmethod
    def load_public_key(data: bytes) -> rsa.RSAPublicKey:
        """
        Parse a DER or PEM RSA public key.

        Raises:
            CryptoError(INVALID_KEY_FORMAT): If the data is not an RSA public key
        """
        try:
            if _is_pem(data):
                key = serialization.load_pem_public_key(data)
            else:
                key = serialization.load_der_public_key(data)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            raise CryptoError(
                ErrorCode.INVALID_KEY_FORMAT,
                f"public key is not a valid {RSA_ALGORITHM} key",
                detail=str(exc),
            ) from exc

        if not isinstance(key, rsa.RSAPublicKey):
            raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, f"public key is not a valid {RSA_ALGORITHM} key")
        return key

    @staticmethod
    def load_private_key(data: bytes | bytearray) -> rsa.RSAPrivateKey:
        """
        Parse a DER or PEM RSA private key (unencrypted).

        Raises:
            CryptoError(INVALID_KEY_FORMAT): If the data is not an RSA private key
        """
        raw = bytes(data)
        try:
            if _is_pem(raw):
                key = serialization.load_pem_private_key(raw, password=None)
            else:
                key = serialization.load_der_private_key(raw, password=None)
        except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
            # Parser text may quote key bytes; keep it out of the detail
            raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, "private key is not a valid RSA key") from exc

        if not isinstance(key, rsa.RSAPrivateKey):
            raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, "private key is not a valid RSA key")
        return key

    def encrypt(self, plaintext: bytes, public_key: bytes) -> bytes:
        """
        Encrypt directly under RSA-OAEP-256.

        Raises:
            CryptoError(INVALID_KEY_FORMAT): If the key cannot be parsed
            CryptoError(INVALID_INPUT): If plaintext exceeds the OAEP limit
            CryptoError(ENCRYPTION_FAILED): On cipher failure
        """
        key = self.load_public_key(public_key)

        limit = key.key_size // 8 - _OAEP_OVERHEAD
        if len(plaintext) > limit:
            raise CryptoError(
                ErrorCode.INVALID_INPUT,
                f"data too long for {RSA_ALGORITHM} with a {key.key_size}-bit key (max {limit} bytes)",
            )

        try:
            return key.encrypt(plaintext, _oaep())
        except (ValueError, TypeError) as exc:
            raise CryptoError(
                ErrorCode.ENCRYPTION_FAILED,
                f"{RSA_ALGORITHM} encryption failed",
                detail=str(exc),
            ) from exc

    def decrypt(self, ciphertext: bytes, private_key: bytes | bytearray) -> bytes:
        """
        Decrypt an RSA-OAEP-256 ciphertext.

        Raises:
            CryptoError(INVALID_KEY_FORMAT): If the key cannot be parsed
            CryptoError(DECRYPTION_FAILED): On any padding or key mismatch
        """
        key = self.load_private_key(private_key)

        try:
            return key.decrypt(ciphertext, _oaep())
        except (ValueError, TypeError) as exc:
            raise CryptoError(ErrorCode.DECRYPTION_FAILED, detail=type(exc).__name__) from exc
