"""
Classical Fallback Policy
=========================

Substitutes RSA-OAEP-256 when the quantum-safe path fails during keypair
generation or encryption. Never used for decryption; envelope format
already decides the path there.

Rules:
    - Caller-fixable errors (INVALID_INPUT, INVALID_KEY_FORMAT,
      INVALID_DATA_FORMAT) are raised immediately, no fallback
    - Any other failure gets exactly one classical attempt
    - Fallback results are tagged fallback_used=True; envelopes are legacy-v1
    - If both paths fail, CompositeCryptoError carries both causes
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional

from latticeshield.core.crypto.envelope import AlgorithmSuite, Envelope, LegacyEnvelope
from latticeshield.core.errors import CompositeCryptoError, CryptoError
from latticeshield.core.crypto.hybrid_engine import HybridCryptoEngine
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel
from latticeshield.core.crypto.rsa_fallback import RsaOaepCipher
from latticeshield.utils.validators import decode_base64_key, validate_plaintext

logger = logging.getLogger("latticeshield.fallback")


@dataclass(frozen=True, slots=True)
class EncryptionOutcome:
    """Envelope plus whether the classical scheme produced it."""

    envelope: Envelope
    security_level: SecurityLevel
    fallback_used: bool = False
    quantum_safe_error: Optional[CryptoError] = None


class FallbackPolicy:
    """
    Wraps a HybridCryptoEngine with one-shot classical fallback.

    Usage:
        policy = FallbackPolicy(engine)
        keypair = policy.generate_keypair("standard")
        outcome = policy.encrypt("secret", public_key_b64, "ML-KEM-768+AES-256-GCM")
        if outcome.fallback_used:
            ...  # legacy-v1 envelope
    """

    __slots__ = ("_engine", "_classical", "_enabled")

    def __init__(
        self,
        engine: HybridCryptoEngine,
        classical: Optional[RsaOaepCipher] = None,
        enabled: bool = True,
    ) -> None:
        self._engine = engine
        self._classical = classical or engine.classical
        self._enabled = enabled

    @property
    def enabled(self) -> bool:
        return self._enabled

    @property
    def engine(self) -> HybridCryptoEngine:
        return self._engine

    def generate_keypair(self, level: SecurityLevel | str = SecurityLevel.STANDARD) -> KeyPair:
        """
        Generate a keypair, falling back to RSA-OAEP-256 on PQ failure.

        Raises:
            CryptoError: Caller error, or PQ error when fallback is disabled
            CompositeCryptoError: Both paths failed
        """
        level = SecurityLevel.parse(level)

        try:
            return self._engine.generate_keypair(level)
        except CryptoError as pq_error:
            if pq_error.is_caller_error or not self._enabled:
                raise
            logger.warning(
                "Quantum-safe keypair generation failed (%s), using classical fallback",
                pq_error.code.value,
            )
            try:
                keypair = self._classical.generate_keypair(level)
            except CryptoError as classical_error:
                raise self._composite(pq_error, classical_error) from classical_error

        logger.info("Generated %s fallback keypair (%s)", keypair.algorithm, level.value)
        return keypair

    def encrypt(
        self,
        data: str,
        public_key: str | bytes,
        algorithm: str,
        security_level: Optional[SecurityLevel | str] = None,
    ) -> EncryptionOutcome:
        """
        Encrypt, falling back to a legacy-v1 RSA-OAEP-256 envelope on PQ failure.

        Raises:
            CryptoError: Caller error, or PQ error when fallback is disabled
            CompositeCryptoError: Both paths failed
        """
        try:
            envelope = self._engine.encrypt(data, public_key, algorithm, security_level)
        except CryptoError as pq_error:
            if pq_error.is_caller_error or not self._enabled:
                raise
            logger.warning(
                "Quantum-safe encryption failed (%s), using classical fallback",
                pq_error.code.value,
            )
            try:
                envelope = self._encrypt_classical(data, public_key)
            except CryptoError as classical_error:
                raise self._composite(pq_error, classical_error) from classical_error
            return EncryptionOutcome(
                envelope=envelope,
                security_level=self._level_hint(security_level, algorithm),
                fallback_used=True,
                quantum_safe_error=pq_error,
            )

        return EncryptionOutcome(envelope=envelope, security_level=envelope.security_level)

    def _encrypt_classical(self, data: str, public_key: str | bytes) -> LegacyEnvelope:
        # Inputs already passed the engine's validation
        plaintext = validate_plaintext(data)
        if isinstance(public_key, (bytes, bytearray)):
            key_bytes = bytes(public_key)
        else:
            key_bytes = decode_base64_key(public_key)
        return LegacyEnvelope(ciphertext=self._classical.encrypt(plaintext, key_bytes))

    @staticmethod
    def _level_hint(security_level: Optional[SecurityLevel | str], algorithm: str) -> SecurityLevel:
        if security_level is not None:
            return SecurityLevel.parse(security_level)
        return AlgorithmSuite.parse(algorithm).security_level

    @staticmethod
    def _composite(pq_error: CryptoError, classical_error: CryptoError) -> CompositeCryptoError:
        composite = CompositeCryptoError(pq_error, classical_error)
        logger.error(
            "Quantum-safe and classical paths both failed (%s, %s)",
            pq_error.code.value,
            classical_error.code.value,
        )
        return composite
