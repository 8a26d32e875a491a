"""
LatticeShield Service Facade
============================

The four logical operations offered to the form-processing host, returning
plain dicts with the host plugin's wire field names:

    generate_keypair(security_level)         → keypair + metadata
    encrypt(data, public_key, algorithm)     → envelope + metadata
    decrypt(envelope, private_key)           → plaintext + detected format
    status()                                 → self-test report + capabilities

Plus key-rotation and monitoring helpers:

    reencrypt(envelope, private_key, public_key, algorithm) → new envelope
    benchmark(iterations, security_level)                   → timing report
    migration_test(entries, security_level)                 → rehearsal report

Every failure is raised as CryptoError (or CompositeCryptoError).
"""

from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Optional

from latticeshield.core.config import ShieldConfig
from latticeshield.core.crypto.aes_gcm import CIPHER_ID
from latticeshield.core.crypto.envelope import LEGACY_VERSION, PQ_VERSION, AlgorithmSuite
from latticeshield.core.crypto.fallback import FallbackPolicy
from latticeshield.core.crypto.health import HealthReporter
from latticeshield.core.crypto.hybrid_engine import HybridCryptoEngine
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel
from latticeshield.core.crypto.provider import KemProvider
from latticeshield.core.crypto.rsa_fallback import RsaOaepCipher

logger = logging.getLogger("latticeshield.service")


class LatticeShieldService:
    """
    Transport-independent entry point wiring engine, fallback and health.

    Usage:
        service = LatticeShieldService()
        keys = service.generate_keypair("standard")
        result = service.encrypt("hello world", keys["publicKey"], "ML-KEM-768+AES-256-GCM")
        opened = service.decrypt(result["encryptedData"], keys["privateKey"])

    Args:
        config: Configuration (defaults to ShieldConfig.get_instance())
        provider: KEM provider (defaults to the process-wide liboqs binding)
    """

    __slots__ = ("_config", "_engine", "_policy", "_reporter")

    def __init__(
        self,
        config: Optional[ShieldConfig] = None,
        provider: Optional[KemProvider] = None,
    ) -> None:
        self._config = config or ShieldConfig.get_instance()
        crypto = self._config.crypto

        classical = RsaOaepCipher({
            SecurityLevel.STANDARD: crypto.rsa_modulus_bits_standard,
            SecurityLevel.HIGH: crypto.rsa_modulus_bits_high,
        })
        self._engine = HybridCryptoEngine(
            provider=provider,
            classical=classical,
            max_plaintext_bytes=crypto.max_plaintext_bytes,
        )
        self._policy = FallbackPolicy(self._engine, enabled=crypto.fallback_enabled)
        self._reporter = HealthReporter(self._engine)

    @property
    def config(self) -> ShieldConfig:
        return self._config

    @property
    def engine(self) -> HybridCryptoEngine:
        return self._engine

    def generate_keypair(self, security_level: Optional[str] = None) -> dict[str, Any]:
        """
        Generate a keypair at the requested level (config default if None).

        Raises:
            CryptoError(INVALID_INPUT): Unknown level, before any generation
        """
        if security_level is None:
            security_level = self._config.crypto.default_security_level
        keypair = self._policy.generate_keypair(SecurityLevel.parse(security_level))

        result = keypair.to_dict()
        result["metadata"] = self._keypair_metadata(keypair)
        return result

    @staticmethod
    def _keypair_metadata(keypair: KeyPair) -> dict[str, Any]:
        if keypair.fallback_used:
            return {
                "version": LEGACY_VERSION,
                "kemAlgorithm": None,
                "dataEncryption": keypair.algorithm,
                "combinedAlgorithm": keypair.algorithm,
            }
        return {
            "version": PQ_VERSION,
            "kemAlgorithm": keypair.algorithm,
            "dataEncryption": CIPHER_ID,
            "combinedAlgorithm": AlgorithmSuite(keypair.algorithm).composite,
        }

    def encrypt(
        self,
        data: str,
        public_key: str,
        algorithm: str,
        security_level: Optional[str] = None,
    ) -> dict[str, Any]:
        """Encrypt data and describe the resulting envelope."""
        outcome = self._policy.encrypt(data, public_key, algorithm, security_level)
        envelope = outcome.envelope.to_dict()

        return {
            "success": True,
            "encryptedData": envelope,
            "metadata": {
                "algorithm": envelope["algorithm"],
                "securityLevel": outcome.security_level.value,
                "version": envelope["version"],
                "encryptedAt": envelope.get("timestamp") or datetime.now(timezone.utc).isoformat(),
                "fallbackUsed": outcome.fallback_used,
                "dataSize": len(data.encode("utf-8")),
                "encryptedSize": len(envelope["encryptedData"]),
            },
        }

    def decrypt(self, envelope: Any, private_key: str) -> dict[str, Any]:
        """
        Open any supported envelope.

        Accepts adversarial input; every failure is a typed CryptoError.
        """
        result = self._engine.decrypt(envelope, private_key)
        return {
            "decryptedData": result.plaintext,
            "algorithmUsed": result.algorithm,
            "encryptionType": result.detected_format.value,
        }

    def reencrypt(
        self,
        envelope: Any,
        private_key: str,
        public_key: str,
        algorithm: str,
        security_level: Optional[str] = None,
    ) -> dict[str, Any]:
        """
        Move an envelope to a new key: decrypt with the old private key,
        then encrypt for the new public key (with fallback).

        The result has the encrypt() shape plus metadata["source"].
        """
        opened = self._engine.decrypt(envelope, private_key)
        result = self.encrypt(opened.plaintext, public_key, algorithm, security_level)
        result["metadata"]["source"] = {
            "encryptionType": opened.detected_format.value,
            "algorithm": opened.algorithm,
        }
        logger.info(
            "Re-encrypted %s envelope as %s",
            opened.detected_format.value,
            result["metadata"]["algorithm"],
        )
        return result

    def status(self) -> dict[str, Any]:
        """Fresh self-test report with capabilities and overall health."""
        return self._reporter.status()

    def benchmark(self, iterations: Any = None, security_level: Optional[str] = None) -> dict[str, Any]:
        """Timed keygen/encrypt/decrypt run; see HealthReporter.benchmark."""
        level = security_level or self._config.crypto.default_security_level
        return self._reporter.benchmark(iterations, level).to_dict()

    def migration_test(
        self,
        entries: Any = None,
        security_level: Optional[str] = None,
        verify_integrity: bool = True,
    ) -> dict[str, Any]:
        """Re-encryption rehearsal; see HealthReporter.migration_test."""
        level = security_level or self._config.crypto.default_security_level
        return self._reporter.migration_test(entries, level, verify_integrity).to_dict()
