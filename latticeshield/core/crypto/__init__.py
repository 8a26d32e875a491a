"""
LatticeShield Cryptographic Core
================================

Hybrid post-quantum encryption protocol: ML-KEM key encapsulation with
AES-256-GCM, versioned envelopes, and RSA-OAEP-256 fallback.

Architecture:
    1. KemProvider: binds liboqs and wraps ML-KEM-768 / ML-KEM-1024
    2. AesGcmCipher: authenticated symmetric layer
    3. Envelope codec: pq-v1 and legacy-v1 wire formats
    4. HybridCryptoEngine: encrypt/decrypt orchestration
    5. FallbackPolicy: classical substitution on quantum-safe failure
    6. HealthReporter: live self-tests, benchmarks and migration rehearsal

Security Properties:
    - All encryption is authenticated (AEAD)
    - Fresh random nonce per encryption
    - Shared secrets and derived keys are zeroized after use
    - Decryption failures are indistinguishable to callers

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from latticeshield.core.crypto.aes_gcm import AesGcmCipher
from latticeshield.core.crypto.envelope import (
    AlgorithmSuite,
    Envelope,
    EnvelopeFormat,
    LegacyEnvelope,
    PostQuantumEnvelope,
    classify,
    decode,
    encode,
)
from latticeshield.core.crypto.fallback import EncryptionOutcome, FallbackPolicy
from latticeshield.core.crypto.health import (
    BenchmarkReport,
    HealthReporter,
    MigrationReport,
    VerificationReport,
)
from latticeshield.core.crypto.hybrid_engine import DecryptionResult, EngineState, HybridCryptoEngine
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel
from latticeshield.core.crypto.provider import KemProvider
from latticeshield.core.crypto.rsa_fallback import RsaOaepCipher

__all__ = [
    "AesGcmCipher",
    "AlgorithmSuite",
    "BenchmarkReport",
    "DecryptionResult",
    "EncryptionOutcome",
    "EngineState",
    "Envelope",
    "EnvelopeFormat",
    "FallbackPolicy",
    "HealthReporter",
    "HybridCryptoEngine",
    "KemProvider",
    "KeyPair",
    "LegacyEnvelope",
    "MigrationReport",
    "PostQuantumEnvelope",
    "RsaOaepCipher",
    "SecurityLevel",
    "VerificationReport",
    "classify",
    "decode",
    "encode",
]
