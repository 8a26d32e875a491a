"""
Hybrid Post-Quantum Encryption Engine
=====================================

Combines ML-KEM key encapsulation with AES-256-GCM:
    1. ML-KEM encapsulate against the recipient public key
    2. SHA-256 of the shared secret becomes the AES key
    3. AES-256-GCM seal with a fresh nonce, KEM id as associated data

Security Properties:
    - Post-quantum key exchange (ML-KEM-768 / ML-KEM-1024)
    - Shared secret never used directly as the cipher key
    - Authenticated encryption, tag verified before plaintext is released
    - Shared secrets and derived keys wiped on every exit path

Encryption Flow:
    plaintext
        ↓ ML-KEM encapsulate(public_key) → shared_secret, encapsulated_key
    shared_secret
        ↓ SHA-256
    aes_key
        ↓ AES-256-GCM (aes_key, random nonce, aad=KEM id)
    pq-v1 envelope (encapsulated_key + ciphertext + nonce + tag)

Decryption Flow:
    raw envelope
        ↓ classify / decode
    pq-v1  → ML-KEM decapsulate → SHA-256 → AES-256-GCM open
    legacy → RSA-OAEP-256 decrypt

Lifecycle:
    UNINITIALIZED → INITIALIZING → READY | FAILED

    The first operation on a fresh engine drives initialization once.
    A FAILED engine rejects operations with LIBRARY_NOT_INITIALIZED
    until initialize() is called again explicitly.

WARNING:
    - Decryption failures are deliberately generic ("decryption failed")
    - Any failure = complete rejection (fail-closed)
"""

from __future__ import annotations

import hashlib
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Final, Optional

from latticeshield.core.crypto.aes_gcm import AesGcmCipher
from latticeshield.core.crypto.envelope import (
    AlgorithmSuite,
    EnvelopeFormat,
    LegacyEnvelope,
    PostQuantumEnvelope,
    decode,
)
from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel
from latticeshield.core.crypto.provider import KemProvider, get_default_provider
from latticeshield.core.crypto.rsa_fallback import RsaOaepCipher
from latticeshield.core.memory import ZeroizeContext
from latticeshield.utils.validators import (
    decode_base64_key,
    decode_private_key,
    validate_plaintext,
)

logger = logging.getLogger("latticeshield.engine")

DEFAULT_MAX_PLAINTEXT_BYTES: Final[int] = 1024 * 1024  # 1 MiB


class EngineState(str, Enum):
    UNINITIALIZED = "uninitialized"
    INITIALIZING = "initializing"
    READY = "ready"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class DecryptionResult:
    """
    Outcome of a successful decryption.

    Attributes:
        plaintext: Recovered text
        detected_format: Envelope format the input was classified as
        algorithm: Algorithm that opened it (composite id or RSA-OAEP-256)
    """

    plaintext: str
    detected_format: EnvelopeFormat
    algorithm: str

    def __repr__(self) -> str:
        return f"DecryptionResult({self.detected_format.value}, {self.algorithm})"


def derive_key(shared_secret: bytes | bytearray) -> bytearray:
    """One-way derivation of the AES key from a KEM shared secret."""
    return bytearray(hashlib.sha256(shared_secret).digest())


def _as_key_bytes(value: Any) -> bytes:
    if isinstance(value, (bytes, bytearray)):
        if not value:
            raise CryptoError(ErrorCode.INVALID_KEY_FORMAT, "public key is empty")
        return bytes(value)
    return decode_base64_key(value, field_name="public key")


class HybridCryptoEngine:
    """
    ML-KEM + AES-256-GCM protocol engine.

    Usage:
        engine = HybridCryptoEngine()
        engine.initialize()

        keypair = engine.generate_keypair(SecurityLevel.STANDARD)
        envelope = engine.encrypt("hello world", keypair.public_key, "ML-KEM-768+AES-256-GCM")
        result = engine.decrypt(envelope.to_dict(), keypair.private_key)
        assert result.plaintext == "hello world"

    The engine keeps no key material between calls. KeyPairs are handed
    to the caller and forgotten.
    """

    __slots__ = (
        "_provider",
        "_classical",
        "_cipher",
        "_max_plaintext_bytes",
        "_state",
        "_state_lock",
        "_last_error",
    )

    def __init__(
        self,
        provider: Optional[KemProvider] = None,
        classical: Optional[RsaOaepCipher] = None,
        max_plaintext_bytes: int = DEFAULT_MAX_PLAINTEXT_BYTES,
    ) -> None:
        self._provider = provider or get_default_provider()
        self._classical = classical or RsaOaepCipher()
        self._cipher = AesGcmCipher()
        self._max_plaintext_bytes = max_plaintext_bytes
        self._state = EngineState.UNINITIALIZED
        self._state_lock = threading.Lock()
        self._last_error: Optional[CryptoError] = None

    @property
    def state(self) -> EngineState:
        return self._state

    @property
    def is_ready(self) -> bool:
        return self._state is EngineState.READY

    @property
    def last_error(self) -> Optional[CryptoError]:
        """Error from the most recent failed initialization, if any."""
        return self._last_error

    @property
    def provider(self) -> KemProvider:
        return self._provider

    @property
    def classical(self) -> RsaOaepCipher:
        return self._classical

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def initialize(self) -> None:
        """
        Bind the KEM provider. Retries if a previous attempt failed.

        Raises:
            CryptoError(LIBRARY_LOAD_FAILED | ALGORITHM_NOT_SUPPORTED)
        """
        with self._state_lock:
            if self._state is EngineState.READY:
                return
            self._initialize_locked()

    def _initialize_locked(self) -> None:
        self._state = EngineState.INITIALIZING
        try:
            self._provider.initialize()
        except CryptoError as exc:
            self._state = EngineState.FAILED
            self._last_error = exc
            raise
        self._state = EngineState.READY
        self._last_error = None
        logger.info("Hybrid engine ready")

    def _require_ready(self) -> None:
        """
        Ensure the engine is READY.

        A fresh engine is initialized here exactly once; concurrent first
        callers wait for that attempt. A FAILED engine is not retried.
        """
        if self._state is EngineState.READY:
            return

        with self._state_lock:
            if self._state is EngineState.UNINITIALIZED:
                self._initialize_locked()
                return
            if self._state is EngineState.READY:
                return

        cause = self._last_error
        raise CryptoError(
            ErrorCode.LIBRARY_NOT_INITIALIZED,
            detail=f"initialization failed: {cause.code.value}" if cause else None,
        ) from cause

    # =========================================================================
    # Operations
    # =========================================================================

    def generate_keypair(self, level: SecurityLevel | str = SecurityLevel.STANDARD) -> KeyPair:
        """
        Generate an ML-KEM keypair.

        Raises:
            CryptoError(INVALID_INPUT): Unknown security level
            CryptoError(LIBRARY_NOT_INITIALIZED | KEYPAIR_GENERATION_FAILED)
        """
        level = SecurityLevel.parse(level)
        self._require_ready()

        keypair = self._provider.generate_keypair(level)
        logger.info("Generated %s keypair (%s)", keypair.algorithm, level.value)
        return keypair

    def encrypt(
        self,
        plaintext: str,
        public_key: str | bytes,
        algorithm: str,
        security_level: Optional[SecurityLevel | str] = None,
    ) -> PostQuantumEnvelope:
        """
        Encrypt plaintext for the holder of public_key.

        Args:
            plaintext: Non-empty text
            public_key: Base64 text or raw bytes
            algorithm: Composite id (ML-KEM-768+AES-256-GCM) or bare KEM id
            security_level: Optional; must agree with the algorithm

        Raises:
            CryptoError(INVALID_INPUT | INVALID_KEY_FORMAT): Before any crypto call
            CryptoError(LIBRARY_NOT_INITIALIZED | ENCAPSULATION_FAILED | ENCRYPTION_FAILED)
        """
        data = validate_plaintext(plaintext, self._max_plaintext_bytes)
        suite = AlgorithmSuite.parse(algorithm)
        if security_level is not None:
            level = SecurityLevel.parse(security_level)
            if level is not suite.security_level:
                raise CryptoError(
                    ErrorCode.INVALID_INPUT,
                    f"security level {level.value!r} does not match algorithm {suite.composite}",
                )
        key_bytes = _as_key_bytes(public_key)

        self._require_ready()

        shared_secret, encapsulated_key = self._provider.encapsulate(suite.kem_id, key_bytes)
        with ZeroizeContext(shared_secret):
            aes_key = derive_key(shared_secret)
            with ZeroizeContext(aes_key):
                sealed = self._cipher.seal(aes_key, data, aad=suite.associated_data)

        logger.debug("Encrypted %d bytes with %s", len(data), suite.composite)
        return PostQuantumEnvelope(
            suite=suite,
            security_level=suite.security_level,
            encapsulated_key=encapsulated_key,
            ciphertext=sealed.ciphertext,
            nonce=sealed.nonce,
            auth_tag=sealed.tag,
        )

    def decrypt(self, envelope: Any, private_key: str | bytes) -> DecryptionResult:
        """
        Open a pq-v1 or legacy envelope.

        Args:
            envelope: Envelope object, wire dict, JSON text or bare legacy ciphertext
            private_key: Base64 text, PEM text (legacy only) or raw bytes

        Raises:
            CryptoError(INVALID_DATA_FORMAT): Unrecognized or malformed envelope
            CryptoError(INVALID_KEY_FORMAT): Undecodable private key
            CryptoError(DECRYPTION_FAILED): Wrong key or tampered data
        """
        parsed = decode(envelope)

        if isinstance(private_key, (bytes, bytearray)):
            secret = bytearray(private_key)
        else:
            secret = decode_private_key(private_key)

        with ZeroizeContext(secret):
            if isinstance(parsed, PostQuantumEnvelope):
                self._require_ready()
                plaintext = self._open_post_quantum(parsed, secret)
                algorithm = parsed.algorithm
            elif isinstance(parsed, LegacyEnvelope):
                plaintext = self._classical.decrypt(parsed.ciphertext, secret)
                algorithm = parsed.algorithm
            else:
                raise CryptoError(ErrorCode.INVALID_DATA_FORMAT, "unrecognized envelope format")

        try:
            text = plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise CryptoError(ErrorCode.INVALID_DATA_FORMAT, "decrypted data is not valid UTF-8 text") from None

        logger.debug("Decrypted %s envelope with %s", parsed.format.value, algorithm)
        return DecryptionResult(plaintext=text, detected_format=parsed.format, algorithm=algorithm)

    def reencrypt(
        self,
        envelope: Any,
        private_key: str | bytes,
        public_key: str | bytes,
        algorithm: str,
        security_level: Optional[SecurityLevel | str] = None,
    ) -> PostQuantumEnvelope:
        """
        Open an envelope under its current key and seal it for a new one.

        The source may be pq-v1 or legacy; the result is always pq-v1.
        When and which keys to rotate is up to the host.

        Raises:
            CryptoError: Any decrypt() or encrypt() failure
        """
        opened = self.decrypt(envelope, private_key)
        return self.encrypt(opened.plaintext, public_key, algorithm, security_level)

    def _open_post_quantum(self, envelope: PostQuantumEnvelope, secret_key: bytearray) -> bytes:
        suite = envelope.suite
        try:
            shared_secret = self._provider.decapsulate(suite.kem_id, envelope.encapsulated_key, secret_key)
        except CryptoError as exc:
            if exc.code is ErrorCode.DECAPSULATION_FAILED:
                # Wrong key and tampering must look the same from outside
                raise CryptoError(ErrorCode.DECRYPTION_FAILED, detail=exc.detail) from exc
            raise

        with ZeroizeContext(shared_secret):
            aes_key = derive_key(shared_secret)
            with ZeroizeContext(aes_key):
                return self._cipher.open(
                    aes_key,
                    envelope.ciphertext,
                    envelope.nonce,
                    envelope.auth_tag,
                    aad=suite.associated_data,
                )
