"""
ML-KEM Primitive Provider
=========================

Binds the Open Quantum Safe library (liboqs-python, imported as ``oqs``)
and exposes keypair generation, encapsulation and decapsulation behind a
narrow interface.

Algorithm Details (NIST FIPS 203):
    - ML-KEM-768:  NIST Level 3, pk 1184 / sk 2400 / ct 1088 bytes
    - ML-KEM-1024: NIST Level 5, pk 1568 / sk 3168 / ct 1568 bytes
    - Shared secret: 32 bytes for both

Binding Lifecycle:
    1. initialize() loads the library once per process and checks that
       both mechanisms are enabled
    2. Concurrent first callers wait on one attempt and share its outcome
    3. A failed attempt is not cached; the next explicit call retries
    4. Once bound, the library is never unbound at runtime

Error Boundary:
    Every library exception is caught here and re-raised as a CryptoError.
    Library text is kept in ``detail`` only.
"""

from __future__ import annotations

import logging
import threading
from dataclasses import dataclass
from typing import Any, Callable, Final, Optional, Tuple

from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.core.crypto.keys import KeyPair, SecurityLevel

logger = logging.getLogger("latticeshield.provider")

SHARED_SECRET_SIZE: Final[int] = 32  # 256 bits


@dataclass(frozen=True, slots=True)
class KemParameters:
    """Published sizes for one ML-KEM parameter set."""

    algorithm: str
    security_level: SecurityLevel
    nist_level: int
    public_key_size: int
    secret_key_size: int
    ciphertext_size: int
    shared_secret_size: int = SHARED_SECRET_SIZE
    description: str = ""


ML_KEM_768: Final[KemParameters] = KemParameters(
    algorithm="ML-KEM-768",
    security_level=SecurityLevel.STANDARD,
    nist_level=3,
    public_key_size=1184,
    secret_key_size=2400,
    ciphertext_size=1088,
    description="Recommended for most applications",
)

ML_KEM_1024: Final[KemParameters] = KemParameters(
    algorithm="ML-KEM-1024",
    security_level=SecurityLevel.HIGH,
    nist_level=5,
    public_key_size=1568,
    secret_key_size=3168,
    ciphertext_size=1568,
    description="Maximum security for sensitive data",
)

KEM_PARAMETERS: Final[dict[str, KemParameters]] = {
    ML_KEM_768.algorithm: ML_KEM_768,
    ML_KEM_1024.algorithm: ML_KEM_1024,
}

KEM_BY_LEVEL: Final[dict[SecurityLevel, KemParameters]] = {
    params.security_level: params for params in KEM_PARAMETERS.values()
}

REQUIRED_ALGORITHMS: Final[tuple[str, ...]] = tuple(KEM_PARAMETERS)


def kem_parameters(algorithm: str) -> KemParameters:
    """
    Look up parameters for a KEM id.

    Raises:
        CryptoError(ALGORITHM_NOT_SUPPORTED): If the id is not supported
    """
    try:
        return KEM_PARAMETERS[algorithm]
    except KeyError:
        raise CryptoError(
            ErrorCode.ALGORITHM_NOT_SUPPORTED,
            f"unsupported KEM algorithm: {algorithm} "
            f"(supported: {', '.join(REQUIRED_ALGORITHMS)})",
        ) from None


def _load_oqs() -> Any:
    """Import liboqs-python. Raises ImportError/RuntimeError if unavailable."""
    import oqs

    return oqs


def _require_bytes(value: Any, what: str, code: ErrorCode) -> bytes:
    """Validate that a library result is non-empty binary data."""
    if not isinstance(value, (bytes, bytearray)):
        raise CryptoError(code, detail=f"library returned {what} of type {type(value).__name__}")
    if len(value) == 0:
        raise CryptoError(code, detail=f"library returned empty {what}")
    return bytes(value)


class _BindAttempt:
    """One in-flight binding attempt; waiters read its outcome."""

    __slots__ = ("done", "error")

    def __init__(self) -> None:
        self.done = threading.Event()
        self.error: Optional[CryptoError] = None


class KemProvider:
    """
    Thread-safe adapter around the ``oqs`` binding.

    Usage:
        provider = KemProvider()
        provider.initialize()

        keypair = provider.generate_keypair(SecurityLevel.STANDARD)
        shared_secret, ciphertext = provider.encapsulate("ML-KEM-768", keypair.public_key)
        recovered = provider.decapsulate("ML-KEM-768", ciphertext, keypair.private_key)

    Shared secrets are returned as bytearray so callers can wipe them.

    Args:
        loader: Callable returning the bound library module. Defaults to
            importing ``oqs``; tests inject a stand-in with the same API.
    """

    __slots__ = ("_loader", "_lock", "_library", "_mechanisms", "_attempts", "_pending")

    def __init__(self, loader: Optional[Callable[[], Any]] = None) -> None:
        self._loader = loader or _load_oqs
        self._lock = threading.Lock()
        self._library: Optional[Any] = None
        self._mechanisms: tuple[str, ...] = ()
        self._attempts = 0
        self._pending: Optional[_BindAttempt] = None

    @property
    def is_ready(self) -> bool:
        return self._library is not None

    @property
    def attempts(self) -> int:
        """Number of binding attempts made so far."""
        return self._attempts

    def initialize(self) -> None:
        """
        Bind the library and verify the required mechanisms.

        Idempotent after success. Callers that queued behind an attempt
        observe that attempt's outcome instead of starting another.

        Raises:
            CryptoError(LIBRARY_LOAD_FAILED): If the binding cannot be loaded
            CryptoError(ALGORITHM_NOT_SUPPORTED): If a required KEM is missing
        """
        if self._library is not None:
            return

        with self._lock:
            if self._library is not None:
                return
            attempt = self._pending
            owner = attempt is None
            if owner:
                attempt = self._pending = _BindAttempt()
                self._attempts += 1

        if not owner:
            attempt.done.wait()
            if attempt.error is not None:
                error = attempt.error
                raise CryptoError(error.code, error.message, detail=error.detail) from error
            return

        try:
            self._bind()
        except CryptoError as exc:
            attempt.error = exc
            logger.error("KEM library initialization failed: %s", exc.code.value)
            raise
        finally:
            with self._lock:
                self._pending = None
            attempt.done.set()

    def _bind(self) -> None:
        """Load the library and check its advertised mechanisms."""
        try:
            library = self._loader()
        except (ImportError, RuntimeError, OSError) as exc:
            raise CryptoError(
                ErrorCode.LIBRARY_LOAD_FAILED,
                "failed to load the post-quantum library (liboqs)",
                detail=str(exc),
            ) from exc

        try:
            mechanisms = tuple(library.get_enabled_kem_mechanisms())
        except Exception as exc:
            raise CryptoError(
                ErrorCode.LIBRARY_LOAD_FAILED,
                "failed to list available KEM algorithms",
                detail=str(exc),
            ) from exc

        missing = [alg for alg in REQUIRED_ALGORITHMS if alg not in mechanisms]
        if missing:
            raise CryptoError(
                ErrorCode.ALGORITHM_NOT_SUPPORTED,
                f"required algorithms not available: {', '.join(missing)}",
                detail=f"enabled mechanisms: {', '.join(mechanisms)}",
            )

        self._mechanisms = mechanisms
        self._library = library
        logger.info(
            "KEM library initialized (version %s, algorithms: %s)",
            self.library_version() or "unknown",
            ", ".join(REQUIRED_ALGORITHMS),
        )

    def _require_library(self) -> Any:
        library = self._library
        if library is None:
            raise CryptoError(ErrorCode.LIBRARY_NOT_INITIALIZED)
        return library

    def enabled_mechanisms(self) -> tuple[str, ...]:
        return self._mechanisms

    def library_version(self) -> Optional[str]:
        """Version string reported by liboqs, if the binding exposes one."""
        library = self._library
        if library is None:
            return None
        version = getattr(library, "oqs_version", None)
        try:
            return str(version()) if callable(version) else None
        except Exception:
            return None

    def generate_keypair(self, level: SecurityLevel) -> KeyPair:
        """
        Generate an ML-KEM keypair for the given level.

        Raises:
            CryptoError(KEYPAIR_GENERATION_FAILED): On library failure or
                structurally invalid output
        """
        library = self._require_library()
        params = KEM_BY_LEVEL[level]

        try:
            with library.KeyEncapsulation(params.algorithm) as kem:
                public_key = kem.generate_keypair()
                secret_key = kem.export_secret_key()
        except Exception as exc:
            raise CryptoError(
                ErrorCode.KEYPAIR_GENERATION_FAILED,
                f"{params.algorithm} keypair generation failed",
                detail=str(exc),
            ) from exc

        public_key = _require_bytes(public_key, "public key", ErrorCode.KEYPAIR_GENERATION_FAILED)
        secret_key = _require_bytes(secret_key, "secret key", ErrorCode.KEYPAIR_GENERATION_FAILED)

        return KeyPair(
            public_key=public_key,
            private_key=secret_key,
            algorithm=params.algorithm,
            security_level=level,
        )

    def encapsulate(self, algorithm: str, public_key: bytes) -> Tuple[bytearray, bytes]:
        """
        Encapsulate a fresh shared secret against a public key.

        Returns:
            (shared_secret, kem_ciphertext); the caller must wipe shared_secret

        Raises:
            CryptoError(ENCAPSULATION_FAILED): On bad key length or library failure
        """
        library = self._require_library()
        params = kem_parameters(algorithm)

        if len(public_key) != params.public_key_size:
            raise CryptoError(
                ErrorCode.ENCAPSULATION_FAILED,
                f"public key is not a valid {algorithm} key",
                detail=f"expected {params.public_key_size} bytes, got {len(public_key)}",
            )

        try:
            with library.KeyEncapsulation(algorithm) as kem:
                ciphertext, shared_secret = kem.encap_secret(bytes(public_key))
        except Exception as exc:
            raise CryptoError(
                ErrorCode.ENCAPSULATION_FAILED,
                f"{algorithm} encapsulation failed",
                detail=str(exc),
            ) from exc

        ciphertext = _require_bytes(ciphertext, "ciphertext", ErrorCode.ENCAPSULATION_FAILED)
        shared_secret = _require_bytes(shared_secret, "shared secret", ErrorCode.ENCAPSULATION_FAILED)
        if len(ciphertext) != params.ciphertext_size:
            raise CryptoError(
                ErrorCode.ENCAPSULATION_FAILED,
                f"{algorithm} encapsulation failed",
                detail=f"ciphertext length {len(ciphertext)} != {params.ciphertext_size}",
            )

        return bytearray(shared_secret), ciphertext

    def decapsulate(
        self,
        algorithm: str,
        kem_ciphertext: bytes,
        private_key: bytes | bytearray,
    ) -> bytearray:
        """
        Recover the shared secret from a KEM ciphertext.

        Returns:
            shared_secret as bytearray; the caller must wipe it

        Raises:
            CryptoError(DECAPSULATION_FAILED): On bad sizes or library failure
        """
        library = self._require_library()
        params = kem_parameters(algorithm)

        if len(kem_ciphertext) != params.ciphertext_size:
            raise CryptoError(
                ErrorCode.DECAPSULATION_FAILED,
                detail=f"ciphertext length {len(kem_ciphertext)} != {params.ciphertext_size}",
            )
        if len(private_key) != params.secret_key_size:
            raise CryptoError(
                ErrorCode.DECAPSULATION_FAILED,
                detail=f"secret key length {len(private_key)} != {params.secret_key_size}",
            )

        try:
            with library.KeyEncapsulation(algorithm, secret_key=bytes(private_key)) as kem:
                shared_secret = kem.decap_secret(bytes(kem_ciphertext))
        except Exception as exc:
            raise CryptoError(
                ErrorCode.DECAPSULATION_FAILED,
                detail=str(exc),
            ) from exc

        return bytearray(_require_bytes(shared_secret, "shared secret", ErrorCode.DECAPSULATION_FAILED))


_default_provider: Optional[KemProvider] = None
_default_provider_lock = threading.Lock()


def get_default_provider() -> KemProvider:
    """Process-wide provider bound to the real ``oqs`` library."""
    global _default_provider
    if _default_provider is None:
        with _default_provider_lock:
            if _default_provider is None:
                _default_provider = KemProvider()
    return _default_provider
