"""
Capability and Health Reporter
==============================

Live self-tests for every supported algorithm and the classical fallback.

Each ML-KEM parameter set runs generate → encapsulate → decapsulate and
the two shared secrets are compared in constant time. Only structural
facts (key and ciphertext sizes) go into the report; no key material,
shared secrets or library text.

Overall health:
    healthy    at least one post-quantum algorithm round-trips
    degraded   only the classical fallback works
    unhealthy  nothing works

On-demand monitoring:
    benchmark()       timed keygen, encrypt and decrypt with integrity checks
    migration_test()  encrypt under old keys, re-encrypt under new keys, verify

    Both are bounded and report only timings, counts and error codes.
"""

from __future__ import annotations

import hmac
import logging
import statistics
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Final, Optional

from latticeshield.core.crypto.aes_gcm import CIPHER_ID
from latticeshield.core.crypto.envelope import LEGACY_VERSION, PQ_VERSION, AlgorithmSuite
from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.core.crypto.hybrid_engine import HybridCryptoEngine
from latticeshield.core.crypto.keys import SecurityLevel
from latticeshield.core.crypto.provider import KEM_PARAMETERS, KemParameters
from latticeshield.core.crypto.rsa_fallback import RSA_ALGORITHM, RsaOaepCipher
from latticeshield.core.memory import ZeroizeContext

logger = logging.getLogger("latticeshield.health")

SERVICE_NAME: Final[str] = "Post-Quantum Lattice Shield"
SELF_TEST_PLAINTEXT: Final[bytes] = b"LatticeShield classical self-test"

BENCHMARK_PLAINTEXT: Final[str] = "A" * 1024
DEFAULT_BENCHMARK_ITERATIONS: Final[int] = 10
MAX_BENCHMARK_ITERATIONS: Final[int] = 100
DEFAULT_MIGRATION_ENTRIES: Final[int] = 10
MAX_MIGRATION_ENTRIES: Final[int] = 500

HEALTHY: Final[str] = "healthy"
DEGRADED: Final[str] = "degraded"
UNHEALTHY: Final[str] = "unhealthy"


@dataclass(slots=True)
class AlgorithmStatus:
    """Self-test result for one algorithm."""

    name: str
    security_level: SecurityLevel
    functional: bool = False
    key_sizes: dict[str, int] = field(default_factory=dict)
    ciphertext_size: Optional[int] = None
    shared_secret_size: Optional[int] = None
    error: Optional[str] = None

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "name": self.name,
            "level": self.security_level.value,
            "functional": self.functional,
            "keySize": dict(self.key_sizes),
        }
        if self.ciphertext_size is not None:
            data["ciphertextSize"] = self.ciphertext_size
        if self.shared_secret_size is not None:
            data["sharedSecretSize"] = self.shared_secret_size
        if self.error:
            data["error"] = self.error
        return data


@dataclass(slots=True)
class VerificationReport:
    """Fresh result of one verify() run. Not cached."""

    provider_available: bool
    algorithms: dict[str, AlgorithmStatus]
    classical: AlgorithmStatus
    library_version: Optional[str] = None
    errors: list[str] = field(default_factory=list)
    checked_at: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    @property
    def functional(self) -> bool:
        """True if at least one post-quantum algorithm round-trips."""
        return any(status.functional for status in self.algorithms.values())

    @property
    def health(self) -> str:
        if self.functional:
            return HEALTHY
        if self.classical.functional:
            return DEGRADED
        return UNHEALTHY

    @property
    def http_status(self) -> int:
        health = self.health
        if health == UNHEALTHY:
            return 503
        if health == DEGRADED or self.errors:
            return 206
        return 200

    def to_dict(self) -> dict[str, Any]:
        return {
            "providerAvailable": self.provider_available,
            "functional": self.functional,
            "libraryVersion": self.library_version or "unknown",
            "algorithms": {name: status.to_dict() for name, status in self.algorithms.items()},
            "classical": self.classical.to_dict(),
            "errors": list(self.errors),
            "checkedAt": self.checked_at,
        }


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _bounded_count(value: Any, name: str, default: int, maximum: int) -> int:
    """Parse a positive count (int or decimal text) no larger than maximum."""
    if value is None:
        return default

    count: Optional[int] = None
    if isinstance(value, int) and not isinstance(value, bool):
        count = value
    elif isinstance(value, str):
        text = value.strip()
        if text.isascii() and text.isdigit():
            count = int(text)

    if count is None or not 1 <= count <= maximum:
        raise CryptoError(
            ErrorCode.INVALID_INPUT,
            f"{name} must be an integer between 1 and {maximum}",
        )
    return count


@dataclass(slots=True)
class TimingStats:
    """Wall-clock samples for one operation, in milliseconds."""

    samples: list[float] = field(default_factory=list)

    def add(self, started: float) -> None:
        self.samples.append((time.perf_counter() - started) * 1000.0)

    def to_dict(self) -> dict[str, Any]:
        if not self.samples:
            return {"count": 0, "minMs": None, "avgMs": None, "maxMs": None, "medianMs": None}
        return {
            "count": len(self.samples),
            "minMs": round(min(self.samples), 3),
            "avgMs": round(statistics.fmean(self.samples), 3),
            "maxMs": round(max(self.samples), 3),
            "medianMs": round(statistics.median(self.samples), 3),
        }


@dataclass(slots=True)
class BenchmarkReport:
    """Timings and integrity results of one benchmark() run."""

    algorithm: str
    security_level: SecurityLevel
    iterations: int
    keypair_generation: TimingStats = field(default_factory=TimingStats)
    encryption: TimingStats = field(default_factory=TimingStats)
    decryption: TimingStats = field(default_factory=TimingStats)
    verified: int = 0
    errors: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now)

    @property
    def failed(self) -> int:
        return self.iterations - self.verified

    def to_dict(self) -> dict[str, Any]:
        return {
            "timestamp": self.started_at,
            "parameters": {
                "iterations": self.iterations,
                "algorithm": self.algorithm,
                "securityLevel": self.security_level.value,
                "dataSize": len(BENCHMARK_PLAINTEXT),
            },
            "results": {
                "keypairGeneration": self.keypair_generation.to_dict(),
                "encryption": self.encryption.to_dict(),
                "decryption": self.decryption.to_dict(),
            },
            "summary": {
                "successfulIterations": self.verified,
                "failedIterations": self.failed,
                "successRate": round(self.verified / self.iterations, 4),
            },
            "errors": list(self.errors),
        }


@dataclass(slots=True)
class MigrationReport:
    """Counts and timing of one migration_test() run."""

    source_algorithm: str
    target_algorithm: str
    entries: int
    verify_integrity: bool
    processed: int = 0
    migrated: int = 0
    failed: int = 0
    total_ms: float = 0.0
    errors: list[str] = field(default_factory=list)
    started_at: str = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        average = self.total_ms / self.processed if self.processed else 0.0
        return {
            "timestamp": self.started_at,
            "parameters": {
                "entryCount": self.entries,
                "sourceAlgorithm": self.source_algorithm,
                "targetAlgorithm": self.target_algorithm,
                "verifyIntegrity": self.verify_integrity,
            },
            "results": {
                "entriesProcessed": self.processed,
                "entriesMigrated": self.migrated,
                "entriesFailed": self.failed,
                "totalTimeMs": round(self.total_ms, 3),
                "averageTimePerEntryMs": round(average, 3),
                "errors": list(self.errors),
            },
        }


class HealthReporter:
    """
    Runs self-tests against the engine's provider and classical scheme.

    Usage:
        reporter = HealthReporter(engine)
        report = reporter.verify()
        if report.health != "healthy":
            ...
    """

    __slots__ = ("_engine", "_classical")

    def __init__(self, engine: HybridCryptoEngine, classical: Optional[RsaOaepCipher] = None) -> None:
        self._engine = engine
        self._classical = classical or engine.classical

    def verify(self) -> VerificationReport:
        """Run all self-tests and build a fresh report."""
        errors: list[str] = []
        provider = self._engine.provider

        if not self._engine.is_ready:
            try:
                self._engine.initialize()
            except CryptoError as exc:
                errors.append(f"Post-quantum initialization: {exc.message}")

        algorithms: dict[str, AlgorithmStatus] = {}
        for params in KEM_PARAMETERS.values():
            if self._engine.is_ready:
                status = self._test_kem(params)
            else:
                status = AlgorithmStatus(
                    name=params.algorithm,
                    security_level=params.security_level,
                    error="post-quantum library not available",
                )
            if status.error and self._engine.is_ready:
                errors.append(f"{params.algorithm}: {status.error}")
            algorithms[params.algorithm] = status

        classical = self._test_classical()
        if classical.error:
            errors.append(f"Classical fallback: {classical.error}")

        report = VerificationReport(
            provider_available=self._engine.is_ready,
            algorithms=algorithms,
            classical=classical,
            library_version=provider.library_version(),
            errors=errors,
        )
        logger.info("Health check complete: %s", report.health)
        return report

    def _test_kem(self, params: KemParameters) -> AlgorithmStatus:
        provider = self._engine.provider
        status = AlgorithmStatus(name=params.algorithm, security_level=params.security_level)

        try:
            keypair = provider.generate_keypair(params.security_level)
            status.key_sizes = keypair.key_sizes
            sent, kem_ciphertext = provider.encapsulate(params.algorithm, keypair.public_key)
            with ZeroizeContext(sent):
                received = provider.decapsulate(params.algorithm, kem_ciphertext, keypair.private_key)
                with ZeroizeContext(received):
                    matches = hmac.compare_digest(bytes(sent), bytes(received))
                    status.shared_secret_size = len(received)
        except CryptoError as exc:
            logger.warning("Self-test failed for %s: %s", params.algorithm, exc.code.value)
            status.error = exc.message
            return status

        status.ciphertext_size = len(kem_ciphertext)
        if not matches:
            status.error = "shared secrets do not match"
        elif status.key_sizes.get("publicKey") != params.public_key_size:
            status.error = "unexpected public key size"
        else:
            status.functional = True
        return status

    def _test_classical(self) -> AlgorithmStatus:
        level = SecurityLevel.STANDARD
        status = AlgorithmStatus(name=RSA_ALGORITHM, security_level=level)

        try:
            keypair = self._classical.generate_keypair(level)
            status.key_sizes = keypair.key_sizes
            ciphertext = self._classical.encrypt(SELF_TEST_PLAINTEXT, keypair.public_key)
            recovered = self._classical.decrypt(ciphertext, keypair.private_key)
        except CryptoError as exc:
            logger.warning("Classical self-test failed: %s", exc.code.value)
            status.error = exc.message
            return status

        status.ciphertext_size = len(ciphertext)
        if hmac.compare_digest(recovered, SELF_TEST_PLAINTEXT):
            status.functional = True
        else:
            status.error = "decryption did not recover the test data"
        return status

    def _ensure_ready(self) -> None:
        # Explicit retry, as verify() does
        if not self._engine.is_ready:
            self._engine.initialize()

    def benchmark(
        self,
        iterations: Optional[int | str] = None,
        level: SecurityLevel | str = SecurityLevel.STANDARD,
    ) -> BenchmarkReport:
        """
        Time keypair generation, encryption and decryption.

        Every iteration uses a fresh keypair and 1 KiB of text, and checks
        that decryption gives the text back. A failed iteration is recorded
        by error code and the run continues.

        Raises:
            CryptoError(INVALID_INPUT): Iteration count or level out of range
            CryptoError(LIBRARY_LOAD_FAILED | ALGORITHM_NOT_SUPPORTED):
                Post-quantum library unavailable
        """
        count = _bounded_count(
            iterations, "iterations", DEFAULT_BENCHMARK_ITERATIONS, MAX_BENCHMARK_ITERATIONS
        )
        level = SecurityLevel.parse(level)
        self._ensure_ready()

        suite = AlgorithmSuite.for_level(level)
        report = BenchmarkReport(algorithm=suite.composite, security_level=level, iterations=count)

        for iteration in range(1, count + 1):
            try:
                started = time.perf_counter()
                keypair = self._engine.generate_keypair(level)
                report.keypair_generation.add(started)

                started = time.perf_counter()
                envelope = self._engine.encrypt(BENCHMARK_PLAINTEXT, keypair.public_key, suite.composite)
                report.encryption.add(started)

                started = time.perf_counter()
                result = self._engine.decrypt(envelope, keypair.private_key)
                report.decryption.add(started)
            except CryptoError as exc:
                report.errors.append(f"iteration {iteration}: {exc.code.value}")
                continue

            if result.plaintext == BENCHMARK_PLAINTEXT:
                report.verified += 1
            else:
                report.errors.append(f"iteration {iteration}: integrity check failed")

        logger.info("Benchmark complete: %s x%d, %d failed", suite.composite, count, report.failed)
        return report

    def migration_test(
        self,
        entries: Optional[int | str] = None,
        level: SecurityLevel | str = SecurityLevel.STANDARD,
        verify_integrity: bool = True,
    ) -> MigrationReport:
        """
        Rehearse moving stored envelopes to a new keypair.

        Entries are sealed under an ML-KEM-768 keypair, then re-encrypted
        for a fresh keypair at the target level. With verify_integrity the
        new envelope is opened and compared with the original text.

        Raises:
            CryptoError(INVALID_INPUT): Entry count or level out of range
            CryptoError: Library unavailable, or keypair generation failed
        """
        count = _bounded_count(entries, "entries", DEFAULT_MIGRATION_ENTRIES, MAX_MIGRATION_ENTRIES)
        level = SecurityLevel.parse(level)
        self._ensure_ready()

        source = AlgorithmSuite.for_level(SecurityLevel.STANDARD)
        target = AlgorithmSuite.for_level(level)
        old_keys = self._engine.generate_keypair(SecurityLevel.STANDARD)
        new_keys = self._engine.generate_keypair(level)

        report = MigrationReport(
            source_algorithm=source.composite,
            target_algorithm=target.composite,
            entries=count,
            verify_integrity=verify_integrity,
        )

        started = time.perf_counter()
        for entry in range(1, count + 1):
            report.processed += 1
            original = f"Entry {entry} - sample form data awaiting migration"
            try:
                stored = self._engine.encrypt(original, old_keys.public_key, source.composite)
                migrated = self._engine.reencrypt(
                    stored, old_keys.private_key, new_keys.public_key, target.composite
                )
                if verify_integrity:
                    reopened = self._engine.decrypt(migrated, new_keys.private_key)
                    if reopened.plaintext != original:
                        report.failed += 1
                        report.errors.append(f"entry {entry}: integrity check failed")
                        continue
            except CryptoError as exc:
                report.failed += 1
                report.errors.append(f"entry {entry}: {exc.code.value}")
                continue
            report.migrated += 1
        report.total_ms = (time.perf_counter() - started) * 1000.0

        logger.info(
            "Migration test complete: %s -> %s, %d/%d migrated",
            source.composite,
            target.composite,
            report.migrated,
            count,
        )
        return report

    def capabilities(self) -> dict[str, Any]:
        """Static description of what the service can do."""
        return {
            "algorithms": [
                {
                    "name": params.algorithm,
                    "composite": AlgorithmSuite(params.algorithm).composite,
                    "securityLevel": params.security_level.value,
                    "nistLevel": params.nist_level,
                    "description": params.description,
                    "keySize": {
                        "publicKey": params.public_key_size,
                        "privateKey": params.secret_key_size,
                    },
                    "ciphertextSize": params.ciphertext_size,
                }
                for params in KEM_PARAMETERS.values()
            ],
            "dataEncryption": CIPHER_ID,
            "fallback": {
                "algorithm": RSA_ALGORITHM,
                "modulusBits": {
                    level.value: self._classical.modulus_bits(level) for level in SecurityLevel
                },
                "description": "Fallback encryption when post-quantum is unavailable",
            },
            "envelopeVersions": [PQ_VERSION, LEGACY_VERSION],
        }

    def status(self) -> dict[str, Any]:
        """Verification report, capabilities and overall health in one response."""
        report = self.verify()
        pq_ok = report.functional
        classical_ok = report.classical.functional

        algorithms: dict[str, Any] = {
            name: {
                "available": algorithm.functional,
                "securityLevel": algorithm.security_level.value,
                "description": KEM_PARAMETERS[name].description,
            }
            for name, algorithm in report.algorithms.items()
        }
        algorithms[RSA_ALGORITHM] = {
            "available": classical_ok,
            "securityLevel": SecurityLevel.STANDARD.value,
            "description": "Fallback algorithm for compatibility",
        }

        return {
            "timestamp": report.checked_at,
            "service": SERVICE_NAME,
            "version": PQ_VERSION,
            "oqs": {
                "available": report.provider_available,
                "functional": pq_ok,
                "ready": self._engine.is_ready,
                "state": self._engine.state.value,
                "version": report.library_version or "unknown",
                "supportedAlgorithms": [status.to_dict() for status in report.algorithms.values()],
            },
            "rsa": {
                "available": classical_ok,
                "functional": classical_ok,
                "algorithm": RSA_ALGORITHM,
                "keySize": self._classical.modulus_bits(SecurityLevel.STANDARD),
            },
            "algorithms": algorithms,
            "health": {
                "overall": report.health,
                "issues": list(report.errors),
                "statusCode": report.http_status,
            },
            "capabilities": {
                "keyGeneration": pq_ok or classical_ok,
                "encryption": pq_ok or classical_ok,
                "decryption": pq_ok or classical_ok,
                "hybridEncryption": pq_ok,
                "fallbackEncryption": classical_ok,
                "backwardCompatibility": True,
                **self.capabilities(),
            },
        }
