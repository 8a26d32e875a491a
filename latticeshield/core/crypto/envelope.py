"""
Envelope Codec
==============

Versioned wire format for encryption results.

Formats (the ``version`` field is the only discriminator):

    pq-v1 (post-quantum):
        {
            "version": "pq-v1",
            "algorithm": "ML-KEM-768+AES-256-GCM",
            "securityLevel": "standard",
            "encapsulatedKey": <base64 KEM ciphertext>,
            "encryptedData": <base64 AES-GCM ciphertext>,
            "iv": <base64 12-byte nonce>,
            "authTag": <base64 16-byte tag>,
            "timestamp": <ISO-8601 UTC>
        }

    legacy-v1 (classical):
        {
            "version": "legacy-v1",
            "algorithm": "RSA-OAEP-256",
            "encryptedData": <base64 RSA-OAEP ciphertext>
        }

Older hosts also send ``rsa-v1`` objects and bare base64 strings; both are
read as legacy. ``ciphertext`` and ``nonce`` are accepted as aliases for
``encryptedData`` and ``iv`` when decoding.

A new format requires a new version string. Existing fields are never
reinterpreted.
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Final, Optional, Union

from latticeshield.core.crypto.aes_gcm import AES_NONCE_SIZE, AES_TAG_SIZE, CIPHER_ID
from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.core.crypto.keys import SecurityLevel
from latticeshield.core.crypto.provider import (
    KEM_BY_LEVEL,
    KEM_PARAMETERS,
    KemParameters,
    kem_parameters,
)
from latticeshield.core.crypto.rsa_fallback import RSA_ALGORITHM

PQ_VERSION: Final[str] = "pq-v1"
LEGACY_VERSION: Final[str] = "legacy-v1"
LEGACY_VERSIONS: Final[frozenset[str]] = frozenset({LEGACY_VERSION, "rsa-v1"})

SUITE_SEPARATOR: Final[str] = "+"


class EnvelopeFormat(str, Enum):
    """Result of classifying raw envelope input."""

    POST_QUANTUM = "post-quantum"
    LEGACY = "legacy"
    UNKNOWN = "unknown"


@dataclass(frozen=True, slots=True)
class AlgorithmSuite:
    """
    Structured ``<kem>+<cipher>`` algorithm identifier.

    Parsed once at the edge; nothing downstream splits strings.
    """

    kem_id: str
    cipher_id: str = CIPHER_ID

    @classmethod
    def parse(cls, value: Any) -> "AlgorithmSuite":
        """
        Parse a composite id (``ML-KEM-768+AES-256-GCM``) or a bare KEM id.

        Raises:
            CryptoError(INVALID_INPUT): If either part is not supported
        """
        if not isinstance(value, str) or not value.strip():
            raise CryptoError(ErrorCode.INVALID_INPUT, "algorithm must be a non-empty string")

        kem_id, sep, cipher_id = value.strip().partition(SUITE_SEPARATOR)
        if not sep:
            cipher_id = CIPHER_ID

        if kem_id not in KEM_PARAMETERS or cipher_id != CIPHER_ID:
            supported = ", ".join(cls(kem).composite for kem in KEM_PARAMETERS)
            raise CryptoError(
                ErrorCode.INVALID_INPUT,
                f"unsupported algorithm: {value!r} (supported: {supported})",
            )
        return cls(kem_id=kem_id, cipher_id=cipher_id)

    @classmethod
    def for_level(cls, level: SecurityLevel) -> "AlgorithmSuite":
        return cls(kem_id=KEM_BY_LEVEL[level].algorithm)

    @property
    def composite(self) -> str:
        return f"{self.kem_id}{SUITE_SEPARATOR}{self.cipher_id}"

    @property
    def kem_parameters(self) -> KemParameters:
        return kem_parameters(self.kem_id)

    @property
    def security_level(self) -> SecurityLevel:
        return self.kem_parameters.security_level

    @property
    def associated_data(self) -> bytes:
        """AEAD associated data: the bare KEM id."""
        return self.kem_id.encode("ascii")

    def __str__(self) -> str:
        return self.composite


def _utc_now() -> str:
    return datetime.now(timezone.utc).isoformat()


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


@dataclass(frozen=True, slots=True)
class PostQuantumEnvelope:
    """
    Immutable ``pq-v1`` envelope.

    Contains everything needed for decryption except the private key.
    """

    suite: AlgorithmSuite
    security_level: SecurityLevel
    encapsulated_key: bytes
    ciphertext: bytes
    nonce: bytes
    auth_tag: bytes
    timestamp: str = field(default_factory=_utc_now)
    version: str = PQ_VERSION

    @property
    def algorithm(self) -> str:
        return self.suite.composite

    @property
    def format(self) -> EnvelopeFormat:
        return EnvelopeFormat.POST_QUANTUM

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "algorithm": self.suite.composite,
            "securityLevel": self.security_level.value,
            "encapsulatedKey": _b64(self.encapsulated_key),
            "encryptedData": _b64(self.ciphertext),
            "iv": _b64(self.nonce),
            "authTag": _b64(self.auth_tag),
            "timestamp": self.timestamp,
        }

    def to_json(self) -> str:
        """Serialize to JSON string with base64-encoded binary data."""
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "PostQuantumEnvelope":
        envelope = decode(json_str)
        if not isinstance(envelope, cls):
            raise CryptoError(ErrorCode.INVALID_DATA_FORMAT, f"expected a {PQ_VERSION} envelope")
        return envelope

    def __repr__(self) -> str:
        return (
            f"PostQuantumEnvelope({self.suite.composite}, "
            f"ciphertext_len={len(self.ciphertext)})"
        )


@dataclass(frozen=True, slots=True)
class LegacyEnvelope:
    """Immutable ``legacy-v1`` envelope (RSA-OAEP ciphertext)."""

    ciphertext: bytes
    algorithm: str = RSA_ALGORITHM
    version: str = LEGACY_VERSION

    @property
    def format(self) -> EnvelopeFormat:
        return EnvelopeFormat.LEGACY

    def to_dict(self) -> dict[str, Any]:
        return {
            "version": self.version,
            "algorithm": self.algorithm,
            "encryptedData": _b64(self.ciphertext),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_dict())

    @classmethod
    def from_json(cls, json_str: str) -> "LegacyEnvelope":
        envelope = decode(json_str)
        if not isinstance(envelope, cls):
            raise CryptoError(ErrorCode.INVALID_DATA_FORMAT, f"expected a {LEGACY_VERSION} envelope")
        return envelope

    def __repr__(self) -> str:
        return f"LegacyEnvelope({self.algorithm}, ciphertext_len={len(self.ciphertext)})"


Envelope = Union[PostQuantumEnvelope, LegacyEnvelope]


def _parse_json_object(text: str) -> tuple[bool, Any]:
    """Returns (is_json, value)."""
    try:
        return True, json.loads(text)
    except (ValueError, RecursionError):
        return False, None


def _classify_mapping(data: dict) -> EnvelopeFormat:
    version = data.get("version")
    if version == PQ_VERSION:
        return EnvelopeFormat.POST_QUANTUM
    if (isinstance(version, str) and version in LEGACY_VERSIONS) or data.get("algorithm") == RSA_ALGORITHM:
        return EnvelopeFormat.LEGACY
    return EnvelopeFormat.UNKNOWN


def classify(raw: Any) -> EnvelopeFormat:
    """
    Detect the envelope format without validating it.

    Never raises. Accepts envelope objects, dicts, JSON text, bare base64
    text and raw bytes.
    """
    if isinstance(raw, (PostQuantumEnvelope, LegacyEnvelope)):
        return raw.format

    if isinstance(raw, dict):
        return _classify_mapping(raw)

    if isinstance(raw, (bytes, bytearray)):
        return EnvelopeFormat.LEGACY if raw else EnvelopeFormat.UNKNOWN

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return EnvelopeFormat.UNKNOWN
        _, value = _parse_json_object(text)
        if isinstance(value, dict):
            return _classify_mapping(value)
        if isinstance(value, list):
            return EnvelopeFormat.UNKNOWN
        # Opaque ciphertext from older hosts; base64 text may also parse as a JSON scalar
        return EnvelopeFormat.LEGACY

    return EnvelopeFormat.UNKNOWN


def encode(envelope: Envelope) -> dict[str, Any]:
    """Convert an envelope to its wire dict."""
    if isinstance(envelope, (PostQuantumEnvelope, LegacyEnvelope)):
        return envelope.to_dict()
    raise CryptoError(
        ErrorCode.INVALID_DATA_FORMAT,
        f"cannot encode {type(envelope).__name__} as an envelope",
    )


class _FieldReader:
    """Collects every field problem so they can be reported together."""

    __slots__ = ("data", "problems")

    def __init__(self, data: dict) -> None:
        self.data = data
        self.problems: list[str] = []

    def text(self, *names: str) -> Optional[str]:
        name = names[0]
        for candidate in names:
            if candidate in self.data:
                name = candidate
                break
        else:
            self.problems.append(f"missing field '{name}'")
            return None

        value = self.data[name]
        if not isinstance(value, str) or not value:
            self.problems.append(f"field '{name}' must be a non-empty string")
            return None
        return value

    def binary(self, *names: str, size: Optional[int] = None) -> Optional[bytes]:
        value = self.text(*names)
        if value is None:
            return None
        try:
            decoded = base64.b64decode(value, validate=True)
        except (binascii.Error, ValueError):
            self.problems.append(f"field '{names[0]}' is not valid base64")
            return None
        if not decoded:
            self.problems.append(f"field '{names[0]}' is empty")
            return None
        if size is not None and len(decoded) != size:
            self.problems.append(f"field '{names[0]}' must be {size} bytes, got {len(decoded)}")
            return None
        return decoded


def _invalid(problems: list[str]) -> CryptoError:
    return CryptoError(
        ErrorCode.INVALID_DATA_FORMAT,
        "invalid envelope format: " + "; ".join(problems),
    )


def _decode_post_quantum(data: dict) -> PostQuantumEnvelope:
    reader = _FieldReader(data)

    suite: Optional[AlgorithmSuite] = None
    algorithm = reader.text("algorithm")
    if algorithm is not None:
        try:
            suite = AlgorithmSuite.parse(algorithm)
        except CryptoError:
            reader.problems.append(f"unsupported algorithm {algorithm!r}")

    level: Optional[SecurityLevel] = None
    level_text = reader.text("securityLevel")
    if level_text is not None:
        try:
            level = SecurityLevel.parse(level_text)
        except CryptoError:
            reader.problems.append(f"unsupported security level {level_text!r}")

    if suite is not None and level is not None and suite.security_level is not level:
        reader.problems.append(
            f"security level {level.value!r} does not match algorithm {suite.composite}"
        )

    kem_size = suite.kem_parameters.ciphertext_size if suite is not None else None
    encapsulated_key = reader.binary("encapsulatedKey", size=kem_size)
    ciphertext = reader.binary("encryptedData", "ciphertext")
    nonce = reader.binary("iv", "nonce", size=AES_NONCE_SIZE)
    auth_tag = reader.binary("authTag", size=AES_TAG_SIZE)

    timestamp = data.get("timestamp")
    if timestamp is not None and not isinstance(timestamp, str):
        reader.problems.append("field 'timestamp' must be a string")

    if reader.problems:
        raise _invalid(reader.problems)

    return PostQuantumEnvelope(
        suite=suite,
        security_level=level,
        encapsulated_key=encapsulated_key,
        ciphertext=ciphertext,
        nonce=nonce,
        auth_tag=auth_tag,
        timestamp=timestamp or "",
    )


def _decode_legacy(data: dict) -> LegacyEnvelope:
    reader = _FieldReader(data)
    ciphertext = reader.binary("encryptedData", "ciphertext")

    algorithm = data.get("algorithm", RSA_ALGORITHM)
    if algorithm != RSA_ALGORITHM:
        reader.problems.append(f"unsupported legacy algorithm {algorithm!r}")

    if reader.problems:
        raise _invalid(reader.problems)

    version = data.get("version")
    if not isinstance(version, str) or version not in LEGACY_VERSIONS:
        version = LEGACY_VERSION
    return LegacyEnvelope(ciphertext=ciphertext, algorithm=RSA_ALGORITHM, version=version)


def decode(raw: Any) -> Envelope:
    """
    Validate raw input and build the matching envelope.

    Raises:
        CryptoError(INVALID_DATA_FORMAT): Listing every missing or
            malformed field, or if the format is not recognized
    """
    if isinstance(raw, (PostQuantumEnvelope, LegacyEnvelope)):
        return raw

    envelope_format = classify(raw)
    if envelope_format is EnvelopeFormat.UNKNOWN:
        raise CryptoError(ErrorCode.INVALID_DATA_FORMAT, "unrecognized envelope format")

    if isinstance(raw, (bytes, bytearray)):
        return LegacyEnvelope(ciphertext=bytes(raw))

    data = raw
    if isinstance(raw, str):
        _, data = _parse_json_object(raw.strip())
        if not isinstance(data, dict):
            try:
                ciphertext = base64.b64decode(raw.strip(), validate=True)
            except (binascii.Error, ValueError):
                raise CryptoError(
                    ErrorCode.INVALID_DATA_FORMAT,
                    "invalid envelope format: legacy ciphertext is not valid base64",
                ) from None
            return LegacyEnvelope(ciphertext=ciphertext)

    if envelope_format is EnvelopeFormat.POST_QUANTUM:
        return _decode_post_quantum(data)
    return _decode_legacy(data)
