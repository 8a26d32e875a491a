"""Tests for envelope classification and decoding."""

import base64
import json

import pytest

from latticeshield.core.crypto.envelope import (
    LEGACY_VERSION,
    PQ_VERSION,
    AlgorithmSuite,
    EnvelopeFormat,
    LegacyEnvelope,
    PostQuantumEnvelope,
    classify,
    decode,
    encode,
)
from latticeshield.core.crypto.keys import SecurityLevel
from latticeshield.core.errors import CryptoError, ErrorCode


def b64(size: int, fill: int = 0x41) -> str:
    return base64.b64encode(bytes([fill]) * size).decode("ascii")


def pq_wire(**overrides) -> dict:
    data = {
        "version": PQ_VERSION,
        "algorithm": "ML-KEM-768+AES-256-GCM",
        "securityLevel": "standard",
        "encapsulatedKey": b64(1088),
        "encryptedData": b64(24),
        "iv": b64(12),
        "authTag": b64(16),
        "timestamp": "2024-01-01T00:00:00+00:00",
    }
    data.update(overrides)
    return {k: v for k, v in data.items() if v is not None}


class TestAlgorithmSuite:
    """Tests for algorithm id parsing."""

    def test_parse_composite(self):
        suite = AlgorithmSuite.parse("ML-KEM-1024+AES-256-GCM")
        assert suite.kem_id == "ML-KEM-1024"
        assert suite.security_level is SecurityLevel.HIGH
        assert suite.associated_data == b"ML-KEM-1024"

    def test_parse_bare_kem_id(self):
        suite = AlgorithmSuite.parse("ML-KEM-768")
        assert suite.composite == "ML-KEM-768+AES-256-GCM"
        assert str(suite) == suite.composite

    @pytest.mark.parametrize("value", [
        None, "", "   ", "Kyber768", "ML-KEM-768+AES-128-GCM", "RSA-OAEP-256", 768,
    ])
    def test_parse_rejects(self, value):
        with pytest.raises(CryptoError) as exc_info:
            AlgorithmSuite.parse(value)
        assert exc_info.value.code is ErrorCode.INVALID_INPUT

    def test_for_level(self):
        assert AlgorithmSuite.for_level(SecurityLevel.STANDARD).kem_id == "ML-KEM-768"
        assert AlgorithmSuite.for_level(SecurityLevel.HIGH).kem_id == "ML-KEM-1024"


class TestClassify:
    """Tests for format detection."""

    @pytest.mark.parametrize("raw, expected", [
        (pq_wire(), EnvelopeFormat.POST_QUANTUM),
        (json.dumps(pq_wire()), EnvelopeFormat.POST_QUANTUM),
        ({"version": "pq-v1"}, EnvelopeFormat.POST_QUANTUM),
        ({"version": "legacy-v1", "encryptedData": "AAAA"}, EnvelopeFormat.LEGACY),
        ({"version": "rsa-v1", "encryptedData": "AAAA"}, EnvelopeFormat.LEGACY),
        ({"algorithm": "RSA-OAEP-256", "encryptedData": "AAAA"}, EnvelopeFormat.LEGACY),
        ("c2VjcmV0IGNpcGhlcnRleHQ=", EnvelopeFormat.LEGACY),
        ("not json at all", EnvelopeFormat.LEGACY),
        (b"\x01\x02\x03", EnvelopeFormat.LEGACY),
        ("", EnvelopeFormat.UNKNOWN),
        ("   ", EnvelopeFormat.UNKNOWN),
        (b"", EnvelopeFormat.UNKNOWN),
        ("[1, 2, 3]", EnvelopeFormat.UNKNOWN),
        ("42", EnvelopeFormat.LEGACY),
        ("1234", EnvelopeFormat.LEGACY),
        ("null", EnvelopeFormat.LEGACY),
        ({"version": "pq-v2"}, EnvelopeFormat.UNKNOWN),
        ({"version": ["pq-v1"]}, EnvelopeFormat.UNKNOWN),
        ({}, EnvelopeFormat.UNKNOWN),
        (None, EnvelopeFormat.UNKNOWN),
        (12345, EnvelopeFormat.UNKNOWN),
    ])
    def test_classify(self, raw, expected):
        assert classify(raw) is expected

    def test_classify_envelope_objects(self):
        legacy = LegacyEnvelope(ciphertext=b"\x00" * 256)
        assert classify(legacy) is EnvelopeFormat.LEGACY
        assert classify(decode(pq_wire())) is EnvelopeFormat.POST_QUANTUM


class TestDecodePostQuantum:
    """Tests for pq-v1 decoding."""

    def test_decode_valid(self):
        envelope = decode(pq_wire())

        assert isinstance(envelope, PostQuantumEnvelope)
        assert envelope.algorithm == "ML-KEM-768+AES-256-GCM"
        assert envelope.security_level is SecurityLevel.STANDARD
        assert len(envelope.encapsulated_key) == 1088
        assert envelope.nonce == b"A" * 12
        assert envelope.timestamp == "2024-01-01T00:00:00+00:00"

    def test_encode_matches_wire(self):
        wire = pq_wire()
        assert encode(decode(wire)) == wire
        assert decode(json.dumps(wire)).to_dict() == wire

    def test_decode_accepts_aliases(self):
        wire = pq_wire(encryptedData=None, iv=None)
        wire["ciphertext"] = b64(10)
        wire["nonce"] = b64(12)

        envelope = decode(wire)
        assert envelope.ciphertext == b"A" * 10
        assert len(envelope.nonce) == 12
        # Re-encoding uses the canonical names
        assert "iv" in envelope.to_dict()
        assert "nonce" not in envelope.to_dict()

    def test_missing_timestamp_is_allowed(self):
        envelope = decode(pq_wire(timestamp=None))
        assert envelope.timestamp == ""

    def test_reports_every_missing_field(self):
        with pytest.raises(CryptoError) as exc_info:
            decode({"version": "pq-v1"})

        err = exc_info.value
        assert err.code is ErrorCode.INVALID_DATA_FORMAT
        for name in ("algorithm", "securityLevel", "encapsulatedKey", "encryptedData", "iv", "authTag"):
            assert f"'{name}'" in err.message

    @pytest.mark.parametrize("overrides, fragment", [
        ({"iv": b64(8)}, "'iv' must be 12 bytes"),
        ({"authTag": b64(12)}, "'authTag' must be 16 bytes"),
        ({"encapsulatedKey": b64(1568)}, "'encapsulatedKey' must be 1088 bytes"),
        ({"encryptedData": "***"}, "'encryptedData' is not valid base64"),
        ({"algorithm": "ML-KEM-512+AES-256-GCM"}, "unsupported algorithm"),
        ({"securityLevel": "extreme"}, "unsupported security level"),
        ({"securityLevel": "high"}, "does not match algorithm"),
        ({"iv": 12}, "'iv' must be a non-empty string"),
        ({"timestamp": 1700000000}, "'timestamp' must be a string"),
    ])
    def test_invalid_fields(self, overrides, fragment):
        with pytest.raises(CryptoError) as exc_info:
            decode(pq_wire(**overrides))
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT
        assert fragment in exc_info.value.message

    def test_high_level_sizes(self):
        envelope = decode(pq_wire(
            algorithm="ML-KEM-1024+AES-256-GCM",
            securityLevel="high",
            encapsulatedKey=b64(1568),
        ))
        assert envelope.security_level is SecurityLevel.HIGH

    def test_from_json_rejects_legacy(self):
        with pytest.raises(CryptoError) as exc_info:
            PostQuantumEnvelope.from_json("bGVnYWN5IGNpcGhlcnRleHQ=")
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT


class TestDecodeLegacy:
    """Tests for legacy decoding."""

    def test_object(self):
        envelope = decode({"version": "legacy-v1", "algorithm": "RSA-OAEP-256", "encryptedData": b64(256)})

        assert isinstance(envelope, LegacyEnvelope)
        assert envelope.ciphertext == b"A" * 256
        assert envelope.version == LEGACY_VERSION

    def test_rsa_v1_version_is_kept(self):
        envelope = decode({"version": "rsa-v1", "encryptedData": b64(256)})
        assert envelope.version == "rsa-v1"
        assert envelope.algorithm == "RSA-OAEP-256"

    def test_bare_base64_string(self):
        envelope = decode(b64(256))
        assert isinstance(envelope, LegacyEnvelope)
        assert len(envelope.ciphertext) == 256

    def test_base64_that_is_also_a_json_scalar(self):
        envelope = decode("1234")
        assert isinstance(envelope, LegacyEnvelope)
        assert envelope.ciphertext == base64.b64decode("1234")

    def test_raw_bytes(self):
        envelope = decode(b"\x07" * 256)
        assert envelope.ciphertext == b"\x07" * 256

    def test_bare_string_not_base64(self):
        with pytest.raises(CryptoError) as exc_info:
            decode("definitely not base64!")
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT

    def test_unsupported_legacy_algorithm(self):
        with pytest.raises(CryptoError) as exc_info:
            decode({"version": "legacy-v1", "algorithm": "RSA-PKCS1-v1_5", "encryptedData": b64(256)})
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT
        assert "unsupported legacy algorithm" in exc_info.value.message

    def test_missing_ciphertext(self):
        with pytest.raises(CryptoError) as exc_info:
            decode({"version": "legacy-v1"})
        assert "missing field 'encryptedData'" in exc_info.value.message


class TestDecodeUnknown:
    """Tests for input no format accepts."""

    @pytest.mark.parametrize("raw", ["", "[]", {"version": "v9"}, 3.14, None])
    def test_unknown_is_rejected(self, raw):
        with pytest.raises(CryptoError) as exc_info:
            decode(raw)
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT

    def test_encode_rejects_non_envelope(self):
        with pytest.raises(CryptoError) as exc_info:
            encode({"version": "pq-v1"})
        assert exc_info.value.code is ErrorCode.INVALID_DATA_FORMAT
