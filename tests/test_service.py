"""Tests for the service facade."""

import json

import pytest

from latticeshield.core.config import CryptoConfig, ShieldConfig
from latticeshield.core.errors import CryptoError, ErrorCode
from latticeshield.service import LatticeShieldService

STANDARD = "ML-KEM-768+AES-256-GCM"
HIGH = "ML-KEM-1024+AES-256-GCM"


class TestGenerateKeypair:
    """Tests for keypair generation through the facade."""

    def test_default_level(self, service):
        result = service.generate_keypair()

        assert result["algorithm"] == "ML-KEM-768"
        assert result["securityLevel"] == "standard"
        assert result["keySize"] == {"publicKey": 1184, "privateKey": 2400}
        assert result["fallbackUsed"] is False
        assert result["metadata"] == {
            "version": "pq-v1",
            "kemAlgorithm": "ML-KEM-768",
            "dataEncryption": "AES-256-GCM",
            "combinedAlgorithm": STANDARD,
        }

    def test_high_level(self, service):
        result = service.generate_keypair("high")
        assert result["algorithm"] == "ML-KEM-1024"
        assert result["metadata"]["combinedAlgorithm"] == HIGH

    def test_configured_default(self, provider):
        config = ShieldConfig(crypto=CryptoConfig(default_security_level="high"))
        result = LatticeShieldService(config=config, provider=provider).generate_keypair()
        assert result["securityLevel"] == "high"

    def test_invalid_level(self, service):
        with pytest.raises(CryptoError) as exc_info:
            service.generate_keypair("paranoid")
        assert exc_info.value.code is ErrorCode.INVALID_INPUT

    def test_fallback_keypair(self, outage_service):
        result = outage_service.generate_keypair("standard")

        assert result["fallbackUsed"] is True
        assert result["algorithm"] == "RSA-OAEP-256"
        assert result["metadata"]["version"] == "legacy-v1"
        assert result["metadata"]["kemAlgorithm"] is None

    def test_no_fallback(self, no_fallback_service):
        with pytest.raises(CryptoError) as exc_info:
            no_fallback_service.generate_keypair()
        assert exc_info.value.code is ErrorCode.LIBRARY_LOAD_FAILED


class TestEncryptDecrypt:
    """Tests for encryption and decryption through the facade."""

    @pytest.mark.parametrize("level, algorithm", [("standard", STANDARD), ("high", HIGH)])
    def test_roundtrip(self, service, level, algorithm):
        keys = service.generate_keypair(level)
        result = service.encrypt("hello world", keys["publicKey"], algorithm, level)

        assert result["success"] is True
        metadata = result["metadata"]
        assert metadata["algorithm"] == algorithm
        assert metadata["securityLevel"] == level
        assert metadata["version"] == "pq-v1"
        assert metadata["fallbackUsed"] is False
        assert metadata["dataSize"] == len("hello world")
        assert metadata["encryptedSize"] == len(result["encryptedData"]["encryptedData"])
        assert metadata["encryptedAt"] == result["encryptedData"]["timestamp"]

        opened = service.decrypt(result["encryptedData"], keys["privateKey"])
        assert opened == {
            "decryptedData": "hello world",
            "algorithmUsed": algorithm,
            "encryptionType": "post-quantum",
        }

    def test_decrypt_json_text(self, service):
        keys = service.generate_keypair()
        result = service.encrypt("stored value", keys["publicKey"], STANDARD)

        stored = json.dumps(result["encryptedData"])
        assert service.decrypt(stored, keys["privateKey"])["decryptedData"] == "stored value"

    def test_outage_roundtrip(self, outage_service):
        keys = outage_service.generate_keypair()
        result = outage_service.encrypt("hello", keys["publicKey"], STANDARD)

        metadata = result["metadata"]
        assert metadata["fallbackUsed"] is True
        assert metadata["algorithm"] == "RSA-OAEP-256"
        assert metadata["version"] == "legacy-v1"
        assert metadata["securityLevel"] == "standard"
        assert metadata["encryptedAt"]

        opened = outage_service.decrypt(result["encryptedData"], keys["privateKey"])
        assert opened["decryptedData"] == "hello"
        assert opened["encryptionType"] == "legacy"
        assert opened["algorithmUsed"] == "RSA-OAEP-256"

    def test_data_size_counts_utf8_bytes(self, service):
        keys = service.generate_keypair()
        text = "Zürich 東京 🔐"
        result = service.encrypt(text, keys["publicKey"], STANDARD)

        assert result["metadata"]["dataSize"] == len(text.encode("utf-8"))
        assert result["metadata"]["dataSize"] > len(text)

    def test_plaintext_limit_from_config(self, provider):
        config = ShieldConfig(crypto=CryptoConfig(max_plaintext_bytes=8))
        service = LatticeShieldService(config=config, provider=provider)
        keys = service.generate_keypair()

        with pytest.raises(CryptoError) as exc_info:
            service.encrypt("123456789", keys["publicKey"], STANDARD)
        assert exc_info.value.code is ErrorCode.INVALID_INPUT


class TestStatus:
    """Tests for the status operation."""

    def test_healthy(self, service):
        status = service.status()
        assert status["health"]["overall"] == "healthy"
        assert service.engine.is_ready

    def test_degraded(self, outage_service):
        status = outage_service.status()
        assert status["health"]["overall"] == "degraded"
        assert status["health"]["statusCode"] == 206


class TestReencrypt:
    """Tests for moving stored values to a new keypair."""

    def test_rotate(self, service):
        old = service.generate_keypair("standard")
        new = service.generate_keypair("high")
        stored = service.encrypt("form entry", old["publicKey"], STANDARD)["encryptedData"]

        result = service.reencrypt(stored, old["privateKey"], new["publicKey"], HIGH, "high")

        assert result["metadata"]["algorithm"] == HIGH
        assert result["metadata"]["source"] == {"encryptionType": "post-quantum", "algorithm": STANDARD}
        opened = service.decrypt(result["encryptedData"], new["privateKey"])
        assert opened["decryptedData"] == "form entry"

    def test_legacy_to_post_quantum(self, outage_service, provider):
        legacy_keys = outage_service.generate_keypair()
        stored = outage_service.encrypt("old value", legacy_keys["publicKey"], STANDARD)["encryptedData"]

        service = LatticeShieldService(config=ShieldConfig(), provider=provider)
        new = service.generate_keypair()
        result = service.reencrypt(stored, legacy_keys["privateKey"], new["publicKey"], STANDARD)

        assert result["metadata"]["source"]["encryptionType"] == "legacy"
        assert result["metadata"]["fallbackUsed"] is False
        assert service.decrypt(result["encryptedData"], new["privateKey"])["decryptedData"] == "old value"


class TestMonitoring:
    """Tests for benchmark and migration rehearsal through the facade."""

    def test_benchmark_uses_configured_level(self, provider):
        config = ShieldConfig(crypto=CryptoConfig(default_security_level="high"))
        result = LatticeShieldService(config=config, provider=provider).benchmark(2)

        assert result["parameters"]["algorithm"] == HIGH
        assert result["summary"]["successfulIterations"] == 2

    def test_migration_test(self, service):
        result = service.migration_test("3", "high")

        assert result["parameters"]["targetAlgorithm"] == HIGH
        assert result["results"]["entriesMigrated"] == 3

    def test_benchmark_during_outage(self, outage_service):
        with pytest.raises(CryptoError) as exc_info:
            outage_service.benchmark(1)
        assert exc_info.value.code is ErrorCode.LIBRARY_LOAD_FAILED
