"""
Pytest configuration and fixtures for LatticeShield tests.

The real liboqs binding is never imported here. A simulated KEM with the
same module API (``get_enabled_kem_mechanisms``, ``KeyEncapsulation``,
``oqs_version``) and the published ML-KEM sizes is injected through
KemProvider's loader hook.

WARNING: The simulated KEM is NOT cryptographically secure.
"""

from __future__ import annotations

import hashlib
import secrets
from typing import Optional

import pytest

from latticeshield.core.config import CryptoConfig, ShieldConfig
from latticeshield.core.crypto.hybrid_engine import HybridCryptoEngine
from latticeshield.core.crypto.keys import SecurityLevel
from latticeshield.core.crypto.provider import KemProvider
from latticeshield.core.crypto.rsa_fallback import RsaOaepCipher
from latticeshield.service import LatticeShieldService
from latticeshield.web.app import create_app

# (public key, secret key, ciphertext) sizes
SIM_SIZES = {
    "ML-KEM-768": (1184, 2400, 1088),
    "ML-KEM-1024": (1568, 3168, 1568),
}
SIM_SHARED_SECRET_SIZE = 32


class SimulatedKeyEncapsulation:
    """
    Stand-in for ``oqs.KeyEncapsulation``.

    Keygen derives the public key head from a random seed; encapsulation
    masks a random secret with a pad derived from that head; decapsulation
    re-derives the pad from the public key embedded in the secret key.
    A different secret key yields a different (wrong) shared secret.
    """

    def __init__(self, module: "SimulatedOQS", alg_name: str, secret_key: Optional[bytes] = None) -> None:
        if alg_name not in module.mechanisms:
            raise RuntimeError(f"{alg_name} is not supported by OQS")
        self._module = module
        self.alg_name = alg_name
        self.secret_key = secret_key
        self.pk_size, self.sk_size, self.ct_size = SIM_SIZES[alg_name]
        self.freed = False

    def __enter__(self) -> "SimulatedKeyEncapsulation":
        return self

    def __exit__(self, *exc_info) -> None:
        self.free()

    def free(self) -> None:
        self.freed = True
        self._module.freed += 1

    def generate_keypair(self) -> bytes:
        if self._module.fail_keygen:
            raise RuntimeError("Can not generate keypair")
        seed = secrets.token_bytes(32)
        public_key = hashlib.sha256(b"KYBER_PK" + seed).digest() + secrets.token_bytes(self.pk_size - 32)
        self.secret_key = seed + public_key + secrets.token_bytes(self.sk_size - 32 - self.pk_size)
        return public_key

    def export_secret_key(self) -> bytes:
        return self.secret_key

    def encap_secret(self, public_key: bytes) -> tuple[bytes, bytes]:
        if self._module.fail_encap:
            raise RuntimeError("Can not encapsulate secret")
        if len(public_key) != self.pk_size:
            raise RuntimeError("Invalid public key length")
        shared_secret = secrets.token_bytes(SIM_SHARED_SECRET_SIZE)
        nonce = secrets.token_bytes(32)
        pad = hashlib.shake_256(public_key[:32] + nonce).digest(SIM_SHARED_SECRET_SIZE)
        masked = bytes(a ^ b for a, b in zip(shared_secret, pad))
        ciphertext = nonce + masked + secrets.token_bytes(self.ct_size - 32 - SIM_SHARED_SECRET_SIZE)
        return ciphertext, shared_secret

    def decap_secret(self, ciphertext: bytes) -> bytes:
        if self._module.fail_decap:
            raise RuntimeError("Can not decapsulate secret")
        if self.secret_key is None or len(self.secret_key) != self.sk_size:
            raise RuntimeError("Secret key not set")
        public_head = self.secret_key[32:64]
        pad = hashlib.shake_256(public_head + ciphertext[:32]).digest(SIM_SHARED_SECRET_SIZE)
        return bytes(a ^ b for a, b in zip(ciphertext[32:32 + SIM_SHARED_SECRET_SIZE], pad))


class SimulatedOQS:
    """Module-shaped stand-in for ``oqs`` with failure switches."""

    def __init__(self, mechanisms: Optional[list[str]] = None) -> None:
        self.mechanisms = list(SIM_SIZES) if mechanisms is None else mechanisms
        self.fail_keygen = False
        self.fail_encap = False
        self.fail_decap = False
        self.freed = 0

    def get_enabled_kem_mechanisms(self) -> list[str]:
        return ["Kyber512", "ML-KEM-512", *self.mechanisms]

    def oqs_version(self) -> str:
        return "0.10.1-simulated"

    def KeyEncapsulation(self, alg_name: str, secret_key: Optional[bytes] = None) -> SimulatedKeyEncapsulation:
        return SimulatedKeyEncapsulation(self, alg_name, secret_key)


def _unavailable():
    raise ImportError("No oqs shared libraries found")


@pytest.fixture(autouse=True)
def reset_config():
    """Keep the configuration singleton from leaking between tests."""
    ShieldConfig.reset_instance()
    yield
    ShieldConfig.reset_instance()


@pytest.fixture
def fake_oqs() -> SimulatedOQS:
    return SimulatedOQS()


@pytest.fixture
def provider(fake_oqs: SimulatedOQS) -> KemProvider:
    return KemProvider(loader=lambda: fake_oqs)


@pytest.fixture
def unavailable_provider() -> KemProvider:
    """Provider whose library cannot be loaded (simulated outage)."""
    return KemProvider(loader=_unavailable)


@pytest.fixture(scope="session")
def classical() -> RsaOaepCipher:
    return RsaOaepCipher()


@pytest.fixture(scope="session")
def rsa_keypair(classical: RsaOaepCipher):
    """One RSA keypair for the session; generation is slow."""
    return classical.generate_keypair(SecurityLevel.STANDARD)


@pytest.fixture
def engine(provider: KemProvider, classical: RsaOaepCipher) -> HybridCryptoEngine:
    engine = HybridCryptoEngine(provider=provider, classical=classical)
    engine.initialize()
    return engine


@pytest.fixture
def config() -> ShieldConfig:
    return ShieldConfig()


@pytest.fixture
def service(config: ShieldConfig, provider: KemProvider) -> LatticeShieldService:
    return LatticeShieldService(config=config, provider=provider)


@pytest.fixture
def outage_service(unavailable_provider: KemProvider) -> LatticeShieldService:
    return LatticeShieldService(config=ShieldConfig(), provider=unavailable_provider)


@pytest.fixture
def no_fallback_service(unavailable_provider: KemProvider) -> LatticeShieldService:
    config = ShieldConfig(crypto=CryptoConfig(fallback_enabled=False))
    return LatticeShieldService(config=config, provider=unavailable_provider)


@pytest.fixture
def app(service: LatticeShieldService):
    app = create_app(service=service)
    app.config["TESTING"] = True
    return app


@pytest.fixture
def client(app):
    return app.test_client()
