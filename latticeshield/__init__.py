"""
LatticeShield - Post-Quantum Field Encryption Service
=====================================================

Hybrid ML-KEM + AES-256-GCM encryption for sensitive form-field values,
with RSA-OAEP-256 fallback and legacy envelope support.

Security Notice:
- No key material or shared secrets are logged
- Fail-closed design pattern
- Decryption failures are deliberately generic
"""

from latticeshield.core.config import ShieldConfig
from latticeshield.core.logging import get_secure_logger

__version__ = "1.0.0"
__author__ = "LatticeShield Team"

__all__ = ["ShieldConfig", "get_secure_logger", "__version__"]
