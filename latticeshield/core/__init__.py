"""
Core module - Contains configuration, logging, errors and base components.
"""

from latticeshield.core.config import ShieldConfig
from latticeshield.core.errors import CompositeCryptoError, CryptoError, ErrorCode
from latticeshield.core.logging import SecureLogFilter, get_secure_logger

__all__ = [
    "CompositeCryptoError",
    "CryptoError",
    "ErrorCode",
    "SecureLogFilter",
    "ShieldConfig",
    "get_secure_logger",
]
