"""
Secure Configuration Module
===========================

Provides immutable, environment-aware configuration with security-first defaults.

Security Features:
- Immutable configuration after initialization
- Environment variable override support (LATTICESHIELD_ prefix)
- No secrets in default values, secret-looking variables are ignored
- Type-safe configuration access
- OS-aware log directory
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional


# Security Constants
_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt"
})

_VALID_SECURITY_LEVELS: Final[frozenset[str]] = frozenset({"standard", "high"})
_MIN_RSA_MODULUS_BITS: Final[int] = 2048


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _parse_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "LatticeShield" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "LatticeShield"
    else:  # Linux and others
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "LatticeShield" / "logs"


def _get_default_port() -> int:
    # Hosting platforms inject PORT
    return int(os.environ.get("PORT", 5000))


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Immutable protocol configuration."""

    default_security_level: str = "standard"
    fallback_enabled: bool = True

    # RSA-OAEP-256 fallback modulus per security level
    rsa_modulus_bits_standard: int = 2048
    rsa_modulus_bits_high: int = 3072

    max_plaintext_bytes: int = 1024 * 1024  # 1 MiB

    def __post_init__(self) -> None:
        """Validate crypto settings."""
        if self.default_security_level not in _VALID_SECURITY_LEVELS:
            raise ValueError(f"Invalid default security level: {self.default_security_level}")
        for name in ("rsa_modulus_bits_standard", "rsa_modulus_bits_high"):
            if getattr(self, name) < _MIN_RSA_MODULUS_BITS:
                raise ValueError(f"{name} must be at least {_MIN_RSA_MODULUS_BITS}")
        if self.max_plaintext_bytes <= 0:
            raise ValueError("max_plaintext_bytes must be positive")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    log_dir: Path = field(default_factory=_get_default_log_dir)
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    enable_json: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")
        if not self.log_dir.is_absolute():
            raise ValueError(f"log_dir must be an absolute path: {self.log_dir}")


@dataclass(frozen=True, slots=True)
class ServerConfig:
    """Immutable HTTP adapter configuration."""

    host: str = "0.0.0.0"
    port: int = field(default_factory=_get_default_port)
    cors_origin: str = "*"
    max_content_length: int = 2 * 1024 * 1024  # 2 MB

    def __post_init__(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}")


@dataclass(frozen=True, slots=True)
class AppConfig:
    """Immutable application configuration."""

    app_name: str = "LatticeShield"
    version: str = "1.0.0"
    debug_mode: bool = False  # Always False in production

    def __post_init__(self) -> None:
        """Validate and enforce security rules."""
        if self.debug_mode:
            import warnings
            warnings.warn(
                "Debug mode is enabled. This should NEVER be used in production.",
                SecurityWarning,
                stacklevel=2
            )


class ShieldConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Usage:
        config = ShieldConfig.load()
        level = config.crypto.default_security_level
        port = config.server.port
    """

    __slots__ = ("_crypto", "_logging", "_server", "_app", "_frozen", "_config_hash")

    _instance: Optional[ShieldConfig] = None

    def __init__(
        self,
        crypto: Optional[CryptoConfig] = None,
        logging: Optional[LoggingConfig] = None,
        server: Optional[ServerConfig] = None,
        app: Optional[AppConfig] = None,
    ) -> None:
        """Initialize configuration. Use ShieldConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_server", server or ServerConfig())
        object.__setattr__(self, "_app", app or AppConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._crypto}|{self._logging}|{self._server}|{self._app}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def server(self) -> ServerConfig:
        return self._server

    @property
    def app(self) -> AppConfig:
        return self._app

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "LATTICESHIELD") -> ShieldConfig:
        """
        Load configuration with environment variable overrides.

        Environment variables are prefixed with LATTICESHIELD_ and use
        double underscores for nested values.

        Examples:
            LATTICESHIELD_CRYPTO__DEFAULT_SECURITY_LEVEL=high
            LATTICESHIELD_CRYPTO__FALLBACK_ENABLED=false
            LATTICESHIELD_LOGGING__LEVEL=DEBUG
            LATTICESHIELD_SERVER__PORT=8080

        Raises:
            ValueError: If an override has the wrong type or fails validation
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.default_security_level" in env_overrides:
            crypto_kwargs["default_security_level"] = env_overrides["crypto.default_security_level"].strip().lower()
        if "crypto.fallback_enabled" in env_overrides:
            crypto_kwargs["fallback_enabled"] = _parse_bool(env_overrides["crypto.fallback_enabled"])
        for name in ("rsa_modulus_bits_standard", "rsa_modulus_bits_high", "max_plaintext_bytes"):
            if f"crypto.{name}" in env_overrides:
                crypto_kwargs[name] = int(env_overrides[f"crypto.{name}"])

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.log_dir" in env_overrides:
            logging_kwargs["log_dir"] = Path(env_overrides["logging.log_dir"])
        for name in ("enable_console", "enable_file", "enable_json"):
            if f"logging.{name}" in env_overrides:
                logging_kwargs[name] = _parse_bool(env_overrides[f"logging.{name}"])

        server_kwargs: dict[str, Any] = {}
        if "server.host" in env_overrides:
            server_kwargs["host"] = env_overrides["server.host"]
        if "server.port" in env_overrides:
            server_kwargs["port"] = int(env_overrides["server.port"])
        if "server.cors_origin" in env_overrides:
            server_kwargs["cors_origin"] = env_overrides["server.cors_origin"]
        if "server.max_content_length" in env_overrides:
            server_kwargs["max_content_length"] = int(env_overrides["server.max_content_length"])

        # debug_mode cannot be overridden via env
        return cls(
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
            server=ServerConfig(**server_kwargs) if server_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # LATTICESHIELD_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> ShieldConfig:
        """Get or create the singleton configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Use only for testing."""
        cls._instance = None

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return f"ShieldConfig(hash={self._config_hash}, app={self._app.app_name})"

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if hasattr(self, "_frozen") and self._frozen:
            raise AttributeError("ShieldConfig is immutable after initialization")
        super().__setattr__(name, value)


class SecurityWarning(UserWarning):
    """Warning for security-related configuration issues."""
    pass
