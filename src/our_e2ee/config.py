"""E2EE configuration.

Provides handshake configuration with env var support.
Uses a protocol-based injection pattern so the calling application
can provide its own config implementation.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from .constants import (
    DEFAULT_CONFIRM_CODE_LENGTH,
    DEFAULT_CONFIRM_CODE_SALT,
    DEFAULT_KEY_NAME,
    DEFAULT_KEY_SERVICE,
)
from .exceptions import ConfigurationError
from .types import AccessPolicy


@runtime_checkable
class E2EEConfigProtocol(Protocol):
    """Protocol defining E2EE configuration requirements.

    Calling applications may implement this protocol and register it
    via set_e2ee_config().
    """

    @property
    def key_name(self) -> str:
        """Name of the permanent key pair in the key store."""
        ...

    @property
    def key_service(self) -> str:
        """Service (namespace) the key pairs are stored under."""
        ...

    @property
    def keystore_path(self) -> str | None:
        """Directory for the file key store, or None for in-memory."""
        ...

    @property
    def confirm_code_length(self) -> int:
        """Number of digits in a confirmation code."""
        ...

    @property
    def confirm_code_salt(self) -> bytes:
        """Salt for confirmation-code key derivation."""
        ...

    @property
    def access_policy(self) -> AccessPolicy:
        """Access policy for persisted private keys."""
        ...


@dataclass
class E2EESettings:
    """Concrete E2EE configuration.

    Reads from environment variables with OUR_E2EE_ prefix.
    Can be instantiated directly for testing.
    """

    # Identity
    key_name: str = DEFAULT_KEY_NAME
    key_service: str = DEFAULT_KEY_SERVICE

    # Storage
    keystore_path: str | None = None
    access_policy: AccessPolicy = AccessPolicy.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY

    # Confirmation code
    confirm_code_length: int = DEFAULT_CONFIRM_CODE_LENGTH
    confirm_code_salt: bytes = DEFAULT_CONFIRM_CODE_SALT

    @classmethod
    def from_env(cls) -> E2EESettings:
        """Create settings from environment variables.

        Raises:
            ConfigurationError: If a variable holds an unparseable value
        """
        length_raw = os.environ.get("OUR_E2EE_CONFIRM_CODE_LENGTH", str(DEFAULT_CONFIRM_CODE_LENGTH))
        try:
            confirm_code_length = int(length_raw)
        except ValueError as e:
            raise ConfigurationError("OUR_E2EE_CONFIRM_CODE_LENGTH must be an integer", {"value": length_raw}) from e
        if confirm_code_length < 1:
            raise ConfigurationError("OUR_E2EE_CONFIRM_CODE_LENGTH must be positive", {"value": length_raw})

        salt_hex = os.environ.get("OUR_E2EE_CONFIRM_CODE_SALT")
        confirm_code_salt = DEFAULT_CONFIRM_CODE_SALT
        if salt_hex:
            try:
                confirm_code_salt = bytes.fromhex(salt_hex)
            except ValueError as e:
                raise ConfigurationError("OUR_E2EE_CONFIRM_CODE_SALT must be hex") from e

        policy_raw = os.environ.get("OUR_E2EE_ACCESS_POLICY", AccessPolicy.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY.value)
        try:
            access_policy = AccessPolicy(policy_raw.lower())
        except ValueError as e:
            raise ConfigurationError("Unknown OUR_E2EE_ACCESS_POLICY", {"value": policy_raw}) from e

        return cls(
            key_name=os.environ.get("OUR_E2EE_KEY_NAME", DEFAULT_KEY_NAME),
            key_service=os.environ.get("OUR_E2EE_KEY_SERVICE", DEFAULT_KEY_SERVICE),
            keystore_path=os.environ.get("OUR_E2EE_KEYSTORE_PATH") or None,
            access_policy=access_policy,
            confirm_code_length=confirm_code_length,
            confirm_code_salt=confirm_code_salt,
        )


# Global E2EE config - set by application layer at startup
_e2ee_config: E2EEConfigProtocol | None = None
_core_settings: E2EESettings | None = None


def set_e2ee_config(config: E2EEConfigProtocol) -> None:
    """Set the global E2EE config.

    Called by the application layer at startup to inject its settings.

    Args:
        config: An object implementing E2EEConfigProtocol
    """
    global _e2ee_config
    _e2ee_config = config


def get_e2ee_config() -> E2EEConfigProtocol:
    """Get the injected E2EE config, falling back to environment settings."""
    if _e2ee_config is None:
        return get_config()
    return _e2ee_config


def clear_e2ee_config() -> None:
    """Clear the global E2EE config. For testing."""
    global _e2ee_config
    _e2ee_config = None


def get_config() -> E2EESettings:
    """Get E2EE settings loaded from the environment (cached)."""
    global _core_settings
    if _core_settings is None:
        _core_settings = E2EESettings.from_env()
    return _core_settings


def clear_config_cache() -> None:
    """Clear the config cache. For testing."""
    global _core_settings
    _core_settings = None
