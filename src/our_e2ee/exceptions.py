"""E2EE exception hierarchy."""

from __future__ import annotations

from typing import Any


class E2EEError(Exception):
    """Base exception for all E2EE errors."""

    def __init__(self, message: str, details: dict[str, Any] | None = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "details": self.details,
        }


class KeyGenerationError(E2EEError):
    """A key pair could not be generated."""

    pass


class KeyImportError(E2EEError):
    """Key material could not be imported from its textual or raw form."""

    pass


class KeyStoreError(E2EEError):
    """The secure key store failed to read or write."""

    pass


class DuplicateKeyError(KeyStoreError):
    """An entry already exists for the identity."""

    pass


class DecodingError(E2EEError):
    """Textual ciphertext or decrypted plaintext is malformed."""

    pass


class DecryptionError(E2EEError):
    """AEAD authentication failed (wrong key, wrong salt or tampered data)."""

    pass


class CodeGenerationError(E2EEError):
    """A confirmation code could not be generated."""

    pass


class ConfigurationError(E2EEError):
    """Settings could not be parsed."""

    pass
