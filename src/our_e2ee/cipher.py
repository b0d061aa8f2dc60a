"""Cipher primitives for the E2EE invite handshake.

Binds the key-agreement and AEAD operations used by the handshake to
the ``cryptography`` library:

- X25519 key pairs, public keys exported as base64 of the raw bytes
- HKDF-SHA256 shared-key derivation, salted per purpose
- AES-256-GCM with a random nonce, sealed as ``nonce || ciphertext || tag``
"""

from __future__ import annotations

import base64
import binascii
import logging
import os
from dataclasses import dataclass, field

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric.x25519 import (
    X25519PrivateKey,
    X25519PublicKey,
)
from cryptography.hazmat.primitives.ciphers.aead import AESGCM
from cryptography.hazmat.primitives.kdf.hkdf import HKDF

from .constants import (
    AES_KEY_SIZE,
    KDF_INFO_SHARED_KEY,
    NONCE_SIZE,
    PRIVATE_KEY_SIZE,
    PUBLIC_KEY_SIZE,
    TAG_SIZE,
)
from .exceptions import DecryptionError, KeyGenerationError, KeyImportError

logger = logging.getLogger(__name__)


@dataclass(frozen=True, eq=False)
class KeyPair:
    """Private key and its public projection.

    The public key is always derived from the private key; never build
    one from two unrelated halves. Only the exported public key is meant
    to leave the process.
    """

    private: X25519PrivateKey = field(repr=False)
    public: X25519PublicKey = field(repr=False)

    @classmethod
    def from_private_key(cls, private_key: X25519PrivateKey) -> KeyPair:
        """Build a pair from a private key."""
        return cls(private=private_key, public=private_key.public_key())

    @classmethod
    def from_private_bytes(cls, raw: bytes) -> KeyPair:
        """Rebuild a pair from raw private-key bytes.

        Raises:
            KeyImportError: If the bytes are not a valid X25519 private key
        """
        if len(raw) != PRIVATE_KEY_SIZE:
            raise KeyImportError(
                "Invalid private key length",
                {"expected": PRIVATE_KEY_SIZE, "actual": len(raw)},
            )
        try:
            private_key = X25519PrivateKey.from_private_bytes(raw)
        except ValueError as exc:
            raise KeyImportError("Invalid private key bytes") from exc
        return cls.from_private_key(private_key)

    @property
    def public_key_text(self) -> str:
        """Exported textual form of the public key."""
        return export_public_key(self.public)

    def __repr__(self) -> str:
        return f"KeyPair(public={self.public_key_text!r})"


def generate_key_pair() -> KeyPair:
    """Generate a fresh X25519 key pair.

    Raises:
        KeyGenerationError: If the backend cannot produce a key
    """
    try:
        private_key = X25519PrivateKey.generate()
    except Exception as exc:
        raise KeyGenerationError("Failed to generate X25519 key pair") from exc
    return KeyPair.from_private_key(private_key)


def private_key_bytes(private_key: X25519PrivateKey) -> bytes:
    """Raw private-key bytes, for handing to the secure key store only."""
    return private_key.private_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PrivateFormat.Raw,
        encryption_algorithm=serialization.NoEncryption(),
    )


def export_public_key(public_key: X25519PublicKey) -> str:
    """Export a public key as base64 of its raw bytes."""
    raw = public_key.public_bytes(
        encoding=serialization.Encoding.Raw,
        format=serialization.PublicFormat.Raw,
    )
    return base64.b64encode(raw).decode()


def import_public_key(text: str) -> X25519PublicKey:
    """Import a public key exported by :func:`export_public_key`.

    Raises:
        KeyImportError: If the text is not base64 or not a 32-byte key
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError, TypeError) as exc:
        raise KeyImportError("Public key is not valid base64") from exc

    if len(raw) != PUBLIC_KEY_SIZE:
        raise KeyImportError(
            "Invalid public key length",
            {"expected": PUBLIC_KEY_SIZE, "actual": len(raw)},
        )
    try:
        return X25519PublicKey.from_public_bytes(raw)
    except ValueError as exc:
        raise KeyImportError("Invalid public key bytes") from exc


def derive_shared_key(private_key: X25519PrivateKey, public_key: X25519PublicKey, salt: bytes) -> bytes:
    """Derive a symmetric key from ECDH plus a purpose salt.

    Both peers get the same key: ``derive(a.priv, b.pub) == derive(b.priv, a.pub)``
    for an identical salt.

    Raises:
        KeyImportError: If the public key is a low-order point
    """
    try:
        shared_secret = private_key.exchange(public_key)
    except ValueError as exc:
        raise KeyImportError("Public key produces an all-zero shared secret") from exc
    return HKDF(
        algorithm=hashes.SHA256(),
        length=AES_KEY_SIZE,
        salt=salt,
        info=KDF_INFO_SHARED_KEY,
    ).derive(shared_secret)


def encrypt(data: bytes, key: bytes) -> bytes:
    """Seal data with AES-GCM, returning ``nonce || ciphertext || tag``."""
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, None)


def decrypt(sealed: bytes, key: bytes) -> bytes:
    """Open a box produced by :func:`encrypt`.

    Raises:
        DecryptionError: If the box is truncated or fails authentication
    """
    if len(sealed) < NONCE_SIZE + TAG_SIZE:
        raise DecryptionError(
            "Ciphertext too short",
            {"minimum": NONCE_SIZE + TAG_SIZE, "actual": len(sealed)},
        )
    nonce, ciphertext = sealed[:NONCE_SIZE], sealed[NONCE_SIZE:]
    try:
        return AESGCM(key).decrypt(nonce, ciphertext, None)
    except InvalidTag as exc:
        logger.warning("AEAD authentication failed")
        raise DecryptionError("Authentication failed") from exc
