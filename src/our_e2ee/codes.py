"""Confirmation codes encrypted between two peers.

The inviter generates a short numeric code and encrypts it under a key
derived from its private key, the invitee's public key and a fixed
salt. The invitee derives the same key from its private key and the
inviter's public key, decrypts, and both humans compare the code to rule
out a substituted key.
"""

from __future__ import annotations

import base64
import binascii
import logging
import secrets
import string
from dataclasses import dataclass

from cryptography.hazmat.primitives.asymmetric.x25519 import X25519PrivateKey

from .cipher import decrypt, derive_shared_key, encrypt, import_public_key
from .config import get_e2ee_config
from .constants import DEFAULT_CONFIRM_CODE_LENGTH
from .exceptions import CodeGenerationError, DecodingError

logger = logging.getLogger(__name__)

SYMBOLS = "!@#$%^&*-_=+?"


@dataclass(frozen=True)
class CodeRecipe:
    """How many characters of each class a generated code contains."""

    digit_count: int = DEFAULT_CONFIRM_CODE_LENGTH
    letter_count: int = 0
    symbol_count: int = 0

    @property
    def length(self) -> int:
        return self.digit_count + self.letter_count + self.symbol_count

    @classmethod
    def numeric(cls, length: int = DEFAULT_CONFIRM_CODE_LENGTH) -> CodeRecipe:
        """Digits only, no letters or symbols."""
        return cls(digit_count=length)


def secure_shuffle(items: list) -> None:
    """Cryptographically secure shuffle in place."""
    for i in range(len(items) - 1, 0, -1):
        j = secrets.randbelow(i + 1)
        items[i], items[j] = items[j], items[i]


def generate_code(recipe: CodeRecipe | None = None) -> str:
    """Generate a random code following a recipe.

    Raises:
        CodeGenerationError: If a count is negative or the recipe is empty
    """
    recipe = recipe or CodeRecipe()
    counts = (recipe.digit_count, recipe.letter_count, recipe.symbol_count)
    if any(count < 0 for count in counts) or recipe.length == 0:
        raise CodeGenerationError(
            "Invalid code recipe",
            {"digits": recipe.digit_count, "letters": recipe.letter_count, "symbols": recipe.symbol_count},
        )

    chars = [secrets.choice(string.digits) for _ in range(recipe.digit_count)]
    chars += [secrets.choice(string.ascii_letters) for _ in range(recipe.letter_count)]
    chars += [secrets.choice(SYMBOLS) for _ in range(recipe.symbol_count)]
    secure_shuffle(chars)
    return "".join(chars)


def encrypt_code(code: str, remote_public_key: str, local_private_key: X25519PrivateKey, salt: bytes) -> str:
    """Encrypt a given code for the holder of ``remote_public_key``.

    Args:
        code: Plaintext confirmation code
        remote_public_key: Exported public key of the remote peer
        local_private_key: This peer's private key
        salt: Derivation salt, identical on both sides

    Returns:
        Base64 of the sealed code

    Raises:
        KeyImportError: If the remote public key is malformed
    """
    public_key = import_public_key(remote_public_key)
    shared_key = derive_shared_key(local_private_key, public_key, salt)
    sealed = encrypt(code.encode("utf-8"), shared_key)
    return base64.b64encode(sealed).decode()


def generate_encrypted_code(
    remote_public_key: str,
    local_private_key: X25519PrivateKey,
    salt: bytes,
    recipe: CodeRecipe | None = None,
) -> str:
    """Generate a fresh numeric code and encrypt it for the remote peer.

    Only the ciphertext is returned; the plaintext code is recovered by
    the remote peer with :func:`decrypt_code`.

    Raises:
        CodeGenerationError: If the code cannot be generated
        KeyImportError: If the remote public key is malformed
    """
    if recipe is None:
        recipe = CodeRecipe.numeric(get_e2ee_config().confirm_code_length)
    code = generate_code(recipe)
    encrypted = encrypt_code(code, remote_public_key, local_private_key, salt)
    logger.debug("Generated encrypted confirmation code")
    return encrypted


def decrypt_code(
    encrypted_code: str,
    remote_public_key: str,
    local_private_key: X25519PrivateKey,
    salt: bytes,
) -> str:
    """Decrypt a confirmation code sealed by the remote peer.

    Raises:
        DecodingError: If ``encrypted_code`` is not canonical base64, or the plaintext is not UTF-8
        KeyImportError: If the remote public key is malformed
        DecryptionError: If the key, salt or ciphertext does not match
    """
    try:
        sealed = base64.b64decode(encrypted_code, validate=True)
    except (binascii.Error, ValueError, TypeError) as e:
        raise DecodingError("Encrypted confirmation code is not valid base64") from e
    # Nonzero padding bits decode the same bytes, so only the canonical text is accepted
    if base64.b64encode(sealed).decode() != encrypted_code:
        raise DecodingError("Encrypted confirmation code is not canonical base64")

    public_key = import_public_key(remote_public_key)
    shared_key = derive_shared_key(local_private_key, public_key, salt)
    plaintext = decrypt(sealed, shared_key)
    try:
        return plaintext.decode("utf-8")
    except UnicodeDecodeError as e:
        raise DecodingError("Decrypted confirmation code is not UTF-8") from e
