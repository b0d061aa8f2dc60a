"""End-to-end encrypted invite bootstrap between two peers.

Establishes trust on first contact with X25519 key pairs and a short
confirmation code that both humans compare out of band.

Key concepts:
- KeyManager: Resolves a key pair per identity (cache, key store, or generate-and-persist)
- Confirmation code: Random digits encrypted under an ECDH-derived, salted key
- Invite: Permanent (stable key) or ephemeral (one-time key) carrier of the encrypted code

Security properties:
- Only the holder of the matching private key can recover the code
- Tampering, a wrong key or a wrong salt fail authentication instead of
  producing a plausible wrong code
- Store failures are never treated as "no key", so identities stay stable
"""

# Cipher provider
from .cipher import (
    KeyPair,
    decrypt,
    derive_shared_key,
    encrypt,
    export_public_key,
    generate_key_pair,
    import_public_key,
)

# Confirmation codes
from .codes import (
    CodeRecipe,
    decrypt_code,
    encrypt_code,
    generate_code,
    generate_encrypted_code,
)

# Configuration
from .config import (
    E2EEConfigProtocol,
    E2EESettings,
    clear_config_cache,
    clear_e2ee_config,
    get_config,
    get_e2ee_config,
    set_e2ee_config,
)

# Constants
from .constants import (
    AES_KEY_SIZE,
    CIPHER_SUITE,
    DEFAULT_CONFIRM_CODE_LENGTH,
    DEFAULT_CONFIRM_CODE_SALT,
    DEFAULT_KEY_NAME,
    DEFAULT_KEY_SERVICE,
    KDF_INFO_SHARED_KEY,
    NONCE_SIZE,
)

# Exceptions
from .exceptions import (
    CodeGenerationError,
    ConfigurationError,
    DecodingError,
    DecryptionError,
    DuplicateKeyError,
    E2EEError,
    KeyGenerationError,
    KeyImportError,
    KeyStoreError,
)

# Invites
from .invites import Invite, create_invite, local_identity

# Key management
from .key_manager import (
    KeyManager,
    KeyPairCache,
    build_key_manager,
    clear_key_manager,
    get_key_manager,
    permanent_identity,
    set_key_manager,
)

# Key store
from .keystore import (
    FileKeyStore,
    InMemoryKeyStore,
    KeyIdentity,
    KeyQuery,
    KeyStore,
    key_query,
)

# Types (enums)
from .types import AccessPolicy, InviteKind

__all__ = [
    # Constants
    "CIPHER_SUITE",
    "AES_KEY_SIZE",
    "NONCE_SIZE",
    "KDF_INFO_SHARED_KEY",
    "DEFAULT_CONFIRM_CODE_SALT",
    "DEFAULT_CONFIRM_CODE_LENGTH",
    "DEFAULT_KEY_NAME",
    "DEFAULT_KEY_SERVICE",
    # Exceptions
    "E2EEError",
    "KeyGenerationError",
    "KeyImportError",
    "KeyStoreError",
    "DuplicateKeyError",
    "DecodingError",
    "DecryptionError",
    "CodeGenerationError",
    "ConfigurationError",
    # Types
    "AccessPolicy",
    "InviteKind",
    # Cipher provider
    "KeyPair",
    "generate_key_pair",
    "export_public_key",
    "import_public_key",
    "derive_shared_key",
    "encrypt",
    "decrypt",
    # Key store
    "KeyIdentity",
    "KeyQuery",
    "KeyStore",
    "InMemoryKeyStore",
    "FileKeyStore",
    "key_query",
    # Key management
    "KeyPairCache",
    "KeyManager",
    "permanent_identity",
    "build_key_manager",
    "set_key_manager",
    "get_key_manager",
    "clear_key_manager",
    # Confirmation codes
    "CodeRecipe",
    "generate_code",
    "encrypt_code",
    "generate_encrypted_code",
    "decrypt_code",
    # Invites
    "Invite",
    "create_invite",
    "local_identity",
    # Configuration
    "E2EEConfigProtocol",
    "E2EESettings",
    "set_e2ee_config",
    "get_e2ee_config",
    "clear_e2ee_config",
    "get_config",
    "clear_config_cache",
]
