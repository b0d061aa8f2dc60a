"""Constants for the E2EE invite handshake."""

# Cipher suite
CIPHER_SUITE = "X25519-HKDF-SHA256-AES256GCM"
PUBLIC_KEY_SIZE = 32
PRIVATE_KEY_SIZE = 32

# Key sizes
AES_KEY_SIZE = 32  # 256 bits
NONCE_SIZE = 12  # 96 bits for GCM
TAG_SIZE = 16

# Key derivation context
KDF_INFO_SHARED_KEY = b"our-e2ee-shared-key"

# Salt for confirmation-code key derivation. Both peers must use the same bytes.
DEFAULT_CONFIRM_CODE_SALT = b"our-e2ee-confirm"

# Confirmation code
DEFAULT_CONFIRM_CODE_LENGTH = 4

# Keystore defaults
DEFAULT_KEY_NAME = "e2ee-keypair"
DEFAULT_KEY_SERVICE = "our-e2ee"
EPHEMERAL_KEY_PREFIX = "ephemeral-"
