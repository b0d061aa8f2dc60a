"""Key pair resolution: cache, then secure store, then generate-and-persist.

A process resolves each ``KeyIdentity`` to exactly one key pair. The
first resolution reads the key store and, when nothing is stored,
generates a pair and persists its private half. Later resolutions are
served from :class:`KeyPairCache` without touching the store.

Store failures other than "not found" always propagate. Falling back to
generation on a read error would silently replace a peer's identity.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterator
from contextlib import contextmanager

from .cipher import KeyPair, generate_key_pair, private_key_bytes
from .config import E2EEConfigProtocol, get_e2ee_config
from .exceptions import DuplicateKeyError, KeyImportError, KeyStoreError
from .keystore import (
    DEFAULT_ACCESS_POLICY,
    FileKeyStore,
    InMemoryKeyStore,
    KeyIdentity,
    KeyStore,
    key_query,
)
from .types import AccessPolicy

logger = logging.getLogger(__name__)


class KeyPairCache:
    """Lock-protected map of resolved key pairs.

    Entries are written once and never replaced; ``discard`` is the only
    way to drop one. ``lock_for`` hands out one lock per identity so first
    resolutions of different identities do not block each other. A lock
    is released once its identity is cached.
    """

    def __init__(self) -> None:
        self._pairs: dict[KeyIdentity, KeyPair] = {}
        self._locks: dict[KeyIdentity, threading.Lock] = {}
        self._guard = threading.Lock()

    def get(self, identity: KeyIdentity) -> KeyPair | None:
        with self._guard:
            return self._pairs.get(identity)

    def put_once(self, identity: KeyIdentity, pair: KeyPair) -> KeyPair:
        """Cache a pair unless one is already cached; return the cached pair."""
        with self._guard:
            return self._pairs.setdefault(identity, pair)

    @contextmanager
    def lock_for(self, identity: KeyIdentity) -> Iterator[None]:
        """Hold the resolution lock for one identity."""
        with self._guard:
            lock = self._locks.setdefault(identity, threading.Lock())
        with lock:
            yield
            with self._guard:
                if identity in self._pairs:
                    self._locks.pop(identity, None)

    def discard(self, identity: KeyIdentity) -> bool:
        """Drop a cached pair. Returns False if none was cached."""
        with self._guard:
            self._locks.pop(identity, None)
            return self._pairs.pop(identity, None) is not None

    @property
    def pending_locks(self) -> int:
        """Identities with a resolution lock that are not cached yet."""
        with self._guard:
            return len(self._locks)

    def clear(self) -> None:
        """Drop all cached pairs. For testing."""
        with self._guard:
            self._pairs.clear()
            self._locks.clear()

    def __contains__(self, identity: object) -> bool:
        with self._guard:
            return identity in self._pairs

    def __len__(self) -> int:
        with self._guard:
            return len(self._pairs)


class KeyManager:
    """Resolves key pairs for identities against a secure key store."""

    def __init__(
        self,
        store: KeyStore,
        cache: KeyPairCache | None = None,
        policy: AccessPolicy = DEFAULT_ACCESS_POLICY,
    ) -> None:
        """Initialize KeyManager.

        Args:
            store: Secure key store holding raw private keys
            cache: Cache to resolve into (a private one if omitted)
            policy: Access policy for newly persisted keys
        """
        self.store = store
        self.cache = cache if cache is not None else KeyPairCache()
        self.policy = policy

    def resolve(self, identity: KeyIdentity) -> KeyPair:
        """Return the key pair for an identity, creating it on first use.

        Raises:
            KeyStoreError: If the store cannot be read or written, or holds
                an entry that is not a valid private key
            KeyGenerationError: If a new pair cannot be generated
        """
        cached = self.cache.get(identity)
        if cached is not None:
            logger.debug(f"Key pair cache hit for {identity}")
            return cached

        with self.cache.lock_for(identity):
            cached = self.cache.get(identity)
            if cached is not None:
                return cached

            pair = self._load(identity)
            if pair is None:
                pair = self._create(identity)
            return self.cache.put_once(identity, pair)

    def public_key(self, identity: KeyIdentity) -> str:
        """Exported public key for an identity."""
        return self.resolve(identity).public_key_text

    def discard(self, identity: KeyIdentity) -> bool:
        """Delete a key pair from the store and the cache.

        Meant for one-time keys once their handshake is over. The identity
        must not be resolved again; doing so would create a new key.

        Returns:
            True if a stored or cached entry was removed

        Raises:
            KeyStoreError: If the store cannot delete the entry
        """
        with self.cache.lock_for(identity):
            deleted = self.store.delete(identity)
            cached = self.cache.discard(identity)
        if deleted or cached:
            logger.info(f"Discarded key pair for {identity}")
        return deleted or cached

    def _load(self, identity: KeyIdentity) -> KeyPair | None:
        raw = self.store.read(identity)
        if raw is None:
            return None
        try:
            pair = KeyPair.from_private_bytes(raw)
        except KeyImportError as e:
            logger.warning(f"Stored key for {identity} is not a valid private key")
            raise KeyStoreError("Stored key is corrupt", {"identity": str(identity)}) from e
        logger.info(f"Loaded key pair for {identity} from key store")
        return pair

    def _create(self, identity: KeyIdentity) -> KeyPair:
        pair = generate_key_pair()
        try:
            self.store.insert(key_query(identity, self.policy), private_key_bytes(pair.private))
        except DuplicateKeyError:
            # Another process persisted first; its key wins.
            logger.info(f"Key for {identity} was stored concurrently, adopting stored key")
            stored = self._load(identity)
            if stored is None:
                raise KeyStoreError("Key reported as duplicate but not readable", {"identity": str(identity)})
            return stored
        logger.info(f"Generated and stored new key pair for {identity} (public={pair.public_key_text})")
        return pair


def permanent_identity(config: E2EEConfigProtocol | None = None) -> KeyIdentity:
    """The stable identity of this peer's permanent key pair."""
    config = config or get_e2ee_config()
    return KeyIdentity(name=config.key_name, service=config.key_service)


def build_key_manager(config: E2EEConfigProtocol | None = None) -> KeyManager:
    """Create a key manager backed by the configured store."""
    config = config or get_e2ee_config()
    store: KeyStore
    if config.keystore_path:
        store = FileKeyStore(config.keystore_path)
    else:
        store = InMemoryKeyStore()
    return KeyManager(store=store, policy=config.access_policy)


# Global key manager - set by application layer at startup, or built lazily
_key_manager: KeyManager | None = None
_key_manager_lock = threading.Lock()


def set_key_manager(manager: KeyManager) -> None:
    """Set the global key manager."""
    global _key_manager
    with _key_manager_lock:
        _key_manager = manager


def get_key_manager() -> KeyManager:
    """Get the global key manager, building it from config on first use."""
    global _key_manager
    with _key_manager_lock:
        if _key_manager is None:
            _key_manager = build_key_manager()
        return _key_manager


def clear_key_manager() -> None:
    """Clear the global key manager. For testing."""
    global _key_manager
    with _key_manager_lock:
        _key_manager = None
