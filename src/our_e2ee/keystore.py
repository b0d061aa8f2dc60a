"""Secure key store backends.

The key manager persists only raw private-key bytes, one entry per
``KeyIdentity``. Backends implement :class:`KeyStore`; reading a missing
entry returns ``None`` and every other failure raises ``KeyStoreError``
so callers can never mistake a broken store for an empty one.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import quote
from uuid import uuid4

from .constants import EPHEMERAL_KEY_PREFIX
from .exceptions import DuplicateKeyError, KeyStoreError
from .types import AccessPolicy

logger = logging.getLogger(__name__)

DEFAULT_ACCESS_POLICY = AccessPolicy.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY


@dataclass(frozen=True)
class KeyIdentity:
    """Lookup key for a persisted key pair."""

    name: str
    service: str

    def __post_init__(self) -> None:
        if not self.name or not self.service:
            raise ValueError("KeyIdentity name and service must be non-empty")

    @classmethod
    def ephemeral(cls, service: str) -> KeyIdentity:
        """A fresh identity that has never been used before."""
        return cls(name=f"{EPHEMERAL_KEY_PREFIX}{uuid4().hex}", service=service)

    def __str__(self) -> str:
        return f"{self.service}/{self.name}"


@dataclass(frozen=True)
class KeyQuery:
    """Identity plus the access policy an entry is stored under."""

    identity: KeyIdentity
    policy: AccessPolicy = DEFAULT_ACCESS_POLICY


def key_query(identity: KeyIdentity, policy: AccessPolicy = DEFAULT_ACCESS_POLICY) -> KeyQuery:
    """Build the store query for an identity.

    The default policy makes the key readable once the device has been
    unlocked after boot, so background work can use it, and keeps it on
    this device only.
    """
    return KeyQuery(identity=identity, policy=policy)


@runtime_checkable
class KeyStore(Protocol):
    """Persistent store for raw private-key bytes."""

    def read(self, identity: KeyIdentity) -> bytes | None:
        """Return the stored bytes, or None if there is no entry."""
        ...

    def insert(self, query: KeyQuery, data: bytes) -> None:
        """Store bytes under a new entry.

        Raises:
            DuplicateKeyError: If an entry already exists
        """
        ...

    def delete(self, identity: KeyIdentity) -> bool:
        """Remove an entry. Returns False if there was none."""
        ...


class InMemoryKeyStore:
    """Process-local store, for tests and embedding."""

    def __init__(self) -> None:
        self._entries: dict[KeyIdentity, tuple[bytes, AccessPolicy]] = {}
        self._lock = threading.Lock()

    def read(self, identity: KeyIdentity) -> bytes | None:
        with self._lock:
            entry = self._entries.get(identity)
        return entry[0] if entry else None

    def insert(self, query: KeyQuery, data: bytes) -> None:
        with self._lock:
            if query.identity in self._entries:
                raise DuplicateKeyError("Key already stored", {"identity": str(query.identity)})
            self._entries[query.identity] = (bytes(data), query.policy)

    def delete(self, identity: KeyIdentity) -> bool:
        with self._lock:
            return self._entries.pop(identity, None) is not None

    def policy_for(self, identity: KeyIdentity) -> AccessPolicy | None:
        """Access policy an entry was stored under."""
        with self._lock:
            entry = self._entries.get(identity)
        return entry[1] if entry else None

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class FileKeyStore:
    """One owner-only file per identity under ``root/<service>/<name>``.

    Each file starts with a header line naming the access policy the key
    was stored under, followed by the raw key bytes. Files cannot observe
    the device lock state, so policies that need it are refused.

    Inserts write a temporary file and hard-link it into place, so two
    processes racing on the same identity cannot both persist a key and
    readers never see a partially written one.
    """

    FILE_MODE = 0o600
    DIR_MODE = 0o700
    HEADER_PREFIX = b"our-e2ee/1 "

    def __init__(self, root: str | Path):
        self.root = Path(root)

    def path_for(self, identity: KeyIdentity) -> Path:
        """File path backing an identity."""
        return self.root / _path_part(identity.service) / _path_part(identity.name)

    def supports(self, policy: AccessPolicy) -> bool:
        """Whether entries can be stored under a policy."""
        return not policy.requires_unlocked_device

    def read(self, identity: KeyIdentity) -> bytes | None:
        entry = self._read_entry(identity)
        return entry[0] if entry else None

    def policy_for(self, identity: KeyIdentity) -> AccessPolicy | None:
        """Access policy an entry was stored under."""
        entry = self._read_entry(identity)
        return entry[1] if entry else None

    def insert(self, query: KeyQuery, data: bytes) -> None:
        identity = query.identity
        if not self.supports(query.policy):
            raise KeyStoreError(
                "Access policy not supported by file key store",
                {"identity": str(identity), "policy": query.policy.value},
            )

        path = self.path_for(identity)
        tmp = path.with_name(f".{path.name}.{uuid4().hex}.tmp")
        tmp_created = False
        try:
            try:
                path.parent.mkdir(mode=self.DIR_MODE, parents=True, exist_ok=True)
                fd = os.open(tmp, os.O_WRONLY | os.O_CREAT | os.O_EXCL, self.FILE_MODE)
                tmp_created = True
                with os.fdopen(fd, "wb") as f:
                    f.write(self.HEADER_PREFIX + query.policy.value.encode() + b"\n")
                    f.write(data)
                    f.flush()
                    os.fsync(f.fileno())
            except OSError as e:
                logger.warning(f"Key store write failed for {identity}: {e}")
                raise KeyStoreError("Failed to write key", {"identity": str(identity), "reason": str(e)}) from e

            # link() fails if the target exists, so readers only ever see complete keys
            try:
                os.link(tmp, path)
            except FileExistsError as e:
                raise DuplicateKeyError("Key already stored", {"identity": str(identity)}) from e
            except OSError as e:
                logger.warning(f"Key store write failed for {identity}: {e}")
                raise KeyStoreError("Failed to write key", {"identity": str(identity), "reason": str(e)}) from e
        finally:
            if tmp_created:
                tmp.unlink(missing_ok=True)

    def delete(self, identity: KeyIdentity) -> bool:
        path = self.path_for(identity)
        try:
            path.unlink()
        except FileNotFoundError:
            return False
        except OSError as e:
            raise KeyStoreError("Failed to delete key", {"identity": str(identity), "reason": str(e)}) from e
        return True

    def _read_entry(self, identity: KeyIdentity) -> tuple[bytes, AccessPolicy] | None:
        path = self.path_for(identity)
        try:
            content = path.read_bytes()
        except FileNotFoundError:
            return None
        except OSError as e:
            logger.warning(f"Key store read failed for {identity}: {e}")
            raise KeyStoreError("Failed to read key", {"identity": str(identity), "reason": str(e)}) from e

        header, sep, data = content.partition(b"\n")
        if not sep or not header.startswith(self.HEADER_PREFIX):
            raise KeyStoreError("Unrecognized key file format", {"identity": str(identity)})
        try:
            policy = AccessPolicy(header[len(self.HEADER_PREFIX) :].decode())
        except (UnicodeDecodeError, ValueError) as e:
            raise KeyStoreError("Unknown access policy in key file", {"identity": str(identity)}) from e
        return data, policy


def _path_part(value: str) -> str:
    # Percent-encode separators, and leading dots so "." and ".." stay literal names
    part = quote(value, safe="")
    if part.startswith("."):
        part = "%2E" + part[1:]
    return part
