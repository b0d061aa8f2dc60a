"""Invites carrying an encrypted confirmation code.

An invite is either PERMANENT (bound to this peer's stable key pair,
reused across invites) or EPHEMERAL (bound to a one-time key pair). Both
kinds share every protocol method; only the way the local key identity
is chosen differs, and that is looked up by kind.

Typical flow::

    # inviter, after receiving the invitee's public key
    invite = create_invite(InviteKind.PERMANENT, invitee_pub_key)
    send(invite.to_dict())

    # invitee
    invite = Invite.from_dict(payload, kind=InviteKind.PERMANENT)
    code = invite.confirmation_code()
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from .cipher import KeyPair
from .codes import decrypt_code, generate_encrypted_code
from .config import E2EEConfigProtocol, get_e2ee_config
from .exceptions import DecodingError
from .key_manager import KeyManager, get_key_manager, permanent_identity
from .keystore import KeyIdentity
from .types import InviteKind

logger = logging.getLogger(__name__)


def _ephemeral_identity(config: E2EEConfigProtocol) -> KeyIdentity:
    return KeyIdentity.ephemeral(config.key_service)


# How each invite kind picks its local key identity
IDENTITY_STRATEGIES: dict[InviteKind, Callable[[E2EEConfigProtocol], KeyIdentity]] = {
    InviteKind.PERMANENT: permanent_identity,
    InviteKind.EPHEMERAL: _ephemeral_identity,
}


def local_identity(kind: InviteKind, config: E2EEConfigProtocol | None = None) -> KeyIdentity:
    """Choose the local key identity for a new invite of the given kind."""
    return IDENTITY_STRATEGIES[kind](config or get_e2ee_config())


@dataclass(frozen=True)
class Invite:
    """Encrypted confirmation code plus the sender's public key.

    ``identity`` names the local key pair used for this invite and is
    never serialized. When omitted it is chosen by ``kind``: the
    configured permanent identity, or a fresh one-time identity.
    """

    kind: InviteKind
    confirm_code: str
    ext_pub_key: str
    identity: KeyIdentity | None = None
    key_manager: KeyManager | None = field(default=None, repr=False, compare=False)

    def __post_init__(self) -> None:
        if self.identity is None:
            object.__setattr__(self, "identity", local_identity(self.kind))

    def _manager(self) -> KeyManager:
        return self.key_manager if self.key_manager is not None else get_key_manager()

    @property
    def key_identity(self) -> KeyIdentity:
        """Identity of the local key pair, always set after construction."""
        assert self.identity is not None
        return self.identity

    def get_key_pair(self) -> KeyPair:
        """Resolve the local key pair for this invite."""
        return self._manager().resolve(self.key_identity)

    def discard_key_pair(self) -> bool:
        """Delete this invite's one-time key pair once the handshake is over.

        Raises:
            ValueError: If the invite is permanent
        """
        if self.kind != InviteKind.EPHEMERAL:
            raise ValueError("Only ephemeral key pairs can be discarded")
        return self._manager().discard(self.key_identity)

    def encrypted_confirm_code(self, remote_pub_key: str, salt: bytes | None = None) -> str:
        """Inviter side: a fresh code encrypted for ``remote_pub_key``."""
        return generate_encrypted_code(
            remote_public_key=remote_pub_key,
            local_private_key=self.get_key_pair().private,
            salt=_salt(salt),
        )

    def decrypted_confirm_code(self, remote_pub_key: str, salt: bytes | None = None) -> str:
        """Decrypt this invite's code with the local key and ``remote_pub_key``.

        The invitee passes the inviter's public key; the inviter can recover
        the code it sent by passing the invitee's public key. Passing the
        local public key instead raises DecryptionError.
        """
        return decrypt_code(
            encrypted_code=self.confirm_code,
            remote_public_key=remote_pub_key,
            local_private_key=self.get_key_pair().private,
            salt=_salt(salt),
        )

    def confirmation_code(self, salt: bytes | None = None) -> str:
        """Invitee side: decrypt using the inviter's key carried in the invite."""
        return self.decrypted_confirm_code(self.ext_pub_key, salt)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for transmission."""
        return {
            "confirmCode": self.confirm_code,
            "extPubKey": self.ext_pub_key,
        }

    @classmethod
    def from_dict(
        cls,
        data: Mapping[str, Any],
        kind: InviteKind,
        identity: KeyIdentity | None = None,
        key_manager: KeyManager | None = None,
    ) -> Invite:
        """Create from a received dictionary.

        Args:
            data: Dictionary with ``confirmCode`` and ``extPubKey``
            kind: Invite kind agreed with the sender
            identity: Local identity whose public key the sender encrypted to.
                Required for ephemeral invites, which otherwise get a new key.
            key_manager: Key manager to resolve the local pair with

        Raises:
            DecodingError: If ``data`` is not a mapping, or a field is missing
                or not a string
        """
        if not isinstance(data, Mapping):
            raise DecodingError("Invite payload is not a mapping", {"type": type(data).__name__})

        fields = {}
        for name in ("confirmCode", "extPubKey"):
            value = data.get(name)
            if not isinstance(value, str) or not value:
                raise DecodingError(f"Invite field {name} missing or not a string", {"field": name})
            fields[name] = value

        return cls(
            kind=InviteKind(kind),
            confirm_code=fields["confirmCode"],
            ext_pub_key=fields["extPubKey"],
            identity=identity,
            key_manager=key_manager,
        )


def _salt(salt: bytes | None) -> bytes:
    return salt if salt is not None else get_e2ee_config().confirm_code_salt


def create_invite(
    kind: InviteKind,
    remote_pub_key: str,
    salt: bytes | None = None,
    key_manager: KeyManager | None = None,
    identity: KeyIdentity | None = None,
) -> Invite:
    """Create an invite for the peer owning ``remote_pub_key``.

    Resolves the local key pair for ``kind``, encrypts a fresh
    confirmation code for the remote peer, and carries the local public
    key so the remote peer can decrypt.

    Raises:
        KeyStoreError, KeyGenerationError: If the local key pair cannot be resolved
        KeyImportError: If ``remote_pub_key`` is malformed
        CodeGenerationError: If the code cannot be generated
    """
    identity = identity or local_identity(kind)
    manager = key_manager if key_manager is not None else get_key_manager()
    pair = manager.resolve(identity)
    confirm_code = generate_encrypted_code(
        remote_public_key=remote_pub_key,
        local_private_key=pair.private,
        salt=_salt(salt),
    )
    logger.info(f"Created {kind} invite for local key {identity}")
    return Invite(
        kind=kind,
        confirm_code=confirm_code,
        ext_pub_key=pair.public_key_text,
        identity=identity,
        key_manager=manager,
    )
