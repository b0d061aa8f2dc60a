"""Tests for permanent and ephemeral invites."""

from __future__ import annotations

import pytest

from our_e2ee.config import E2EESettings, set_e2ee_config
from our_e2ee.constants import DEFAULT_CONFIRM_CODE_SALT
from our_e2ee.exceptions import DecodingError, DecryptionError, KeyImportError
from our_e2ee.invites import Invite, create_invite, local_identity
from our_e2ee.key_manager import KeyManager, set_key_manager
from our_e2ee.keystore import InMemoryKeyStore, KeyIdentity
from our_e2ee.types import InviteKind

# =============================================================================
# FIXTURES
# =============================================================================


@pytest.fixture
def inviter():
    """Key manager on the inviting device."""
    return KeyManager(store=InMemoryKeyStore())


@pytest.fixture
def invitee():
    """Key manager on the invited device."""
    return KeyManager(store=InMemoryKeyStore())


@pytest.fixture
def invitee_identity():
    return KeyIdentity(name="invitee-key", service="our-e2ee-tests")


# =============================================================================
# IDENTITY STRATEGY TESTS
# =============================================================================


class TestLocalIdentity:
    """Each invite kind chooses its local key identity."""

    def test_permanent_identity_is_stable(self):
        set_e2ee_config(E2EESettings(key_name="perma", key_service="svc"))

        assert local_identity(InviteKind.PERMANENT) == KeyIdentity(name="perma", service="svc")
        assert local_identity(InviteKind.PERMANENT) == local_identity(InviteKind.PERMANENT)

    def test_ephemeral_identity_is_fresh(self):
        set_e2ee_config(E2EESettings(key_service="svc"))
        first = local_identity(InviteKind.EPHEMERAL)
        second = local_identity(InviteKind.EPHEMERAL)

        assert first != second
        assert first.service == "svc"

    def test_invite_without_identity_gets_one_by_kind(self):
        invite = Invite(kind=InviteKind.EPHEMERAL, confirm_code="x", ext_pub_key="y")
        assert invite.identity is not None
        assert invite.key_identity is invite.identity
        assert invite.key_identity.name.startswith("ephemeral-")


# =============================================================================
# HANDSHAKE TESTS
# =============================================================================


class TestInviteHandshake:
    """Full inviter -> invitee confirmation code exchange."""

    @pytest.mark.parametrize("kind", [InviteKind.PERMANENT, InviteKind.EPHEMERAL])
    def test_invitee_recovers_inviters_code(self, kind, inviter, invitee, invitee_identity, salt):
        invitee_pub = invitee.public_key(invitee_identity)

        sent = create_invite(kind, invitee_pub, salt=salt, key_manager=inviter)
        received = Invite.from_dict(sent.to_dict(), kind=kind, identity=invitee_identity, key_manager=invitee)

        invitee_code = received.confirmation_code(salt)
        inviter_code = sent.decrypted_confirm_code(invitee_pub, salt)

        assert invitee_code == inviter_code
        assert len(invitee_code) == 4
        assert invitee_code.isdigit()

    def test_permanent_invites_reuse_the_key(self, inviter, invitee, invitee_identity, salt):
        invitee_pub = invitee.public_key(invitee_identity)

        first = create_invite(InviteKind.PERMANENT, invitee_pub, salt=salt, key_manager=inviter)
        second = create_invite(InviteKind.PERMANENT, invitee_pub, salt=salt, key_manager=inviter)

        assert first.ext_pub_key == second.ext_pub_key
        assert first.identity == second.identity

    def test_ephemeral_invites_never_reuse_a_key(self, inviter, invitee, invitee_identity, salt):
        invitee_pub = invitee.public_key(invitee_identity)

        invites = [create_invite(InviteKind.EPHEMERAL, invitee_pub, salt=salt, key_manager=inviter) for _ in range(5)]

        assert len({i.ext_pub_key for i in invites}) == 5
        assert len({i.identity for i in invites}) == 5

    def test_ephemeral_key_pair_is_stable_per_invite(self, inviter, invitee, invitee_identity, salt):
        """One invite resolves the same one-time pair every time."""
        invite = create_invite(InviteKind.EPHEMERAL, invitee.public_key(invitee_identity), salt=salt, key_manager=inviter)

        assert invite.get_key_pair() is invite.get_key_pair()
        assert invite.get_key_pair().public_key_text == invite.ext_pub_key

    def test_ephemeral_key_pair_discarded_after_handshake(self, inviter, invitee, invitee_identity, salt):
        invite = create_invite(InviteKind.EPHEMERAL, invitee.public_key(invitee_identity), salt=salt, key_manager=inviter)

        assert invite.discard_key_pair() is True
        assert inviter.store.read(invite.key_identity) is None
        assert invite.key_identity not in inviter.cache

    def test_permanent_key_pair_is_never_discarded(self, inviter, invitee, invitee_identity, salt):
        invite = create_invite(InviteKind.PERMANENT, invitee.public_key(invitee_identity), salt=salt, key_manager=inviter)

        with pytest.raises(ValueError):
            invite.discard_key_pair()
        assert inviter.store.read(invite.key_identity) is not None

    def test_encrypted_confirm_code_for_remote(self, inviter, invitee, invitee_identity, salt):
        """An existing invite can encrypt a fresh code for a peer."""
        invitee_pub = invitee.public_key(invitee_identity)
        sent = create_invite(InviteKind.PERMANENT, invitee_pub, salt=salt, key_manager=inviter)

        fresh = sent.encrypted_confirm_code(invitee_pub, salt)
        received = Invite(
            kind=InviteKind.PERMANENT,
            confirm_code=fresh,
            ext_pub_key=sent.ext_pub_key,
            identity=invitee_identity,
            key_manager=invitee,
        )

        assert received.confirmation_code(salt).isdigit()

    def test_default_salt_from_config(self, inviter, invitee, invitee_identity):
        invitee_pub = invitee.public_key(invitee_identity)
        sent = create_invite(InviteKind.PERMANENT, invitee_pub, key_manager=inviter)
        received = Invite.from_dict(sent.to_dict(), kind=InviteKind.PERMANENT, identity=invitee_identity, key_manager=invitee)

        assert received.confirmation_code() == received.confirmation_code(DEFAULT_CONFIRM_CODE_SALT)

    def test_uses_global_key_manager(self, invitee, invitee_identity, salt):
        """Without an explicit manager the global one is used."""
        manager = KeyManager(store=InMemoryKeyStore())
        set_key_manager(manager)

        invite = create_invite(InviteKind.PERMANENT, invitee.public_key(invitee_identity), salt=salt)

        assert invite.ext_pub_key == manager.resolve(invite.identity).public_key_text


class TestInviteFailures:
    """Invite misuse fails closed."""

    def test_invitee_swapping_roles_fails(self, inviter, invitee, invitee_identity, salt):
        invitee_pub = invitee.public_key(invitee_identity)
        sent = create_invite(InviteKind.PERMANENT, invitee_pub, salt=salt, key_manager=inviter)
        received = Invite.from_dict(sent.to_dict(), kind=InviteKind.PERMANENT, identity=invitee_identity, key_manager=invitee)

        with pytest.raises(DecryptionError):
            received.decrypted_confirm_code(invitee_pub, salt)

    def test_salt_mismatch_fails(self, inviter, invitee, invitee_identity):
        sent = create_invite(
            InviteKind.PERMANENT, invitee.public_key(invitee_identity), salt=b"A" * 16, key_manager=inviter
        )
        received = Invite.from_dict(sent.to_dict(), kind=InviteKind.PERMANENT, identity=invitee_identity, key_manager=invitee)

        with pytest.raises(DecryptionError):
            received.confirmation_code(b"B" * 16)

    def test_ephemeral_invite_without_identity_cannot_decrypt(self, inviter, invitee, invitee_identity, salt):
        """A receiver that forgets its one-time identity gets a new key and fails."""
        sent = create_invite(InviteKind.EPHEMERAL, invitee.public_key(invitee_identity), salt=salt, key_manager=inviter)
        received = Invite.from_dict(sent.to_dict(), kind=InviteKind.EPHEMERAL, key_manager=invitee)

        with pytest.raises(DecryptionError):
            received.confirmation_code(salt)

    def test_malformed_remote_key(self, inviter, salt):
        with pytest.raises(KeyImportError):
            create_invite(InviteKind.PERMANENT, "not-a-key", salt=salt, key_manager=inviter)


# =============================================================================
# SERIALIZATION TESTS
# =============================================================================


class TestInviteFields:
    """Only the two string fields are transmitted."""

    def test_to_dict_has_only_transmitted_fields(self, inviter, invitee, invitee_identity, salt):
        sent = create_invite(InviteKind.PERMANENT, invitee.public_key(invitee_identity), salt=salt, key_manager=inviter)
        assert set(sent.to_dict()) == {"confirmCode", "extPubKey"}

    @pytest.mark.parametrize(
        "data",
        [
            {"extPubKey": "abc"},
            {"confirmCode": "abc"},
            {"confirmCode": 123, "extPubKey": "abc"},
            {"confirmCode": "", "extPubKey": "abc"},
        ],
    )
    def test_from_dict_rejects_bad_fields(self, data):
        with pytest.raises(DecodingError):
            Invite.from_dict(data, kind=InviteKind.PERMANENT)

    @pytest.mark.parametrize("data", [["confirmCode", "extPubKey"], "confirmCode=abc", None, 42])
    def test_from_dict_rejects_non_mapping(self, data):
        with pytest.raises(DecodingError):
            Invite.from_dict(data, kind=InviteKind.PERMANENT)  # type: ignore[arg-type]

    def test_invite_is_immutable(self):
        invite = Invite(kind=InviteKind.PERMANENT, confirm_code="c", ext_pub_key="k")
        with pytest.raises(AttributeError):
            invite.confirm_code = "other"  # type: ignore[misc]
