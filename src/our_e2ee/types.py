"""Type definitions and enums for the E2EE invite handshake."""

from enum import StrEnum


class InviteKind(StrEnum):
    """Which key an invite is bound to."""

    PERMANENT = "permanent"  # Stable key reused across invites
    EPHEMERAL = "ephemeral"  # One-time key per invite


class AccessPolicy(StrEnum):
    """When a persisted private key may be read back."""

    AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY = "after_first_unlock_this_device_only"
    WHEN_UNLOCKED_THIS_DEVICE_ONLY = "when_unlocked_this_device_only"
    AFTER_FIRST_UNLOCK = "after_first_unlock"

    @property
    def requires_unlocked_device(self) -> bool:
        """Whether the key may only be read while the device is unlocked."""
        return self.value.startswith("when_unlocked")
