"""Global test fixtures for our-e2ee test suite."""

from __future__ import annotations

import os
from typing import Any

import pytest

from our_e2ee.cipher import KeyPair, generate_key_pair
from our_e2ee.keystore import InMemoryKeyStore, KeyIdentity

# Fixed 16-byte salt shared by both peers in handshake tests
TEST_SALT = bytes(range(16))


def pytest_configure(config: pytest.Config) -> None:
    """Register custom markers."""
    config.addinivalue_line("markers", "unit: Unit tests (no external dependencies)")
    config.addinivalue_line("markers", "integration: Tests touching the filesystem or threads")
    config.addinivalue_line("markers", "slow: Slow tests (>5s)")


# ============================================================================
# Environment Fixtures
# ============================================================================


@pytest.fixture(autouse=True)
def reset_globals() -> Any:
    """Reset injected config and the global key manager around each test."""
    from our_e2ee.config import clear_config_cache, clear_e2ee_config
    from our_e2ee.key_manager import clear_key_manager

    clear_config_cache()
    clear_e2ee_config()
    clear_key_manager()
    yield
    clear_config_cache()
    clear_e2ee_config()
    clear_key_manager()


@pytest.fixture
def clean_env(monkeypatch: pytest.MonkeyPatch) -> Any:
    """Remove all OUR_E2EE_ environment variables."""
    for key in list(os.environ.keys()):
        if key.startswith("OUR_E2EE_"):
            monkeypatch.delenv(key, raising=False)
    yield


# ============================================================================
# Key Fixtures
# ============================================================================


@pytest.fixture
def salt() -> bytes:
    """Confirmation-code salt used by both peers."""
    return TEST_SALT


@pytest.fixture
def alice() -> KeyPair:
    """Inviter key pair."""
    return generate_key_pair()


@pytest.fixture
def bob() -> KeyPair:
    """Invitee key pair."""
    return generate_key_pair()


@pytest.fixture
def store() -> InMemoryKeyStore:
    """Empty in-memory key store."""
    return InMemoryKeyStore()


@pytest.fixture
def identity() -> KeyIdentity:
    """A permanent-style key identity."""
    return KeyIdentity(name="test-keypair", service="our-e2ee-tests")
