"""Tests for E2EE configuration."""

from __future__ import annotations

import pytest

from our_e2ee.config import (
    E2EEConfigProtocol,
    E2EESettings,
    clear_config_cache,
    clear_e2ee_config,
    get_config,
    get_e2ee_config,
    set_e2ee_config,
)
from our_e2ee.constants import (
    DEFAULT_CONFIRM_CODE_LENGTH,
    DEFAULT_CONFIRM_CODE_SALT,
    DEFAULT_KEY_NAME,
    DEFAULT_KEY_SERVICE,
)
from our_e2ee.exceptions import ConfigurationError
from our_e2ee.types import AccessPolicy


class TestE2EESettings:
    """Tests for E2EESettings.from_env."""

    def test_defaults(self, clean_env):
        settings = E2EESettings.from_env()

        assert settings.key_name == DEFAULT_KEY_NAME
        assert settings.key_service == DEFAULT_KEY_SERVICE
        assert settings.keystore_path is None
        assert settings.confirm_code_length == DEFAULT_CONFIRM_CODE_LENGTH
        assert settings.confirm_code_salt == DEFAULT_CONFIRM_CODE_SALT
        assert settings.access_policy == AccessPolicy.AFTER_FIRST_UNLOCK_THIS_DEVICE_ONLY

    def test_default_salt_is_16_bytes(self):
        assert len(DEFAULT_CONFIRM_CODE_SALT) == 16

    def test_reads_env(self, clean_env, monkeypatch, tmp_path):
        monkeypatch.setenv("OUR_E2EE_KEY_NAME", "peer-key")
        monkeypatch.setenv("OUR_E2EE_KEY_SERVICE", "peer-app")
        monkeypatch.setenv("OUR_E2EE_KEYSTORE_PATH", str(tmp_path))
        monkeypatch.setenv("OUR_E2EE_CONFIRM_CODE_LENGTH", "6")
        monkeypatch.setenv("OUR_E2EE_CONFIRM_CODE_SALT", "00ff" * 8)
        monkeypatch.setenv("OUR_E2EE_ACCESS_POLICY", "WHEN_UNLOCKED_THIS_DEVICE_ONLY")

        settings = E2EESettings.from_env()

        assert settings.key_name == "peer-key"
        assert settings.key_service == "peer-app"
        assert settings.keystore_path == str(tmp_path)
        assert settings.confirm_code_length == 6
        assert settings.confirm_code_salt == bytes.fromhex("00ff" * 8)
        assert settings.access_policy == AccessPolicy.WHEN_UNLOCKED_THIS_DEVICE_ONLY

    @pytest.mark.parametrize(
        "var,value",
        [
            ("OUR_E2EE_CONFIRM_CODE_LENGTH", "four"),
            ("OUR_E2EE_CONFIRM_CODE_LENGTH", "0"),
            ("OUR_E2EE_CONFIRM_CODE_SALT", "not-hex"),
            ("OUR_E2EE_ACCESS_POLICY", "always"),
        ],
    )
    def test_invalid_values(self, clean_env, monkeypatch, var, value):
        monkeypatch.setenv(var, value)
        with pytest.raises(ConfigurationError):
            E2EESettings.from_env()

    def test_settings_satisfy_protocol(self):
        assert isinstance(E2EESettings(), E2EEConfigProtocol)


class TestGlobalConfig:
    """Tests for config injection."""

    def test_falls_back_to_env_settings(self, clean_env):
        assert get_e2ee_config() is get_config()

    def test_get_config_is_cached(self, clean_env, monkeypatch):
        first = get_config()
        monkeypatch.setenv("OUR_E2EE_KEY_NAME", "changed")
        assert get_config() is first

        clear_config_cache()
        assert get_config().key_name == "changed"

    def test_injected_config_wins(self):
        custom = E2EESettings(key_name="injected")
        set_e2ee_config(custom)
        assert get_e2ee_config() is custom

        clear_e2ee_config()
        assert get_e2ee_config() is not custom
