"""Tests for user settings."""

import pytest
from pydantic import ValidationError

from oken.config import Config, ReconnectConfig, load_config
from oken.exceptions import ConfigError


class TestConfigDefaults:
    """Every field resolves to a value without a config file."""

    def test_defaults(self):
        """Config should carry the documented defaults"""
        config = Config()

        assert config.reconnect == ReconnectConfig(enabled=True, retries=3, delay=5.0)
        assert config.keepalive_interval == 60
        assert config.keepalive_count_max == 3
        assert config.danger_tags == frozenset({"prod", "production"})
        assert config.ssh_binary is None

    def test_missing_file_gives_defaults(self, tmp_path):
        """load_config should fall back to defaults for a missing file"""
        assert load_config(tmp_path / "absent.toml") == Config()

    def test_config_is_frozen(self):
        """Config snapshots should be immutable"""
        config = Config()
        with pytest.raises(ValidationError):
            config.keepalive_interval = 10


class TestConfigLoading:
    """Merging config.toml over the defaults."""

    def test_nested_reconnect_table(self, tmp_path):
        """A [reconnect] table should override only the keys it sets"""
        path = tmp_path / "config.toml"
        path.write_text("[reconnect]\nretries = 7\n")

        config = load_config(path)

        assert config.reconnect.retries == 7
        assert config.reconnect.enabled is True
        assert config.reconnect.delay == 5.0

    def test_flat_legacy_keys(self, tmp_path):
        """Flat reconnect keys should fold into the reconnect table"""
        path = tmp_path / "config.toml"
        path.write_text(
            "reconnect = false\nreconnect_retries = 9\nreconnect_delay_secs = 1\n"
        )

        config = load_config(path)

        assert config.reconnect.enabled is False
        assert config.reconnect.retries == 9
        assert config.reconnect.delay == 1.0

    def test_danger_tags_are_lowercased(self, tmp_path):
        """Danger tags should compare case-insensitively"""
        path = tmp_path / "config.toml"
        path.write_text('danger_tags = ["Billing", "PROD"]\n')

        config = load_config(path)

        assert config.danger_tags == frozenset({"billing", "prod"})
        assert config.is_danger_tag("BILLING")
        assert not config.is_danger_tag("staging")

    def test_ssh_binary_expands_user(self, tmp_path, monkeypatch):
        """ssh_binary should expand a leading tilde"""
        monkeypatch.setenv("HOME", str(tmp_path))
        config = Config.model_validate({"ssh_binary": "~/bin/ssh"})
        assert config.ssh_binary == tmp_path / "bin" / "ssh"

    def test_invalid_value_raises_config_error(self, tmp_path):
        """Out-of-range values should be reported with the file name"""
        path = tmp_path / "config.toml"
        path.write_text("keepalive_interval = 0\n")

        with pytest.raises(ConfigError, match="config.toml"):
            load_config(path)

    def test_unknown_key_raises_config_error(self, tmp_path):
        """Typos in keys should not be silently ignored"""
        path = tmp_path / "config.toml"
        path.write_text("keepalive_intervall = 30\n")

        with pytest.raises(ConfigError):
            load_config(path)

    def test_toml_syntax_error_raises_config_error(self, tmp_path):
        """Broken TOML should raise ConfigError"""
        path = tmp_path / "config.toml"
        path.write_text("reconnect = [\n")

        with pytest.raises(ConfigError, match="Failed to parse"):
            load_config(path)
