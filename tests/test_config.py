"""Tests for encrypted configuration storage.

Run with: pytest tests/test_config.py -v
"""

import tempfile
from pathlib import Path

import pytest

from config import AppConfig, ConfigError, ConfigManager, PlatformConfig, SyncConfig


@pytest.fixture
def manager():
    with tempfile.TemporaryDirectory() as tmpdir:
        yield ConfigManager(config_dir=Path(tmpdir) / "adsync")


class TestDefaults:
    def test_sync_defaults(self):
        sync = SyncConfig()
        assert sync.max_active_campaigns == 8
        assert sync.max_ad_groups_per_campaign == 10
        assert sync.line_item_spacing_seconds == 0.26
        assert sync.rate_limit_cooldown_seconds == 60.0

    def test_recommendation_defaults(self):
        config = AppConfig()
        assert config.recommendations.confirm_window_seconds == 3.0
        assert config.recommendations.remember_dismissed is False
        assert config.platform is None


class TestConfigManager:
    """Tests for ConfigManager."""

    def test_load_without_file_raises(self, manager):
        with pytest.raises(ConfigError):
            manager.load()

    def test_default_when_unconfigured(self, manager):
        assert manager.get_config_or_default() == AppConfig()
        assert not manager.is_configured()

    def test_save_and_load_round_trip_secret(self, manager):
        config = AppConfig(
            platform=PlatformConfig(base_url="https://ads.example.com/api", account_id="act_1", access_token="s3cret"),
            sync=SyncConfig(max_active_campaigns=4),
        )
        manager.save(config)

        loaded = ConfigManager(config_dir=manager.config_dir).load()
        assert loaded.platform.account_id == "act_1"
        assert loaded.platform.access_token.get_secret_value() == "s3cret"
        assert loaded.sync.max_active_campaigns == 4

    def test_file_is_encrypted(self, manager):
        manager.save(AppConfig(platform=PlatformConfig(base_url="u", account_id="act_1", access_token="s3cret")))
        assert b"s3cret" not in manager.config_path.read_bytes()

    def test_wrong_key_fails(self, manager):
        manager.save(AppConfig())
        manager.key_path.write_bytes(b"A" * 43 + b"=")
        with pytest.raises(ConfigError):
            ConfigManager(config_dir=manager.config_dir).load()

    def test_update_replaces_section(self, manager):
        manager.save(AppConfig())
        updated = manager.update(sync=SyncConfig(actions_limit=10), log_level="DEBUG")
        assert updated.sync.actions_limit == 10
        assert manager.load().log_level == "DEBUG"

    def test_get_platform_requires_section(self, manager):
        manager.save(AppConfig())
        with pytest.raises(ConfigError):
            manager.get_platform()

    def test_cache_path_is_expanded(self, manager):
        manager.save(AppConfig())
        assert "~" not in str(manager.get_cache_path())

    def test_reset(self, manager):
        manager.save(AppConfig())
        manager.reset()
        assert not manager.config_path.exists()
        assert not manager.key_path.exists()
