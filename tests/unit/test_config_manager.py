"""Unit tests for config_manager module."""

import os
from pathlib import Path

import pytest

from devdash.cache.data_types import DataType
from devdash.cache.file_cache import FileCache, FileCacheError
from devdash.cache.store import NullCacheStore
from devdash.config_manager import ConfigError, ConfigManager, DashConfig, build_store


@pytest.fixture
def default_config(monkeypatch, temp_config_dir):
    """Point the default config location at a temporary directory."""
    config_file = temp_config_dir / "config.toml"
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_DIR", temp_config_dir)
    monkeypatch.setattr(ConfigManager, "DEFAULT_CONFIG_FILE", config_file)
    return config_file


SAMPLE_TOML = """\
# devdash settings
[cache]
enabled = true
directory = "/var/tmp/devdash-cache"
cleanup_interval = 3600

[cache.ttl]
webhooks = 30
"monitor/power" = 15

[rpc]
timeout = 4

[dashboard]
refresh_interval = 20

[devices]
kitchen = "192.168.1.40"
"""


class TestDashConfig:
    """Tests for DashConfig dataclass."""

    def test_default_values(self):
        config = DashConfig()
        assert config.cache_enabled is True
        assert config.cache_dir is None
        assert config.cache_cleanup_interval == 86400
        assert config.rpc_timeout == 10
        assert config.refresh_interval == 30
        assert config.devices == {}
        assert config.cache_path == FileCache.DEFAULT_CACHE_DIR

    def test_to_dict(self):
        config = DashConfig(cache_dir="~/c", ttl_overrides={"wifi": 60}, devices={"k": "h"})
        data = config.to_dict()
        assert data["cache"]["directory"] == "~/c"
        assert data["cache"]["ttl"] == {"wifi": 60}
        assert data["rpc"]["timeout"] == 10
        assert data["dashboard"]["refresh_interval"] == 30
        assert data["devices"] == {"k": "h"}

    def test_to_dict_omits_unset(self):
        data = DashConfig().to_dict()
        assert "directory" not in data["cache"]
        assert "ttl" not in data["cache"]

    def test_from_dict_partial(self):
        config = DashConfig.from_dict({"rpc": {"timeout": 3}})
        assert config.rpc_timeout == 3
        assert config.refresh_interval == 30
        assert config.cache_enabled is True

    def test_cache_path_expands_user(self):
        config = DashConfig(cache_dir="~/devdash-cache")
        assert config.cache_path == Path.home() / "devdash-cache"

    def test_ttl_policy(self):
        policy = DashConfig(ttl_overrides={"webhooks": 30}).ttl_policy()
        assert policy.ttl_for(DataType.WEBHOOKS) == 30
        assert policy.ttl_for(DataType.SYSTEM) == 3600


class TestConfigPaths:
    """Tests for config path handling."""

    def test_get_config_path_default(self, default_config):
        assert ConfigManager.get_config_path() == default_config

    def test_get_config_path_custom(self, tmp_path):
        custom_path = tmp_path / "custom.toml"
        custom_path.touch()
        assert ConfigManager.get_config_path(str(custom_path)) == custom_path.resolve()

    def test_get_config_path_custom_not_exists(self, tmp_path):
        with pytest.raises(ConfigError, match="Config file not found"):
            ConfigManager.get_config_path(str(tmp_path / "missing.toml"))

    def test_path_outside_allowed_directories(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        with pytest.raises(ConfigError, match="outside allowed directories"):
            ConfigManager.get_config_path("/etc/devdash.toml", must_exist=False)


class TestLoadSave:
    """Tests for loading and saving."""

    def test_load_missing_default_gives_defaults(self, default_config):
        assert ConfigManager.load_config() == DashConfig()

    def test_load_sample(self, default_config):
        default_config.write_text(SAMPLE_TOML)
        os.chmod(default_config, 0o600)

        config = ConfigManager.load_config()

        assert config.cache_dir == "/var/tmp/devdash-cache"
        assert config.cache_cleanup_interval == 3600
        assert config.ttl_overrides == {"webhooks": 30, "monitor/power": 15}
        assert config.rpc_timeout == 4
        assert config.refresh_interval == 20
        assert config.devices == {"kitchen": "192.168.1.40"}

    def test_load_fixes_insecure_permissions(self, default_config):
        default_config.write_text(SAMPLE_TOML)
        os.chmod(default_config, 0o644)

        ConfigManager.load_config()

        assert os.stat(default_config).st_mode & 0o777 == 0o600

    def test_load_invalid_toml(self, default_config):
        default_config.write_text("[cache\nenabled = ")
        with pytest.raises(ConfigError, match="Failed to load config"):
            ConfigManager.load_config()

    def test_save_and_reload(self, default_config):
        config = DashConfig(rpc_timeout=5, devices={"hall": "10.0.0.9"}, ttl_overrides={"wifi": 90})

        path = ConfigManager.save_config(config)

        assert path == default_config
        assert os.stat(default_config).st_mode & 0o777 == 0o600
        assert ConfigManager.load_config() == config

    def test_save_preserves_comments(self, default_config):
        default_config.write_text(SAMPLE_TOML)
        config = ConfigManager.load_config()
        config.rpc_timeout = 8

        ConfigManager.save_config(config)

        text = default_config.read_text()
        assert "# devdash settings" in text
        assert ConfigManager.load_config().rpc_timeout == 8

    def test_save_leaves_no_temp_file(self, default_config):
        ConfigManager.save_config(DashConfig())
        assert not default_config.with_suffix(".tmp").exists()


class TestDevices:
    """Tests for device alias management."""

    def test_add_device(self, default_config):
        ConfigManager.add_device("kitchen", "192.168.1.40")
        assert ConfigManager.load_config().devices == {"kitchen": "192.168.1.40"}

    def test_add_device_to_new_custom_file(self, tmp_path):
        custom = tmp_path / "devdash.toml"
        ConfigManager.add_device("hall", "10.0.0.9", str(custom))
        assert ConfigManager.load_config(str(custom)).devices == {"hall": "10.0.0.9"}

    @pytest.mark.parametrize("name", ["", "-leading", "has space", "a" * 64, "semi;colon"])
    def test_add_device_invalid_name(self, default_config, name):
        with pytest.raises(ConfigError, match="Invalid device name"):
            ConfigManager.add_device(name, "192.168.1.40")

    def test_add_device_invalid_host(self, default_config):
        with pytest.raises(ConfigError, match="Invalid device host"):
            ConfigManager.add_device("kitchen", "192.168.1.40 extra")

    def test_remove_device(self, default_config):
        ConfigManager.add_device("kitchen", "192.168.1.40")
        assert ConfigManager.remove_device("kitchen") is True
        assert ConfigManager.load_config().devices == {}

    def test_remove_unknown_device(self, default_config):
        assert ConfigManager.remove_device("ghost") is False


class TestBuildStore:
    """Tests for cache store selection."""

    def test_file_cache(self, tmp_path):
        store = build_store(DashConfig(cache_dir=str(tmp_path / "cache")))
        assert isinstance(store, FileCache)
        assert store.path == tmp_path / "cache"

    def test_disabled(self, tmp_path):
        store = build_store(DashConfig(cache_enabled=False, cache_dir=str(tmp_path / "cache")))
        assert isinstance(store, NullCacheStore)
        assert not (tmp_path / "cache").exists()

    def test_unusable_directory_degrades(self, tmp_path, monkeypatch, caplog):
        def broken(self):
            raise FileCacheError("read-only file system")

        monkeypatch.setattr(FileCache, "_ensure_cache_dir", broken)

        store = build_store(DashConfig(cache_dir=str(tmp_path / "cache")))

        assert isinstance(store, NullCacheStore)
        assert "Cache unavailable" in caplog.text
