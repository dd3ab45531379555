"""Configuration management module.

This module handles persistent configuration storage using TOML format.
Stores cache settings, TTL overrides, RPC timeout, dashboard refresh
interval and device aliases.

Security:
- Config file permissions: 0600 (owner read/write only)
- Path validation
- Input sanitization (device alias names)
"""

import logging
import os
import re
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

try:
    import tomli  # type: ignore[import]
except ImportError:
    # Fallback for older Python versions
    try:
        import tomllib as tomli  # type: ignore[import]
    except ImportError as e:
        raise ImportError("toml library not available. Install with: pip install tomli") from e

try:
    import tomlkit
except ImportError as e:
    raise ImportError("tomlkit library not available. Install with: pip install tomlkit") from e

from devdash.cache.data_types import TTLPolicy
from devdash.cache.file_cache import FileCache, FileCacheError
from devdash.cache.store import CacheStore, NullCacheStore

logger = logging.getLogger(__name__)

_ALIAS_PATTERN = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._-]{0,62}$")


class ConfigError(Exception):
    """Raised when configuration operations fail."""

    pass


@dataclass
class DashConfig:
    """devdash configuration data."""

    cache_enabled: bool = True
    cache_dir: str | None = None  # Default: ~/.devdash/cache
    cache_cleanup_interval: int = 86400  # Stale entry sweep at most daily
    ttl_overrides: dict[str, int] = field(default_factory=dict)  # data type -> seconds
    rpc_timeout: int = 10
    refresh_interval: int = 30  # Dashboard re-validation tick
    devices: dict[str, str] = field(default_factory=dict)  # alias -> host

    @property
    def cache_path(self) -> Path:
        """Resolved cache directory."""
        if self.cache_dir:
            return Path(self.cache_dir).expanduser()
        return FileCache.DEFAULT_CACHE_DIR

    def ttl_policy(self) -> TTLPolicy:
        return TTLPolicy.from_config(self.ttl_overrides)

    def to_dict(self) -> dict[str, Any]:
        """Convert to nested TOML tables, excluding None values."""
        cache: dict[str, Any] = {
            "enabled": self.cache_enabled,
            "cleanup_interval": self.cache_cleanup_interval,
        }
        if self.cache_dir:
            cache["directory"] = self.cache_dir
        if self.ttl_overrides:
            cache["ttl"] = dict(self.ttl_overrides)

        return {
            "cache": cache,
            "rpc": {"timeout": self.rpc_timeout},
            "dashboard": {"refresh_interval": self.refresh_interval},
            "devices": dict(self.devices),
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DashConfig":
        """Create from nested TOML tables."""
        cache = data.get("cache", {})
        return cls(
            cache_enabled=bool(cache.get("enabled", True)),
            cache_dir=cache.get("directory"),
            cache_cleanup_interval=int(cache.get("cleanup_interval", 86400)),
            ttl_overrides=dict(cache.get("ttl", {})),
            rpc_timeout=int(data.get("rpc", {}).get("timeout", 10)),
            refresh_interval=int(data.get("dashboard", {}).get("refresh_interval", 30)),
            devices=dict(data.get("devices", {})),
        )


def _merge_table(table: Any, data: dict[str, Any], prune: bool = True) -> None:
    """Update a tomlkit table in place so comments and ordering survive."""
    if prune:
        for key in [key for key in table if key not in data]:
            del table[key]
    for key, value in data.items():
        if isinstance(value, dict) and isinstance(table.get(key), dict):
            _merge_table(table[key], value)
        else:
            table[key] = value


class ConfigManager:
    """Manage devdash configuration file.

    Configuration is stored at ~/.devdash/config.toml with secure permissions.
    """

    DEFAULT_CONFIG_DIR = Path.home() / ".devdash"
    DEFAULT_CONFIG_FILE = DEFAULT_CONFIG_DIR / "config.toml"

    @classmethod
    def _validate_config_path(cls, path: Path) -> Path:
        """Validate configuration file path.

        The path must resolve inside ~/.devdash/, the current working
        directory or the system temporary directory.

        Raises:
            ConfigError: If path is outside allowed directories
        """
        resolved_path = path.resolve()

        allowed_dirs = [
            cls.DEFAULT_CONFIG_DIR.resolve(),
            Path.cwd().resolve(),
            Path(tempfile.gettempdir()).resolve(),
        ]

        for allowed_dir in allowed_dirs:
            try:
                resolved_path.relative_to(allowed_dir)
                return resolved_path
            except ValueError:
                continue

        raise ConfigError(
            f"Config path outside allowed directories: {resolved_path}\n"
            f"Allowed directories:\n"
            f"  - {cls.DEFAULT_CONFIG_DIR}\n"
            f"  - {Path.cwd()}"
        )

    @classmethod
    def get_config_path(cls, custom_path: str | None = None, must_exist: bool = True) -> Path:
        """Get configuration file path.

        Args:
            custom_path: Custom config file path (optional)
            must_exist: Require a custom path to exist

        Raises:
            ConfigError: If path is invalid or outside allowed directories
        """
        if custom_path:
            path = cls._validate_config_path(Path(custom_path).expanduser())
            if must_exist and not path.exists():
                raise ConfigError(f"Config file not found: {path}")
            return path

        return cls.DEFAULT_CONFIG_FILE

    @classmethod
    def load_config(cls, custom_path: str | None = None) -> DashConfig:
        """Load configuration from file.

        Returns:
            DashConfig (defaults when the default file does not exist)

        Raises:
            ConfigError: If loading fails
        """
        config_path = cls.get_config_path(custom_path)

        if not config_path.exists():
            logger.debug("Config file not found, using defaults")
            return DashConfig()

        try:
            mode = config_path.stat().st_mode & 0o777
            if mode & 0o077:
                logger.warning(
                    f"Config file has insecure permissions: {oct(mode)}. Fixing to 0600..."
                )
                os.chmod(config_path, 0o600)

            with open(config_path, "rb") as f:
                data = tomli.load(f)

            logger.debug(f"Loaded config from: {config_path}")
            return DashConfig.from_dict(data)

        except Exception as e:
            raise ConfigError(f"Failed to load config: {e}") from e

    @classmethod
    def save_config(cls, config: DashConfig, custom_path: str | None = None) -> Path:
        """Save configuration to file, preserving comments where possible.

        Returns:
            Path written

        Raises:
            ConfigError: If saving fails
        """
        temp_path: Path | None = None
        try:
            config_path = cls.get_config_path(custom_path, must_exist=False)
            config_path.parent.mkdir(parents=True, exist_ok=True)
            if not custom_path:
                os.chmod(config_path.parent, 0o700)

            temp_path = config_path.with_suffix(".tmp")

            if config_path.exists():
                with open(config_path) as f:
                    doc = tomlkit.load(f)
            else:
                doc = tomlkit.document()
            # Unknown top-level tables are kept
            _merge_table(doc, config.to_dict(), prune=False)

            with open(temp_path, "w") as f:
                tomlkit.dump(doc, f)
            os.chmod(temp_path, 0o600)
            temp_path.replace(config_path)

            logger.debug(f"Saved config to: {config_path}")
            return config_path

        except ConfigError:
            raise
        except Exception as e:
            if temp_path and temp_path.exists():
                temp_path.unlink()
            raise ConfigError(f"Failed to save config: {e}") from e

    @classmethod
    def _load_for_update(cls, custom_path: str | None) -> DashConfig:
        config_path = cls.get_config_path(custom_path, must_exist=False)
        if custom_path and not config_path.exists():
            return DashConfig()
        return cls.load_config(custom_path)

    @classmethod
    def add_device(cls, name: str, host: str, custom_path: str | None = None) -> DashConfig:
        """Register a device alias.

        Raises:
            ConfigError: If the alias or host is invalid
        """
        if not _ALIAS_PATTERN.match(name):
            raise ConfigError(
                f"Invalid device name '{name}'. Use letters, digits, '.', '_' or '-' (max 63)."
            )
        host = host.strip()
        if not host or any(ch.isspace() for ch in host):
            raise ConfigError(f"Invalid device host '{host}'")

        config = cls._load_for_update(custom_path)
        config.devices[name] = host
        cls.save_config(config, custom_path)
        return config

    @classmethod
    def remove_device(cls, name: str, custom_path: str | None = None) -> bool:
        """Remove a device alias.

        Returns:
            True if removed, False if it did not exist
        """
        config = cls._load_for_update(custom_path)
        if name not in config.devices:
            return False
        del config.devices[name]
        cls.save_config(config, custom_path)
        return True


def build_store(config: DashConfig) -> CacheStore:
    """Create the cache store described by the config.

    Degrades to a NullCacheStore (always fetch) when caching is disabled or
    the cache directory is unusable.
    """
    if not config.cache_enabled:
        logger.debug("Caching disabled by config")
        return NullCacheStore()
    try:
        return FileCache(config.cache_path)
    except FileCacheError as e:
        logger.warning(f"Cache unavailable, fetching from devices directly: {e}")
        return NullCacheStore()


__all__ = ["ConfigError", "ConfigManager", "DashConfig", "build_store"]
