"""
Configuration management for metadata catalog stores.

The configuration is stored as a TOML file in the store directory.
It holds the validation limits and the HTTP server binding.
"""

import os
import tomllib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

import tomli_w


CONFIG_FILENAME = "metacatalog.toml"
CONFIG_VERSION = 1

METADATA_DB_FILENAME = "metadata.db"
ENTITIES_DB_FILENAME = "entities.db"

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 11015


@dataclass
class LimitsConfig:
    """Validation limits for user metadata."""
    max_key_length: int = 50
    max_value_length: int = 50
    max_tag_length: int = 50
    # Per entity, per scope
    max_properties: int = 1000
    max_tags: int = 1000


@dataclass
class ServerConfig:
    host: str = DEFAULT_HOST
    port: int = DEFAULT_PORT


@dataclass
class CatalogConfig:
    """Complete store configuration."""
    path: Path
    version: int = CONFIG_VERSION
    created: str = field(default_factory=lambda: datetime.now(timezone.utc).isoformat())

    limits: LimitsConfig = field(default_factory=LimitsConfig)
    server: ServerConfig = field(default_factory=ServerConfig)

    @property
    def config_path(self) -> Path:
        """Path to the TOML config file."""
        return self.path / CONFIG_FILENAME

    @property
    def metadata_db_path(self) -> Path:
        return self.path / METADATA_DB_FILENAME

    @property
    def entities_db_path(self) -> Path:
        return self.path / ENTITIES_DB_FILENAME

    def exists(self) -> bool:
        """Check if config file exists."""
        return self.config_path.exists()


def get_default_store_path(store_path: Optional[str | Path] = None) -> Path:
    """
    Resolve the store directory.

    Priority:
    1. Explicit path
    2. METACATALOG_STORE_PATH environment variable
    3. ~/.metacatalog
    """
    if store_path is not None:
        return Path(store_path).expanduser().resolve()
    env_path = os.environ.get("METACATALOG_STORE_PATH")
    if env_path:
        return Path(env_path).expanduser().resolve()
    return Path.home() / ".metacatalog"


def load_config(store_path: Path) -> CatalogConfig:
    """
    Load configuration from a store directory.

    Raises:
        FileNotFoundError: If config doesn't exist
        ValueError: If config is invalid
    """
    config_path = store_path / CONFIG_FILENAME

    if not config_path.exists():
        raise FileNotFoundError(f"Config not found: {config_path}")

    with open(config_path, "rb") as f:
        data = tomllib.load(f)

    # Validate version
    version = data.get("store", {}).get("version", 1)
    if version > CONFIG_VERSION:
        raise ValueError(f"Config version {version} is newer than supported ({CONFIG_VERSION})")

    limits = data.get("limits", {})
    server = data.get("server", {})
    defaults = LimitsConfig()
    try:
        limits_config = LimitsConfig(
            max_key_length=int(limits.get("max_key_length", defaults.max_key_length)),
            max_value_length=int(limits.get("max_value_length", defaults.max_value_length)),
            max_tag_length=int(limits.get("max_tag_length", defaults.max_tag_length)),
            max_properties=int(limits.get("max_properties", defaults.max_properties)),
            max_tags=int(limits.get("max_tags", defaults.max_tags)),
        )
        server_config = ServerConfig(
            host=str(server.get("host", DEFAULT_HOST)),
            port=int(server.get("port", DEFAULT_PORT)),
        )
    except (TypeError, ValueError) as e:
        raise ValueError(f"Invalid config {config_path}: {e}") from e

    return CatalogConfig(
        path=store_path,
        version=version,
        created=data.get("store", {}).get("created", ""),
        limits=limits_config,
        server=server_config,
    )


def save_config(config: CatalogConfig) -> None:
    """
    Save configuration to the store directory.

    Creates the directory if it doesn't exist.
    """
    config.path.mkdir(parents=True, exist_ok=True)

    data = {
        "store": {
            "version": config.version,
            "created": config.created,
        },
        "limits": {
            "max_key_length": config.limits.max_key_length,
            "max_value_length": config.limits.max_value_length,
            "max_tag_length": config.limits.max_tag_length,
            "max_properties": config.limits.max_properties,
            "max_tags": config.limits.max_tags,
        },
        "server": {
            "host": config.server.host,
            "port": config.server.port,
        },
    }

    with open(config.config_path, "wb") as f:
        tomli_w.dump(data, f)


def load_or_create_config(store_path: Path) -> CatalogConfig:
    """
    Load existing config or create a new one with defaults.

    This is the main entry point for config management.
    """
    config_path = store_path / CONFIG_FILENAME

    if config_path.exists():
        return load_config(store_path)
    else:
        config = CatalogConfig(path=store_path)
        save_config(config)
        return config
