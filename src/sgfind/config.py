"""Configuration loading.

Settings are resolved in this order, highest priority first:

1. CLI flags
2. Environment variables (``SGFIND_DATABASE_URL``, ``SGFIND_ROOM_ID``),
   including those loaded from a ``.env`` file
3. YAML config file (``--config``, default ~/.config/sgfind/config.yaml)
4. Built-in defaults

Example config.yaml::

    database_url: postgresql://synapse@localhost/synapse
    fetch_batch_size: 500
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from ruamel.yaml import YAML
from ruamel.yaml.error import YAMLError

from sgfind.observability.logging import get_logger
from sgfind.sources.base import DEFAULT_FETCH_BATCH_SIZE, DEFAULT_MISSING_BATCH_SIZE

log = get_logger(__name__)

# XDG-compliant default config directory
DEFAULT_CONFIG_PATH = Path.home() / ".config" / "sgfind" / "config.yaml"

ENV_DATABASE_URL = "SGFIND_DATABASE_URL"
ENV_ROOM_ID = "SGFIND_ROOM_ID"


class ConfigError(Exception):
    """Raised when a config file cannot be read or holds invalid values."""


class FinderConfig(BaseModel):
    """Settings for an unreferenced state group search."""

    model_config = ConfigDict(extra="forbid")

    database_url: str | None = Field(
        default=None, description="Database URL, or a path to a SQLite database"
    )
    room_id: str | None = Field(default=None, description="Only search this room")
    output: Path | None = Field(default=None, description="File to write unreferenced ids to")
    fetch_batch_size: int = Field(default=DEFAULT_FETCH_BATCH_SIZE, gt=0)
    missing_batch_size: int = Field(default=DEFAULT_MISSING_BATCH_SIZE, gt=0)

    def with_overrides(self, **values: Any) -> FinderConfig:
        """Return a copy with every non-None value in *values* applied.

        Raises:
            ConfigError: If an override is invalid.
        """
        updates = {k: v for k, v in values.items() if v is not None}
        if not updates:
            return self
        try:
            return FinderConfig.model_validate({**self.model_dump(), **updates})
        except ValidationError as e:
            raise ConfigError(str(e)) from e

    def with_environment(self) -> FinderConfig:
        """Return a copy with ``SGFIND_*`` environment variables applied."""
        return self.with_overrides(
            database_url=os.getenv(ENV_DATABASE_URL) or None,
            room_id=os.getenv(ENV_ROOM_ID) or None,
        )


def load_config(path: Path | None = None) -> FinderConfig:
    """Load settings from a YAML file.

    Args:
        path: Config file to read. When None, the default location is used
            and a missing file simply yields the defaults.

    Returns:
        FinderConfig from the file, or defaults.

    Raises:
        ConfigError: If an explicitly given file is missing, or any file
            cannot be parsed or holds invalid settings.
    """
    explicit = path is not None
    config_path = path or DEFAULT_CONFIG_PATH

    if not config_path.exists():
        if explicit:
            raise ConfigError(f"Config file not found: {config_path}")
        return FinderConfig()

    yaml = YAML(typ="safe")
    try:
        with config_path.open("r", encoding="utf-8") as f:
            data = yaml.load(f)
    except OSError as e:
        raise ConfigError(f"Cannot read {config_path}: {e}") from e
    except YAMLError as e:
        raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    if data is None:
        return FinderConfig()
    if not isinstance(data, dict):
        raise ConfigError(f"{config_path} must contain a mapping of settings")

    try:
        config = FinderConfig.model_validate(dict(data))
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {config_path}: {e}") from e

    log.debug("config_loaded", path=str(config_path))
    return config
