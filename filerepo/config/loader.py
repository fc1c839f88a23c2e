"""YAML configuration loader with environment variable overrides.

Configuration is loaded in layers (later layers override earlier):

    1. config/config.yaml  -- source declarations and static defaults
    2. .env file           -- local developer overrides (not committed)
    3. Environment vars    -- set at deploy time

:func:`load_config` reads the YAML file first, then deep-merges the
environment-based values from :class:`Settings` on top.
:func:`load_sources` validates the ``sources:`` list into typed
per-source models.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError

from filerepo.config.settings import Settings
from filerepo.config.sources import SourceConfig, SourcesConfig
from filerepo.utils.errors import ConfigurationError


def load_config(path: str = "config/config.yaml", settings: Settings | None = None) -> dict:
    """Load YAML config and merge with environment-based Settings.

    Environment variables (via Settings) override YAML values where keys overlap.

    Args:
        path: Path to the YAML configuration file.
        settings: Settings to merge; read from the environment when omitted.

    Returns:
        Fully resolved configuration dictionary.

    Raises:
        ConfigurationError: If the file is not valid YAML or not a mapping.
    """
    config_path = Path(path)
    if config_path.exists():
        try:
            with open(config_path) as f:
                yaml_config = yaml.safe_load(f) or {}
        except yaml.YAMLError as exc:
            raise ConfigurationError(message=f"Invalid YAML in {path}: {exc}") from exc
    else:
        yaml_config = {}

    if not isinstance(yaml_config, dict):
        raise ConfigurationError(message=f"{path} must contain a mapping at the top level")

    settings = settings or Settings()
    env_overrides = {
        "app": {
            "env": settings.app_env,
        },
        "store": {
            "uri": settings.store_uri,
            "database": settings.store_database,
            "collection": settings.store_collection,
        },
        "index": {
            "path": settings.search_index_path,
            "alias": settings.index_alias,
            "batch_size": settings.index_batch_size,
            "parallelism": settings.index_parallelism,
            "retain_generations": settings.index_retain_generations,
            "archive_dir": settings.archive_dir,
        },
        "run": {
            "concurrent_sources": settings.concurrent_sources,
            "commit_window": settings.commit_window,
            "active_sources": settings.get_active_sources(),
        },
        "logging": {
            "level": settings.log_level,
        },
    }

    _deep_merge(yaml_config, env_overrides)
    return yaml_config


def load_sources(config: dict[str, Any]) -> list[SourceConfig]:
    """Validate the ``sources:`` section of a loaded config.

    Raises:
        ConfigurationError: If any entry is invalid or two entries share a source tag.
    """
    try:
        parsed = SourcesConfig.model_validate({"sources": config.get("sources") or []})
    except ValidationError as exc:
        raise ConfigurationError(message=f"Invalid sources configuration: {exc}") from exc

    seen: set[str] = set()
    for source_config in parsed.sources:
        tag = source_config.source.value
        if tag in seen:
            raise ConfigurationError(message=f"Source '{tag}' is declared more than once")
        seen.add(tag)
    return list(parsed.sources)


def _deep_merge(base: dict, overrides: dict) -> None:
    """Recursively merge overrides into base dict, mutating base in place."""
    for key, value in overrides.items():
        if key in base and isinstance(base[key], dict) and isinstance(value, dict):
            _deep_merge(base[key], value)
        else:
            base[key] = value
