"""Configuration module: exports Settings, the source models and the loaders."""

from filerepo.config.loader import load_config, load_sources
from filerepo.config.settings import Settings
from filerepo.config.sources import (
    AnalysisCatalogSourceConfig,
    SourceConfig,
    SourcesConfig,
    TransferJobSourceConfig,
)

__all__ = [
    "AnalysisCatalogSourceConfig",
    "Settings",
    "SourceConfig",
    "SourcesConfig",
    "TransferJobSourceConfig",
    "load_config",
    "load_sources",
]
