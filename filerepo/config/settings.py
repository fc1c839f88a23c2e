"""Application settings loaded from environment variables via pydantic-settings.

Settings are read from two places, highest priority first:

    1. Environment variables, e.g. ``STORE_URI=sqlite:///var/lib/filerepo``
    2. A ``.env`` file in the working directory (local development)

Field ``store_uri`` maps to ``STORE_URI`` and so on.  Defaults apply when
neither is set.  Per-source settings (URLs, buckets, endpoints) live in
``config/config.yaml``; see :mod:`filerepo.config.loader`.
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """filerepo application settings.

    Environment variables override defaults. Loaded from .env file when present.
    """

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8")

    # === Document Store ===
    # Directory only; the database and collection are bound separately.
    store_uri: str = "sqlite:///data/store"
    store_database: str = "repository"
    store_collection: str = "files"

    # === Search Index ===
    search_index_path: str = "data/search_index.db"
    index_alias: str = "repository"
    index_batch_size: int = 500
    index_parallelism: int = 4
    # Older generations kept after a swap (0 = drop the previous one).
    index_retain_generations: int = 0

    # === Archive ===
    archive_dir: str = "data/archive"

    # === Run ===
    concurrent_sources: bool = False
    commit_window: int = 16
    read_timeout: float = 300.0
    write_timeout: float = 60.0
    # Comma-separated source tags; empty = every configured source.
    active_sources: str = ""
    manifest_work_dir: str = "data/manifests"

    # === Notification ===
    notification_webhook_url: str = ""

    # === AWS / S3 ===
    aws_region: str = "us-east-1"
    s3_endpoint_url: str = ""

    # === Catalog ===
    catalog_timeout: float = 60.0

    # === App Config ===
    app_env: str = "development"
    log_level: str = "INFO"
    sources_config_path: str = "config/config.yaml"

    @field_validator("commit_window", "index_batch_size", "index_parallelism")
    @classmethod
    def _at_least_one(cls, value: int) -> int:
        if value < 1:
            msg = f"must be >= 1, got {value}"
            raise ValueError(msg)
        return value

    def get_active_sources(self) -> list[str]:
        """Return the active source tags, lower-cased; empty means all."""
        return [s.strip().lower() for s in self.active_sources.split(",") if s.strip()]
