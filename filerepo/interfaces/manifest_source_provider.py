"""Abstract base class for versioned manifest sources."""

from __future__ import annotations

from abc import ABC, abstractmethod
from pathlib import Path


# Concrete implementation: GitManifestSourceProvider (filerepo/providers/manifest/)
class IManifestSourceProvider(ABC):
    """Contract for fetching a directory of manifest files from a versioned repository."""

    @abstractmethod
    async def fetch_directory(
        self,
        url: str,
        name_pattern: str,
        subdirectory: str = "",
    ) -> list[Path]:
        """Bring a local copy of *url* up to date and list matching files.

        Parameters
        ----------
        url:
            Repository URL.
        name_pattern:
            Glob matched against file names (e.g. ``"*.json"``).
        subdirectory:
            Directory inside the repository holding the manifests.

        Returns
        -------
        list[Path]
            Matching local files, sorted by name.

        Raises
        ------
        filerepo.utils.errors.SourceUnavailableError
            If the repository cannot be cloned or updated.
        """

    @abstractmethod
    def get_provider_name(self) -> str:
        """Return a human-readable identifier, e.g. ``"git"``."""
