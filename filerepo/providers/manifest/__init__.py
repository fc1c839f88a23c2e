"""Versioned manifest sources.

GitManifestSourceProvider keeps shallow checkouts of the repositories that
hold transfer-job manifests and lists the files matching a name pattern.
"""

from filerepo.providers.manifest.git_manifest_source_provider import GitManifestSourceProvider

__all__ = ["GitManifestSourceProvider"]
