"""Source adapters, one per kind of external repository.

- **TransferJobAdapter** -- git-hosted transfer-job manifests joined to an
  S3-compatible bucket listing (``aws``, ``collab``).
- **AnalysisCatalogAdapter** -- paged donor/workflow catalog joined to the
  catalog's file listing, with analysis classification (``pcawg``).
"""

from filerepo.adapters.analysis_catalog_adapter import AnalysisCatalogAdapter
from filerepo.adapters.transfer_job_adapter import TransferJobAdapter

__all__ = ["AnalysisCatalogAdapter", "TransferJobAdapter"]
