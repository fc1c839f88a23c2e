"""Pure transformation and export helpers used by the indexing pipeline.

- **document_transformer** -- canonical record to flat search document.
- **archive_writer** -- gzip-compressed tar export of one index generation.
"""

from filerepo.services.archive_writer import ArchiveWriter
from filerepo.services.document_transformer import SEARCH_DOCUMENT_MAPPING, to_search_document

__all__ = ["ArchiveWriter", "SEARCH_DOCUMENT_MAPPING", "to_search_document"]
