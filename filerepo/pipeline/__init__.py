"""Import and indexing pipeline for the filerepo file metadata importer."""

from filerepo.pipeline.import_orchestrator import ImportOrchestrator
from filerepo.pipeline.indexing_pipeline import CorpusSnapshot, IndexingPipeline
from filerepo.pipeline.run_coordinator import RunCoordinator

__all__ = [
    "CorpusSnapshot",
    "ImportOrchestrator",
    "IndexingPipeline",
    "RunCoordinator",
]
