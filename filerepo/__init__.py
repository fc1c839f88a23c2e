"""filerepo: multi-source genomic file metadata importer."""

__version__ = "0.1.0"
