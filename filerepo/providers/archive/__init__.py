"""Archive sinks for compressed corpus exports."""

from filerepo.providers.archive.fsspec_archive_sink import FsspecArchiveSink

__all__ = ["FsspecArchiveSink"]
