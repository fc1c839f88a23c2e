"""Repository endpoint registry entries.

Each source declares the endpoints that host its files in configuration
(no process-wide registry).  Adapters turn a :class:`RepositoryServer`
plus an object path into an
:class:`~filerepo.models.files.ObjectLocation`.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict

from filerepo.models.files import AccessProtocol, ObjectLocation


class RepositoryServer(BaseModel):
    """A repository endpoint that serves copies of files."""

    model_config = ConfigDict(frozen=True)

    code: str
    name: str
    base_url: str
    protocol: AccessProtocol
    country: str | None = None

    def locate(self, path: str) -> ObjectLocation:
        """Return the location of *path* on this server."""
        return ObjectLocation(
            repository_code=self.code,
            endpoint=self.base_url,
            path=path,
            protocol=self.protocol,
        )


def find_server(servers: list[RepositoryServer], base_url: str) -> RepositoryServer | None:
    """Find the server whose base URL matches *base_url* (trailing slash ignored)."""
    wanted = base_url.rstrip("/")
    for server in servers:
        if server.base_url.rstrip("/") == wanted:
            return server
    return None
