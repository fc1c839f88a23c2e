"""Git-hosted manifest directory provider.

Keeps one local checkout per repository URL under a working directory:
the first fetch is a shallow ``git clone``, later fetches ``git pull`` the
existing checkout.  Fetches of the same checkout are serialized, so sources
sharing a repository never clone or pull into one directory at once.
The ``git`` CLI runs through
``asyncio.create_subprocess_exec`` with a timeout; a non-zero exit code or
a timeout becomes :class:`~filerepo.utils.errors.SourceUnavailableError`.
"""

from __future__ import annotations

import asyncio
import hashlib
import re
import shutil
from pathlib import Path

import structlog

from filerepo.interfaces.manifest_source_provider import IManifestSourceProvider
from filerepo.utils.errors import SourceUnavailableError

logger = structlog.get_logger(logger_name=__name__)

_UNSAFE_CHARS = re.compile(r"[^A-Za-z0-9_.-]+")


def checkout_name(url: str) -> str:
    """Derive a stable, filesystem-safe checkout directory name for *url*."""
    stem = url.rstrip("/").rsplit("/", 1)[-1].removesuffix(".git") or "repo"
    digest = hashlib.sha1(url.encode("utf-8")).hexdigest()[:8]
    return f"{_UNSAFE_CHARS.sub('_', stem)}-{digest}"


class GitManifestSourceProvider(IManifestSourceProvider):
    """Clone-or-pull access to manifests kept in git repositories.

    Parameters
    ----------
    work_dir:
        Directory holding the local checkouts.
    timeout:
        Seconds allowed for each git command.
    git_executable:
        Name or path of the git binary.
    """

    def __init__(
        self,
        work_dir: str | Path,
        timeout: float = 120.0,
        git_executable: str = "git",
    ) -> None:
        self._work_dir = Path(work_dir)
        self._timeout = timeout
        self._git = git_executable
        self._locks: dict[Path, asyncio.Lock] = {}

    async def fetch_directory(
        self,
        url: str,
        name_pattern: str,
        subdirectory: str = "",
    ) -> list[Path]:
        if shutil.which(self._git) is None:
            raise SourceUnavailableError(
                message=f"git executable '{self._git}' not found",
                source_name=self.get_provider_name(),
            )

        checkout = self._work_dir / checkout_name(url)
        lock = self._locks.setdefault(checkout, asyncio.Lock())
        async with lock:
            return await self._sync_and_list(url, checkout, name_pattern, subdirectory)

    async def _sync_and_list(
        self,
        url: str,
        checkout: Path,
        name_pattern: str,
        subdirectory: str,
    ) -> list[Path]:
        if (checkout / ".git").is_dir():
            logger.info("git_pull", url=url, checkout=str(checkout))
            await self._run_git("-C", str(checkout), "pull", "--ff-only", "--quiet")
        else:
            self._work_dir.mkdir(parents=True, exist_ok=True)
            if checkout.exists():
                shutil.rmtree(checkout)
            logger.info("git_clone", url=url, checkout=str(checkout))
            await self._run_git("clone", "--depth", "1", "--quiet", url, str(checkout))

        directory = checkout / subdirectory if subdirectory else checkout
        if not directory.is_dir():
            raise SourceUnavailableError(
                message=f"Manifest directory '{subdirectory}' missing in {url}",
                source_name=self.get_provider_name(),
            )

        files = sorted(p for p in directory.glob(name_pattern) if p.is_file())
        logger.info("manifest_files_found", url=url, pattern=name_pattern, count=len(files))
        return files

    async def _run_git(self, *args: str) -> None:
        proc = await asyncio.create_subprocess_exec(
            self._git,
            *args,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            _, stderr = await asyncio.wait_for(proc.communicate(), timeout=self._timeout)
        except asyncio.TimeoutError as exc:
            proc.kill()
            await proc.wait()
            raise SourceUnavailableError(
                message=f"git {args[0]} timed out after {self._timeout}s",
                source_name=self.get_provider_name(),
            ) from exc

        if proc.returncode != 0:
            raise SourceUnavailableError(
                message=f"git {' '.join(args)} failed: {stderr.decode(errors='replace')[:500]}",
                source_name=self.get_provider_name(),
            )

    def get_provider_name(self) -> str:
        return "git"
