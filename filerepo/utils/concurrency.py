"""Shared concurrency primitives for the import and indexing pipelines.

Two patterns are exposed:

1. **TaskWindow** -- a bounded in-flight window.  ``submit`` blocks until a
   slot is free, so a producer that yields records faster than the
   document store can absorb them never buffers more than ``size``
   pending writes.  Failures are collected, not raised, so one failed
   write never cancels its neighbours.

2. **aiter_with_timeout** -- wraps an async iterator so that every
   ``__anext__`` call carries a caller-supplied timeout.  A remote listing
   that stalls surfaces as :class:`asyncio.TimeoutError` instead of a hang.
"""

from __future__ import annotations

import asyncio
from typing import AsyncIterable, AsyncIterator, Awaitable, TypeVar

import structlog

from filerepo.utils.logging import get_logger

_T = TypeVar("_T")

_logger: structlog.BoundLogger = get_logger(__name__)


class TaskWindow:
    """Run awaitables concurrently with at most ``size`` in flight.

    Parameters
    ----------
    size:
        Maximum number of concurrently running tasks (minimum 1).
    """

    def __init__(self, size: int) -> None:
        self._semaphore = asyncio.Semaphore(max(1, size))
        self._tasks: set[asyncio.Task[None]] = set()
        self._errors: list[BaseException] = []

    @property
    def errors(self) -> list[BaseException]:
        return list(self._errors)

    async def submit(self, coro: Awaitable[object]) -> None:
        """Schedule *coro*, waiting first for a free slot."""
        await self._semaphore.acquire()
        task = asyncio.ensure_future(self._run(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def drain(self) -> list[BaseException]:
        """Wait for every submitted task and return the collected failures."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
        return self.errors

    async def _run(self, coro: Awaitable[object]) -> None:
        try:
            await coro
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            _logger.debug("task_window_task_failed", error=str(exc))
            self._errors.append(exc)
        finally:
            self._semaphore.release()


async def aiter_with_timeout(
    source: AsyncIterable[_T],
    timeout: float | None,
) -> AsyncIterator[_T]:
    """Yield from *source*, bounding the wait for each item by *timeout* seconds.

    ``None`` disables the bound.  The underlying iterator is closed when the
    consumer stops early or the timeout fires.
    """
    iterator = source.__aiter__()
    try:
        while True:
            try:
                if timeout is None:
                    item = await iterator.__anext__()
                else:
                    item = await asyncio.wait_for(iterator.__anext__(), timeout)
            except StopAsyncIteration:
                return
            yield item
    finally:
        aclose = getattr(iterator, "aclose", None)
        if aclose is not None:
            await aclose()
