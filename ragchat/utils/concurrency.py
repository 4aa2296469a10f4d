"""Shared asyncio coordination primitives for the vector store layer.

Two patterns are exposed:

1. **SingleFlight** -- concurrent callers asking for the same key share one
   in-flight task.  The per-key task map is guarded by an ``asyncio.Lock``
   and every caller awaits the task through ``asyncio.shield`` so that one
   caller being cancelled does not abort the work the others are waiting on.

2. **KeyedLocks** -- one ``asyncio.Lock`` per key while the key is in use, to
   serialize mutations of a single store while leaving other stores free.
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable, Callable
from contextlib import asynccontextmanager
from typing import Generic, TypeVar

import structlog

from ragchat.utils.logging import get_logger

_K = TypeVar("_K")
_V = TypeVar("_V")

_logger: structlog.BoundLogger = get_logger(__name__)


class SingleFlight(Generic[_K, _V]):
    """Deduplicate concurrent async work by key.

    The first caller for a key starts ``factory()`` as a task; later callers
    arriving while it runs await the same task and receive the same result
    object (or the same exception).  Once the task settles the key is
    forgotten, so a failed load can be retried by the next caller.
    """

    def __init__(self) -> None:
        self._lock = asyncio.Lock()
        self._in_flight: dict[_K, asyncio.Task[_V]] = {}

    async def do(self, key: _K, factory: Callable[[], Awaitable[_V]]) -> _V:
        """Run *factory* for *key* unless a run is already in flight."""
        async with self._lock:
            task = self._in_flight.get(key)
            if task is None:
                task = asyncio.ensure_future(factory())
                self._in_flight[key] = task
                task.add_done_callback(lambda done, k=key: self._forget(k, done))
            else:
                _logger.debug("single_flight_joined", key=str(key))
        return await asyncio.shield(task)

    def is_in_flight(self, key: _K) -> bool:
        return key in self._in_flight

    def keys(self) -> list[_K]:
        """Keys with a run currently in flight."""
        return list(self._in_flight)

    async def wait(self, key: _K) -> None:
        """Wait until the run for *key*, if any, has settled.

        The run's result or exception belongs to its callers and is not
        raised here.  Cancelling the waiter does not cancel the run.
        """
        task = self._in_flight.get(key)
        if task is not None:
            await asyncio.wait({task})

    def _forget(self, key: _K, task: asyncio.Task[_V]) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]
        # Mark the exception retrieved when every waiter was cancelled.
        if not task.cancelled():
            task.exception()


class KeyedLocks(Generic[_K]):
    """One ``asyncio.Lock`` per key, dropped when its last holder leaves.

    Entries exist only while some caller holds or waits for the key, so
    evicted stores do not leave locks behind.
    """

    def __init__(self) -> None:
        self._locks: dict[_K, asyncio.Lock] = {}
        self._users: dict[_K, int] = {}

    @asynccontextmanager
    async def hold(self, key: _K) -> AsyncIterator[None]:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._users[key] = self._users.get(key, 0) + 1
        try:
            async with lock:
                yield
        finally:
            self._users[key] -= 1
            if not self._users[key]:
                del self._users[key]
                del self._locks[key]

    def __contains__(self, key: object) -> bool:
        return key in self._locks
