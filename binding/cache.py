from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable, Dict, Hashable, Optional

from domain.bindings import BindingResult

logger = logging.getLogger(__name__)


class BindingResultCache:
    """
    Append-only cache of binding results, keyed by binding identity plus a
    digest of the directive (see ``directive_digest``).

    A key is written once and never overwritten. Concurrent requests for the
    same key share one in-flight computation, so they converge on one result.
    Failures are not cached.
    """

    def __init__(self) -> None:
        self._results: Dict[Hashable, BindingResult] = {}
        self._in_flight: Dict[Hashable, asyncio.Future] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._results)

    def __contains__(self, key: Hashable) -> bool:
        return key in self._results

    def get(self, key: Hashable) -> Optional[BindingResult]:
        return self._results.get(key)

    async def put_if_absent(self, key: Hashable, result: BindingResult) -> BindingResult:
        """Insert *result* unless the key is taken; return the stored value."""
        async with self._lock:
            stored = self._results.setdefault(key, result)
        if stored is not result:
            logger.debug('Binding cache already holds %s; keeping the first result', key)
        return stored

    async def get_or_compute(self, key: Hashable, factory: Callable[[], Awaitable[BindingResult]]) -> BindingResult:
        async with self._lock:
            cached = self._results.get(key)
            if cached is not None:
                self.hits += 1
                return cached
            task = self._in_flight.get(key)
            if task is not None and task.done() and (task.cancelled() or task.exception() is not None):
                task = None
            if task is None:
                self.misses += 1
                task = asyncio.ensure_future(factory())
                self._in_flight[key] = task

        try:
            result = await task
        finally:
            if task.done():
                async with self._lock:
                    if self._in_flight.get(key) is task:
                        del self._in_flight[key]

        return await self.put_if_absent(key, result)

    def stats(self) -> Dict[str, int]:
        return {'entries': len(self._results), 'in_flight': len(self._in_flight), 'hits': self.hits, 'misses': self.misses}
