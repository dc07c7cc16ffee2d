"""
Process-wide memoisation with single-flight loading.

Concurrent requests for the same key share one in-flight load. A failed
load is evicted so a later request retries instead of replaying the
failure. Entries live until ``clear()`` is called.
"""
import asyncio
from typing import Awaitable, Callable, Dict, Generic, Hashable, TypeVar

import logging

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SingleFlightCache(Generic[T]):
    """Async get-or-load cache keyed by any hashable."""

    def __init__(self, name: str = "cache"):
        self.name = name
        self._values: Dict[Hashable, T] = {}
        self._pending: Dict[Hashable, "asyncio.Future[T]"] = {}

    def __contains__(self, key: Hashable) -> bool:
        return key in self._values

    def __len__(self) -> int:
        return len(self._values)

    async def get_or_load(self, key: Hashable, load: Callable[[], Awaitable[T]]) -> T:
        if key in self._values:
            logger.debug("%s hit: %s", self.name, key)
            return self._values[key]

        pending = self._pending.get(key)
        if pending is not None:
            return await pending

        future = asyncio.ensure_future(load())
        self._pending[key] = future
        try:
            value = await future
        finally:
            # a clear() during the load orphans this future
            current = self._pending.get(key) is future
            if current:
                del self._pending[key]
        if current:
            self._values[key] = value
        else:
            logger.debug("%s cleared during load, not storing: %s", self.name, key)
        return value

    def clear(self) -> None:
        self._values.clear()
        self._pending.clear()
