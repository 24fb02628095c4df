import asyncio
import logging
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, TypeVar

from .config import settings

T = TypeVar("T")

logger = logging.getLogger(__name__)


@dataclass
class CacheEntry:
    key: str
    value: Any
    timestamp: float
    last_accessed: float


class RequestDeduplicator:
    """Coalesces concurrent identical price/quote requests onto one task.

    An entry lives while its task is running and younger than ``ttl_seconds``.
    It is dropped as soon as the task finishes, so completed results are never
    served from here.
    """

    def __init__(self, ttl_seconds: Optional[float] = None, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = settings.request_dedup_ttl_seconds if ttl_seconds is None else ttl_seconds
        self._clock = clock
        self._entries: Dict[str, CacheEntry] = {}

    def sweep(self) -> int:
        now = self._clock()
        expired = [key for key, entry in self._entries.items() if now - entry.timestamp >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        return len(expired)

    def get(self, key: str) -> Optional["asyncio.Future[Any]"]:
        self.sweep()
        entry = self._entries.get(key)
        if entry is None:
            return None
        entry.last_accessed = self._clock()
        return entry.value

    def set(self, key: str, task: "asyncio.Future[Any]") -> None:
        now = self._clock()
        self._entries[key] = CacheEntry(key=key, value=task, timestamp=now, last_accessed=now)

        def _release(done: "asyncio.Future[Any]") -> None:
            current = self._entries.get(key)
            if current is not None and current.value is done:
                del self._entries[key]

        task.add_done_callback(_release)

    async def get_or_create(self, key: str, factory: Callable[[], Awaitable[T]]) -> T:
        """Await the in-flight request for ``key``, starting one if needed."""

        task = self.get(key)
        if task is None:
            task = asyncio.ensure_future(factory())
            self.set(key, task)
        else:
            logger.debug("Reusing in-flight request %s", key)
        # A cancelled caller must not cancel the request other callers share
        return await asyncio.shield(task)

    def clear(self) -> None:
        self._entries.clear()

    def size(self) -> int:
        return len(self._entries)


class QuoteCache:
    """TTL + LRU store for completed quotes.

    Above ``max_size`` the entry with the oldest ``last_accessed`` is evicted,
    never the entry inserted by the same ``set`` call.
    """

    def __init__(
        self,
        ttl_seconds: Optional[float] = None,
        max_size: Optional[int] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = settings.quote_cache_ttl_seconds if ttl_seconds is None else ttl_seconds
        self.max_size = settings.max_quote_cache_size if max_size is None else max_size
        self._clock = clock
        self._cache: Dict[str, CacheEntry] = {}
        self._lock = asyncio.Lock()

    def _sweep_locked(self) -> List[str]:
        now = self._clock()
        expired = [key for key, entry in self._cache.items() if now - entry.timestamp >= self.ttl_seconds]
        for key in expired:
            del self._cache[key]
        return expired

    async def sweep(self) -> int:
        async with self._lock:
            return len(self._sweep_locked())

    async def get(self, key: str) -> Optional[Any]:
        async with self._lock:
            self._sweep_locked()
            entry = self._cache.get(key)
            if entry is None:
                return None

            entry.last_accessed = self._clock()
            return entry.value

    async def set(self, key: str, value: Any) -> None:
        async with self._lock:
            now = self._clock()
            self._cache[key] = CacheEntry(key=key, value=value, timestamp=now, last_accessed=now)
            self._sweep_locked()

            while len(self._cache) > self.max_size:
                candidates = [entry for entry in self._cache.values() if entry.key != key]
                if not candidates:
                    break
                oldest = min(candidates, key=lambda entry: entry.last_accessed)
                del self._cache[oldest.key]

    async def clear(self) -> None:
        async with self._lock:
            self._cache.clear()

    def size(self) -> int:
        return len(self._cache)
