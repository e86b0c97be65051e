"""Small TTL cache shared by the coroutines of one provider executor."""

import logging
import time
from types import MappingProxyType
from typing import (
    Any,
    Callable,
    Dict,
    Mapping,
    Tuple,
)

logger = logging.getLogger(__name__)


class TTLCache:
    """
    Read-mostly cache with a fixed time-to-live per entry.

    The cache holds one immutable snapshot mapping ``key -> (expires_at, value)``.  Every write
    builds a new mapping and swaps it in with a single assignment, so a reader always sees either
    the old or the new snapshot, never a half-written one.  There is no ``await`` inside any
    method, which keeps each operation atomic under asyncio.
    """

    def __init__(self, ttl: float, clock: Callable[[], float] = time.monotonic) -> None:
        self.ttl = ttl
        self._clock = clock
        self._snapshot: Mapping[str, Tuple[float, Any]] = MappingProxyType({})

    def get(self, key: str) -> Any:
        """Return the cached value for *key* or ``None`` when missing or expired."""
        entry = self._snapshot.get(key)
        if entry is None:
            return None
        expires_at, value = entry
        if self._clock() >= expires_at:
            return None
        return value

    def _live(self, now: float) -> Dict[str, Tuple[float, Any]]:
        return {k: entry for k, entry in self._snapshot.items() if now < entry[0]}

    def set(self, key: str, value: Any) -> None:
        """Store *value* under *key* for ``ttl`` seconds; expired entries are pruned."""
        now = self._clock()
        fresh = self._live(now)
        fresh[key] = (now + self.ttl, value)
        self._snapshot = MappingProxyType(fresh)

    def invalidate(self, *keys: str) -> None:
        """Drop *keys*; with no arguments drop everything."""
        if not keys:
            self._snapshot = MappingProxyType({})
            logger.debug("Cache cleared")
            return
        fresh = {k: v for k, v in self._live(self._clock()).items() if k not in keys}
        self._snapshot = MappingProxyType(fresh)
        logger.debug("Cache invalidated: %s", ", ".join(keys))

    def snapshot(self) -> Mapping[str, Any]:
        """Live (non-expired) entries as a read-only mapping."""
        return MappingProxyType({k: value for k, (_, value) in self._live(self._clock()).items()})

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __len__(self) -> int:
        return len(self.snapshot())
