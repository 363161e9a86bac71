"""
Per-identifier daily quota for the anonymous (guest) entry path.

The window starts at an identifier's first request and is not extended by
later ones: the counter is mutated in place, so TTLCache keeps the original
insertion time and evicts the entry when the window ends.
"""

import logging
import time
from typing import Callable

from cachetools import TTLCache

logger = logging.getLogger(__name__)


class GuestQuota:
    """Daily request counter per guest identifier.

    Counters live in a bounded TTLCache: once ``maxsize`` identifiers are
    tracked, the least recently used counter is evicted and that guest starts
    a fresh window. ``maxsize`` must exceed the number of distinct guests
    expected per window.
    """

    def __init__(
        self,
        limit: int = 3,
        window_seconds: int = 86400,
        maxsize: int = 100_000,
        timer: Callable[[], float] = time.monotonic,
    ):
        self.limit = limit
        self._counts: TTLCache = TTLCache(maxsize=maxsize, ttl=window_seconds, timer=timer)

    def hit(self, identifier: str) -> bool:
        """Count one request. Returns False when the quota is already used up."""
        entry = self._counts.get(identifier)
        if entry is None:
            self._counts[identifier] = [1]
            return True
        if entry[0] >= self.limit:
            logger.info(f"Guest quota reached for {identifier}")
            return False
        entry[0] += 1
        return True

    def used(self, identifier: str) -> int:
        entry = self._counts.get(identifier)
        return entry[0] if entry else 0
