"""
Short-TTL quote cache sitting in front of the dispatcher.
"""

import logging
import time
from collections import OrderedDict
from typing import Callable, Dict, Optional

from constants import QUOTE_CACHE_TTL_SECONDS, QUOTE_CACHE_MAX_ENTRIES
from models import CacheEntry, Quote

logger = logging.getLogger(__name__)


class QuoteCache:
    """
    Caches the latest quote per symbol.

    get() only returns entries younger than the TTL. Expired entries are kept
    so get_stale() can serve them as a last resort when the provider fails;
    they leave the cache through clear() or oldest-first eviction.
    """

    def __init__(
        self,
        ttl_seconds: float = QUOTE_CACHE_TTL_SECONDS,
        max_entries: int = QUOTE_CACHE_MAX_ENTRIES,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = float(ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock
        self._entries: 'OrderedDict[str, CacheEntry]' = OrderedDict()
        self.metrics = {
            "hits": 0,
            "misses": 0,
            "stale_hits": 0,
            "evictions": 0,
        }

    @staticmethod
    def _key(key: str) -> str:
        return key.strip().upper()

    def get(self, key: str) -> Optional[Quote]:
        entry = self._entries.get(self._key(key))
        if entry is None or self._clock() - entry.stored_at > self.ttl_seconds:
            self.metrics["misses"] += 1
            return None
        self.metrics["hits"] += 1
        return entry.data

    def get_stale(self, key: str) -> Optional[Quote]:
        """Any cached quote for key regardless of age, flagged stale."""
        entry = self._entries.get(self._key(key))
        if entry is None:
            return None
        self.metrics["stale_hits"] += 1
        return entry.data.as_stale()

    def set(self, key: str, quote: Quote) -> None:
        key = self._key(key)
        self._entries[key] = CacheEntry(key=key, data=quote, stored_at=self._clock())
        self._entries.move_to_end(key)

        while len(self._entries) > self.max_entries:
            evicted, _ = self._entries.popitem(last=False)
            self.metrics["evictions"] += 1
            logger.debug(f"Evicted {evicted} from quote cache")

    def clear(self) -> None:
        self._entries.clear()

    def __len__(self):
        return len(self._entries)

    def __contains__(self, key):
        return self._key(key) in self._entries

    def status(self) -> Dict:
        return dict(self.metrics, size=len(self._entries), ttl_seconds=self.ttl_seconds)
