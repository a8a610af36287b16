"""
Explicit report cache.

Reports are pure functions of (selection, dataset), so a caller may
memoize them. The cache is an object the caller owns and passes into the
report builder; there is no module-level cache.
"""

import time
from typing import Any, Callable, Dict, Optional, Tuple

from common.config import Config, config
from common.logging import get_logger
from common.util import sha256_json

logger = get_logger(__name__)


def dataset_fingerprint(*payloads: Any) -> str:
    """Deterministic fingerprint of the raw inputs of a report."""
    return sha256_json(list(payloads))


class ReportCache:
    """Time-bounded cache keyed on (selection, dataset fingerprint)."""

    def __init__(
        self,
        ttl_seconds: float,
        clock: Callable[[], float] = time.monotonic,
        max_entries: Optional[int] = None,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self.hits = 0
        self.misses = 0

    @classmethod
    def from_settings(cls, settings: Optional[Config] = None) -> "ReportCache":
        """Create a cache with the configured TTL and size bound."""
        settings = settings or config
        return cls(
            ttl_seconds=settings.reconciliation.report_cache_ttl_seconds,
            max_entries=settings.reconciliation.report_cache_max_entries,
        )

    @staticmethod
    def make_key(selection: Dict[str, Any], fingerprint: str) -> str:
        return sha256_json({"selection": selection, "dataset": fingerprint})

    def get(self, key: str) -> Optional[Any]:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None

        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            self.misses += 1
            logger.debug("Report cache entry expired", key=key)
            return None

        self.hits += 1
        return value

    def put(self, key: str, value: Any) -> None:
        """Store a report, dropping expired entries and the oldest over the bound."""
        if self.ttl_seconds <= 0:
            return
        now = self._clock()
        self._prune(now)
        self._entries.pop(key, None)
        self._entries[key] = (now, value)
        if self.max_entries is not None:
            while len(self._entries) > self.max_entries:
                del self._entries[next(iter(self._entries))]

    def _prune(self, now: float) -> int:
        expired = [key for key, (stored_at, _) in self._entries.items() if now - stored_at >= self.ttl_seconds]
        for key in expired:
            del self._entries[key]
        if expired:
            logger.debug("Report cache entries expired", dropped=len(expired))
        return len(expired)

    def invalidate(self, key: Optional[str] = None) -> int:
        """Drop one entry, or every entry when key is None."""
        if key is None:
            dropped = len(self._entries)
            self._entries.clear()
        else:
            dropped = 1 if self._entries.pop(key, None) is not None else 0
        logger.info("Report cache invalidated", dropped=dropped)
        return dropped

    def stats(self) -> Dict[str, Any]:
        return {
            "entries": len(self._entries),
            "hits": self.hits,
            "misses": self.misses,
            "ttl_seconds": self.ttl_seconds,
        }
