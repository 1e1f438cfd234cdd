"""
Reservation Boss - Read Cache
==============================

Short-TTL memoization of the read-heavy week queries. Entries are derived
copies only; the database stays the source of truth. Writers invalidate
after committing.
"""

import threading
import time
from typing import Any, Callable, Dict, Optional, Tuple

from logging_config import get_logger

logger = get_logger(__name__)


def week_key(start, end) -> str:
    return f"week:{start}:{end}"


def summary_key(start, end) -> str:
    return f"summary:{start}:{end}"


class TTLCache:
    """Thread-safe keyed map whose entries expire after `ttl_seconds`."""

    def __init__(self, ttl_seconds: float = 60, clock: Callable[[], float] = time.monotonic):
        self.ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: Dict[str, Tuple[float, Any]] = {}
        self._lock = threading.Lock()

    def get(self, key: str) -> Optional[Any]:
        with self._lock:
            hit = self._entries.get(key)
            if hit is None:
                return None
            stored_at, value = hit
            if self._clock() - stored_at < self.ttl_seconds:
                return value
            del self._entries[key]
            return None

    def set(self, key: str, value: Any) -> None:
        with self._lock:
            self._entries[key] = (self._clock(), value)

    def invalidate(self, pattern: Optional[str] = None) -> int:
        """Drops keys containing `pattern`, or everything when no pattern is given."""
        with self._lock:
            if pattern is None:
                removed = len(self._entries)
                self._entries.clear()
            else:
                stale = [key for key in self._entries if pattern in key]
                for key in stale:
                    del self._entries[key]
                removed = len(stale)
        logger.debug(f"Cache invalidated pattern={pattern!r} removed={removed}")
        return removed

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
