"""
TTL cache for query embeddings.

Search-box queries repeat a lot; caching their vectors saves a backend
round trip. Only query-purpose vectors are cached; corpus vectors are
persisted in the vector store instead.

Entries hold their own copy of the vector, and every hit hands out a
fresh copy, so callers may modify what they get back.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from dataclasses import dataclass, replace
from typing import Callable

from semantic_retrieval.core.models import EmbeddingResult


@dataclass
class _Entry:
    result: EmbeddingResult
    expires_at: float


def _detached(result: EmbeddingResult) -> EmbeddingResult:
    return replace(result, vector=result.vector.copy())


class QueryEmbeddingCache:
    """
    Thread-safe LRU cache with per-entry expiry.

    Args:
        ttl_seconds: Lifetime of an entry (default: 1 hour)
        max_entries: Oldest entries are evicted beyond this size
        clock: Monotonic time source (injectable for tests)
    """

    def __init__(
        self,
        ttl_seconds: float = 3600.0,
        max_entries: int = 1024,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, _Entry] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, text: str) -> EmbeddingResult | None:
        with self._lock:
            entry = self._entries.get(text)
            if entry is None:
                return None
            if entry.expires_at <= self._clock():
                del self._entries[text]
                return None
            self._entries.move_to_end(text)
            return _detached(entry.result)

    def set(self, text: str, result: EmbeddingResult, ttl: float | None = None) -> None:
        lifetime = self.ttl_seconds if ttl is None else ttl
        with self._lock:
            self._entries[text] = _Entry(result=_detached(result), expires_at=self._clock() + lifetime)
            self._entries.move_to_end(text)
            while len(self._entries) > self.max_entries:
                self._entries.popitem(last=False)

    def cleanup(self) -> int:
        """Drop expired entries. Returns how many were removed."""
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.expires_at <= now]
            for key in expired:
                del self._entries[key]
            return len(expired)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
