"""Read-through cache of raw liquidity snapshots shared by concurrent runs.

Batches run many simulations in parallel and most of them plan against the
same (anchor date, window) snapshots. The cache guarantees fetch-or-compute-once
per key: the first caller computes while later callers for the same key block
on that key's lock and then reuse the stored value. Distinct keys never wait
on each other.
"""

import logging
import threading
from collections.abc import Callable, Hashable
from datetime import date
from typing import Generic, Protocol, TypeVar, runtime_checkable

from tradelab_engine.market_data.provider import MarketDataProvider
from tradelab_engine.models.market import LiquiditySnapshot
from tradelab_engine.monitoring.metrics import LabMetrics

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


class MemoizingCache(Generic[K, V]):
    """Concurrency-safe memoizing map with one lock per key.

    A computation that raises stores nothing, so the next requester retries.
    """

    def __init__(self) -> None:
        self._values: dict[K, V] = {}
        self._key_locks: dict[K, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, key: K) -> threading.Lock:
        with self._guard:
            lock = self._key_locks.get(key)
            if lock is None:
                lock = threading.Lock()
                self._key_locks[key] = lock
            return lock

    def get_or_compute(self, key: K, compute: Callable[[], V]) -> tuple[V, bool]:
        """Return the cached value for ``key``, computing it at most once.

        Returns:
            Tuple of (value, hit) where hit is False for the computing caller
        """
        with self._guard:
            if key in self._values:
                return self._values[key], True

        with self._lock_for(key):
            with self._guard:
                if key in self._values:
                    return self._values[key], True
            value = compute()
            with self._guard:
                self._values[key] = value
            return value, False

    def __contains__(self, key: object) -> bool:
        with self._guard:
            return key in self._values

    def __len__(self) -> int:
        with self._guard:
            return len(self._values)


@runtime_checkable
class SnapshotSource(Protocol):
    """Anything that can hand out liquidity snapshots."""

    def get(self, anchor_date: date, window_days: int) -> LiquiditySnapshot:
        """Return the raw snapshot for the window ending the day before ``anchor_date``."""
        ...


class LiquiditySnapshotCache:
    """Shared read-through cache keyed by (anchor_date, window_days).

    Example:
        >>> cache = LiquiditySnapshotCache(provider)
        >>> snap = cache.get(date(2025, 3, 1), 14)  # fetched
        >>> snap is cache.get(date(2025, 3, 1), 14)  # reused
        True
    """

    def __init__(self, provider: MarketDataProvider, metrics: LabMetrics | None = None):
        self.provider = provider
        self.metrics = metrics
        self._cache: MemoizingCache[tuple[date, int], LiquiditySnapshot] = MemoizingCache()

    def get(self, anchor_date: date, window_days: int) -> LiquiditySnapshot:
        key = (anchor_date, window_days)

        def fetch() -> LiquiditySnapshot:
            logger.debug("Fetching liquidity snapshot anchor=%s window=%d", anchor_date, window_days)
            return self.provider.liquidity_candidates(anchor_date, window_days)

        snapshot, hit = self._cache.get_or_compute(key, fetch)
        if self.metrics is not None:
            self.metrics.record_cache_lookup(hit)
        return snapshot

    def __len__(self) -> int:
        return len(self._cache)


class UncachedSnapshotSource:
    """Pass-through source used when a run is executed outside any batch."""

    def __init__(self, provider: MarketDataProvider):
        self.provider = provider

    def get(self, anchor_date: date, window_days: int) -> LiquiditySnapshot:
        return self.provider.liquidity_candidates(anchor_date, window_days)
