"""Tests for the shared liquidity snapshot cache."""

import threading
import time
from datetime import date

import pytest
from conftest import MarketBuilder

from tradelab_engine.cache.liquidity import LiquiditySnapshotCache, MemoizingCache
from tradelab_engine.monitoring.metrics import LabMetrics


class TestMemoizingCache:
    """Test suite for MemoizingCache."""

    def test_concurrent_callers_compute_once(self) -> None:
        cache: MemoizingCache[str, int] = MemoizingCache()
        calls = 0
        calls_lock = threading.Lock()
        barrier = threading.Barrier(8)
        results = []

        def compute() -> int:
            nonlocal calls
            with calls_lock:
                calls += 1
            time.sleep(0.05)
            return 42

        def worker() -> None:
            barrier.wait()
            results.append(cache.get_or_compute("k", compute)[0])

        threads = [threading.Thread(target=worker) for _ in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert calls == 1
        assert results == [42] * 8

    def test_failed_compute_is_not_stored(self) -> None:
        cache: MemoizingCache[str, int] = MemoizingCache()

        def boom() -> int:
            raise RuntimeError("fetch failed")

        with pytest.raises(RuntimeError):
            cache.get_or_compute("k", boom)
        assert "k" not in cache
        assert cache.get_or_compute("k", lambda: 7) == (7, False)
        assert cache.get_or_compute("k", lambda: 8) == (7, True)


class TestLiquiditySnapshotCache:
    """Test suite for LiquiditySnapshotCache."""

    def test_reuses_snapshot_per_key(self, market: MarketBuilder) -> None:
        market.arbitrage()
        provider = market.provider()
        metrics = LabMetrics()
        cache = LiquiditySnapshotCache(provider, metrics)

        first = cache.get(date(2025, 3, 1), 14)
        assert cache.get(date(2025, 3, 1), 14) is first
        cache.get(date(2025, 3, 1), 7)

        assert provider.liquidity_calls == 2
        assert len(cache) == 2
        assert metrics.cache_lookups("hit") == 1.0
        assert metrics.cache_lookups("miss") == 2.0
