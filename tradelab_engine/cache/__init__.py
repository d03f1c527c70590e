"""Shared caches for batch execution."""

from .liquidity import LiquiditySnapshotCache, MemoizingCache, SnapshotSource, UncachedSnapshotSource

__all__ = [
    "LiquiditySnapshotCache",
    "MemoizingCache",
    "SnapshotSource",
    "UncachedSnapshotSource",
]
