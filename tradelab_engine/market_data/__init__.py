"""Market data provider interface and the in-memory dataset provider."""

from .memory_provider import InMemoryMarketDataProvider, MarketDataset
from .provider import MarketDataProvider

__all__ = [
    "InMemoryMarketDataProvider",
    "MarketDataProvider",
    "MarketDataset",
]
