"""Market observation and liquidity snapshot models."""

from dataclasses import dataclass, field
from datetime import date
from enum import Enum
from typing import Any


class PriceModel(str, Enum):
    """Which daily price statistic a simulation trades at."""

    HIGH = "HIGH"
    AVG = "AVG"
    LOW = "LOW"


@dataclass(frozen=True)
class PriceQuote:
    """High/low/average price triple."""

    high: float
    low: float
    avg: float

    def pick(self, model: PriceModel) -> float:
        """Return the price selected by the given price model."""
        if model == PriceModel.HIGH:
            return self.high
        if model == PriceModel.AVG:
            return self.avg
        return self.low


@dataclass(frozen=True)
class PriceObservation:
    """Daily aggregated sell-side statistics for one (location, item) pair.

    Attributes:
        location_id: Station the observation belongs to
        item_id: Item type
        date: UTC calendar date of the aggregate
        high: Highest traded price
        low: Lowest traded price
        avg: Volume-weighted average price
        volume: Units traded on the day
        trade_count: Number of individual trades (used for liquidity screens)
    """

    location_id: int
    item_id: int
    date: date
    high: float
    low: float
    avg: float
    volume: float
    trade_count: int = 0

    @property
    def quote(self) -> PriceQuote:
        return PriceQuote(high=self.high, low=self.low, avg=self.avg)

    def to_dict(self) -> dict[str, Any]:
        return {
            "location_id": self.location_id,
            "item_id": self.item_id,
            "date": self.date.isoformat(),
            "high": self.high,
            "low": self.low,
            "avg": self.avg,
            "volume": self.volume,
            "trade_count": self.trade_count,
        }


@dataclass(frozen=True)
class LiquidityItem:
    """Rolling-window liquidity statistics for one item at one destination."""

    item_id: int
    avg_daily_volume: float
    avg_daily_value: float
    coverage_days: int
    avg_daily_trades: float
    volume_per_unit: float
    latest: PriceQuote | None = None
    name: str = ""


@dataclass(frozen=True)
class DestinationLiquidity:
    """Liquidity candidates available at one destination."""

    location_id: int
    name: str
    items: tuple[LiquidityItem, ...] = field(default_factory=tuple)


# Liquidity candidates keyed by destination location id
LiquiditySnapshot = dict[int, DestinationLiquidity]
