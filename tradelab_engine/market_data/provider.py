"""Abstract market data provider interface."""

from abc import ABC, abstractmethod
from collections.abc import Iterable
from datetime import date

from tradelab_engine.models.market import LiquiditySnapshot, PriceObservation


class MarketDataProvider(ABC):
    """Abstract interface for historical market data sources."""

    @abstractmethod
    def daily_observations(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        start: date,
        end: date,
    ) -> list[PriceObservation]:
        """
        Fetch daily sell-side aggregates.

        Args:
            location_ids: Stations to include
            item_ids: Item types to include
            start: First date (inclusive)
            end: Last date (inclusive)

        Returns:
            Observations for every (location, item, date) that traded, in any order
        """
        ...

    @abstractmethod
    def liquidity_candidates(self, anchor_date: date, window_days: int) -> LiquiditySnapshot:
        """
        Fetch raw liquidity statistics per destination.

        Args:
            anchor_date: The window ends the day before this date
            window_days: Window length in days

        Returns:
            Unfiltered liquidity candidates keyed by destination location id
        """
        ...

    @abstractmethod
    def own_sales(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        start: date,
        end: date,
    ) -> dict[tuple[int, int], float]:
        """
        Fetch units sold by our own orders.

        Args:
            location_ids: Stations to include
            item_ids: Item types to include
            start: First date (inclusive)
            end: Last date (inclusive)

        Returns:
            Units sold keyed by (location_id, item_id); pairs with no sales are absent
        """
        ...
