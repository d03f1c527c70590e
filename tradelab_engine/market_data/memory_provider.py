"""In-memory market data provider backed by a JSON dataset.

Dataset layout::

    {
      "locations": {"60003760": "Jita IV - Moon 4"},
      "items": {"34": {"name": "Tritanium", "volume_m3": 0.01}},
      "observations": [
        {"location_id": 60008494, "item_id": 34, "date": "2025-01-01",
         "high": 5.1, "low": 4.8, "avg": 5.0, "volume": 1000000, "trade_count": 40}
      ],
      "own_sales": [
        {"location_id": 60008494, "item_id": 34, "date": "2025-01-01", "units": 2500}
      ]
    }
"""

import datetime as dt
import json
import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from datetime import date
from pathlib import Path

from pydantic import BaseModel, Field

from tradelab_engine.core.dates import last_n_dates
from tradelab_engine.models.market import (
    DestinationLiquidity,
    LiquidityItem,
    LiquiditySnapshot,
    PriceObservation,
)

from .provider import MarketDataProvider

logger = logging.getLogger(__name__)


class ItemInfo(BaseModel):
    name: str = ""
    volume_m3: float = Field(default=0.0, ge=0.0)


class ObservationRow(BaseModel):
    location_id: int
    item_id: int
    date: dt.date
    high: float
    low: float
    avg: float
    volume: float = Field(ge=0.0)
    trade_count: int = Field(default=0, ge=0)


class OwnSaleRow(BaseModel):
    location_id: int
    item_id: int
    date: dt.date
    units: float = Field(ge=0.0)


class MarketDataset(BaseModel):
    """Validated dataset document."""

    locations: dict[int, str] = Field(default_factory=dict)
    items: dict[int, ItemInfo] = Field(default_factory=dict)
    observations: list[ObservationRow] = Field(default_factory=list)
    own_sales: list[OwnSaleRow] = Field(default_factory=list)


class InMemoryMarketDataProvider(MarketDataProvider):
    """Provider serving observations held in memory.

    Liquidity candidates are derived from the observations themselves: for each
    (location, item) traded inside the window, coverage is the number of days
    with volume, and averages are taken over the full window length.

    Example:
        >>> provider = InMemoryMarketDataProvider.from_json("dataset.json")
        >>> snapshot = provider.liquidity_candidates(date(2025, 2, 1), 14)
    """

    def __init__(
        self,
        observations: Iterable[PriceObservation] = (),
        item_volumes: dict[int, float] | None = None,
        item_names: dict[int, str] | None = None,
        location_names: dict[int, str] | None = None,
        own_sales: dict[tuple[int, int, date], float] | None = None,
    ):
        """
        Initialize provider.

        Args:
            observations: Daily aggregates to serve
            item_volumes: Cargo volume per unit by item id
            item_names: Display names by item id
            location_names: Display names by location id
            own_sales: Own units sold keyed by (location_id, item_id, date)
        """
        self._rows: dict[tuple[int, int, date], PriceObservation] = {}
        for obs in observations:
            self._rows[(obs.location_id, obs.item_id, obs.date)] = obs
        self.item_volumes = dict(item_volumes or {})
        self.item_names = dict(item_names or {})
        self.location_names = dict(location_names or {})
        self._own_sales = dict(own_sales or {})

        self._lock = threading.Lock()
        self.liquidity_calls = 0

    @classmethod
    def from_dataset(cls, dataset: MarketDataset) -> "InMemoryMarketDataProvider":
        return cls(
            observations=[PriceObservation(**row.model_dump()) for row in dataset.observations],
            item_volumes={item_id: info.volume_m3 for item_id, info in dataset.items.items()},
            item_names={item_id: info.name for item_id, info in dataset.items.items()},
            location_names=dataset.locations,
            own_sales={
                (row.location_id, row.item_id, row.date): row.units for row in dataset.own_sales
            },
        )

    @classmethod
    def from_json(cls, path: str | Path) -> "InMemoryMarketDataProvider":
        """Load a provider from a JSON dataset file.

        Raises:
            FileNotFoundError: If the dataset file doesn't exist
            pydantic.ValidationError: If the document is malformed
        """
        with open(path) as f:
            dataset = MarketDataset.model_validate(json.load(f))
        logger.info(
            "Loaded dataset %s: %d observations, %d own-sale rows",
            path,
            len(dataset.observations),
            len(dataset.own_sales),
        )
        return cls.from_dataset(dataset)

    def daily_observations(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        start: date,
        end: date,
    ) -> list[PriceObservation]:
        """Return stored observations inside the requested cross-product and date range."""
        locations = set(location_ids)
        items = set(item_ids)
        return [
            obs
            for (loc, item, day), obs in self._rows.items()
            if loc in locations and item in items and start <= day <= end
        ]

    def liquidity_candidates(self, anchor_date: date, window_days: int) -> LiquiditySnapshot:
        """Derive liquidity statistics for the window ending the day before ``anchor_date``."""
        with self._lock:
            self.liquidity_calls += 1

        window = last_n_dates(window_days, anchor_date)
        if not window:
            return {}
        first, last = window[0], window[-1]

        grouped: dict[tuple[int, int], list[PriceObservation]] = defaultdict(list)
        for (loc, item, day), obs in self._rows.items():
            if first <= day <= last:
                grouped[(loc, item)].append(obs)

        items_by_location: dict[int, list[LiquidityItem]] = defaultdict(list)
        for (loc, item), rows in sorted(grouped.items()):
            rows.sort(key=lambda r: r.date)
            items_by_location[loc].append(
                LiquidityItem(
                    item_id=item,
                    avg_daily_volume=sum(r.volume for r in rows) / window_days,
                    avg_daily_value=sum(r.volume * r.avg for r in rows) / window_days,
                    coverage_days=sum(1 for r in rows if r.volume > 0),
                    avg_daily_trades=sum(r.trade_count for r in rows) / window_days,
                    volume_per_unit=self.item_volumes.get(item, 0.0),
                    latest=rows[-1].quote,
                    name=self.item_names.get(item, str(item)),
                )
            )

        return {
            loc: DestinationLiquidity(
                location_id=loc,
                name=self.location_names.get(loc, str(loc)),
                items=tuple(items),
            )
            for loc, items in items_by_location.items()
        }

    def own_sales(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        start: date,
        end: date,
    ) -> dict[tuple[int, int], float]:
        """Sum own units sold per pair over the date range."""
        locations = set(location_ids)
        items = set(item_ids)
        totals: dict[tuple[int, int], float] = defaultdict(float)
        for (loc, item, day), units in self._own_sales.items():
            if loc in locations and item in items and start <= day <= end:
                totals[(loc, item)] += units
        return dict(totals)
