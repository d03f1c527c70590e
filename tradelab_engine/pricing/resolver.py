"""As-of price lookups over daily market observations."""

import logging
import threading
from collections import defaultdict
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date, timedelta

from tradelab_engine.market_data.provider import MarketDataProvider
from tradelab_engine.models.market import PriceObservation

logger = logging.getLogger(__name__)

# Observations keyed by (location_id, item_id, date)
ObservationMap = dict[tuple[int, int, date], PriceObservation]


@dataclass
class _Series:
    """Sorted observations of one pair, complete for every date up to ``end``."""

    end: date
    dates: list[date] = field(default_factory=list)
    rows: list[PriceObservation] = field(default_factory=list)

    def extend(self, rows: list[PriceObservation], end: date) -> None:
        for obs in sorted(rows, key=lambda o: o.date):
            if obs.date > self.end:
                self.dates.append(obs.date)
                self.rows.append(obs)
        self.end = max(self.end, end)

    def at_or_before(self, day: date) -> PriceObservation | None:
        # Binary search for the most recent observation at or before ``day``
        left, right = 0, len(self.dates) - 1
        result_idx = -1
        while left <= right:
            mid = (left + right) // 2
            if self.dates[mid] <= day:
                result_idx = mid
                left = mid + 1
            else:
                right = mid - 1
        if result_idx >= 0:
            return self.rows[result_idx]
        return None


class PriceResolver:
    """Latest-known observation lookups ("as-of" join) for (location, item) pairs.

    A lookup has no lower bound: the first request for a pair loads its whole
    history up to the requested date, and later requests only fetch the days
    after what is already loaded. A missing observation is never an error:
    callers receive ``None`` and treat the pair as having no signal for that
    day. Repeated lookups against unchanged upstream data return identical
    results.

    Example:
        >>> resolver = PriceResolver(provider)
        >>> obs = resolver.resolve(60008494, 34, date(2025, 3, 1))
        >>> obs.date <= date(2025, 3, 1) if obs else True
        True
    """

    def __init__(self, provider: MarketDataProvider):
        self.provider = provider
        self._series: dict[tuple[int, int], _Series] = {}
        # Guards ``_series`` only; provider fetches run outside it
        self._lock = threading.Lock()

    def resolve(self, location_id: int, item_id: int, on_or_before: date) -> PriceObservation | None:
        """Return the latest observation dated on or before the given date, or None."""
        return self.resolve_items(location_id, [item_id], on_or_before).get(item_id)

    def resolve_items(
        self, location_id: int, item_ids: Iterable[int], on_or_before: date
    ) -> dict[int, PriceObservation]:
        """As-of lookup for many items at one location with a single upstream fetch.

        Returns:
            Observation per item id; items without history are absent
        """
        wanted = list(dict.fromkeys(item_ids))

        with self._lock:
            stale: dict[int, date] = {}
            for item in wanted:
                series = self._series.get((location_id, item))
                if series is None:
                    stale[item] = date.min
                elif series.end < on_or_before:
                    stale[item] = series.end + timedelta(days=1)

        if stale:
            self._fetch(location_id, stale, on_or_before)

        with self._lock:
            result: dict[int, PriceObservation] = {}
            for item in wanted:
                obs = self._series[(location_id, item)].at_or_before(on_or_before)
                if obs is not None:
                    result[item] = obs
            return result

    def _fetch(self, location_id: int, stale: dict[int, date], end: date) -> None:
        start = min(stale.values())
        rows = self.provider.daily_observations([location_id], list(stale), start, end)
        by_item: dict[int, list[PriceObservation]] = defaultdict(list)
        for obs in rows:
            by_item[obs.item_id].append(obs)

        with self._lock:
            for item in stale:
                key = (location_id, item)
                series = self._series.get(key)
                if series is None:
                    series = _Series(end=date.min)
                    self._series[key] = series
                # Another worker may have extended the series meanwhile
                series.extend(by_item.get(item, []), end)
        logger.debug(
            "Loaded %d observations for location %s (%d items) %s..%s",
            len(rows),
            location_id,
            len(stale),
            start,
            end,
        )

    def resolve_many(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        start: date,
        end: date,
    ) -> ObservationMap:
        """Exact-day observations for a cross-product of pairs over a date range.

        Used by the simulator's day loop: a missing key means no trading signal
        for that pair on that day.
        """
        rows = self.provider.daily_observations(list(location_ids), list(item_ids), start, end)
        return {(obs.location_id, obs.item_id, obs.date): obs for obs in rows}
