"""Empirical capture-share calibration from own historical sales."""

import logging
from collections.abc import Iterable
from dataclasses import dataclass, field
from datetime import date

from tradelab_engine.core.dates import last_n_dates
from tradelab_engine.market_data.provider import MarketDataProvider

logger = logging.getLogger(__name__)

MAX_CAPTURE_SHARE = 0.2
DEFAULT_FALLBACK_SHARE = 0.02


def clamp_share(value: float) -> float:
    return max(0.0, min(MAX_CAPTURE_SHARE, value))


@dataclass
class CaptureCalibration:
    """Per-pair capture shares plus the global fallback."""

    share_by_pair: dict[tuple[int, int], float] = field(default_factory=dict)
    fallback_share: float = DEFAULT_FALLBACK_SHARE

    def share_for(self, location_id: int, item_id: int) -> float:
        return self.share_by_pair.get((location_id, item_id), self.fallback_share)

    def merge(self, other: "CaptureCalibration") -> None:
        """Adopt pairs from a later calibration; the fallback follows the latest one."""
        self.share_by_pair.update(other.share_by_pair)
        self.fallback_share = other.fallback_share


class CaptureCalibrator:
    """Derives what fraction of market volume our own orders historically captured.

    For each pair, ``share = own_sold / market_volume`` over the window, clamped
    to [0, 0.2]. Pairs without own sales use the fallback, which is the global
    ratio across every pair in the window (also clamped), or 0.02 when the
    window holds no data at all.
    """

    def __init__(self, provider: MarketDataProvider):
        self.provider = provider

    def calibrate(
        self,
        location_ids: Iterable[int],
        item_ids: Iterable[int],
        anchor_date: date,
        window_days: int,
    ) -> CaptureCalibration:
        """Calibrate capture shares over the window ending the day before ``anchor_date``.

        Args:
            location_ids: Destinations to calibrate
            item_ids: Items to calibrate
            anchor_date: First simulated day
            window_days: Window length in days

        Returns:
            Shares by (location, item) and the fallback share
        """
        locations = sorted(set(location_ids))
        items = sorted(set(item_ids))
        window = last_n_dates(window_days, anchor_date)
        if not locations or not items or not window:
            return CaptureCalibration()

        start, end = window[0], window[-1]
        market_volume: dict[tuple[int, int], float] = {}
        for obs in self.provider.daily_observations(locations, items, start, end):
            key = (obs.location_id, obs.item_id)
            market_volume[key] = market_volume.get(key, 0.0) + max(0.0, obs.volume)
        own = self.provider.own_sales(locations, items, start, end)

        shares: dict[tuple[int, int], float] = {}
        for key, sold in own.items():
            volume = market_volume.get(key, 0.0)
            if sold > 0 and volume > 0:
                shares[key] = clamp_share(sold / volume)

        total_own = sum(units for key, units in own.items() if market_volume.get(key, 0.0) > 0)
        total_market = sum(market_volume.values())
        fallback = clamp_share(total_own / total_market) if total_own > 0 and total_market > 0 else DEFAULT_FALLBACK_SHARE

        logger.debug(
            "Calibrated %d pairs over %s..%s (fallback %.4f)", len(shares), start, end, fallback
        )
        return CaptureCalibration(share_by_pair=shares, fallback_share=fallback)
