"""Fee math, tick sizing and as-of price resolution."""

from .fees import net_sell, next_cheaper_tick, pick_price, snap_down_to_tick, tick_size_for
from .resolver import ObservationMap, PriceResolver

__all__ = [
    "ObservationMap",
    "PriceResolver",
    "net_sell",
    "next_cheaper_tick",
    "pick_price",
    "snap_down_to_tick",
    "tick_size_for",
]
