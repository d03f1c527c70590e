"""Fee and price-tick calculations.

Market prices carry at most four significant digits, so listings are snapped
onto a tick grid whose step grows with the price's order of magnitude:

    1_000..9_999          -> 1
    10_000..99_999        -> 10
    1_000_000..9_999_999  -> 1_000
"""

import math

from tradelab_engine.models.market import PriceModel, PriceObservation


def net_sell(gross_price: float, tax_pct: float, broker_pct: float) -> float:
    """Unit proceeds of a sale after sales tax and broker fee.

    Args:
        gross_price: Listed unit price
        tax_pct: Sales tax in percent
        broker_pct: Broker fee in percent

    Returns:
        Net unit proceeds
    """
    return gross_price * (1.0 - (tax_pct + broker_pct) / 100.0)


def tick_size_for(price: float) -> float:
    """Return the tick step for a price (0.0001 for non-positive or non-finite prices)."""
    if not math.isfinite(price) or price <= 0:
        return 0.0001
    return float(10 ** max(0, math.floor(math.log10(price)) - 3))


def snap_down_to_tick(price: float) -> float:
    """Floor a price onto its tick grid."""
    if not math.isfinite(price) or price <= 0:
        return 0.0
    tick = tick_size_for(price)
    return math.floor(price / tick) * tick


def next_cheaper_tick(price: float) -> float:
    """Return the closest valid price strictly below ``price``.

    An off-grid price snaps down; an on-grid price steps one tick lower.
    The result never goes below zero.
    """
    if not math.isfinite(price) or price <= 0:
        return 0.0
    tick = tick_size_for(price)
    snapped = snap_down_to_tick(price)
    if snapped == price:
        return max(0.0, snapped - tick)
    return snapped


def pick_price(observation: PriceObservation, model: PriceModel) -> float:
    """Return the observation's high, average or low price per the price model."""
    return observation.quote.pick(model)
