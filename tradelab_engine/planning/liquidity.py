"""Liquidity screening and blacklist compilation."""

import logging
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from typing import Any

from tradelab_engine.config.models import LiquidityConfig
from tradelab_engine.models.market import DestinationLiquidity, LiquiditySnapshot

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Blacklist:
    """Compiled item exclusions: a global set plus per-destination sets."""

    global_items: frozenset[int] = field(default_factory=frozenset)
    by_destination: Mapping[int, frozenset[int]] = field(default_factory=dict)

    def excludes(self, destination_id: int, item_id: int) -> bool:
        if item_id in self.global_items:
            return True
        return item_id in self.by_destination.get(destination_id, frozenset())

    def to_dict(self) -> dict[str, Any]:
        return {
            "global_items": sorted(self.global_items),
            "by_destination": {
                str(dest): sorted(items) for dest, items in sorted(self.by_destination.items())
            },
        }


def compile_blacklist(
    global_items: Iterable[int] | None = None,
    by_destination: Mapping[int, Iterable[int]] | None = None,
) -> Blacklist | None:
    """Normalize loose blacklist input once, before planning.

    Args:
        global_items: Item ids excluded everywhere
        by_destination: Item ids excluded per destination id

    Returns:
        Compiled blacklist, or None if nothing is excluded
    """
    global_set = frozenset(int(x) for x in (global_items or ()))
    per_dest: dict[int, frozenset[int]] = {}
    for dest, items in (by_destination or {}).items():
        item_set = frozenset(int(x) for x in items)
        if item_set:
            per_dest[int(dest)] = item_set

    if not global_set and not per_dest:
        return None
    return Blacklist(global_items=global_set, by_destination=per_dest)


class LiquidityFilter:
    """Narrows raw liquidity candidates by coverage, value and trade-count thresholds.

    An item survives when all three hold:
        coverage_days / window_days >= min_coverage_ratio
        avg_daily_value >= min_value
        avg_daily_trades >= min_trades

    Destination allow/exclude lists and the compiled blacklist are applied
    afterwards; destinations left without items are dropped.
    """

    def __init__(self, thresholds: LiquidityConfig):
        self.thresholds = thresholds

    def passes(self, coverage_days: int, avg_daily_value: float, avg_daily_trades: float) -> bool:
        t = self.thresholds
        coverage = coverage_days / max(1, t.window_days)
        return (
            coverage >= t.min_coverage_ratio
            and avg_daily_value >= t.min_value
            and avg_daily_trades >= t.min_trades
        )

    def filter(
        self,
        candidates: LiquiditySnapshot,
        allowed_destinations: Iterable[int] | None = None,
        excluded_destinations: Iterable[int] = (),
        blacklist: Blacklist | None = None,
    ) -> LiquiditySnapshot:
        """Apply thresholds, destination lists and the blacklist.

        Args:
            candidates: Raw snapshot keyed by destination
            allowed_destinations: Keep only these destinations (None = all)
            excluded_destinations: Drop these destinations
            blacklist: Compiled exclusions applied as the final pass

        Returns:
            Filtered snapshot; input is left untouched
        """
        allowed = set(allowed_destinations) if allowed_destinations is not None else None
        excluded = set(excluded_destinations)

        result: LiquiditySnapshot = {}
        dropped_by_threshold = 0
        dropped_by_blacklist = 0
        for dest_id, dest in candidates.items():
            if allowed is not None and dest_id not in allowed:
                continue
            if dest_id in excluded:
                continue

            kept = []
            for item in dest.items:
                if not self.passes(item.coverage_days, item.avg_daily_value, item.avg_daily_trades):
                    dropped_by_threshold += 1
                    continue
                if blacklist is not None and blacklist.excludes(dest_id, item.item_id):
                    dropped_by_blacklist += 1
                    continue
                kept.append(item)

            if kept:
                result[dest_id] = DestinationLiquidity(
                    location_id=dest.location_id, name=dest.name, items=tuple(kept)
                )

        logger.debug(
            "Liquidity filter kept %d destinations (threshold drops=%d, blacklist drops=%d)",
            len(result),
            dropped_by_threshold,
            dropped_by_blacklist,
        )
        return result
