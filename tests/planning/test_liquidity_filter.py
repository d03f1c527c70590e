"""Tests for liquidity screening and blacklist compilation."""

from tradelab_engine.config.models import LiquidityConfig
from tradelab_engine.models.market import DestinationLiquidity, LiquidityItem
from tradelab_engine.planning.liquidity import Blacklist, LiquidityFilter, compile_blacklist


def _item(item_id: int, coverage_days: int = 14, value: float = 5e6, trades: float = 10.0) -> LiquidityItem:
    return LiquidityItem(
        item_id=item_id,
        avg_daily_volume=100.0,
        avg_daily_value=value,
        coverage_days=coverage_days,
        avg_daily_trades=trades,
        volume_per_unit=1.0,
    )


def _snapshot(**items_by_dest):
    return {
        int(dest[1:]): DestinationLiquidity(location_id=int(dest[1:]), name=dest, items=tuple(items))
        for dest, items in items_by_dest.items()
    }


class TestCompileBlacklist:
    """Test suite for compile_blacklist."""

    def test_empty_input_compiles_to_none(self) -> None:
        """Nothing excluded means no blacklist at all."""
        assert compile_blacklist() is None
        assert compile_blacklist([], {1: []}) is None

    def test_global_and_per_destination(self) -> None:
        """Global items are excluded everywhere, per-destination items only there."""
        blacklist = compile_blacklist([34], {"100": ["35"]})
        assert blacklist is not None
        assert blacklist.excludes(100, 34)
        assert blacklist.excludes(200, 34)
        assert blacklist.excludes(100, 35)
        assert not blacklist.excludes(200, 35)

    def test_to_dict_is_sorted(self) -> None:
        blacklist = compile_blacklist([3, 1], {2: [9, 8]})
        assert blacklist.to_dict() == {"global_items": [1, 3], "by_destination": {"2": [8, 9]}}


class TestLiquidityFilter:
    """Test suite for LiquidityFilter."""

    thresholds = LiquidityConfig(window_days=14, min_coverage_ratio=0.5, min_value=1e6, min_trades=5)

    def test_thresholds(self) -> None:
        """Each threshold drops items on its own."""
        liquidity = LiquidityFilter(self.thresholds)
        assert liquidity.passes(7, 1e6, 5)
        assert not liquidity.passes(6, 1e6, 5)
        assert not liquidity.passes(14, 999_999, 5)
        assert not liquidity.passes(14, 1e6, 4.9)

    def test_destinations_without_items_are_dropped(self) -> None:
        snapshot = _snapshot(d100=[_item(1), _item(2, coverage_days=1)], d200=[_item(3, value=10)])
        result = LiquidityFilter(self.thresholds).filter(snapshot)
        assert list(result) == [100]
        assert [i.item_id for i in result[100].items] == [1]

    def test_allowed_and_excluded_destinations(self) -> None:
        snapshot = _snapshot(d100=[_item(1)], d200=[_item(2)], d300=[_item(3)])
        result = LiquidityFilter(self.thresholds).filter(
            snapshot, allowed_destinations=[100, 200], excluded_destinations=[200]
        )
        assert list(result) == [100]

    def test_blacklist_applied_last(self) -> None:
        snapshot = _snapshot(d100=[_item(1), _item(2)], d200=[_item(1)])
        blacklist = Blacklist(global_items=frozenset({2}), by_destination={200: frozenset({1})})
        result = LiquidityFilter(self.thresholds).filter(snapshot, blacklist=blacklist)
        assert list(result) == [100]
        assert [i.item_id for i in result[100].items] == [1]

    def test_input_untouched(self) -> None:
        snapshot = _snapshot(d100=[_item(1), _item(2, trades=0)])
        LiquidityFilter(self.thresholds).filter(snapshot)
        assert len(snapshot[100].items) == 2
