"""Tests for HistoricalPlanBuilder."""

from datetime import timedelta

import pytest
from conftest import DEST, ITEM, SOURCE, START, MarketBuilder, make_strategy

from tradelab_engine.cache.liquidity import UncachedSnapshotSource
from tradelab_engine.config.models import FeeConfig, LiquidityConfig
from tradelab_engine.errors import PlanConsistencyError
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.plan import PackedItem, PlanPackage, PlanResult
from tradelab_engine.models.run import InventoryMode
from tradelab_engine.planning.liquidity import compile_blacklist
from tradelab_engine.planning.packager import GreedyPackagePlanner, PackagePlanner
from tradelab_engine.planning.plan_builder import HistoricalPlanBuilder
from tradelab_engine.pricing.resolver import PriceResolver


class UnknownItemPlanner(PackagePlanner):
    """Planner that packs an item the builder never priced."""

    def plan(self, candidates, budget, constraints):
        return PlanResult(
            packages=(
                PlanPackage(
                    destination_location_id=candidates[0].destination_location_id,
                    items=(PackedItem(item_id=999_999, units=1, unit_cost=1.0, unit_profit=1.0),),
                    spend=1.0,
                    shipping=0.0,
                ),
            ),
            total_spend=1.0,
        )


def _builder(market: MarketBuilder, planner: PackagePlanner | None = None):
    provider = market.provider()
    return HistoricalPlanBuilder(
        resolver=PriceResolver(provider),
        planner=planner or GreedyPackagePlanner(),
        snapshots=UncachedSnapshotSource(provider),
        fee_defaults=FeeConfig(),
        liquidity_defaults=LiquidityConfig(),
    )


class TestHistoricalPlanBuilder:
    """Test suite for point-in-time planning."""

    def test_builds_plan_for_profitable_lane(self, market: MarketBuilder) -> None:
        """A profitable lane plans inventory-days worth of volume."""
        market.arbitrage()
        result = _builder(market).build_plan(make_strategy().params, START, PriceModel.LOW, budget=1e9)

        assert len(result.plan.packages) == 1
        package = result.plan.packages[0]
        assert package.destination_location_id == DEST
        assert package.items[0].item_id == ITEM
        assert package.items[0].units == 1000
        assert result.buy_price_by_item[ITEM] == 5_000

    def test_every_planned_item_has_buy_price(self, market: MarketBuilder) -> None:
        market.arbitrage().arbitrage(item_id=35, source_price=1_000, dest_price=3_000)
        result = _builder(market).build_plan(make_strategy().params, START, PriceModel.LOW, budget=1e9)
        planned = {i.item_id for p in result.plan.packages for i in p.items}
        assert planned
        assert planned <= set(result.buy_price_by_item)

    def test_ignores_data_from_anchor_onward(self, market: MarketBuilder) -> None:
        """Only history strictly before the anchor date is visible."""
        market.arbitrage(first=START, last=START + timedelta(days=20))
        result = _builder(market).build_plan(make_strategy().params, START, PriceModel.LOW, budget=1e9)
        assert result.plan.is_empty

    def test_margin_floor(self, market: MarketBuilder) -> None:
        market.arbitrage()
        params = make_strategy(min_margin_pct=500.0).params
        result = _builder(market).build_plan(params, START, PriceModel.LOW, budget=1e9)
        assert result.plan.is_empty

    def test_blacklist_excludes_pair(self, market: MarketBuilder) -> None:
        market.arbitrage()
        result = _builder(market).build_plan(
            make_strategy().params,
            START,
            PriceModel.LOW,
            budget=1e9,
            blacklist=compile_blacklist(by_destination={DEST: [ITEM]}),
        )
        assert result.plan.is_empty

    def test_skip_existing_inventory(self, market: MarketBuilder) -> None:
        market.arbitrage()
        result = _builder(market).build_plan(
            make_strategy().params,
            START,
            PriceModel.LOW,
            budget=1e9,
            existing_inventory={(DEST, ITEM): 10},
            inventory_mode=InventoryMode.SKIP_EXISTING,
        )
        assert result.plan.is_empty

    def test_top_off_inventory(self, market: MarketBuilder) -> None:
        market.arbitrage()
        result = _builder(market).build_plan(
            make_strategy().params,
            START,
            PriceModel.LOW,
            budget=1e9,
            existing_inventory={(DEST, ITEM): 300},
            inventory_mode=InventoryMode.TOP_OFF,
        )
        assert result.plan.packages[0].items[0].units == 700

    def test_source_is_never_a_destination(self, market: MarketBuilder) -> None:
        market.arbitrage()
        result = _builder(market).build_plan(make_strategy().params, START, PriceModel.LOW, budget=1e9)
        assert all(p.destination_location_id != SOURCE for p in result.plan.packages)

    def test_investment_caps_budget(self, market: MarketBuilder) -> None:
        market.arbitrage()
        params = make_strategy(investment=1_000_000.0, per_destination_max_budget_share_per_item=1.0).params
        result = _builder(market).build_plan(params, START, PriceModel.LOW, budget=1e9)
        assert result.plan.total_spend <= 1_000_000
        assert result.plan.packages[0].items[0].units == 200

    def test_missing_buy_price_is_fatal(self, market: MarketBuilder) -> None:
        market.arbitrage()
        with pytest.raises(PlanConsistencyError):
            _builder(market, UnknownItemPlanner()).build_plan(
                make_strategy().params, START, PriceModel.LOW, budget=1e9
            )
