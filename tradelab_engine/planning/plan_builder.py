"""Historical plan builder: point-in-time market snapshot to purchase plan."""

import logging
import math
from collections.abc import Mapping
from datetime import date, timedelta

from tradelab_engine.cache.liquidity import SnapshotSource
from tradelab_engine.config.models import FeeConfig, LiquidityConfig
from tradelab_engine.errors import PlanConsistencyError
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.plan import (
    DestinationCandidates,
    HistoricalPlan,
    PackingConstraints,
    PlanCandidate,
    PlanResult,
)
from tradelab_engine.models.run import InventoryMode
from tradelab_engine.models.strategy import StrategyParams
from tradelab_engine.planning.liquidity import Blacklist, LiquidityFilter
from tradelab_engine.planning.packager import PackagePlanner
from tradelab_engine.pricing.fees import net_sell, pick_price
from tradelab_engine.pricing.resolver import PriceResolver

logger = logging.getLogger(__name__)


class HistoricalPlanBuilder:
    """Builds the purchase plan a strategy would have made on a past date.

    Planning only looks at history strictly before the anchor date: liquidity
    windows end at ``anchor - 1`` and source prices are resolved as of
    ``anchor - 1``.

    Example:
        >>> builder = HistoricalPlanBuilder(resolver, planner, snapshots, fees, liquidity)
        >>> result = builder.build_plan(params, date(2025, 3, 1), PriceModel.LOW, budget=2e9)
        >>> all(i.item_id in result.buy_price_by_item
        ...     for p in result.plan.packages for i in p.items)
        True
    """

    def __init__(
        self,
        resolver: PriceResolver,
        planner: PackagePlanner,
        snapshots: SnapshotSource,
        fee_defaults: FeeConfig,
        liquidity_defaults: LiquidityConfig,
    ):
        self.resolver = resolver
        self.planner = planner
        self.snapshots = snapshots
        self.fee_defaults = fee_defaults
        self.liquidity_defaults = liquidity_defaults

    def build_plan(
        self,
        params: StrategyParams,
        anchor_date: date,
        price_model: PriceModel,
        budget: float,
        existing_inventory: Mapping[tuple[int, int], int] | None = None,
        inventory_mode: InventoryMode = InventoryMode.IGNORE,
        window_days: int | None = None,
        blacklist: Blacklist | None = None,
    ) -> HistoricalPlan:
        """Build a plan anchored at ``anchor_date``.

        Args:
            params: Strategy parameters
            anchor_date: First day the plan would be executed
            price_model: Which daily price statistic to buy and value at
            budget: Spend allowed (shipping included)
            existing_inventory: Units already held per (destination, item)
            inventory_mode: How held units affect planned quantity
            window_days: Liquidity window override (e.g. a walk-forward train window)
            blacklist: Compiled exclusions

        Returns:
            Plan plus the buy price of every planned item

        Raises:
            PlanConsistencyError: If the planner returns an item without a buy price
        """
        liquidity = params.liquidity(self.liquidity_defaults)
        if window_days is not None:
            liquidity = liquidity.model_copy(update={"window_days": window_days})
        fees = params.fees(self.fee_defaults)
        existing = existing_inventory or {}

        raw = self.snapshots.get(anchor_date, liquidity.window_days)
        filtered = LiquidityFilter(liquidity).filter(
            raw,
            allowed_destinations=params.destination_location_ids,
            excluded_destinations=params.exclude_destination_location_ids,
            blacklist=blacklist,
        )

        source_id = params.source_location_id
        item_ids = sorted(
            {item.item_id for dest_id, dest in filtered.items() if dest_id != source_id for item in dest.items}
        )
        source_obs = self.resolver.resolve_items(source_id, item_ids, anchor_date - timedelta(days=1))

        buy_price_by_item: dict[int, float] = {}
        destinations: list[DestinationCandidates] = []
        considered = 0
        for dest_id in sorted(filtered):
            if dest_id == source_id:
                continue
            candidates = []
            for liq in filtered[dest_id].items:
                considered += 1
                src = source_obs.get(liq.item_id)
                if src is None:
                    continue
                src_price = pick_price(src, price_model)
                if not math.isfinite(src_price) or src_price <= 0:
                    continue
                buy_price_by_item[liq.item_id] = src_price

                if liq.latest is None:
                    continue
                dst_price = liq.latest.pick(price_model)
                if not math.isfinite(dst_price) or dst_price <= 0:
                    continue
                max_dev = params.max_price_deviation_multiple
                if max_dev is not None and liq.latest.avg > 0 and dst_price > liq.latest.avg * max_dev:
                    continue

                unit_profit = net_sell(dst_price, fees.sales_tax_pct, fees.broker_fee_pct) - src_price
                margin_pct = unit_profit / src_price * 100.0
                if margin_pct < params.min_margin_pct:
                    continue

                qty = max(0, math.floor(liq.avg_daily_volume * params.max_inventory_days))
                if qty <= 0:
                    continue

                held = existing.get((dest_id, liq.item_id), 0)
                if inventory_mode == InventoryMode.SKIP_EXISTING:
                    if held > 0:
                        continue
                elif inventory_mode == InventoryMode.TOP_OFF:
                    qty = max(0, qty - held)
                    if qty <= 0:
                        continue

                if unit_profit * qty < params.min_total_profit:
                    continue
                if liq.volume_per_unit <= 0:
                    continue

                candidates.append(
                    PlanCandidate(
                        item_id=liq.item_id,
                        name=liq.name or str(liq.item_id),
                        source_location_id=source_id,
                        destination_location_id=dest_id,
                        source_price=src_price,
                        destination_price=dst_price,
                        unit_profit=unit_profit,
                        quantity=qty,
                        volume_per_unit=liq.volume_per_unit,
                    )
                )

            if candidates:
                destinations.append(
                    DestinationCandidates(
                        destination_location_id=dest_id,
                        shipping_cost=params.shipping_cost_by_location.get(dest_id, 0.0),
                        items=tuple(candidates),
                    )
                )

        if not destinations:
            logger.info("No plan candidates at anchor %s (%d considered)", anchor_date, considered)
            return HistoricalPlan(
                plan=PlanResult.empty("no candidates"),
                buy_price_by_item=buy_price_by_item,
                candidates_considered=considered,
            )

        spend_cap = budget if params.investment is None else min(budget, params.investment)
        constraints = PackingConstraints(
            package_capacity_m3=params.package_capacity_m3,
            per_destination_max_budget_share_per_item=params.per_destination_max_budget_share_per_item,
            max_packages_hint=params.max_packages_hint,
        )
        plan = self.planner.plan(destinations, spend_cap, constraints)

        for package in plan.packages:
            for item in package.items:
                if item.item_id not in buy_price_by_item:
                    raise PlanConsistencyError(
                        f"Missing buy price for item {item.item_id} at source {source_id}"
                    )

        logger.info(
            "Plan at %s: %d packages, spend %.0f, shipping %.0f (%d destinations, %d candidates)",
            anchor_date,
            len(plan.packages),
            plan.total_spend,
            plan.total_shipping,
            len(destinations),
            sum(len(d.items) for d in destinations),
        )
        return HistoricalPlan(plan=plan, buy_price_by_item=buy_price_by_item, candidates_considered=considered)
