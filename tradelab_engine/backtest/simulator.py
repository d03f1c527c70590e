"""Day-by-day cycle simulator: the position lifecycle state machine.

Per simulated day, for every ACTIVE position that has an observation today:

1. List / reprice. Unlisted positions list at ``next_cheaper_tick(market)`` and
   pay the broker fee on the full listed value. Listed positions undercut by the
   market reprice to ``next_cheaper_tick(market)`` and pay the relist fee,
   unless the repriced margin is at or below the red threshold, in which case
   the position turns RED and is frozen for the rest of the run.
2. Sell. Fills are capped at ``floor(volume x share)`` where the share is the
   flat sell share or the calibrated capture share.
3. Rebuy (multi-cycle only) when the cash share of capital reaches the trigger.
4. Mark to market and append the day record.

Any fee or package that cash cannot cover is skipped for the day; the run
carries on. Only internal-consistency violations and aborts are fatal.
"""

import logging
import math
import threading
import time
from datetime import date, timedelta

from tradelab_engine.backtest.calibration import CaptureCalibration, CaptureCalibrator
from tradelab_engine.backtest.metrics import NavCurve
from tradelab_engine.backtest.position import Position
from tradelab_engine.config.models import LabConfig
from tradelab_engine.core.dates import date_range_inclusive
from tradelab_engine.core.state_machine import PositionState
from tradelab_engine.errors import PlanConsistencyError, RunAbortedError
from tradelab_engine.models.run import (
    CycleReport,
    DayRecord,
    SellModel,
    SimulationMode,
    SimulationRequest,
    SimulationResult,
    SimulationSummary,
)
from tradelab_engine.monitoring.metrics import LabMetrics
from tradelab_engine.planning.liquidity import Blacklist, compile_blacklist
from tradelab_engine.planning.plan_builder import HistoricalPlanBuilder
from tradelab_engine.pricing.fees import net_sell, next_cheaper_tick, pick_price
from tradelab_engine.pricing.resolver import ObservationMap, PriceResolver

logger = logging.getLogger(__name__)

# Absorbs binary float error in volume x share before flooring (100 x 0.29 -> 29)
CAP_EPSILON = 1e-9


class CycleSimulator:
    """Simulates one strategy over one date range, one day at a time.

    The simulator itself is stateless between runs and may be shared by
    concurrent workers; all per-run state lives in ``_RunState``.

    Example:
        >>> simulator = CycleSimulator(builder, resolver, calibrator, LabConfig())
        >>> result = simulator.simulate(SimulationRequest(strategy, date(2025, 3, 1), 1e9))
        >>> result.summary.days
        14
    """

    def __init__(
        self,
        plan_builder: HistoricalPlanBuilder,
        resolver: PriceResolver,
        calibrator: CaptureCalibrator,
        config: LabConfig,
        metrics: LabMetrics | None = None,
    ):
        self.plan_builder = plan_builder
        self.resolver = resolver
        self.calibrator = calibrator
        self.config = config
        self.metrics = metrics

    def simulate(
        self,
        request: SimulationRequest,
        cancel_event: threading.Event | None = None,
    ) -> SimulationResult:
        """Run the day loop for ``request``.

        Args:
            request: What to simulate
            cancel_event: Checked at every day boundary

        Returns:
            Summary, final positions, day records and cycle reports

        Raises:
            PlanConsistencyError: If a planned item has no buy price
            RunAbortedError: If cancelled or past the deadline
        """
        state = _RunState(self, request, cancel_event)
        return state.run()


class _RunState:
    """Mutable state of a single simulation run."""

    def __init__(
        self,
        simulator: CycleSimulator,
        request: SimulationRequest,
        cancel_event: threading.Event | None,
    ):
        sim = simulator.config.simulation
        params = request.strategy.params

        self.simulator = simulator
        self.request = request
        self.cancel_event = cancel_event
        self.fees = params.fees(simulator.config.fees)

        self.cycle_days = request.cycle_days or sim.cycle_days
        if request.reprices_per_day is not None:
            self.reprices_per_day = request.reprices_per_day
        elif request.mode == SimulationMode.SINGLE_BUY:
            self.reprices_per_day = sim.single_buy_reprices_per_day
        else:
            self.reprices_per_day = sim.reprices_per_day
        self.rebuy_trigger = _first(request.rebuy_trigger_cash_pct, sim.rebuy_trigger_cash_pct)
        self.reserve_pct = _first(request.reserve_cash_pct, sim.reserve_cash_pct)
        self.red_threshold = _first(request.red_margin_threshold_pct, sim.red_margin_threshold_pct)
        self.sell_share = _first(request.sell_share_pct, sim.sell_share_pct)
        self.calibration_window = request.calibration_window_days or sim.calibration_window_days
        self.min_investable = sim.min_investable

        deadline_seconds = _first(request.deadline_seconds, sim.deadline_seconds)
        self.deadline = time.monotonic() + deadline_seconds if deadline_seconds else None

        horizon_days = request.cycles * self.cycle_days
        if request.max_days is not None:
            horizon_days = min(horizon_days, request.max_days)
        self.horizon_end = request.start_date + timedelta(days=horizon_days - 1)

        self.cash = request.initial_capital
        self.positions: dict[tuple[int, int], Position] = {}
        self.rows: ObservationMap = {}
        self.loaded_pairs: set[tuple[int, int]] = set()
        self.calibration = CaptureCalibration()
        self.curve = NavCurve(request.initial_capital)
        self.days: list[DayRecord] = []
        self.cycles: list[CycleReport] = []

    # ------------------------------------------------------------------
    # Accounting views
    # ------------------------------------------------------------------

    def inventory_cost(self) -> float:
        return sum(p.cost_basis_remaining for p in self.positions.values())

    def inventory_mark(self) -> float:
        total = 0.0
        for p in self.positions.values():
            if p.units_remaining <= 0:
                continue
            if p.listed_price is None:
                total += p.cost_basis_remaining
            else:
                total += net_sell(p.listed_price, self.fees.sales_tax_pct, self.fees.broker_fee_pct) * p.units_remaining
        return total

    def realized_profit(self) -> float:
        return sum(p.realized_profit for p in self.positions.values())

    def cash_pct(self) -> float:
        denom = self.cash + self.inventory_cost()
        return self.cash / denom if denom > 0 else 1.0

    def _sorted_positions(self) -> list[Position]:
        return [self.positions[k] for k in sorted(self.positions)]

    # ------------------------------------------------------------------
    # Main loop
    # ------------------------------------------------------------------

    def run(self) -> SimulationResult:
        req = self.request
        logger.info(
            "Simulating %s from %s: mode=%s cycles=%d x %dd capital=%.0f",
            req.strategy.id,
            req.start_date,
            req.mode.value,
            req.cycles,
            self.cycle_days,
            req.initial_capital,
        )

        cursor = req.start_date
        stopped_early = False
        for cycle_index in range(1, req.cycles + 1):
            cycle_end = min(cursor + timedelta(days=self.cycle_days - 1), self.horizon_end)
            if cycle_end < cursor:
                break
            cycle_dates = date_range_inclusive(cursor, cycle_end)
            report = CycleReport(
                cycle=cycle_index,
                start_date=cursor,
                end_date=cycle_dates[-1],
                cash_start=self.cash,
                inventory_cost_start=self.inventory_cost(),
            )
            self.cycles.append(report)

            last_day = cycle_dates[-1]
            for offset, day in enumerate(cycle_dates):
                self._check_abort(day)
                report.observe_cash_pct(self.cash, self.inventory_cost())

                if offset == 0 and (
                    req.mode != SimulationMode.MULTI_CYCLE or self.cash_pct() >= self.rebuy_trigger
                ):
                    self._buy(day, report, list_on=day)

                self._list_and_reprice(day, report)
                sold_today = self._sell(day, report)
                report.observe_cash_pct(self.cash, self.inventory_cost())

                if req.mode == SimulationMode.MULTI_CYCLE and self.cash_pct() >= self.rebuy_trigger:
                    self._buy(day + timedelta(days=1), report, list_on=None)

                self._record_day(day, cycle_index, sold_today)

                if req.mode == SimulationMode.SINGLE_BUY and not any(
                    p.is_active for p in self.positions.values()
                ):
                    last_day = day
                    stopped_early = True
                    break

            report.end_date = last_day
            report.cash_end = self.cash
            report.inventory_cost_end = self.inventory_cost()
            report.red_positions = sum(1 for p in self.positions.values() if p.state == PositionState.RED)
            report.positions_held_end = sum(1 for p in self.positions.values() if p.units_remaining > 0)
            logger.debug(
                "Cycle %d %s..%s profit_cash=%.0f",
                cycle_index,
                report.start_date,
                report.end_date,
                report.profit_cash,
            )

            cursor = last_day + timedelta(days=1)
            if stopped_early:
                break

        return SimulationResult(
            summary=self._summary(),
            positions=[p.snapshot() for p in self._sorted_positions()],
            days=self.days,
            cycles=self.cycles,
        )

    def _check_abort(self, day: date) -> None:
        if self.cancel_event is not None and self.cancel_event.is_set():
            raise RunAbortedError(f"cancelled before {day.isoformat()}")
        if self.deadline is not None and time.monotonic() > self.deadline:
            raise RunAbortedError(f"deadline exceeded before {day.isoformat()}")

    # ------------------------------------------------------------------
    # Buying
    # ------------------------------------------------------------------

    def _planning_blacklist(self) -> Blacklist | None:
        """Caller's blacklist plus every pair that went red in this run."""
        red = [p.key for p in self.positions.values() if p.state == PositionState.RED]
        base = self.request.blacklist
        if not red:
            return base
        by_destination: dict[int, set[int]] = {}
        if base is not None:
            for dest, items in base.by_destination.items():
                by_destination[dest] = set(items)
        for dest, item in red:
            by_destination.setdefault(dest, set()).add(item)
        return compile_blacklist(base.global_items if base is not None else (), by_destination)

    def _buy(self, day: date, report: CycleReport, list_on: date | None) -> bool:
        """Plan and buy anchored at ``day``; list new positions on ``list_on`` when given."""
        if day > self.horizon_end:
            return False
        reserve = (self.cash + self.inventory_cost()) * self.reserve_pct
        investable = max(0.0, self.cash - reserve)
        if investable <= self.min_investable:
            return False

        existing = {k: p.units_remaining for k, p in self.positions.items() if p.units_remaining > 0}
        historical = self.simulator.plan_builder.build_plan(
            self.request.strategy.params,
            anchor_date=day,
            price_model=self.request.price_model,
            budget=investable,
            existing_inventory=existing,
            inventory_mode=self.request.inventory_mode,
            window_days=self.request.liquidity_window_days,
            blacklist=self._planning_blacklist(),
        )
        if historical.plan.is_empty:
            logger.debug("Empty plan on %s, no purchase", day)
            return False

        bought_pairs: set[tuple[int, int]] = set()
        for package in historical.plan.packages:
            priced = []
            for item in package.items:
                price = historical.buy_price_by_item.get(item.item_id)
                if price is None:
                    raise PlanConsistencyError(f"Missing buy price for item {item.item_id} at source")
                priced.append((item, price))

            spend = sum(price * item.units for item, price in priced)
            cost = spend + package.shipping
            if cost <= 0:
                continue
            if self.cash - cost < reserve:
                logger.warning(
                    "Package to %s unaffordable on %s (cost %.0f, cash %.0f, reserve %.0f)",
                    package.destination_location_id,
                    day,
                    cost,
                    self.cash,
                    reserve,
                )
                break

            self.cash -= cost
            report.spend += spend
            report.shipping += package.shipping
            for item, price in priced:
                item_cost = price * item.units
                shipping_share = package.shipping * item_cost / spend if spend > 0 and package.shipping > 0 else 0.0
                key = (package.destination_location_id, item.item_id)
                position = self.positions.get(key)
                if position is None:
                    position = Position(package.destination_location_id, item.item_id)
                    self.positions[key] = position
                position.add_units(item.units, price, shipping_share)
                bought_pairs.add(key)

        if not bought_pairs:
            return False

        report.buy_events += 1
        report.buy_dates.append(day)
        self._ensure_rows(bought_pairs, list_on or day)
        if self.request.sell_model == SellModel.CALIBRATED_CAPTURE:
            self._calibrate(bought_pairs)
        if list_on is not None:
            for key in sorted(bought_pairs):
                position = self.positions[key]
                if position.is_active and position.listed_price is None:
                    self._list(position, list_on, report)
        logger.debug("Bought %d pairs on %s, cash now %.0f", len(bought_pairs), day, self.cash)
        return True

    def _ensure_rows(self, pairs: set[tuple[int, int]], start: date) -> None:
        missing = pairs - self.loaded_pairs
        if not missing:
            return
        locations = sorted({loc for loc, _ in missing})
        items = sorted({item for _, item in missing})
        self.rows.update(self.simulator.resolver.resolve_many(locations, items, start, self.horizon_end))
        self.loaded_pairs.update(missing)

    def _calibrate(self, pairs: set[tuple[int, int]]) -> None:
        calibration = self.simulator.calibrator.calibrate(
            [loc for loc, _ in pairs],
            [item for _, item in pairs],
            anchor_date=self.request.start_date,
            window_days=self.calibration_window,
        )
        self.calibration.merge(calibration)

    # ------------------------------------------------------------------
    # Daily passes
    # ------------------------------------------------------------------

    def _market_price(self, position: Position, day: date) -> tuple[float, float] | None:
        obs = self.rows.get((position.destination_location_id, position.item_id, day))
        if obs is None:
            return None
        price = pick_price(obs, self.request.price_model)
        if not math.isfinite(price) or price <= 0:
            return None
        return price, obs.volume

    def _list(self, position: Position, day: date, report: CycleReport) -> bool:
        market = self._market_price(position, day)
        if market is None:
            return False
        list_price = next_cheaper_tick(market[0])
        if list_price <= 0:
            return False
        broker_fee = list_price * position.units_remaining * self.fees.broker_fee_pct / 100.0
        if broker_fee > self.cash:
            logger.debug("Cannot afford broker fee for %s on %s", position.key, day)
            return False
        self.cash -= broker_fee
        position.list_at(list_price, broker_fee)
        report.broker_fees += broker_fee
        return True

    def _list_and_reprice(self, day: date, report: CycleReport) -> None:
        fees = self.fees
        metrics = self.simulator.metrics
        for position in self._sorted_positions():
            if not position.is_active:
                continue
            market = self._market_price(position, day)
            if market is None:
                continue
            price, _ = market
            units = position.units_remaining

            if position.listed_price is None:
                self._list(position, day, report)
                continue

            if self.reprices_per_day <= 0 or price >= position.listed_price:
                continue

            suggested = next_cheaper_tick(price)
            unit_cost = position.average_unit_cost
            if unit_cost <= 0 or suggested <= 0:
                continue
            margin_pct = (
                (net_sell(suggested, fees.sales_tax_pct, fees.broker_fee_pct) - unit_cost) / unit_cost * 100.0
            )
            if margin_pct <= self.red_threshold:
                position.mark_red()
                report.reprices_skipped_red += 1
                if metrics is not None:
                    metrics.record_red()
                logger.debug(
                    "Position %s red on %s (margin %.2f%% <= %.2f%%)",
                    position.key,
                    day,
                    margin_pct,
                    self.red_threshold,
                )
                continue

            relist_fee = suggested * units * fees.relist_fee_pct / 100.0 * self.reprices_per_day
            if relist_fee > self.cash:
                continue
            self.cash -= relist_fee
            position.reprice(suggested, relist_fee)
            report.relist_fees += relist_fee
            report.reprices_applied += 1
            if metrics is not None:
                metrics.record_reprices(1)

    def _sell(self, day: date, report: CycleReport) -> int:
        sold_total = 0
        for position in self._sorted_positions():
            if not position.is_active or position.listed_price is None:
                continue
            market = self._market_price(position, day)
            if market is None:
                continue
            price, volume = market
            if volume <= 0 or position.listed_price > price:
                continue

            if self.request.sell_model == SellModel.CALIBRATED_CAPTURE:
                share = self.calibration.share_for(position.destination_location_id, position.item_id)
            else:
                share = self.sell_share
            cap = max(0, math.floor(volume * share + CAP_EPSILON))
            sold = min(position.units_remaining, cap)
            if sold <= 0:
                continue

            cogs = position.average_unit_cost * sold
            gross_before = position.gross_sales
            tax_before = position.sales_tax
            proceeds = position.sell(sold, self.fees.sales_tax_pct)
            self.cash += proceeds

            report.gross_sales += position.gross_sales - gross_before
            report.sales_tax += position.sales_tax - tax_before
            report.sales_net += proceeds
            report.cogs += cogs
            report.units_sold += sold
            sold_total += sold
        return sold_total

    def _record_day(self, day: date, cycle_index: int, units_sold: int) -> None:
        inventory_cost = self.inventory_cost()
        inventory_mark = self.inventory_mark()
        nav = self.cash + inventory_mark
        self.curve.add_point(day, nav)
        self.days.append(
            DayRecord(
                date=day,
                cycle=cycle_index,
                cash=self.cash,
                inventory_cost=inventory_cost,
                inventory_mark=inventory_mark,
                realized_profit=self.realized_profit(),
                unrealized_profit=inventory_mark - inventory_cost,
                nav=nav,
                units_sold=units_sold,
            )
        )

    def _summary(self) -> SimulationSummary:
        req = self.request
        total_return_pct, net_profit = self.curve.total_return()
        last = self.days[-1] if self.days else None
        return SimulationSummary(
            strategy_id=req.strategy.id,
            start_date=req.start_date,
            end_date=last.date if last else req.start_date,
            initial_capital=req.initial_capital,
            mode=req.mode,
            price_model=req.price_model,
            sell_model=req.sell_model,
            sell_share_pct=self.sell_share,
            days=len(self.days),
            cycles=len(self.cycles),
            total_spend=sum(c.spend for c in self.cycles),
            total_shipping=sum(c.shipping for c in self.cycles),
            total_broker_fees=sum(c.broker_fees for c in self.cycles),
            total_relist_fees=sum(c.relist_fees for c in self.cycles),
            total_sales_tax=sum(c.sales_tax for c in self.cycles),
            sales_net=sum(c.sales_net for c in self.cycles),
            cogs=sum(c.cogs for c in self.cycles),
            units_sold=sum(c.units_sold for c in self.cycles),
            realized_profit=self.realized_profit(),
            unrealized_profit=last.unrealized_profit if last else 0.0,
            nav_end=self.curve.end_nav,
            total_profit=net_profit,
            roi_pct=total_return_pct,
            max_drawdown_pct=self.curve.max_drawdown_pct,
            reprices_applied=sum(c.reprices_applied for c in self.cycles),
            reprices_skipped_red=sum(c.reprices_skipped_red for c in self.cycles),
            red_positions=sum(1 for p in self.positions.values() if p.state == PositionState.RED),
        )


def _first(value, default):
    return default if value is None else value
