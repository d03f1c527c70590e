"""Start-date robustness sweep for single-buy strategies.

Every strategy buys once on each of a series of start dates and then sells
for up to ``max_days``. The spread of outcomes across start dates shows how
much of a strategy's result is timing luck; pairs that keep losing or going
red across runs are reported as repeat offenders.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from tradelab_engine.backtest.pool import BatchExecutor
from tradelab_engine.backtest.runner import RunOutcome, SimulationRunner
from tradelab_engine.backtest.statistics import distribution, sort_key_asc, sort_key_desc
from tradelab_engine.core.dates import date_range_inclusive
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.run import InventoryMode, SellModel, SimulationMode, SimulationRequest
from tradelab_engine.models.strategy import Strategy
from tradelab_engine.planning.liquidity import Blacklist

logger = logging.getLogger(__name__)

NO_BLACKLIST = "NO_BLACKLIST"
WITH_BLACKLIST = "WITH_BLACKLIST"


@dataclass
class StartOutcome:
    strategy_id: str
    strategy_name: str
    start_date: date
    outcome: RunOutcome

    @property
    def profit(self) -> float | None:
        if not self.outcome.completed or self.outcome.summary is None:
            return None
        return self.outcome.summary.realized_profit


@dataclass
class StrategyRobustness:
    """Profit distribution of one strategy across start dates."""

    strategy_id: str
    strategy_name: str
    runs: int = 0
    failed: int = 0
    loss_rate: float | None = None
    profit_p10: float | None = None
    profit_median: float | None = None
    profit_p90: float | None = None
    best_start: date | None = None
    best_profit: float | None = None
    worst_start: date | None = None
    worst_profit: float | None = None

    def rank_key(self) -> tuple:
        return (
            sort_key_desc(self.profit_p10),
            sort_key_desc(self.profit_median),
            sort_key_asc(self.loss_rate),
            self.strategy_name,
        )

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.__dict__)
        data["best_start"] = self.best_start.isoformat() if self.best_start else None
        data["worst_start"] = self.worst_start.isoformat() if self.worst_start else None
        return data


@dataclass
class RepeatOffender:
    """A (destination, item) pair that lost or went red in several runs."""

    destination_location_id: int
    item_id: int
    runs: int = 0
    loser_runs: int = 0
    red_runs: int = 0
    total_profit: float = 0.0
    total_loss: float = 0.0
    strategies: set[str] = field(default_factory=set)

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination_location_id": self.destination_location_id,
            "item_id": self.item_id,
            "runs": self.runs,
            "loser_runs": self.loser_runs,
            "red_runs": self.red_runs,
            "total_profit": self.total_profit,
            "total_loss": self.total_loss,
            "strategies": sorted(self.strategies),
        }


@dataclass
class RobustnessVariant:
    label: str
    results: list[StrategyRobustness] = field(default_factory=list)
    repeat_offenders: list[RepeatOffender] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "label": self.label,
            "results": [r.to_dict() for r in self.results],
            "repeat_offenders": [o.to_dict() for o in self.repeat_offenders],
        }


@dataclass
class RobustnessReport:
    config: dict[str, Any]
    starts: list[date]
    variants: list[RobustnessVariant] = field(default_factory=list)

    def variant(self, label: str) -> RobustnessVariant | None:
        return next((v for v in self.variants if v.label == label), None)

    def to_dict(self) -> dict[str, Any]:
        return {
            "config": self.config,
            "starts": [d.isoformat() for d in self.starts],
            "variants": [v.to_dict() for v in self.variants],
        }


def summarize_strategy(strategy: Strategy, rows: list[StartOutcome]) -> StrategyRobustness:
    result = StrategyRobustness(strategy_id=strategy.id, strategy_name=strategy.name)
    completed = [r for r in rows if r.profit is not None]
    result.runs = len(completed)
    result.failed = len(rows) - len(completed)
    if not completed:
        return result

    profits = [r.profit for r in completed]
    result.loss_rate = sum(1 for p in profits if p < 0) / len(profits)
    result.profit_median, result.profit_p10, result.profit_p90 = distribution(profits)
    best = max(completed, key=lambda r: r.profit)
    worst = min(completed, key=lambda r: r.profit)
    result.best_start, result.best_profit = best.start_date, best.profit
    result.worst_start, result.worst_profit = worst.start_date, worst.profit
    return result


def repeat_offenders(rows: list[StartOutcome], limit: int = 50) -> list[RepeatOffender]:
    """Pairs with at least two losing or two red runs, worst total loss first."""
    offenders: dict[tuple[int, int], RepeatOffender] = {}
    for row in rows:
        if not row.outcome.completed:
            continue
        for pos in row.outcome.positions:
            key = (pos.destination_location_id, pos.item_id)
            entry = offenders.get(key)
            if entry is None:
                entry = RepeatOffender(destination_location_id=key[0], item_id=key[1])
                offenders[key] = entry
            entry.runs += 1
            entry.strategies.add(row.strategy_name)
            entry.total_profit += pos.realized_profit
            if pos.realized_profit < 0:
                entry.loser_runs += 1
                entry.total_loss += pos.realized_profit
            if pos.is_red:
                entry.red_runs += 1

    flagged = [o for o in offenders.values() if o.loser_runs >= 2 or o.red_runs >= 2]
    flagged.sort(key=lambda o: (o.total_loss, -o.red_runs, -o.loser_runs, o.item_id, o.destination_location_id))
    return flagged[:limit]


class RobustnessAnalyzer:
    """Runs every strategy once per start date and ranks by downside.

    Example:
        >>> analyzer = RobustnessAnalyzer(runner)
        >>> report = analyzer.run(
        ...     strategies,
        ...     start_from=date(2025, 2, 1),
        ...     start_to=date(2025, 2, 28),
        ...     initial_capital=2e9,
        ... )
        >>> report.variant("NO_BLACKLIST").results[0].profit_p10
    """

    def __init__(self, runner: SimulationRunner):
        self.runner = runner
        self.config = runner.config

    def run(
        self,
        strategies: list[Strategy],
        start_from: date,
        start_to: date,
        initial_capital: float,
        step_days: int | None = None,
        max_days: int | None = None,
        price_model: PriceModel = PriceModel.AVG,
        sell_model: SellModel = SellModel.VOLUME_SHARE,
        sell_share_pct: float | None = None,
        reprices_per_day: int | None = None,
        red_margin_threshold_pct: float | None = None,
        inventory_mode: InventoryMode = InventoryMode.SKIP_EXISTING,
        blacklist: Blacklist | None = None,
        cancel_event: threading.Event | None = None,
    ) -> RobustnessReport:
        """Run the sweep with and (when given) without a blacklist.

        Args:
            strategies: Strategies to evaluate
            start_from: First start date
            start_to: Last start date (inclusive)
            initial_capital: Capital per run
            step_days: Days between start dates (default from config)
            max_days: Simulated days per run (default from config)
            price_model: Price statistic used for buying and valuation
            sell_model: Fill cap model
            sell_share_pct: Flat volume share (default from config)
            reprices_per_day: Reprice events per day (default: single-buy default)
            red_margin_threshold_pct: Red threshold override
            inventory_mode: Planning inventory mode
            blacklist: Compiled blacklist; adds a WITH_BLACKLIST variant
            cancel_event: Cooperative cancellation flag

        Returns:
            RobustnessReport with one variant per blacklist setting

        Raises:
            ValueError: If ``start_from`` is after ``start_to``
        """
        if start_from > start_to:
            raise ValueError("start_from must be <= start_to")

        orchestrator = self.config.orchestrator
        step = step_days or orchestrator.robustness_step_days
        days = max_days or orchestrator.robustness_max_days
        share = sell_share_pct if sell_share_pct is not None else self.config.simulation.sell_share_pct
        starts = date_range_inclusive(start_from, start_to)[::step]
        ordered = sorted(strategies, key=lambda s: (s.name, s.id))
        batch_runner = self.runner.for_batch()

        def run_variant(label: str, variant_blacklist: Blacklist | None) -> RobustnessVariant:
            work = [(strategy, start) for strategy in ordered for start in starts]
            logger.info("Robustness %s: %d strategies x %d starts", label, len(ordered), len(starts))

            def run_one(item: tuple[Strategy, date]) -> StartOutcome:
                strategy, start = item
                request = SimulationRequest(
                    strategy=strategy,
                    start_date=start,
                    initial_capital=initial_capital,
                    mode=SimulationMode.SINGLE_BUY,
                    price_model=price_model,
                    sell_model=sell_model,
                    sell_share_pct=share,
                    cycles=1,
                    cycle_days=days,
                    max_days=days,
                    inventory_mode=inventory_mode,
                    reprices_per_day=reprices_per_day,
                    red_margin_threshold_pct=red_margin_threshold_pct,
                    blacklist=variant_blacklist,
                )
                return StartOutcome(strategy.id, strategy.name, start, batch_runner.run(request, cancel_event))

            rows = BatchExecutor.run(
                work,
                run_one,
                max_workers=orchestrator.concurrency,
                cancel_event=cancel_event,
                on_cancelled=lambda item: StartOutcome(
                    item[0].id, item[0].name, item[1], RunOutcome.failed("cancelled")
                ),
            )

            results = [
                summarize_strategy(strategy, [r for r in rows if r.strategy_id == strategy.id])
                for strategy in ordered
            ]
            results.sort(key=StrategyRobustness.rank_key)
            return RobustnessVariant(
                label=label,
                results=results,
                repeat_offenders=repeat_offenders(rows, limit=orchestrator.max_repeat_offenders),
            )

        variants = [run_variant(NO_BLACKLIST, None)]
        if blacklist is not None:
            variants.append(run_variant(WITH_BLACKLIST, blacklist))

        return RobustnessReport(
            config={
                "start_from": start_from.isoformat(),
                "start_to": start_to.isoformat(),
                "step_days": step,
                "max_days": days,
                "initial_capital": initial_capital,
                "price_model": price_model.value,
                "sell_model": sell_model.value,
                "sell_share_pct": share,
                "reprices_per_day": reprices_per_day,
                "red_margin_threshold_pct": red_margin_threshold_pct,
                "inventory_mode": inventory_mode.value,
                "blacklist": blacklist.to_dict() if blacklist is not None else None,
            },
            starts=starts,
            variants=variants,
        )
