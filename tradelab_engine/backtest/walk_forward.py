"""Walk-Forward Analysis for trade strategies.

Each window trains on the ``train_window_days`` before ``test_start`` (the
liquidity window the plan builder sees) and then simulates the
``test_window_days`` that follow, so every plan is built from data the
strategy could actually have seen.
"""

import logging
import threading
from dataclasses import dataclass, field
from datetime import date, timedelta
from typing import Any

from tradelab_engine.backtest.pool import BatchExecutor
from tradelab_engine.backtest.runner import RunOutcome, SimulationRunner
from tradelab_engine.backtest.statistics import distribution, sort_key_desc
from tradelab_engine.core.state_machine import RunStatus
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.run import SellModel, SimulationMode, SimulationRequest
from tradelab_engine.models.strategy import Strategy
from tradelab_engine.planning.liquidity import Blacklist

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalkForwardWindow:
    """Date layout of one walk-forward window."""

    window_id: int
    train_start: date
    train_end: date
    test_start: date
    test_end: date


@dataclass
class WindowResult:
    """Outcome of the run for one window."""

    window: WalkForwardWindow
    outcome: RunOutcome

    def to_dict(self) -> dict[str, Any]:
        return {
            "window_id": self.window.window_id,
            "train_start": self.window.train_start.isoformat(),
            "train_end": self.window.train_end.isoformat(),
            "test_start": self.window.test_start.isoformat(),
            "test_end": self.window.test_end.isoformat(),
            **self.outcome.to_dict(),
        }


@dataclass
class LoserSuggestion:
    """A (destination, item) pair that lost money in several runs."""

    destination_location_id: int
    item_id: int
    loser_runs: int = 0
    total_loss: float = 0.0
    strategies: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination_location_id": self.destination_location_id,
            "item_id": self.item_id,
            "loser_runs": self.loser_runs,
            "total_loss": self.total_loss,
            "strategies": list(self.strategies),
        }


@dataclass
class WalkForwardAggregates:
    """Distribution of outcomes over COMPLETED windows."""

    runs: int = 0
    completed: int = 0
    failed: int = 0
    win_rate: float | None = None
    roi_median: float | None = None
    roi_p10: float | None = None
    roi_p90: float | None = None
    max_drawdown_worst: float | None = None
    profit_median: float | None = None
    profit_p10: float | None = None
    profit_p90: float | None = None
    relist_fees_median: float | None = None
    relist_fees_p10: float | None = None
    relist_fees_p90: float | None = None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class WalkForwardReport:
    """Per-window rows, aggregates and blacklist suggestions for one strategy."""

    strategy_id: str
    strategy_name: str
    config: dict[str, Any]
    windows: list[WindowResult] = field(default_factory=list)
    aggregates: WalkForwardAggregates = field(default_factory=WalkForwardAggregates)
    blacklist_suggestions: list[LoserSuggestion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return {
            "strategy": {"id": self.strategy_id, "name": self.strategy_name},
            "config": self.config,
            "windows": [w.to_dict() for w in self.windows],
            "aggregates": self.aggregates.to_dict(),
            "blacklist_suggestions": [s.to_dict() for s in self.blacklist_suggestions],
        }


@dataclass
class WalkForwardAllReport:
    """Walk-forward across many strategies, ranked by median ROI."""

    results: list[WalkForwardReport] = field(default_factory=list)
    global_blacklist_suggestions: list[LoserSuggestion] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "results": [r.to_dict() for r in self.results],
            "global_blacklist_suggestions": [s.to_dict() for s in self.global_blacklist_suggestions],
        }


def aggregate_windows(outcomes: list[RunOutcome]) -> WalkForwardAggregates:
    """Compute aggregates; only COMPLETED outcomes contribute to distributions."""
    completed = [o.summary for o in outcomes if o.completed and o.summary is not None]
    agg = WalkForwardAggregates(
        runs=len(outcomes),
        completed=len(completed),
        failed=sum(1 for o in outcomes if o.status == RunStatus.FAILED),
    )
    if not completed:
        return agg

    profits = [s.total_profit for s in completed]
    agg.win_rate = sum(1 for p in profits if p > 0) / len(profits)
    agg.roi_median, agg.roi_p10, agg.roi_p90 = distribution(s.roi_pct for s in completed)
    agg.max_drawdown_worst = max(s.max_drawdown_pct for s in completed)
    agg.profit_median, agg.profit_p10, agg.profit_p90 = distribution(profits)
    agg.relist_fees_median, agg.relist_fees_p10, agg.relist_fees_p90 = distribution(
        s.total_relist_fees for s in completed
    )
    return agg


def recurring_losers(outcomes: list[RunOutcome], min_runs: int = 2, limit: int = 25) -> list[LoserSuggestion]:
    """Pairs with negative realized profit in at least ``min_runs`` outcomes, worst first."""
    losers: dict[tuple[int, int], LoserSuggestion] = {}
    for outcome in outcomes:
        if not outcome.completed:
            continue
        for pos in outcome.positions:
            if pos.realized_profit >= 0:
                continue
            key = (pos.destination_location_id, pos.item_id)
            entry = losers.get(key)
            if entry is None:
                entry = LoserSuggestion(destination_location_id=key[0], item_id=key[1])
                losers[key] = entry
            entry.loser_runs += 1
            entry.total_loss += pos.realized_profit

    recurring = [s for s in losers.values() if s.loser_runs >= min_runs]
    recurring.sort(key=lambda s: (s.total_loss, s.destination_location_id, s.item_id))
    return recurring[:limit]


class WalkForwardAnalyzer:
    """Walk-forward validation of trade strategies.

    Process (per strategy):
        1. Lay out consecutive test windows from ``start_date``, stepping
           ``step_days``, until a window would end after ``end_date``
        2. Plan each window with a liquidity window equal to the train window
        3. Simulate each test window once (WINDOW mode, one cycle)
        4. Aggregate the COMPLETED windows and collect recurring losers

    Example:
        >>> analyzer = WalkForwardAnalyzer(runner)
        >>> report = analyzer.run(
        ...     strategy,
        ...     start_date=date(2025, 1, 1),
        ...     end_date=date(2025, 3, 31),
        ...     train_window_days=14,
        ...     test_window_days=14,
        ...     initial_capital=2e9,
        ... )
        >>> print(report.aggregates.roi_median)
    """

    def __init__(self, runner: SimulationRunner):
        """Initialize walk-forward analyzer.

        Args:
            runner: Runner used to simulate and persist each window
        """
        self.runner = runner
        self.config = runner.config

    @staticmethod
    def build_windows(
        start_date: date,
        end_date: date,
        train_window_days: int,
        test_window_days: int,
        step_days: int,
        max_runs: int,
    ) -> list[WalkForwardWindow]:
        if train_window_days < 1 or test_window_days < 1 or step_days < 1:
            raise ValueError("train, test and step windows must be >= 1 day")

        windows = []
        cursor = start_date
        for window_id in range(max_runs):
            test_end = cursor + timedelta(days=test_window_days - 1)
            if test_end > end_date:
                break
            windows.append(
                WalkForwardWindow(
                    window_id=window_id,
                    train_start=cursor - timedelta(days=train_window_days),
                    train_end=cursor - timedelta(days=1),
                    test_start=cursor,
                    test_end=test_end,
                )
            )
            cursor += timedelta(days=step_days)
        return windows

    def run(
        self,
        strategy: Strategy,
        start_date: date,
        end_date: date,
        train_window_days: int,
        test_window_days: int,
        initial_capital: float,
        step_days: int | None = None,
        max_runs: int | None = None,
        price_model: PriceModel = PriceModel.LOW,
        sell_model: SellModel = SellModel.VOLUME_SHARE,
        sell_share_pct: float | None = None,
        blacklist: Blacklist | None = None,
        cancel_event: threading.Event | None = None,
        runner: SimulationRunner | None = None,
        concurrency: int | None = None,
    ) -> WalkForwardReport:
        """Run walk-forward analysis for one strategy.

        Args:
            strategy: Strategy to evaluate
            start_date: First test day of the first window
            end_date: Last day any test window may cover
            train_window_days: Liquidity window used for planning
            test_window_days: Simulated days per window
            initial_capital: Capital per window run
            step_days: Days between window starts (default: the test window)
            max_runs: Window cap (default from config)
            price_model: Price statistic used for buying and valuation
            sell_model: Fill cap model
            sell_share_pct: Flat volume share (default from config)
            blacklist: Optional exclusions applied to planning
            cancel_event: Cooperative cancellation flag
            runner: Runner to use instead of a fresh per-batch one
            concurrency: Window workers (default from config)

        Returns:
            WalkForwardReport with per-window rows and aggregates
        """
        step = step_days or test_window_days
        runs_cap = max_runs or self.config.orchestrator.max_runs
        share = sell_share_pct if sell_share_pct is not None else self.config.simulation.sell_share_pct
        windows = self.build_windows(start_date, end_date, train_window_days, test_window_days, step, runs_cap)
        batch_runner = runner or self.runner.for_batch()

        logger.info(
            "Walk-forward %s: %d windows %s..%s (train %dd, test %dd, step %dd)",
            strategy.id,
            len(windows),
            start_date,
            end_date,
            train_window_days,
            test_window_days,
            step,
        )

        def run_window(window: WalkForwardWindow) -> RunOutcome:
            request = SimulationRequest(
                strategy=strategy,
                start_date=window.test_start,
                initial_capital=initial_capital,
                mode=SimulationMode.WINDOW,
                price_model=price_model,
                sell_model=sell_model,
                sell_share_pct=share,
                cycles=1,
                cycle_days=test_window_days,
                liquidity_window_days=train_window_days,
                blacklist=blacklist,
            )
            return batch_runner.run(request, cancel_event)

        outcomes = BatchExecutor.run(
            windows,
            run_window,
            max_workers=concurrency or self.config.orchestrator.concurrency,
            cancel_event=cancel_event,
            on_cancelled=lambda _window: RunOutcome.failed("cancelled"),
        )

        report = WalkForwardReport(
            strategy_id=strategy.id,
            strategy_name=strategy.name,
            config={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "train_window_days": train_window_days,
                "test_window_days": test_window_days,
                "step_days": step,
                "max_runs": runs_cap,
                "initial_capital": initial_capital,
                "price_model": price_model.value,
                "sell_model": sell_model.value,
                "sell_share_pct": share,
            },
            windows=[WindowResult(window=w, outcome=o) for w, o in zip(windows, outcomes)],
            aggregates=aggregate_windows(outcomes),
            blacklist_suggestions=recurring_losers(
                outcomes, limit=self.config.orchestrator.max_blacklist_suggestions
            ),
        )
        for suggestion in report.blacklist_suggestions:
            suggestion.strategies = [strategy.id]

        logger.info(
            "Walk-forward %s done: %d/%d completed, ROI median %s",
            strategy.id,
            report.aggregates.completed,
            report.aggregates.runs,
            report.aggregates.roi_median,
        )
        return report

    def run_all(
        self,
        strategies: list[Strategy],
        start_date: date,
        end_date: date,
        train_window_days: int,
        test_window_days: int,
        initial_capital: float,
        cancel_event: threading.Event | None = None,
        **kwargs: Any,
    ) -> WalkForwardAllReport:
        """Walk-forward every strategy over the same windows.

        Strategies run in name order against one shared liquidity cache.
        Reports are ranked by median ROI with missing values last; pairs that
        recur as losers for at least two strategies become global suggestions.
        """
        batch_runner = self.runner.for_batch()
        reports = [
            self.run(
                strategy,
                start_date=start_date,
                end_date=end_date,
                train_window_days=train_window_days,
                test_window_days=test_window_days,
                initial_capital=initial_capital,
                cancel_event=cancel_event,
                runner=batch_runner,
                **kwargs,
            )
            for strategy in sorted(strategies, key=lambda s: (s.name, s.id))
        ]
        reports.sort(key=lambda r: sort_key_desc(r.aggregates.roi_median))

        merged: dict[tuple[int, int], LoserSuggestion] = {}
        for report in reports:
            for suggestion in report.blacklist_suggestions:
                key = (suggestion.destination_location_id, suggestion.item_id)
                entry = merged.get(key)
                if entry is None:
                    entry = LoserSuggestion(destination_location_id=key[0], item_id=key[1])
                    merged[key] = entry
                entry.loser_runs += suggestion.loser_runs
                entry.total_loss += suggestion.total_loss
                entry.strategies.append(report.strategy_id)

        global_suggestions = [s for s in merged.values() if len(s.strategies) >= 2]
        global_suggestions.sort(key=lambda s: (s.total_loss, s.destination_location_id, s.item_id))
        return WalkForwardAllReport(
            results=reports,
            global_blacklist_suggestions=global_suggestions[: self.config.orchestrator.max_repeat_offenders],
        )
