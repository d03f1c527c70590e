"""Lab sweep: every strategy under every (price model, sell share) scenario.

Each scenario is a full walk-forward. Scenarios are scored so that ROI
dominates, drawdown is a risk penalty and relist spend a light operational
penalty::

    score = roi_median - 0.15 x worst_drawdown - 0.05 x (relist_fees_median / capital x 100)

Strategies are ranked on how their score holds up at the most pessimistic
(lowest) sell share, then across sell shares.
"""

import logging
import math
import threading
from dataclasses import dataclass, field
from datetime import date
from typing import Any

from tradelab_engine.backtest.pool import BatchExecutor
from tradelab_engine.backtest.runner import SimulationRunner
from tradelab_engine.backtest.statistics import median, sort_key_desc
from tradelab_engine.backtest.walk_forward import WalkForwardAnalyzer
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.run import SellModel
from tradelab_engine.models.strategy import Strategy

logger = logging.getLogger(__name__)

DRAWDOWN_PENALTY = 0.15
RELIST_PENALTY = 0.05


def scenario_score(
    roi_median: float | None,
    worst_drawdown: float | None,
    relist_fees_median: float | None,
    initial_capital: float,
) -> float | None:
    """Score one scenario; None when any input is missing."""
    if roi_median is None or worst_drawdown is None or relist_fees_median is None:
        return None
    relist_pct = relist_fees_median / initial_capital * 100.0
    return roi_median - DRAWDOWN_PENALTY * worst_drawdown - RELIST_PENALTY * relist_pct


@dataclass(frozen=True)
class Scenario:
    price_model: PriceModel
    sell_share_pct: float


@dataclass
class ScenarioScore:
    """Walk-forward aggregates and score of one (strategy, scenario)."""

    strategy_id: str
    strategy_name: str
    scenario: Scenario
    roi_median: float | None = None
    worst_drawdown: float | None = None
    win_rate: float | None = None
    relist_fees_median: float | None = None
    score: float | None = None
    note: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "price_model": self.scenario.price_model.value,
            "sell_share_pct": self.scenario.sell_share_pct,
            "roi_median": self.roi_median,
            "worst_drawdown": self.worst_drawdown,
            "win_rate": self.win_rate,
            "relist_fees_median": self.relist_fees_median,
            "score": None if self.score is not None and math.isinf(self.score) else self.score,
            "note": self.note,
        }


@dataclass
class SellShareSummary:
    """Medians across price models for one sell share."""

    sell_share_pct: float
    score_median: float | None
    roi_median: float | None
    worst_drawdown_median: float | None
    relist_fees_median: float | None

    def to_dict(self) -> dict[str, Any]:
        return dict(self.__dict__)


@dataclass
class StrategySweepResult:
    """All scenario scores of one strategy plus its robustness statistics."""

    strategy_id: str
    strategy_name: str
    scenario_scores: list[ScenarioScore] = field(default_factory=list)
    overall_score: float | None = None
    by_sell_share: list[SellShareSummary] = field(default_factory=list)
    score_at_min_sell_share: float | None = None
    score_min_across_shares: float | None = None
    score_median_across_shares: float | None = None

    def rank_key(self) -> tuple:
        return (
            sort_key_desc(self.score_at_min_sell_share),
            sort_key_desc(self.score_min_across_shares),
            sort_key_desc(self.score_median_across_shares),
            sort_key_desc(self.overall_score),
            self.strategy_name,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "strategy": {"id": self.strategy_id, "name": self.strategy_name},
            "scenario_scores": [s.to_dict() for s in self.scenario_scores],
            "overall_score": self.overall_score,
            "by_sell_share": [s.to_dict() for s in self.by_sell_share],
            "score_at_min_sell_share": self.score_at_min_sell_share,
            "score_min_across_shares": self.score_min_across_shares,
            "score_median_across_shares": self.score_median_across_shares,
        }


@dataclass
class LabSweepReport:
    config: dict[str, Any]
    results: list[StrategySweepResult] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"config": self.config, "results": [r.to_dict() for r in self.results]}


def summarize_strategy(strategy_id: str, strategy_name: str, scores: list[ScenarioScore]) -> StrategySweepResult:
    """Collapse scenario scores into the per-strategy robustness statistics."""
    result = StrategySweepResult(strategy_id=strategy_id, strategy_name=strategy_name, scenario_scores=scores)
    result.overall_score = median(s.score for s in scores)

    shares = sorted({s.scenario.sell_share_pct for s in scores})
    for share in shares:
        rows = [s for s in scores if s.scenario.sell_share_pct == share]
        result.by_sell_share.append(
            SellShareSummary(
                sell_share_pct=share,
                score_median=median(r.score for r in rows),
                roi_median=median(r.roi_median for r in rows),
                worst_drawdown_median=median(r.worst_drawdown for r in rows),
                relist_fees_median=median(r.relist_fees_median for r in rows),
            )
        )

    share_scores = [s.score_median for s in result.by_sell_share if s.score_median is not None]
    if share_scores:
        result.score_median_across_shares = median(share_scores)
        result.score_min_across_shares = min(share_scores)
    if result.by_sell_share:
        result.score_at_min_sell_share = result.by_sell_share[0].score_median
    return result


class LabSweep:
    """Scores strategies across price models and sell shares.

    Example:
        >>> sweep = LabSweep(runner)
        >>> report = sweep.run(
        ...     strategies,
        ...     start_date=date(2025, 1, 1),
        ...     end_date=date(2025, 3, 31),
        ...     train_window_days=14,
        ...     test_window_days=14,
        ...     initial_capital=2e9,
        ...     price_models=[PriceModel.LOW, PriceModel.AVG],
        ...     sell_share_pcts=[0.02, 0.05],
        ... )
        >>> report.results[0].strategy_name
    """

    def __init__(self, runner: SimulationRunner):
        self.runner = runner
        self.config = runner.config

    def run(
        self,
        strategies: list[Strategy],
        start_date: date,
        end_date: date,
        train_window_days: int,
        test_window_days: int,
        initial_capital: float,
        price_models: list[PriceModel],
        sell_share_pcts: list[float],
        step_days: int | None = None,
        max_runs: int | None = None,
        sell_model: SellModel = SellModel.VOLUME_SHARE,
        cancel_event: threading.Event | None = None,
    ) -> LabSweepReport:
        """Run the sweep.

        Args:
            strategies: Strategies to score
            start_date: First walk-forward test day
            end_date: Last day any test window may cover
            train_window_days: Walk-forward train window
            test_window_days: Walk-forward test window
            initial_capital: Capital per window run
            price_models: Price models to sweep
            sell_share_pcts: Sell shares to sweep
            step_days: Walk-forward step (default: the test window)
            max_runs: Walk-forward window cap
            sell_model: Fill cap model
            cancel_event: Cooperative cancellation flag

        Returns:
            LabSweepReport with strategies ranked best first
        """
        scenarios = [Scenario(pm, share) for pm in price_models for share in sell_share_pcts]
        ordered = sorted(strategies, key=lambda s: (s.name, s.id))
        work = [(strategy, scenario) for strategy in ordered for scenario in scenarios]
        batch_runner = self.runner.for_batch()
        analyzer = WalkForwardAnalyzer(batch_runner)

        logger.info(
            "Lab sweep: %d strategies x %d scenarios (%s..%s)",
            len(ordered),
            len(scenarios),
            start_date,
            end_date,
        )

        def score_item(item: tuple[Strategy, Scenario]) -> ScenarioScore:
            strategy, scenario = item
            try:
                report = analyzer.run(
                    strategy,
                    start_date=start_date,
                    end_date=end_date,
                    train_window_days=train_window_days,
                    test_window_days=test_window_days,
                    initial_capital=initial_capital,
                    step_days=step_days,
                    max_runs=max_runs,
                    price_model=scenario.price_model,
                    sell_model=sell_model,
                    sell_share_pct=scenario.sell_share_pct,
                    cancel_event=cancel_event,
                    runner=batch_runner,
                    concurrency=1,
                )
            except Exception as exc:
                logger.warning("Sweep item %s %s failed: %s", strategy.id, scenario, exc)
                return _failed_score(strategy, scenario, str(exc))

            agg = report.aggregates
            if agg.completed == 0:
                errors = [w.outcome.error for w in report.windows if w.outcome.error]
                message = errors[0] if errors else "no completed windows"
                return _failed_score(strategy, scenario, message)

            return ScenarioScore(
                strategy_id=strategy.id,
                strategy_name=strategy.name,
                scenario=scenario,
                roi_median=agg.roi_median,
                worst_drawdown=agg.max_drawdown_worst,
                win_rate=agg.win_rate,
                relist_fees_median=agg.relist_fees_median,
                score=scenario_score(agg.roi_median, agg.max_drawdown_worst, agg.relist_fees_median, initial_capital),
            )

        scored = BatchExecutor.run(
            work,
            score_item,
            max_workers=self.config.orchestrator.concurrency,
            cancel_event=cancel_event,
            on_cancelled=lambda item: _failed_score(item[0], item[1], "cancelled"),
        )

        results = []
        for strategy in ordered:
            rows = [s for s in scored if s.strategy_id == strategy.id]
            results.append(summarize_strategy(strategy.id, strategy.name, rows))
        results.sort(key=StrategySweepResult.rank_key)

        return LabSweepReport(
            config={
                "start_date": start_date.isoformat(),
                "end_date": end_date.isoformat(),
                "train_window_days": train_window_days,
                "test_window_days": test_window_days,
                "step_days": step_days or test_window_days,
                "max_runs": max_runs or self.config.orchestrator.max_runs,
                "initial_capital": initial_capital,
                "sell_model": sell_model.value,
                "price_models": [pm.value for pm in price_models],
                "sell_share_pcts": list(sell_share_pcts),
            },
            results=results,
        )


def _failed_score(strategy: Strategy, scenario: Scenario, message: str) -> ScenarioScore:
    return ScenarioScore(
        strategy_id=strategy.id,
        strategy_name=strategy.name,
        scenario=scenario,
        score=-math.inf,
        note=f"FAILED: {message}",
    )
