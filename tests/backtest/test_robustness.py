"""Tests for the start-date robustness sweep."""

from datetime import timedelta

import pytest
from conftest import DEST, ITEM, START, MarketBuilder, make_outcome, make_position, make_strategy

from tradelab_engine.backtest.robustness import (
    NO_BLACKLIST,
    WITH_BLACKLIST,
    RobustnessAnalyzer,
    StartOutcome,
    repeat_offenders,
    summarize_strategy,
)
from tradelab_engine.backtest.runner import RunOutcome
from tradelab_engine.core.state_machine import PositionState
from tradelab_engine.planning.liquidity import compile_blacklist


def _row(profit: float, offset: int, positions=()) -> StartOutcome:
    return StartOutcome("s1", "s1", START + timedelta(days=offset), make_outcome(profit, positions=positions))


class TestSummaries:
    """Test suite for robustness statistics."""

    def test_distribution_and_extremes(self) -> None:
        rows = [_row(p, i) for i, p in enumerate([-10.0, 5.0, 20.0, 40.0, 60.0])]
        rows.append(StartOutcome("s1", "s1", START, RunOutcome.failed("boom")))
        result = summarize_strategy(make_strategy(), rows)

        assert result.runs == 5
        assert result.failed == 1
        assert result.loss_rate == pytest.approx(0.2)
        assert result.profit_median == 20.0
        assert result.profit_p10 == pytest.approx(-4.0)
        assert result.best_start == START + timedelta(days=4)
        assert result.worst_profit == -10.0

    def test_repeat_offenders(self) -> None:
        red = make_position(ITEM, 100.0, PositionState.RED)
        loser = make_position(35, -50.0)
        rows = [
            _row(0.0, 0, [red, loser]),
            _row(0.0, 1, [red, loser]),
            _row(0.0, 2, [make_position(36, -1.0)]),
        ]
        offenders = repeat_offenders(rows)
        assert [o.item_id for o in offenders] == [35, ITEM]
        assert offenders[0].loser_runs == 2
        assert offenders[0].total_loss == -100.0
        assert offenders[1].red_runs == 2
        assert offenders[1].total_loss == 0.0


class TestRobustnessAnalyzer:
    """Test suite for RobustnessAnalyzer runs."""

    def test_invalid_range(self, market: MarketBuilder, runner_factory) -> None:
        with pytest.raises(ValueError):
            RobustnessAnalyzer(runner_factory(market)).run(
                [make_strategy()], start_from=START, start_to=START - timedelta(days=1), initial_capital=1e9
            )

    def test_variants_and_starts(self, market: MarketBuilder, runner_factory) -> None:
        """A blacklist adds a second variant over the same start dates."""
        market.arbitrage()
        report = RobustnessAnalyzer(runner_factory(market)).run(
            [make_strategy()],
            start_from=START,
            start_to=START + timedelta(days=4),
            initial_capital=1e9,
            step_days=2,
            max_days=14,
            blacklist=compile_blacklist(by_destination={DEST: [ITEM]}),
        )

        assert report.starts == [START, START + timedelta(days=2), START + timedelta(days=4)]
        baseline = report.variant(NO_BLACKLIST).results[0]
        assert baseline.runs == 3
        assert baseline.loss_rate == 0.0
        assert baseline.profit_p10 > 0
        blacklisted = report.variant(WITH_BLACKLIST).results[0]
        assert blacklisted.profit_median == 0.0
        assert report.to_dict()["config"]["max_days"] == 14

    def test_red_pair_is_repeat_offender(self, market: MarketBuilder, runner_factory) -> None:
        market.arbitrage()
        market.flat(DEST, ITEM, START + timedelta(days=3), START + timedelta(days=40), 4_000)
        report = RobustnessAnalyzer(runner_factory(market)).run(
            [make_strategy()],
            start_from=START,
            start_to=START + timedelta(days=4),
            initial_capital=1e9,
            step_days=2,
            max_days=14,
        )

        variant = report.variant(NO_BLACKLIST)
        assert report.variant(WITH_BLACKLIST) is None
        offender = variant.repeat_offenders[0]
        assert (offender.destination_location_id, offender.item_id) == (DEST, ITEM)
        assert offender.red_runs == 2
        assert offender.strategies == {"s1"}

    def test_pair_losing_in_three_of_five_starts(self, market: MarketBuilder, runner_factory) -> None:
        """A crash on day four turns the later starts into losers without going red."""
        market.arbitrage()
        market.flat(DEST, ITEM, START + timedelta(days=4), START + timedelta(days=40), 4_000)
        report = RobustnessAnalyzer(runner_factory(market)).run(
            [make_strategy()],
            start_from=START,
            start_to=START + timedelta(days=4),
            initial_capital=1e9,
            step_days=1,
            max_days=14,
            red_margin_threshold_pct=-100.0,
        )

        variant = report.variant(NO_BLACKLIST)
        assert len(report.starts) == 5
        result = variant.results[0]
        assert result.runs == 5
        assert result.loss_rate == pytest.approx(0.6)
        assert result.best_start == START

        offender = variant.repeat_offenders[0]
        assert (offender.destination_location_id, offender.item_id) == (DEST, ITEM)
        assert offender.runs == 5
        assert offender.loser_runs == 3
        assert offender.red_runs == 0
