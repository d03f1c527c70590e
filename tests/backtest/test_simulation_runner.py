"""Tests for SimulationRunner."""

import threading

from conftest import START, MarketBuilder, make_strategy

from tradelab_engine.backtest.runner import RunOutcome, SimulationRunner
from tradelab_engine.core.state_machine import RunStatus
from tradelab_engine.models.plan import PlanResult
from tradelab_engine.models.run import SimulationRequest
from tradelab_engine.planning.packager import PackagePlanner


class ExplodingPlanner(PackagePlanner):
    def plan(self, candidates, budget, constraints) -> PlanResult:
        raise RuntimeError("planner exploded")


def _request() -> SimulationRequest:
    return SimulationRequest(strategy=make_strategy(), start_date=START, initial_capital=1e9, cycle_days=14)


class TestSimulationRunner:
    """Test suite for SimulationRunner."""

    def test_completed_run(self, market: MarketBuilder, runner_factory, repository, metrics) -> None:
        market.arbitrage()
        outcome = runner_factory(market).run(_request())

        assert outcome.completed
        assert outcome.summary is not None
        assert outcome.summary.realized_profit > 0
        assert len(outcome.positions) == 1
        assert repository.get_run(outcome.run_id).status == RunStatus.COMPLETED.value
        assert metrics.runs_total("COMPLETED") == 1.0

    def test_failure_is_recorded_not_raised(self, market: MarketBuilder, repository, metrics, lab_config) -> None:
        """A failing run is stored as FAILED and reported, never raised."""
        market.arbitrage()
        runner = SimulationRunner(market.provider(), ExplodingPlanner(), repository, lab_config, metrics)
        outcome = runner.run(_request())

        assert outcome.status == RunStatus.FAILED
        assert outcome.error == "planner exploded"
        record = repository.get_run(outcome.run_id)
        assert record.status == RunStatus.FAILED.value
        assert record.error == "planner exploded"
        assert repository.list_days(outcome.run_id) == []
        assert metrics.runs_total("FAILED") == 1.0

    def test_cancelled_run_fails(self, market: MarketBuilder, runner_factory) -> None:
        market.arbitrage()
        cancel = threading.Event()
        cancel.set()
        outcome = runner_factory(market).run(_request(), cancel)
        assert outcome.status == RunStatus.FAILED
        assert "cancelled" in outcome.error

    def test_for_batch_has_own_cache(self, market: MarketBuilder, runner_factory) -> None:
        market.arbitrage()
        runner = runner_factory(market)
        batch = runner.for_batch()
        assert batch.snapshots is not runner.snapshots
        assert batch.repository is runner.repository

    def test_batch_shares_snapshots_across_runs(self, market: MarketBuilder, runner_factory, metrics) -> None:
        market.arbitrage()
        batch = runner_factory(market).for_batch()
        batch.run(_request())
        batch.run(_request())
        assert metrics.cache_lookups("miss") == 1.0
        assert metrics.cache_lookups("hit") == 1.0

    def test_outcome_to_dict(self) -> None:
        outcome = RunOutcome.failed("boom", run_id="r1")
        assert outcome.to_dict() == {"run_id": "r1", "status": "FAILED", "error": "boom", "summary": None}
