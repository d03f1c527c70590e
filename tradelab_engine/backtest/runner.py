"""Simulation runner: one persisted run per request."""

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any

from tradelab_engine.backtest.calibration import CaptureCalibrator
from tradelab_engine.backtest.repository import RunRepository
from tradelab_engine.backtest.simulator import CycleSimulator
from tradelab_engine.cache.liquidity import LiquiditySnapshotCache, SnapshotSource
from tradelab_engine.config.models import LabConfig
from tradelab_engine.core.state_machine import RunStatus
from tradelab_engine.market_data.provider import MarketDataProvider
from tradelab_engine.models.run import PositionSnapshot, SimulationRequest, SimulationSummary
from tradelab_engine.monitoring.metrics import LabMetrics
from tradelab_engine.planning.packager import PackagePlanner
from tradelab_engine.planning.plan_builder import HistoricalPlanBuilder
from tradelab_engine.pricing.resolver import PriceResolver

logger = logging.getLogger(__name__)


@dataclass
class RunOutcome:
    """What a batch item gets back from one run."""

    run_id: str | None
    status: RunStatus
    error: str | None = None
    summary: SimulationSummary | None = None
    positions: list[PositionSnapshot] = field(default_factory=list)

    @property
    def completed(self) -> bool:
        return self.status == RunStatus.COMPLETED

    @classmethod
    def failed(cls, error: str, run_id: str | None = None) -> "RunOutcome":
        return cls(run_id=run_id, status=RunStatus.FAILED, error=error)

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "status": self.status.value,
            "error": self.error,
            "summary": self.summary.to_dict() if self.summary else None,
        }


class SimulationRunner:
    """Wires the market data stack into a simulator and persists each run.

    Per run: insert a RUNNING record, simulate, then write everything and mark
    COMPLETED, or mark FAILED with the error message. A failure never
    propagates to the caller, so one bad run cannot take down a batch.

    Example:
        >>> runner = SimulationRunner(provider, GreedyPackagePlanner(), RunRepository())
        >>> outcome = runner.run(SimulationRequest(strategy, date(2025, 3, 1), 2e9))
        >>> outcome.status
        <RunStatus.COMPLETED: 'COMPLETED'>
    """

    def __init__(
        self,
        provider: MarketDataProvider,
        planner: PackagePlanner,
        repository: RunRepository,
        config: LabConfig | None = None,
        metrics: LabMetrics | None = None,
        snapshots: SnapshotSource | None = None,
    ):
        """Initialize runner.

        Args:
            provider: Market data source
            planner: Package planner used by the plan builder
            repository: Run store
            config: Engine configuration (default: built-in defaults)
            metrics: Optional Prometheus metrics
            snapshots: Liquidity snapshot source (default: a new memoizing cache)
        """
        self.provider = provider
        self.planner = planner
        self.repository = repository
        self.config = config or LabConfig()
        self.metrics = metrics
        self.snapshots = snapshots or LiquiditySnapshotCache(provider, metrics)

        self.resolver = PriceResolver(provider)
        self.plan_builder = HistoricalPlanBuilder(
            resolver=self.resolver,
            planner=planner,
            snapshots=self.snapshots,
            fee_defaults=self.config.fees,
            liquidity_defaults=self.config.liquidity,
        )
        self.simulator = CycleSimulator(
            plan_builder=self.plan_builder,
            resolver=self.resolver,
            calibrator=CaptureCalibrator(provider),
            config=self.config,
            metrics=metrics,
        )

    def for_batch(self) -> "SimulationRunner":
        """A runner sharing provider, planner and store, with its own liquidity cache."""
        return SimulationRunner(
            provider=self.provider,
            planner=self.planner,
            repository=self.repository,
            config=self.config,
            metrics=self.metrics,
        )

    def run(
        self,
        request: SimulationRequest,
        cancel_event: threading.Event | None = None,
    ) -> RunOutcome:
        """Simulate and persist one run.

        Args:
            request: What to simulate
            cancel_event: Cooperative cancellation flag

        Returns:
            Outcome with status, error message and, if completed, the summary
        """
        run_id = self.repository.create_run(request)
        started = time.monotonic()
        try:
            result = self.simulator.simulate(request, cancel_event)
            self.repository.complete_run(run_id, result)
        except Exception as exc:
            logger.exception("Run %s (%s from %s) failed", run_id, request.strategy.id, request.start_date)
            self.repository.fail_run(run_id, str(exc))
            self._record(RunStatus.FAILED, started)
            return RunOutcome.failed(str(exc), run_id=run_id)

        self._record(RunStatus.COMPLETED, started)
        summary = result.summary
        logger.info(
            "Run %s (%s from %s) completed: profit %.0f, ROI %.2f%%, max DD %.2f%%",
            run_id,
            request.strategy.id,
            request.start_date,
            summary.total_profit,
            summary.roi_pct,
            summary.max_drawdown_pct,
        )
        return RunOutcome(
            run_id=run_id,
            status=RunStatus.COMPLETED,
            summary=summary,
            positions=result.positions,
        )

    def _record(self, status: RunStatus, started: float) -> None:
        if self.metrics is not None:
            self.metrics.record_run(status.value, time.monotonic() - started)
