"""Backtesting framework for the strategy lab engine.

This module replays historical market data through the purchase planner and a
day-by-day listing and selling model, then aggregates runs into scenario
reports.

Key Components:
    - CycleSimulator: Day loop over positions (list, reprice, sell, rebuy)
    - CaptureCalibrator: Empirical capture shares from own sales
    - RunRepository: SQLite storage for runs, positions and day records
    - SimulationRunner: One persisted run per request
    - WalkForwardAnalyzer: Rolling train/test windows
    - LabSweep: Strategies x price models x sell shares
    - RobustnessAnalyzer: Single-buy runs across start dates

Example:
    >>> from tradelab_engine.backtest import SimulationRunner, WalkForwardAnalyzer
    >>> runner = SimulationRunner(provider, GreedyPackagePlanner(), RunRepository())
    >>> report = WalkForwardAnalyzer(runner).run(strategy, start, end, 14, 14, 2e9)
    >>> print(report.aggregates.roi_median)
"""

from tradelab_engine.backtest.calibration import CaptureCalibration, CaptureCalibrator
from tradelab_engine.backtest.metrics import NavCurve
from tradelab_engine.backtest.pool import BatchExecutor
from tradelab_engine.backtest.position import Position
from tradelab_engine.backtest.repository import RunRepository
from tradelab_engine.backtest.robustness import RobustnessAnalyzer, RobustnessReport
from tradelab_engine.backtest.runner import RunOutcome, SimulationRunner
from tradelab_engine.backtest.simulator import CycleSimulator
from tradelab_engine.backtest.sweep import LabSweep, LabSweepReport, scenario_score
from tradelab_engine.backtest.walk_forward import (
    WalkForwardAllReport,
    WalkForwardAnalyzer,
    WalkForwardReport,
)

__all__ = [
    "BatchExecutor",
    "CaptureCalibration",
    "CaptureCalibrator",
    "CycleSimulator",
    "LabSweep",
    "LabSweepReport",
    "NavCurve",
    "Position",
    "RobustnessAnalyzer",
    "RobustnessReport",
    "RunOutcome",
    "RunRepository",
    "SimulationRunner",
    "WalkForwardAllReport",
    "WalkForwardAnalyzer",
    "WalkForwardReport",
    "scenario_score",
]
