"""Data models for market observations, plans, strategies and runs."""

from .market import (
    DestinationLiquidity,
    LiquidityItem,
    LiquiditySnapshot,
    PriceModel,
    PriceObservation,
    PriceQuote,
)
from .plan import (
    DestinationCandidates,
    HistoricalPlan,
    PackedItem,
    PackingConstraints,
    PlanCandidate,
    PlanPackage,
    PlanResult,
)
from .run import (
    CycleReport,
    DayRecord,
    InventoryMode,
    PositionSnapshot,
    SellModel,
    SimulationMode,
    SimulationRequest,
    SimulationResult,
    SimulationSummary,
)
from .strategy import Strategy, StrategyParams

__all__ = [
    "CycleReport",
    "DayRecord",
    "DestinationCandidates",
    "DestinationLiquidity",
    "HistoricalPlan",
    "InventoryMode",
    "LiquidityItem",
    "LiquiditySnapshot",
    "PackedItem",
    "PackingConstraints",
    "PlanCandidate",
    "PlanPackage",
    "PlanResult",
    "PositionSnapshot",
    "PriceModel",
    "PriceObservation",
    "PriceQuote",
    "SellModel",
    "SimulationMode",
    "SimulationRequest",
    "SimulationResult",
    "SimulationSummary",
    "Strategy",
    "StrategyParams",
]
