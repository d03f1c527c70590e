"""Configuration package for the strategy lab engine."""

from .loader import load_config
from .models import (
    FeeConfig,
    LabConfig,
    LiquidityConfig,
    MetricsConfig,
    OrchestratorConfig,
    PersistenceConfig,
    SimulationConfig,
)

__all__ = [
    "FeeConfig",
    "LabConfig",
    "LiquidityConfig",
    "MetricsConfig",
    "OrchestratorConfig",
    "PersistenceConfig",
    "SimulationConfig",
    "load_config",
]
