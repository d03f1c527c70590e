"""Liquidity screening, package planning and historical plan building."""

from .liquidity import Blacklist, LiquidityFilter, compile_blacklist
from .packager import GreedyPackagePlanner, PackagePlanner
from .plan_builder import HistoricalPlanBuilder

__all__ = [
    "Blacklist",
    "GreedyPackagePlanner",
    "HistoricalPlanBuilder",
    "LiquidityFilter",
    "PackagePlanner",
    "compile_blacklist",
]
