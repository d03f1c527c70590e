import os
import sys
from collections.abc import Callable, Iterable
from datetime import date, timedelta
from pathlib import Path
from typing import Generator

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).resolve().parents[1]

if str(PROJECT_ROOT) not in sys.path:  # pragma: no cover
    sys.path.append(str(PROJECT_ROOT))

from tradelab_engine.backtest.repository import RunRepository  # noqa: E402
from tradelab_engine.backtest.runner import RunOutcome, SimulationRunner  # noqa: E402
from tradelab_engine.config.models import LabConfig  # noqa: E402
from tradelab_engine.core.state_machine import PositionState, RunStatus  # noqa: E402
from tradelab_engine.market_data.memory_provider import InMemoryMarketDataProvider  # noqa: E402
from tradelab_engine.models.market import PriceModel, PriceObservation  # noqa: E402
from tradelab_engine.models.run import (  # noqa: E402
    PositionSnapshot,
    SellModel,
    SimulationMode,
    SimulationSummary,
)
from tradelab_engine.models.strategy import Strategy, StrategyParams  # noqa: E402
from tradelab_engine.monitoring.metrics import LabMetrics  # noqa: E402
from tradelab_engine.planning.packager import GreedyPackagePlanner  # noqa: E402

SOURCE = 60003760
DEST = 60008494
ITEM = 34
START = date(2025, 3, 1)


class MarketBuilder:
    """Deterministic daily observations for a source and destination station."""

    def __init__(self) -> None:
        self.observations: dict[tuple[int, int, date], PriceObservation] = {}
        self.item_volumes: dict[int, float] = {}
        self.own_sales: dict[tuple[int, int, date], float] = {}

    def flat(
        self,
        location_id: int,
        item_id: int,
        first: date,
        last: date,
        price: float,
        volume: float = 2000,
        trade_count: int = 10,
    ) -> "MarketBuilder":
        day = first
        while day <= last:
            self.set(location_id, item_id, day, price, volume, trade_count)
            day += timedelta(days=1)
        return self

    def set(
        self,
        location_id: int,
        item_id: int,
        day: date,
        price: float,
        volume: float = 2000,
        trade_count: int = 10,
    ) -> "MarketBuilder":
        self.observations[(location_id, item_id, day)] = PriceObservation(
            location_id=location_id,
            item_id=item_id,
            date=day,
            high=price,
            low=price,
            avg=price,
            volume=volume,
            trade_count=trade_count,
        )
        return self

    def drop(self, location_id: int, item_id: int, day: date) -> "MarketBuilder":
        self.observations.pop((location_id, item_id, day), None)
        return self

    def arbitrage(
        self,
        item_id: int = ITEM,
        source_price: float = 5_000,
        dest_price: float = 10_000,
        volume: float = 2000,
        first: date = START - timedelta(days=30),
        last: date = START + timedelta(days=40),
        item_volume_m3: float = 1.0,
    ) -> "MarketBuilder":
        """A profitable source -> destination lane with flat prices."""
        self.item_volumes[item_id] = item_volume_m3
        self.flat(SOURCE, item_id, first, last, source_price, volume)
        self.flat(DEST, item_id, first, last, dest_price, volume)
        return self

    def provider(self) -> InMemoryMarketDataProvider:
        return InMemoryMarketDataProvider(
            observations=self.observations.values(),
            item_volumes=self.item_volumes,
            own_sales=self.own_sales,
        )


def make_strategy(strategy_id: str = "s1", name: str | None = None, **params) -> Strategy:
    defaults = {"max_inventory_days": 0.5}
    defaults.update(params)
    return Strategy(id=strategy_id, name=name or strategy_id, params=StrategyParams(**defaults))


def make_position(
    item_id: int = ITEM,
    realized_profit: float = 0.0,
    state: PositionState = PositionState.SOLD_OUT,
    destination_location_id: int = DEST,
) -> PositionSnapshot:
    return PositionSnapshot(
        destination_location_id=destination_location_id,
        item_id=item_id,
        state=state,
        planned_units=10,
        units_sold=10,
        units_remaining=0,
        average_unit_cost=1.0,
        cost_basis_remaining=0.0,
        listed_price=2.0,
        gross_sales=0.0,
        sales_tax=0.0,
        sales_net=0.0,
        cogs=0.0,
        broker_fees=0.0,
        relist_fees=0.0,
        shipping=0.0,
        realized_profit=realized_profit,
    )


def make_outcome(
    profit: float = 0.0,
    roi_pct: float | None = None,
    max_drawdown_pct: float = 0.0,
    relist_fees: float = 0.0,
    positions: Iterable[PositionSnapshot] = (),
    capital: float = 1_000_000.0,
) -> RunOutcome:
    """A COMPLETED outcome with the given headline numbers."""
    summary = SimulationSummary(
        strategy_id="s1",
        start_date=START,
        end_date=START + timedelta(days=13),
        initial_capital=capital,
        mode=SimulationMode.WINDOW,
        price_model=PriceModel.LOW,
        sell_model=SellModel.VOLUME_SHARE,
        sell_share_pct=0.05,
        total_relist_fees=relist_fees,
        realized_profit=profit,
        total_profit=profit,
        roi_pct=profit / capital * 100.0 if roi_pct is None else roi_pct,
        max_drawdown_pct=max_drawdown_pct,
    )
    return RunOutcome(run_id="run", status=RunStatus.COMPLETED, summary=summary, positions=list(positions))


@pytest.fixture
def market() -> MarketBuilder:
    """Empty market builder."""
    return MarketBuilder()


@pytest.fixture
def lab_config() -> LabConfig:
    return LabConfig()


@pytest.fixture
def repository() -> Generator[RunRepository, None, None]:
    """In-memory run repository."""
    repo = RunRepository(":memory:")
    try:
        yield repo
    finally:
        repo.close()


@pytest.fixture
def metrics() -> LabMetrics:
    return LabMetrics()


@pytest.fixture
def runner_factory(
    repository: RunRepository, lab_config: LabConfig, metrics: LabMetrics
) -> Callable[[MarketBuilder], SimulationRunner]:
    """Build a runner over a market builder's data."""

    def build(builder: MarketBuilder, config: LabConfig | None = None) -> SimulationRunner:
        return SimulationRunner(
            provider=builder.provider(),
            planner=GreedyPackagePlanner(),
            repository=repository,
            config=config or lab_config,
            metrics=metrics,
        )

    return build


@pytest.fixture(autouse=True)
def clean_config_env() -> Generator[None, None, None]:
    """Ensure TRADELAB_* env vars do not interfere with tests unless explicitly set."""
    original_env = {}
    keys_to_clear: Iterable[str] = [key for key in os.environ if key.startswith("TRADELAB_")]

    for key in list(keys_to_clear):
        original_env[key] = os.environ.pop(key)

    yield

    for key in [k for k in os.environ if k.startswith("TRADELAB_")]:
        os.environ.pop(key, None)
    for key, value in original_env.items():
        os.environ[key] = value
