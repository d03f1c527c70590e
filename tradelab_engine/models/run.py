"""Simulation run request and result models."""

from dataclasses import asdict, dataclass, field
from datetime import date
from enum import Enum
from typing import TYPE_CHECKING, Any

from tradelab_engine.core.state_machine import PositionState
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.strategy import Strategy

if TYPE_CHECKING:
    from tradelab_engine.planning.liquidity import Blacklist


class SellModel(str, Enum):
    """How the daily fill cap is derived."""

    VOLUME_SHARE = "VOLUME_SHARE"  # flat share of market volume
    CALIBRATED_CAPTURE = "CALIBRATED_CAPTURE"  # per-pair historical capture share


class SimulationMode(str, Enum):
    """Buying behavior of a run."""

    WINDOW = "WINDOW"  # buy once at start, hold for the whole window
    SINGLE_BUY = "SINGLE_BUY"  # buy once, stop early once nothing is sellable
    MULTI_CYCLE = "MULTI_CYCLE"  # rebuy whenever cash share crosses the trigger


class InventoryMode(str, Enum):
    """How planning treats inventory already held for a pair."""

    IGNORE = "IGNORE"
    SKIP_EXISTING = "SKIP_EXISTING"
    TOP_OFF = "TOP_OFF"


@dataclass(frozen=True)
class SimulationRequest:
    """Everything one simulation run needs besides market data.

    ``None`` fields fall back to the engine's ``SimulationConfig`` defaults.
    """

    strategy: Strategy
    start_date: date
    initial_capital: float
    mode: SimulationMode = SimulationMode.WINDOW
    price_model: PriceModel = PriceModel.LOW
    sell_model: SellModel = SellModel.VOLUME_SHARE
    sell_share_pct: float | None = None
    cycles: int = 1
    cycle_days: int | None = None
    liquidity_window_days: int | None = None
    inventory_mode: InventoryMode = InventoryMode.SKIP_EXISTING
    reprices_per_day: int | None = None
    rebuy_trigger_cash_pct: float | None = None
    reserve_cash_pct: float | None = None
    red_margin_threshold_pct: float | None = None
    calibration_window_days: int | None = None
    blacklist: "Blacklist | None" = None
    max_days: int | None = None
    deadline_seconds: float | None = None

    def __post_init__(self) -> None:
        if self.initial_capital <= 0:
            raise ValueError("initial_capital must be positive")
        if self.cycles < 1:
            raise ValueError("cycles must be >= 1")
        if self.cycle_days is not None and self.cycle_days < 1:
            raise ValueError("cycle_days must be >= 1")
        if self.max_days is not None and self.max_days < 1:
            raise ValueError("max_days must be >= 1")


@dataclass(frozen=True)
class PositionSnapshot:
    """Final (or point-in-time) view of one position."""

    destination_location_id: int
    item_id: int
    state: PositionState
    planned_units: int
    units_sold: int
    units_remaining: int
    average_unit_cost: float
    cost_basis_remaining: float
    listed_price: float | None
    gross_sales: float
    sales_tax: float
    sales_net: float
    cogs: float
    broker_fees: float
    relist_fees: float
    shipping: float
    realized_profit: float

    @property
    def is_red(self) -> bool:
        return self.state == PositionState.RED

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["state"] = self.state.value
        return data


@dataclass(frozen=True)
class DayRecord:
    """End-of-day accounting snapshot."""

    date: date
    cycle: int
    cash: float
    inventory_cost: float
    inventory_mark: float
    realized_profit: float
    unrealized_profit: float
    nav: float
    units_sold: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class CycleReport:
    """Cash-basis accounting for one cycle."""

    cycle: int
    start_date: date
    end_date: date
    cash_start: float
    inventory_cost_start: float
    cash_end: float = 0.0
    inventory_cost_end: float = 0.0
    cash_pct_min: float = 1.0
    cash_pct_max: float = 0.0
    buy_events: int = 0
    buy_dates: list[date] = field(default_factory=list)
    spend: float = 0.0
    shipping: float = 0.0
    broker_fees: float = 0.0
    relist_fees: float = 0.0
    gross_sales: float = 0.0
    sales_tax: float = 0.0
    sales_net: float = 0.0
    cogs: float = 0.0
    units_sold: int = 0
    reprices_applied: int = 0
    reprices_skipped_red: int = 0
    red_positions: int = 0
    positions_held_end: int = 0

    @property
    def capital_start(self) -> float:
        return self.cash_start + self.inventory_cost_start

    @property
    def profit_cash(self) -> float:
        """Sales net of COGS and fees, excluding the unrealized mark."""
        return self.sales_net - self.cogs - self.shipping - self.broker_fees - self.relist_fees

    @property
    def profit_at_cost(self) -> float:
        return (self.cash_end + self.inventory_cost_end) - self.capital_start

    @property
    def roi_pct(self) -> float | None:
        if self.capital_start <= 0:
            return None
        return self.profit_cash / self.capital_start * 100.0

    def observe_cash_pct(self, cash: float, inventory_cost: float) -> None:
        denom = cash + inventory_cost
        pct = cash / denom if denom > 0 else 1.0
        self.cash_pct_min = min(self.cash_pct_min, pct)
        self.cash_pct_max = max(self.cash_pct_max, pct)

    def to_dict(self) -> dict[str, Any]:
        return {
            "cycle": self.cycle,
            "start_date": self.start_date.isoformat(),
            "end_date": self.end_date.isoformat(),
            "cash_start": self.cash_start,
            "inventory_cost_start": self.inventory_cost_start,
            "cash_end": self.cash_end,
            "inventory_cost_end": self.inventory_cost_end,
            "cash_pct_min": self.cash_pct_min,
            "cash_pct_max": self.cash_pct_max,
            "buy_events": self.buy_events,
            "buy_dates": [d.isoformat() for d in self.buy_dates],
            "spend": self.spend,
            "shipping": self.shipping,
            "broker_fees": self.broker_fees,
            "relist_fees": self.relist_fees,
            "gross_sales": self.gross_sales,
            "sales_tax": self.sales_tax,
            "sales_net": self.sales_net,
            "cogs": self.cogs,
            "units_sold": self.units_sold,
            "reprices_applied": self.reprices_applied,
            "reprices_skipped_red": self.reprices_skipped_red,
            "red_positions": self.red_positions,
            "positions_held_end": self.positions_held_end,
            "profit_cash": self.profit_cash,
            "profit_at_cost": self.profit_at_cost,
            "roi_pct": self.roi_pct,
        }


@dataclass
class SimulationSummary:
    """Run-level totals written to the run record on completion.

    Attributes:
        total_profit: NAV at end minus initial capital (includes unrealized mark)
        realized_profit: Cash-basis profit summed over cycles
        roi_pct: total_profit / initial_capital x 100
        max_drawdown_pct: Largest peak-to-trough NAV decline in percent
    """

    strategy_id: str
    start_date: date
    end_date: date
    initial_capital: float
    mode: SimulationMode
    price_model: PriceModel
    sell_model: SellModel
    sell_share_pct: float
    days: int = 0
    cycles: int = 0
    total_spend: float = 0.0
    total_shipping: float = 0.0
    total_broker_fees: float = 0.0
    total_relist_fees: float = 0.0
    total_sales_tax: float = 0.0
    sales_net: float = 0.0
    cogs: float = 0.0
    units_sold: int = 0
    realized_profit: float = 0.0
    unrealized_profit: float = 0.0
    nav_end: float = 0.0
    total_profit: float = 0.0
    roi_pct: float = 0.0
    max_drawdown_pct: float = 0.0
    reprices_applied: int = 0
    reprices_skipped_red: int = 0
    red_positions: int = 0

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        data["start_date"] = self.start_date.isoformat()
        data["end_date"] = self.end_date.isoformat()
        data["mode"] = self.mode.value
        data["price_model"] = self.price_model.value
        data["sell_model"] = self.sell_model.value
        return data


@dataclass
class SimulationResult:
    """Everything a completed simulation produced."""

    summary: SimulationSummary
    positions: list[PositionSnapshot] = field(default_factory=list)
    days: list[DayRecord] = field(default_factory=list)
    cycles: list[CycleReport] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "summary": self.summary.to_dict(),
            "positions": [p.to_dict() for p in self.positions],
            "days": [d.to_dict() for d in self.days],
            "cycles": [c.to_dict() for c in self.cycles],
        }
