"""Strategy identity and its typed parameter bag."""

from dataclasses import dataclass, field
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from tradelab_engine.config.models import FeeConfig, LiquidityConfig


class StrategyParams(BaseModel):
    """Numeric knobs a strategy exposes to planning and simulation.

    Unknown keys in the stored parameter bag are ignored so older or newer
    strategy documents still load.
    """

    model_config = ConfigDict(extra="ignore", frozen=True)

    source_location_id: int = Field(default=60003760, description="Buy-side station")
    destination_location_ids: list[int] | None = Field(
        default=None,
        description="Allowed destinations (None = every liquidity destination)",
    )
    exclude_destination_location_ids: list[int] = Field(default_factory=list)
    max_inventory_days: float = Field(default=3.0, gt=0.0)
    min_margin_pct: float = Field(default=10.0)
    min_total_profit: float = Field(default=1_000_000.0, ge=0.0)
    package_capacity_m3: float = Field(default=60_000.0, gt=0.0)
    investment: float | None = Field(
        default=None,
        gt=0.0,
        description="Upper bound on spend per plan; the simulator's investable cash caps it further",
    )
    per_destination_max_budget_share_per_item: float = Field(default=0.2, gt=0.0, le=1.0)
    max_packages_hint: int = Field(default=30, ge=1)
    shipping_cost_by_location: dict[int, float] = Field(default_factory=dict)
    max_price_deviation_multiple: float | None = Field(default=None, gt=0.0)

    liquidity_window_days: int | None = Field(default=None, ge=1)
    min_coverage_ratio: float | None = Field(default=None, ge=0.0, le=1.0)
    min_liquidity_value: float | None = Field(default=None, ge=0.0)
    min_window_trades: float | None = Field(default=None, ge=0.0)

    sales_tax_pct: float | None = Field(default=None, ge=0.0, le=100.0)
    broker_fee_pct: float | None = Field(default=None, ge=0.0, le=100.0)
    relist_fee_pct: float | None = Field(default=None, ge=0.0, le=100.0)

    def fees(self, defaults: FeeConfig) -> FeeConfig:
        """Resolve the fee schedule, applying per-strategy overrides."""
        return FeeConfig(
            sales_tax_pct=defaults.sales_tax_pct if self.sales_tax_pct is None else self.sales_tax_pct,
            broker_fee_pct=defaults.broker_fee_pct if self.broker_fee_pct is None else self.broker_fee_pct,
            relist_fee_pct=defaults.relist_fee_pct if self.relist_fee_pct is None else self.relist_fee_pct,
        )

    def liquidity(self, defaults: LiquidityConfig) -> LiquidityConfig:
        """Resolve liquidity thresholds, applying per-strategy overrides."""
        return LiquidityConfig(
            window_days=self.liquidity_window_days or defaults.window_days,
            min_coverage_ratio=(
                defaults.min_coverage_ratio if self.min_coverage_ratio is None else self.min_coverage_ratio
            ),
            min_value=defaults.min_value if self.min_liquidity_value is None else self.min_liquidity_value,
            min_trades=defaults.min_trades if self.min_window_trades is None else self.min_window_trades,
        )


@dataclass(frozen=True)
class Strategy:
    """A named strategy under evaluation."""

    id: str
    name: str
    params: StrategyParams = field(default_factory=StrategyParams)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Strategy":
        """Build a strategy from a stored document ({id, name, params})."""
        return cls(
            id=str(data["id"]),
            name=str(data.get("name") or data["id"]),
            params=StrategyParams.model_validate(data.get("params") or {}),
        )
