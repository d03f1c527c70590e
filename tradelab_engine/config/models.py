"""Pydantic configuration models with type safety and validation."""

from pydantic import BaseModel, Field, model_validator


class FeeConfig(BaseModel):
    """Market fee schedule (all values in percent)."""

    sales_tax_pct: float = Field(
        default=3.37,
        ge=0.0,
        le=100.0,
        description="Sales tax charged on every fill, as % of gross",
    )
    broker_fee_pct: float = Field(
        default=1.5,
        ge=0.0,
        le=100.0,
        description="Broker fee charged once when an order is first listed",
    )
    relist_fee_pct: float = Field(
        default=0.3,
        ge=0.0,
        le=100.0,
        description="Fee per reprice event, as % of remaining order value",
    )


class LiquidityConfig(BaseModel):
    """Default liquidity thresholds applied when a strategy does not override them."""

    window_days: int = Field(
        default=14,
        ge=1,
        description="Length of the rolling liquidity window in days",
    )
    min_coverage_ratio: float = Field(
        default=0.57,
        ge=0.0,
        le=1.0,
        description="Minimum share of window days with observed trading",
    )
    min_value: float = Field(
        default=1_000_000.0,
        ge=0.0,
        description="Minimum average daily traded value (ISK)",
    )
    min_trades: float = Field(
        default=5.0,
        ge=0.0,
        description="Minimum average daily trade count",
    )


class SimulationConfig(BaseModel):
    """Cycle simulator defaults."""

    cycle_days: int = Field(default=14, ge=1, description="Days per cycle")
    rebuy_trigger_cash_pct: float = Field(
        default=0.25,
        ge=0.0,
        le=1.0,
        description="Cash share of capital that triggers a rebuy (multi-cycle mode)",
    )
    reserve_cash_pct: float = Field(
        default=0.02,
        ge=0.0,
        lt=1.0,
        description="Share of capital kept in cash when buying",
    )
    reprices_per_day: int = Field(
        default=3,
        ge=0,
        description="Reprice events modeled per day",
    )
    single_buy_reprices_per_day: int = Field(
        default=1,
        ge=0,
        description="Reprice events per day in single-buy mode",
    )
    red_margin_threshold_pct: float = Field(
        default=-10.0,
        description="A reprice yielding margin at or below this % turns the position red",
    )
    min_investable: float = Field(
        default=1_000_000.0,
        ge=0.0,
        description="Buying is skipped when investable cash is at or below this amount",
    )
    sell_share_pct: float = Field(
        default=0.05,
        gt=0.0,
        le=1.0,
        description="Default share of daily market volume captured (VOLUME_SHARE)",
    )
    calibration_window_days: int = Field(
        default=14,
        ge=1,
        description="Window for calibrated capture shares",
    )
    deadline_seconds: float | None = Field(
        default=None,
        gt=0.0,
        description="Optional wall-clock budget per run",
    )


class OrchestratorConfig(BaseModel):
    """Batch execution settings."""

    concurrency: int = Field(
        default=2,
        ge=1,
        le=32,
        description="Worker pool size for independent runs",
    )
    max_runs: int = Field(default=12, ge=1, description="Walk-forward window cap")
    robustness_step_days: int = Field(default=2, ge=1)
    robustness_max_days: int = Field(default=21, ge=1)
    max_blacklist_suggestions: int = Field(default=25, ge=1)
    max_repeat_offenders: int = Field(default=50, ge=1)


class PersistenceConfig(BaseModel):
    """Run store location."""

    db_path: str = Field(
        default=":memory:",
        description="SQLite database path for simulation runs",
    )


class MetricsConfig(BaseModel):
    """Prometheus metrics settings."""

    enabled: bool = Field(default=True)
    prefix: str = Field(default="tradelab", min_length=1)


class LabConfig(BaseModel):
    """Root configuration model for the strategy lab engine."""

    fees: FeeConfig = Field(default_factory=FeeConfig)
    liquidity: LiquidityConfig = Field(default_factory=LiquidityConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    orchestrator: OrchestratorConfig = Field(default_factory=OrchestratorConfig)
    persistence: PersistenceConfig = Field(default_factory=PersistenceConfig)
    metrics: MetricsConfig = Field(default_factory=MetricsConfig)

    @model_validator(mode="after")
    def validate_cash_policy(self) -> "LabConfig":
        """Ensure a rebuy trigger can fire above the reserved cash share."""
        sim = self.simulation
        if sim.rebuy_trigger_cash_pct and sim.rebuy_trigger_cash_pct <= sim.reserve_cash_pct:
            raise ValueError(
                "simulation.rebuy_trigger_cash_pct must be greater than "
                "simulation.reserve_cash_pct"
            )
        return self
