"""Database models for simulation runs, positions and day records."""

import datetime as dt
import uuid
from typing import Any

import sqlalchemy as sa
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

# Generic JSON for SQLite compatibility (SQLAlchemy handles mapping)
JSON_TYPE = sa.JSON().with_variant(JSONB, "postgresql")


def _utcnow() -> dt.datetime:
    return dt.datetime.now(dt.timezone.utc)


class Base(DeclarativeBase):
    """Base class for SQLAlchemy models."""
    pass


class SimulationRunRecord(Base):
    """One simulation run and, once completed, its summary."""
    __tablename__ = "simulation_runs"

    id: Mapped[str] = mapped_column(sa.String(36), primary_key=True, default=lambda: str(uuid.uuid4()))
    strategy_id: Mapped[str] = mapped_column(sa.Text(), nullable=False)
    status: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    start_date: Mapped[dt.date] = mapped_column(sa.Date(), nullable=False)
    end_date: Mapped[dt.date | None] = mapped_column(sa.Date(), nullable=True)
    initial_capital: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    mode: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    price_model: Mapped[str] = mapped_column(sa.String(8), nullable=False)
    sell_model: Mapped[str] = mapped_column(sa.String(32), nullable=False)
    sell_share_pct: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)

    total_profit: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)
    realized_profit: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)
    roi_pct: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)
    max_drawdown_pct: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)
    summary: Mapped[dict[str, Any] | None] = mapped_column(JSON_TYPE, nullable=True)
    cycles: Mapped[list[dict[str, Any]] | None] = mapped_column(JSON_TYPE, nullable=True)

    error: Mapped[str | None] = mapped_column(sa.Text(), nullable=True)
    created_at: Mapped[dt.datetime] = mapped_column(
        sa.DateTime(timezone=True), default=_utcnow, nullable=False
    )
    finished_at: Mapped[dt.datetime | None] = mapped_column(sa.DateTime(timezone=True), nullable=True)


class SimulationPositionRecord(Base):
    """Final state of one (destination, item) position of a run."""
    __tablename__ = "simulation_positions"

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("simulation_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    destination_location_id: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    item_id: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    state: Mapped[str] = mapped_column(sa.String(16), nullable=False)
    planned_units: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    units_sold: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    units_remaining: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False)
    average_unit_cost: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    cost_basis_remaining: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    listed_price: Mapped[float | None] = mapped_column(sa.Float(), nullable=True)
    realized_profit: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    breakdown: Mapped[dict[str, Any] | None] = mapped_column(JSON_TYPE, nullable=True)

    __table_args__ = (sa.UniqueConstraint("run_id", "destination_location_id", "item_id"),)


class SimulationDayRecord(Base):
    """End-of-day accounting row of a run."""
    __tablename__ = "simulation_days"

    id: Mapped[int] = mapped_column(sa.Integer(), primary_key=True, autoincrement=True)
    run_id: Mapped[str] = mapped_column(
        sa.String(36), sa.ForeignKey("simulation_runs.id", ondelete="CASCADE"), nullable=False, index=True
    )
    day: Mapped[dt.date] = mapped_column(sa.Date(), nullable=False)
    cycle: Mapped[int] = mapped_column(sa.Integer(), nullable=False)
    cash: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    inventory_cost: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    inventory_mark: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    realized_profit: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    unrealized_profit: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    nav: Mapped[float] = mapped_column(sa.Float(), nullable=False)
    units_sold: Mapped[int] = mapped_column(sa.BigInteger(), nullable=False, default=0)

    __table_args__ = (sa.UniqueConstraint("run_id", "day"),)
