"""Run repository with SQLite storage for simulation results."""

import logging
import threading
from datetime import date, datetime, timezone

from sqlalchemy import create_engine, select
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from tradelab_engine.core.state_machine import RunStateMachine, RunStatus
from tradelab_engine.models.run import SimulationRequest, SimulationResult
from tradelab_engine.persistence.models import (
    Base,
    SimulationDayRecord,
    SimulationPositionRecord,
    SimulationRunRecord,
)

logger = logging.getLogger(__name__)


class RunRepository:
    """Repository for simulation runs with isolated SQLite storage.

    Every run starts as RUNNING and moves exactly once to COMPLETED or FAILED.
    Completion writes the summary, positions and day records in a single
    transaction, so a FAILED run never has any position or day rows.

    The repository is shared by concurrent workers; writes are serialized and
    each operation uses its own short-lived session.

    Example:
        >>> repo = RunRepository(":memory:")  # In-memory
        >>> # or
        >>> repo = RunRepository("./runs/lab.db")  # File-based
        >>> run_id = repo.create_run(request)
        >>> repo.complete_run(run_id, result)
    """

    def __init__(self, db_path: str = ":memory:"):
        """Initialize run repository.

        Args:
            db_path: SQLite database path (default: in-memory)
        """
        self.db_path = db_path
        if db_path == ":memory:":
            # One shared connection so every thread sees the same database
            self._engine = create_engine(
                "sqlite://",
                echo=False,
                poolclass=StaticPool,
                connect_args={"check_same_thread": False},
            )
        else:
            self._engine = create_engine(
                f"sqlite:///{db_path}",
                echo=False,
                connect_args={"check_same_thread": False},
            )
        Base.metadata.create_all(self._engine)
        self._session_factory = sessionmaker(bind=self._engine, expire_on_commit=False)
        self._write_lock = threading.Lock()

    def _session(self) -> Session:
        return self._session_factory()

    def _transition(self, session: Session, run_id: str, new_state: RunStatus) -> SimulationRunRecord:
        record = session.get(SimulationRunRecord, run_id)
        if record is None:
            raise KeyError(f"Unknown run {run_id}")
        machine = RunStateMachine(run_id, RunStatus(record.status))
        machine.transition_to(new_state)
        record.status = machine.current_state.value
        return record

    def create_run(self, request: SimulationRequest) -> str:
        """Insert a RUNNING record for ``request``.

        Returns:
            The new run id
        """
        record = SimulationRunRecord(
            strategy_id=request.strategy.id,
            status=RunStatus.RUNNING.value,
            start_date=request.start_date,
            initial_capital=request.initial_capital,
            mode=request.mode.value,
            price_model=request.price_model.value,
            sell_model=request.sell_model.value,
            sell_share_pct=request.sell_share_pct,
        )
        with self._write_lock, self._session() as session:
            session.add(record)
            session.commit()
            return record.id

    def complete_run(self, run_id: str, result: SimulationResult) -> None:
        """Write summary, positions and days, and mark the run COMPLETED.

        Raises:
            InvalidRunTransitionError: If the run is not RUNNING
        """
        summary = result.summary
        with self._write_lock, self._session() as session:
            with session.begin():
                record = self._transition(session, run_id, RunStatus.COMPLETED)
                record.end_date = summary.end_date
                record.sell_share_pct = summary.sell_share_pct
                record.total_profit = summary.total_profit
                record.realized_profit = summary.realized_profit
                record.roi_pct = summary.roi_pct
                record.max_drawdown_pct = summary.max_drawdown_pct
                record.summary = summary.to_dict()
                record.cycles = [c.to_dict() for c in result.cycles]
                record.finished_at = datetime.now(timezone.utc)

                for pos in result.positions:
                    session.add(
                        SimulationPositionRecord(
                            run_id=run_id,
                            destination_location_id=pos.destination_location_id,
                            item_id=pos.item_id,
                            state=pos.state.value,
                            planned_units=pos.planned_units,
                            units_sold=pos.units_sold,
                            units_remaining=pos.units_remaining,
                            average_unit_cost=pos.average_unit_cost,
                            cost_basis_remaining=pos.cost_basis_remaining,
                            listed_price=pos.listed_price,
                            realized_profit=pos.realized_profit,
                            breakdown={
                                "gross_sales": pos.gross_sales,
                                "sales_tax": pos.sales_tax,
                                "sales_net": pos.sales_net,
                                "cogs": pos.cogs,
                                "broker_fees": pos.broker_fees,
                                "relist_fees": pos.relist_fees,
                                "shipping": pos.shipping,
                            },
                        )
                    )
                for day in result.days:
                    session.add(
                        SimulationDayRecord(
                            run_id=run_id,
                            day=day.date,
                            cycle=day.cycle,
                            cash=day.cash,
                            inventory_cost=day.inventory_cost,
                            inventory_mark=day.inventory_mark,
                            realized_profit=day.realized_profit,
                            unrealized_profit=day.unrealized_profit,
                            nav=day.nav,
                            units_sold=day.units_sold,
                        )
                    )
        logger.debug(
            "Run %s completed: %d positions, %d days", run_id, len(result.positions), len(result.days)
        )

    def fail_run(self, run_id: str, error: str) -> None:
        """Mark the run FAILED with ``error``; no positions or days are written.

        Raises:
            InvalidRunTransitionError: If the run is not RUNNING
        """
        with self._write_lock, self._session() as session:
            with session.begin():
                record = self._transition(session, run_id, RunStatus.FAILED)
                record.error = error
                record.finished_at = datetime.now(timezone.utc)

    def get_run(self, run_id: str) -> SimulationRunRecord | None:
        with self._session() as session:
            return session.get(SimulationRunRecord, run_id)

    def list_runs(self, strategy_id: str | None = None) -> list[SimulationRunRecord]:
        stmt = select(SimulationRunRecord).order_by(SimulationRunRecord.created_at.asc())
        if strategy_id is not None:
            stmt = stmt.where(SimulationRunRecord.strategy_id == strategy_id)
        with self._session() as session:
            return list(session.scalars(stmt))

    def list_positions(self, run_id: str) -> list[SimulationPositionRecord]:
        stmt = (
            select(SimulationPositionRecord)
            .where(SimulationPositionRecord.run_id == run_id)
            .order_by(SimulationPositionRecord.destination_location_id, SimulationPositionRecord.item_id)
        )
        with self._session() as session:
            return list(session.scalars(stmt))

    def list_days(self, run_id: str) -> list[SimulationDayRecord]:
        stmt = (
            select(SimulationDayRecord)
            .where(SimulationDayRecord.run_id == run_id)
            .order_by(SimulationDayRecord.day.asc())
        )
        with self._session() as session:
            return list(session.scalars(stmt))

    def get_equity_curve(self, run_id: str) -> list[tuple[date, float]]:
        """Get the NAV curve of a completed run.

        Returns:
            List of (date, nav) tuples
        """
        return [(row.day, row.nav) for row in self.list_days(run_id)]

    def close(self) -> None:
        """Dispose of the engine."""
        self._engine.dispose()
