"""SQLAlchemy models for persisted simulation runs."""

from .models import Base, SimulationDayRecord, SimulationPositionRecord, SimulationRunRecord

__all__ = ["Base", "SimulationDayRecord", "SimulationPositionRecord", "SimulationRunRecord"]
