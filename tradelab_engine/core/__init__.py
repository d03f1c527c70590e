"""Core state machines and calendar helpers."""

from .dates import date_range_inclusive, last_n_dates
from .state_machine import PositionState, RunStateMachine, RunStatus

__all__ = [
    "PositionState",
    "RunStateMachine",
    "RunStatus",
    "date_range_inclusive",
    "last_n_dates",
]
