"""Run and position state machines with validated transitions."""

from enum import Enum

from tradelab_engine.errors import InvalidRunTransitionError


class RunStatus(str, Enum):
    """Lifecycle of a persisted simulation run."""

    RUNNING = "RUNNING"  # Created, day loop in progress
    COMPLETED = "COMPLETED"  # Summary, positions and days written
    FAILED = "FAILED"  # Aborted with an error, nothing else written


class PositionState(str, Enum):
    """Selling state of one (destination, item) position."""

    ACTIVE = "ACTIVE"  # Eligible for listing, repricing and selling
    RED = "RED"  # Margin fell through the floor, frozen for the rest of the run
    SOLD_OUT = "SOLD_OUT"  # No units remaining


# Valid run transitions; terminal states have none
VALID_TRANSITIONS: dict[RunStatus, list[RunStatus]] = {
    RunStatus.RUNNING: [RunStatus.COMPLETED, RunStatus.FAILED],
    RunStatus.COMPLETED: [],
    RunStatus.FAILED: [],
}

# SOLD_OUT -> ACTIVE happens when a rebuy refills an empty position
VALID_POSITION_TRANSITIONS: dict[PositionState, list[PositionState]] = {
    PositionState.ACTIVE: [PositionState.RED, PositionState.SOLD_OUT],
    PositionState.SOLD_OUT: [PositionState.ACTIVE],
    PositionState.RED: [],
}


class RunStateMachine:
    """Per-run status machine: RUNNING transitions exactly once to a terminal state."""

    def __init__(self, run_id: str, initial_state: RunStatus = RunStatus.RUNNING):
        """
        Initialize state machine.

        Args:
            run_id: Simulation run identifier
            initial_state: Starting state (default: RUNNING)
        """
        self.run_id = run_id
        self._current_state = initial_state

    @property
    def current_state(self) -> RunStatus:
        """Get current state."""
        return self._current_state

    @property
    def is_terminal(self) -> bool:
        return not VALID_TRANSITIONS[self._current_state]

    def transition_to(self, new_state: RunStatus) -> None:
        """
        Transition to a new state with validation.

        Args:
            new_state: Target state

        Raises:
            InvalidRunTransitionError: If transition is invalid
        """
        if new_state not in VALID_TRANSITIONS[self._current_state]:
            raise InvalidRunTransitionError(
                f"Invalid transition from {self._current_state.value} to {new_state.value} "
                f"for run {self.run_id}"
            )

        self._current_state = new_state

    def can_transition_to(self, new_state: RunStatus) -> bool:
        """
        Check if transition is valid without executing it.

        Args:
            new_state: Target state

        Returns:
            True if transition is allowed
        """
        return new_state in VALID_TRANSITIONS[self._current_state]
