"""Exception hierarchy for the strategy lab engine."""


class TradeLabError(Exception):
    """Base class for all engine errors."""


class PlanConsistencyError(TradeLabError):
    """A purchase plan references an item without a resolvable buy price."""


class RunAbortedError(TradeLabError):
    """A simulation run was cancelled or exceeded its deadline."""


class InvalidRunTransitionError(TradeLabError, ValueError):
    """A run status transition that the state machine forbids."""
