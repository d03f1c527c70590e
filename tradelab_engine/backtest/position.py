"""Position ledger for one (destination, item) pair within a run."""

from tradelab_engine.core.state_machine import VALID_POSITION_TRANSITIONS, PositionState
from tradelab_engine.models.run import PositionSnapshot


class Position:
    """Inventory held for one (destination, item) pair.

    Units are tracked as ``planned_units`` (everything ever bought) and
    ``units_sold``; remaining units and cost basis are derived, so
    ``units_remaining = planned_units - units_sold`` and
    ``cost_basis_remaining = average_unit_cost x units_remaining`` hold at all
    times. Realized profit is cash basis:
    ``sales_net - cogs - shipping - broker_fees - relist_fees``.
    """

    def __init__(self, destination_location_id: int, item_id: int):
        self.destination_location_id = destination_location_id
        self.item_id = item_id
        self.planned_units = 0
        self.units_sold = 0
        self.average_unit_cost = 0.0
        self.listed_price: float | None = None
        self._red = False

        self.gross_sales = 0.0
        self.sales_tax = 0.0
        self.sales_net = 0.0
        self.cogs = 0.0
        self.broker_fees = 0.0
        self.relist_fees = 0.0
        self.shipping = 0.0

    @property
    def key(self) -> tuple[int, int]:
        return (self.destination_location_id, self.item_id)

    @property
    def units_remaining(self) -> int:
        return self.planned_units - self.units_sold

    @property
    def cost_basis_remaining(self) -> float:
        return self.average_unit_cost * self.units_remaining

    @property
    def state(self) -> PositionState:
        if self._red:
            return PositionState.RED
        if self.units_remaining <= 0:
            return PositionState.SOLD_OUT
        return PositionState.ACTIVE

    @property
    def is_active(self) -> bool:
        return self.state == PositionState.ACTIVE

    @property
    def realized_profit(self) -> float:
        return self.sales_net - self.cogs - self.shipping - self.broker_fees - self.relist_fees

    def add_units(self, units: int, unit_cost: float, shipping: float = 0.0) -> None:
        """Merge a purchase at weighted-average cost.

        Raises:
            ValueError: If units is negative or the position is red
        """
        if units < 0:
            raise ValueError(f"Cannot add negative units to {self.key}")
        if units == 0:
            return
        if self._red:
            raise ValueError(f"Position {self.key} is red and cannot take new units")

        held = self.units_remaining
        if held <= 0:
            # A refilled position needs a fresh listing
            self.listed_price = None
        self.average_unit_cost = (self.average_unit_cost * held + unit_cost * units) / (held + units)
        self.planned_units += units
        self.shipping += shipping

    def mark_red(self) -> None:
        """Freeze the position for the rest of the run.

        Raises:
            ValueError: If the position is not ACTIVE
        """
        current = self.state
        if PositionState.RED not in VALID_POSITION_TRANSITIONS[current]:
            raise ValueError(f"Invalid transition from {current.value} to RED for {self.key}")
        self._red = True

    def list_at(self, price: float, broker_fee: float) -> None:
        self.listed_price = price
        self.broker_fees += broker_fee

    def reprice(self, price: float, relist_fee: float) -> None:
        self.listed_price = price
        self.relist_fees += relist_fee

    def sell(self, units: int, sales_tax_pct: float) -> float:
        """Fill ``units`` at the listed price.

        Returns:
            Net proceeds (gross minus sales tax)

        Raises:
            ValueError: If the position is not sellable or units exceed holdings
        """
        if self.listed_price is None or not self.is_active:
            raise ValueError(f"Position {self.key} is not sellable")
        if units <= 0 or units > self.units_remaining:
            raise ValueError(f"Cannot sell {units} units of {self.key} ({self.units_remaining} held)")

        gross = self.listed_price * units
        tax = gross * sales_tax_pct / 100.0
        net = gross - tax
        self.gross_sales += gross
        self.sales_tax += tax
        self.sales_net += net
        self.cogs += self.average_unit_cost * units
        self.units_sold += units
        return net

    def snapshot(self) -> PositionSnapshot:
        return PositionSnapshot(
            destination_location_id=self.destination_location_id,
            item_id=self.item_id,
            state=self.state,
            planned_units=self.planned_units,
            units_sold=self.units_sold,
            units_remaining=self.units_remaining,
            average_unit_cost=self.average_unit_cost,
            cost_basis_remaining=self.cost_basis_remaining,
            listed_price=self.listed_price,
            gross_sales=self.gross_sales,
            sales_tax=self.sales_tax,
            sales_net=self.sales_net,
            cogs=self.cogs,
            broker_fees=self.broker_fees,
            relist_fees=self.relist_fees,
            shipping=self.shipping,
            realized_profit=self.realized_profit,
        )
