"""Purchase plan models exchanged with the package planner."""

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class PlanCandidate:
    """An item the plan builder proposes for one destination.

    Attributes:
        item_id: Item type
        name: Display name
        source_location_id: Where the item is bought
        destination_location_id: Where the item is sold
        source_price: Unit buy price at source
        destination_price: Unit sell price at destination (gross)
        unit_profit: Expected net profit per unit after fees
        quantity: Maximum units worth shipping
        volume_per_unit: Cargo volume per unit (m3)
    """

    item_id: int
    name: str
    source_location_id: int
    destination_location_id: int
    source_price: float
    destination_price: float
    unit_profit: float
    quantity: int
    volume_per_unit: float


@dataclass(frozen=True)
class DestinationCandidates:
    """All candidates for one destination plus its per-package shipping cost."""

    destination_location_id: int
    shipping_cost: float
    items: tuple[PlanCandidate, ...]


@dataclass(frozen=True)
class PackingConstraints:
    """Packaging limits handed to the package planner."""

    package_capacity_m3: float
    per_destination_max_budget_share_per_item: float = 0.2
    max_packages_hint: int = 30


@dataclass(frozen=True)
class PackedItem:
    """Units of one item placed in a package."""

    item_id: int
    units: int
    unit_cost: float
    unit_profit: float
    volume_per_unit: float = 0.0
    name: str = ""

    @property
    def spend(self) -> float:
        return self.unit_cost * self.units

    @property
    def volume_m3(self) -> float:
        return self.volume_per_unit * self.units


@dataclass(frozen=True)
class PlanPackage:
    """One courier package bound for a single destination."""

    destination_location_id: int
    items: tuple[PackedItem, ...]
    spend: float
    shipping: float

    @property
    def gross_profit(self) -> float:
        return sum(item.unit_profit * item.units for item in self.items)

    def to_dict(self) -> dict[str, Any]:
        return {
            "destination_location_id": self.destination_location_id,
            "items": [
                {
                    "item_id": item.item_id,
                    "units": item.units,
                    "unit_cost": item.unit_cost,
                    "unit_profit": item.unit_profit,
                }
                for item in self.items
            ],
            "spend": self.spend,
            "shipping": self.shipping,
        }


@dataclass(frozen=True)
class PlanResult:
    """Packages returned by the package planner."""

    packages: tuple[PlanPackage, ...] = ()
    total_spend: float = 0.0
    total_shipping: float = 0.0
    notes: tuple[str, ...] = ()

    @property
    def is_empty(self) -> bool:
        return not self.packages

    @classmethod
    def empty(cls, note: str | None = None) -> "PlanResult":
        return cls(notes=(note,) if note else ())


@dataclass
class HistoricalPlan:
    """A plan together with the buy price of every planned item."""

    plan: PlanResult
    buy_price_by_item: dict[int, float] = field(default_factory=dict)
    candidates_considered: int = 0
