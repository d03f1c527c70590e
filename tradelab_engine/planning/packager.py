"""Package planner interface and a greedy reference implementation."""

import logging
import math
from abc import ABC, abstractmethod
from dataclasses import dataclass

from tradelab_engine.models.plan import (
    DestinationCandidates,
    PackedItem,
    PackingConstraints,
    PlanPackage,
    PlanResult,
)

logger = logging.getLogger(__name__)


class PackagePlanner(ABC):
    """Abstract interface for turning candidates and a budget into courier packages."""

    @abstractmethod
    def plan(
        self,
        candidates: list[DestinationCandidates],
        budget: float,
        constraints: PackingConstraints,
    ) -> PlanResult:
        """
        Build purchase packages.

        Args:
            candidates: Candidate items grouped by destination
            budget: Total spend allowed, shipping included
            constraints: Capacity and exposure limits

        Returns:
            Packages in purchase-priority order (may be empty)
        """
        ...


@dataclass
class _ItemState:
    item_id: int
    name: str
    unit_cost: float
    unit_profit: float
    unit_volume: float
    remaining_units: int


class GreedyPackagePlanner(PackagePlanner):
    """Greedy planner: repeatedly commits the most efficient single package.

    For every destination it fills one package by profit density (profit per
    m3), honoring package capacity, remaining budget and the per-item exposure
    cap (``share x budget`` per destination). The package with the best
    net-profit/spend ratio is committed, and the loop continues until the
    package hint, the budget or the candidates run out. A package must earn at
    least its shipping cost.

    Example:
        >>> planner = GreedyPackagePlanner()
        >>> result = planner.plan(candidates, budget=5e9, constraints=PackingConstraints(60_000))
        >>> len(result.packages) <= 30
        True
    """

    def plan(
        self,
        candidates: list[DestinationCandidates],
        budget: float,
        constraints: PackingConstraints,
    ) -> PlanResult:
        states = {
            dest.destination_location_id: [
                _ItemState(
                    item_id=c.item_id,
                    name=c.name,
                    unit_cost=c.source_price,
                    unit_profit=c.unit_profit,
                    unit_volume=c.volume_per_unit,
                    remaining_units=max(0, c.quantity),
                )
                for c in dest.items
            ]
            for dest in candidates
        }
        shipping_by_dest = {d.destination_location_id: d.shipping_cost for d in candidates}
        exposure: dict[tuple[int, int], float] = {}
        per_item_cap = constraints.per_destination_max_budget_share_per_item * budget

        budget_left = budget
        packages: list[PlanPackage] = []
        notes: list[str] = []

        while len(packages) < constraints.max_packages_hint and budget_left > 0:
            best: tuple[float, float, int, list[tuple[_ItemState, int]]] | None = None
            for dest_id, items in states.items():
                chosen = self._fill_package(
                    dest_id,
                    items,
                    shipping_by_dest[dest_id],
                    budget_left,
                    constraints.package_capacity_m3,
                    per_item_cap,
                    exposure,
                )
                if not chosen:
                    continue
                spend = sum(it.unit_cost * units for it, units in chosen)
                net_profit = sum(it.unit_profit * units for it, units in chosen) - shipping_by_dest[dest_id]
                efficiency = net_profit / max(1.0, spend)
                if best is None or (efficiency, net_profit) > (best[0], best[1]):
                    best = (efficiency, net_profit, dest_id, chosen)

            if best is None:
                notes.append("No further profitable packages can be built under current caps.")
                break

            _, _, dest_id, chosen = best
            shipping = shipping_by_dest[dest_id]
            packed = []
            for it, units in chosen:
                it.remaining_units -= units
                key = (dest_id, it.item_id)
                exposure[key] = exposure.get(key, 0.0) + it.unit_cost * units
                packed.append(
                    PackedItem(
                        item_id=it.item_id,
                        units=units,
                        unit_cost=it.unit_cost,
                        unit_profit=it.unit_profit,
                        volume_per_unit=it.unit_volume,
                        name=it.name,
                    )
                )
            spend = sum(p.spend for p in packed)
            budget_left -= spend + shipping
            packages.append(
                PlanPackage(
                    destination_location_id=dest_id,
                    items=tuple(packed),
                    spend=spend,
                    shipping=shipping,
                )
            )

        logger.debug("Planned %d packages, budget left %.0f", len(packages), budget_left)
        return PlanResult(
            packages=tuple(packages),
            total_spend=sum(p.spend for p in packages),
            total_shipping=sum(p.shipping for p in packages),
            notes=tuple(notes),
        )

    @staticmethod
    def _fill_package(
        dest_id: int,
        items: list[_ItemState],
        shipping: float,
        budget_left: float,
        capacity_m3: float,
        per_item_cap: float,
        exposure: dict[tuple[int, int], float],
    ) -> list[tuple[_ItemState, int]]:
        if budget_left < shipping:
            return []

        ranked = sorted(
            (
                it
                for it in items
                if it.unit_profit > 0 and it.unit_volume > 0 and it.unit_cost > 0 and it.remaining_units > 0
            ),
            key=lambda it: (-it.unit_profit / it.unit_volume, it.unit_cost),
        )

        volume_left = capacity_m3
        money_left = budget_left - shipping
        chosen: list[tuple[_ItemState, int]] = []
        profit = 0.0
        for it in ranked:
            cap_left = max(0.0, per_item_cap - exposure.get((dest_id, it.item_id), 0.0))
            units = min(
                math.floor(volume_left / it.unit_volume),
                math.floor(money_left / it.unit_cost),
                math.floor(cap_left / it.unit_cost),
                it.remaining_units,
            )
            if units <= 0:
                continue
            chosen.append((it, units))
            volume_left -= units * it.unit_volume
            money_left -= units * it.unit_cost
            profit += units * it.unit_profit

        if not chosen or profit < shipping:
            return []
        return chosen
