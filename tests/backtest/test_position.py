"""Tests for the per-pair position ledger."""

import pytest

from tradelab_engine.backtest.position import Position
from tradelab_engine.core.state_machine import PositionState


class TestPosition:
    """Test suite for Position."""

    def test_weighted_average_cost(self) -> None:
        position = Position(100, 34)
        position.add_units(100, 10.0)
        position.add_units(300, 20.0)
        assert position.planned_units == 400
        assert position.average_unit_cost == pytest.approx(17.5)
        assert position.cost_basis_remaining == pytest.approx(7_000)

    def test_sell_updates_ledger(self) -> None:
        """Units and cost basis stay consistent after a fill."""
        position = Position(100, 34)
        position.add_units(100, 10.0, shipping=50.0)
        position.list_at(20.0, broker_fee=30.0)
        net = position.sell(40, sales_tax_pct=5.0)

        assert net == pytest.approx(40 * 20 * 0.95)
        assert position.units_remaining == 60
        assert position.cost_basis_remaining == pytest.approx(600)
        assert position.cogs == pytest.approx(400)
        assert position.realized_profit == pytest.approx(760 - 400 - 50 - 30)

    def test_sold_out_and_refill(self) -> None:
        """A refilled position goes back to ACTIVE and needs a fresh listing."""
        position = Position(100, 34)
        position.add_units(10, 10.0)
        position.list_at(20.0, broker_fee=0.0)
        position.sell(10, sales_tax_pct=0.0)
        assert position.state == PositionState.SOLD_OUT

        position.add_units(5, 12.0)
        assert position.state == PositionState.ACTIVE
        assert position.listed_price is None
        assert position.average_unit_cost == pytest.approx(12.0)

    def test_red_is_terminal(self) -> None:
        position = Position(100, 34)
        position.add_units(10, 10.0)
        position.list_at(20.0, broker_fee=0.0)
        position.mark_red()

        assert position.state == PositionState.RED
        assert not position.is_active
        with pytest.raises(ValueError):
            position.sell(1, sales_tax_pct=0.0)
        with pytest.raises(ValueError):
            position.add_units(1, 10.0)
        with pytest.raises(ValueError):
            position.mark_red()

    def test_zero_units_position(self) -> None:
        """A position with nothing planned is sold out and cannot sell."""
        position = Position(100, 34)
        position.add_units(0, 10.0)
        assert position.state == PositionState.SOLD_OUT
        assert not position.is_active
        with pytest.raises(ValueError):
            position.sell(1, sales_tax_pct=0.0)

    def test_cannot_oversell(self) -> None:
        position = Position(100, 34)
        position.add_units(5, 10.0)
        position.list_at(20.0, broker_fee=0.0)
        with pytest.raises(ValueError):
            position.sell(6, sales_tax_pct=0.0)
        with pytest.raises(ValueError):
            position.add_units(-1, 10.0)

    def test_snapshot(self) -> None:
        position = Position(100, 34)
        position.add_units(5, 10.0)
        snapshot = position.snapshot()
        assert snapshot.state == PositionState.ACTIVE
        assert snapshot.to_dict()["state"] == "ACTIVE"
        assert snapshot.units_remaining == 5
