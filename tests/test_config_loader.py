"""Tests for configuration loading."""

import json

import pytest
from pydantic import ValidationError

from tradelab_engine.config.loader import load_config
from tradelab_engine.config.models import LabConfig, SimulationConfig


class TestLoadConfig:
    """Test suite for load_config."""

    def test_defaults(self) -> None:
        config = load_config()
        assert config.fees.sales_tax_pct == 3.37
        assert config.simulation.cycle_days == 14
        assert config.orchestrator.concurrency == 2
        assert config.persistence.db_path == ":memory:"

    def test_file_values(self, tmp_path) -> None:
        path = tmp_path / "lab.json"
        path.write_text(json.dumps({"fees": {"broker_fee_pct": 2.0}, "orchestrator": {"max_runs": 3}}))
        config = load_config(str(path))
        assert config.fees.broker_fee_pct == 2.0
        assert config.orchestrator.max_runs == 3
        assert config.fees.sales_tax_pct == 3.37

    def test_env_overrides_file(self, tmp_path, monkeypatch) -> None:
        path = tmp_path / "lab.json"
        path.write_text(json.dumps({"orchestrator": {"concurrency": 4}}))
        monkeypatch.setenv("TRADELAB_CONFIG_PATH", str(path))
        monkeypatch.setenv("TRADELAB_ORCHESTRATOR_CONCURRENCY", "8")
        monkeypatch.setenv("TRADELAB_METRICS_ENABLED", "false")
        monkeypatch.setenv("TRADELAB_SIMULATION_SELL_SHARE_PCT", "0.1")

        config = load_config()
        assert config.orchestrator.concurrency == 8
        assert config.metrics.enabled is False
        assert config.simulation.sell_share_pct == 0.1

    def test_missing_file(self, tmp_path) -> None:
        with pytest.raises(FileNotFoundError):
            load_config(str(tmp_path / "nope.json"))

    def test_invalid_values(self, tmp_path) -> None:
        path = tmp_path / "lab.json"
        path.write_text(json.dumps({"orchestrator": {"concurrency": 0}}))
        with pytest.raises(ValidationError):
            load_config(str(path))

    def test_rebuy_trigger_must_exceed_reserve(self) -> None:
        with pytest.raises(ValidationError):
            LabConfig(simulation=SimulationConfig(rebuy_trigger_cash_pct=0.1, reserve_cash_pct=0.2))
