"""Tests for the command line entry point."""

import json

import pytest
from conftest import ITEM, MarketBuilder

from tradelab_engine.cli import build_parser, load_blacklist, load_strategies, main


@pytest.fixture
def files(tmp_path, market: MarketBuilder):
    """Dataset and strategies files for a profitable lane."""
    market.arbitrage()
    dataset = tmp_path / "dataset.json"
    dataset.write_text(
        json.dumps(
            {
                "items": {str(ITEM): {"name": "Tritanium", "volume_m3": 1.0}},
                "observations": [obs.to_dict() for obs in market.observations.values()],
            }
        )
    )
    strategies = tmp_path / "strategies.json"
    strategies.write_text(
        json.dumps(
            {
                "strategies": [
                    {"id": "s1", "name": "Alpha", "params": {"max_inventory_days": 0.5}},
                    {"id": "s2", "name": "Beta", "params": {"max_inventory_days": 0.25, "unknown": 1}},
                ]
            }
        )
    )
    return str(dataset), str(strategies)


class TestCli:
    """Test suite for the tradelab-engine CLI."""

    def test_load_strategies(self, files) -> None:
        strategies = load_strategies(files[1])
        assert [s.name for s in strategies] == ["Alpha", "Beta"]
        assert strategies[1].params.max_inventory_days == 0.25

    def test_load_blacklist(self, tmp_path) -> None:
        path = tmp_path / "blacklist.json"
        path.write_text(json.dumps({"global_items": [1], "by_destination": {"2": [3]}}))
        blacklist = load_blacklist(str(path))
        assert blacklist.excludes(2, 3)
        assert load_blacklist(None) is None

    def test_simulate(self, files, capsys) -> None:
        dataset, strategies = files
        code = main(
            ["--dataset", dataset, "--strategies", strategies, "--capital", "1e9",
             "simulate", "--strategy-id", "s1", "--start", "2025-03-01"]
        )
        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert report["status"] == "COMPLETED"
        assert report["summary"]["days"] == 14
        assert report["positions"][0]["state"] == "SOLD_OUT"

    def test_simulate_requires_strategy_choice(self, files) -> None:
        dataset, strategies = files
        with pytest.raises(SystemExit):
            main(["--dataset", dataset, "--strategies", strategies, "simulate", "--start", "2025-03-01"])

    def test_walk_forward_all(self, files, capsys) -> None:
        dataset, strategies = files
        code = main(
            ["--dataset", dataset, "--strategies", strategies, "--capital", "1e9",
             "walk-forward", "--all", "--start", "2025-03-01", "--end", "2025-03-28"]
        )
        assert code == 0
        report = json.loads(capsys.readouterr().out)
        assert len(report["results"]) == 2
        assert all(r["aggregates"]["completed"] == 2 for r in report["results"])

    def test_missing_dataset(self, files, tmp_path) -> None:
        assert main(["--dataset", str(tmp_path / "none.json"), "--strategies", files[1],
                     "simulate", "--start", "2025-03-01"]) == 1

    def test_parser_choices(self) -> None:
        args = build_parser().parse_args(
            ["--dataset", "d", "--strategies", "s", "sweep", "--start", "2025-03-01", "--end", "2025-03-28"]
        )
        assert args.price_models == ["LOW", "AVG"]
        assert args.sell_shares == [0.02, 0.05, 0.1]
