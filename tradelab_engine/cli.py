"""Command line entry point for the strategy lab engine."""

import argparse
import json
import logging
import sys
from datetime import date
from pathlib import Path
from typing import Any

from tradelab_engine.backtest import (
    LabSweep,
    RobustnessAnalyzer,
    RunRepository,
    SimulationRunner,
    WalkForwardAnalyzer,
)
from tradelab_engine.config.loader import load_config
from tradelab_engine.market_data.memory_provider import InMemoryMarketDataProvider
from tradelab_engine.models.market import PriceModel
from tradelab_engine.models.run import InventoryMode, SellModel, SimulationMode, SimulationRequest
from tradelab_engine.models.strategy import Strategy
from tradelab_engine.monitoring.metrics import LabMetrics
from tradelab_engine.planning.liquidity import Blacklist, compile_blacklist
from tradelab_engine.planning.packager import GreedyPackagePlanner

logger = logging.getLogger(__name__)


def _load_json(path: str) -> Any:
    with open(path) as f:
        return json.load(f)


def load_strategies(path: str) -> list[Strategy]:
    """Read strategies from a JSON list (or ``{"strategies": [...]}``) of {id, name, params}."""
    data = _load_json(path)
    if isinstance(data, dict):
        data = data.get("strategies", [])
    return [Strategy.from_dict(item) for item in data]


def load_blacklist(path: str | None) -> Blacklist | None:
    if not path:
        return None
    data = _load_json(path)
    return compile_blacklist(data.get("global_items"), data.get("by_destination"))


def _select(strategies: list[Strategy], strategy_id: str | None) -> Strategy:
    if strategy_id is None:
        if len(strategies) != 1:
            raise SystemExit("--strategy-id is required when the file holds several strategies")
        return strategies[0]
    for strategy in strategies:
        if strategy.id == strategy_id:
            return strategy
    raise SystemExit(f"Unknown strategy {strategy_id}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="tradelab-engine", description="Backtest trade strategies on historical data")
    parser.add_argument("--config", default=None, help="JSON config file (default: TRADELAB_CONFIG_PATH)")
    parser.add_argument("--dataset", required=True, help="JSON market dataset")
    parser.add_argument("--strategies", required=True, help="JSON strategies file")
    parser.add_argument("--db", default=None, help="SQLite run store (default from config)")
    parser.add_argument("--capital", type=float, default=2_000_000_000.0, help="Initial capital per run")
    parser.add_argument("--verbose", action="store_true", help="Debug logging")

    sub = parser.add_subparsers(dest="command", required=True)

    def model_args(p: argparse.ArgumentParser, default_price: str) -> None:
        p.add_argument("--sell-model", choices=[m.value for m in SellModel], default=SellModel.VOLUME_SHARE.value)
        p.add_argument("--price-model", choices=[m.value for m in PriceModel], default=default_price)
        p.add_argument("--sell-share", type=float, default=None, help="Share of daily volume captured")

    sim = sub.add_parser("simulate", help="Run one simulation")
    sim.add_argument("--strategy-id", default=None)
    sim.add_argument("--start", type=date.fromisoformat, required=True)
    sim.add_argument("--mode", choices=[m.value for m in SimulationMode], default=SimulationMode.WINDOW.value)
    sim.add_argument("--cycles", type=int, default=1)
    sim.add_argument("--cycle-days", type=int, default=None)
    sim.add_argument("--inventory-mode", choices=[m.value for m in InventoryMode], default=InventoryMode.SKIP_EXISTING.value)
    sim.add_argument("--blacklist", default=None, help="JSON blacklist file")
    model_args(sim, PriceModel.LOW.value)

    wf = sub.add_parser("walk-forward", help="Walk-forward one strategy (or all with --all)")
    wf.add_argument("--strategy-id", default=None)
    wf.add_argument("--all", action="store_true", help="Run every strategy and rank them")
    wf.add_argument("--start", type=date.fromisoformat, required=True)
    wf.add_argument("--end", type=date.fromisoformat, required=True)
    wf.add_argument("--train", type=int, default=14, help="Train (liquidity) window days")
    wf.add_argument("--test", type=int, default=14, help="Test window days")
    wf.add_argument("--step", type=int, default=None)
    wf.add_argument("--max-runs", type=int, default=None)
    model_args(wf, PriceModel.LOW.value)

    sweep = sub.add_parser("sweep", help="Score strategies across price models and sell shares")
    sweep.add_argument("--start", type=date.fromisoformat, required=True)
    sweep.add_argument("--end", type=date.fromisoformat, required=True)
    sweep.add_argument("--train", type=int, default=14)
    sweep.add_argument("--test", type=int, default=14)
    sweep.add_argument("--step", type=int, default=None)
    sweep.add_argument("--max-runs", type=int, default=None)
    sweep.add_argument("--price-models", nargs="+", choices=[m.value for m in PriceModel], default=["LOW", "AVG"])
    sweep.add_argument("--sell-shares", nargs="+", type=float, default=[0.02, 0.05, 0.1])
    sweep.add_argument("--sell-model", choices=[m.value for m in SellModel], default=SellModel.VOLUME_SHARE.value)

    rob = sub.add_parser("robustness", help="Single-buy runs across start dates")
    rob.add_argument("--from", dest="start_from", type=date.fromisoformat, required=True)
    rob.add_argument("--to", dest="start_to", type=date.fromisoformat, required=True)
    rob.add_argument("--step", type=int, default=None)
    rob.add_argument("--max-days", type=int, default=None)
    rob.add_argument("--reprices-per-day", type=int, default=None)
    rob.add_argument("--red-threshold", type=float, default=None, help="Red margin threshold in percent")
    rob.add_argument("--blacklist", default=None, help="JSON blacklist file")
    model_args(rob, PriceModel.AVG.value)

    return parser


def run_command(args: argparse.Namespace) -> dict[str, Any]:
    """Execute a parsed command and return its JSON report."""
    config = load_config(args.config)
    provider = InMemoryMarketDataProvider.from_json(args.dataset)
    strategies = load_strategies(args.strategies)
    repository = RunRepository(args.db or config.persistence.db_path)
    metrics = LabMetrics(config.metrics)
    runner = SimulationRunner(provider, GreedyPackagePlanner(), repository, config, metrics)

    try:
        if args.command == "simulate":
            strategy = _select(strategies, args.strategy_id)
            request = SimulationRequest(
                strategy=strategy,
                start_date=args.start,
                initial_capital=args.capital,
                mode=SimulationMode(args.mode),
                price_model=PriceModel(args.price_model),
                sell_model=SellModel(args.sell_model),
                sell_share_pct=args.sell_share,
                cycles=args.cycles,
                cycle_days=args.cycle_days,
                inventory_mode=InventoryMode(args.inventory_mode),
                blacklist=load_blacklist(args.blacklist),
            )
            outcome = runner.run(request)
            report = outcome.to_dict()
            report["positions"] = [p.to_dict() for p in outcome.positions]
            return report

        if args.command == "walk-forward":
            analyzer = WalkForwardAnalyzer(runner)
            options = dict(
                start_date=args.start,
                end_date=args.end,
                train_window_days=args.train,
                test_window_days=args.test,
                initial_capital=args.capital,
                step_days=args.step,
                max_runs=args.max_runs,
                price_model=PriceModel(args.price_model),
                sell_model=SellModel(args.sell_model),
                sell_share_pct=args.sell_share,
            )
            if args.all:
                return analyzer.run_all(strategies, **options).to_dict()
            return analyzer.run(_select(strategies, args.strategy_id), **options).to_dict()

        if args.command == "sweep":
            return LabSweep(runner).run(
                strategies,
                start_date=args.start,
                end_date=args.end,
                train_window_days=args.train,
                test_window_days=args.test,
                initial_capital=args.capital,
                price_models=[PriceModel(pm) for pm in args.price_models],
                sell_share_pcts=args.sell_shares,
                step_days=args.step,
                max_runs=args.max_runs,
                sell_model=SellModel(args.sell_model),
            ).to_dict()

        return RobustnessAnalyzer(runner).run(
            strategies,
            start_from=args.start_from,
            start_to=args.start_to,
            initial_capital=args.capital,
            step_days=args.step,
            max_days=args.max_days,
            price_model=PriceModel(args.price_model),
            sell_model=SellModel(args.sell_model),
            sell_share_pct=args.sell_share,
            reprices_per_day=args.reprices_per_day,
            red_margin_threshold_pct=args.red_threshold,
            blacklist=load_blacklist(args.blacklist),
        ).to_dict()
    finally:
        repository.close()


def main(argv: list[str] | None = None) -> int:
    """Main entry point for the strategy lab CLI."""
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
    )

    try:
        report = run_command(args)
    except FileNotFoundError as e:
        logger.error("Input file not found: %s", e)
        return 1

    json.dump(report, sys.stdout, indent=2, default=str)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    sys.exit(main())
