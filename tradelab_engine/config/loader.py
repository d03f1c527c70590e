"""Configuration loader with JSON file and environment variable support."""

import json
import os
from pathlib import Path
from typing import Any

from .models import LabConfig


def load_config(config_path: str | None = None) -> LabConfig:
    """
    Load configuration from JSON file with environment variable overrides.

    Priority: env vars > config file > defaults

    Args:
        config_path: Path to JSON config file. If None, uses TRADELAB_CONFIG_PATH env var;
                     when neither is set only defaults and env overrides apply.

    Returns:
        Validated LabConfig instance

    Raises:
        FileNotFoundError: If an explicitly requested config file doesn't exist
        json.JSONDecodeError: If config file has invalid JSON
        pydantic.ValidationError: If config values are invalid
    """
    if config_path is None:
        config_path = os.environ.get("TRADELAB_CONFIG_PATH")

    config_data: dict[str, Any] = {}
    if config_path is not None:
        config_file = Path(config_path)
        if not config_file.is_absolute():
            # Resolve relative to project root
            project_root = Path(__file__).parent.parent.parent
            config_file = project_root / config_file

        if not config_file.exists():
            raise FileNotFoundError(f"Config file not found: {config_file}")
        with open(config_file) as f:
            config_data = json.load(f)

    # Apply environment variable overrides
    # Format: TRADELAB_FEES_SALES_TAX_PCT, TRADELAB_ORCHESTRATOR_CONCURRENCY, etc.
    if sales_tax := os.environ.get("TRADELAB_FEES_SALES_TAX_PCT"):
        config_data.setdefault("fees", {})["sales_tax_pct"] = float(sales_tax)

    if broker_fee := os.environ.get("TRADELAB_FEES_BROKER_FEE_PCT"):
        config_data.setdefault("fees", {})["broker_fee_pct"] = float(broker_fee)

    if relist_fee := os.environ.get("TRADELAB_FEES_RELIST_FEE_PCT"):
        config_data.setdefault("fees", {})["relist_fee_pct"] = float(relist_fee)

    if sell_share := os.environ.get("TRADELAB_SIMULATION_SELL_SHARE_PCT"):
        config_data.setdefault("simulation", {})["sell_share_pct"] = float(sell_share)

    if concurrency := os.environ.get("TRADELAB_ORCHESTRATOR_CONCURRENCY"):
        config_data.setdefault("orchestrator", {})["concurrency"] = int(concurrency)

    if db_path := os.environ.get("TRADELAB_PERSISTENCE_DB_PATH"):
        config_data.setdefault("persistence", {})["db_path"] = db_path

    if metrics_enabled := os.environ.get("TRADELAB_METRICS_ENABLED"):
        config_data.setdefault("metrics", {})["enabled"] = metrics_enabled.lower() in (
            "1",
            "true",
            "yes",
        )

    # Validate and return
    return LabConfig(**config_data)
