#!/usr/bin/env python3
"""Command-line entry point and strategy configuration loading"""

import json

import pandas as pd
import pytest
from pydantic import ValidationError

from hedged_lp_sim.analysis.hedge_pnl import SWEEP_COLUMNS
from hedged_lp_sim.engine.config import AllocationMode, ReserveConfig, StrategyConfig, load_strategy_config
from hedged_lp_sim.main import main


class TestStrategyConfig:

    def test_defaults(self):
        config = StrategyConfig()
        assert config.open_borrow_markup_wad == 1_020_000_000_000_000_000
        assert config.close_repay_buffer_wad == 1_001_000_000_000_000_000
        assert config.hedge_leverage_wad == 2 * 10 ** 18
        assert config.default_allocation_mode == AllocationMode.STATIC
        assert config.static_lp_share_bps == 7900
        assert config.reserve_for("USDC").ltv_bps == 8000

    def test_safety_constants_must_exceed_one(self):
        with pytest.raises(ValidationError):
            StrategyConfig(close_repay_buffer=0.999)
        with pytest.raises(ValidationError):
            StrategyConfig(open_borrow_markup=1.0)

    def test_reserve_threshold_not_below_ltv(self):
        with pytest.raises(ValidationError):
            ReserveConfig(symbol="HBAR", ltv_bps=7000, liquidation_threshold_bps=6000)

    def test_unknown_reserve(self):
        with pytest.raises(KeyError):
            StrategyConfig().reserve_for("DOGE")

    def test_load_from_json(self, tmp_path):
        path = tmp_path / "strategy.json"
        path.write_text(json.dumps({"hedge_leverage": 1.5, "default_allocation_mode": "solved"}))
        config = load_strategy_config(path)
        assert config.hedge_leverage == 1.5
        assert config.default_allocation_mode == AllocationMode.SOLVED


class TestMain:

    def test_no_action_prints_help(self, capsys):
        assert main([]) == 1
        assert "--sweep" in capsys.readouterr().out

    def test_sweep(self, capsys):
        assert main(["--sweep", "--points", "11"]) == 0
        out = capsys.readouterr().out
        assert "Hedged LP PnL Sweep" in out
        assert "Allocation (static)" in out
        assert "Expected net PnL" in out

    def test_sweep_writes_outputs(self, tmp_path, capsys):
        csv_path = tmp_path / "out" / "sweep.csv"
        chart_path = tmp_path / "out" / "sweep.png"
        status = main([
            "--sweep", "--mode", "solved", "--target", "0.6",
            "--csv", str(csv_path), "--chart", str(chart_path),
        ])

        assert status == 0
        df = pd.read_csv(csv_path)
        assert list(df.columns) == SWEEP_COLUMNS
        assert len(df) == 41
        assert chart_path.exists()
        assert "Allocation (solved)" in capsys.readouterr().out

    def test_invalid_range_reports_error(self, capsys):
        assert main(["--sweep", "--lower", "2", "--upper", "1"]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_missing_config_file(self, tmp_path, capsys):
        assert main(["--sweep", "--config", str(tmp_path / "missing.json")]) == 1
        assert "Error:" in capsys.readouterr().out

    def test_simulate_lifecycle(self, capsys):
        assert main(["--simulate", "--exit-price", "0.8"]) == 0
        out = capsys.readouterr().out
        assert "Opened hedged position 0" in out
        assert "Moved market price to 0.8" in out
        assert "Closed hedged position 0" in out
