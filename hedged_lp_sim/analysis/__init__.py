"""PnL sweeps and charts for hedged LP positions"""

from .hedge_pnl import build_pnl_sweep, expected_pnl, plot_pnl_sweep, price_grid, summarize_sweep

__all__ = ["build_pnl_sweep", "expected_pnl", "plot_pnl_sweep", "price_grid", "summarize_sweep"]
