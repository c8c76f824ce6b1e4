#!/usr/bin/env python3
"""
Hedged LP PnL Analysis

Sweeps a price grid across a range and tabulates, per terminal price:
- LP leg value and PnL (concentrated liquidity, via the post-move simulator)
- Buy-and-hold value of the same initial tokens and the impermanent loss
- Short leg PnL and the net PnL of the hedged position

Also computes a probability-weighted expected PnL under a lognormal price
model and renders the profile as a chart.
"""

import logging
from pathlib import Path
from typing import Any, Dict, Optional

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt
import numpy as np
import pandas as pd
import seaborn as sns
from scipy import stats

from ..core.errors import InvalidInput
from ..core.fixed_point import WAD, mul, to_float
from ..core.hedge_solver import STATIC_LP_SHARE_BPS, AllocationMode, allocate_capital, max_token0_for_range
from ..core.liquidity_math import (
    position_value, simulate_amounts_after_price_move, validate_in_range, validate_range
)

logger = logging.getLogger(__name__)

SWEEP_COLUMNS = [
    "price", "lp_value", "hodl_value", "lp_pnl", "impermanent_loss", "short_pnl", "net_pnl"
]


def price_grid(lower_price: int, upper_price: int, points: int = 41) -> np.ndarray:
    """Evenly spaced 18-decimal prices covering [lower_price, upper_price], endpoints exact"""
    validate_range(lower_price, upper_price)
    if points < 2:
        raise InvalidInput(f"A price grid needs at least 2 points, got {points}")
    fractions = np.linspace(0.0, 1.0, points)
    span = upper_price - lower_price
    grid = [lower_price + int(f * span) for f in fractions[:-1]] + [upper_price]
    return np.array(grid, dtype=object)


def build_pnl_sweep(price: int, lower_price: int, upper_price: int, capital: int,
                    mode: AllocationMode = AllocationMode.STATIC,
                    target_price: Optional[int] = None, short_price: Optional[int] = None,
                    points: int = 41, lp_share_bps: int = STATIC_LP_SHARE_BPS) -> pd.DataFrame:
    """
    PnL profile of a hedged position opened at price, evaluated at every
    grid price. Inputs are 18-decimal ints; the table holds floats.
    """
    validate_range(lower_price, upper_price)
    validate_in_range(price, lower_price, upper_price)
    entry = short_price if short_price is not None else price

    allocation = allocate_capital(
        capital, price, lower_price, upper_price, mode, target_price, short_price, lp_share_bps
    )

    amount0 = max_token0_for_range(price, lower_price, upper_price, allocation.lp_value)
    spent = mul(amount0, price)
    amount1 = allocation.lp_value - spent if spent <= allocation.lp_value else 0
    initial_value = position_value(amount0, amount1, price)

    rows = []
    for terminal in price_grid(lower_price, upper_price, points):
        moved0, moved1 = simulate_amounts_after_price_move(
            price, lower_price, upper_price, amount0, amount1, terminal
        )
        lp_value = position_value(moved0, moved1, terminal)
        hodl_value = position_value(amount0, amount1, terminal)
        rows.append({
            "price": to_float(terminal),
            "lp_value": to_float(lp_value),
            "hodl_value": to_float(hodl_value),
            "lp_pnl": (lp_value - initial_value) / WAD,
            "impermanent_loss": (lp_value - hodl_value) / WAD,
        })

    df = pd.DataFrame(rows)
    short_notional = to_float(allocation.short_value)
    entry_float = to_float(entry)
    df["short_pnl"] = short_notional * (entry_float - df["price"].to_numpy()) / entry_float
    df["net_pnl"] = df["lp_pnl"] + df["short_pnl"]
    df = df[SWEEP_COLUMNS].copy()
    df.attrs["lp_value"] = to_float(allocation.lp_value)
    df.attrs["short_value"] = short_notional
    df.attrs["mode"] = mode.value

    logger.debug("Built %d-point sweep (%s): LP %.4f, short %.4f",
                 len(df), mode.value, df.attrs["lp_value"], short_notional)
    return df


def expected_pnl(df: pd.DataFrame, price: float, volatility: float) -> Dict[str, float]:
    """Expected LP and net PnL with grid points weighted by a lognormal density"""
    if volatility <= 0:
        raise InvalidInput(f"volatility must be positive, got {volatility}")

    log_returns = np.log(df["price"].to_numpy() / price)
    weights = stats.norm.pdf(log_returns, 0.0, volatility)
    if weights.sum() == 0:
        raise InvalidInput("Price grid carries no probability mass")
    weights = weights / weights.sum()

    return {
        "expected_lp_pnl": float(np.dot(weights, df["lp_pnl"].to_numpy())),
        "expected_short_pnl": float(np.dot(weights, df["short_pnl"].to_numpy())),
        "expected_net_pnl": float(np.dot(weights, df["net_pnl"].to_numpy())),
    }


def summarize_sweep(df: pd.DataFrame) -> Dict[str, Any]:
    """Headline statistics of a PnL sweep"""
    return {
        "mode": df.attrs.get("mode"),
        "lp_value": df.attrs.get("lp_value"),
        "short_value": df.attrs.get("short_value"),
        "worst_lp_pnl": float(df["lp_pnl"].min()),
        "worst_net_pnl": float(df["net_pnl"].min()),
        "best_net_pnl": float(df["net_pnl"].max()),
        "lp_pnl_std": float(df["lp_pnl"].std()),
        "net_pnl_std": float(df["net_pnl"].std()),
        "max_impermanent_loss": float(df["impermanent_loss"].min()),
    }


def plot_pnl_sweep(df: pd.DataFrame, output_path: Path, title: str = "Hedged LP PnL Profile") -> Path:
    """Save LP, short and net PnL curves against terminal price"""
    plt.style.use('default')
    sns.set_palette("husl")

    fig, ax = plt.subplots(figsize=(12, 7))
    ax.plot(df["price"], df["lp_pnl"], label="LP leg", linewidth=2)
    ax.plot(df["price"], df["short_pnl"], label="Short leg", linewidth=2, linestyle="--")
    ax.plot(df["price"], df["net_pnl"], label="Net (hedged)", linewidth=3)
    ax.plot(df["price"], df["impermanent_loss"], label="Impermanent loss", linewidth=1, alpha=0.7)
    ax.axhline(0, color="black", linewidth=0.8)

    ax.set_xlabel("Terminal price")
    ax.set_ylabel("PnL (token1)")
    ax.set_title(title, fontweight='bold')
    ax.legend()
    ax.grid(True, alpha=0.3)

    output_path = Path(output_path)
    output_path.parent.mkdir(parents=True, exist_ok=True)
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches='tight')
    plt.close(fig)

    logger.info("Saved PnL chart to %s", output_path)
    return output_path
