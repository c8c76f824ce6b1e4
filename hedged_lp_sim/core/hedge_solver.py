#!/usr/bin/env python3
"""
Hedge Solver

Capital allocation between the LP leg and the short leg.

Two independent paths exist and can disagree:
- static_allocation: the fixed 79% / 21% split used by the orchestrator's
  default entry point
- solve_equal_pnl_allocation: sizes the short so its PnL at a target price
  offsets the projected LP PnL, on a reference LP size that the caller
  rescales against real capital

allocate_capital picks one of them by AllocationMode and returns a split of
the real capital; the orchestrator and the PnL sweep both size through it.
"""

import logging
from enum import Enum
from typing import NamedTuple, Optional

from .errors import DivisionByZero, InvalidInput
from .fixed_point import BPS, WAD, bps_of, div, mul, mul_div, sqrt
from .liquidity_math import (
    position_value, simulate_amounts_after_price_move, validate_in_range, validate_range
)

logger = logging.getLogger(__name__)

REFERENCE_LP_VALUE = 1000 * WAD
STATIC_LP_SHARE_BPS = 7900


class AllocationMode(str, Enum):
    """How capital is split between the LP and short legs"""
    STATIC = "static"  # fixed LP share, the default entry point
    SOLVED = "solved"  # equal-PnL solver, rescaled to real capital


class HedgeAllocation(NamedTuple):
    """Capital split between the LP leg and the short leg"""
    lp_value: int
    short_value: int

    @property
    def total(self) -> int:
        return self.lp_value + self.short_value

    def rescale(self, total_capital: int) -> "HedgeAllocation":
        """Scale proportionally so the legs sum to total_capital exactly"""
        if self.total == 0:
            raise DivisionByZero("Cannot rescale an empty allocation")
        real_lp = mul_div(self.lp_value, total_capital, self.total)
        return HedgeAllocation(real_lp, total_capital - real_lp)


class LPProjection(NamedTuple):
    """LP leg state before and after a price move"""
    amount0: int
    amount1: int
    amount0_after: int
    amount1_after: int
    initial_value: int
    final_value: int

    @property
    def pnl(self) -> int:
        """Signed PnL in token1 units"""
        return self.final_value - self.initial_value


def max_token0_for_range(price: int, lower_price: int, upper_price: int, max_value: int) -> int:
    """
    Largest token0 amount an in-range position can hold under a capital
    ceiling of max_value (token1 units): max_value / (price + y/x).
    """
    validate_range(lower_price, upper_price)
    validate_in_range(price, lower_price, upper_price)

    sqrt_price = sqrt(price)
    sqrt_lower = sqrt(lower_price)
    sqrt_upper = sqrt(upper_price)

    if sqrt_upper == sqrt_price:
        raise DivisionByZero("Upper sqrt price equals current sqrt price")

    # y/x on the 18-decimal scale; the sqrt scale squared is exactly WAD
    token1_per_token0 = mul_div(sqrt_price - sqrt_lower, sqrt_price * sqrt_upper, sqrt_upper - sqrt_price)
    return div(max_value, price + token1_per_token0)


def project_lp_pnl(
    price: int,
    lower_price: int,
    upper_price: int,
    target_price: int,
    lp_value: int = REFERENCE_LP_VALUE
) -> LPProjection:
    """Project the LP leg from price to target_price"""
    amount0 = max_token0_for_range(price, lower_price, upper_price, lp_value)
    spent = mul(amount0, price)
    amount1 = lp_value - spent if spent <= lp_value else 0

    amount0_after, amount1_after = simulate_amounts_after_price_move(
        price, lower_price, upper_price, amount0, amount1, target_price
    )

    return LPProjection(
        amount0=amount0,
        amount1=amount1,
        amount0_after=amount0_after,
        amount1_after=amount1_after,
        initial_value=position_value(amount0, amount1, price),
        final_value=position_value(amount0_after, amount1_after, target_price),
    )


def solve_equal_pnl_allocation(
    price: int,
    lower_price: int,
    upper_price: int,
    target_price: int,
    short_price: int,
    lp_value: int = REFERENCE_LP_VALUE
) -> HedgeAllocation:
    """
    Short notional whose PnL at target_price offsets the LP leg's PnL.

        short_value = |PnL_LP| * short_price / |target_price - short_price|

    No hedge is sized when the LP leg does not lose. The returned values are
    on the reference LP size; use HedgeAllocation.rescale for real capital.
    """
    validate_range(lower_price, upper_price)
    if target_price == short_price:
        raise DivisionByZero("Target price equals short entry price")

    projection = project_lp_pnl(price, lower_price, upper_price, target_price, lp_value)

    if projection.pnl >= 0:
        short_value = 0
    else:
        short_value = mul_div(-projection.pnl, short_price, abs(target_price - short_price))

    logger.debug(
        "Equal-PnL solve: price=%d target=%d short=%d lp_pnl=%d short_value=%d",
        price, target_price, short_price, projection.pnl, short_value
    )
    return HedgeAllocation(lp_value, short_value)


def static_allocation(total_capital: int, lp_share_bps: int = STATIC_LP_SHARE_BPS) -> HedgeAllocation:
    """Fixed-ratio split (79% LP / 21% short by default)"""
    if not 0 <= lp_share_bps <= BPS:
        raise InvalidInput(f"lp_share_bps must be within [0, {BPS}], got {lp_share_bps}")
    lp_value = bps_of(total_capital, lp_share_bps)
    return HedgeAllocation(lp_value, total_capital - lp_value)


def allocate_capital(
    total_value: int,
    price: int,
    lower_price: int,
    upper_price: int,
    mode: AllocationMode = AllocationMode.STATIC,
    target_price: Optional[int] = None,
    short_price: Optional[int] = None,
    lp_share_bps: int = STATIC_LP_SHARE_BPS,
    reference_lp_value: int = REFERENCE_LP_VALUE
) -> HedgeAllocation:
    """
    Split total_value between the LP and short legs.

    STATIC uses the fixed LP share. SOLVED runs the equal-PnL solver (target
    defaults to lower_price, short entry to price) and rescales the result to
    total_value; when the LP leg does not lose at the target, everything goes
    to the LP leg.
    """
    if mode == AllocationMode.STATIC:
        return static_allocation(total_value, lp_share_bps)

    solved = solve_equal_pnl_allocation(
        price,
        lower_price,
        upper_price,
        target_price if target_price is not None else lower_price,
        short_price if short_price is not None else price,
        reference_lp_value,
    )
    if solved.short_value == 0:
        return HedgeAllocation(total_value, 0)
    return solved.rescale(total_value)
