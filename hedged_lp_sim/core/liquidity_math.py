#!/usr/bin/env python3
"""
Concentrated Liquidity Math

Pure functions converting a price range and a capital amount into token
amounts, liquidity units, and post-move token amounts. All quantities are
18-decimal fixed-point ints.

Price conventions:
- split_value_by_range takes sqrt prices as 18-decimal values (0.5 -> 5e17).
- Liquidity formulas take sqrt prices as produced by fixed_point.sqrt
  (effective scale 1e9); their WAD factors compensate for that scale.
- simulate_amounts_after_price_move takes plain prices and takes the
  square roots itself.
"""

import logging
from typing import NamedTuple, Tuple

from .errors import InvalidPriceRange, PriceOutOfRange
from .fixed_point import WAD, div, mul, mul_div, sqrt

logger = logging.getLogger(__name__)


class LiquidityAllocation(NamedTuple):
    """Token-pair quantities for a value split across a range"""
    amount0: int
    amount1: int


def validate_range(lower: int, upper: int) -> None:
    if lower >= upper:
        raise InvalidPriceRange(lower, upper)


def validate_in_range(price: int, lower: int, upper: int) -> None:
    if price < lower or price > upper:
        raise PriceOutOfRange(price, lower, upper)


def position_value(amount0: int, amount1: int, price: int) -> int:
    """Value of a token pair in token1 units: x * price + y"""
    return mul(amount0, price) + amount1


def split_value_by_range(
    current_sqrt_price: int,
    lower_sqrt_price: int,
    upper_sqrt_price: int,
    total_value: int
) -> LiquidityAllocation:
    """
    Split total_value (token1 units) into the token amounts an in-range
    position holds at the current price.

    At the exact lower bound the whole value is returned as amount0, at the
    exact upper bound as amount1; both edges short-circuit without
    interpolation.
    """
    validate_range(lower_sqrt_price, upper_sqrt_price)
    validate_in_range(current_sqrt_price, lower_sqrt_price, upper_sqrt_price)

    if total_value == 0:
        return LiquidityAllocation(0, 0)
    if current_sqrt_price == lower_sqrt_price:
        return LiquidityAllocation(total_value, 0)
    if current_sqrt_price == upper_sqrt_price:
        return LiquidityAllocation(0, total_value)

    sp, sa, sb = current_sqrt_price, lower_sqrt_price, upper_sqrt_price
    price = mul(sp, sp)

    # y/x = (sp - sa) * sp * sb / (sb - sp); value = x * sp * ((sp - sa) * sb / (sb - sp) + sp)
    ratio = mul_div(sp - sa, sb, sb - sp)
    amount0 = div(total_value, mul(sp, ratio + sp))

    spent = mul(amount0, price)
    amount1 = total_value - spent if spent <= total_value else 0

    return LiquidityAllocation(amount0, amount1)


# Liquidity formulas (sqrt prices on the fixed_point.sqrt scale)

def liquidity_from_token0(amount0: int, sqrt_lower: int, sqrt_upper: int) -> int:
    """L = x * sa * sb / (sb - sa)"""
    validate_range(sqrt_lower, sqrt_upper)
    return mul_div(amount0, sqrt_lower * sqrt_upper, sqrt_upper - sqrt_lower)


def liquidity_from_token1(amount1: int, sqrt_lower: int, sqrt_upper: int) -> int:
    """L = y / (sb - sa)"""
    validate_range(sqrt_lower, sqrt_upper)
    return mul_div(amount1, WAD, sqrt_upper - sqrt_lower)


def combined_liquidity(
    amount0: int,
    amount1: int,
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int
) -> int:
    """Conservative liquidity for a token pair: the binding side inside the range"""
    validate_range(sqrt_lower, sqrt_upper)

    if sqrt_price <= sqrt_lower:
        return liquidity_from_token0(amount0, sqrt_lower, sqrt_upper)
    if sqrt_price >= sqrt_upper:
        return liquidity_from_token1(amount1, sqrt_lower, sqrt_upper)

    liquidity0 = liquidity_from_token0(amount0, sqrt_price, sqrt_upper)
    liquidity1 = liquidity_from_token1(amount1, sqrt_lower, sqrt_price)
    return min(liquidity0, liquidity1)


def _amount0_for_liquidity(liquidity: int, sqrt_a: int, sqrt_b: int) -> int:
    return mul_div(liquidity, sqrt_b - sqrt_a, sqrt_a * sqrt_b)


def _amount1_for_liquidity(liquidity: int, sqrt_a: int, sqrt_b: int) -> int:
    return mul_div(liquidity, sqrt_b - sqrt_a, WAD)


def amounts_for_liquidity(
    liquidity: int,
    sqrt_price: int,
    sqrt_lower: int,
    sqrt_upper: int
) -> LiquidityAllocation:
    """Token amounts held by a liquidity amount at a sqrt price"""
    validate_range(sqrt_lower, sqrt_upper)

    if sqrt_price <= sqrt_lower:
        return LiquidityAllocation(_amount0_for_liquidity(liquidity, sqrt_lower, sqrt_upper), 0)
    if sqrt_price >= sqrt_upper:
        return LiquidityAllocation(0, _amount1_for_liquidity(liquidity, sqrt_lower, sqrt_upper))
    return LiquidityAllocation(
        _amount0_for_liquidity(liquidity, sqrt_price, sqrt_upper),
        _amount1_for_liquidity(liquidity, sqrt_lower, sqrt_price),
    )


def simulate_amounts_after_price_move(
    price: int,
    lower_price: int,
    upper_price: int,
    amount0: int,
    amount1: int,
    target_price: int
) -> Tuple[int, int]:
    """
    Project token amounts of a position from price to target_price.

    Liquidity is implied from the current amounts, then
        dx = L * (1/sqrt(target) - 1/sqrt(price))
        dy = L * (sqrt(target) - sqrt(price))
    are applied with the sqrt prices clamped to the range bounds. A decrease
    larger than the held amount floors the result at zero.
    """
    validate_range(lower_price, upper_price)
    validate_in_range(price, lower_price, upper_price)
    validate_in_range(target_price, lower_price, upper_price)

    sqrt_lower = sqrt(lower_price)
    sqrt_upper = sqrt(upper_price)
    sqrt_current = min(max(sqrt(price), sqrt_lower), sqrt_upper)
    sqrt_target = min(max(sqrt(target_price), sqrt_lower), sqrt_upper)

    if sqrt_target == sqrt_current:
        return amount0, amount1

    liquidity = combined_liquidity(amount0, amount1, sqrt_current, sqrt_lower, sqrt_upper)

    if sqrt_target > sqrt_current:
        # Price up: token0 sold into the range, token1 accumulated
        delta0 = mul_div(liquidity, sqrt_target - sqrt_current, sqrt_current * sqrt_target)
        delta1 = mul_div(liquidity, sqrt_target - sqrt_current, WAD)
        new_amount0 = amount0 - delta0 if delta0 < amount0 else 0
        new_amount1 = amount1 + delta1
    else:
        delta0 = mul_div(liquidity, sqrt_current - sqrt_target, sqrt_current * sqrt_target)
        delta1 = mul_div(liquidity, sqrt_current - sqrt_target, WAD)
        new_amount0 = amount0 + delta0
        new_amount1 = amount1 - delta1 if delta1 < amount1 else 0

    logger.debug(
        "Simulated move %d -> %d: L=%d, amounts (%d, %d) -> (%d, %d)",
        price, target_price, liquidity, amount0, amount1, new_amount0, new_amount1
    )
    return new_amount0, new_amount1
