#!/usr/bin/env python3
"""
Uniswap V3 Tick and Q64.96 Helpers

Implements the integer Uniswap V3 conventions used at the pool boundary:
- Tick <-> sqrt price conversion in Q64.96 fixed point
- Token amount deltas for a liquidity amount between two sqrt prices
- Liquidity for token amounts (LiquidityAmounts)
- Conversion from Q64.96 sqrt prices to 18-decimal sqrt prices and raw prices
"""

from typing import Tuple

from .errors import InvalidInput, InvalidPriceRange
from .fixed_point import WAD, mul_div, mul_div_rounding_up

# Uniswap V3 Constants
MIN_TICK = -887272
MAX_TICK = 887272
Q96 = 2 ** 96
MIN_SQRT_RATIO = 4295128739  # sqrt(1.0001^-887272) * 2^96
MAX_SQRT_RATIO = 1461446703485210103287273052203988822378723970342  # sqrt(1.0001^887272) * 2^96


def tick_to_sqrt_price_x96(tick: int) -> int:
    """Convert tick to sqrt price in Q64.96 format"""
    if tick < MIN_TICK or tick > MAX_TICK:
        raise InvalidInput(f"Tick {tick} out of bounds [{MIN_TICK}, {MAX_TICK}]")

    sqrt_price = 1.0001 ** (tick / 2.0)
    sqrt_price_x96 = int(sqrt_price * Q96)

    return max(MIN_SQRT_RATIO, min(MAX_SQRT_RATIO, sqrt_price_x96))


def sqrt_price_x96_to_tick(sqrt_price_x96: int) -> int:
    """Greatest tick whose sqrt price is <= sqrt_price_x96 (binary search)"""
    if sqrt_price_x96 < MIN_SQRT_RATIO or sqrt_price_x96 > MAX_SQRT_RATIO:
        raise InvalidInput(f"sqrt_price_x96 {sqrt_price_x96} out of bounds")

    tick_low = MIN_TICK
    tick_high = MAX_TICK

    while tick_high - tick_low > 1:
        tick_mid = (tick_low + tick_high) // 2
        if tick_to_sqrt_price_x96(tick_mid) <= sqrt_price_x96:
            tick_low = tick_mid
        else:
            tick_high = tick_mid

    return tick_low


def get_amount0_delta(
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> int:
    """amount0 = L * (sb - sa) / (sa * sb) in Q64.96"""
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96

    if liquidity == 0 or sqrt_price_a_x96 == sqrt_price_b_x96:
        return 0

    numerator1 = liquidity << 96
    numerator2 = sqrt_price_b_x96 - sqrt_price_a_x96

    if round_up:
        return mul_div_rounding_up(
            mul_div_rounding_up(numerator1, numerator2, sqrt_price_b_x96), 1, sqrt_price_a_x96
        )
    return mul_div(numerator1, numerator2, sqrt_price_b_x96) // sqrt_price_a_x96


def get_amount1_delta(
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> int:
    """amount1 = L * (sb - sa) in Q64.96"""
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96

    if liquidity == 0 or sqrt_price_a_x96 == sqrt_price_b_x96:
        return 0

    if round_up:
        return mul_div_rounding_up(liquidity, sqrt_price_b_x96 - sqrt_price_a_x96, Q96)
    return mul_div(liquidity, sqrt_price_b_x96 - sqrt_price_a_x96, Q96)


def get_liquidity_for_amount0(sqrt_price_a_x96: int, sqrt_price_b_x96: int, amount0: int) -> int:
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    intermediate = mul_div(sqrt_price_a_x96, sqrt_price_b_x96, Q96)
    return mul_div(amount0, intermediate, sqrt_price_b_x96 - sqrt_price_a_x96)


def get_liquidity_for_amount1(sqrt_price_a_x96: int, sqrt_price_b_x96: int, amount1: int) -> int:
    if sqrt_price_a_x96 > sqrt_price_b_x96:
        sqrt_price_a_x96, sqrt_price_b_x96 = sqrt_price_b_x96, sqrt_price_a_x96
    return mul_div(amount1, Q96, sqrt_price_b_x96 - sqrt_price_a_x96)


def get_liquidity_for_amounts(
    sqrt_price_x96: int,
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    amount0: int,
    amount1: int
) -> int:
    """Maximum liquidity mintable from amount0/amount1 at the current price"""
    if sqrt_price_a_x96 >= sqrt_price_b_x96:
        raise InvalidPriceRange(sqrt_price_a_x96, sqrt_price_b_x96)

    if sqrt_price_x96 <= sqrt_price_a_x96:
        return get_liquidity_for_amount0(sqrt_price_a_x96, sqrt_price_b_x96, amount0)
    if sqrt_price_x96 < sqrt_price_b_x96:
        liquidity0 = get_liquidity_for_amount0(sqrt_price_x96, sqrt_price_b_x96, amount0)
        liquidity1 = get_liquidity_for_amount1(sqrt_price_a_x96, sqrt_price_x96, amount1)
        return min(liquidity0, liquidity1)
    return get_liquidity_for_amount1(sqrt_price_a_x96, sqrt_price_b_x96, amount1)


def get_amounts_for_liquidity(
    sqrt_price_x96: int,
    sqrt_price_a_x96: int,
    sqrt_price_b_x96: int,
    liquidity: int,
    round_up: bool = False
) -> Tuple[int, int]:
    """Token amounts represented by a liquidity amount at the current price"""
    if sqrt_price_a_x96 >= sqrt_price_b_x96:
        raise InvalidPriceRange(sqrt_price_a_x96, sqrt_price_b_x96)

    if sqrt_price_x96 <= sqrt_price_a_x96:
        return get_amount0_delta(sqrt_price_a_x96, sqrt_price_b_x96, liquidity, round_up), 0
    if sqrt_price_x96 < sqrt_price_b_x96:
        return (
            get_amount0_delta(sqrt_price_x96, sqrt_price_b_x96, liquidity, round_up),
            get_amount1_delta(sqrt_price_a_x96, sqrt_price_x96, liquidity, round_up),
        )
    return 0, get_amount1_delta(sqrt_price_a_x96, sqrt_price_b_x96, liquidity, round_up)


# Scale conversions

def sqrt_price_x96_to_wad(sqrt_price_x96: int) -> int:
    """Q64.96 sqrt price -> 18-decimal sqrt price"""
    return mul_div(sqrt_price_x96, WAD, Q96)


def wad_to_sqrt_price_x96(sqrt_price_wad: int) -> int:
    """18-decimal sqrt price -> Q64.96 sqrt price"""
    return mul_div(sqrt_price_wad, Q96, WAD)


def sqrt_price_x96_to_price(sqrt_price_x96: int) -> int:
    """Q64.96 sqrt price -> 18-decimal raw price (token1 units per token0 unit)"""
    return mul_div(mul_div(sqrt_price_x96, sqrt_price_x96, Q96), WAD, Q96)


def tick_to_price(tick: int) -> int:
    """18-decimal raw price at a tick"""
    return sqrt_price_x96_to_price(tick_to_sqrt_price_x96(tick))


def raw_price(human_price: int, decimals0: int, decimals1: int) -> int:
    """
    Convert an 18-decimal human price (whole token1 per whole token0) to a
    raw price (token1 base units per token0 base unit, 18 decimals)
    """
    return mul_div(human_price, 10 ** decimals1, 10 ** decimals0)
