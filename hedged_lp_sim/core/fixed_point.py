#!/usr/bin/env python3
"""
60.18 Decimal Fixed-Point Arithmetic

Unsigned values are plain Python ints holding value * 10^18, bounded to the
256-bit word range. Results are checked instead of wrapped, and every
truncation is a floor.

Implements:
- add / sub / mul / div on the 18-decimal scale
- Babylonian integer square root and the half-scale fixed-point sqrt
- Full-precision mul_div (512-bit product, exact division via modular inverse)
"""

from decimal import Decimal
from typing import Union

from .errors import DivisionByZero, FixedPointOverflow, FixedPointUnderflow, InvalidInput

# Constants
WAD = 10 ** 18
SQRT_SCALE = 10 ** 9  # effective scale of sqrt() output
MAX_UINT256 = 2 ** 256 - 1
BPS = 10_000


def _check_uint(value: int, name: str = "value") -> int:
    if not isinstance(value, int) or isinstance(value, bool):
        raise InvalidInput(f"{name} must be an int, got {type(value).__name__}")
    if value < 0:
        raise FixedPointUnderflow(f"{name} is negative: {value}")
    if value > MAX_UINT256:
        raise FixedPointOverflow(f"{name} exceeds 256 bits: {value}")
    return value


# Full-precision multiply-divide

def mul_div(a: int, b: int, denominator: int) -> int:
    """
    floor(a * b / denominator) for 256-bit inputs whose product may need 512 bits.

    The product is held as (prod1, prod0) words; the remainder is subtracted so
    the division is exact, powers of two are factored out of the denominator,
    and the quotient is recovered with the inverse of the odd denominator
    modulo 2^256 (Newton-Raphson, six iterations give 256 correct bits).
    """
    _check_uint(a, "a")
    _check_uint(b, "b")
    _check_uint(denominator, "denominator")
    if denominator == 0:
        raise DivisionByZero("mul_div denominator is zero")

    # 512-bit product: prod1 * 2^256 + prod0
    prod0 = (a * b) & MAX_UINT256
    mm = (a * b) % MAX_UINT256
    prod1 = (mm - prod0 - (1 if mm < prod0 else 0)) & MAX_UINT256

    if prod1 == 0:
        return prod0 // denominator

    # Result must fit in 256 bits
    if denominator <= prod1:
        raise FixedPointOverflow(f"mul_div result overflows: {a} * {b} / {denominator}")

    # Make the division exact
    remainder = (a * b) % denominator
    prod1 = (prod1 - (1 if remainder > prod0 else 0)) & MAX_UINT256
    prod0 = (prod0 - remainder) & MAX_UINT256

    # Factor powers of two out of the denominator
    twos = denominator & -denominator
    denominator //= twos
    prod0 //= twos
    # twos := 2^256 / twos (wraps to 0 when twos == 1)
    twos = (((0 - twos) & MAX_UINT256) // twos + 1) & MAX_UINT256
    prod0 |= (prod1 * twos) & MAX_UINT256

    # Inverse of the odd denominator mod 2^256; seed is correct to 4 bits
    inverse = ((3 * denominator) & MAX_UINT256) ^ 2
    for _ in range(6):
        inverse = (inverse * (2 - denominator * inverse)) & MAX_UINT256

    return (prod0 * inverse) & MAX_UINT256


def mul_div_rounding_up(a: int, b: int, denominator: int) -> int:
    """Ceil variant of mul_div"""
    result = mul_div(a, b, denominator)
    if (a * b) % denominator:
        if result == MAX_UINT256:
            raise FixedPointOverflow("mul_div_rounding_up result overflows")
        result += 1
    return result


# 18-decimal arithmetic

def add(x: int, y: int) -> int:
    result = _check_uint(x, "x") + _check_uint(y, "y")
    if result > MAX_UINT256:
        raise FixedPointOverflow(f"add overflows: {x} + {y}")
    return result


def sub(x: int, y: int) -> int:
    _check_uint(x, "x")
    _check_uint(y, "y")
    if y > x:
        raise FixedPointUnderflow(f"sub underflows: {x} - {y}")
    return x - y


def mul(x: int, y: int) -> int:
    """floor(x * y / 1e18)"""
    return mul_div(x, y, WAD)


def div(x: int, y: int) -> int:
    """floor(x * 1e18 / y)"""
    if y == 0:
        raise DivisionByZero(f"div by zero: {x} / 0")
    return mul_div(x, WAD, y)


def isqrt(n: int) -> int:
    """floor(sqrt(n)) by Babylonian iteration"""
    _check_uint(n, "n")
    if n < 2:
        return n
    x = 1 << ((n.bit_length() + 1) // 2)  # initial guess >= sqrt(n)
    y = (x + n // x) // 2
    while y < x:
        x = y
        y = (x + n // x) // 2
    return x


def sqrt(x: int) -> int:
    """
    Square root of an 18-decimal value taken on its raw representation.

    The result carries an effective scale of 10^9, not 10^18:
    sqrt(4e18) == 2e9. Liquidity formulas are calibrated to this scale
    (SQRT_SCALE ** 2 == WAD), so it must not be rescaled here.
    """
    return isqrt(x)


def sqrt_wad(x: int) -> int:
    """Square root of an 18-decimal value, itself on the 18-decimal scale"""
    return isqrt(_check_uint(x, "x") * WAD)


# Conversion helpers

def from_number(value: Union[int, float, str, Decimal]) -> int:
    """Convert a human-readable number to an 18-decimal fixed value (floor)"""
    scaled = Decimal(str(value)) * WAD
    if scaled < 0:
        raise FixedPointUnderflow(f"negative fixed-point value: {value}")
    return _check_uint(int(scaled))


def to_float(x: int) -> float:
    """Lossy conversion for display and analysis"""
    return x / WAD


def scale_decimals(amount: int, from_decimals: int, to_decimals: int) -> int:
    """Rescale a token amount between decimal precisions, flooring"""
    _check_uint(amount, "amount")
    if to_decimals >= from_decimals:
        return _check_uint(amount * 10 ** (to_decimals - from_decimals))
    return amount // 10 ** (from_decimals - to_decimals)


def bps_of(amount: int, bps: int) -> int:
    """floor(amount * bps / 10_000)"""
    return mul_div(amount, bps, BPS)
