#!/usr/bin/env python3
"""
Fixed-Point Arithmetic Test Suite

Covers the 18-decimal operations, the full-precision mul_div against exact
integer division, and the half-scale square root.
"""

import random

import pytest

from hedged_lp_sim.core.errors import (
    DivisionByZero, FixedPointOverflow, FixedPointUnderflow, InvalidInput
)
from hedged_lp_sim.core.fixed_point import (
    MAX_UINT256, SQRT_SCALE, WAD, add, bps_of, div, from_number, isqrt, mul, mul_div,
    mul_div_rounding_up, scale_decimals, sqrt, sqrt_wad, sub, to_float
)


class TestMulDiv:
    """Full-precision multiply-divide"""

    def setup_method(self):
        self.rng = random.Random(20240611)

    def _random_uint(self, max_bits: int = 256) -> int:
        bits = self.rng.randint(1, max_bits)
        return self.rng.getrandbits(bits)

    def test_matches_exact_floor_division(self):
        """Random 256-bit operands, including products far beyond 256 bits"""
        checked = 0
        for _ in range(2000):
            a = self._random_uint()
            b = self._random_uint()
            d = self._random_uint() or 1
            expected = a * b // d

            if expected > MAX_UINT256:
                with pytest.raises(FixedPointOverflow):
                    mul_div(a, b, d)
            else:
                assert mul_div(a, b, d) == expected, f"mul_div({a}, {b}, {d})"
                checked += 1

        assert checked > 500, "Sample should contain many representable results"

    def test_overflowing_products_with_representable_results(self):
        """a * b needs 512 bits while the quotient fits in 256"""
        for _ in range(500):
            a = self.rng.getrandbits(256)
            b = self.rng.getrandbits(256)
            d = self.rng.randint(max(a, b, 1), MAX_UINT256)
            assert mul_div(a, b, d) == a * b // d

    def test_even_denominators(self):
        """Powers of two are factored out of the denominator"""
        for shift in (1, 7, 64, 128, 200, 255):
            d = (self.rng.getrandbits(40) | 1) << shift
            d = min(d, MAX_UINT256)
            a = MAX_UINT256 - self.rng.getrandbits(64)
            b = d - 1
            assert mul_div(a, b, d) == a * b // d

    def test_known_values(self):
        assert mul_div(MAX_UINT256, MAX_UINT256, MAX_UINT256) == MAX_UINT256
        assert mul_div(MAX_UINT256, 5, 10) == MAX_UINT256 // 2
        assert mul_div(0, MAX_UINT256, 1) == 0
        assert mul_div(3, 4, 5) == 2

    def test_zero_denominator(self):
        with pytest.raises(DivisionByZero):
            mul_div(1, 1, 0)

    def test_result_overflow(self):
        with pytest.raises(FixedPointOverflow):
            mul_div(MAX_UINT256, 2, 1)

    def test_rejects_out_of_range_operands(self):
        with pytest.raises(FixedPointUnderflow):
            mul_div(-1, 1, 1)
        with pytest.raises(FixedPointOverflow):
            mul_div(MAX_UINT256 + 1, 1, 1)
        with pytest.raises(InvalidInput):
            mul_div(1.5, 1, 1)

    def test_rounding_up(self):
        assert mul_div_rounding_up(3, 4, 5) == 3
        assert mul_div_rounding_up(10, 10, 5) == 20
        for _ in range(200):
            a = self._random_uint(200)
            b = self._random_uint(50)
            d = self._random_uint(200) or 1
            assert mul_div_rounding_up(a, b, d) == -(-(a * b) // d)


class TestWadArithmetic:
    """18-decimal add/sub/mul/div"""

    def test_mul_and_div_floor(self):
        assert mul(2 * WAD, 3 * WAD) == 6 * WAD
        assert mul(WAD // 3, 3) == 0
        assert div(WAD, 3 * WAD) == 333333333333333333
        assert div(7 * WAD, 2 * WAD) == 3 * WAD + WAD // 2

    def test_div_by_zero(self):
        with pytest.raises(DivisionByZero):
            div(WAD, 0)

    def test_add_sub_bounds(self):
        assert add(WAD, WAD) == 2 * WAD
        assert sub(3 * WAD, WAD) == 2 * WAD
        with pytest.raises(FixedPointOverflow):
            add(MAX_UINT256, 1)
        with pytest.raises(FixedPointUnderflow):
            sub(WAD, WAD + 1)

    def test_mul_overflow(self):
        with pytest.raises(FixedPointOverflow):
            mul(MAX_UINT256, 2 * WAD)

    def test_conversions(self):
        assert from_number("1.25") == 1_250_000_000_000_000_000
        assert from_number(100) == 100 * WAD
        assert to_float(from_number("0.5")) == 0.5
        assert scale_decimals(1_000_000, 6, 18) == WAD
        assert scale_decimals(123_456_789, 8, 6) == 1_234_567
        assert bps_of(1000 * WAD, 7900) == 790 * WAD
        with pytest.raises(FixedPointUnderflow):
            from_number("-1")


class TestSqrt:
    """Integer and fixed-point square roots"""

    def test_half_scale_quirk_is_pinned(self):
        """sqrt on the raw representation carries a 1e9 scale"""
        assert sqrt(4 * WAD) == 2 * SQRT_SCALE
        assert sqrt(WAD) == SQRT_SCALE
        assert sqrt(from_number("0.25")) == SQRT_SCALE // 2
        assert SQRT_SCALE * SQRT_SCALE == WAD

    def test_full_scale_sqrt(self):
        assert sqrt_wad(4 * WAD) == 2 * WAD
        assert sqrt_wad(from_number("0.25")) == WAD // 2

    def test_zero_and_perfect_squares(self):
        assert sqrt(0) == 0
        assert sqrt(1) == 1
        rng = random.Random(7)
        for _ in range(300):
            n = rng.getrandbits(rng.randint(1, 128))
            assert isqrt(n * n) == n

    def test_floor_and_monotonic(self):
        rng = random.Random(11)
        values = sorted(rng.getrandbits(rng.randint(1, 200)) for _ in range(300))
        roots = [isqrt(v) for v in values]
        assert roots == sorted(roots), "sqrt must be non-decreasing"
        for v, r in zip(values, roots):
            assert r * r <= v < (r + 1) * (r + 1)

    def test_negative_input(self):
        with pytest.raises(FixedPointUnderflow):
            sqrt(-4)
