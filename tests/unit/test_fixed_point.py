"""Tests for the fixed-point arithmetic kernel."""

import pytest

from quant_core import fixed_point as fp
from quant_core.constants import MAX_UINT256, RAY, WAD
from quant_core.exceptions import (
    ArithmeticOverflow,
    DivisionByZero,
    InvalidBasisPoints,
    InvalidPercentage,
)


class TestCheckedOperations:
    def test_add_sub_mul(self):
        assert fp.add(2, 3) == 5
        assert fp.sub(5, 3) == 2
        assert fp.mul(4, 5) == 20

    def test_add_overflow(self):
        with pytest.raises(ArithmeticOverflow):
            fp.add(MAX_UINT256, 1)

    def test_sub_underflow(self):
        with pytest.raises(ArithmeticOverflow):
            fp.sub(1, 2)

    def test_mul_overflow(self):
        with pytest.raises(ArithmeticOverflow) as exc_info:
            fp.mul(MAX_UINT256, 2)
        assert exc_info.value.operation == "mul"

    def test_negative_operand_rejected(self):
        with pytest.raises(ArithmeticOverflow):
            fp.mul(-1, 5)

    def test_non_int_rejected(self):
        with pytest.raises(TypeError):
            fp.add(1.5, 1)
        with pytest.raises(TypeError):
            fp.add(True, 1)

    def test_division(self):
        assert fp.div(7, 2) == 3
        assert fp.div_up(7, 2) == 4
        assert fp.div_up(8, 2) == 4

    def test_division_by_zero(self):
        with pytest.raises(DivisionByZero):
            fp.div(1, 0)
        with pytest.raises(DivisionByZero):
            fp.wdiv(WAD, 0)
        with pytest.raises(DivisionByZero):
            fp.mul_div(1, 1, 0)

    def test_mul_div_rounding(self):
        assert fp.mul_div(10, 10, 3) == 33
        assert fp.mul_div_up(10, 10, 3) == 34
        assert fp.mul_div_up(9, 10, 3) == 30


class TestWadRay:
    def test_wmul(self):
        assert fp.wmul(2 * WAD, 3 * WAD) == 6 * WAD
        assert fp.wmul(WAD // 2, WAD // 2) == WAD // 4

    def test_wmul_rounds_half_up(self):
        # 0.5e-18 * 1 rounds up, anything smaller rounds down
        assert fp.wmul(1, WAD // 2) == 1
        assert fp.wmul(1, WAD // 2 - 1) == 0

    def test_wdiv(self):
        assert fp.wdiv(6 * WAD, 3 * WAD) == 2 * WAD
        assert fp.wdiv(WAD, 3 * WAD) == 333333333333333333
        assert fp.wdiv(2 * WAD, 3 * WAD) == 666666666666666667

    def test_rmul_rdiv(self):
        assert fp.rmul(2 * RAY, 3 * RAY) == 6 * RAY
        assert fp.rdiv(RAY, 4 * RAY) == RAY // 4

    def test_conversions(self):
        assert fp.wad_to_ray(WAD) == RAY
        assert fp.ray_to_wad(RAY) == WAD
        assert fp.ray_to_wad(10**9 // 2) == 1
        assert fp.to_wad(5) == 5 * WAD


class TestSqrt:
    @pytest.mark.parametrize("x", [0, 1, 4, 9, 144, 10**36, (2**128 - 1) ** 2])
    def test_perfect_squares_are_exact(self, x):
        root = fp.sqrt(x)
        assert root * root == x

    @pytest.mark.parametrize("x,expected", [(2, 1), (3, 1), (8, 2), (99, 9), (10**18 + 1, 10**9)])
    def test_floor_for_non_squares(self, x, expected):
        assert fp.sqrt(x) == expected


class TestPercent:
    def test_boundaries(self):
        x = 123456789 * WAD
        assert fp.percent(x, 10000) == x
        assert fp.percent(x, 0) == 0

    def test_above_max_raises(self):
        with pytest.raises(InvalidPercentage):
            fp.percent(1000, 10001)
        with pytest.raises(InvalidBasisPoints):
            fp.percent(1000, 10001)

    def test_floors(self):
        assert fp.percent(101, 5000) == 50
        assert fp.percent(10_000, 30) == 30
        assert fp.percent(99, 100) == 0

    def test_validate_bps(self):
        assert fp.validate_bps(0) == 0
        assert fp.validate_bps(10000) == 10000
        with pytest.raises(InvalidBasisPoints) as exc_info:
            fp.validate_bps(-1, "fee_bps")
        assert exc_info.value.parameter == "fee_bps"
        assert not fp.is_valid_bps(10001)
        assert not fp.is_valid_bps(True)

    def test_bps_of(self):
        assert fp.bps_of(25, 100) == 2500
        assert fp.bps_of(1, 3) == 3333


class TestComparisons:
    def test_min_max(self):
        assert fp.wmin(3, 5) == 3
        assert fp.wmax(3, 5) == 5

    def test_average_does_not_overflow(self):
        assert fp.average(MAX_UINT256, MAX_UINT256) == MAX_UINT256
        assert fp.average(3, 4) == 3
        assert fp.average(0, 10) == 5

    def test_abs(self):
        assert fp.abs_diff(3, 10) == 7
        assert fp.abs_diff(10, 3) == 7
        assert fp.signed_abs(-42) == 42
        with pytest.raises(ArithmeticOverflow):
            fp.signed_abs(-(MAX_UINT256 + 1))

    def test_determinism(self):
        results = {fp.wdiv(fp.wmul(7 * WAD, 3 * WAD), 11 * WAD) for _ in range(5)}
        assert len(results) == 1
