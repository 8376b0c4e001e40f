"""Tests for basketry.core.fixed_point -- 18-decimal integer arithmetic."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from basketry.core.errors import ArithmeticFaultError
from basketry.core.fixed_point import (
    MAX_INT256,
    MAX_UINT256,
    PRECISE_UNIT,
    Rounding,
    UnderflowError,
    checked_add,
    checked_sub,
    conservative_precise_div,
    conservative_precise_mul,
    div,
    guarded,
    mul,
    precise_div,
    precise_div_ceil,
    precise_div_ceil_int,
    precise_div_int,
    precise_mul,
    precise_mul_ceil,
    precise_mul_ceil_int,
    precise_mul_int,
)
from basketry.core.result import Err, Ok

from helpers import fixed_points

U = PRECISE_UNIT


# ---------------------------------------------------------------------------
# Unsigned
# ---------------------------------------------------------------------------


class TestUnsigned:
    def test_precise_mul_identity(self) -> None:
        assert precise_mul(7 * U, U) == 7 * U

    def test_precise_mul_floors(self) -> None:
        assert precise_mul(1, U // 2) == 0
        assert precise_mul_ceil(1, U // 2) == 1

    def test_precise_mul_ceil_exact_has_no_bump(self) -> None:
        assert precise_mul_ceil(2 * U, 3 * U) == 6 * U

    def test_precise_mul_ceil_zero(self) -> None:
        assert precise_mul_ceil(0, 5 * U) == 0

    def test_precise_div_floor_and_ceil(self) -> None:
        assert precise_div(U, 3 * U) == 333_333_333_333_333_333
        assert precise_div_ceil(U, 3 * U) == 333_333_333_333_333_334

    def test_precise_div_by_zero(self) -> None:
        with pytest.raises(ZeroDivisionError):
            precise_div(U, 0)
        with pytest.raises(ZeroDivisionError):
            precise_div_ceil(U, 0)

    def test_precise_div_ceil_zero_numerator(self) -> None:
        assert precise_div_ceil(0, 3) == 0

    def test_negative_operand_underflows(self) -> None:
        with pytest.raises(UnderflowError):
            precise_mul(-1, U)

    def test_checked_sub_underflow(self) -> None:
        assert checked_sub(5, 3) == 2
        with pytest.raises(UnderflowError):
            checked_sub(3, 5)

    def test_checked_add_overflow(self) -> None:
        with pytest.raises(OverflowError):
            checked_add(MAX_UINT256, 1)

    def test_precise_mul_overflow(self) -> None:
        with pytest.raises(OverflowError):
            precise_mul(MAX_UINT256, 2)

    @given(a=fixed_points(), b=fixed_points())
    def test_ceil_is_floor_or_floor_plus_one(self, a: int, b: int) -> None:
        diff = precise_mul_ceil(a, b) - precise_mul(a, b)
        assert diff in (0, 1)
        assert diff == (0 if (a * b) % U == 0 else 1)

    @given(a=fixed_points(), b=fixed_points(min_value=1))
    def test_div_ceil_is_floor_or_floor_plus_one(self, a: int, b: int) -> None:
        diff = precise_div_ceil(a, b) - precise_div(a, b)
        assert diff == (0 if (a * U) % b == 0 else 1)


# ---------------------------------------------------------------------------
# Signed
# ---------------------------------------------------------------------------


class TestSigned:
    def test_precise_mul_int_truncates_toward_zero(self) -> None:
        assert precise_mul_int(-1, U // 2) == 0
        assert precise_mul_int(-3 * U, 2 * U) == -6 * U

    def test_precise_mul_ceil_int_away_from_zero(self) -> None:
        assert precise_mul_ceil_int(-1, U // 2) == -1
        assert precise_mul_ceil_int(1, U // 2) == 1
        assert precise_mul_ceil_int(0, -U) == 0

    def test_precise_div_int_truncates(self) -> None:
        assert precise_div_int(-1, 3) == -333_333_333_333_333_333

    def test_precise_div_ceil_int_away_from_zero(self) -> None:
        assert precise_div_ceil_int(-1, 3) == -333_333_333_333_333_334
        assert precise_div_ceil_int(1, -3) == -333_333_333_333_333_334

    def test_conservative_rounds_toward_negative_infinity(self) -> None:
        assert conservative_precise_mul(-1, U // 2) == -1
        assert conservative_precise_mul(1, U // 2) == 0
        assert conservative_precise_div(-1, 3) == -333_333_333_333_333_334

    def test_signed_overflow(self) -> None:
        with pytest.raises(OverflowError):
            precise_mul_int(MAX_INT256, 2 * U)

    def test_signed_division_by_zero(self) -> None:
        for fn in (precise_div_int, precise_div_ceil_int, conservative_precise_div):
            with pytest.raises(ZeroDivisionError):
                fn(U, 0)

    @given(a=st.integers(min_value=-(10**30), max_value=10**30), b=fixed_points(max_value=10**24))
    def test_conservative_never_above_truncating(self, a: int, b: int) -> None:
        assert conservative_precise_mul(a, b) <= precise_mul_int(a, b)
        assert conservative_precise_mul(a, b) == (a * b) // U


# ---------------------------------------------------------------------------
# Rounding policy and guarded
# ---------------------------------------------------------------------------


class TestRoundingPolicy:
    def test_mul_dispatch(self) -> None:
        assert mul(1, U // 2, Rounding.DOWN_FOR_PROTOCOL_SAFETY) == 0
        assert mul(1, U // 2, Rounding.UP_FOR_PROTOCOL_SAFETY) == 1

    def test_div_dispatch(self) -> None:
        assert div(U, 3 * U, Rounding.DOWN_FOR_PROTOCOL_SAFETY) == 333_333_333_333_333_333
        assert div(U, 3 * U, Rounding.UP_FOR_PROTOCOL_SAFETY) == 333_333_333_333_333_334


class TestGuarded:
    def test_ok_passthrough(self) -> None:
        assert guarded("op", "test", lambda: precise_mul(2 * U, 3 * U)) == Ok(6 * U)

    @pytest.mark.parametrize(
        ("fn", "code"),
        [
            (lambda: precise_div(U, 0), "DIVISION_BY_ZERO"),
            (lambda: checked_sub(0, 1), "UNDERFLOW"),
            (lambda: checked_add(MAX_UINT256, 1), "OVERFLOW"),
        ],
    )
    def test_fault_codes(self, fn: object, code: str) -> None:
        result = guarded("op", "test.source", fn)  # type: ignore[arg-type]
        assert isinstance(result, Err)
        assert isinstance(result.error, ArithmeticFaultError)
        assert result.error.code == code
        assert result.error.operation == "op"
        assert result.error.source == "test.source"

    def test_non_arithmetic_errors_propagate(self) -> None:
        def boom() -> int:
            raise KeyError("missing")

        with pytest.raises(KeyError):
            guarded("op", "test", boom)
