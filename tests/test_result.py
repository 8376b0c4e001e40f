"""Tests for basketry.core.result -- Ok/Err error values."""

from __future__ import annotations

import dataclasses

import pytest
from hypothesis import given
from hypothesis import strategies as st

from basketry.core.result import Err, Ok, first_err, sequence, unwrap

# ---------------------------------------------------------------------------
# Core: Ok and Err hold values, are frozen, support pattern matching
# ---------------------------------------------------------------------------


class TestOkBasics:
    def test_ok_holds_value(self) -> None:
        assert Ok(42).value == 42

    def test_ok_is_frozen(self) -> None:
        ok = Ok(42)
        with pytest.raises(dataclasses.FrozenInstanceError):
            ok.value = 99  # type: ignore[misc]

    def test_ok_equality(self) -> None:
        assert Ok(42) == Ok(42)
        assert Ok(42) != Ok(99)

    def test_pattern_match_ok(self) -> None:
        match Ok(42):
            case Ok(v):
                assert v == 42
            case _:
                pytest.fail("Should match Ok")


class TestErrBasics:
    def test_err_holds_error(self) -> None:
        assert Err("fail").error == "fail"

    def test_err_is_frozen(self) -> None:
        err = Err("fail")
        with pytest.raises(dataclasses.FrozenInstanceError):
            err.error = "other"  # type: ignore[misc]

    def test_pattern_match_err(self) -> None:
        match Err("fail"):
            case Err(e):
                assert e == "fail"
            case _:
                pytest.fail("Should match Err")

    def test_err_is_not_ok(self) -> None:
        assert not isinstance(Err("fail"), Ok)


# ---------------------------------------------------------------------------
# Combinators
# ---------------------------------------------------------------------------


def _half(x: int) -> Ok[int] | Err[str]:
    if x % 2:
        return Err("odd")
    return Ok(x // 2)


class TestCombinators:
    def test_ok_map_applies_function(self) -> None:
        assert Ok(5).map(lambda x: x * 2) == Ok(10)

    def test_err_map_passthrough(self) -> None:
        assert Err("fail").map(lambda x: x * 2) == Err("fail")

    def test_and_then_chains(self) -> None:
        assert Ok(8).and_then(_half).and_then(_half) == Ok(2)

    def test_and_then_stops_at_first_err(self) -> None:
        assert Ok(6).and_then(_half).and_then(_half) == Err("odd")

    def test_err_and_then_passthrough(self) -> None:
        assert Err("initial").and_then(_half) == Err("initial")

    def test_map_err(self) -> None:
        assert Ok(42).map_err(str.upper) == Ok(42)
        assert Err("error").map_err(str.upper) == Err("ERROR")

    def test_unwrap_or(self) -> None:
        assert Ok(42).unwrap_or(0) == 42
        assert Err("fail").unwrap_or(0) == 0

    def test_err_unwrap_raises(self) -> None:
        with pytest.raises(RuntimeError, match="Called unwrap on Err"):
            Err("fail").unwrap()


# ---------------------------------------------------------------------------
# Free functions
# ---------------------------------------------------------------------------


class TestFreeFunctions:
    def test_unwrap_ok(self) -> None:
        assert unwrap(Ok(42)) == 42

    def test_unwrap_err_raises(self) -> None:
        with pytest.raises(RuntimeError, match="unwrap on Err"):
            unwrap(Err("fail"))

    def test_unwrap_rejects_non_result(self) -> None:
        with pytest.raises(TypeError):
            unwrap(42)  # type: ignore[arg-type]

    def test_sequence_all_ok(self) -> None:
        assert sequence([Ok(1), Ok(2), Ok(3)]) == Ok([1, 2, 3])

    def test_sequence_first_err(self) -> None:
        assert sequence([Ok(1), Err("e1"), Err("e2")]) == Err("e1")

    def test_sequence_empty(self) -> None:
        assert sequence([]) == Ok([])

    def test_first_err_none_when_all_ok(self) -> None:
        assert first_err(Ok(1), Ok(None)) is None

    def test_first_err_returns_earliest(self) -> None:
        assert first_err(Ok(1), Err("a"), Err("b")) == Err("a")

    @given(values=st.lists(st.integers()))
    def test_sequence_of_oks_preserves_order(self, values: list[int]) -> None:
        assert sequence(Ok(v) for v in values) == Ok(values)
