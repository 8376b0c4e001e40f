"""Tests for basketry.ledger.collateralization -- post-transfer balance checks."""

from __future__ import annotations

from basketry.core.errors import InvariantViolationError
from basketry.core.fixed_point import PRECISE_UNIT
from basketry.core.result import Err, Ok
from basketry.ledger.collateralization import (
    LAW_COLLATERALIZATION,
    capture_balances,
    validate_post_transfer_in,
    validate_post_transfer_out,
)

from helpers import BASKET, USDC, WETH, make_basket

U = PRECISE_UNIT


class TestTransferIn:
    def test_exact_deposit_passes(self) -> None:
        basket, bank = make_basket({WETH: U}, supply=10 * U)
        bank.mint(WETH, BASKET, 2 * U)
        assert validate_post_transfer_in(basket, WETH, 10 * U, 2 * U) == Ok(None)

    def test_short_deposit_fails(self) -> None:
        basket, bank = make_basket({WETH: U}, supply=10 * U)
        bank.mint(WETH, BASKET, 2 * U - 1)
        result = validate_post_transfer_in(basket, WETH, 10 * U, 2 * U, initial_balance=10 * U)
        assert isinstance(result, Err)
        assert isinstance(result.error, InvariantViolationError)
        assert result.error.law_name == LAW_COLLATERALIZATION == "COLLATERALIZATION"
        assert "balance before call" in result.error.message

    def test_requirement_rounds_up(self) -> None:
        # 3 wei of supply at 0.5 per token needs 2 wei, not 1.
        basket, bank = make_basket({USDC: U // 2})
        bank.mint(USDC, BASKET, 1)
        assert isinstance(validate_post_transfer_in(basket, USDC, 3, 0), Err)
        bank.mint(USDC, BASKET, 1)
        assert validate_post_transfer_in(basket, USDC, 3, 0) == Ok(None)


class TestTransferOut:
    def test_remaining_supply_covered(self) -> None:
        basket, bank = make_basket({WETH: U}, supply=10 * U)
        bank.burn(WETH, BASKET, 4 * U)
        assert validate_post_transfer_out(basket, WETH, 6 * U) == Ok(None)

    def test_over_withdrawal_fails(self) -> None:
        basket, bank = make_basket({WETH: U}, supply=10 * U)
        bank.burn(WETH, BASKET, 4 * U + 1)
        result = validate_post_transfer_out(basket, WETH, 6 * U)
        assert isinstance(result, Err)
        assert result.error.code == "INVARIANT_VIOLATION"

    def test_non_component_needs_nothing(self) -> None:
        basket, _ = make_basket({WETH: U}, supply=U)
        assert validate_post_transfer_out(basket, USDC, U) == Ok(None)


class TestCaptureBalances:
    def test_reads_measured_balances(self) -> None:
        basket, bank = make_basket({WETH: U}, supply=3 * U)
        bank.mint(USDC, BASKET, 7)
        assert capture_balances(basket, (WETH, USDC)) == {WETH: 3 * U, USDC: 7}
