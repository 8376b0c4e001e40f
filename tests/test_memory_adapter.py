"""Tests for basketry.infra.memory_adapter -- in-memory test doubles."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from basketry.core.errors import ArithmeticFaultError, IllegalStateError
from basketry.core.fixed_point import PRECISE_UNIT
from basketry.core.result import Err, Ok
from basketry.infra.memory_adapter import (
    InMemoryBasketRegistry,
    InMemoryTokenBank,
    ManualClock,
    StaticPriceOracle,
    StaticValuationOracle,
)

from helpers import BASKET, HOLDER, RECIPIENT, USDC, WETH, make_basket

U = PRECISE_UNIT


# ---------------------------------------------------------------------------
# InMemoryTokenBank
# ---------------------------------------------------------------------------


class TestInMemoryTokenBank:
    def test_unknown_token_defaults(self) -> None:
        bank = InMemoryTokenBank()
        assert bank.decimals(WETH) == 18
        assert bank.balance_of(WETH, HOLDER) == 0

    def test_register_decimals(self) -> None:
        bank = InMemoryTokenBank()
        bank.register_token(USDC, 6)
        assert bank.decimals(USDC) == 6

    def test_transfer(self) -> None:
        bank = InMemoryTokenBank()
        bank.mint(WETH, HOLDER, 5 * U)
        assert bank.transfer(WETH, HOLDER, RECIPIENT, 2 * U) == Ok(2 * U)
        assert bank.balance_of(WETH, HOLDER) == 3 * U
        assert bank.balance_of(WETH, RECIPIENT) == 2 * U

    def test_transfer_more_than_held(self) -> None:
        bank = InMemoryTokenBank()
        bank.mint(WETH, HOLDER, U)
        result = bank.transfer(WETH, HOLDER, RECIPIENT, U + 1)
        assert isinstance(result, Err)
        assert isinstance(result.error, ArithmeticFaultError)
        assert bank.balance_of(WETH, HOLDER) == U

    def test_fee_on_transfer_token(self) -> None:
        bank = InMemoryTokenBank()
        bank.register_token(WETH, transfer_fee=U // 100)
        bank.mint(WETH, HOLDER, 100 * U)
        assert bank.transfer(WETH, HOLDER, RECIPIENT, 100 * U) == Ok(99 * U)
        assert bank.balance_of(WETH, RECIPIENT) == 99 * U

    def test_bad_transfer_fee(self) -> None:
        with pytest.raises(TypeError):
            InMemoryTokenBank().register_token(WETH, transfer_fee=U + 1)

    def test_snapshot_restore(self) -> None:
        bank = InMemoryTokenBank()
        bank.mint(WETH, HOLDER, U)
        snap = bank.snapshot()
        bank.burn(WETH, HOLDER, U)
        bank.mint(USDC, HOLDER, 1)
        bank.restore(snap)
        assert bank.balance_of(WETH, HOLDER) == U
        assert bank.balance_of(USDC, HOLDER) == 0

    def test_restore_rejects_foreign_snapshot(self) -> None:
        with pytest.raises(TypeError):
            InMemoryTokenBank().restore([])

    @given(
        start=st.integers(min_value=0, max_value=10**30),
        amounts=st.lists(st.integers(min_value=0, max_value=10**30), max_size=10),
    )
    def test_fee_free_transfers_conserve_supply(self, start: int, amounts: list[int]) -> None:
        bank = InMemoryTokenBank()
        bank.mint(WETH, HOLDER, start)
        for i, amount in enumerate(amounts):
            sender, recipient = (HOLDER, RECIPIENT) if i % 2 == 0 else (RECIPIENT, HOLDER)
            bank.transfer(WETH, sender, recipient, amount)
        assert bank.balance_of(WETH, HOLDER) + bank.balance_of(WETH, RECIPIENT) == start


# ---------------------------------------------------------------------------
# ManualClock
# ---------------------------------------------------------------------------


class TestManualClock:
    def test_advance_and_set(self) -> None:
        clock = ManualClock(1_000)
        clock.advance(60)
        assert clock.now() == 1_060
        clock.set(5)
        assert clock.now() == 5


# ---------------------------------------------------------------------------
# Oracles
# ---------------------------------------------------------------------------


class TestStaticPriceOracle:
    def test_self_quote_is_one(self) -> None:
        assert StaticPriceOracle().get_price(USDC, USDC) == Ok(U)

    def test_set_and_get(self) -> None:
        oracle = StaticPriceOracle({(WETH, USDC): 1500 * U})
        assert oracle.get_price(WETH, USDC) == Ok(1500 * U)
        oracle.set_price(WETH, USDC, 1600 * U)
        assert oracle.get_price(WETH, USDC) == Ok(1600 * U)

    def test_missing_price(self) -> None:
        result = StaticPriceOracle().get_price(WETH, USDC)
        assert isinstance(result, Err)
        assert isinstance(result.error, IllegalStateError)
        assert result.error.state == "NO_PRICE"


class TestStaticValuationOracle:
    def test_ignores_positions(self) -> None:
        basket, _ = make_basket({WETH: U})
        assert StaticValuationOracle(7 * U).calculate_valuation(basket, USDC) == Ok(7 * U)


# ---------------------------------------------------------------------------
# InMemoryBasketRegistry
# ---------------------------------------------------------------------------


class TestInMemoryBasketRegistry:
    def test_register_and_get(self) -> None:
        registry = InMemoryBasketRegistry()
        basket, _ = make_basket()
        registry.register(basket)
        assert registry.get(BASKET) == Ok(basket)
        assert registry.all_ids() == (BASKET,)

    def test_unknown_basket(self) -> None:
        result = InMemoryBasketRegistry().get(BASKET)
        assert isinstance(result, Err)
        assert result.error.state == "UNKNOWN"
