"""Tests for basketry.issuance.nav -- pure NAV issuance and redemption math."""

from __future__ import annotations

import pytest
from hypothesis import given
from hypothesis import strategies as st

from basketry.core.fixed_point import PRECISE_UNIT, UnderflowError
from basketry.issuance.nav import (
    issue_position_multiplier,
    issue_position_unit,
    issue_quantity,
    normalize,
    post_fee_quantity,
    redeem_gross_reserve_quantity,
    redeem_position_multiplier,
    redeem_position_unit,
    redeem_reserve_quantity,
    round_through_multiplier,
)

from helpers import fractions, supplies

U = PRECISE_UNIT
USDC_BASE = 10**6


class TestHelpers:
    def test_normalize_six_decimals(self) -> None:
        assert normalize(1_500_000, USDC_BASE) == 3 * U // 2

    def test_fees_taken_off_gross_independently(self) -> None:
        # 1% + 0.5% of 1000, not 0.5% of the remainder after 1%.
        assert post_fee_quantity(1000 * U, U // 100, U // 200) == 985 * U

    def test_round_through_unit_multiplier_is_identity(self) -> None:
        assert round_through_multiplier(123_456, U) == 123_456


class TestIssuance:
    def test_issue_at_nav(self) -> None:
        minted = issue_quantity(
            U, supply=10 * U, valuation=U, reserve_base_units=U,
            manager_fee=0, protocol_fee=0, premium=0,
        )
        assert minted == U

    def test_premium_stays_with_holders(self) -> None:
        minted = issue_quantity(
            U, supply=10 * U, valuation=U, reserve_base_units=U,
            manager_fee=0, protocol_fee=0, premium=U // 10,
        )
        assert minted == 891_089_108_910_891_089

    def test_six_decimal_reserve(self) -> None:
        # 3000 USDC at 1500 per basket token.
        minted = issue_quantity(
            3000 * USDC_BASE, supply=10 * U, valuation=1500 * U, reserve_base_units=USDC_BASE,
            manager_fee=0, protocol_fee=0, premium=0,
        )
        assert minted == 2 * U

    def test_issue_multiplier(self) -> None:
        assert issue_position_multiplier(U, 10 * U, 11 * U) == 909_090_909_090_909_090

    def test_issue_unit_matches_ledger_rounding(self) -> None:
        multiplier = issue_position_multiplier(U, 10 * U, 11 * U)
        unit = issue_position_unit(
            U, U, previous_supply=10 * U, new_supply=11 * U, multiplier=multiplier,
            manager_fee=0, protocol_fee=0,
        )
        assert unit == round_through_multiplier(U, multiplier)
        assert unit <= U

    @given(
        quantity=st.integers(min_value=1, max_value=10**9 * U),
        supply=supplies(),
        manager_fee=fractions(U // 10),
        protocol_fee=fractions(U // 10),
    )
    def test_fees_never_increase_minted(
        self, quantity: int, supply: int, manager_fee: int, protocol_fee: int,
    ) -> None:
        kwargs = dict(supply=supply, valuation=U, reserve_base_units=U, premium=0)
        with_fees = issue_quantity(
            quantity, manager_fee=manager_fee, protocol_fee=protocol_fee, **kwargs,
        )
        without = issue_quantity(quantity, manager_fee=0, protocol_fee=0, **kwargs)
        assert with_fees <= without

    @given(previous=supplies(), extra=supplies())
    def test_issue_multiplier_never_grows(self, previous: int, extra: int) -> None:
        assert issue_position_multiplier(U, previous, previous + extra) <= U


class TestRedemption:
    def test_redeem_at_nav(self) -> None:
        assert redeem_gross_reserve_quantity(
            U, valuation=U, reserve_base_units=U, premium=0,
        ) == U

    def test_redeem_six_decimal_reserve(self) -> None:
        assert redeem_gross_reserve_quantity(
            2 * U, valuation=1500 * U, reserve_base_units=USDC_BASE, premium=0,
        ) == 3000 * USDC_BASE

    def test_premium_and_fees(self) -> None:
        received = redeem_reserve_quantity(
            U, valuation=100 * U, reserve_base_units=U,
            manager_fee=U // 100, protocol_fee=0, premium=U // 100,
        )
        # 100 less 1% premium = 99, less 1% fee = 98.01
        assert received == 98_010_000_000_000_000_000

    def test_redeem_multiplier(self) -> None:
        assert redeem_position_multiplier(U, 10 * U, 9 * U) == 1_111_111_111_111_111_111

    def test_redeem_unit(self) -> None:
        multiplier = redeem_position_multiplier(U, 10 * U, 9 * U)
        unit = redeem_position_unit(
            U, U, valuation=U, reserve_base_units=U,
            previous_supply=10 * U, new_supply=9 * U, multiplier=multiplier, premium=0,
        )
        assert unit == round_through_multiplier(U, multiplier)

    def test_outflow_beyond_holding_raises(self) -> None:
        with pytest.raises(UnderflowError):
            redeem_position_unit(
                U, 5 * U, valuation=3 * U, reserve_base_units=U,
                previous_supply=10 * U, new_supply=5 * U, multiplier=U, premium=0,
            )

    @given(quantity=supplies(), valuation=st.integers(min_value=1, max_value=10**6 * U),
           premium=fractions(U // 2))
    def test_premium_never_increases_payout(self, quantity: int, valuation: int, premium: int) -> None:
        kwargs = dict(valuation=valuation, reserve_base_units=U)
        assert redeem_gross_reserve_quantity(quantity, premium=premium, **kwargs) <= (
            redeem_gross_reserve_quantity(quantity, premium=0, **kwargs)
        )

    @given(previous=supplies(), removed=supplies())
    def test_redeem_multiplier_never_shrinks(self, previous: int, removed: int) -> None:
        assert redeem_position_multiplier(U, previous + removed, previous) >= U
