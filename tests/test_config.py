"""Tests for basketry.infra -- protocols and configuration."""

from __future__ import annotations

import dataclasses

import pytest

from basketry.core.fixed_point import PRECISE_UNIT
from basketry.core.types import ZERO_ADDRESS
from basketry.infra.config import (
    SECONDS_PER_YEAR,
    TASK_QUEUE,
    FeeWorkerConfig,
    ProtocolFeeSchedule,
)
from basketry.infra.memory_adapter import (
    InMemoryBasketRegistry,
    InMemoryTokenBank,
    ManualClock,
    StaticPriceOracle,
    StaticValuationOracle,
)
from basketry.infra.protocols import (
    BalanceOracle,
    BasketRegistry,
    Clock,
    PriceOracle,
    TokenBank,
    ValuationOracle,
)
from basketry.infra.valuer import BasketValuer

# ---------------------------------------------------------------------------
# Protocol structural typing checks
# ---------------------------------------------------------------------------


class TestProtocolStructuralTyping:
    def test_token_bank_is_protocol(self) -> None:
        bank: TokenBank = InMemoryTokenBank()
        assert isinstance(bank, TokenBank)
        assert isinstance(bank, BalanceOracle)

    def test_clock_is_protocol(self) -> None:
        clock: Clock = ManualClock()
        assert isinstance(clock, Clock)

    def test_price_oracle_is_protocol(self) -> None:
        oracle: PriceOracle = StaticPriceOracle()
        assert isinstance(oracle, PriceOracle)

    def test_valuation_oracles_are_protocol(self) -> None:
        assert isinstance(StaticValuationOracle(0), ValuationOracle)
        assert isinstance(BasketValuer(StaticPriceOracle()), ValuationOracle)

    def test_registry_is_protocol(self) -> None:
        registry: BasketRegistry = InMemoryBasketRegistry()
        assert isinstance(registry, BasketRegistry)


# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------


class TestConstants:
    def test_year_is_365_and_a_quarter_days(self) -> None:
        assert SECONDS_PER_YEAR == 365 * 86_400 + 6 * 3_600


class TestProtocolFeeSchedule:
    def test_defaults_take_nothing(self) -> None:
        schedule = ProtocolFeeSchedule()
        assert schedule.protocol_fee_recipient == ZERO_ADDRESS
        assert schedule.streaming_fee_split == 0
        assert schedule.nav_issuance_fee == 0

    def test_full_split_allowed(self) -> None:
        assert ProtocolFeeSchedule(airdrop_fee_split=PRECISE_UNIT).airdrop_fee_split == PRECISE_UNIT

    @pytest.mark.parametrize(
        "field", ["nav_issuance_fee", "nav_redemption_fee", "streaming_fee_split",
                  "issuance_fee_split", "airdrop_fee_split"],
    )
    def test_out_of_range(self, field: str) -> None:
        with pytest.raises(TypeError):
            ProtocolFeeSchedule(**{field: PRECISE_UNIT + 1})
        with pytest.raises(TypeError):
            ProtocolFeeSchedule(**{field: -1})

    def test_frozen(self) -> None:
        schedule = ProtocolFeeSchedule()
        with pytest.raises(dataclasses.FrozenInstanceError):
            schedule.streaming_fee_split = 1  # type: ignore[misc]


class TestFeeWorkerConfig:
    def test_defaults(self) -> None:
        cfg = FeeWorkerConfig()
        assert cfg.target_host == "localhost:7233"
        assert cfg.namespace == "default"
        assert cfg.task_queue == TASK_QUEUE
        assert cfg.accrual_interval_seconds == 86_400

    def test_non_positive_interval(self) -> None:
        with pytest.raises(TypeError):
            FeeWorkerConfig(accrual_interval_seconds=0)

    def test_non_positive_rounds(self) -> None:
        with pytest.raises(TypeError):
            FeeWorkerConfig(rounds=0)
