"""Tests for basketry.workflow.activities -- the accrual activity in isolation."""

from __future__ import annotations

import pytest
from temporalio.testing import ActivityEnvironment

from basketry.core.fixed_point import PRECISE_UNIT
from basketry.core.result import unwrap
from basketry.fees.streaming import StreamingFeeModule, StreamingFeeSettings
from basketry.infra.config import SECONDS_PER_YEAR
from basketry.infra.memory_adapter import InMemoryBasketRegistry, ManualClock
from basketry.workflow.activities import FeeAccrualActivities
from basketry.workflow.types import AccrualInput

from helpers import BASKET, FEE_RECIPIENT, MANAGER, WETH, make_basket

U = PRECISE_UNIT
FEE = "0x" + "fe" * 20


def _activities(*, initialized: bool = True) -> tuple[FeeAccrualActivities, ManualClock]:
    basket, _ = make_basket({WETH: U}, supply=10 * U, modules=(FEE,))
    clock = ManualClock(0)
    module = StreamingFeeModule(FEE, clock)
    if initialized:
        unwrap(module.initialize(basket, MANAGER, StreamingFeeSettings(FEE_RECIPIENT, U // 10, U // 50)))
    registry = InMemoryBasketRegistry()
    registry.register(basket)
    return FeeAccrualActivities(registry, module), clock


@pytest.mark.asyncio
async def test_accrues_and_reports_minted() -> None:
    activities, clock = _activities()
    clock.advance(SECONDS_PER_YEAR)
    out = await ActivityEnvironment().run(activities.accrue_streaming_fee, AccrualInput(basket_id=BASKET))
    assert out.error is None
    assert out.fee_percentage == U // 50
    assert out.minted == 204_081_632_653_061_224


@pytest.mark.asyncio
async def test_repeat_call_mints_nothing() -> None:
    activities, clock = _activities()
    clock.advance(SECONDS_PER_YEAR)
    env = ActivityEnvironment()
    await env.run(activities.accrue_streaming_fee, AccrualInput(basket_id=BASKET))
    out = await env.run(activities.accrue_streaming_fee, AccrualInput(basket_id=BASKET))
    assert out.minted == 0
    assert out.error is None


@pytest.mark.asyncio
async def test_unknown_basket_reported_as_error() -> None:
    activities, _ = _activities()
    out = await ActivityEnvironment().run(
        activities.accrue_streaming_fee, AccrualInput(basket_id="0x" + "99" * 20),
    )
    assert out.error is not None
    assert "Unknown basket" in out.error


@pytest.mark.asyncio
async def test_uninitialized_module_reported_as_error() -> None:
    activities, _ = _activities(initialized=False)
    out = await ActivityEnvironment().run(activities.accrue_streaming_fee, AccrualInput(basket_id=BASKET))
    assert out.error is not None
    assert out.minted == 0
