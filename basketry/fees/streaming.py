"""Streaming fee: time-based dilution of the position multiplier.

Per basket:  UNINITIALIZED --initialize--> INITIALIZED --accrue_fee--> FEE_ACCRUED
             (FEE_ACCRUED repeats; remove() returns to UNINITIALIZED)

accrue_fee() with t seconds elapsed at annual rate r:

    fee        = min(r * t / SECONDS_PER_YEAR, 1e18 - 1)
    inflation  = fee * supply / (1e18 - fee)
    multiplier = multiplier * (1e18 - fee) / 1e18

The inflation is minted to the fee recipients, so holders keep the same
tokens while each token's units shrink by ``fee``. The rate is linear per
call but applied to the multiplier each call, so repeated calls compound;
splitting one interval into many calls never takes more than a single call.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import final

from basketry.basket import BasketToken
from basketry.core._validation import require_address, require_at_most, require_below
from basketry.core.errors import BasketFailure, illegal_state
from basketry.core.fixed_point import PRECISE_UNIT, Rounding, checked_sub, guarded, mul
from basketry.core.result import Err, Ok, first_err
from basketry.core.types import Address, Timestamp
from basketry.infra.config import SECONDS_PER_YEAR, ProtocolFeeSchedule
from basketry.infra.protocols import Clock

logger = logging.getLogger(__name__)

_SOURCE = "fees.streaming.StreamingFeeModule"

MAX_FEE_PERCENTAGE = PRECISE_UNIT - 1


class FeeAccrualPhase(Enum):
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"
    FEE_ACCRUED = "FEE_ACCRUED"


@final
@dataclass(frozen=True, slots=True)
class StreamingFeeSettings:
    fee_recipient: Address
    max_streaming_fee_percentage: int
    streaming_fee_percentage: int


@final
@dataclass(frozen=True, slots=True)
class FeeState:
    fee_recipient: Address
    max_streaming_fee_percentage: int
    streaming_fee_percentage: int
    last_streaming_fee_timestamp: Timestamp
    phase: FeeAccrualPhase


@final
@dataclass(frozen=True, slots=True)
class FeeAccrual:
    """Result of one accrual. All zero when nothing was due."""

    fee_percentage: int
    manager_fee: int
    protocol_fee: int
    new_multiplier: int
    timestamp: Timestamp


# ---------------------------------------------------------------------------
# Pure math
# ---------------------------------------------------------------------------


def streaming_fee_percentage(annual_fee: int, elapsed_seconds: int) -> int:
    """Linear fee for the interval, clamped so the multiplier stays positive."""
    return min(annual_fee * elapsed_seconds // SECONDS_PER_YEAR, MAX_FEE_PERCENTAGE)


def fee_inflation(fee_percentage: int, supply: int) -> int:
    """Tokens to mint so the recipients end up owning ``fee_percentage`` of supply."""
    return fee_percentage * supply // checked_sub(PRECISE_UNIT, fee_percentage)


def diluted_multiplier(multiplier: int, fee_percentage: int) -> int:
    return multiplier * checked_sub(PRECISE_UNIT, fee_percentage) // PRECISE_UNIT


# ---------------------------------------------------------------------------
# Module
# ---------------------------------------------------------------------------


@final
class StreamingFeeModule:
    """Accrues a per-basket annual management fee through the multiplier."""

    def __init__(
        self, address: Address, clock: Clock, fee_schedule: ProtocolFeeSchedule | None = None,
    ) -> None:
        self.address = address
        self._clock = clock
        self._fees = fee_schedule or ProtocolFeeSchedule()
        self._states: dict[Address, FeeState] = {}

    def initialize(
        self, basket: BasketToken, caller: Address, settings: StreamingFeeSettings,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.initialize"
        err = first_err(
            basket.require_manager(caller, source),
            basket.require_pending(self.address, source),
            require_below(
                settings.max_streaming_fee_percentage, PRECISE_UNIT,
                "Max fee must be < 100%.", source, "max_streaming_fee_percentage",
            ),
            require_at_most(
                settings.streaming_fee_percentage, settings.max_streaming_fee_percentage,
                "Fee must be <= max.", source, "streaming_fee_percentage",
            ),
            require_address(
                settings.fee_recipient, "Fee Recipient must be non-zero address.",
                source, "fee_recipient",
            ),
        )
        if err is not None:
            return err
        self._states[basket.address] = FeeState(
            fee_recipient=settings.fee_recipient,
            max_streaming_fee_percentage=settings.max_streaming_fee_percentage,
            streaming_fee_percentage=settings.streaming_fee_percentage,
            last_streaming_fee_timestamp=self._clock.now(),
            phase=FeeAccrualPhase.INITIALIZED,
        )
        return basket.initialize_module(self.address)

    def remove(self, basket: BasketToken, caller: Address) -> Ok[None] | Err[BasketFailure]:
        match basket.remove_module(caller, self.address):
            case Err() as err:
                return err
        del self._states[basket.address]
        return Ok(None)

    def fee_state(self, basket: BasketToken) -> FeeState | None:
        return self._states.get(basket.address)

    def phase(self, basket: BasketToken) -> FeeAccrualPhase:
        state = self.fee_state(basket)
        return state.phase if state is not None else FeeAccrualPhase.UNINITIALIZED

    def get_fee(self, basket: BasketToken) -> Ok[int] | Err[BasketFailure]:
        """Fee percentage that accrue_fee() would apply right now."""
        match self._state(basket, f"{_SOURCE}.get_fee"):
            case Err() as err:
                return err
            case Ok(state):
                elapsed = self._clock.now() - state.last_streaming_fee_timestamp
                return Ok(streaming_fee_percentage(state.streaming_fee_percentage, elapsed))

    def accrue_fee(self, basket: BasketToken) -> Ok[FeeAccrual] | Err[BasketFailure]:
        """Mint the pending fee to the recipients and dilute the multiplier."""
        source = f"{_SOURCE}.accrue_fee"
        match self._state(basket, source):
            case Err() as err:
                return err
            case Ok(state):
                pass
        now = self._clock.now()
        elapsed = now - state.last_streaming_fee_timestamp
        multiplier = basket.get_position_multiplier()
        if elapsed <= 0:
            return Ok(FeeAccrual(
                fee_percentage=0, manager_fee=0, protocol_fee=0,
                new_multiplier=multiplier, timestamp=state.last_streaming_fee_timestamp,
            ))

        fee_percentage = streaming_fee_percentage(state.streaming_fee_percentage, elapsed)
        split = self._fees.streaming_fee_split

        def run() -> Ok[FeeAccrual] | Err[BasketFailure]:
            manager_fee = protocol_fee = 0
            new_multiplier = multiplier
            if fee_percentage > 0:
                match guarded(
                    "accrue_fee", source,
                    lambda: (
                        fee_inflation(fee_percentage, basket.total_supply()),
                        diluted_multiplier(multiplier, fee_percentage),
                    ),
                ):
                    case Err() as e:
                        return e
                    case Ok((inflation, new_multiplier)):
                        pass
                protocol_fee = mul(inflation, split, Rounding.DOWN_FOR_PROTOCOL_SAFETY)
                manager_fee = inflation - protocol_fee
                for step in (
                    lambda: basket.mint(self.address, state.fee_recipient, manager_fee),
                    lambda: basket.mint(
                        self.address, self._fees.protocol_fee_recipient, protocol_fee,
                    ),
                    lambda: basket.edit_position_multiplier(self.address, new_multiplier),
                ):
                    match step():
                        case Err() as e:
                            return e
            self._states[basket.address] = replace(
                state, last_streaming_fee_timestamp=now, phase=FeeAccrualPhase.FEE_ACCRUED,
            )
            return Ok(FeeAccrual(
                fee_percentage=fee_percentage,
                manager_fee=manager_fee,
                protocol_fee=protocol_fee,
                new_multiplier=new_multiplier,
                timestamp=now,
            ))

        result = basket.atomic(run)
        match result:
            case Ok(accrual):
                logger.info(
                    "streaming fee on %s: %d over %ds, minted %d + %d",
                    basket.address, accrual.fee_percentage, elapsed,
                    accrual.manager_fee, accrual.protocol_fee,
                )
            case Err(error):
                logger.warning("streaming fee on %s failed: %s", basket.address, error.message)
        return result

    def update_streaming_fee(
        self, basket: BasketToken, caller: Address, new_fee: int,
    ) -> Ok[None] | Err[BasketFailure]:
        """Accrue at the old rate, then switch to ``new_fee``."""
        source = f"{_SOURCE}.update_streaming_fee"
        match self._managed_state(basket, caller, source):
            case Err() as err:
                return err
            case Ok(state):
                pass
        match require_at_most(
            new_fee, state.max_streaming_fee_percentage,
            "Fee must be less than max", source, "new_fee",
        ):
            case Err() as err:
                return err
        match self.accrue_fee(basket):
            case Err() as err:
                return err
        self._states[basket.address] = replace(
            self._states[basket.address], streaming_fee_percentage=new_fee,
        )
        logger.info("streaming fee on %s set to %d", basket.address, new_fee)
        return Ok(None)

    def update_fee_recipient(
        self, basket: BasketToken, caller: Address, new_recipient: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_fee_recipient"
        match self._managed_state(basket, caller, source):
            case Err() as err:
                return err
            case Ok(state):
                pass
        match require_address(
            new_recipient, "Fee Recipient must be non-zero address.", source, "new_recipient",
        ):
            case Err() as err:
                return err
        self._states[basket.address] = replace(state, fee_recipient=new_recipient)
        return Ok(None)

    # -- internals ----------------------------------------------------------

    def _state(self, basket: BasketToken, source: str) -> Ok[FeeState] | Err[BasketFailure]:
        match basket.require_initialized(self.address, source):
            case Err() as err:
                return err
        state = self._states.get(basket.address)
        if state is None:
            return Err(illegal_state(
                "Streaming fee not initialized", source,
                state=FeeAccrualPhase.UNINITIALIZED.value,
                required=FeeAccrualPhase.INITIALIZED.value,
            ))
        return Ok(state)

    def _managed_state(
        self, basket: BasketToken, caller: Address, source: str,
    ) -> Ok[FeeState] | Err[BasketFailure]:
        match self._state(basket, source):
            case Err() as err:
                return err
            case Ok(state):
                pass
        match basket.require_manager(caller, source):
            case Err() as err:
                return err
        return Ok(state)
