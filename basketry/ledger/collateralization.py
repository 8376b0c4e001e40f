"""Collateralization checks bracketing balance-moving calls.

Both checks compare a basket's measured component balance with what its
ledger requires it to hold, always rounding the requirement up. They are
read-only; a failure is an InvariantViolationError and the enclosing
operation must roll back in full.

    post transfer in : balance >= ceil(initial_supply * unit) + quantity
    post transfer out: balance >= ceil(final_supply * unit)
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import TYPE_CHECKING

from basketry.core.errors import BasketFailure, invariant_violation
from basketry.core.fixed_point import Rounding, guarded, mul
from basketry.core.result import Err, Ok
from basketry.core.types import Address

if TYPE_CHECKING:
    from basketry.basket import BasketToken

logger = logging.getLogger(__name__)

LAW_COLLATERALIZATION = "COLLATERALIZATION"

_SOURCE = "ledger.collateralization"


def capture_balances(basket: BasketToken, components: Iterable[Address]) -> dict[Address, int]:
    """Measured balances before an external call, for error diagnostics."""
    return {c: basket.component_balance(c) for c in components}


def _check(
    basket: BasketToken,
    component: Address,
    required: int,
    operation: str,
    initial_balance: int | None,
) -> Ok[None] | Err[BasketFailure]:
    balance = basket.component_balance(component)
    if balance >= required:
        return Ok(None)
    detail = "" if initial_balance is None else f" (balance before call: {initial_balance})"
    logger.warning(
        "collateralization failed on %s for %s: required %d, held %d",
        basket.address, component, required, balance,
    )
    return Err(invariant_violation(
        f"Invalid transfer. Results in undercollateralization of {component}{detail}",
        f"{_SOURCE}.{operation}",
        law_name=LAW_COLLATERALIZATION,
        expected=f">= {required}",
        actual=balance,
    ))


def validate_post_transfer_in(
    basket: BasketToken,
    component: Address,
    initial_supply: int,
    component_quantity: int,
    initial_balance: int | None = None,
) -> Ok[None] | Err[BasketFailure]:
    """After ``component_quantity`` should have arrived, before any hook runs."""
    match guarded(
        "validate_post_transfer_in", f"{_SOURCE}.validate_post_transfer_in",
        lambda: mul(
            initial_supply,
            basket.get_default_position_virtual_unit(component),
            Rounding.UP_FOR_PROTOCOL_SAFETY,
        ) + component_quantity,
    ):
        case Err() as err:
            return err
        case Ok(value=required):
            return _check(
                basket, component, required, "validate_post_transfer_in", initial_balance,
            )


def validate_post_transfer_out(
    basket: BasketToken,
    component: Address,
    final_supply: int,
    initial_balance: int | None = None,
) -> Ok[None] | Err[BasketFailure]:
    """After tokens left the basket, against the supply that will remain."""
    match guarded(
        "validate_post_transfer_out", f"{_SOURCE}.validate_post_transfer_out",
        lambda: mul(
            final_supply,
            basket.get_default_position_virtual_unit(component),
            Rounding.UP_FOR_PROTOCOL_SAFETY,
        ),
    ):
        case Err() as err:
            return err
        case Ok(value=required):
            return _check(
                basket, component, required, "validate_post_transfer_out", initial_balance,
            )
