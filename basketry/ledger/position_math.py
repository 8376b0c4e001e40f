"""Pure conversions between units, notionals and real/virtual units.

All functions raise on arithmetic faults (see core.fixed_point); callers
wrap them with ``guarded``.
"""

from __future__ import annotations

from basketry.core.fixed_point import (
    Rounding,
    checked_add,
    checked_sub,
    conservative_precise_div,
    conservative_precise_mul,
    div,
    mul,
)


def get_default_total_notional(supply: int, position_unit: int) -> int:
    """Tokens implied by holding ``position_unit`` per basket token."""
    return mul(supply, position_unit, Rounding.DOWN_FOR_PROTOCOL_SAFETY)


def get_default_position_unit(supply: int, total_notional: int) -> int:
    return div(total_notional, supply, Rounding.DOWN_FOR_PROTOCOL_SAFETY)


def calculate_default_edit_position_unit(
    supply: int, pre_total_notional: int, post_total_notional: int, pre_position_unit: int,
) -> int:
    """New unit after the basket's holding moved from pre to post notional.

    Increases are floored and decreases are ceiled, so the resulting unit
    never overstates what is held.
    """
    if post_total_notional >= pre_total_notional:
        delta = div(
            post_total_notional - pre_total_notional, supply, Rounding.DOWN_FOR_PROTOCOL_SAFETY,
        )
        return checked_add(pre_position_unit, delta)
    delta = div(
        pre_total_notional - post_total_notional, supply, Rounding.UP_FOR_PROTOCOL_SAFETY,
    )
    return checked_sub(pre_position_unit, delta)


def virtual_from_real(real_unit: int, multiplier: int) -> int:
    return conservative_precise_mul(real_unit, multiplier)


def real_from_virtual(virtual_unit: int, multiplier: int) -> int:
    return conservative_precise_div(virtual_unit, multiplier)
