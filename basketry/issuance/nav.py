"""NAV issuance and redemption math.

Pure functions over ints; no basket state is read here. Each raises on an
arithmetic fault (OverflowError / UnderflowError / ZeroDivisionError) and
the issuance module wraps calls in ``guarded``.

Terms
-----
valuation   : reserve value of one whole basket token (18 decimals)
base units  : 10 ** reserve decimals; "normalized" = quantity / base units
premium     : fraction charged on top of NAV; it stays in the basket and
              accrues to existing holders
fees        : manager and protocol fractions, each taken off the gross
              quantity independently (never compounded)

Position units returned by the *_position_unit functions are rounded down
through the multiplier, so the unit the ledger reports never overstates
the reserve actually held.
"""

from __future__ import annotations

from basketry.core.fixed_point import (
    PRECISE_UNIT,
    Rounding,
    checked_add,
    checked_sub,
    div,
    mul,
)
from basketry.ledger.position_math import real_from_virtual, virtual_from_real

_DOWN = Rounding.DOWN_FOR_PROTOCOL_SAFETY
_UP = Rounding.UP_FOR_PROTOCOL_SAFETY


def normalize(quantity: int, base_units: int) -> int:
    """Reserve quantity expressed in 18-decimal whole units."""
    return div(quantity, base_units, _DOWN)


def round_through_multiplier(unit: int, multiplier: int) -> int:
    """The unit the ledger reports after storing ``unit`` at ``multiplier``."""
    return virtual_from_real(real_from_virtual(unit, multiplier), multiplier)


def post_fee_quantity(quantity: int, manager_fee: int, protocol_fee: int) -> int:
    manager = mul(quantity, manager_fee, _DOWN)
    protocol = mul(quantity, protocol_fee, _DOWN)
    return checked_sub(checked_sub(quantity, manager), protocol)


def premium_adjusted(quantity: int, premium: int) -> int:
    return checked_sub(quantity, mul(quantity, premium, _DOWN))


# ---------------------------------------------------------------------------
# Issuance
# ---------------------------------------------------------------------------


def issue_quantity(
    reserve_quantity: int,
    *,
    supply: int,
    valuation: int,
    reserve_base_units: int,
    manager_fee: int,
    protocol_fee: int,
    premium: int,
) -> int:
    """Basket tokens minted for ``reserve_quantity`` of reserve asset.

    mint = nfp * supply / (supply * valuation + nf - nfp), where nf is the
    normalized post-fee reserve and nfp is nf net of premium. Widening the
    denominator by the premium leaves it with existing holders.
    """
    net = post_fee_quantity(reserve_quantity, manager_fee, protocol_fee)
    net_of_premium = premium_adjusted(net, premium)
    normalized_net = normalize(net, reserve_base_units)
    normalized_net_of_premium = normalize(net_of_premium, reserve_base_units)

    denominator = checked_sub(
        checked_add(mul(supply, valuation, _DOWN), normalized_net),
        normalized_net_of_premium,
    )
    return div(mul(normalized_net_of_premium, supply, _DOWN), denominator, _DOWN)


def issue_position_multiplier(previous_multiplier: int, previous_supply: int, new_supply: int) -> int:
    # Inflation rounds up so the multiplier rounds down.
    inflation = div(checked_sub(new_supply, previous_supply), new_supply, _UP)
    return mul(previous_multiplier, checked_sub(PRECISE_UNIT, inflation), _DOWN)


def issue_position_unit(
    previous_unit: int,
    reserve_quantity: int,
    *,
    previous_supply: int,
    new_supply: int,
    multiplier: int,
    manager_fee: int,
    protocol_fee: int,
) -> int:
    """Reserve-asset unit after issuance: (old holding + net inflow) / new supply."""
    net = post_fee_quantity(reserve_quantity, manager_fee, protocol_fee)
    numerator = checked_add(mul(previous_supply, previous_unit, _DOWN), net)
    return round_through_multiplier(div(numerator, new_supply, _DOWN), multiplier)


# ---------------------------------------------------------------------------
# Redemption
# ---------------------------------------------------------------------------


def redeem_gross_reserve_quantity(
    quantity: int, *, valuation: int, reserve_base_units: int, premium: int,
) -> int:
    """Reserve leaving the basket for ``quantity`` basket tokens, before fees.

    The premium is taken with ceiling rounding so redeemers never receive
    more than NAV minus premium.
    """
    notional = mul(valuation, quantity, _DOWN)
    net_of_premium = checked_sub(notional, mul(notional, premium, _UP))
    return mul(net_of_premium, reserve_base_units, _DOWN)


def redeem_reserve_quantity(
    quantity: int,
    *,
    valuation: int,
    reserve_base_units: int,
    manager_fee: int,
    protocol_fee: int,
    premium: int,
) -> int:
    """Reserve the redeemer receives after premium and fees."""
    gross = redeem_gross_reserve_quantity(
        quantity, valuation=valuation, reserve_base_units=reserve_base_units, premium=premium,
    )
    return post_fee_quantity(gross, manager_fee, protocol_fee)


def redeem_position_multiplier(previous_multiplier: int, previous_supply: int, new_supply: int) -> int:
    deflation = div(checked_sub(previous_supply, new_supply), new_supply, _DOWN)
    return mul(previous_multiplier, checked_add(PRECISE_UNIT, deflation), _DOWN)


def redeem_position_unit(
    previous_unit: int,
    quantity: int,
    *,
    valuation: int,
    reserve_base_units: int,
    previous_supply: int,
    new_supply: int,
    multiplier: int,
    premium: int,
) -> int:
    """Reserve-asset unit after redemption: (old holding - gross outflow) / new supply.

    Flooring the remainder is the same as rounding the per-token decrease
    up. Raises UnderflowError when the outflow exceeds the holding.
    """
    gross = redeem_gross_reserve_quantity(
        quantity, valuation=valuation, reserve_base_units=reserve_base_units, premium=premium,
    )
    numerator = checked_sub(mul(previous_supply, previous_unit, _DOWN), gross)
    return round_through_multiplier(div(numerator, new_supply, _DOWN), multiplier)
