"""Basket valuation from component prices.

    valuation = sum over components of (total units / 10**decimals) * price

Total units include external positions, which may be negative (debt), so
the sum is signed until the end. A negative valuation is an arithmetic
fault; a basket cannot be worth less than nothing.
"""

from __future__ import annotations

import logging
from typing import final

from basketry.basket import BasketToken
from basketry.core.errors import ArithmeticFaultError, BasketFailure
from basketry.core.fixed_point import guarded, precise_div_int, precise_mul_int
from basketry.core.result import Err, Ok
from basketry.core.types import Address
from basketry.infra.protocols import PriceOracle

logger = logging.getLogger(__name__)

_SOURCE = "infra.valuer.BasketValuer.calculate_valuation"


@final
class BasketValuer:
    """ValuationOracle backed by a PriceOracle.

    Components are priced in ``master_quote_asset`` and the total is then
    converted to the requested quote asset. When no master is given, the
    requested quote asset is used directly.
    """

    def __init__(self, price_oracle: PriceOracle, master_quote_asset: Address | None = None) -> None:
        self._prices = price_oracle
        self._master = master_quote_asset

    def calculate_valuation(
        self, basket: BasketToken, quote_asset: Address,
    ) -> Ok[int] | Err[BasketFailure]:
        master = self._master or quote_asset
        valuation = 0
        for component in basket.get_components():
            match self._prices.get_price(component, master):
                case Err() as err:
                    return err
                case Ok(price):
                    pass
            units = basket.get_total_component_real_units(component)
            base_units = 10 ** basket.bank.decimals(component)
            match guarded(
                "component_value", _SOURCE,
                lambda: precise_mul_int(precise_div_int(units, base_units), price),
            ):
                case Err() as err:
                    return err
                case Ok(value):
                    valuation += value

        if master != quote_asset:
            match self._prices.get_price(quote_asset, master):
                case Err() as err:
                    return err
                case Ok(quote_to_master):
                    pass
            match guarded(
                "quote_conversion", _SOURCE,
                lambda: precise_div_int(valuation, quote_to_master),
            ):
                case Err() as err:
                    return err
                case Ok(converted):
                    valuation = converted

        if valuation < 0:
            return Err(ArithmeticFaultError(
                message=f"Valuation of {basket.address} is negative: {valuation}",
                code="UNDERFLOW",
                source=_SOURCE,
                operation="calculate_valuation",
            ))
        logger.debug("valuation of %s in %s: %d", basket.address, quote_asset, valuation)
        return Ok(valuation)
