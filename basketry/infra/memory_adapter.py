"""In-memory implementations of the consumed interfaces.

Test doubles that let the whole suite run without a chain or a price feed.
All classes are @final.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, final

from basketry.core.errors import ArithmeticFaultError, BasketFailure, IllegalStateError, illegal_state
from basketry.core.fixed_point import PRECISE_UNIT, precise_mul
from basketry.core.result import Err, Ok
from basketry.core.types import Address, Timestamp

if TYPE_CHECKING:
    from basketry.basket import BasketToken


def _insufficient_balance(token: Address, holder: Address, have: int, want: int) -> ArithmeticFaultError:
    return ArithmeticFaultError(
        message=f"{holder} holds {have} of {token}, needs {want}",
        code="UNDERFLOW",
        source="memory_adapter.InMemoryTokenBank.transfer",
        operation="transfer",
    )


@final
class InMemoryTokenBank:
    """Balances of every component token for every holder.

    A token registered with ``transfer_fee`` (18-decimal fraction) delivers
    that much less than requested on each transfer; the difference is
    destroyed.
    """

    def __init__(self) -> None:
        self._balances: dict[tuple[Address, Address], int] = {}
        self._decimals: dict[Address, int] = {}
        self._transfer_fees: dict[Address, int] = {}

    def register_token(self, token: Address, decimals: int = 18, transfer_fee: int = 0) -> None:
        if not 0 <= transfer_fee <= PRECISE_UNIT:
            raise TypeError(f"transfer_fee must be in [0, 1e18], got {transfer_fee}")
        self._decimals[token] = decimals
        self._transfer_fees[token] = transfer_fee

    def decimals(self, token: Address) -> int:
        return self._decimals.get(token, 18)

    def balance_of(self, token: Address, holder: Address) -> int:
        return self._balances.get((token, holder), 0)

    def transfer(
        self, token: Address, sender: Address, recipient: Address, quantity: int,
    ) -> Ok[int] | Err[BasketFailure]:
        have = self.balance_of(token, sender)
        if quantity < 0 or have < quantity:
            return Err(_insufficient_balance(token, sender, have, quantity))
        received = quantity - precise_mul(quantity, self._transfer_fees.get(token, 0))
        self._balances[(token, sender)] = have - quantity
        self._balances[(token, recipient)] = self.balance_of(token, recipient) + received
        return Ok(received)

    def mint(self, token: Address, holder: Address, quantity: int) -> None:
        """Test-only helper: credit tokens from nowhere (faucet, airdrop, interest)."""
        self._balances[(token, holder)] = self.balance_of(token, holder) + quantity

    def burn(self, token: Address, holder: Address, quantity: int) -> None:
        """Test-only helper: destroy tokens (slashing, negative rebase)."""
        self._balances[(token, holder)] = self.balance_of(token, holder) - quantity

    def snapshot(self) -> object:
        return dict(self._balances)

    def restore(self, snapshot: object) -> None:
        if not isinstance(snapshot, dict):
            raise TypeError(f"InMemoryTokenBank.restore expects a snapshot dict, got {type(snapshot).__name__}")
        self._balances = dict(snapshot)


@final
class ManualClock:
    """Clock that only moves when told to."""

    def __init__(self, start: Timestamp = 0) -> None:
        self._now = start

    def now(self) -> Timestamp:
        return self._now

    def advance(self, seconds: int) -> None:
        self._now += seconds

    def set(self, timestamp: Timestamp) -> None:
        self._now = timestamp


@final
class StaticPriceOracle:
    """Fixed prices keyed by (asset, quote_asset)."""

    def __init__(self, prices: dict[tuple[Address, Address], int] | None = None) -> None:
        self._prices: dict[tuple[Address, Address], int] = dict(prices or {})

    def set_price(self, asset: Address, quote_asset: Address, price: int) -> None:
        self._prices[(asset, quote_asset)] = price

    def get_price(self, asset: Address, quote_asset: Address) -> Ok[int] | Err[BasketFailure]:
        if asset == quote_asset:
            return Ok(PRECISE_UNIT)
        price = self._prices.get((asset, quote_asset))
        if price is None:
            return Err(illegal_state(
                f"No price for {asset} in {quote_asset}",
                "memory_adapter.StaticPriceOracle.get_price",
                state="NO_PRICE", required="PRICED",
            ))
        return Ok(price)


@final
class StaticValuationOracle:
    """Fixed basket valuation regardless of positions. Test-only."""

    def __init__(self, valuation: int) -> None:
        self.valuation = valuation

    def calculate_valuation(
        self, basket: BasketToken, quote_asset: Address,  # noqa: ARG002
    ) -> Ok[int] | Err[BasketFailure]:
        return Ok(self.valuation)


@final
class InMemoryBasketRegistry:
    """Live baskets keyed by their address."""

    def __init__(self) -> None:
        self._baskets: dict[Address, BasketToken] = {}

    def register(self, basket: BasketToken) -> None:
        self._baskets[basket.address] = basket

    def get(self, basket_id: Address) -> Ok[BasketToken] | Err[IllegalStateError]:
        basket = self._baskets.get(basket_id)
        if basket is None:
            return Err(illegal_state(
                f"Unknown basket: {basket_id}",
                "memory_adapter.InMemoryBasketRegistry.get",
                state="UNKNOWN", required="REGISTERED",
            ))
        return Ok(basket)

    def all_ids(self) -> tuple[Address, ...]:
        return tuple(self._baskets)
