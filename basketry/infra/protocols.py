"""Interfaces the accounting core consumes.

Domain code depends on these abstractions; infra/memory_adapter.py and
infra/valuer.py implement them for tests and single-process use. Anything
that can fail returns Ok[T] | Err[...]; nothing raises across this seam.

Hooks are a closed set of capabilities invoked through an explicit
registry (see issuance/debt_module.py). Their effects on component
balances are bounded by the collateralization checks around each call.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Protocol, runtime_checkable

from basketry.core.errors import BasketFailure, IllegalStateError
from basketry.core.result import Err, Ok
from basketry.core.types import Address, Timestamp

if TYPE_CHECKING:
    from basketry.basket import BasketToken


# ---------------------------------------------------------------------------
# Balances, prices, time
# ---------------------------------------------------------------------------


@runtime_checkable
class BalanceOracle(Protocol):
    """Measured (not ledger-implied) token balances."""

    def balance_of(self, token: Address, holder: Address) -> int: ...


@runtime_checkable
class TokenBank(BalanceOracle, Protocol):
    """Balance oracle that can also move component tokens.

    transfer() returns the quantity the recipient actually received, which
    is less than requested for fee-on-transfer tokens.

    snapshot()/restore() let a basket roll component balances back when
    an operation fails part-way.
    """

    def decimals(self, token: Address) -> int: ...

    def transfer(
        self, token: Address, sender: Address, recipient: Address, quantity: int,
    ) -> Ok[int] | Err[BasketFailure]: ...

    def snapshot(self) -> object: ...

    def restore(self, snapshot: object) -> None: ...


@runtime_checkable
class PriceOracle(Protocol):
    """Price of one whole ``asset`` in ``quote_asset``, 18-decimal fixed point."""

    def get_price(self, asset: Address, quote_asset: Address) -> Ok[int] | Err[BasketFailure]: ...


@runtime_checkable
class ValuationOracle(Protocol):
    """Value of one whole basket token in ``quote_asset``, 18-decimal fixed point."""

    def calculate_valuation(
        self, basket: BasketToken, quote_asset: Address,
    ) -> Ok[int] | Err[BasketFailure]: ...


@runtime_checkable
class Clock(Protocol):
    def now(self) -> Timestamp: ...


@runtime_checkable
class BasketRegistry(Protocol):
    """Lookup of live basket instances by address."""

    def get(self, basket_id: Address) -> Ok[BasketToken] | Err[IllegalStateError]: ...

    def all_ids(self) -> tuple[Address, ...]: ...


# ---------------------------------------------------------------------------
# Hooks
# ---------------------------------------------------------------------------


@runtime_checkable
class ManagerIssuanceHook(Protocol):
    """Manager-supplied check run before issuance or redemption."""

    def invoke_pre_issue_hook(
        self, basket: BasketToken, quantity: int, sender: Address, to: Address,
    ) -> Ok[None] | Err[BasketFailure]: ...

    def invoke_pre_redeem_hook(
        self, basket: BasketToken, quantity: int, sender: Address, to: Address,
    ) -> Ok[None] | Err[BasketFailure]: ...


@runtime_checkable
class ModuleIssuanceHook(Protocol):
    """A module that must act once per issue or redeem, before component
    quantities are resolved (e.g. to sync accrued interest into units)."""

    @property
    def address(self) -> Address: ...

    def module_issue_hook(self, basket: BasketToken, quantity: int) -> Ok[None] | Err[BasketFailure]: ...

    def module_redeem_hook(self, basket: BasketToken, quantity: int) -> Ok[None] | Err[BasketFailure]: ...


@runtime_checkable
class ComponentHook(Protocol):
    """A module holding external positions, called per component it holds.

    Called once with is_equity=True and once with is_equity=False so the
    module can move the external share of the component in or out.
    """

    @property
    def address(self) -> Address: ...

    def component_issue_hook(
        self, basket: BasketToken, quantity: int, component: Address, is_equity: bool,
    ) -> Ok[None] | Err[BasketFailure]: ...

    def component_redeem_hook(
        self, basket: BasketToken, quantity: int, component: Address, is_equity: bool,
    ) -> Ok[None] | Err[BasketFailure]: ...
