"""Component-wise issuance and redemption, including debt positions.

Issuing ``q`` basket tokens pulls each component's equity share in from the
issuer and pays each debt share out to the recipient; redeeming does the
reverse. Equity per token is the default unit plus positive external
units; debt per token is the magnitude of negative external units.

Modules holding external positions take part through hooks registered
here. Every hook call is bracketed by a collateralization check, and the
whole operation runs inside BasketToken.atomic.

Rounding: issuance takes equity rounded up and pays debt rounded down;
redemption pays equity rounded down and takes debt rounded up.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from typing import final

from basketry.basket import BasketToken
from basketry.core._validation import require_address, require_at_most, require_positive, val_err
from basketry.core.errors import BasketFailure, illegal_state
from basketry.core.fixed_point import Rounding, checked_add, checked_sub, guarded, mul
from basketry.core.result import Err, Ok, first_err
from basketry.core.types import Address
from basketry.infra.config import ProtocolFeeSchedule
from basketry.infra.protocols import ComponentHook, ManagerIssuanceHook, ModuleIssuanceHook
from basketry.ledger.collateralization import (
    validate_post_transfer_in,
    validate_post_transfer_out,
)

logger = logging.getLogger(__name__)

_SOURCE = "issuance.debt_module.DebtIssuanceModule"


@final
@dataclass(frozen=True, slots=True)
class DebtIssuanceSettings:
    max_manager_fee: int
    manager_issue_fee: int
    manager_redeem_fee: int
    fee_recipient: Address
    manager_issuance_hook: ManagerIssuanceHook | None = None


@final
@dataclass(frozen=True, slots=True)
class FeeBreakdown:
    """total_quantity is what components flow against: q + fee or q - fee."""

    total_quantity: int
    manager_fee: int
    protocol_fee: int


@final
@dataclass(frozen=True, slots=True)
class ComponentFlows:
    components: tuple[Address, ...]
    equity: tuple[int, ...]
    debt: tuple[int, ...]


@final
@dataclass(frozen=True, slots=True)
class IssuanceReceipt:
    quantity: int
    fees: FeeBreakdown
    flows: ComponentFlows


@final
class DebtIssuanceModule:
    """Issuance that honors external and debt positions through hooks."""

    def __init__(self, address: Address, fee_schedule: ProtocolFeeSchedule | None = None) -> None:
        self.address = address
        self._fees = fee_schedule or ProtocolFeeSchedule()
        self._settings: dict[Address, DebtIssuanceSettings] = {}
        self._hooks: dict[Address, dict[Address, ModuleIssuanceHook]] = {}

    # -- lifecycle ----------------------------------------------------------

    def initialize(
        self, basket: BasketToken, caller: Address, settings: DebtIssuanceSettings,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.initialize"
        err = first_err(
            basket.require_manager(caller, source),
            basket.require_pending(self.address, source),
            require_at_most(
                settings.manager_issue_fee, settings.max_manager_fee,
                "Issue fee can't exceed maximum fee", source, "manager_issue_fee",
            ),
            require_at_most(
                settings.manager_redeem_fee, settings.max_manager_fee,
                "Redeem fee can't exceed maximum fee", source, "manager_redeem_fee",
            ),
            require_address(
                settings.fee_recipient, "Fee Recipient must be non-zero address.",
                source, "fee_recipient",
            ),
        )
        if err is not None:
            return err
        self._settings[basket.address] = settings
        self._hooks[basket.address] = {}
        return basket.initialize_module(self.address)

    def remove(self, basket: BasketToken, caller: Address) -> Ok[None] | Err[BasketFailure]:
        if self._hooks.get(basket.address):
            return Err(illegal_state(
                "Registered modules must be removed.", f"{_SOURCE}.remove",
                state="HOOKS_REGISTERED", required="NO_HOOKS",
            ))
        match basket.remove_module(caller, self.address):
            case Err() as err:
                return err
        del self._settings[basket.address]
        del self._hooks[basket.address]
        return Ok(None)

    def settings(self, basket: BasketToken) -> DebtIssuanceSettings | None:
        return self._settings.get(basket.address)

    # -- hook registry ------------------------------------------------------

    def register_hook(
        self, basket: BasketToken, hook: ModuleIssuanceHook,
    ) -> Ok[None] | Err[BasketFailure]:
        """Called by a module that holds external positions on ``basket``."""
        source = f"{_SOURCE}.register_hook"
        err = first_err(
            basket.require_initialized(self.address, source),
            basket.require_initialized(hook.address, source),
        )
        if err is not None:
            return err
        hooks = self._hooks[basket.address]
        if hook.address in hooks:
            return val_err("Module already registered.", source, path="hook", actual=hook.address)
        hooks[hook.address] = hook
        logger.info("hook %s registered on %s", hook.address, basket.address)
        return Ok(None)

    def unregister_hook(
        self, basket: BasketToken, hook_address: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.unregister_hook"
        match basket.require_initialized(self.address, source):
            case Err() as err:
                return err
        hooks = self._hooks[basket.address]
        if hook_address not in hooks:
            return val_err("Module not registered.", source, path="hook", actual=hook_address)
        del hooks[hook_address]
        return Ok(None)

    def registered_hooks(self, basket: BasketToken) -> tuple[Address, ...]:
        return tuple(self._hooks.get(basket.address, {}))

    # -- quotes -------------------------------------------------------------

    def calculate_total_fees(
        self, basket: BasketToken, quantity: int, is_issue: bool,
    ) -> Ok[FeeBreakdown] | Err[BasketFailure]:
        source = f"{_SOURCE}.calculate_total_fees"
        match basket.require_initialized(self.address, source):
            case Err() as err:
                return err
        s = self._settings[basket.address]
        rate = s.manager_issue_fee if is_issue else s.manager_redeem_fee
        split = self._fees.issuance_fee_split

        def compute() -> FeeBreakdown:
            fee = mul(quantity, rate, Rounding.UP_FOR_PROTOCOL_SAFETY)
            protocol = mul(fee, split, Rounding.DOWN_FOR_PROTOCOL_SAFETY)
            total = checked_add(quantity, fee) if is_issue else checked_sub(quantity, fee)
            return FeeBreakdown(total_quantity=total, manager_fee=fee - protocol, protocol_fee=protocol)

        return guarded("calculate_total_fees", source, compute)

    def get_required_component_issuance_units(
        self, basket: BasketToken, quantity: int,
    ) -> Ok[ComponentFlows] | Err[BasketFailure]:
        """Per-component equity to pull in and debt to pay out for issuing ``quantity``."""
        match self.calculate_total_fees(basket, quantity, is_issue=True):
            case Err() as err:
                return err
            case Ok(fees):
                return self._flows(basket, fees.total_quantity, is_issue=True)

    def get_required_component_redemption_units(
        self, basket: BasketToken, quantity: int,
    ) -> Ok[ComponentFlows] | Err[BasketFailure]:
        match self.calculate_total_fees(basket, quantity, is_issue=False):
            case Err() as err:
                return err
            case Ok(fees):
                return self._flows(basket, fees.total_quantity, is_issue=False)

    # -- issue / redeem -----------------------------------------------------

    def issue(
        self, basket: BasketToken, caller: Address, quantity: int, to: Address,
    ) -> Ok[IssuanceReceipt] | Err[BasketFailure]:
        source = f"{_SOURCE}.issue"
        err = first_err(
            basket.require_initialized(self.address, source),
            require_positive(quantity, "Issue quantity must be > 0", source, "quantity"),
        )
        if err is not None:
            return err
        settings = self._settings[basket.address]

        def run() -> Ok[IssuanceReceipt] | Err[BasketFailure]:
            if settings.manager_issuance_hook is not None:
                match settings.manager_issuance_hook.invoke_pre_issue_hook(
                    basket, quantity, caller, to,
                ):
                    case Err() as e:
                        return e
            match self.calculate_total_fees(basket, quantity, is_issue=True):
                case Err() as e:
                    return e
                case Ok(fees):
                    pass
            for hook in tuple(self._hooks[basket.address].values()):
                match hook.module_issue_hook(basket, fees.total_quantity):
                    case Err() as e:
                        return e
            # Units are read after module hooks, which may have synced them.
            match self._flows(basket, fees.total_quantity, is_issue=True):
                case Err() as e:
                    return e
                case Ok(flows):
                    pass

            initial_supply = basket.total_supply()
            final_supply = initial_supply + fees.total_quantity
            for component, equity in zip(flows.components, flows.equity, strict=True):
                match self._equity_in(basket, caller, component, equity, fees.total_quantity, initial_supply):
                    case Err() as e:
                        return e
            for component, debt in zip(flows.components, flows.debt, strict=True):
                match self._debt_out(basket, to, component, debt, fees.total_quantity, final_supply):
                    case Err() as e:
                        return e

            match basket.mint(self.address, to, quantity):
                case Err() as e:
                    return e
            match self._mint_fees(basket, settings, fees):
                case Err() as e:
                    return e
            return Ok(IssuanceReceipt(quantity=quantity, fees=fees, flows=flows))

        result = basket.atomic(run)
        if isinstance(result, Ok):
            logger.info("issued %d of %s to %s", quantity, basket.address, to)
        return result

    def redeem(
        self, basket: BasketToken, caller: Address, quantity: int, to: Address,
    ) -> Ok[IssuanceReceipt] | Err[BasketFailure]:
        source = f"{_SOURCE}.redeem"
        err = first_err(
            basket.require_initialized(self.address, source),
            require_positive(quantity, "Redeem quantity must be > 0", source, "quantity"),
        )
        if err is not None:
            return err
        settings = self._settings[basket.address]

        def run() -> Ok[IssuanceReceipt] | Err[BasketFailure]:
            if settings.manager_issuance_hook is not None:
                match settings.manager_issuance_hook.invoke_pre_redeem_hook(
                    basket, quantity, caller, to,
                ):
                    case Err() as e:
                        return e
            match self.calculate_total_fees(basket, quantity, is_issue=False):
                case Err() as e:
                    return e
                case Ok(fees):
                    pass
            for hook in tuple(self._hooks[basket.address].values()):
                match hook.module_redeem_hook(basket, fees.total_quantity):
                    case Err() as e:
                        return e
            match self._flows(basket, fees.total_quantity, is_issue=False):
                case Err() as e:
                    return e
                case Ok(flows):
                    pass

            initial_supply = basket.total_supply()
            match basket.burn(self.address, caller, quantity):
                case Err() as e:
                    return e
            final_supply = initial_supply - fees.total_quantity
            # Debt is repaid before equity is released.
            for component, debt in zip(flows.components, flows.debt, strict=True):
                match self._debt_in(basket, caller, component, debt, fees.total_quantity, initial_supply):
                    case Err() as e:
                        return e
            for component, equity in zip(flows.components, flows.equity, strict=True):
                match self._equity_out(basket, to, component, equity, fees.total_quantity, final_supply):
                    case Err() as e:
                        return e

            match self._mint_fees(basket, settings, fees):
                case Err() as e:
                    return e
            return Ok(IssuanceReceipt(quantity=quantity, fees=fees, flows=flows))

        result = basket.atomic(run)
        if isinstance(result, Ok):
            logger.info("redeemed %d of %s for %s", quantity, basket.address, to)
        return result

    # -- manager settings ---------------------------------------------------

    def update_fee_recipient(
        self, basket: BasketToken, caller: Address, recipient: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_fee_recipient"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_address(recipient, "Fee Recipient must be non-zero address.", source, "recipient"):
            case Err() as err:
                return err
        if recipient == s.fee_recipient:
            return val_err("Same fee recipient passed", source, path="recipient", actual=recipient)
        self._settings[basket.address] = replace(s, fee_recipient=recipient)
        return Ok(None)

    def update_issue_fee(
        self, basket: BasketToken, caller: Address, fee: int,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_issue_fee"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_at_most(fee, s.max_manager_fee, "Issue fee can't exceed maximum", source, "fee"):
            case Err() as err:
                return err
        if fee == s.manager_issue_fee:
            return val_err("Same issue fee passed", source, path="fee", actual=fee)
        self._settings[basket.address] = replace(s, manager_issue_fee=fee)
        return Ok(None)

    def update_redeem_fee(
        self, basket: BasketToken, caller: Address, fee: int,
    ) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.update_redeem_fee"
        match self._managed_settings(basket, caller, source):
            case Err() as err:
                return err
            case Ok(s):
                pass
        match require_at_most(fee, s.max_manager_fee, "Redeem fee can't exceed maximum", source, "fee"):
            case Err() as err:
                return err
        if fee == s.manager_redeem_fee:
            return val_err("Same redeem fee passed", source, path="fee", actual=fee)
        self._settings[basket.address] = replace(s, manager_redeem_fee=fee)
        return Ok(None)

    # -- internals ----------------------------------------------------------

    def _managed_settings(
        self, basket: BasketToken, caller: Address, source: str,
    ) -> Ok[DebtIssuanceSettings] | Err[BasketFailure]:
        err = first_err(
            basket.require_initialized(self.address, source),
            basket.require_manager(caller, source),
        )
        if err is not None:
            return err
        return Ok(self._settings[basket.address])

    def _flows(
        self, basket: BasketToken, total_quantity: int, *, is_issue: bool,
    ) -> Ok[ComponentFlows] | Err[BasketFailure]:
        up, down = Rounding.UP_FOR_PROTOCOL_SAFETY, Rounding.DOWN_FOR_PROTOCOL_SAFETY
        equity_rounding = up if is_issue else down
        debt_rounding = down if is_issue else up

        def compute() -> ComponentFlows:
            components = basket.get_components()
            equity: list[int] = []
            debt: list[int] = []
            for component in components:
                equity_unit = basket.get_default_position_virtual_unit(component)
                debt_unit = 0
                for module in basket.get_external_position_modules(component):
                    unit = basket.get_external_position_virtual_unit(component, module)
                    if unit > 0:
                        equity_unit += unit
                    else:
                        debt_unit += -unit
                equity.append(mul(total_quantity, equity_unit, equity_rounding))
                debt.append(mul(total_quantity, debt_unit, debt_rounding))
            return ComponentFlows(components=components, equity=tuple(equity), debt=tuple(debt))

        return guarded("component_flows", f"{_SOURCE}._flows", compute)

    def _component_hooks(self, basket: BasketToken, component: Address) -> Ok[list[ComponentHook]] | Err[BasketFailure]:
        hooks = self._hooks[basket.address]
        found: list[ComponentHook] = []
        for module in basket.get_external_position_modules(component):
            hook = hooks.get(module)
            if hook is None:
                return Err(illegal_state(
                    f"External position module {module} on {component} is not a registered hook",
                    f"{_SOURCE}._component_hooks",
                    state="UNREGISTERED", required="REGISTERED",
                ))
            if isinstance(hook, ComponentHook):
                found.append(hook)
        return Ok(found)

    def _run_component_hooks(
        self, basket: BasketToken, component: Address, quantity: int, *, is_issue: bool, is_equity: bool,
    ) -> Ok[None] | Err[BasketFailure]:
        match self._component_hooks(basket, component):
            case Err() as err:
                return err
            case Ok(hooks):
                pass
        for hook in hooks:
            call = hook.component_issue_hook if is_issue else hook.component_redeem_hook
            match call(basket, quantity, component, is_equity):
                case Err() as err:
                    return err
        return Ok(None)

    def _equity_in(
        self, basket: BasketToken, issuer: Address, component: Address, amount: int,
        quantity: int, initial_supply: int,
    ) -> Ok[None] | Err[BasketFailure]:
        if amount > 0:
            initial_balance = basket.component_balance(component)
            match basket.bank.transfer(component, issuer, basket.address, amount):
                case Err() as err:
                    return err
            match validate_post_transfer_in(basket, component, initial_supply, amount, initial_balance):
                case Err() as err:
                    return err
        return self._run_component_hooks(basket, component, quantity, is_issue=True, is_equity=True)

    def _debt_out(
        self, basket: BasketToken, to: Address, component: Address, amount: int,
        quantity: int, final_supply: int,
    ) -> Ok[None] | Err[BasketFailure]:
        match self._run_component_hooks(basket, component, quantity, is_issue=True, is_equity=False):
            case Err() as err:
                return err
        if amount > 0:
            match basket.invoke_transfer(self.address, component, to, amount):
                case Err() as err:
                    return err
            return validate_post_transfer_out(basket, component, final_supply)
        return Ok(None)

    def _debt_in(
        self, basket: BasketToken, redeemer: Address, component: Address, amount: int,
        quantity: int, initial_supply: int,
    ) -> Ok[None] | Err[BasketFailure]:
        if amount > 0:
            initial_balance = basket.component_balance(component)
            match basket.bank.transfer(component, redeemer, basket.address, amount):
                case Err() as err:
                    return err
            match validate_post_transfer_in(basket, component, initial_supply, amount, initial_balance):
                case Err() as err:
                    return err
        return self._run_component_hooks(basket, component, quantity, is_issue=False, is_equity=False)

    def _equity_out(
        self, basket: BasketToken, to: Address, component: Address, amount: int,
        quantity: int, final_supply: int,
    ) -> Ok[None] | Err[BasketFailure]:
        match self._run_component_hooks(basket, component, quantity, is_issue=False, is_equity=True):
            case Err() as err:
                return err
        initial_balance = basket.component_balance(component)
        if amount > 0:
            match basket.invoke_transfer(self.address, component, to, amount):
                case Err() as err:
                    return err
        return validate_post_transfer_out(basket, component, final_supply, initial_balance)

    def _mint_fees(
        self, basket: BasketToken, settings: DebtIssuanceSettings, fees: FeeBreakdown,
    ) -> Ok[None] | Err[BasketFailure]:
        match basket.mint(self.address, settings.fee_recipient, fees.manager_fee):
            case Err() as err:
                return err
        return basket.mint(self.address, self._fees.protocol_fee_recipient, fees.protocol_fee)
