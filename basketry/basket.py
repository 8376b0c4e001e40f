"""BasketToken: one basket instance, its supply, and its position ledger.

The basket exclusively owns its PositionLedger. Reads are unrestricted;
every mutation names the calling module, and only modules in state
INITIALIZED may mutate. Module lifecycle:

    NONE --add_module--> PENDING --initialize_module--> INITIALIZED
    INITIALIZED --remove_module--> NONE

atomic(fn) runs a multi-step operation all-or-nothing: if fn returns Err
or raises, ledger, supply, holder balances, module states and the token
bank's component balances are restored.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from enum import Enum
from typing import final

from basketry.core.errors import (
    ArithmeticFaultError,
    BasketFailure,
    illegal_state,
    validation_error,
)
from basketry.core.result import Err, Ok
from basketry.core.types import Address, is_zero_address
from basketry.infra.protocols import TokenBank
from basketry.ledger.engine import PositionLedger
from basketry.ledger.positions import DefaultPositionEdit, Position

logger = logging.getLogger(__name__)

_SOURCE = "basket.BasketToken"


class ModuleState(Enum):
    NONE = "NONE"
    PENDING = "PENDING"
    INITIALIZED = "INITIALIZED"


@final
class BasketToken:
    """A basket token instance. Mutable; not a dataclass."""

    def __init__(
        self,
        address: Address,
        manager: Address,
        bank: TokenBank,
        components: dict[Address, int] | None = None,
        modules: tuple[Address, ...] = (),
    ) -> None:
        if is_zero_address(address) or is_zero_address(manager):
            raise TypeError("BasketToken address and manager must be non-zero")
        self._address = address
        self._manager = manager
        self._bank = bank
        self._ledger = PositionLedger()
        self._supply = 0
        self._holders: dict[Address, int] = {}
        self._modules: dict[Address, ModuleState] = {m: ModuleState.PENDING for m in modules}
        for component, unit in (components or {}).items():
            if unit <= 0:
                raise TypeError(f"Initial unit for {component} must be > 0, got {unit}")
            self._ledger.edit_default_position(component, unit)

    # -- identity -----------------------------------------------------------

    @property
    def address(self) -> Address:
        return self._address

    @property
    def manager(self) -> Address:
        return self._manager

    @property
    def bank(self) -> TokenBank:
        return self._bank

    def require_manager(self, caller: Address, source: str) -> Ok[None] | Err[BasketFailure]:
        if caller != self._manager:
            return Err(illegal_state(
                "Must be the basket manager", source,
                state="NOT_MANAGER", required="MANAGER", code="UNAUTHORIZED",
            ))
        return Ok(None)

    def set_manager(self, caller: Address, new_manager: Address) -> Ok[None] | Err[BasketFailure]:
        match self.require_manager(caller, f"{_SOURCE}.set_manager"):
            case Err() as err:
                return err
        if is_zero_address(new_manager):
            return Err(validation_error("Manager must be non-zero", f"{_SOURCE}.set_manager"))
        logger.info("basket %s manager %s -> %s", self._address, self._manager, new_manager)
        self._manager = new_manager
        return Ok(None)

    # -- module lifecycle ---------------------------------------------------

    def module_state(self, module: Address) -> ModuleState:
        return self._modules.get(module, ModuleState.NONE)

    def is_initialized_module(self, module: Address) -> bool:
        return self.module_state(module) is ModuleState.INITIALIZED

    def get_modules(self) -> tuple[Address, ...]:
        return tuple(m for m, s in self._modules.items() if s is ModuleState.INITIALIZED)

    def require_initialized(self, module: Address, source: str) -> Ok[None] | Err[BasketFailure]:
        state = self.module_state(module)
        if state is not ModuleState.INITIALIZED:
            return Err(illegal_state(
                f"Module {module} is not initialized on {self._address}", source,
                state=state.value, required=ModuleState.INITIALIZED.value,
            ))
        return Ok(None)

    def require_pending(self, module: Address, source: str) -> Ok[None] | Err[BasketFailure]:
        state = self.module_state(module)
        if state is not ModuleState.PENDING:
            return Err(illegal_state(
                f"Module {module} must be pending on {self._address}", source,
                state=state.value, required=ModuleState.PENDING.value,
            ))
        return Ok(None)

    def add_module(self, caller: Address, module: Address) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.add_module"
        match self.require_manager(caller, source):
            case Err() as err:
                return err
        state = self.module_state(module)
        if state is not ModuleState.NONE:
            return Err(illegal_state(
                "Module must not be added", source,
                state=state.value, required=ModuleState.NONE.value,
            ))
        self._modules[module] = ModuleState.PENDING
        logger.info("basket %s: module %s pending", self._address, module)
        return Ok(None)

    def initialize_module(self, module: Address) -> Ok[None] | Err[BasketFailure]:
        match self.require_pending(module, f"{_SOURCE}.initialize_module"):
            case Err() as err:
                return err
        self._modules[module] = ModuleState.INITIALIZED
        logger.info("basket %s: module %s initialized", self._address, module)
        return Ok(None)

    def remove_module(self, caller: Address, module: Address) -> Ok[None] | Err[BasketFailure]:
        source = f"{_SOURCE}.remove_module"
        match self.require_manager(caller, source):
            case Err() as err:
                return err
        match self.require_initialized(module, source):
            case Err() as err:
                return err
        del self._modules[module]
        logger.info("basket %s: module %s removed", self._address, module)
        return Ok(None)

    # -- supply -------------------------------------------------------------

    def total_supply(self) -> int:
        return self._supply

    def balance_of(self, holder: Address) -> int:
        return self._holders.get(holder, 0)

    def mint(self, module: Address, holder: Address, quantity: int) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.mint"):
            case Err() as err:
                return err
        if quantity < 0:
            return Err(validation_error("Mint quantity must be >= 0", f"{_SOURCE}.mint"))
        self._holders[holder] = self.balance_of(holder) + quantity
        self._supply += quantity
        return Ok(None)

    def burn(self, module: Address, holder: Address, quantity: int) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.burn"):
            case Err() as err:
                return err
        have = self.balance_of(holder)
        if quantity < 0 or have < quantity:
            return Err(ArithmeticFaultError(
                message=f"{holder} holds {have} basket tokens, cannot burn {quantity}",
                code="UNDERFLOW",
                source=f"{_SOURCE}.burn",
                operation="burn",
            ))
        self._holders[holder] = have - quantity
        self._supply -= quantity
        return Ok(None)

    # -- position queries ---------------------------------------------------

    def get_components(self) -> tuple[Address, ...]:
        return self._ledger.get_components()

    def is_component(self, component: Address) -> bool:
        return self._ledger.is_component(component)

    def get_position_multiplier(self) -> int:
        return self._ledger.get_position_multiplier()

    def get_positions(self) -> tuple[Position, ...]:
        return self._ledger.get_positions()

    def get_default_position_real_unit(self, component: Address) -> int:
        return self._ledger.get_default_position_real_unit(component)

    def get_default_position_virtual_unit(self, component: Address) -> int:
        return self._ledger.get_default_position_virtual_unit(component)

    def get_external_position_modules(self, component: Address) -> tuple[Address, ...]:
        return self._ledger.get_external_position_modules(component)

    def get_external_position_real_unit(self, component: Address, module: Address) -> int:
        return self._ledger.get_external_position_real_unit(component, module)

    def get_external_position_virtual_unit(self, component: Address, module: Address) -> int:
        return self._ledger.get_external_position_virtual_unit(component, module)

    def get_external_position_data(self, component: Address, module: Address) -> bytes:
        return self._ledger.get_external_position_data(component, module)

    def get_total_component_real_units(self, component: Address) -> int:
        return self._ledger.get_total_component_real_units(component)

    def has_default_position(self, component: Address) -> bool:
        return self._ledger.has_default_position(component)

    def has_external_position(self, component: Address, module: Address) -> bool:
        return self._ledger.has_external_position(component, module)

    def has_sufficient_default_units(self, component: Address, required_unit: int) -> bool:
        return self._ledger.has_sufficient_default_units(component, required_unit)

    def has_sufficient_external_units(
        self, component: Address, module: Address, required_unit: int,
    ) -> bool:
        return self._ledger.has_sufficient_external_units(component, module, required_unit)

    def get_tracked_balance(self, component: Address) -> int:
        return self._ledger.get_tracked_balance(component, self._supply)

    def component_balance(self, component: Address) -> int:
        """Measured balance of ``component`` held by this basket."""
        return self._bank.balance_of(component, self._address)

    # -- position mutations (initialized modules only) ----------------------

    def edit_default_position_unit(
        self, module: Address, component: Address, new_unit: int,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.edit_default_position_unit"):
            case Err() as err:
                return err
        return self._ledger.edit_default_position_unit(component, new_unit)

    def add_external_position_module(
        self, module: Address, component: Address, position_module: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.add_external_position_module"):
            case Err() as err:
                return err
        return self._ledger.add_external_position_module(component, position_module)

    def remove_external_position_module(
        self, module: Address, component: Address, position_module: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.remove_external_position_module"):
            case Err() as err:
                return err
        return self._ledger.remove_external_position_module(component, position_module)

    def edit_external_position_unit(
        self, module: Address, component: Address, position_module: Address, new_unit: int,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.edit_external_position_unit"):
            case Err() as err:
                return err
        return self._ledger.edit_external_position_unit(component, position_module, new_unit)

    def edit_external_position_data(
        self, module: Address, component: Address, position_module: Address, data: bytes,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.edit_external_position_data"):
            case Err() as err:
                return err
        return self._ledger.edit_external_position_data(component, position_module, data)

    def edit_external_position(
        self,
        module: Address,
        component: Address,
        position_module: Address,
        new_unit: int,
        data: bytes = b"",
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.edit_external_position"):
            case Err() as err:
                return err
        return self._ledger.edit_external_position(component, position_module, new_unit, data)

    def edit_position_multiplier(
        self, module: Address, new_multiplier: int,
    ) -> Ok[None] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.edit_position_multiplier"):
            case Err() as err:
                return err
        return self._ledger.edit_position_multiplier(new_multiplier)

    def calculate_and_edit_default_position(
        self, module: Address, component: Address, supply: int, previous_balance: int,
    ) -> Ok[DefaultPositionEdit] | Err[BasketFailure]:
        match self.require_initialized(module, f"{_SOURCE}.calculate_and_edit_default_position"):
            case Err() as err:
                return err
        return self._ledger.calculate_and_edit_default_position(
            component, supply, previous_balance, self._bank, self._address,
        )

    def invoke_transfer(
        self, module: Address, token: Address, to: Address, quantity: int,
    ) -> Ok[int] | Err[BasketFailure]:
        """Send component tokens out of the basket on a module's behalf."""
        match self.require_initialized(module, f"{_SOURCE}.invoke_transfer"):
            case Err() as err:
                return err
        if quantity == 0:
            return Ok(0)
        return self._bank.transfer(token, self._address, to, quantity)

    # -- atomicity ----------------------------------------------------------

    def atomic[T](self, fn: Callable[[], Ok[T] | Err[BasketFailure]]) -> Ok[T] | Err[BasketFailure]:
        """Run fn; on Err or exception, restore every piece of basket state."""
        ledger = self._ledger.clone()
        supply = self._supply
        holders = dict(self._holders)
        modules = dict(self._modules)
        bank = self._bank.snapshot()

        def rollback() -> None:
            self._ledger.restore(ledger)
            self._supply = supply
            self._holders = holders
            self._modules = modules
            self._bank.restore(bank)

        try:
            result = fn()
        except Exception:
            rollback()
            raise
        if isinstance(result, Err):
            rollback()
            logger.info(
                "basket %s: rolled back after %s (%s)",
                self._address, result.error.code, result.error.message,
            )
        return result
