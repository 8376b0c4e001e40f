"""Per-basket position ledger: default and external units plus the multiplier.

Units are stored "real" (pre-multiplier). Everything reported to callers is
"virtual": virtual = floor(real * multiplier / 1e18).

Membership invariant: a component is enumerated by get_components() iff its
default real unit is nonzero or at least one of its external positions has
a nonzero unit. A module registered without a unit is tracked but does not
list its component. An external position never holds a zero unit with
data; writing a zero unit removes the module entry. Every mutator ends in
_sync_membership(), which is the only place components enter or leave the
ComponentSet.

PositionLedger is @final but NOT a dataclass: it holds mutable state.
"""

from __future__ import annotations

import logging
from typing import final

from basketry.core.errors import (
    ArithmeticFaultError,
    BasketFailure,
    invariant_violation,
    validation_error,
)
from basketry.core.fixed_point import PRECISE_UNIT, guarded
from basketry.core.result import Err, Ok
from basketry.core.types import Address
from basketry.infra.protocols import BalanceOracle
from basketry.ledger.position_math import (
    calculate_default_edit_position_unit,
    get_default_total_notional,
    real_from_virtual,
    virtual_from_real,
)
from basketry.ledger.positions import (
    ComponentPosition,
    ComponentSet,
    DefaultPositionEdit,
    ExternalPosition,
    Position,
    PositionState,
)

logger = logging.getLogger(__name__)

_SOURCE = "ledger.engine.PositionLedger"


def _precision_loss(operation: str, virtual: int, real: int) -> Err[ArithmeticFaultError]:
    return Err(ArithmeticFaultError(
        message=f"{operation}: unit {virtual} does not survive conversion (got {real})",
        code="PRECISION_LOSS",
        source=f"{_SOURCE}.{operation}",
        operation=operation,
    ))


@final
class PositionLedger:
    """Default and external positions of one basket, scaled by one multiplier."""

    def __init__(self, multiplier: int = PRECISE_UNIT) -> None:
        if multiplier <= 0:
            raise TypeError(f"PositionLedger multiplier must be > 0, got {multiplier}")
        self._multiplier = multiplier
        self._components = ComponentSet()
        self._positions: dict[Address, ComponentPosition] = {}

    # -- queries ------------------------------------------------------------

    def get_components(self) -> tuple[Address, ...]:
        return self._components.as_tuple()

    def is_component(self, component: Address) -> bool:
        return component in self._components

    def get_position_multiplier(self) -> int:
        return self._multiplier

    def get_default_position_real_unit(self, component: Address) -> int:
        pos = self._positions.get(component)
        return pos.real_unit if pos is not None else 0

    def get_default_position_virtual_unit(self, component: Address) -> int:
        return virtual_from_real(self.get_default_position_real_unit(component), self._multiplier)

    def get_external_position_modules(self, component: Address) -> tuple[Address, ...]:
        pos = self._positions.get(component)
        return tuple(pos.external_modules) if pos is not None else ()

    def get_external_position_real_unit(self, component: Address, module: Address) -> int:
        ext = self._external(component, module)
        return ext.real_unit if ext is not None else 0

    def get_external_position_virtual_unit(self, component: Address, module: Address) -> int:
        return virtual_from_real(
            self.get_external_position_real_unit(component, module), self._multiplier,
        )

    def get_external_position_data(self, component: Address, module: Address) -> bytes:
        ext = self._external(component, module)
        return ext.data if ext is not None else b""

    def has_default_position(self, component: Address) -> bool:
        return self.get_default_position_real_unit(component) != 0

    def has_external_position(self, component: Address, module: Address) -> bool:
        return module in self.get_external_position_modules(component)

    def has_sufficient_default_units(self, component: Address, required_unit: int) -> bool:
        return self.get_default_position_real_unit(component) >= required_unit

    def has_sufficient_external_units(
        self, component: Address, module: Address, required_unit: int,
    ) -> bool:
        return self.get_external_position_real_unit(component, module) >= required_unit

    def get_tracked_balance(self, component: Address, supply: int) -> int:
        """Default balance the ledger implies the basket holds."""
        return get_default_total_notional(
            supply, self.get_default_position_virtual_unit(component),
        )

    def get_total_component_real_units(self, component: Address) -> int:
        """Default plus all external virtual units for one component."""
        total = self.get_default_position_virtual_unit(component)
        for module in self.get_external_position_modules(component):
            total += self.get_external_position_virtual_unit(component, module)
        return total

    def get_positions(self) -> tuple[Position, ...]:
        """Default positions, then each external position, in component order."""
        out: list[Position] = []
        for component in self._components:
            pos = self._positions[component]
            if pos.real_unit != 0:
                out.append(Position(
                    component=component,
                    module=None,
                    unit=virtual_from_real(pos.real_unit, self._multiplier),
                    state=PositionState.DEFAULT,
                ))
            for module in pos.external_modules:
                ext = pos.external_positions[module]
                if ext.real_unit == 0:
                    continue
                out.append(Position(
                    component=component,
                    module=module,
                    unit=virtual_from_real(ext.real_unit, self._multiplier),
                    state=PositionState.EXTERNAL,
                    data=ext.data,
                ))
        return tuple(out)

    # -- default positions --------------------------------------------------

    def edit_default_position(
        self, component: Address, new_real_unit: int,
    ) -> Ok[None] | Err[BasketFailure]:
        """Store a real unit directly and update component membership."""
        pos = self._positions.setdefault(component, ComponentPosition())
        old = pos.real_unit
        pos.real_unit = new_real_unit
        self._sync_membership(component)
        logger.debug("default position %s: real unit %d -> %d", component, old, new_real_unit)
        return Ok(None)

    def edit_default_position_unit(
        self, component: Address, new_virtual_unit: int,
    ) -> Ok[None] | Err[BasketFailure]:
        """Store the real unit backing ``new_virtual_unit`` at the current multiplier."""
        match guarded(
            "edit_default_position_unit",
            f"{_SOURCE}.edit_default_position_unit",
            lambda: real_from_virtual(new_virtual_unit, self._multiplier),
        ):
            case Err() as err:
                return err
            case Ok(value=real):
                pass
        if new_virtual_unit > 0 and real <= 0:
            return _precision_loss("edit_default_position_unit", new_virtual_unit, real)
        return self.edit_default_position(component, real)

    def calculate_and_edit_default_position(
        self,
        component: Address,
        supply: int,
        previous_balance: int,
        balances: BalanceOracle,
        holder: Address,
    ) -> Ok[DefaultPositionEdit] | Err[BasketFailure]:
        """Fold a measured balance change back into the default unit.

        The new unit is derived from the move previous_balance -> current
        measured balance; an empty holding zeroes the unit outright.
        """
        current_balance = balances.balance_of(component, holder)
        previous_unit = self.get_default_position_virtual_unit(component)

        if current_balance == 0:
            new_unit = 0
        else:
            match guarded(
                "calculate_default_edit_position_unit",
                f"{_SOURCE}.calculate_and_edit_default_position",
                lambda: calculate_default_edit_position_unit(
                    supply, previous_balance, current_balance, previous_unit,
                ),
            ):
                case Err() as err:
                    return err
                case Ok(value=computed):
                    new_unit = computed

        match self.edit_default_position_unit(component, new_unit):
            case Err() as err:
                return err
        return Ok(DefaultPositionEdit(
            new_unit=new_unit, current_balance=current_balance, previous_unit=previous_unit,
        ))

    # -- external positions -------------------------------------------------

    def add_external_position_module(
        self, component: Address, module: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        pos = self._positions.setdefault(component, ComponentPosition())
        if module in pos.external_modules:
            return Err(validation_error(
                "Module already added", f"{_SOURCE}.add_external_position_module",
            ))
        pos.external_modules.append(module)
        pos.external_positions[module] = ExternalPosition()
        self._sync_membership(component)
        logger.debug("external module %s added to %s", module, component)
        return Ok(None)

    def remove_external_position_module(
        self, component: Address, module: Address,
    ) -> Ok[None] | Err[BasketFailure]:
        """Drop the module entry, clearing its unit and data together."""
        pos = self._positions.get(component)
        if pos is None or module not in pos.external_modules:
            return Err(validation_error(
                "Module not found", f"{_SOURCE}.remove_external_position_module",
            ))
        pos.external_modules.remove(module)
        del pos.external_positions[module]
        self._sync_membership(component)
        logger.debug("external module %s removed from %s", module, component)
        return Ok(None)

    def edit_external_position_unit(
        self, component: Address, module: Address, new_virtual_unit: int,
    ) -> Ok[None] | Err[BasketFailure]:
        """Rewrite the unit of a registered module; zero removes the entry."""
        ext = self._external(component, module)
        if ext is None:
            return Err(validation_error(
                "Module not found", f"{_SOURCE}.edit_external_position_unit",
            ))
        if new_virtual_unit == 0:
            return self.remove_external_position_module(component, module)
        match self._external_real_unit("edit_external_position_unit", new_virtual_unit):
            case Err() as err:
                return err
            case Ok(value=real):
                pass
        self._write_external(component, module, ext, real)
        return Ok(None)

    def edit_external_position_data(
        self, component: Address, module: Address, data: bytes,
    ) -> Ok[None] | Err[BasketFailure]:
        ext = self._external(component, module)
        if ext is None:
            return Err(validation_error(
                "Module not found", f"{_SOURCE}.edit_external_position_data",
            ))
        if data and ext.real_unit == 0:
            return Err(validation_error(
                "Passed data must be empty when unit is zero",
                f"{_SOURCE}.edit_external_position_data",
            ))
        ext.data = data
        return Ok(None)

    def edit_external_position(
        self, component: Address, module: Address, new_virtual_unit: int, data: bytes = b"",
    ) -> Ok[None] | Err[BasketFailure]:
        """Create, update or destroy one external position.

        A nonzero unit creates the module entry if needed and stores unit
        and data; a zero unit requires empty data and removes the entry.
        """
        if new_virtual_unit == 0:
            if data:
                return Err(validation_error(
                    "Passed data must be empty when unit is zero",
                    f"{_SOURCE}.edit_external_position",
                ))
            if self.has_external_position(component, module):
                return self.remove_external_position_module(component, module)
            return Ok(None)

        match self._external_real_unit("edit_external_position", new_virtual_unit):
            case Err() as err:
                return err
            case Ok(value=real):
                pass
        if not self.has_external_position(component, module):
            match self.add_external_position_module(component, module):
                case Err() as err:
                    return err
        ext = self._positions[component].external_positions[module]
        self._write_external(component, module, ext, real)
        ext.data = data
        return Ok(None)

    # -- multiplier ---------------------------------------------------------

    def edit_position_multiplier(self, new_multiplier: int) -> Ok[None] | Err[BasketFailure]:
        """Replace the multiplier; refuse a value that would zero a positive unit."""
        source = f"{_SOURCE}.edit_position_multiplier"
        if new_multiplier <= 0:
            return Err(invariant_violation(
                "Position multiplier must be positive", source,
                law_name="POSITIVE_MULTIPLIER", expected="> 0", actual=new_multiplier,
            ))
        smallest = self._smallest_positive_real_unit()
        if smallest is not None:
            match guarded(
                "edit_position_multiplier", source,
                lambda: virtual_from_real(smallest, new_multiplier),
            ):
                case Err() as err:
                    return err
                case Ok(value=virtual):
                    if virtual <= 0:
                        return Err(invariant_violation(
                            "New multiplier too small", source,
                            law_name="POSITIVE_MULTIPLIER",
                            expected="smallest virtual unit > 0", actual=virtual,
                        ))
        old = self._multiplier
        self._multiplier = new_multiplier
        logger.debug("position multiplier %d -> %d", old, new_multiplier)
        return Ok(None)

    # -- snapshots ----------------------------------------------------------

    def clone(self) -> PositionLedger:
        """Deep copy; used to roll a basket back after a failed operation."""
        new = PositionLedger(self._multiplier)
        new._components = self._components.copy()
        new._positions = {c: p.copy() for c, p in self._positions.items()}
        return new

    def restore(self, snapshot: PositionLedger) -> None:
        self._multiplier = snapshot._multiplier
        self._components = snapshot._components.copy()
        self._positions = {c: p.copy() for c, p in snapshot._positions.items()}

    # -- internals ----------------------------------------------------------

    def _external(self, component: Address, module: Address) -> ExternalPosition | None:
        pos = self._positions.get(component)
        if pos is None:
            return None
        return pos.external_positions.get(module)

    def _external_real_unit(
        self, operation: str, new_virtual_unit: int,
    ) -> Ok[int] | Err[BasketFailure]:
        match guarded(
            operation,
            f"{_SOURCE}.{operation}",
            lambda: real_from_virtual(new_virtual_unit, self._multiplier),
        ):
            case Err() as err:
                return err
            case Ok(value=real):
                pass
        # Debt units round toward -inf, so only positive units can vanish.
        if new_virtual_unit > 0 and real <= 0:
            return _precision_loss(operation, new_virtual_unit, real)
        return Ok(real)

    def _write_external(
        self, component: Address, module: Address, ext: ExternalPosition, real: int,
    ) -> None:
        old = ext.real_unit
        ext.real_unit = real
        self._sync_membership(component)
        logger.debug(
            "external position %s/%s: real unit %d -> %d", component, module, old, real,
        )

    def _sync_membership(self, component: Address) -> None:
        pos = self._positions.get(component)
        if pos is None or pos.is_empty():
            if self._components.remove(component):
                logger.debug("component %s removed", component)
            return
        if self._components.add(component):
            logger.debug("component %s added", component)

    def _smallest_positive_real_unit(self) -> int | None:
        units = [
            unit
            for pos in self._positions.values()
            for unit in (
                pos.real_unit, *(e.real_unit for e in pos.external_positions.values()),
            )
            if unit > 0
        ]
        return min(units) if units else None
