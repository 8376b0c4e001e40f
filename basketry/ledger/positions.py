"""Position value types and the ordered component set.

Position is the read model handed to callers; ComponentPosition and
ExternalPosition are the mutable records the ledger keeps per component.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass, field
from enum import Enum
from typing import final

from basketry.core.types import Address


class PositionState(Enum):
    DEFAULT = 0
    EXTERNAL = 1


@final
@dataclass(frozen=True, slots=True)
class Position:
    """One position as reported to callers. ``unit`` is virtual."""

    component: Address
    module: Address | None  # None for the default position
    unit: int
    state: PositionState
    data: bytes = b""


@final
@dataclass(frozen=True, slots=True)
class DefaultPositionEdit:
    """Outcome of recomputing a default unit from a measured balance."""

    new_unit: int
    current_balance: int
    previous_unit: int


@final
@dataclass(slots=True)
class ExternalPosition:
    real_unit: int = 0
    data: bytes = b""


@final
@dataclass(slots=True)
class ComponentPosition:
    real_unit: int = 0
    external_modules: list[Address] = field(default_factory=list)
    external_positions: dict[Address, ExternalPosition] = field(default_factory=dict)

    def copy(self) -> ComponentPosition:
        return ComponentPosition(
            real_unit=self.real_unit,
            external_modules=list(self.external_modules),
            external_positions={
                m: ExternalPosition(real_unit=p.real_unit, data=p.data)
                for m, p in self.external_positions.items()
            },
        )

    def is_empty(self) -> bool:
        return self.real_unit == 0 and all(
            p.real_unit == 0 for p in self.external_positions.values()
        )


@final
class ComponentSet:
    """Insertion-ordered set; removal swaps the last element into the gap."""

    __slots__ = ("_items", "_index")

    def __init__(self, items: tuple[Address, ...] = ()) -> None:
        self._items: list[Address] = []
        self._index: dict[Address, int] = {}
        for item in items:
            self.add(item)

    def add(self, item: Address) -> bool:
        if item in self._index:
            return False
        self._index[item] = len(self._items)
        self._items.append(item)
        return True

    def remove(self, item: Address) -> bool:
        idx = self._index.pop(item, None)
        if idx is None:
            return False
        last = self._items.pop()
        if idx < len(self._items):
            self._items[idx] = last
            self._index[last] = idx
        return True

    def __contains__(self, item: object) -> bool:
        return item in self._index

    def __iter__(self) -> Iterator[Address]:
        return iter(tuple(self._items))

    def __len__(self) -> int:
        return len(self._items)

    def as_tuple(self) -> tuple[Address, ...]:
        return tuple(self._items)

    def copy(self) -> ComponentSet:
        return ComponentSet(tuple(self._items))
