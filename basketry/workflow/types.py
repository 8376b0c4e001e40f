"""Workflow data types for scheduled streaming-fee accrual.

All types: @final @dataclass(frozen=True, slots=True), built from str and
int only so Temporal's default JSON converter round-trips them.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import final


# ---------------------------------------------------------------------------
# Activity input / output
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class AccrualInput:
    basket_id: str


@final
@dataclass(frozen=True, slots=True)
class AccrualOutput:
    """Outcome of one accrue_fee call. ``error`` is set instead of raising."""

    basket_id: str
    fee_percentage: int = 0
    minted: int = 0
    error: str | None = None


# ---------------------------------------------------------------------------
# Workflow input / result
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class AccrualScheduleInput:
    """Accrue every basket in ``basket_ids`` once per round.

    Rounds are separated by ``interval_seconds`` of workflow time.
    """

    basket_ids: tuple[str, ...]
    interval_seconds: int
    rounds: int

    def __post_init__(self) -> None:
        if self.interval_seconds <= 0:
            raise TypeError(
                f"AccrualScheduleInput.interval_seconds must be > 0, got {self.interval_seconds}"
            )
        if self.rounds <= 0:
            raise TypeError(f"AccrualScheduleInput.rounds must be > 0, got {self.rounds}")


@final
@dataclass(frozen=True, slots=True)
class AccrualScheduleResult:
    rounds_completed: int
    total_minted: int
    failures: tuple[AccrualOutput, ...] = ()
