"""Protocol-wide fee schedule and fee-worker configuration.

Pure configuration data; no I/O.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import final

from basketry.core.fixed_point import PRECISE_UNIT
from basketry.core.types import ZERO_ADDRESS, Address

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

# 365.25 days
SECONDS_PER_YEAR: int = 31_557_600

TASK_QUEUE: str = "basketry-fee-accrual"


# ---------------------------------------------------------------------------
# Protocol fee schedule
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class ProtocolFeeSchedule:
    """Protocol's cut of each fee stream, 18-decimal fractions of 1.0.

    nav_issuance_fee / nav_redemption_fee are charged directly on the gross
    reserve quantity. The *_split fields are the protocol's share of a
    manager fee (streaming, debt issuance, airdrop).
    """

    protocol_fee_recipient: Address = ZERO_ADDRESS
    nav_issuance_fee: int = 0
    nav_redemption_fee: int = 0
    streaming_fee_split: int = 0
    issuance_fee_split: int = 0
    airdrop_fee_split: int = 0

    def __post_init__(self) -> None:
        for name in (
            "nav_issuance_fee", "nav_redemption_fee", "streaming_fee_split",
            "issuance_fee_split", "airdrop_fee_split",
        ):
            value = getattr(self, name)
            if not 0 <= value <= PRECISE_UNIT:
                raise TypeError(f"ProtocolFeeSchedule.{name} must be in [0, 1e18], got {value}")


# ---------------------------------------------------------------------------
# Fee accrual worker
# ---------------------------------------------------------------------------


@final
@dataclass(frozen=True, slots=True)
class FeeWorkerConfig:
    """Temporal connection and schedule for the streaming-fee worker."""

    target_host: str = "localhost:7233"
    namespace: str = "default"
    task_queue: str = TASK_QUEUE
    accrual_interval_seconds: int = 24 * 3600
    rounds: int = 30

    def __post_init__(self) -> None:
        if self.accrual_interval_seconds <= 0:
            raise TypeError(
                "FeeWorkerConfig.accrual_interval_seconds must be > 0, "
                f"got {self.accrual_interval_seconds}"
            )
        if self.rounds <= 0:
            raise TypeError(f"FeeWorkerConfig.rounds must be > 0, got {self.rounds}")
