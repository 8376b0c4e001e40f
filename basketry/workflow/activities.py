"""Activity implementation for scheduled streaming-fee accrual.

The activity is a thin wrapper: look the basket up, call
StreamingFeeModule.accrue_fee, and flatten the Result into an
AccrualOutput. Domain failures come back in ``error``; they are not
retried. accrue_fee is idempotent within one clock tick, since a
second call sees zero elapsed time.
"""

from __future__ import annotations

from temporalio import activity

from basketry.core.result import Err, Ok
from basketry.fees.streaming import StreamingFeeModule
from basketry.infra.protocols import BasketRegistry
from basketry.workflow.types import AccrualInput, AccrualOutput


class FeeAccrualActivities:
    """Holds the live basket registry and fee module the activity acts on."""

    def __init__(self, registry: BasketRegistry, module: StreamingFeeModule) -> None:
        self._registry = registry
        self._module = module

    @activity.defn(name="accrue_streaming_fee")
    async def accrue_streaming_fee(self, inp: AccrualInput) -> AccrualOutput:
        """Timeout: 30s | Retries: 3 (transport only)"""
        activity.logger.info("Accruing streaming fee for basket %s", inp.basket_id)

        match self._registry.get(inp.basket_id):
            case Err(error):
                return AccrualOutput(basket_id=inp.basket_id, error=error.message)
            case Ok(basket):
                pass

        match self._module.accrue_fee(basket):
            case Err(error):
                activity.logger.warning(
                    "Accrual for basket %s failed: %s", inp.basket_id, error.message,
                )
                return AccrualOutput(basket_id=inp.basket_id, error=error.message)
            case Ok(accrual):
                return AccrualOutput(
                    basket_id=inp.basket_id,
                    fee_percentage=accrual.fee_percentage,
                    minted=accrual.manager_fee + accrual.protocol_fee,
                )
