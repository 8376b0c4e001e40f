"""Durable workflow that accrues streaming fees on a fixed schedule.

Each round runs accrue_streaming_fee once per basket, then sleeps for the
configured interval on workflow time. The loop is bounded by ``rounds``;
long-running schedules continue-as-new from the caller.

Determinism contract: this module contains NO I/O and NO system clock
access. All basket interaction is delegated to the activity.
"""

from __future__ import annotations

from datetime import timedelta

from temporalio import workflow
from temporalio.common import RetryPolicy

with workflow.unsafe.imports_passed_through():
    from basketry.workflow.activities import FeeAccrualActivities
    from basketry.workflow.types import (
        AccrualInput,
        AccrualOutput,
        AccrualScheduleInput,
        AccrualScheduleResult,
    )

ACCRUAL_RETRY = RetryPolicy(
    initial_interval=timedelta(seconds=2),
    backoff_coefficient=2.0,
    maximum_interval=timedelta(seconds=30),
    maximum_attempts=3,
)


@workflow.defn(name="StreamingFeeAccrual")
class StreamingFeeAccrualWorkflow:
    """Invariants maintained:
    - Every basket is accrued exactly once per completed round
    - The loop terminates after ``rounds`` rounds
    - A failed accrual is recorded and does not stop the schedule
    """

    def __init__(self) -> None:
        self._rounds_completed: int = 0
        self._total_minted: int = 0

    @workflow.query
    def get_rounds_completed(self) -> int:
        return self._rounds_completed

    @workflow.query
    def get_total_minted(self) -> int:
        return self._total_minted

    @workflow.run
    async def run(self, inp: AccrualScheduleInput) -> AccrualScheduleResult:
        failures: list[AccrualOutput] = []
        for round_index in range(inp.rounds):
            if round_index > 0:
                await workflow.sleep(timedelta(seconds=inp.interval_seconds))
            for basket_id in inp.basket_ids:
                out = await workflow.execute_activity_method(
                    FeeAccrualActivities.accrue_streaming_fee,
                    AccrualInput(basket_id=basket_id),
                    start_to_close_timeout=timedelta(seconds=30),
                    retry_policy=ACCRUAL_RETRY,
                )
                if out.error is not None:
                    workflow.logger.warning(
                        "Round %d: accrual for %s failed: %s",
                        round_index, basket_id, out.error,
                    )
                    failures.append(out)
                else:
                    self._total_minted += out.minted
            self._rounds_completed += 1

        return AccrualScheduleResult(
            rounds_completed=self._rounds_completed,
            total_minted=self._total_minted,
            failures=tuple(failures),
        )
