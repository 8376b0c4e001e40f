"""Worker for the scheduled streaming-fee accrual workflow.

Usage::

    import asyncio
    from basketry.workflow.worker import run_worker

    asyncio.run(run_worker(FeeAccrualActivities(registry, module)))
"""

from __future__ import annotations

from temporalio.client import Client
from temporalio.worker import Worker

from basketry.infra.config import FeeWorkerConfig
from basketry.workflow.activities import FeeAccrualActivities
from basketry.workflow.fee_workflow import StreamingFeeAccrualWorkflow


def build_worker(client: Client, activities: FeeAccrualActivities, task_queue: str) -> Worker:
    return Worker(
        client,
        task_queue=task_queue,
        workflows=[StreamingFeeAccrualWorkflow],
        activities=[activities.accrue_streaming_fee],
    )


async def run_worker(
    activities: FeeAccrualActivities, config: FeeWorkerConfig | None = None,
) -> None:
    """Connect to Temporal and run the worker until interrupted."""
    config = config or FeeWorkerConfig()
    client = await Client.connect(config.target_host, namespace=config.namespace)
    await build_worker(client, activities, config.task_queue).run()
