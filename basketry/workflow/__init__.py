"""basketry.workflow -- Temporal workflow for scheduled streaming-fee accrual."""

from basketry.workflow.types import (
    AccrualInput as AccrualInput,
)
from basketry.workflow.types import (
    AccrualOutput as AccrualOutput,
)
from basketry.workflow.types import (
    AccrualScheduleInput as AccrualScheduleInput,
)
from basketry.workflow.types import (
    AccrualScheduleResult as AccrualScheduleResult,
)
