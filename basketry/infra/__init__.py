"""basketry.infra: consumed interfaces, configuration, in-memory adapters.

valuer.BasketValuer depends on BasketToken and is imported from its module
directly.
"""

from basketry.infra.config import SECONDS_PER_YEAR as SECONDS_PER_YEAR
from basketry.infra.config import FeeWorkerConfig as FeeWorkerConfig
from basketry.infra.config import ProtocolFeeSchedule as ProtocolFeeSchedule
