"""basketry.ledger: per-basket position storage, unit math, collateral checks."""

from basketry.ledger.collateralization import (
    validate_post_transfer_in as validate_post_transfer_in,
)
from basketry.ledger.collateralization import (
    validate_post_transfer_out as validate_post_transfer_out,
)
from basketry.ledger.engine import PositionLedger as PositionLedger
from basketry.ledger.positions import Position as Position
from basketry.ledger.positions import PositionState as PositionState
