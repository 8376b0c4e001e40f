"""basketry.core: result type, error values, fixed-point math."""

from basketry.core.errors import ArithmeticFaultError as ArithmeticFaultError
from basketry.core.errors import BasketError as BasketError
from basketry.core.errors import BasketFailure as BasketFailure
from basketry.core.errors import FieldViolation as FieldViolation
from basketry.core.errors import IllegalStateError as IllegalStateError
from basketry.core.errors import InvariantViolationError as InvariantViolationError
from basketry.core.errors import PolicyRejectionError as PolicyRejectionError
from basketry.core.errors import ValidationError as ValidationError
from basketry.core.fixed_point import PRECISE_UNIT as PRECISE_UNIT
from basketry.core.fixed_point import Rounding as Rounding
from basketry.core.fixed_point import UnderflowError as UnderflowError
from basketry.core.fixed_point import guarded as guarded
from basketry.core.result import Err as Err
from basketry.core.result import Ok as Ok
from basketry.core.result import Result as Result
from basketry.core.result import sequence as sequence
from basketry.core.result import unwrap as unwrap
from basketry.core.types import ZERO_ADDRESS as ZERO_ADDRESS
from basketry.core.types import Address as Address
from basketry.core.types import Timestamp as Timestamp
from basketry.core.types import is_zero_address as is_zero_address
