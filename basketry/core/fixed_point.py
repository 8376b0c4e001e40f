"""18-decimal fixed-point integer arithmetic.

Every quantity is an int scaled by PRECISE_UNIT (1e18 == 1.0). Unsigned
results must fit in 256 bits and signed results in 256-bit two's
complement; leaving that domain raises, it never wraps or clamps.

Functions
---------
precise_mul / precise_mul_ceil     : unsigned, floor / ceiling
precise_div / precise_div_ceil     : unsigned, floor / ceiling
precise_mul_int / precise_div_int  : signed, truncate toward zero
precise_mul_ceil_int / precise_div_ceil_int : signed, away from zero when inexact
conservative_precise_mul / conservative_precise_div : signed, toward -infinity
mul / div                          : dispatch on a Rounding policy
checked_add / checked_sub          : unsigned add / subtract
guarded                            : run arithmetic, turn a fault into Err

Leaf functions raise OverflowError, UnderflowError or ZeroDivisionError;
``guarded`` is the seam where those become ArithmeticFaultError values.
"""

from __future__ import annotations

from collections.abc import Callable
from enum import Enum

from basketry.core.errors import ArithmeticFaultError
from basketry.core.result import Err, Ok

PRECISE_UNIT: int = 10**18

MAX_UINT256: int = 2**256 - 1
MAX_INT256: int = 2**255 - 1
MIN_INT256: int = -(2**255)


class UnderflowError(ArithmeticError):
    """Unsigned result would be negative."""


class Rounding(Enum):
    """Named rounding policy, stated at each call site.

    DOWN_FOR_PROTOCOL_SAFETY: floor; used where the result is something the
    basket pays out or credits (mint quantities, redeemed reserves, units
    after an increase).
    UP_FOR_PROTOCOL_SAFETY: ceiling; used where the result is something the
    basket must receive or hold (required deposits, collateral floors,
    unit decreases).
    """

    DOWN_FOR_PROTOCOL_SAFETY = "DOWN"
    UP_FOR_PROTOCOL_SAFETY = "UP"


# ---------------------------------------------------------------------------
# Range checks
# ---------------------------------------------------------------------------


def _uint(value: int, operation: str) -> int:
    if value < 0:
        raise UnderflowError(f"{operation}: unsigned result {value} < 0")
    if value > MAX_UINT256:
        raise OverflowError(f"{operation}: result exceeds 2**256 - 1")
    return value


def _int(value: int, operation: str) -> int:
    if value > MAX_INT256 or value < MIN_INT256:
        raise OverflowError(f"{operation}: result outside int256")
    return value


def _trunc_div(a: int, b: int) -> int:
    """Integer division truncating toward zero."""
    q = abs(a) // abs(b)
    return q if (a >= 0) == (b > 0) else -q


# ---------------------------------------------------------------------------
# Unsigned
# ---------------------------------------------------------------------------


def checked_add(a: int, b: int) -> int:
    return _uint(_uint(a, "add") + _uint(b, "add"), "add")


def checked_sub(a: int, b: int) -> int:
    return _uint(_uint(a, "sub") - _uint(b, "sub"), "sub")


def precise_mul(a: int, b: int) -> int:
    """a * b / 1e18, rounded down."""
    product = _uint(_uint(a, "precise_mul") * _uint(b, "precise_mul"), "precise_mul")
    return product // PRECISE_UNIT


def precise_mul_ceil(a: int, b: int) -> int:
    """a * b / 1e18, rounded up."""
    if a == 0 or b == 0:
        _uint(a, "precise_mul_ceil")
        _uint(b, "precise_mul_ceil")
        return 0
    product = _uint(
        _uint(a, "precise_mul_ceil") * _uint(b, "precise_mul_ceil"), "precise_mul_ceil",
    )
    return (product - 1) // PRECISE_UNIT + 1


def precise_div(a: int, b: int) -> int:
    """a * 1e18 / b, rounded down."""
    if b == 0:
        raise ZeroDivisionError("precise_div: divisor is zero")
    scaled = _uint(_uint(a, "precise_div") * PRECISE_UNIT, "precise_div")
    return scaled // _uint(b, "precise_div")


def precise_div_ceil(a: int, b: int) -> int:
    """a * 1e18 / b, rounded up."""
    if b == 0:
        raise ZeroDivisionError("precise_div_ceil: divisor is zero")
    _uint(b, "precise_div_ceil")
    if a == 0:
        return 0
    scaled = _uint(_uint(a, "precise_div_ceil") * PRECISE_UNIT, "precise_div_ceil")
    return (scaled - 1) // b + 1


# ---------------------------------------------------------------------------
# Signed
# ---------------------------------------------------------------------------


def precise_mul_int(a: int, b: int) -> int:
    """Signed a * b / 1e18, truncated toward zero."""
    return _trunc_div(_int(_int(a, "precise_mul_int") * b, "precise_mul_int"), PRECISE_UNIT)


def precise_div_int(a: int, b: int) -> int:
    """Signed a * 1e18 / b, truncated toward zero."""
    if b == 0:
        raise ZeroDivisionError("precise_div_int: divisor is zero")
    return _trunc_div(_int(_int(a, "precise_div_int") * PRECISE_UNIT, "precise_div_int"), b)


def precise_mul_ceil_int(a: int, b: int) -> int:
    """Signed a * b / 1e18, rounded away from zero when inexact."""
    if a == 0 or b == 0:
        return 0
    product = _int(_int(a, "precise_mul_ceil_int") * b, "precise_mul_ceil_int")
    if product > 0:
        return (product - 1) // PRECISE_UNIT + 1
    return -((-product - 1) // PRECISE_UNIT + 1)


def precise_div_ceil_int(a: int, b: int) -> int:
    """Signed a * 1e18 / b, rounded away from zero when inexact."""
    if b == 0:
        raise ZeroDivisionError("precise_div_ceil_int: divisor is zero")
    if a == 0:
        return 0
    scaled = _int(_int(a, "precise_div_ceil_int") * PRECISE_UNIT, "precise_div_ceil_int")
    magnitude = (abs(scaled) - 1) // abs(b) + 1
    return magnitude if (scaled > 0) == (b > 0) else -magnitude


def conservative_precise_mul(a: int, b: int) -> int:
    """Signed a * b / 1e18, rounded toward negative infinity."""
    return _int(_int(a, "conservative_precise_mul") * b, "conservative_precise_mul") // PRECISE_UNIT


def conservative_precise_div(a: int, b: int) -> int:
    """Signed a * 1e18 / b, rounded toward negative infinity."""
    if b == 0:
        raise ZeroDivisionError("conservative_precise_div: divisor is zero")
    scaled = _int(_int(a, "conservative_precise_div") * PRECISE_UNIT, "conservative_precise_div")
    return scaled // b


# ---------------------------------------------------------------------------
# Policy dispatch
# ---------------------------------------------------------------------------


def mul(a: int, b: int, rounding: Rounding) -> int:
    if rounding is Rounding.UP_FOR_PROTOCOL_SAFETY:
        return precise_mul_ceil(a, b)
    return precise_mul(a, b)


def div(a: int, b: int, rounding: Rounding) -> int:
    if rounding is Rounding.UP_FOR_PROTOCOL_SAFETY:
        return precise_div_ceil(a, b)
    return precise_div(a, b)


def guarded[T](operation: str, source: str, fn: Callable[[], T]) -> Ok[T] | Err[ArithmeticFaultError]:
    """Evaluate fn(); an arithmetic fault becomes Err(ArithmeticFaultError)."""
    try:
        return Ok(fn())
    except ZeroDivisionError as exc:
        code = "DIVISION_BY_ZERO"
        detail = str(exc)
    except UnderflowError as exc:
        code = "UNDERFLOW"
        detail = str(exc)
    except OverflowError as exc:
        code = "OVERFLOW"
        detail = str(exc)
    return Err(ArithmeticFaultError(
        message=f"{operation} failed: {detail}",
        code=code,
        source=source,
        operation=operation,
    ))
