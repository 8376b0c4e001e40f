"""Shared validation helpers for module settings and arguments.

Reduces the Err(ValidationError(...)) wrapping pattern to a 1-liner.
"""

from __future__ import annotations

from basketry.core.errors import FieldViolation, ValidationError
from basketry.core.result import Err, Ok
from basketry.core.types import Address, is_zero_address


def val_err(
    message: str, source: str, *, path: str = "", constraint: str = "", actual: object = "",
) -> Err[ValidationError]:
    """Create Err[ValidationError], with one FieldViolation when ``path`` is given."""
    fields = (
        (FieldViolation(path=path, constraint=constraint, actual_value=str(actual)),)
        if path else ()
    )
    return Err(ValidationError(
        message=message, code="INVALID_ARGUMENT", source=source, fields=fields,
    ))


def require_positive(
    value: int, message: str, source: str, path: str,
) -> Ok[None] | Err[ValidationError]:
    if value <= 0:
        return val_err(message, source, path=path, constraint="> 0", actual=value)
    return Ok(None)


def require_at_most(
    value: int, bound: int, message: str, source: str, path: str,
) -> Ok[None] | Err[ValidationError]:
    if value < 0 or value > bound:
        return val_err(message, source, path=path, constraint=f"in [0, {bound}]", actual=value)
    return Ok(None)


def require_below(
    value: int, bound: int, message: str, source: str, path: str,
) -> Ok[None] | Err[ValidationError]:
    if value < 0 or value >= bound:
        return val_err(message, source, path=path, constraint=f"in [0, {bound})", actual=value)
    return Ok(None)


def require_address(
    address: Address, message: str, source: str, path: str,
) -> Ok[None] | Err[ValidationError]:
    if is_zero_address(address):
        return val_err(message, source, path=path, constraint="non-zero address", actual=address)
    return Ok(None)
