"""Error value hierarchy: public basket operations never raise.

Every failure is a frozen dataclass value that can be pattern-matched and
serialized. The families map onto how a caller should react:

- ArithmeticFaultError    -- fixed-point overflow / underflow / division by zero
- InvariantViolationError -- collateralization or multiplier invariant broken
- IllegalStateError       -- operation on a module, position or fee state
                             that is not in the required lifecycle state
- PolicyRejectionError    -- slippage, supply floor, available collateral;
                             expected and recoverable by the caller
- ValidationError         -- malformed arguments or settings
"""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import final


@dataclass(frozen=True, slots=True)
class BasketError:
    """Base error value. Not @final: has subclasses."""

    message: str
    code: str
    source: str  # "module.function" that produced this error

    def with_context(self, context: str) -> BasketError:
        """Return a copy with context prepended to message."""
        return replace(self, message=f"{context}: {self.message}")

    def to_dict(self) -> dict[str, object]:
        return {
            "message": self.message,
            "code": self.code,
            "source": self.source,
        }


@final
@dataclass(frozen=True, slots=True)
class FieldViolation:
    """Describes a single field validation failure."""

    path: str  # e.g. "settings.max_manager_fee"
    constraint: str  # e.g. "must be < 1e18"
    actual_value: str


@final
@dataclass(frozen=True, slots=True)
class ValidationError(BasketError):
    """One or more arguments or settings failed validation."""

    fields: tuple[FieldViolation, ...]

    def to_dict(self) -> dict[str, object]:
        return {
            **BasketError.to_dict(self),
            "fields": [
                {"path": f.path, "constraint": f.constraint, "actual_value": f.actual_value}
                for f in self.fields
            ],
        }


@final
@dataclass(frozen=True, slots=True)
class ArithmeticFaultError(BasketError):
    """Fixed-point arithmetic left its domain. Never clamped."""

    operation: str

    def to_dict(self) -> dict[str, object]:
        return {**BasketError.to_dict(self), "operation": self.operation}


@final
@dataclass(frozen=True, slots=True)
class InvariantViolationError(BasketError):
    """A ledger invariant does not hold; the whole operation is aborted."""

    law_name: str
    expected: str
    actual: str

    def to_dict(self) -> dict[str, object]:
        return {
            **BasketError.to_dict(self),
            "law_name": self.law_name,
            "expected": self.expected,
            "actual": self.actual,
        }


@final
@dataclass(frozen=True, slots=True)
class IllegalStateError(BasketError):
    """Operation requires a lifecycle state the target is not in."""

    state: str
    required: str

    def to_dict(self) -> dict[str, object]:
        return {
            **BasketError.to_dict(self),
            "state": self.state,
            "required": self.required,
        }


@final
@dataclass(frozen=True, slots=True)
class PolicyRejectionError(BasketError):
    """Request refused by a configured limit (slippage, supply floor)."""

    policy: str
    limit: str
    actual: str

    def to_dict(self) -> dict[str, object]:
        return {
            **BasketError.to_dict(self),
            "policy": self.policy,
            "limit": self.limit,
            "actual": self.actual,
        }


type BasketFailure = (
    ValidationError
    | ArithmeticFaultError
    | InvariantViolationError
    | IllegalStateError
    | PolicyRejectionError
)


# ---------------------------------------------------------------------------
# Constructors
# ---------------------------------------------------------------------------


def validation_error(
    message: str, source: str, *fields: FieldViolation, code: str = "INVALID_ARGUMENT",
) -> ValidationError:
    return ValidationError(message=message, code=code, source=source, fields=fields)


def illegal_state(
    message: str, source: str, *, state: str, required: str, code: str = "ILLEGAL_STATE",
) -> IllegalStateError:
    return IllegalStateError(
        message=message, code=code, source=source, state=state, required=required,
    )


def policy_rejection(
    message: str, source: str, *, policy: str, limit: int | str, actual: int | str,
) -> PolicyRejectionError:
    return PolicyRejectionError(
        message=message, code="POLICY_REJECTED", source=source,
        policy=policy, limit=str(limit), actual=str(actual),
    )


def invariant_violation(
    message: str, source: str, *, law_name: str, expected: int | str, actual: int | str,
) -> InvariantViolationError:
    return InvariantViolationError(
        message=message, code="INVARIANT_VIOLATION", source=source,
        law_name=law_name, expected=str(expected), actual=str(actual),
    )
