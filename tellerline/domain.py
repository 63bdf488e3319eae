"""
Shared Domain Types

Transaction types, failure reasons and the result values that carry
expected business outcomes through the pipeline. Expected failures are
never raised as exceptions; they travel as results and end up on the
audit record.
"""

from decimal import Decimal, InvalidOperation
from dataclasses import dataclass
from typing import Optional, Union
from enum import Enum


class TransactionType(Enum):
    """Monetary operations handled by the pipeline"""
    DEPOSIT = "deposit"
    WITHDRAW = "withdraw"
    TRANSFER = "transfer"


class FailureReason(Enum):
    """Why an operation was refused"""
    INVALID_AMOUNT = "invalid_amount"
    STATE_POLICY_VIOLATION = "state_policy_violation"
    INSUFFICIENT_FUNDS = "insufficient_funds"
    DAILY_LIMIT_EXCEEDED = "daily_limit_exceeded"
    MISSING_TARGET = "missing_target"
    INSUFFICIENT_PRIVILEGE = "insufficient_privilege"
    EXECUTION_FAILURE = "execution_failure"


@dataclass(frozen=True)
class ValidationResult:
    """Verdict of the transaction validator"""
    ok: bool
    reason: Optional[FailureReason] = None
    message: str = "OK"

    @classmethod
    def passed(cls) -> 'ValidationResult':
        return cls(ok=True)

    @classmethod
    def failed(cls, reason: FailureReason, message: str) -> 'ValidationResult':
        return cls(ok=False, reason=reason, message=message)


@dataclass(frozen=True)
class OperationResult:
    """Outcome of a balance-mutating operation on an account"""
    success: bool
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    balance: Optional[Decimal] = None  # Balance after the operation

    def __bool__(self) -> bool:
        return self.success

    @classmethod
    def ok(cls, balance: Decimal, message: Optional[str] = None) -> 'OperationResult':
        return cls(success=True, balance=balance, message=message)

    @classmethod
    def fail(
        cls,
        reason: FailureReason,
        message: str,
        balance: Optional[Decimal] = None
    ) -> 'OperationResult':
        return cls(success=False, reason=reason, message=message, balance=balance)


AmountLike = Union[Decimal, int, float, str]


def as_amount(value: AmountLike) -> Decimal:
    """
    Coerce a caller-supplied amount to Decimal

    Floats go through str() so 5000.01 stays 5000.01 rather than its binary
    expansion.

    Raises:
        ValueError: If the value cannot be read as a finite number
    """
    if isinstance(value, Decimal):
        amount = value
    elif isinstance(value, bool):
        raise ValueError(f"Invalid amount: {value!r}")
    elif isinstance(value, (int, float, str)):
        try:
            amount = Decimal(str(value))
        except InvalidOperation:
            raise ValueError(f"Invalid amount: {value!r}")
    else:
        raise ValueError(f"Invalid amount: {value!r}")

    if not amount.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return amount
