"""
Operation Policies

Pure policy functions of the form ``(operation, context) -> Decision``.
Nothing in this module touches an account; callers snapshot the account
into a PolicyContext, ask for a Decision and apply it themselves.
"""

from decimal import Decimal
from dataclasses import dataclass
from typing import Optional

from .domain import TransactionType, FailureReason
from .states import AccountState


BASE_POLICY = "base"


@dataclass(frozen=True)
class Operation:
    """A requested balance operation against one account"""
    kind: TransactionType
    amount: Decimal
    surcharge: Decimal = Decimal('0')  # Fees outer layers will charge on success

    @property
    def total_debit(self) -> Decimal:
        return self.amount + self.surcharge


@dataclass(frozen=True)
class PolicyContext:
    """Snapshot of the account facts a policy may look at"""
    balance: Decimal
    state: AccountState
    minimum_balance: Decimal = Decimal('0')

    @property
    def available_balance(self) -> Decimal:
        return self.balance - self.minimum_balance


@dataclass(frozen=True)
class Decision:
    """Result of evaluating an operation"""
    approved: bool
    delta: Decimal = Decimal('0')  # Signed change to apply to the balance
    reason: Optional[FailureReason] = None
    message: Optional[str] = None
    decided_by: str = BASE_POLICY

    @classmethod
    def approve(cls, delta: Decimal, decided_by: str = BASE_POLICY,
                message: Optional[str] = None) -> 'Decision':
        return cls(approved=True, delta=delta, message=message, decided_by=decided_by)

    @classmethod
    def reject(cls, reason: FailureReason, message: str,
               decided_by: str = BASE_POLICY) -> 'Decision':
        return cls(approved=False, reason=reason, message=message, decided_by=decided_by)


def check_state(operation: Operation, context: PolicyContext,
                decided_by: str = BASE_POLICY) -> Optional[Decision]:
    """Reject when the account state does not permit the operation"""
    if not context.state.allows(operation.kind):
        return Decision.reject(
            FailureReason.STATE_POLICY_VIOLATION,
            f"Cannot {operation.kind.value} in {context.state.code} state. {context.state.description}",
            decided_by
        )
    return None


def check_amount(operation: Operation, decided_by: str = BASE_POLICY) -> Optional[Decision]:
    """Reject non-positive amounts"""
    if operation.amount <= 0:
        return Decision.reject(
            FailureReason.INVALID_AMOUNT,
            f"{operation.kind.value.capitalize()} amount must be positive",
            decided_by
        )
    return None


def base_policy(operation: Operation, context: PolicyContext) -> Decision:
    """
    Default account rules

    State capability first, then positivity, then (for debits) capacity
    against the available balance. Surcharges announced by outer layers
    count against capacity so a fee can never push the balance below the
    minimum.
    """
    rejection = check_state(operation, context) or check_amount(operation)
    if rejection:
        return rejection

    if operation.kind == TransactionType.DEPOSIT:
        return Decision.approve(operation.amount)

    if operation.total_debit > context.available_balance:
        if operation.total_debit <= context.balance:
            message = (
                f"Withdrawal would violate minimum balance requirement of "
                f"{context.minimum_balance}"
            )
        else:
            message = f"Insufficient funds. Available balance: {context.available_balance}"
        return Decision.reject(FailureReason.INSUFFICIENT_FUNDS, message)

    return Decision.approve(-operation.amount)
