"""
Account Management Module

Accounts hold a balance and a runtime-mutable state. Every operation is
decided by a pure policy over a snapshot of the account and applied
under the account's own lock, so concurrent operations on the same
account serialize and no update is lost.
"""

from decimal import Decimal
from datetime import datetime, timezone
from dataclasses import dataclass, field
from typing import Callable, Optional, Union
from enum import Enum
import threading
import uuid

from .domain import TransactionType, FailureReason, OperationResult, AmountLike, as_amount
from .states import AccountState
from .policies import Operation, PolicyContext, Decision, base_policy
from .config import get_config
from .logging_config import get_logger


logger = get_logger("tellerline.accounts")


class AccountType(Enum):
    """Banking product types"""
    SAVINGS = "savings"
    CHECKING = "checking"
    INVESTMENT = "investment"
    LOAN = "loan"          # Debt account, balance is negative


DEFAULT_RATES = {
    AccountType.SAVINGS: Decimal('0.03'),
    AccountType.INVESTMENT: Decimal('0.07'),
}

InterestStrategy = Callable[['Account'], Decimal]


def simple_monthly_interest(annual_rate: AmountLike) -> InterestStrategy:
    """Monthly simple interest on the absolute balance"""
    rate = as_amount(annual_rate)

    def calculate(account: 'Account') -> Decimal:
        return abs(account.balance) * rate / 12

    return calculate


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(eq=False)
class Account:
    """
    Bank account with state-gated operations
    """
    holder: str
    account_type: AccountType
    balance: Decimal = Decimal('0')
    state: AccountState = AccountState.ACTIVE
    minimum_balance: Decimal = Decimal('0')
    interest_strategy: Optional[InterestStrategy] = None
    id: str = field(default_factory=lambda: str(uuid.uuid4()))
    created_at: datetime = field(default_factory=utc_now)
    last_modified: Optional[datetime] = None
    lock: threading.RLock = field(default_factory=threading.RLock, init=False, repr=False)

    def __post_init__(self):
        self.balance = as_amount(self.balance)
        self.minimum_balance = as_amount(self.minimum_balance)
        if self.minimum_balance < 0:
            raise ValueError("Minimum balance cannot be negative")
        if self.last_modified is None:
            self.last_modified = self.created_at

    @property
    def base(self) -> 'Account':
        """The innermost account (an Account is its own base)"""
        return self

    @property
    def is_debt_account(self) -> bool:
        return self.account_type == AccountType.LOAN

    @property
    def available_balance(self) -> Decimal:
        """Balance that may be withdrawn without breaching the minimum"""
        return self.balance - self.minimum_balance

    def context(self) -> PolicyContext:
        """Snapshot the facts policies decide on"""
        with self.lock:
            return PolicyContext(
                balance=self.balance,
                state=self.state,
                minimum_balance=self.minimum_balance
            )

    def set_state(self, new_state: AccountState) -> None:
        """Reassign the account state"""
        with self.lock:
            old_state = self.state
            self.state = new_state
            self._touch()
        logger.info(
            "Account %s state changed: %s -> %s", self.id, old_state.code, new_state.code
        )

    def close(self) -> None:
        """Close the account (behavioral flag only)"""
        self.set_state(AccountState.CLOSED)

    def update_holder(self, new_holder: str) -> None:
        """Rename the account holder, ignoring blank names"""
        if new_holder and new_holder.strip():
            with self.lock:
                self.holder = new_holder
                self._touch()

    # Operations

    def deposit(self, amount: AmountLike) -> OperationResult:
        return self.execute(Operation(TransactionType.DEPOSIT, as_amount(amount)), base_policy)

    def withdraw(self, amount: AmountLike) -> OperationResult:
        return self.execute(Operation(TransactionType.WITHDRAW, as_amount(amount)), base_policy)

    def transfer(self, target: 'AccountLike', amount: AmountLike) -> OperationResult:
        operation = Operation(TransactionType.TRANSFER, as_amount(amount))
        return complete_transfer(self, target, operation, base_policy)

    def execute(
        self,
        operation: Operation,
        resolve: Callable[[Operation, PolicyContext], Decision]
    ) -> OperationResult:
        """
        Decide and apply an operation atomically

        Args:
            operation: Requested operation
            resolve: Policy deciding the operation against a fresh snapshot

        Returns:
            OperationResult with the post-operation balance
        """
        with self.lock:
            decision = resolve(operation, self.context())
            if not decision.approved:
                logger.debug(
                    "Account %s %s refused: %s", self.id, operation.kind.value, decision.message
                )
                return OperationResult.fail(decision.reason, decision.message, self.balance)

            self.balance += decision.delta
            self._touch()
            balance = self.balance

        logger.debug(
            "Account %s %s of %s applied by %s, new balance %s",
            self.id, operation.kind.value, operation.amount, decision.decided_by, balance
        )
        return OperationResult.ok(balance, decision.message)

    def credit(self, amount: Decimal) -> Decimal:
        """Raw credit used for the receiving side of a transfer"""
        with self.lock:
            self.balance += amount
            self._touch()
            return self.balance

    # Details

    def calculate_interest(self) -> Decimal:
        """Interest for one period (0 when no strategy is configured)"""
        if self.interest_strategy is None:
            return Decimal('0')
        return self.interest_strategy(self)

    def describe(self) -> str:
        """Render account details"""
        label = self.account_type.value.capitalize()
        lines = [
            f"{label} Account Details:",
            f"  Account ID: {self.id}",
            f"  Holder: {self.holder}",
        ]
        if self.is_debt_account:
            lines.append(f"  Amount Owed: ${abs(self.balance):.2f}")
        else:
            lines.append(f"  Balance: ${self.balance:.2f}")
        if self.minimum_balance:
            lines.append(f"  Minimum Balance: ${self.minimum_balance:.2f}")
        lines.append(f"  Status: {self.state.code.upper()}")
        return "\n".join(lines)

    def _touch(self) -> None:
        self.last_modified = utc_now()


# Anything exposing the account operation contract: an Account or a FeatureStack
AccountLike = Union[Account, 'FeatureStack']


def complete_transfer(
    source: Account,
    target: Optional['AccountLike'],
    operation: Operation,
    resolve: Callable[[Operation, PolicyContext], Decision]
) -> OperationResult:
    """
    Debit the source, then credit the target

    The two mutations are separate: the source lock is released before the
    target lock is taken, so transfers in opposite directions cannot
    deadlock. If the credit raises, the debit is compensated by crediting
    the source back and the transfer reports an execution failure.
    """
    if target is None:
        return OperationResult.fail(FailureReason.MISSING_TARGET, "Target account required")

    debited = source.execute(operation, resolve)
    if not debited:
        return debited

    try:
        target.base.credit(operation.amount)
    except Exception:
        logger.exception(
            "Credit to %s failed after debiting %s; crediting back %s",
            target.id, source.id, operation.amount
        )
        balance = source.credit(operation.amount)
        return OperationResult.fail(
            FailureReason.EXECUTION_FAILURE,
            "Transfer credit failed; source debit reversed",
            balance
        )

    logger.debug("Transferred %s from %s to %s", operation.amount, source.id, target.id)
    return debited


def open_account(
    holder: str,
    account_type: AccountType,
    initial_balance: AmountLike = Decimal('0'),
    minimum_balance: Optional[AmountLike] = None,
    interest_rate: Optional[AmountLike] = None,
    state: AccountState = AccountState.ACTIVE
) -> Account:
    """
    Open a new account

    Args:
        holder: Account holder name
        account_type: Type of banking product
        initial_balance: Opening balance; for loans, the principal owed
        minimum_balance: Minimum balance (savings default to the configured
            savings_minimum_balance, others to 0)
        interest_rate: Annual rate for the simple monthly interest strategy
        state: Initial state

    Returns:
        Created Account object

    Raises:
        ValueError: If the opening balance breaks the product's rules
    """
    opening = as_amount(initial_balance)

    if minimum_balance is None:
        if account_type == AccountType.SAVINGS:
            minimum = as_amount(get_config().savings_minimum_balance)
        else:
            minimum = Decimal('0')
    else:
        minimum = as_amount(minimum_balance)

    if account_type == AccountType.LOAN:
        if opening <= 0:
            raise ValueError("Loan principal must be positive")
        opening = -opening
        minimum = Decimal('0')
    elif opening < minimum:
        raise ValueError(
            f"Initial balance must be at least {minimum} for {account_type.value} account"
        )
    elif opening < 0:
        raise ValueError("Initial balance cannot be negative")

    rate = interest_rate if interest_rate is not None else DEFAULT_RATES.get(account_type)
    strategy = simple_monthly_interest(rate) if rate is not None else None

    account = Account(
        holder=holder,
        account_type=account_type,
        balance=opening,
        state=state,
        minimum_balance=minimum,
        interest_strategy=strategy
    )
    logger.info("Opened %s account %s for %s", account_type.value, account.id, holder)
    return account
