"""
Scheduled Transactions

Recurring deposits, withdrawals and transfers. A schedule submits through
the TransactionService like any caller, so each run is validated,
authorized and audited; a refused run is not retried and the schedule
still advances.
"""

from datetime import date, timedelta
from typing import Optional

from .domain import TransactionType, AmountLike, as_amount
from .accounts import AccountLike
from .ledger import TransactionRecord
from .rbac import Role
from .service import TransactionService
from .logging_config import get_logger


logger = get_logger("tellerline.scheduler")


class ScheduledTransaction:
    """A transaction repeated every ``interval_days`` starting at ``first_run``"""

    def __init__(
        self,
        transaction_type: TransactionType,
        source: AccountLike,
        amount: AmountLike,
        initiated_by: str,
        role: Role,
        first_run: date,
        interval_days: int,
        target: Optional[AccountLike] = None
    ):
        if interval_days <= 0:
            raise ValueError("Schedule interval must be at least one day")
        if transaction_type == TransactionType.TRANSFER and target is None:
            raise ValueError("Scheduled transfers need a target account")

        self.transaction_type = transaction_type
        self.source = source
        self.target = target
        self.amount = as_amount(amount)
        self.initiated_by = initiated_by
        self.role = role
        self.next_run = first_run
        self.interval_days = interval_days

    def is_due(self, today: date) -> bool:
        return today >= self.next_run

    def run_if_due(self, today: date, service: TransactionService) -> Optional[TransactionRecord]:
        """
        Submit the transaction if it is due and advance the schedule

        Returns:
            The ledger record of the run, or None when not due
        """
        if not self.is_due(today):
            return None

        if self.transaction_type == TransactionType.DEPOSIT:
            target = self.source
        elif self.transaction_type == TransactionType.WITHDRAW:
            target = None
        else:
            target = self.target

        record = service.handle(
            self.transaction_type, self.source, target, self.amount, self.initiated_by, self.role
        )
        self.next_run = self.next_run + timedelta(days=self.interval_days)

        logger.info(
            "Scheduled %s of %s on %s %s; next run %s",
            self.transaction_type.value, self.amount, self.source.id,
            "succeeded" if record.success else "failed", self.next_run.isoformat()
        )
        return record
