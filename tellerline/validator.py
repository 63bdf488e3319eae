"""
Transaction Validator

Rule evaluation ahead of execution. Rules run in a fixed order and the
first failure wins. The validator reads the ledger for daily aggregates
and the account for its state; it never mutates either.
"""

from decimal import Decimal
from typing import Optional

from .domain import TransactionType, FailureReason, ValidationResult, AmountLike, as_amount
from .ledger import TransactionLedger


class TransactionValidator:
    """Checks amount, state capability and daily aggregate limits"""

    def __init__(self, daily_withdraw_limit: AmountLike, daily_transfer_limit: AmountLike):
        self.daily_withdraw_limit = as_amount(daily_withdraw_limit)
        self.daily_transfer_limit = as_amount(daily_transfer_limit)
        if self.daily_withdraw_limit < 0 or self.daily_transfer_limit < 0:
            raise ValueError("Daily limits cannot be negative")

    def validate(
        self,
        source,
        target,
        transaction_type: TransactionType,
        amount: AmountLike,
        ledger: TransactionLedger
    ) -> ValidationResult:
        """
        Validate a requested transaction

        Args:
            source: Account the operation runs against
            target: Receiving account for transfers (may be None otherwise)
            transaction_type: Operation being requested
            amount: Requested amount
            ledger: Ledger used for today's aggregates

        Returns:
            ValidationResult carrying the first failing rule, if any
        """
        value = as_amount(amount)
        if value <= 0:
            return ValidationResult.failed(FailureReason.INVALID_AMOUNT, "Amount must be positive")

        if not source.state.allows(transaction_type):
            return ValidationResult.failed(
                FailureReason.STATE_POLICY_VIOLATION,
                f"Account state disallows {transaction_type.value}"
            )

        if transaction_type == TransactionType.WITHDRAW:
            return self._check_daily_limit(
                source, transaction_type, value, self.daily_withdraw_limit, ledger
            )

        if transaction_type == TransactionType.TRANSFER:
            if target is None:
                return ValidationResult.failed(FailureReason.MISSING_TARGET, "Target account required")
            return self._check_daily_limit(
                source, transaction_type, value, self.daily_transfer_limit, ledger
            )

        return ValidationResult.passed()

    @staticmethod
    def _check_daily_limit(
        source,
        transaction_type: TransactionType,
        amount: Decimal,
        limit: Decimal,
        ledger: TransactionLedger
    ) -> ValidationResult:
        used_today = ledger.todays_total(source.id, transaction_type)
        if used_today + amount > limit:
            return ValidationResult.failed(
                FailureReason.DAILY_LIMIT_EXCEEDED,
                f"Daily {transaction_type.value} limit exceeded"
            )
        return ValidationResult.passed()

    def remaining_today(self, source, transaction_type: TransactionType,
                        ledger: TransactionLedger) -> Optional[Decimal]:
        """Headroom left under today's limit (None for deposits, which are unlimited)"""
        if transaction_type == TransactionType.WITHDRAW:
            limit = self.daily_withdraw_limit
        elif transaction_type == TransactionType.TRANSFER:
            limit = self.daily_transfer_limit
        else:
            return None
        return max(limit - ledger.todays_total(source.id, transaction_type), Decimal('0'))
