"""
Transaction Service Module

Orchestrates one transaction attempt end to end:

1. build the request envelope (id + timestamp)
2. validate (amount, state, daily limits, target)
3. check the initiator's role privilege ceiling
4. classify the approval level (audit only, never blocks)
5. execute against the account, through any feature layers
6. append exactly one ledger record with the real outcome
7. raise a best-effort alert for large amounts

Every call appends exactly one record whatever the outcome. Nothing is
retried; resubmission is the caller's decision.
"""

from decimal import Decimal
from datetime import datetime
from dataclasses import dataclass
from typing import Optional, Union
import uuid

from .domain import (
    TransactionType, FailureReason, OperationResult, AmountLike, as_amount
)
from .accounts import AccountLike
from .approval import ApprovalTable, ApprovalLevel
from .rbac import Role, PrivilegeCeilings
from .ledger import TransactionLedger, TransactionRecord
from .validator import TransactionValidator
from .notifications import NotificationPort, LogNotifier, WebhookNotifier
from .config import TellerlineConfig, get_config
from .logging_config import configure_logging, get_logger, log_action


INSUFFICIENT_PRIVILEGES = "Insufficient privileges"
DEFAULT_LARGE_TRANSACTION_THRESHOLD = Decimal('20000')

_ALERT_LABELS = {
    TransactionType.DEPOSIT: "deposit",
    TransactionType.WITHDRAW: "withdrawal",
    TransactionType.TRANSFER: "transfer",
}


@dataclass(frozen=True)
class TransactionRequest:
    """Envelope for one transaction attempt"""
    id: str
    transaction_type: TransactionType
    source: AccountLike
    target: Optional[AccountLike]
    amount: Decimal
    initiated_by: str
    role: Union[Role, str]  # Raw value when it names no known role
    timestamp: datetime


class TransactionService:
    """
    Authorizes, executes and audits deposits, withdrawals and transfers
    """

    def __init__(
        self,
        validator: TransactionValidator,
        ledger: Optional[TransactionLedger] = None,
        notifier: Optional[NotificationPort] = None,
        approval_table: Optional[ApprovalTable] = None,
        ceilings: Optional[PrivilegeCeilings] = None,
        large_transaction_threshold: AmountLike = DEFAULT_LARGE_TRANSACTION_THRESHOLD
    ):
        self.validator = validator
        self.ledger = ledger if ledger is not None else TransactionLedger()
        self.notifier = notifier or LogNotifier()
        self.approval_table = approval_table or ApprovalTable()
        self.ceilings = ceilings or PrivilegeCeilings()
        self.large_transaction_threshold = as_amount(large_transaction_threshold)
        self.logger = get_logger("tellerline.service")

    # Public API

    def deposit(self, account: AccountLike, amount: AmountLike,
                initiated_by: str, role: Role) -> bool:
        """Deposit into ``account``; returns whether it was applied"""
        record = self.handle(TransactionType.DEPOSIT, account, account, amount, initiated_by, role)
        return record.success

    def withdraw(self, account: AccountLike, amount: AmountLike,
                 initiated_by: str, role: Role) -> bool:
        """Withdraw from ``account``; returns whether it was applied"""
        record = self.handle(TransactionType.WITHDRAW, account, None, amount, initiated_by, role)
        return record.success

    def transfer(self, source: AccountLike, target: Optional[AccountLike], amount: AmountLike,
                 initiated_by: str, role: Role) -> bool:
        """Transfer from ``source`` to ``target``; returns whether it was applied"""
        record = self.handle(TransactionType.TRANSFER, source, target, amount, initiated_by, role)
        return record.success

    def handle(
        self,
        transaction_type: TransactionType,
        source: AccountLike,
        target: Optional[AccountLike],
        amount: AmountLike,
        initiated_by: str,
        role: Role
    ) -> TransactionRecord:
        """
        Run one transaction attempt through the pipeline

        Args:
            transaction_type: Operation requested
            source: Account the operation runs against
            target: Receiving account (transfers; deposits record the account itself)
            amount: Requested amount
            initiated_by: ID of the initiating user
            role: Role of the initiating user

        Returns:
            The TransactionRecord appended for this attempt
        """
        try:
            value = as_amount(amount)
            unreadable = None
        except ValueError as e:
            value = Decimal('0')
            unreadable = str(e)

        try:
            role = Role(role)
        except (ValueError, TypeError):
            self.logger.warning("Unknown initiator role %r for %s", role, initiated_by)

        request = TransactionRequest(
            id=str(uuid.uuid4()),
            transaction_type=transaction_type,
            source=source,
            target=target,
            amount=value,
            initiated_by=initiated_by,
            role=role,
            timestamp=self.ledger.clock()
        )

        if unreadable:
            return self._record(request, False, FailureReason.INVALID_AMOUNT, unreadable, None)

        verdict = self.validator.validate(
            source, target, transaction_type, request.amount, self.ledger
        )
        if not verdict.ok:
            return self._record(request, False, verdict.reason, verdict.message, None)

        if not isinstance(role, Role) or not self.ceilings.has_privilege(role, request.amount):
            return self._record(
                request, False, FailureReason.INSUFFICIENT_PRIVILEGE, INSUFFICIENT_PRIVILEGES, None
            )

        level = self.approval_table.classify(request.amount)

        result = self._execute(request)
        record = self._record(request, result.success, result.reason, result.message, level)

        if request.amount >= self.large_transaction_threshold:
            self._alert(request)

        return record

    # Internals

    def _execute(self, request: TransactionRequest) -> OperationResult:
        """Apply the mutation; unexpected errors become execution failures"""
        try:
            if request.transaction_type == TransactionType.DEPOSIT:
                result = request.source.deposit(request.amount)
            elif request.transaction_type == TransactionType.WITHDRAW:
                result = request.source.withdraw(request.amount)
            else:
                result = request.source.transfer(request.target, request.amount)
        except Exception:
            self.logger.exception("Execution of transaction %s failed", request.id)
            return OperationResult.fail(FailureReason.EXECUTION_FAILURE, "Execution failed")

        if not result.success and result.reason is None:
            return OperationResult.fail(FailureReason.EXECUTION_FAILURE, "Execution failed")
        return result

    def _record(
        self,
        request: TransactionRequest,
        success: bool,
        reason: Optional[FailureReason],
        message: Optional[str],
        level: Optional[ApprovalLevel]
    ) -> TransactionRecord:
        role = request.role.value if isinstance(request.role, Role) else str(request.role)
        record = TransactionRecord(
            transaction_id=request.id,
            transaction_type=request.transaction_type,
            source_account_id=request.source.id,
            target_account_id=request.target.id if request.target is not None else None,
            timestamp=request.timestamp,
            amount=request.amount,
            initiated_by=request.initiated_by,
            initiator_role=role,
            success=success,
            failure_reason=None if success else reason,
            failure_message=None if success else message,
            approval_level=level.name if level else None
        )
        sealed = self.ledger.append(record)

        log_action(
            self.logger, "info" if success else "warning",
            f"{request.transaction_type.value} {'completed' if success else 'refused'}: {request.amount}",
            user_id=request.initiated_by,
            action=request.transaction_type.value,
            resource=f"account:{request.source.id}",
            correlation_id=request.id,
            extra={
                "role": role,
                "target_account": sealed.target_account_id,
                "approval_level": sealed.approval_level,
                "failure_reason": reason.value if reason and not success else None,
                "failure_message": sealed.failure_message,
            }
        )
        return sealed

    def _alert(self, request: TransactionRequest) -> None:
        """Fire-and-forget large transaction alert"""
        label = _ALERT_LABELS[request.transaction_type]
        message = f"Large {label} ${request.amount} by {request.initiated_by}"
        try:
            self.notifier.notify(message)
        except Exception as e:
            self.logger.warning("Large transaction alert for %s not delivered: %s", request.id, e)


def create_service(
    config: Optional[TellerlineConfig] = None,
    notifier: Optional[NotificationPort] = None,
    ledger: Optional[TransactionLedger] = None
) -> TransactionService:
    """
    Build a TransactionService from configuration

    Args:
        config: Configuration (global config when omitted)
        notifier: Notification port (webhook when configured, else log)
        ledger: Ledger to use (a fresh one when omitted)

    Returns:
        Configured TransactionService
    """
    config = config or get_config()
    configure_logging(config)

    if notifier is None:
        if config.notification_webhook_url:
            notifier = WebhookNotifier(config.notification_webhook_url, timeout=config.notification_timeout)
        else:
            notifier = LogNotifier()

    ceilings = PrivilegeCeilings({
        Role.CUSTOMER: config.customer_ceiling,
        Role.TELLER: config.teller_ceiling,
        Role.MANAGER: config.manager_ceiling,
        Role.ADMIN: None,
    })

    return TransactionService(
        validator=TransactionValidator(config.daily_withdraw_limit, config.daily_transfer_limit),
        ledger=ledger,
        notifier=notifier,
        ceilings=ceilings,
        large_transaction_threshold=config.large_transaction_threshold
    )
