"""
Test suite for transaction service

Tests the end-to-end pipeline: validation, privilege ceilings, approval
classification, execution through feature layers, the one-record-per-call
audit guarantee and best-effort large transaction alerts.
"""

import logging
import threading
import pytest
from dataclasses import dataclass
from datetime import datetime, timezone
from decimal import Decimal
from typing import ClassVar
from unittest.mock import Mock

from tellerline.domain import FailureReason, TransactionType
from tellerline.states import AccountState
from tellerline.accounts import AccountType, open_account
from tellerline.features import FeatureLayer, FeatureStack, OverdraftLayer, FeeLayer
from tellerline.ledger import TransactionLedger
from tellerline.validator import TransactionValidator
from tellerline.notifications import NotificationPort, LogNotifier, WebhookNotifier
from tellerline.rbac import Role
from tellerline.config import TellerlineConfig
from tellerline.logging_config import JSONFormatter
from tellerline.service import TransactionService, INSUFFICIENT_PRIVILEGES, create_service


NOW = datetime(2026, 7, 1, 14, 0, tzinfo=timezone.utc)


@dataclass(frozen=True)
class BrokenLayer(FeatureLayer):
    """Layer whose policy blows up"""
    name: ClassVar[str] = "broken"

    def screen(self, operation, context):
        raise RuntimeError("policy store unavailable")


class TestTransactionService:
    """Test TransactionService orchestration"""

    def setup_method(self):
        self.ledger = TransactionLedger(clock=lambda: NOW)
        self.notifier = Mock(spec=NotificationPort)
        self.service = TransactionService(
            validator=TransactionValidator(Decimal('20000'), Decimal('50000')),
            ledger=self.ledger,
            notifier=self.notifier
        )
        self.alice = open_account("Alice", AccountType.CHECKING, Decimal('60000'))
        self.bob = open_account("Bob", AccountType.CHECKING, Decimal('500'))

    def last_record(self):
        return self.ledger.records()[-1]

    def test_deposit(self):
        """Test successful deposit is executed and recorded"""
        assert self.service.deposit(self.bob, Decimal('250'), "cust1", Role.CUSTOMER)

        record = self.last_record()
        assert self.bob.balance == Decimal('750')
        assert record.success
        assert record.transaction_type == TransactionType.DEPOSIT
        assert record.source_account_id == self.bob.id
        assert record.target_account_id == self.bob.id
        assert record.approval_level == "AUTO"
        assert record.initiator_role == "customer"
        assert record.timestamp == NOW
        assert record.failure_reason is None

    def test_withdraw(self):
        assert self.service.withdraw(self.alice, Decimal('1500'), "teller1", Role.TELLER)

        record = self.last_record()
        assert self.alice.balance == Decimal('58500')
        assert record.target_account_id is None
        assert record.approval_level == "TELLER"

    def test_transfer(self):
        """Test transfer moves funds and records both accounts"""
        assert self.service.transfer(self.alice, self.bob, Decimal('12000'), "mgr1", Role.MANAGER)

        record = self.last_record()
        assert self.alice.balance == Decimal('48000')
        assert self.bob.balance == Decimal('12500')
        assert record.source_account_id == self.alice.id
        assert record.target_account_id == self.bob.id
        assert record.approval_level == "MANAGER"

    def test_one_record_per_call(self):
        """Test every call appends exactly one record whatever the outcome"""
        calls = [
            lambda: self.service.deposit(self.bob, Decimal('10'), "c", Role.CUSTOMER),
            lambda: self.service.withdraw(self.bob, Decimal('-5'), "c", Role.CUSTOMER),
            lambda: self.service.withdraw(self.bob, Decimal('9999'), "c", Role.CUSTOMER),
            lambda: self.service.withdraw(self.alice, Decimal('15000'), "c", Role.CUSTOMER),
            lambda: self.service.transfer(self.bob, None, Decimal('10'), "c", Role.CUSTOMER),
            lambda: self.service.withdraw(self.bob, "a lot", "c", Role.CUSTOMER),
        ]

        for expected_count, call in enumerate(calls, start=1):
            call()
            assert self.ledger.count() == expected_count

        assert self.ledger.verify_integrity()['valid']

    def test_privilege_ceiling(self):
        """Test amounts above the role ceiling are refused before execution"""
        assert self.service.withdraw(self.alice, Decimal('10000'), "cust1", Role.CUSTOMER)
        assert not self.service.withdraw(self.alice, Decimal('10000.01'), "cust1", Role.CUSTOMER)

        record = self.last_record()
        assert record.failure_reason == FailureReason.INSUFFICIENT_PRIVILEGE
        assert record.failure_message == INSUFFICIENT_PRIVILEGES
        assert record.approval_level is None
        assert self.alice.balance == Decimal('50000')

    def test_role_given_by_value(self):
        """Test roles passed as their string value are accepted"""
        assert self.service.withdraw(self.alice, Decimal('10'), "cust1", "customer")
        assert self.last_record().initiator_role == "customer"

    @pytest.mark.parametrize("role", ["auditor", None, 42])
    def test_unknown_role_is_recorded(self, role):
        """Test an unknown role is refused with one record instead of an error"""
        assert not self.service.withdraw(self.alice, Decimal('10'), "u1", role)

        record = self.last_record()
        assert self.ledger.count() == 1
        assert record.failure_reason == FailureReason.INSUFFICIENT_PRIVILEGE
        assert record.initiator_role == str(role)
        assert record.approval_level is None
        assert self.alice.balance == Decimal('60000')

    def test_validation_failure_has_no_approval_level(self):
        self.alice.set_state(AccountState.FROZEN)

        assert not self.service.withdraw(self.alice, Decimal('100'), "teller1", Role.TELLER)

        record = self.last_record()
        assert record.failure_reason == FailureReason.STATE_POLICY_VIOLATION
        assert record.approval_level is None

    def test_execution_refusal_keeps_approval_level(self):
        """Test refusals during execution still carry the classification"""
        assert not self.service.withdraw(self.bob, Decimal('5000'), "teller1", Role.TELLER)

        record = self.last_record()
        assert record.failure_reason == FailureReason.INSUFFICIENT_FUNDS
        assert record.approval_level == "TELLER"
        assert self.bob.balance == Decimal('500')

    def test_daily_limit(self):
        """Test S + A <= L through the full pipeline"""
        assert self.service.withdraw(self.alice, Decimal('15000'), "teller1", Role.TELLER)
        assert not self.service.withdraw(self.alice, Decimal('5000.01'), "teller1", Role.TELLER)
        assert self.last_record().failure_reason == FailureReason.DAILY_LIMIT_EXCEEDED
        assert self.service.withdraw(self.alice, Decimal('5000'), "teller1", Role.TELLER)
        assert self.alice.balance == Decimal('40000')

    def test_failed_withdrawals_do_not_use_limit(self):
        """Test refused attempts leave the daily limit untouched"""
        assert not self.service.withdraw(self.bob, Decimal('19000'), "teller1", Role.TELLER)
        self.bob.deposit(Decimal('30000'))

        assert self.service.withdraw(self.bob, Decimal('20000'), "teller1", Role.TELLER)

    def test_missing_target(self):
        assert not self.service.transfer(self.alice, None, Decimal('10'), "teller1", Role.TELLER)
        assert self.last_record().failure_reason == FailureReason.MISSING_TARGET

    def test_unreadable_amount(self):
        """Test garbage amounts become an invalid amount record"""
        assert not self.service.deposit(self.bob, "twelve", "teller1", Role.TELLER)

        record = self.last_record()
        assert record.failure_reason == FailureReason.INVALID_AMOUNT
        assert record.amount == Decimal('0')
        assert self.bob.balance == Decimal('500')

    def test_execution_failure(self):
        """Test unexpected errors during execution are recorded, not raised"""
        stack = FeatureStack(self.bob, [BrokenLayer()])

        assert not self.service.withdraw(stack, Decimal('100'), "teller1", Role.TELLER)

        record = self.last_record()
        assert record.failure_reason == FailureReason.EXECUTION_FAILURE
        assert record.failure_message == "Execution failed"
        assert record.approval_level == "AUTO"
        assert self.bob.balance == Decimal('500')

    def test_feature_stack_through_service(self):
        """Test wrapped accounts execute through their layers"""
        stack = FeatureStack(self.bob, [FeeLayer(Decimal('0.50')), OverdraftLayer(Decimal('500'))])

        assert self.service.withdraw(stack, Decimal('800'), "cust1", Role.CUSTOMER)

        record = self.last_record()
        assert self.bob.balance == Decimal('-300.50')
        assert record.amount == Decimal('800')
        assert record.source_account_id == self.bob.id
        assert self.ledger.count() == 1

    def test_large_transaction_alert(self):
        """Test amounts at or above the threshold raise an alert"""
        self.service.deposit(self.bob, Decimal('19999.99'), "admin1", Role.ADMIN)
        self.notifier.notify.assert_not_called()

        self.service.deposit(self.bob, Decimal('20000'), "admin1", Role.ADMIN)
        self.notifier.notify.assert_called_once_with("Large deposit $20000 by admin1")

    def test_alert_after_failed_execution(self):
        """Test alerts follow execution regardless of its outcome"""
        assert not self.service.transfer(self.bob, self.alice, Decimal('25000'), "mgr1", Role.MANAGER)

        self.notifier.notify.assert_called_once_with("Large transfer $25000 by mgr1")

    def test_no_alert_when_refused_early(self):
        """Test attempts refused before execution raise no alert"""
        assert not self.service.withdraw(self.alice, Decimal('25000'), "mgr1", Role.MANAGER)

        self.notifier.notify.assert_not_called()

    def test_alert_failure_is_ignored(self):
        """Test a failing notifier does not affect the transaction"""
        self.notifier.notify.side_effect = RuntimeError("webhook down")

        assert self.service.withdraw(self.alice, Decimal('20000'), "mgr1", Role.MANAGER)
        assert self.alice.balance == Decimal('40000')
        assert self.last_record().success


class TestServiceConcurrency:
    """Test concurrent submissions"""

    def test_concurrent_withdrawals_on_one_account(self):
        """Test parallel withdrawals neither lose updates nor records"""
        ledger = TransactionLedger(clock=lambda: NOW)
        service = TransactionService(
            validator=TransactionValidator(Decimal('1000000'), Decimal('1000000')),
            ledger=ledger,
            notifier=Mock(spec=NotificationPort)
        )
        account = open_account("Cara", AccountType.CHECKING, Decimal('1000'))
        outcomes = []
        outcomes_lock = threading.Lock()

        def withdraw():
            for _ in range(10):
                ok = service.withdraw(account, Decimal('7'), "cust1", Role.CUSTOMER)
                with outcomes_lock:
                    outcomes.append(ok)

        threads = [threading.Thread(target=withdraw) for _ in range(20)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        successes = sum(1 for ok in outcomes if ok)
        assert ledger.count() == 200
        assert successes == 142
        assert account.balance == Decimal('1000') - Decimal('7') * successes
        assert account.balance >= 0
        assert ledger.verify_integrity()['valid']


class TestCreateService:
    """Test building a service from configuration"""

    def teardown_method(self):
        logger = logging.getLogger("tellerline")
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_configures_logging(self):
        """Test the configured log level and format are applied"""
        create_service(TellerlineConfig(log_level="WARNING", log_format="json"))

        logger = logging.getLogger("tellerline")
        assert logger.level == logging.WARNING
        assert isinstance(logger.handlers[0].formatter, JSONFormatter)

    def test_unknown_role_through_configured_service(self):
        service = create_service(TellerlineConfig(), ledger=TransactionLedger(clock=lambda: NOW))
        account = open_account("Eli", AccountType.CHECKING, Decimal('100'))

        assert not service.withdraw(account, Decimal('10'), "u1", "janitor")
        assert service.ledger.count() == 1
        assert account.balance == Decimal('100')

    def test_uses_configured_limits(self):
        config = TellerlineConfig(
            daily_withdraw_limit=Decimal('100'),
            customer_ceiling=Decimal('50'),
            large_transaction_threshold=Decimal('75')
        )
        service = create_service(config, ledger=TransactionLedger(clock=lambda: NOW))
        account = open_account("Dee", AccountType.CHECKING, Decimal('1000'))

        assert isinstance(service.notifier, LogNotifier)
        assert not service.withdraw(account, Decimal('60'), "cust1", Role.CUSTOMER)
        assert service.withdraw(account, Decimal('60'), "teller1", Role.TELLER)
        assert not service.withdraw(account, Decimal('41'), "teller1", Role.TELLER)
        assert service.large_transaction_threshold == Decimal('75')
        assert service.ceilings.ceiling_for(Role.ADMIN) is None

    def test_webhook_notifier_from_config(self):
        config = TellerlineConfig(notification_webhook_url="https://hooks.example.com/alerts")

        service = create_service(config)

        assert isinstance(service.notifier, WebhookNotifier)
        assert service.notifier.url == "https://hooks.example.com/alerts"
