"""
Transaction Ledger Module

Append-only, hash-chained log of every transaction attempt. Each record
carries the SHA-256 hash of its predecessor so tampering with history is
detectable. Appends and aggregate reads share one lock, so a reader never
sees a half-written record and concurrent appends never interleave.
"""

import hashlib
import json
import threading
from collections import defaultdict
from datetime import date, datetime, timezone
from dataclasses import dataclass, replace
from decimal import Decimal
from typing import Any, Callable, Dict, List, Optional, Tuple, Union

from .domain import TransactionType, FailureReason
from .logging_config import get_logger, log_action


Clock = Callable[[], datetime]


def utc_clock() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class TransactionRecord:
    """
    Immutable outcome of one transaction attempt
    """
    transaction_id: str
    transaction_type: TransactionType
    source_account_id: str
    target_account_id: Optional[str]
    timestamp: datetime
    amount: Decimal
    initiated_by: str
    initiator_role: str
    success: bool
    failure_reason: Optional[FailureReason] = None
    failure_message: Optional[str] = None
    approval_level: Optional[str] = None  # None when refused before classification

    # Assigned by the ledger on append
    sequence: int = 0
    previous_hash: str = ""
    current_hash: str = ""

    def calculate_hash(self) -> str:
        """
        Calculate SHA-256 hash of this record
        Hash includes all fields except current_hash
        """
        hash_data = {
            'transaction_id': self.transaction_id,
            'transaction_type': self.transaction_type.value,
            'source_account_id': self.source_account_id,
            'target_account_id': self.target_account_id,
            'timestamp': self.timestamp.isoformat(),
            'amount': str(self.amount),
            'initiated_by': self.initiated_by,
            'initiator_role': self.initiator_role,
            'success': self.success,
            'failure_reason': self.failure_reason.value if self.failure_reason else None,
            'failure_message': self.failure_message,
            'approval_level': self.approval_level,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
        }

        json_data = json.dumps(hash_data, sort_keys=True, separators=(',', ':'))
        return hashlib.sha256(json_data.encode('utf-8')).hexdigest()

    def verify_hash(self) -> bool:
        return self.current_hash == self.calculate_hash()

    def involves(self, account_id: str) -> bool:
        return account_id in (self.source_account_id, self.target_account_id)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable view for reports and logs"""
        return {
            'transaction_id': self.transaction_id,
            'transaction_type': self.transaction_type.value,
            'source_account_id': self.source_account_id,
            'target_account_id': self.target_account_id,
            'timestamp': self.timestamp.isoformat(),
            'amount': str(self.amount),
            'initiated_by': self.initiated_by,
            'initiator_role': self.initiator_role,
            'success': self.success,
            'failure_reason': self.failure_reason.value if self.failure_reason else None,
            'failure_message': self.failure_message,
            'approval_level': self.approval_level,
            'sequence': self.sequence,
            'previous_hash': self.previous_hash,
            'current_hash': self.current_hash,
        }


@dataclass(frozen=True)
class DailySummary:
    """Aggregate view of one calendar day"""
    day: date
    count: int
    successes: int
    failures: int
    total_amount: Decimal


class TransactionLedger:
    """
    Append-only transaction log with daily aggregates

    Created once per service and never reset. Records are only reachable
    through the append and query methods below.
    """

    def __init__(self, clock: Clock = utc_clock):
        self._clock = clock
        self._records: List[TransactionRecord] = []
        self._daily_totals: Dict[Tuple[str, TransactionType, date], Decimal] = defaultdict(Decimal)
        self._last_hash = ""
        self._lock = threading.Lock()
        self.logger = get_logger("tellerline.ledger")

    @property
    def clock(self) -> Clock:
        return self._clock

    def append(self, record: TransactionRecord) -> TransactionRecord:
        """
        Seal and append a record

        Args:
            record: Record to append; any sequence/hash values are replaced

        Returns:
            The sealed record as stored
        """
        with self._lock:
            sealed = replace(
                record,
                sequence=len(self._records) + 1,
                previous_hash=self._last_hash,
                current_hash=""
            )
            sealed = replace(sealed, current_hash=sealed.calculate_hash())

            self._records.append(sealed)
            self._last_hash = sealed.current_hash
            if sealed.success:
                self._index(sealed)

        log_action(
            self.logger, "info",
            f"Transaction logged: {sealed.transaction_id} {sealed.transaction_type.value} {sealed.amount}",
            user_id=sealed.initiated_by,
            action="append_record",
            resource=f"transaction:{sealed.transaction_id}",
            extra={
                "sequence": sealed.sequence,
                "success": sealed.success,
                "failure_reason": sealed.failure_reason.value if sealed.failure_reason else None,
                "approval_level": sealed.approval_level,
            }
        )
        return sealed

    def _index(self, record: TransactionRecord) -> None:
        day = record.timestamp.date()
        key = (record.source_account_id, record.transaction_type, day)
        self._daily_totals[key] += record.amount
        # Deposits count for the receiving account as well
        if (record.transaction_type == TransactionType.DEPOSIT and record.target_account_id
                and record.target_account_id != record.source_account_id):
            self._daily_totals[(record.target_account_id, record.transaction_type, day)] += record.amount

    def daily_total(
        self,
        account: Union[str, Any],
        transaction_type: TransactionType,
        day: date
    ) -> Decimal:
        """Sum of successful amounts for an account, type and calendar day"""
        account_id = account if isinstance(account, str) else account.id
        with self._lock:
            return self._daily_totals.get((account_id, transaction_type, day), Decimal('0'))

    def todays_total(self, account: Union[str, Any], transaction_type: TransactionType) -> Decimal:
        """Sum of today's successful amounts for an account and type"""
        return self.daily_total(account, transaction_type, self._clock().date())

    def records(self) -> List[TransactionRecord]:
        """Snapshot of all records in append order"""
        with self._lock:
            return list(self._records)

    def records_for_account(self, account_id: str) -> List[TransactionRecord]:
        """All records where the account is source or target"""
        return [r for r in self.records() if r.involves(account_id)]

    def records_on(self, day: date) -> List[TransactionRecord]:
        return [r for r in self.records() if r.timestamp.date() == day]

    def daily_summary(self, day: Optional[date] = None) -> DailySummary:
        """Count, total amount and failures for a calendar day (today by default)"""
        day = day or self._clock().date()
        day_records = self.records_on(day)
        failures = sum(1 for r in day_records if not r.success)
        return DailySummary(
            day=day,
            count=len(day_records),
            successes=len(day_records) - failures,
            failures=failures,
            total_amount=sum((r.amount for r in day_records), Decimal('0'))
        )

    def count(self) -> int:
        with self._lock:
            return len(self._records)

    def __len__(self) -> int:
        return self.count()

    def get_latest_hash(self) -> str:
        with self._lock:
            return self._last_hash

    def verify_integrity(self) -> Dict[str, Any]:
        """
        Verify the integrity of the entire record chain

        Returns:
            Dictionary with integrity check results
        """
        result = {
            'valid': True,
            'total_records': 0,
            'hash_errors': [],
            'chain_breaks': [],
        }

        records = self.records()
        result['total_records'] = len(records)

        previous_hash = ""
        for position, record in enumerate(records):
            if not record.verify_hash():
                result['valid'] = False
                result['hash_errors'].append({
                    'transaction_id': record.transaction_id,
                    'position': position,
                    'expected_hash': record.calculate_hash(),
                    'actual_hash': record.current_hash
                })
            if record.previous_hash != previous_hash:
                result['valid'] = False
                result['chain_breaks'].append({
                    'transaction_id': record.transaction_id,
                    'position': position,
                    'expected_previous_hash': previous_hash,
                    'actual_previous_hash': record.previous_hash
                })
            previous_hash = record.current_hash

        if not result['valid']:
            self.logger.warning("Ledger integrity check failed: %s", result)

        return result
