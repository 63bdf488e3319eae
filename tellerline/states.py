"""
Account State Policies

Each account state carries a capability predicate per operation. States
can be reassigned freely; the predicates are the only gate.
"""

from enum import Enum

from .domain import TransactionType


class AccountState(Enum):
    """Account lifecycle states"""
    ACTIVE = ("active", True, True, True,
              "Account is active and fully operational. All transactions are allowed.")
    SUSPENDED = ("suspended", True, False, False,
                 "Account is suspended. Deposits are allowed, but withdrawals and transfers are prohibited.")
    FROZEN = ("frozen", False, False, False,
              "Account is frozen. No transactions are allowed.")
    CLOSED = ("closed", False, False, False,
              "Account is closed. No transactions are allowed.")

    def __init__(self, code: str, can_deposit: bool, can_withdraw: bool,
                 can_transfer: bool, description: str):
        self.code = code
        self.can_deposit = can_deposit
        self.can_withdraw = can_withdraw
        self.can_transfer = can_transfer
        self.description = description

    def allows(self, transaction_type: TransactionType) -> bool:
        """Check whether this state permits the given operation"""
        if transaction_type == TransactionType.DEPOSIT:
            return self.can_deposit
        if transaction_type == TransactionType.WITHDRAW:
            return self.can_withdraw
        if transaction_type == TransactionType.TRANSFER:
            return self.can_transfer
        return False

    @classmethod
    def from_code(cls, code: str) -> 'AccountState':
        """Look up a state by its lowercase code"""
        for state in cls:
            if state.code == code.lower():
                return state
        raise ValueError(f"Unknown account state: {code}")
