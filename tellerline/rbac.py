"""
Role Privilege Ceilings

Each role may initiate transactions up to a fixed amount. This is the
actual go/no-go gate for authorization; approval levels are advisory.
"""

from decimal import Decimal
from enum import Enum
from typing import Dict, Mapping, Optional

from .domain import AmountLike, as_amount


class Role(Enum):
    """Initiator roles"""
    CUSTOMER = "customer"
    TELLER = "teller"
    MANAGER = "manager"
    ADMIN = "admin"


DEFAULT_CEILINGS: Dict[Role, Optional[Decimal]] = {
    Role.CUSTOMER: Decimal('10000'),
    Role.TELLER: Decimal('50000'),
    Role.MANAGER: Decimal('100000'),
    Role.ADMIN: None,  # Unbounded
}


class PrivilegeCeilings:
    """Maximum transaction amount per role (None = unbounded)"""

    def __init__(self, ceilings: Optional[Mapping[Role, Optional[AmountLike]]] = None):
        merged = dict(DEFAULT_CEILINGS)
        if ceilings:
            merged.update(ceilings)

        self._ceilings: Dict[Role, Optional[Decimal]] = {}
        for role, ceiling in merged.items():
            if ceiling is None:
                self._ceilings[role] = None
                continue
            value = as_amount(ceiling)
            if value < 0:
                raise ValueError(f"Ceiling for {role.value} cannot be negative")
            self._ceilings[role] = value

    def ceiling_for(self, role: Role) -> Optional[Decimal]:
        return self._ceilings.get(role, Decimal('0'))

    def has_privilege(self, role: Role, amount: AmountLike) -> bool:
        """Check whether ``role`` may initiate a transaction of ``amount``"""
        if role not in self._ceilings:
            return False
        ceiling = self._ceilings[role]
        return ceiling is None or as_amount(amount) <= ceiling
