"""
Approval Classification

Maps a transaction amount to the approval tier that would sign it off.
The tiers are a static table of ``(lower_bound, level)`` rows sorted by
bound; each row owns ``[bound, next_bound)`` and the last row is open
ended. The table is checked once at construction for gap-free coverage
of ``[0, inf)``.

Classification is recorded on the audit record only. It never blocks a
transaction; the role privilege ceiling does that (see rbac).
"""

from bisect import bisect_right
from decimal import Decimal
from enum import Enum
from typing import List, Sequence, Tuple

from .domain import AmountLike, as_amount


class ApprovalLevel(Enum):
    """Approval tiers, lowest first"""
    AUTO = 1
    TELLER = 2
    MANAGER = 3
    ADMIN = 4

    def __lt__(self, other: 'ApprovalLevel') -> bool:
        if not isinstance(other, ApprovalLevel):
            return NotImplemented
        return self.value < other.value


DEFAULT_APPROVAL_BANDS: Tuple[Tuple[Decimal, ApprovalLevel], ...] = (
    (Decimal('0'), ApprovalLevel.AUTO),
    (Decimal('1000'), ApprovalLevel.TELLER),
    (Decimal('10000'), ApprovalLevel.MANAGER),
    (Decimal('50000'), ApprovalLevel.ADMIN),
)


class ApprovalTable:
    """Range lookup from amount to approval level"""

    def __init__(self, bands: Sequence[Tuple[AmountLike, ApprovalLevel]] = DEFAULT_APPROVAL_BANDS):
        rows = [(as_amount(bound), level) for bound, level in bands]
        self._verify_coverage(rows)
        self._bounds: List[Decimal] = [bound for bound, _ in rows]
        self._levels: List[ApprovalLevel] = [level for _, level in rows]

    @staticmethod
    def _verify_coverage(rows: List[Tuple[Decimal, ApprovalLevel]]) -> None:
        """
        Check the bands cover [0, inf) with no gaps or overlaps

        Raises:
            ValueError: If the table is empty, does not start at 0, or has
                bounds or levels out of order
        """
        if not rows:
            raise ValueError("Approval table must have at least one band")
        if rows[0][0] != 0:
            raise ValueError(f"First approval band must start at 0, not {rows[0][0]}")
        for (bound, level), (next_bound, next_level) in zip(rows, rows[1:]):
            if next_bound <= bound:
                raise ValueError(
                    f"Approval bands must have strictly increasing bounds: {bound} then {next_bound}"
                )
            if not level < next_level:
                raise ValueError(
                    f"Approval levels must increase with amount: {level.name} then {next_level.name}"
                )

    @property
    def bands(self) -> List[Tuple[Decimal, ApprovalLevel]]:
        return list(zip(self._bounds, self._levels))

    def classify(self, amount: AmountLike) -> ApprovalLevel:
        """
        Return the tier owning ``amount``

        Raises:
            ValueError: If the amount is negative
        """
        value = as_amount(amount)
        if value < 0:
            raise ValueError(f"Cannot classify negative amount: {value}")
        return self._levels[bisect_right(self._bounds, value) - 1]

    def band_for(self, level: ApprovalLevel) -> Tuple[Decimal, Decimal]:
        """Half-open ``[lower, upper)`` range for a level; upper is Infinity for the last band"""
        index = self._levels.index(level)
        upper = self._bounds[index + 1] if index + 1 < len(self._bounds) else Decimal('Infinity')
        return self._bounds[index], upper
