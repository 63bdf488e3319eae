"""
Test suite for approval classification
"""

import pytest
from decimal import Decimal

from tellerline.approval import ApprovalLevel, ApprovalTable


class TestApprovalTable:
    """Test amount to approval level lookup"""

    def setup_method(self):
        self.table = ApprovalTable()

    @pytest.mark.parametrize("amount, level", [
        (Decimal('0'), ApprovalLevel.AUTO),
        (Decimal('999.99'), ApprovalLevel.AUTO),
        (Decimal('1000'), ApprovalLevel.TELLER),
        (Decimal('9999.99'), ApprovalLevel.TELLER),
        (Decimal('10000'), ApprovalLevel.MANAGER),
        (Decimal('49999.99'), ApprovalLevel.MANAGER),
        (Decimal('50000'), ApprovalLevel.ADMIN),
        (Decimal('1000000'), ApprovalLevel.ADMIN),
    ])
    def test_band_boundaries(self, amount, level):
        """Test classification is exact at every band edge"""
        assert self.table.classify(amount) == level

    def test_accepts_plain_numbers(self):
        """Test ints, floats and strings are classified like Decimals"""
        assert self.table.classify(1000) == ApprovalLevel.TELLER
        assert self.table.classify(999.99) == ApprovalLevel.AUTO
        assert self.table.classify("50000") == ApprovalLevel.ADMIN

    def test_negative_amount(self):
        """Test negative amounts cannot be classified"""
        with pytest.raises(ValueError, match="negative"):
            self.table.classify(Decimal('-1'))

    def test_levels_are_ordered(self):
        """Test tiers compare by rank"""
        assert ApprovalLevel.AUTO < ApprovalLevel.TELLER < ApprovalLevel.MANAGER < ApprovalLevel.ADMIN

    def test_band_for(self):
        """Test band ranges are half-open and the last is unbounded"""
        assert self.table.band_for(ApprovalLevel.TELLER) == (Decimal('1000'), Decimal('10000'))
        lower, upper = self.table.band_for(ApprovalLevel.ADMIN)
        assert lower == Decimal('50000')
        assert upper == Decimal('Infinity')

    def test_custom_table(self):
        """Test a two band table"""
        table = ApprovalTable([(0, ApprovalLevel.AUTO), (500, ApprovalLevel.MANAGER)])

        assert table.classify(Decimal('499.99')) == ApprovalLevel.AUTO
        assert table.classify(Decimal('500')) == ApprovalLevel.MANAGER
        assert len(table.bands) == 2


class TestApprovalTableCoverage:
    """Test construction-time coverage checks"""

    def test_empty_table(self):
        with pytest.raises(ValueError, match="at least one band"):
            ApprovalTable([])

    def test_gap_at_zero(self):
        """Test the first band must start at 0"""
        with pytest.raises(ValueError, match="must start at 0"):
            ApprovalTable([(100, ApprovalLevel.AUTO), (1000, ApprovalLevel.TELLER)])

    def test_overlapping_bounds(self):
        """Test duplicate bounds are rejected"""
        with pytest.raises(ValueError, match="strictly increasing bounds"):
            ApprovalTable([
                (0, ApprovalLevel.AUTO),
                (1000, ApprovalLevel.TELLER),
                (1000, ApprovalLevel.MANAGER),
            ])

    def test_levels_out_of_order(self):
        """Test levels must rise with amount"""
        with pytest.raises(ValueError, match="levels must increase"):
            ApprovalTable([(0, ApprovalLevel.MANAGER), (1000, ApprovalLevel.TELLER)])
