# =============================================================================
# FINPLAN ENGINE - VAT NETTING TESTS
# =============================================================================

import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finplan.vat import (
    FranchiseRegime, StandardRegime, VatLine, calculate_ht, calculate_ttc,
    calculate_vat, is_franchise, net_vat, purchase_rate_for, sale_rate_for,
)


class TestNetting:
    """Tests for collected / deductible netting."""

    def test_standard_netting(self):
        summary = net_vat(
            [VatLine(Decimal("1000"), Decimal("5.5"), "direct"), VatLine(Decimal("200"), Decimal("20"), "business")],
            [VatLine(Decimal("300"), Decimal("20"), "materials")],
            StandardRegime(),
        )
        assert summary.collected == Decimal("95")
        assert summary.deductible == Decimal("60")
        assert summary.net == Decimal("35")
        assert summary.collected_by_category == {"direct": Decimal("55"), "business": Decimal("40")}

    def test_net_can_be_a_credit(self):
        summary = net_vat([], [VatLine(Decimal("100"), Decimal("20"))], StandardRegime())
        assert summary.net == Decimal("-20")

    def test_franchise_zeroes_everything(self):
        summary = net_vat(
            [VatLine(Decimal("1000"), Decimal("20"), "direct")],
            [VatLine(Decimal("300"), Decimal("20"), "materials")],
            FranchiseRegime(),
        )
        assert summary.collected == 0
        assert summary.deductible == 0
        assert summary.net == 0
        assert summary.collected_by_category == {"direct": 0}

    def test_unknown_regime_is_rejected(self):
        with pytest.raises(TypeError):
            net_vat([], [], "standard")
        with pytest.raises(TypeError):
            is_franchise(None)


class TestRates:
    """Tests for default rates per regime."""

    def test_defaults_apply_when_rate_missing(self):
        regime = StandardRegime(default_sale_rate=Decimal("10"), default_purchase_rate=Decimal("20"))
        assert sale_rate_for(None, regime) == 10
        assert purchase_rate_for(None, regime) == 20
        assert sale_rate_for(Decimal("5.5"), regime) == Decimal("5.5")

    def test_zero_rate_is_not_replaced(self):
        assert purchase_rate_for(Decimal("0"), StandardRegime()) == 0

    def test_franchise_rates_are_zero(self):
        assert sale_rate_for(Decimal("20"), FranchiseRegime()) == 0
        assert purchase_rate_for(None, FranchiseRegime()) == 0


class TestConversions:
    """Tests for HT / TTC helpers."""

    def test_vat_and_ttc(self):
        assert calculate_vat(Decimal("1000"), Decimal("6")) == Decimal("60")
        assert calculate_ttc(Decimal("1000"), Decimal("6")) == Decimal("1060")

    def test_ht_from_ttc(self):
        assert calculate_ht(Decimal("1200"), Decimal("20")) == Decimal("1000")
