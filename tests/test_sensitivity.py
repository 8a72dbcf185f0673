# =============================================================================
# FINPLAN ENGINE - SENSITIVITY TESTS
# =============================================================================

import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finplan.catalog import Catalog, CostComponent, Product, RecipeLine
from finplan.sensitivity import (
    DEFAULT_VARIATIONS, calculate_sensitivity, category_sensitivity, product_sensitivity,
)


@pytest.fixture
def bread_catalog():
    return Catalog(
        products={
            "loaf": Product("loaf", "Loaf", Decimal(10), category="bread",
                            channel_prices={"direct": Decimal(10)}),
            "bun": Product("bun", "Bun", Decimal(2), category="bread"),
        },
        components={"dough": CostComponent("dough", "Dough", "ingredient", Decimal(1))},
        recipes=(
            RecipeLine("loaf", Decimal(4), component_id="dough"),
            RecipeLine("bun", Decimal(1), component_id="dough"),
        ),
    )


class TestCalculateSensitivity:
    """Tests for one-factor variations on cost 4, price 10, volume 100."""

    def test_cost_variation(self):
        result = calculate_sensitivity(Decimal(4), Decimal(10), "cost", Decimal(10))
        assert result.unit_cost == Decimal("4.4")
        assert result.margin == Decimal("5.6")
        assert result.margin_pct == 56
        assert result.profitability == 560
        assert result.revenue == 1000

    def test_price_variation(self):
        result = calculate_sensitivity(Decimal(4), Decimal(10), "price", Decimal(-10))
        assert result.margin == 5
        assert result.revenue == 900
        assert result.profitability == 500

    def test_volume_variation(self):
        result = calculate_sensitivity(Decimal(4), Decimal(10), "volume", Decimal(20))
        assert result.margin == 6
        assert result.profitability == 720
        assert result.revenue == 1200

    def test_zero_price_has_zero_margin_pct(self):
        result = calculate_sensitivity(Decimal(4), Decimal(0), "cost", Decimal(0))
        assert result.margin_pct == 0

    def test_unknown_variation_type(self):
        with pytest.raises(ValueError):
            calculate_sensitivity(Decimal(4), Decimal(10), "tax", Decimal(10))


class TestProductSensitivity:
    """Tests for catalog-level grids."""

    def test_grids_cover_default_variations(self, bread_catalog):
        result = product_sensitivity(bread_catalog, "loaf")
        assert len(result.cost_variations) == len(DEFAULT_VARIATIONS)
        assert result.base.margin == 6
        assert [r.variation for r in result.price_variations] == list(DEFAULT_VARIATIONS)

    def test_unknown_product(self, bread_catalog):
        assert product_sensitivity(bread_catalog, "ghost") is None

    def test_category_aggregates(self, bread_catalog):
        """loaf: price 10 cost 4; bun: base price 2 cost 1."""
        result = category_sensitivity(bread_catalog, "bread", variations=[Decimal(0)])
        base = result.cost_variations[0]
        assert result.product_ids == ["loaf", "bun"]
        assert base.revenue == 1200
        assert base.profitability == 700
        assert base.unit_cost == Decimal("2.5")
        assert base.margin_pct == Decimal(700) / Decimal(1200) * 100

    def test_unknown_category(self, bread_catalog):
        assert category_sensitivity(bread_catalog, "cakes") is None
