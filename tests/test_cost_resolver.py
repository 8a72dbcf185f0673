# =============================================================================
# FINPLAN ENGINE - COST RESOLVER TESTS
# =============================================================================

import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finplan.catalog import Catalog, CostComponent, Product, RecipeLine
from finplan.cost_resolver import (
    SubRecipeError, convert_to_sub_recipe, refresh_sub_recipe_costs,
    remove_sub_recipe, resolve_cost_breakdown, resolve_unit_cost, topological_order,
)


def D(value):
    return Decimal(str(value))


def _product(pid, price=10):
    return Product(product_id=pid, name=pid.title(), base_price=D(price))


def _component(cid, kind, cost, source=None):
    return CostComponent(component_id=cid, name=cid, kind=kind, unit_cost=D(cost),
                         source_product_id=source)


def _catalog(products, components, lines):
    return Catalog(
        products={p.product_id: p for p in products},
        components={c.component_id: c for c in components},
        recipes=tuple(RecipeLine(pid, D(qty), component_id=cid, sub_product_id=sub)
                      for pid, qty, cid, sub in lines),
    )


@pytest.fixture
def pastry_catalog():
    """croissant uses dough via a stale cached sub-recipe ingredient."""
    return _catalog(
        [_product("croissant", 1.4), _product("dough", 9)],
        [
            _component("flour", "ingredient", 0.9),
            _component("butter", "ingredient", 8.5),
            _component("bag", "packaging", 0.04),
            _component("oven", "variable", 0.06),
            _component("sr_dough", "ingredient", 0, source="dough"),
        ],
        [
            ("dough", 0.55, "flour", None),
            ("dough", 0.45, "butter", None),
            ("croissant", 0.06, "sr_dough", None),
            ("croissant", 1, "bag", None),
            ("croissant", 1, "oven", None),
        ],
    )


class TestLeafCosts:
    """Tests for flat recipes."""

    def test_sum_of_quantity_times_cost(self, pastry_catalog):
        """Cost = SUM(qty * unit_cost)."""
        assert resolve_unit_cost(pastry_catalog, "dough") == D("4.32")  # 0.495 + 3.825

    def test_product_without_recipe_costs_zero(self):
        catalog = _catalog([_product("empty")], [], [])
        assert resolve_unit_cost(catalog, "empty") == 0

    def test_unknown_component_contributes_zero_with_warning(self):
        catalog = _catalog(
            [_product("p")],
            [_component("c1", "ingredient", 2)],
            [("p", 1, "c1", None), ("p", 3, "ghost", None)],
        )
        warnings = []
        assert resolve_unit_cost(catalog, "p", warnings=warnings) == 2
        assert any("ghost" in w for w in warnings)

    def test_unknown_product_costs_zero_with_warning(self, pastry_catalog):
        warnings = []
        assert resolve_unit_cost(pastry_catalog, "nope", warnings=warnings) == 0
        assert len(warnings) == 1


class TestSubRecipes:
    """Tests for recursive sub-recipe resolution."""

    def test_recurses_instead_of_reading_cached_cost(self, pastry_catalog):
        """The cached sr_dough cost (0) is ignored; dough is resolved from leaves."""
        expected = D("0.06") * D("4.32") + D("0.04") + D("0.06")
        assert resolve_unit_cost(pastry_catalog, "croissant") == expected

    def test_direct_product_edge(self):
        catalog = _catalog(
            [_product("top"), _product("sub")],
            [_component("c", "ingredient", 3)],
            [("sub", 2, "c", None), ("top", D("0.5"), None, "sub")],
        )
        assert resolve_unit_cost(catalog, "top") == 3

    def test_breakdown_books_sub_recipe_as_materials(self, pastry_catalog):
        breakdown = resolve_cost_breakdown(pastry_catalog, "croissant")
        by_category = breakdown.ht_by_category()
        assert by_category["materials"] == D("0.06") * D("4.32")
        assert by_category["packaging"] == D("0.04")
        assert by_category["variable"] == D("0.06")
        assert breakdown.total_ht == resolve_unit_cost(pastry_catalog, "croissant")

    def test_diamond_is_not_a_cycle(self):
        """Two paths to the same sub-recipe both count in full."""
        catalog = _catalog(
            [_product("top"), _product("left"), _product("right"), _product("base")],
            [_component("c", "ingredient", 1)],
            [
                ("base", 1, "c", None),
                ("left", 1, None, "base"),
                ("right", 1, None, "base"),
                ("top", 1, None, "left"),
                ("top", 1, None, "right"),
            ],
        )
        warnings = []
        assert resolve_unit_cost(catalog, "top", warnings=warnings) == 2
        assert warnings == []


class TestCycleSafety:
    """Tests for cycle detection."""

    def test_self_reference_terminates(self):
        catalog = _catalog(
            [_product("loop")],
            [_component("c", "ingredient", 5)],
            [("loop", 1, "c", None), ("loop", 1, None, "loop")],
        )
        warnings = []
        assert resolve_unit_cost(catalog, "loop", warnings=warnings) == 5
        assert any("cycle" in w.lower() for w in warnings)

    def test_transitive_cycle_through_cached_ingredient(self):
        """a -> b -> sr_a -> a: the back edge contributes 0."""
        catalog = _catalog(
            [_product("a"), _product("b")],
            [
                _component("ca", "ingredient", 1),
                _component("cb", "ingredient", 10),
                _component("sr_a", "ingredient", 99, source="a"),
            ],
            [
                ("a", 1, "ca", None),
                ("a", 1, None, "b"),
                ("b", 1, "cb", None),
                ("b", 1, "sr_a", None),
            ],
        )
        warnings = []
        assert resolve_unit_cost(catalog, "a", warnings=warnings) == 11
        assert any("a -> b -> a" in w for w in warnings)

    def test_guard_is_local_to_each_call(self, pastry_catalog):
        first = resolve_unit_cost(pastry_catalog, "croissant")
        resolve_unit_cost(pastry_catalog, "dough")
        assert resolve_unit_cost(pastry_catalog, "croissant") == first

    def test_caller_visited_set_is_not_mutated(self, pastry_catalog):
        visited = {"other"}
        resolve_unit_cost(pastry_catalog, "croissant", visited=visited)
        assert visited == {"other"}


class TestRefresh:
    """Tests for the explicit bottom-up sub-recipe refresh."""

    def test_refresh_updates_cached_cost(self, pastry_catalog):
        result = refresh_sub_recipe_costs(pastry_catalog)
        assert result.catalog.get_component("sr_dough").unit_cost == D("4.32")
        assert result.updated == {"sr_dough": D("4.32")}

    def test_refresh_returns_new_catalog(self, pastry_catalog):
        refresh_sub_recipe_costs(pastry_catalog)
        assert pastry_catalog.get_component("sr_dough").unit_cost == 0

    def test_nested_chain_uses_current_leaf_costs(self):
        """A stale inner cache never leaks into the outer sub-recipe."""
        catalog = _catalog(
            [_product("inner"), _product("middle"), _product("outer")],
            [
                _component("leaf", "ingredient", 2),
                _component("sr_inner", "ingredient", 100, source="inner"),
                _component("sr_middle", "ingredient", 100, source="middle"),
            ],
            [
                ("inner", 1, "leaf", None),
                ("middle", 3, "sr_inner", None),
                ("outer", 1, "sr_middle", None),
            ],
        )
        result = refresh_sub_recipe_costs(catalog)
        assert result.catalog.get_component("sr_inner").unit_cost == 2
        assert result.catalog.get_component("sr_middle").unit_cost == 6
        assert result.order.index("inner") < result.order.index("middle") < result.order.index("outer")

    def test_topological_order_reports_cycles(self):
        catalog = _catalog(
            [_product("a"), _product("b"), _product("free")],
            [],
            [("a", 1, None, "b"), ("b", 1, None, "a")],
        )
        order, blocked = topological_order(catalog)
        assert order == ["free"]
        assert blocked == ["a", "b"]


class TestSubRecipeManagement:
    """Tests for exposing and removing sub-recipe ingredients."""

    def test_convert_creates_prefixed_ingredient(self, pastry_catalog):
        catalog, component = convert_to_sub_recipe(pastry_catalog, "croissant", unit="unit")
        assert component.name == "[SR] Croissant"
        assert component.source_product_id == "croissant"
        assert component.unit_cost == resolve_unit_cost(pastry_catalog, "croissant")
        assert catalog.get_component(component.component_id) == component

    def test_convert_twice_is_rejected(self, pastry_catalog):
        with pytest.raises(SubRecipeError):
            convert_to_sub_recipe(pastry_catalog, "dough")

    def test_remove_in_use_is_rejected(self, pastry_catalog):
        with pytest.raises(SubRecipeError, match="croissant"):
            remove_sub_recipe(pastry_catalog, "sr_dough")

    def test_remove_unused(self, pastry_catalog):
        catalog, component = convert_to_sub_recipe(pastry_catalog, "croissant")
        catalog = remove_sub_recipe(catalog, component.component_id)
        assert catalog.get_component(component.component_id) is None
