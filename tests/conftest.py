# =============================================================================
# FINPLAN ENGINE - PYTEST CONFIGURATION
# =============================================================================
# Shared fixtures and configuration for all tests.
# =============================================================================

import copy

import pytest
import sys
import os
from pathlib import Path

# Add project root to path
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))


WIDGET_ASSUMPTIONS = {
    "plan": {"year": 2026, "mode": "budget"},
    "settings": {
        "vat": {
            "regime": "standard",
            "default_sale_rate": 6,
            "default_purchase_rate": 20,
        },
        "payment_delays": {"direct": 30},
        "initial_cash": 0,
        "vat_settlement_lag_months": 1,
    },
    "catalog": {
        "products": [
            {"product_id": "widget", "name": "Widget", "base_price": 10,
             "vat_rate": 6, "channel_prices": {"direct": 10}}
        ],
        "components": [
            {"component_id": "steel", "name": "Steel", "kind": "ingredient",
             "unit_cost": 4, "vat_rate": 0}
        ],
        "recipes": {"widget": [{"component_id": "steel", "quantity": 1}]},
    },
    "sales": {
        "annual": [
            {"product_id": "widget", "channel": "direct", "year": 2026,
             "mode": "budget", "annual_quantity": 1200}
        ],
    },
    "expenses": [],
}


@pytest.fixture
def project_root():
    """Get project root directory."""
    return Path(__file__).parent.parent


@pytest.fixture
def assumptions_dir(project_root):
    """Get assumptions directory."""
    return project_root / "assumptions"


@pytest.fixture
def widget_assumptions():
    """One product, 10 HT at 6% VAT, unit cost 4 without VAT, 100 units/month, 30-day delay."""
    return copy.deepcopy(WIDGET_ASSUMPTIONS)


@pytest.fixture
def widget_inputs(widget_assumptions):
    """Loaded (catalog, sales, settings, expenses) snapshots of the widget plan."""
    from finplan.catalog import load_catalog
    from finplan.expenses import load_expenses
    from finplan.sales import load_sales
    from finplan.settings import load_settings
    return (
        load_catalog(widget_assumptions),
        load_sales(widget_assumptions),
        load_settings(widget_assumptions),
        load_expenses(widget_assumptions),
    )


@pytest.fixture
def widget_projection(widget_inputs):
    """Run the projector on the widget plan."""
    from finplan.cashflow import project_cash_flow
    from finplan.enums import PlanningMode
    catalog, sales, settings, expenses = widget_inputs
    return project_cash_flow(catalog, sales, settings, expenses, 2026, PlanningMode.BUDGET)


@pytest.fixture
def bakery_assumptions(assumptions_dir):
    """Example plan shipped with the repository."""
    from finplan.assumptions import load_plan_assumptions
    return load_plan_assumptions("base", assumptions_dir)
