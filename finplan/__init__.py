# =============================================================================
# FINPLAN ENGINE - CORE PACKAGE
# =============================================================================
# This package contains the calculation engines of the financial planner.
#
# Modules:
# - catalog: Products, cost components and recipe edges
# - cost_resolver: Recursive unit cost rollup and sub-recipe refresh
# - sales: Seasonality distribution of annual/monthly sales
# - pricing: Effective price per channel
# - vat: VAT netting and fiscal regimes
# - cashflow: Monthly cash-flow and VAT projection
# - stress: Stress scenarios over a baseline projection
# - sensitivity: Cost/price/volume sensitivity grids
# - breakeven: Breakeven per product and channel
# - budget_vs_actual: Budget vs actual gaps by indicator, product, category, month
# - financial_plan: Annual P&L, income tax and take-home pay
# - plan: Pipeline orchestration for one plan snapshot
# =============================================================================

__version__ = "0.1.0"
