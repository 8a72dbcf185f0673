# =============================================================================
# FINPLAN ENGINE - BUDGET VS ACTUAL MODULE
# =============================================================================
# Compares the budget projection of a year with its actual projection.
#
# FORMULA (per indicator):
# Ecart   = Actual - Budget
# Ecart%  = Ecart / Budget * 100   (None when Budget = 0)
#
# Margin is revenue HT minus production cost HT recognized at sale time.
# Only months inside both horizons are compared.
# =============================================================================

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .cashflow import ProjectionOutput
from .catalog import Catalog
from .money import HUNDRED, ZERO, dsum

logger = logging.getLogger(__name__)

UNCATEGORIZED = "uncategorized"

INDICATOR_LABELS = {
    "quantity": "Units sold",
    "ca_ht": "Revenue HT",
    "production_cost_ht": "Production cost HT",
    "gross_margin": "Gross margin",
    "frais_ht": "Professional expenses HT",
    "net_result": "Net result",
    "cash_flow": "Cash flow",
}


def gap_pct(budget: Decimal, actual: Decimal) -> Optional[Decimal]:
    """Relative gap in percent of the budget; None when the budget is zero."""
    if budget == ZERO:
        return None
    return (actual - budget) / budget * HUNDRED


@dataclass(frozen=True)
class IndicatorGap:
    key: str
    label: str
    budget: Decimal
    actual: Decimal

    @property
    def ecart(self) -> Decimal:
        return self.actual - self.budget

    @property
    def ecart_pct(self) -> Optional[Decimal]:
        return gap_pct(self.budget, self.actual)


@dataclass(frozen=True)
class SegmentGap:
    """Quantity, revenue and margin of one product, category or month."""
    key: str
    label: str
    budget_quantity: Decimal = ZERO
    actual_quantity: Decimal = ZERO
    budget_ca_ht: Decimal = ZERO
    actual_ca_ht: Decimal = ZERO
    budget_margin: Decimal = ZERO
    actual_margin: Decimal = ZERO

    @property
    def ecart_quantity(self) -> Decimal:
        return self.actual_quantity - self.budget_quantity

    @property
    def ecart_ca_ht(self) -> Decimal:
        return self.actual_ca_ht - self.budget_ca_ht

    @property
    def ecart_margin(self) -> Decimal:
        return self.actual_margin - self.budget_margin

    @property
    def ecart_pct(self) -> Optional[Decimal]:
        return gap_pct(self.budget_ca_ht, self.actual_ca_ht)


@dataclass
class BudgetVsActual:
    year: int
    indicators: List[IndicatorGap] = field(default_factory=list)
    by_product: List[SegmentGap] = field(default_factory=list)  # largest revenue gap first
    by_category: List[SegmentGap] = field(default_factory=list)  # largest revenue gap first
    by_month: List[SegmentGap] = field(default_factory=list)  # chronological
    warnings: List[str] = field(default_factory=list)

    def indicator(self, key: str) -> Optional[IndicatorGap]:
        return next((i for i in self.indicators if i.key == key), None)


@dataclass
class _Totals:
    quantity: Decimal = ZERO
    ca_ht: Decimal = ZERO
    cost_ht: Decimal = ZERO

    @property
    def margin(self) -> Decimal:
        return self.ca_ht - self.cost_ht


def _product_totals(projection: ProjectionOutput, months: int) -> Dict[str, _Totals]:
    """Units, revenue and production cost per product over the first `months` months."""
    totals: Dict[str, _Totals] = {}
    for (product_id, channel), quantities in projection.quantities.items():
        unit_cost = projection.unit_costs.get(product_id, ZERO)
        revenue = projection.revenue_ht.get((product_id, channel), [])
        quantity = dsum(quantities[:months])
        entry = totals.setdefault(product_id, _Totals())
        entry.quantity += quantity
        entry.ca_ht += dsum(revenue[:months])
        entry.cost_ht += quantity * unit_cost
    return totals


def _month_quantities(projection: ProjectionOutput, months: int) -> List[Decimal]:
    result = [ZERO] * months
    for quantities in projection.quantities.values():
        for i, q in enumerate(quantities[:months]):
            result[i] += q
    return result


def _by_gap(segment: SegmentGap) -> Tuple[Decimal, str]:
    return (-abs(segment.ecart_ca_ht), segment.key)


def compare_budget_actual(
    budget: ProjectionOutput,
    actual: ProjectionOutput,
    catalog: Optional[Catalog] = None,
) -> BudgetVsActual:
    """
    Compare a budget projection with the actual projection of the same year.

    Args:
        budget: Projection run in BUDGET mode
        actual: Projection run in ACTUAL mode
        catalog: Optional catalog used for product names and categories

    Returns:
        BudgetVsActual with headline indicators and per product, category
        and month gaps

    Raises:
        ValueError: either projection carries boundary errors
    """
    if budget.errors or actual.errors:
        raise ValueError("Cannot compare projections with errors")

    result = BudgetVsActual(year=budget.year)
    if budget.year != actual.year:
        result.warnings.append(
            f"Comparing budget {budget.year} with actual {actual.year}"
        )
    months = min(len(budget.rows), len(actual.rows))
    if len(budget.rows) != len(actual.rows):
        result.warnings.append(
            f"Horizons differ ({len(budget.rows)} vs {len(actual.rows)} months); "
            f"comparing the first {months}"
        )

    budget_products = _product_totals(budget, months)
    actual_products = _product_totals(actual, months)
    budget_rows = budget.rows[:months]
    actual_rows = actual.rows[:months]

    def headline(key: str, budget_value: Decimal, actual_value: Decimal) -> IndicatorGap:
        return IndicatorGap(key, INDICATOR_LABELS[key], budget_value, actual_value)

    b_qty = dsum(t.quantity for t in budget_products.values())
    a_qty = dsum(t.quantity for t in actual_products.values())
    b_ca = dsum(row.ca_ht for row in budget_rows)
    a_ca = dsum(row.ca_ht for row in actual_rows)
    b_cost = dsum(row.decaissements_production_ht for row in budget_rows)
    a_cost = dsum(row.decaissements_production_ht for row in actual_rows)
    b_frais = dsum(row.frais_ht for row in budget_rows)
    a_frais = dsum(row.frais_ht for row in actual_rows)

    result.indicators = [
        headline("quantity", b_qty, a_qty),
        headline("ca_ht", b_ca, a_ca),
        headline("production_cost_ht", b_cost, a_cost),
        headline("gross_margin", b_ca - b_cost, a_ca - a_cost),
        headline("frais_ht", b_frais, a_frais),
        headline("net_result", b_ca - b_cost - b_frais, a_ca - a_cost - a_frais),
        headline(
            "cash_flow",
            dsum(row.treasury_result for row in budget_rows),
            dsum(row.treasury_result for row in actual_rows),
        ),
    ]

    categories: Dict[str, Dict[str, Decimal]] = {}
    for product_id in sorted(set(budget_products) | set(actual_products)):
        b = budget_products.get(product_id, _Totals())
        a = actual_products.get(product_id, _Totals())
        product = catalog.get_product(product_id) if catalog is not None else None
        result.by_product.append(SegmentGap(
            key=product_id,
            label=product.name if product else product_id,
            budget_quantity=b.quantity,
            actual_quantity=a.quantity,
            budget_ca_ht=b.ca_ht,
            actual_ca_ht=a.ca_ht,
            budget_margin=b.margin,
            actual_margin=a.margin,
        ))

        category = (product.category if product else "") or UNCATEGORIZED
        bucket = categories.setdefault(category, {
            "budget_ca_ht": ZERO, "actual_ca_ht": ZERO,
            "budget_margin": ZERO, "actual_margin": ZERO,
        })
        bucket["budget_ca_ht"] += b.ca_ht
        bucket["actual_ca_ht"] += a.ca_ht
        bucket["budget_margin"] += b.margin
        bucket["actual_margin"] += a.margin

    result.by_product.sort(key=_by_gap)
    result.by_category = sorted(
        (SegmentGap(key=name, label=name, **values) for name, values in categories.items()),
        key=_by_gap,
    )

    b_month_qty = _month_quantities(budget, months)
    a_month_qty = _month_quantities(actual, months)
    for i, (b_row, a_row) in enumerate(zip(budget_rows, actual_rows)):
        result.by_month.append(SegmentGap(
            key=b_row.month,
            label=b_row.month,
            budget_quantity=b_month_qty[i],
            actual_quantity=a_month_qty[i],
            budget_ca_ht=b_row.ca_ht,
            actual_ca_ht=a_row.ca_ht,
            budget_margin=b_row.ca_ht - b_row.decaissements_production_ht,
            actual_margin=a_row.ca_ht - a_row.decaissements_production_ht,
        ))

    logger.debug(
        "Budget vs actual %s: revenue gap %s over %d months",
        result.year, a_ca - b_ca, months,
    )
    return result


# =============================================================================
# END OF BUDGET VS ACTUAL MODULE
# =============================================================================
