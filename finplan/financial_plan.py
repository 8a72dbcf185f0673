# =============================================================================
# FINPLAN ENGINE - FINANCIAL PLAN MODULE
# =============================================================================
# Annual profit and loss of a self-employed activity, down to take-home pay.
#
# FORMULA:
# Gross_Profit        = Revenue - Purchases
# Independent_Result  = Gross_Profit - Professional_Expenses
# Social_Contrib      = max(0, Independent_Result) * Social_Rate
# Net_Before_Tax      = Independent_Result - Social_Contrib
# Taxable_Base        = max(0, Net_Before_Tax - Exempt_Amount)
# Tax                 = Brackets(Taxable_Base) * (1 + Communal_Rate)
# Net_Profit          = Net_Before_Tax - Tax
# Monthly_Pay         = max(0, Net_Profit) / 12
#
# Coefficient = Revenue / Purchases (markup on goods sold).
# =============================================================================

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .cashflow import ProjectionOutput
from .money import HUNDRED, ONE, ZERO, dsum, round_half_up, to_decimal
from .stress import StressParameterError

logger = logging.getLogger(__name__)

MONTHS_PER_YEAR = Decimal(12)
DEFAULT_COEFFICIENT = Decimal("2.5")
BREAKEVEN_CEILING = Decimal(10_000_000)
BREAKEVEN_ITERATIONS = 100
BREAKEVEN_TOLERANCE = ONE

REVENUE_VARIATION_RANGE = (Decimal(-50), Decimal(50))
COEFFICIENT_VARIATION_RANGE = (Decimal(-30), Decimal(30))
EXPENSE_VARIATION_RANGE = (Decimal(-30), Decimal(50))


@dataclass(frozen=True)
class TaxBracket:
    """Slice of taxable income [lower, upper) taxed at rate_pct; upper None is open."""
    lower: Decimal
    upper: Optional[Decimal]
    rate_pct: Decimal


# Belgian personal income tax brackets, 2026
DEFAULT_TAX_BRACKETS: Tuple[TaxBracket, ...] = (
    TaxBracket(Decimal(0), Decimal(15820), Decimal(25)),
    TaxBracket(Decimal(15820), Decimal(27920), Decimal(40)),
    TaxBracket(Decimal(27920), Decimal(48320), Decimal(45)),
    TaxBracket(Decimal(48320), None, Decimal(50)),
)


@dataclass(frozen=True)
class FiscalParameters:
    social_contribution_rate_pct: Decimal = Decimal("20.5")
    communal_rate_pct: Decimal = Decimal("7.0")
    dependent_children: int = 0
    exempt_base: Decimal = Decimal(10570)
    exempt_per_child: Decimal = Decimal(1850)
    tax_brackets: Tuple[TaxBracket, ...] = DEFAULT_TAX_BRACKETS
    viability_revenue: Decimal = ZERO  # revenue target; 0 disables
    ideal_revenue: Decimal = ZERO

    @property
    def exempt_amount(self) -> Decimal:
        return self.exempt_base + self.exempt_per_child * self.dependent_children


@dataclass(frozen=True)
class FinancialPlanData:
    """Annual P&L of one plan, from revenue to monthly pay."""
    ca_total: Decimal
    purchases: Decimal
    expenses_total: Decimal
    expenses_by_category: Mapping[str, Decimal]
    coefficient: Decimal
    gross_profit: Decimal
    independent_result: Decimal
    social_contributions: Decimal
    net_before_tax: Decimal
    exempt_amount: Decimal
    taxable_base: Decimal
    base_tax: Decimal
    communal_tax: Decimal
    total_tax: Decimal
    net_profit: Decimal
    annual_pay: Decimal
    monthly_pay: Decimal
    label: str = ""

    def __post_init__(self):
        object.__setattr__(self, "expenses_by_category", MappingProxyType(dict(self.expenses_by_category)))


@dataclass(frozen=True)
class PlanStressParameters:
    """Variations in percent applied to revenue, coefficient and expenses."""
    revenue_variation_pct: Decimal = ZERO
    coefficient_variation_pct: Decimal = ZERO
    expense_variation_pct: Decimal = ZERO


@dataclass(frozen=True)
class IndicatorComparison:
    key: str
    label: str
    current: Decimal
    stressed: Decimal

    @property
    def ecart(self) -> Decimal:
        return self.stressed - self.current

    @property
    def ecart_pct(self) -> Decimal:
        """Gap relative to |current|; zero when current is zero."""
        if self.current == ZERO:
            return ZERO
        return self.ecart / abs(self.current) * HUNDRED


@dataclass
class PlanStressResult:
    parameters: PlanStressParameters
    base: FinancialPlanData
    stressed: FinancialPlanData
    results: List[IndicatorComparison] = field(default_factory=list)

    @property
    def is_result_negative(self) -> bool:
        return self.stressed.net_profit < ZERO

    @property
    def is_cash_at_risk(self) -> bool:
        return self.stressed.independent_result < ZERO or self.stressed.net_before_tax < ZERO


STRESS_INDICATORS = [
    ("ca_total", "Revenue"),
    ("purchases", "Purchases"),
    ("expenses_total", "Professional expenses"),
    ("independent_result", "Independent result"),
    ("total_tax", "Taxes"),
    ("net_profit", "Net profit"),
    ("annual_pay", "Annual pay"),
    ("monthly_pay", "Monthly pay"),
]


def calculate_tax_from_brackets(taxable_base: Decimal, brackets: Sequence[TaxBracket]) -> Decimal:
    """
    Progressive tax: each bracket taxes the slice of income that falls in it.

    Brackets are applied in ascending order of their lower bound.
    """
    if taxable_base <= ZERO:
        return ZERO

    tax = ZERO
    remaining = taxable_base
    for bracket in sorted(brackets, key=lambda b: b.lower):
        if remaining <= ZERO:
            break
        if bracket.upper is None:
            taxable = remaining
        else:
            taxable = min(remaining, bracket.upper - bracket.lower)
        if taxable > ZERO:
            tax += taxable * bracket.rate_pct / HUNDRED
            remaining -= taxable
    return tax


def compute_financial_plan(
    ca_total: Decimal,
    purchases: Decimal,
    expenses_total: Decimal,
    fiscal: FiscalParameters,
    expenses_by_category: Optional[Mapping[str, Decimal]] = None,
    label: str = "",
) -> FinancialPlanData:
    """Run the P&L chain from revenue, purchases and expenses."""
    coefficient = ca_total / purchases if purchases > ZERO else ZERO
    gross_profit = ca_total - purchases
    independent_result = gross_profit - expenses_total

    social = max(ZERO, independent_result * fiscal.social_contribution_rate_pct / HUNDRED)
    net_before_tax = independent_result - social

    exempt = fiscal.exempt_amount
    taxable_base = max(ZERO, net_before_tax - exempt)
    base_tax = calculate_tax_from_brackets(taxable_base, fiscal.tax_brackets)
    communal_tax = base_tax * fiscal.communal_rate_pct / HUNDRED
    total_tax = base_tax + communal_tax

    net_profit = net_before_tax - total_tax
    annual_pay = max(ZERO, net_profit)

    return FinancialPlanData(
        ca_total=ca_total,
        purchases=purchases,
        expenses_total=expenses_total,
        expenses_by_category=expenses_by_category or {},
        coefficient=coefficient,
        gross_profit=gross_profit,
        independent_result=independent_result,
        social_contributions=social,
        net_before_tax=net_before_tax,
        exempt_amount=exempt,
        taxable_base=taxable_base,
        base_tax=base_tax,
        communal_tax=communal_tax,
        total_tax=total_tax,
        net_profit=net_profit,
        annual_pay=annual_pay,
        monthly_pay=annual_pay / MONTHS_PER_YEAR,
        label=label,
    )


def financial_plan_from_projection(
    projection: ProjectionOutput,
    fiscal: FiscalParameters,
) -> FinancialPlanData:
    """
    Annual P&L over the projected months.

    Purchases are the production costs recognized at sale time; expenses
    are the professional expenses, both HT.
    """
    by_category: Dict[str, Decimal] = {}
    for row in projection.rows:
        for category, amount in row.frais_by_category.items():
            by_category[category] = by_category.get(category, ZERO) + amount

    return compute_financial_plan(
        ca_total=dsum(row.ca_ht for row in projection.rows),
        purchases=dsum(row.decaissements_production_ht for row in projection.rows),
        expenses_total=dsum(row.frais_ht for row in projection.rows),
        fiscal=fiscal,
        expenses_by_category=dict(sorted(by_category.items())),
        label=f"{projection.year} {projection.mode.value}",
    )


# =============================================================================
# REVENUE SIMULATION
# =============================================================================

def simulate_revenue(
    ca_total: Decimal,
    coefficient: Decimal,
    expenses_total: Decimal,
    fiscal: FiscalParameters,
    label: str = "",
) -> FinancialPlanData:
    """P&L at a given revenue, purchases derived from the coefficient."""
    purchases = ca_total / coefficient if coefficient > ZERO else ZERO
    return compute_financial_plan(ca_total, purchases, expenses_total, fiscal, label=label)


def find_breakeven_revenue(
    coefficient: Decimal,
    expenses_total: Decimal,
    fiscal: FiscalParameters,
    ceiling: Decimal = BREAKEVEN_CEILING,
) -> Decimal:
    """
    Binary search for the revenue where net profit is zero (within 1).

    Returns the midpoint of the final interval rounded to a whole amount.
    When the activity cannot break even below `ceiling` (coefficient <= 1),
    the search ends at the ceiling.
    """
    low, high = ZERO, ceiling
    for _ in range(BREAKEVEN_ITERATIONS):
        mid = (low + high) / 2
        net = simulate_revenue(mid, coefficient, expenses_total, fiscal).net_profit
        if abs(net) < BREAKEVEN_TOLERANCE:
            break
        if net < ZERO:
            low = mid
        else:
            high = mid
    return round_half_up((low + high) / 2)


def simulate_targets(base: FinancialPlanData, fiscal: FiscalParameters) -> List[FinancialPlanData]:
    """
    Breakeven, viability and ideal revenue scenarios for a base plan.

    The base coefficient is reused; a plan without purchases falls back to
    DEFAULT_COEFFICIENT. Viability and ideal scenarios are listed only when
    their revenue target is positive.
    """
    coefficient = base.coefficient if base.coefficient > ZERO else DEFAULT_COEFFICIENT
    expenses = base.expenses_total

    breakeven = find_breakeven_revenue(coefficient, expenses, fiscal)
    scenarios = [simulate_revenue(breakeven, coefficient, expenses, fiscal, "breakeven")]
    if fiscal.viability_revenue > ZERO:
        scenarios.append(simulate_revenue(fiscal.viability_revenue, coefficient, expenses, fiscal, "viability"))
    if fiscal.ideal_revenue > ZERO:
        scenarios.append(simulate_revenue(fiscal.ideal_revenue, coefficient, expenses, fiscal, "ideal"))
    return scenarios


# =============================================================================
# P&L STRESS TEST
# =============================================================================

def validate_plan_stress_parameters(parameters: PlanStressParameters) -> List[str]:
    errors: List[str] = []
    checks = [
        ("revenue_variation_pct", parameters.revenue_variation_pct, REVENUE_VARIATION_RANGE),
        ("coefficient_variation_pct", parameters.coefficient_variation_pct, COEFFICIENT_VARIATION_RANGE),
        ("expense_variation_pct", parameters.expense_variation_pct, EXPENSE_VARIATION_RANGE),
    ]
    for name, value, (low, high) in checks:
        if not low <= value <= high:
            errors.append(f"{name} must be within [{low}, {high}]: {value}")
    return errors


def run_plan_stress_test(
    base: FinancialPlanData,
    parameters: PlanStressParameters,
    fiscal: FiscalParameters,
) -> PlanStressResult:
    """
    Re-run the P&L chain with varied revenue, coefficient and expenses.

    Raises:
        StressParameterError: a variation is out of range
    """
    errors = validate_plan_stress_parameters(parameters)
    if errors:
        raise StressParameterError("; ".join(errors))

    revenue = base.ca_total * (ONE + parameters.revenue_variation_pct / HUNDRED)
    original_coefficient = (
        base.ca_total / base.purchases if base.purchases > ZERO else DEFAULT_COEFFICIENT
    )
    coefficient = original_coefficient * (ONE + parameters.coefficient_variation_pct / HUNDRED)
    purchases = revenue / coefficient if coefficient > ZERO else ZERO

    expense_factor = ONE + parameters.expense_variation_pct / HUNDRED
    by_category = {
        category: amount * expense_factor
        for category, amount in base.expenses_by_category.items()
    }

    stressed = compute_financial_plan(
        revenue,
        purchases,
        base.expenses_total * expense_factor,
        fiscal,
        expenses_by_category=by_category,
        label="stressed",
    )

    results = [
        IndicatorComparison(key, label, getattr(base, key), getattr(stressed, key))
        for key, label in STRESS_INDICATORS
    ]
    logger.debug("P&L stress %s: net profit %s -> %s", parameters, base.net_profit, stressed.net_profit)
    return PlanStressResult(parameters=parameters, base=base, stressed=stressed, results=results)


# =============================================================================
# LOADING
# =============================================================================

def load_fiscal_parameters(assumptions: Dict) -> FiscalParameters:
    """
    Load fiscal parameters; the section and each key are optional.

    Expected structure in assumptions:
        fiscal:
          social_contribution_rate_pct: number
          communal_rate_pct: number
          dependent_children: int
          exempt_base: number
          exempt_per_child: number
          viability_revenue: number
          ideal_revenue: number
          tax_brackets:
            - {lower: number, upper: number | null, rate_pct: number}
    """
    config = assumptions.get("fiscal") or {}
    defaults = FiscalParameters()

    brackets = config.get("tax_brackets")
    if brackets is None:
        tax_brackets = defaults.tax_brackets
    else:
        tax_brackets = tuple(
            TaxBracket(
                lower=to_decimal(b.get("lower", 0)),
                upper=None if b.get("upper") is None else to_decimal(b["upper"]),
                rate_pct=to_decimal(b.get("rate_pct", 0)),
            )
            for b in brackets
        )

    return FiscalParameters(
        social_contribution_rate_pct=to_decimal(
            config.get("social_contribution_rate_pct"), defaults.social_contribution_rate_pct
        ),
        communal_rate_pct=to_decimal(config.get("communal_rate_pct"), defaults.communal_rate_pct),
        dependent_children=int(config.get("dependent_children", defaults.dependent_children)),
        exempt_base=to_decimal(config.get("exempt_base"), defaults.exempt_base),
        exempt_per_child=to_decimal(config.get("exempt_per_child"), defaults.exempt_per_child),
        tax_brackets=tax_brackets,
        viability_revenue=to_decimal(config.get("viability_revenue"), ZERO),
        ideal_revenue=to_decimal(config.get("ideal_revenue"), ZERO),
    )


def validate_fiscal_parameters(fiscal: FiscalParameters) -> List[str]:
    """
    Validate parameter ranges of the fiscal section.

    Validations:
        - Rates within [0, 100]
        - Amounts and child count are >= 0
        - Brackets have upper > lower, and only the last one is open
    """
    errors: List[str] = []
    for name in ("social_contribution_rate_pct", "communal_rate_pct"):
        value = getattr(fiscal, name)
        if not ZERO <= value <= HUNDRED:
            errors.append(f"fiscal.{name} out of range: {value}")
    for name in ("dependent_children", "exempt_base", "exempt_per_child", "viability_revenue", "ideal_revenue"):
        value = getattr(fiscal, name)
        if value < 0:
            errors.append(f"fiscal.{name} must be >= 0: {value}")

    ordered = sorted(fiscal.tax_brackets, key=lambda b: b.lower)
    for i, bracket in enumerate(ordered):
        if not ZERO <= bracket.rate_pct <= HUNDRED:
            errors.append(f"Tax bracket rate out of range: {bracket.rate_pct}")
        if bracket.upper is None:
            if i != len(ordered) - 1:
                errors.append(f"Open tax bracket from {bracket.lower} must be the last one")
        elif bracket.upper <= bracket.lower:
            errors.append(f"Tax bracket upper bound {bracket.upper} <= lower bound {bracket.lower}")
    return errors


# =============================================================================
# END OF FINANCIAL PLAN MODULE
# =============================================================================
