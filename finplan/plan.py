# =============================================================================
# FINPLAN ENGINE - PLAN ORCHESTRATOR
# =============================================================================
# Runs the pipeline for one plan snapshot.
#
# KEY PRINCIPLES:
# - A plan is a pure function of its assumption snapshot
# - Stress scenarios change INPUT FLOWS only, never formulas
# - Deterministic: same snapshot -> same rows
# =============================================================================

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from .assumptions import load_plan_assumptions, validate_assumptions
from .budget_vs_actual import BudgetVsActual, compare_budget_actual
from .breakeven import BreakevenResult, BreakevenSummary, breakeven_summary, catalog_breakeven
from .cashflow import ProjectionOutput, ProjectionSummary, project_cash_flow, summarize_projection
from .catalog import Catalog, load_catalog
from .enums import PlanningMode, parse_mode
from .expenses import ProfessionalExpense, load_expenses
from .financial_plan import (
    FinancialPlanData, FiscalParameters, PlanStressParameters, PlanStressResult,
    financial_plan_from_projection, load_fiscal_parameters, run_plan_stress_test, simulate_targets,
)
from .money import ZERO, dsum
from .sales import SalesSnapshot, load_sales
from .settings import PlanSettings, load_settings
from .stress import (
    PREDEFINED_SCENARIOS, StressParameters, StressScenario, compare_stress_scenarios,
)

logger = logging.getLogger(__name__)


@dataclass
class PlanResult:
    """Complete results for one plan snapshot."""
    plan_id: str
    description: str = ""
    year: int = 0
    mode: PlanningMode = PlanningMode.BUDGET

    # Input snapshots
    catalog: Optional[Catalog] = None
    sales: Optional[SalesSnapshot] = None
    settings: Optional[PlanSettings] = None
    expenses: Tuple[ProfessionalExpense, ...] = ()
    fiscal: Optional[FiscalParameters] = None

    # Engine outputs
    projection: Optional[ProjectionOutput] = None
    summary: Optional[ProjectionSummary] = None

    # Validation
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def build_plan(plan_id: str, assumptions: Dict) -> PlanResult:
    """
    Execute the pipeline over an assumptions dictionary.

    Execution order:
    1. Validate assumptions (boundary errors stop the run)
    2. Load catalog, sales, settings and expenses snapshots
    3. Cash Flow Projector
    4. Projection summary
    """
    result = PlanResult(plan_id=plan_id, description=assumptions.get("description", ""))

    validation_errors = validate_assumptions(assumptions)
    if validation_errors:
        result.errors.extend(validation_errors)
        return result

    plan = assumptions["plan"]
    result.year = int(plan["year"])
    result.mode = parse_mode(plan.get("mode", "budget"))
    result.catalog = load_catalog(assumptions)
    result.sales = load_sales(assumptions)
    result.settings = load_settings(assumptions)
    result.expenses = load_expenses(assumptions)
    result.fiscal = load_fiscal_parameters(assumptions)

    result.projection = project_cash_flow(
        result.catalog, result.sales, result.settings, result.expenses,
        result.year, result.mode,
    )
    result.errors.extend(result.projection.errors)
    result.warnings.extend(result.projection.warnings)
    if not result.errors:
        result.summary = summarize_projection(result.projection)

    logger.debug("Plan %s: %d warnings, %d errors", plan_id, len(result.warnings), len(result.errors))
    return result


def run_plan(plan_id: str, assumptions_dir: Path) -> PlanResult:
    """Load the plan's assumptions from disk and run the pipeline."""
    return build_plan(plan_id, load_plan_assumptions(plan_id, assumptions_dir))


def run_plan_stress(
    result: PlanResult,
    scenarios: Optional[Mapping[str, StressParameters]] = None,
) -> List[StressScenario]:
    """Stress the plan projection; defaults to every predefined scenario."""
    if result.projection is None:
        raise ValueError(f"Plan {result.plan_id} has no projection: {result.errors}")
    return compare_stress_scenarios(result.projection, scenarios or PREDEFINED_SCENARIOS)


def annual_volumes(projection: ProjectionOutput) -> Dict[str, Decimal]:
    """Units sold per product over the projected months, all channels."""
    horizon = len(projection.rows)
    volumes: Dict[str, Decimal] = {}
    for (product_id, _), quantities in projection.quantities.items():
        volumes[product_id] = volumes.get(product_id, ZERO) + dsum(quantities[:horizon])
    return volumes


def run_plan_breakeven(
    result: PlanResult,
    total_fixed_costs: Optional[Decimal] = None,
) -> Tuple[List[BreakevenResult], BreakevenSummary]:
    """
    Breakeven of every product against the plan's annual volumes.

    Fixed costs default to the professional expenses (HT) of the projection.
    """
    if result.projection is None:
        raise ValueError(f"Plan {result.plan_id} has no projection: {result.errors}")
    if total_fixed_costs is None:
        total_fixed_costs = dsum(row.frais_ht for row in result.projection.rows)
    results = catalog_breakeven(
        result.catalog,
        total_fixed_costs,
        annual_volumes(result.projection),
        result.settings.regime,
        result.warnings,
    )
    return results, breakeven_summary(results)


def _require_projection(result: PlanResult) -> ProjectionOutput:
    if result.projection is None or result.errors:
        raise ValueError(f"Plan {result.plan_id} has no projection: {result.errors}")
    return result.projection


def run_plan_financials(result: PlanResult) -> Tuple[FinancialPlanData, List[FinancialPlanData]]:
    """Annual P&L of the plan and its breakeven, viability and ideal revenue scenarios."""
    data = financial_plan_from_projection(_require_projection(result), result.fiscal)
    return data, simulate_targets(data, result.fiscal)


def run_plan_financial_stress(result: PlanResult, parameters: PlanStressParameters) -> PlanStressResult:
    data = financial_plan_from_projection(_require_projection(result), result.fiscal)
    return run_plan_stress_test(data, parameters, result.fiscal)


def run_budget_vs_actual(budget: PlanResult, actual: PlanResult) -> BudgetVsActual:
    """
    Compare two plans of the same year, one run in BUDGET and one in ACTUAL mode.

    Product names and categories come from the budget catalog.
    """
    if budget.mode != PlanningMode.BUDGET or actual.mode != PlanningMode.ACTUAL:
        raise ValueError(
            f"Expected a budget and an actual plan, got {budget.mode.value} and {actual.mode.value}"
        )
    return compare_budget_actual(
        _require_projection(budget), _require_projection(actual), budget.catalog
    )


# =============================================================================
# END OF PLAN ORCHESTRATOR
# =============================================================================
