# =============================================================================
# FINPLAN ENGINE - MAIN ENTRY POINT
# =============================================================================
# Command-line interface for running the planning engines.
#
# Usage:
#   python main.py project --plan base
#   python main.py stress --plan base --all
#   python main.py breakeven --plan base
#   python main.py refresh-subrecipes --plan base
#   python main.py validate --plan base
#   python main.py compare --plan base --actual actual
#   python main.py financial --plan base --revenue-variation -10
# =============================================================================

import argparse
import logging
from decimal import Decimal
from pathlib import Path

from finplan.cost_resolver import refresh_sub_recipe_costs
from finplan.financial_plan import PlanStressParameters
from finplan.plan import (
    run_budget_vs_actual, run_plan, run_plan_breakeven, run_plan_financial_stress,
    run_plan_financials, run_plan_stress,
)
from finplan.stress import PREDEFINED_SCENARIOS, save_scenario_snapshot
from finplan.validation_report import format_report, generate_validation_report
from reporting.frames import (
    breakeven_frame, budget_vs_actual_frames, financial_plan_frame, plan_stress_frame,
    projection_to_frame, stress_comparison_frame,
)


def _print_issues(result) -> None:
    if result.errors:
        print("\nERRORS:")
        for error in result.errors:
            print(f"  - {error}")
    if result.warnings:
        print("\nWARNINGS:")
        for warning in result.warnings:
            print(f"  - {warning}")


def run_projection(plan_id: str, assumptions_dir: Path, csv_path: Path = None):
    """Run the projection of one plan and print the monthly table."""
    print(f"\nProjecting plan: {plan_id}")
    print("-" * 40)

    result = run_plan(plan_id, assumptions_dir)
    _print_issues(result)
    if result.projection is None or result.errors:
        return result

    print(f"\n{result.year} / {result.mode.value}")
    print(f"{'Month':8} {'Receipts TTC':>14} {'Production TTC':>15} {'Expenses TTC':>13} "
          f"{'VAT paid':>10} {'Variation':>12} {'Cumul':>12}")
    for row in result.projection.rows:
        print(f"{row.month:8} {row.encaissements_ttc:>14,.2f} {row.decaissements_production_ttc:>15,.2f} "
              f"{row.frais_ttc:>13,.2f} {row.tva_reglement:>10,.2f} "
              f"{row.variation_tresorerie:>12,.2f} {row.cumul:>12,.2f}")

    summary = result.summary
    print("\nKEY METRICS:")
    print(f"  Revenue HT:        EUR {summary.total_ca_ht:,.0f}")
    print(f"  VAT collected:     EUR {summary.total_tva_collectee:,.0f}")
    print(f"  VAT deductible:    EUR {summary.total_tva_deductible:,.0f}")
    print(f"  Final balance:     EUR {summary.solde_final:,.0f}")
    if summary.has_negative:
        print(f"  First negative:    {summary.first_negative_month}")

    if csv_path is not None:
        projection_to_frame(result.projection).to_csv(csv_path, index=False)
        print(f"\nWrote monthly projection to: {csv_path}")

    return result


def run_stress_tests(plan_id: str, assumptions_dir: Path, scenario: str = None, save_dir: Path = None):
    """Run one or all predefined stress scenarios against a plan."""
    result = run_plan(plan_id, assumptions_dir)
    _print_issues(result)
    if result.errors:
        return []

    if scenario:
        if scenario not in PREDEFINED_SCENARIOS:
            print(f"Unknown scenario: {scenario}")
            print("Available: " + ", ".join(PREDEFINED_SCENARIOS))
            return []
        scenarios = {scenario: PREDEFINED_SCENARIOS[scenario]}
    else:
        scenarios = PREDEFINED_SCENARIOS

    print("\n" + "=" * 60)
    print("STRESS SCENARIOS")
    print("=" * 60)

    runs = run_plan_stress(result, scenarios)
    frame = stress_comparison_frame(runs)
    print(frame[[
        "scenario", "besoin_tresorerie_max", "mois_tension_critique",
        "delai_recuperation", "risk_level",
    ]].to_string(index=False))

    if save_dir is not None:
        for run in runs:
            slug = "".join(c if c.isalnum() else "_" for c in run.name).strip("_").lower()
            save_scenario_snapshot(run, save_dir / f"{slug}.yaml")
        print(f"\nSaved {len(runs)} scenario snapshots to: {save_dir}")

    return runs


def run_breakeven(plan_id: str, assumptions_dir: Path, fixed_costs: str = None):
    """Breakeven of every product and channel."""
    result = run_plan(plan_id, assumptions_dir)
    _print_issues(result)
    if result.errors:
        return None

    total = Decimal(fixed_costs) if fixed_costs is not None else None
    results, summary = run_plan_breakeven(result, total)

    print("\n" + "=" * 60)
    print("BREAKEVEN")
    print("=" * 60)
    print(breakeven_frame(results)[[
        "product", "channel", "price_ht", "unit_variable_cost",
        "breakeven_units", "current_volume", "margin_of_safety_pct",
    ]].to_string(index=False))
    print(f"\nGlobal breakeven units (direct): {summary.global_breakeven_units}")
    print(f"Profitable products: {summary.profitable_products}, "
          f"below breakeven: {summary.products_below_breakeven}")
    return results, summary


def run_refresh(plan_id: str, assumptions_dir: Path):
    """Recompute cached sub-recipe ingredient costs bottom-up."""
    result = run_plan(plan_id, assumptions_dir)
    if result.catalog is None:
        _print_issues(result)
        return None

    refresh = refresh_sub_recipe_costs(result.catalog)
    print("\nSUB-RECIPE COSTS:")
    for component_id, cost in refresh.updated.items():
        old = result.catalog.get_component(component_id).unit_cost
        print(f"  {component_id:20} {old:>10.4f} -> {cost:>10.4f}")
    for warning in refresh.warnings:
        print(f"  ! {warning}")
    return refresh


def run_comparison(budget_id: str, actual_id: str, assumptions_dir: Path):
    """Budget vs actual gaps: headline indicators, then products by largest gap."""
    budget = run_plan(budget_id, assumptions_dir)
    actual = run_plan(actual_id, assumptions_dir)
    for result in (budget, actual):
        _print_issues(result)
    if budget.errors or actual.errors:
        return None

    comparison = run_budget_vs_actual(budget, actual)
    frames = budget_vs_actual_frames(comparison)

    print("\n" + "=" * 60)
    print(f"BUDGET VS ACTUAL {comparison.year}")
    print("=" * 60)
    print(frames["indicators"][["label", "budget", "actual", "ecart", "ecart_pct"]].to_string(index=False))
    print("\nBY PRODUCT:")
    print(frames["products"][[
        "label", "budget_quantity", "actual_quantity", "ecart_ca_ht", "ecart_pct",
    ]].to_string(index=False))
    for warning in comparison.warnings:
        print(f"  ! {warning}")
    return comparison


def run_financials(plan_id: str, assumptions_dir: Path, parameters: PlanStressParameters = None):
    """Annual P&L, revenue targets and an optional P&L stress test."""
    result = run_plan(plan_id, assumptions_dir)
    _print_issues(result)
    if result.errors:
        return None

    data, scenarios = run_plan_financials(result)
    print("\n" + "=" * 60)
    print("FINANCIAL PLAN")
    print("=" * 60)
    print(financial_plan_frame([data] + scenarios)[[
        "label", "ca_total", "independent_result", "total_tax", "net_profit", "monthly_pay",
    ]].to_string(index=False))

    if parameters is not None:
        stress = run_plan_financial_stress(result, parameters)
        print("\nP&L STRESS TEST:")
        print(plan_stress_frame(stress).to_string(index=False))
        if stress.is_result_negative:
            print("  ! Net profit is negative under stress")
        if stress.is_cash_at_risk:
            print("  ! Cash at risk: result before tax is negative")
        return data, scenarios, stress
    return data, scenarios, None


def run_validation(plan_id: str, assumptions_dir: Path):
    """Run invariant checks and print the report."""
    print("\n" + "=" * 60)
    print("RUNNING VALIDATION")
    print("=" * 60)

    result = run_plan(plan_id, assumptions_dir)
    if result.projection is None:
        _print_issues(result)
        return None

    stress_runs = run_plan_stress(result) if not result.errors else []
    report = generate_validation_report(
        plan_id=plan_id,
        projection=result.projection,
        regime=result.settings.regime,
        stress_scenarios=stress_runs,
    )
    print(format_report(report))
    return report


def main():
    parser = argparse.ArgumentParser(description="Financial Planning Engine")
    parser.add_argument("--log-level", default="WARNING",
                        help="Logging level (DEBUG, INFO, WARNING, ...)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def add_plan_args(sub):
        sub.add_argument("--plan", "-p", default="base", help="Plan ID")
        sub.add_argument("--dir", "-d", default="assumptions",
                         help="Assumptions directory")

    proj_parser = subparsers.add_parser("project", help="Run the monthly projection")
    add_plan_args(proj_parser)
    proj_parser.add_argument("--csv", help="Write the monthly rows to a CSV file")

    stress_parser = subparsers.add_parser("stress", help="Run stress scenarios")
    add_plan_args(stress_parser)
    stress_parser.add_argument("--scenario", "-s", help="Predefined scenario name")
    stress_parser.add_argument("--all", "-a", action="store_true", help="Run all scenarios")
    stress_parser.add_argument("--save-dir", help="Directory for YAML scenario snapshots")

    be_parser = subparsers.add_parser("breakeven", help="Breakeven per product and channel")
    add_plan_args(be_parser)
    be_parser.add_argument("--fixed-costs", help="Total fixed costs (default: plan expenses)")

    refresh_parser = subparsers.add_parser(
        "refresh-subrecipes",
        help="Recompute sub-recipe ingredient costs from leaf costs"
    )
    add_plan_args(refresh_parser)

    val_parser = subparsers.add_parser("validate", help="Run validation")
    add_plan_args(val_parser)

    cmp_parser = subparsers.add_parser("compare", help="Budget vs actual comparison")
    add_plan_args(cmp_parser)
    cmp_parser.add_argument("--actual", default="actual", help="Actual plan ID")

    fin_parser = subparsers.add_parser("financial", help="Annual P&L and take-home pay")
    add_plan_args(fin_parser)
    fin_parser.add_argument("--revenue-variation", help="Revenue variation in percent")
    fin_parser.add_argument("--coefficient-variation", help="Coefficient variation in percent")
    fin_parser.add_argument("--expense-variation", help="Expense variation in percent")

    args = parser.parse_args()

    logging.basicConfig(
        level=getattr(logging, str(args.log_level).upper(), logging.WARNING),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    assumptions_dir = Path(args.dir if hasattr(args, "dir") else "assumptions")

    if args.command == "project":
        run_projection(args.plan, assumptions_dir, Path(args.csv) if args.csv else None)
    elif args.command == "stress":
        save_dir = Path(args.save_dir) if args.save_dir else None
        run_stress_tests(args.plan, assumptions_dir, None if args.all else args.scenario, save_dir)
    elif args.command == "breakeven":
        run_breakeven(args.plan, assumptions_dir, args.fixed_costs)
    elif args.command == "refresh-subrecipes":
        run_refresh(args.plan, assumptions_dir)
    elif args.command == "validate":
        run_validation(args.plan, assumptions_dir)
    elif args.command == "compare":
        run_comparison(args.plan, args.actual, assumptions_dir)
    elif args.command == "financial":
        variations = (args.revenue_variation, args.coefficient_variation, args.expense_variation)
        parameters = None
        if any(v is not None for v in variations):
            parameters = PlanStressParameters(*(Decimal(v or 0) for v in variations))
        run_financials(args.plan, assumptions_dir, parameters)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
