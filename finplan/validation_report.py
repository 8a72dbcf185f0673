# =============================================================================
# FINPLAN ENGINE - VALIDATION REPORT GENERATOR
# =============================================================================
# Checks projection invariants and formats a text report.
# =============================================================================

from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Sequence

from .cashflow import MonthlyProjectionRow, ProjectionOutput
from .money import ZERO
from .stress import StressScenario
from .vat import FiscalRegime, is_franchise


@dataclass
class CheckResult:
    """Result of a single check."""
    name: str
    passed: bool
    message: str = ""


@dataclass
class ValidationReport:
    """Complete validation report."""
    timestamp: str = ""
    plan_id: str = ""

    # Check results by engine
    engine_checks: Dict[str, List[CheckResult]] = field(default_factory=dict)
    stress_checks: List[CheckResult] = field(default_factory=list)

    # Summary
    total_passed: int = 0
    total_failed: int = 0
    overall_passed: bool = False

    # Errors and warnings
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def check_reconciliation(rows: Sequence[MonthlyProjectionRow], name: str = "reconciliation") -> CheckResult:
    """Treasury result == economic result + net VAT flow, exactly, every month."""
    for row in rows:
        if row.treasury_result != row.economic_result + row.net_vat_flow:
            return CheckResult(
                name, False,
                f"Treasury != Economic + Net VAT flow at {row.month}"
            )
    return CheckResult(name, True)


def check_cumulative(rows: Sequence[MonthlyProjectionRow], initial_cash=ZERO) -> CheckResult:
    previous = initial_cash
    for row in rows:
        if row.cumul != previous + row.variation_tresorerie:
            return CheckResult("cumulative_chain", False, f"Cumul break at {row.month}")
        previous = row.cumul
    return CheckResult("cumulative_chain", True)


def check_vat_netting(rows: Sequence[MonthlyProjectionRow]) -> CheckResult:
    for row in rows:
        if row.tva_nette != row.tva_collectee - row.tva_deductible:
            return CheckResult("vat_netting", False, f"TVA nette mismatch at {row.month}")
    return CheckResult("vat_netting", True)


def check_franchise(rows: Sequence[MonthlyProjectionRow]) -> CheckResult:
    """Every VAT field is exactly zero."""
    for row in rows:
        vat_fields = (
            row.tva_collectee, row.tva_deductible, row.tva_nette,
            row.tva_reglement, row.net_vat_flow,
        )
        if any(value != ZERO for value in vat_fields):
            return CheckResult("franchise_zero_vat", False, f"Non-zero VAT under franchise at {row.month}")
    return CheckResult("franchise_zero_vat", True)


def validate_projection(output: ProjectionOutput, regime: Optional[FiscalRegime] = None) -> List[CheckResult]:
    """Validate cash flow projector output."""
    results = []

    if output.errors:
        results.append(CheckResult(
            "no_errors", False,
            f"Projection has errors: {output.errors}"
        ))
        return results
    results.append(CheckResult("no_errors", True))

    all_positive = all(row.encaissements_ht >= ZERO for row in output.rows)
    results.append(CheckResult(
        "non_negative_receipts", all_positive,
        "" if all_positive else "Found negative receipts"
    ))

    results.append(check_reconciliation(output.rows))
    results.append(check_cumulative(output.rows, output.initial_cash))
    results.append(check_vat_netting(output.rows))
    if regime is not None and is_franchise(regime):
        results.append(check_franchise(output.rows))

    return results


def generate_validation_report(
    plan_id: str,
    projection: ProjectionOutput,
    regime: Optional[FiscalRegime] = None,
    stress_scenarios: Sequence[StressScenario] = (),
) -> ValidationReport:
    """
    Generate validation report for a plan.

    Args:
        plan_id: Plan identifier
        projection: Cash flow projector output
        regime: Fiscal regime of the plan (enables the franchise check)
        stress_scenarios: Stress runs over the same projection

    Returns:
        ValidationReport with all check results
    """
    report = ValidationReport(
        timestamp=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
        plan_id=plan_id,
        errors=list(projection.errors),
        warnings=list(projection.warnings),
    )

    report.engine_checks["Cash Flow Projector"] = validate_projection(projection, regime)

    for scenario in stress_scenarios:
        report.stress_checks.append(
            check_reconciliation(scenario.rows, f"reconciliation[{scenario.name}]")
        )

    all_checks = []
    for checks in report.engine_checks.values():
        all_checks.extend(checks)
    all_checks.extend(report.stress_checks)

    report.total_passed = sum(1 for c in all_checks if c.passed)
    report.total_failed = sum(1 for c in all_checks if not c.passed)
    report.overall_passed = report.total_failed == 0

    return report


def format_report(report: ValidationReport) -> str:
    """Format validation report as text."""
    lines = [
        "=" * 60,
        "VALIDATION REPORT",
        "=" * 60,
        f"Date: {report.timestamp}",
        f"Plan: {report.plan_id}",
        "",
        "ENGINE CHECKS",
        "-" * 40
    ]

    for engine, checks in report.engine_checks.items():
        passed = sum(1 for c in checks if c.passed)
        total = len(checks)
        status = "PASSED" if passed == total else "FAILED"
        lines.append(f"{engine}: {passed}/{total} {status}")
        for check in checks:
            if not check.passed:
                lines.append(f"  - {check.name}: {check.message}")

    if report.stress_checks:
        lines.extend([
            "",
            "STRESS SCENARIOS",
            "-" * 40
        ])
        for check in report.stress_checks:
            status = "PASSED" if check.passed else "FAILED"
            lines.append(f"{check.name}: {status}")

    if report.warnings:
        lines.extend(["", f"WARNINGS ({len(report.warnings)})", "-" * 40])
        lines.extend(f"  - {w}" for w in report.warnings)

    lines.extend([
        "",
        "=" * 60,
        f"OVERALL: {'PASSED' if report.overall_passed else 'FAILED'}",
        f"Total: {report.total_passed} passed, {report.total_failed} failed",
        "=" * 60
    ])

    return "\n".join(lines)


# =============================================================================
# END OF VALIDATION REPORT GENERATOR
# =============================================================================
