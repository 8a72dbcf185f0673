# =============================================================================
# FINPLAN ENGINE - PROFESSIONAL EXPENSES
# =============================================================================
# Dated fixed/professional expenses (rent, insurance, fees, ...).
#
# An expense is recognized and paid in the month it is dated, independent
# of the sales timeline.
# =============================================================================

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .dates import parse_month
from .enums import PlanningMode, parse_mode
from .money import ZERO, to_decimal


@dataclass(frozen=True)
class ProfessionalExpense:
    month: str  # YYYY-MM
    category: str
    amount_ht: Decimal
    vat_rate: Optional[Decimal] = None  # None -> default purchase rate
    mode: Optional[PlanningMode] = None  # None -> applies to both modes
    label: str = ""


def load_expenses(assumptions: Dict) -> Tuple[ProfessionalExpense, ...]:
    """
    Load professional expenses from assumptions.

    Expected structure in assumptions:
        expenses:
          - {month: "YYYY-MM", category: str, amount_ht: number,
             vat_rate: number | null, mode: budget|actual|null, label: str}
    """
    result: List[ProfessionalExpense] = []
    for data in assumptions.get("expenses", []) or []:
        mode = data.get("mode")
        vat_rate = data.get("vat_rate")
        result.append(ProfessionalExpense(
            month=str(data.get("month", "")),
            category=data.get("category", "other"),
            amount_ht=to_decimal(data.get("amount_ht", 0)),
            vat_rate=None if vat_rate is None else to_decimal(vat_rate),
            mode=None if mode is None else parse_mode(mode),
            label=data.get("label", ""),
        ))
    return tuple(result)


def month_offset(expense: ProfessionalExpense, year: int) -> int:
    """Index of the expense month relative to January of `year`."""
    exp_year, exp_month = parse_month(expense.month)
    return (exp_year - year) * 12 + (exp_month - 1)


def expenses_by_month(
    expenses: Tuple[ProfessionalExpense, ...],
    year: int,
    mode: PlanningMode,
    horizon_months: int,
) -> List[List[ProfessionalExpense]]:
    """Bucket expenses into horizon months; other modes and out-of-range months are skipped."""
    buckets: List[List[ProfessionalExpense]] = [[] for _ in range(horizon_months)]
    for expense in expenses:
        if expense.mode is not None and expense.mode != mode:
            continue
        offset = month_offset(expense, year)
        if 0 <= offset < horizon_months:
            buckets[offset].append(expense)
    return buckets


def validate_expenses(expenses: Tuple[ProfessionalExpense, ...]) -> List[str]:
    """Validate month format, amounts and VAT rates."""
    errors: List[str] = []
    for expense in expenses:
        try:
            parse_month(expense.month)
        except ValueError as exc:
            errors.append(str(exc))
        if expense.amount_ht < ZERO:
            errors.append(
                f"Negative expense amount for {expense.category} {expense.month}: {expense.amount_ht}"
            )
        if expense.vat_rate is not None and not ZERO <= expense.vat_rate <= 100:
            errors.append(
                f"vat_rate out of range for expense {expense.category} {expense.month}: {expense.vat_rate}"
            )
    return errors


# =============================================================================
# END OF PROFESSIONAL EXPENSES
# =============================================================================
