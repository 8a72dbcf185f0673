# =============================================================================
# FINPLAN ENGINE - VAT NETTING MODULE
# =============================================================================
# Aggregates VAT collected on sales and VAT deductible on purchases.
#
# FORMULA:
# VAT[line]      = Amount_HT * Rate / 100
# VAT_Collected  = SUM(VAT[sales lines])
# VAT_Deductible = SUM(VAT[purchase lines])
# VAT_Net        = VAT_Collected - VAT_Deductible
#
# FRANCHISE: a single regime check zeroes every VAT flow; lines are never
# inspected one by one for exemption.
# =============================================================================

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Iterable, Optional, Tuple, Union

from .money import HUNDRED, ONE, ZERO, pct_of

MONTHLY = "monthly"
QUARTERLY = "quarterly"
PERIODICITIES = (MONTHLY, QUARTERLY)


@dataclass(frozen=True)
class StandardRegime:
    """VAT-registered business: VAT is charged on sales and reclaimed on purchases."""
    standard_rate: Decimal = Decimal("20")
    reduced_rates: Tuple[Decimal, ...] = (Decimal("10"), Decimal("5.5"))
    default_sale_rate: Decimal = Decimal("5.5")
    default_purchase_rate: Decimal = Decimal("20")
    periodicity: str = MONTHLY  # informational


@dataclass(frozen=True)
class FranchiseRegime:
    """VAT-exempt small business: no VAT charged, none reclaimed."""
    periodicity: str = MONTHLY  # informational


FiscalRegime = Union[StandardRegime, FranchiseRegime]


@dataclass(frozen=True)
class VatLine:
    """One taxable amount entering the netting."""
    amount_ht: Decimal
    rate: Decimal
    category: str = ""


@dataclass
class VatSummary:
    """Netting result for one period."""
    collected: Decimal = ZERO
    deductible: Decimal = ZERO
    collected_by_category: Dict[str, Decimal] = field(default_factory=dict)
    deductible_by_category: Dict[str, Decimal] = field(default_factory=dict)

    @property
    def net(self) -> Decimal:
        return self.collected - self.deductible


def is_franchise(regime: FiscalRegime) -> bool:
    if isinstance(regime, FranchiseRegime):
        return True
    elif isinstance(regime, StandardRegime):
        return False
    else:
        raise TypeError(f"Unknown fiscal regime: {regime!r}")


def sale_rate_for(rate: Optional[Decimal], regime: FiscalRegime) -> Decimal:
    """Sale VAT rate of a product, defaulting from the regime."""
    if isinstance(regime, FranchiseRegime):
        return ZERO
    elif isinstance(regime, StandardRegime):
        return regime.default_sale_rate if rate is None else rate
    else:
        raise TypeError(f"Unknown fiscal regime: {regime!r}")


def purchase_rate_for(rate: Optional[Decimal], regime: FiscalRegime) -> Decimal:
    """Purchase VAT rate of a cost component or expense, defaulting from the regime."""
    if isinstance(regime, FranchiseRegime):
        return ZERO
    elif isinstance(regime, StandardRegime):
        return regime.default_purchase_rate if rate is None else rate
    else:
        raise TypeError(f"Unknown fiscal regime: {regime!r}")


def _sum_lines(lines: Iterable[VatLine]) -> Tuple[Decimal, Dict[str, Decimal]]:
    total = ZERO
    by_category: Dict[str, Decimal] = {}
    for line in lines:
        amount = pct_of(line.amount_ht, line.rate)
        total += amount
        by_category[line.category] = by_category.get(line.category, ZERO) + amount
    return total, by_category


def net_vat(
    collected_lines: Iterable[VatLine],
    deductible_lines: Iterable[VatLine],
    regime: FiscalRegime,
) -> VatSummary:
    """
    Net VAT collected against VAT deductible for one period.

    Args:
        collected_lines: Sales amounts with their rates
        deductible_lines: Purchase/expense amounts with their rates
        regime: Fiscal regime; franchise short-circuits every line to zero

    Returns:
        VatSummary with per-side totals and per-category detail
    """
    collected_lines = list(collected_lines)
    deductible_lines = list(deductible_lines)

    if isinstance(regime, FranchiseRegime):
        return VatSummary(
            collected_by_category={line.category: ZERO for line in collected_lines},
            deductible_by_category={line.category: ZERO for line in deductible_lines},
        )
    elif isinstance(regime, StandardRegime):
        collected, collected_by_category = _sum_lines(collected_lines)
        deductible, deductible_by_category = _sum_lines(deductible_lines)
        return VatSummary(
            collected=collected,
            deductible=deductible,
            collected_by_category=collected_by_category,
            deductible_by_category=deductible_by_category,
        )
    else:
        raise TypeError(f"Unknown fiscal regime: {regime!r}")


def calculate_vat(amount_ht: Decimal, rate: Decimal) -> Decimal:
    return pct_of(amount_ht, rate)


def calculate_ttc(amount_ht: Decimal, rate: Decimal) -> Decimal:
    return amount_ht * (ONE + rate / HUNDRED)


def calculate_ht(amount_ttc: Decimal, rate: Decimal) -> Decimal:
    return amount_ttc / (ONE + rate / HUNDRED)


# =============================================================================
# END OF VAT NETTING MODULE
# =============================================================================
