# =============================================================================
# FINPLAN ENGINE - SALES DISTRIBUTOR
# =============================================================================
# Converts annual sales quantities into 12 monthly quantities.
#
# FORMULA:
# Qty[m] = round_half_up(Annual_Qty * Seasonality[m] / 100)
#
# In actual mode a monthly entry for (product, channel, month) replaces the
# seasonal quantity of that month.
# Rounding drift (SUM(Qty[m]) != Annual_Qty) is accepted, never corrected.
# =============================================================================

from dataclasses import dataclass
from decimal import Decimal
from typing import Dict, List, Optional, Tuple

from .enums import Channel, PlanningMode, parse_channel, parse_mode
from .money import HUNDRED, ZERO, dsum, round_half_up, to_decimal

MONTHS_PER_YEAR = 12

# Eleven months at 8.33% and December at 8.37% (sums to 100)
DEFAULT_SEASONALITY: Tuple[Decimal, ...] = tuple([Decimal("8.33")] * 11 + [Decimal("8.37")])


@dataclass(frozen=True)
class SeasonalityProfile:
    """Twelve monthly percentage weights for one (year, mode)."""
    year: int
    mode: PlanningMode
    weights: Tuple[Decimal, ...]


@dataclass(frozen=True)
class AnnualSalesEntry:
    """Annual quantity of a product on one channel, to be spread by seasonality."""
    product_id: str
    channel: Channel
    year: int
    mode: PlanningMode
    annual_quantity: Decimal
    price_override: Optional[Decimal] = None


@dataclass(frozen=True)
class MonthlySalesEntry:
    """Actual quantity sold in one month."""
    product_id: str
    channel: Channel
    year: int
    month: int  # 1..12
    quantity: Decimal
    price_override: Optional[Decimal] = None


@dataclass(frozen=True)
class SalesSnapshot:
    annual: Tuple[AnnualSalesEntry, ...] = ()
    monthly: Tuple[MonthlySalesEntry, ...] = ()
    seasonality: Tuple[SeasonalityProfile, ...] = ()


def seasonality_for(sales: SalesSnapshot, year: int, mode: PlanningMode) -> Tuple[Decimal, ...]:
    """Weights for (year, mode), or DEFAULT_SEASONALITY when none is defined."""
    for profile in sales.seasonality:
        if profile.year == year and profile.mode == mode:
            return profile.weights
    return DEFAULT_SEASONALITY


def _annual_entries(
    sales: SalesSnapshot, product_id: str, channel: Channel, year: int, mode: PlanningMode
) -> List[AnnualSalesEntry]:
    return [
        e for e in sales.annual
        if e.product_id == product_id and e.channel == channel
        and e.year == year and e.mode == mode
    ]


def _monthly_entries(
    sales: SalesSnapshot, product_id: str, channel: Channel, year: int
) -> Dict[int, List[MonthlySalesEntry]]:
    result: Dict[int, List[MonthlySalesEntry]] = {}
    for e in sales.monthly:
        if e.product_id == product_id and e.channel == channel and e.year == year:
            result.setdefault(e.month, []).append(e)
    return result


def distribute_annual_quantity(annual_quantity: Decimal, weights: Tuple[Decimal, ...]) -> List[Decimal]:
    """
    Spread an annual quantity across 12 months.

    Weights are applied as given; they are not re-normalized when they do
    not sum to 100.
    """
    return [round_half_up(annual_quantity * w / HUNDRED) for w in weights]


def monthly_quantities(
    sales: SalesSnapshot,
    product_id: str,
    channel: Channel,
    year: int,
    mode: PlanningMode,
) -> List[Decimal]:
    """
    Quantity sold in each month of the year for (product, channel).

    Args:
        sales: Sales snapshot
        product_id: Product identifier
        channel: Sales channel
        year: Planning year
        mode: BUDGET uses annual entries only; ACTUAL lets monthly entries
              take precedence month by month

    Returns:
        List of 12 whole-unit quantities
    """
    annual_qty = dsum(e.annual_quantity for e in _annual_entries(sales, product_id, channel, year, mode))
    quantities = distribute_annual_quantity(annual_qty, seasonality_for(sales, year, mode))

    if mode == PlanningMode.ACTUAL:
        for month, entries in _monthly_entries(sales, product_id, channel, year).items():
            if 1 <= month <= MONTHS_PER_YEAR:
                quantities[month - 1] = dsum(e.quantity for e in entries)
    elif mode != PlanningMode.BUDGET:
        raise TypeError(f"Unknown planning mode: {mode!r}")

    return quantities


def price_override_for(
    sales: SalesSnapshot,
    product_id: str,
    channel: Channel,
    year: int,
    mode: PlanningMode,
    month: int,
) -> Optional[Decimal]:
    """Price override applying to one month: monthly entry first, then annual entry."""
    if mode == PlanningMode.ACTUAL:
        for entry in _monthly_entries(sales, product_id, channel, year).get(month, []):
            if entry.price_override is not None:
                return entry.price_override
    for entry in _annual_entries(sales, product_id, channel, year, mode):
        if entry.price_override is not None:
            return entry.price_override
    return None


def sales_keys(sales: SalesSnapshot, year: int, mode: PlanningMode) -> List[Tuple[str, Channel]]:
    """(product, channel) pairs with any sales source for (year, mode), in stable order."""
    keys: Dict[Tuple[str, Channel], None] = {}
    for e in sales.annual:
        if e.year == year and e.mode == mode:
            keys[(e.product_id, e.channel)] = None
    if mode == PlanningMode.ACTUAL:
        for e in sales.monthly:
            if e.year == year:
                keys[(e.product_id, e.channel)] = None
    return list(keys)


def observed_seasonality(sales: SalesSnapshot, year: int) -> List[Decimal]:
    """
    Seasonality implied by actual monthly entries (percent of yearly units).

    Returns 12 zeros when nothing was recorded for the year.
    """
    totals = [ZERO] * MONTHS_PER_YEAR
    for e in sales.monthly:
        if e.year == year and 1 <= e.month <= MONTHS_PER_YEAR:
            totals[e.month - 1] += e.quantity
    grand_total = dsum(totals)
    if grand_total == ZERO:
        return [ZERO] * MONTHS_PER_YEAR
    return [round_half_up(t * HUNDRED / grand_total, 2) for t in totals]


def _optional_decimal(value) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def load_sales(assumptions: Dict) -> SalesSnapshot:
    """
    Load the sales snapshot from assumptions.

    Expected structure in assumptions:
        sales:
          seasonality:
            - {year: int, mode: budget|actual, weights: [12 numbers]}
          annual:
            - {product_id, channel, year, mode, annual_quantity, price_override}
          monthly:
            - {product_id, channel, year, month, quantity, price_override}
    """
    config = assumptions.get("sales", {})

    profiles = tuple(
        SeasonalityProfile(
            year=int(p.get("year", 0)),
            mode=parse_mode(p.get("mode", "budget")),
            weights=tuple(to_decimal(w) for w in p.get("weights", [])),
        )
        for p in config.get("seasonality", [])
    )
    annual = tuple(
        AnnualSalesEntry(
            product_id=str(e.get("product_id", "")),
            channel=parse_channel(e.get("channel", "direct")),
            year=int(e.get("year", 0)),
            mode=parse_mode(e.get("mode", "budget")),
            annual_quantity=to_decimal(e.get("annual_quantity", 0)),
            price_override=_optional_decimal(e.get("price_override")),
        )
        for e in config.get("annual", [])
    )
    monthly = tuple(
        MonthlySalesEntry(
            product_id=str(e.get("product_id", "")),
            channel=parse_channel(e.get("channel", "direct")),
            year=int(e.get("year", 0)),
            month=int(e.get("month", 0)),
            quantity=to_decimal(e.get("quantity", 0)),
            price_override=_optional_decimal(e.get("price_override")),
        )
        for e in config.get("monthly", [])
    )
    return SalesSnapshot(annual=annual, monthly=monthly, seasonality=profiles)


def validate_sales(sales: SalesSnapshot) -> List[str]:
    """
    Validate parameter ranges of a sales snapshot.

    Validations:
        - Quantities and price overrides are >= 0
        - Months are within 1..12
        - Seasonality profiles have 12 non-negative weights
    """
    errors: List[str] = []

    for profile in sales.seasonality:
        if len(profile.weights) != MONTHS_PER_YEAR:
            errors.append(
                f"Seasonality {profile.year}/{profile.mode.value} must have 12 weights, "
                f"got {len(profile.weights)}"
            )
        if any(w < ZERO for w in profile.weights):
            errors.append(f"Negative seasonality weight in {profile.year}/{profile.mode.value}")

    for e in sales.annual:
        if e.annual_quantity < ZERO:
            errors.append(
                f"Negative annual_quantity for {e.product_id}/{e.channel.value}/{e.year}: "
                f"{e.annual_quantity}"
            )
        if e.price_override is not None and e.price_override < ZERO:
            errors.append(f"Negative price_override for {e.product_id}/{e.channel.value}")

    for e in sales.monthly:
        if not 1 <= e.month <= MONTHS_PER_YEAR:
            errors.append(f"Invalid month for {e.product_id}/{e.channel.value}: {e.month}")
        if e.quantity < ZERO:
            errors.append(
                f"Negative quantity for {e.product_id}/{e.channel.value}/{e.year}-{e.month:02d}: "
                f"{e.quantity}"
            )
        if e.price_override is not None and e.price_override < ZERO:
            errors.append(f"Negative price_override for {e.product_id}/{e.channel.value}")

    return errors


# =============================================================================
# END OF SALES DISTRIBUTOR
# =============================================================================
