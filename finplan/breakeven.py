# =============================================================================
# FINPLAN ENGINE - BREAKEVEN MODULE
# =============================================================================
# Breakeven volume and revenue per (product, channel).
#
# FORMULA:
# Contribution      = Price_HT - Unit_Variable_Cost
# Breakeven_Units   = ceil(Fixed_Cost_Allocated / Contribution)
#                     (None when Contribution <= 0: never profitable)
# Breakeven_Revenue = Breakeven_Units * Price
# Margin_of_Safety% = (Volume - Breakeven_Units) / Volume * 100
#
# Fixed costs are allocated equally across the products of the catalog.
# =============================================================================

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, List, Mapping, Optional

from .catalog import Catalog, Product
from .cost_resolver import resolve_unit_cost
from .enums import Channel
from .money import HUNDRED, ZERO, ceil_int
from .pricing import effective_price
from .vat import FiscalRegime, StandardRegime, calculate_ttc, sale_rate_for


@dataclass(frozen=True)
class BreakevenResult:
    product_id: str
    product_name: str
    category: str
    channel: Channel

    unit_variable_cost: Decimal
    fixed_cost_allocated: Decimal

    price_ht: Decimal
    price_ttc: Decimal

    breakeven_units: Optional[int]  # None: contribution <= 0
    breakeven_revenue_ht: Optional[Decimal]
    breakeven_revenue_ttc: Optional[Decimal]

    current_volume: Decimal
    margin_of_safety_pct: Decimal
    margin_of_safety_units: Decimal

    unit_contribution: Decimal
    contribution_rate: Decimal
    is_profitable: bool
    distance_to_breakeven_pct: Decimal


@dataclass
class BreakevenSummary:
    global_breakeven_units: int = 0
    global_breakeven_revenue_ht: Decimal = ZERO
    global_margin_of_safety_pct: Decimal = ZERO
    profitable_products: int = 0
    products_below_breakeven: int = 0
    profitable_by_channel: Dict[str, int] = field(default_factory=dict)


def allocate_fixed_costs(total_fixed_costs: Decimal, product_count: int) -> Decimal:
    """Equal share of fixed costs per product."""
    return total_fixed_costs / Decimal(product_count or 1)


def calculate_breakeven(
    product: Product,
    channel: Channel,
    unit_variable_cost: Decimal,
    current_volume: Decimal = ZERO,
    fixed_cost_allocated: Decimal = ZERO,
    regime: Optional[FiscalRegime] = None,
    warnings: Optional[List[str]] = None,
) -> BreakevenResult:
    """
    Breakeven of one product on one channel.

    Args:
        product: Catalog product
        channel: Sales channel (selects the price tier)
        unit_variable_cost: Resolved unit cost of the product
        current_volume: Units currently sold, for the margin of safety
        fixed_cost_allocated: Fixed costs carried by this product
        regime: Fiscal regime used for TTC prices

    Returns:
        BreakevenResult; breakeven fields are None when never profitable
    """
    regime = regime if regime is not None else StandardRegime()
    price_ht = effective_price(product, channel, warnings=warnings)
    price_ttc = calculate_ttc(price_ht, sale_rate_for(product.vat_rate, regime))

    contribution = price_ht - unit_variable_cost
    contribution_rate = (contribution / price_ht * HUNDRED) if price_ht > ZERO else ZERO

    units: Optional[int]
    if contribution <= ZERO:
        units = None
    elif fixed_cost_allocated > ZERO:
        units = ceil_int(fixed_cost_allocated / contribution)
    else:
        units = 0

    margin_pct = ZERO
    margin_units = ZERO
    if current_volume > ZERO and units is not None:
        if units > 0:
            margin_units = current_volume - units
            margin_pct = margin_units / current_volume * HUNDRED
        else:
            margin_units = current_volume
            margin_pct = HUNDRED

    if units is not None and units > 0:
        distance = (current_volume - units) / Decimal(units) * HUNDRED
    else:
        distance = HUNDRED if current_volume > ZERO else ZERO

    return BreakevenResult(
        product_id=product.product_id,
        product_name=product.name,
        category=product.category,
        channel=channel,
        unit_variable_cost=unit_variable_cost,
        fixed_cost_allocated=fixed_cost_allocated,
        price_ht=price_ht,
        price_ttc=price_ttc,
        breakeven_units=units,
        breakeven_revenue_ht=None if units is None else units * price_ht,
        breakeven_revenue_ttc=None if units is None else units * price_ttc,
        current_volume=current_volume,
        margin_of_safety_pct=margin_pct,
        margin_of_safety_units=margin_units,
        unit_contribution=contribution,
        contribution_rate=contribution_rate,
        is_profitable=units is not None and current_volume >= units,
        distance_to_breakeven_pct=distance,
    )


def product_breakeven(
    catalog: Catalog,
    product_id: str,
    total_fixed_costs: Decimal = ZERO,
    current_volume: Decimal = ZERO,
    regime: Optional[FiscalRegime] = None,
    warnings: Optional[List[str]] = None,
) -> Optional[List[BreakevenResult]]:
    """Breakeven of one product on every channel; None for an unknown product."""
    product = catalog.get_product(product_id)
    if product is None:
        return None
    cost = resolve_unit_cost(catalog, product_id, warnings=warnings)
    allocated = allocate_fixed_costs(total_fixed_costs, len(catalog.products))
    return [
        calculate_breakeven(product, channel, cost, current_volume, allocated, regime, warnings)
        for channel in Channel
    ]


def catalog_breakeven(
    catalog: Catalog,
    total_fixed_costs: Decimal = ZERO,
    current_volumes: Optional[Mapping[str, Decimal]] = None,
    regime: Optional[FiscalRegime] = None,
    warnings: Optional[List[str]] = None,
) -> List[BreakevenResult]:
    """Breakeven of every product on every channel."""
    current_volumes = current_volumes or {}
    results: List[BreakevenResult] = []
    for product_id in catalog.products:
        results.extend(product_breakeven(
            catalog, product_id, total_fixed_costs,
            current_volumes.get(product_id, ZERO), regime, warnings,
        ))
    return results


def breakeven_summary(results: List[BreakevenResult]) -> BreakevenSummary:
    """
    Global breakeven; the direct channel is the reference for totals.

    Products that can never break even are left out of the global units.
    """
    summary = BreakevenSummary(profitable_by_channel={c.value: 0 for c in Channel})
    reference = [r for r in results if r.channel == Channel.DIRECT]

    for result in reference:
        if result.breakeven_units is not None:
            summary.global_breakeven_units += result.breakeven_units
            summary.global_breakeven_revenue_ht += result.breakeven_revenue_ht
        if result.is_profitable:
            summary.profitable_products += 1
        else:
            summary.products_below_breakeven += 1

    for result in results:
        if result.is_profitable:
            summary.profitable_by_channel[result.channel.value] += 1

    volume = sum((r.current_volume for r in reference), ZERO)
    if volume > ZERO and summary.global_breakeven_units > 0:
        summary.global_margin_of_safety_pct = (
            (volume - summary.global_breakeven_units) / volume * HUNDRED
        )
    return summary


# =============================================================================
# END OF BREAKEVEN MODULE
# =============================================================================
