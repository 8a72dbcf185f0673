# =============================================================================
# FINPLAN ENGINE - SENSITIVITY MODULE
# =============================================================================
# One-factor sensitivity of unit margin and profitability.
#
# FORMULA (one variation at a time):
# Cost'   = Cost   * (1 + v/100)   when varying cost
# Price'  = Price  * (1 + v/100)   when varying price
# Volume' = Volume * (1 + v/100)   when varying volume
# Margin        = Price' - Cost'
# Margin %      = Margin / Price' * 100
# Revenue       = Price' * Volume'
# Profitability = Margin * Volume'
# =============================================================================

from dataclasses import dataclass, field
from decimal import Decimal
from typing import List, Optional, Sequence

from .catalog import Catalog, Product
from .cost_resolver import resolve_unit_cost
from .enums import Channel
from .money import HUNDRED, ONE, ZERO, dsum
from .pricing import effective_price

VARIATION_COST = "cost"
VARIATION_PRICE = "price"
VARIATION_VOLUME = "volume"
VARIATION_TYPES = (VARIATION_COST, VARIATION_PRICE, VARIATION_VOLUME)

DEFAULT_VARIATIONS = tuple(Decimal(v) for v in (-30, -20, -10, 0, 10, 20, 30))
DEFAULT_BASE_VOLUME = Decimal("100")


@dataclass(frozen=True)
class SensitivityResult:
    variation: Decimal
    unit_cost: Decimal
    margin: Decimal
    margin_pct: Decimal
    profitability: Decimal
    revenue: Decimal


@dataclass
class ProductSensitivity:
    product_id: str
    base: SensitivityResult
    cost_variations: List[SensitivityResult] = field(default_factory=list)
    price_variations: List[SensitivityResult] = field(default_factory=list)
    volume_variations: List[SensitivityResult] = field(default_factory=list)


@dataclass
class CategorySensitivity:
    category: str
    product_ids: List[str] = field(default_factory=list)
    cost_variations: List[SensitivityResult] = field(default_factory=list)
    price_variations: List[SensitivityResult] = field(default_factory=list)
    volume_variations: List[SensitivityResult] = field(default_factory=list)


def calculate_sensitivity(
    unit_cost: Decimal,
    price: Decimal,
    variation_type: str,
    variation_pct: Decimal,
    base_volume: Decimal = DEFAULT_BASE_VOLUME,
) -> SensitivityResult:
    """
    Apply one variation to cost, price or volume.

    Raises:
        ValueError: unknown variation type
    """
    factor = ONE + variation_pct / HUNDRED
    volume = base_volume

    if variation_type == VARIATION_COST:
        unit_cost = unit_cost * factor
    elif variation_type == VARIATION_PRICE:
        price = price * factor
    elif variation_type == VARIATION_VOLUME:
        volume = base_volume * factor
    else:
        raise ValueError(f"Unknown variation type: {variation_type}")

    margin = price - unit_cost
    return SensitivityResult(
        variation=variation_pct,
        unit_cost=unit_cost,
        margin=margin,
        margin_pct=(margin / price * HUNDRED) if price > ZERO else ZERO,
        profitability=margin * volume,
        revenue=price * volume,
    )


def _reference_price(product: Product) -> Decimal:
    # Direct channel price is the reference; tier fallback is silent here
    return effective_price(product, Channel.DIRECT, warnings=[])


def product_sensitivity(
    catalog: Catalog,
    product_id: str,
    base_volume: Decimal = DEFAULT_BASE_VOLUME,
    variations: Sequence[Decimal] = DEFAULT_VARIATIONS,
    warnings: Optional[List[str]] = None,
) -> Optional[ProductSensitivity]:
    """Sensitivity grids of one product; None for an unknown product."""
    product = catalog.get_product(product_id)
    if product is None:
        return None

    cost = resolve_unit_cost(catalog, product_id, warnings=warnings)
    price = _reference_price(product)

    def grid(variation_type: str) -> List[SensitivityResult]:
        return [calculate_sensitivity(cost, price, variation_type, v, base_volume) for v in variations]

    return ProductSensitivity(
        product_id=product_id,
        base=calculate_sensitivity(cost, price, VARIATION_COST, ZERO, base_volume),
        cost_variations=grid(VARIATION_COST),
        price_variations=grid(VARIATION_PRICE),
        volume_variations=grid(VARIATION_VOLUME),
    )


def _aggregate(results: List[SensitivityResult], variation: Decimal) -> SensitivityResult:
    count = Decimal(len(results))
    revenue = dsum(r.revenue for r in results)
    profitability = dsum(r.profitability for r in results)
    return SensitivityResult(
        variation=variation,
        unit_cost=dsum(r.unit_cost for r in results) / count,
        margin=dsum(r.margin for r in results) / count,
        margin_pct=(profitability / revenue * HUNDRED) if revenue > ZERO else ZERO,
        profitability=profitability,
        revenue=revenue,
    )


def category_sensitivity(
    catalog: Catalog,
    category: str,
    base_volume: Decimal = DEFAULT_BASE_VOLUME,
    variations: Sequence[Decimal] = DEFAULT_VARIATIONS,
    warnings: Optional[List[str]] = None,
) -> Optional[CategorySensitivity]:
    """
    Sensitivity of a whole category, every product at the same base volume.

    Unit cost and margin are averaged; revenue and profitability are summed.
    """
    products = catalog.products_in_category(category)
    if not products:
        return None

    inputs = [
        (resolve_unit_cost(catalog, p.product_id, warnings=warnings), _reference_price(p))
        for p in products
    ]

    def grid(variation_type: str) -> List[SensitivityResult]:
        return [
            _aggregate(
                [calculate_sensitivity(cost, price, variation_type, v, base_volume) for cost, price in inputs],
                v,
            )
            for v in variations
        ]

    return CategorySensitivity(
        category=category,
        product_ids=[p.product_id for p in products],
        cost_variations=grid(VARIATION_COST),
        price_variations=grid(VARIATION_PRICE),
        volume_variations=grid(VARIATION_VOLUME),
    )


# =============================================================================
# END OF SENSITIVITY MODULE
# =============================================================================
