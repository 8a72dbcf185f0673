# =============================================================================
# FINPLAN ENGINE - CATALOG MODULE
# =============================================================================
# Products, cost components and recipe edges.
#
# A recipe line links a product to either:
# - a cost component (ingredient | packaging | variable), or
# - another product used as a sub-recipe.
# A component carrying source_product_id is the cached "sub-recipe
# ingredient" of that product; the resolver follows it to the product.
#
# KEY CONSTRAINT: product -> product edges must form a DAG
# =============================================================================

from dataclasses import dataclass, field, replace
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Tuple

from .enums import COMPONENT_KINDS, INGREDIENT, Channel, parse_channel
from .money import ZERO, to_decimal


@dataclass(frozen=True)
class Product:
    """Sellable product. Read-only to the engines."""
    product_id: str
    name: str
    base_price: Decimal  # HT, per sale unit
    vat_rate: Optional[Decimal] = None  # None -> settings default sale rate
    sale_unit: str = "unit"
    category: str = ""
    channel_prices: Mapping[str, Decimal] = field(default_factory=dict)  # channel value -> HT price

    def __post_init__(self):
        object.__setattr__(self, "channel_prices", MappingProxyType(dict(self.channel_prices)))


@dataclass(frozen=True)
class CostComponent:
    """Leaf cost input: ingredient, packaging or variable cost."""
    component_id: str
    name: str
    kind: str  # ingredient | packaging | variable
    unit_cost: Decimal  # HT per unit of measure
    unit: str = "unit"
    vat_rate: Optional[Decimal] = None  # None -> settings default purchase rate
    source_product_id: Optional[str] = None

    @property
    def is_sub_recipe(self) -> bool:
        return self.source_product_id is not None


@dataclass(frozen=True)
class RecipeLine:
    """Quantity of a component (or sub-recipe product) per unit of output."""
    product_id: str
    quantity: Decimal
    component_id: Optional[str] = None
    sub_product_id: Optional[str] = None


@dataclass(frozen=True)
class Catalog:
    """Immutable catalog snapshot. Mappings are exposed read-only."""
    products: Mapping[str, Product] = field(default_factory=dict)
    components: Mapping[str, CostComponent] = field(default_factory=dict)
    recipes: Tuple[RecipeLine, ...] = ()

    def __post_init__(self):
        object.__setattr__(self, "products", MappingProxyType(dict(self.products)))
        object.__setattr__(self, "components", MappingProxyType(dict(self.components)))
        object.__setattr__(self, "recipes", tuple(self.recipes))

    def get_product(self, product_id: str) -> Optional[Product]:
        return self.products.get(product_id)

    def get_component(self, component_id: str) -> Optional[CostComponent]:
        return self.components.get(component_id)

    def lines_for(self, product_id: str) -> List[RecipeLine]:
        return [line for line in self.recipes if line.product_id == product_id]

    def sub_recipe_target(self, line: RecipeLine) -> Optional[str]:
        """Product referenced by a recipe line, directly or via a sub-recipe ingredient."""
        if line.sub_product_id is not None:
            return line.sub_product_id
        if line.component_id is not None:
            component = self.components.get(line.component_id)
            if component is not None and component.is_sub_recipe:
                return component.source_product_id
        return None

    def sub_recipe_components(self) -> List[CostComponent]:
        return [c for c in self.components.values() if c.is_sub_recipe]

    def products_in_category(self, category: str) -> List[Product]:
        return [p for p in self.products.values() if p.category == category]

    def with_components(self, components: Dict[str, CostComponent]) -> "Catalog":
        """Copy of this catalog with the given components replacing/adding entries."""
        merged = dict(self.components)
        merged.update(components)
        return replace(self, components=merged)

    def without_component(self, component_id: str) -> "Catalog":
        remaining = {k: v for k, v in self.components.items() if k != component_id}
        return replace(self, components=remaining)


def _optional_decimal(value) -> Optional[Decimal]:
    return None if value is None else to_decimal(value)


def _normalize_channel_key(key) -> str:
    try:
        return parse_channel(key).value
    except ValueError:
        return str(key)


def load_catalog(assumptions: Dict) -> Catalog:
    """
    Load the catalog snapshot from assumptions.

    Expected structure in assumptions:
        catalog:
          products:
            - product_id: str
              name: str
              base_price: number
              vat_rate: number | null
              channel_prices: {direct: number, business: number, distributor: number}
          components:
            - component_id: str
              kind: ingredient | packaging | variable
              unit_cost: number
              source_product_id: str | null
          recipes:
            <product_id>:
              - component_id: str   # or sub_product_id: str
                quantity: number
    """
    config = assumptions.get("catalog", {})

    products: Dict[str, Product] = {}
    for data in config.get("products", []):
        product_id = str(data.get("product_id", ""))
        prices = {
            _normalize_channel_key(key): to_decimal(value)
            for key, value in (data.get("channel_prices") or {}).items()
            if value is not None
        }
        products[product_id] = Product(
            product_id=product_id,
            name=data.get("name", product_id),
            base_price=to_decimal(data.get("base_price", 0)),
            vat_rate=_optional_decimal(data.get("vat_rate")),
            sale_unit=data.get("sale_unit", "unit"),
            category=data.get("category", ""),
            channel_prices=prices,
        )

    components: Dict[str, CostComponent] = {}
    for data in config.get("components", []):
        component_id = str(data.get("component_id", ""))
        components[component_id] = CostComponent(
            component_id=component_id,
            name=data.get("name", component_id),
            kind=data.get("kind", INGREDIENT),
            unit_cost=to_decimal(data.get("unit_cost", 0)),
            unit=data.get("unit", "unit"),
            vat_rate=_optional_decimal(data.get("vat_rate")),
            source_product_id=data.get("source_product_id"),
        )

    recipes: List[RecipeLine] = []
    for product_id, lines in (config.get("recipes") or {}).items():
        for data in lines or []:
            recipes.append(RecipeLine(
                product_id=str(product_id),
                quantity=to_decimal(data.get("quantity", 0)),
                component_id=data.get("component_id"),
                sub_product_id=data.get("sub_product_id"),
            ))

    return Catalog(products=products, components=components, recipes=tuple(recipes))


def validate_catalog(catalog: Catalog) -> List[str]:
    """
    Validate parameter ranges of a catalog snapshot.

    Returns:
        List of validation errors (empty if valid)

    Validations:
        - Prices, unit costs and recipe quantities are >= 0
        - VAT rates are within [0, 100]
        - Component kinds and channel price keys are known
        - Each recipe line targets exactly one component or product

    Dangling references and sub-recipe cycles are NOT errors here: the cost
    resolver substitutes zero and reports a warning.
    """
    errors: List[str] = []
    known_channels = {c.value for c in Channel}

    for product_id, product in catalog.products.items():
        if product.base_price < ZERO:
            errors.append(f"Negative base_price for product {product_id}: {product.base_price}")
        if product.vat_rate is not None and not (ZERO <= product.vat_rate <= 100):
            errors.append(f"vat_rate out of range for product {product_id}: {product.vat_rate}")
        for channel_key, price in product.channel_prices.items():
            if channel_key not in known_channels:
                errors.append(f"Unknown channel '{channel_key}' in prices of product {product_id}")
            if price < ZERO:
                errors.append(f"Negative {channel_key} price for product {product_id}: {price}")

    for component_id, component in catalog.components.items():
        if component.kind not in COMPONENT_KINDS:
            errors.append(f"Unknown kind '{component.kind}' for component {component_id}")
        if component.unit_cost < ZERO:
            errors.append(
                f"Negative unit_cost for component {component_id}: {component.unit_cost}"
            )
        if component.vat_rate is not None and not (ZERO <= component.vat_rate <= 100):
            errors.append(f"vat_rate out of range for component {component_id}: {component.vat_rate}")

    for line in catalog.recipes:
        targets = [t for t in (line.component_id, line.sub_product_id) if t is not None]
        if len(targets) != 1:
            errors.append(
                f"Recipe line of {line.product_id} must reference exactly one "
                f"component_id or sub_product_id"
            )
        if line.quantity < ZERO:
            errors.append(
                f"Negative quantity in recipe of {line.product_id}: {line.quantity}"
            )

    return errors


# =============================================================================
# END OF CATALOG MODULE
# =============================================================================
