# =============================================================================
# FINPLAN ENGINE - COST RESOLVER
# =============================================================================
# Recursive unit cost rollup over the product / component graph.
#
# FORMULA:
# UnitCost[p] = SUM(qty * component.unit_cost)      for leaf edges
#             + SUM(qty * UnitCost[sub_product])    for sub-recipe edges
#
# KEY CONSTRAINTS:
# - The visited set is the current recursion path, local to one call
# - A sub-recipe already on the path contributes 0 (cycle) plus a warning
# - Unknown products/components contribute 0 plus a warning
# - Sub-recipe costs are never read from the cached component cost;
#   refresh_sub_recipe_costs() rewrites that cache bottom-up
# =============================================================================

import logging
from collections import deque
from dataclasses import dataclass, field, replace
from decimal import Decimal
from typing import Dict, FrozenSet, Iterable, List, Optional, Set, Tuple

from .catalog import Catalog, CostComponent
from .enums import INGREDIENT, KIND_TO_CATEGORY, MATERIALS
from .money import ZERO, dsum

logger = logging.getLogger(__name__)

SUB_RECIPE_PREFIX = "[SR] "


class SubRecipeError(ValueError):
    """Invalid sub-recipe conversion or removal."""


@dataclass(frozen=True)
class CostLine:
    """Cost of one unit of output attributable to one category and VAT rate."""
    category: str  # materials | packaging | variable
    amount_ht: Decimal
    vat_rate: Optional[Decimal]  # None -> default purchase rate
    source_id: str = ""


@dataclass(frozen=True)
class UnitCost:
    """Resolved unit cost of a product, split into cost lines."""
    product_id: str
    lines: Tuple[CostLine, ...] = ()

    @property
    def total_ht(self) -> Decimal:
        return dsum(line.amount_ht for line in self.lines)

    def ht_by_category(self) -> Dict[str, Decimal]:
        result: Dict[str, Decimal] = {}
        for line in self.lines:
            result[line.category] = result.get(line.category, ZERO) + line.amount_ht
        return result


@dataclass
class RefreshResult:
    """Output of a forced sub-recipe refresh."""
    catalog: Catalog
    updated: Dict[str, Decimal] = field(default_factory=dict)  # component_id -> new unit cost
    order: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def _warn(warnings: Optional[List[str]], message: str) -> None:
    logger.warning(message)
    if warnings is not None:
        warnings.append(message)


def _collect_lines(
    catalog: Catalog,
    product_id: str,
    path: FrozenSet[str],
    warnings: Optional[List[str]],
    trail: Tuple[str, ...],
) -> List[CostLine]:
    lines: List[CostLine] = []

    for edge in catalog.lines_for(product_id):
        target = catalog.sub_recipe_target(edge)
        if target is not None:
            if target in path:
                cycle = " -> ".join(trail + (target,))
                _warn(warnings, f"Sub-recipe cycle detected: {cycle} (contribution set to 0)")
                continue
            if catalog.get_product(target) is None:
                _warn(warnings, f"Unknown sub-recipe product '{target}' in recipe of {product_id}")
                continue
            nested = _collect_lines(catalog, target, path | {target}, warnings, trail + (target,))
            # Sub-recipe cost is booked as materials; nested VAT rates are kept
            for line in nested:
                lines.append(CostLine(
                    category=MATERIALS,
                    amount_ht=edge.quantity * line.amount_ht,
                    vat_rate=line.vat_rate,
                    source_id=target,
                ))
            continue

        component = catalog.get_component(edge.component_id) if edge.component_id else None
        if component is None:
            _warn(
                warnings,
                f"Unknown component '{edge.component_id}' in recipe of {product_id}",
            )
            continue
        lines.append(CostLine(
            category=KIND_TO_CATEGORY.get(component.kind, MATERIALS),
            amount_ht=edge.quantity * component.unit_cost,
            vat_rate=component.vat_rate,
            source_id=component.component_id,
        ))

    return lines


def resolve_cost_breakdown(
    catalog: Catalog,
    product_id: str,
    visited: Optional[Iterable[str]] = None,
    warnings: Optional[List[str]] = None,
) -> UnitCost:
    """
    Resolve the unit cost of a product into category / VAT-rate lines.

    Args:
        catalog: Catalog snapshot
        product_id: Product to resolve
        visited: Products already on the caller's path (cycle guard)
        warnings: Optional list receiving data-integrity warnings

    Returns:
        UnitCost whose total_ht equals resolve_unit_cost()
    """
    if catalog.get_product(product_id) is None:
        _warn(warnings, f"Unknown product '{product_id}' (cost set to 0)")
        return UnitCost(product_id=product_id)

    path = frozenset(visited or ()) | {product_id}
    lines = _collect_lines(catalog, product_id, path, warnings, (product_id,))
    return UnitCost(product_id=product_id, lines=tuple(lines))


def resolve_unit_cost(
    catalog: Catalog,
    product_id: str,
    visited: Optional[Iterable[str]] = None,
    warnings: Optional[List[str]] = None,
) -> Decimal:
    """
    Fully-loaded HT cost of one sale unit of a product.

    Formula: SUM(qty * unit_cost) + SUM(qty * resolve_unit_cost(sub_product))

    The cycle guard is a fresh path set per call, so concurrent or repeated
    resolutions never share state.
    """
    return resolve_cost_breakdown(catalog, product_id, visited, warnings).total_ht


def sub_recipe_dependencies(catalog: Catalog) -> Dict[str, Set[str]]:
    """Map product_id -> set of products it uses as sub-recipes."""
    deps: Dict[str, Set[str]] = {pid: set() for pid in catalog.products}
    for line in catalog.recipes:
        target = catalog.sub_recipe_target(line)
        if target is not None and target in catalog.products and line.product_id in deps:
            deps[line.product_id].add(target)
    return deps


def topological_order(catalog: Catalog) -> Tuple[List[str], List[str]]:
    """
    Order products so that every sub-recipe comes before its consumers.

    Returns:
        (ordered product ids, product ids left out because they sit on or
        depend on a cycle)
    """
    deps = sub_recipe_dependencies(catalog)
    pending = {pid: len(targets) for pid, targets in deps.items()}
    consumers: Dict[str, List[str]] = {pid: [] for pid in deps}
    for pid, targets in deps.items():
        for target in targets:
            consumers[target].append(pid)

    queue = deque(sorted(pid for pid, count in pending.items() if count == 0))
    order: List[str] = []
    while queue:
        pid = queue.popleft()
        order.append(pid)
        for consumer in sorted(consumers[pid]):
            pending[consumer] -= 1
            if pending[consumer] == 0:
                queue.append(consumer)

    blocked = sorted(pid for pid, count in pending.items() if count > 0)
    return order, blocked


def refresh_sub_recipe_costs(catalog: Catalog) -> RefreshResult:
    """
    Recompute every cached sub-recipe ingredient cost from current leaf costs.

    Products are visited dependencies-first, and each resolution goes down to
    leaf components, so no stale cached cost is ever read. Returns a new
    catalog; the input is not modified.
    """
    warnings: List[str] = []
    order, blocked = topological_order(catalog)
    for pid in blocked:
        _warn(warnings, f"Product {pid} is part of a sub-recipe cycle; cost refreshed with cycle edges at 0")

    by_source: Dict[str, List[CostComponent]] = {}
    for component in catalog.sub_recipe_components():
        by_source.setdefault(component.source_product_id, []).append(component)

    updated_components: Dict[str, CostComponent] = {}
    updated: Dict[str, Decimal] = {}
    for pid in order + blocked:
        components = by_source.get(pid, [])
        if not components:
            continue
        cost = resolve_unit_cost(catalog, pid, warnings=warnings)
        for component in components:
            updated_components[component.component_id] = replace(component, unit_cost=cost)
            updated[component.component_id] = cost

    for source_id, components in by_source.items():
        if source_id not in catalog.products:
            for component in components:
                _warn(
                    warnings,
                    f"Sub-recipe ingredient {component.component_id} references unknown product '{source_id}'",
                )

    return RefreshResult(
        catalog=catalog.with_components(updated_components),
        updated=updated,
        order=order,
        warnings=warnings,
    )


def convert_to_sub_recipe(
    catalog: Catalog,
    product_id: str,
    unit: Optional[str] = None,
    component_id: Optional[str] = None,
) -> Tuple[Catalog, CostComponent]:
    """
    Expose a product as a sub-recipe ingredient usable in other recipes.

    Raises:
        SubRecipeError: unknown product, or product already exposed
    """
    product = catalog.get_product(product_id)
    if product is None:
        raise SubRecipeError(f"Unknown product: {product_id}")
    for existing in catalog.sub_recipe_components():
        if existing.source_product_id == product_id:
            raise SubRecipeError(f"Product {product_id} is already a sub-recipe ({existing.component_id})")

    component = CostComponent(
        component_id=component_id or f"sr_{product_id}",
        name=f"{SUB_RECIPE_PREFIX}{product.name}",
        kind=INGREDIENT,
        unit_cost=resolve_unit_cost(catalog, product_id),
        unit=unit or product.sale_unit,
        source_product_id=product_id,
    )
    if component.component_id in catalog.components:
        raise SubRecipeError(f"Component id already in use: {component.component_id}")
    return catalog.with_components({component.component_id: component}), component


def remove_sub_recipe(catalog: Catalog, component_id: str) -> Catalog:
    """
    Remove a sub-recipe ingredient.

    Raises:
        SubRecipeError: component is not a sub-recipe, or still used in a recipe
    """
    component = catalog.get_component(component_id)
    if component is None or not component.is_sub_recipe:
        raise SubRecipeError(f"Not a sub-recipe ingredient: {component_id}")
    users = sorted({line.product_id for line in catalog.recipes if line.component_id == component_id})
    if users:
        raise SubRecipeError(
            f"Sub-recipe {component_id} is used in recipes of: {', '.join(users)}"
        )
    return catalog.without_component(component_id)


# =============================================================================
# END OF COST RESOLVER
# =============================================================================
