# =============================================================================
# FINPLAN ENGINE - CASH FLOW PROJECTOR
# =============================================================================
# Month-by-month cash-flow and VAT projection of one plan year.
#
# FLOW (per sale month i, per product/channel with quantity q):
# CA_HT[i]           = q * Effective_Price
# Receipt slot       = i + floor(Delay_Days[channel] / 30)   (24-slot ledger)
# Production_HT[i]   = q * UnitCost lines (materials | packaging | variable)
#
# PER MONTH m:
# TVA_Nette[m]       = TVA_Collectee[m] - TVA_Deductible[m]
# TVA_Reglement[m]   = TVA_Nette[m - lag]                  (0 before the lag)
# Economic[m]        = Enc_HT - Prod_HT - Frais_HT
# Variation[m]       = Enc_TTC - Prod_TTC - Frais_TTC - TVA_Reglement
# Net_VAT_Flow[m]    = TVA_Collectee - TVA_Deductible - TVA_Reglement
# Cumul[m]           = Cumul[m-1] + Variation[m]
#
# INVARIANT: Treasury[m] (= Variation[m]) == Economic[m] + Net_VAT_Flow[m]
# =============================================================================

import logging
from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping, Optional, Sequence, Tuple

from .catalog import Catalog, validate_catalog
from .cost_resolver import UnitCost, resolve_cost_breakdown
from .enums import COST_CATEGORIES, MATERIALS, PACKAGING, VARIABLE, PlanningMode
from .expenses import ProfessionalExpense, expenses_by_month, validate_expenses
from .money import ZERO, dsum
from .pricing import effective_price
from .sales import (
    MONTHS_PER_YEAR, SalesSnapshot, monthly_quantities, price_override_for,
    sales_keys, validate_sales,
)
from .settings import RECEIPT_LEDGER_SLOTS, PlanSettings, validate_settings
from .vat import VatLine, net_vat, purchase_rate_for, sale_rate_for

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class MonthlyProjectionRow:
    """One calendar month of the projection. Immutable once built."""
    month: str  # YYYY-MM
    month_index: int  # 0-based position in the horizon

    # Revenue recognized at sale time
    ca_ht: Decimal

    # Cash received (delay-shifted)
    encaissements_ht: Decimal
    encaissements_ttc: Decimal
    encaissements_by_channel_ht: Mapping[str, Decimal]
    encaissements_by_channel_ttc: Mapping[str, Decimal]
    tva_collectee: Decimal

    # Production cost recognized at sale time
    achats_matieres_ht: Decimal
    achats_emballages_ht: Decimal
    couts_variables_ht: Decimal
    decaissements_production_ht: Decimal
    decaissements_production_ttc: Decimal

    # Deductible VAT
    tva_deductible_matieres: Decimal
    tva_deductible_emballages: Decimal
    tva_deductible_variables: Decimal
    tva_deductible_frais: Decimal
    tva_deductible: Decimal

    # Professional expenses
    frais_ht: Decimal
    frais_ttc: Decimal
    frais_by_category: Mapping[str, Decimal]

    # Netting and results
    tva_nette: Decimal
    tva_reglement: Decimal
    economic_result: Decimal
    treasury_result: Decimal
    net_vat_flow: Decimal
    variation_tresorerie: Decimal
    cumul: Decimal

    def __post_init__(self):
        for name in ("encaissements_by_channel_ht", "encaissements_by_channel_ttc", "frais_by_category"):
            object.__setattr__(self, name, MappingProxyType(dict(getattr(self, name))))


@dataclass
class MonthFlows:
    """Raw flows of one month before netting; the input of build_row()."""
    ca_ht: Decimal = ZERO
    receipts_ht: Dict[str, Decimal] = field(default_factory=dict)  # by channel
    receipts_vat: Dict[str, Decimal] = field(default_factory=dict)  # by channel
    production_ht: Dict[str, Decimal] = field(default_factory=dict)  # by cost category
    production_vat: Dict[str, Decimal] = field(default_factory=dict)  # by cost category
    expenses_ht: Dict[str, Decimal] = field(default_factory=dict)  # by expense category
    expenses_vat: Decimal = ZERO


@dataclass
class ProjectionOutput:
    """Output structure for the cash flow projector."""
    year: int
    mode: PlanningMode
    rows: List[MonthlyProjectionRow] = field(default_factory=list)

    # Settings carried for re-runs over this baseline
    initial_cash: Decimal = ZERO
    vat_settlement_lag_months: int = 1

    # Detail
    quantities: Dict[Tuple[str, str], List[Decimal]] = field(default_factory=dict)
    revenue_ht: Dict[Tuple[str, str], List[Decimal]] = field(default_factory=dict)  # zero past the horizon
    unit_costs: Dict[str, Decimal] = field(default_factory=dict)

    # Edge of the receipt ledger
    receipts_after_horizon_ht: Decimal = ZERO
    dropped_receipts_ht: Decimal = ZERO

    # Validation
    warnings: List[str] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)


@dataclass
class ProjectionSummary:
    total_ca_ht: Decimal = ZERO
    total_encaissements_ttc: Decimal = ZERO
    total_decaissements_production_ttc: Decimal = ZERO
    total_frais_ttc: Decimal = ZERO
    total_tva_collectee: Decimal = ZERO
    total_tva_deductible: Decimal = ZERO
    total_tva_reglement: Decimal = ZERO
    total_variation: Decimal = ZERO
    solde_final: Decimal = ZERO
    has_negative: bool = False
    first_negative_month: Optional[str] = None


def month_label(year: int, index: int) -> str:
    return f"{year + index // MONTHS_PER_YEAR}-{index % MONTHS_PER_YEAR + 1:02d}"


def _add(bucket: Dict[str, Decimal], key: str, amount: Decimal) -> None:
    bucket[key] = bucket.get(key, ZERO) + amount


def build_row(
    month: str,
    index: int,
    flows: MonthFlows,
    tva_reglement: Decimal,
    previous_cumul: Decimal,
) -> MonthlyProjectionRow:
    """
    Shape one month's flows into a projection row.

    Shared by the projector and the stress engine so both ledgers are
    computed by the same formulas.
    """
    channels = sorted(set(flows.receipts_ht) | set(flows.receipts_vat))
    by_channel_ht = {c: flows.receipts_ht.get(c, ZERO) for c in channels}
    by_channel_ttc = {c: flows.receipts_ht.get(c, ZERO) + flows.receipts_vat.get(c, ZERO) for c in channels}

    encaissements_ht = dsum(by_channel_ht.values())
    tva_collectee = dsum(flows.receipts_vat.get(c, ZERO) for c in channels)
    encaissements_ttc = encaissements_ht + tva_collectee

    achats = {cat: flows.production_ht.get(cat, ZERO) for cat in COST_CATEGORIES}
    tva_prod = {cat: flows.production_vat.get(cat, ZERO) for cat in COST_CATEGORIES}
    production_ht = dsum(achats.values())
    production_vat = dsum(tva_prod.values())

    frais_by_category = dict(sorted(flows.expenses_ht.items()))
    frais_ht = dsum(frais_by_category.values())
    frais_ttc = frais_ht + flows.expenses_vat

    tva_deductible = production_vat + flows.expenses_vat
    tva_nette = tva_collectee - tva_deductible

    economic_result = encaissements_ht - production_ht - frais_ht
    net_vat_flow = tva_collectee - tva_deductible - tva_reglement
    variation = encaissements_ttc - (production_ht + production_vat) - frais_ttc - tva_reglement

    return MonthlyProjectionRow(
        month=month,
        month_index=index,
        ca_ht=flows.ca_ht,
        encaissements_ht=encaissements_ht,
        encaissements_ttc=encaissements_ttc,
        encaissements_by_channel_ht=by_channel_ht,
        encaissements_by_channel_ttc=by_channel_ttc,
        tva_collectee=tva_collectee,
        achats_matieres_ht=achats[MATERIALS],
        achats_emballages_ht=achats[PACKAGING],
        couts_variables_ht=achats[VARIABLE],
        decaissements_production_ht=production_ht,
        decaissements_production_ttc=production_ht + production_vat,
        tva_deductible_matieres=tva_prod[MATERIALS],
        tva_deductible_emballages=tva_prod[PACKAGING],
        tva_deductible_variables=tva_prod[VARIABLE],
        tva_deductible_frais=flows.expenses_vat,
        tva_deductible=tva_deductible,
        frais_ht=frais_ht,
        frais_ttc=frais_ttc,
        frais_by_category=frais_by_category,
        tva_nette=tva_nette,
        tva_reglement=tva_reglement,
        economic_result=economic_result,
        treasury_result=variation,
        net_vat_flow=net_vat_flow,
        variation_tresorerie=variation,
        cumul=previous_cumul + variation,
    )


def net_position(flows: MonthFlows) -> Decimal:
    """Net VAT position of one month: collected on receipts minus deductible."""
    collected = dsum(flows.receipts_vat.values())
    deductible = dsum(flows.production_vat.values()) + flows.expenses_vat
    return collected - deductible


def accumulate_rows(
    months: Sequence[str],
    flows: Sequence[MonthFlows],
    vat_settlement_lag_months: int,
    initial_cash: Decimal = ZERO,
) -> List[MonthlyProjectionRow]:
    """
    Build rows month by month, settling each month's net VAT `lag` months later.

    Net VAT of the last `lag` months is still outstanding at the end of the
    horizon and does not appear as a settlement.
    """
    positions = [net_position(f) for f in flows]
    rows: List[MonthlyProjectionRow] = []
    cumul = initial_cash
    for index, (month, month_flows) in enumerate(zip(months, flows)):
        settled_index = index - vat_settlement_lag_months
        settlement = positions[settled_index] if settled_index >= 0 else ZERO
        row = build_row(month, index, month_flows, settlement, cumul)
        rows.append(row)
        cumul = row.cumul
    return rows


def flows_from_row(row: MonthlyProjectionRow) -> MonthFlows:
    """Recover the raw flows of a row (inverse of build_row, up to settlement)."""
    return MonthFlows(
        ca_ht=row.ca_ht,
        receipts_ht=dict(row.encaissements_by_channel_ht),
        receipts_vat={
            channel: row.encaissements_by_channel_ttc[channel] - amount
            for channel, amount in row.encaissements_by_channel_ht.items()
        },
        production_ht={
            MATERIALS: row.achats_matieres_ht,
            PACKAGING: row.achats_emballages_ht,
            VARIABLE: row.couts_variables_ht,
        },
        production_vat={
            MATERIALS: row.tva_deductible_matieres,
            PACKAGING: row.tva_deductible_emballages,
            VARIABLE: row.tva_deductible_variables,
        },
        expenses_ht=dict(row.frais_by_category),
        expenses_vat=row.tva_deductible_frais,
    )


def _dedupe(messages: List[str]) -> List[str]:
    return list(dict.fromkeys(messages))


def project_cash_flow(
    catalog: Catalog,
    sales: SalesSnapshot,
    settings: PlanSettings,
    expenses: Sequence[ProfessionalExpense],
    year: int,
    mode: PlanningMode,
) -> ProjectionOutput:
    """
    Project monthly cash flows and VAT for one (year, mode).

    Args:
        catalog: Catalog snapshot (products, components, recipes)
        sales: Sales snapshot (annual entries, monthly actuals, seasonality)
        settings: Payment delays, fiscal regime, horizon, initial cash
        expenses: Dated professional expenses
        year: Planning year (first month of the horizon is January)
        mode: BUDGET or ACTUAL

    Returns:
        ProjectionOutput with one row per horizon month. When a parameter
        error is found, `errors` is filled and no row is produced.
    """
    expenses = tuple(expenses)
    output = ProjectionOutput(
        year=year,
        mode=mode,
        initial_cash=settings.initial_cash,
        vat_settlement_lag_months=settings.vat_settlement_lag_months,
    )

    output.errors.extend(validate_settings(settings))
    output.errors.extend(validate_catalog(catalog))
    output.errors.extend(validate_sales(sales))
    output.errors.extend(validate_expenses(expenses))
    if output.errors:
        return output

    logger.debug("Projecting %s/%s over %d months", year, mode.value, settings.horizon_months)

    regime = settings.regime
    horizon = settings.horizon_months
    warnings: List[str] = []

    # Receipt ledger: VAT lines (HT amount + sale rate) keyed by landing slot
    ledger: List[List[VatLine]] = [[] for _ in range(RECEIPT_LEDGER_SLOTS)]
    deductible: List[List[VatLine]] = [[] for _ in range(horizon)]
    ca_ht = [ZERO] * horizon

    breakdowns: Dict[str, UnitCost] = {}

    for product_id, channel in sales_keys(sales, year, mode):
        quantities = monthly_quantities(sales, product_id, channel, year, mode)
        output.quantities[(product_id, channel.value)] = quantities
        revenue_by_month = [ZERO] * len(quantities)
        output.revenue_ht[(product_id, channel.value)] = revenue_by_month

        product = catalog.get_product(product_id)
        if product_id not in breakdowns:
            breakdowns[product_id] = resolve_cost_breakdown(catalog, product_id, warnings=warnings)
            output.unit_costs[product_id] = breakdowns[product_id].total_ht
        unit_cost = breakdowns[product_id]
        sale_rate = sale_rate_for(product.vat_rate if product else None, regime)
        shift = settings.delay_months(channel)

        for i, q in enumerate(quantities):
            if q == ZERO or i >= horizon:
                continue
            override = price_override_for(sales, product_id, channel, year, mode, i + 1)
            price = effective_price(product, channel, override, warnings, product_id)
            revenue = q * price
            ca_ht[i] += revenue
            revenue_by_month[i] = revenue

            slot = i + shift
            if slot < RECEIPT_LEDGER_SLOTS:
                ledger[slot].append(VatLine(revenue, sale_rate, channel.value))
            else:
                output.dropped_receipts_ht += revenue

            for line in unit_cost.lines:
                rate = purchase_rate_for(line.vat_rate, regime)
                deductible[i].append(VatLine(q * line.amount_ht, rate, line.category))

    expense_buckets = expenses_by_month(expenses, year, mode, horizon)

    months: List[str] = []
    flows: List[MonthFlows] = []
    for m in range(horizon):
        expense_lines = [
            VatLine(e.amount_ht, purchase_rate_for(e.vat_rate, regime), e.category)
            for e in expense_buckets[m]
        ]
        sales_vat = net_vat(ledger[m], deductible[m], regime)
        expense_vat = net_vat([], expense_lines, regime)

        month_flows = MonthFlows(ca_ht=ca_ht[m], expenses_vat=expense_vat.deductible)
        for line in ledger[m]:
            _add(month_flows.receipts_ht, line.category, line.amount_ht)
        month_flows.receipts_vat = dict(sales_vat.collected_by_category)
        for line in deductible[m]:
            _add(month_flows.production_ht, line.category, line.amount_ht)
        month_flows.production_vat = dict(sales_vat.deductible_by_category)
        for line in expense_lines:
            _add(month_flows.expenses_ht, line.category, line.amount_ht)

        months.append(month_label(year, m))
        flows.append(month_flows)

    output.receipts_after_horizon_ht = dsum(
        line.amount_ht for slot in ledger[horizon:] for line in slot
    )
    output.rows = accumulate_rows(
        months, flows, settings.vat_settlement_lag_months, settings.initial_cash
    )
    output.warnings = _dedupe(warnings)
    return output


def summarize_projection(output: ProjectionOutput) -> ProjectionSummary:
    """Totals, final balance and first month with a negative cumulative position."""
    rows = output.rows
    first_negative = next((row.month for row in rows if row.cumul < ZERO), None)
    return ProjectionSummary(
        total_ca_ht=dsum(r.ca_ht for r in rows),
        total_encaissements_ttc=dsum(r.encaissements_ttc for r in rows),
        total_decaissements_production_ttc=dsum(r.decaissements_production_ttc for r in rows),
        total_frais_ttc=dsum(r.frais_ttc for r in rows),
        total_tva_collectee=dsum(r.tva_collectee for r in rows),
        total_tva_deductible=dsum(r.tva_deductible for r in rows),
        total_tva_reglement=dsum(r.tva_reglement for r in rows),
        total_variation=dsum(r.variation_tresorerie for r in rows),
        solde_final=rows[-1].cumul if rows else output.initial_cash,
        has_negative=first_negative is not None,
        first_negative_month=first_negative,
    )


# =============================================================================
# END OF CASH FLOW PROJECTOR
# =============================================================================
