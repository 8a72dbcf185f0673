"""Transform plan outputs into pandas frames for reports and exports."""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal
from typing import Dict, Optional, Sequence

import pandas as pd

from finplan.breakeven import BreakevenResult
from finplan.budget_vs_actual import BudgetVsActual, SegmentGap
from finplan.cashflow import ProjectionOutput
from finplan.financial_plan import FinancialPlanData, PlanStressResult
from finplan.stress import StressScenario

MONTHLY_COLUMNS = [
    "month",
    "year",
    "ca_ht",
    "encaissements_ht",
    "encaissements_ttc",
    "tva_collectee",
    "achats_matieres_ht",
    "achats_emballages_ht",
    "couts_variables_ht",
    "decaissements_production_ht",
    "decaissements_production_ttc",
    "tva_deductible",
    "frais_ht",
    "frais_ttc",
    "tva_nette",
    "tva_reglement",
    "economic_result",
    "treasury_result",
    "net_vat_flow",
    "variation_tresorerie",
    "cumul",
]


@dataclass
class ReportSnapshot:
    monthly: pd.DataFrame
    annual: pd.DataFrame
    receipts_by_channel: pd.DataFrame
    expenses_by_category: pd.DataFrame
    units_by_product: pd.DataFrame
    stress: pd.DataFrame = field(default_factory=pd.DataFrame)
    breakeven: pd.DataFrame = field(default_factory=pd.DataFrame)


def _f(value: Optional[Decimal]) -> Optional[float]:
    return None if value is None else float(value)


def _safe_pct(num: float, den: float) -> float:
    return (num / den) if den else 0.0


def projection_to_frame(projection: ProjectionOutput) -> pd.DataFrame:
    """One row per projection month, amounts as floats."""
    rows = []
    for row in projection.rows:
        record = {"month": row.month, "year": int(row.month[:4])}
        for column in MONTHLY_COLUMNS[2:]:
            record[column] = float(getattr(row, column))
        record["gross_margin_pct"] = _safe_pct(
            record["ca_ht"] - record["decaissements_production_ht"], record["ca_ht"]
        )
        rows.append(record)
    if not rows:
        return pd.DataFrame(columns=MONTHLY_COLUMNS + ["gross_margin_pct"])
    return pd.DataFrame(rows)


def annual_summary(monthly: pd.DataFrame) -> pd.DataFrame:
    """Yearly totals; balances take the last month of each year."""
    if monthly.empty:
        return pd.DataFrame(
            columns=[
                "year",
                "ca_ht",
                "encaissements_ttc",
                "decaissements_production_ttc",
                "frais_ttc",
                "tva_collectee",
                "tva_deductible",
                "tva_reglement",
                "economic_result",
                "variation_tresorerie",
                "cumul",
                "min_cumul",
            ]
        )
    return (
        monthly.groupby("year", as_index=False)
        .agg(
            ca_ht=("ca_ht", "sum"),
            encaissements_ttc=("encaissements_ttc", "sum"),
            decaissements_production_ttc=("decaissements_production_ttc", "sum"),
            frais_ttc=("frais_ttc", "sum"),
            tva_collectee=("tva_collectee", "sum"),
            tva_deductible=("tva_deductible", "sum"),
            tva_reglement=("tva_reglement", "sum"),
            economic_result=("economic_result", "sum"),
            variation_tresorerie=("variation_tresorerie", "sum"),
            cumul=("cumul", "last"),
            min_cumul=("cumul", "min"),
        )
        .sort_values("year")
    )


def receipts_by_channel(projection: ProjectionOutput) -> pd.DataFrame:
    rows = []
    for row in projection.rows:
        for channel, amount in row.encaissements_by_channel_ht.items():
            rows.append({
                "month": row.month,
                "channel": channel,
                "encaissements_ht": float(amount),
                "encaissements_ttc": float(row.encaissements_by_channel_ttc.get(channel, amount)),
            })
    if not rows:
        return pd.DataFrame(columns=["month", "channel", "encaissements_ht", "encaissements_ttc"])
    return pd.DataFrame(rows)


def expenses_by_category(projection: ProjectionOutput) -> pd.DataFrame:
    rows = []
    for row in projection.rows:
        for category, amount in row.frais_by_category.items():
            rows.append({"category": category, "frais_ht": float(amount)})
    if not rows:
        return pd.DataFrame(columns=["category", "frais_ht", "share_pct"])
    data = pd.DataFrame(rows).groupby("category", as_index=False)["frais_ht"].sum().sort_values(
        "frais_ht", ascending=False
    )
    total = float(data["frais_ht"].sum())
    data["share_pct"] = data["frais_ht"].apply(lambda value: _safe_pct(float(value), total))
    return data


def units_by_product(projection: ProjectionOutput) -> pd.DataFrame:
    rows = []
    for (product_id, channel), quantities in projection.quantities.items():
        rows.append({
            "product": product_id,
            "channel": channel,
            "units": float(sum(quantities[:len(projection.rows)])),
            "unit_cost": _f(projection.unit_costs.get(product_id)),
        })
    if not rows:
        return pd.DataFrame(columns=["product", "channel", "units", "unit_cost"])
    return pd.DataFrame(rows).sort_values(["product", "channel"]).reset_index(drop=True)


def stress_comparison_frame(scenarios: Sequence[StressScenario]) -> pd.DataFrame:
    """One row per stress scenario: parameters and summary metrics."""
    rows = []
    for scenario in scenarios:
        p = scenario.parameters
        s = scenario.summary
        rows.append({
            "scenario": scenario.name,
            "sales_decline_pct": float(p.sales_decline_pct),
            "cost_increase_pct": float(p.cost_increase_pct),
            "extra_delay_days": p.extra_delay_days,
            "stock_increase_pct": float(p.stock_increase_pct),
            "besoin_tresorerie_max": float(s.besoin_tresorerie_max),
            "mois_tension_critique": s.mois_tension_critique,
            "impact_total_ca": float(s.impact_total_ca),
            "impact_total_couts": float(s.impact_total_couts),
            "delai_recuperation": s.delai_recuperation,
            "risk_level": s.risk_level,
        })
    if not rows:
        return pd.DataFrame(columns=["scenario", "besoin_tresorerie_max", "risk_level"])
    return pd.DataFrame(rows)


def stress_series_frame(scenario: StressScenario) -> pd.DataFrame:
    return pd.DataFrame([
        {
            "month": m.month,
            "mois": m.mois,
            "cash_flow_base": float(m.cash_flow_base),
            "cash_flow_stress": float(m.cash_flow_stress),
            "cumul_base": float(m.cumul_base),
            "cumul_stress": float(m.cumul_stress),
            "ecart": float(m.ecart),
            "ecart_pct": float(m.ecart_pct),
        }
        for m in scenario.months
    ])


def breakeven_frame(results: Sequence[BreakevenResult]) -> pd.DataFrame:
    rows = [
        {
            "product": r.product_id,
            "name": r.product_name,
            "category": r.category,
            "channel": r.channel.value,
            "price_ht": float(r.price_ht),
            "unit_variable_cost": float(r.unit_variable_cost),
            "unit_contribution": float(r.unit_contribution),
            "contribution_rate": float(r.contribution_rate),
            "fixed_cost_allocated": float(r.fixed_cost_allocated),
            "breakeven_units": r.breakeven_units,
            "breakeven_revenue_ht": _f(r.breakeven_revenue_ht),
            "current_volume": float(r.current_volume),
            "margin_of_safety_pct": float(r.margin_of_safety_pct),
            "is_profitable": r.is_profitable,
        }
        for r in results
    ]
    if not rows:
        return pd.DataFrame(columns=["product", "channel", "breakeven_units"])
    return pd.DataFrame(rows)


SEGMENT_COLUMNS = [
    "key", "label",
    "budget_quantity", "actual_quantity", "ecart_quantity",
    "budget_ca_ht", "actual_ca_ht", "ecart_ca_ht", "ecart_pct",
    "budget_margin", "actual_margin", "ecart_margin",
]


def _segment_frame(segments: Sequence[SegmentGap]) -> pd.DataFrame:
    rows = [
        {
            "key": s.key,
            "label": s.label,
            "budget_quantity": float(s.budget_quantity),
            "actual_quantity": float(s.actual_quantity),
            "ecart_quantity": float(s.ecart_quantity),
            "budget_ca_ht": float(s.budget_ca_ht),
            "actual_ca_ht": float(s.actual_ca_ht),
            "ecart_ca_ht": float(s.ecart_ca_ht),
            "ecart_pct": _f(s.ecart_pct),
            "budget_margin": float(s.budget_margin),
            "actual_margin": float(s.actual_margin),
            "ecart_margin": float(s.ecart_margin),
        }
        for s in segments
    ]
    return pd.DataFrame(rows, columns=SEGMENT_COLUMNS)


def budget_vs_actual_frames(comparison: BudgetVsActual) -> Dict[str, pd.DataFrame]:
    """Indicator, product, category and month tables of a budget vs actual comparison."""
    indicators = pd.DataFrame(
        [
            {
                "indicator": i.key,
                "label": i.label,
                "budget": float(i.budget),
                "actual": float(i.actual),
                "ecart": float(i.ecart),
                "ecart_pct": _f(i.ecart_pct),
            }
            for i in comparison.indicators
        ],
        columns=["indicator", "label", "budget", "actual", "ecart", "ecart_pct"],
    )
    return {
        "indicators": indicators,
        "products": _segment_frame(comparison.by_product),
        "categories": _segment_frame(comparison.by_category),
        "months": _segment_frame(comparison.by_month),
    }


FINANCIAL_PLAN_COLUMNS = [
    "ca_total", "purchases", "coefficient", "gross_profit", "expenses_total",
    "independent_result", "social_contributions", "net_before_tax", "taxable_base",
    "base_tax", "communal_tax", "total_tax", "net_profit", "annual_pay", "monthly_pay",
]


def financial_plan_frame(plans: Sequence[FinancialPlanData]) -> pd.DataFrame:
    """One row per P&L (base plan or simulated revenue scenario)."""
    rows = []
    for plan in plans:
        row = {"label": plan.label}
        row.update({name: float(getattr(plan, name)) for name in FINANCIAL_PLAN_COLUMNS})
        rows.append(row)
    return pd.DataFrame(rows, columns=["label"] + FINANCIAL_PLAN_COLUMNS)


def plan_stress_frame(result: PlanStressResult) -> pd.DataFrame:
    return pd.DataFrame(
        [
            {
                "indicator": r.key,
                "label": r.label,
                "current": float(r.current),
                "stressed": float(r.stressed),
                "ecart": float(r.ecart),
                "ecart_pct": float(r.ecart_pct),
            }
            for r in result.results
        ],
        columns=["indicator", "label", "current", "stressed", "ecart", "ecart_pct"],
    )


def build_report(
    projection: ProjectionOutput,
    scenarios: Sequence[StressScenario] = (),
    breakeven: Sequence[BreakevenResult] = (),
) -> ReportSnapshot:
    monthly = projection_to_frame(projection)
    return ReportSnapshot(
        monthly=monthly,
        annual=annual_summary(monthly),
        receipts_by_channel=receipts_by_channel(projection),
        expenses_by_category=expenses_by_category(projection),
        units_by_product=units_by_product(projection),
        stress=stress_comparison_frame(scenarios),
        breakeven=breakeven_frame(breakeven),
    )
