# =============================================================================
# FINPLAN ENGINE - STRESS ENGINE
# =============================================================================
# Applies named perturbations to a baseline projection and re-derives the
# monthly rows with the projector's own row builder.
#
# PERTURBATIONS:
# Receipts_Stress[i] = Receipts_Base[i - lag] * (1 - Decline% / 100)
#                      lag = ceil(Extra_Delay_Days / 30); 0 before the lag
# Production_Stress  = Prod * (1 - 0.6)
#                    + Prod * 0.6 * (1 + Cost% / 100)
#                    + Prod * 0.6 * Stock% / 100
# Professional expenses are unchanged.
#
# SUMMARY:
# Besoin_Max     = |min(Cumul_Stress)| if negative else 0
# Mois_Tension   = first month (1-based) with Cumul_Stress < 0
# Impact_CA      = SUM(Variation_Base - Variation_Stress)
# Recuperation   = first month >= Mois_Tension with Cumul >= 0, minus Mois_Tension
# =============================================================================

import logging
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

import yaml

from .cashflow import (
    MonthFlows, MonthlyProjectionRow, ProjectionOutput,
    accumulate_rows, flows_from_row,
)
from .money import HUNDRED, ONE, ZERO, ceil_int, dsum, to_decimal
from .settings import DAYS_PER_MONTH

logger = logging.getLogger(__name__)

MATERIALS_SHARE = Decimal("0.6")

# Risk policy thresholds
CRITICAL_NEED = Decimal("50000")
HIGH_NEED = Decimal("20000")
MEDIUM_NEED = Decimal("5000")
CRITICAL_MONTH = 2
HIGH_MONTH = 4

RISK_LOW = "low"
RISK_MEDIUM = "medium"
RISK_HIGH = "high"
RISK_CRITICAL = "critical"


class StressParameterError(ValueError):
    """Stress parameters outside their allowed range."""


@dataclass(frozen=True)
class StressParameters:
    """Four perturbation magnitudes."""
    sales_decline_pct: Decimal = ZERO
    cost_increase_pct: Decimal = ZERO
    extra_delay_days: int = 0
    stock_increase_pct: Decimal = ZERO


@dataclass(frozen=True)
class StressMonth:
    """Baseline vs stressed cash variation for one month."""
    month: str
    mois: int  # 1-based
    cash_flow_base: Decimal
    cash_flow_stress: Decimal
    cumul_base: Decimal
    cumul_stress: Decimal

    @property
    def ecart(self) -> Decimal:
        return self.cash_flow_stress - self.cash_flow_base

    @property
    def ecart_pct(self) -> Decimal:
        if self.cash_flow_base == ZERO:
            return ZERO
        return self.ecart / abs(self.cash_flow_base) * HUNDRED


@dataclass(frozen=True)
class StressSummary:
    besoin_tresorerie_max: Decimal = ZERO
    mois_tension_critique: Optional[int] = None
    impact_total_ca: Decimal = ZERO
    impact_total_couts: Decimal = ZERO
    delai_recuperation: Optional[int] = None
    risk_level: str = RISK_LOW


@dataclass(frozen=True)
class StressScenario:
    """Snapshot of one stress run: inputs and outputs. Never mutated."""
    name: str
    parameters: StressParameters
    rows: Tuple[MonthlyProjectionRow, ...]
    months: Tuple[StressMonth, ...]
    summary: StressSummary
    created_at: str = ""


@dataclass
class SavedScenario:
    """Stress snapshot read back from disk."""
    name: str
    parameters: StressParameters
    summary: StressSummary
    cumul: List[Decimal] = field(default_factory=list)
    created_at: str = ""


PREDEFINED_SCENARIOS: Dict[str, StressParameters] = {
    "Customer payment delay (30d)": StressParameters(extra_delay_days=30),
    "Customer payment delay (60d)": StressParameters(extra_delay_days=60),
    "Sales decline -20%": StressParameters(sales_decline_pct=Decimal("20")),
    "Sales decline -30%": StressParameters(sales_decline_pct=Decimal("30")),
    "Cost increase +15%": StressParameters(cost_increase_pct=Decimal("15")),
    "Cost increase +25%": StressParameters(cost_increase_pct=Decimal("25")),
    "Stock build-up +50%": StressParameters(stock_increase_pct=Decimal("50")),
    "Moderate crisis": StressParameters(
        sales_decline_pct=Decimal("15"),
        cost_increase_pct=Decimal("10"),
        extra_delay_days=15,
        stock_increase_pct=Decimal("20"),
    ),
    "Severe crisis": StressParameters(
        sales_decline_pct=Decimal("30"),
        cost_increase_pct=Decimal("20"),
        extra_delay_days=45,
        stock_increase_pct=Decimal("40"),
    ),
}


def validate_stress_parameters(parameters: StressParameters) -> List[str]:
    """
    Validate stress parameter ranges.

    Validations:
        - 0 <= sales_decline_pct <= 100
        - cost_increase_pct >= -100
        - extra_delay_days >= 0
        - stock_increase_pct >= 0
    """
    errors: List[str] = []
    if not ZERO <= parameters.sales_decline_pct <= HUNDRED:
        errors.append(f"sales_decline_pct must be within 0..100: {parameters.sales_decline_pct}")
    if parameters.cost_increase_pct < -HUNDRED:
        errors.append(f"cost_increase_pct must be >= -100: {parameters.cost_increase_pct}")
    if parameters.extra_delay_days < 0:
        errors.append(f"extra_delay_days must be >= 0: {parameters.extra_delay_days}")
    if parameters.stock_increase_pct < ZERO:
        errors.append(f"stock_increase_pct must be >= 0: {parameters.stock_increase_pct}")
    return errors


def delay_lag_months(extra_delay_days: int) -> int:
    """Months an extra delay pushes receipts (rounded up, unlike channel delays)."""
    return ceil_int(Decimal(extra_delay_days) / DAYS_PER_MONTH)


def production_factor(parameters: StressParameters) -> Decimal:
    """Multiplier applied to base production outflows (HT and VAT)."""
    cost = ONE + parameters.cost_increase_pct / HUNDRED
    stock = parameters.stock_increase_pct / HUNDRED
    return (ONE - MATERIALS_SHARE) + MATERIALS_SHARE * cost + MATERIALS_SHARE * stock


def _scale(values: Mapping[str, Decimal], factor: Decimal) -> Dict[str, Decimal]:
    return {key: amount * factor for key, amount in values.items()}


def stress_flows(base: List[MonthFlows], parameters: StressParameters) -> List[MonthFlows]:
    """Apply the perturbations to baseline month flows."""
    decline = ONE - parameters.sales_decline_pct / HUNDRED
    lag = delay_lag_months(parameters.extra_delay_days)
    factor = production_factor(parameters)

    stressed: List[MonthFlows] = []
    for i, flows in enumerate(base):
        source = i - lag
        if source >= 0:
            receipts_ht = _scale(base[source].receipts_ht, decline)
            receipts_vat = _scale(base[source].receipts_vat, decline)
        else:
            receipts_ht = {}
            receipts_vat = {}
        stressed.append(MonthFlows(
            ca_ht=flows.ca_ht * decline,
            receipts_ht=receipts_ht,
            receipts_vat=receipts_vat,
            production_ht=_scale(flows.production_ht, factor),
            production_vat=_scale(flows.production_vat, factor),
            expenses_ht=dict(flows.expenses_ht),
            expenses_vat=flows.expenses_vat,
        ))
    return stressed


def classify_risk(besoin_tresorerie_max: Decimal, mois_tension_critique: Optional[int]) -> str:
    """Step function of the cash need and the first negative month."""
    tension = mois_tension_critique
    if besoin_tresorerie_max > CRITICAL_NEED or (tension is not None and tension <= CRITICAL_MONTH):
        return RISK_CRITICAL
    if besoin_tresorerie_max > HIGH_NEED or (tension is not None and tension <= HIGH_MONTH):
        return RISK_HIGH
    if besoin_tresorerie_max > MEDIUM_NEED or tension is not None:
        return RISK_MEDIUM
    return RISK_LOW


def summarize_stress(
    baseline_rows: List[MonthlyProjectionRow],
    stressed_rows: List[MonthlyProjectionRow],
    parameters: StressParameters,
) -> StressSummary:
    """Derive cash need, tension month, impacts, recovery and risk tier."""
    cumuls = [row.cumul for row in stressed_rows]
    lowest = min(cumuls) if cumuls else ZERO
    besoin = -lowest if lowest < ZERO else ZERO

    tension = next((i + 1 for i, value in enumerate(cumuls) if value < ZERO), None)

    recovery = None
    if tension is not None:
        recovered = next(
            (i + 1 for i in range(tension - 1, len(cumuls)) if cumuls[i] >= ZERO), None
        )
        if recovered is not None:
            recovery = recovered - tension

    impact_ca = dsum(
        base.variation_tresorerie - stress.variation_tresorerie
        for base, stress in zip(baseline_rows, stressed_rows)
    )
    impact_couts = dsum(
        row.decaissements_production_ttc * MATERIALS_SHARE * parameters.cost_increase_pct / HUNDRED
        for row in baseline_rows
    )

    return StressSummary(
        besoin_tresorerie_max=besoin,
        mois_tension_critique=tension,
        impact_total_ca=impact_ca,
        impact_total_couts=impact_couts,
        delai_recuperation=recovery,
        risk_level=classify_risk(besoin, tension),
    )


def run_stress(
    baseline: ProjectionOutput,
    parameters: StressParameters,
    name: str = "",
) -> StressScenario:
    """
    Re-derive a baseline projection under one set of perturbations.

    Args:
        baseline: Output of project_cash_flow()
        parameters: Perturbation magnitudes
        name: Scenario label

    Returns:
        A new StressScenario snapshot

    Raises:
        StressParameterError: parameters out of range, or the baseline
            carries boundary errors
    """
    errors = validate_stress_parameters(parameters)
    if baseline.errors:
        errors.append("Baseline projection has errors; stress run refused")
    if errors:
        raise StressParameterError("; ".join(errors))

    logger.debug("Running stress scenario %r: %s", name, parameters)

    base_rows = list(baseline.rows)
    stressed = stress_flows([flows_from_row(row) for row in base_rows], parameters)
    rows = accumulate_rows(
        [row.month for row in base_rows],
        stressed,
        baseline.vat_settlement_lag_months,
        baseline.initial_cash,
    )

    months = tuple(
        StressMonth(
            month=base.month,
            mois=i + 1,
            cash_flow_base=base.variation_tresorerie,
            cash_flow_stress=stress.variation_tresorerie,
            cumul_base=base.cumul,
            cumul_stress=stress.cumul,
        )
        for i, (base, stress) in enumerate(zip(base_rows, rows))
    )

    return StressScenario(
        name=name,
        parameters=parameters,
        rows=tuple(rows),
        months=months,
        summary=summarize_stress(base_rows, rows, parameters),
        created_at=datetime.now().strftime("%Y-%m-%d %H:%M:%S"),
    )


def compare_stress_scenarios(
    baseline: ProjectionOutput,
    scenarios: Mapping[str, StressParameters],
) -> List[StressScenario]:
    """Run each named scenario independently against the same baseline."""
    return [run_stress(baseline, parameters, name) for name, parameters in scenarios.items()]


def parameters_from_dict(data: Mapping) -> StressParameters:
    return StressParameters(
        sales_decline_pct=to_decimal(data.get("sales_decline_pct", 0)),
        cost_increase_pct=to_decimal(data.get("cost_increase_pct", 0)),
        extra_delay_days=int(data.get("extra_delay_days", 0)),
        stock_increase_pct=to_decimal(data.get("stock_increase_pct", 0)),
    )


def scenario_to_dict(scenario: StressScenario) -> dict:
    """Plain-data snapshot of a stress run (inputs, summary, cumulative series)."""
    p = scenario.parameters
    s = scenario.summary
    return {
        "name": scenario.name,
        "created_at": scenario.created_at,
        "parameters": {
            "sales_decline_pct": str(p.sales_decline_pct),
            "cost_increase_pct": str(p.cost_increase_pct),
            "extra_delay_days": p.extra_delay_days,
            "stock_increase_pct": str(p.stock_increase_pct),
        },
        "summary": {
            "besoin_tresorerie_max": str(s.besoin_tresorerie_max),
            "mois_tension_critique": s.mois_tension_critique,
            "impact_total_ca": str(s.impact_total_ca),
            "impact_total_couts": str(s.impact_total_couts),
            "delai_recuperation": s.delai_recuperation,
            "risk_level": s.risk_level,
        },
        "cumul": [str(row.cumul) for row in scenario.rows],
    }


def save_scenario_snapshot(scenario: StressScenario, path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", encoding="utf-8") as handle:
        yaml.safe_dump(scenario_to_dict(scenario), handle, sort_keys=False)


def load_scenario_snapshot(path: Path) -> SavedScenario:
    with open(path, "r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle) or {}
    summary = data.get("summary", {})
    return SavedScenario(
        name=data.get("name", ""),
        parameters=parameters_from_dict(data.get("parameters", {})),
        summary=StressSummary(
            besoin_tresorerie_max=to_decimal(summary.get("besoin_tresorerie_max", 0)),
            mois_tension_critique=summary.get("mois_tension_critique"),
            impact_total_ca=to_decimal(summary.get("impact_total_ca", 0)),
            impact_total_couts=to_decimal(summary.get("impact_total_couts", 0)),
            delai_recuperation=summary.get("delai_recuperation"),
            risk_level=summary.get("risk_level", RISK_LOW),
        ),
        cumul=[to_decimal(v) for v in data.get("cumul", [])],
        created_at=data.get("created_at", ""),
    )


# =============================================================================
# END OF STRESS ENGINE
# =============================================================================
