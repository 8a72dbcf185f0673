# =============================================================================
# FINPLAN ENGINE - STRESS ENGINE TESTS
# =============================================================================

import dataclasses

import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finplan.cashflow import project_cash_flow
from finplan.catalog import load_catalog
from finplan.enums import PlanningMode
from finplan.expenses import load_expenses
from finplan.sales import load_sales
from finplan.settings import load_settings
from finplan.stress import (
    PREDEFINED_SCENARIOS, RISK_CRITICAL, RISK_HIGH, RISK_LOW, RISK_MEDIUM,
    StressParameterError, StressParameters, classify_risk, compare_stress_scenarios,
    delay_lag_months, load_scenario_snapshot, production_factor, run_stress,
    save_scenario_snapshot,
)


def _cumuls(rows):
    return [row.cumul for row in rows]


def _project(assumptions):
    return project_cash_flow(
        load_catalog(assumptions), load_sales(assumptions),
        load_settings(assumptions), load_expenses(assumptions),
        2026, PlanningMode.BUDGET,
    )


class TestPerturbations:
    """Tests for each perturbation on the widget baseline."""

    def test_zero_parameters_reproduce_baseline(self, widget_projection):
        scenario = run_stress(widget_projection, StressParameters())
        assert _cumuls(scenario.rows) == _cumuls(widget_projection.rows)
        assert all(month.ecart == 0 for month in scenario.months)

    def test_full_decline_removes_all_receipts(self, widget_projection):
        scenario = run_stress(widget_projection, StressParameters(sales_decline_pct=Decimal(100)))
        assert all(row.encaissements_ttc == 0 for row in scenario.rows)
        assert scenario.rows[-1].cumul == Decimal(-4800)
        assert scenario.summary.besoin_tresorerie_max == 4800
        assert scenario.summary.impact_total_ca == Decimal(11060)

    def test_extra_delay_shifts_receipts(self, widget_projection):
        """30 extra days: January sales reach the bank in March."""
        scenario = run_stress(widget_projection, StressParameters(extra_delay_days=30))
        assert scenario.rows[1].encaissements_ttc == 0
        assert scenario.rows[2].encaissements_ttc == 1060
        assert _cumuls(scenario.rows)[:4] == [-400, -800, -140, 460]
        assert scenario.summary.besoin_tresorerie_max == 800
        assert scenario.summary.delai_recuperation == 3

    def test_delay_rounds_up_to_whole_months(self):
        assert delay_lag_months(0) == 0
        assert delay_lag_months(15) == 1
        assert delay_lag_months(30) == 1
        assert delay_lag_months(31) == 2

    def test_cost_increase_hits_materials_share(self):
        assert production_factor(StressParameters(cost_increase_pct=Decimal(10))) == Decimal("1.06")
        assert production_factor(StressParameters(stock_increase_pct=Decimal(50))) == Decimal("1.3")

    def test_cost_increase_on_widget(self, widget_projection):
        scenario = run_stress(widget_projection, StressParameters(cost_increase_pct=Decimal(10)))
        assert scenario.rows[0].decaissements_production_ttc == 424
        assert scenario.summary.impact_total_couts == 288

    def test_expenses_are_not_stressed(self, widget_assumptions):
        widget_assumptions["expenses"] = [{"month": "2026-02", "category": "rent", "amount_ht": 300}]
        baseline = _project(widget_assumptions)
        scenario = run_stress(baseline, PREDEFINED_SCENARIOS["Severe crisis"])
        assert scenario.rows[1].frais_ttc == baseline.rows[1].frais_ttc


class TestStressInvariants:
    """Tests for invariants carried over from the projector."""

    @pytest.mark.parametrize("name", list(PREDEFINED_SCENARIOS))
    def test_reconciliation_holds(self, widget_projection, name):
        scenario = run_stress(widget_projection, PREDEFINED_SCENARIOS[name], name)
        for row in scenario.rows:
            assert row.treasury_result == row.economic_result + row.net_vat_flow

    def test_larger_cost_increase_never_reduces_need(self, widget_projection):
        needs = [
            run_stress(widget_projection, StressParameters(cost_increase_pct=Decimal(pct))).summary.besoin_tresorerie_max
            for pct in (0, 10, 25, 50, 100)
        ]
        assert needs == sorted(needs)

    def test_larger_decline_never_reduces_need(self, widget_projection):
        needs = [
            run_stress(widget_projection, StressParameters(sales_decline_pct=Decimal(pct))).summary.besoin_tresorerie_max
            for pct in (0, 20, 50, 80, 100)
        ]
        assert needs == sorted(needs)

    def test_baseline_is_not_modified(self, widget_projection):
        before = list(widget_projection.rows)
        run_stress(widget_projection, PREDEFINED_SCENARIOS["Severe crisis"])
        assert widget_projection.rows == before

    def test_scenario_is_frozen(self, widget_projection):
        scenario = run_stress(widget_projection, StressParameters(), "base")
        with pytest.raises(dataclasses.FrozenInstanceError):
            scenario.name = "other"


class TestSummary:
    """Tests for the stress summary and risk tiers."""

    def test_baseline_summary(self, widget_projection):
        summary = run_stress(widget_projection, StressParameters()).summary
        assert summary.besoin_tresorerie_max == 400
        assert summary.mois_tension_critique == 1
        assert summary.delai_recuperation == 1
        assert summary.risk_level == RISK_CRITICAL

    def test_never_negative(self, widget_assumptions):
        widget_assumptions["settings"]["initial_cash"] = 1000
        summary = run_stress(_project(widget_assumptions), StressParameters()).summary
        assert summary.besoin_tresorerie_max == 0
        assert summary.mois_tension_critique is None
        assert summary.delai_recuperation is None
        assert summary.risk_level == RISK_LOW

    def test_no_recovery_within_horizon(self, widget_projection):
        summary = run_stress(widget_projection, StressParameters(sales_decline_pct=Decimal(100))).summary
        assert summary.mois_tension_critique == 1
        assert summary.delai_recuperation is None

    def test_classify_risk(self):
        assert classify_risk(Decimal(60000), None) == RISK_CRITICAL
        assert classify_risk(Decimal(0), 2) == RISK_CRITICAL
        assert classify_risk(Decimal(25000), None) == RISK_HIGH
        assert classify_risk(Decimal(0), 3) == RISK_HIGH
        assert classify_risk(Decimal(6000), None) == RISK_MEDIUM
        assert classify_risk(Decimal(0), 6) == RISK_MEDIUM
        assert classify_risk(Decimal(0), None) == RISK_LOW


class TestValidation:
    """Tests for rejected runs."""

    @pytest.mark.parametrize("parameters", [
        StressParameters(sales_decline_pct=Decimal(101)),
        StressParameters(sales_decline_pct=Decimal(-1)),
        StressParameters(cost_increase_pct=Decimal(-101)),
        StressParameters(extra_delay_days=-1),
        StressParameters(stock_increase_pct=Decimal(-5)),
    ])
    def test_out_of_range_parameters(self, widget_projection, parameters):
        with pytest.raises(StressParameterError):
            run_stress(widget_projection, parameters)

    def test_baseline_with_errors_is_refused(self, widget_projection):
        widget_projection.errors.append("broken")
        with pytest.raises(StressParameterError):
            run_stress(widget_projection, StressParameters())


class TestComparisonAndSnapshots:
    """Tests for multi-scenario runs and persistence."""

    def test_compare_runs_every_scenario_in_order(self, widget_projection):
        runs = compare_stress_scenarios(widget_projection, PREDEFINED_SCENARIOS)
        assert [run.name for run in runs] == list(PREDEFINED_SCENARIOS)

    def test_snapshot_round_trip(self, widget_projection, tmp_path):
        scenario = run_stress(widget_projection, PREDEFINED_SCENARIOS["Moderate crisis"], "Moderate crisis")
        path = tmp_path / "snapshots" / "moderate.yaml"
        save_scenario_snapshot(scenario, path)

        saved = load_scenario_snapshot(path)
        assert saved.name == "Moderate crisis"
        assert saved.parameters == scenario.parameters
        assert saved.summary == scenario.summary
        assert saved.cumul == _cumuls(scenario.rows)
