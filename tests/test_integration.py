# =============================================================================
# FINPLAN ENGINE - INTEGRATION TESTS
# =============================================================================
# Tests for full pipeline execution over the shipped plans.
# =============================================================================

import pytest
import sys
import os
from decimal import Decimal

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from finplan.cost_resolver import refresh_sub_recipe_costs, resolve_unit_cost
from finplan.enums import PlanningMode
from finplan.plan import annual_volumes, build_plan, run_plan, run_plan_breakeven, run_plan_stress
from finplan.stress import PREDEFINED_SCENARIOS
from finplan.validation_report import format_report, generate_validation_report


class TestFullPipeline:
    """Tests for full pipeline execution."""

    def test_base_plan_executes(self, assumptions_dir):
        """Base plan should project without errors or warnings."""
        result = run_plan("base", assumptions_dir)
        assert result.errors == []
        assert result.warnings == []
        assert result.year == 2026
        assert result.mode == PlanningMode.BUDGET
        assert len(result.projection.rows) == 12

    def test_base_plan_january(self, assumptions_dir):
        """January: 7.5% of each annual quantity at channel prices."""
        jan = run_plan("base", assumptions_dir).projection.rows[0]
        # 2700 * 1.20 + 900 * 0.90 + 1050 * 1.40 + 450 * 0.95
        assert jan.ca_ht == Decimal("5947.5")
        # Only the direct channel (no delay) is received in January
        assert jan.encaissements_ht == Decimal("4710")
        assert jan.frais_ht == Decimal("2250")

    def test_sub_recipe_costs_resolve_recursively(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        assert result.projection.unit_costs["baguette"] == Decimal("0.278")
        assert result.projection.unit_costs["croissant"] == Decimal("0.06") * Decimal("4.32") + Decimal("0.10")

    def test_invariants_hold_every_month(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        previous = result.projection.initial_cash
        for row in result.projection.rows:
            assert row.treasury_result == row.economic_result + row.net_vat_flow
            assert row.cumul == previous + row.variation_tresorerie
            previous = row.cumul
        assert result.summary.solde_final == previous

    def test_pipeline_is_deterministic(self, bakery_assumptions):
        first = build_plan("base", bakery_assumptions)
        second = build_plan("base", bakery_assumptions)
        assert first.projection.rows == second.projection.rows

    def test_volumes_follow_a_short_horizon(self, widget_assumptions):
        """Six projected months: volumes and revenue cover the same months."""
        widget_assumptions["settings"]["horizon_months"] = 6
        result = build_plan("short", widget_assumptions)
        assert result.errors == []
        assert annual_volumes(result.projection) == {"widget": Decimal(600)}
        assert result.summary.total_ca_ht == 6000

    def test_invalid_plan_stops_before_projection(self, bakery_assumptions):
        bakery_assumptions["settings"]["horizon_months"] = 0
        result = build_plan("broken", bakery_assumptions)
        assert result.errors
        assert result.projection is None


class TestPlanVariants:
    """Tests for override plans."""

    def test_franchise_plan_has_no_vat(self, assumptions_dir):
        result = run_plan("franchise", assumptions_dir)
        assert result.errors == []
        assert result.summary.total_tva_collectee == 0
        assert result.summary.total_tva_deductible == 0
        assert all(row.encaissements_ttc == row.encaissements_ht for row in result.projection.rows)

    def test_actual_plan_uses_recorded_months(self, assumptions_dir):
        result = run_plan("actual", assumptions_dir)
        assert result.errors == []
        assert result.mode == PlanningMode.ACTUAL
        quantities = result.projection.quantities
        assert quantities[("baguette", "direct")][0] == 2410
        assert quantities[("baguette", "direct")][1] == 2550
        assert quantities[("croissant", "distributor")][1] == 410

    def test_actual_price_override(self, assumptions_dir):
        result = run_plan("actual", assumptions_dir)
        jan = result.projection.rows[0]
        # baguette 2410 * 1.20 + 880 * 0.90 + croissant 905 * 1.35 + distributor seasonal
        distributor_jan = result.projection.quantities[("croissant", "distributor")][0]
        expected = (
            Decimal(2410) * Decimal("1.20") + Decimal(880) * Decimal("0.90")
            + Decimal(905) * Decimal("1.35") + distributor_jan * Decimal("0.95")
        )
        assert jan.ca_ht == expected


class TestAnalyses:
    """Tests for stress, breakeven, refresh and validation on the base plan."""

    def test_refresh_sub_recipes(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        refresh = refresh_sub_recipe_costs(result.catalog)
        assert refresh.updated == {"sr_puff_pastry": Decimal("4.32")}
        # Refresh never changes the resolved cost of a consumer
        assert resolve_unit_cost(refresh.catalog, "croissant") == resolve_unit_cost(result.catalog, "croissant")

    def test_all_stress_scenarios(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        runs = run_plan_stress(result)
        assert [run.name for run in runs] == list(PREDEFINED_SCENARIOS)
        for run in runs:
            assert len(run.rows) == 12
            assert run.summary.besoin_tresorerie_max >= 0

    def test_breakeven_over_plan(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        results, summary = run_plan_breakeven(result)
        assert len(results) == 9
        baguette = next(r for r in results if r.product_id == "baguette" and r.channel.value == "direct")
        assert baguette.current_volume == 48000
        assert baguette.fixed_cost_allocated == Decimal(900 + 12 * 1350) / 3
        assert summary.global_breakeven_units > 0

    def test_validation_report_passes(self, assumptions_dir):
        result = run_plan("base", assumptions_dir)
        report = generate_validation_report(
            "base", result.projection, result.settings.regime, run_plan_stress(result)
        )
        assert report.overall_passed, format_report(report)
        assert len(report.stress_checks) == len(PREDEFINED_SCENARIOS)

    def test_cli_validation(self, assumptions_dir, capsys):
        from main import run_validation
        report = run_validation("franchise", assumptions_dir)
        assert report.overall_passed
        assert "OVERALL: PASSED" in capsys.readouterr().out

    def test_cli_comparison(self, assumptions_dir, capsys):
        from main import run_comparison
        comparison = run_comparison("base", "actual", assumptions_dir)
        assert comparison.year == 2026
        assert "BUDGET VS ACTUAL 2026" in capsys.readouterr().out

    def test_cli_financials(self, assumptions_dir, capsys):
        from main import run_financials
        from finplan.financial_plan import PlanStressParameters
        data, scenarios, stress = run_financials(
            "base", assumptions_dir, PlanStressParameters(revenue_variation_pct=Decimal(-10))
        )
        assert [s.label for s in scenarios] == ["breakeven", "viability", "ideal"]
        assert stress.stressed.ca_total == data.ca_total * Decimal("0.9")
        assert "P&L STRESS TEST:" in capsys.readouterr().out
