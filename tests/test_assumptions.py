import copy
import dataclasses
from pathlib import Path

import pytest

from finplan.assumptions import (
    deep_merge,
    load_plan_assumptions,
    validate_assumptions,
)
from finplan import assumptions as assumptions_module
from finplan.catalog import load_catalog
from finplan.dates import parse_month
from finplan.expenses import month_offset, ProfessionalExpense
from finplan.settings import load_settings
from finplan.vat import FranchiseRegime


def test_deep_merge_keeps_originals():
    base = {"a": {"x": 1}, "b": 1}
    override = {"a": {"y": 2}}
    merged = deep_merge(base, override)
    assert merged == {"a": {"x": 1, "y": 2}, "b": 1}
    assert base == {"a": {"x": 1}, "b": 1}


def test_deep_merge_replaces_lists():
    merged = deep_merge({"items": [1, 2]}, {"items": [3]})
    assert merged == {"items": [3]}


def test_validate_assumptions_happy_path(widget_assumptions):
    assert validate_assumptions(widget_assumptions) == []


def test_validate_assumptions_missing_section(widget_assumptions):
    del widget_assumptions["sales"]
    assert validate_assumptions(widget_assumptions) == ["Missing required section: sales"]


def test_validate_assumptions_catches_bad_values(widget_assumptions):
    bad = copy.deepcopy(widget_assumptions)
    bad["plan"]["mode"] = "forecast"
    bad["catalog"]["components"][0]["unit_cost"] = -1
    bad["expenses"] = [{"month": "2026-13", "category": "rent", "amount_ht": 10}]
    errors = validate_assumptions(bad)
    assert any("plan.mode" in err for err in errors)
    assert any("unit_cost" in err for err in errors)
    assert any("2026-13" in err for err in errors)


def test_validate_assumptions_reports_loader_errors(widget_assumptions):
    widget_assumptions["settings"]["vat"]["regime"] = "flat_rate"
    errors = validate_assumptions(widget_assumptions)
    assert any(err.startswith("load_settings:") for err in errors)


def test_parse_month():
    assert parse_month("2026-03") == (2026, 3)
    assert parse_month("2026-03-15") == (2026, 3)
    with pytest.raises(ValueError):
        parse_month("March 2026")
    with pytest.raises(ValueError):
        parse_month("2026-00")


def test_section_loaders_are_module_level():
    assert assumptions_module.load_catalog is load_catalog
    assert not hasattr(assumptions_module, "parse_month")


def test_month_offset_uses_shared_parser():
    expense = ProfessionalExpense(month="2027-02-01", category="rent", amount_ht=0)
    assert month_offset(expense, 2026) == 13


def test_catalog_fields_are_the_used_ones(widget_assumptions):
    widget_assumptions["catalog"]["products"][0]["yield_quantity"] = 12
    product = load_catalog(widget_assumptions).get_product("widget")
    assert "yield_quantity" not in {f.name for f in dataclasses.fields(product)}
    assert product.channel_prices == {"direct": 10}


def test_regime_aliases(widget_assumptions):
    widget_assumptions["settings"]["vat"] = {"regime": "franchise_taxe"}
    assert isinstance(load_settings(widget_assumptions).regime, FranchiseRegime)


def test_supplier_delay_is_not_a_channel(widget_assumptions):
    widget_assumptions["settings"]["payment_delays"]["fournisseur"] = 45
    settings = load_settings(widget_assumptions)
    assert settings.supplier_delay_days == 45
    assert "fournisseur" not in settings.payment_delays


def test_load_plan_assumptions_merges_override(tmp_path: Path):
    (tmp_path / "base.yaml").write_text(
        "plan:\n  year: 2026\n  mode: budget\n"
        "settings:\n  initial_cash: 100\n  horizon_months: 12\n",
        encoding="utf-8",
    )
    (tmp_path / "actual.yaml").write_text(
        "plan:\n  mode: actual\n", encoding="utf-8"
    )
    merged = load_plan_assumptions("actual", tmp_path)
    assert merged["plan"] == {"year": 2026, "mode": "actual"}
    assert merged["settings"]["initial_cash"] == 100


def test_load_plan_assumptions_unknown_plan_is_base(tmp_path: Path):
    (tmp_path / "base.yaml").write_text("plan:\n  year: 2026\n", encoding="utf-8")
    assert load_plan_assumptions("missing", tmp_path) == {"plan": {"year": 2026}}


def test_shipped_plans_are_valid(assumptions_dir):
    for plan_id in ("base", "actual", "franchise"):
        assert validate_assumptions(load_plan_assumptions(plan_id, assumptions_dir)) == []
