"""Plan assumptions loading and validation utilities."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List
import copy

import yaml

from .catalog import load_catalog, validate_catalog
from .enums import parse_mode
from .expenses import load_expenses, validate_expenses
from .financial_plan import load_fiscal_parameters, validate_fiscal_parameters
from .sales import load_sales, validate_sales
from .settings import load_settings, validate_settings

REQUIRED_SECTIONS = ["plan", "settings", "catalog", "sales"]


def deep_merge(base: dict, override: dict) -> dict:
    """Deep merge override into base; lists are replaced, not merged."""
    result = copy.deepcopy(base)
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = deep_merge(result[key], value)
        else:
            result[key] = copy.deepcopy(value)
    return result


def load_yaml_file(path: Path) -> dict:
    """Load a YAML file and return an object (empty dict for empty files)."""
    with open(path, "r", encoding="utf-8") as handle:
        return yaml.safe_load(handle) or {}


def load_plan_assumptions(plan_id: str, assumptions_dir: Path) -> dict:
    """Load base assumptions and merge the plan override if present."""
    base = load_yaml_file(assumptions_dir / "base.yaml")
    if plan_id == "base":
        return base

    override_path = assumptions_dir / f"{plan_id}.yaml"
    if override_path.exists():
        return deep_merge(base, load_yaml_file(override_path))
    return base


def validate_assumptions(assumptions: Dict) -> List[str]:
    """
    Validate assumptions structure and parameter ranges.

    Runs the loaders of every section, then their validators, so that a
    plan which passes here can be projected without boundary errors.
    """
    errors: List[str] = []

    for section in REQUIRED_SECTIONS:
        if section not in assumptions:
            errors.append(f"Missing required section: {section}")
    if errors:
        return errors

    plan = assumptions.get("plan", {})
    try:
        int(plan.get("year"))
    except (TypeError, ValueError):
        errors.append(f"plan.year invalid: {plan.get('year')}")
    try:
        parse_mode(plan.get("mode", "budget"))
    except ValueError:
        errors.append(f"plan.mode invalid: {plan.get('mode')}")

    loaders = [
        (load_settings, validate_settings),
        (load_catalog, validate_catalog),
        (load_sales, validate_sales),
        (load_expenses, validate_expenses),
        (load_fiscal_parameters, validate_fiscal_parameters),
    ]
    for loader, validator in loaders:
        try:
            snapshot = loader(assumptions)
        except (TypeError, ValueError, ArithmeticError) as exc:
            errors.append(f"{loader.__name__}: {exc}")
            continue
        errors.extend(validator(snapshot))

    return errors
