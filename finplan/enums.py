"""Closed sets shared across the engines: sales channels, planning modes, cost kinds."""

from enum import Enum
from typing import Dict


class Channel(str, Enum):
    """Sales channel. Each has its own price tier and payment delay."""
    DIRECT = "direct"
    BUSINESS = "business"
    DISTRIBUTOR = "distributor"


class PlanningMode(str, Enum):
    BUDGET = "budget"
    ACTUAL = "actual"


# Short names used by imported spreadsheets and older plan files.
_CHANNEL_ALIASES: Dict[str, Channel] = {
    "btc": Channel.DIRECT,
    "b2c": Channel.DIRECT,
    "btb": Channel.BUSINESS,
    "b2b": Channel.BUSINESS,
    "distributeur": Channel.DISTRIBUTOR,
}

_MODE_ALIASES: Dict[str, PlanningMode] = {
    "reel": PlanningMode.ACTUAL,
    "real": PlanningMode.ACTUAL,
}

# Component kinds and the cost category each one feeds.
INGREDIENT = "ingredient"
PACKAGING = "packaging"
VARIABLE = "variable"
COMPONENT_KINDS = (INGREDIENT, PACKAGING, VARIABLE)

MATERIALS = "materials"
COST_CATEGORIES = (MATERIALS, PACKAGING, VARIABLE)
KIND_TO_CATEGORY = {
    INGREDIENT: MATERIALS,
    PACKAGING: PACKAGING,
    VARIABLE: VARIABLE,
}


def parse_channel(value) -> Channel:
    """Parse a channel name or alias. Raises ValueError on unknown names."""
    if isinstance(value, Channel):
        return value
    text = str(value).strip().lower()
    if text in _CHANNEL_ALIASES:
        return _CHANNEL_ALIASES[text]
    return Channel(text)


def parse_mode(value) -> PlanningMode:
    if isinstance(value, PlanningMode):
        return value
    text = str(value).strip().lower()
    if text in _MODE_ALIASES:
        return _MODE_ALIASES[text]
    return PlanningMode(text)
