# =============================================================================
# FINPLAN ENGINE - PLAN SETTINGS
# =============================================================================
# Settings snapshot: payment delays, fiscal regime, cash and horizon.
#
# CONVENTION:
# Delay_Months = floor(Delay_Days / 30)
# (a fixed 30-day month, not calendar-accurate)
# =============================================================================

from dataclasses import dataclass, field
from decimal import Decimal
from types import MappingProxyType
from typing import Dict, List, Mapping

from .enums import Channel, parse_channel
from .money import ZERO, to_decimal
from .vat import PERIODICITIES, FiscalRegime, FranchiseRegime, StandardRegime

DAYS_PER_MONTH = 30
RECEIPT_LEDGER_SLOTS = 24
MAX_HORIZON_MONTHS = RECEIPT_LEDGER_SLOTS

REGIME_STANDARD = "standard"
REGIME_FRANCHISE = "franchise"
_REGIME_ALIASES = {
    "assujetti_normal": REGIME_STANDARD,
    "franchise_taxe": REGIME_FRANCHISE,
}


def delay_to_month_shift(days: int) -> int:
    """Whole months a receipt is pushed forward by a delay in days."""
    return int(days) // DAYS_PER_MONTH


@dataclass(frozen=True)
class PlanSettings:
    """Settings snapshot consumed by the projector."""
    regime: FiscalRegime = field(default_factory=StandardRegime)
    payment_delays: Mapping[str, int] = field(default_factory=dict)  # channel value -> days
    supplier_delay_days: int = 0  # informational
    initial_cash: Decimal = ZERO
    vat_settlement_lag_months: int = 1
    horizon_months: int = 12

    def __post_init__(self):
        object.__setattr__(self, "payment_delays", MappingProxyType(dict(self.payment_delays)))

    def delay_days(self, channel: Channel) -> int:
        return int(self.payment_delays.get(channel.value, 0))

    def delay_months(self, channel: Channel) -> int:
        return delay_to_month_shift(self.delay_days(channel))


def load_regime(vat_config: Dict) -> FiscalRegime:
    """
    Build the fiscal regime from the `settings.vat` section.

    Raises:
        ValueError: unknown regime name
    """
    name = str(vat_config.get("regime", REGIME_STANDARD)).strip().lower()
    name = _REGIME_ALIASES.get(name, name)
    periodicity = vat_config.get("periodicity", "monthly")

    if name == REGIME_FRANCHISE:
        return FranchiseRegime(periodicity=periodicity)
    if name == REGIME_STANDARD:
        defaults = StandardRegime()
        reduced = vat_config.get("reduced_rates")
        return StandardRegime(
            standard_rate=to_decimal(vat_config.get("standard_rate"), defaults.standard_rate),
            reduced_rates=(
                tuple(to_decimal(r) for r in reduced) if reduced is not None else defaults.reduced_rates
            ),
            default_sale_rate=to_decimal(
                vat_config.get("default_sale_rate"), defaults.default_sale_rate
            ),
            default_purchase_rate=to_decimal(
                vat_config.get("default_purchase_rate"), defaults.default_purchase_rate
            ),
            periodicity=periodicity,
        )
    raise ValueError(f"Unknown VAT regime: {name}")


def load_settings(assumptions: Dict) -> PlanSettings:
    """
    Load plan settings from assumptions.

    Expected structure in assumptions:
        settings:
          vat: {regime: standard|franchise, default_sale_rate, default_purchase_rate, ...}
          payment_delays: {direct: days, business: days, distributor: days, supplier: days}
          initial_cash: number
          vat_settlement_lag_months: int
          horizon_months: int
    """
    config = assumptions.get("settings", {})

    delays: Dict[str, int] = {}
    supplier_delay = 0
    for key, days in (config.get("payment_delays") or {}).items():
        if str(key).lower() in ("supplier", "fournisseur"):
            supplier_delay = int(days)
            continue
        delays[parse_channel(key).value] = int(days)

    return PlanSettings(
        regime=load_regime(config.get("vat", {})),
        payment_delays=delays,
        supplier_delay_days=supplier_delay,
        initial_cash=to_decimal(config.get("initial_cash", 0)),
        vat_settlement_lag_months=int(config.get("vat_settlement_lag_months", 1)),
        horizon_months=int(config.get("horizon_months", 12)),
    )


def validate_settings(settings: PlanSettings) -> List[str]:
    """
    Validate parameter ranges of a settings snapshot.

    Validations:
        - Payment delays are non-negative
        - Horizon within 1..24 months
        - VAT settlement lag is non-negative
        - VAT rates within [0, 100]; periodicity is known
    """
    errors: List[str] = []

    for channel_key, days in settings.payment_delays.items():
        if days < 0:
            errors.append(f"Negative payment delay for channel {channel_key}: {days}")
    if settings.supplier_delay_days < 0:
        errors.append(f"Negative supplier delay: {settings.supplier_delay_days}")

    if not 1 <= settings.horizon_months <= MAX_HORIZON_MONTHS:
        errors.append(
            f"horizon_months must be within 1..{MAX_HORIZON_MONTHS}: {settings.horizon_months}"
        )
    if settings.vat_settlement_lag_months < 0:
        errors.append(
            f"Negative vat_settlement_lag_months: {settings.vat_settlement_lag_months}"
        )

    regime = settings.regime
    if regime.periodicity not in PERIODICITIES:
        errors.append(f"Unknown VAT periodicity: {regime.periodicity}")
    if isinstance(regime, StandardRegime):
        rates = [regime.standard_rate, regime.default_sale_rate, regime.default_purchase_rate]
        rates.extend(regime.reduced_rates)
        for rate in rates:
            if not ZERO <= rate <= 100:
                errors.append(f"VAT rate out of range: {rate}")

    return errors


# =============================================================================
# END OF PLAN SETTINGS
# =============================================================================
