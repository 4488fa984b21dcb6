"""
Config -> Engine Bridges.

Convert configuration artifacts into the plain inputs the engines take.
These live in billing_config (the producer) because the kernel must
NEVER import billing_config.

Usage:
    from billing_config import get_active_config, get_tariff
    from billing_config.bridges import build_subsidy_catalog, to_tariff_rates

    config = get_active_config()
    rates = to_tariff_rates(get_tariff(period_start, config))
    catalog = build_subsidy_catalog(config, period_start)
"""

from __future__ import annotations

from datetime import date
from decimal import Decimal

from billing_config.schema import BillingConfigurationSet, SubsidyClassDef, TariffVersion
from billing_engines.tariff import SubsidyClass, TariffRates


def to_tariff_rates(tariff: TariffVersion) -> TariffRates:
    """
    Build engine TariffRates from a tariff version.

    The combined structure is carried as the sewage rate with a zero
    treatment rate, so the subsidy base (sum of per-m3 rates) is the same.
    """
    if tariff.is_combined:
        sewage_rate = tariff.combined_sewage_treatment_rate
        treatment_rate = Decimal("0")
    else:
        sewage_rate = tariff.sewage_rate
        treatment_rate = tariff.treatment_rate
    return TariffRates(
        fixed_charge=tariff.fixed_charge,
        water_rate=tariff.water_rate,
        sewage_rate=sewage_rate,
        treatment_rate=treatment_rate,
        dispatch_cost=tariff.dispatch_cost,
        vat_rate=tariff.vat_rate,
    )


def to_subsidy_class(definition: SubsidyClassDef) -> SubsidyClass:
    return SubsidyClass(
        code=definition.code,
        threshold_m3=definition.threshold_m3,
        multiplier=definition.multiplier,
        percentage=definition.percentage,
    )


def build_subsidy_catalog(
    config: BillingConfigurationSet, as_of: date
) -> dict[str, SubsidyClass]:
    """All subsidy classes effective on ``as_of``, keyed by class code."""
    for policy in config.subsidy_policies:
        if policy.covers(as_of):
            return {c.code: to_subsidy_class(c) for c in policy.classes}
    return {}
