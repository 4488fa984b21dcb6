"""
Module: billing_engines.tariff
Responsibility:
    Compute a billing period's itemized water charges, the VAT split and the
    subsidy amount from consumption, tariff rates and an optional subsidy
    class.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain, billing_kernel/exceptions and
    billing_kernel/logging_config.  Tariff rates and subsidy classes arrive
    as plain parameters; the effective-dated configuration that produces
    them lives in billing_config.

Invariants enforced:
    - Subsidy rule (reproduced as observed in production billing):
        rates = water_rate + sewage_rate + treatment_rate
        consumption >  threshold:
            round(((rates * threshold) + fixed_charge) / 2 * multiplier)
        consumption <= threshold:
            round(((consumption / 2) * rates + fixed_charge / 2) * multiplier)
      The comparison is strict, so consumption == threshold uses the second
      branch.  No subsidy class means a subsidy of 0.
    - Rounding is ROUND_HALF_UP to whole pesos.
    - Dispatch cost is part of the subtotal but never of the subsidy base.
    - VAT is computed on the pre-subsidy amount (subsidies are paid by a
      third party and do not reduce the taxable base):
        net = round(gross / (1 + vat_rate)); vat = gross - net.

Failure modes:
    - InvalidTariffError for negative or missing rates.
    - InvalidSubsidyClassError for a non-positive threshold or multiplier.
    - InvalidInputError for negative consumption.

Usage:
    from billing_engines.tariff import TariffRates, SubsidyClass, calculate_charges

    rates = TariffRates(fixed_charge=Decimal("2000"), water_rate=Decimal("500"),
                        sewage_rate=Decimal("300"))
    breakdown = calculate_charges(Decimal("13"), rates,
                                  SubsidyClass("1", Decimal("13"), Decimal("1")))
    breakdown.subsidy_amount  # Decimal("6200")
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import ZERO, round_units
from billing_kernel.exceptions import (
    InvalidInputError,
    InvalidSubsidyClassError,
    InvalidTariffError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.tariff")

TWO = Decimal("2")


@dataclass(frozen=True)
class TariffRates:
    """
    Tariff parameters for one billing period.

    Two rate structures exist: separate sewage and treatment rates, or a
    single combined sewage+treatment rate carried in ``sewage_rate`` with
    ``treatment_rate`` 0.  Either way the subsidy base is the sum of all
    per-m3 rates.
    """

    fixed_charge: Decimal
    water_rate: Decimal
    sewage_rate: Decimal = ZERO
    treatment_rate: Decimal = ZERO
    dispatch_cost: Decimal = ZERO
    vat_rate: Decimal = ZERO

    def __post_init__(self) -> None:
        for name in (
            "fixed_charge",
            "water_rate",
            "sewage_rate",
            "treatment_rate",
            "dispatch_cost",
            "vat_rate",
        ):
            value = getattr(self, name)
            if value is None:
                raise InvalidTariffError(name, "None", "rate is required")
            if value < ZERO:
                raise InvalidTariffError(name, str(value), "rate cannot be negative")

    @property
    def per_m3_rate(self) -> Decimal:
        """Sum of all per-cubic-meter rates (the subsidy rate base)."""
        return self.water_rate + self.sewage_rate + self.treatment_rate


@dataclass(frozen=True)
class SubsidyClass:
    """A subsidy tier: consumption threshold in m3 and benefit multiplier."""

    code: str
    threshold_m3: Decimal
    multiplier: Decimal
    percentage: Decimal | None = None

    def __post_init__(self) -> None:
        if self.threshold_m3 <= ZERO:
            raise InvalidSubsidyClassError(
                self.code, f"threshold must be positive, got {self.threshold_m3}"
            )
        if self.multiplier <= ZERO:
            raise InvalidSubsidyClassError(
                self.code, f"multiplier must be positive, got {self.multiplier}"
            )


@dataclass(frozen=True)
class ChargeBreakdown:
    """
    Itemized charges for one period.

    Guarantees:
        - subtotal == fixed + water + sewage + treatment + dispatch.
        - total_before_subsidy == subtotal + taxable_extras.
        - net_amount + vat_amount == round(total_before_subsidy).
        - total_after_subsidy == total_before_subsidy - subsidy_amount.
    """

    consumption: Decimal
    fixed_charge: Decimal
    water_cost: Decimal
    sewage_cost: Decimal
    treatment_cost: Decimal
    dispatch_cost: Decimal
    subtotal: Decimal
    taxable_extras: Decimal
    total_before_subsidy: Decimal
    net_amount: Decimal
    vat_amount: Decimal
    subsidy_amount: Decimal
    subsidy_class_code: str | None

    @property
    def total_after_subsidy(self) -> Decimal:
        return self.total_before_subsidy - self.subsidy_amount


def consumption_from_readings(previous: Decimal, current: Decimal) -> Decimal:
    """Consumption between two meter readings; a meter swap never bills negative."""
    return max(ZERO, current - previous)


@traced_engine("subsidy", "1.0", fingerprint_fields=("consumption", "rates", "subsidy_class"))
def calculate_subsidy(
    consumption: Decimal,
    rates: TariffRates,
    subsidy_class: SubsidyClass | None,
) -> Decimal:
    """
    Subsidy amount in whole pesos.

    Raises:
        InvalidInputError: If consumption is negative.
    """
    if consumption < ZERO:
        raise InvalidInputError(f"Consumption cannot be negative: {consumption}")
    if subsidy_class is None:
        return ZERO

    base_rate = rates.per_m3_rate
    threshold = subsidy_class.threshold_m3

    if consumption > threshold:
        raw = ((base_rate * threshold) + rates.fixed_charge) / TWO * subsidy_class.multiplier
    else:
        raw = ((consumption / TWO) * base_rate + rates.fixed_charge / TWO) * subsidy_class.multiplier

    return round_units(raw)


def split_vat(gross: Decimal, vat_rate: Decimal) -> tuple[Decimal, Decimal]:
    """Split a VAT-inclusive amount into (net, vat), both in whole pesos."""
    net = round_units(gross / (Decimal("1") + vat_rate))
    vat = round_units(gross - net)
    return net, vat


@traced_engine("tariff", "1.0", fingerprint_fields=("consumption", "rates", "subsidy_class"))
def calculate_charges(
    consumption: Decimal,
    rates: TariffRates,
    subsidy_class: SubsidyClass | None = None,
    taxable_extras: Decimal = ZERO,
) -> ChargeBreakdown:
    """
    Itemize one period's charges.

    Args:
        consumption: Cubic meters consumed, non-negative.
        rates: Tariff effective for the period.
        subsidy_class: Class assigned to the customer on the period start.
        taxable_extras: VAT-inclusive extras billed with the service
            (VAT-applicable fines, reconnection charges).

    Raises:
        InvalidInputError: If consumption or taxable_extras is negative.
    """
    if consumption < ZERO:
        raise InvalidInputError(f"Consumption cannot be negative: {consumption}")
    if taxable_extras < ZERO:
        raise InvalidInputError(f"Taxable extras cannot be negative: {taxable_extras}")

    water_cost = consumption * rates.water_rate
    sewage_cost = consumption * rates.sewage_rate
    treatment_cost = consumption * rates.treatment_rate
    subtotal = (
        rates.fixed_charge + water_cost + sewage_cost + treatment_cost + rates.dispatch_cost
    )
    total_before_subsidy = subtotal + taxable_extras
    net_amount, vat_amount = split_vat(total_before_subsidy, rates.vat_rate)
    subsidy_amount = calculate_subsidy(consumption, rates, subsidy_class)

    logger.debug(
        "charges_calculated",
        extra={
            "consumption": str(consumption),
            "subtotal": str(subtotal),
            "subsidy_amount": str(subsidy_amount),
            "subsidy_class": subsidy_class.code if subsidy_class else None,
        },
    )

    return ChargeBreakdown(
        consumption=consumption,
        fixed_charge=rates.fixed_charge,
        water_cost=water_cost,
        sewage_cost=sewage_cost,
        treatment_cost=treatment_cost,
        dispatch_cost=rates.dispatch_cost,
        subtotal=subtotal,
        taxable_extras=taxable_extras,
        total_before_subsidy=total_before_subsidy,
        net_amount=net_amount,
        vat_amount=vat_amount,
        subsidy_amount=subsidy_amount,
        subsidy_class_code=subsidy_class.code if subsidy_class else None,
    )


def compose_monthly_charge(
    breakdown: ChargeBreakdown,
    installment_amount: Decimal = ZERO,
    non_taxable_extras: Decimal = ZERO,
) -> Decimal:
    """
    The period's own obligation as stored on the invoice.

    net + vat - subsidy, plus any restructuring installment and charges
    outside the VAT base, rounded to whole pesos and never negative.
    """
    total = (
        breakdown.net_amount
        + breakdown.vat_amount
        - breakdown.subsidy_amount
        + installment_amount
        + non_taxable_extras
    )
    return max(ZERO, round_units(total))
