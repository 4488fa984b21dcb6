"""
Billing configuration schema.

Effective-dated, versioned tariff and subsidy configuration.  YAML
fragments are parsed into these types by the loader; bridges translate
them into the plain engine inputs (``TariffRates``, ``SubsidyClass``).

Rates are never module-level constants: historical recalculation uses the
version effective on the period being billed.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal


@dataclass(frozen=True)
class TariffVersion:
    """
    One tariff version.

    Two structures exist.  Older tariffs carry separate sewage and
    treatment rates; newer ones carry a single combined rate in
    ``combined_sewage_treatment_rate`` and leave the separate rates at 0.
    """

    version_id: str
    effective_from: date
    fixed_charge: Decimal
    water_rate: Decimal
    vat_rate: Decimal
    sewage_rate: Decimal = Decimal("0")
    treatment_rate: Decimal = Decimal("0")
    combined_sewage_treatment_rate: Decimal | None = None
    dispatch_cost: Decimal = Decimal("0")
    effective_to: date | None = None

    def covers(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to

    @property
    def is_combined(self) -> bool:
        return self.combined_sewage_treatment_rate is not None


@dataclass(frozen=True)
class SubsidyClassDef:
    """A subsidy tier as configured: benefit percentage, threshold, multiplier."""

    code: str
    percentage: Decimal
    threshold_m3: Decimal
    multiplier: Decimal


@dataclass(frozen=True)
class SubsidyPolicy:
    """The set of subsidy classes in force over a date range."""

    policy_id: str
    effective_from: date
    classes: tuple[SubsidyClassDef, ...]
    effective_to: date | None = None

    def covers(self, as_of: date) -> bool:
        if as_of < self.effective_from:
            return False
        return self.effective_to is None or as_of <= self.effective_to

    def get_class(self, code: str) -> SubsidyClassDef | None:
        for cls in self.classes:
            if cls.code == code:
                return cls
        return None


@dataclass(frozen=True)
class BillingConfigurationSet:
    """All tariff and subsidy versions of one configuration set."""

    config_id: str
    version: int
    currency: str
    tariffs: tuple[TariffVersion, ...]
    subsidy_policies: tuple[SubsidyPolicy, ...]
    checksum: str = ""
