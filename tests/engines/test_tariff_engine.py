"""
Tests for the tariff and subsidy calculator.

Covers:
- Subsidy rule on both sides of the class threshold
- Missing subsidy class
- VAT split on the pre-subsidy amount
- Itemized breakdown and monthly charge composition
- Rate validation
"""

from decimal import Decimal

import pytest

from billing_engines.tariff import (
    SubsidyClass,
    TariffRates,
    calculate_charges,
    calculate_subsidy,
    compose_monthly_charge,
    consumption_from_readings,
    split_vat,
)
from billing_kernel.exceptions import (
    InvalidInputError,
    InvalidSubsidyClassError,
    InvalidTariffError,
)

RATES = TariffRates(
    fixed_charge=Decimal("2000"),
    water_rate=Decimal("500"),
    sewage_rate=Decimal("300"),
)
CLASS_1 = SubsidyClass("1", threshold_m3=Decimal("13"), multiplier=Decimal("1"))


class TestSubsidy:
    def test_at_threshold_uses_per_unit_branch(self):
        """13 m3, threshold 13: (13/2 * 800 + 2000/2) * 1 = 6200."""
        assert calculate_subsidy(Decimal("13"), RATES, CLASS_1) == Decimal("6200")

    def test_above_threshold_is_capped(self):
        """14 m3, threshold 13: ((800 * 13) + 2000) / 2 * 1 = 6200."""
        assert calculate_subsidy(Decimal("14"), RATES, CLASS_1) == Decimal("6200")

    def test_far_above_threshold_same_cap(self):
        assert calculate_subsidy(Decimal("40"), RATES, CLASS_1) == Decimal("6200")

    def test_below_threshold(self):
        # (5/2 * 800 + 1000) = 3000
        assert calculate_subsidy(Decimal("5"), RATES, CLASS_1) == Decimal("3000")

    def test_zero_consumption_still_covers_half_fixed_charge(self):
        assert calculate_subsidy(Decimal("0"), RATES, CLASS_1) == Decimal("1000")

    def test_multiplier_scales_subsidy(self):
        class_2 = SubsidyClass("2", threshold_m3=Decimal("13"), multiplier=Decimal("2"))
        assert calculate_subsidy(Decimal("14"), RATES, class_2) == Decimal("12400")

    def test_no_class_means_no_subsidy(self):
        assert calculate_subsidy(Decimal("13"), RATES, None) == Decimal("0")

    def test_rounds_half_up_to_whole_pesos(self):
        rates = TariffRates(fixed_charge=Decimal("1001"), water_rate=Decimal("1"))
        # (0 + 1001/2) * 1 = 500.5
        assert calculate_subsidy(Decimal("0"), rates, CLASS_1) == Decimal("501")

    def test_treatment_rate_is_part_of_base(self):
        rates = TariffRates(
            fixed_charge=Decimal("2000"),
            water_rate=Decimal("500"),
            sewage_rate=Decimal("200"),
            treatment_rate=Decimal("100"),
        )
        assert calculate_subsidy(Decimal("13"), rates, CLASS_1) == Decimal("6200")

    def test_dispatch_cost_not_part_of_base(self):
        rates = TariffRates(
            fixed_charge=Decimal("2000"),
            water_rate=Decimal("500"),
            sewage_rate=Decimal("300"),
            dispatch_cost=Decimal("900"),
        )
        assert calculate_subsidy(Decimal("13"), rates, CLASS_1) == Decimal("6200")

    def test_negative_consumption_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_subsidy(Decimal("-1"), RATES, CLASS_1)


class TestVatSplit:
    def test_split_sums_to_gross(self):
        net, vat = split_vat(Decimal("12400"), Decimal("0.19"))
        assert net == Decimal("10420")
        assert vat == Decimal("1980")

    def test_zero_rate(self):
        assert split_vat(Decimal("5000"), Decimal("0")) == (Decimal("5000"), Decimal("0"))


class TestCalculateCharges:
    def test_itemized_breakdown(self):
        breakdown = calculate_charges(Decimal("13"), RATES, CLASS_1)

        assert breakdown.water_cost == Decimal("6500")
        assert breakdown.sewage_cost == Decimal("3900")
        assert breakdown.subtotal == Decimal("12400")
        assert breakdown.subsidy_amount == Decimal("6200")
        assert breakdown.subsidy_class_code == "1"
        assert breakdown.total_after_subsidy == Decimal("6200")

    def test_vat_computed_before_subsidy(self):
        rates = TariffRates(
            fixed_charge=Decimal("2000"),
            water_rate=Decimal("500"),
            sewage_rate=Decimal("300"),
            vat_rate=Decimal("0.19"),
        )
        breakdown = calculate_charges(Decimal("13"), rates, CLASS_1)

        assert breakdown.net_amount + breakdown.vat_amount == Decimal("12400")
        assert breakdown.vat_amount == Decimal("1980")

    def test_taxable_extras_enter_vat_base(self):
        breakdown = calculate_charges(Decimal("0"), RATES, None, taxable_extras=Decimal("1500"))
        assert breakdown.total_before_subsidy == Decimal("3500")

    def test_negative_extras_rejected(self):
        with pytest.raises(InvalidInputError):
            calculate_charges(Decimal("1"), RATES, None, taxable_extras=Decimal("-1"))


class TestComposeMonthlyCharge:
    def test_adds_installment_and_non_taxable_extras(self):
        breakdown = calculate_charges(Decimal("13"), RATES, CLASS_1)
        charge = compose_monthly_charge(breakdown, Decimal("10000"), Decimal("500"))
        assert charge == Decimal("16700")

    def test_never_negative(self):
        rates = TariffRates(fixed_charge=Decimal("100"), water_rate=Decimal("0"))
        generous = SubsidyClass("9", threshold_m3=Decimal("10"), multiplier=Decimal("5"))
        breakdown = calculate_charges(Decimal("0"), rates, generous)
        assert compose_monthly_charge(breakdown) == Decimal("0")


class TestValidation:
    def test_negative_rate_rejected(self):
        with pytest.raises(InvalidTariffError, match="water_rate"):
            TariffRates(fixed_charge=Decimal("2000"), water_rate=Decimal("-1"))

    def test_zero_threshold_rejected(self):
        with pytest.raises(InvalidSubsidyClassError):
            SubsidyClass("1", threshold_m3=Decimal("0"), multiplier=Decimal("1"))

    def test_zero_multiplier_rejected(self):
        with pytest.raises(InvalidSubsidyClassError):
            SubsidyClass("1", threshold_m3=Decimal("13"), multiplier=Decimal("0"))


def test_consumption_from_readings_never_negative():
    assert consumption_from_readings(Decimal("120"), Decimal("133")) == Decimal("13")
    assert consumption_from_readings(Decimal("9500"), Decimal("3")) == Decimal("0")
