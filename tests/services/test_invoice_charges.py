"""
Tests for period charge composition and invoice issue.

Uses the default configuration set through the billing_config bridges, the
way the billing run wires tariffs and subsidy classes into the kernel.
"""

from datetime import date
from decimal import Decimal

import pytest
from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError

from billing_config import get_active_config, get_tariff
from billing_config.bridges import build_subsidy_catalog, to_tariff_rates
from billing_kernel.domain.dtos import InvoiceStatus
from billing_kernel.exceptions import (
    InvalidInputError,
    InvoiceAlreadyIssuedError,
    SubsidyClassNotFoundError,
)
from billing_kernel.models.customer import Customer
from billing_kernel.models.invoice import Invoice
from billing_kernel.services.invoice_service import InvoiceService
from billing_kernel.services.repactacion_service import RepactacionService
from billing_kernel.services.subsidy_assignment_service import SubsidyAssignmentService
from tests.conftest import TEST_ACTOR_ID, flat_rates


@pytest.fixture(scope="module")
def config():
    return get_active_config()


def _inputs(config, period_from: date):
    rates = to_tariff_rates(get_tariff(period_from, config))
    return rates, build_subsidy_catalog(config, period_from)


class TestComputePeriodCharge:
    def test_subsidized_customer(self, session, customer, config):
        SubsidyAssignmentService(session).assign(customer.id, "1", date(2024, 1, 1))
        rates, catalog = _inputs(config, date(2024, 5, 1))

        charge = InvoiceService(session).compute_period_charge(
            customer.id, date(2024, 5, 1), Decimal("13"), rates, catalog
        )

        assert charge.breakdown.subtotal == Decimal("12400")
        assert charge.breakdown.subsidy_amount == Decimal("6200")
        assert charge.breakdown.net_amount + charge.breakdown.vat_amount == Decimal("12400")
        assert charge.monthly_charge == Decimal("6200")

    def test_unsubsidized_customer_pays_full_charge(self, session, customer, config):
        rates, catalog = _inputs(config, date(2024, 5, 1))

        charge = InvoiceService(session).compute_period_charge(
            customer.id, date(2024, 5, 1), Decimal("13"), rates, catalog
        )

        assert charge.breakdown.subsidy_amount == Decimal("0")
        assert charge.monthly_charge == Decimal("12400")

    def test_subsidy_class_resolved_on_period_start(self, session, customer, config):
        assignments = SubsidyAssignmentService(session)
        assignments.assign(customer.id, "1", date(2024, 1, 1))
        assignments.reassign(customer.id, "2", date(2024, 6, 15))
        rates, catalog = _inputs(config, date(2024, 6, 1))

        charge = InvoiceService(session).compute_period_charge(
            customer.id, date(2024, 6, 1), Decimal("13"), rates, catalog
        )

        assert charge.breakdown.subsidy_class_code == "1"

    def test_installment_added(self, session, customer, config):
        RepactacionService(session).create_plan(
            customer.id, "R-2025-001", date(2025, 1, 1), 6, Decimal("60000")
        )
        rates, catalog = _inputs(config, date(2025, 3, 1))

        charge = InvoiceService(session).compute_period_charge(
            customer.id, date(2025, 3, 1), Decimal("0"), rates, catalog
        )

        assert charge.installments[0].installment_number == 3
        assert charge.installment_total == Decimal("10000")
        assert charge.monthly_charge == Decimal("12000")

    def test_combined_tariff_structure(self, session, customer, config):
        rates, catalog = _inputs(config, date(2025, 6, 1))

        charge = InvoiceService(session).compute_period_charge(
            customer.id, date(2025, 6, 1), Decimal("10"), rates, catalog
        )

        # 2200 + 10 * 540 + 10 * 330 + 300 dispatch
        assert charge.breakdown.subtotal == Decimal("11200")
        assert charge.breakdown.treatment_cost == Decimal("0")

    def test_class_missing_from_catalog(self, session, customer, config):
        SubsidyAssignmentService(session).assign(customer.id, "9", date(2024, 1, 1))
        rates, catalog = _inputs(config, date(2024, 5, 1))

        with pytest.raises(SubsidyClassNotFoundError):
            InvoiceService(session).compute_period_charge(
                customer.id, date(2024, 5, 1), Decimal("13"), rates, catalog
            )

    def test_negative_non_taxable_extras_rejected(self, session, customer, config):
        rates, catalog = _inputs(config, date(2024, 5, 1))
        with pytest.raises(InvalidInputError):
            InvoiceService(session).compute_period_charge(
                customer.id, date(2024, 5, 1), Decimal("1"), rates, catalog,
                non_taxable_extras=Decimal("-1"),
            )


class TestIssueThroughOrchestrator:
    def test_issue_invoice_with_default_due_date(self, session, orchestrator, customer, config):
        SubsidyAssignmentService(session).assign(customer.id, "1", date(2024, 1, 1))
        session.commit()
        rates, catalog = _inputs(config, date(2024, 5, 1))

        summary = orchestrator.issue_invoice(
            customer.id,
            period_from=date(2024, 5, 1),
            period_to=date(2024, 5, 31),
            consumption=Decimal("13"),
            rates=rates,
            subsidy_catalog=catalog,
            issue_date=date(2024, 6, 3),
            folio="B-000123",
        )

        invoice = session.get(Invoice, summary.source_id)
        assert invoice.monthly_charge == Decimal("6200")
        assert invoice.due_date == date(2024, 6, 20)
        assert invoice.status == InvoiceStatus.PENDING.value
        assert invoice.folio == "B-000123"
        assert summary.new_balance == Decimal("6200")

    def test_printed_total_includes_carried_balance(self, session, orchestrator, customer, bill, config):
        bill(customer.id, date(2024, 5, 3), 4000)
        rates, catalog = _inputs(config, date(2024, 6, 1))

        summary = orchestrator.issue_invoice(
            customer.id,
            period_from=date(2024, 6, 1),
            period_to=date(2024, 6, 30),
            consumption=Decimal("0"),
            rates=rates,
            subsidy_catalog=catalog,
            issue_date=date(2024, 7, 3),
        )

        invoice = session.get(Invoice, summary.source_id)
        assert invoice.monthly_charge == Decimal("2000")
        assert invoice.total_amount == Decimal("6000")
        assert summary.new_balance == Decimal("6000")


def _invoice_count(session, customer_id) -> int:
    return session.execute(
        select(func.count()).select_from(Invoice).where(Invoice.customer_id == customer_id)
    ).scalar_one()


def _rebill_january(orchestrator, customer_id, amount, **kwargs):
    return orchestrator.issue_invoice(
        customer_id,
        period_from=date(2025, 1, 1),
        period_to=date(2025, 1, 31),
        consumption=Decimal("0"),
        rates=flat_rates(amount),
        issue_date=date(2025, 1, 6),
        actor_id=TEST_ACTOR_ID,
        **kwargs,
    )


class TestOneInvoicePerPeriod:
    def test_second_invoice_for_period_rejected(self, session, orchestrator, customer, bill):
        first = bill(customer.id, date(2025, 1, 5), 5000)

        with pytest.raises(InvoiceAlreadyIssuedError) as exc_info:
            bill(customer.id, date(2025, 1, 5), 5000)

        assert exc_info.value.invoice_id == str(first)
        assert exc_info.value.code == "INVOICE_ALREADY_ISSUED"
        assert _invoice_count(session, customer.id) == 1
        stored = session.get(Customer, customer.id, populate_existing=True)
        assert stored.balance == Decimal("5000")
        assert stored.ledger_version == 1

    def test_database_rejects_duplicate_period(self, session, customer, bill):
        bill(customer.id, date(2025, 1, 5), 5000)

        session.add(
            Invoice(
                customer_id=customer.id,
                period_from=date(2025, 1, 1),
                period_to=date(2025, 1, 31),
                issue_date=date(2025, 1, 5),
                monthly_charge=Decimal("5000"),
                total_amount=Decimal("5000"),
                amount_owed=Decimal("5000"),
                amount_paid=Decimal("0"),
            )
        )
        with pytest.raises(IntegrityError):
            session.flush()

    def test_regenerate_replaces_charge_in_place(self, session, orchestrator, customer, bill):
        original = bill(customer.id, date(2025, 1, 5), 5000)
        orchestrator.record_payment(customer.id, Decimal("3000"))

        summary = _rebill_january(orchestrator, customer.id, 8000, replace_existing=True)

        assert summary.source_id == original
        assert summary.new_balance == Decimal("5000")
        assert _invoice_count(session, customer.id) == 1
        invoice = session.get(Invoice, original, populate_existing=True)
        assert invoice.monthly_charge == Decimal("8000")
        assert invoice.total_amount == Decimal("8000")
        assert invoice.amount_paid == Decimal("3000")
        assert invoice.amount_owed == Decimal("5000")
        assert invoice.status == InvoiceStatus.PARTIAL.value
        assert invoice.issue_date == date(2025, 1, 6)

    def test_regenerate_lower_charge_turns_payment_into_credit(
        self, session, orchestrator, customer, bill
    ):
        original = bill(customer.id, date(2025, 1, 5), 5000)
        orchestrator.record_payment(customer.id, Decimal("5000"))

        summary = _rebill_january(orchestrator, customer.id, 3000, replace_existing=True)

        assert summary.credit_available == Decimal("2000")
        assert summary.new_balance == Decimal("-2000")
        invoice = session.get(Invoice, original, populate_existing=True)
        assert invoice.status == InvoiceStatus.PAID.value

    def test_regenerate_carries_balance_of_other_invoices(
        self, session, orchestrator, customer, bill
    ):
        bill(customer.id, date(2024, 12, 5), 4000)
        original = bill(customer.id, date(2025, 1, 5), 5000)

        _rebill_january(orchestrator, customer.id, 6000, replace_existing=True)

        invoice = session.get(Invoice, original, populate_existing=True)
        assert invoice.total_amount == Decimal("10000")

    def test_replace_without_existing_issues_new_invoice(self, session, orchestrator, customer):
        summary = _rebill_january(orchestrator, customer.id, 5000, replace_existing=True)

        assert _invoice_count(session, customer.id) == 1
        assert session.get(Invoice, summary.source_id).monthly_charge == Decimal("5000")
