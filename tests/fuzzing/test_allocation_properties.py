"""
Property-based tests for FIFO allocation and the ledger projection.

Properties checked with generated histories:
- Conservation: applied + credit == payment, exactly
- FIFO: an invoice only receives money once every older invoice is settled
- Determinism: the projection does not depend on input order
- Agreement: allocating one more payment matches a from-scratch replay
- All of the above hold with opening balances and credit notes present
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st
from hypothesis.strategies import composite

from billing_engines.allocation import OutstandingInvoice, allocate_fifo
from billing_engines.ledger import project_ledger
from billing_kernel.domain.dtos import (
    BalanceEntryKind,
    BalanceEntrySnapshot,
    InvoiceSnapshot,
    PaymentSnapshot,
)
from billing_kernel.domain.values import EPSILON, ZERO, is_negligible

amounts = st.decimals(
    min_value=Decimal("1"),
    max_value=Decimal("500000"),
    places=0,
    allow_nan=False,
    allow_infinity=False,
)


@composite
def outstanding_invoices(draw) -> list[OutstandingInvoice]:
    count = draw(st.integers(min_value=0, max_value=8))
    return [
        OutstandingInvoice(
            invoice_id=f"inv-{i:02d}",
            issue_date=date(2024, 1, 1) + timedelta(days=draw(st.integers(0, 400))),
            amount_owed=draw(amounts),
        )
        for i in range(count)
    ]


@composite
def histories(draw) -> tuple[list[InvoiceSnapshot], list[PaymentSnapshot]]:
    invoices = [
        InvoiceSnapshot(
            invoice_id=f"inv-{i:02d}",
            issue_date=date(2024, 1, 5) + timedelta(days=30 * i),
            monthly_charge=draw(amounts),
        )
        for i in range(draw(st.integers(min_value=0, max_value=6)))
    ]
    payments = [
        PaymentSnapshot(
            payment_id=f"pay-{i:02d}",
            amount=draw(amounts),
            completed_at=datetime(2024, 1, 1, tzinfo=timezone.utc) + timedelta(hours=i),
        )
        for i in range(draw(st.integers(min_value=0, max_value=6)))
    ]
    return invoices, payments


@composite
def balance_entries(draw) -> list[BalanceEntrySnapshot]:
    entries = []
    if draw(st.booleans()):
        sign = draw(st.sampled_from([Decimal("1"), Decimal("-1")]))
        entries.append(
            BalanceEntrySnapshot(
                entry_id="opening",
                kind=BalanceEntryKind.OPENING_BALANCE,
                entry_date=date(2024, 1, 1) + timedelta(days=draw(st.integers(0, 200))),
                amount=sign * draw(amounts),
            )
        )
    for i in range(draw(st.integers(min_value=0, max_value=3))):
        entries.append(
            BalanceEntrySnapshot(
                entry_id=f"nc-{i:02d}",
                kind=BalanceEntryKind.CREDIT_NOTE,
                entry_date=date(2024, 1, 1) + timedelta(days=draw(st.integers(0, 200))),
                amount=draw(amounts),
            )
        )
    return entries


class TestAllocationProperties:
    @given(payment=amounts, invoices=outstanding_invoices())
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_conservation(self, payment, invoices):
        result = allocate_fifo(payment, invoices)
        assert result.total_applied + result.credit == payment
        assert result.credit >= ZERO

    @given(payment=amounts, invoices=outstanding_invoices())
    @settings(max_examples=200, suppress_health_check=[HealthCheck.too_slow])
    def test_fifo_order(self, payment, invoices):
        result = allocate_fifo(payment, invoices)
        touched = {a.invoice_id for a in result.allocations}
        ordered = sorted(invoices, key=lambda inv: inv.sort_key)

        # Every invoice older than the last touched one is fully paid
        if result.allocations:
            last = result.allocations[-1].invoice_id
            for inv in ordered:
                if inv.invoice_id == last:
                    break
                assert inv.invoice_id in touched
                applied = next(a for a in result.allocations if a.invoice_id == inv.invoice_id)
                assert applied.fully_paid

    @given(payment=amounts, invoices=outstanding_invoices())
    @settings(max_examples=100)
    def test_credit_only_when_everything_paid(self, payment, invoices):
        result = allocate_fifo(payment, invoices)
        if result.credit > EPSILON:
            assert result.total_applied == sum((i.amount_owed for i in invoices), ZERO)


class TestProjectionProperties:
    @given(history=histories())
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_projection_conserves_payments(self, history):
        invoices, payments = history
        state = project_ledger(invoices, payments)

        absorbed = sum((line.amount_paid for line in state.lines), ZERO)
        assert absorbed + state.credit_available == state.total_paid
        assert state.balance == state.total_due - state.total_paid
        assert all(line.amount_owed >= ZERO for line in state.lines)

    @given(history=histories())
    @settings(max_examples=100)
    def test_projection_independent_of_input_order(self, history):
        invoices, payments = history
        assert project_ledger(invoices, payments) == project_ledger(
            list(reversed(invoices)), list(reversed(payments))
        )

    @given(history=histories(), payment=amounts)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_allocation_agrees_with_replay(self, history, payment):
        invoices, payments = history
        before = project_ledger(invoices, payments)
        allocation = allocate_fifo(payment, before.outstanding())

        new_payment = PaymentSnapshot(
            payment_id="pay-new",
            amount=payment,
            completed_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        after = project_ledger(invoices, [*payments, new_payment])

        for applied in allocation.allocations:
            assert is_negligible(after.line(applied.invoice_id).amount_owed - applied.owed_after)
        assert before.credit_available + allocation.credit == after.credit_available


class TestBalanceEntryProperties:
    @given(history=histories(), entries=balance_entries())
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_conservation_with_entries(self, history, entries):
        invoices, payments = history
        state = project_ledger(invoices, payments, entries=entries)

        absorbed = sum((line.amount_paid for line in state.lines), ZERO)
        assert absorbed + state.credit_available == state.total_paid
        assert all(line.amount_owed >= ZERO for line in state.lines)
        debits = sum((e.amount for e in entries if e.amount > ZERO), ZERO)
        invoiced = sum((line.amount_due for line in state.invoice_lines), ZERO)
        assert state.total_due == invoiced + debits

    @given(history=histories(), entries=balance_entries(), payment=amounts)
    @settings(max_examples=150, suppress_health_check=[HealthCheck.too_slow])
    def test_allocation_agrees_with_replay_with_entries(self, history, entries, payment):
        invoices, payments = history
        before = project_ledger(invoices, payments, entries=entries)
        allocation = allocate_fifo(payment, before.outstanding())

        new_payment = PaymentSnapshot(
            payment_id="pay-new",
            amount=payment,
            completed_at=datetime(2030, 1, 1, tzinfo=timezone.utc),
        )
        after = project_ledger(invoices, [*payments, new_payment], entries=entries)

        for applied in allocation.allocations:
            assert is_negligible(after.line(applied.invoice_id).amount_owed - applied.owed_after)
        assert before.credit_available + allocation.credit == after.credit_available

    @given(history=histories(), entries=balance_entries())
    @settings(max_examples=100)
    def test_opening_debt_settled_first(self, history, entries):
        invoices, payments = history
        state = project_ledger(invoices, payments, entries=entries)

        opening = [line for line in state.lines if line.entry_kind == BalanceEntryKind.OPENING_BALANCE]
        if opening and not opening[0].is_paid:
            assert all(line.amount_paid == ZERO for line in state.lines if line is not opening[0])
