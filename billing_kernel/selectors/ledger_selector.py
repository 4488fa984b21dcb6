"""
Module: billing_kernel.selectors.ledger_selector
Responsibility: Read a customer's invoices, payments, adjustments and
    balance entries and derive the ledger projection from them.
Architecture position: Kernel > Selectors.

Invariants enforced:
    - Invoices are returned by issue_date ascending, then id; payments by
      completion timestamp.  The engine re-sorts anyway, so ordering here
      is for callers that display the rows.
    - The projection is recomputed from history on every call; the stored
      status/amount_owed fields are never read back as input.
"""

from dataclasses import dataclass
from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_engines.ledger import InvoiceLedgerLine, LedgerState, project_ledger
from billing_kernel.domain.dtos import (
    AccountStatus,
    AdjustmentSnapshot,
    BalanceEntrySnapshot,
    InvoiceSnapshot,
    PaymentSnapshot,
)
from billing_kernel.exceptions import CustomerNotFoundError
from billing_kernel.models.adjustment import Adjustment
from billing_kernel.models.balance_entry import BalanceEntry
from billing_kernel.models.customer import Customer
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.payment import Payment
from billing_kernel.selectors.base import BaseSelector


@dataclass(frozen=True)
class AccountSummary:
    """What the clerk console and the customer portal show for an account."""

    customer_id: UUID
    customer_number: str
    balance: Decimal
    credit_available: Decimal
    account_status: AccountStatus
    next_due_date: date | None
    open_invoices: tuple[InvoiceLedgerLine, ...]
    open_balance_entries: tuple[InvoiceLedgerLine, ...] = ()


class LedgerSelector(BaseSelector[Invoice]):
    """Read-side access to a customer's ledger history."""

    def get_customer(self, customer_id: UUID) -> Customer:
        customer = self.session.execute(
            select(Customer)
            .where(Customer.id == customer_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def invoices(self, customer_id: UUID) -> list[Invoice]:
        return list(
            self.session.execute(
                select(Invoice)
                .where(Invoice.customer_id == customer_id)
                .order_by(Invoice.issue_date, Invoice.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def payments(self, customer_id: UUID) -> list[Payment]:
        return list(
            self.session.execute(
                select(Payment)
                .where(Payment.customer_id == customer_id)
                .order_by(Payment.completed_at, Payment.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def adjustments(self, customer_id: UUID) -> list[Adjustment]:
        return list(
            self.session.execute(
                select(Adjustment)
                .where(Adjustment.customer_id == customer_id)
                .order_by(Adjustment.applied_on, Adjustment.id)
                .execution_options(populate_existing=True)
            ).scalars()
        )

    def balance_entries(self, customer_id: UUID) -> list[BalanceEntry]:
        return list(
            self.session.execute(
                select(BalanceEntry)
                .where(BalanceEntry.customer_id == customer_id)
                .order_by(BalanceEntry.entry_date, BalanceEntry.id)
            ).scalars()
        )

    def find_payment_by_reference(self, customer_id: UUID, reference: str) -> Payment | None:
        return self.session.execute(
            select(Payment)
            .where(Payment.customer_id == customer_id, Payment.reference == reference)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def ledger_state(self, customer_id: UUID) -> LedgerState:
        """Recompute the customer's ledger from its full history."""
        return project_ledger(
            [InvoiceSnapshot.from_model(i) for i in self.invoices(customer_id)],
            [PaymentSnapshot.from_model(p) for p in self.payments(customer_id)],
            [AdjustmentSnapshot.from_model(a) for a in self.adjustments(customer_id)],
            [BalanceEntrySnapshot.from_model(e) for e in self.balance_entries(customer_id)],
        )

    def account_summary(self, customer_id: UUID) -> AccountSummary:
        customer = self.get_customer(customer_id)
        state = self.ledger_state(customer_id)
        return AccountSummary(
            customer_id=customer.id,
            customer_number=customer.customer_number,
            balance=state.balance,
            credit_available=state.credit_available,
            account_status=state.account_status,
            next_due_date=state.next_due_date,
            open_invoices=tuple(line for line in state.invoice_lines if not line.is_paid),
            open_balance_entries=tuple(
                line for line in state.lines if not line.is_invoice and not line.is_paid
            ),
        )
