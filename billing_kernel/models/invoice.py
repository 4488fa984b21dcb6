"""
Module: billing_kernel.models.invoice
Responsibility: ORM persistence for billing-period invoices ("boletas").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - monthly_charge is the period's own obligation and the ONLY amount the
      ledger allocates against.  total_amount is the printed cumulative
      figure (charge plus carried balance) and is informational.
    - status, amount_owed and amount_paid are projections of the payment
      history.  They are written only by the ReconciliationOrchestrator and
      can be rebuilt at any time by replaying completed payments.

Audit relevance:
    Invoices are ordered for payment absorption by (issue_date, id).  The
    idx_invoice_customer_issue index supports that ordering.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.dtos import InvoiceStatus


class Invoice(TrackedBase):
    """
    One boleta for one customer and billing period.

    Guarantees:
        - folio, when present, is unique.
        - At most one invoice per customer and period_from; re-billing a
          period updates that row in place.
        - period_from <= period_to (enforced by the issuing service).
    """

    __tablename__ = "invoices"

    __table_args__ = (
        UniqueConstraint("folio", name="uq_invoice_folio"),
        UniqueConstraint("customer_id", "period_from", name="uq_invoice_customer_period"),
        Index("idx_invoice_customer_issue", "customer_id", "issue_date"),
        Index("idx_invoice_status", "status"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    # Tax document number, assigned by the external document service
    folio: Mapped[str | None] = mapped_column(
        String(50),
        nullable=True,
    )

    period_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    period_to: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    issue_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    due_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    monthly_charge: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    total_amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    # Projection fields (see module docstring)
    status: Mapped[str] = mapped_column(
        String(20),
        default=InvoiceStatus.PENDING.value,
        nullable=False,
    )

    amount_owed: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    amount_paid: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    def __repr__(self) -> str:
        return f"<Invoice {self.folio or self.id} {self.issue_date}: {self.status}>"
