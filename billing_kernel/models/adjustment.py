"""
Module: billing_kernel.models.adjustment
Responsibility: ORM persistence for discounts ("descuentos") and fines
    ("multas").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - value > 0; percentage values are in (0, 100].
    - invoice_id None means the adjustment was entered before billing and
      binds to the oldest invoice issued on or after applied_on.
    - Cancellation sets cancelled_at; rows are never deleted.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, DateTime, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class Adjustment(TrackedBase):
    """A discount or fine changing an invoice's amount due."""

    __tablename__ = "adjustments"

    __table_args__ = (
        Index("idx_adjustment_customer", "customer_id", "applied_on"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    invoice_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("invoices.id"),
        nullable=True,
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    value_type: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    value: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    applied_on: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    cancelled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Adjustment {self.kind} {self.value_type}={self.value}>"
