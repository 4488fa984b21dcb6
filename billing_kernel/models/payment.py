"""
Module: billing_kernel.models.payment
Responsibility: ORM persistence for customer payments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - amount > 0 (validated before insert).
    - Only COMPLETED payments feed the ledger projection.
    - A completed payment is immutable except for administrative reversal,
      which sets status REVERSED, reversed_at and reversal_reason.
    - (customer_id, reference) is unique: a gateway reference is recorded
      once per customer.
    - Payments are linked to invoices only through the derived allocation;
      there is deliberately no invoice_id column.
"""

from datetime import datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import DateTime, ForeignKey, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString
from billing_kernel.domain.dtos import PaymentMethod, PaymentStatus


class Payment(TrackedBase):
    """A payment received from a customer (cash desk, transfer or gateway)."""

    __tablename__ = "payments"

    __table_args__ = (
        UniqueConstraint("customer_id", "reference", name="uq_payment_customer_reference"),
        Index("idx_payment_customer_completed", "customer_id", "completed_at"),
        Index("idx_payment_status", "status"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    method: Mapped[str] = mapped_column(
        String(20),
        default=PaymentMethod.CASH.value,
        nullable=False,
    )

    status: Mapped[str] = mapped_column(
        String(20),
        default=PaymentStatus.COMPLETED.value,
        nullable=False,
    )

    # Ordering key for ledger replay
    completed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    # Gateway transaction id or cashier receipt number
    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    reversed_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    reversal_reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    note: Mapped[str | None] = mapped_column(
        String(1000),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Payment {self.id} {self.amount} {self.status}>"

    @property
    def is_completed(self) -> bool:
        return self.status == PaymentStatus.COMPLETED.value
