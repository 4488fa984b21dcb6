"""
Module: billing_kernel.models.reconciliation
Responsibility: Append-only audit trail of reconciliation runs.
Architecture position: Kernel > Models.  May import from db/base.py only.

Each ledger-affecting event (payment, reversal, adjustment, invoice,
explicit recompute) that the orchestrator commits leaves exactly one
ReconciliationRecord.  Rows are never updated.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import JSON, ForeignKey, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class ReconciliationRecord(TrackedBase):
    __tablename__ = "reconciliation_records"

    __table_args__ = (
        Index("idx_reconciliation_customer", "customer_id", "ledger_version"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    trigger: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    # Payment, adjustment or invoice that caused the run, if any
    source_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # Version written by this run
    ledger_version: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    balance: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    credit_available: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    total_applied: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    # [{"invoice_id", "amount_applied", "was_fully_paid"}], amounts as strings
    allocations: Mapped[list] = mapped_column(
        JSON,
        default=list,
        nullable=False,
    )

    correlation_id: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<ReconciliationRecord {self.trigger} v{self.ledger_version}>"
