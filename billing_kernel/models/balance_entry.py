"""
Module: billing_kernel.models.balance_entry
Responsibility: ORM persistence for opening balances ("saldos iniciales")
    and credit notes ("notas de crédito").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - kind is a BalanceEntryKind value.
    - Opening balances are signed and non-zero (negative = credit); a
      customer has at most one, checked by the orchestrator under the
      customer lock.
    - Credit note amounts are positive.
    - Rows are append-only; the ledger projection reads every row.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class BalanceEntry(TrackedBase):
    """A ledger debit or credit that is neither an invoice nor a payment."""

    __tablename__ = "balance_entries"

    __table_args__ = (
        Index("idx_balance_entry_customer", "customer_id", "entry_date"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    kind: Mapped[str] = mapped_column(
        String(20),
        nullable=False,
    )

    amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    entry_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # Credit note folio or migration batch identifier
    reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    reason: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<BalanceEntry {self.kind} {self.amount} on {self.entry_date}>"
