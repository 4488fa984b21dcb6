"""
Module: billing_kernel.models.customer
Responsibility: ORM persistence for cooperative customers and the cached
    ledger projection (balance, credit available) derived by reconciliation.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - customer_number is unique (uq_customer_number).
    - balance and credit_available are projections written ONLY by the
      ReconciliationOrchestrator; they are never edited by hand.
    - ledger_version increments on every reconciliation commit.  The
      orchestrator compares it against the value read under lock and raises
      LedgerConflictError on mismatch (lost-update protection).

Failure modes:
    - CustomerNotFoundError when a lookup by id fails.
    - CustomerInactiveError when a payment targets an inactive customer.

Audit relevance:
    The customer row is the serialization point for every ledger-mutating
    event: the orchestrator locks it (SELECT ... FOR UPDATE) for the whole
    read-recompute-write cycle.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import Boolean, DateTime, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase


class Customer(TrackedBase):
    """
    A cooperative member with a water connection ("socio").

    Guarantees:
        - Never physically merged; historical identities are resolved
          through CustomerAlias rows.
        - balance may be negative (customer in credit).
    """

    __tablename__ = "customers"

    __table_args__ = (
        UniqueConstraint("customer_number", name="uq_customer_number"),
        Index("idx_customer_active", "is_active"),
    )

    # Printed account number ("número de socio")
    customer_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    name: Mapped[str] = mapped_column(
        String(255),
        nullable=False,
    )

    is_active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        nullable=False,
    )

    # Ledger projection: total due minus total completed payments
    balance: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    # Completed payments not absorbed by any invoice
    credit_available: Mapped[Decimal] = mapped_column(
        default=Decimal("0"),
        nullable=False,
    )

    ledger_version: Mapped[int] = mapped_column(
        Integer,
        default=0,
        nullable=False,
    )

    last_reconciled_at: Mapped[datetime | None] = mapped_column(
        DateTime(timezone=True),
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Customer {self.customer_number}: balance={self.balance}>"
