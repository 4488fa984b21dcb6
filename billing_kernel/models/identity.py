"""
Module: billing_kernel.models.identity
Responsibility: ORM persistence for time-ranged customer aliases.
Architecture position: Kernel > Models.  May import from db/base.py only.

An alias number (e.g. the printed number on an old boleta, or the
"-ANTERIOR" account left behind by a transfer) resolves to exactly one
customer on any given date.  Resolution itself is a pure function in
billing_engines.identity.

Invariants enforced:
    - effective_from <= effective_to when effective_to is set.
    - Ranges for the same alias_number never overlap (checked by
      IdentityService before insert).
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class CustomerAlias(TrackedBase):
    """An alias number mapped to a customer over an inclusive date range."""

    __tablename__ = "customer_aliases"

    __table_args__ = (
        Index("idx_alias_number_dates", "alias_number", "effective_from"),
        Index("idx_alias_customer", "customer_id"),
    )

    alias_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    effective_from: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    # None = open-ended
    effective_to: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    note: Mapped[str | None] = mapped_column(
        String(500),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<CustomerAlias {self.alias_number} -> {self.customer_id} "
            f"{self.effective_from}..{self.effective_to or 'open'}>"
        )
