"""
Module: billing_kernel.models.subsidy
Responsibility: ORM persistence for time-ranged subsidy class assignments.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - At most one assignment is effective per customer on any date.  This is
      checked by SubsidyAssignmentService under a row lock on the customer;
      the model does not enforce it.
    - subsidy_class_code refers to a class in the effective-dated subsidy
      policy configuration, resolved at charge time.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, String
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class SubsidyAssignment(TrackedBase):
    __tablename__ = "subsidy_assignments"

    __table_args__ = (
        Index("idx_subsidy_customer_dates", "customer_id", "effective_from"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    subsidy_class_code: Mapped[str] = mapped_column(
        String(20),
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

    # Municipal decree number granting the benefit
    decree_reference: Mapped[str | None] = mapped_column(
        String(100),
        nullable=True,
    )

    def __repr__(self) -> str:
        return (
            f"<SubsidyAssignment {self.subsidy_class_code} "
            f"{self.effective_from}..{self.effective_to or 'open'}>"
        )

    def covers(self, on_date: date) -> bool:
        """Check if the assignment is effective on a date."""
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to
