"""
Module: billing_kernel.models.repactacion
Responsibility: ORM persistence for debt-restructuring plans
    ("repactaciones").
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - total_installments >= 1; amounts are positive.
    - Plans are month-granular; the day of start_date is ignored.
    - actual_end_date, when set, closes the plan early: periods starting
      after it carry no installment.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import Date, ForeignKey, Index, Integer, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from billing_kernel.db.base import TrackedBase, UUIDString


class Repactacion(TrackedBase):
    """A multi-installment agreement replacing a lump-sum debt."""

    __tablename__ = "repactaciones"

    __table_args__ = (
        UniqueConstraint("agreement_number", name="uq_repactacion_agreement"),
        Index("idx_repactacion_customer", "customer_id"),
    )

    customer_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("customers.id"),
        nullable=False,
    )

    agreement_number: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
    )

    start_date: Mapped[date] = mapped_column(
        Date,
        nullable=False,
    )

    total_installments: Mapped[int] = mapped_column(
        Integer,
        nullable=False,
    )

    # None = first installment uses the regular amount
    first_installment_amount: Mapped[Decimal | None] = mapped_column(
        nullable=True,
    )

    installment_amount: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    original_debt: Mapped[Decimal] = mapped_column(
        nullable=False,
    )

    actual_end_date: Mapped[date | None] = mapped_column(
        Date,
        nullable=True,
    )

    def __repr__(self) -> str:
        return f"<Repactacion {self.agreement_number}: {self.total_installments} cuotas>"
