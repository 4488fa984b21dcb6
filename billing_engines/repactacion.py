"""
Module: billing_engines.repactacion
Responsibility:
    Determine which installment of a debt-restructuring plan
    ("repactación") falls due in a billing period, and its amount.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - installment_number = (target_year - start_year) * 12
                           + (target_month - start_month) + 1
      Plans are month-granular; day-of-month is ignored on both dates.
    - No installment is due when installment_number < 1 or
      > total_installments.
    - Installment 1 uses first_installment_amount when set, otherwise the
      regular installment_amount.
    - A plan closed early (actual_end_date) has no effect on periods that
      start after the close date.

Failure modes:
    - InvalidRepactacionError for non-positive installment counts or
      negative amounts.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import ZERO, first_of_month, months_between, round_units
from billing_kernel.exceptions import InvalidRepactacionError


@dataclass(frozen=True)
class RepactacionPlan:
    """
    A restructuring plan as seen by the scheduler.

    Contract:
        Frozen; amounts are whole pesos.  Use ``create()`` to derive the
        regular installment from the original debt.
    """

    start_date: date
    total_installments: int
    installment_amount: Decimal
    original_debt: Decimal
    first_installment_amount: Decimal | None = None
    actual_end_date: date | None = None
    plan_id: str | None = None

    def __post_init__(self) -> None:
        if self.total_installments < 1:
            raise InvalidRepactacionError(
                f"total_installments must be at least 1, got {self.total_installments}",
                self.plan_id,
            )
        if self.installment_amount < ZERO:
            raise InvalidRepactacionError(
                f"installment_amount cannot be negative: {self.installment_amount}",
                self.plan_id,
            )
        if self.original_debt < ZERO:
            raise InvalidRepactacionError(
                f"original_debt cannot be negative: {self.original_debt}",
                self.plan_id,
            )
        if self.first_installment_amount is not None and self.first_installment_amount < ZERO:
            raise InvalidRepactacionError(
                f"first_installment_amount cannot be negative: {self.first_installment_amount}",
                self.plan_id,
            )
        if self.actual_end_date is not None and self.actual_end_date < self.start_date:
            raise InvalidRepactacionError("actual_end_date precedes start_date", self.plan_id)

    @classmethod
    def create(
        cls,
        start_date: date,
        total_installments: int,
        original_debt: Decimal,
        installment_amount: Decimal | None = None,
        first_installment_amount: Decimal | None = None,
        plan_id: str | None = None,
    ) -> RepactacionPlan:
        """Build a plan; the regular installment defaults to debt / installments."""
        if total_installments < 1:
            raise InvalidRepactacionError(
                f"total_installments must be at least 1, got {total_installments}",
                plan_id,
            )
        if installment_amount is None:
            installment_amount = round_units(original_debt / Decimal(total_installments))
        return cls(
            start_date=start_date,
            total_installments=total_installments,
            installment_amount=installment_amount,
            original_debt=original_debt,
            first_installment_amount=first_installment_amount,
            plan_id=plan_id,
        )

    def scheduled_amount(self, installment_number: int) -> Decimal:
        """Amount of a given installment (1-based)."""
        if installment_number == 1 and self.first_installment_amount is not None:
            return self.first_installment_amount
        return self.installment_amount


@dataclass(frozen=True)
class InstallmentDue:
    installment_number: int
    amount_due: Decimal
    total_installments: int
    original_debt: Decimal


@dataclass(frozen=True)
class PlanStatus:
    """Display information for a plan as of a billing period."""

    current_installment: int
    total_installments: int
    original_debt: Decimal
    remaining_installments: int
    remaining_amount: Decimal
    is_active: bool


def installment_number_for(plan: RepactacionPlan, period_start: date) -> int:
    """Raw installment index for a period; may be < 1 or > total."""
    return months_between(first_of_month(plan.start_date), first_of_month(period_start)) + 1


def _closed_before(plan: RepactacionPlan, period_start: date) -> bool:
    return plan.actual_end_date is not None and first_of_month(period_start) > plan.actual_end_date


@traced_engine("repactacion", "1.0", fingerprint_fields=("plan", "period_start"))
def installment_due(plan: RepactacionPlan, period_start: date) -> InstallmentDue | None:
    """
    The installment due in the period starting ``period_start``, or None.

    Postconditions:
        - Returns None when the period is before the plan, past its last
          installment, or after an early close.
    """
    if _closed_before(plan, period_start):
        return None

    number = installment_number_for(plan, period_start)
    if number < 1 or number > plan.total_installments:
        return None

    return InstallmentDue(
        installment_number=number,
        amount_due=plan.scheduled_amount(number),
        total_installments=plan.total_installments,
        original_debt=plan.original_debt,
    )


def describe_plan(plan: RepactacionPlan, period_start: date) -> PlanStatus:
    """Current installment, what remains to be billed, and whether the plan is active."""
    number = installment_number_for(plan, period_start)
    closed = _closed_before(plan, period_start)

    if closed:
        remaining_installments = 0
        remaining_amount = ZERO
    else:
        billed = min(max(number, 0), plan.total_installments)
        remaining_installments = plan.total_installments - billed
        remaining_amount = sum(
            (plan.scheduled_amount(i) for i in range(billed + 1, plan.total_installments + 1)),
            ZERO,
        )

    return PlanStatus(
        current_installment=number,
        total_installments=plan.total_installments,
        original_debt=plan.original_debt,
        remaining_installments=remaining_installments,
        remaining_amount=remaining_amount,
        is_active=not closed and 1 <= number <= plan.total_installments,
    )
