"""
SubsidyAssignmentService -- time-ranged subsidy class assignments.

Responsibility:
    Assign, close and reassign a customer's subsidy class, and answer which
    class is effective on a date.

Invariants enforced:
    - At most one assignment per customer is effective on any date.  Two
      ranges overlap if: from1 <= to2 AND from2 <= to1 (open ends count as
      infinitely late).  The check runs under a row lock on the customer
      so two clerks cannot create overlapping ranges concurrently.
    - Reassignment closes the open range the day before the new one starts;
      it never rewrites history before that date.  An assignment starting
      on the same day is replaced, so a same-day correction needs no
      manual cleanup.

Failure modes:
    - SubsidyAssignmentOverlapError on overlapping ranges.
    - SubsidyAssignmentNotFoundError / CustomerNotFoundError on bad ids.
    - InvalidInputError when a range ends before it starts.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select

from billing_engines.identity import ranges_overlap
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    InvalidInputError,
    SubsidyAssignmentNotFoundError,
    SubsidyAssignmentOverlapError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.models.subsidy import SubsidyAssignment
from billing_kernel.services.base import BaseService

logger = get_logger("services.subsidy_assignment")


class SubsidyAssignmentService(BaseService[SubsidyAssignment]):
    def assign(
        self,
        customer_id: UUID,
        class_code: str,
        effective_from: date,
        effective_to: date | None = None,
        decree_reference: str | None = None,
        actor_id: str | None = None,
    ) -> SubsidyAssignment:
        """
        Open a new assignment.

        Raises:
            InvalidInputError: effective_to precedes effective_from.
            SubsidyAssignmentOverlapError: another assignment covers part
                of the range.
        """
        if effective_to is not None and effective_to < effective_from:
            raise InvalidInputError(
                f"effective_to ({effective_to}) cannot precede effective_from ({effective_from})"
            )

        self._lock_customer(customer_id)
        self._validate_no_overlap(customer_id, effective_from, effective_to)

        assignment = SubsidyAssignment(
            customer_id=customer_id,
            subsidy_class_code=class_code,
            effective_from=effective_from,
            effective_to=effective_to,
            decree_reference=decree_reference,
            created_by=actor_id,
        )
        self.session.add(assignment)
        self.session.flush()

        logger.info(
            "subsidy_assigned",
            extra={
                "customer_id": str(customer_id),
                "subsidy_class": class_code,
                "effective_from": str(effective_from),
                "effective_to": str(effective_to) if effective_to else None,
            },
        )
        return assignment

    def close(
        self, assignment_id: UUID, effective_to: date, actor_id: str | None = None
    ) -> SubsidyAssignment:
        """Set the last effective day of an assignment."""
        assignment = self.session.get(SubsidyAssignment, assignment_id, with_for_update=True)
        if assignment is None:
            raise SubsidyAssignmentNotFoundError(str(assignment_id))
        if effective_to < assignment.effective_from:
            raise InvalidInputError(
                f"effective_to ({effective_to}) cannot precede effective_from "
                f"({assignment.effective_from})"
            )
        assignment.effective_to = effective_to
        assignment.updated_by = actor_id
        self.session.flush()

        logger.info(
            "subsidy_assignment_closed",
            extra={
                "customer_id": str(assignment.customer_id),
                "assignment_id": str(assignment_id),
                "effective_to": str(effective_to),
            },
        )
        return assignment

    def reassign(
        self,
        customer_id: UUID,
        class_code: str,
        effective_from: date,
        decree_reference: str | None = None,
        actor_id: str | None = None,
    ) -> SubsidyAssignment:
        """
        Switch the customer to ``class_code`` from ``effective_from`` on.

        The assignment covering the day before is closed on that day; the
        new assignment is open-ended.  An assignment that starts on
        ``effective_from`` itself is removed and superseded.
        """
        self._lock_customer(customer_id)
        same_day = self._assignment_on(customer_id, effective_from)
        if same_day is not None and same_day.effective_from == effective_from:
            logger.info(
                "subsidy_assignment_replaced",
                extra={
                    "customer_id": str(customer_id),
                    "assignment_id": str(same_day.id),
                    "previous_class": same_day.subsidy_class_code,
                    "subsidy_class": class_code,
                },
            )
            self.session.delete(same_day)
            self.session.flush()

        previous_day = effective_from - timedelta(days=1)
        current = self._assignment_on(customer_id, previous_day)
        if current is not None and (
            current.effective_to is None or current.effective_to >= effective_from
        ):
            self.close(current.id, previous_day, actor_id)
        return self.assign(
            customer_id,
            class_code,
            effective_from,
            decree_reference=decree_reference,
            actor_id=actor_id,
        )

    def class_code_on(self, customer_id: UUID, on_date: date) -> str | None:
        """Subsidy class code effective on ``on_date``, or None."""
        assignment = self._assignment_on(customer_id, on_date)
        return assignment.subsidy_class_code if assignment else None

    def _assignment_on(self, customer_id: UUID, on_date: date) -> SubsidyAssignment | None:
        candidates = self.session.execute(
            select(SubsidyAssignment)
            .where(
                SubsidyAssignment.customer_id == customer_id,
                SubsidyAssignment.effective_from <= on_date,
            )
            .order_by(SubsidyAssignment.effective_from.desc())
        ).scalars()
        for assignment in candidates:
            if assignment.covers(on_date):
                return assignment
        return None

    def _validate_no_overlap(
        self, customer_id: UUID, effective_from: date, effective_to: date | None
    ) -> None:
        existing = self.session.execute(
            select(SubsidyAssignment).where(SubsidyAssignment.customer_id == customer_id)
        ).scalars()
        for assignment in existing:
            if ranges_overlap(
                assignment.effective_from, assignment.effective_to, effective_from, effective_to
            ):
                logger.warning(
                    "subsidy_assignment_overlap",
                    extra={
                        "customer_id": str(customer_id),
                        "existing_from": str(assignment.effective_from),
                    },
                )
                raise SubsidyAssignmentOverlapError(
                    str(customer_id),
                    str(assignment.effective_from),
                    str(assignment.effective_to) if assignment.effective_to else None,
                )

    def _lock_customer(self, customer_id: UUID) -> Customer:
        customer = self.session.execute(
            select(Customer).where(Customer.id == customer_id).with_for_update()
        ).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer
