"""
RepactacionService -- debt-restructuring plans.

Responsibility:
    Create plans, close them early, and report the installments due for a
    billing period through billing_engines.repactacion.
"""

from datetime import date
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_engines.repactacion import (
    InstallmentDue,
    PlanStatus,
    RepactacionPlan,
    describe_plan,
    installment_due,
)
from billing_kernel.exceptions import (
    CustomerNotFoundError,
    InvalidRepactacionError,
    RepactacionNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.models.repactacion import Repactacion
from billing_kernel.services.base import BaseService

logger = get_logger("services.repactacion")


def to_plan(model: Repactacion) -> RepactacionPlan:
    return RepactacionPlan(
        start_date=model.start_date,
        total_installments=model.total_installments,
        installment_amount=Decimal(model.installment_amount),
        original_debt=Decimal(model.original_debt),
        first_installment_amount=(
            Decimal(model.first_installment_amount)
            if model.first_installment_amount is not None
            else None
        ),
        actual_end_date=model.actual_end_date,
        plan_id=str(model.id),
    )


class RepactacionService(BaseService[Repactacion]):
    def create_plan(
        self,
        customer_id: UUID,
        agreement_number: str,
        start_date: date,
        total_installments: int,
        original_debt: Decimal,
        installment_amount: Decimal | None = None,
        first_installment_amount: Decimal | None = None,
        actor_id: str | None = None,
    ) -> Repactacion:
        """
        Raises:
            InvalidRepactacionError: non-positive installment count or
                negative amounts.
        """
        if self.session.get(Customer, customer_id) is None:
            raise CustomerNotFoundError(str(customer_id))

        plan = RepactacionPlan.create(
            start_date=start_date,
            total_installments=total_installments,
            original_debt=original_debt,
            installment_amount=installment_amount,
            first_installment_amount=first_installment_amount,
        )

        model = Repactacion(
            customer_id=customer_id,
            agreement_number=agreement_number,
            start_date=plan.start_date,
            total_installments=plan.total_installments,
            installment_amount=plan.installment_amount,
            first_installment_amount=plan.first_installment_amount,
            original_debt=plan.original_debt,
            created_by=actor_id,
        )
        self.session.add(model)
        self.session.flush()

        logger.info(
            "repactacion_created",
            extra={
                "customer_id": str(customer_id),
                "agreement_number": agreement_number,
                "total_installments": total_installments,
                "original_debt": str(original_debt),
            },
        )
        return model

    def close_early(self, plan_id: UUID, end_date: date, actor_id: str | None = None) -> Repactacion:
        model = self._get(plan_id)
        if end_date < model.start_date:
            raise InvalidRepactacionError("end date precedes start date", str(plan_id))
        model.actual_end_date = end_date
        model.updated_by = actor_id
        self.session.flush()
        logger.info(
            "repactacion_closed_early",
            extra={"plan_id": str(plan_id), "end_date": str(end_date)},
        )
        return model

    def installments_due(self, customer_id: UUID, period_start: date) -> list[InstallmentDue]:
        """Installments of every plan of the customer that fall due in the period."""
        plans = self.session.execute(
            select(Repactacion)
            .where(Repactacion.customer_id == customer_id)
            .order_by(Repactacion.start_date, Repactacion.id)
        ).scalars()
        due = []
        for model in plans:
            result = installment_due(to_plan(model), period_start)
            if result is not None:
                due.append(result)
        return due

    def describe(self, plan_id: UUID, period_start: date) -> PlanStatus:
        return describe_plan(to_plan(self._get(plan_id)), period_start)

    def _get(self, plan_id: UUID) -> Repactacion:
        model = self.session.get(Repactacion, plan_id)
        if model is None:
            raise RepactacionNotFoundError(str(plan_id))
        return model
