"""
InvoiceService -- compose a period's charge and issue the boleta.

Responsibility:
    Combine tariff charges, the customer's subsidy class on the period
    start, and any restructuring installments into the monthly charge, and
    persist the invoice.  Tariff rates and the subsidy catalog are passed in
    as plain parameters (see billing_config.bridges); the kernel never
    reads configuration itself.

Invariants enforced:
    - Subsidy class is resolved on the first day of the billing period.
    - monthly_charge = net + VAT - subsidy + installments + non-VAT extras,
      in whole pesos and never negative.
    - Due date defaults to 20 days after the period end.
    - One invoice per customer and billing period.  issue() refuses a
      second one; regenerate() rewrites the existing row and keeps its id
      so bound adjustments and reconciliation history still point at it.

Failure modes:
    - SubsidyClassNotFoundError when the customer's assigned class is not
      in the catalog.
    - InvalidInputError for negative consumption or extras.
    - InvoiceAlreadyIssuedError when the period is already billed.
"""

from collections.abc import Mapping
from dataclasses import dataclass
from datetime import date, timedelta
from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from billing_engines.repactacion import InstallmentDue
from billing_engines.tariff import (
    ChargeBreakdown,
    SubsidyClass,
    TariffRates,
    calculate_charges,
    compose_monthly_charge,
)
from billing_kernel.domain.dtos import InvoiceStatus
from billing_kernel.domain.values import ZERO
from billing_kernel.exceptions import (
    InvalidInputError,
    InvoiceAlreadyIssuedError,
    SubsidyClassNotFoundError,
)
from billing_kernel.logging_config import get_logger
from billing_kernel.models.invoice import Invoice
from billing_kernel.services.base import BaseService
from billing_kernel.services.repactacion_service import RepactacionService
from billing_kernel.services.subsidy_assignment_service import SubsidyAssignmentService

logger = get_logger("services.invoice")

DUE_DAYS_AFTER_PERIOD = 20


@dataclass(frozen=True)
class PeriodCharge:
    breakdown: ChargeBreakdown
    installments: tuple[InstallmentDue, ...]
    non_taxable_extras: Decimal
    monthly_charge: Decimal

    @property
    def installment_total(self) -> Decimal:
        return sum((i.amount_due for i in self.installments), ZERO)


class InvoiceService(BaseService[Invoice]):
    def compute_period_charge(
        self,
        customer_id: UUID,
        period_from: date,
        consumption: Decimal,
        rates: TariffRates,
        subsidy_catalog: Mapping[str, SubsidyClass] | None = None,
        taxable_extras: Decimal = ZERO,
        non_taxable_extras: Decimal = ZERO,
    ) -> PeriodCharge:
        if non_taxable_extras < ZERO:
            raise InvalidInputError(f"Non-taxable extras cannot be negative: {non_taxable_extras}")

        class_code = SubsidyAssignmentService(self.session).class_code_on(customer_id, period_from)
        subsidy_class = None
        if class_code is not None:
            subsidy_class = (subsidy_catalog or {}).get(class_code)
            if subsidy_class is None:
                raise SubsidyClassNotFoundError(class_code, period_from.isoformat())

        breakdown = calculate_charges(consumption, rates, subsidy_class, taxable_extras)
        installments = tuple(
            RepactacionService(self.session).installments_due(customer_id, period_from)
        )
        installment_total = sum((i.amount_due for i in installments), ZERO)
        monthly_charge = compose_monthly_charge(breakdown, installment_total, non_taxable_extras)

        return PeriodCharge(
            breakdown=breakdown,
            installments=installments,
            non_taxable_extras=non_taxable_extras,
            monthly_charge=monthly_charge,
        )

    def find_for_period(self, customer_id: UUID, period_from: date) -> Invoice | None:
        return self.session.execute(
            select(Invoice).where(
                Invoice.customer_id == customer_id,
                Invoice.period_from == period_from,
            )
        ).scalar_one_or_none()

    def issue(
        self,
        customer_id: UUID,
        period_from: date,
        period_to: date,
        charge: PeriodCharge,
        issue_date: date,
        due_date: date | None = None,
        folio: str | None = None,
        carried_balance: Decimal = ZERO,
        actor_id: str | None = None,
    ) -> Invoice:
        """
        Persist a boleta for the period.

        ``carried_balance`` is the customer's balance before this invoice;
        it only affects the printed total_amount.

        Raises:
            InvoiceAlreadyIssuedError: the customer already has an invoice
                starting on ``period_from``.
        """
        if period_to < period_from:
            raise InvalidInputError(f"period_to ({period_to}) precedes period_from ({period_from})")

        existing = self.find_for_period(customer_id, period_from)
        if existing is not None:
            logger.warning(
                "invoice_already_issued",
                extra={
                    "customer_id": str(customer_id),
                    "invoice_id": str(existing.id),
                    "period_from": str(period_from),
                },
            )
            raise InvoiceAlreadyIssuedError(
                str(customer_id), period_from.isoformat(), str(existing.id)
            )

        invoice = Invoice(
            customer_id=customer_id,
            folio=folio,
            period_from=period_from,
            period_to=period_to,
            issue_date=issue_date,
            due_date=due_date or period_to + timedelta(days=DUE_DAYS_AFTER_PERIOD),
            monthly_charge=charge.monthly_charge,
            total_amount=charge.monthly_charge + carried_balance,
            status=InvoiceStatus.PENDING.value,
            amount_owed=charge.monthly_charge,
            amount_paid=ZERO,
            created_by=actor_id,
        )
        self.session.add(invoice)
        self.session.flush()

        logger.info(
            "invoice_issued",
            extra={
                "customer_id": str(customer_id),
                "invoice_id": str(invoice.id),
                "period_from": str(period_from),
                "monthly_charge": str(charge.monthly_charge),
                "subsidy_amount": str(charge.breakdown.subsidy_amount),
                "installment_total": str(charge.installment_total),
            },
        )
        return invoice

    def regenerate(
        self,
        invoice: Invoice,
        period_to: date,
        charge: PeriodCharge,
        issue_date: date,
        due_date: date | None = None,
        folio: str | None = None,
        carried_balance: Decimal = ZERO,
        actor_id: str | None = None,
    ) -> Invoice:
        """
        Overwrite an issued boleta with a recomputed charge.

        The row keeps its id.  amount_owed is reset to the new charge; the
        caller's reconciliation run replaces it with the replayed figure.
        """
        if period_to < invoice.period_from:
            raise InvalidInputError(
                f"period_to ({period_to}) precedes period_from ({invoice.period_from})"
            )

        previous_charge = invoice.monthly_charge
        invoice.period_to = period_to
        invoice.issue_date = issue_date
        invoice.due_date = due_date or period_to + timedelta(days=DUE_DAYS_AFTER_PERIOD)
        invoice.folio = folio if folio is not None else invoice.folio
        invoice.monthly_charge = charge.monthly_charge
        invoice.total_amount = charge.monthly_charge + carried_balance
        invoice.status = InvoiceStatus.PENDING.value
        invoice.amount_owed = charge.monthly_charge
        invoice.amount_paid = ZERO
        invoice.updated_by = actor_id
        self.session.flush()

        logger.info(
            "invoice_regenerated",
            extra={
                "customer_id": str(invoice.customer_id),
                "invoice_id": str(invoice.id),
                "period_from": str(invoice.period_from),
                "previous_charge": str(previous_charge),
                "monthly_charge": str(charge.monthly_charge),
            },
        )
        return invoice
