"""
Module: billing_engines.allocation
Responsibility:
    Allocate a payment across a customer's outstanding invoices strictly
    oldest-first (FIFO) and report the residual credit.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import billing_kernel/domain, billing_kernel/exceptions and
    billing_kernel/logging_config.

Invariants enforced:
    - Conservation: sum(amount_applied) + credit == payment_amount exactly.
      Checked after every run; a violation raises
      ConservationViolationError and is never corrected.
    - FIFO order: invoices absorb payment by (issue_date, invoice_id).
    - applied = min(remaining, owed); an invoice is fully paid when the
      owed amount left is within EPSILON of zero.
    - Allocation stops once remaining is within EPSILON of zero.
    - Residual is surfaced as credit; it is never applied to invoices the
      caller did not pass in.

Failure modes:
    - NonPositivePaymentError when payment_amount <= 0 (nothing allocated).
    - NegativeOwedAmountError when an input invoice owes less than -EPSILON.
    - ConservationViolationError on internal arithmetic failure.

Usage:
    from billing_engines.allocation import FifoAllocator, OutstandingInvoice

    result = FifoAllocator().allocate(
        Decimal("10000"),
        [
            OutstandingInvoice("jan", date(2025, 1, 5), Decimal("5000")),
            OutstandingInvoice("feb", date(2025, 2, 5), Decimal("8000")),
        ],
    )
    result.credit  # Decimal("0")
"""

from __future__ import annotations

import time
from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from billing_engines.tracer import traced_engine
from billing_kernel.domain.values import EPSILON, ZERO, is_negligible
from billing_kernel.exceptions import (
    ConservationViolationError,
    NegativeOwedAmountError,
    NonPositivePaymentError,
)
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.allocation")


@dataclass(frozen=True)
class OutstandingInvoice:
    """
    An invoice with the amount it still owes before this payment.

    Guarantees:
        - ``sort_key`` is the FIFO ordering key (rank, issue_date, invoice_id).
    """

    invoice_id: str
    issue_date: date
    amount_owed: Decimal
    # 0 for an opening debt, which predates every invoice
    rank: int = 1

    @property
    def sort_key(self) -> tuple[int, date, str]:
        return (self.rank, self.issue_date, self.invoice_id)


@dataclass(frozen=True)
class InvoiceAllocation:
    """
    Result of allocation to a single invoice.

    Guarantees:
        - ``amount_applied > 0``.
        - ``owed_before - amount_applied == owed_after``.
    """

    invoice_id: str
    amount_applied: Decimal
    fully_paid: bool
    owed_before: Decimal
    owed_after: Decimal


@dataclass(frozen=True)
class AllocationResult:
    """
    Complete allocation of one payment.

    Guarantees:
        - ``total_applied + credit == payment_amount``.
        - ``allocations`` are in FIFO order and only include invoices that
          received a positive amount.
    """

    payment_amount: Decimal
    allocations: tuple[InvoiceAllocation, ...]
    credit: Decimal

    @property
    def total_applied(self) -> Decimal:
        return sum((a.amount_applied for a in self.allocations), ZERO)

    @property
    def any_fully_paid(self) -> bool:
        return any(a.fully_paid for a in self.allocations)

    @property
    def has_credit(self) -> bool:
        return self.credit > EPSILON


def fifo_order(invoices: Sequence[OutstandingInvoice]) -> list[OutstandingInvoice]:
    """Sort invoices oldest-first with the invoice id as a stable tie-break."""
    return sorted(invoices, key=lambda inv: inv.sort_key)


def allocate_fifo(
    payment_amount: Decimal,
    invoices: Sequence[OutstandingInvoice],
    epsilon: Decimal = EPSILON,
) -> AllocationResult:
    """
    Core FIFO allocation, untraced.

    Shared by FifoAllocator and the ledger replay so both take exactly the
    same decisions.

    Raises:
        NonPositivePaymentError: payment_amount <= 0.
        NegativeOwedAmountError: an invoice owes less than -epsilon.
        ConservationViolationError: applied + credit != payment_amount.
    """
    if payment_amount <= ZERO:
        raise NonPositivePaymentError(str(payment_amount))

    remaining = payment_amount
    allocations: list[InvoiceAllocation] = []

    for invoice in fifo_order(invoices):
        if invoice.amount_owed < -epsilon:
            raise NegativeOwedAmountError(invoice.invoice_id, str(invoice.amount_owed))
        if is_negligible(remaining, epsilon):
            break
        if invoice.amount_owed <= epsilon:
            continue

        applied = min(remaining, invoice.amount_owed)
        owed_after = invoice.amount_owed - applied
        allocations.append(
            InvoiceAllocation(
                invoice_id=invoice.invoice_id,
                amount_applied=applied,
                fully_paid=is_negligible(owed_after, epsilon),
                owed_before=invoice.amount_owed,
                owed_after=owed_after,
            )
        )
        remaining -= applied

    result = AllocationResult(
        payment_amount=payment_amount,
        allocations=tuple(allocations),
        credit=remaining,
    )

    # INVARIANT: conservation -- applied + credit == payment, exactly
    if result.total_applied + result.credit != payment_amount:
        raise ConservationViolationError(
            str(payment_amount), str(result.total_applied), str(result.credit)
        )

    return result


class FifoAllocator:
    """
    Allocate payments oldest-invoice-first.

    Contract:
        Pure and deterministic: the same inputs always produce the same
        allocation list and ordering.  No I/O, no clock access.
    Non-goals:
        - Does not decide what an invoice owes; callers pass owed amounts
          derived by billing_engines.ledger.
        - Does not persist anything.
    """

    def __init__(self, epsilon: Decimal = EPSILON):
        self._epsilon = epsilon

    @traced_engine("fifo_allocation", "1.0", fingerprint_fields=("payment_amount", "invoices"))
    def allocate(
        self,
        payment_amount: Decimal,
        invoices: Sequence[OutstandingInvoice],
    ) -> AllocationResult:
        """
        Allocate ``payment_amount`` across ``invoices``.

        Args:
            payment_amount: Positive payment amount.
            invoices: Outstanding invoices; order of the input is irrelevant,
                they are processed by (issue_date, invoice_id).

        Returns:
            AllocationResult with per-invoice allocations and residual credit.
        """
        t0 = time.monotonic()
        logger.info(
            "allocation_started",
            extra={
                "payment_amount": str(payment_amount),
                "invoice_count": len(invoices),
            },
        )

        try:
            result = allocate_fifo(payment_amount, invoices, self._epsilon)
        except NonPositivePaymentError:
            logger.warning(
                "allocation_rejected",
                extra={"payment_amount": str(payment_amount)},
            )
            raise

        logger.info(
            "allocation_completed",
            extra={
                "payment_amount": str(payment_amount),
                "total_applied": str(result.total_applied),
                "credit": str(result.credit),
                "invoices_touched": len(result.allocations),
                "duration_ms": round((time.monotonic() - t0) * 1000, 2),
            },
        )
        return result
