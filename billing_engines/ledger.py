"""
Module: billing_engines.ledger
Responsibility:
    Derive each invoice's amount due, amount paid, amount owed and status,
    and the customer's balance and credit, from the full invoice, payment,
    adjustment and balance-entry history.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    Consumes DTO snapshots from billing_kernel.domain.dtos.

Invariants enforced:
    - Pure recomputation: the projection is rebuilt from history on every
      call and never reads cached status fields, so calling it twice on
      the same history gives identical results.
    - Replay agreement: completed payments are replayed in
      (completed_at, payment_id) order through the same FIFO core used by
      billing_engines.allocation, against invoices ordered by
      (issue_date, invoice_id).
    - Balance entries join the FIFO queue as debit lines: an opening debt
      is absorbed before any invoice, a credit note by its date among the
      invoices.  An opening credit is replayed ahead of every payment.
    - amount_due = max(0, monthly_charge + fines - discounts).
    - Status is derived: paid iff owed <= EPSILON, partial iff something
      was paid, otherwise pending.
    - balance = total_due - total_paid (negative when in credit);
      credit_available = completed payments and opening credit not
      absorbed by any line.

Failure modes:
    - InvalidAdjustmentError for an adjustment bound to an invoice that is
      not part of the history.
    - InvalidBalanceEntryError for a credit note that is not positive.
    - NegativeOwedAmountError / ConservationViolationError propagate from
      the FIFO core.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date
from decimal import Decimal

from billing_engines.allocation import InvoiceAllocation, OutstandingInvoice, allocate_fifo
from billing_engines.tracer import traced_engine
from billing_kernel.domain.dtos import (
    AccountStatus,
    AdjustmentKind,
    AdjustmentSnapshot,
    AdjustmentValueType,
    BalanceEntryKind,
    BalanceEntrySnapshot,
    InvoiceSnapshot,
    InvoiceStatus,
    PaymentSnapshot,
    PaymentStatus,
)
from billing_kernel.domain.values import EPSILON, ZERO, is_negligible, round_units
from billing_kernel.exceptions import InvalidAdjustmentError, InvalidBalanceEntryError
from billing_kernel.logging_config import get_logger

logger = get_logger("engines.ledger")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InvoiceLedgerLine:
    """
    One FIFO line: an invoice, or a balance entry when ``entry_kind`` is set.

    Balance-entry lines carry no due date, discounts or fines.
    """

    invoice_id: str
    issue_date: date
    due_date: date | None
    monthly_charge: Decimal
    discounts: Decimal
    fines: Decimal
    amount_due: Decimal
    amount_paid: Decimal
    amount_owed: Decimal
    status: InvoiceStatus
    entry_kind: BalanceEntryKind | None = None

    @property
    def is_paid(self) -> bool:
        return self.status == InvoiceStatus.PAID

    @property
    def is_invoice(self) -> bool:
        return self.entry_kind is None


@dataclass(frozen=True)
class PaymentApplication:
    """How one completed payment, or the opening credit, was absorbed during the replay."""

    payment_id: str
    amount: Decimal
    allocations: tuple[InvoiceAllocation, ...]
    unabsorbed: Decimal


@dataclass(frozen=True)
class LedgerState:
    """
    A customer's ledger as derived from history.

    ``total_paid`` counts completed payments plus any opening credit.

    Guarantees:
        - ``lines`` are in FIFO order.
        - ``balance == total_due - total_paid``.
        - ``sum(line.amount_paid) + credit_available == total_paid``.
    """

    lines: tuple[InvoiceLedgerLine, ...]
    applications: tuple[PaymentApplication, ...]
    total_due: Decimal
    total_paid: Decimal
    credit_available: Decimal
    unbound_adjustments: tuple[str, ...] = ()

    @property
    def balance(self) -> Decimal:
        return self.total_due - self.total_paid

    @property
    def total_owed(self) -> Decimal:
        return sum((line.amount_owed for line in self.lines), ZERO)

    @property
    def account_status(self) -> AccountStatus:
        if self.balance > EPSILON:
            return AccountStatus.IN_ARREARS
        if self.balance < -EPSILON:
            return AccountStatus.IN_CREDIT
        return AccountStatus.CURRENT

    @property
    def next_due_date(self) -> date | None:
        """Earliest due date among invoices not fully paid."""
        dates = [
            line.due_date
            for line in self.lines
            if not line.is_paid and line.due_date is not None
        ]
        return min(dates) if dates else None

    @property
    def invoice_lines(self) -> tuple[InvoiceLedgerLine, ...]:
        return tuple(line for line in self.lines if line.is_invoice)

    def line(self, invoice_id: str) -> InvoiceLedgerLine:
        for line in self.lines:
            if line.invoice_id == invoice_id:
                return line
        raise KeyError(invoice_id)

    def outstanding(self) -> list[OutstandingInvoice]:
        """Lines still owing money, as allocator input."""
        return [
            OutstandingInvoice(
                line.invoice_id, line.issue_date, line.amount_owed, fifo_rank(line.entry_kind)
            )
            for line in self.lines
            if line.amount_owed > EPSILON
        ]


def fifo_rank(entry_kind: BalanceEntryKind | None) -> int:
    """Opening debt is absorbed before everything the system billed."""
    return 0 if entry_kind == BalanceEntryKind.OPENING_BALANCE else 1


def derive_status(amount_paid: Decimal, amount_owed: Decimal) -> InvoiceStatus:
    if is_negligible(amount_owed) or amount_owed < ZERO:
        return InvoiceStatus.PAID
    if amount_paid > EPSILON:
        return InvoiceStatus.PARTIAL
    return InvoiceStatus.PENDING


def adjustment_amount(adjustment: AdjustmentSnapshot, monthly_charge: Decimal) -> Decimal:
    """Peso amount of a discount or fine against an invoice's monthly charge."""
    if adjustment.value_type == AdjustmentValueType.PERCENTAGE:
        return round_units(monthly_charge * adjustment.value / HUNDRED)
    return adjustment.value


def bind_adjustments(
    invoices: Sequence[InvoiceSnapshot],
    adjustments: Sequence[AdjustmentSnapshot],
) -> tuple[dict[str, list[AdjustmentSnapshot]], list[str]]:
    """
    Attach each active adjustment to an invoice.

    Adjustments already bound keep their invoice.  Unbound ones attach to
    the oldest invoice issued on or after ``applied_on``; those with no
    such invoice yet are returned as unbound.  Cancelled adjustments are
    dropped.
    """
    ordered = sorted(invoices, key=lambda inv: inv.sort_key)
    known = {inv.invoice_id for inv in ordered}
    bound: dict[str, list[AdjustmentSnapshot]] = {inv.invoice_id: [] for inv in ordered}
    unbound: list[str] = []

    for adj in sorted(adjustments, key=lambda a: (a.applied_on, a.adjustment_id)):
        if adj.is_cancelled:
            continue
        if adj.invoice_id is not None:
            if adj.invoice_id not in known:
                raise InvalidAdjustmentError(
                    f"adjustment {adj.adjustment_id} references unknown invoice {adj.invoice_id}"
                )
            bound[adj.invoice_id].append(adj)
            continue
        target = next((inv for inv in ordered if inv.issue_date >= adj.applied_on), None)
        if target is None:
            unbound.append(adj.adjustment_id)
        else:
            bound[target.invoice_id].append(adj)

    return bound, unbound


@dataclass(frozen=True)
class _Debit:
    line_id: str
    issue_date: date
    due_date: date | None
    monthly_charge: Decimal
    discounts: Decimal
    fines: Decimal
    amount_due: Decimal
    entry_kind: BalanceEntryKind | None = None

    def outstanding(self, owed: Decimal) -> OutstandingInvoice:
        return OutstandingInvoice(self.line_id, self.issue_date, owed, fifo_rank(self.entry_kind))


def _entry_debits(
    entries: Sequence[BalanceEntrySnapshot],
) -> tuple[list[_Debit], list[BalanceEntrySnapshot]]:
    """Split balance entries into FIFO debit lines and opening credits."""
    debits: list[_Debit] = []
    credits: list[BalanceEntrySnapshot] = []
    for entry in sorted(entries, key=lambda e: e.sort_key):
        if entry.kind == BalanceEntryKind.CREDIT_NOTE and not entry.is_debit:
            raise InvalidBalanceEntryError(
                entry.kind.value, f"entry {entry.entry_id} amount must be positive"
            )
        if entry.is_debit:
            debits.append(
                _Debit(
                    line_id=entry.entry_id,
                    issue_date=entry.entry_date,
                    due_date=None,
                    monthly_charge=entry.amount,
                    discounts=ZERO,
                    fines=ZERO,
                    amount_due=entry.amount,
                    entry_kind=entry.kind,
                )
            )
        elif entry.amount < ZERO:
            credits.append(entry)
    return debits, credits


@traced_engine(
    "ledger", "1.1", fingerprint_fields=("invoices", "payments", "adjustments", "entries")
)
def project_ledger(
    invoices: Sequence[InvoiceSnapshot],
    payments: Sequence[PaymentSnapshot],
    adjustments: Sequence[AdjustmentSnapshot] = (),
    entries: Sequence[BalanceEntrySnapshot] = (),
    epsilon: Decimal = EPSILON,
) -> LedgerState:
    """
    Recompute a customer's ledger from scratch.

    Only COMPLETED payments are replayed.  Payments that find nothing left
    to absorb add to credit_available.
    """
    ordered = sorted(invoices, key=lambda inv: inv.sort_key)
    bound, unbound = bind_adjustments(ordered, adjustments)

    debits, opening_credits = _entry_debits(entries)
    for inv in ordered:
        discounts = ZERO
        fines = ZERO
        for adj in bound[inv.invoice_id]:
            amount = adjustment_amount(adj, inv.monthly_charge)
            if adj.kind == AdjustmentKind.DISCOUNT:
                discounts += amount
            else:
                fines += amount
        debits.append(
            _Debit(
                line_id=inv.invoice_id,
                issue_date=inv.issue_date,
                due_date=inv.due_date,
                monthly_charge=inv.monthly_charge,
                discounts=discounts,
                fines=fines,
                amount_due=max(ZERO, inv.monthly_charge + fines - discounts),
            )
        )
    debits.sort(key=lambda d: d.outstanding(d.amount_due).sort_key)

    owed = {d.line_id: d.amount_due for d in debits}
    applications: list[PaymentApplication] = []
    credit = ZERO
    total_paid = ZERO

    completed = sorted(
        (p for p in payments if p.status == PaymentStatus.COMPLETED),
        key=lambda p: p.sort_key,
    )
    sources = [(e.entry_id, -e.amount) for e in opening_credits]
    sources += [(p.payment_id, p.amount) for p in completed]
    for source_id, amount in sources:
        total_paid += amount
        result = allocate_fifo(
            amount,
            [d.outstanding(owed[d.line_id]) for d in debits],
            epsilon,
        )
        for allocation in result.allocations:
            owed[allocation.invoice_id] = allocation.owed_after
        credit += result.credit
        applications.append(
            PaymentApplication(
                payment_id=source_id,
                amount=amount,
                allocations=result.allocations,
                unabsorbed=result.credit,
            )
        )

    lines = []
    for debit in debits:
        amount_owed = owed[debit.line_id]
        amount_paid = debit.amount_due - amount_owed
        lines.append(
            InvoiceLedgerLine(
                invoice_id=debit.line_id,
                issue_date=debit.issue_date,
                due_date=debit.due_date,
                monthly_charge=debit.monthly_charge,
                discounts=debit.discounts,
                fines=debit.fines,
                amount_due=debit.amount_due,
                amount_paid=amount_paid,
                amount_owed=amount_owed,
                status=derive_status(amount_paid, amount_owed),
                entry_kind=debit.entry_kind,
            )
        )

    state = LedgerState(
        lines=tuple(lines),
        applications=tuple(applications),
        total_due=sum((d.amount_due for d in debits), ZERO),
        total_paid=total_paid,
        credit_available=credit,
        unbound_adjustments=tuple(unbound),
    )

    logger.debug(
        "ledger_projected",
        extra={
            "invoice_count": len(ordered),
            "entry_count": len(entries),
            "payment_count": len(completed),
            "balance": str(state.balance),
            "credit_available": str(state.credit_available),
        },
    )
    return state
