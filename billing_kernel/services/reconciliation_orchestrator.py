"""
Reconciliation Orchestrator - the only component that mutates ledger state.

On every ledger-affecting event (completed payment, reversal, discount or
fine, new or regenerated invoice, opening balance, credit note, explicit
recompute) the orchestrator runs one read-recompute-write cycle for the
customer:

1. Serialize: in-process customer lock, then SELECT ... FOR UPDATE on the
   customer row; remember its ledger_version.
2. Project the ledger from full history (billing_engines.ledger).
3. Apply the event.  For a new payment, run the FIFO allocator against the
   projected outstanding invoices.
4. Re-project from scratch and check it agrees with the allocator.
5. Persist invoice status / amount_owed / amount_paid, the customer's
   balance and credit, bump ledger_version (optimistic check), and write a
   ReconciliationRecord.
6. Commit, or roll back everything on any failure.

Defines its own transaction boundary.  By default every operation commits
on success and rolls back on failure.  Set auto_commit=False to delegate
transaction control to the caller.

Because each run recomputes from full history rather than applying a
delta, re-running it with no new events changes nothing.
"""

import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from uuid import UUID, uuid4

from sqlalchemy import select, update
from sqlalchemy.orm import Session

from billing_engines.allocation import AllocationResult, FifoAllocator
from billing_engines.ledger import LedgerState
from billing_engines.tariff import SubsidyClass, TariffRates
from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.domain.dtos import (
    AccountStatus,
    AdjustmentKind,
    AdjustmentValueType,
    BalanceEntryKind,
    InvoiceStatus,
    PaymentMethod,
    PaymentStatus,
    ReconciliationTrigger,
)
from billing_kernel.domain.values import EPSILON, ZERO, is_negligible, to_decimal
from billing_kernel.exceptions import (
    AdjustmentNotFoundError,
    ConservationViolationError,
    ConsistencyViolationError,
    CustomerInactiveError,
    CustomerNotFoundError,
    DuplicatePaymentReferenceError,
    InvalidAdjustmentError,
    InvalidBalanceEntryError,
    InvalidPaymentMethodError,
    InvoiceNotFoundError,
    LedgerConflictError,
    NegativeOwedAmountError,
    NonPositivePaymentError,
    OpeningBalanceAlreadyRecordedError,
    PaymentAlreadyReversedError,
    PaymentNotCompletedError,
    PaymentNotFoundError,
    ReplayMismatchError,
)
from billing_kernel.logging_config import LogContext, get_logger
from billing_kernel.models.adjustment import Adjustment
from billing_kernel.models.balance_entry import BalanceEntry
from billing_kernel.models.customer import Customer
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.payment import Payment
from billing_kernel.models.reconciliation import ReconciliationRecord
from billing_kernel.selectors.ledger_selector import LedgerSelector
from billing_kernel.services.customer_lock import DEFAULT_LOCK_REGISTRY, CustomerLockRegistry
from billing_kernel.services.invoice_service import InvoiceService

logger = get_logger("services.reconciliation_orchestrator")

HUNDRED = Decimal("100")


@dataclass(frozen=True)
class InvoiceEffect:
    """
    What a run did to one invoice or debit balance entry.

    ``amount_applied`` is negative when a reversal or a fine took paid
    amount away from the invoice.
    """

    invoice_id: str
    amount_applied: Decimal
    was_fully_paid: bool


@dataclass(frozen=True)
class ReconciliationSummary:
    """Result of one reconciliation run."""

    customer_id: UUID
    trigger: ReconciliationTrigger
    invoices_affected: tuple[InvoiceEffect, ...]
    new_balance: Decimal
    credit_available: Decimal
    account_status: AccountStatus
    ledger_version: int
    source_id: UUID | None = None
    was_duplicate: bool = False

    @property
    def total_applied(self) -> Decimal:
        return sum((e.amount_applied for e in self.invoices_affected), ZERO)


@dataclass
class _EventOutcome:
    source_id: UUID | None = None
    allocation: AllocationResult | None = None
    # invoice_id -> (amount_paid, status) to diff against; None = pre-event projection
    baseline: dict[str, tuple[Decimal, InvoiceStatus]] | None = None
    duplicate_of: UUID | None = None


class ReconciliationOrchestrator:
    """
    Coordinates ledger projection, FIFO allocation and persistence for one
    customer under a serializing transaction.
    """

    def __init__(
        self,
        session: Session,
        clock: Clock | None = None,
        auto_commit: bool = True,
        lock_registry: CustomerLockRegistry | None = None,
        allocator: FifoAllocator | None = None,
    ):
        """
        Args:
            session: SQLAlchemy session; one per thread.
            clock: Clock for timestamps. Defaults to SystemClock.
            auto_commit: If True (default), commits on success and rolls
                back on failure.  If False, the caller manages the
                transaction.
            lock_registry: Customer lock registry; defaults to the
                process-wide registry.
        """
        self._session = session
        self._clock = clock or SystemClock()
        self._auto_commit = auto_commit
        self._locks = lock_registry or DEFAULT_LOCK_REGISTRY
        self._allocator = allocator or FifoAllocator()
        self._selector = LedgerSelector(session)
        self._invoices = InvoiceService(session)

    # ------------------------------------------------------------------
    # Public operations
    # ------------------------------------------------------------------

    def record_payment(
        self,
        customer_id: UUID,
        amount: Decimal | int | str,
        method: PaymentMethod = PaymentMethod.CASH,
        reference: str | None = None,
        completed_at: datetime | None = None,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Record a completed payment and allocate it oldest-invoice-first.

        A gateway ``reference`` already recorded for the customer with the
        same amount is an idempotent success: nothing is written and the
        summary has ``was_duplicate`` set.

        Raises:
            NonPositivePaymentError: amount <= 0 (nothing is written).
            InvalidPaymentMethodError: unknown method (nothing is written).
            CustomerInactiveError: customer is inactive.
            DuplicatePaymentReferenceError: reference reused with a
                different amount.
        """
        try:
            payment_amount = to_decimal(amount)
        except ValueError as exc:
            raise NonPositivePaymentError(str(amount)) from exc
        if payment_amount <= ZERO:
            logger.warning("payment_rejected", extra={"amount": str(payment_amount)})
            raise NonPositivePaymentError(str(payment_amount))
        try:
            method = PaymentMethod(method)
        except ValueError as exc:
            logger.warning("payment_rejected", extra={"method": str(method)})
            raise InvalidPaymentMethodError(str(method)) from exc

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            if not customer.is_active:
                raise CustomerInactiveError(str(customer.id))

            if reference is not None:
                existing = self._selector.find_payment_by_reference(customer.id, reference)
                if existing is not None:
                    if Decimal(existing.amount) != payment_amount:
                        raise DuplicatePaymentReferenceError(reference, str(existing.id))
                    logger.info(
                        "payment_duplicate_reference",
                        extra={"reference": reference, "payment_id": str(existing.id)},
                    )
                    return _EventOutcome(source_id=existing.id, duplicate_of=existing.id)

            allocation = self._allocator.allocate(payment_amount, before.outstanding())

            payment = Payment(
                customer_id=customer.id,
                amount=payment_amount,
                method=method.value,
                status=PaymentStatus.COMPLETED.value,
                completed_at=completed_at or self._clock.now(),
                reference=reference,
                note=note,
                created_by=actor_id,
            )
            self._session.add(payment)
            self._session.flush()

            logger.info(
                "payment_recorded",
                extra={
                    "payment_id": str(payment.id),
                    "amount": str(payment_amount),
                    "method": method.value,
                },
            )
            return _EventOutcome(source_id=payment.id, allocation=allocation)

        return self._run(customer_id, ReconciliationTrigger.PAYMENT, actor_id, apply_event)

    def reverse_payment(
        self,
        payment_id: UUID,
        reason: str,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Reverse a completed payment and recompute the whole ledger.

        FIFO after removing a payment may settle invoices differently, so
        this is a full recomputation rather than an incremental undo.

        Raises:
            PaymentNotFoundError, PaymentAlreadyReversedError,
            PaymentNotCompletedError.
        """
        customer_id = self._session.execute(
            select(Payment.customer_id).where(Payment.id == payment_id)
        ).scalar_one_or_none()
        if customer_id is None:
            raise PaymentNotFoundError(str(payment_id))

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            payment = self._session.get(
                Payment, payment_id, with_for_update=True, populate_existing=True
            )
            if payment.status == PaymentStatus.REVERSED.value:
                raise PaymentAlreadyReversedError(str(payment_id))
            if payment.status != PaymentStatus.COMPLETED.value:
                raise PaymentNotCompletedError(str(payment_id), payment.status)

            payment.status = PaymentStatus.REVERSED.value
            payment.reversed_at = self._clock.now()
            payment.reversal_reason = reason
            payment.updated_by = actor_id
            self._session.flush()

            logger.info(
                "payment_reversed",
                extra={"payment_id": str(payment_id), "amount": str(payment.amount)},
            )
            return _EventOutcome(source_id=payment.id)

        return self._run(
            customer_id,
            ReconciliationTrigger.REVERSAL,
            actor_id,
            apply_event,
            payment_id=str(payment_id),
        )

    def apply_adjustment(
        self,
        customer_id: UUID,
        kind: AdjustmentKind,
        value_type: AdjustmentValueType,
        value: Decimal | int | str,
        applied_on: date | None = None,
        invoice_id: UUID | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Apply a discount or fine.

        Without ``invoice_id`` the adjustment binds to the oldest invoice
        issued on or after ``applied_on`` (today by default), which may be
        a future invoice.

        Raises:
            InvalidAdjustmentError: non-positive value, percentage above
                100, or unknown kind / value type.
            InvoiceNotFoundError: invoice_id is not an invoice of the customer.
        """
        try:
            kind = AdjustmentKind(kind)
            value_type = AdjustmentValueType(value_type)
            adj_value = to_decimal(value)
        except ValueError as exc:
            raise InvalidAdjustmentError(str(exc)) from exc
        if adj_value <= ZERO:
            raise InvalidAdjustmentError(f"value must be positive, got {adj_value}")
        if value_type == AdjustmentValueType.PERCENTAGE and adj_value > HUNDRED:
            raise InvalidAdjustmentError(f"percentage cannot exceed 100, got {adj_value}")

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            if invoice_id is not None:
                invoice = self._session.get(Invoice, invoice_id)
                if invoice is None or invoice.customer_id != customer.id:
                    raise InvoiceNotFoundError(str(invoice_id))

            adjustment = Adjustment(
                customer_id=customer.id,
                invoice_id=invoice_id,
                kind=kind.value,
                value_type=value_type.value,
                value=adj_value,
                applied_on=applied_on or self._clock.today(),
                reason=reason,
                created_by=actor_id,
            )
            self._session.add(adjustment)
            self._session.flush()

            logger.info(
                "adjustment_applied",
                extra={
                    "adjustment_id": str(adjustment.id),
                    "kind": kind.value,
                    "value_type": value_type.value,
                    "value": str(adj_value),
                    "invoice_id": str(invoice_id) if invoice_id else None,
                },
            )
            return _EventOutcome(source_id=adjustment.id)

        return self._run(customer_id, ReconciliationTrigger.ADJUSTMENT, actor_id, apply_event)

    def cancel_adjustment(
        self,
        adjustment_id: UUID,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """Cancel a discount or fine; cancelling twice only recomputes."""
        customer_id = self._session.execute(
            select(Adjustment.customer_id).where(Adjustment.id == adjustment_id)
        ).scalar_one_or_none()
        if customer_id is None:
            raise AdjustmentNotFoundError(str(adjustment_id))

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            adjustment = self._session.get(
                Adjustment, adjustment_id, with_for_update=True, populate_existing=True
            )
            if adjustment.cancelled_at is None:
                adjustment.cancelled_at = self._clock.now()
                adjustment.updated_by = actor_id
                self._session.flush()
                logger.info("adjustment_cancelled", extra={"adjustment_id": str(adjustment_id)})
            return _EventOutcome(source_id=adjustment.id)

        return self._run(customer_id, ReconciliationTrigger.ADJUSTMENT, actor_id, apply_event)

    def issue_invoice(
        self,
        customer_id: UUID,
        period_from: date,
        period_to: date,
        consumption: Decimal,
        rates: TariffRates,
        subsidy_catalog: Mapping[str, SubsidyClass] | None = None,
        issue_date: date | None = None,
        due_date: date | None = None,
        folio: str | None = None,
        taxable_extras: Decimal = ZERO,
        non_taxable_extras: Decimal = ZERO,
        replace_existing: bool = False,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Compute the period's charge, issue the boleta and reconcile.

        Credit already held by the customer is absorbed by the new invoice.
        With ``replace_existing`` an invoice already issued for the period
        is rewritten in place with the recomputed charge, and payments are
        replayed against it.

        Raises:
            InvoiceAlreadyIssuedError: the period is already billed and
                ``replace_existing`` is False.
        """

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            charge = self._invoices.compute_period_charge(
                customer.id,
                period_from,
                consumption,
                rates,
                subsidy_catalog,
                taxable_extras=taxable_extras,
                non_taxable_extras=non_taxable_extras,
            )
            existing = None
            if replace_existing:
                existing = self._invoices.find_for_period(customer.id, period_from)

            if existing is not None:
                # the prior-period balance printed on the original stays as issued
                carried = ZERO
                if existing.total_amount is not None:
                    carried = Decimal(existing.total_amount) - Decimal(existing.monthly_charge)
                invoice = self._invoices.regenerate(
                    existing,
                    period_to,
                    charge,
                    issue_date=issue_date or self._clock.today(),
                    due_date=due_date,
                    folio=folio,
                    carried_balance=carried,
                    actor_id=actor_id,
                )
            else:
                invoice = self._invoices.issue(
                    customer.id,
                    period_from,
                    period_to,
                    charge,
                    issue_date=issue_date or self._clock.today(),
                    due_date=due_date,
                    folio=folio,
                    carried_balance=before.balance,
                    actor_id=actor_id,
                )
            return _EventOutcome(source_id=invoice.id)

        return self._run(customer_id, ReconciliationTrigger.INVOICE, actor_id, apply_event)

    def recompute(self, customer_id: UUID, actor_id: str | None = None) -> ReconciliationSummary:
        """
        Rebuild the stored projection from history.

        Reports the invoices whose stored paid amount or status differed
        from the recomputation; a second run reports none.
        """

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            # balance entry lines have no stored projection to compare with
            stored = {
                line.invoice_id: (line.amount_paid, line.status)
                for line in before.lines
                if not line.is_invoice
            }
            stored.update(
                (str(inv.id), (Decimal(inv.amount_paid), InvoiceStatus(inv.status)))
                for inv in self._selector.invoices(customer.id)
            )
            return _EventOutcome(baseline=stored)

        return self._run(customer_id, ReconciliationTrigger.RECOMPUTE, actor_id, apply_event)

    def record_opening_balance(
        self,
        customer_id: UUID,
        amount: Decimal | int | str,
        as_of: date | None = None,
        reference: str | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Record the balance a customer carried into the system.

        A positive amount is prior debt and absorbs payments before any
        invoice.  A negative amount is prior credit and absorbs the oldest
        invoices as if it were the first payment.

        Raises:
            InvalidBalanceEntryError: amount is zero or not a number.
            OpeningBalanceAlreadyRecordedError: the customer already has one.
        """
        kind = BalanceEntryKind.OPENING_BALANCE
        try:
            entry_amount = to_decimal(amount)
        except ValueError as exc:
            raise InvalidBalanceEntryError(kind.value, str(exc)) from exc
        if is_negligible(entry_amount):
            raise InvalidBalanceEntryError(kind.value, f"amount must be non-zero, got {entry_amount}")

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            for existing in self._selector.balance_entries(customer.id):
                if existing.kind == kind.value:
                    raise OpeningBalanceAlreadyRecordedError(str(customer.id), str(existing.id))
            entry = self._add_balance_entry(
                customer, kind, entry_amount, as_of, reference, reason, actor_id
            )
            return _EventOutcome(source_id=entry.id)

        return self._run(
            customer_id, ReconciliationTrigger.OPENING_BALANCE, actor_id, apply_event
        )

    def record_credit_note(
        self,
        customer_id: UUID,
        amount: Decimal | int | str,
        issued_on: date | None = None,
        reference: str | None = None,
        reason: str | None = None,
        actor_id: str | None = None,
    ) -> ReconciliationSummary:
        """
        Record a credit note: money refunded to the customer.

        The refund is owed back, so it is a debit absorbed oldest-first
        alongside the invoices, dated ``issued_on``.

        Raises:
            InvalidBalanceEntryError: amount is not positive.
        """
        kind = BalanceEntryKind.CREDIT_NOTE
        try:
            entry_amount = to_decimal(amount)
        except ValueError as exc:
            raise InvalidBalanceEntryError(kind.value, str(exc)) from exc
        if entry_amount <= ZERO:
            raise InvalidBalanceEntryError(kind.value, f"amount must be positive, got {entry_amount}")

        def apply_event(customer: Customer, before: LedgerState) -> _EventOutcome:
            entry = self._add_balance_entry(
                customer, kind, entry_amount, issued_on, reference, reason, actor_id
            )
            return _EventOutcome(source_id=entry.id)

        return self._run(customer_id, ReconciliationTrigger.CREDIT_NOTE, actor_id, apply_event)

    def _add_balance_entry(
        self,
        customer: Customer,
        kind: BalanceEntryKind,
        amount: Decimal,
        entry_date: date | None,
        reference: str | None,
        reason: str | None,
        actor_id: str | None,
    ) -> BalanceEntry:
        entry = BalanceEntry(
            customer_id=customer.id,
            kind=kind.value,
            amount=amount,
            entry_date=entry_date or self._clock.today(),
            reference=reference,
            reason=reason,
            created_by=actor_id,
        )
        self._session.add(entry)
        self._session.flush()

        logger.info(
            "balance_entry_recorded",
            extra={
                "entry_id": str(entry.id),
                "kind": kind.value,
                "amount": str(amount),
                "entry_date": str(entry.entry_date),
            },
        )
        return entry

    # ------------------------------------------------------------------
    # Cycle
    # ------------------------------------------------------------------

    def _run(
        self,
        customer_id: UUID,
        trigger: ReconciliationTrigger,
        actor_id: str | None,
        apply_event: Callable[[Customer, LedgerState], _EventOutcome],
        payment_id: str | None = None,
    ) -> ReconciliationSummary:
        correlation_id = str(uuid4())
        with LogContext.bind(
            correlation_id=correlation_id,
            customer_id=str(customer_id),
            actor_id=actor_id,
            payment_id=payment_id,
            trigger=trigger.value,
        ):
            logger.info("reconciliation_started")
            t0 = time.monotonic()
            try:
                with self._locks.hold(customer_id):
                    try:
                        summary = self._reconcile(customer_id, trigger, actor_id, apply_event)
                        if self._auto_commit:
                            self._session.commit()
                    except Exception:
                        if self._auto_commit:
                            self._session.rollback()
                        raise
            except ConsistencyViolationError:
                logger.critical(
                    "reconciliation_consistency_violation",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise
            except Exception:
                logger.error(
                    "reconciliation_failed",
                    extra={"duration_ms": round((time.monotonic() - t0) * 1000, 2)},
                    exc_info=True,
                )
                raise

            logger.info(
                "reconciliation_completed",
                extra={
                    "duration_ms": round((time.monotonic() - t0) * 1000, 2),
                    "invoices_affected": len(summary.invoices_affected),
                    "new_balance": str(summary.new_balance),
                    "credit_available": str(summary.credit_available),
                    "ledger_version": summary.ledger_version,
                    "was_duplicate": summary.was_duplicate,
                },
            )
            return summary

    def _reconcile(
        self,
        customer_id: UUID,
        trigger: ReconciliationTrigger,
        actor_id: str | None,
        apply_event: Callable[[Customer, LedgerState], _EventOutcome],
    ) -> ReconciliationSummary:
        customer = self._lock_customer(customer_id)
        expected_version = customer.ledger_version

        before = self._load_ledger(customer_id)
        outcome = apply_event(customer, before)

        if outcome.duplicate_of is not None:
            return ReconciliationSummary(
                customer_id=customer.id,
                trigger=trigger,
                invoices_affected=(),
                new_balance=Decimal(customer.balance),
                credit_available=Decimal(customer.credit_available),
                account_status=before.account_status,
                ledger_version=expected_version,
                source_id=outcome.duplicate_of,
                was_duplicate=True,
            )

        self._session.flush()
        after = self._load_ledger(customer_id)

        self._verify_conservation(after)
        if outcome.allocation is not None:
            self._verify_replay(before, after, outcome.allocation)

        effects = self._effects(before, after, outcome)
        self._persist_projection(customer_id, after)
        new_version = self._commit_version(customer, expected_version, after)

        record = ReconciliationRecord(
            customer_id=customer.id,
            trigger=trigger.value,
            source_id=outcome.source_id,
            ledger_version=new_version,
            balance=after.balance,
            credit_available=after.credit_available,
            total_applied=sum((e.amount_applied for e in effects), ZERO),
            allocations=[
                {
                    "invoice_id": e.invoice_id,
                    "amount_applied": str(e.amount_applied),
                    "was_fully_paid": e.was_fully_paid,
                }
                for e in effects
            ],
            correlation_id=LogContext.get_all().get("correlation_id"),
            created_by=actor_id,
        )
        self._session.add(record)
        self._session.flush()

        return ReconciliationSummary(
            customer_id=customer.id,
            trigger=trigger,
            invoices_affected=tuple(effects),
            new_balance=after.balance,
            credit_available=after.credit_available,
            account_status=after.account_status,
            ledger_version=new_version,
            source_id=outcome.source_id,
        )

    def _lock_customer(self, customer_id: UUID) -> Customer:
        customer = self._session.execute(
            select(Customer)
            .where(Customer.id == customer_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if customer is None:
            raise CustomerNotFoundError(str(customer_id))
        return customer

    def _load_ledger(self, customer_id: UUID) -> LedgerState:
        return self._selector.ledger_state(customer_id)

    # ------------------------------------------------------------------
    # Consistency checks
    # ------------------------------------------------------------------

    def _verify_conservation(self, state: LedgerState) -> None:
        for line in state.lines:
            if line.amount_owed < -EPSILON:
                raise NegativeOwedAmountError(line.invoice_id, str(line.amount_owed))
        absorbed = sum((line.amount_paid for line in state.lines), ZERO)
        if absorbed + state.credit_available != state.total_paid:
            raise ConservationViolationError(
                str(state.total_paid), str(absorbed), str(state.credit_available)
            )

    def _verify_replay(
        self, before: LedgerState, after: LedgerState, allocation: AllocationResult
    ) -> None:
        """The allocator's outcome must match a from-scratch replay."""
        allocated = {a.invoice_id: a.owed_after for a in allocation.allocations}
        for line in before.lines:
            expected = allocated.get(line.invoice_id, line.amount_owed)
            replayed = after.line(line.invoice_id).amount_owed
            if not is_negligible(expected - replayed):
                raise ReplayMismatchError(line.invoice_id, str(expected), str(replayed))

        expected_credit = before.credit_available + allocation.credit
        if not is_negligible(expected_credit - after.credit_available):
            raise ReplayMismatchError(
                "<credit>", str(expected_credit), str(after.credit_available)
            )

    # ------------------------------------------------------------------
    # Persistence
    # ------------------------------------------------------------------

    def _effects(
        self, before: LedgerState, after: LedgerState, outcome: _EventOutcome
    ) -> list[InvoiceEffect]:
        if outcome.allocation is not None:
            return [
                InvoiceEffect(a.invoice_id, a.amount_applied, a.fully_paid)
                for a in outcome.allocation.allocations
            ]

        baseline = outcome.baseline
        if baseline is None:
            baseline = {line.invoice_id: (line.amount_paid, line.status) for line in before.lines}

        effects = []
        for line in after.lines:
            prev_paid, prev_status = baseline.get(line.invoice_id, (ZERO, InvoiceStatus.PENDING))
            delta = line.amount_paid - prev_paid
            if delta != ZERO or line.status != prev_status:
                effects.append(InvoiceEffect(line.invoice_id, delta, line.is_paid))
        return effects

    def _persist_projection(self, customer_id: UUID, state: LedgerState) -> None:
        for invoice in self._selector.invoices(customer_id):
            line = state.line(str(invoice.id))
            invoice.status = line.status.value
            invoice.amount_owed = line.amount_owed
            invoice.amount_paid = line.amount_paid
        self._session.flush()

    def _commit_version(
        self, customer: Customer, expected_version: int, state: LedgerState
    ) -> int:
        """Write balance and credit, bumping ledger_version only if unchanged."""
        new_version = expected_version + 1
        result = self._session.execute(
            update(Customer)
            .where(Customer.id == customer.id, Customer.ledger_version == expected_version)
            .values(
                ledger_version=new_version,
                balance=state.balance,
                credit_available=state.credit_available,
                last_reconciled_at=self._clock.now(),
            )
        )
        if result.rowcount != 1:
            logger.warning(
                "ledger_version_conflict",
                extra={"expected_version": expected_version},
            )
            raise LedgerConflictError(str(customer.id), expected_version)
        return new_version
