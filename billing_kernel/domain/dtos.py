"""
DTOs -- Pure domain data transfer objects.

Responsibility:
    Immutable snapshots of invoices, payments, adjustments and balance
    entries (opening balances, credit notes) that flow from
    the persistence boundary into the pure engines, plus the status enums
    shared by models, engines and services.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.
    ``from_model()`` class methods are boundary converters invoked only from
    selectors and services, never from engine logic.

Invariants enforced:
    - Engines accept and return DTOs, never ORM entities.
    - Snapshot amounts are Decimal (see ``billing_kernel.domain.values``).

Data flow:
    ORM rows -> *Snapshot -> billing_engines.ledger -> LedgerState
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from billing_kernel.models.adjustment import Adjustment as AdjustmentModel
    from billing_kernel.models.balance_entry import BalanceEntry as BalanceEntryModel
    from billing_kernel.models.invoice import Invoice as InvoiceModel
    from billing_kernel.models.payment import Payment as PaymentModel


def _as_utc(value: datetime) -> datetime:
    # SQLite hands back naive datetimes for timezone-aware columns
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class InvoiceStatus(str, Enum):
    """Derived invoice status. Monotonic pending -> partial -> paid except on reversal."""

    PENDING = "pending"
    PARTIAL = "partial"
    PAID = "paid"


class PaymentStatus(str, Enum):
    """Payment lifecycle. Only COMPLETED payments feed the ledger."""

    PENDING = "pending"
    COMPLETED = "completed"
    FAILED = "failed"
    REVERSED = "reversed"


class PaymentMethod(str, Enum):
    CASH = "cash"
    TRANSFER = "transfer"
    CHECK = "check"
    CARD = "card"
    ONLINE = "online"


class AdjustmentKind(str, Enum):
    DISCOUNT = "discount"
    FINE = "fine"


class AdjustmentValueType(str, Enum):
    FIXED = "fixed"
    PERCENTAGE = "percentage"


class BalanceEntryKind(str, Enum):
    """Ledger entries that are neither invoices nor payments."""

    OPENING_BALANCE = "opening_balance"
    CREDIT_NOTE = "credit_note"


class ReconciliationTrigger(str, Enum):
    """Ledger-affecting event that started a reconciliation run."""

    PAYMENT = "payment"
    REVERSAL = "reversal"
    ADJUSTMENT = "adjustment"
    INVOICE = "invoice"
    RECOMPUTE = "recompute"
    OPENING_BALANCE = "opening_balance"
    CREDIT_NOTE = "credit_note"


class AccountStatus(str, Enum):
    IN_ARREARS = "in_arrears"
    CURRENT = "current"
    IN_CREDIT = "in_credit"


@dataclass(frozen=True)
class InvoiceSnapshot:
    """
    One invoice ("boleta") as the ledger projection sees it.

    ``monthly_charge`` is this period's obligation; ``total_amount`` is the
    printed cumulative figure (charge plus carried balance) and is never
    used for allocation.
    """

    invoice_id: str
    issue_date: date
    monthly_charge: Decimal
    due_date: date | None = None
    period_from: date | None = None
    period_to: date | None = None
    total_amount: Decimal | None = None

    @property
    def sort_key(self) -> tuple[date, str]:
        return (self.issue_date, self.invoice_id)

    @classmethod
    def from_model(cls, model: InvoiceModel) -> InvoiceSnapshot:
        return cls(
            invoice_id=str(model.id),
            issue_date=model.issue_date,
            monthly_charge=Decimal(model.monthly_charge),
            due_date=model.due_date,
            period_from=model.period_from,
            period_to=model.period_to,
            total_amount=Decimal(model.total_amount) if model.total_amount is not None else None,
        )


@dataclass(frozen=True)
class PaymentSnapshot:
    payment_id: str
    amount: Decimal
    completed_at: datetime
    status: PaymentStatus = PaymentStatus.COMPLETED
    method: PaymentMethod = PaymentMethod.CASH

    @property
    def sort_key(self) -> tuple[datetime, str]:
        return (self.completed_at, self.payment_id)

    @classmethod
    def from_model(cls, model: PaymentModel) -> PaymentSnapshot:
        return cls(
            payment_id=str(model.id),
            amount=Decimal(model.amount),
            completed_at=_as_utc(model.completed_at or model.created_at),
            status=PaymentStatus(model.status),
            method=PaymentMethod(model.method),
        )


@dataclass(frozen=True)
class AdjustmentSnapshot:
    """
    A discount or fine.

    ``invoice_id`` None means the adjustment was entered before billing and
    binds to the oldest invoice issued on or after ``applied_on``.
    """

    adjustment_id: str
    kind: AdjustmentKind
    value_type: AdjustmentValueType
    value: Decimal
    applied_on: date
    invoice_id: str | None = None
    is_cancelled: bool = False

    @classmethod
    def from_model(cls, model: AdjustmentModel) -> AdjustmentSnapshot:
        return cls(
            adjustment_id=str(model.id),
            kind=AdjustmentKind(model.kind),
            value_type=AdjustmentValueType(model.value_type),
            value=Decimal(model.value),
            applied_on=model.applied_on,
            invoice_id=str(model.invoice_id) if model.invoice_id else None,
            is_cancelled=model.cancelled_at is not None,
        )


@dataclass(frozen=True)
class BalanceEntrySnapshot:
    """
    An opening balance ("saldo inicial") or credit note ("nota de crédito").

    Opening balances are signed: positive is debt carried over from before
    the system took over billing, negative is credit.  Credit notes record
    money already refunded to the customer and are always positive; the
    customer owes it back.
    """

    entry_id: str
    kind: BalanceEntryKind
    entry_date: date
    amount: Decimal
    reference: str | None = None

    @property
    def sort_key(self) -> tuple[date, str]:
        return (self.entry_date, self.entry_id)

    @property
    def is_debit(self) -> bool:
        return self.amount > 0

    @classmethod
    def from_model(cls, model: BalanceEntryModel) -> BalanceEntrySnapshot:
        return cls(
            entry_id=str(model.id),
            kind=BalanceEntryKind(model.kind),
            entry_date=model.entry_date,
            amount=Decimal(model.amount),
            reference=model.reference,
        )
