"""
Typed Exception Hierarchy for the Billing Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the reconciliation core (clerk console, customer portal, payment
webhook handlers) must react to failures by category, never by parsing
message strings:

    try:
        orchestrator.record_payment(customer_id, amount, PaymentMethod.CASH)
    except NonPositivePaymentError as e:
        return {"error": e.code, "amount": e.amount}
    except LedgerConflictError:
        retry_later()

Every class carries:
  1. A ``code`` class attribute (machine-readable, API-safe).
  2. Structured attributes with the data that caused the failure.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    BillingKernelError (base)
    |
    +-- InvalidInputError
    |   +-- NonPositivePaymentError
    |   +-- InvalidTariffError
    |   +-- InvalidSubsidyClassError
    |   +-- InvalidRepactacionError
    |   +-- InvalidAdjustmentError
    |   +-- InvalidPaymentMethodError
    |   +-- InvalidBalanceEntryError
    |
    +-- NotFoundError
    |   +-- CustomerNotFoundError
    |   +-- InvoiceNotFoundError
    |   +-- PaymentNotFoundError
    |   +-- AdjustmentNotFoundError
    |   +-- SubsidyClassNotFoundError
    |   +-- TariffNotFoundError
    |   +-- IdentityNotFoundError
    |   +-- SubsidyAssignmentNotFoundError
    |   +-- RepactacionNotFoundError
    |
    +-- StateError
    |   +-- CustomerInactiveError
    |   +-- PaymentNotCompletedError
    |   +-- PaymentAlreadyReversedError
    |   +-- DuplicatePaymentReferenceError
    |   +-- InvoiceAlreadyIssuedError
    |   +-- OpeningBalanceAlreadyRecordedError
    |
    +-- OverlapError
    |   +-- SubsidyAssignmentOverlapError
    |   +-- IdentityRangeOverlapError
    |
    +-- ConcurrencyError
    |   +-- LedgerConflictError
    |
    +-- ConsistencyViolationError
        +-- ConservationViolationError
        +-- NegativeOwedAmountError
        +-- ReplayMismatchError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Category      | Code                          | When Raised
--------------|-------------------------------|-----------------------------------
Input         | NON_POSITIVE_PAYMENT          | Payment amount <= 0
              | INVALID_TARIFF                | Negative or missing tariff rate
              | INVALID_SUBSIDY_CLASS         | Threshold/multiplier out of range
              | INVALID_REPACTACION           | Non-positive installment count
              | INVALID_ADJUSTMENT            | Bad discount/fine value
              | INVALID_PAYMENT_METHOD        | Unknown payment method
              | INVALID_BALANCE_ENTRY         | Zero opening balance, bad credit note
--------------|-------------------------------|-----------------------------------
Lookup        | CUSTOMER_NOT_FOUND            | Customer ID doesn't exist
              | INVOICE_NOT_FOUND             | Invoice ID doesn't exist
              | PAYMENT_NOT_FOUND             | Payment ID doesn't exist
              | ADJUSTMENT_NOT_FOUND          | Adjustment ID doesn't exist
              | SUBSIDY_CLASS_NOT_FOUND       | No class for code/date
              | TARIFF_NOT_FOUND              | No tariff effective on date
              | IDENTITY_NOT_FOUND            | Alias not effective on date
              | SUBSIDY_ASSIGNMENT_NOT_FOUND  | Assignment ID doesn't exist
              | REPACTACION_NOT_FOUND         | Plan ID doesn't exist
--------------|-------------------------------|-----------------------------------
State         | CUSTOMER_INACTIVE             | Payment for inactive customer
              | PAYMENT_NOT_COMPLETED         | Reversing a non-completed payment
              | PAYMENT_ALREADY_REVERSED      | Payment reversed twice
              | DUPLICATE_PAYMENT_REFERENCE   | Gateway reference reused elsewhere
              | INVOICE_ALREADY_ISSUED        | Period already billed for customer
              | OPENING_BALANCE_EXISTS        | Second opening balance
--------------|-------------------------------|-----------------------------------
Overlap       | SUBSIDY_ASSIGNMENT_OVERLAP    | Two subsidy ranges overlap
              | IDENTITY_RANGE_OVERLAP        | Two alias ranges overlap
--------------|-------------------------------|-----------------------------------
Concurrency   | LEDGER_CONFLICT               | Customer ledger changed underneath
--------------|-------------------------------|-----------------------------------
Consistency   | CONSERVATION_VIOLATION        | applied + credit != payment
              | NEGATIVE_OWED_AMOUNT          | Owed amount below -epsilon
              | REPLAY_MISMATCH               | Allocation disagrees with replay

===============================================================================
HANDLING PATTERNS
===============================================================================

- InvalidInputError -> reject, show reason to the caller; nothing was written.
- ConcurrencyError  -> the transaction rolled back; retry the whole request.
- ConsistencyViolationError -> halt and investigate; never retry blindly.
"""


class BillingKernelError(Exception):
    """
    Base exception for all billing kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "BILLING_KERNEL_ERROR"


# Invalid input


class InvalidInputError(BillingKernelError):
    """Base exception for input rejected before any state change."""

    code: str = "INVALID_INPUT"


class NonPositivePaymentError(InvalidInputError):
    """Payment amount must be strictly positive."""

    code: str = "NON_POSITIVE_PAYMENT"

    def __init__(self, amount: str):
        self.amount = amount
        super().__init__(f"Payment amount must be positive, got {amount}")


class InvalidTariffError(InvalidInputError):
    """Tariff parameters are missing or out of range."""

    code: str = "INVALID_TARIFF"

    def __init__(self, field: str, value: str, reason: str):
        self.field = field
        self.value = value
        self.reason = reason
        super().__init__(f"Invalid tariff {field}={value}: {reason}")


class InvalidSubsidyClassError(InvalidInputError):
    """Subsidy class parameters are out of range."""

    code: str = "INVALID_SUBSIDY_CLASS"

    def __init__(self, class_code: str, reason: str):
        self.class_code = class_code
        self.reason = reason
        super().__init__(f"Invalid subsidy class {class_code}: {reason}")


class InvalidRepactacionError(InvalidInputError):
    """Restructuring plan parameters are out of range."""

    code: str = "INVALID_REPACTACION"

    def __init__(self, reason: str, plan_id: str | None = None):
        self.plan_id = plan_id
        self.reason = reason
        super().__init__(f"Invalid repactación plan {plan_id or '<new>'}: {reason}")


class InvalidAdjustmentError(InvalidInputError):
    """Discount or fine parameters are out of range."""

    code: str = "INVALID_ADJUSTMENT"

    def __init__(self, reason: str):
        self.reason = reason
        super().__init__(f"Invalid adjustment: {reason}")


class InvalidPaymentMethodError(InvalidInputError):
    """Payment method is not one the cooperative accepts."""

    code: str = "INVALID_PAYMENT_METHOD"

    def __init__(self, method: str):
        self.method = method
        super().__init__(f"Unknown payment method: {method}")


class InvalidBalanceEntryError(InvalidInputError):
    """Opening balance or credit note amount is out of range."""

    code: str = "INVALID_BALANCE_ENTRY"

    def __init__(self, kind: str, reason: str):
        self.kind = kind
        self.reason = reason
        super().__init__(f"Invalid {kind}: {reason}")


# Lookups


class NotFoundError(BillingKernelError):
    """Base exception for missing records."""

    code: str = "NOT_FOUND"


class CustomerNotFoundError(NotFoundError):
    """Customer with given ID was not found."""

    code: str = "CUSTOMER_NOT_FOUND"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer not found: {customer_id}")


class InvoiceNotFoundError(NotFoundError):
    """Invoice with given ID was not found for the customer."""

    code: str = "INVOICE_NOT_FOUND"

    def __init__(self, invoice_id: str):
        self.invoice_id = invoice_id
        super().__init__(f"Invoice not found: {invoice_id}")


class PaymentNotFoundError(NotFoundError):
    """Payment with given ID was not found."""

    code: str = "PAYMENT_NOT_FOUND"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment not found: {payment_id}")


class AdjustmentNotFoundError(NotFoundError):
    """Adjustment with given ID was not found."""

    code: str = "ADJUSTMENT_NOT_FOUND"

    def __init__(self, adjustment_id: str):
        self.adjustment_id = adjustment_id
        super().__init__(f"Adjustment not found: {adjustment_id}")


class SubsidyClassNotFoundError(NotFoundError):
    """No subsidy class with the given code is effective on the date."""

    code: str = "SUBSIDY_CLASS_NOT_FOUND"

    def __init__(self, class_code: str, as_of: str):
        self.class_code = class_code
        self.as_of = as_of
        super().__init__(f"Subsidy class {class_code} not effective on {as_of}")


class TariffNotFoundError(NotFoundError):
    """No tariff version is effective on the date."""

    code: str = "TARIFF_NOT_FOUND"

    def __init__(self, as_of: str):
        self.as_of = as_of
        super().__init__(f"No tariff effective on {as_of}")


class IdentityNotFoundError(NotFoundError):
    """No customer identity is effective for the alias on the date."""

    code: str = "IDENTITY_NOT_FOUND"

    def __init__(self, alias_number: str, as_of: str):
        self.alias_number = alias_number
        self.as_of = as_of
        super().__init__(f"No identity for {alias_number} effective on {as_of}")


class SubsidyAssignmentNotFoundError(NotFoundError):
    """Subsidy assignment with given ID was not found."""

    code: str = "SUBSIDY_ASSIGNMENT_NOT_FOUND"

    def __init__(self, assignment_id: str):
        self.assignment_id = assignment_id
        super().__init__(f"Subsidy assignment not found: {assignment_id}")


class RepactacionNotFoundError(NotFoundError):
    """Restructuring plan with given ID was not found."""

    code: str = "REPACTACION_NOT_FOUND"

    def __init__(self, plan_id: str):
        self.plan_id = plan_id
        super().__init__(f"Repactación plan not found: {plan_id}")


# State


class StateError(BillingKernelError):
    """Base exception for operations not allowed in the current state."""

    code: str = "STATE_ERROR"


class CustomerInactiveError(StateError):
    """Customer is inactive and cannot receive new ledger events."""

    code: str = "CUSTOMER_INACTIVE"

    def __init__(self, customer_id: str):
        self.customer_id = customer_id
        super().__init__(f"Customer {customer_id} is inactive")


class PaymentNotCompletedError(StateError):
    """Only completed payments can be reversed."""

    code: str = "PAYMENT_NOT_COMPLETED"

    def __init__(self, payment_id: str, status: str):
        self.payment_id = payment_id
        self.status = status
        super().__init__(f"Payment {payment_id} is {status}, not completed")


class PaymentAlreadyReversedError(StateError):
    """Payment has already been reversed."""

    code: str = "PAYMENT_ALREADY_REVERSED"

    def __init__(self, payment_id: str):
        self.payment_id = payment_id
        super().__init__(f"Payment {payment_id} was already reversed")


class DuplicatePaymentReferenceError(StateError):
    """A gateway reference is already recorded with different data."""

    code: str = "DUPLICATE_PAYMENT_REFERENCE"

    def __init__(self, reference: str, existing_payment_id: str):
        self.reference = reference
        self.existing_payment_id = existing_payment_id
        super().__init__(
            f"Payment reference {reference} already recorded as {existing_payment_id}"
        )


class InvoiceAlreadyIssuedError(StateError):
    """
    The customer already has an invoice for the billing period.

    Re-issuing must go through the explicit replace path.
    """

    code: str = "INVOICE_ALREADY_ISSUED"

    def __init__(self, customer_id: str, period_from: str, invoice_id: str):
        self.customer_id = customer_id
        self.period_from = period_from
        self.invoice_id = invoice_id
        super().__init__(
            f"Customer {customer_id} already has invoice {invoice_id} for period {period_from}"
        )


class OpeningBalanceAlreadyRecordedError(StateError):
    """A customer carries at most one opening balance."""

    code: str = "OPENING_BALANCE_EXISTS"

    def __init__(self, customer_id: str, entry_id: str):
        self.customer_id = customer_id
        self.entry_id = entry_id
        super().__init__(f"Customer {customer_id} already has opening balance {entry_id}")


# Overlap


class OverlapError(BillingKernelError):
    """Base exception for overlapping effective-date ranges."""

    code: str = "OVERLAP"


class SubsidyAssignmentOverlapError(OverlapError):
    """A customer would hold two subsidy assignments on the same date."""

    code: str = "SUBSIDY_ASSIGNMENT_OVERLAP"

    def __init__(self, customer_id: str, existing_from: str, existing_to: str | None):
        self.customer_id = customer_id
        self.existing_from = existing_from
        self.existing_to = existing_to
        super().__init__(
            f"Subsidy assignment for {customer_id} overlaps existing range "
            f"{existing_from}..{existing_to or 'open'}"
        )


class IdentityRangeOverlapError(OverlapError):
    """An alias would resolve to two customers on the same date."""

    code: str = "IDENTITY_RANGE_OVERLAP"

    def __init__(self, alias_number: str, existing_from: str, existing_to: str | None):
        self.alias_number = alias_number
        self.existing_from = existing_from
        self.existing_to = existing_to
        super().__init__(
            f"Alias {alias_number} overlaps existing range "
            f"{existing_from}..{existing_to or 'open'}"
        )


# Concurrency


class ConcurrencyError(BillingKernelError):
    """Base exception for concurrency errors. Retryable."""

    code: str = "CONCURRENCY_ERROR"


class LedgerConflictError(ConcurrencyError):
    """
    The customer ledger changed between read and write.

    The whole transaction has been rolled back; the caller retries.
    """

    code: str = "LEDGER_CONFLICT"

    def __init__(self, customer_id: str, expected_version: int | None = None):
        self.customer_id = customer_id
        self.expected_version = expected_version
        if expected_version is None:
            message = f"Ledger for customer {customer_id} is busy"
        else:
            message = (
                f"Ledger for customer {customer_id} changed "
                f"(expected version {expected_version})"
            )
        super().__init__(message)


# Consistency


class ConsistencyViolationError(BillingKernelError):
    """
    Base exception for internal-logic failures.

    These should never occur while invariants hold. They halt the
    operation for investigation instead of guessing a fix.
    """

    code: str = "CONSISTENCY_VIOLATION"


class ConservationViolationError(ConsistencyViolationError):
    """Sum of applied amounts plus credit differs from the payment."""

    code: str = "CONSERVATION_VIOLATION"

    def __init__(self, payment_amount: str, total_applied: str, credit: str):
        self.payment_amount = payment_amount
        self.total_applied = total_applied
        self.credit = credit
        super().__init__(
            f"Conservation violated: applied {total_applied} + credit {credit} "
            f"!= payment {payment_amount}"
        )


class NegativeOwedAmountError(ConsistencyViolationError):
    """An invoice's owed amount fell below zero beyond epsilon."""

    code: str = "NEGATIVE_OWED_AMOUNT"

    def __init__(self, invoice_id: str, amount_owed: str):
        self.invoice_id = invoice_id
        self.amount_owed = amount_owed
        super().__init__(f"Invoice {invoice_id} owed amount is negative: {amount_owed}")


class ReplayMismatchError(ConsistencyViolationError):
    """Allocation outcome disagrees with a from-scratch ledger replay."""

    code: str = "REPLAY_MISMATCH"

    def __init__(self, invoice_id: str, allocated_owed: str, replayed_owed: str):
        self.invoice_id = invoice_id
        self.allocated_owed = allocated_owed
        self.replayed_owed = replayed_owed
        super().__init__(
            f"Invoice {invoice_id}: allocator left {allocated_owed} owed, "
            f"replay computed {replayed_owed}"
        )
