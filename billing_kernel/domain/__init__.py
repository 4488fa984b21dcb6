"""
Pure domain layer.

DTOs, enums, clock abstraction and money/calendar helpers with NO
dependencies on the ORM, the database or I/O.
"""

from billing_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from billing_kernel.domain.dtos import (
    AccountStatus,
    AdjustmentKind,
    AdjustmentSnapshot,
    AdjustmentValueType,
    InvoiceSnapshot,
    InvoiceStatus,
    PaymentMethod,
    PaymentSnapshot,
    PaymentStatus,
    ReconciliationTrigger,
)
from billing_kernel.domain.values import EPSILON, ZERO

__all__ = [
    "AccountStatus",
    "AdjustmentKind",
    "AdjustmentSnapshot",
    "AdjustmentValueType",
    "Clock",
    "DeterministicClock",
    "EPSILON",
    "InvoiceSnapshot",
    "InvoiceStatus",
    "PaymentMethod",
    "PaymentSnapshot",
    "PaymentStatus",
    "ReconciliationTrigger",
    "SystemClock",
    "ZERO",
]
