"""
Values -- monetary and calendar helpers shared by engines and services.

Responsibility:
    Decimal-only money handling for a currency with no sub-unit (CLP),
    the allocation epsilon, and month arithmetic used by billing periods
    and restructuring plans.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    - Amounts are ``Decimal``; floats are converted through ``str`` so that
      binary representation noise never enters a ledger computation.
    - Rounding to currency units is ROUND_HALF_UP.
    - "Paid" and "zero" comparisons use ``EPSILON`` (0.01 units).
"""

from __future__ import annotations

from datetime import date, timedelta
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

ZERO = Decimal("0")
UNIT = Decimal("1")
EPSILON = Decimal("0.01")


def to_decimal(value: Decimal | int | str | float) -> Decimal:
    """
    Convert a numeric input to Decimal.

    Raises:
        ValueError: If the value cannot be parsed or is not finite.
    """
    if isinstance(value, bool):
        raise ValueError(f"Cannot use boolean as amount: {value!r}")
    if isinstance(value, Decimal):
        result = value
    elif isinstance(value, float):
        result = Decimal(str(value))
    else:
        try:
            result = Decimal(value)
        except (InvalidOperation, TypeError) as exc:
            raise ValueError(f"Invalid amount: {value!r}") from exc
    if not result.is_finite():
        raise ValueError(f"Amount must be finite: {value!r}")
    return result


def round_units(value: Decimal) -> Decimal:
    """Round to whole currency units, half up."""
    return value.quantize(UNIT, rounding=ROUND_HALF_UP)


def is_negligible(value: Decimal, epsilon: Decimal = EPSILON) -> bool:
    """True if ``|value| <= epsilon``."""
    return abs(value) <= epsilon


def first_of_month(day: date) -> date:
    return day.replace(day=1)


def last_of_month(day: date) -> date:
    return add_months(first_of_month(day), 1) - timedelta(days=1)


def add_months(day: date, months: int) -> date:
    """Shift a first-of-month date by ``months`` (day is reset to 1)."""
    index = day.year * 12 + (day.month - 1) + months
    return date(index // 12, index % 12 + 1, 1)


def months_between(start: date, target: date) -> int:
    """Whole calendar months from ``start`` to ``target``; days are ignored."""
    return (target.year - start.year) * 12 + (target.month - start.month)

