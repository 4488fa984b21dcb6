"""
Module: billing_engines.identity
Responsibility:
    Resolve which customer an alias number referred to on a given date,
    and validate that alias ranges do not overlap.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Historical accounts (renamed or transferred connections, formerly marked
with a "-ANTERIOR" suffix on the account number) are modelled as explicit
time-ranged alias rows instead of string conventions.  Resolution is a
pure query: "which identity was effective on date D".

Invariants enforced:
    - Ranges are inclusive on both ends; effective_to None is open-ended.
    - For a given alias_number, at most one range covers any date.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from datetime import date

from billing_kernel.exceptions import (
    IdentityNotFoundError,
    IdentityRangeOverlapError,
    InvalidInputError,
)


@dataclass(frozen=True)
class AliasRange:
    alias_number: str
    customer_id: str
    effective_from: date
    effective_to: date | None = None

    def __post_init__(self) -> None:
        if self.effective_to is not None and self.effective_to < self.effective_from:
            raise InvalidInputError(
                f"Alias {self.alias_number}: effective_to {self.effective_to} "
                f"precedes effective_from {self.effective_from}"
            )

    def covers(self, on_date: date) -> bool:
        if on_date < self.effective_from:
            return False
        return self.effective_to is None or on_date <= self.effective_to

    def overlaps(self, other: AliasRange) -> bool:
        return ranges_overlap(
            self.effective_from, self.effective_to, other.effective_from, other.effective_to
        )


def ranges_overlap(
    a_from: date, a_to: date | None, b_from: date, b_to: date | None
) -> bool:
    """Inclusive date-range overlap; None means open-ended."""
    a_end = a_to or date.max
    b_end = b_to or date.max
    return a_from <= b_end and b_from <= a_end


def resolve_identity(
    aliases: Sequence[AliasRange],
    alias_number: str,
    on_date: date,
) -> str:
    """
    Customer id the alias pointed to on ``on_date``.

    Raises:
        IdentityNotFoundError: No range for the alias covers the date.
    """
    for alias in aliases:
        if alias.alias_number == alias_number and alias.covers(on_date):
            return alias.customer_id
    raise IdentityNotFoundError(alias_number, on_date.isoformat())


def check_no_overlap(existing: Sequence[AliasRange], candidate: AliasRange) -> None:
    """
    Raises:
        IdentityRangeOverlapError: candidate overlaps a range for the same alias.
    """
    for alias in existing:
        if alias.alias_number == candidate.alias_number and alias.overlaps(candidate):
            raise IdentityRangeOverlapError(
                candidate.alias_number,
                alias.effective_from.isoformat(),
                alias.effective_to.isoformat() if alias.effective_to else None,
            )
