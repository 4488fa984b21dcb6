"""Tests for time-ranged alias resolution."""

from datetime import date

import pytest

from billing_engines.identity import AliasRange, check_no_overlap, ranges_overlap, resolve_identity
from billing_kernel.exceptions import (
    IdentityNotFoundError,
    IdentityRangeOverlapError,
    InvalidInputError,
)

ALIASES = [
    AliasRange("1042", "old-owner", date(2018, 1, 1), date(2023, 6, 30)),
    AliasRange("1042", "new-owner", date(2023, 7, 1)),
    AliasRange("2001", "other", date(2020, 1, 1)),
]


class TestResolve:
    def test_resolves_historical_owner(self):
        assert resolve_identity(ALIASES, "1042", date(2022, 3, 1)) == "old-owner"

    def test_resolves_current_owner(self):
        assert resolve_identity(ALIASES, "1042", date(2025, 1, 1)) == "new-owner"

    def test_range_ends_are_inclusive(self):
        assert resolve_identity(ALIASES, "1042", date(2023, 6, 30)) == "old-owner"
        assert resolve_identity(ALIASES, "1042", date(2023, 7, 1)) == "new-owner"

    def test_before_any_range(self):
        with pytest.raises(IdentityNotFoundError):
            resolve_identity(ALIASES, "1042", date(2017, 12, 31))

    def test_unknown_alias(self):
        with pytest.raises(IdentityNotFoundError):
            resolve_identity(ALIASES, "9999", date(2025, 1, 1))


class TestOverlap:
    def test_overlapping_range_rejected(self):
        candidate = AliasRange("1042", "someone", date(2023, 6, 1), date(2023, 12, 31))
        with pytest.raises(IdentityRangeOverlapError):
            check_no_overlap(ALIASES, candidate)

    def test_other_alias_not_considered(self):
        check_no_overlap(ALIASES, AliasRange("3000", "x", date(2020, 1, 1)))

    def test_open_ended_ranges_overlap(self):
        assert ranges_overlap(date(2020, 1, 1), None, date(2030, 1, 1), None)

    def test_adjacent_ranges_do_not_overlap(self):
        assert not ranges_overlap(date(2020, 1, 1), date(2020, 12, 31), date(2021, 1, 1), None)

    def test_reversed_range_rejected(self):
        with pytest.raises(InvalidInputError):
            AliasRange("1", "c", date(2025, 2, 1), date(2025, 1, 1))
