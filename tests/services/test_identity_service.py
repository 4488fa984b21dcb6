"""Tests for customer alias registration, transfer and resolution."""

from datetime import date

import pytest

from billing_kernel.exceptions import (
    CustomerNotFoundError,
    IdentityNotFoundError,
    IdentityRangeOverlapError,
)
from billing_kernel.selectors.identity_selector import IdentitySelector
from billing_kernel.services.identity_service import IdentityService


@pytest.fixture
def service(session) -> IdentityService:
    return IdentityService(session)


@pytest.fixture
def selector(session) -> IdentitySelector:
    return IdentitySelector(session)


class TestTransfer:
    def test_transfer_splits_history(self, service, selector, create_customer):
        previous = create_customer(name="Antiguo dueño")
        current = create_customer(name="Nuevo dueño")
        service.register_alias("1042", previous.id, date(2018, 1, 1), note="original connection")

        service.transfer_alias("1042", current.id, date(2023, 7, 1), note="sale of property")

        assert selector.resolve("1042", date(2023, 6, 30)) == previous.id
        assert selector.resolve("1042", date(2023, 7, 1)) == current.id

    def test_alias_ranges_ordered(self, service, selector, create_customer):
        a = create_customer()
        b = create_customer()
        service.register_alias("77", a.id, date(2020, 1, 1), date(2020, 12, 31))
        service.register_alias("77", b.id, date(2021, 1, 1))

        ranges = selector.alias_ranges("77")
        assert [r.customer_id for r in ranges] == [str(a.id), str(b.id)]


class TestRegister:
    def test_overlapping_range_rejected(self, service, customer, create_customer):
        other = create_customer()
        service.register_alias("500", customer.id, date(2020, 1, 1))

        with pytest.raises(IdentityRangeOverlapError):
            service.register_alias("500", other.id, date(2022, 1, 1))

    def test_unknown_customer(self, service):
        from uuid import uuid4

        with pytest.raises(CustomerNotFoundError):
            service.register_alias("500", uuid4(), date(2020, 1, 1))

    def test_resolve_outside_ranges(self, service, selector, customer):
        service.register_alias("600", customer.id, date(2020, 1, 1), date(2020, 6, 30))

        with pytest.raises(IdentityNotFoundError):
            selector.resolve("600", date(2021, 1, 1))

    def test_close_without_covering_range(self, service):
        with pytest.raises(IdentityNotFoundError):
            service.close_alias("missing", date(2024, 1, 1))
