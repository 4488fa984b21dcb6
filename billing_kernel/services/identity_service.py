"""
IdentityService -- registration of time-ranged customer aliases.

Responsibility:
    Record which customer an alias number (an old account number, a
    transferred connection) refers to over a date range, and move an
    alias to a new customer without losing its history.

Invariants enforced:
    - Ranges for one alias_number never overlap (checked with
      billing_engines.identity.check_no_overlap before insert).

Failure modes:
    - IdentityRangeOverlapError on overlap.
    - IdentityNotFoundError when there is no open range to close.
    - CustomerNotFoundError for an unknown customer.
"""

from datetime import date, timedelta
from uuid import UUID

from sqlalchemy import select

from billing_engines.identity import AliasRange, check_no_overlap
from billing_kernel.exceptions import CustomerNotFoundError, IdentityNotFoundError
from billing_kernel.logging_config import get_logger
from billing_kernel.models.customer import Customer
from billing_kernel.models.identity import CustomerAlias
from billing_kernel.selectors.identity_selector import IdentitySelector
from billing_kernel.services.base import BaseService

logger = get_logger("services.identity")


class IdentityService(BaseService[CustomerAlias]):
    def register_alias(
        self,
        alias_number: str,
        customer_id: UUID,
        effective_from: date,
        effective_to: date | None = None,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> CustomerAlias:
        if self.session.get(Customer, customer_id) is None:
            raise CustomerNotFoundError(str(customer_id))

        candidate = AliasRange(alias_number, str(customer_id), effective_from, effective_to)
        check_no_overlap(IdentitySelector(self.session).alias_ranges(alias_number), candidate)

        alias = CustomerAlias(
            alias_number=alias_number,
            customer_id=customer_id,
            effective_from=effective_from,
            effective_to=effective_to,
            note=note,
            created_by=actor_id,
        )
        self.session.add(alias)
        self.session.flush()

        logger.info(
            "alias_registered",
            extra={
                "alias_number": alias_number,
                "customer_id": str(customer_id),
                "effective_from": str(effective_from),
            },
        )
        return alias

    def close_alias(
        self, alias_number: str, effective_to: date, actor_id: str | None = None
    ) -> CustomerAlias:
        """Close the range of ``alias_number`` that covers ``effective_to``."""
        rows = self.session.execute(
            select(CustomerAlias)
            .where(
                CustomerAlias.alias_number == alias_number,
                CustomerAlias.effective_from <= effective_to,
            )
            .with_for_update()
        ).scalars()
        for alias in rows:
            if alias.effective_to is None or alias.effective_to >= effective_to:
                alias.effective_to = effective_to
                alias.updated_by = actor_id
                self.session.flush()
                logger.info(
                    "alias_closed",
                    extra={"alias_number": alias_number, "effective_to": str(effective_to)},
                )
                return alias
        raise IdentityNotFoundError(alias_number, effective_to.isoformat())

    def transfer_alias(
        self,
        alias_number: str,
        new_customer_id: UUID,
        effective_from: date,
        note: str | None = None,
        actor_id: str | None = None,
    ) -> CustomerAlias:
        """Point ``alias_number`` at a new customer from ``effective_from`` on."""
        self.close_alias(alias_number, effective_from - timedelta(days=1), actor_id)
        return self.register_alias(
            alias_number, new_customer_id, effective_from, note=note, actor_id=actor_id
        )
