"""
Module: billing_kernel.selectors.identity_selector
Responsibility: Load alias ranges and resolve historical account numbers
    to customers through billing_engines.identity.
Architecture position: Kernel > Selectors.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import select

from billing_engines.identity import AliasRange, resolve_identity
from billing_kernel.models.identity import CustomerAlias
from billing_kernel.selectors.base import BaseSelector


class IdentitySelector(BaseSelector[CustomerAlias]):
    def alias_ranges(self, alias_number: str) -> list[AliasRange]:
        rows = self.session.execute(
            select(CustomerAlias)
            .where(CustomerAlias.alias_number == alias_number)
            .order_by(CustomerAlias.effective_from)
        ).scalars()
        return [
            AliasRange(
                alias_number=row.alias_number,
                customer_id=str(row.customer_id),
                effective_from=row.effective_from,
                effective_to=row.effective_to,
            )
            for row in rows
        ]

    def resolve(self, alias_number: str, on_date: date) -> UUID:
        """
        Customer the alias referred to on ``on_date``.

        Raises:
            IdentityNotFoundError: No alias range covers the date.
        """
        return UUID(resolve_identity(self.alias_ranges(alias_number), alias_number, on_date))
