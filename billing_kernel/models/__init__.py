"""ORM models for the billing kernel."""

from billing_kernel.models.adjustment import Adjustment
from billing_kernel.models.balance_entry import BalanceEntry
from billing_kernel.models.customer import Customer
from billing_kernel.models.identity import CustomerAlias
from billing_kernel.models.invoice import Invoice
from billing_kernel.models.payment import Payment
from billing_kernel.models.reconciliation import ReconciliationRecord
from billing_kernel.models.repactacion import Repactacion
from billing_kernel.models.subsidy import SubsidyAssignment

__all__ = [
    "Adjustment",
    "BalanceEntry",
    "Customer",
    "CustomerAlias",
    "Invoice",
    "Payment",
    "ReconciliationRecord",
    "Repactacion",
    "SubsidyAssignment",
    "import_all_models",
]


def import_all_models() -> None:
    """Ensure every model module is imported so Base.metadata is complete."""
    from billing_kernel.models import (  # noqa: F401
        adjustment,
        balance_entry,
        customer,
        identity,
        invoice,
        payment,
        reconciliation,
        repactacion,
        subsidy,
    )
