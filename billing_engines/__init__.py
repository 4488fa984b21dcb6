"""
Pure calculation engines for water billing reconciliation.

All engines are pure functions with no I/O:

- tariff: itemized charges, VAT split and subsidy amount
- repactacion: installment due for a restructuring plan in a period
- ledger: per-invoice owed amounts, balance and credit from history
- allocation: FIFO payment allocation with residual credit
- identity: time-ranged alias resolution
"""

from billing_engines.allocation import (
    AllocationResult,
    FifoAllocator,
    InvoiceAllocation,
    OutstandingInvoice,
    allocate_fifo,
)
from billing_engines.identity import AliasRange, check_no_overlap, ranges_overlap, resolve_identity
from billing_engines.ledger import (
    InvoiceLedgerLine,
    LedgerState,
    PaymentApplication,
    derive_status,
    project_ledger,
)
from billing_engines.repactacion import (
    InstallmentDue,
    PlanStatus,
    RepactacionPlan,
    describe_plan,
    installment_due,
)
from billing_engines.tariff import (
    ChargeBreakdown,
    SubsidyClass,
    TariffRates,
    calculate_charges,
    calculate_subsidy,
    compose_monthly_charge,
    consumption_from_readings,
    split_vat,
)

__all__ = [
    # Allocation
    "AllocationResult",
    "FifoAllocator",
    "InvoiceAllocation",
    "OutstandingInvoice",
    "allocate_fifo",
    # Identity
    "AliasRange",
    "check_no_overlap",
    "ranges_overlap",
    "resolve_identity",
    # Ledger
    "InvoiceLedgerLine",
    "LedgerState",
    "PaymentApplication",
    "derive_status",
    "project_ledger",
    # Repactacion
    "InstallmentDue",
    "PlanStatus",
    "RepactacionPlan",
    "describe_plan",
    "installment_due",
    # Tariff
    "ChargeBreakdown",
    "SubsidyClass",
    "TariffRates",
    "calculate_charges",
    "calculate_subsidy",
    "compose_monthly_charge",
    "consumption_from_readings",
    "split_vat",
]
