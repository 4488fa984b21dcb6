"""
Kernel services.

Services flush but never commit.  ReconciliationOrchestrator is the only
service that owns a transaction boundary.
"""

from billing_kernel.services.customer_lock import DEFAULT_LOCK_REGISTRY, CustomerLockRegistry
from billing_kernel.services.customer_service import CustomerService
from billing_kernel.services.identity_service import IdentityService
from billing_kernel.services.invoice_service import InvoiceService, PeriodCharge
from billing_kernel.services.reconciliation_orchestrator import (
    InvoiceEffect,
    ReconciliationOrchestrator,
    ReconciliationSummary,
)
from billing_kernel.services.repactacion_service import RepactacionService
from billing_kernel.services.subsidy_assignment_service import SubsidyAssignmentService

__all__ = [
    "CustomerLockRegistry",
    "CustomerService",
    "DEFAULT_LOCK_REGISTRY",
    "IdentityService",
    "InvoiceEffect",
    "InvoiceService",
    "PeriodCharge",
    "ReconciliationOrchestrator",
    "ReconciliationSummary",
    "RepactacionService",
    "SubsidyAssignmentService",
]
