"""
Kernel Invariants Contract.

These invariants are structural law for the reconciliation core. No tariff
version, subsidy policy or caller option may switch them off.

This module only declares them. Enforcement lives in the FIFO allocator
(billing_engines.allocation), the ledger projection (billing_engines.ledger)
and the ReconciliationOrchestrator.
"""

from enum import Enum, unique


@unique
class KernelInvariant(str, Enum):
    """Non-configurable invariants enforced by the kernel."""

    CONSERVATION = "conservation"
    """sum(applied) + credit == payment amount for every allocation.
    Checked by FifoAllocator before returning."""

    FIFO_ORDER = "fifo_order"
    """Payments are absorbed by invoices in (issue_date, invoice_id)
    ascending order. Enforced by the ledger projection sort key."""

    DERIVED_STATUS = "derived_status"
    """Invoice paid/partial/pending and amount owed are a projection of the
    payment and adjustment history; stored values are only a cache that the
    orchestrator overwrites on every run."""

    NON_NEGATIVE_OWED = "non_negative_owed"
    """No invoice owes less than -epsilon. Violations halt the run."""

    CUSTOMER_SERIALIZATION = "customer_serialization"
    """One read-recompute-write cycle at a time per customer ledger.
    Enforced by CustomerLockRegistry, row locks and ledger_version."""

    IDEMPOTENT_RECOMPUTE = "idempotent_recompute"
    """Re-running reconciliation with no new events changes nothing."""


# All invariants as a frozenset for programmatic checks.
ALL_KERNEL_INVARIANTS: frozenset[KernelInvariant] = frozenset(KernelInvariant)

# The kernel package may not import from these packages.
FORBIDDEN_KERNEL_IMPORTS: tuple[str, ...] = ("billing_config",)
