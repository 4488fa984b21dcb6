"""
Billing Kernel - reconciliation core for a water utility cooperative.

- Balance and per-invoice status derived from payment history, never cached
  as ground truth
- Oldest-first (FIFO) payment allocation with credit tracking
- Per-customer serialized reconciliation under a single transaction
- Typed errors and structured JSON logging
"""

__version__ = "0.1.0"
