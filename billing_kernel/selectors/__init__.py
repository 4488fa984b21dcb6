"""Read-only query selectors."""

from billing_kernel.selectors.base import BaseSelector
from billing_kernel.selectors.identity_selector import IdentitySelector
from billing_kernel.selectors.ledger_selector import AccountSummary, LedgerSelector

__all__ = [
    "AccountSummary",
    "BaseSelector",
    "IdentitySelector",
    "LedgerSelector",
]
