"""
CustomerLockRegistry -- in-process serialization of customer ledgers.

Responsibility:
    Hand out one lock per customer id so that, within a process, only one
    reconciliation cycle per customer runs at a time.  Combined with the
    row lock on the customer (SELECT ... FOR UPDATE) and the optimistic
    ledger_version check, two concurrent payments for the same customer can
    never both allocate against the same outstanding balance.

Failure modes:
    - LedgerConflictError (no expected version) when the lock cannot be
      acquired within the timeout.  Nothing has been read or written; the
      caller retries.
"""

import threading
from collections.abc import Iterator
from contextlib import contextmanager
from uuid import UUID

from billing_kernel.exceptions import LedgerConflictError
from billing_kernel.logging_config import get_logger

logger = get_logger("services.customer_lock")


class CustomerLockRegistry:
    def __init__(self, timeout_seconds: float = 30.0):
        self._timeout = timeout_seconds
        self._locks: dict[str, threading.Lock] = {}
        self._guard = threading.Lock()

    def _lock_for(self, customer_id: str) -> threading.Lock:
        with self._guard:
            lock = self._locks.get(customer_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[customer_id] = lock
            return lock

    @contextmanager
    def hold(self, customer_id: UUID | str) -> Iterator[None]:
        """Hold the customer's lock for the duration of the block."""
        key = str(customer_id)
        lock = self._lock_for(key)
        if not lock.acquire(timeout=self._timeout):
            logger.warning(
                "customer_lock_timeout",
                extra={"customer_id": key, "timeout_seconds": self._timeout},
            )
            raise LedgerConflictError(key)
        try:
            yield
        finally:
            lock.release()


# Shared by every orchestrator in the process unless one is injected
DEFAULT_LOCK_REGISTRY = CustomerLockRegistry()
