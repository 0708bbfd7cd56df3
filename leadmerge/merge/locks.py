"""Per-tenant advisory locks serializing merges and policy changes."""

import threading
from contextlib import contextmanager
from typing import Dict, Iterator


class TenantLockRegistry:
    """Hands out one re-entrant lock per tenant.

    Operations on different tenants never contend; operations on the same
    tenant run one at a time within this process.
    """

    def __init__(self):
        self._locks: Dict[str, threading.RLock] = {}
        self._guard = threading.Lock()

    def lock_for(self, tenant_id: str) -> threading.RLock:
        with self._guard:
            lock = self._locks.get(tenant_id)
            if lock is None:
                lock = self._locks[tenant_id] = threading.RLock()
            return lock

    @contextmanager
    def hold(self, tenant_id: str) -> Iterator[None]:
        with self.lock_for(tenant_id):
            yield


# Process-wide registry shared by every merger and policy store
default_locks = TenantLockRegistry()
