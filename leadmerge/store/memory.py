"""In-memory record store, mainly for tests and dry runs."""

import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from typing import Dict, Iterator, List, Optional

from ..core.lead import Document, Lead
from ..core.tenant import TenantConfig
from ..errors import RecordNotFound, StoreError
from .base import DOCUMENTS, LeadFilter, RecordStore, sort_key


class InMemoryLeadStore(RecordStore):
    """Dict-backed store with the same semantics as the SQLite adapter.

    ``fail_on(operation)`` makes the next call of that operation raise,
    which lets tests exercise partial-failure paths.
    """

    OPERATIONS = ('find', 'insert_or_update', 'delete', 'reassign_dependents',
                  'get_tenant_config', 'set_tenant_config')

    def __init__(self):
        self.leads: Dict[str, Lead] = {}
        self.documents: Dict[str, Document] = {}
        self.tenants: Dict[str, TenantConfig] = {}
        self._failures: Dict[str, Exception] = {}
        self._lock = threading.RLock()
        self.calls: List[str] = []

    def fail_on(self, operation: str, error: Optional[Exception] = None) -> None:
        """Make the next call to ``operation`` raise ``error``."""
        if operation not in self.OPERATIONS:
            raise ValueError(f"Unknown operation: {operation}")
        self._failures[operation] = error or StoreError(f"Injected {operation} failure")

    def _enter(self, operation: str) -> None:
        self.calls.append(operation)
        error = self._failures.pop(operation, None)
        if error is not None:
            raise error

    def find(self, tenant_id: str, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        with self._lock:
            self._enter('find')
            lead_filter = lead_filter or LeadFilter()
            found = [
                lead.copy() for lead in self.leads.values()
                if lead.tenant_id == tenant_id and lead_filter.matches(lead)
            ]
        found.sort(key=sort_key)
        if lead_filter.limit is not None:
            found = found[:lead_filter.limit]
        return found

    def insert_or_update(self, lead: Lead) -> Lead:
        with self._lock:
            self._enter('insert_or_update')
            stored = lead.copy()
            stored.updated_at = datetime.now(timezone.utc)
            self.leads[lead.id] = stored
            return stored.copy()

    def delete(self, lead_id: str) -> None:
        with self._lock:
            self._enter('delete')
            if lead_id not in self.leads:
                raise RecordNotFound(lead_id)
            del self.leads[lead_id]
            orphaned = [d.id for d in self.documents.values() if d.lead_id == lead_id]
            for document_id in orphaned:
                del self.documents[document_id]

    def reassign_dependents(self, from_id: str, to_id: str, kind: str = DOCUMENTS) -> int:
        if kind != DOCUMENTS:
            raise ValueError(f"Unknown dependent kind: {kind}")
        with self._lock:
            self._enter('reassign_dependents')
            count = 0
            for document in self.documents.values():
                if document.lead_id == from_id:
                    document.lead_id = to_id
                    count += 1
            return count

    def get_tenant_config(self, tenant_id: str) -> TenantConfig:
        with self._lock:
            self._enter('get_tenant_config')
            config = self.tenants.get(tenant_id)
            if config is None:
                return TenantConfig(tenant_id=tenant_id)
            return TenantConfig(
                tenant_id=config.tenant_id,
                duplicate_prevention_field=config.duplicate_prevention_field,
                duplicate_prevention_configured_at=config.duplicate_prevention_configured_at,
                settings=dict(config.settings),
            )

    def set_tenant_config(self, tenant_id: str, config: TenantConfig) -> None:
        with self._lock:
            self._enter('set_tenant_config')
            self.tenants[tenant_id] = config

    @contextmanager
    def transaction(self) -> Iterator['InMemoryLeadStore']:
        with self._lock:
            yield self

    # ========== Document Methods ==========

    def add_document(self, document: Document) -> Document:
        with self._lock:
            self.documents[document.id] = document
            return document

    def get_documents(self, lead_id: str) -> List[Document]:
        with self._lock:
            return [d for d in self.documents.values() if d.lead_id == lead_id]
