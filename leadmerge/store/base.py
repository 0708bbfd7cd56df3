"""Abstract record store contract used by the engine."""

from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Iterator, List, Optional, Sequence

from ..core.lead import Lead
from ..core.tenant import TenantConfig
from ..utils.normalizer import normalize_email, normalize_phone

DOCUMENTS = 'documents'


@dataclass(frozen=True)
class LeadFilter:
    """Store-neutral predicate for :meth:`RecordStore.find`.

    Attributes:
        ids: Restrict to these lead ids
        email: Case-insensitive exact email match
        phone: Normalized phone digits the stored normalized phone must contain
        match_any: Combine ``email`` and ``phone`` with OR instead of AND
        limit: Maximum number of leads returned

    Results are always ordered oldest-created first.
    """
    ids: Optional[Sequence[str]] = None
    email: Optional[str] = None
    phone: Optional[str] = None
    match_any: bool = False
    limit: Optional[int] = None

    def matches(self, lead: Lead) -> bool:
        """Evaluate the filter against a lead in memory."""
        if self.ids is not None and lead.id not in self.ids:
            return False

        checks = []
        if self.email:
            checks.append(normalize_email(lead.email) == normalize_email(self.email))
        if self.phone:
            checks.append(self.phone in normalize_phone(lead.phone))

        if not checks:
            return True
        return any(checks) if self.match_any else all(checks)


def sort_key(lead: Lead):
    """Oldest-created first, id as tie breaker."""
    return (lead.created_at, lead.id)


class RecordStore(ABC):
    """Persistence collaborator for leads, their documents and tenant settings.

    Every lead query is scoped to one tenant.
    """

    @abstractmethod
    def find(self, tenant_id: str, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        """Return the tenant's leads matching the filter, oldest first."""

    @abstractmethod
    def insert_or_update(self, lead: Lead) -> Lead:
        """Insert a new lead or replace an existing one; returns the stored lead."""

    @abstractmethod
    def delete(self, lead_id: str) -> None:
        """Delete a lead. Raises RecordNotFound when it does not exist."""

    @abstractmethod
    def reassign_dependents(self, from_id: str, to_id: str, kind: str = DOCUMENTS) -> int:
        """Repoint child records of ``kind`` from one lead to another; returns the count."""

    @abstractmethod
    def get_tenant_config(self, tenant_id: str) -> TenantConfig:
        """Return the tenant's configuration (defaults when unset)."""

    @abstractmethod
    def set_tenant_config(self, tenant_id: str, config: TenantConfig) -> None:
        """Persist the tenant's configuration."""

    def get(self, tenant_id: str, lead_id: str) -> Optional[Lead]:
        """Return one lead by id, or None."""
        leads = self.find(tenant_id, LeadFilter(ids=[lead_id]))
        return leads[0] if len(leads) == 1 else None

    @contextmanager
    def transaction(self) -> Iterator['RecordStore']:
        """Group operations; stores without transactions just yield."""
        yield self
