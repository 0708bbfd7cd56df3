"""Duplicate groups produced by a scan."""

from dataclasses import dataclass, replace
from enum import Enum
from typing import Dict, Iterable, List, Optional

from ..core.lead import Lead
from ..store.base import sort_key


class MatchType(Enum):
    """Strategy that produced a duplicate group."""
    EXACT_EMAIL = "exact_email"
    EXACT_PHONE = "exact_phone"
    EXACT_BOTH = "exact_both"
    SIMILAR_NAME = "similar_name"
    NAME_PROGRAM = "name_program"

    @property
    def is_exact(self) -> bool:
        return self in (MatchType.EXACT_EMAIL, MatchType.EXACT_PHONE, MatchType.EXACT_BOTH)


@dataclass
class DuplicateGroup:
    """A set of two or more leads judged to be the same person.

    ``leads`` is ordered oldest-created first and ``primary_lead_id``
    defaults to the oldest lead.
    """
    id: str
    tenant_id: str
    match_type: MatchType
    confidence: int
    leads: List[Lead]
    primary_lead_id: Optional[str] = None

    def __post_init__(self):
        if len(self.leads) < 2:
            raise ValueError(f"Duplicate group {self.id} needs at least two leads")
        self.leads = sorted(self.leads, key=sort_key)
        if self.primary_lead_id is None:
            self.primary_lead_id = self.leads[0].id
        elif self.primary_lead_id not in self.lead_ids:
            raise ValueError(
                f"Primary lead {self.primary_lead_id} is not a member of group {self.id}"
            )

    def __str__(self) -> str:
        names = ', '.join(str(lead) for lead in self.leads)
        return f"[{self.match_type.value} {self.confidence}%] {names}"

    @property
    def lead_ids(self) -> List[str]:
        return [lead.id for lead in self.leads]

    @property
    def primary(self) -> Lead:
        return next(lead for lead in self.leads if lead.id == self.primary_lead_id)

    @property
    def secondaries(self) -> List[Lead]:
        """Non-primary members in group order."""
        return [lead for lead in self.leads if lead.id != self.primary_lead_id]

    def with_primary(self, lead_id: str) -> 'DuplicateGroup':
        """Return a copy of the group surviving as ``lead_id``."""
        return replace(self, primary_lead_id=lead_id)

    def to_dict(self) -> Dict:
        return {
            'id': self.id,
            'tenant_id': self.tenant_id,
            'match_type': self.match_type.value,
            'confidence': self.confidence,
            'primary_lead_id': self.primary_lead_id,
            'leads': [
                {
                    'id': lead.id,
                    'email': lead.email,
                    'phone': lead.phone,
                    'name': lead.full_name,
                    'created_at': lead.created_at.isoformat(),
                }
                for lead in self.leads
            ],
        }


def are_disjoint(groups: Iterable[DuplicateGroup]) -> bool:
    """True when no lead id appears in more than one group."""
    seen = set()
    for group in groups:
        ids = set(group.lead_ids)
        if ids & seen:
            return False
        seen |= ids
    return True


def secondary_ids(groups: Iterable[DuplicateGroup]) -> List[str]:
    """Ids of every non-primary member across groups."""
    return [lead.id for group in groups for lead in group.secondaries]


def duplicate_stats(groups: List[DuplicateGroup]) -> Dict[str, int]:
    """
    Summary counts for a list of groups.

    Returns:
        total_groups, total_duplicates (leads a merge would remove),
        exact_matches and near_matches (group counts by strategy kind)
    """
    return {
        'total_groups': len(groups),
        'total_duplicates': sum(len(group.leads) - 1 for group in groups),
        'exact_matches': sum(1 for group in groups if group.match_type.is_exact),
        'near_matches': sum(1 for group in groups if not group.match_type.is_exact),
    }


@dataclass
class DuplicateCheckResult:
    """Outcome of an intake-time duplicate check."""
    is_duplicate: bool
    existing_lead: Optional[Lead] = None
    match_type: Optional[str] = None
