"""Lead class for representing contact records in an admissions database."""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional


class Priority(Enum):
    """Lead priority, most urgent first."""
    URGENT = "urgent"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Severity rank (0 = most urgent)."""
        return _PRIORITY_ORDER.index(self)

    @classmethod
    def most_urgent(cls, priorities: List['Priority']) -> 'Priority':
        """Return the most urgent of the given priorities."""
        return min(priorities, key=lambda p: p.rank)


_PRIORITY_ORDER = [Priority.URGENT, Priority.HIGH, Priority.MEDIUM, Priority.LOW]


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Aware UTC timestamp; naive values are taken to be UTC already."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def unique(values: List[str]) -> List[str]:
    """Drop repeated values, keeping first-seen order."""
    seen = set()
    result = []
    for value in values:
        if value not in seen:
            seen.add(value)
            result.append(value)
    return result


@dataclass(slots=True)
class Lead:
    """Represents a contact/lead owned by one tenant.

    Attributes:
        id: Unique identifier
        tenant_id: Owning tenant; matching never crosses tenants
        email: Email address, compared case-insensitively
        phone: Free-form phone number, normalized only for comparison
        first_name: Given name
        last_name: Family name
        country: Country of residence
        state: State or province
        city: City
        program_interest: Programs the lead is interested in (set semantics)
        tags: Free-form labels (set semantics)
        notes: Free text notes
        lead_score: Numeric score
        priority: Urgency of the lead
        status: Pipeline status
        created_at: Creation timestamp
        updated_at: Last modification timestamp
    """

    id: str
    tenant_id: str
    email: Optional[str] = None
    phone: Optional[str] = None
    first_name: str = ''
    last_name: str = ''
    country: Optional[str] = None
    state: Optional[str] = None
    city: Optional[str] = None
    program_interest: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    notes: str = ''
    lead_score: float = 0.0
    priority: Priority = Priority.MEDIUM
    status: str = 'new'
    created_at: datetime = field(default_factory=_utcnow)
    updated_at: Optional[datetime] = None

    # Scalar fields back-filled from secondaries when blank on the primary
    FILLABLE_FIELDS = ('phone', 'country', 'state', 'city')

    def __post_init__(self):
        if isinstance(self.priority, str):
            self.priority = Priority(self.priority.lower())
        self.program_interest = unique(list(self.program_interest or []))
        self.tags = unique(list(self.tags or []))
        self.notes = self.notes or ''
        self.lead_score = self.lead_score or 0.0
        self.created_at = as_utc(self.created_at)
        if self.updated_at is not None:
            self.updated_at = as_utc(self.updated_at)

    def __str__(self) -> str:
        """Return a human-readable string representation."""
        name = self.full_name or "Unknown"
        if self.email:
            return f"{name} <{self.email}>"
        return name

    @property
    def full_name(self) -> str:
        """First and last name joined by a single space."""
        return ' '.join(part for part in (self.first_name, self.last_name) if part)

    def copy(self) -> 'Lead':
        """Return a copy with independent list fields."""
        return Lead(
            id=self.id,
            tenant_id=self.tenant_id,
            email=self.email,
            phone=self.phone,
            first_name=self.first_name,
            last_name=self.last_name,
            country=self.country,
            state=self.state,
            city=self.city,
            program_interest=list(self.program_interest),
            tags=list(self.tags),
            notes=self.notes,
            lead_score=self.lead_score,
            priority=self.priority,
            status=self.status,
            created_at=self.created_at,
            updated_at=self.updated_at,
        )


@dataclass(slots=True)
class Document:
    """A document or attachment owned by a lead."""
    id: str
    lead_id: str
    tenant_id: str
    name: str = ''
