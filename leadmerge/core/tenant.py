"""Tenant-scoped configuration aggregate."""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional


class PreventionField(Enum):
    """Which fields trigger a duplicate check at lead creation."""
    NONE = "none"
    EMAIL = "email"
    PHONE = "phone"
    BOTH = "both"

    @classmethod
    def parse(cls, value: Optional[str]) -> 'PreventionField':
        """Parse a stored value; missing values mean no prevention."""
        if value is None or value == '':
            return cls.NONE
        if isinstance(value, cls):
            return value
        return cls(str(value).lower())

    @property
    def checks_email(self) -> bool:
        return self in (PreventionField.EMAIL, PreventionField.BOTH)

    @property
    def checks_phone(self) -> bool:
        return self in (PreventionField.PHONE, PreventionField.BOTH)


@dataclass
class TenantConfig:
    """Per-tenant settings relevant to duplicate handling.

    Attributes:
        tenant_id: Tenant identifier
        duplicate_prevention_field: Configured prevention policy
        duplicate_prevention_configured_at: When the policy was set
        settings: Other tenant settings, carried through untouched
    """
    tenant_id: str
    duplicate_prevention_field: PreventionField = PreventionField.NONE
    duplicate_prevention_configured_at: Optional[datetime] = None
    settings: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_prevention_configured(self) -> bool:
        return self.duplicate_prevention_field is not PreventionField.NONE
