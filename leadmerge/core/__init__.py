"""Core data model: leads, documents and tenant configuration."""

from .lead import Lead, Document, Priority
from .tenant import TenantConfig, PreventionField

__all__ = ['Lead', 'Document', 'Priority', 'TenantConfig', 'PreventionField']
