"""LeadMerge - find and merge duplicate contact records in admissions lead databases."""

__version__ = "0.1.0"

from .core.lead import Lead, Document, Priority
from .core.tenant import TenantConfig, PreventionField
from .store import RecordStore, LeadFilter, SQLiteLeadStore, InMemoryLeadStore, PolicyStore
from .matching import (
    DuplicateChecker,
    DuplicateScanner,
    DuplicateGroup,
    MatchType,
    CancellationToken,
)
from .merge import LeadMerger, ConflictResolutionPolicy, MergeRule

__all__ = [
    'Lead',
    'Document',
    'Priority',
    'TenantConfig',
    'PreventionField',
    'RecordStore',
    'LeadFilter',
    'SQLiteLeadStore',
    'InMemoryLeadStore',
    'PolicyStore',
    'DuplicateChecker',
    'DuplicateScanner',
    'DuplicateGroup',
    'MatchType',
    'CancellationToken',
    'LeadMerger',
    'ConflictResolutionPolicy',
    'MergeRule',
]
