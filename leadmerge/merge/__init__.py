"""
Lead record merging with field-level conflict resolution.

This module provides functionality for merging duplicate leads into a
surviving record, moving their documents and removing the duplicates.
"""

from .conflict_resolver import (
    ConflictResolver,
    ConflictResolution,
    ConflictResolutionPolicy,
    MergeRule,
)
from .locks import TenantLockRegistry, default_locks
from .merger import LeadMerger, MergeResult, BulkMergeResult

__all__ = [
    'ConflictResolver',
    'ConflictResolution',
    'ConflictResolutionPolicy',
    'MergeRule',
    'TenantLockRegistry',
    'default_locks',
    'LeadMerger',
    'MergeResult',
    'BulkMergeResult',
]
