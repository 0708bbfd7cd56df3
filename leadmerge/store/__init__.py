"""Record store contract and its SQLite and in-memory adapters."""

from .base import RecordStore, LeadFilter, DOCUMENTS
from .memory import InMemoryLeadStore
from .sqlite_store import SQLiteLeadStore
from .policy_store import PolicyStore

__all__ = [
    'RecordStore',
    'LeadFilter',
    'DOCUMENTS',
    'InMemoryLeadStore',
    'SQLiteLeadStore',
    'PolicyStore',
]
