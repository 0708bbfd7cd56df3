"""Shared fixtures for LeadMerge tests."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest

from leadmerge.core.lead import Lead
from leadmerge.store import InMemoryLeadStore, SQLiteLeadStore

TENANT = 'tenant-a'
OTHER_TENANT = 'tenant-b'

BASE_TIME = datetime(2024, 1, 1, 9, 0, tzinfo=timezone.utc)


@pytest.fixture
def make_lead():
    """Factory creating leads with increasing creation times."""
    sequence = count(1)

    def factory(**kwargs) -> Lead:
        n = next(sequence)
        kwargs.setdefault('id', f'lead-{n}')
        kwargs.setdefault('tenant_id', TENANT)
        kwargs.setdefault('created_at', BASE_TIME + timedelta(hours=n))
        return Lead(**kwargs)

    return factory


@pytest.fixture
def memory_store():
    """Empty in-memory store."""
    return InMemoryLeadStore()


@pytest.fixture
def sqlite_store(tmp_path):
    """Fresh SQLite store in a temporary directory."""
    store = SQLiteLeadStore(tmp_path / 'leads.db', create=True)
    yield store
    store.close()


@pytest.fixture(params=['memory', 'sqlite'])
def store(request, tmp_path):
    """Run a test against both store implementations."""
    if request.param == 'memory':
        yield InMemoryLeadStore()
    else:
        sqlite = SQLiteLeadStore(tmp_path / 'leads.db', create=True)
        yield sqlite
        sqlite.close()


@pytest.fixture
def add_leads():
    """Insert leads into a store and return them."""
    def insert(store, *leads):
        for lead in leads:
            store.insert_or_update(lead)
        return list(leads)

    return insert
