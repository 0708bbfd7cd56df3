"""
Tests for the SQLite record store and its in-memory counterpart.
"""

import pytest

from leadmerge.core.lead import Document, Priority
from leadmerge.errors import RecordNotFound, StoreError
from leadmerge.store import LeadFilter, SQLiteLeadStore

TENANT = 'tenant-a'


class TestLeadRoundTrip:
    """Tests for storing and loading leads."""

    def test_all_fields_persist(self, store, make_lead):
        """Test that every lead field survives a write and read."""
        lead = make_lead(
            email="a@x.com", phone="+1 604 555 0100", first_name="Ann", last_name="Lee",
            country="CA", state="BC", city="Victoria", program_interest=["Nursing", "Law"],
            tags=["fair"], notes="Met at fair", lead_score=42.5, priority="urgent",
            status="contacted",
        )

        store.insert_or_update(lead)
        loaded = store.get(TENANT, lead.id)

        assert loaded.email == "a@x.com"
        assert loaded.phone == "+1 604 555 0100"
        assert loaded.program_interest == ["Nursing", "Law"]
        assert loaded.tags == ["fair"]
        assert loaded.lead_score == 42.5
        assert loaded.priority is Priority.URGENT
        assert loaded.status == "contacted"
        assert loaded.created_at == lead.created_at
        assert loaded.updated_at is not None

    def test_update_replaces(self, store, make_lead):
        """Test that writing an existing id replaces the lead."""
        lead = store.insert_or_update(make_lead(city="Old"))
        lead.city = "New"

        store.insert_or_update(lead)

        assert store.get(TENANT, lead.id).city == "New"
        assert len(store.find(TENANT)) == 1

    def test_get_scoped_to_tenant(self, store, make_lead):
        """Test that get does not cross tenants."""
        lead = store.insert_or_update(make_lead())

        assert store.get('tenant-b', lead.id) is None


class TestFind:
    """Tests for LeadFilter queries."""

    @pytest.fixture
    def population(self, store, make_lead, add_leads):
        return add_leads(
            store,
            make_lead(email="A@x.com", phone="604-555-0100"),
            make_lead(email="b@x.com", phone="778 555 0199"),
            make_lead(email="c@x.com"),
            make_lead(email="a@x.com", tenant_id='tenant-b'),
        )

    def test_oldest_first(self, store, population):
        """Test ordering by creation time."""
        assert [lead.id for lead in store.find(TENANT)] == ['lead-1', 'lead-2', 'lead-3']

    def test_email_case_insensitive(self, store, population):
        """Test that email lookup ignores case."""
        found = store.find(TENANT, LeadFilter(email=" a@X.COM"))

        assert [lead.id for lead in found] == ['lead-1']

    def test_phone_containment(self, store, population):
        """Test that phone lookup matches normalized substrings."""
        found = store.find(TENANT, LeadFilter(phone="5550199"))

        assert [lead.id for lead in found] == ['lead-2']

    def test_match_any(self, store, population):
        """Test combining email and phone with OR."""
        both = LeadFilter(email="c@x.com", phone="6045550100")

        assert store.find(TENANT, both) == []
        any_of = LeadFilter(email="c@x.com", phone="6045550100", match_any=True)
        assert [lead.id for lead in store.find(TENANT, any_of)] == ['lead-1', 'lead-3']

    def test_ids_and_limit(self, store, population):
        """Test restricting by ids and limiting results."""
        found = store.find(TENANT, LeadFilter(ids=['lead-3', 'lead-2', 'lead-4']))
        assert [lead.id for lead in found] == ['lead-2', 'lead-3']

        assert len(store.find(TENANT, LeadFilter(limit=1))) == 1
        assert store.find(TENANT, LeadFilter(ids=[])) == []


class TestDeleteAndDependents:
    """Tests for deletion and document reassignment."""

    def test_delete(self, store, make_lead):
        """Test deleting a lead and its documents."""
        lead = store.insert_or_update(make_lead())
        store.add_document(Document('doc-1', lead.id, TENANT))

        store.delete(lead.id)

        assert store.get(TENANT, lead.id) is None
        assert store.get_documents(lead.id) == []

    def test_delete_missing(self, store):
        """Test deleting an unknown lead."""
        with pytest.raises(RecordNotFound):
            store.delete('lead-404')

    def test_reassign(self, store, make_lead, add_leads):
        """Test repointing documents between leads."""
        a, b = add_leads(store, make_lead(), make_lead())
        store.add_document(Document('doc-1', b.id, TENANT))
        store.add_document(Document('doc-2', b.id, TENANT))

        moved = store.reassign_dependents(b.id, a.id)

        assert moved == 2
        assert [d.id for d in store.get_documents(a.id)] == ['doc-1', 'doc-2']

    def test_reassign_unknown_kind(self, store):
        """Test that unknown dependent kinds are rejected."""
        with pytest.raises(ValueError):
            store.reassign_dependents('lead-1', 'lead-2', 'invoices')


class TestSQLiteLeadStore:
    """Tests specific to the SQLite adapter."""

    def test_missing_file(self, tmp_path):
        """Test opening a database that does not exist."""
        with pytest.raises(FileNotFoundError):
            SQLiteLeadStore(tmp_path / 'missing.db')

    def test_reopen(self, tmp_path, make_lead):
        """Test that data persists across connections."""
        path = tmp_path / 'leads.db'
        with SQLiteLeadStore(path, create=True) as store:
            store.insert_or_update(make_lead(email="a@x.com"))

        with SQLiteLeadStore(path) as store:
            assert store.get(TENANT, 'lead-1').email == "a@x.com"

    def test_in_memory(self, make_lead):
        """Test the :memory: database."""
        with SQLiteLeadStore(':memory:', create=True) as store:
            store.insert_or_update(make_lead())
            assert len(store.find(TENANT)) == 1

    def test_transaction_rollback(self, sqlite_store, make_lead):
        """Test that an error inside a transaction undoes its writes."""
        with pytest.raises(RuntimeError):
            with sqlite_store.transaction():
                sqlite_store.insert_or_update(make_lead())
                raise RuntimeError("boom")

        assert sqlite_store.find(TENANT) == []

    def test_nested_transaction(self, sqlite_store, make_lead):
        """Test that a delete inside a transaction joins it."""
        lead = sqlite_store.insert_or_update(make_lead())

        with pytest.raises(RuntimeError):
            with sqlite_store.transaction():
                sqlite_store.delete(lead.id)
                raise RuntimeError("boom")

        assert sqlite_store.get(TENANT, lead.id) is not None

    def test_query_error_wrapped(self, sqlite_store):
        """Test that sqlite errors surface as StoreError."""
        sqlite_store.conn.execute("DROP TABLE leads")

        with pytest.raises(StoreError):
            sqlite_store.find(TENANT)

    def test_tenant_settings_roundtrip(self, sqlite_store):
        """Test that extra tenant settings are kept beside the policy."""
        config = sqlite_store.get_tenant_config(TENANT)
        config.settings['timezone'] = 'UTC'
        sqlite_store.set_tenant_config(TENANT, config)

        loaded = sqlite_store.get_tenant_config(TENANT)

        assert loaded.settings == {'timezone': 'UTC'}
        assert loaded.is_prevention_configured is False
