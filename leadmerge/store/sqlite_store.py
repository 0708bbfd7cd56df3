"""Record store adapter for SQLite lead databases."""

import json
import logging
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Sequence

from ..core.lead import Document, Lead, Priority
from ..core.tenant import PreventionField, TenantConfig
from ..errors import RecordNotFound, StoreError
from ..utils.normalizer import normalize_email, normalize_phone
from .base import DOCUMENTS, LeadFilter, RecordStore

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS leads (
    id TEXT PRIMARY KEY,
    tenant_id TEXT NOT NULL,
    email TEXT,
    phone TEXT,
    first_name TEXT NOT NULL DEFAULT '',
    last_name TEXT NOT NULL DEFAULT '',
    country TEXT,
    state TEXT,
    city TEXT,
    program_interest TEXT NOT NULL DEFAULT '[]',
    tags TEXT NOT NULL DEFAULT '[]',
    notes TEXT NOT NULL DEFAULT '',
    lead_score REAL NOT NULL DEFAULT 0,
    priority TEXT NOT NULL DEFAULT 'medium',
    status TEXT NOT NULL DEFAULT 'new',
    created_at TEXT NOT NULL,
    updated_at TEXT
);
CREATE INDEX IF NOT EXISTS idx_leads_tenant_created ON leads(tenant_id, created_at);
CREATE TABLE IF NOT EXISTS lead_documents (
    id TEXT PRIMARY KEY,
    lead_id TEXT NOT NULL,
    tenant_id TEXT NOT NULL,
    name TEXT NOT NULL DEFAULT ''
);
CREATE INDEX IF NOT EXISTS idx_documents_lead ON lead_documents(lead_id);
CREATE TABLE IF NOT EXISTS tenants (
    id TEXT PRIMARY KEY,
    settings TEXT NOT NULL DEFAULT '{}'
);
"""

# Dependent kinds and the (table, foreign key column) holding them
DEPENDENT_TABLES = {
    DOCUMENTS: ('lead_documents', 'lead_id'),
}


def _to_iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None


def _from_iso(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class SQLiteLeadStore(RecordStore):
    """Adapter for lead databases stored in SQLite.

    This class handles:
    - SQLite connection management
    - Registration of the comparison functions used in lookups
    - CRUD operations for leads, documents and tenant settings
    - Transaction management

    One connection is shared; access is serialized with a re-entrant lock.
    """

    def __init__(self, db_path: str | Path, create: bool = False):
        """Initialize database connection.

        Args:
            db_path: Path to the database file, or ':memory:'
            create: Create the file and schema if missing
        """
        self.db_path = db_path if db_path == ':memory:' else Path(db_path)
        if isinstance(self.db_path, Path) and not create and not self.db_path.exists():
            raise FileNotFoundError(f"Database not found: {self.db_path}")

        self.conn = sqlite3.connect(
            str(self.db_path), check_same_thread=False, isolation_level=None
        )
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.RLock()
        self._depth = 0

        self._register_functions()
        if create:
            self.create_schema()

    def _register_functions(self):
        """Register the normalization functions used in WHERE clauses."""
        self.conn.create_function("normalize_phone", 1, normalize_phone, deterministic=True)
        self.conn.create_function("normalize_email", 1, normalize_email, deterministic=True)

    def create_schema(self) -> None:
        """Create tables and indexes if they do not exist."""
        with self._lock:
            try:
                self.conn.executescript(SCHEMA)
            except sqlite3.Error as e:
                raise StoreError(f"Could not create schema: {e}") from e

    def close(self):
        """Close the database connection."""
        if self.conn:
            self.conn.close()

    def __enter__(self):
        """Context manager entry."""
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        """Context manager exit."""
        self.close()

    @contextmanager
    def transaction(self) -> Iterator['SQLiteLeadStore']:
        """Context manager for database transactions.

        Nested use joins the outer transaction.
        """
        with self._lock:
            outermost = self._depth == 0
            if outermost:
                self._execute("BEGIN IMMEDIATE")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth -= 1
                if outermost:
                    self.conn.rollback()
                raise
            self._depth -= 1
            if outermost:
                try:
                    self.conn.commit()
                except sqlite3.Error as e:
                    raise StoreError(f"Commit failed: {e}") from e

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> sqlite3.Cursor:
        try:
            return self.conn.execute(sql, params)
        except sqlite3.Error as e:
            raise StoreError(f"Query failed: {e}") from e

    # ========== Lead Methods ==========

    def find(self, tenant_id: str, lead_filter: Optional[LeadFilter] = None) -> List[Lead]:
        lead_filter = lead_filter or LeadFilter()
        clauses = ["tenant_id = ?"]
        params: List[Any] = [tenant_id]

        if lead_filter.ids is not None:
            if not lead_filter.ids:
                return []
            placeholders = ', '.join('?' for _ in lead_filter.ids)
            clauses.append(f"id IN ({placeholders})")
            params.extend(lead_filter.ids)

        field_clauses = []
        if lead_filter.email:
            field_clauses.append("normalize_email(email) = ?")
            params.append(normalize_email(lead_filter.email))
        if lead_filter.phone:
            field_clauses.append("instr(normalize_phone(phone), ?) > 0")
            params.append(lead_filter.phone)
        if field_clauses:
            joiner = ' OR ' if lead_filter.match_any else ' AND '
            clauses.append(f"({joiner.join(field_clauses)})")

        query = f"SELECT * FROM leads WHERE {' AND '.join(clauses)} ORDER BY created_at, id"
        if lead_filter.limit is not None:
            query += " LIMIT ?"
            params.append(lead_filter.limit)

        with self._lock:
            rows = self._execute(query, params).fetchall()
        return [self._row_to_lead(row) for row in rows]

    def insert_or_update(self, lead: Lead) -> Lead:
        stored = lead.copy()
        stored.updated_at = datetime.now(timezone.utc)
        with self._lock:
            self._execute(
                """
                INSERT OR REPLACE INTO leads (
                    id, tenant_id, email, phone, first_name, last_name,
                    country, state, city, program_interest, tags, notes,
                    lead_score, priority, status, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    stored.id, stored.tenant_id, stored.email, stored.phone,
                    stored.first_name, stored.last_name, stored.country,
                    stored.state, stored.city, json.dumps(stored.program_interest),
                    json.dumps(stored.tags), stored.notes, stored.lead_score,
                    stored.priority.value, stored.status,
                    _to_iso(stored.created_at), _to_iso(stored.updated_at),
                )
            )
        return stored

    def delete(self, lead_id: str) -> None:
        """Delete a lead and the documents it still owns."""
        with self.transaction():
            cursor = self._execute("DELETE FROM leads WHERE id = ?", (lead_id,))
            if cursor.rowcount == 0:
                raise RecordNotFound(lead_id)
            self._execute("DELETE FROM lead_documents WHERE lead_id = ?", (lead_id,))

    def reassign_dependents(self, from_id: str, to_id: str, kind: str = DOCUMENTS) -> int:
        if kind not in DEPENDENT_TABLES:
            raise ValueError(f"Unknown dependent kind: {kind}")
        table, column = DEPENDENT_TABLES[kind]
        with self._lock:
            cursor = self._execute(
                f"UPDATE {table} SET {column} = ? WHERE {column} = ?",
                (to_id, from_id)
            )
        logger.debug(f"Reassigned {cursor.rowcount} {kind} from {from_id} to {to_id}")
        return cursor.rowcount

    # ========== Tenant Methods ==========

    def get_tenant_config(self, tenant_id: str) -> TenantConfig:
        with self._lock:
            row = self._execute(
                "SELECT settings FROM tenants WHERE id = ?", (tenant_id,)
            ).fetchone()

        settings: Dict[str, Any] = json.loads(row['settings']) if row else {}
        field_value = settings.pop('duplicate_prevention_field', None)
        configured_at = settings.pop('duplicate_prevention_configured_at', None)
        return TenantConfig(
            tenant_id=tenant_id,
            duplicate_prevention_field=PreventionField.parse(field_value),
            duplicate_prevention_configured_at=_from_iso(configured_at),
            settings=settings,
        )

    def set_tenant_config(self, tenant_id: str, config: TenantConfig) -> None:
        settings = dict(config.settings)
        if config.is_prevention_configured:
            settings['duplicate_prevention_field'] = config.duplicate_prevention_field.value
            settings['duplicate_prevention_configured_at'] = _to_iso(
                config.duplicate_prevention_configured_at
            )
        with self._lock:
            self._execute(
                """
                INSERT INTO tenants (id, settings) VALUES (?, ?)
                ON CONFLICT(id) DO UPDATE SET settings = excluded.settings
                """,
                (tenant_id, json.dumps(settings))
            )

    # ========== Document Methods ==========

    def add_document(self, document: Document) -> Document:
        with self._lock:
            self._execute(
                "INSERT INTO lead_documents (id, lead_id, tenant_id, name) VALUES (?, ?, ?, ?)",
                (document.id, document.lead_id, document.tenant_id, document.name)
            )
        return document

    def get_documents(self, lead_id: str) -> List[Document]:
        with self._lock:
            rows = self._execute(
                "SELECT * FROM lead_documents WHERE lead_id = ? ORDER BY id", (lead_id,)
            ).fetchall()
        return [
            Document(id=row['id'], lead_id=row['lead_id'],
                     tenant_id=row['tenant_id'], name=row['name'])
            for row in rows
        ]

    # ========== Helper Methods ==========

    def _row_to_lead(self, row: sqlite3.Row) -> Lead:
        """Convert database row to Lead object."""
        return Lead(
            id=row['id'],
            tenant_id=row['tenant_id'],
            email=row['email'],
            phone=row['phone'],
            first_name=row['first_name'],
            last_name=row['last_name'],
            country=row['country'],
            state=row['state'],
            city=row['city'],
            program_interest=json.loads(row['program_interest']),
            tags=json.loads(row['tags']),
            notes=row['notes'],
            lead_score=row['lead_score'],
            priority=Priority(row['priority']),
            status=row['status'],
            created_at=_from_iso(row['created_at']),
            updated_at=_from_iso(row['updated_at']),
        )
