"""
Audit Trail for Merge Operations.

Records every merge (which leads were removed and which primary fields
changed) so operators can review what a bulk merge did.
"""

import json
import sqlite3
import threading
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, TYPE_CHECKING

if TYPE_CHECKING:
    from ..merge.merger import MergeResult


@dataclass
class AuditEntry:
    """Single field change recorded for a merge."""
    id: Optional[int] = None
    session_id: Optional[int] = None
    timestamp: Optional[str] = None
    lead_id: str = ""
    field_name: str = ""
    old_value: Optional[str] = None
    new_value: Optional[str] = None
    reason: Optional[str] = None


class MergeAuditTrail:
    """Manages the merge audit log.

    The log lives in a separate SQLite database alongside the lead database
    (same name with an ``.audit.db`` suffix) so the lead schema is untouched.
    """

    def __init__(self, database_path: str | Path):
        """Initialize audit trail for a database.

        Args:
            database_path: Path to the lead database, or ':memory:'
        """
        if str(database_path) == ':memory:':
            self.audit_db_path = ':memory:'
        else:
            main_db_path = Path(database_path)
            self.audit_db_path = main_db_path.parent / f"{main_db_path.stem}.audit.db"

        self.conn = sqlite3.connect(str(self.audit_db_path), check_same_thread=False)
        self.conn.row_factory = sqlite3.Row
        self._lock = threading.Lock()
        self._create_schema()

    def _create_schema(self):
        """Create audit trail database schema."""
        cursor = self.conn.cursor()

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS merge_session (
                session_id INTEGER PRIMARY KEY AUTOINCREMENT,
                timestamp TEXT NOT NULL DEFAULT (datetime('now')),
                tenant_id TEXT NOT NULL,
                operation TEXT NOT NULL,
                primary_lead_id TEXT NOT NULL,
                removed_lead_ids TEXT NOT NULL,
                documents_moved INTEGER DEFAULT 0,
                metadata TEXT
            )
        """)

        cursor.execute("""
            CREATE TABLE IF NOT EXISTS audit_log (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                session_id INTEGER NOT NULL,
                timestamp TEXT NOT NULL DEFAULT (datetime('now')),
                lead_id TEXT NOT NULL,
                field_name TEXT NOT NULL,
                old_value TEXT,
                new_value TEXT,
                reason TEXT,
                FOREIGN KEY (session_id) REFERENCES merge_session(session_id)
            )
        """)

        cursor.execute("""
            CREATE INDEX IF NOT EXISTS idx_session_tenant
            ON merge_session(tenant_id, timestamp DESC)
        """)

        self.conn.commit()

    def record_merge(self, tenant_id: str, result: 'MergeResult') -> int:
        """Log a completed merge and its field changes.

        Args:
            tenant_id: Tenant the merge ran in
            result: Successful merge result

        Returns:
            Session ID
        """
        metadata = {k: v for k, v in result.details.items() if k != 'operation'}
        with self._lock:
            cursor = self.conn.cursor()
            cursor.execute("""
                INSERT INTO merge_session (
                    tenant_id, operation, primary_lead_id, removed_lead_ids,
                    documents_moved, metadata
                )
                VALUES (?, ?, ?, ?, ?, ?)
            """, (tenant_id, result.details.get('operation', 'merge'),
                  result.merged_lead_id, json.dumps(result.removed_lead_ids),
                  result.documents_moved, json.dumps(metadata) if metadata else None))
            session_id = cursor.lastrowid

            for resolution in result.conflicts_resolved:
                cursor.execute("""
                    INSERT INTO audit_log (
                        session_id, lead_id, field_name, old_value, new_value, reason
                    )
                    VALUES (?, ?, ?, ?, ?, ?)
                """, (session_id, result.merged_lead_id, resolution.field,
                      _to_text(resolution.primary_value), _to_text(resolution.chosen),
                      resolution.reason))

            self.conn.commit()
        return session_id

    def get_sessions(self, tenant_id: str, limit: int = 50) -> List[Dict[str, Any]]:
        """Most recent merges for a tenant, newest first."""
        with self._lock:
            rows = self.conn.execute("""
                SELECT * FROM merge_session
                WHERE tenant_id = ?
                ORDER BY session_id DESC
                LIMIT ?
            """, (tenant_id, limit)).fetchall()

        sessions = []
        for row in rows:
            session = dict(row)
            session['removed_lead_ids'] = json.loads(session['removed_lead_ids'])
            if session['metadata']:
                session['metadata'] = json.loads(session['metadata'])
            sessions.append(session)
        return sessions

    def get_entries(self, session_id: int) -> List[AuditEntry]:
        """Field changes recorded for one merge."""
        with self._lock:
            rows = self.conn.execute(
                "SELECT * FROM audit_log WHERE session_id = ? ORDER BY id", (session_id,)
            ).fetchall()
        return [AuditEntry(**dict(row)) for row in rows]

    def close(self):
        """Close audit database connection."""
        if self.conn:
            self.conn.close()


def _to_text(value: Any) -> Optional[str]:
    """Render a field value for storage."""
    if value is None:
        return None
    if isinstance(value, list):
        return json.dumps(value)
    if hasattr(value, 'value'):
        return str(value.value)
    return str(value)
