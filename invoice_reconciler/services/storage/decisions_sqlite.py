"""
SQLite-based record of invoice decisions (processed / rejected).

An invoice gets at most one decision; once decided it drops out of the
pending list.
"""

import sqlite3
from datetime import datetime, UTC

from ...core.errors import InvoiceAlreadyDecidedError, RegistryUnavailableError
from ...models.invoice import InvoiceDecision


class SQLiteDecisionTracker:
    def __init__(self, db_path: str = "registry.db", timeout: float = 10.0):
        self.db_path = db_path
        self.timeout = timeout
        self._init_database()

    def _init_database(self):
        """Create decisions table if it doesn't exist"""
        conn = self._get_connection()
        try:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS invoice_decisions (
                    invoice_id TEXT PRIMARY KEY,
                    status TEXT NOT NULL,
                    reason TEXT,
                    decided_at TEXT NOT NULL,
                    decided_by TEXT NOT NULL,
                    CHECK (status IN ('processed', 'rejected'))
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_decisions_status
                ON invoice_decisions(status)
            """)
            conn.commit()
        finally:
            conn.close()

    def _get_connection(self) -> sqlite3.Connection:
        """Get database connection with row factory"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.OperationalError as e:
            raise RegistryUnavailableError(f"Decision store unavailable: {e}") from e
        conn.row_factory = sqlite3.Row
        return conn

    @staticmethod
    def _to_decision(row: sqlite3.Row) -> InvoiceDecision:
        return InvoiceDecision(
            invoice_id=row["invoice_id"],
            status=row["status"],
            reason=row["reason"],
            decided_at=row["decided_at"],
            decided_by=row["decided_by"],
        )

    def record(self, invoice_id: str, status: str, reason: str | None = None, decided_by: str = "user") -> InvoiceDecision:
        """
        Record the decision for an invoice.

        Raises:
            InvoiceAlreadyDecidedError: The invoice already has a decision
        """
        decision = InvoiceDecision(
            invoice_id=invoice_id,
            status=status,
            reason=reason,
            decided_at=datetime.now(UTC).isoformat(),
            decided_by=decided_by,
        )

        conn = self._get_connection()
        try:
            conn.execute("""
                INSERT INTO invoice_decisions (invoice_id, status, reason, decided_at, decided_by)
                VALUES (?, ?, ?, ?, ?)
            """, (decision.invoice_id, decision.status, decision.reason, decision.decided_at, decision.decided_by))
            conn.commit()
        except sqlite3.IntegrityError:
            existing = self.get(invoice_id)
            raise InvoiceAlreadyDecidedError(invoice_id, existing.status if existing else "decided")
        except sqlite3.OperationalError as e:
            raise RegistryUnavailableError(f"Decision store unavailable: {e}") from e
        finally:
            conn.close()

        return decision

    def get(self, invoice_id: str) -> InvoiceDecision | None:
        conn = self._get_connection()
        try:
            row = conn.execute(
                "SELECT * FROM invoice_decisions WHERE invoice_id = ?", (invoice_id,)
            ).fetchone()
        finally:
            conn.close()
        return self._to_decision(row) if row is not None else None

    def decided_ids(self) -> set[str]:
        conn = self._get_connection()
        try:
            rows = conn.execute("SELECT invoice_id FROM invoice_decisions").fetchall()
        finally:
            conn.close()
        return {row["invoice_id"] for row in rows}

    def list_all(self, status: str | None = None) -> list[InvoiceDecision]:
        """List decisions, newest first, optionally filtered by status"""
        conn = self._get_connection()
        try:
            if status:
                rows = conn.execute("""
                    SELECT * FROM invoice_decisions
                    WHERE status = ?
                    ORDER BY decided_at DESC
                """, (status,)).fetchall()
            else:
                rows = conn.execute(
                    "SELECT * FROM invoice_decisions ORDER BY decided_at DESC"
                ).fetchall()
        finally:
            conn.close()
        return [self._to_decision(row) for row in rows]
