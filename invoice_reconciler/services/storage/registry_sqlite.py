"""
SQLite-backed registry of suppliers and products.

Provides persistent storage of registry entries and the alias keys created
by "link to existing" actions. Key uniqueness across entries and aliases is
enforced inside a single write transaction, so two concurrent registrations
of the same key can never both succeed.
"""

import sqlite3
import uuid
from contextlib import contextmanager
from datetime import datetime, UTC
from typing import Iterator

from loguru import logger

from ...core.errors import DuplicateKeyError, NotFoundError, RegistryUnavailableError, ValidationError
from ...models.registry import EntryKind, RegistryEntry
from ..keys import normalize_key
from .registry_base import RegistryStoreBase, rank_entries


class SQLiteRegistryStore(RegistryStoreBase):
    """
    SQLite registry store.

    Features:
    - Persistent storage across application restarts
    - Busy timeout doubles as the per-call deadline; a locked or unreachable
      database surfaces as RegistryUnavailableError
    - Aliases for entries linked from invoices
    """

    def __init__(self, db_path: str = "registry.db", timeout: float = 10.0):
        """
        Initialize store with database path.

        Args:
            db_path: Path to SQLite database file (default: registry.db)
            timeout: Seconds to wait for a database lock before giving up
        """
        self.db_path = db_path
        self.timeout = timeout
        self._init_database()

    def _init_database(self):
        """Create registry tables if they don't exist"""
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registry_entries (
                    id TEXT PRIMARY KEY,
                    kind TEXT NOT NULL,
                    name TEXT NOT NULL,
                    identifying_key TEXT NOT NULL,
                    lookup_key TEXT NOT NULL,
                    address TEXT,
                    unit TEXT,
                    price REAL,
                    created_at TEXT NOT NULL,
                    UNIQUE (kind, lookup_key),
                    CHECK (kind IN ('supplier', 'product'))
                )
            """)
            conn.execute("""
                CREATE TABLE IF NOT EXISTS registry_aliases (
                    kind TEXT NOT NULL,
                    lookup_key TEXT NOT NULL,
                    alias TEXT NOT NULL,
                    entry_id TEXT NOT NULL REFERENCES registry_entries(id),
                    created_at TEXT NOT NULL,
                    PRIMARY KEY (kind, lookup_key)
                )
            """)
            conn.execute("""
                CREATE INDEX IF NOT EXISTS idx_aliases_entry
                ON registry_aliases(entry_id)
            """)

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        """Connection with row factory; commits on success, always closes"""
        try:
            conn = sqlite3.connect(self.db_path, timeout=self.timeout)
        except sqlite3.OperationalError as e:
            raise RegistryUnavailableError(f"Registry database unavailable: {e}") from e
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        except sqlite3.OperationalError as e:
            logger.error("Registry database error", db_path=self.db_path, error=str(e))
            raise RegistryUnavailableError(f"Registry database unavailable: {e}") from e
        finally:
            conn.close()

    def _aliases(self, conn: sqlite3.Connection, entry_id: str) -> list[str]:
        rows = conn.execute(
            "SELECT alias FROM registry_aliases WHERE entry_id = ? ORDER BY created_at",
            (entry_id,),
        ).fetchall()
        return [row["alias"] for row in rows]

    def _to_entry(self, conn: sqlite3.Connection, row: sqlite3.Row) -> RegistryEntry:
        return RegistryEntry(
            id=row["id"],
            kind=row["kind"],
            name=row["name"],
            identifying_key=row["identifying_key"],
            address=row["address"],
            unit=row["unit"],
            price=row["price"],
            aliases=self._aliases(conn, row["id"]),
            created_at=row["created_at"],
        )

    def _owner_of(self, conn: sqlite3.Connection, kind: EntryKind, lookup_key: str) -> str | None:
        """Id of the entry holding a key, directly or through an alias"""
        row = conn.execute(
            "SELECT id FROM registry_entries WHERE kind = ? AND lookup_key = ?",
            (kind, lookup_key),
        ).fetchone()
        if row is not None:
            return row["id"]
        row = conn.execute(
            "SELECT entry_id FROM registry_aliases WHERE kind = ? AND lookup_key = ?",
            (kind, lookup_key),
        ).fetchone()
        return row["entry_id"] if row is not None else None

    def exists(self, kind: EntryKind, key: str) -> bool:
        lookup_key = normalize_key(key)
        if not lookup_key:
            return False
        with self._connect() as conn:
            return self._owner_of(conn, kind, lookup_key) is not None

    def create_entry(
        self,
        kind: EntryKind,
        name: str,
        identifying_key: str,
        address: str | None = None,
        unit: str | None = None,
        price: float | None = None,
    ) -> RegistryEntry:
        lookup_key = normalize_key(identifying_key)
        entry_id = str(uuid.uuid4())
        created_at = datetime.now(UTC).isoformat()

        with self._connect() as conn:
            # Take the write lock before the uniqueness check
            conn.execute("BEGIN IMMEDIATE")
            existing_id = self._owner_of(conn, kind, lookup_key)
            if existing_id is not None:
                raise DuplicateKeyError(identifying_key, existing_id)
            try:
                conn.execute("""
                    INSERT INTO registry_entries
                        (id, kind, name, identifying_key, lookup_key, address, unit, price, created_at)
                    VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
                """, (entry_id, kind, name, identifying_key, lookup_key, address, unit, price, created_at))
            except sqlite3.IntegrityError as e:
                raise DuplicateKeyError(identifying_key, self._owner_of(conn, kind, lookup_key)) from e

            row = conn.execute("SELECT * FROM registry_entries WHERE id = ?", (entry_id,)).fetchone()
            entry = self._to_entry(conn, row)

        logger.info("Registry entry created", kind=kind, entry_id=entry_id, key=identifying_key)
        return entry

    def get_entry(self, kind: EntryKind, entry_id: str) -> RegistryEntry | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT * FROM registry_entries WHERE id = ? AND kind = ?", (entry_id, kind)
            ).fetchone()
            if row is None:
                return None
            return self._to_entry(conn, row)

    def add_alias(self, kind: EntryKind, entry_id: str, key: str) -> RegistryEntry:
        lookup_key = normalize_key(key)

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT * FROM registry_entries WHERE id = ? AND kind = ?",
                (entry_id, kind),
            ).fetchone()
            if row is None:
                raise ValidationError("entry_id", f"No {kind} registered with id {entry_id}")

            owner = self._owner_of(conn, kind, lookup_key)
            if owner is not None and owner != entry_id:
                raise DuplicateKeyError(key, owner)
            if owner is None:
                conn.execute("""
                    INSERT INTO registry_aliases (kind, lookup_key, alias, entry_id, created_at)
                    VALUES (?, ?, ?, ?, ?)
                """, (kind, lookup_key, key, entry_id, datetime.now(UTC).isoformat()))
                logger.info("Registry alias linked", kind=kind, entry_id=entry_id, key=key)

            return self._to_entry(conn, row)

    def update_entry(
        self,
        kind: EntryKind,
        entry_id: str,
        name: str,
        identifying_key: str,
        address: str | None = None,
        unit: str | None = None,
        price: float | None = None,
    ) -> RegistryEntry:
        lookup_key = normalize_key(identifying_key)

        with self._connect() as conn:
            conn.execute("BEGIN IMMEDIATE")
            row = conn.execute(
                "SELECT * FROM registry_entries WHERE id = ? AND kind = ?",
                (entry_id, kind),
            ).fetchone()
            if row is None:
                raise NotFoundError(f"No {kind} registered with id {entry_id}")

            owner = self._owner_of(conn, kind, lookup_key)
            if owner is not None and owner != entry_id:
                raise DuplicateKeyError(identifying_key, owner)

            # A key promoted from one of the entry's own aliases stops being an alias
            conn.execute(
                "DELETE FROM registry_aliases WHERE kind = ? AND lookup_key = ? AND entry_id = ?",
                (kind, lookup_key, entry_id),
            )
            try:
                conn.execute("""
                    UPDATE registry_entries
                    SET name = ?, identifying_key = ?, lookup_key = ?, address = ?, unit = ?, price = ?
                    WHERE id = ?
                """, (name, identifying_key, lookup_key, address, unit, price, entry_id))
            except sqlite3.IntegrityError as e:
                raise DuplicateKeyError(identifying_key, self._owner_of(conn, kind, lookup_key)) from e

            row = conn.execute("SELECT * FROM registry_entries WHERE id = ?", (entry_id,)).fetchone()
            entry = self._to_entry(conn, row)

        logger.info("Registry entry updated", kind=kind, entry_id=entry_id, key=identifying_key)
        return entry

    def search(self, kind: EntryKind, query: str) -> list[RegistryEntry]:
        needle = (query or "").strip()
        if not needle:
            return []

        # LIKE only folds ASCII case ("Óculos" vs "óculos"), so matching is
        # left to rank_entries over every entry of the kind.
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM registry_entries WHERE kind = ?", (kind,)).fetchall()
            entries = [self._to_entry(conn, row) for row in rows]

        return rank_entries(entries, needle)

    def list_entries(self, kind: EntryKind) -> list[RegistryEntry]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT * FROM registry_entries WHERE kind = ? ORDER BY name COLLATE NOCASE",
                (kind,),
            ).fetchall()
            return [self._to_entry(conn, row) for row in rows]
