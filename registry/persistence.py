"""
SQLite persistence backend for the remote healthcare registry.

Provides durable storage for the patient and practitioner tables, the
authorization relation, monitoring payloads, counters and the notification
history. Uses WAL journal mode and thread-local connections.

Writes issued inside ``transaction()`` are committed together, or rolled
back together if any of them fails.
"""

import json
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Tuple

from core.exceptions import PersistenceError
from core.models import AccountRecord, Notification, Population, RegistryCounters


DEFAULT_DB_PATH = Path("data/registry.db")

_RECORD_TABLES = {
    Population.PATIENT: "patients",
    Population.PRACTITIONER: "practitioners",
}

_AUTHORIZATION_COLUMNS = {
    Population.PATIENT: "patient",
    Population.PRACTITIONER: "practitioner",
}


class RegistryDB:
    """Thread-safe SQLite backend for registry state."""

    def __init__(self, db_path: Optional[str] = None):
        """
        Initialize registry database.

        Args:
            db_path: Path to SQLite database file. Use ':memory:' for testing.
                     Defaults to 'data/registry.db'.
        """
        if db_path == ":memory:":
            self.db_path = ":memory:"
        else:
            self.db_path = Path(db_path) if db_path else DEFAULT_DB_PATH
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._local = threading.local()
        self._init_schema()

    def _get_conn(self) -> sqlite3.Connection:
        """Get thread-local connection."""
        if not hasattr(self._local, "conn") or self._local.conn is None:
            self._local.conn = sqlite3.connect(str(self.db_path))
            self._local.conn.row_factory = sqlite3.Row
            self._local.conn.execute("PRAGMA journal_mode=WAL")
            self._local.in_transaction = False
        return self._local.conn

    def _init_schema(self):
        """Create tables if they don't exist."""
        conn = self._get_conn()
        record_columns = """
                account TEXT PRIMARY KEY,
                record_id INTEGER NOT NULL UNIQUE,
                name TEXT NOT NULL,
                age INTEGER NOT NULL CHECK (age BETWEEN 0 AND 255),
                address TEXT NOT NULL,
                updated_at TEXT DEFAULT (datetime('now'))
        """
        conn.executescript(f"""
            CREATE TABLE IF NOT EXISTS metadata (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS counters (
                name TEXT PRIMARY KEY,
                value INTEGER NOT NULL
            );

            CREATE TABLE IF NOT EXISTS patients ({record_columns});

            CREATE TABLE IF NOT EXISTS practitioners ({record_columns});

            CREATE TABLE IF NOT EXISTS authorizations (
                practitioner TEXT NOT NULL,
                patient TEXT NOT NULL,
                granted_at TEXT DEFAULT (datetime('now')),
                PRIMARY KEY (practitioner, patient)
            );
            CREATE INDEX IF NOT EXISTS idx_authorizations_patient
                ON authorizations(patient);

            CREATE TABLE IF NOT EXISTS parameters (
                patient TEXT PRIMARY KEY,
                payload TEXT NOT NULL,
                updated_at TEXT DEFAULT (datetime('now'))
            );

            CREATE TABLE IF NOT EXISTS notifications (
                sequence INTEGER PRIMARY KEY,
                event TEXT NOT NULL,
                account TEXT NOT NULL,
                arguments TEXT NOT NULL DEFAULT '{{}}',
                emitted_at TEXT NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_notifications_account
                ON notifications(account);
            CREATE INDEX IF NOT EXISTS idx_notifications_event
                ON notifications(event);
        """)
        conn.commit()

    def close(self):
        """Close thread-local connection."""
        if hasattr(self._local, "conn") and self._local.conn is not None:
            self._local.conn.close()
            self._local.conn = None

    # =========================================================================
    # TRANSACTIONS
    # =========================================================================

    @contextmanager
    def transaction(self) -> Iterator[sqlite3.Connection]:
        """Group the writes issued inside the block into one commit."""
        conn = self._get_conn()
        if self._local.in_transaction:
            yield conn
            return

        self._local.in_transaction = True
        try:
            yield conn
        except sqlite3.Error as e:
            conn.rollback()
            raise PersistenceError(f"Registry commit failed: {e}") from e
        except BaseException:
            conn.rollback()
            raise
        else:
            try:
                conn.commit()
            except sqlite3.Error as e:
                conn.rollback()
                raise PersistenceError(f"Registry commit failed: {e}") from e
        finally:
            self._local.in_transaction = False

    def _commit(self, conn: sqlite3.Connection) -> None:
        if not self._local.in_transaction:
            conn.commit()

    # =========================================================================
    # METADATA & COUNTERS
    # =========================================================================

    def get_authority(self) -> Optional[str]:
        """Return the stored authority account, if any."""
        row = self._get_conn().execute(
            "SELECT value FROM metadata WHERE key = 'authority'"
        ).fetchone()
        return row["value"] if row else None

    def set_authority(self, authority: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR REPLACE INTO metadata (key, value) VALUES ('authority', ?)",
            (authority,),
        )
        self._commit(conn)

    def load_counters(self) -> RegistryCounters:
        """Load counters, falling back to defaults for missing names."""
        rows = self._get_conn().execute("SELECT name, value FROM counters").fetchall()
        known = RegistryCounters.model_fields
        return RegistryCounters(**{r["name"]: r["value"] for r in rows if r["name"] in known})

    def save_counters(self, counters: RegistryCounters) -> None:
        conn = self._get_conn()
        conn.executemany(
            "INSERT OR REPLACE INTO counters (name, value) VALUES (?, ?)",
            list(counters.to_dict().items()),
        )
        self._commit(conn)

    # =========================================================================
    # PATIENT & PRACTITIONER RECORDS
    # =========================================================================

    def save_record(self, record: AccountRecord) -> None:
        """Save or update a patient/practitioner record."""
        conn = self._get_conn()
        conn.execute(
            f"""INSERT OR REPLACE INTO {_RECORD_TABLES[record.population]}
               (account, record_id, name, age, address, updated_at)
               VALUES (?, ?, ?, ?, ?, datetime('now'))""",
            (record.account, record.record_id, record.name, record.age, record.address),
        )
        self._commit(conn)

    def delete_record(self, population: Population, account: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute(
            f"DELETE FROM {_RECORD_TABLES[population]} WHERE account = ?", (account,)
        )
        self._commit(conn)
        return cursor.rowcount > 0

    def list_records(self, population: Population) -> List[AccountRecord]:
        rows = self._get_conn().execute(
            f"SELECT * FROM {_RECORD_TABLES[population]} ORDER BY record_id"
        ).fetchall()
        return [
            AccountRecord(
                account=r["account"],
                record_id=r["record_id"],
                name=r["name"],
                age=r["age"],
                address=r["address"],
                population=population,
            )
            for r in rows
        ]

    # =========================================================================
    # AUTHORIZATION RELATION
    # =========================================================================

    def grant_authorization(self, practitioner: str, patient: str) -> None:
        conn = self._get_conn()
        conn.execute(
            "INSERT OR IGNORE INTO authorizations (practitioner, patient) VALUES (?, ?)",
            (practitioner, patient),
        )
        self._commit(conn)

    def revoke_authorization(self, practitioner: str, patient: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute(
            "DELETE FROM authorizations WHERE practitioner = ? AND patient = ?",
            (practitioner, patient),
        )
        self._commit(conn)
        return cursor.rowcount > 0

    def revoke_authorizations_for(self, population: Population, account: str) -> int:
        """Delete every pair naming ``account`` on its population's side."""
        conn = self._get_conn()
        cursor = conn.execute(
            f"DELETE FROM authorizations WHERE {_AUTHORIZATION_COLUMNS[population]} = ?",
            (account,),
        )
        self._commit(conn)
        return cursor.rowcount

    def list_authorizations(self) -> List[Tuple[str, str]]:
        rows = self._get_conn().execute(
            "SELECT practitioner, patient FROM authorizations"
        ).fetchall()
        return [(r["practitioner"], r["patient"]) for r in rows]

    # =========================================================================
    # MONITORING PAYLOADS
    # =========================================================================

    def save_parameters(self, patient: str, payload: str) -> None:
        conn = self._get_conn()
        conn.execute(
            """INSERT OR REPLACE INTO parameters (patient, payload, updated_at)
               VALUES (?, ?, datetime('now'))""",
            (patient, payload),
        )
        self._commit(conn)

    def delete_parameters(self, patient: str) -> bool:
        conn = self._get_conn()
        cursor = conn.execute("DELETE FROM parameters WHERE patient = ?", (patient,))
        self._commit(conn)
        return cursor.rowcount > 0

    def load_parameters(self) -> Dict[str, str]:
        rows = self._get_conn().execute("SELECT patient, payload FROM parameters").fetchall()
        return {r["patient"]: r["payload"] for r in rows}

    # =========================================================================
    # NOTIFICATIONS
    # =========================================================================

    def save_notification(self, notification: Notification) -> None:
        conn = self._get_conn()
        entry = notification.to_log_entry()
        conn.execute(
            """INSERT INTO notifications (sequence, event, account, arguments, emitted_at)
               VALUES (?, ?, ?, ?, ?)""",
            (
                entry["sequence"],
                entry["event"],
                entry["account"],
                json.dumps(entry["arguments"]),
                entry["emitted_at"],
            ),
        )
        self._commit(conn)

    def list_notifications(
        self,
        event: Optional[str] = None,
        account: Optional[str] = None,
        since_sequence: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> List[Notification]:
        """List notifications in emission order with optional filters."""
        query = "SELECT * FROM notifications WHERE 1=1"
        params: List[Any] = []
        if event:
            query += " AND event = ?"
            params.append(event)
        if account:
            query += " AND account = ?"
            params.append(account)
        if since_sequence is not None:
            query += " AND sequence > ?"
            params.append(since_sequence)
        query += " ORDER BY sequence"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        rows = self._get_conn().execute(query, params).fetchall()
        return [
            Notification(
                sequence=r["sequence"],
                event=r["event"],
                account=r["account"],
                arguments=json.loads(r["arguments"]),
                emitted_at=r["emitted_at"],
            )
            for r in rows
        ]

