"""
Local SQLite database and the per entity type local store.

The database holds a metadata table and a key/value ``store`` table. Each key keeps
one JSON document: the record lists (``transactions``, ``wallets``,
``customCategories``, ``dashboardCards``), the pending queues and the ``lastSync``
timestamp. Record lists are always written whole, never patched.

The schema is verified on start-up and recreated when the metadata table is missing
or incomplete.
"""

import datetime
import enum
import json
import logging
import pathlib
import sqlite3
import time
from typing import Any, Dict, List, Optional, Union

from PySide6 import QtCore

from .models import EntityType, LAST_SYNC_KEY, Record, records_from_dicts
from ..status import status

SCHEMA_VERSION = 1

# Define the expected schema for the metadata table
META_SCHEMA: Dict[str, str] = {
    'meta_id': 'INTEGER PRIMARY KEY',
    'schema_version': 'INTEGER',
    'created': 'TEXT',
}

STORE_SCHEMA: Dict[str, str] = {
    'key': 'TEXT PRIMARY KEY',
    'value': 'TEXT NOT NULL',
    'updated': 'TEXT',
}


class Table(enum.StrEnum):
    """Enum for database tables."""
    Meta = 'metatable'
    Store = 'store'


def now_str() -> str:
    """Return current UTC date and time as an ISO 8601 string.

    Returns:
        str: Current UTC date and time in ISO 8601 format.
    """
    return datetime.datetime.now(datetime.timezone.utc).isoformat()


class DatabaseAPI(QtCore.QObject):
    """Key/value access to the local SQLite database. Handles schema creation and validation."""

    def __init__(self, db_path: Union[str, pathlib.Path], parent: Optional[QtCore.QObject] = None) -> None:
        super().__init__(parent=parent)
        self.db_path = pathlib.Path(db_path)
        self._initialize_schema_if_needed()

    def _initialize_schema_if_needed(self) -> None:
        """
        Ensures the database file and schema are valid.
        If the DB file doesn't exist, or the metatable is missing/invalid, it recreates them.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            db_file_exists = self.db_path.exists()
            conn = self.connection()

            schema_is_valid = False
            if db_file_exists:
                schema_is_valid = self._schema_is_valid_in_conn(conn)

            if not db_file_exists or not schema_is_valid:
                logging.info(
                    f"Recreating database schema (DB exists: {db_file_exists}, Schema valid: {schema_is_valid})."
                )
                conn.execute(f"DROP TABLE IF EXISTS {Table.Meta.value}")
                conn.execute(f"DROP TABLE IF EXISTS {Table.Store.value}")

                meta_cols_sql = ", ".join(f'"{name}" {typedef}' for name, typedef in META_SCHEMA.items())
                conn.execute(f"CREATE TABLE {Table.Meta.value} ({meta_cols_sql})")
                store_cols_sql = ", ".join(f'"{name}" {typedef}' for name, typedef in STORE_SCHEMA.items())
                conn.execute(f"CREATE TABLE {Table.Store.value} ({store_cols_sql})")

                conn.execute(
                    f"INSERT INTO {Table.Meta.value} (meta_id, schema_version, created) VALUES (1, ?, ?)",
                    (SCHEMA_VERSION, now_str())
                )
                conn.commit()
                logging.info(f"Database schema created successfully at {self.db_path}.")
            else:
                logging.debug("Existing database schema is considered valid.")

        except sqlite3.Error as e:
            logging.error(f"SQLite error during schema initialization: {e}. Attempting recovery.", exc_info=True)
            if conn:
                try:
                    conn.close()
                except sqlite3.Error:
                    pass
                conn = None

            try:
                self.delete()
                self._initialize_schema_if_needed()
                logging.info("Database schema forcefully recreated after an error and delete.")
            except (sqlite3.Error, status.LocalStoreException) as final_e:
                logging.critical(f"Failed to recover database schema even after delete: {final_e}", exc_info=True)
                raise status.LocalStoreException(f"Unrecoverable DB schema error: {final_e}") from final_e
        finally:
            if conn:
                try:
                    conn.commit()
                    conn.close()
                except sqlite3.Error as e:
                    logging.error(f"SQLite error during final commit/close in schema init: {e}")

    def _schema_is_valid_in_conn(self, conn: sqlite3.Connection) -> bool:
        for table, schema in ((Table.Meta, META_SCHEMA), (Table.Store, STORE_SCHEMA)):
            if not self._table_exists_in_conn(conn, table.value):
                logging.warning(f"Database file exists but table '{table.value}' is missing. Schema will be recreated.")
                return False
            cursor = conn.execute(f"PRAGMA table_info({table.value})")
            current_columns = {row[1] for row in cursor.fetchall()}
            if not set(schema.keys()).issubset(current_columns):
                missing_cols = set(schema.keys()) - current_columns
                logging.warning(
                    f"Table '{table.value}' schema is invalid. Missing columns: {missing_cols}. "
                    f"Schema will be recreated."
                )
                return False

        row = conn.execute(f"SELECT schema_version FROM {Table.Meta.value} WHERE meta_id=1").fetchone()
        if not row or row[0] != SCHEMA_VERSION:
            logging.warning(f"Unexpected schema version {row[0] if row else None}. Schema will be recreated.")
            return False
        return True

    def connection(self) -> sqlite3.Connection:
        """Return a new connection to the database.

        Returns:
            sqlite3.Connection: Database connection object.
        """
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        conn = sqlite3.connect(str(self.db_path), timeout=2.0)
        conn.set_progress_handler(lambda: logging.debug('Waiting on DB lock…'), 1000)
        return conn

    @staticmethod
    def _table_exists_in_conn(conn: sqlite3.Connection, table_name: str) -> bool:
        """Check if a table exists using an existing connection."""
        cursor = conn.execute(
            """SELECT name FROM sqlite_master WHERE type='table' AND name=?""",
            (table_name,)
        )
        return cursor.fetchone() is not None

    def table_exists(self, table_name: str) -> bool:
        """Check if a table exists in the database (opens a new connection)."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            return self._table_exists_in_conn(conn, table_name)
        finally:
            if conn:
                conn.close()

    def delete(self) -> None:
        """Delete the database file, retrying on failure.

        Raises:
            status.LocalStoreException: If unable to remove the database file after retries.
        """
        db_file = self.db_path
        if not db_file.exists():
            logging.debug('No database found to delete.')
            return

        max_attempts = 5
        attempt = 0
        wait_seconds = 1.0

        while attempt < max_attempts:
            attempt += 1
            try:
                db_file.unlink()
                logging.info(f'Database removed: {db_file}')
                return
            except OSError as ex:
                logging.error(f'Error removing DB (attempt {attempt}/{max_attempts}): {ex}')
                if attempt < max_attempts:
                    logging.debug(f'Retrying in {wait_seconds} seconds...')
                    time.sleep(wait_seconds)
                    wait_seconds *= 1.5
                else:
                    raise status.LocalStoreException(
                        f'Failed to remove DB {db_file} after {max_attempts} attempts: {ex}'
                    ) from ex

    @staticmethod
    def _decode(key: str, raw: str, default: Any) -> Any:
        try:
            return json.loads(raw)
        except json.JSONDecodeError as ex:
            logging.error(f'Value stored under "{key}" is not valid JSON, ignoring it: {ex}')
            return default

    def get_value(self, key: str, default: Any = None) -> Any:
        """Return the decoded value stored under ``key``, or ``default`` if not set."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            row = conn.execute(f"SELECT value FROM {Table.Store.value} WHERE key=?", (key,)).fetchone()
        finally:
            if conn:
                conn.close()

        if row is None:
            return default
        return self._decode(key, row[0], default)

    def set_value(self, key: str, value: Any) -> None:
        """Replace the value stored under ``key``.

        Raises:
            sqlite3.Error: If the write fails. Nothing is committed in that case.
        """
        raw = json.dumps(value, ensure_ascii=False)
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(
                f"INSERT OR REPLACE INTO {Table.Store.value} (key, value, updated) VALUES (?, ?, ?)",
                (key, raw, now_str())
            )
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'SQLite error writing "{key}": {e}')
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

    def take_value(self, key: str, default: Any = None) -> Any:
        """Read and remove the value stored under ``key`` in one transaction.

        Returns:
            The decoded value, or ``default`` if nothing was stored.
        """
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute('BEGIN IMMEDIATE')
            row = conn.execute(f"SELECT value FROM {Table.Store.value} WHERE key=?", (key,)).fetchone()
            conn.execute(f"DELETE FROM {Table.Store.value} WHERE key=?", (key,))
            conn.commit()
        except sqlite3.Error as e:
            logging.error(f'SQLite error draining "{key}": {e}')
            if conn:
                conn.rollback()
            raise
        finally:
            if conn:
                conn.close()

        if row is None:
            return default
        return self._decode(key, row[0], default)

    def delete_value(self, key: str) -> None:
        """Remove ``key`` from the store. Missing keys are ignored."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            conn.execute(f"DELETE FROM {Table.Store.value} WHERE key=?", (key,))
            conn.commit()
        finally:
            if conn:
                conn.close()

    def keys(self) -> List[str]:
        """Return every key currently stored."""
        conn: Optional[sqlite3.Connection] = None
        try:
            conn = self.connection()
            return [row[0] for row in conn.execute(f"SELECT key FROM {Table.Store.value} ORDER BY key")]
        finally:
            if conn:
                conn.close()


class LocalStore:
    """Durable per entity type record lists.

    Every save writes the complete list. A failed save raises
    :class:`~FinanceTracker.status.status.LocalStoreException` and the caller's
    mutation is considered failed.
    """

    def __init__(self, database: DatabaseAPI) -> None:
        self.database = database

    def load(self, entity_type: EntityType) -> List[Record]:
        rows = self.database.get_value(entity_type.local_key, [])
        if not isinstance(rows, list):
            logging.error(f'Local "{entity_type.local_key}" is not a list, ignoring it.')
            return []
        return records_from_dicts(entity_type, rows)

    def save(self, entity_type: EntityType, records: List[Record]) -> None:
        data = [record.to_dict() for record in records]
        try:
            self.database.set_value(entity_type.local_key, data)
        except sqlite3.Error as ex:
            raise status.LocalStoreException(f'Could not save {entity_type.value}: {ex}') from ex
        logging.debug(f'Saved {len(data)} {entity_type.value} record(s) locally.')

    def clear(self, entity_type: EntityType) -> None:
        try:
            self.database.delete_value(entity_type.local_key)
        except sqlite3.Error as ex:
            raise status.LocalStoreException(f'Could not clear {entity_type.value}: {ex}') from ex
        logging.debug(f'Cleared local {entity_type.value}.')

    def get_last_sync(self) -> Optional[str]:
        return self.database.get_value(LAST_SYNC_KEY)

    def set_last_sync(self, timestamp: str) -> None:
        try:
            self.database.set_value(LAST_SYNC_KEY, timestamp)
        except sqlite3.Error as ex:
            raise status.LocalStoreException(f'Could not save the last sync time: {ex}') from ex
