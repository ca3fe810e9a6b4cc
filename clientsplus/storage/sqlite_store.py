# clientsplus/storage/sqlite_store.py
import sqlite3
import logging
from pathlib import Path
from typing import Optional
from datetime import datetime, timezone

from .storage_interfaces import AbstractKeyValueStore
from ..settings import settings

logger = logging.getLogger(__name__)


class SQLiteKeyValueStore(AbstractKeyValueStore):
    """SQLite implementation of the durable tier."""

    durable = True

    def __init__(self, db_path: Optional[str] = None):
        self.db_path = db_path or settings.sqlite_db_path
        self._connection: Optional[sqlite3.Connection] = None

    async def initialize(self) -> None:
        """Open the database and ensure the entries table exists."""
        if self._connection is not None:
            return
        try:
            db_path = Path(self.db_path).resolve()
            # Ensure the database directory structure exists
            db_path.parent.mkdir(parents=True, exist_ok=True)
            logger.info(f"Attempting to connect to SQLite DB at: {db_path}")

            self._connection = sqlite3.connect(str(db_path), check_same_thread=False)
            self._connection.row_factory = sqlite3.Row

            self._connection.execute('''
            CREATE TABLE IF NOT EXISTS kv_entries (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL,
                updated_at TEXT NOT NULL
            )
            ''')
            self._connection.commit()
            logger.info("Ensured 'kv_entries' table exists.")
        except sqlite3.Error as e:
            logger.error(f"Error connecting to SQLite database at {self.db_path}: {e}", exc_info=True)
            self._connection = None
            raise

    async def teardown(self) -> None:
        if self._connection is not None:
            logger.info("Closing SQLite DB connection.")
            self._connection.close()
            self._connection = None

    async def _get_connection(self) -> sqlite3.Connection:
        if self._connection is None:
            await self.initialize()
        return self._connection

    async def _execute_query(self, query: str, params: tuple = ()) -> None:
        """Execute a write query with commit/rollback handling."""
        conn = await self._get_connection()
        try:
            logger.debug(f"Executing SQL: {query.strip()}")
            conn.execute(query, params)
            conn.commit()
        except sqlite3.Error as e:
            logger.error(f"SQLite error executing query '{query.strip()}': {e}", exc_info=True)
            conn.rollback()
            raise

    async def get(self, key: str) -> Optional[str]:
        conn = await self._get_connection()
        try:
            row = conn.execute("SELECT value FROM kv_entries WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.error(f"SQLite error reading key '{key}': {e}", exc_info=True)
            raise
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> None:
        query = '''
            INSERT INTO kv_entries (key, value, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(key) DO UPDATE SET
                value=excluded.value,
                updated_at=excluded.updated_at
        '''
        await self._execute_query(query, (key, value, datetime.now(timezone.utc).isoformat()))

    async def delete(self, key: str) -> None:
        await self._execute_query("DELETE FROM kv_entries WHERE key = ?", (key,))


# Global singleton instance management
_sqlite_kv_store_instance: Optional[SQLiteKeyValueStore] = None


async def get_sqlite_kv_store() -> SQLiteKeyValueStore:
    """Get or create the singleton SQLite key-value store."""
    global _sqlite_kv_store_instance
    if _sqlite_kv_store_instance is None:
        _sqlite_kv_store_instance = SQLiteKeyValueStore()
        await _sqlite_kv_store_instance.initialize()
    return _sqlite_kv_store_instance
