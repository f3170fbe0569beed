"""
Local on-device key-value store for orders in progress.

An agent's half-built order must survive closing the laptop lid, so the
selection and quantity maps are written to a small SQLite database, one
JSON value per key. Keys are namespaced per customer:

    ORDER_SELECTED_<customerId>    {"<productId>": true, ...}
    ORDER_QUANTITIES_<customerId>  {"<productId>": 12, ...}

DB location: %%APPDATA%%\\OrderDesk\\order_store.db  (Windows)
             ~/.local/share/OrderDesk/order_store.db  (Linux/Mac fallback)
"""

import json
import sqlite3
import time
from pathlib import Path
from typing import Any, List, Optional

from app_config import default_db_path
from exceptions import StorageError
from logger import get_logger

logger = get_logger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv_store (
    key         TEXT PRIMARY KEY,
    value       TEXT NOT NULL,
    updated_at  REAL NOT NULL
);
"""


def selected_key(customer_id: str) -> str:
    return f"ORDER_SELECTED_{customer_id}"


def quantities_key(customer_id: str) -> str:
    return f"ORDER_QUANTITIES_{customer_id}"


class LocalOrderStore:
    """SQLite-backed JSON key-value store."""

    def __init__(self, db_path: Optional[Path] = None):
        path = Path(db_path or default_db_path())
        path.parent.mkdir(parents=True, exist_ok=True)
        self._path = str(path)
        self._init_schema()

    def _connect(self) -> sqlite3.Connection:
        return sqlite3.connect(self._path, timeout=5)

    def _init_schema(self) -> None:
        try:
            with self._connect() as conn:
                conn.executescript(_SCHEMA)
        except sqlite3.Error as e:
            raise StorageError(f"Cannot open order store at {self._path}: {e}")

    # ------------------------------------------------------------------
    # Write operations
    # ------------------------------------------------------------------

    def set_json(self, key: str, value: Any) -> None:
        """Serialize value to JSON and store it under key."""
        sql = "INSERT OR REPLACE INTO kv_store (key, value, updated_at) VALUES (?, ?, ?)"
        try:
            with self._connect() as conn:
                conn.execute(sql, (key, json.dumps(value), time.time()))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to write {key}: {e}", key=key)

    def remove(self, key: str) -> None:
        try:
            with self._connect() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            raise StorageError(f"Failed to remove {key}: {e}", key=key)

    # ------------------------------------------------------------------
    # Read operations
    # ------------------------------------------------------------------

    def get_json(self, key: str, default: Any = None) -> Any:
        """
        Return the decoded value for key.

        Missing keys return default. A value that is not valid JSON is logged
        and also returns default.

        Raises:
            StorageError: If the database cannot be read
        """
        try:
            with self._connect() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            raise StorageError(f"Failed to read {key}: {e}", key=key)

        if row is None:
            return default
        try:
            return json.loads(row[0])
        except json.JSONDecodeError as e:
            logger.error(f"Corrupt value under {key}: {e}")
            return default

    def contains(self, key: str) -> bool:
        with self._connect() as conn:
            row = conn.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row is not None

    def keys(self) -> List[str]:
        with self._connect() as conn:
            return [row[0] for row in conn.execute("SELECT key FROM kv_store ORDER BY key")]
