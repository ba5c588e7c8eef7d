"""SQLite-backed key/value storage for controller state and novel metadata."""

import json
import logging
import shutil
import sqlite3
from pathlib import Path
from typing import Any, Protocol, runtime_checkable

logger = logging.getLogger(__name__)

_CREATE_TABLES_SQL = """
CREATE TABLE IF NOT EXISTS kv_store (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at TIMESTAMP DEFAULT CURRENT_TIMESTAMP
);
"""

_MIGRATION_SQL = [
    "CREATE INDEX IF NOT EXISTS idx_kv_store_updated ON kv_store(updated_at)",
]


@runtime_checkable
class Storage(Protocol):
    """Minimal persistence contract used by the library and the controller."""

    def get(self, key: str, default: Any = None) -> Any:
        ...

    def set(self, key: str, value: Any) -> bool:
        ...


class Database:
    """SQLite key/value store. Values are stored as JSON.

    get/set never raise on SQLite errors: failures are logged and reported
    through the default value or a False return.
    """

    def __init__(self, db_path: str | Path):
        self.db_path = Path(db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_db()

    def _get_conn(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA journal_mode = WAL")
        return conn

    def _init_db(self):
        with self._get_conn() as conn:
            conn.executescript(_CREATE_TABLES_SQL)
        self._migrate()

    def _migrate(self):
        """Apply idempotent schema migrations (indexes)."""
        with self._get_conn() as conn:
            for sql in _MIGRATION_SQL:
                try:
                    conn.execute(sql)
                except sqlite3.OperationalError as e:
                    logger.debug("Migration skipped (already applied): %s", e)

    def backup_database(self, target_path: str | Path) -> Path:
        """Create a backup copy of the database.

        Args:
            target_path: Path for the backup file.

        Returns:
            Path to the backup file.
        """
        target = Path(target_path)
        target.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(str(self.db_path), str(target))
        logger.info("Database backed up to %s", target)
        return target

    # ---- Storage contract ----

    def get(self, key: str, default: Any = None) -> Any:
        try:
            with self._get_conn() as conn:
                row = conn.execute("SELECT value FROM kv_store WHERE key = ?", (key,)).fetchone()
        except sqlite3.Error as e:
            logger.error("Failed to get storage for key '%s': %s", key, e)
            return default
        if row is None:
            return default
        try:
            return json.loads(row["value"])
        except json.JSONDecodeError as e:
            logger.error("Corrupt value for key '%s': %s", key, e)
            return default

    def set(self, key: str, value: Any) -> bool:
        try:
            payload = json.dumps(value, ensure_ascii=False)
        except (TypeError, ValueError) as e:
            logger.error("Value for key '%s' is not serialisable: %s", key, e)
            return False
        try:
            with self._get_conn() as conn:
                conn.execute(
                    "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP",
                    (key, payload),
                )
        except sqlite3.Error as e:
            logger.error("Failed to set storage for key '%s': %s", key, e)
            return False
        return True

    # ---- Extended operations ----

    def remove(self, key: str) -> bool:
        try:
            with self._get_conn() as conn:
                conn.execute("DELETE FROM kv_store WHERE key = ?", (key,))
        except sqlite3.Error as e:
            logger.error("Failed to remove storage for key '%s': %s", key, e)
            return False
        return True

    def has(self, key: str) -> bool:
        with self._get_conn() as conn:
            row = conn.execute("SELECT 1 FROM kv_store WHERE key = ?", (key,)).fetchone()
        return row is not None

    def set_many(self, data: dict[str, Any]) -> bool:
        """Write several keys in one transaction."""
        try:
            rows = [(k, json.dumps(v, ensure_ascii=False)) for k, v in data.items()]
            with self._get_conn() as conn:
                conn.executemany(
                    "INSERT INTO kv_store (key, value, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP) "
                    "ON CONFLICT(key) DO UPDATE SET value=excluded.value, updated_at=CURRENT_TIMESTAMP",
                    rows,
                )
        except (sqlite3.Error, TypeError, ValueError) as e:
            logger.error("Failed to set batch storage: %s", e)
            return False
        return True

    def all_items(self) -> dict[str, Any]:
        with self._get_conn() as conn:
            rows = conn.execute("SELECT key, value FROM kv_store ORDER BY key").fetchall()
        return {r["key"]: json.loads(r["value"]) for r in rows}

    def clear(self) -> bool:
        try:
            with self._get_conn() as conn:
                conn.execute("DELETE FROM kv_store")
        except sqlite3.Error as e:
            logger.error("Failed to clear storage: %s", e)
            return False
        return True

    def stats(self) -> dict:
        """Key count and total payload size."""
        with self._get_conn() as conn:
            rows = conn.execute("SELECT key, value FROM kv_store ORDER BY key").fetchall()
        size = sum(len(r["value"].encode("utf-8")) for r in rows)
        return {
            "key_count": len(rows),
            "size_bytes": size,
            "size_formatted": format_bytes(size),
            "keys": [r["key"] for r in rows],
        }

    def export_json(self) -> str:
        return json.dumps(self.all_items(), ensure_ascii=False, indent=2)

    def import_json(self, json_string: str, merge: bool = True) -> bool:
        """Load keys from a JSON object string, optionally replacing everything."""
        try:
            data = json.loads(json_string)
        except json.JSONDecodeError as e:
            logger.error("Failed to import storage data: %s", e)
            return False
        if not isinstance(data, dict):
            logger.error("Failed to import storage data: expected a JSON object")
            return False
        if not merge and not self.clear():
            return False
        return self.set_many(data)


def format_bytes(size: int, decimals: int = 2) -> str:
    """Human-readable byte size."""
    if size == 0:
        return "0 B"
    units = ["B", "KB", "MB", "GB"]
    value = float(size)
    index = 0
    while value >= 1024 and index < len(units) - 1:
        value /= 1024
        index += 1
    text = f"{value:.{max(decimals, 0)}f}"
    if "." in text:
        text = text.rstrip("0").rstrip(".")
    return f"{text} {units[index]}"
