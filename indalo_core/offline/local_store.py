# =============================================================================
# indalo_core/offline/local_store.py
# Local SQLite Store for Offline Operations
# =============================================================================
"""
LocalStore - SQLite persistence shared by the offline layer.

Holds three independent tables:
- kv_store:       key-value entries written by the offline data cache
- response_cache: HTTP responses stored by the service worker, per bucket
- scan_queue:     scans recorded while offline, waiting for background sync

Every operation is atomic on its own; connections are thread-local.
"""

from __future__ import annotations
import json
import sqlite3
import threading
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional
import logging

import pandas as pd

logger = logging.getLogger(__name__)


class LocalStore:
    """
    Local SQLite store backing both cache layers and the scan queue.
    """

    DEFAULT_DB_PATH = Path(__file__).parent.parent.parent / "local_data" / "indalo_offline.db"

    SCHEMA = {
        "kv_store": """
            CREATE TABLE IF NOT EXISTS kv_store (
                key TEXT PRIMARY KEY,
                value TEXT NOT NULL
            )
        """,
        "response_cache": """
            CREATE TABLE IF NOT EXISTS response_cache (
                cache_name TEXT NOT NULL,
                url TEXT NOT NULL,
                status INTEGER NOT NULL,
                reason TEXT,
                headers_json TEXT,
                body BLOB,
                stored_at TEXT DEFAULT CURRENT_TIMESTAMP,
                PRIMARY KEY (cache_name, url)
            )
        """,
        "scan_queue": """
            CREATE TABLE IF NOT EXISTS scan_queue (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                data_json TEXT NOT NULL,
                created_at TEXT DEFAULT CURRENT_TIMESTAMP,
                attempts INTEGER DEFAULT 0,
                last_attempt TEXT,
                status TEXT DEFAULT 'pending',
                error_message TEXT
            )
        """,
    }

    _instance: Optional[LocalStore] = None
    _lock = threading.Lock()

    def __init__(self, db_path: Optional[Path] = None):
        """
        Initialize local store.

        Args:
            db_path: Path to SQLite database file
        """
        self.db_path = Path(db_path) if db_path else self.DEFAULT_DB_PATH
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._initialized = False

    @classmethod
    def get_instance(cls, db_path: Optional[Path] = None) -> LocalStore:
        """Get or create singleton instance."""
        if cls._instance is None:
            with cls._lock:
                if cls._instance is None:
                    cls._instance = LocalStore(db_path)
        return cls._instance

    def _get_connection(self) -> sqlite3.Connection:
        """Get thread-local database connection."""
        if getattr(self._local, "connection", None) is None:
            self._local.connection = sqlite3.connect(
                str(self.db_path),
                check_same_thread=False,
                timeout=10,
            )
            self._local.connection.row_factory = sqlite3.Row
        return self._local.connection

    @contextmanager
    def transaction(self):
        """Context manager for database transactions."""
        conn = self._get_connection()
        try:
            yield conn
            conn.commit()
        except Exception:
            conn.rollback()
            raise

    def initialize(self) -> None:
        """Create tables if they do not exist."""
        if self._initialized:
            return

        with self.transaction() as conn:
            for table_name, schema in self.SCHEMA.items():
                conn.execute(schema)
                logger.debug(f"Created/verified table: {table_name}")

        self._initialized = True
        logger.info(f"Local store initialized at: {self.db_path}")

    def query(self, sql: str, params: Optional[List] = None) -> List[sqlite3.Row]:
        """Execute a raw SQL query."""
        self.initialize()
        conn = self._get_connection()
        return conn.execute(sql, params or []).fetchall()

    def execute(self, sql: str, params: Optional[List] = None) -> int:
        """Execute a raw SQL statement and return the affected row count."""
        self.initialize()
        with self.transaction() as conn:
            return conn.execute(sql, params or []).rowcount

    # =========================================================================
    # KEY-VALUE ENTRIES
    # =========================================================================

    def kv_get(self, key: str) -> Optional[str]:
        """Return the raw stored string for a key, or None."""
        rows = self.query("SELECT value FROM kv_store WHERE key = ?", [key])
        return rows[0]["value"] if rows else None

    def kv_set(self, key: str, value: str) -> None:
        """Insert or overwrite a key."""
        self.execute(
            "INSERT OR REPLACE INTO kv_store (key, value) VALUES (?, ?)",
            [key, value]
        )

    def kv_delete(self, key: str) -> bool:
        """Remove a key. Returns True if it existed."""
        return self.execute("DELETE FROM kv_store WHERE key = ?", [key]) > 0

    def kv_keys(self) -> List[str]:
        """List every stored key."""
        return [row["key"] for row in self.query("SELECT key FROM kv_store ORDER BY key")]

    # =========================================================================
    # HTTP RESPONSE BUCKETS
    # =========================================================================

    def put_response(
        self,
        cache_name: str,
        url: str,
        status: int,
        reason: Optional[str],
        headers: Dict[str, str],
        body: bytes,
    ) -> None:
        """Store (or replace) a response under a bucket and URL."""
        self.execute(
            """
            INSERT OR REPLACE INTO response_cache
                (cache_name, url, status, reason, headers_json, body, stored_at)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            [
                cache_name, url, status, reason,
                json.dumps(dict(headers)), sqlite3.Binary(body or b""),
                datetime.now().isoformat(),
            ]
        )

    def match_response(self, url: str, cache_name: Optional[str] = None) -> Optional[Dict[str, Any]]:
        """
        Find a stored response for a URL.

        Args:
            url: Full request URL
            cache_name: Restrict the lookup to one bucket (all buckets if None)

        Returns:
            Dict with status, reason, headers, body and url, or None
        """
        if cache_name is None:
            rows = self.query(
                "SELECT * FROM response_cache WHERE url = ? ORDER BY stored_at DESC LIMIT 1",
                [url]
            )
        else:
            rows = self.query(
                "SELECT * FROM response_cache WHERE cache_name = ? AND url = ?",
                [cache_name, url]
            )
        if not rows:
            return None

        row = rows[0]
        return {
            "cache_name": row["cache_name"],
            "url": row["url"],
            "status": row["status"],
            "reason": row["reason"],
            "headers": json.loads(row["headers_json"]) if row["headers_json"] else {},
            "body": bytes(row["body"]) if row["body"] is not None else b"",
            "stored_at": row["stored_at"],
        }

    def cache_names(self) -> List[str]:
        """List bucket names that hold at least one response."""
        rows = self.query("SELECT DISTINCT cache_name FROM response_cache ORDER BY cache_name")
        return [row["cache_name"] for row in rows]

    def delete_cache(self, cache_name: str) -> int:
        """Drop a whole bucket. Returns the number of responses removed."""
        return self.execute("DELETE FROM response_cache WHERE cache_name = ?", [cache_name])

    # =========================================================================
    # SCAN QUEUE
    # =========================================================================

    def enqueue_scan(self, scan: Dict[str, Any]) -> int:
        """Queue a scan for background sync. Returns its queue id."""
        self.initialize()
        with self.transaction() as conn:
            cursor = conn.execute(
                "INSERT INTO scan_queue (data_json, created_at) VALUES (?, ?)",
                [json.dumps(scan, default=str), datetime.now().isoformat()]
            )
            scan_id = cursor.lastrowid
        logger.info(f"Queued offline scan {scan_id}")
        return scan_id

    def get_pending_scans(self, limit: int = 100, offset: int = 0) -> List[Dict[str, Any]]:
        """Get pending scans, oldest first, skipping the first `offset`."""
        rows = self.query(
            """
            SELECT * FROM scan_queue
            WHERE status = 'pending'
            ORDER BY id ASC
            LIMIT ? OFFSET ?
            """,
            [limit, offset]
        )
        return [
            {
                "id": row["id"],
                "data": json.loads(row["data_json"]),
                "created_at": row["created_at"],
                "attempts": row["attempts"],
                "last_attempt": row["last_attempt"],
                "error_message": row["error_message"],
            }
            for row in rows
        ]

    def remove_scan(self, scan_id: int) -> bool:
        """Remove a scan once the server acknowledged it."""
        return self.execute("DELETE FROM scan_queue WHERE id = ?", [scan_id]) > 0

    def mark_scan_failed(self, scan_id: int, error: str) -> None:
        """Record a failed replay attempt; the scan stays pending."""
        self.execute(
            """
            UPDATE scan_queue
            SET attempts = attempts + 1, last_attempt = ?, error_message = ?
            WHERE id = ?
            """,
            [datetime.now().isoformat(), error, scan_id]
        )

    def get_pending_count(self) -> int:
        """Get count of pending scans."""
        result = self.query("SELECT COUNT(*) AS count FROM scan_queue WHERE status = 'pending'")
        return result[0]["count"] if result else 0

    def pending_scans_dataframe(self) -> pd.DataFrame:
        """Pending scans flattened into a DataFrame for display."""
        scans = self.get_pending_scans(limit=1000)
        if not scans:
            return pd.DataFrame(columns=["id", "created_at", "attempts", "error_message"])

        df = pd.json_normalize(
            [{**s["data"], "id": s["id"], "created_at": s["created_at"],
              "attempts": s["attempts"], "error_message": s["error_message"]}
             for s in scans]
        )
        leading = ["id", "created_at", "attempts", "error_message"]
        return df[leading + [c for c in df.columns if c not in leading]]

    def close(self) -> None:
        """Close this thread's database connection."""
        if getattr(self._local, "connection", None) is not None:
            self._local.connection.close()
            self._local.connection = None


# Singleton accessor
_local_store: Optional[LocalStore] = None


def get_local_store(db_path: Optional[Path] = None) -> LocalStore:
    """Get the global LocalStore instance."""
    global _local_store
    if _local_store is None:
        _local_store = LocalStore.get_instance(db_path)
        _local_store.initialize()
    return _local_store
