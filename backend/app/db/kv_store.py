# backend/app/db/kv_store.py

import sqlite3
import json
import threading
import time
from pathlib import Path
from typing import Any, Dict, List, Optional

from app.core.config_loader import settings


DEFAULT_DB_PATH = Path(__file__).resolve().parents[2] / settings.DB_PATH

# Retry configuration
MAX_RETRIES = 5
RETRY_DELAY = 0.1  # 100ms


class SQLiteKVStore:
    """
    Namespaced key-value storage on top of SQLite.

    Every row belongs to one namespace (a conversation id), so a conversation
    can list or wipe its own keys without touching anybody else's.
    Values are stored as JSON text. Calls are blocking and may come from
    worker threads; one lock serialises use of the shared connection.
    """

    def __init__(self, db_path: Optional[str] = None):
        path = Path(db_path) if db_path else DEFAULT_DB_PATH
        path.parent.mkdir(parents=True, exist_ok=True)

        self.conn = sqlite3.connect(
            str(path),
            check_same_thread=False,
            timeout=30.0
        )
        self.conn.row_factory = sqlite3.Row
        self._conn_lock = threading.RLock()
        self.conn.execute("PRAGMA journal_mode=WAL")
        self.conn.execute("PRAGMA synchronous=NORMAL")
        self.conn.execute("PRAGMA busy_timeout=30000")
        self._init_tables()

    def _execute_with_retry(self, operation, *args, **kwargs):
        """Execute database operation with retry logic for handling locked database"""
        for attempt in range(MAX_RETRIES):
            try:
                with self._conn_lock:
                    return operation(*args, **kwargs)
            except sqlite3.OperationalError as e:
                if "locked" in str(e).lower() and attempt < MAX_RETRIES - 1:
                    time.sleep(RETRY_DELAY * (attempt + 1))
                    continue
                raise

    # ----------------------------------------------------------------------
    # CREATE TABLES
    # ----------------------------------------------------------------------
    def _init_tables(self):
        cur = self.conn.cursor()

        cur.execute("""
        CREATE TABLE IF NOT EXISTS kv (
            namespace TEXT NOT NULL,
            key TEXT NOT NULL,
            value_json TEXT NOT NULL,
            PRIMARY KEY (namespace, key)
        );
        """)

        self.conn.commit()

    # ----------------------------------------------------------------------
    # GET / PUT / DELETE
    # ----------------------------------------------------------------------
    def get(self, namespace: str, key: str) -> Optional[Any]:
        def _get():
            cur = self.conn.cursor()
            cur.execute(
                "SELECT value_json FROM kv WHERE namespace = ? AND key = ?",
                (namespace, key),
            )
            return cur.fetchone()

        row = self._execute_with_retry(_get)
        return json.loads(row["value_json"]) if row else None

    def put(self, namespace: str, key: str, value: Any):
        def _put():
            cur = self.conn.cursor()
            cur.execute("""
            REPLACE INTO kv (namespace, key, value_json)
            VALUES (?, ?, ?)
            """, (namespace, key, json.dumps(value)))
            self.conn.commit()

        self._execute_with_retry(_put)

    def delete(self, namespace: str, key: str) -> bool:
        def _delete():
            cur = self.conn.cursor()
            cur.execute("DELETE FROM kv WHERE namespace = ? AND key = ?", (namespace, key))
            self.conn.commit()
            return cur.rowcount > 0

        return self._execute_with_retry(_delete)

    # ----------------------------------------------------------------------
    # LISTING
    # ----------------------------------------------------------------------
    def list(
        self,
        namespace: str,
        prefix: str = "",
        start: Optional[str] = None,
        end: Optional[str] = None,
        limit: Optional[int] = None,
        reverse: bool = False,
    ) -> Dict[str, Any]:
        """
        Return {key: value} for the namespace, ordered by key.

        `start` is an inclusive lower bound on the key, `end` an exclusive
        upper bound, `limit` caps the number of rows, `reverse` walks keys
        from the highest down.
        """
        query = "SELECT key, value_json FROM kv WHERE namespace = ?"
        params: List[Any] = [namespace]

        if prefix:
            # keys are compared as text; prefix range avoids LIKE escaping
            query += " AND key >= ? AND key < ?"
            params += [prefix, prefix + "\uffff"]
        if start is not None:
            query += " AND key >= ?"
            params.append(start)
        if end is not None:
            query += " AND key < ?"
            params.append(end)

        query += " ORDER BY key DESC" if reverse else " ORDER BY key ASC"
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        def _list():
            cur = self.conn.cursor()
            cur.execute(query, params)
            return cur.fetchall()

        return {r["key"]: json.loads(r["value_json"]) for r in self._execute_with_retry(_list)}

    def count(self, namespace: str, prefix: str = "") -> int:
        def _count():
            cur = self.conn.cursor()
            cur.execute(
                "SELECT COUNT(*) AS total FROM kv WHERE namespace = ? AND key >= ? AND key < ?",
                (namespace, prefix, prefix + "\uffff"),
            )
            return cur.fetchone()["total"]

        return self._execute_with_retry(_count)

    def close(self):
        self.conn.close()
