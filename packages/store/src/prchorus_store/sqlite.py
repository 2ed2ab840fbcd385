"""SQLiteStore: local file-based store, the default.

Ships with Python, so it needs no extra dependencies, and a single file is
easy to share between CI jobs as a cache. Each key is one row holding its
JSON-encoded value.
"""

from __future__ import annotations

import json
import logging
import sqlite3
from typing import Any

from prchorus_store.base import BaseStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key         TEXT PRIMARY KEY,
    value_json  TEXT NOT NULL,
    updated_at  TEXT DEFAULT CURRENT_TIMESTAMP
);
"""


class SQLiteStore(BaseStore):
    """Stores key-value pairs in a local SQLite database file.

    The database file path defaults to `.prchorus.db` in the current working
    directory. Configure via .prchorus.yml: `store_path: /path/to/prchorus.db`.
    """

    def __init__(self, db_path: str = ".prchorus.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def get(self, key: str, default: Any = None) -> Any:
        row = self._conn.execute("SELECT value_json FROM kv WHERE key=?", (key,)).fetchone()
        if row is None:
            return default
        try:
            return json.loads(row["value_json"])
        except json.JSONDecodeError:
            logger.warning("SQLiteStore: corrupt value for key %r, ignoring", key)
            return default

    def set(self, key: str, value: Any) -> None:
        self._conn.execute(
            """
            INSERT INTO kv (key, value_json, updated_at) VALUES (?, ?, CURRENT_TIMESTAMP)
            ON CONFLICT(key) DO UPDATE SET value_json=excluded.value_json, updated_at=CURRENT_TIMESTAMP
            """,
            (key, json.dumps(value)),
        )
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
