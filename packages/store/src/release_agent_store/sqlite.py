"""SQLiteStore: local file-backed persisted state.

Why SQLite:
- Ships with Python, no extra dependencies.
- Atomic single-row writes, so an interrupted CLI never leaves a half-written
  token or cache entry behind (unlike rewriting a JSON file in place).

Schema:
  kv: one row per key; values are opaque strings (JSON where structured).
"""

from __future__ import annotations

import logging
import sqlite3

from release_agent_store.base import BaseStore

logger = logging.getLogger(__name__)

_SCHEMA = """
CREATE TABLE IF NOT EXISTS kv (
    key    TEXT PRIMARY KEY,
    value  TEXT NOT NULL
);
"""


class SQLiteStore(BaseStore):
    """Stores client state in a local SQLite database file.

    The database file path defaults to `.release-agent.db` in the current
    working directory. Configure via .release-agent.yml: `store_path: ...`.
    """

    def __init__(self, db_path: str = ".release-agent.db"):
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.executescript(_SCHEMA)
        self._conn.commit()

    def get(self, key: str) -> str | None:
        row = self._conn.execute("SELECT value FROM kv WHERE key=?", (key,)).fetchone()
        return row["value"] if row is not None else None

    def set(self, key: str, value: str) -> None:
        self._conn.execute(
            "INSERT INTO kv (key, value) VALUES (?, ?) ON CONFLICT(key) DO UPDATE SET value=excluded.value",
            (key, value),
        )
        self._conn.commit()

    def remove(self, key: str) -> None:
        self._conn.execute("DELETE FROM kv WHERE key=?", (key,))
        self._conn.commit()

    def close(self) -> None:
        self._conn.close()
