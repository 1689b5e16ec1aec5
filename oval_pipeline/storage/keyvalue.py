"""
String key-value store backed by the key_values table.

Updaters keep their cursor here. Writes do not manage transactions so that
callers can group a cursor write with the data it covers.
"""
from datetime import datetime
from typing import Optional

from .database import Database


class KeyValueStore:
    """Read and write single string values by key."""

    def __init__(self, database: Database):
        self.db = database

    def get(self, key: str) -> Optional[str]:
        """Return the stored value, or None if the key was never set."""
        row = self.db.connect().execute(
            "SELECT value FROM key_values WHERE key = ?", [key]
        ).fetchone()
        return row[0] if row else None

    def set(self, key: str, value: str) -> None:
        conn = self.db.connect()
        conn.execute("DELETE FROM key_values WHERE key = ?", [key])
        conn.execute(
            "INSERT INTO key_values (key, value, updated_at) VALUES (?, ?, ?)",
            [key, value, datetime.utcnow()],
        )
