"""
SQLite persistence for watch definitions so they survive restarts.
"""
import json
import logging
import shutil
import sqlite3
from contextlib import closing
from pathlib import Path
from typing import List, Union

from .models import WatchDefinition

logger = logging.getLogger(__name__)

SCHEMA = """
CREATE TABLE IF NOT EXISTS watches (
  event_id TEXT PRIMARY KEY,
  channel_id TEXT NOT NULL,
  ping_users TEXT NOT NULL,
  poll_minutes INTEGER NOT NULL
)
"""


class WatchStore:
    """Stores one row per watched event.

    Every operation logs and swallows database errors: a running watch stays
    active even if it could not be persisted.
    """

    def __init__(self, db_path: Union[str, Path]):
        self.db_path = Path(db_path)
        self._schema_ready = False

    def _connect(self) -> sqlite3.Connection:
        if not self._schema_ready:
            self._prepare()
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        return conn

    def _prepare(self) -> None:
        """Create the data directory and table on first use."""
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        if self.db_path.is_dir():
            logger.warning(f"Database path {self.db_path} exists as a directory, removing it")
            shutil.rmtree(self.db_path)
        with closing(sqlite3.connect(self.db_path)) as conn, conn:
            conn.execute(SCHEMA)
        self._schema_ready = True

    def load_all(self) -> List[WatchDefinition]:
        """Return every persisted watch; unreadable rows are skipped."""
        try:
            with closing(self._connect()) as conn:
                rows = conn.execute(
                    "SELECT event_id, channel_id, ping_users, poll_minutes FROM watches ORDER BY rowid"
                ).fetchall()
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to load watches: {e}")
            return []

        definitions = []
        for row in rows:
            try:
                definitions.append(WatchDefinition(
                    event_id=row["event_id"],
                    channel_id=row["channel_id"],
                    ping_users=tuple(json.loads(row["ping_users"])),
                    poll_minutes=row["poll_minutes"],
                ))
            except (ValueError, TypeError) as e:
                logger.error(f"Skipping invalid stored watch {row['event_id']}: {e}")
        return definitions

    def save(self, definition: WatchDefinition) -> None:
        """Insert or replace the row for ``definition.event_id``."""
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT OR REPLACE INTO watches (event_id, channel_id, ping_users, poll_minutes)
                    VALUES (?, ?, ?, ?)
                    """,
                    (
                        definition.event_id,
                        definition.channel_id,
                        json.dumps(list(definition.ping_users)),
                        definition.poll_minutes,
                    ),
                )
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to save watch {definition.event_id}: {e}")

    def delete(self, event_id: str) -> None:
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute("DELETE FROM watches WHERE event_id = ?", (event_id,))
        except (sqlite3.Error, OSError) as e:
            logger.error(f"Failed to delete watch {event_id}: {e}")
