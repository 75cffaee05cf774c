"""SQLite storage adapter for events."""

from typing import Any

from engmetrics.adapters.storage.sqlite_base import (
    SQLiteStorageBase,
    _json_dumps,
    _safe_json_loads,
)
from engmetrics.core.models import Event

_EVENTS_SCHEMA = """
CREATE TABLE IF NOT EXISTS events (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    name TEXT NOT NULL,
    source TEXT NOT NULL,
    timestamp REAL NOT NULL,
    data TEXT NOT NULL DEFAULT '{}'
);
CREATE INDEX IF NOT EXISTS idx_events_name ON events(name);
"""

_INSERT_EVENT = """
INSERT INTO events (name, source, timestamp, data) VALUES (?, ?, ?, ?)
"""

_SELECT_EVENT = "SELECT id, name, source, timestamp, data FROM events WHERE id = ?"


class SQLiteEventStore(SQLiteStorageBase):
    """SQLite implementation of EventStorePort.

    Event payloads are stored as JSON text; timestamps are stamped on save
    when the event does not carry one.
    """

    _schema = _EVENTS_SCHEMA

    async def save(self, event: Event) -> Event:
        stamped = event.stamped()
        row_id = await self._insert(
            _INSERT_EVENT,
            (stamped.name, stamped.source, stamped.timestamp, _json_dumps(stamped.data)),
        )
        return stamped.with_id(row_id)

    async def find_by_id(self, event_id: int) -> Event | None:
        row: Any = await self._fetch_one(_SELECT_EVENT, (event_id,))
        if not row:
            return None
        return Event(
            id=row[0],
            name=row[1],
            source=row[2],
            timestamp=row[3],
            data=_safe_json_loads(row[4]),
        )
