"""
Meeting Store Boundary

Abstract interface for the remote meeting store plus two local
implementations. The sync engine only talks to :class:`MeetingStore`; the
wire transport behind a real store is out of scope.

Implementations:
    InMemoryMeetingStore: dict-backed, records every call, supports failure
        injection (used by tests and demos)
    SQLiteMeetingStore: persists the wire JSON of each meeting in a local
        SQLite database (used by the CLI)

Errors:
    NotFoundError for unknown ids, NetworkError/PersistenceError for
    everything else. See meetgrid.errors.
"""

from __future__ import annotations

import asyncio
import json
import sqlite3
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterable, Optional

from meetgrid.calendar.models import DEFAULT_TEMP_PREFIX, Meeting, is_temporary_id, new_token
from meetgrid.errors import NotFoundError, PersistenceError, ValidationError
from meetgrid.logging_config import get_logger

logger = get_logger(__name__)


class MeetingStore(ABC):
    """Async CRUD boundary for meetings."""

    @abstractmethod
    async def create(self, meeting: Meeting) -> Meeting:
        """Persist a new meeting and return it with its canonical id."""

    @abstractmethod
    async def update(self, meeting_id: str, meeting: Meeting) -> Meeting:
        """Replace a stored meeting and return the canonical stored value."""

    @abstractmethod
    async def delete(self, meeting_id: str) -> None:
        """Remove a meeting."""

    @abstractmethod
    async def list(self, start: datetime, end: datetime) -> list[Meeting]:
        """Meetings whose timeslot overlaps [start, end)."""


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _in_range(meeting: Meeting, start: datetime, end: datetime) -> bool:
    return meeting.time.from_ < end and meeting.time.to > start


class InMemoryMeetingStore(MeetingStore):
    """Dict-backed store.

    Args:
        meetings: Initial contents
        latency: Seconds each call sleeps before completing
        temp_prefix: Prefix of client-side ids that must never be stored
    """

    def __init__(
        self,
        meetings: Optional[Iterable[Meeting]] = None,
        latency: float = 0.0,
        temp_prefix: str = DEFAULT_TEMP_PREFIX,
    ):
        self._meetings: dict[str, Meeting] = {m.id: m for m in meetings or ()}
        self.latency = latency
        self.temp_prefix = temp_prefix
        self.calls: list[tuple[str, str, Optional[dict[str, Any]]]] = []
        self._failures: list[BaseException] = []

    def fail_next(self, error: BaseException, times: int = 1) -> None:
        """Make the next ``times`` write calls raise ``error``."""
        self._failures.extend([error] * times)

    def get(self, meeting_id: str) -> Optional[Meeting]:
        return self._meetings.get(meeting_id)

    def remove_remotely(self, meeting_id: str) -> None:
        """Simulate another client deleting the meeting."""
        self._meetings.pop(meeting_id, None)

    async def _call(self, op: str, meeting_id: str, payload: Optional[Meeting]) -> None:
        self.calls.append((op, meeting_id, payload.to_json() if payload else None))
        if self.latency:
            await asyncio.sleep(self.latency)
        if self._failures:
            raise self._failures.pop(0)

    async def create(self, meeting: Meeting) -> Meeting:
        await self._call("create", meeting.id, meeting)
        now = _now()
        created = meeting.model_copy(update={"id": new_token(12), "created": now, "updated": now})
        self._meetings[created.id] = created
        return created

    async def update(self, meeting_id: str, meeting: Meeting) -> Meeting:
        await self._call("update", meeting_id, meeting)
        existing = self._meetings.get(meeting_id)
        if existing is None:
            raise NotFoundError(f"Meeting ({meeting_id}) does not exist", meeting_id=meeting_id)
        stored = meeting.model_copy(
            update={"id": meeting_id, "created": existing.created, "updated": _now()}
        )
        self._meetings[meeting_id] = stored
        return stored

    async def delete(self, meeting_id: str) -> None:
        await self._call("delete", meeting_id, None)
        if self._meetings.pop(meeting_id, None) is None:
            raise NotFoundError(f"Meeting ({meeting_id}) does not exist", meeting_id=meeting_id)

    async def list(self, start: datetime, end: datetime) -> list[Meeting]:
        if self.latency:
            await asyncio.sleep(self.latency)
        return [m for m in self._meetings.values() if _in_range(m, start, end)]


class SQLiteMeetingStore(MeetingStore):
    """Meetings stored as wire JSON in a SQLite table.

    Calls are synchronous under the hood; each one opens and closes its own
    connection.
    """

    def __init__(self, db_path: Path | str, temp_prefix: str = DEFAULT_TEMP_PREFIX):
        self.db_path = Path(db_path)
        self.temp_prefix = temp_prefix

    def get_connection(self) -> sqlite3.Connection:
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        conn = sqlite3.connect(str(self.db_path))
        conn.row_factory = sqlite3.Row
        conn.execute("""CREATE TABLE IF NOT EXISTS meetings (
            id TEXT PRIMARY KEY,
            data TEXT NOT NULL,
            created_at TEXT NOT NULL,
            updated_at TEXT NOT NULL
        )""")
        conn.commit()
        return conn

    def _row_to_meeting(self, row: sqlite3.Row) -> Meeting:
        return Meeting.from_json(json.loads(row["data"]))

    async def create(self, meeting: Meeting) -> Meeting:
        now = _now()
        created = meeting.model_copy(update={"id": new_token(12), "created": now, "updated": now})
        try:
            conn = self.get_connection()
            conn.execute(
                "INSERT INTO meetings (id, data, created_at, updated_at) VALUES (?, ?, ?, ?)",
                (created.id, json.dumps(created.to_json()), now.isoformat(), now.isoformat()),
            )
            conn.commit()
            conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to create meeting: {e}") from e
        logger.debug("meeting_created", meeting_id=created.id, client_id=meeting.id)
        return created

    async def update(self, meeting_id: str, meeting: Meeting) -> Meeting:
        if is_temporary_id(meeting_id, self.temp_prefix):
            raise ValidationError(f"Cannot update unsaved meeting {meeting_id!r}")
        try:
            conn = self.get_connection()
            row = conn.execute("SELECT * FROM meetings WHERE id = ?", (meeting_id,)).fetchone()
            if row is None:
                conn.close()
                raise NotFoundError(f"Meeting ({meeting_id}) does not exist", meeting_id=meeting_id)

            existing = self._row_to_meeting(row)
            now = _now()
            stored = meeting.model_copy(
                update={"id": meeting_id, "created": existing.created, "updated": now}
            )
            conn.execute(
                "UPDATE meetings SET data = ?, updated_at = ? WHERE id = ?",
                (json.dumps(stored.to_json()), now.isoformat(), meeting_id),
            )
            conn.commit()
            conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to update meeting {meeting_id}: {e}") from e
        return stored

    async def delete(self, meeting_id: str) -> None:
        try:
            conn = self.get_connection()
            deleted = conn.execute("DELETE FROM meetings WHERE id = ?", (meeting_id,)).rowcount
            conn.commit()
            conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to delete meeting {meeting_id}: {e}") from e
        if deleted == 0:
            raise NotFoundError(f"Meeting ({meeting_id}) does not exist", meeting_id=meeting_id)

    async def list(self, start: datetime, end: datetime) -> list[Meeting]:
        try:
            conn = self.get_connection()
            rows = conn.execute("SELECT * FROM meetings ORDER BY created_at").fetchall()
            conn.close()
        except sqlite3.Error as e:
            raise PersistenceError(f"Failed to list meetings: {e}") from e
        meetings = [self._row_to_meeting(row) for row in rows]
        return [m for m in meetings if _in_range(m, start, end)]


__all__ = [
    "InMemoryMeetingStore",
    "MeetingStore",
    "SQLiteMeetingStore",
]
