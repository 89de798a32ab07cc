"""Append-only event store backed by SQLite."""

import json

from canopy.db.connection import Database
from canopy.models import EventEnvelope


class EventStore:
    """Append-only event store. The write side of the CQRS pattern."""

    def __init__(self, db: Database) -> None:
        self._db = db

    async def append(self, envelope: EventEnvelope) -> int:
        """Append an event and return the assigned sequence_num.

        Raises IntegrityError if event_id is not unique.
        """
        cursor = await self._db.execute(
            """
            INSERT INTO events
                (event_id, owner_id, subject_id, timestamp, device_id, event_type, payload)
            VALUES (?, ?, ?, ?, ?, ?, ?)
            """,
            (
                envelope.event_id,
                envelope.owner_id,
                envelope.subject_id,
                envelope.timestamp.isoformat(),
                envelope.device_id,
                envelope.event_type,
                json.dumps(envelope.payload),
            ),
        )
        assert cursor.lastrowid is not None
        envelope.sequence_num = cursor.lastrowid
        return cursor.lastrowid

    async def get_events(self, owner_id: str, *, after: int = 0) -> list[EventEnvelope]:
        """Events for an owner with sequence_num greater than ``after``, in order."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE owner_id = ? AND sequence_num > ? ORDER BY sequence_num",
            (owner_id, after),
        )
        return [self._row_to_envelope(row) for row in rows]

    async def get_subject_events(self, owner_id: str, subject_id: str) -> list[EventEnvelope]:
        """Get the history of a single node or folder, ordered by sequence_num."""
        rows = await self._db.fetchall(
            "SELECT * FROM events WHERE owner_id = ? AND subject_id = ? ORDER BY sequence_num",
            (owner_id, subject_id),
        )
        return [self._row_to_envelope(row) for row in rows]

    @staticmethod
    def _row_to_envelope(row) -> EventEnvelope:
        """Convert a database row to an EventEnvelope."""
        return EventEnvelope(
            event_id=row["event_id"],
            owner_id=row["owner_id"],
            subject_id=row["subject_id"],
            timestamp=row["timestamp"],
            device_id=row["device_id"],
            event_type=row["event_type"],
            payload=json.loads(row["payload"]),
            sequence_num=row["sequence_num"],
        )
