"""Event log: append an event and project it as one atomic write."""

from datetime import UTC, datetime
from uuid import uuid4

from pydantic import BaseModel

from canopy.db.connection import Database
from canopy.events.projector import StateProjector
from canopy.events.store import EventStore
from canopy.models import EventEnvelope


class EventLog:
    """Wraps EventStore + StateProjector so the log and the tables never diverge.

    If projection raises, the append is rolled back with it.
    """

    def __init__(
        self,
        db: Database,
        store: EventStore,
        projector: StateProjector,
        *,
        device_id: str = "local",
    ) -> None:
        self._db = db
        self._store = store
        self._projector = projector
        self._device_id = device_id

    async def emit(
        self,
        owner_id: str,
        subject_id: str,
        event_type: str,
        payload: BaseModel,
    ) -> EventEnvelope:
        event = EventEnvelope(
            event_id=str(uuid4()),
            owner_id=owner_id,
            subject_id=subject_id,
            timestamp=datetime.now(UTC),
            device_id=self._device_id,
            event_type=event_type,
            payload=payload.model_dump(),
        )
        async with self._db.transaction():
            await self._store.append(event)
            await self._projector.project([event])
        return event
