"""FastAPI route for reading the owner's event log."""

from fastapi import APIRouter, Depends, Query

from canopy.events.store import EventStore
from canopy.models import EventEnvelope
from canopy.owner import get_owner_id

router = APIRouter(prefix="/api/events", tags=["events"])


def get_event_store() -> EventStore:
    """Dependency placeholder, overridden at app startup."""
    raise RuntimeError("EventStore not initialized")


@router.get("")
async def list_events(
    after: int = Query(default=0, ge=0),
    owner_id: str = Depends(get_owner_id),
    store: EventStore = Depends(get_event_store),
) -> list[EventEnvelope]:
    """Events newer than sequence number ``after``, oldest first."""
    return await store.get_events(owner_id, after=after)
