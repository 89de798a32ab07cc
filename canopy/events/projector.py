"""State projector: projects events into the materialized forest tables.

The read side of the CQRS pattern. Each handler maps one event type onto a
ForestStore mutation primitive. Listeners registered with ``on_projected``
run after every projected event (the tree resolver uses this to drop its
cached chains).
"""

import logging
from collections.abc import Awaitable, Callable

from canopy.forest.store import ForestStore
from canopy.models import (
    EventEnvelope,
    FolderCreatedPayload,
    FolderUpdatedPayload,
    NodeCompletedPayload,
    NodeCreatedPayload,
    NodeDeletedPayload,
    NodeMovedPayload,
    SubtreeDeletedPayload,
)

logger = logging.getLogger(__name__)


class StateProjector:
    """Projects events into materialized SQL tables (folders, nodes)."""

    def __init__(self, forest: ForestStore) -> None:
        self._forest = forest
        self._listeners: list[Callable[[EventEnvelope], None]] = []
        self._handlers: dict[str, Callable[[EventEnvelope], Awaitable[None]]] = {
            "FolderCreated": self._handle_folder_created,
            "FolderUpdated": self._handle_folder_updated,
            "NodeCreated": self._handle_node_created,
            "NodeCompleted": self._handle_node_completed,
            "NodeMoved": self._handle_node_moved,
            "NodeDeleted": self._handle_node_deleted,
            "SubtreeDeleted": self._handle_subtree_deleted,
        }

    def on_projected(self, listener: Callable[[EventEnvelope], None]) -> None:
        """Register a callback invoked after each event is projected."""
        self._listeners.append(listener)

    async def project(self, events: list[EventEnvelope]) -> None:
        """Project a batch of events into materialized tables."""
        for event in events:
            handler = self._handlers.get(event.event_type)
            if handler is None:
                logger.warning("No projection for event type %r, skipping", event.event_type)
                continue
            await handler(event)
            for listener in self._listeners:
                listener(event)

    async def _handle_folder_created(self, event: EventEnvelope) -> None:
        payload = FolderCreatedPayload.model_validate(event.payload)
        await self._forest.insert_folder(event.owner_id, payload, event.timestamp)

    async def _handle_folder_updated(self, event: EventEnvelope) -> None:
        payload = FolderUpdatedPayload.model_validate(event.payload)
        fields = {name: getattr(payload, name) for name in payload.changed}
        await self._forest.update_folder(
            event.owner_id, payload.folder_id, fields, event.timestamp
        )

    async def _handle_node_created(self, event: EventEnvelope) -> None:
        payload = NodeCreatedPayload.model_validate(event.payload)
        await self._forest.insert_node(event.owner_id, payload, event.timestamp)

    async def _handle_node_completed(self, event: EventEnvelope) -> None:
        """Fill in generation results. A node deleted mid-stream matches no row."""
        payload = NodeCompletedPayload.model_validate(event.payload)
        updated = await self._forest.complete_node(
            event.owner_id,
            payload.node_id,
            ai_response=payload.ai_response,
            summary=payload.summary,
            error=payload.error,
            timestamp=event.timestamp,
        )
        if updated == 0:
            logger.warning(
                "NodeCompleted for %s matched no row (deleted during generation)",
                payload.node_id,
            )

    async def _handle_node_moved(self, event: EventEnvelope) -> None:
        payload = NodeMovedPayload.model_validate(event.payload)
        fields = {name: getattr(payload, name) for name in payload.changed}
        await self._forest.place_node(
            event.owner_id, payload.node_id, fields, event.timestamp
        )

    async def _handle_node_deleted(self, event: EventEnvelope) -> None:
        payload = NodeDeletedPayload.model_validate(event.payload)
        await self._forest.delete_node_reparenting(
            event.owner_id, payload.node_id, payload.new_parent_id, event.timestamp
        )

    async def _handle_subtree_deleted(self, event: EventEnvelope) -> None:
        payload = SubtreeDeletedPayload.model_validate(event.payload)
        await self._forest.delete_subtree(
            event.owner_id, payload.node_id, payload.deleted_node_ids
        )
