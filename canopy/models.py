"""Canonical data structures and event types for Canopy.

Defined once here, referenced everywhere else. Event payloads represent the
type-specific content of each event; the EventEnvelope wraps them with
metadata (owner, subject, timestamp).
"""

from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field

# ---------------------------------------------------------------------------
# Canonical data structures
# ---------------------------------------------------------------------------


class Citation(BaseModel):
    """A literal excerpt the user quoted from an earlier turn."""

    text: str
    source_node_id: str | None = None
    source: Literal["user", "ai"] = "ai"


class Reference(BaseModel):
    """An explicit pointer to another conversation or folder, pulled into context."""

    id: str
    type: Literal["folder", "chat"]


class ModelMetadata(BaseModel):
    model: str | None = None
    provider: str | None = None


# ---------------------------------------------------------------------------
# Event payloads, one per event type
# ---------------------------------------------------------------------------


class FolderCreatedPayload(BaseModel):
    folder_id: str
    name: str
    parent_id: str | None = None


class FolderUpdatedPayload(BaseModel):
    """Rename and/or reparent. Only fields in ``changed`` are applied."""

    folder_id: str
    changed: list[Literal["name", "parent_id"]]
    name: str | None = None
    parent_id: str | None = None


class NodeCreatedPayload(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    node_id: str
    parent_id: str | None = None
    folder_id: str | None = None
    user_prompt: str
    citations: list[Citation] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    model_metadata: ModelMetadata = Field(default_factory=ModelMetadata)


class NodeCompletedPayload(BaseModel):
    node_id: str
    ai_response: str
    summary: str | None = None
    error: str | None = None


class NodeMovedPayload(BaseModel):
    """Reparent and/or refile a node. Only fields in ``changed`` are applied."""

    node_id: str
    changed: list[Literal["parent_id", "folder_id"]]
    parent_id: str | None = None
    folder_id: str | None = None
    old_parent_id: str | None = None
    old_folder_id: str | None = None


class NodeDeletedPayload(BaseModel):
    """Single-node delete: direct children move up to ``new_parent_id``."""

    node_id: str
    new_parent_id: str | None = None
    reparented_child_ids: list[str] = Field(default_factory=list)


class SubtreeDeletedPayload(BaseModel):
    node_id: str
    deleted_node_ids: list[str]


# ---------------------------------------------------------------------------
# Event type registry
# ---------------------------------------------------------------------------

EVENT_TYPES: dict[str, type[BaseModel]] = {
    "FolderCreated": FolderCreatedPayload,
    "FolderUpdated": FolderUpdatedPayload,
    "NodeCreated": NodeCreatedPayload,
    "NodeCompleted": NodeCompletedPayload,
    "NodeMoved": NodeMovedPayload,
    "NodeDeleted": NodeDeletedPayload,
    "SubtreeDeleted": SubtreeDeletedPayload,
}


# ---------------------------------------------------------------------------
# Event envelope
# ---------------------------------------------------------------------------


class EventEnvelope(BaseModel):
    """Wraps every event with metadata. Stored in the events table."""

    event_id: str
    owner_id: str
    subject_id: str  # node_id or folder_id the event is about
    timestamp: datetime
    device_id: str = "local"
    event_type: str
    payload: dict[str, Any]
    sequence_num: int | None = None  # assigned by DB on insert

    def typed_payload(self) -> BaseModel:
        """Deserialize payload into the correct Pydantic model based on event_type."""
        payload_cls = EVENT_TYPES[self.event_type]
        return payload_cls.model_validate(self.payload)
