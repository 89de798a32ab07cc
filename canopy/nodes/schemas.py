"""Request and response schemas for node and graph endpoints."""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field

from canopy.models import Citation, ModelMetadata, Reference

# -- Requests --


class CreateNodeRequest(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    user_prompt: str
    parent_id: str | None = None
    folder_id: str | None = None
    model_metadata: ModelMetadata = Field(default_factory=ModelMetadata)
    citations: list[Citation] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    stream: bool = True


class MoveNodeRequest(BaseModel):
    """Fields to change on a node. Only fields present in the request body are applied."""

    parent_id: str | None = None
    folder_id: str | None = None


# -- Responses --


class NodeResponse(BaseModel):
    model_config = ConfigDict(protected_namespaces=())

    node_id: str
    owner_id: str
    parent_id: str | None = None
    folder_id: str | None = None
    user_prompt: str
    ai_response: str | None = None
    summary: str | None = None
    citations: list[Citation] = Field(default_factory=list)
    references: list[Reference] = Field(default_factory=list)
    model_metadata: dict = Field(default_factory=dict)
    error: str | None = None
    created_at: str
    updated_at: str


class GraphNodeResponse(NodeResponse):
    children_count: int | None = None


class GraphResponse(BaseModel):
    node_id: str
    direction: Literal["ancestors", "descendants"]
    nodes: list[GraphNodeResponse]


class DeleteNodeResponse(BaseModel):
    mode: Literal["single", "subtree"]
    deleted_node_ids: list[str]


class ContextPreviewResponse(BaseModel):
    """What a new child of a node would be sent as context."""

    parent_id: str
    text: str
    citations: list[Citation]
    skipped_references: list[Reference]
    token_estimate: int
