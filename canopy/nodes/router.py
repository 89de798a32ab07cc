"""FastAPI routes for node creation (SSE or JSON), reads, and structural edits."""

import json as json_module
from collections.abc import AsyncIterator
from typing import Literal

from fastapi import APIRouter, Depends, HTTPException, Query, status
from fastapi.responses import StreamingResponse

from canopy.errors import IntegrityFaultError, NotFoundError, ValidationError
from canopy.generation.service import GenerationService
from canopy.generation.session import GenerationSession
from canopy.models import EventEnvelope
from canopy.nodes.schemas import (
    ContextPreviewResponse,
    CreateNodeRequest,
    DeleteNodeResponse,
    GraphResponse,
    MoveNodeRequest,
    NodeResponse,
)
from canopy.nodes.service import NodeService
from canopy.owner import get_owner_id

router = APIRouter(prefix="/api/nodes", tags=["nodes"])
graph_router = APIRouter(prefix="/api/graph", tags=["graph"])


def get_node_service() -> NodeService:
    """Dependency placeholder, overridden at app startup."""
    raise RuntimeError("NodeService not initialized")


def get_generation_service() -> GenerationService:
    """Dependency placeholder, overridden at app startup."""
    raise RuntimeError("GenerationService not initialized")


@router.post("", status_code=status.HTTP_201_CREATED, response_model=None)
async def create_node(
    request: CreateNodeRequest,
    owner_id: str = Depends(get_owner_id),
    gen_service: GenerationService = Depends(get_generation_service),
) -> NodeResponse | StreamingResponse:
    """Create a turn and generate its answer.

    Validation and context assembly run before the response starts, so a
    missing parent is a plain 404 and no node is created.
    """
    try:
        if not request.stream:
            node = await gen_service.create_node(owner_id, request)
            return NodeResponse.model_validate(node)
        session = await gen_service.open_session(owner_id, request)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IntegrityFaultError as e:
        raise HTTPException(status_code=409, detail=str(e))

    return StreamingResponse(
        _stream_sse(session),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


async def _stream_sse(session: GenerationSession) -> AsyncIterator[str]:
    """Async generator that yields SSE-formatted lines.

    Closing this generator (client disconnect) stops delivery only; the
    session task keeps running and persists the answer.
    """
    async for event in session.events():
        data = {"type": event.type, **event.data}
        yield f"event: {event.type}\ndata: {json_module.dumps(data)}\n\n"


@router.get("")
async def list_nodes(
    folder_id: str | None = None,
    roots_only: bool = False,
    limit: int = Query(default=100, ge=1, le=1000),
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> list[NodeResponse]:
    return await service.list_nodes(
        owner_id, folder_id=folder_id, roots_only=roots_only, limit=limit
    )


@router.get("/{node_id}")
async def get_node(
    node_id: str,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    try:
        return await service.get_node(owner_id, node_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.get("/{node_id}/context")
async def get_context_preview(
    node_id: str,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> ContextPreviewResponse:
    try:
        return await service.context_preview(owner_id, node_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IntegrityFaultError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.get("/{node_id}/events")
async def get_node_history(
    node_id: str,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> list[EventEnvelope]:
    """The node's event history, including events recorded after it was deleted."""
    try:
        return await service.history(owner_id, node_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.patch("/{node_id}")
async def move_node(
    node_id: str,
    request: MoveNodeRequest,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    """Reparent and/or refile. Only fields present in the body are changed."""
    try:
        return await service.move_node(owner_id, node_id, request.model_dump(exclude_unset=True))
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))
    except IntegrityFaultError as e:
        raise HTTPException(status_code=409, detail=str(e))


@router.post("/{node_id}/cut")
async def cut_to_root(
    node_id: str,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> NodeResponse:
    try:
        return await service.cut_to_root(owner_id, node_id)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))


@router.delete("/{node_id}")
async def delete_node(
    node_id: str,
    mode: Literal["single", "subtree"] = "single",
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> DeleteNodeResponse:
    try:
        return await service.delete_node(owner_id, node_id, mode)
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except ValidationError as e:
        raise HTTPException(status_code=400, detail=str(e))


@graph_router.get("/{node_id}")
async def get_graph(
    node_id: str,
    direction: Literal["ancestors", "descendants"] = "descendants",
    children_count: bool = False,
    owner_id: str = Depends(get_owner_id),
    service: NodeService = Depends(get_node_service),
) -> GraphResponse:
    try:
        return await service.graph(
            owner_id, node_id, direction, children_count=children_count
        )
    except NotFoundError as e:
        raise HTTPException(status_code=404, detail=str(e))
    except IntegrityFaultError as e:
        raise HTTPException(status_code=409, detail=str(e))
