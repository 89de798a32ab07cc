"""Node service: reads over the node forest plus the structural edits exposed by the API."""

from canopy.errors import NodeNotFoundError
from canopy.events.store import EventStore
from canopy.forest.mutations import DeleteMode, MutationEngine
from canopy.forest.resolver import Direction, TreeResolver
from canopy.forest.store import ForestStore
from canopy.generation.context import ContextAssembler
from canopy.models import EventEnvelope
from canopy.nodes.schemas import (
    ContextPreviewResponse,
    DeleteNodeResponse,
    GraphNodeResponse,
    GraphResponse,
    NodeResponse,
)


class NodeService:
    """Business logic for node and graph endpoints."""

    def __init__(
        self,
        forest: ForestStore,
        resolver: TreeResolver,
        mutations: MutationEngine,
        assembler: ContextAssembler,
        store: EventStore,
    ) -> None:
        self._forest = forest
        self._resolver = resolver
        self._mutations = mutations
        self._assembler = assembler
        self._store = store

    async def get_node(self, owner_id: str, node_id: str) -> NodeResponse:
        node = await self._forest.get_node(owner_id, node_id)
        if node is None:
            raise NodeNotFoundError(node_id)
        return NodeResponse.model_validate(node)

    async def list_nodes(
        self,
        owner_id: str,
        *,
        folder_id: str | None = None,
        roots_only: bool = False,
        limit: int = 100,
    ) -> list[NodeResponse]:
        rows = await self._forest.list_nodes(
            owner_id, folder_id=folder_id, roots_only=roots_only, limit=limit
        )
        return [NodeResponse.model_validate(r) for r in rows]

    async def graph(
        self,
        owner_id: str,
        node_id: str,
        direction: Direction = "descendants",
        *,
        children_count: bool = False,
    ) -> GraphResponse:
        rows = await self._resolver.graph(
            owner_id, node_id, direction, include_children_count=children_count
        )
        return GraphResponse(
            node_id=node_id,
            direction=direction,
            nodes=[GraphNodeResponse.model_validate(r) for r in rows],
        )

    async def context_preview(self, owner_id: str, node_id: str) -> ContextPreviewResponse:
        """The context a new child of ``node_id`` would be given (without its own citations)."""
        if await self._forest.get_node(owner_id, node_id) is None:
            raise NodeNotFoundError(node_id)
        context = await self._assembler.assemble(owner_id, node_id)
        return ContextPreviewResponse(
            parent_id=node_id,
            text=context.text,
            citations=context.citations,
            skipped_references=context.skipped_references,
            token_estimate=context.token_estimate,
        )

    async def history(self, owner_id: str, node_id: str) -> list[EventEnvelope]:
        """Every event recorded for the node, oldest first. Outlives the node itself."""
        events = await self._store.get_subject_events(owner_id, node_id)
        if not events:
            raise NodeNotFoundError(node_id)
        return events

    async def move_node(self, owner_id: str, node_id: str, changes: dict) -> NodeResponse:
        node = await self._mutations.move_node(owner_id, node_id, changes)
        return NodeResponse.model_validate(node)

    async def cut_to_root(self, owner_id: str, node_id: str) -> NodeResponse:
        node = await self._mutations.cut_to_root(owner_id, node_id)
        return NodeResponse.model_validate(node)

    async def delete_node(
        self, owner_id: str, node_id: str, mode: DeleteMode = "single"
    ) -> DeleteNodeResponse:
        deleted = await self._mutations.delete_node(owner_id, node_id, mode)
        return DeleteNodeResponse(mode=mode, deleted_node_ids=deleted)
