"""Generation service: validates a node-creation request, creates the node, runs its session."""

import asyncio
import logging
from uuid import uuid4

from canopy.db.connection import Database
from canopy.errors import (
    FolderNotFoundError,
    NodeNotFoundError,
    ParentNotFoundError,
    ValidationError,
)
from canopy.events.log import EventLog
from canopy.forest.store import ForestStore
from canopy.generation.collaborator import ModelCollaborator
from canopy.generation.context import ContextAssembler
from canopy.generation.session import GenerationSession
from canopy.models import ModelMetadata, NodeCreatedPayload
from canopy.nodes.schemas import CreateNodeRequest

logger = logging.getLogger(__name__)


class GenerationService:
    """Orchestrates node creation: context assembly, node insert, background generation."""

    def __init__(
        self,
        db: Database,
        forest: ForestStore,
        assembler: ContextAssembler,
        collaborator: ModelCollaborator,
        event_log: EventLog,
    ) -> None:
        self._db = db
        self._forest = forest
        self._assembler = assembler
        self._collaborator = collaborator
        self._events = event_log
        self._tasks: set[asyncio.Task] = set()

    async def open_session(self, owner_id: str, request: CreateNodeRequest) -> GenerationSession:
        """Assemble context, create the node, and start generating in the background.

        Everything that can reject the request happens before the node exists.

        Raises:
            ValidationError: Blank prompt.
            ParentNotFoundError / FolderNotFoundError: Missing or unowned ids.
            ProviderNotFoundError: Unknown provider name.
        """
        if not request.user_prompt.strip():
            raise ValidationError("User prompt is required")

        provider = self._collaborator.resolve_provider(request.model_metadata.provider)
        try:
            model = self._collaborator.resolve_model(provider, request.model_metadata.model)
        except ValueError as e:
            raise ValidationError(str(e)) from e

        context = await self._assembler.assemble(
            owner_id,
            request.parent_id,
            citations=request.citations,
            references=request.references,
        )

        node_id = str(uuid4())
        async with self._db.transaction():
            folder_id = request.folder_id
            if request.parent_id is not None:
                parent = await self._forest.get_node(owner_id, request.parent_id)
                if parent is None:
                    # Deleted between assembly and insert.
                    raise ParentNotFoundError(request.parent_id)
                if folder_id is None:
                    folder_id = parent["folder_id"]
            if request.folder_id is not None:
                if await self._forest.get_folder(owner_id, request.folder_id) is None:
                    raise FolderNotFoundError(request.folder_id)

            payload = NodeCreatedPayload(
                node_id=node_id,
                parent_id=request.parent_id,
                folder_id=folder_id,
                user_prompt=request.user_prompt,
                citations=request.citations,
                references=request.references,
                model_metadata=ModelMetadata(model=model, provider=provider.name),
            )
            await self._events.emit(owner_id, node_id, "NodeCreated", payload)
            node = await self._forest.get_node(owner_id, node_id)

        logger.info(
            "Created node %s (parent=%s, model=%s/%s, ~%d context tokens)",
            node_id,
            request.parent_id,
            provider.name,
            model,
            context.token_estimate,
        )

        session = GenerationSession(
            owner_id=owner_id,
            node=node,
            context=context,
            provider=provider.name,
            model=model,
            collaborator=self._collaborator,
            forest=self._forest,
            event_log=self._events,
        )
        task = session.start()
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return session

    async def create_node(self, owner_id: str, request: CreateNodeRequest) -> dict:
        """Non-streaming creation: run the session to completion and return the final node."""
        session = await self.open_session(owner_id, request)
        final: dict | None = None
        async for event in session.events():
            if event.type == "message_stop":
                final = event.data
            elif event.type == "error":
                final = event.data.get("node")
        if final is None or "user_prompt" not in final:
            # Deleted while generating.
            raise NodeNotFoundError(session.node_id)
        return final

    async def wait_idle(self) -> None:
        """Wait for every in-flight session to finish persisting."""
        if self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)
