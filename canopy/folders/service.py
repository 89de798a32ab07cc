"""Folder service: create and list folders; moves and renames go through the mutation engine."""

import logging
from uuid import uuid4

from canopy.db.connection import Database
from canopy.errors import FolderNotFoundError, ValidationError
from canopy.events.log import EventLog
from canopy.folders.schemas import CreateFolderRequest, FolderResponse
from canopy.forest.mutations import MutationEngine
from canopy.forest.store import ForestStore
from canopy.models import FolderCreatedPayload

logger = logging.getLogger(__name__)


class FolderService:
    def __init__(
        self,
        db: Database,
        forest: ForestStore,
        mutations: MutationEngine,
        event_log: EventLog,
    ) -> None:
        self._db = db
        self._forest = forest
        self._mutations = mutations
        self._events = event_log

    async def create_folder(self, owner_id: str, request: CreateFolderRequest) -> FolderResponse:
        """Emit FolderCreated, project it, return the new folder."""
        name = request.name.strip()
        if not name:
            raise ValidationError("Folder name is required")

        folder_id = str(uuid4())
        async with self._db.transaction():
            if request.parent_id is not None:
                if await self._forest.get_folder(owner_id, request.parent_id) is None:
                    raise FolderNotFoundError(request.parent_id)
            payload = FolderCreatedPayload(
                folder_id=folder_id, name=name, parent_id=request.parent_id
            )
            await self._events.emit(owner_id, folder_id, "FolderCreated", payload)
            folder = await self._forest.get_folder(owner_id, folder_id)

        logger.info("Created folder %s (%s)", folder_id, name)
        return FolderResponse.model_validate(folder)

    async def list_folders(self, owner_id: str) -> list[FolderResponse]:
        rows = await self._forest.list_folders(owner_id)
        return [FolderResponse.model_validate(r) for r in rows]

    async def update_folder(self, owner_id: str, folder_id: str, changes: dict) -> FolderResponse:
        folder = await self._mutations.update_folder(owner_id, folder_id, changes)
        return FolderResponse.model_validate(folder)
