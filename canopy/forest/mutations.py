"""Mutation engine: structural edits to the node and folder forests.

Each operation validates and emits its event inside one write transaction,
so a failed check leaves the forest untouched and no other writer can
slip in between the check and the write. Resolver caches are dropped by
the projector listener once the event lands.
"""

import logging
from typing import Literal

from canopy.db.connection import Database
from canopy.errors import (
    FolderNotFoundError,
    NodeNotFoundError,
    ParentNotFoundError,
    ValidationError,
)
from canopy.events.log import EventLog
from canopy.forest.resolver import TreeResolver
from canopy.forest.store import ForestStore
from canopy.models import (
    FolderUpdatedPayload,
    NodeDeletedPayload,
    NodeMovedPayload,
    SubtreeDeletedPayload,
)

logger = logging.getLogger(__name__)

DeleteMode = Literal["single", "subtree"]


class MutationEngine:
    """Move, cut, and delete nodes; move and rename folders."""

    def __init__(
        self,
        db: Database,
        forest: ForestStore,
        resolver: TreeResolver,
        event_log: EventLog,
    ) -> None:
        self._db = db
        self._forest = forest
        self._resolver = resolver
        self._events = event_log

    # -- Nodes --

    async def move_node(self, owner_id: str, node_id: str, changes: dict) -> dict:
        """Reparent and/or refile a node.

        ``changes`` holds only the fields the caller set: ``parent_id``
        (None makes the node a root) and/or ``folder_id`` (None unfiles it).
        Descendants keep their stored summaries.
        """
        changes = {k: v for k, v in changes.items() if k in ("parent_id", "folder_id")}
        if not changes:
            raise ValidationError("Nothing to move: provide parent_id and/or folder_id")

        async with self._db.transaction():
            node = await self._forest.get_node(owner_id, node_id)
            if node is None:
                raise NodeNotFoundError(node_id)

            target_parent = changes.get("parent_id")
            if target_parent is not None:
                await self._check_node_target(owner_id, node_id, target_parent)

            target_folder = changes.get("folder_id")
            if target_folder is not None:
                if await self._forest.get_folder(owner_id, target_folder) is None:
                    raise FolderNotFoundError(target_folder)

            payload = NodeMovedPayload(
                node_id=node_id,
                changed=sorted(changes),
                parent_id=changes.get("parent_id", node["parent_id"]),
                folder_id=changes.get("folder_id", node["folder_id"]),
                old_parent_id=node["parent_id"],
                old_folder_id=node["folder_id"],
            )
            await self._events.emit(owner_id, node_id, "NodeMoved", payload)
            moved = await self._forest.get_node(owner_id, node_id)

        logger.info("Moved node %s: %s", node_id, changes)
        return moved

    async def cut_to_root(self, owner_id: str, node_id: str) -> dict:
        """Detach a node (and its subtree) into an independent tree. Folder is kept."""
        return await self.move_node(owner_id, node_id, {"parent_id": None})

    async def delete_node(
        self, owner_id: str, node_id: str, mode: DeleteMode = "single"
    ) -> list[str]:
        """Delete a node. Returns the ids that were removed.

        ``single`` moves the node's direct children up to its parent (or makes
        them roots). ``subtree`` removes the node and every descendant.
        """
        async with self._db.transaction():
            node = await self._forest.get_node(owner_id, node_id)
            if node is None:
                raise NodeNotFoundError(node_id)

            if mode == "single":
                children = await self._forest.children(owner_id, node_id)
                payload = NodeDeletedPayload(
                    node_id=node_id,
                    new_parent_id=node["parent_id"],
                    reparented_child_ids=[c["node_id"] for c in children],
                )
                await self._events.emit(owner_id, node_id, "NodeDeleted", payload)
                deleted = [node_id]
            elif mode == "subtree":
                rows = await self._resolver.descendants_of(owner_id, node_id)
                deleted = [r["node_id"] for r in rows] or [node_id]
                payload = SubtreeDeletedPayload(node_id=node_id, deleted_node_ids=deleted)
                await self._events.emit(owner_id, node_id, "SubtreeDeleted", payload)
            else:
                raise ValidationError(f"Unknown delete mode: {mode}")

        logger.info("Deleted %d node(s) rooted at %s (mode=%s)", len(deleted), node_id, mode)
        return deleted

    # -- Folders --

    async def update_folder(self, owner_id: str, folder_id: str, changes: dict) -> dict:
        """Rename and/or reparent a folder. ``parent_id`` None moves it to the top level."""
        changes = {k: v for k, v in changes.items() if k in ("name", "parent_id")}
        if not changes:
            raise ValidationError("Nothing to update: provide name and/or parent_id")
        if "name" in changes:
            name = (changes["name"] or "").strip()
            if not name:
                raise ValidationError("Folder name is required")
            changes["name"] = name

        async with self._db.transaction():
            folder = await self._forest.get_folder(owner_id, folder_id)
            if folder is None:
                raise FolderNotFoundError(folder_id)

            target = changes.get("parent_id")
            if target is not None:
                if target == folder_id:
                    raise ValidationError("A folder cannot be its own parent")
                if await self._forest.get_folder(owner_id, target) is None:
                    raise FolderNotFoundError(target)
                if target in await self._forest.folder_subtree_ids(owner_id, folder_id):
                    raise ValidationError("Cannot move a folder into its own subfolder")

            payload = FolderUpdatedPayload(
                folder_id=folder_id,
                changed=sorted(changes),
                name=changes.get("name", folder["name"]),
                parent_id=changes.get("parent_id", folder["parent_id"]),
            )
            await self._events.emit(owner_id, folder_id, "FolderUpdated", payload)
            updated = await self._forest.get_folder(owner_id, folder_id)
        return updated

    async def _check_node_target(self, owner_id: str, node_id: str, target_id: str) -> None:
        if target_id == node_id:
            raise ValidationError("A node cannot be its own parent")
        lineage = await self._forest.ancestor_rows(owner_id, target_id)
        if not lineage:
            raise ParentNotFoundError(target_id)
        if any(row["node_id"] == node_id for row in lineage):
            raise ValidationError("Cannot move a node under one of its own descendants")
