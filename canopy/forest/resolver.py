"""Tree resolver: roots, ancestor chains, and subtrees for a node.

Read-only. Chains are validated before they are returned: a revisited id
means the stored parent pointers form a cycle, and a chain whose oldest
row still has a parent means that parent is missing (an orphan pointer).
Both are integrity faults; they are logged and raised, never repaired.
"""

import logging
from typing import Literal

from canopy.errors import IntegrityFaultError, NodeNotFoundError
from canopy.forest.store import ForestStore
from canopy.models import EventEnvelope

logger = logging.getLogger(__name__)

Direction = Literal["ancestors", "descendants"]


class TreeResolver:
    """Resolves ancestor chains and subtrees, caching chains per owner.

    The cache is dropped for an owner whenever an event for that owner is
    projected (see ``invalidate``). A chain read that overlaps an
    invalidation is returned but not cached.
    """

    def __init__(self, forest: ForestStore) -> None:
        self._forest = forest
        self._chains: dict[str, dict[str, tuple[dict, ...]]] = {}
        self._generations: dict[str, int] = {}

    def invalidate(self, owner_id: str) -> None:
        """Forget every cached chain for ``owner_id``."""
        self._generations[owner_id] = self._generations.get(owner_id, 0) + 1
        self._chains.pop(owner_id, None)

    def handle_event(self, event: EventEnvelope) -> None:
        """Projector listener: any projected write invalidates the owner's chains."""
        self.invalidate(event.owner_id)

    async def ancestors_of(self, owner_id: str, node_id: str) -> list[dict]:
        """The chain root → ``node_id`` (inclusive), oldest first.

        Raises:
            NodeNotFoundError: If the node is missing or owned by someone else.
            IntegrityFaultError: If the chain contains a cycle or orphan pointer.
        """
        cached = self._chains.get(owner_id, {}).get(node_id)
        if cached is not None:
            return list(cached)

        generation = self._generations.get(owner_id, 0)
        rows = await self._forest.ancestor_rows(owner_id, node_id)
        if not rows:
            raise NodeNotFoundError(node_id)
        chain = self._validate_chain(rows, node_id)

        if self._generations.get(owner_id, 0) == generation:
            self._chains.setdefault(owner_id, {})[node_id] = tuple(chain)
        return chain

    async def root_of(self, owner_id: str, node_id: str) -> str:
        chain = await self.ancestors_of(owner_id, node_id)
        return chain[0]["node_id"]

    async def descendants_of(
        self,
        owner_id: str,
        root_id: str,
        *,
        include_self: bool = True,
        include_children_count: bool = False,
    ) -> list[dict]:
        """Every node in the subtree under ``root_id`` (no duplicates).

        Raises NodeNotFoundError if ``root_id`` is missing or not owned.
        """
        if await self._forest.get_node(owner_id, root_id) is None:
            raise NodeNotFoundError(root_id)
        rows = await self._forest.descendant_rows(
            owner_id,
            root_id,
            include_self=include_self,
            include_children_count=include_children_count,
        )
        return rows

    async def graph(
        self,
        owner_id: str,
        node_id: str,
        direction: Direction = "descendants",
        *,
        include_children_count: bool = False,
    ) -> list[dict]:
        """Ancestors (oldest first) or descendants of a node, for graph views.

        ``include_children_count`` only applies to descendants.
        """
        if direction == "ancestors":
            return await self.ancestors_of(owner_id, node_id)
        return await self.descendants_of(
            owner_id, node_id, include_children_count=include_children_count
        )

    @staticmethod
    def _validate_chain(rows: list[dict], node_id: str) -> list[dict]:
        seen: set[str] = set()
        chain: list[dict] = []
        for row in rows:
            if row["node_id"] in seen:
                logger.error("Cycle detected in ancestors of %s at %s", node_id, row["node_id"])
                raise IntegrityFaultError(
                    f"Cycle detected at node: {row['node_id']}", node_id=row["node_id"]
                )
            seen.add(row["node_id"])
            node = dict(row)
            node.pop("depth", None)
            chain.append(node)

        if chain[0]["parent_id"] is not None:
            logger.error(
                "Orphan pointer: %s points to missing parent %s",
                chain[0]["node_id"],
                chain[0]["parent_id"],
            )
            raise IntegrityFaultError(
                f"Broken chain: parent {chain[0]['parent_id']} of node "
                f"{chain[0]['node_id']} not found",
                node_id=chain[0]["node_id"],
            )
        for parent, child in zip(chain, chain[1:]):
            if child["parent_id"] != parent["node_id"]:
                raise IntegrityFaultError(
                    f"Broken chain between {parent['node_id']} and {child['node_id']}",
                    node_id=child["node_id"],
                )
        return chain
