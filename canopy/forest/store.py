"""Forest store: SQL query contracts and mutation primitives for nodes and folders.

Every query is scoped by owner. Recursive traversals are recursive CTEs
bounded by the owner's row count, so an accidental cycle in stored data
terminates instead of looping; the resolver turns the repeated rows into
an integrity fault.
"""

import json
from datetime import datetime

from canopy.db.connection import Database
from canopy.models import Citation, FolderCreatedPayload, NodeCreatedPayload, Reference
from canopy.utils.json import parse_json_field, parse_json_list

_ANCESTORS_SQL = """
WITH RECURSIVE ancestors(node_id, parent_id, depth) AS (
    SELECT node_id, parent_id, 0 FROM nodes WHERE node_id = ? AND owner_id = ?
    UNION ALL
    SELECT p.node_id, p.parent_id, a.depth + 1
    FROM nodes p
    JOIN ancestors a ON p.node_id = a.parent_id
    WHERE p.owner_id = ?
      AND a.depth < (SELECT COUNT(*) FROM nodes WHERE owner_id = ?)
)
SELECT n.*, a.depth AS depth
FROM ancestors a
JOIN nodes n ON n.node_id = a.node_id
ORDER BY a.depth DESC
"""

_SUBTREE_CTE = """
WITH RECURSIVE subtree(node_id, depth) AS (
    SELECT node_id, 0 FROM nodes WHERE node_id = ? AND owner_id = ?
    UNION ALL
    SELECT c.node_id, s.depth + 1
    FROM nodes c
    JOIN subtree s ON c.parent_id = s.node_id
    WHERE c.owner_id = ?
      AND s.depth < (SELECT COUNT(*) FROM nodes WHERE owner_id = ?)
)
"""

_FOLDER_TREE_CTE = """
WITH RECURSIVE folder_tree(folder_id, depth) AS (
    SELECT folder_id, 0 FROM folders WHERE folder_id = ? AND owner_id = ?
    UNION ALL
    SELECT f.folder_id, t.depth + 1
    FROM folders f
    JOIN folder_tree t ON f.parent_id = t.folder_id
    WHERE f.owner_id = ?
      AND t.depth < (SELECT COUNT(*) FROM folders WHERE owner_id = ?)
)
"""

_CHILDREN_COUNT_SQL = (
    "(SELECT COUNT(*) FROM nodes c "
    "WHERE c.parent_id = n.node_id AND c.owner_id = n.owner_id) AS children_count"
)


class ForestStore:
    """Reads and writes the materialized ``nodes`` and ``folders`` tables."""

    def __init__(self, db: Database) -> None:
        self._db = db

    # -- Point lookups --

    async def get_node(self, owner_id: str, node_id: str) -> dict | None:
        row = await self._db.fetchone(
            "SELECT * FROM nodes WHERE node_id = ? AND owner_id = ?",
            (node_id, owner_id),
        )
        return self._node_from_row(row) if row is not None else None

    async def get_folder(self, owner_id: str, folder_id: str) -> dict | None:
        row = await self._db.fetchone(
            "SELECT * FROM folders WHERE folder_id = ? AND owner_id = ?",
            (folder_id, owner_id),
        )
        return dict(row) if row is not None else None

    async def list_folders(self, owner_id: str) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT * FROM folders WHERE owner_id = ? ORDER BY name",
            (owner_id,),
        )
        return [dict(r) for r in rows]

    async def list_nodes(
        self,
        owner_id: str,
        *,
        folder_id: str | None = None,
        roots_only: bool = False,
        limit: int = 100,
    ) -> list[dict]:
        """Newest-first listing, optionally filtered by folder and to roots."""
        clauses = ["owner_id = ?"]
        params: list = [owner_id]
        if folder_id is not None:
            clauses.append("folder_id = ?")
            params.append(folder_id)
        if roots_only:
            clauses.append("parent_id IS NULL")
        params.append(limit)
        rows = await self._db.fetchall(
            f"SELECT * FROM nodes WHERE {' AND '.join(clauses)} "
            "ORDER BY created_at DESC LIMIT ?",
            tuple(params),
        )
        return [self._node_from_row(r) for r in rows]

    async def count_nodes(self, owner_id: str) -> int:
        row = await self._db.fetchone(
            "SELECT COUNT(*) AS cnt FROM nodes WHERE owner_id = ?", (owner_id,)
        )
        return row["cnt"] if row is not None else 0

    # -- Recursive queries --

    async def ancestor_rows(self, owner_id: str, node_id: str) -> list[dict]:
        """Rows from the root down to ``node_id`` (oldest first), each with ``depth``.

        Empty if the node is missing or not owned. May contain repeated ids
        when the stored parent pointers form a cycle.
        """
        rows = await self._db.fetchall(
            _ANCESTORS_SQL, (node_id, owner_id, owner_id, owner_id)
        )
        return [self._node_from_row(r) for r in rows]

    async def descendant_rows(
        self,
        owner_id: str,
        node_id: str,
        *,
        include_self: bool = True,
        include_children_count: bool = False,
    ) -> list[dict]:
        """All nodes in the subtree rooted at ``node_id``, ordered by created_at."""
        columns = "n.*"
        if include_children_count:
            columns += ", " + _CHILDREN_COUNT_SQL
        sql = (
            _SUBTREE_CTE
            + f"SELECT {columns} FROM nodes n "
            "WHERE n.node_id IN (SELECT node_id FROM subtree)"
        )
        params: tuple = (node_id, owner_id, owner_id, owner_id)
        if not include_self:
            sql += " AND n.node_id != ?"
            params += (node_id,)
        sql += " ORDER BY n.created_at"
        rows = await self._db.fetchall(sql, params)
        return [self._node_from_row(r) for r in rows]

    async def children(self, owner_id: str, node_id: str) -> list[dict]:
        rows = await self._db.fetchall(
            "SELECT * FROM nodes WHERE parent_id = ? AND owner_id = ? ORDER BY created_at",
            (node_id, owner_id),
        )
        return [self._node_from_row(r) for r in rows]

    async def folder_subtree_ids(self, owner_id: str, folder_id: str) -> list[str]:
        """The folder plus every transitive descendant folder. Empty if not owned."""
        rows = await self._db.fetchall(
            _FOLDER_TREE_CTE + "SELECT DISTINCT folder_id FROM folder_tree",
            (folder_id, owner_id, owner_id, owner_id),
        )
        return [r["folder_id"] for r in rows]

    async def roots_in_folders(self, owner_id: str, folder_ids: list[str]) -> list[dict]:
        """Root nodes (no parent) filed in any of ``folder_ids``, oldest first."""
        if not folder_ids:
            return []
        placeholders = ", ".join("?" for _ in folder_ids)
        rows = await self._db.fetchall(
            f"SELECT * FROM nodes WHERE owner_id = ? AND parent_id IS NULL "
            f"AND folder_id IN ({placeholders}) ORDER BY created_at",
            (owner_id, *folder_ids),
        )
        return [self._node_from_row(r) for r in rows]

    # -- Mutation primitives (called by the projector) --

    async def insert_node(
        self, owner_id: str, payload: NodeCreatedPayload, timestamp: datetime
    ) -> None:
        ts = timestamp.isoformat()
        await self._db.execute(
            """
            INSERT OR REPLACE INTO nodes
                (node_id, owner_id, parent_id, folder_id, user_prompt, ai_response,
                 summary, citations, node_references, model_metadata, error,
                 created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, NULL, NULL, ?, ?, ?, NULL, ?, ?)
            """,
            (
                payload.node_id,
                owner_id,
                payload.parent_id,
                payload.folder_id,
                payload.user_prompt,
                json.dumps([c.model_dump() for c in payload.citations]),
                json.dumps([r.model_dump() for r in payload.references]),
                json.dumps(payload.model_metadata.model_dump()),
                ts,
                ts,
            ),
        )

    async def complete_node(
        self,
        owner_id: str,
        node_id: str,
        *,
        ai_response: str,
        summary: str | None,
        error: str | None,
        timestamp: datetime,
    ) -> int:
        """Write generation results in one statement. Returns the affected row count."""
        cursor = await self._db.execute(
            "UPDATE nodes SET ai_response = ?, summary = ?, error = ?, updated_at = ? "
            "WHERE node_id = ? AND owner_id = ?",
            (ai_response, summary, error, timestamp.isoformat(), node_id, owner_id),
        )
        return cursor.rowcount

    async def place_node(
        self, owner_id: str, node_id: str, fields: dict, timestamp: datetime
    ) -> None:
        """Set ``parent_id`` and/or ``folder_id``. Keys other than those two are ignored."""
        allowed = {k: v for k, v in fields.items() if k in ("parent_id", "folder_id")}
        if not allowed:
            return
        assignments = ", ".join(f"{k} = ?" for k in allowed)
        await self._db.execute(
            f"UPDATE nodes SET {assignments}, updated_at = ? "
            "WHERE node_id = ? AND owner_id = ?",
            (*allowed.values(), timestamp.isoformat(), node_id, owner_id),
        )

    async def delete_node_reparenting(
        self, owner_id: str, node_id: str, new_parent_id: str | None, timestamp: datetime
    ) -> None:
        """Move every direct child up to ``new_parent_id``, then delete the node."""
        async with self._db.transaction():
            await self._db.execute(
                "UPDATE nodes SET parent_id = ?, updated_at = ? "
                "WHERE parent_id = ? AND owner_id = ?",
                (new_parent_id, timestamp.isoformat(), node_id, owner_id),
            )
            await self._db.execute(
                "DELETE FROM nodes WHERE node_id = ? AND owner_id = ?",
                (node_id, owner_id),
            )

    async def delete_subtree(
        self, owner_id: str, node_id: str, known_ids: list[str]
    ) -> None:
        """Delete ``known_ids`` plus whatever the subtree holds at delete time."""
        async with self._db.transaction():
            await self._db.execute(
                _SUBTREE_CTE
                + "DELETE FROM nodes WHERE owner_id = ? "
                "AND node_id IN (SELECT node_id FROM subtree)",
                (node_id, owner_id, owner_id, owner_id, owner_id),
            )
            ids = list(known_ids) or [node_id]
            placeholders = ", ".join("?" for _ in ids)
            await self._db.execute(
                f"DELETE FROM nodes WHERE owner_id = ? AND node_id IN ({placeholders})",
                (owner_id, *ids),
            )

    async def insert_folder(
        self, owner_id: str, payload: FolderCreatedPayload, timestamp: datetime
    ) -> None:
        ts = timestamp.isoformat()
        await self._db.execute(
            """
            INSERT OR REPLACE INTO folders
                (folder_id, owner_id, name, parent_id, created_at, updated_at)
            VALUES (?, ?, ?, ?, ?, ?)
            """,
            (payload.folder_id, owner_id, payload.name, payload.parent_id, ts, ts),
        )

    async def update_folder(
        self, owner_id: str, folder_id: str, fields: dict, timestamp: datetime
    ) -> None:
        allowed = {k: v for k, v in fields.items() if k in ("name", "parent_id")}
        if not allowed:
            return
        assignments = ", ".join(f"{k} = ?" for k in allowed)
        await self._db.execute(
            f"UPDATE folders SET {assignments}, updated_at = ? "
            "WHERE folder_id = ? AND owner_id = ?",
            (*allowed.values(), timestamp.isoformat(), folder_id, owner_id),
        )

    @staticmethod
    def _node_from_row(row) -> dict:
        """Decode JSON columns; ``node_references`` is exposed as ``references``."""
        node = dict(row)
        node["citations"] = [
            Citation.model_validate(c).model_dump()
            for c in parse_json_list(node.get("citations"))
        ]
        node["references"] = [
            Reference.model_validate(r).model_dump()
            for r in parse_json_list(node.pop("node_references", None))
        ]
        node["model_metadata"] = parse_json_field(node.get("model_metadata")) or {}
        return node
