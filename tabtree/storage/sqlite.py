"""SQLite implementation of TreeStorage.

Each container tree is stored as one JSON row keyed by container id; the
compact snapshot sits in the kv table under SNAPSHOT_KEY. Rows that fail to
parse are logged and treated as missing.
"""

import logging
from collections.abc import Mapping

from pydantic import ValidationError

from tabtree.config import SnapshotLimits
from tabtree.db.connection import Database
from tabtree.models import CompactSnapshot, ContainerTree
from tabtree.persist.snapshot import build_compact_snapshot
from tabtree.storage.base import TreeStorage
from tabtree.utils.json import parse_json_field

logger = logging.getLogger(__name__)

SNAPSHOT_KEY = "tree.sync.snapshot.v1"


class SqliteTreeStorage(TreeStorage):
    def __init__(self, db: Database, limits: SnapshotLimits | None = None) -> None:
        self._db = db
        self._limits = limits or SnapshotLimits()

    async def load_container_tree(self, container_id: int) -> ContainerTree | None:
        row = await self._db.fetchone(
            "SELECT container_id, payload FROM container_trees WHERE container_id = ?",
            (container_id,),
        )
        if row is None:
            return None
        return self._row_to_tree(row)

    async def load_all_container_trees(self) -> list[ContainerTree]:
        rows = await self._db.fetchall(
            "SELECT container_id, payload FROM container_trees ORDER BY updated_at DESC"
        )
        trees = []
        for row in rows:
            tree = self._row_to_tree(row)
            if tree is not None:
                trees.append(tree)
        return trees

    async def save_container_tree(self, tree: ContainerTree) -> None:
        await self._db.execute(
            """
            INSERT INTO container_trees (container_id, payload, updated_at)
            VALUES (?, ?, ?)
            ON CONFLICT(container_id) DO UPDATE SET
                payload = excluded.payload,
                updated_at = excluded.updated_at
            """,
            (tree.container_id, tree.model_dump_json(), tree.updated_at.isoformat()),
        )

    async def remove_container_tree(self, container_id: int) -> None:
        await self._db.execute(
            "DELETE FROM container_trees WHERE container_id = ?", (container_id,)
        )

    async def load_snapshot(self) -> CompactSnapshot | None:
        payload = parse_json_field(
            await self._db.get_value(SNAPSHOT_KEY), required_keys=("containers",)
        )
        if payload is None:
            return None
        try:
            return CompactSnapshot.model_validate(payload)
        except ValidationError as exc:
            logger.warning("Stored snapshot is malformed, ignoring: %s", exc)
            return None

    async def save_snapshot(
        self, containers_state: Mapping[int, ContainerTree]
    ) -> CompactSnapshot:
        snapshot = build_compact_snapshot(containers_state, self._limits)
        await self._db.set_value(SNAPSHOT_KEY, snapshot.model_dump_json())
        return snapshot

    @staticmethod
    def _row_to_tree(row) -> ContainerTree | None:
        payload = parse_json_field(row["payload"], required_keys=("container_id", "nodes"))
        if payload is None:
            logger.warning("Stored tree for container %s is unreadable, ignoring", row["container_id"])
            return None
        try:
            return ContainerTree.model_validate(payload)
        except ValidationError as exc:
            logger.warning(
                "Stored tree for container %s is malformed, ignoring: %s",
                row["container_id"],
                exc,
            )
            return None
